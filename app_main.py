"""Application entry point for the LiveQuiz server."""

from __future__ import annotations

from pathlib import Path
import sys

from live_quiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from live_quiz.core.live_quiz_manager import LiveQuizManager
from live_quiz.core.quiz_importer import QuizImportError, load_quiz_from_file
from live_quiz.core.services.quiz_repository import InMemoryQuizRepository
from live_quiz.server.api_server import run_api_server
from live_quiz.utils.logging_config import configure_logging


def main(argv: list[str] | None = None) -> int:
    """Initialize logging, seed storage from quiz files, and serve the API."""
    logger = configure_logging()
    logger.info("Starting LiveQuiz server…")

    repository = InMemoryQuizRepository()
    for raw_path in (sys.argv[1:] if argv is None else argv):
        try:
            imported = load_quiz_from_file(Path(raw_path))
        except (OSError, QuizImportError) as exc:
            logger.error("Could not import %s: %s", raw_path, exc)
            return 1
        repository.add_quiz(imported.quiz, imported.questions)
        logger.info(
            "Loaded quiz %s (%s) with %d question(s)",
            imported.quiz.id,
            imported.quiz.title,
            len(imported.questions),
        )

    manager = LiveQuizManager(repository)
    run_api_server(manager, host=DEFAULT_HOST, port=DEFAULT_PORT)
    return 0


if __name__ == "__main__":
    sys.exit(main())
