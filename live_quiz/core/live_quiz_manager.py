"""Business logic shared by the API layer: starting, running and grading quizzes."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Callable
from uuid import uuid4

from live_quiz.constants.quiz_constants import DEFAULT_QUIZ_TIME_LIMIT_MINUTES, PUBLISHED_STATUS
from live_quiz.core.errors import QuizNotFound, QuizNotLive, SessionNotFound
from live_quiz.core.models import (
    AnswerOutcome,
    GradedSubmission,
    LiveSessionInfo,
    QuizRecord,
    SessionSnapshot,
    SubmittedAnswer,
)
from live_quiz.core.question_parser import build_live_questions
from live_quiz.core.services.broadcast_channel import EventConnection
from live_quiz.core.services.live_session import LiveSession, utc_now
from live_quiz.core.services.quiz_repository import QuizStorage
from live_quiz.core.services.session_finalizer import SessionFinalizer
from live_quiz.core.services.session_registry import SessionRegistry
from live_quiz.core.submission_grader import grade_submission

logger = logging.getLogger(__name__)


def question_time_budget(time_limit_minutes: int | None, question_count: int) -> float:
    """Seconds per question: the quiz time limit spread evenly over its questions."""
    minutes = time_limit_minutes or DEFAULT_QUIZ_TIME_LIMIT_MINUTES
    return minutes * 60 / max(1, question_count)


class LiveQuizManager:
    """Facade over storage, the session registry and the finalizer."""

    def __init__(
        self,
        storage: QuizStorage,
        registry: SessionRegistry | None = None,
        finalizer: SessionFinalizer | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._registry = registry or SessionRegistry(clock=clock)
        self._finalizer = finalizer or SessionFinalizer(storage, clock=clock)

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    # --- Lifecycle ---

    def start_background_tasks(self) -> None:
        self._registry.start_sweeper()

    def shutdown(self) -> None:
        self._registry.close()

    # --- Live sessions ---

    def start_live(self, quiz_id: str, host_user_id: str) -> LiveSessionInfo:
        quiz = self._require_quiz(quiz_id)
        if quiz.status != PUBLISHED_STATUS:
            raise QuizNotLive("Quiz must be published to start live.")
        questions = build_live_questions(self._storage.get_quiz_questions(quiz_id))
        if not questions:
            raise QuizNotLive("Quiz has no questions.")

        budget = question_time_budget(quiz.time_limit_minutes, len(questions))
        join_code = self._registry.create(
            quiz_id=quiz_id,
            host_user_id=host_user_id,
            questions=questions,
            time_budget_seconds=budget,
            on_ended=self._on_session_ended,
        )
        return LiveSessionInfo(
            join_code=join_code,
            quiz_title=quiz.title,
            question_count=len(questions),
            time_per_question=round(budget),
        )

    def get_session(self, join_code: str) -> LiveSession:
        return self._registry.get(join_code)

    def subscribe(self, join_code: str, connection: EventConnection) -> bool:
        return self._registry.get(join_code).subscribe(connection)

    def unsubscribe(self, join_code: str, connection: EventConnection) -> None:
        try:
            session = self._registry.get(join_code)
        except SessionNotFound:
            # Removal already closed every subscriber.
            return
        session.unsubscribe(connection)

    def join(self, join_code: str, user_id: str, name: str) -> SessionSnapshot:
        return self._registry.get(join_code).join(user_id, name)

    def advance(self, join_code: str, host_user_id: str) -> SessionSnapshot:
        return self._registry.get(join_code).advance(host_user_id)

    def submit_answer(self, join_code: str, user_id: str, raw_answer: Any) -> AnswerOutcome:
        return self._registry.get(join_code).submit_answer(user_id, raw_answer)

    def end(self, join_code: str, host_user_id: str) -> SessionSnapshot:
        return self._registry.get(join_code).end(host_user_id)

    def status(self, join_code: str) -> SessionSnapshot:
        return self._registry.get(join_code).snapshot()

    def _on_session_ended(self, session: LiveSession) -> None:
        self._finalizer.finalize(session)
        self._registry.schedule_removal(session.join_code)

    # --- Asynchronous submissions ---

    def submit_attempt(
        self,
        quiz_id: str,
        student_id: str,
        answers: list[SubmittedAnswer],
    ) -> GradedSubmission:
        """Grade a whole-quiz submission with partial credit and persist it."""
        quiz = self._require_quiz(quiz_id)
        questions = build_live_questions(self._storage.get_quiz_questions(quiz_id))
        graded = grade_submission(
            attempt_id=uuid4().hex,
            quiz_id=quiz_id,
            student_id=student_id,
            questions=questions,
            answers=answers,
            submitted_at=self._clock(),
            pass_percentage=quiz.pass_percentage,
        )
        self._storage.insert_attempt(graded.attempt)
        for result in graded.results:
            self._storage.insert_answer_result(result)
        logger.info(
            "Graded submission for quiz %s by %s: %s/%s",
            quiz_id,
            student_id,
            graded.attempt.score,
            graded.attempt.total_marks,
        )
        return graded

    def _require_quiz(self, quiz_id: str) -> QuizRecord:
        quiz = self._storage.get_quiz(quiz_id)
        if quiz is None:
            raise QuizNotFound("Quiz not found.")
        return quiz
