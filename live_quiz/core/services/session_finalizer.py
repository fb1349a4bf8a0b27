"""Turns an ended live session into durable attempt records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Callable
from uuid import uuid4

from live_quiz.core.models import AnswerResultRecord, AttemptRecord, Participant
from live_quiz.core.services.live_session import LiveSession, utc_now
from live_quiz.core.services.quiz_repository import QuizStorage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FinalizationReport:
    persisted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def percentage_of(score: int, total_marks: int) -> float:
    if total_marks <= 0:
        return 0.0
    return round(score / total_marks * 100, 2)


class SessionFinalizer:
    """Persists one evaluated attempt per participant plus its answer results.

    Runs after the final leaderboard has been broadcast. A storage failure for
    one participant is logged and does not stop the others.
    """

    def __init__(
        self,
        storage: QuizStorage,
        id_factory: Callable[[], str] = lambda: uuid4().hex,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._id_factory = id_factory
        self._clock = clock

    def finalize(self, session: LiveSession) -> FinalizationReport:
        report = FinalizationReport()
        total_marks = session.total_marks
        submitted_at = self._clock()
        for participant in session.participants():
            try:
                self._persist_participant(session, participant, total_marks, submitted_at)
            except Exception:
                logger.exception(
                    "Could not persist live results for %s in session %s",
                    participant.user_id,
                    session.join_code,
                )
                report.failed.append(participant.user_id)
            else:
                report.persisted.append(participant.user_id)
        logger.info(
            "Finalized session %s: %d persisted, %d failed",
            session.join_code,
            len(report.persisted),
            len(report.failed),
        )
        return report

    def _persist_participant(
        self,
        session: LiveSession,
        participant: Participant,
        total_marks: int,
        submitted_at: datetime,
    ) -> None:
        attempt = AttemptRecord(
            id=self._id_factory(),
            quiz_id=session.quiz_id,
            student_id=participant.user_id,
            score=participant.score,
            total_marks=total_marks,
            percentage=percentage_of(participant.score, total_marks),
            submitted_at=submitted_at,
            status="evaluated",
        )
        self._storage.insert_attempt(attempt)

        for record in participant.answers:
            if not 0 <= record.question_index < len(session.questions):
                continue
            question = session.questions[record.question_index]
            self._storage.insert_answer_result(
                AnswerResultRecord(
                    attempt_id=attempt.id,
                    question_id=question.id,
                    answer_text=record.raw_answer,
                    is_correct=record.is_correct,
                    marks_awarded=question.marks if record.is_correct else 0,
                    feedback=(
                        "Correct!"
                        if record.is_correct
                        else f"Incorrect. The correct answer is: {question.canonical_answer_text()}"
                    ),
                )
            )
