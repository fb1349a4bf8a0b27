"""State machine for one live quiz session."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from threading import Lock
from typing import Any, Callable

from live_quiz.core.answer_scorer import answer_text, score_answer
from live_quiz.core.errors import (
    AlreadyAnswered,
    AlreadyEnded,
    Forbidden,
    NoActiveQuestion,
    NotAJoinedParticipant,
    SessionEnded,
)
from live_quiz.core.markdown_math_renderer import renderer
from live_quiz.core.models import (
    AnswerOutcome,
    AnswerRecord,
    LeaderboardRow,
    LiveQuestion,
    LiveStatus,
    Participant,
    SessionSnapshot,
)
from live_quiz.core.services.broadcast_channel import BroadcastChannel, EventConnection
from live_quiz.core.services.scoreboard import Scoreboard

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LiveSession:
    """A host-driven, synchronized run of one quiz.

    Status only moves forward: ``waiting`` -> ``question`` (once per question)
    -> ``ended``. Every public method takes the session lock, and events are
    published while it is held, so subscribers see events in transition order.
    ``on_ended`` runs exactly once, after the final leaderboard has been
    published and outside the lock.
    """

    def __init__(
        self,
        join_code: str,
        quiz_id: str,
        host_user_id: str,
        questions: tuple[LiveQuestion, ...],
        time_budget_seconds: float,
        on_ended: Callable[[LiveSession], None] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not questions:
            raise ValueError("A live session needs at least one question.")
        self.join_code = join_code
        self.quiz_id = quiz_id
        self.host_user_id = host_user_id
        self.questions = tuple(questions)
        self.time_budget_seconds = time_budget_seconds
        self.channel = BroadcastChannel()

        self._on_ended = on_ended
        self._clock = clock
        self._lock = Lock()
        self._scoreboard = Scoreboard()
        self._status = LiveStatus.WAITING
        self._question_index = -1
        self._question_started_at: datetime | None = None
        self._ended_at: datetime | None = None
        self.created_at = clock()
        self.last_activity_at = self.created_at

    # --- Read access ---

    @property
    def status(self) -> LiveStatus:
        return self._status

    @property
    def question_index(self) -> int:
        return self._question_index

    @property
    def question_started_at(self) -> datetime | None:
        return self._question_started_at

    @property
    def ended_at(self) -> datetime | None:
        return self._ended_at

    @property
    def total_marks(self) -> int:
        return sum(question.marks for question in self.questions)

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot()

    def participants(self) -> list[Participant]:
        with self._lock:
            return self._scoreboard.participants()

    def leaderboard(self) -> list[LeaderboardRow]:
        with self._lock:
            return self._scoreboard.leaderboard()

    # --- Subscribers ---

    def subscribe(self, connection: EventConnection) -> bool:
        """Attach a push connection, greeting it with the current status."""
        with self._lock:
            delivered = self.channel.send(
                connection,
                "connected",
                {
                    "status": self._status.value,
                    "question_index": self._question_index,
                    "total_questions": len(self.questions),
                },
            )
            if delivered:
                self.channel.subscribe(connection)
            return delivered

    def unsubscribe(self, connection: EventConnection) -> None:
        self.channel.unsubscribe(connection)

    # --- Transitions ---

    def join(self, user_id: str, name: str) -> SessionSnapshot:
        with self._lock:
            if self._status is LiveStatus.ENDED:
                raise SessionEnded("Session has ended.")
            participant, is_new = self._scoreboard.register(user_id, name, self._clock())
            if is_new:
                self._touch()
                self.channel.publish(
                    "participant_joined",
                    {
                        "user_id": participant.user_id,
                        "name": participant.name,
                        "participant_count": self._scoreboard.count(),
                    },
                )
            return self._snapshot()

    def advance(self, host_user_id: str) -> SessionSnapshot:
        with self._lock:
            self._require_host(host_user_id)
            if self._status is LiveStatus.ENDED:
                raise AlreadyEnded("Session has already ended.")

            self._question_index += 1
            self._touch()
            if self._question_index >= len(self.questions):
                self._finish()
                snapshot = self._snapshot()
                ended_now = True
            else:
                self._status = LiveStatus.QUESTION
                self._question_started_at = self._clock()
                self.channel.publish("question", self._question_event(self._question_index))
                snapshot = self._snapshot()
                ended_now = False

        if ended_now:
            self._notify_ended()
        return snapshot

    def submit_answer(self, user_id: str, raw_answer: Any) -> AnswerOutcome:
        with self._lock:
            if self._status is not LiveStatus.QUESTION or self._question_started_at is None:
                raise NoActiveQuestion("No active question.")
            participant = self._scoreboard.get(user_id)
            if participant is None:
                raise NotAJoinedParticipant("Not a participant in this session.")
            index = self._question_index
            if participant.has_answered(index):
                raise AlreadyAnswered("Already answered this question.")

            question = self.questions[index]
            result = score_answer(question, raw_answer)
            elapsed = max(0.0, (self._clock() - self._question_started_at).total_seconds())
            record = AnswerRecord(
                question_index=index,
                raw_answer=answer_text(raw_answer),
                is_correct=result.is_correct,
                elapsed_seconds=elapsed,
            )
            # Live scoring is full marks or nothing, even where partial credit exists.
            awarded = question.marks if result.is_correct else 0
            participant = self._scoreboard.record_answer(user_id, record, awarded)
            self._touch()
            self.channel.publish(
                "answer_update",
                {
                    "answered": self._scoreboard.answered_count(index),
                    "total": self._scoreboard.count(),
                },
            )
            return AnswerOutcome(record=record, score=participant.score)

    def end(self, host_user_id: str) -> SessionSnapshot:
        with self._lock:
            self._require_host(host_user_id)
            if self._status is LiveStatus.ENDED:
                return self._snapshot()
            self._touch()
            self._finish()
            snapshot = self._snapshot()

        self._notify_ended()
        return snapshot

    def expire(self) -> bool:
        """End the session without a host action, as for an abandoned session.

        Publishes the final leaderboard and runs ``on_ended`` like ``end``.
        Returns False if the session had already ended.
        """
        with self._lock:
            if self._status is LiveStatus.ENDED:
                return False
            self._finish()

        self._notify_ended()
        return True

    # --- Internals (lock held) ---

    def _require_host(self, user_id: str) -> None:
        if user_id != self.host_user_id:
            raise Forbidden("Not the session host.")

    def _touch(self) -> None:
        self.last_activity_at = self._clock()

    def _finish(self) -> None:
        self._status = LiveStatus.ENDED
        self._ended_at = self._clock()
        leaderboard = [
            {"rank": row.rank, "user_id": row.user_id, "name": row.name, "score": row.score}
            for row in self._scoreboard.leaderboard()
        ]
        self.channel.publish("quiz_ended", {"leaderboard": leaderboard})
        logger.info(
            "Live session %s ended with %d participant(s)", self.join_code, self._scoreboard.count()
        )

    def _question_event(self, index: int) -> dict[str, Any]:
        question = self.questions[index]
        options = question.payload.public_options()
        event: dict[str, Any] = {
            "index": index,
            "total": len(self.questions),
            "question_text": question.question_text,
            "question_html": renderer.render_fragment(question.question_text),
            "question_type": question.question_type,
            "options": options,
            "marks": question.marks,
            "difficulty": question.difficulty,
            "time_limit": round(self.time_budget_seconds),
            "started_at": self._question_started_at.isoformat() if self._question_started_at else None,
        }
        if isinstance(options, list):
            event["options_html"] = [renderer.render_inline(option) for option in options]
        return event

    def _snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            join_code=self.join_code,
            status=self._status,
            question_index=self._question_index,
            total_questions=len(self.questions),
            participant_count=self._scoreboard.count(),
            leaderboard=self._scoreboard.leaderboard(),
        )

    def _notify_ended(self) -> None:
        if self._on_ended is not None:
            self._on_ended(self)
