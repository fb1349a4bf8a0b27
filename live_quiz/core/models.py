"""Domain models for the live quiz server."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union


class LiveStatus(str, Enum):
    """Lifecycle states of a live session. Only ever moves forward."""

    WAITING = "waiting"
    QUESTION = "question"
    ENDED = "ended"


# --- Storage rows ---


@dataclass(slots=True)
class QuizRecord:
    """Quiz row as returned by the storage collaborator."""

    id: str
    title: str
    status: str = "draft"
    time_limit_minutes: int | None = None
    teacher_id: str | None = None
    pass_percentage: int = 40


@dataclass(slots=True)
class QuestionRecord:
    """Question row as stored. ``options`` keeps the per-type JSON shape."""

    id: str
    quiz_id: str
    question_text: str
    question_type: str = "mcq"
    options: Any = None
    correct_answer: str = ""
    marks: int = 1
    difficulty: str = "medium"
    order_index: int = 0


@dataclass(slots=True)
class AttemptRecord:
    id: str
    quiz_id: str
    student_id: str
    score: int
    total_marks: int
    percentage: float
    submitted_at: datetime
    status: str = "evaluated"


@dataclass(slots=True)
class AnswerResultRecord:
    attempt_id: str
    question_id: str
    answer_text: str
    is_correct: bool
    marks_awarded: int
    feedback: str | None = None


# --- Question payloads ---


@dataclass(frozen=True, slots=True)
class McqPayload:
    options: tuple[str, ...]
    correct_answer: str

    question_type = "mcq"

    def public_options(self) -> list[str]:
        return list(self.options)


@dataclass(frozen=True, slots=True)
class TrueFalsePayload:
    correct_answer: str
    options: tuple[str, ...] = ("True", "False")

    question_type = "true_false"

    def public_options(self) -> list[str]:
        return list(self.options)


@dataclass(frozen=True, slots=True)
class ShortAnswerPayload:
    correct_answer: str

    question_type = "short_answer"

    def public_options(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class FillInBlankPayload:
    acceptable: tuple[str, ...]
    sentence: str | None = None

    question_type = "fill_in_blank"

    def public_options(self) -> dict[str, Any] | None:
        if self.sentence is None:
            return None
        return {"sentence": self.sentence}


@dataclass(frozen=True, slots=True)
class MatchingPayload:
    """Canonical pairs in authoring order. Empty when the stored answer was unreadable."""

    pairs: tuple[tuple[str, str], ...]

    question_type = "matching"

    def public_options(self) -> dict[str, list[str]]:
        # Right-hand items are sorted so their position does not give the pairing away.
        return {
            "left": [left for left, _ in self.pairs],
            "right": sorted(right for _, right in self.pairs),
        }


@dataclass(frozen=True, slots=True)
class OrderingPayload:
    items: tuple[str, ...]
    correct_order: tuple[int, ...]

    question_type = "ordering"

    def public_options(self) -> dict[str, list[str]]:
        return {"items": list(self.items)}


QuestionPayload = Union[
    McqPayload,
    TrueFalsePayload,
    ShortAnswerPayload,
    FillInBlankPayload,
    MatchingPayload,
    OrderingPayload,
]


@dataclass(frozen=True, slots=True)
class LiveQuestion:
    """Immutable question snapshot taken when a session starts."""

    id: str
    question_text: str
    marks: int
    payload: QuestionPayload
    difficulty: str = "medium"

    @property
    def question_type(self) -> str:
        return self.payload.question_type

    def canonical_answer_text(self) -> str:
        """Human-readable canonical answer used in feedback strings."""
        payload = self.payload
        if isinstance(payload, FillInBlankPayload):
            return ", ".join(payload.acceptable)
        if isinstance(payload, MatchingPayload):
            return ", ".join(f"{left} -> {right}" for left, right in payload.pairs)
        if isinstance(payload, OrderingPayload):
            return ", ".join(str(index) for index in payload.correct_order)
        return payload.correct_answer


# --- Scoring ---


@dataclass(frozen=True, slots=True)
class ScoreResult:
    is_correct: bool
    marks_awarded: int
    feedback: str


@dataclass(slots=True)
class SubmittedAnswer:
    """Answer to one question in an asynchronous (non-live) submission."""

    question_id: str
    answer: Any


# --- Live session state ---


@dataclass(frozen=True, slots=True)
class AnswerRecord:
    question_index: int
    raw_answer: str
    is_correct: bool
    elapsed_seconds: float


@dataclass(slots=True)
class Participant:
    """A student who joined a live session."""

    user_id: str
    name: str
    joined_at: datetime
    score: int = 0
    answers: list[AnswerRecord] = field(default_factory=list)

    def has_answered(self, question_index: int) -> bool:
        return any(record.question_index == question_index for record in self.answers)


@dataclass(frozen=True, slots=True)
class LeaderboardRow:
    rank: int
    user_id: str
    name: str
    score: int


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Read-only view of a session returned by every state machine entry point."""

    join_code: str
    status: LiveStatus
    question_index: int
    total_questions: int
    participant_count: int
    leaderboard: list[LeaderboardRow]


@dataclass(frozen=True, slots=True)
class AnswerOutcome:
    record: AnswerRecord
    score: int


@dataclass(frozen=True, slots=True)
class LiveSessionInfo:
    """Returned to the host after a session has been created."""

    join_code: str
    quiz_title: str
    question_count: int
    time_per_question: int


@dataclass(slots=True)
class GradedSubmission:
    attempt: AttemptRecord
    results: list[AnswerResultRecord]
    passed: bool
