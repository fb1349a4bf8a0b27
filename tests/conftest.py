"""Shared fixtures for the live quiz test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from live_quiz.core.live_quiz_manager import LiveQuizManager
from live_quiz.core.models import QuestionRecord, QuizRecord
from live_quiz.core.services.quiz_repository import InMemoryQuizRepository
from live_quiz.core.services.session_registry import SessionRegistry


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingConnection:
    """Push connection that keeps every frame it was sent."""

    def __init__(self, fail: bool = False) -> None:
        self.frames: list[str] = []
        self.closed = False
        self.fail = fail

    def write(self, frame: str) -> None:
        if self.fail or self.closed:
            raise ConnectionError("client went away")
        self.frames.append(frame)

    def close(self) -> None:
        self.closed = True

    def events(self) -> list[str]:
        return [frame.split("\n", 1)[0].removeprefix("event: ") for frame in self.frames]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryQuizRepository:
    repo = InMemoryQuizRepository()
    repo.add_quiz(
        QuizRecord(id="quiz-1", title="Basics", status="published", time_limit_minutes=2, teacher_id="teacher-1"),
        [
            QuestionRecord(
                id="q1",
                quiz_id="quiz-1",
                question_text="Pick **B**",
                question_type="mcq",
                options=["A", "B", "C", "D"],
                correct_answer="B",
                marks=1,
                order_index=1,
            ),
            QuestionRecord(
                id="q2",
                quiz_id="quiz-1",
                question_text="The sky is blue.",
                question_type="true_false",
                options=["True", "False"],
                correct_answer="True",
                marks=1,
                order_index=2,
            ),
        ],
    )
    return repo


@pytest.fixture
def registry(clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(clock=clock)


@pytest.fixture
def manager(repository: InMemoryQuizRepository, registry: SessionRegistry, clock: FakeClock) -> LiveQuizManager:
    return LiveQuizManager(repository, registry=registry, clock=clock)
