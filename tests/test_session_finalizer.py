from __future__ import annotations

import logging

from live_quiz.core.models import LiveQuestion, McqPayload
from live_quiz.core.services.live_session import LiveSession
from live_quiz.core.services.quiz_repository import InMemoryQuizRepository
from live_quiz.core.services.session_finalizer import SessionFinalizer, percentage_of

HOST = "teacher-1"
QUESTIONS = (
    LiveQuestion(id="q1", question_text="1", marks=2, payload=McqPayload(options=("a", "b"), correct_answer="a")),
    LiveQuestion(id="q2", question_text="2", marks=1, payload=McqPayload(options=("a", "b"), correct_answer="b")),
)


class FlakyRepository(InMemoryQuizRepository):
    """Fails to store attempts for one student."""

    def __init__(self, failing_student: str) -> None:
        super().__init__()
        self.failing_student = failing_student

    def insert_attempt(self, record):
        if record.student_id == self.failing_student:
            raise ConnectionError("database unavailable")
        super().insert_attempt(record)


def _played_session(clock) -> LiveSession:
    session = LiveSession("123456", "quiz-1", HOST, QUESTIONS, 30, clock=clock)
    session.join("s1", "Sam")
    session.join("s2", "Ada")
    session.advance(HOST)
    session.submit_answer("s1", "a")
    session.submit_answer("s2", "b")
    session.advance(HOST)
    session.submit_answer("s1", "a")
    session.end(HOST)
    return session


def test_finalize_persists_attempts_and_answer_results(clock):
    repository = InMemoryQuizRepository()
    ids = iter(["attempt-1", "attempt-2"])
    finalizer = SessionFinalizer(repository, id_factory=lambda: next(ids), clock=clock)

    report = finalizer.finalize(_played_session(clock))

    assert report.persisted == ["s1", "s2"]
    assert report.failed == []
    attempts = {a.student_id: a for a in repository.list_attempts("quiz-1")}
    assert attempts["s1"].score == 2
    assert attempts["s1"].total_marks == 3
    assert attempts["s1"].percentage == 66.67
    assert attempts["s1"].status == "evaluated"
    assert attempts["s2"].score == 0

    results = repository.list_answer_results("attempt-1")
    assert [(r.question_id, r.is_correct, r.marks_awarded) for r in results] == [
        ("q1", True, 2),
        ("q2", False, 0),
    ]
    assert results[1].feedback == "Incorrect. The correct answer is: b"
    assert repository.list_answer_results("attempt-2")[0].answer_text == "b"


def test_finalize_continues_after_a_participant_fails(clock, caplog):
    repository = FlakyRepository(failing_student="s1")
    finalizer = SessionFinalizer(repository, clock=clock)

    with caplog.at_level(logging.ERROR):
        report = finalizer.finalize(_played_session(clock))

    assert report.failed == ["s1"]
    assert report.persisted == ["s2"]
    assert [a.student_id for a in repository.list_attempts()] == ["s2"]
    assert "Could not persist live results for s1" in caplog.text


def test_percentage_handles_zero_total():
    assert percentage_of(5, 0) == 0.0
    assert percentage_of(1, 2) == 50.0
