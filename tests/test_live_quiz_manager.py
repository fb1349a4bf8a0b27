from __future__ import annotations

import json

import pytest

from conftest import RecordingConnection
from live_quiz.core.errors import QuizNotFound, QuizNotLive, SessionNotFound
from live_quiz.core.live_quiz_manager import question_time_budget
from live_quiz.core.models import LiveStatus, QuestionRecord, QuizRecord, SubmittedAnswer

HOST = "teacher-1"


def test_two_question_quiz_end_to_end(manager, repository, clock):
    info = manager.start_live("quiz-1", HOST)
    assert info.question_count == 2
    assert info.time_per_question == 60
    code = info.join_code
    viewer = RecordingConnection()
    manager.subscribe(code, viewer)

    manager.join(code, "S1", "Student One")
    manager.advance(code, HOST)
    first = manager.submit_answer(code, "S1", "b")
    assert first.record.is_correct
    assert first.score == 1

    manager.advance(code, HOST)
    second = manager.submit_answer(code, "S1", "False")
    assert not second.record.is_correct
    assert second.score == 1

    final = manager.advance(code, HOST)
    assert final.status is LiveStatus.ENDED
    assert [(row.user_id, row.score) for row in final.leaderboard] == [("S1", 1)]

    (attempt,) = repository.list_attempts("quiz-1")
    assert attempt.student_id == "S1"
    assert attempt.score == 1
    assert attempt.total_marks == 2
    assert attempt.percentage == 50
    assert len(repository.list_answer_results(attempt.id)) == 2

    # The final leaderboard reached viewers before anything was persisted.
    assert viewer.events()[-1] == "quiz_ended"


def test_ended_session_is_removed_after_grace(manager, clock):
    code = manager.start_live("quiz-1", HOST).join_code
    manager.end(code, HOST)
    assert manager.status(code).status is LiveStatus.ENDED

    clock.advance(61)
    manager.registry.sweep()

    with pytest.raises(SessionNotFound):
        manager.status(code)


def test_start_live_requires_published_quiz_with_questions(manager, repository):
    with pytest.raises(QuizNotFound):
        manager.start_live("missing", HOST)

    repository.set_quiz_status("quiz-1", "draft")
    with pytest.raises(QuizNotLive):
        manager.start_live("quiz-1", HOST)

    repository.add_quiz(QuizRecord(id="empty", title="Empty", status="published"), [])
    with pytest.raises(QuizNotLive):
        manager.start_live("empty", HOST)


def test_session_questions_are_a_snapshot(manager, repository):
    code = manager.start_live("quiz-1", HOST).join_code
    repository.add_quiz(
        QuizRecord(id="quiz-1", title="Changed", status="published"),
        [QuestionRecord(id="new", quiz_id="quiz-1", question_text="New", correct_answer="x", question_type="short_answer")],
    )
    session = manager.get_session(code)
    assert [q.id for q in session.questions] == ["q1", "q2"]


def test_question_time_budget_defaults_to_thirty_minutes():
    assert question_time_budget(None, 3) == 600
    assert question_time_budget(2, 4) == 30


def test_unsubscribe_after_removal_is_harmless(manager):
    code = manager.start_live("quiz-1", HOST).join_code
    connection = RecordingConnection()
    manager.subscribe(code, connection)
    manager.registry.remove(code)
    manager.unsubscribe(code, connection)
    assert connection.closed


def test_unsubscribe_tolerates_removal_between_lookups(manager, monkeypatch):
    code = manager.start_live("quiz-1", HOST).join_code
    connection = RecordingConnection()
    manager.subscribe(code, connection)
    manager.registry.remove(code)
    # The registry still reports the code, as if the sweeper removed it mid-call.
    monkeypatch.setattr(type(manager.registry), "__contains__", lambda self, join_code: True)

    manager.unsubscribe(code, connection)


def test_idle_live_session_results_are_stored(manager, repository, clock):
    code = manager.start_live("quiz-1", HOST).join_code
    viewer = RecordingConnection()
    manager.subscribe(code, viewer)
    manager.join(code, "S1", "Student One")
    manager.advance(code, HOST)
    manager.submit_answer(code, "S1", "B")

    clock.advance(2 * 60 * 60)

    assert manager.registry.sweep() == [code]
    (attempt,) = repository.list_attempts("quiz-1")
    assert attempt.student_id == "S1"
    assert attempt.score == 1
    assert "quiz_ended" in viewer.events()
    assert code not in manager.registry


def test_submit_attempt_grades_with_partial_credit(manager, repository):
    pairs = [{"left": "H2O", "right": "water"}, {"left": "NaCl", "right": "salt"}, {"left": "O2", "right": "oxygen"}]
    repository.add_quiz(
        QuizRecord(id="chem", title="Chemistry", status="published", pass_percentage=60),
        [
            QuestionRecord(
                id="m1",
                quiz_id="chem",
                question_text="Match",
                question_type="matching",
                options={"pairs": pairs},
                correct_answer=json.dumps(pairs),
                marks=3,
            ),
            QuestionRecord(
                id="s1",
                quiz_id="chem",
                question_text="What do plants need?",
                question_type="short_answer",
                correct_answer="sunlight and water",
                marks=2,
                order_index=1,
            ),
        ],
    )

    graded = manager.submit_attempt(
        "chem",
        "student-9",
        [
            SubmittedAnswer(question_id="m1", answer=pairs[:2]),
            SubmittedAnswer(question_id="s1", answer="mostly sunlight"),
            SubmittedAnswer(question_id="ghost", answer="ignored"),
        ],
    )

    assert graded.attempt.score == 3
    assert graded.attempt.total_marks == 5
    assert graded.attempt.percentage == 60.0
    assert graded.passed
    assert [r.marks_awarded for r in graded.results] == [2, 1]
    assert repository.list_attempts("chem") == [graded.attempt]
    assert len(repository.list_answer_results(graded.attempt.id)) == 2
