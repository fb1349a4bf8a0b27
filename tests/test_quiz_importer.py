from __future__ import annotations

import json
from pathlib import Path

import pytest

from live_quiz.core.question_parser import build_live_questions
from live_quiz.core.quiz_importer import QuizImportError, load_quiz_from_file, parse_quiz_text

SAMPLE_QUIZ = Path(__file__).resolve().parent.parent / "live_quiz" / "data" / "sample_quiz.txt"


def test_sample_quiz_loads_every_question_type():
    imported = load_quiz_from_file(SAMPLE_QUIZ)

    assert imported.quiz.id == "fractions-warmup"
    assert imported.quiz.title == "Fractions warm-up"
    assert imported.quiz.status == "published"
    assert imported.quiz.time_limit_minutes == 5
    assert imported.quiz.pass_percentage == 50
    assert [q.question_type for q in imported.questions] == [
        "mcq",
        "true_false",
        "fill_in_blank",
        "matching",
        "ordering",
    ]

    mcq, true_false, blank, matching, ordering = imported.questions
    assert mcq.correct_answer == "1/2"
    assert mcq.difficulty == "easy"
    assert true_false.correct_answer == "True"
    assert blank.options == {"acceptable": ["numerator", "the numerator"]}
    assert json.loads(matching.correct_answer)[0] == {"left": "1/4", "right": "0.25"}
    assert matching.marks == 3
    assert json.loads(ordering.correct_answer) == [1, 2, 0]


def test_imported_questions_build_live_snapshots():
    imported = load_quiz_from_file(SAMPLE_QUIZ)
    questions = build_live_questions(imported.questions)
    assert [q.id for q in questions] == [f"fractions-warmup-q{i}" for i in range(1, 6)]
    assert questions[3].payload.public_options()["left"] == ["1/4", "1/2", "3/4"]


def test_quiz_without_header_uses_default_id():
    imported = parse_quiz_text("Q: Capital of France?\nTYPE: short_answer\nANSWER: Paris", default_id="geo")
    assert imported.quiz.id == "geo"
    assert imported.quiz.status == "published"
    assert imported.questions[0].correct_answer == "Paris"


def test_multiline_question_text_is_kept():
    imported = parse_quiz_text("Q: First line\nsecond line\nOPTION: a\nOPTION: b\nANSWER: a")
    assert imported.questions[0].question_text == "First line\nsecond line"


@pytest.mark.parametrize(
    "text",
    [
        "",
        "QUIZ: Only a header",
        "Q: Missing answer\nOPTION: a\nOPTION: b",
        "Q: Bad letter\nOPTION: a\nOPTION: b\nANSWER: D",
        "Q: Truth\nTYPE: true_false\nANSWER: maybe",
        "Q: Pairs\nTYPE: matching\nPAIR: left only",
        "Q: Order\nTYPE: ordering\nITEM: a\nITEM: b\nANSWER: 0, 0",
        "Q: Unknown\nTYPE: essay\nANSWER: x",
        "stray text",
    ],
)
def test_invalid_quiz_text_raises(text):
    with pytest.raises(QuizImportError):
        parse_quiz_text(text)
