"""Pure scoring of a submitted answer against a question's canonical answer.

The same scorer backs live sessions and asynchronous submissions. Live
sessions only look at ``is_correct`` and award full marks or nothing;
asynchronous grading keeps the partial marks computed here.
"""

from __future__ import annotations

import json
import math
from typing import Any, Callable

from live_quiz.constants.quiz_constants import SHORT_ANSWER_TOKEN_MIN_LENGTH
from live_quiz.core.errors import MalformedAnswerPayload
from live_quiz.core.models import (
    FillInBlankPayload,
    LiveQuestion,
    MatchingPayload,
    McqPayload,
    OrderingPayload,
    ScoreResult,
    ShortAnswerPayload,
    TrueFalsePayload,
)
from live_quiz.core.question_parser import parse_index_sequence, parse_pairs


def score_answer(question: LiveQuestion, raw_answer: Any) -> ScoreResult:
    """Score ``raw_answer`` for ``question``. Never raises on malformed input."""
    scorer = _SCORERS.get(type(question.payload), _score_short_answer)
    try:
        return scorer(question, raw_answer)
    except MalformedAnswerPayload:
        return ScoreResult(
            is_correct=False,
            marks_awarded=0,
            feedback=f"Invalid answer format for {question.question_type} question.",
        )


def answer_text(raw_answer: Any) -> str:
    """Text form of a submitted answer, as stored with the answer record."""
    if raw_answer is None:
        return ""
    if isinstance(raw_answer, str):
        return raw_answer
    return json.dumps(raw_answer)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _normalize(text: str) -> str:
    return text.strip().lower()


def _require_text(raw_answer: Any) -> str:
    if raw_answer is None:
        return ""
    if not isinstance(raw_answer, str):
        raise MalformedAnswerPayload("Expected a text answer.")
    return raw_answer


def _full_or_nothing(question: LiveQuestion, is_correct: bool, wrong_feedback: str) -> ScoreResult:
    if is_correct:
        return ScoreResult(is_correct=True, marks_awarded=question.marks, feedback="Correct!")
    return ScoreResult(is_correct=False, marks_awarded=0, feedback=wrong_feedback)


def _score_choice(question: LiveQuestion, raw_answer: Any) -> ScoreResult:
    submitted = _normalize(_require_text(raw_answer))
    canonical = question.payload.correct_answer
    return _full_or_nothing(
        question,
        submitted == _normalize(canonical),
        f"Incorrect. The correct answer is: {canonical}",
    )


def _score_fill_in_blank(question: LiveQuestion, raw_answer: Any) -> ScoreResult:
    payload: FillInBlankPayload = question.payload
    acceptable = [_normalize(option) for option in payload.acceptable]
    submitted = _normalize(_require_text(raw_answer))
    return _full_or_nothing(
        question,
        submitted in acceptable,
        f"Incorrect. Acceptable answers: {', '.join(acceptable)}",
    )


def _score_matching(question: LiveQuestion, raw_answer: Any) -> ScoreResult:
    payload: MatchingPayload = question.payload
    if not payload.pairs:
        raise MalformedAnswerPayload("Question has no readable canonical pairs.")
    try:
        submitted = parse_pairs(raw_answer)
    except ValueError as exc:
        raise MalformedAnswerPayload(str(exc)) from exc

    submitted_keys = {(_normalize(left), _normalize(right)) for left, right in submitted}
    matched = sum(
        1
        for left, right in payload.pairs
        if (_normalize(left), _normalize(right)) in submitted_keys
    )
    total = len(payload.pairs)
    is_correct = matched == total
    marks = round_half_up(question.marks * matched / total)
    feedback = "Correct! All pairs matched." if is_correct else f"{matched}/{total} pairs correct."
    return ScoreResult(is_correct=is_correct, marks_awarded=marks, feedback=feedback)


def _score_ordering(question: LiveQuestion, raw_answer: Any) -> ScoreResult:
    payload: OrderingPayload = question.payload
    if not payload.correct_order:
        raise MalformedAnswerPayload("Question has no readable canonical order.")
    try:
        submitted = parse_index_sequence(raw_answer)
    except ValueError as exc:
        raise MalformedAnswerPayload(str(exc)) from exc
    if submitted == payload.correct_order:
        return ScoreResult(is_correct=True, marks_awarded=question.marks, feedback="Correct order!")
    return ScoreResult(is_correct=False, marks_awarded=0, feedback="Incorrect order.")


def _score_short_answer(question: LiveQuestion, raw_answer: Any) -> ScoreResult:
    canonical = question.payload.correct_answer
    submitted = _normalize(_require_text(raw_answer))
    expected = _normalize(canonical)
    if submitted == expected:
        return ScoreResult(is_correct=True, marks_awarded=question.marks, feedback="Correct!")

    tokens = [token for token in expected.split() if len(token) >= SHORT_ANSWER_TOKEN_MIN_LENGTH]
    if submitted and any(token in submitted for token in tokens):
        return ScoreResult(
            is_correct=False,
            marks_awarded=math.ceil(question.marks * 0.5),
            feedback=f"Partial credit. Expected: {canonical}",
        )
    return ScoreResult(is_correct=False, marks_awarded=0, feedback=f"Incorrect. Expected: {canonical}")


_SCORERS: dict[type, Callable[[LiveQuestion, Any], ScoreResult]] = {
    McqPayload: _score_choice,
    TrueFalsePayload: _score_choice,
    FillInBlankPayload: _score_fill_in_blank,
    MatchingPayload: _score_matching,
    OrderingPayload: _score_ordering,
    ShortAnswerPayload: _score_short_answer,
}
