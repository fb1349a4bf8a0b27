"""Convert stored question rows into typed, immutable live question snapshots.

Stored rows keep per-type data in a loosely shaped ``options`` column and a
string ``correct_answer``. Parsing happens once, when a session starts or an
attempt is graded, so the scorer only ever sees well-typed payloads. An
unreadable canonical answer produces an empty payload that scores every
submission as incorrect.
"""

from __future__ import annotations

import json
from typing import Any

from live_quiz.core.models import (
    FillInBlankPayload,
    LiveQuestion,
    MatchingPayload,
    McqPayload,
    OrderingPayload,
    QuestionPayload,
    QuestionRecord,
    ShortAnswerPayload,
    TrueFalsePayload,
)


def build_live_question(record: QuestionRecord) -> LiveQuestion:
    return LiveQuestion(
        id=record.id,
        question_text=record.question_text,
        marks=max(0, int(record.marks)),
        payload=build_payload(record),
        difficulty=record.difficulty,
    )


def build_live_questions(records: list[QuestionRecord]) -> tuple[LiveQuestion, ...]:
    ordered = sorted(records, key=lambda record: record.order_index)
    return tuple(build_live_question(record) for record in ordered)


def build_payload(record: QuestionRecord) -> QuestionPayload:
    question_type = (record.question_type or "").strip().lower()
    options = record.options
    correct = record.correct_answer or ""

    if question_type == "mcq":
        return McqPayload(options=_string_tuple(options), correct_answer=correct)
    if question_type == "true_false":
        return TrueFalsePayload(
            correct_answer=correct,
            options=_string_tuple(options) or ("True", "False"),
        )
    if question_type == "fill_in_blank":
        return _fill_in_blank_payload(options, correct)
    if question_type == "matching":
        return MatchingPayload(pairs=_matching_pairs(options, correct))
    if question_type == "ordering":
        return _ordering_payload(options, correct)
    # Anything else is graded as free text.
    return ShortAnswerPayload(correct_answer=correct)


def parse_pairs(value: Any) -> tuple[tuple[str, str], ...]:
    """Parse a list of ``{"left": ..., "right": ...}`` objects (or its JSON text).

    Raises ``ValueError`` when the value does not have that shape.
    """
    if isinstance(value, str):
        value = json.loads(value)
    if not isinstance(value, list):
        raise ValueError("Pairs must be a list.")
    pairs: list[tuple[str, str]] = []
    for item in value:
        if not isinstance(item, dict):
            raise ValueError("Each pair must be an object with left and right.")
        left, right = item.get("left"), item.get("right")
        if not isinstance(left, str) or not isinstance(right, str):
            raise ValueError("Pair sides must be strings.")
        pairs.append((left, right))
    return tuple(pairs)


def parse_index_sequence(value: Any) -> tuple[int, ...]:
    """Parse a list of integer indices (or its JSON text).

    Raises ``ValueError`` when the value does not have that shape.
    """
    if isinstance(value, str):
        value = json.loads(value)
    if not isinstance(value, list):
        raise ValueError("Order must be a list.")
    if any(isinstance(item, bool) or not isinstance(item, int) for item in value):
        raise ValueError("Order entries must be integers.")
    return tuple(value)


def _fill_in_blank_payload(options: Any, correct: str) -> FillInBlankPayload:
    sentence = None
    acceptable: tuple[str, ...] = ()
    if isinstance(options, dict):
        if isinstance(options.get("sentence"), str):
            sentence = options["sentence"]
        acceptable = _string_tuple(options.get("acceptable"))
    if not acceptable:
        acceptable = (correct,)
    return FillInBlankPayload(acceptable=acceptable, sentence=sentence)


def _matching_pairs(options: Any, correct: str) -> tuple[tuple[str, str], ...]:
    try:
        return parse_pairs(correct)
    except ValueError:
        pass
    if isinstance(options, dict):
        try:
            return parse_pairs(options.get("pairs"))
        except ValueError:
            return ()
    return ()


def _ordering_payload(options: Any, correct: str) -> OrderingPayload:
    items: tuple[str, ...] = ()
    fallback_order: Any = None
    if isinstance(options, dict):
        items = _string_tuple(options.get("items"))
        fallback_order = options.get("correct_order")
    try:
        order = parse_index_sequence(correct)
    except ValueError:
        try:
            order = parse_index_sequence(fallback_order)
        except ValueError:
            order = ()
    return OrderingPayload(items=items, correct_order=order)


def _string_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value)
