"""Import quizzes from a human-friendly text file to seed quiz storage.

File format (blocks separated by blank lines or '---'). An optional first
block describes the quiz itself:

    QUIZ: Fractions warm-up
    ID: fractions-1          (optional, defaults to the file name)
    STATUS: published        (optional, defaults to published)
    TIMELIMIT: 10            (optional, minutes for the whole quiz)
    PASS: 40                 (optional, pass percentage)

Every other block is one question:

    Q: Question text (markdown + LaTeX). Following lines until the next
       marker belong to the question.
    TYPE: mcq | true_false | short_answer | fill_in_blank | matching | ordering
    OPTION: an option             (mcq, repeat per option)
    ACCEPT: an accepted answer    (fill_in_blank, repeat)
    PAIR: left => right           (matching, repeat)
    ITEM: an item                 (ordering, repeat, listed in display order)
    ANSWER: canonical answer      (mcq: option text or letter; ordering: "2, 0, 1")
    MARKS: 2                      (optional, default 1)
    DIFFICULTY: easy              (optional, default medium)
"""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path

from live_quiz.constants.quiz_constants import DEFAULT_PASS_PERCENTAGE, PUBLISHED_STATUS
from live_quiz.core.models import QuestionRecord, QuizRecord


class QuizImportError(Exception):
    """Raised when a quiz definition cannot be parsed."""


@dataclass(slots=True)
class ImportedQuiz:
    """Container for imported quiz metadata and questions."""

    source_path: Path
    quiz: QuizRecord
    questions: list[QuestionRecord]


_LIST_MARKERS = ("OPTION", "ACCEPT", "PAIR", "ITEM")
_SINGLE_MARKERS = ("TYPE", "ANSWER", "MARKS", "DIFFICULTY")
_HEADER_MARKERS = ("QUIZ", "ID", "STATUS", "TIMELIMIT", "PASS")


def load_quiz_from_file(file_path: Path) -> ImportedQuiz:
    text = file_path.read_text(encoding="utf-8")
    return parse_quiz_text(text, default_id=file_path.stem, source_path=file_path)


def parse_quiz_text(text: str, default_id: str = "quiz", source_path: Path | None = None) -> ImportedQuiz:
    blocks = _split_blocks(text)
    if blocks and _marker_of(blocks[0].splitlines()[0]) == "QUIZ":
        quiz = _parse_header(blocks[0], default_id)
        blocks = blocks[1:]
    else:
        quiz = QuizRecord(id=default_id, title=default_id, status=PUBLISHED_STATUS)

    questions = [
        _parse_question(block, quiz.id, order_index=index)
        for index, block in enumerate(blocks, start=1)
    ]
    if not questions:
        raise QuizImportError("Quiz file did not contain any questions.")
    return ImportedQuiz(source_path=source_path or Path(f"{default_id}.txt"), quiz=quiz, questions=questions)


def _split_blocks(text: str) -> list[str]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped == "---" or not stripped:
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        current_block.append(raw_line)
    if current_block:
        blocks.append("\n".join(current_block).strip())
    return [block for block in blocks if block]


def _marker_of(line: str) -> str | None:
    head, sep, _ = line.strip().partition(":")
    if not sep:
        return None
    marker = head.strip().upper()
    if marker in ("Q", *_LIST_MARKERS, *_SINGLE_MARKERS, *_HEADER_MARKERS):
        return marker
    return None


def _value_of(line: str) -> str:
    return line.split(":", 1)[1].strip()


def _parse_header(block: str, default_id: str) -> QuizRecord:
    values: dict[str, str] = {}
    for line in block.splitlines():
        marker = _marker_of(line)
        if marker not in _HEADER_MARKERS:
            raise QuizImportError(f"Unexpected line in quiz header: '{line.strip()}'.")
        values[marker] = _value_of(line)

    title = values.get("QUIZ", "").strip()
    if not title:
        raise QuizImportError("QUIZ must include a title.")
    time_limit = _positive_int(values["TIMELIMIT"], "TIMELIMIT") if "TIMELIMIT" in values else None
    pass_percentage = (
        _positive_int(values["PASS"], "PASS") if "PASS" in values else DEFAULT_PASS_PERCENTAGE
    )
    return QuizRecord(
        id=values.get("ID") or default_id,
        title=title,
        status=(values.get("STATUS") or PUBLISHED_STATUS).lower(),
        time_limit_minutes=time_limit,
        pass_percentage=pass_percentage,
    )


def _parse_question(block: str, quiz_id: str, order_index: int) -> QuestionRecord:
    question_lines: list[str] = []
    lists: dict[str, list[str]] = {marker: [] for marker in _LIST_MARKERS}
    singles: dict[str, str] = {}
    in_question = False

    for raw_line in block.splitlines():
        line = raw_line.strip()
        marker = _marker_of(line)
        if marker == "Q":
            question_lines = [_value_of(line)]
            in_question = True
        elif marker in _LIST_MARKERS:
            lists[marker].append(_value_of(line))
            in_question = False
        elif marker in _SINGLE_MARKERS:
            singles[marker] = _value_of(line)
            in_question = False
        elif in_question:
            question_lines.append(line)
        else:
            raise QuizImportError(f"Encountered text outside of a known section: '{line}'.")

    question_text = "\n".join(question_lines).strip()
    if not question_text:
        raise QuizImportError("Question text missing (Q: ...)")

    question_type = singles.get("TYPE", "mcq").strip().lower()
    marks = _positive_int(singles["MARKS"], "MARKS") if "MARKS" in singles else 1
    options, correct_answer = _build_answer(question_type, lists, singles.get("ANSWER", "").strip())

    return QuestionRecord(
        id=f"{quiz_id}-q{order_index}",
        quiz_id=quiz_id,
        question_text=question_text,
        question_type=question_type,
        options=options,
        correct_answer=correct_answer,
        marks=marks,
        difficulty=singles.get("DIFFICULTY", "medium").strip().lower() or "medium",
        order_index=order_index,
    )


def _build_answer(question_type: str, lists: dict[str, list[str]], answer: str) -> tuple[object, str]:
    if question_type == "mcq":
        options = lists["OPTION"]
        if len(options) < 2:
            raise QuizImportError("MCQ questions need at least two OPTION lines.")
        if len(answer) == 1 and answer.isalpha() and answer not in options:
            position = ord(answer.upper()) - ord("A")
            if not 0 <= position < len(options):
                raise QuizImportError(f"ANSWER letter {answer} does not match an option.")
            answer = options[position]
        if answer not in options:
            raise QuizImportError("ANSWER must be one of the OPTION values.")
        return options, answer

    if question_type == "true_false":
        normalized = answer.lower()
        if normalized not in ("true", "false"):
            raise QuizImportError("ANSWER must be True or False.")
        return ["True", "False"], normalized.capitalize()

    if question_type == "fill_in_blank":
        acceptable = lists["ACCEPT"] or ([answer] if answer else [])
        if not acceptable:
            raise QuizImportError("Fill-in-the-blank questions need ANSWER or ACCEPT lines.")
        return {"acceptable": acceptable}, answer or acceptable[0]

    if question_type == "matching":
        pairs = [_parse_pair(raw) for raw in lists["PAIR"]]
        if not pairs:
            raise QuizImportError("Matching questions need at least one PAIR line.")
        return {"pairs": pairs}, json.dumps(pairs)

    if question_type == "ordering":
        items = lists["ITEM"]
        if len(items) < 2:
            raise QuizImportError("Ordering questions need at least two ITEM lines.")
        order = _parse_order(answer, len(items)) if answer else list(range(len(items)))
        return {"items": items, "correct_order": order}, json.dumps(order)

    if question_type == "short_answer":
        if not answer:
            raise QuizImportError("Short answer questions need an ANSWER line.")
        return None, answer

    raise QuizImportError(f"Unknown question TYPE: '{question_type}'.")


def _parse_pair(raw: str) -> dict[str, str]:
    left, sep, right = raw.partition("=>")
    if not sep or not left.strip() or not right.strip():
        raise QuizImportError(f"PAIR must look like 'left => right', got '{raw}'.")
    return {"left": left.strip(), "right": right.strip()}


def _parse_order(raw: str, item_count: int) -> list[int]:
    try:
        order = [int(part) for part in raw.split(",")]
    except ValueError as exc:
        raise QuizImportError("Ordering ANSWER must be comma separated indices.") from exc
    if sorted(order) != list(range(item_count)):
        raise QuizImportError("Ordering ANSWER must be a permutation of the ITEM indices.")
    return order


def _positive_int(raw_value: str, name: str) -> int:
    try:
        parsed = int(raw_value)
    except ValueError as exc:
        raise QuizImportError(f"{name} must be an integer.") from exc
    if parsed <= 0:
        raise QuizImportError(f"{name} must be a positive integer.")
    return parsed
