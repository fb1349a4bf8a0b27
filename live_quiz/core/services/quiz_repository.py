"""Storage collaborator for quizzes, questions and evaluated attempts."""

from __future__ import annotations

from threading import Lock
from typing import Protocol

from live_quiz.core.models import AnswerResultRecord, AttemptRecord, QuestionRecord, QuizRecord

_QUESTION_TYPES = {"mcq", "true_false", "short_answer", "fill_in_blank", "matching", "ordering"}


class QuizStorage(Protocol):
    """Interface the live session engine needs from persistent storage.

    Each call is assumed atomic on its own; callers never need a transaction
    spanning several calls.
    """

    def get_quiz(self, quiz_id: str) -> QuizRecord | None: ...

    def get_quiz_questions(self, quiz_id: str) -> list[QuestionRecord]: ...

    def insert_attempt(self, record: AttemptRecord) -> None: ...

    def insert_answer_result(self, record: AnswerResultRecord) -> None: ...


class InMemoryQuizRepository:
    """Thread-safe in-process implementation of ``QuizStorage``."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._quizzes: dict[str, QuizRecord] = {}
        self._questions: dict[str, list[QuestionRecord]] = {}
        self._attempts: list[AttemptRecord] = []
        self._answer_results: list[AnswerResultRecord] = []

    # --- Authoring ---

    def add_quiz(self, quiz: QuizRecord, questions: list[QuestionRecord]) -> None:
        """Store (or replace) a quiz with its questions after validating them."""
        prepared = [self._prepare_question(quiz.id, question) for question in questions]
        with self._lock:
            self._quizzes[quiz.id] = quiz
            self._questions[quiz.id] = prepared

    def set_quiz_status(self, quiz_id: str, status: str) -> None:
        with self._lock:
            quiz = self._quizzes.get(quiz_id)
            if quiz is None:
                raise KeyError(quiz_id)
            quiz.status = status

    # --- QuizStorage ---

    def get_quiz(self, quiz_id: str) -> QuizRecord | None:
        with self._lock:
            return self._quizzes.get(quiz_id)

    def get_quiz_questions(self, quiz_id: str) -> list[QuestionRecord]:
        with self._lock:
            questions = list(self._questions.get(quiz_id, []))
        return sorted(questions, key=lambda question: question.order_index)

    def insert_attempt(self, record: AttemptRecord) -> None:
        with self._lock:
            if any(existing.id == record.id for existing in self._attempts):
                raise ValueError(f"Attempt {record.id} already exists.")
            self._attempts.append(record)

    def insert_answer_result(self, record: AnswerResultRecord) -> None:
        with self._lock:
            if not any(attempt.id == record.attempt_id for attempt in self._attempts):
                raise ValueError(f"Attempt {record.attempt_id} does not exist.")
            self._answer_results.append(record)

    # --- Queries ---

    def list_attempts(self, quiz_id: str | None = None) -> list[AttemptRecord]:
        with self._lock:
            return [a for a in self._attempts if quiz_id is None or a.quiz_id == quiz_id]

    def list_answer_results(self, attempt_id: str) -> list[AnswerResultRecord]:
        with self._lock:
            return [r for r in self._answer_results if r.attempt_id == attempt_id]

    @staticmethod
    def _prepare_question(quiz_id: str, question: QuestionRecord) -> QuestionRecord:
        cleaned_text = question.question_text.strip()
        if not cleaned_text:
            raise ValueError("Question text must not be empty.")
        question_type = question.question_type.strip().lower()
        if question_type not in _QUESTION_TYPES:
            raise ValueError(f"Unsupported question type: {question.question_type!r}.")
        if question.marks < 0:
            raise ValueError("Marks must not be negative.")
        return QuestionRecord(
            id=question.id,
            quiz_id=quiz_id,
            question_text=cleaned_text,
            question_type=question_type,
            options=question.options,
            correct_answer=question.correct_answer,
            marks=question.marks,
            difficulty=question.difficulty,
            order_index=question.order_index,
        )
