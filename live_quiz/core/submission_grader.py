"""Grading of asynchronous (non-live) quiz submissions.

Unlike live sessions, partial credit from the scorer is kept here.
"""

from __future__ import annotations

from datetime import datetime

from live_quiz.core.answer_scorer import answer_text, score_answer
from live_quiz.core.models import (
    AnswerResultRecord,
    AttemptRecord,
    GradedSubmission,
    LiveQuestion,
    SubmittedAnswer,
)


def grade_submission(
    attempt_id: str,
    quiz_id: str,
    student_id: str,
    questions: tuple[LiveQuestion, ...],
    answers: list[SubmittedAnswer],
    submitted_at: datetime,
    pass_percentage: int,
) -> GradedSubmission:
    """Score every answer and build the attempt and its answer results.

    Answers for unknown question ids are ignored, and total marks only count
    the questions that were actually answered.
    """
    by_id = {question.id: question for question in questions}
    results: list[AnswerResultRecord] = []
    score = 0
    total_marks = 0

    for answer in answers:
        question = by_id.get(answer.question_id)
        if question is None:
            continue
        total_marks += question.marks
        result = score_answer(question, answer.answer)
        score += result.marks_awarded
        results.append(
            AnswerResultRecord(
                attempt_id=attempt_id,
                question_id=question.id,
                answer_text=answer_text(answer.answer),
                is_correct=result.is_correct,
                marks_awarded=result.marks_awarded,
                feedback=result.feedback,
            )
        )

    percentage = round(score / total_marks * 100, 2) if total_marks > 0 else 0.0
    attempt = AttemptRecord(
        id=attempt_id,
        quiz_id=quiz_id,
        student_id=student_id,
        score=score,
        total_marks=total_marks,
        percentage=percentage,
        submitted_at=submitted_at,
        status="evaluated",
    )
    return GradedSubmission(attempt=attempt, results=results, passed=percentage >= pass_percentage)
