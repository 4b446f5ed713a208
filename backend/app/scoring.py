"""Score calculation for submitted attempts."""

from dataclasses import dataclass
from typing import Iterable

from app.errors import InvalidQuiz
from app.models import Answer, Question


@dataclass(frozen=True)
class ScoreResult:
    score: int
    correct_count: int
    total_questions: int


def percentage(correct: int, total: int) -> int:
    """``round(100 * correct / total)`` with halves rounded up."""
    if total <= 0:
        raise InvalidQuiz("Quiz has no questions")
    return (200 * correct + total) // (2 * total)


def score_attempt(
    questions: Iterable[Question], answers: Iterable[Answer]
) -> ScoreResult:
    """Score recorded answers against the quiz's answer key.

    Every question of the quiz counts towards the total, so unanswered
    questions lower the score.  Answers for questions outside the quiz
    are ignored.
    """
    answer_key = {
        question.id: {opt.id for opt in question.options if opt.is_correct}
        for question in questions
    }
    selected = {answer.question_id: answer.option_id for answer in answers}
    correct = sum(
        1
        for question_id, correct_ids in answer_key.items()
        if selected.get(question_id) in correct_ids
    )
    total = len(answer_key)
    return ScoreResult(
        score=percentage(correct, total),
        correct_count=correct,
        total_questions=total,
    )
