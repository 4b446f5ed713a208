"""Read-only admin views over quiz attempts."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.auth import require_role
from app.errors import NotFound
from app.models import User
from app.schemas import QuizAttemptRow
from app.crud import get_attempts_for_quiz, get_quiz_with_questions

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/quizzes/{quiz_id}/results", response_model=list[QuizAttemptRow])
async def admin_quiz_results(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    """List every attempt on a quiz with the student's details, newest first."""
    quiz = await get_quiz_with_questions(db, quiz_id)
    if not quiz:
        raise NotFound("Quiz not found")
    attempts = await get_attempts_for_quiz(db, quiz_id)
    return [
        QuizAttemptRow(
            id=a.id,
            student_id=a.student_id,
            student_name=a.student.name,
            student_email=a.student.email,
            start_time=a.start_time,
            end_time=a.end_time,
            score=a.score,
            submit_reason=a.submit_reason,
        )
        for a in attempts
    ]
