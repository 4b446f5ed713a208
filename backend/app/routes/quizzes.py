"""Routes for browsing quizzes and starting attempts."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.attempts import AttemptController
from app.database import get_session
from app.auth import require_role
from app.errors import NotFound
from app.models import Attempt, Quiz, User
from app.schemas import AttemptSummary, QuizListItem, QuizDetail, AttemptRead
from app.crud import (
    get_active_quizzes,
    get_latest_attempts_for_student,
    get_quiz_with_questions,
    get_settings,
)
from app.store import AttemptStore
from app.routes.attempts import attempt_read

router = APIRouter(prefix="/quizzes", tags=["quizzes"])


def quiz_status(attempt: Attempt | None) -> str:
    if attempt is None:
        return "not_started"
    if attempt.end_time is None:
        return "in_progress"
    return "completed"


def _list_item(quiz: Quiz, attempt: Attempt | None) -> dict:
    return dict(
        id=quiz.id,
        title=quiz.title,
        track=quiz.track.name if quiz.track else None,
        time_limit=quiz.time_limit,
        question_count=len(quiz.questions),
        status=quiz_status(attempt),
        latest_attempt=AttemptSummary.model_validate(attempt) if attempt else None,
    )


@router.get("/", response_model=list[QuizListItem])
async def list_quizzes(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("student", "admin")),
):
    """Active quizzes for the student's track with their latest attempt."""
    if current_user.role == "student":
        if current_user.track_id is None:
            return []
        quizzes = await get_active_quizzes(db, current_user.track_id)
    else:
        quizzes = await get_active_quizzes(db)
    latest = await get_latest_attempts_for_student(db, current_user.id)
    return [QuizListItem(**_list_item(q, latest.get(q.id))) for q in quizzes]


@router.get("/{quiz_id}", response_model=QuizDetail)
async def read_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("student", "admin")),
):
    """Instructions page data: time limit, question count and prior attempt."""
    quiz = await get_quiz_with_questions(db, quiz_id)
    if not quiz or not quiz.is_active:
        raise NotFound("Quiz not found")
    attempt = await AttemptStore(db).get_latest_attempt(quiz_id, current_user.id)
    settings = await get_settings(db)
    can_start = bool(quiz.questions) and (
        attempt is None or attempt.end_time is None or settings.allow_quiz_retake
    )
    return QuizDetail(**_list_item(quiz, attempt), can_start=can_start)


@router.post("/{quiz_id}/attempts", response_model=AttemptRead)
async def start_attempt(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("student")),
):
    """Start a new attempt, or resume the student's unfinished one."""
    settings = await get_settings(db)
    controller = AttemptController(
        AttemptStore(db), allow_retake=settings.allow_quiz_retake
    )
    await controller.start(quiz_id, current_user.id)
    return attempt_read(controller)
