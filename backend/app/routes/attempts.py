"""Routes for answering, navigating and submitting a quiz attempt.

Every request rebuilds an ``AttemptController`` from the stored attempt,
so an attempt whose time ran out is closed as a timeout on the first
request that sees it.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.attempts import AttemptController, SubmitReason
from app.database import get_session
from app.auth import get_current_user, require_role
from app.errors import AttemptNotInProgress
from app.models import Question, User
from app.schemas import (
    AttemptRead,
    AnswerSelect,
    AnswerSaved,
    SubmitRequest,
    AttemptResult,
    OptionRead,
    QuestionRead,
)
from app.scoring import score_attempt
from app.store import AttemptStore

router = APIRouter(prefix="/attempts", tags=["attempts"])


def question_read(question: Question) -> QuestionRead:
    return QuestionRead(
        id=question.id,
        text=question.text,
        options=[OptionRead(id=o.id, text=o.text) for o in question.options],
    )


def attempt_read(controller: AttemptController) -> AttemptRead:
    attempt = controller.attempt
    current = controller.current_question
    return AttemptRead(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        quiz_title=controller.quiz.title,
        state=controller.state.value,
        start_time=attempt.start_time,
        end_time=attempt.end_time,
        score=attempt.score,
        time_limit=controller.quiz.time_limit,
        remaining_seconds=controller.remaining_seconds(),
        question_ids=[q.id for q in controller.questions],
        current_index=controller.current_index,
        current_question=question_read(current) if current else None,
        selections=dict(controller.selections),
        answered_count=controller.answered_count,
        all_answered=controller.all_answered,
    )


async def _load_own_attempt(
    attempt_id: int, db: AsyncSession, user: User
) -> AttemptController:
    controller = AttemptController(AttemptStore(db))
    await controller.load(attempt_id, student_id=user.id)
    return controller


@router.get("/{attempt_id}", response_model=AttemptRead)
async def read_attempt(
    attempt_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("student")),
):
    controller = await _load_own_attempt(attempt_id, db, current_user)
    return attempt_read(controller)


@router.get("/{attempt_id}/questions/{question_id}", response_model=AttemptRead)
async def navigate_to_question(
    attempt_id: int,
    question_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("student")),
):
    controller = await _load_own_attempt(attempt_id, db, current_user)
    controller.navigate(question_id)
    return attempt_read(controller)


@router.put("/{attempt_id}/answers", response_model=AnswerSaved)
async def select_answer(
    attempt_id: int,
    data: AnswerSelect,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("student")),
):
    """Save the selected option; ``saved`` is false if the write failed."""
    controller = await _load_own_attempt(attempt_id, db, current_user)
    outcome = await controller.select_answer(data.question_id, data.option_id)
    return AnswerSaved(
        question_id=outcome.question_id,
        option_id=outcome.option_id,
        saved=outcome.saved,
        remaining_seconds=controller.remaining_seconds(),
    )


@router.post("/{attempt_id}/submit", response_model=AttemptRead)
async def submit_attempt(
    attempt_id: int,
    data: SubmitRequest | None = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("student")),
):
    reason = SubmitReason((data or SubmitRequest()).reason)
    controller = await _load_own_attempt(attempt_id, db, current_user)
    await controller.submit(reason)
    return attempt_read(controller)


@router.get("/{attempt_id}/result", response_model=AttemptResult)
async def read_result(
    attempt_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Score summary of a submitted attempt, for its owner or an admin."""
    store = AttemptStore(db)
    controller = AttemptController(store)
    await controller.load(
        attempt_id,
        student_id=None if current_user.role == "admin" else current_user.id,
    )
    if not controller.is_submitted:
        raise AttemptNotInProgress("Attempt has not been submitted yet")
    attempt = controller.attempt
    breakdown = score_attempt(
        controller.questions, await store.list_answers(attempt.id)
    )
    return AttemptResult(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        quiz_title=controller.quiz.title,
        score=attempt.score,
        correct_count=breakdown.correct_count,
        question_count=breakdown.total_questions,
        start_time=attempt.start_time,
        end_time=attempt.end_time,
        duration_seconds=controller.elapsed_seconds(),
        submit_reason=attempt.submit_reason,
    )
