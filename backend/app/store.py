"""Persistence boundary used by the attempt controller.

``AttemptStore`` wraps a database session and exposes the handful of
operations the attempt flow needs.  Missing rows become ``NotFound`` and
database failures become ``PersistenceError`` so callers only deal with
the domain error taxonomy.

Quizzes and attempts are detached from the session before they are
handed out.  A failed write rolls the session back, which would
otherwise expire every object the controller is still holding.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud
from app.errors import AttemptNotInProgress, NotFound, PersistenceError
from app.models import Answer, Attempt, Quiz

logger = logging.getLogger(__name__)


class AttemptStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _fail(self, action: str, exc: Exception):
        logger.warning("Store failure while trying to %s: %s", action, exc)
        await self.db.rollback()
        raise PersistenceError(f"Could not {action}") from exc

    def _detach(self, obj):
        if obj is not None and obj in self.db:
            self.db.expunge(obj)
        return obj

    async def get_quiz(self, quiz_id: int) -> Quiz:
        """Return a quiz with questions and options loaded."""
        try:
            quiz = await crud.get_quiz_with_questions(self.db, quiz_id)
        except SQLAlchemyError as exc:
            await self._fail("load quiz", exc)
        if quiz is None:
            raise NotFound("Quiz not found")
        return self._detach(quiz)

    async def get_attempt(self, attempt_id: int) -> Attempt:
        try:
            attempt = await crud.get_attempt(self.db, attempt_id)
        except SQLAlchemyError as exc:
            await self._fail("load attempt", exc)
        if attempt is None:
            raise NotFound("Attempt not found")
        return self._detach(attempt)

    async def create_attempt(
        self, quiz_id: int, student_id: int, start_time: datetime
    ) -> Attempt:
        """Create an open attempt.

        If another request opened an attempt for the same quiz and student
        first, that attempt is returned instead.
        """
        attempt = Attempt(quiz_id=quiz_id, student_id=student_id, start_time=start_time)
        try:
            attempt = await crud.create_attempt(self.db, attempt)
        except IntegrityError as exc:
            await self.db.rollback()
            existing = await self.get_open_attempt(quiz_id, student_id)
            if existing is None:
                raise PersistenceError("Could not create attempt") from exc
            return existing
        except SQLAlchemyError as exc:
            await self._fail("create attempt", exc)
        return self._detach(attempt)

    async def finalize_attempt(
        self, attempt_id: int, end_time: datetime, score: int, reason: str
    ) -> tuple[Attempt, bool]:
        """Close an attempt once.

        Returns the stored attempt and whether this call was the one that
        closed it.
        """
        try:
            closed = await crud.finalize_attempt(
                self.db, attempt_id, end_time, score, reason
            )
            attempt = await crud.reload_attempt(self.db, attempt_id)
        except SQLAlchemyError as exc:
            await self._fail("submit attempt", exc)
        if attempt is None:
            raise NotFound("Attempt not found")
        return self._detach(attempt), closed

    async def upsert_answer(
        self, attempt_id: int, question_id: int, option_id: int
    ) -> Answer:
        """Save an answer; ``AttemptNotInProgress`` once the attempt is closed."""
        try:
            answer = await crud.upsert_answer(
                self.db, attempt_id, question_id, option_id
            )
        except SQLAlchemyError as exc:
            await self._fail("save answer", exc)
        if answer is None:
            raise AttemptNotInProgress("Attempt has already been submitted")
        return answer

    async def list_answers(self, attempt_id: int) -> list[Answer]:
        try:
            return await crud.list_answers(self.db, attempt_id)
        except SQLAlchemyError as exc:
            await self._fail("load answers", exc)

    async def get_open_attempt(self, quiz_id: int, student_id: int) -> Attempt | None:
        try:
            attempt = await crud.get_open_attempt(self.db, quiz_id, student_id)
        except SQLAlchemyError as exc:
            await self._fail("load attempt", exc)
        return self._detach(attempt)

    async def has_completed_attempt(self, quiz_id: int, student_id: int) -> bool:
        try:
            return await crud.has_completed_attempt(self.db, quiz_id, student_id)
        except SQLAlchemyError as exc:
            await self._fail("load attempts", exc)

    async def list_open_attempts(self) -> list[Attempt]:
        try:
            attempts = await crud.list_open_attempts(self.db)
        except SQLAlchemyError as exc:
            await self._fail("load attempts", exc)
        return [self._detach(attempt) for attempt in attempts]

    async def get_latest_attempt(
        self, quiz_id: int, student_id: int
    ) -> Attempt | None:
        """Most recent attempt of a student on a quiz, open or submitted."""
        try:
            attempt = await crud.get_latest_attempt(self.db, quiz_id, student_id)
        except SQLAlchemyError as exc:
            await self._fail("load attempt", exc)
        return self._detach(attempt)
