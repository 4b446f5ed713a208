"""Persistence of individual answer selections."""

import logging

from app.models import Answer
from app.store import AttemptStore

logger = logging.getLogger(__name__)


class AnswerRecorder:
    """Writes the student's selection for a question to the store.

    Writes are upserts keyed by ``(attempt_id, question_id)`` so repeated
    or reordered writes for one question leave a single answer holding the
    last value written.  Store failures propagate as ``PersistenceError``.
    """

    def __init__(self, store: AttemptStore):
        self.store = store

    async def record(self, attempt_id: int, question_id: int, option_id: int) -> Answer:
        answer = await self.store.upsert_answer(attempt_id, question_id, option_id)
        logger.debug(
            "Recorded option %s for question %s on attempt %s",
            option_id,
            question_id,
            attempt_id,
        )
        return answer
