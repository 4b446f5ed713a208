"""Attempt controller: the state machine behind taking a quiz.

An ``AttemptController`` is bound to one attempt at a time, either by
starting a new one or by loading a persisted one.  It keeps the ordered
questions, a cursor and the student's selections in memory and pushes
every change through the injected ``AttemptStore``.

    NOT_STARTED --start/load--> IN_PROGRESS --submit/timeout--> SUBMITTED

Submitting is idempotent.  A timer expiry and a user click can both ask
to submit; the first one closes the attempt and the second returns the
stored result untouched.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from app.errors import (
    AlreadyCompleted,
    AttemptNotInProgress,
    IncompleteAttempt,
    InvalidOption,
    InvalidQuiz,
    NotFound,
    PersistenceError,
    QuizError,
)
from app.models import Attempt, Question, Quiz
from app.recorder import AnswerRecorder
from app.scoring import score_attempt
from app.store import AttemptStore
from app.timer import AttemptTimer, utcnow

logger = logging.getLogger(__name__)


class AttemptState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class SubmitReason(str, Enum):
    USER = "user"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class AnswerOutcome:
    """Result of a selection; ``saved`` is ``False`` if the write failed."""

    question_id: int
    option_id: int
    saved: bool


class AttemptController:
    def __init__(
        self,
        store: AttemptStore,
        *,
        allow_retake: bool = False,
        clock: Callable[[], datetime] = utcnow,
        live_timer: bool = False,
        tick_interval: float = 1.0,
    ):
        self.store = store
        self.recorder = AnswerRecorder(store)
        self.allow_retake = allow_retake
        self.clock = clock
        self.live_timer = live_timer
        self.tick_interval = tick_interval
        self._submit_lock = asyncio.Lock()
        self._reset()

    def _reset(self) -> None:
        self.state = AttemptState.NOT_STARTED
        self.quiz: Quiz | None = None
        self.attempt: Attempt | None = None
        self.questions: list[Question] = []
        self.selections: dict[int, int] = {}
        self._unsaved: set[int] = set()
        self._cursor = 0
        self.timer: AttemptTimer | None = None

    # -- lifecycle -----------------------------------------------------

    async def start(self, quiz_id: int, student_id: int) -> Attempt:
        """Start a new attempt, or resume the student's open one."""
        if self.state is not AttemptState.NOT_STARTED:
            raise AttemptNotInProgress("Controller is already bound to an attempt")
        quiz = await self.store.get_quiz(quiz_id)
        if not quiz.is_active:
            raise NotFound("Quiz not found")
        if not quiz.questions:
            raise InvalidQuiz("Quiz has no questions")

        open_attempt = await self.store.get_open_attempt(quiz_id, student_id)
        if open_attempt is not None:
            await self._bind(quiz, open_attempt)
            if self.state is AttemptState.IN_PROGRESS:
                logger.info(
                    "Resuming attempt %s for student %s on quiz %s",
                    open_attempt.id,
                    student_id,
                    quiz_id,
                )
                return self.attempt
            # it ran out of time while the student was away
            self.stop_timer()
            self._reset()

        if not self.allow_retake and await self.store.has_completed_attempt(
            quiz_id, student_id
        ):
            raise AlreadyCompleted("You have already completed this quiz")

        attempt = await self.store.create_attempt(quiz_id, student_id, self.clock())
        await self._bind(quiz, attempt)
        logger.info(
            "Student %s started attempt %s on quiz %s", student_id, attempt.id, quiz_id
        )
        return self.attempt

    async def load(self, attempt_id: int, student_id: int | None = None) -> Attempt:
        """Bind to a persisted attempt, e.g. after a page reload."""
        attempt = await self.store.get_attempt(attempt_id)
        if student_id is not None and attempt.student_id != student_id:
            raise NotFound("Attempt not found")
        quiz = await self.store.get_quiz(attempt.quiz_id)
        self._reset()
        await self._bind(quiz, attempt)
        return self.attempt

    async def _bind(self, quiz: Quiz, attempt: Attempt) -> None:
        self.quiz = quiz
        self.attempt = attempt
        self.questions = sorted(quiz.questions, key=lambda q: (q.position, q.id))
        self._cursor = 0
        answers = await self.store.list_answers(attempt.id)
        self.selections = {a.question_id: a.option_id for a in answers}
        self._unsaved = set()
        if attempt.end_time is not None:
            self.state = AttemptState.SUBMITTED
            return
        self.state = AttemptState.IN_PROGRESS
        self.timer = AttemptTimer(
            attempt.start_time,
            quiz.time_limit,
            self._on_time_up,
            clock=self.clock,
            interval=self.tick_interval,
        )
        if self.live_timer:
            self.timer.start()
        await self.expire_if_due()

    async def _on_time_up(self) -> None:
        logger.info("Time is up for attempt %s", self.attempt.id)
        await self.submit(SubmitReason.TIMEOUT)

    async def expire_if_due(self) -> bool:
        """Submit as a timeout if the time limit has passed.

        Returns ``True`` if this call closed the attempt.
        """
        if self.state is not AttemptState.IN_PROGRESS or self.timer is None:
            return False
        if self.timer.remaining() > 0:
            return False
        await self.submit(SubmitReason.TIMEOUT)
        return True

    def stop_timer(self) -> None:
        if self.timer is not None:
            self.timer.stop()

    # -- answering -----------------------------------------------------

    async def select_answer(self, question_id: int, option_id: int) -> AnswerOutcome:
        """Select an option for a question and persist it.

        A failed write is not fatal: the selection stays in memory and is
        written again on the next interaction.
        """
        await self.expire_if_due()
        self._require_in_progress()
        question = self._question(question_id)
        if option_id not in {opt.id for opt in question.options}:
            raise InvalidOption("Option does not belong to this question")

        self.selections[question_id] = option_id
        self._unsaved.add(question_id)
        await self._flush(raise_errors=False)
        return AnswerOutcome(
            question_id=question_id,
            option_id=option_id,
            saved=question_id not in self._unsaved,
        )

    async def _flush(self, raise_errors: bool) -> None:
        for question_id in sorted(self._unsaved):
            try:
                await self.recorder.record(
                    self.attempt.id, question_id, self.selections[question_id]
                )
            except AttemptNotInProgress:
                await self._adopt_stored_result()
                raise
            except PersistenceError:
                if raise_errors:
                    raise
                logger.warning(
                    "Answer for question %s on attempt %s not saved; will retry",
                    question_id,
                    self.attempt.id,
                )
                return
            self._unsaved.discard(question_id)

    async def _adopt_stored_result(self) -> None:
        """Take over the stored outcome of an attempt closed by another request."""
        self.attempt = await self.store.get_attempt(self.attempt.id)
        answers = await self.store.list_answers(self.attempt.id)
        self.selections = {a.question_id: a.option_id for a in answers}
        self._unsaved = set()
        self.state = AttemptState.SUBMITTED
        self.stop_timer()
        logger.info("Attempt %s was submitted elsewhere", self.attempt.id)

    # -- navigation ----------------------------------------------------

    def navigate(self, question_id: int) -> Question:
        """Move the cursor to ``question_id``."""
        for index, question in enumerate(self.questions):
            if question.id == question_id:
                self._cursor = index
                return question
        raise NotFound("Question not found")

    def next_question(self) -> Question | None:
        if self._cursor < len(self.questions) - 1:
            self._cursor += 1
        return self.current_question

    def previous_question(self) -> Question | None:
        if self._cursor > 0:
            self._cursor -= 1
        return self.current_question

    # -- submission ----------------------------------------------------

    async def submit(self, reason: SubmitReason = SubmitReason.USER) -> Attempt:
        """Score and close the attempt.

        Calling this on a submitted attempt returns it unchanged.  The
        reason is decided by the clock: a submit after the deadline is a
        timeout, and a timeout claimed while time remains is treated as a
        user submit, which needs every question answered.
        """
        if self.state is AttemptState.IN_PROGRESS and self.timer is not None:
            time_up = self.timer.remaining() == 0
            if reason is SubmitReason.TIMEOUT and not time_up:
                logger.warning(
                    "Timeout requested for attempt %s with %ss left",
                    self.attempt.id,
                    self.timer.remaining(),
                )
                reason = SubmitReason.USER
            elif reason is SubmitReason.USER and time_up:
                reason = SubmitReason.TIMEOUT

        async with self._submit_lock:
            if self.state is AttemptState.SUBMITTED:
                return self.attempt
            self._require_in_progress()
            if reason is SubmitReason.USER and not self.all_answered:
                raise IncompleteAttempt(
                    "All questions must be answered before submitting"
                )

            try:
                await self._flush(raise_errors=True)
            except AttemptNotInProgress:
                return self.attempt
            answers = await self.store.list_answers(self.attempt.id)
            result = score_attempt(self.questions, answers)
            attempt, closed = await self.store.finalize_attempt(
                self.attempt.id, self.clock(), result.score, reason.value
            )
            self.attempt = attempt
            self.state = AttemptState.SUBMITTED
            self.stop_timer()
            if closed:
                logger.info(
                    "Attempt %s submitted (%s) with score %s (%s/%s correct)",
                    attempt.id,
                    reason.value,
                    attempt.score,
                    result.correct_count,
                    result.total_questions,
                )
            else:
                logger.info("Attempt %s was already submitted", attempt.id)
            return attempt

    # -- read accessors ------------------------------------------------

    @property
    def current_question(self) -> Question | None:
        if not self.questions:
            return None
        return self.questions[self._cursor]

    @property
    def current_index(self) -> int:
        return self._cursor

    @property
    def answered_count(self) -> int:
        return sum(1 for q in self.questions if q.id in self.selections)

    @property
    def all_answered(self) -> bool:
        return all(q.id in self.selections for q in self.questions)

    @property
    def is_submitted(self) -> bool:
        return self.state is AttemptState.SUBMITTED

    @property
    def unsaved_questions(self) -> set[int]:
        return set(self._unsaved)

    def selected_option(self, question_id: int) -> int | None:
        return self.selections.get(question_id)

    def elapsed_seconds(self) -> int:
        if self.attempt is None:
            return 0
        end = self.attempt.end_time or self.clock()
        return max(0, int((end - self.attempt.start_time).total_seconds()))

    def remaining_seconds(self) -> int:
        if self.state is not AttemptState.IN_PROGRESS or self.timer is None:
            return 0
        return self.timer.remaining()

    # -- helpers -------------------------------------------------------

    def _require_in_progress(self) -> None:
        if self.state is not AttemptState.IN_PROGRESS:
            raise AttemptNotInProgress("Attempt is not in progress")

    def _question(self, question_id: int) -> Question:
        for question in self.questions:
            if question.id == question_id:
                return question
        raise NotFound("Question not found")


async def expire_overdue_attempts(
    store: AttemptStore, clock: Callable[[], datetime] = utcnow
) -> int:
    """Close every open attempt whose time limit has passed.

    An attempt that cannot be closed is logged and left for the next
    sweep.  Returns the number of attempts closed by this sweep.
    """
    expired = 0
    for open_attempt in await store.list_open_attempts():
        controller = AttemptController(store, clock=clock)
        try:
            await controller.load(open_attempt.id)
        except NotFound:
            continue
        except QuizError as exc:
            logger.warning("Could not expire attempt %s: %s", open_attempt.id, exc)
            continue
        if controller.is_submitted and controller.attempt.submit_reason == "timeout":
            expired += 1
    if expired:
        logger.info("Closed %s overdue attempts", expired)
    return expired
