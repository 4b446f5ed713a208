"""Asynchronous CRUD helpers for the application's data models.

Each function in this module encapsulates a specific database operation
using SQLModel and SQLAlchemy.  Centralizing the logic keeps route
handlers and the attempt controller light and makes behavior easier to
test.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from sqlalchemy.orm import selectinload
from sqlalchemy import DateTime, Integer, func, insert, literal, update
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from app.models import (
    Track,
    User,
    Quiz,
    Question,
    Option,
    Attempt,
    Answer,
    Settings,
)
from app.auth import get_password_hash


async def ensure_tracks_exist(db: AsyncSession, names: list[str]) -> None:
    """Ensure that a set of track records exists in the database."""

    for name in names:
        result = await db.execute(select(Track).where(Track.name == name))
        track = result.scalar_one_or_none()
        if not track:
            db.add(Track(name=name))
    await db.commit()


async def get_track_by_name(db: AsyncSession, name: str) -> Track | None:
    result = await db.execute(select(Track).where(Track.name == name))
    return result.scalar_one_or_none()


async def get_settings(db: AsyncSession) -> Settings:
    """Fetch the singleton settings record, creating it if necessary."""
    result = await db.execute(select(Settings).where(Settings.id == 1))
    settings = result.scalar_one_or_none()
    if not settings:
        settings = Settings()
        db.add(settings)
        await db.commit()
        await db.refresh(settings)
    return settings


async def save_settings(db: AsyncSession, settings: Settings) -> Settings:
    """Persist settings changes and return the refreshed object."""

    db.add(settings)
    await db.commit()
    await db.refresh(settings)
    return settings


async def create_user(db: AsyncSession, user: User) -> User:
    """Create a new user, hashing the password if it is still plain text."""

    if not user.password_hash.startswith("$2b$"):
        user.password_hash = get_password_hash(user.password_hash)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def count_users(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(User))
    return result.scalar()


async def create_quiz(
    db: AsyncSession,
    title: str,
    questions: list[dict],
    track_id: int | None = None,
    time_limit: int = 30,
    is_active: bool = True,
) -> Quiz:
    """Create a quiz with its questions and options in one transaction.

    ``questions`` is a list of ``{"text": str, "options": [{"text": str,
    "is_correct": bool}, ...]}`` dictionaries.  Each question needs at least
    two options and exactly one of them marked correct.
    """

    if time_limit < 1:
        raise ValueError("Time limit must be at least one minute")
    for number, data in enumerate(questions, start=1):
        if not data.get("text", "").strip():
            raise ValueError(f"Question {number} has no text")
        options = data.get("options", [])
        if len(options) < 2:
            raise ValueError(f"Question {number} needs at least two options")
        if any(not opt.get("text", "").strip() for opt in options):
            raise ValueError(f"Question {number} has an option without text")
        if sum(1 for opt in options if opt.get("is_correct")) != 1:
            raise ValueError(f"Question {number} must have exactly one correct option")

    quiz = Quiz(
        title=title, track_id=track_id, time_limit=time_limit, is_active=is_active
    )
    for position, data in enumerate(questions):
        question = Question(text=data["text"], position=position)
        question.options = [
            Option(text=opt["text"], is_correct=bool(opt.get("is_correct")))
            for opt in data["options"]
        ]
        quiz.questions.append(question)
    db.add(quiz)
    await db.commit()
    return await get_quiz_with_questions(db, quiz.id)


async def get_quiz_with_questions(db: AsyncSession, quiz_id: int) -> Quiz | None:
    """Return a quiz with its track, questions and options eagerly loaded."""
    result = await db.execute(
        select(Quiz)
        .where(Quiz.id == quiz_id)
        .options(
            selectinload(Quiz.track),
            selectinload(Quiz.questions).selectinload(Question.options),
        )
    )
    return result.scalar_one_or_none()


async def get_active_quizzes(
    db: AsyncSession, track_id: int | None = None
) -> list[Quiz]:
    """Return active quizzes, limited to one track when ``track_id`` is given."""
    query = (
        select(Quiz)
        .where(Quiz.is_active == True)  # noqa: E712
        .options(selectinload(Quiz.track), selectinload(Quiz.questions))
        .order_by(Quiz.id)
    )
    if track_id is not None:
        query = query.where(Quiz.track_id == track_id)
    result = await db.execute(query)
    return result.scalars().all()


async def get_attempt(db: AsyncSession, attempt_id: int) -> Attempt | None:
    """Return an attempt by id or ``None`` if not found."""
    result = await db.execute(select(Attempt).where(Attempt.id == attempt_id))
    return result.scalar_one_or_none()


async def create_attempt(db: AsyncSession, attempt: Attempt) -> Attempt:
    """Insert a new attempt record."""

    db.add(attempt)
    await db.commit()
    await db.refresh(attempt)
    return attempt


async def finalize_attempt(
    db: AsyncSession,
    attempt_id: int,
    end_time: datetime,
    score: int,
    reason: str,
) -> bool:
    """Write the end time and score of an open attempt.

    The update only matches attempts whose ``end_time`` is still empty, so
    a second call for the same attempt changes nothing.  Returns ``True``
    when this call closed the attempt.
    """

    result = await db.execute(
        update(Attempt)
        .where(Attempt.id == attempt_id, Attempt.end_time == None)  # noqa: E711
        .values(end_time=end_time, score=score, submit_reason=reason)
    )
    await db.commit()
    return result.rowcount == 1


async def reload_attempt(db: AsyncSession, attempt_id: int) -> Attempt | None:
    """Fetch an attempt, overwriting any stale copy held by the session."""
    result = await db.execute(
        select(Attempt)
        .where(Attempt.id == attempt_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_open_attempt(
    db: AsyncSession, quiz_id: int, student_id: int
) -> Attempt | None:
    """Return the student's unfinished attempt for a quiz, if any."""
    result = await db.execute(
        select(Attempt).where(
            Attempt.quiz_id == quiz_id,
            Attempt.student_id == student_id,
            Attempt.end_time == None,  # noqa: E711
        )
    )
    return result.scalars().first()


async def get_latest_attempt(
    db: AsyncSession, quiz_id: int, student_id: int
) -> Attempt | None:
    result = await db.execute(
        select(Attempt)
        .where(Attempt.quiz_id == quiz_id, Attempt.student_id == student_id)
        .order_by(Attempt.start_time.desc(), Attempt.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_attempts_for_student(
    db: AsyncSession, student_id: int
) -> dict[int, Attempt]:
    """Map quiz id to the student's most recent attempt on that quiz."""
    result = await db.execute(
        select(Attempt)
        .where(Attempt.student_id == student_id)
        .order_by(Attempt.start_time, Attempt.id)
    )
    latest: dict[int, Attempt] = {}
    for attempt in result.scalars().all():
        latest[attempt.quiz_id] = attempt
    return latest


async def has_completed_attempt(
    db: AsyncSession, quiz_id: int, student_id: int
) -> bool:
    result = await db.execute(
        select(func.count())
        .select_from(Attempt)
        .where(
            Attempt.quiz_id == quiz_id,
            Attempt.student_id == student_id,
            Attempt.end_time != None,  # noqa: E711
        )
    )
    return result.scalar() > 0


async def list_open_attempts(db: AsyncSession) -> list[Attempt]:
    """Return all attempts that have not been submitted yet."""
    result = await db.execute(
        select(Attempt)
        .where(Attempt.end_time == None)  # noqa: E711
        .order_by(Attempt.start_time, Attempt.id)
    )
    return result.scalars().all()


async def get_attempts_for_quiz(db: AsyncSession, quiz_id: int) -> list[Attempt]:
    """Return every attempt on a quiz with the student loaded, newest first."""
    result = await db.execute(
        select(Attempt)
        .where(Attempt.quiz_id == quiz_id)
        .options(selectinload(Attempt.student))
        .order_by(Attempt.start_time.desc(), Attempt.id.desc())
    )
    return result.scalars().all()


async def get_answer(
    db: AsyncSession, attempt_id: int, question_id: int
) -> Answer | None:
    result = await db.execute(
        select(Answer).where(
            Answer.attempt_id == attempt_id, Answer.question_id == question_id
        )
    )
    return result.scalar_one_or_none()


async def upsert_answer(
    db: AsyncSession, attempt_id: int, question_id: int, option_id: int
) -> Answer | None:
    """Create or overwrite the answer for ``(attempt_id, question_id)``.

    Both the update and the insert only match while the attempt's
    ``end_time`` is still empty, so nothing is written to a submitted
    attempt.  Returns ``None`` when the attempt is already closed.
    """

    answers = Answer.__table__
    attempt_open = (
        select(Attempt.id)
        .where(Attempt.id == attempt_id, Attempt.end_time == None)  # noqa: E711
        .exists()
    )
    now = datetime.utcnow()
    overwrite = (
        update(answers)
        .where(
            answers.c.attempt_id == attempt_id,
            answers.c.question_id == question_id,
            attempt_open,
        )
        .values(option_id=option_id, answered_at=now)
    )
    result = await db.execute(overwrite)
    written = result.rowcount
    if written == 0:
        row = select(
            literal(attempt_id, Integer),
            literal(question_id, Integer),
            literal(option_id, Integer),
            literal(now, DateTime),
        ).where(attempt_open)
        try:
            result = await db.execute(
                insert(answers).from_select(
                    ["attempt_id", "question_id", "option_id", "answered_at"], row
                )
            )
            written = result.rowcount
        except IntegrityError:
            # a concurrent write inserted the row first; overwrite it instead
            await db.rollback()
            result = await db.execute(overwrite)
            written = result.rowcount
    await db.commit()
    if written == 0:
        return None
    answer = await get_answer(db, attempt_id, question_id)
    await db.refresh(answer)
    return answer


async def list_answers(db: AsyncSession, attempt_id: int) -> list[Answer]:
    """Return all recorded answers for an attempt."""
    result = await db.execute(
        select(Answer).where(Answer.attempt_id == attempt_id).order_by(Answer.id)
    )
    return result.scalars().all()
