"""Database models used by the quiz attempt service.

The models are defined with SQLModel (built on SQLAlchemy and Pydantic)
and represent users, tracks, quizzes with their questions and options,
and the attempts students make against them.
"""

from typing import Optional, List
from datetime import datetime
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, ForeignKey, Index, Integer, UniqueConstraint, text


class Track(SQLModel, table=True):
    """Named cohort grouping quizzes and students."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)

    quizzes: List["Quiz"] = Relationship(back_populates="track")


class User(SQLModel, table=True):
    """Person using the system, either a student or an admin."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: str = "student"  # 'student' or 'admin'
    track_id: Optional[int] = Field(default=None, foreign_key="track.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    track: Optional[Track] = Relationship()


class Quiz(SQLModel, table=True):
    """Timed multiple-choice quiz belonging to a track."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    track_id: Optional[int] = Field(default=None, foreign_key="track.id")
    time_limit: int = 30  # minutes
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    track: Optional[Track] = Relationship(back_populates="quizzes")
    questions: List["Question"] = Relationship(
        back_populates="quiz",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class Question(SQLModel, table=True):
    """Single question of a quiz; ordered by ``position`` then id."""
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    text: str
    position: int = 0

    quiz: Quiz = Relationship(back_populates="questions")
    options: List["Option"] = Relationship(
        back_populates="question",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class Option(SQLModel, table=True):
    """Answer choice for a question.  One option per question is correct."""
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key="question.id", index=True)
    text: str
    is_correct: bool = False

    question: Question = Relationship(back_populates="options")


class Attempt(SQLModel, table=True):
    """One student's timed run through a quiz.

    ``end_time`` and ``score`` stay ``None`` while the attempt is open and
    are written exactly once when it is submitted or times out.
    """

    __table_args__ = (
        # at most one open attempt per quiz and student
        Index(
            "ix_attempt_open_per_student",
            "quiz_id",
            "student_id",
            unique=True,
            sqlite_where=text("end_time IS NULL"),
            postgresql_where=text("end_time IS NULL"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    student_id: int = Field(foreign_key="user.id", index=True)
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    score: Optional[int] = None  # 0-100
    submit_reason: Optional[str] = None  # 'user' or 'timeout'

    quiz: Quiz = Relationship()
    student: User = Relationship()
    answers: List["Answer"] = Relationship(
        back_populates="attempt",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class Answer(SQLModel, table=True):
    """Selected option for one question of an attempt."""

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("attempt.id", ondelete="CASCADE"), nullable=False
        )
    )
    question_id: int = Field(foreign_key="question.id")
    option_id: int = Field(foreign_key="option.id")
    answered_at: datetime = Field(default_factory=datetime.utcnow)

    attempt: Attempt = Relationship(back_populates="answers")


class Settings(SQLModel, table=True):
    """Singleton table storing site‑wide configuration values."""
    id: Optional[int] = Field(default=1, primary_key=True)
    site_name: str = "Learning Portal"
    allow_quiz_retake: bool = False
