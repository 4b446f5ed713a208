"""Schemas for the attempt lifecycle endpoints."""

from datetime import datetime
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel

from .quiz import QuestionRead


class AttemptRead(BaseModel):
    id: int
    quiz_id: int
    quiz_title: str
    state: str
    start_time: datetime
    end_time: Optional[datetime] = None
    score: Optional[int] = None
    time_limit: int
    remaining_seconds: int
    question_ids: List[int]
    current_index: int
    current_question: Optional[QuestionRead] = None
    selections: Dict[int, int]
    answered_count: int
    all_answered: bool


class AnswerSelect(BaseModel):
    question_id: int
    option_id: int


class AnswerSaved(BaseModel):
    question_id: int
    option_id: int
    saved: bool
    remaining_seconds: int


class SubmitRequest(BaseModel):
    reason: Literal["user", "timeout"] = "user"


class AttemptResult(BaseModel):
    id: int
    quiz_id: int
    quiz_title: str
    score: int
    correct_count: int
    question_count: int
    start_time: datetime
    end_time: datetime
    duration_seconds: int
    submit_reason: Optional[str] = None


class QuizAttemptRow(BaseModel):
    id: int
    student_id: int
    student_name: str
    student_email: str
    start_time: datetime
    end_time: Optional[datetime] = None
    score: Optional[int] = None
    submit_reason: Optional[str] = None
