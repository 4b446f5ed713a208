"""Schemas describing quizzes as students see them.

Options never expose ``is_correct``; the answer key stays on the server.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class AttemptSummary(BaseModel):
    id: int
    start_time: datetime
    end_time: Optional[datetime] = None
    score: Optional[int] = None

    model_config = {"from_attributes": True}


class QuizListItem(BaseModel):
    id: int
    title: str
    track: Optional[str] = None
    time_limit: int
    question_count: int
    status: str  # not_started, in_progress, completed
    latest_attempt: Optional[AttemptSummary] = None


class QuizDetail(QuizListItem):
    can_start: bool


class OptionRead(BaseModel):
    id: int
    text: str


class QuestionRead(BaseModel):
    id: int
    text: str
    options: List[OptionRead]
