"""Pydantic models for application configuration settings."""

from pydantic import BaseModel


class SettingsRead(BaseModel):
    site_name: str
    allow_quiz_retake: bool


class SettingsUpdate(BaseModel):
    site_name: str | None = None
    allow_quiz_retake: bool | None = None
