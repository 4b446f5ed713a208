"""Aggregate import for all API route modules."""

from . import (
    auth,
    users,
    quizzes,
    attempts,
    admin,
    settings,
)

__all__ = [
    "auth",
    "users",
    "quizzes",
    "attempts",
    "admin",
    "settings",
]
