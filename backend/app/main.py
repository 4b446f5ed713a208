"""FastAPI application entry point.

This module wires together the API routers, configures middleware and
startup tasks, and exposes the ASGI application object used by the
server.
"""

import os
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.routes import (
    auth,
    users,
    quizzes,
    attempts,
    admin,
    settings,
)
from app.database import create_db_and_tables, async_session
from app.attempts import expire_overdue_attempts
from app.crud import ensure_tracks_exist, get_settings
from app.errors import QuizError
from app.store import AttemptStore
import asyncio

# Basic logging configuration.  The log level can be controlled with an
# environment variable so deployments can adjust verbosity without code
# changes.
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL))
logger = logging.getLogger(__name__)

# How often open attempts are checked for an expired time limit.
ATTEMPT_SWEEP_SECONDS = int(os.getenv("ATTEMPT_SWEEP_SECONDS", "60"))

DEFAULT_TRACKS = [
    "Web Development",
    "Android Development",
    "IoT",
    "UI/UX",
    "DevOps",
    "Quality Assurance",
]

app = FastAPI(title="Quiz Attempts API")

# CORS setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup():
    """Initialize the database and kick off background tasks."""

    await create_db_and_tables()
    async with async_session() as session:
        await ensure_tracks_exist(session, DEFAULT_TRACKS)
    asyncio.create_task(attempt_expiry_task())


async def attempt_expiry_task():
    """Background coroutine that closes attempts whose time ran out."""

    logger.info("Starting attempt expiry task")
    while True:
        try:
            async with async_session() as session:
                await expire_overdue_attempts(AttemptStore(session))
        except Exception as exc:
            logger.exception("Attempt expiry task failed: %s", exc)
        await asyncio.sleep(ATTEMPT_SWEEP_SECONDS)


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(quizzes.router)
app.include_router(attempts.router)
app.include_router(admin.router)
app.include_router(settings.router)


@app.get("/")
async def read_root():
    async with async_session() as session:
        s = await get_settings(session)
        name = s.site_name
    return {"message": f"Welcome to {name} API"}


@app.exception_handler(QuizError)
async def quiz_error_handler(request: Request, exc: QuizError):
    """Translate attempt-flow errors into ``{"code", "message"}`` responses."""
    if exc.status_code >= 500:
        logger.warning("Request %s failed: %s", request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": {"code": exc.code, "message": exc.message}},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler that logs the stack trace once."""
    logger.exception("Unhandled error during request %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "code": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )
