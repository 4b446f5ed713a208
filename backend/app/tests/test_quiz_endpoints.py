"""End-to-end tests for the quiz and attempt endpoints."""

from datetime import timedelta
import asyncio
import pathlib
import sys

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel, select

# Allow importing the app package
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from app.main import app, DEFAULT_TRACKS
from app.database import get_session
from app.models import Answer, Attempt, User
from app.auth import get_password_hash
from app.crud import create_quiz, ensure_tracks_exist, get_track_by_name


def _questions(count):
    return [
        {
            "text": f"Question {n}",
            "options": [
                {"text": "right", "is_correct": True},
                {"text": "wrong", "is_correct": False},
            ],
        }
        for n in range(1, count + 1)
    ]


async def _setup_test_db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    TestSession = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_session():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    async with TestSession() as session:
        await ensure_tracks_exist(session, DEFAULT_TRACKS)
        web = await get_track_by_name(session, "Web Development")
        devops = await get_track_by_name(session, "DevOps")
        session.add_all(
            [
                User(
                    name="Admin",
                    email="admin@example.com",
                    password_hash=get_password_hash("adminpass"),
                    role="admin",
                ),
                User(
                    name="Student",
                    email="student@example.com",
                    password_hash=get_password_hash("studentpass"),
                    role="student",
                    track_id=web.id,
                ),
                User(
                    name="Other",
                    email="other@example.com",
                    password_hash=get_password_hash("otherpass"),
                    role="student",
                    track_id=web.id,
                ),
            ]
        )
        await session.commit()
        quiz = await create_quiz(
            session, "HTML Basics", _questions(4), track_id=web.id, time_limit=10
        )
        await create_quiz(session, "Pipelines", _questions(2), track_id=devops.id)
        await create_quiz(
            session, "Retired", _questions(2), track_id=web.id, is_active=False
        )
        answer_key = {
            q.id: {
                "right": next(o.id for o in q.options if o.is_correct),
                "wrong": next(o.id for o in q.options if not o.is_correct),
            }
            for q in quiz.questions
        }

    return TestSession, quiz.id, answer_key


async def _login(client, email, password):
    resp = await client.post("/login", json={"email": email, "password": password})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def test_attempt_flow():
    async def run():
        TestSession, quiz_id, key = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _login(client, "student@example.com", "studentpass")

            # Only active quizzes from the student's track are listed
            resp = await client.get("/quizzes/", headers=headers)
            assert resp.status_code == 200
            quizzes = resp.json()
            assert [q["title"] for q in quizzes] == ["HTML Basics"]
            assert quizzes[0]["status"] == "not_started"
            assert quizzes[0]["question_count"] == 4
            assert quizzes[0]["track"] == "Web Development"

            resp = await client.get(f"/quizzes/{quiz_id}", headers=headers)
            assert resp.status_code == 200
            assert resp.json()["can_start"] is True
            assert resp.json()["time_limit"] == 10

            # Start the attempt
            resp = await client.post(f"/quizzes/{quiz_id}/attempts", headers=headers)
            assert resp.status_code == 200
            attempt = resp.json()
            attempt_id = attempt["id"]
            assert attempt["state"] == "in_progress"
            assert 0 < attempt["remaining_seconds"] <= 600
            assert attempt["current_index"] == 0
            assert attempt["question_ids"] == sorted(key)
            options = attempt["current_question"]["options"]
            assert all(set(o) == {"id", "text"} for o in options)

            q1, q2, q3, q4 = attempt["question_ids"]

            # Starting again resumes the same attempt
            resp = await client.post(f"/quizzes/{quiz_id}/attempts", headers=headers)
            assert resp.json()["id"] == attempt_id

            # Changing an answer keeps a single stored answer
            for choice in ("wrong", "right"):
                resp = await client.put(
                    f"/attempts/{attempt_id}/answers",
                    headers=headers,
                    json={"question_id": q1, "option_id": key[q1][choice]},
                )
                assert resp.status_code == 200
                assert resp.json()["saved"] is True
            async with TestSession() as session:
                result = await session.execute(
                    select(Answer).where(Answer.attempt_id == attempt_id)
                )
                answers = result.scalars().all()
                assert [(a.question_id, a.option_id) for a in answers] == [
                    (q1, key[q1]["right"])
                ]

            # An option from another question is rejected
            resp = await client.put(
                f"/attempts/{attempt_id}/answers",
                headers=headers,
                json={"question_id": q2, "option_id": key[q1]["right"]},
            )
            assert resp.status_code == 400
            assert resp.json()["detail"]["code"] == "invalid_option"

            # Navigation
            resp = await client.get(
                f"/attempts/{attempt_id}/questions/{q3}", headers=headers
            )
            assert resp.status_code == 200
            assert resp.json()["current_index"] == 2
            assert resp.json()["current_question"]["id"] == q3
            resp = await client.get(
                f"/attempts/{attempt_id}/questions/99999", headers=headers
            )
            assert resp.status_code == 404

            for qid, choice in ((q2, "right"), (q3, "right")):
                await client.put(
                    f"/attempts/{attempt_id}/answers",
                    headers=headers,
                    json={"question_id": qid, "option_id": key[qid][choice]},
                )

            # Submitting with an unanswered question is refused
            resp = await client.post(f"/attempts/{attempt_id}/submit", headers=headers)
            assert resp.status_code == 400
            assert resp.json()["detail"]["code"] == "incomplete_attempt"

            resp = await client.put(
                f"/attempts/{attempt_id}/answers",
                headers=headers,
                json={"question_id": q4, "option_id": key[q4]["wrong"]},
            )
            resp = await client.get(f"/attempts/{attempt_id}", headers=headers)
            assert resp.json()["all_answered"] is True
            assert resp.json()["answered_count"] == 4

            resp = await client.post(
                f"/attempts/{attempt_id}/submit", headers=headers, json={"reason": "user"}
            )
            assert resp.status_code == 200
            submitted = resp.json()
            assert submitted["state"] == "submitted"
            assert submitted["score"] == 75

            # Submitting again is a no-op
            resp = await client.post(f"/attempts/{attempt_id}/submit", headers=headers)
            assert resp.status_code == 200
            assert resp.json()["score"] == 75
            assert resp.json()["end_time"] == submitted["end_time"]

            # No more answers once submitted
            resp = await client.put(
                f"/attempts/{attempt_id}/answers",
                headers=headers,
                json={"question_id": q4, "option_id": key[q4]["right"]},
            )
            assert resp.status_code == 409

            resp = await client.get(f"/attempts/{attempt_id}/result", headers=headers)
            assert resp.status_code == 200
            result = resp.json()
            assert result["score"] == 75
            assert result["correct_count"] == 3
            assert result["question_count"] == 4
            assert result["submit_reason"] == "user"
            assert result["duration_seconds"] >= 0

            # Completed quizzes cannot be restarted by default
            resp = await client.get("/quizzes/", headers=headers)
            assert resp.json()[0]["status"] == "completed"
            assert resp.json()[0]["latest_attempt"]["score"] == 75
            resp = await client.get(f"/quizzes/{quiz_id}", headers=headers)
            assert resp.json()["can_start"] is False
            resp = await client.post(f"/quizzes/{quiz_id}/attempts", headers=headers)
            assert resp.status_code == 409
            assert resp.json()["detail"]["code"] == "already_completed"

            # Admin sees the result; students cannot
            resp = await client.get(f"/admin/quizzes/{quiz_id}/results", headers=headers)
            assert resp.status_code == 403
            admin_headers = await _login(client, "admin@example.com", "adminpass")
            resp = await client.get(
                f"/admin/quizzes/{quiz_id}/results", headers=admin_headers
            )
            assert resp.status_code == 200
            rows = resp.json()
            assert len(rows) == 1
            assert rows[0]["student_name"] == "Student"
            assert rows[0]["score"] == 75
            resp = await client.get(
                f"/attempts/{attempt_id}/result", headers=admin_headers
            )
            assert resp.status_code == 200

            # Admins can allow retakes
            resp = await client.put(
                "/settings/", headers=admin_headers, json={"allow_quiz_retake": True}
            )
            assert resp.status_code == 200
            resp = await client.post(f"/quizzes/{quiz_id}/attempts", headers=headers)
            assert resp.status_code == 200
            assert resp.json()["id"] != attempt_id
            assert resp.json()["selections"] == {}

    asyncio.run(run())


def test_attempt_times_out_on_next_request():
    async def run():
        TestSession, quiz_id, key = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _login(client, "student@example.com", "studentpass")
            resp = await client.post(f"/quizzes/{quiz_id}/attempts", headers=headers)
            attempt_id = resp.json()["id"]
            q1, q2 = resp.json()["question_ids"][:2]
            await client.put(
                f"/attempts/{attempt_id}/answers",
                headers=headers,
                json={"question_id": q1, "option_id": key[q1]["right"]},
            )
            await client.put(
                f"/attempts/{attempt_id}/answers",
                headers=headers,
                json={"question_id": q2, "option_id": key[q2]["right"]},
            )

            # Pretend the attempt started eleven minutes ago
            async with TestSession() as session:
                attempt = await session.get(Attempt, attempt_id)
                attempt.start_time = attempt.start_time - timedelta(minutes=11)
                session.add(attempt)
                await session.commit()

            resp = await client.get(f"/attempts/{attempt_id}", headers=headers)
            assert resp.status_code == 200
            data = resp.json()
            assert data["state"] == "submitted"
            assert data["score"] == 50
            assert data["remaining_seconds"] == 0

            resp = await client.put(
                f"/attempts/{attempt_id}/answers",
                headers=headers,
                json={"question_id": q1, "option_id": key[q1]["wrong"]},
            )
            assert resp.status_code == 409
            assert resp.json()["detail"]["code"] == "attempt_not_in_progress"

            resp = await client.get(f"/attempts/{attempt_id}/result", headers=headers)
            assert resp.json()["submit_reason"] == "timeout"
            assert resp.json()["correct_count"] == 2

    asyncio.run(run())


def test_attempts_are_private_to_their_student():
    async def run():
        TestSession, quiz_id, key = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _login(client, "student@example.com", "studentpass")
            other_headers = await _login(client, "other@example.com", "otherpass")
            resp = await client.post(f"/quizzes/{quiz_id}/attempts", headers=headers)
            attempt_id = resp.json()["id"]
            q1 = resp.json()["question_ids"][0]

            resp = await client.get(f"/attempts/{attempt_id}", headers=other_headers)
            assert resp.status_code == 404
            resp = await client.put(
                f"/attempts/{attempt_id}/answers",
                headers=other_headers,
                json={"question_id": q1, "option_id": key[q1]["right"]},
            )
            assert resp.status_code == 404
            resp = await client.post(
                f"/attempts/{attempt_id}/submit",
                headers=other_headers,
                json={"reason": "timeout"},
            )
            assert resp.status_code == 404

            resp = await client.get(f"/attempts/{attempt_id}")
            assert resp.status_code == 401

    asyncio.run(run())


def test_registration_assigns_roles_and_tracks():
    async def run():
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        TestSession = async_sessionmaker(engine, expire_on_commit=False)

        async def override_get_session():
            async with TestSession() as session:
                yield session

        app.dependency_overrides[get_session] = override_get_session
        async with TestSession() as session:
            await ensure_tracks_exist(session, DEFAULT_TRACKS)

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.post(
                "/register",
                json={"name": "Admin", "email": "admin@example.com", "password": "pass"},
            )
            assert resp.status_code == 200
            assert resp.json()["role"] == "admin"

            resp = await client.post(
                "/register",
                json={
                    "name": "Student",
                    "email": "student@example.com",
                    "password": "pass",
                    "track": "IoT",
                },
            )
            assert resp.status_code == 200
            assert resp.json()["role"] == "student"

            resp = await client.post(
                "/register",
                json={
                    "name": "Lost",
                    "email": "lost@example.com",
                    "password": "pass",
                    "track": "Underwater Basket Weaving",
                },
            )
            assert resp.status_code == 400

            resp = await client.post(
                "/register",
                json={"name": "Again", "email": "student@example.com", "password": "x"},
            )
            assert resp.status_code == 400
            assert resp.json()["detail"]["code"] == "auth_email_registered"

            headers = await _login(client, "student@example.com", "pass")
            resp = await client.get("/users/me", headers=headers)
            assert resp.status_code == 200
            assert resp.json()["track"] == "IoT"

            resp = await client.post(
                "/token", data={"username": "student@example.com", "password": "nope"}
            )
            assert resp.status_code == 401

    asyncio.run(run())


def test_client_cannot_claim_a_timeout_early():
    async def run():
        TestSession, quiz_id, key = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _login(client, "student@example.com", "studentpass")
            resp = await client.post(f"/quizzes/{quiz_id}/attempts", headers=headers)
            attempt_id = resp.json()["id"]

            resp = await client.post(
                f"/attempts/{attempt_id}/submit",
                headers=headers,
                json={"reason": "timeout"},
            )
            assert resp.status_code == 400
            assert resp.json()["detail"]["code"] == "incomplete_attempt"

            resp = await client.get(f"/attempts/{attempt_id}", headers=headers)
            assert resp.json()["state"] == "in_progress"
            assert resp.json()["end_time"] is None

    asyncio.run(run())


def test_student_without_track_sees_no_quizzes():
    async def run():
        TestSession, quiz_id, key = await _setup_test_db()
        async with TestSession() as session:
            session.add(
                User(
                    name="Unassigned",
                    email="unassigned@example.com",
                    password_hash=get_password_hash("pass"),
                    role="student",
                )
            )
            await session.commit()

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _login(client, "unassigned@example.com", "pass")
            resp = await client.get("/quizzes/", headers=headers)
            assert resp.status_code == 200
            assert resp.json() == []

            admin_headers = await _login(client, "admin@example.com", "adminpass")
            resp = await client.get("/quizzes/", headers=admin_headers)
            assert [q["title"] for q in resp.json()] == ["HTML Basics", "Pipelines"]

    asyncio.run(run())
