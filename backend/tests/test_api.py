"""HTTP tests for the FastAPI app, backed by the in-memory database."""

import inspect

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from auth import create_access_token, seed_super_admin
from config import SEED_ADMIN_EMAIL, SEED_ADMIN_PASSWORD
from main import app
from stats_cache import stats_cache


def bearer(uid, role):
    token = create_access_token({"sub": uid, "email": f"{uid}@university.edu", "role": role})
    return {"Authorization": f"Bearer {token}"}


ADMIN = bearer("teacher-1", "teacher")
STUDENT = bearer("student-1", "student")
OTHER_STUDENT = bearer("student-2", "student")


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def quiz(client):
    question_ids = []
    for content, options, correct in [
        ("2 + 2 = ?", ["3", "4"], 1),
        ("Capital of France?", '["Paris", "Rome", "Oslo"]', "0"),
    ]:
        r = client.post("/questions", headers=ADMIN, json={
            "title": "General", "content": content, "options": options, "correctAnswer": correct,
        })
        assert r.status_code == 200, r.text
        question_ids.append(r.json()["id"])

    r = client.post("/quizzes", headers=ADMIN, json={
        "title": "Basics",
        "timeLimit": 15,
        "status": "ACTIVE",
        "maxAttempts": 1,
        "negativeMarking": True,
        "negativePoints": 0.5,
        "questions": [
            {"questionId": question_ids[0], "points": 1.0},
            {"questionId": question_ids[1], "points": 2.0},
        ],
    })
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["enrollmentMode"] == "OPEN"
    return {"id": body["id"], "questions": question_ids}


def test_health(client):
    assert client.get("/").status_code == 200


def test_requires_authentication(client):
    assert client.post("/quizzes/ABC123/start").status_code == 401
    assert client.post("/quizzes/ABC123/start", headers={"Authorization": "Token x"}).status_code == 401
    assert client.post("/quizzes/ABC123/start", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_roles_are_enforced(client, quiz):
    assert client.post("/quizzes", headers=STUDENT, json={"title": "x", "timeLimit": 5}).status_code == 403
    assert client.post(f"/quizzes/{quiz['id']}/start", headers=ADMIN).status_code == 403


def test_login(client, db):
    seed_super_admin(db)
    r = client.post("/auth/login", json={"email": SEED_ADMIN_EMAIL, "password": SEED_ADMIN_PASSWORD})
    assert r.status_code == 200
    token = r.json()["access_token"]
    r = client.get("/dashboard/stats", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert "activeAttempts" in r.json()

    bad = client.post("/auth/login", json={"email": SEED_ADMIN_EMAIL, "password": "wrong"})
    assert bad.status_code == 401


def test_invalid_question_is_rejected(client):
    r = client.post("/questions", headers=ADMIN, json={
        "title": "Broken", "content": "?", "options": "not json", "correctAnswer": 0,
    })
    assert r.status_code == 422
    assert r.json()["error"] == "InvalidQuestionData"


def test_quiz_with_zero_points_is_rejected(client):
    r = client.post("/questions", headers=ADMIN, json={
        "title": "t", "content": "c", "options": ["a", "b"], "correctAnswer": 0,
    })
    r = client.post("/quizzes", headers=ADMIN, json={
        "title": "Bad", "timeLimit": 5, "questions": [{"questionId": r.json()["id"], "points": 0}],
    })
    assert r.status_code == 422
    assert r.json()["category"] == "data_integrity"


def test_full_attempt_flow(client, quiz):
    first, second = quiz["questions"]

    r = client.post(f"/quizzes/{quiz['id']}/start", headers=STUDENT)
    assert r.status_code == 200
    attempt_id = r.json()["attemptId"]
    again = client.post(f"/quizzes/{quiz['id']}/start", headers=STUDENT)
    assert again.json() == {"attemptId": attempt_id, "resumed": True, "message": "Quiz already in progress"}

    r = client.get(f"/quizzes/{quiz['id']}/attempt", headers=STUDENT)
    assert r.status_code == 200
    view = r.json()
    assert view["attemptId"] == attempt_id
    assert [q["id"] for q in view["quiz"]["questions"]] == [first, second]
    assert view["quiz"]["questions"][1]["options"] == ["Paris", "Rome", "Oslo"]
    assert view["quiz"]["questions"][0]["correctAnswer"] is None
    assert 0 < view["timeRemaining"] <= 15 * 60

    r = client.put(f"/attempts/{attempt_id}/answers/{first}", headers=STUDENT, json={"answer": 1})
    assert r.status_code == 200
    assert client.get(f"/quizzes/{quiz['id']}/attempt", headers=STUDENT).json()["answers"] == {first: "1"}

    r = client.put(f"/attempts/{attempt_id}/answers/elsewhere", headers=STUDENT, json={"answer": 1})
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidQuestion"

    r = client.post(f"/attempts/{attempt_id}/submit", headers=STUDENT, json={"answers": {second: "2"}})
    assert r.status_code == 200
    result = r.json()
    assert result["score"] == 0.5
    assert result["totalPoints"] == 3.0
    assert result["percentage"] == 16.67

    r = client.post(f"/attempts/{attempt_id}/submit", headers=STUDENT, json={"answers": {second: "0"}})
    assert r.status_code == 409
    assert r.json()["error"] == "AlreadySubmitted"
    assert r.json()["category"] == "state_conflict"

    r = client.put(f"/attempts/{attempt_id}/answers/{second}", headers=STUDENT, json={"answer": 0})
    assert r.status_code == 409

    r = client.post(f"/quizzes/{quiz['id']}/start", headers=STUDENT)
    assert r.status_code == 400
    assert r.json()["error"] == "AttemptLimitReached"
    assert "1/1" in r.json()["message"]

    history = client.get(f"/quizzes/{quiz['id']}/attempts", headers=STUDENT).json()
    assert history["userAttemptCount"] == 1
    assert history["canTakeQuiz"] is False

    r = client.get(f"/attempts/{attempt_id}", headers=STUDENT)
    assert r.json()["status"] == "SUBMITTED"
    assert client.get(f"/attempts/{attempt_id}", headers=OTHER_STUDENT).status_code == 404


def test_submit_without_body(client, quiz):
    attempt_id = client.post(f"/quizzes/{quiz['id']}/start", headers=STUDENT).json()["attemptId"]
    r = client.post(f"/attempts/{attempt_id}/submit", headers=STUDENT)
    assert r.status_code == 200
    assert r.json()["score"] == 0.0


def test_view_without_attempt_is_404(client, quiz):
    r = client.get(f"/quizzes/{quiz['id']}/attempt", headers=STUDENT)
    assert r.status_code == 404
    assert r.json()["category"] == "not_found"


def test_enrollment_endpoints(client, quiz):
    url = f"/quizzes/{quiz['id']}/enrollments"
    r = client.post(url, headers=ADMIN, json={"studentIds": ["student-2"]})
    assert r.json() == {"message": "Students enrolled successfully", "enrolledCount": 1, "alreadyEnrolled": 0}
    assert client.post(url, headers=ADMIN, json={"studentIds": ["student-2"]}).status_code == 400
    assert client.post(url, headers=ADMIN, json={"studentIds": []}).status_code == 400
    students = client.get(url, headers=ADMIN).json()
    assert [s["userId"] for s in students] == ["student-2"]
    assert students[0]["attempts"] == 0 and students[0]["lastAttempt"] is None
    assert client.get("/quizzes/NOPE00/enrollments", headers=ADMIN).status_code == 404

    r = client.post(f"/quizzes/{quiz['id']}/start", headers=STUDENT)
    assert r.status_code == 403
    assert r.json()["error"] == "Forbidden"
    assert client.get("/me/quizzes", headers=STUDENT).json() == []
    assert len(client.get("/me/quizzes", headers=OTHER_STUDENT).json()) == 1

    assert client.delete(f"{url}/student-2", headers=ADMIN).status_code == 200
    assert client.delete(f"{url}/student-2", headers=ADMIN).status_code == 404
    assert client.post(f"/quizzes/{quiz['id']}/start", headers=STUDENT).status_code == 200


def test_status_update_closes_quiz(client, quiz):
    r = client.patch(f"/quizzes/{quiz['id']}/status", headers=ADMIN, json={"status": "INACTIVE"})
    assert r.json()["status"] == "INACTIVE"
    r = client.post(f"/quizzes/{quiz['id']}/start", headers=STUDENT)
    assert r.status_code == 400
    assert r.json()["error"] == "NotAvailable"


def test_dashboard_stats_are_cached_until_logout(client, quiz):
    first, _ = quiz["questions"]
    assert client.get("/dashboard/stats", headers=STUDENT).json()["totalAttempts"] == 0

    attempt_id = client.post(f"/quizzes/{quiz['id']}/start", headers=STUDENT).json()["attemptId"]
    client.post(f"/attempts/{attempt_id}/submit", headers=STUDENT, json={"answers": {first: "1"}})
    # Submitting drops the cached entry
    assert client.get("/dashboard/stats", headers=STUDENT).json()["totalAttempts"] == 1

    stats_cache.set("student-1", {"totalAttempts": 99})
    assert client.get("/dashboard/stats", headers=STUDENT).json()["totalAttempts"] == 99
    assert client.post("/auth/logout", headers=STUDENT).status_code == 200
    assert client.get("/dashboard/stats", headers=STUDENT).json()["totalAttempts"] == 1


def test_route_handlers_run_in_the_threadpool():
    # Handlers call pymongo synchronously
    routes = [r for r in app.routes if isinstance(r, APIRoute)]
    assert routes
    for route in routes:
        assert not inspect.iscoroutinefunction(route.endpoint), route.path
