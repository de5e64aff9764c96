# tests/test_api.py

from __future__ import annotations

import httpx
import pytest
import pytest_asyncio

from taskflow.core.deps import get_note_service, get_workflow_engine
from taskflow.database import get_db
from taskflow.main import app
from taskflow.services.workflow import WorkflowEngine

from .helpers import stalled_session_factory


@pytest_asyncio.fixture()
async def client(workflow, note_service, session_factory, people):
    async def _db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_workflow_engine] = lambda: workflow
    app.dependency_overrides[get_note_service] = lambda: note_service
    app.dependency_overrides[get_db] = _db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def as_user(actor) -> dict:
    return {"X-User-Id": str(actor.id)}


async def _create(client, people, **overrides) -> int:
    payload = {
        "project_id": people.project_id,
        "team_type": "DEVELOPER",
        "title": "Landing page",
        "assigned_to": people.dev.id,
        "estimated_minutes": 30,
    }
    payload.update(overrides)
    r = await client.post("/tasks", json=payload, headers=as_user(people.admin))
    assert r.status_code == 201, r.text
    return r.json()["task_id"]


async def test_requires_known_user(client, people) -> None:
    r = await client.get("/tasks")
    assert r.status_code == 422

    r = await client.get("/tasks", headers={"X-User-Id": "4040"})
    assert r.status_code == 401


async def test_task_lifecycle_over_http(client, people) -> None:
    task_id = await _create(client, people)

    r = await client.put(f"/tasks/{task_id}/status", json={"status": "IN_PROGRESS"}, headers=as_user(people.dev))
    assert r.status_code == 200
    assert r.json()["status"] == "IN_PROGRESS"

    r = await client.put(f"/tasks/{task_id}/status", json={"status": "WAITING_FOR_QA"}, headers=as_user(people.dev))
    assert r.status_code == 200

    r = await client.post(f"/tasks/{task_id}/assign-qa", json={"qa_id": people.qa.id}, headers=as_user(people.pm))
    assert r.status_code == 200
    assert r.json()["qa_assigned_to"] == people.qa.id

    r = await client.post(f"/tasks/{task_id}/assign-qa", json={"qa_id": people.qa2.id}, headers=as_user(people.pm))
    assert r.status_code == 409
    assert r.json()["kind"] == "AlreadyAssigned"

    r = await client.post(
        f"/tasks/{task_id}/review",
        json={"status": "REWORK", "note": "Fix spacing", "feedback": [{"kind": "FEEDBACK_IMAGE", "image_ref": "s3://a.png"}]},
        headers=as_user(people.qa),
    )
    assert r.status_code == 200
    assert r.json()["rework_count"] == 1

    r = await client.get("/notes", params={"task_id": task_id}, headers=as_user(people.dev))
    kinds = sorted(n["body"]["kind"] for n in r.json()["notes"])
    assert kinds == ["FEEDBACK_IMAGE", "REJECTION"]


async def test_error_mapping(client, people) -> None:
    task_id = await _create(client, people)

    r = await client.get("/tasks/999", headers=as_user(people.admin))
    assert r.status_code == 404
    assert r.json()["kind"] == "NotFound"

    r = await client.put(f"/tasks/{task_id}/status", json={"status": "APPROVED"}, headers=as_user(people.dev))
    assert r.status_code == 403
    assert r.json()["kind"] == "Forbidden"

    r = await client.put(f"/tasks/{task_id}/status", json={"status": "APPROVED"}, headers=as_user(people.qa))
    assert r.status_code == 409
    assert r.json()["kind"] == "InvalidTransition"

    r = await client.post("/tasks", json={"team_type": "DEVELOPER"}, headers=as_user(people.admin))
    assert r.status_code == 400
    assert r.json() == {"detail": "project_id is required", "kind": "MissingField", "field": "project_id"}

    r = await client.post(f"/timers/{task_id}/stop", headers=as_user(people.dev))
    assert r.status_code == 400
    assert r.json()["kind"] == "NoActiveTimer"

    # storage that never answers: the caller is told to retry
    app.dependency_overrides[get_workflow_engine] = lambda: WorkflowEngine(stalled_session_factory(), timeout=0.05)
    r = await client.get(f"/tasks/{task_id}", headers=as_user(people.admin))
    assert r.status_code == 503
    assert r.json()["kind"] == "StorageError"
    assert r.headers["Retry-After"] == "1"


async def test_timers_over_http(client, people, clock) -> None:
    task_id = await _create(client, people)

    r = await client.get(f"/timers/{task_id}/current", headers=as_user(people.dev))
    assert r.json() == {"status": "AVAILABLE", "timer": None}

    r = await client.post("/timers", json={"task_id": task_id}, headers=as_user(people.dev))
    assert r.status_code == 201
    timer_id = r.json()["id"]

    clock.advance(minutes=25)
    r = await client.get(f"/timers/{task_id}/current", headers=as_user(people.dev))
    body = r.json()
    assert body["status"] == "WARNING"
    assert body["timer"]["id"] == timer_id
    assert body["timer"]["elapsed_seconds"] == 25 * 60

    r = await client.post("/timers", json={"task_id": task_id}, headers=as_user(people.dev2))
    assert r.status_code == 403
    assert r.json()["kind"] == "NotAuthorizedForTask"

    r = await client.post("/timers/stop", json={}, headers=as_user(people.dev))
    assert r.json() == {"success": True, "duration_minutes": 25}


async def test_inbox_over_http(client, people) -> None:
    await _create(client, people)

    r = await client.get("/notifications", headers=as_user(people.dev))
    body = r.json()
    assert body["unread_count"] == 1
    notification = body["notifications"][0]
    assert notification["type"] == "TASK_ASSIGNED"

    r = await client.post(f"/notifications/{notification['id']}/read", headers=as_user(people.dev))
    assert r.json() == {"success": True}

    r = await client.get("/notifications", headers=as_user(people.dev))
    assert r.json()["unread_count"] == 0


async def test_help_request_over_http(client, people) -> None:
    task_id = await _create(client, people)

    r = await client.post(f"/tasks/{task_id}/help", headers=as_user(people.dev))
    assert r.status_code == 201
    assert r.json()["notified"] == 4

    r = await client.post(f"/tasks/{task_id}/help", headers=as_user(people.qa))
    assert r.status_code == 403
