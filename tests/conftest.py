# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio

from taskflow.core.actor import Actor
from taskflow.core.roles import Role, TeamType
from taskflow.database import build_engine, build_session_factory, init_models
from taskflow.models.project import Project
from taskflow.models.user import User
from taskflow.services.notes import NoteService
from taskflow.services.workflow import WorkflowEngine


class FakeClock:
    """Controllable UTC clock; tests move time with advance()."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture()
async def session_factory(tmp_path: Path):
    """
    Real SQLite database per test (file based, so independent sessions can
    write concurrently the way they would against the production store).
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskflow.sqlite3'}")
    await init_models(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture()
def workflow(session_factory, clock: FakeClock) -> WorkflowEngine:
    return WorkflowEngine(session_factory, clock=clock, timeout=5.0)


@pytest.fixture()
def note_service(session_factory, clock: FakeClock) -> NoteService:
    return NoteService(session_factory, clock=clock)


@pytest_asyncio.fixture()
async def people(session_factory) -> SimpleNamespace:
    """
    A small organisation:
    - admin, two project managers
    - a developer team (leader + developer) and a designer team (leader + designer)
    - two QA reviewers
    """
    async with session_factory() as session:
        admin = User(name="Ada", username="admin", role=Role.ADMIN.value)
        pm = User(name="Pat", username="pm", role=Role.PROJECT_MANAGER.value)
        pm2 = User(name="Pia", username="pm2", role=Role.PROJECT_MANAGER.value)
        tl_dev = User(name="Lee", username="tl_dev", role=Role.TEAM_LEADER.value, team_type=TeamType.DEVELOPER.value)
        tl_design = User(name="Dana", username="tl_design", role=Role.TEAM_LEADER.value, team_type=TeamType.DESIGNER.value)
        session.add_all([admin, pm, pm2, tl_dev, tl_design])
        await session.flush()

        dev = User(
            name="Dev", username="dev", role=Role.DEVELOPER.value,
            team_type=TeamType.DEVELOPER.value, team_leader_id=tl_dev.id,
        )
        dev2 = User(
            name="Devon", username="dev2", role=Role.DEVELOPER.value,
            team_type=TeamType.DEVELOPER.value, team_leader_id=tl_dev.id,
        )
        designer = User(
            name="Dee", username="designer", role=Role.DESIGNER.value,
            team_type=TeamType.DESIGNER.value, team_leader_id=tl_design.id,
        )
        qa = User(name="Quinn", username="qa", role=Role.QA.value)
        qa2 = User(name="Quincy", username="qa2", role=Role.QA.value)
        session.add_all([dev, dev2, designer, qa, qa2])
        await session.flush()

        project = Project(name="Website", client_name="ACME", created_by=admin.id)
        session.add(project)
        await session.commit()

    users = dict(admin=admin, pm=pm, pm2=pm2, tl_dev=tl_dev, tl_design=tl_design,
                 dev=dev, dev2=dev2, designer=designer, qa=qa, qa2=qa2)
    ns = SimpleNamespace(project_id=project.id, ids={k: u.id for k, u in users.items()})
    for key, user in users.items():
        setattr(ns, key, Actor.from_user(user))
    return ns


@pytest.fixture()
def make_task(workflow: WorkflowEngine, people: SimpleNamespace):
    async def _make(actor: Actor | None = None, **overrides) -> int:
        fields = dict(
            project_id=people.project_id,
            team_type=TeamType.DEVELOPER.value,
            title="Build login page",
            assigned_to=people.dev.id,
            estimated_minutes=60,
        )
        fields.update(overrides)
        return await workflow.create_task(actor or people.admin, fields)

    return _make
