# tests/helpers.py

from __future__ import annotations

import asyncio
from collections import Counter
from contextlib import asynccontextmanager

from sqlalchemy.exc import OperationalError

from taskflow.services.repository import TaskRepository


async def notifications_of(session_factory, task_id: int, type_: str | None = None):
    async with session_factory() as session:
        return await TaskRepository(session).notifications_for_task(task_id, type_)


async def recipients_of(session_factory, task_id: int, type_: str) -> Counter:
    """How many notifications of ``type_`` each user received for the task."""
    rows = await notifications_of(session_factory, task_id, type_)
    return Counter(n.user_id for n in rows)


async def timers_of(session_factory, task_id: int):
    async with session_factory() as session:
        return await TaskRepository(session).list_timers(task_id)


async def load_task(session_factory, task_id: int):
    async with session_factory() as session:
        return await TaskRepository(session).get_task(task_id)


class StalledSession:
    """Session stand-in whose queries never come back."""

    async def execute(self, *args, **kwargs):
        await asyncio.sleep(3600)

    async def commit(self) -> None:
        await asyncio.sleep(3600)


class BrokenSession:
    """Session stand-in whose driver fails every query."""

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


def stalled_session_factory():
    @asynccontextmanager
    async def _factory():
        yield StalledSession()

    return _factory
