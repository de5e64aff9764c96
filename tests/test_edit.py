# tests/test_edit.py

from __future__ import annotations

import pytest

from taskflow.core.errors import AlreadyAssigned, Forbidden, NotFound, ValidationError
from taskflow.core.roles import NotificationType
from taskflow.models.user import User

from .helpers import load_task, recipients_of, timers_of


async def test_edit_requires_oversight(workflow, people, make_task) -> None:
    task_id = await make_task()
    with pytest.raises(Forbidden):
        await workflow.edit_fields(task_id, people.dev, {"title": "Mine now"})
    with pytest.raises(NotFound):
        await workflow.edit_fields(999, people.admin, {"title": "Ghost"})


async def test_edit_plain_fields(workflow, people, make_task, session_factory) -> None:
    task_id = await make_task()

    task = await workflow.edit_fields(task_id, people.pm, {
        "title": "  Build signup page ",
        "description": "With captcha",
        "priority": "HIGH",
        "estimated_minutes": 90,
        "files": [{"url": "https://files.example/brief.pdf", "name": "brief.pdf"}],
    })

    assert task.title == "Build signup page"
    assert task.priority == "HIGH"
    assert task.estimated_minutes == 90
    assert task.files == [{"url": "https://files.example/brief.pdf", "name": "brief.pdf"}]
    # plain edits do not touch timers
    assert await timers_of(session_factory, task_id) == []


@pytest.mark.parametrize(
    "partial, field",
    [
        ({"status": "APPROVED"}, "status"),
        ({"priority": "SOMEDAY"}, "priority"),
        ({"estimated_minutes": -5}, "estimated_minutes"),
        ({"title": "   "}, "title"),
        ({"files": [{"name": "no url"}]}, "files"),
    ],
)
async def test_edit_rejects_bad_values(workflow, people, make_task, partial, field) -> None:
    task_id = await make_task()
    with pytest.raises(ValidationError) as exc:
        await workflow.edit_fields(task_id, people.admin, partial)
    assert exc.value.field == field


async def test_reassignment_starts_timer_and_notifies(workflow, people, make_task, session_factory) -> None:
    task_id = await make_task()

    task = await workflow.edit_fields(task_id, people.admin, {"assigned_to": people.dev2.id})

    assert task.assigned_to == people.dev2.id
    timers = await timers_of(session_factory, task_id)
    assert len(timers) == 1
    assert timers[0].end_time is None
    assert timers[0].is_rework is False

    assigned = await recipients_of(session_factory, task_id, NotificationType.TASK_ASSIGNED.value)
    assert assigned == {people.dev.id: 1, people.dev2.id: 1}


async def test_reassignment_during_rework_flags_timer(workflow, people, make_task, session_factory) -> None:
    task_id = await make_task()
    await workflow.transition_status(task_id, people.dev, "IN_PROGRESS")
    await workflow.transition_status(task_id, people.dev, "WAITING_FOR_QA")
    await workflow.transition_status(task_id, people.qa, "REWORK")

    await workflow.edit_fields(task_id, people.pm, {"assigned_to": people.dev2.id})

    timers = await timers_of(session_factory, task_id)
    assert timers[-1].is_rework is True


async def test_reassignment_checks_team(workflow, people, make_task) -> None:
    task_id = await make_task()
    with pytest.raises(ValidationError) as exc:
        await workflow.edit_fields(task_id, people.admin, {"assigned_to": people.designer.id})
    assert exc.value.field == "assigned_to"


async def test_same_assignee_is_a_no_op(workflow, people, make_task, session_factory) -> None:
    task_id = await make_task()
    await workflow.edit_fields(task_id, people.admin, {"assigned_to": people.dev.id})
    assert await timers_of(session_factory, task_id) == []


async def test_qa_can_be_set_once_through_edit(workflow, people, make_task, session_factory) -> None:
    task_id = await make_task()

    task = await workflow.edit_fields(task_id, people.pm, {"qa_assigned_to": people.qa.id})
    assert task.qa_assigned_to == people.qa.id
    assert task.qa_assigned_at is not None

    with pytest.raises(AlreadyAssigned):
        await workflow.edit_fields(task_id, people.pm, {"qa_assigned_to": people.qa2.id})
    with pytest.raises(AlreadyAssigned):
        await workflow.edit_fields(task_id, people.pm, {"qa_assigned_to": None})

    assert (await load_task(session_factory, task_id)).qa_assigned_to == people.qa.id


async def test_edit_rejects_non_qa_reviewer(workflow, people, make_task) -> None:
    task_id = await make_task()
    with pytest.raises(ValidationError) as exc:
        await workflow.edit_fields(task_id, people.pm, {"qa_assigned_to": people.dev2.id})
    assert exc.value.field == "qa_assigned_to"


async def test_unchanged_assignee_is_still_validated(workflow, people, make_task, session_factory) -> None:
    task_id = await make_task()
    async with session_factory() as session:
        dev = await session.get(User, people.dev.id)
        dev.is_active = False
        await session.commit()

    with pytest.raises(ValidationError) as exc:
        await workflow.edit_fields(task_id, people.admin, {"assigned_to": people.dev.id, "title": "Renamed"})
    assert exc.value.field == "assigned_to"

    task = await load_task(session_factory, task_id)
    assert task.title == "Build login page"
    assert await timers_of(session_factory, task_id) == []
