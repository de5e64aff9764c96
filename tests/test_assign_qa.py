# tests/test_assign_qa.py

from __future__ import annotations

import asyncio

import pytest

from taskflow.core.errors import AlreadyAssigned, Forbidden, InvalidQAUser, InvalidTransition, NotFound
from taskflow.core.roles import NotificationType

from .helpers import load_task, recipients_of


@pytest.fixture()
def waiting_task(workflow, people, make_task):
    async def _waiting(**overrides) -> int:
        task_id = await make_task(**overrides)
        await workflow.transition_status(task_id, people.dev, "IN_PROGRESS")
        await workflow.transition_status(task_id, people.dev, "WAITING_FOR_QA")
        return task_id

    return _waiting


async def test_assign_qa_sets_reviewer_and_notifies(workflow, people, waiting_task, session_factory, clock) -> None:
    task_id = await waiting_task()
    clock.advance(minutes=3)

    task = await workflow.assign_qa(task_id, people.pm, people.qa.id)

    assert task.qa_assigned_to == people.qa.id
    assert task.qa_assigned_at is not None

    requested = await recipients_of(session_factory, task_id, NotificationType.QA_REVIEW_REQUESTED.value)
    # fallback PM on submission, then the reviewer once assigned
    assert requested == {people.pm.id: 1, people.qa.id: 1}


async def test_second_assignment_is_rejected(workflow, people, waiting_task, session_factory) -> None:
    task_id = await waiting_task()
    await workflow.assign_qa(task_id, people.pm, people.qa.id)

    with pytest.raises(AlreadyAssigned):
        await workflow.assign_qa(task_id, people.admin, people.qa2.id)

    task = await load_task(session_factory, task_id)
    assert task.qa_assigned_to == people.qa.id


async def test_concurrent_assignments_exactly_one_wins(workflow, people, waiting_task, session_factory) -> None:
    task_id = await waiting_task()

    results = await asyncio.gather(
        workflow.assign_qa(task_id, people.pm, people.qa.id),
        workflow.assign_qa(task_id, people.pm2, people.qa2.id),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], AlreadyAssigned)

    task = await load_task(session_factory, task_id)
    assert task.qa_assigned_to == winners[0].qa_assigned_to


async def test_validation_order(workflow, people, waiting_task, make_task) -> None:
    with pytest.raises(NotFound):
        await workflow.assign_qa(999, people.dev, people.qa.id)

    task_id = await waiting_task()
    with pytest.raises(Forbidden):
        await workflow.assign_qa(task_id, people.dev, people.dev2.id)
    with pytest.raises(InvalidQAUser) as exc:
        await workflow.assign_qa(task_id, people.pm, people.dev2.id)
    assert exc.value.field == "qa_id"

    pending = await make_task(title="Not ready")
    with pytest.raises(InvalidTransition):
        await workflow.assign_qa(pending, people.pm, people.qa.id)


async def test_unknown_qa_user(workflow, people, waiting_task) -> None:
    task_id = await waiting_task()
    with pytest.raises(InvalidQAUser):
        await workflow.assign_qa(task_id, people.pm, 12345)


async def test_rework_opens_a_new_review_cycle(workflow, people, waiting_task) -> None:
    task_id = await waiting_task()
    await workflow.assign_qa(task_id, people.pm, people.qa.id)
    await workflow.transition_status(task_id, people.qa, "REWORK")
    await workflow.transition_status(task_id, people.dev, "WAITING_FOR_QA")

    task = await workflow.assign_qa(task_id, people.pm, people.qa2.id)
    assert task.qa_assigned_to == people.qa2.id
    assert task.last_reviewed_by == people.qa.id
