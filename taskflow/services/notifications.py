# taskflow/services/notifications.py
import asyncio
import logging
from typing import Any, List, Mapping, Optional

from taskflow.core.clock import Clock, utcnow
from taskflow.core.errors import NotFound, WorkflowError
from taskflow.core.roles import NotificationType, Role
from taskflow.services.repository import TaskRepository

logger = logging.getLogger(__name__)

ADMIN_AND_PM = (Role.ADMIN, Role.PROJECT_MANAGER)


def _unique(ids) -> List[int]:
    # keeps first-seen order, drops None and duplicates (one user holding two roles)
    return [i for i in dict.fromkeys(ids) if i is not None]


class NotificationDispatcher:
    """
    Resolves who hears about a task event and writes one notification per recipient.

    Delivery is best-effort: every recipient is written independently and in
    parallel, failures are logged and never reach the caller.
    """

    def __init__(self, session_factory, clock: Clock = utcnow, timeout: float = 5.0):
        self._session_factory = session_factory
        self._clock = clock
        self._timeout = timeout

    def _repo(self, session) -> TaskRepository:
        return TaskRepository(session, timeout=self._timeout)

    # ---- recipient pools ----

    async def _oversight(self, repo: TaskRepository, team_type: Optional[str] = None) -> List[int]:
        """Admins and project managers, plus team leaders (of ``team_type`` when given)."""
        ids = await repo.user_ids_with_roles(ADMIN_AND_PM)
        ids += await repo.user_ids_with_roles([Role.TEAM_LEADER], team_type=team_type)
        return ids

    async def resolve_recipients(self, event: NotificationType, task, context: Optional[Mapping[str, Any]] = None) -> List[int]:
        context = context or {}
        async with self._session_factory() as session:
            repo = self._repo(session)

            if event == NotificationType.TASK_ASSIGNED:
                return _unique([context.get("assignee_id", task.assigned_to)])

            if event == NotificationType.QA_REVIEW_REQUESTED:
                reviewer = context.get("qa_reviewer_id") or task.qa_assigned_to
                if reviewer:
                    return [reviewer]
                managers = await repo.user_ids_with_roles([Role.PROJECT_MANAGER])
                return managers[:1]

            if event == NotificationType.READY_FOR_ASSIGNMENT:
                return _unique(await self._oversight(repo, team_type=task.team_type))

            if event in (NotificationType.TASK_REWORK, NotificationType.TASK_APPROVED):
                return _unique(await self._oversight(repo) + [task.assigned_to])

            if event == NotificationType.TASK_RESUBMITTED:
                previous = [context.get("previous_qa_id"), context.get("previous_reviewer_id")]
                return _unique(previous + await self._oversight(repo))

            if event == NotificationType.HELP_REQUEST:
                requester = context["requester"]
                team_type = getattr(requester.team_type, "value", requester.team_type)
                if team_type is None:
                    # no team, no team leader to ask
                    return _unique(await repo.user_ids_with_roles(ADMIN_AND_PM))
                return _unique(await self._oversight(repo, team_type=team_type))

            if event == NotificationType.TIME_EXCEEDED:
                return _unique(await self._oversight(repo, team_type=task.team_type))

            if event == NotificationType.TASK_COMPLETED:
                return _unique(await self._oversight(repo))

        raise ValueError(f"No recipient rule for {event}")

    # ---- delivery ----

    async def _deliver(self, user_id: int, task_id: int, event: NotificationType) -> int:
        async with self._session_factory() as session:
            repo = self._repo(session)
            await repo.add_notification(user_id, task_id, event.value, created_at=self._clock())
            await repo.commit()
        return user_id

    async def notify(self, event: NotificationType, task, context: Optional[Mapping[str, Any]] = None) -> List[int]:
        """Fan ``event`` out for ``task``; returns the ids that were actually written."""
        context = context or {}
        try:
            if event == NotificationType.TIME_EXCEEDED and await self._already_exceeded(task.id, context.get("since")):
                logger.info("TIME_EXCEEDED already recorded for task %s, skipping", task.id)
                return []
            recipients = await self.resolve_recipients(event, task, context)
        except WorkflowError as e:
            logger.error("Could not resolve %s recipients for task %s: %s", event.value, task.id, e.message)
            return []

        if not recipients:
            logger.warning("No recipients for %s on task %s", event.value, task.id)
            return []

        results = await asyncio.gather(
            *(self._deliver(user_id, task.id, event) for user_id in recipients),
            return_exceptions=True,
        )
        delivered = []
        for user_id, outcome in zip(recipients, results):
            if isinstance(outcome, BaseException):
                logger.error("Failed to deliver %s for task %s to user %s: %s", event.value, task.id, user_id, outcome)
            else:
                delivered.append(user_id)
        logger.info("Delivered %s for task %s to %d/%d recipients", event.value, task.id, len(delivered), len(recipients))
        return delivered

    async def _already_exceeded(self, task_id: int, since=None) -> bool:
        async with self._session_factory() as session:
            return await self._repo(session).has_notification(task_id, NotificationType.TIME_EXCEEDED.value, since=since)

    # ---- inbox ----

    async def list_for_user(self, user_id: int):
        async with self._session_factory() as session:
            repo = self._repo(session)
            notifications = await repo.list_notifications(user_id)
            unread = await repo.unread_count(user_id)
        return notifications, unread

    async def mark_read(self, notification_id: int, user_id: int) -> None:
        async with self._session_factory() as session:
            repo = self._repo(session)
            if not await repo.mark_notification_read(notification_id, user_id):
                raise NotFound(f"Notification {notification_id} not found")
            await repo.commit()
