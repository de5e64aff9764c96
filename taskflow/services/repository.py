# taskflow/services/repository.py
import asyncio
import functools
import logging
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.core.errors import StorageError
from taskflow.models.note import TaskNote
from taskflow.models.notification import Notification
from taskflow.models.project import Project
from taskflow.models.task import Task
from taskflow.models.timer import TaskTimer
from taskflow.models.user import User

logger = logging.getLogger(__name__)


def guarded(method):
    """Bound a repository call by the session timeout and hide driver errors behind StorageError."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await asyncio.wait_for(method(self, *args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Repository call %s timed out after %.1fs", method.__name__, self.timeout)
            raise StorageError("Storage did not respond in time, please retry") from None
        except SQLAlchemyError as e:
            logger.error("Repository call %s failed: %s", method.__name__, e)
            raise StorageError("Storage is temporarily unavailable, please retry") from None

    return wrapper


def _match(column, value):
    if value is None:
        return column.is_(None)
    return column == value


class TaskRepository:
    """
    Storage primitives the workflow core relies on.

    One instance wraps one AsyncSession; callers own the session lifetime and
    decide when to commit. Conditional updates return whether the row still
    matched, which is how concurrent writers are detected.
    """

    def __init__(self, session: AsyncSession, timeout: float = 5.0):
        self.session = session
        self.timeout = timeout

    # ---- session ----

    @guarded
    async def commit(self) -> None:
        await self.session.commit()

    @guarded
    async def refresh(self, obj) -> None:
        await self.session.refresh(obj)

    # ---- users ----

    @guarded
    async def get_user(self, user_id: int) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @guarded
    async def user_ids_with_roles(self, roles: Iterable[str], team_type: Optional[str] = None) -> List[int]:
        query = (
            select(User.id)
            .where(User.role.in_([getattr(r, "value", r) for r in roles]))
            .where(User.is_active.is_(True))
            .order_by(User.id)
        )
        if team_type is not None:
            query = query.where(User.team_type == team_type)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    @guarded
    async def team_member_ids(self, team_leader_id: int) -> List[int]:
        result = await self.session.execute(select(User.id).where(User.team_leader_id == team_leader_id))
        return list(result.scalars().all())

    # ---- projects ----

    @guarded
    async def get_project(self, project_id: int) -> Optional[Project]:
        result = await self.session.execute(select(Project).where(Project.id == project_id))
        return result.scalar_one_or_none()

    # ---- tasks ----

    @guarded
    async def get_task(self, task_id: int) -> Optional[Task]:
        result = await self.session.execute(select(Task).where(Task.id == task_id))
        return result.scalar_one_or_none()

    @guarded
    async def lock_task(self, task_id: int) -> Optional[Task]:
        # FOR UPDATE is a no-op on SQLite, which serializes writers anyway
        result = await self.session.execute(
            select(Task).where(Task.id == task_id).with_for_update().execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @guarded
    async def add_task(self, **values) -> Task:
        task = Task(**values)
        self.session.add(task)
        await self.session.flush()
        return task

    @guarded
    async def update_task_if(self, task_id: int, expected: Mapping[str, Any], values: Mapping[str, Any]) -> bool:
        """UPDATE tasks SET values WHERE id = task_id AND every expected column still matches."""
        conditions = [Task.id == task_id]
        conditions.extend(_match(getattr(Task, name), value) for name, value in expected.items())
        result = await self.session.execute(
            update(Task)
            .where(and_(*conditions))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @guarded
    async def list_tasks(
        self,
        assigned_to: Optional[int] = None,
        qa_assigned_to: Optional[int] = None,
        status: Optional[str] = None,
        team_type: Optional[str] = None,
        assignee_ids: Optional[List[int]] = None,
        created_by: Optional[int] = None,
    ) -> List[Task]:
        query = select(Task).order_by(Task.created_at.desc(), Task.id.desc())
        if assigned_to is not None:
            query = query.where(Task.assigned_to == assigned_to)
        if qa_assigned_to is not None:
            query = query.where(Task.qa_assigned_to == qa_assigned_to)
        if status is not None:
            query = query.where(Task.status == status)
        if team_type is not None:
            query = query.where(Task.team_type == team_type)
        if assignee_ids is not None or created_by is not None:
            query = query.where(
                or_(Task.assigned_to.in_(assignee_ids or []), Task.assigned_by == created_by)
            )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # ---- timers ----

    @guarded
    async def open_timer(self, task_id: int) -> Optional[TaskTimer]:
        result = await self.session.execute(
            select(TaskTimer)
            .where(TaskTimer.task_id == task_id)
            .where(TaskTimer.end_time.is_(None))
            .order_by(TaskTimer.start_time.desc(), TaskTimer.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @guarded
    async def open_timer_for_assignee(self, user_id: int) -> Optional[TaskTimer]:
        result = await self.session.execute(
            select(TaskTimer)
            .join(Task, Task.id == TaskTimer.task_id)
            .where(Task.assigned_to == user_id)
            .where(TaskTimer.end_time.is_(None))
            .order_by(TaskTimer.start_time.desc(), TaskTimer.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @guarded
    async def latest_timer(self, task_id: int) -> Optional[TaskTimer]:
        result = await self.session.execute(
            select(TaskTimer)
            .where(TaskTimer.task_id == task_id)
            .order_by(TaskTimer.start_time.desc(), TaskTimer.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @guarded
    async def list_timers(self, task_id: int) -> List[TaskTimer]:
        result = await self.session.execute(
            select(TaskTimer).where(TaskTimer.task_id == task_id).order_by(TaskTimer.start_time, TaskTimer.id)
        )
        return list(result.scalars().all())

    @guarded
    async def close_open_timers(self, task_id: int, end_time: datetime) -> int:
        """Close running timers without recording a duration (rotation)."""
        result = await self.session.execute(
            update(TaskTimer)
            .where(TaskTimer.task_id == task_id)
            .where(TaskTimer.end_time.is_(None))
            .values(end_time=end_time)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @guarded
    async def add_timer(self, task_id: int, start_time: datetime, is_rework: bool) -> TaskTimer:
        timer = TaskTimer(task_id=task_id, start_time=start_time, is_rework=is_rework, created_at=start_time)
        self.session.add(timer)
        await self.session.flush()
        return timer

    @guarded
    async def finish_timer(self, timer_id: int, end_time: datetime, duration_minutes: int) -> bool:
        result = await self.session.execute(
            update(TaskTimer)
            .where(TaskTimer.id == timer_id)
            .where(TaskTimer.end_time.is_(None))
            .values(end_time=end_time, duration_minutes=duration_minutes)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @guarded
    async def claim_exceeded_notice(self, timer_id: int, now: datetime) -> bool:
        """Mark a timer as announced; only the first caller gets True."""
        result = await self.session.execute(
            update(TaskTimer)
            .where(TaskTimer.id == timer_id)
            .where(TaskTimer.exceeded_notified_at.is_(None))
            .values(exceeded_notified_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ---- notifications ----

    @guarded
    async def add_notification(self, user_id: int, task_id: int, type_: str, created_at: datetime) -> Notification:
        notification = Notification(user_id=user_id, task_id=task_id, type=type_, is_read=False, created_at=created_at)
        self.session.add(notification)
        await self.session.flush()
        return notification

    @guarded
    async def has_notification(self, task_id: int, type_: str, since: Optional[datetime] = None) -> bool:
        condition = and_(Notification.task_id == task_id, Notification.type == type_)
        if since is not None:
            condition = and_(condition, Notification.created_at >= since)
        result = await self.session.execute(select(exists().where(condition)))
        return bool(result.scalar())

    @guarded
    async def list_notifications(self, user_id: int, task_id: Optional[int] = None) -> List[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if task_id is not None:
            query = query.where(Notification.task_id == task_id)
        result = await self.session.execute(query.order_by(Notification.created_at.desc(), Notification.id.desc()))
        return list(result.scalars().all())

    @guarded
    async def notifications_for_task(self, task_id: int, type_: Optional[str] = None) -> List[Notification]:
        query = select(Notification).where(Notification.task_id == task_id)
        if type_ is not None:
            query = query.where(Notification.type == type_)
        result = await self.session.execute(query.order_by(Notification.id))
        return list(result.scalars().all())

    @guarded
    async def unread_count(self, user_id: int) -> int:
        result = await self.session.execute(
            select(func.count(Notification.id))
            .where(Notification.user_id == user_id)
            .where(Notification.is_read.is_(False))
        )
        return result.scalar_one()

    @guarded
    async def mark_notification_read(self, notification_id: int, user_id: int) -> bool:
        result = await self.session.execute(
            update(Notification)
            .where(Notification.id == notification_id)
            .where(Notification.user_id == user_id)
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ---- notes ----

    @guarded
    async def add_note(self, task_id: int, user_id: int, created_at: datetime, **columns) -> TaskNote:
        note = TaskNote(task_id=task_id, user_id=user_id, created_at=created_at, **columns)
        self.session.add(note)
        await self.session.flush()
        return note

    @guarded
    async def get_note(self, note_id: int) -> Optional[TaskNote]:
        result = await self.session.execute(select(TaskNote).where(TaskNote.id == note_id))
        return result.scalar_one_or_none()

    @guarded
    async def list_notes(self, task_id: int) -> List[TaskNote]:
        result = await self.session.execute(
            select(TaskNote).where(TaskNote.task_id == task_id).order_by(TaskNote.created_at.desc(), TaskNote.id.desc())
        )
        return list(result.scalars().all())
