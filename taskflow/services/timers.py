# taskflow/services/timers.py
import asyncio
import logging
import math
import weakref
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from taskflow.core.clock import Clock, as_utc, elapsed_seconds, utcnow
from taskflow.core.errors import NoActiveTimer, NotFound
from taskflow.core.roles import NotificationType, TaskStatus, TimerStatus
from taskflow.services.repository import TaskRepository

logger = logging.getLogger(__name__)


def minutes_from_seconds(seconds: int) -> int:
    """Round to the nearest whole minute, halves rounding up."""
    return int(math.floor(seconds / 60 + 0.5))


def classify_elapsed(elapsed: int, estimated_minutes: Optional[int], warning_ratio: float = 0.8) -> TimerStatus:
    """
    Threshold state of a running timer.

    EXCEEDED once elapsed reaches the estimate, WARNING from ``warning_ratio``
    of it, RUNNING otherwise or when there is no estimate.
    """
    if not estimated_minutes:
        return TimerStatus.RUNNING
    estimated = estimated_minutes * 60
    if elapsed >= estimated:
        return TimerStatus.EXCEEDED
    if elapsed >= estimated * warning_ratio:
        return TimerStatus.WARNING
    return TimerStatus.RUNNING


@dataclass
class TimerSnapshot:
    id: int
    task_id: int
    start_time: datetime
    end_time: Optional[datetime]
    is_rework: bool
    elapsed_seconds: int
    duration_minutes: Optional[int] = None
    remaining_seconds: Optional[int] = None


@dataclass
class TimerState:
    state: TimerStatus
    timer: Optional[TimerSnapshot] = None


class TimerTracker:
    """
    Per-task work timers.

    Start and stop for one task are serialized by a per-task lock, and the
    task row is locked inside the transaction so close-then-open is atomic.
    """

    def __init__(self, session_factory, dispatcher=None, clock: Clock = utcnow, timeout: float = 5.0, warning_ratio: float = 0.8):
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._clock = clock
        self._timeout = timeout
        self._warning_ratio = warning_ratio
        # a lock lives only while a start/stop holds or awaits it
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _repo(self, session) -> TaskRepository:
        return TaskRepository(session, timeout=self._timeout)

    def _lock_for(self, task_id: int) -> asyncio.Lock:
        lock = self._locks.get(task_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[task_id] = lock
        return lock

    async def start(self, task_id: int):
        async with self._lock_for(task_id):
            async with self._session_factory() as session:
                repo = self._repo(session)
                task = await repo.lock_task(task_id)
                if task is None:
                    raise NotFound(f"Task {task_id} not found")

                now = self._clock()
                rotated = await repo.close_open_timers(task_id, now)
                timer = await repo.add_timer(task_id, start_time=now, is_rework=task.status == TaskStatus.REWORK.value)
                if task.started_at is None:
                    await repo.update_task_if(task_id, {"started_at": None}, {"started_at": now})
                await repo.commit()

        if rotated:
            logger.info("Rotated %d running timer(s) on task %s", rotated, task_id)
        logger.info("Timer %s started for task %s (rework=%s)", timer.id, task_id, timer.is_rework)
        return timer

    async def stop(self, task_id: int):
        async with self._lock_for(task_id):
            async with self._session_factory() as session:
                repo = self._repo(session)
                if await repo.lock_task(task_id) is None:
                    raise NotFound(f"Task {task_id} not found")
                timer = await repo.open_timer(task_id)
                if timer is None:
                    raise NoActiveTimer(f"No active timer for task {task_id}")

                now = self._clock()
                seconds = elapsed_seconds(timer.start_time, now)
                duration = minutes_from_seconds(seconds)
                await repo.finish_timer(timer.id, end_time=now, duration_minutes=duration)
                await repo.commit()
                await repo.refresh(timer)

        logger.info("Timer %s stopped for task %s after %ss (%d min)", timer.id, task_id, seconds, duration)
        return timer

    async def close_open(self, task_id: int):
        """Stop the running timer if there is one; returns it or None."""
        try:
            return await self.stop(task_id)
        except NoActiveTimer:
            return None

    async def current_state(self, task_id: int) -> TimerState:
        async with self._session_factory() as session:
            repo = self._repo(session)
            task = await repo.get_task(task_id)
            if task is None:
                return TimerState(TimerStatus.NO_TASK)
            # timers are not shown for approved work
            if task.status == TaskStatus.APPROVED.value:
                return TimerState(TimerStatus.APPROVED)

            timer = await repo.latest_timer(task_id)
            if timer is None:
                return TimerState(TimerStatus.AVAILABLE)

            now = self._clock()
            estimate = task.estimated_minutes

            if timer.end_time is not None:
                seconds = elapsed_seconds(timer.start_time, timer.end_time)
                duration = timer.duration_minutes if timer.duration_minutes is not None else minutes_from_seconds(seconds)
                if estimate and duration > estimate:
                    return TimerState(TimerStatus.EXCEEDED, self._snapshot(timer, seconds, estimate, duration))
                return TimerState(TimerStatus.USED)

            seconds = elapsed_seconds(timer.start_time, now)
            state = classify_elapsed(seconds, estimate, self._warning_ratio)
            claimed = False
            if state == TimerStatus.EXCEEDED:
                claimed = await repo.claim_exceeded_notice(timer.id, now)
                await repo.commit()
            snapshot = self._snapshot(timer, seconds, estimate)

        if claimed and self._dispatcher is not None:
            logger.info("Task %s exceeded its %s min estimate", task_id, estimate)
            await self._dispatcher.notify(NotificationType.TIME_EXCEEDED, task, {"since": as_utc(timer.start_time)})
        return TimerState(state, snapshot)

    @staticmethod
    def _snapshot(timer, seconds: int, estimate: Optional[int], duration: Optional[int] = None) -> TimerSnapshot:
        remaining = None
        if estimate:
            remaining = max(estimate * 60 - seconds, 0)
        return TimerSnapshot(
            id=timer.id,
            task_id=timer.task_id,
            start_time=as_utc(timer.start_time),
            end_time=as_utc(timer.end_time),
            is_rework=bool(timer.is_rework),
            elapsed_seconds=seconds,
            duration_minutes=duration,
            remaining_seconds=remaining,
        )
