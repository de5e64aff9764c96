# taskflow/services/workflow.py
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import func

from taskflow.core.actor import Actor
from taskflow.core.clock import Clock, elapsed_seconds, utcnow
from taskflow.core.errors import (
    AlreadyAssigned,
    Forbidden,
    InvalidAssignee,
    InvalidQA,
    InvalidQAUser,
    InvalidTransition,
    MissingField,
    NoActiveTimer,
    NotAuthorizedForTask,
    NotFound,
    ValidationError,
    WorkflowError,
)
from taskflow.core.roles import (
    HELP_DENIED_ROLES,
    OVERSIGHT_ROLES,
    NotificationType,
    Priority,
    Role,
    TaskStatus,
    TeamType,
    TIMERLESS_STATUSES,
    parse_enum,
)
from taskflow.models.task import Task
from taskflow.schemas.note import Approval, FeedbackImage, Rejection, note_columns
from taskflow.services.notifications import NotificationDispatcher
from taskflow.services.repository import TaskRepository
from taskflow.services.timers import TimerState, TimerTracker

logger = logging.getLogger(__name__)

ALL_STATUSES = frozenset(TaskStatus)


@dataclass(frozen=True)
class TransitionRule:
    sources: frozenset
    target: TaskStatus
    roles: Optional[frozenset] = None      # None: any actor
    assignee: bool = False                 # the task's assignee is allowed too
    events: Tuple[NotificationType, ...] = ()

    def permits(self, actor: Actor, task) -> bool:
        if self.roles is None and not self.assignee:
            return True
        if self.roles and actor.role in self.roles:
            return True
        return self.assignee and actor.id == task.assigned_to


TRANSITIONS: Tuple[TransitionRule, ...] = (
    TransitionRule(
        sources=frozenset({TaskStatus.PENDING, TaskStatus.REWORK}),
        target=TaskStatus.IN_PROGRESS,
    ),
    TransitionRule(
        sources=frozenset({TaskStatus.IN_PROGRESS}),
        target=TaskStatus.WAITING_FOR_QA,
        roles=frozenset(),
        assignee=True,
        events=(NotificationType.QA_REVIEW_REQUESTED, NotificationType.READY_FOR_ASSIGNMENT),
    ),
    TransitionRule(
        sources=frozenset({TaskStatus.WAITING_FOR_QA}),
        target=TaskStatus.REWORK,
        roles=frozenset({Role.QA}),
        events=(NotificationType.TASK_REWORK,),
    ),
    TransitionRule(
        sources=frozenset({TaskStatus.REWORK}),
        target=TaskStatus.WAITING_FOR_QA,
        roles=OVERSIGHT_ROLES,
        assignee=True,
        events=(NotificationType.TASK_RESUBMITTED,),
    ),
    TransitionRule(
        sources=frozenset({TaskStatus.WAITING_FOR_QA}),
        target=TaskStatus.APPROVED,
        roles=frozenset({Role.QA}),
        events=(NotificationType.TASK_APPROVED,),
    ),
    TransitionRule(
        sources=ALL_STATUSES - {TaskStatus.PENDING},
        target=TaskStatus.PENDING,
        roles=OVERSIGHT_ROLES,
    ),
)


def find_rule(current: TaskStatus, target: TaskStatus) -> Optional[TransitionRule]:
    for rule in TRANSITIONS:
        if rule.target == target and current in rule.sources:
            return rule
    return None


def authorize(actor: Actor, task, current: TaskStatus, target: TaskStatus) -> TransitionRule:
    """
    Single permission check for status changes.

    Forbidden when no rule into ``target`` would let this actor in (or the
    applicable rule does not); InvalidTransition when the actor could make such
    a move but not from the current state.
    """
    rule = find_rule(current, target)
    if rule is not None:
        if not rule.permits(actor, task):
            _deny(actor, task, f"{current.value} -> {target.value}")
        return rule
    if not any(r.permits(actor, task) for r in TRANSITIONS if r.target == target):
        _deny(actor, task, f"{current.value} -> {target.value}")
    raise InvalidTransition.between(current, target)


def _deny(actor: Actor, task, action: str):
    logger.warning("Forbidden: user %s (%s) attempted %s on task %s", actor.id, actor.role.value, action, task.id)
    raise Forbidden(f"Role {actor.role.value} is not allowed to {action} on this task")


EDITABLE_FIELDS = frozenset({"title", "description", "priority", "assigned_to", "qa_assigned_to", "estimated_minutes", "files"})
REQUIRED_CREATE_FIELDS = ("project_id", "team_type", "title", "assigned_to")


def _positive_int(value, field: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{field} must be a positive integer", field=field)
    try:
        number = int(value)
    except ValueError:
        raise ValidationError(f"{field} must be a positive integer", field=field) from None
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer", field=field)
    return number


def _files(value) -> List[dict]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError("files must be a list", field="files")
    files = []
    for item in value:
        if hasattr(item, "model_dump"):
            item = item.model_dump()
        if not isinstance(item, dict) or not isinstance(item.get("url"), str) or not item["url"].strip():
            raise ValidationError("every file needs a url", field="files")
        files.append({"url": item["url"], "name": item.get("name")})
    return files


class WorkflowEngine:
    """
    Task lifecycle: validates and applies status changes, QA assignment and
    field edits, then drives timers and notifications as side effects.

    Side effects run after the state change is committed; their failures are
    logged and never undo the change.
    """

    def __init__(
        self,
        session_factory,
        clock: Clock = utcnow,
        timeout: float = 5.0,
        warning_ratio: float = 0.8,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._timeout = timeout
        self.notifications = NotificationDispatcher(session_factory, clock=clock, timeout=timeout)
        self.timers = TimerTracker(
            session_factory,
            dispatcher=self.notifications,
            clock=clock,
            timeout=timeout,
            warning_ratio=warning_ratio,
        )

    def _repo(self, session) -> TaskRepository:
        return TaskRepository(session, timeout=self._timeout)

    async def _load(self, repo: TaskRepository, task_id: int) -> Task:
        task = await repo.get_task(task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found")
        return task

    # ---- creation ----

    async def create_task(self, actor: Actor, fields: Mapping[str, Any]) -> int:
        if not actor.is_oversight:
            logger.warning("Forbidden: user %s (%s) attempted to create a task", actor.id, actor.role.value)
            raise Forbidden("Insufficient permissions to create tasks")

        for name in REQUIRED_CREATE_FIELDS:
            value = fields.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise MissingField(f"{name} is required", field=name)

        team_type = parse_enum(TeamType, fields["team_type"])
        if team_type is None:
            raise ValidationError(f"Unknown team type {fields['team_type']!r}", field="team_type")
        priority = parse_enum(Priority, fields.get("priority") or Priority.MEDIUM)
        if priority is None:
            raise ValidationError(f"Unknown priority {fields.get('priority')!r}", field="priority")
        estimate = _positive_int(fields.get("estimated_minutes"), "estimated_minutes")
        files = _files(fields.get("files"))

        now = self._clock()
        async with self._session_factory() as session:
            repo = self._repo(session)

            if await repo.get_project(fields["project_id"]) is None:
                raise ValidationError("Project not found", field="project_id")
            assignee = await self._check_assignee(repo, actor, fields["assigned_to"], team_type.value, InvalidAssignee)

            qa_id = fields.get("qa_assigned_to")
            if qa_id is not None:
                qa_user = await repo.get_user(qa_id)
                if qa_user is None or qa_user.role != Role.QA.value or not qa_user.is_active:
                    raise InvalidQA("Invalid QA user", field="qa_assigned_to")

            task = await repo.add_task(
                project_id=fields["project_id"],
                team_type=team_type.value,
                title=fields["title"].strip(),
                description=fields.get("description") or None,
                priority=priority.value,
                status=TaskStatus.PENDING.value,
                assigned_by=actor.id,
                assigned_to=assignee.id,
                qa_assigned_to=qa_id,
                qa_assigned_at=now if qa_id is not None else None,
                rework_count=0,
                estimated_minutes=estimate,
                files=files,
                created_at=now,
                updated_at=now,
            )
            await repo.commit()

        logger.info("Task %s created by %s and assigned to %s", task.id, actor.id, assignee.id)
        await self.notifications.notify(NotificationType.TASK_ASSIGNED, task, {"assignee_id": assignee.id})
        return task.id

    async def _check_assignee(self, repo: TaskRepository, actor: Actor, user_id, team_type: str, error_cls):
        assignee = await repo.get_user(user_id)
        if assignee is None or assignee.team_type != team_type or not assignee.is_active:
            raise error_cls("Invalid assignee or team mismatch", field="assigned_to")
        # Team leaders may only hand work to their own team
        if actor.role == Role.TEAM_LEADER and assignee.team_leader_id != actor.id:
            logger.warning("Forbidden: team leader %s assigned outside the team (user %s)", actor.id, assignee.id)
            raise Forbidden("You can only assign tasks to your team members")
        return assignee

    # ---- status transitions ----

    async def transition_status(self, task_id: int, actor: Actor, new_status, context: Optional[Mapping[str, Any]] = None) -> Task:
        context = context or {}
        async with self._session_factory() as session:
            repo = self._repo(session)
            task = await self._load(repo, task_id)

            current = TaskStatus(task.status)
            target = parse_enum(TaskStatus, new_status)
            if target is None:
                raise InvalidTransition(f"Unknown status {new_status!r}", from_status=current.value, to_status=str(new_status))
            rule = authorize(actor, task, current, target)

            previous_qa = task.qa_assigned_to
            previous_reviewer = task.last_reviewed_by
            now = self._clock()

            values = self._transition_values(current, target, actor, now)
            if not await repo.update_task_if(task_id, {"status": current.value}, values):
                raise InvalidTransition(
                    f"Task {task_id} is no longer {current.value}; reload and retry",
                    from_status=current.value,
                    to_status=target.value,
                )
            for body in context.get("notes", ()):
                await repo.add_note(task_id, actor.id, created_at=now, **note_columns(body))
            await repo.commit()
            await repo.refresh(task)

        logger.info("Task %s moved %s -> %s by user %s", task_id, current.value, target.value, actor.id)
        await self._after_transition(task, rule, target, previous_qa, previous_reviewer)
        return task

    @staticmethod
    def _transition_values(current: TaskStatus, target: TaskStatus, actor: Actor, now) -> Dict[str, Any]:
        values: Dict[str, Any] = {"status": target.value, "updated_at": now}
        # SET expressions read the row as it was, so the cleared QA is kept in last_qa_assigned_to
        remembered_qa = func.coalesce(Task.qa_assigned_to, Task.last_qa_assigned_to)
        if target == TaskStatus.WAITING_FOR_QA and current == TaskStatus.IN_PROGRESS:
            # a new QA cycle starts empty
            values.update(qa_assigned_to=None, qa_assigned_at=None, last_qa_assigned_to=remembered_qa)
        elif target == TaskStatus.REWORK:
            values.update(
                rework_count=Task.rework_count + 1,
                qa_assigned_to=None,
                qa_assigned_at=None,
                last_qa_assigned_to=remembered_qa,
                last_reviewed_by=actor.id,
            )
        elif target == TaskStatus.APPROVED:
            values.update(completed_at=now, last_reviewed_by=actor.id)
        return values

    async def _after_transition(self, task: Task, rule: TransitionRule, target: TaskStatus, previous_qa, previous_reviewer) -> None:
        if target in TIMERLESS_STATUSES:
            try:
                await self.timers.close_open(task.id)
            except WorkflowError as e:
                logger.error("Could not close timer for task %s after %s: %s", task.id, target.value, e.message)

        context = {
            "qa_reviewer_id": previous_qa,
            "previous_qa_id": task.last_qa_assigned_to,
            "previous_reviewer_id": previous_reviewer,
        }
        for event in rule.events:
            await self.notifications.notify(event, task, context)

    # ---- QA ----

    async def assign_qa(self, task_id: int, actor: Actor, qa_id: int) -> Task:
        async with self._session_factory() as session:
            repo = self._repo(session)
            task = await self._load(repo, task_id)

            if not actor.is_oversight:
                _deny(actor, task, "assign QA")

            qa_user = await repo.get_user(qa_id)
            if qa_user is None or qa_user.role != Role.QA.value or not qa_user.is_active:
                raise InvalidQAUser("Invalid QA user", field="qa_id")

            if task.status != TaskStatus.WAITING_FOR_QA.value:
                raise InvalidTransition(
                    "Can only assign QA to tasks waiting for review",
                    from_status=task.status,
                    to_status=TaskStatus.WAITING_FOR_QA.value,
                )
            if task.qa_assigned_to is not None:
                raise AlreadyAssigned("QA has already been assigned to this task. Reassignment is not allowed.")

            now = self._clock()
            claimed = await repo.update_task_if(
                task_id,
                {"status": TaskStatus.WAITING_FOR_QA.value, "qa_assigned_to": None},
                {"qa_assigned_to": qa_id, "qa_assigned_at": now, "updated_at": now},
            )
            if not claimed:
                await repo.refresh(task)
                if task.qa_assigned_to is not None:
                    raise AlreadyAssigned("QA has already been assigned to this task. Reassignment is not allowed.")
                raise InvalidTransition("Task is no longer waiting for review", from_status=task.status)
            await repo.commit()
            await repo.refresh(task)

        logger.info("QA %s assigned to task %s by %s", qa_id, task_id, actor.id)
        await self.notifications.notify(NotificationType.QA_REVIEW_REQUESTED, task, {"qa_reviewer_id": qa_id})
        return task

    async def submit_qa_review(
        self,
        task_id: int,
        actor: Actor,
        verdict,
        note: str,
        feedback: Sequence[FeedbackImage] = (),
    ) -> Task:
        """Record the reviewer's verdict note (plus feedback images) and apply it."""
        target = parse_enum(TaskStatus, verdict)
        if target not in (TaskStatus.APPROVED, TaskStatus.REWORK):
            raise InvalidTransition(f"A review can only approve or send to rework, not {verdict!r}")
        if not note or not note.strip():
            raise MissingField("note is required", field="note")

        verdict_note = Approval(note=note) if target == TaskStatus.APPROVED else Rejection(note=note)
        return await self.transition_status(task_id, actor, target, {"notes": [verdict_note, *feedback]})

    # ---- full edit ----

    async def edit_fields(self, task_id: int, actor: Actor, partial: Mapping[str, Any]) -> Task:
        async with self._session_factory() as session:
            repo = self._repo(session)
            task = await self._load(repo, task_id)

            if not actor.is_oversight:
                _deny(actor, task, "edit")

            unknown = set(partial) - EDITABLE_FIELDS
            if unknown:
                name = sorted(unknown)[0]
                raise ValidationError(f"{name} cannot be edited here", field=name)

            values: Dict[str, Any] = {}
            expected: Dict[str, Any] = {}
            now = self._clock()

            if "title" in partial:
                title = partial["title"]
                if not isinstance(title, str) or not title.strip():
                    raise ValidationError("title must not be empty", field="title")
                values["title"] = title.strip()
            if "description" in partial:
                values["description"] = partial["description"] or None
            if "priority" in partial:
                priority = parse_enum(Priority, partial["priority"])
                if priority is None:
                    raise ValidationError(f"Unknown priority {partial['priority']!r}", field="priority")
                values["priority"] = priority.value
            if "estimated_minutes" in partial:
                values["estimated_minutes"] = _positive_int(partial["estimated_minutes"], "estimated_minutes")
            if "files" in partial:
                values["files"] = _files(partial["files"])

            new_assignee = None
            if "assigned_to" in partial:
                # checked even when unchanged: the current assignee may have left the team
                assignee = await self._check_assignee(repo, actor, partial["assigned_to"], task.team_type, ValidationError)
                if assignee.id != task.assigned_to:
                    new_assignee = assignee
                    values["assigned_to"] = assignee.id
                    expected["assigned_to"] = task.assigned_to

            if "qa_assigned_to" in partial and partial["qa_assigned_to"] != task.qa_assigned_to:
                if task.qa_assigned_to is not None:
                    raise AlreadyAssigned("QA has already been assigned to this task. Reassignment is not allowed.")
                qa_user = await repo.get_user(partial["qa_assigned_to"])
                if qa_user is None or qa_user.role != Role.QA.value or not qa_user.is_active:
                    raise ValidationError("Invalid QA user", field="qa_assigned_to")
                values.update(qa_assigned_to=qa_user.id, qa_assigned_at=now)
                expected["qa_assigned_to"] = None

            if not values:
                return task

            values["updated_at"] = now
            if not await repo.update_task_if(task_id, expected, values):
                if "qa_assigned_to" in expected:
                    raise AlreadyAssigned("QA has already been assigned to this task. Reassignment is not allowed.")
                raise ValidationError("Task was changed concurrently; reload and retry", field="assigned_to")
            await repo.commit()
            await repo.refresh(task)

        logger.info("Task %s edited by %s: %s", task_id, actor.id, ", ".join(sorted(values)))
        if new_assignee is not None and new_assignee.role != Role.QA.value:
            try:
                await self.timers.start(task_id)
            except WorkflowError as e:
                logger.error("Could not start timer for reassigned task %s: %s", task_id, e.message)
            await self.notifications.notify(NotificationType.TASK_ASSIGNED, task, {"assignee_id": new_assignee.id})
        return task

    # ---- timers ----

    def _check_timer_access(self, actor: Actor, task) -> None:
        if actor.id != task.assigned_to and not actor.is_oversight:
            logger.warning("User %s tried to time task %s assigned to %s", actor.id, task.id, task.assigned_to)
            raise NotAuthorizedForTask("You are not assigned to this task")

    async def start_timer(self, task_id: int, actor: Actor):
        async with self._session_factory() as session:
            task = await self._load(self._repo(session), task_id)
        self._check_timer_access(actor, task)
        if task.status == TaskStatus.APPROVED.value:
            raise InvalidTransition("Approved tasks cannot be timed", from_status=task.status)
        return await self.timers.start(task_id)

    async def stop_timer(self, actor: Actor, task_id: Optional[int] = None) -> int:
        async with self._session_factory() as session:
            repo = self._repo(session)
            if task_id is None:
                running = await repo.open_timer_for_assignee(actor.id)
                if running is None:
                    raise NoActiveTimer("No active timer")
                task_id = running.task_id
            task = await self._load(repo, task_id)
        self._check_timer_access(actor, task)

        timer = await self.timers.stop(task_id)
        if elapsed_seconds(timer.start_time, timer.end_time) > 0:
            await self.notifications.notify(NotificationType.TASK_COMPLETED, task)
        return timer.duration_minutes

    async def get_timer_state(self, task_id: int) -> TimerState:
        return await self.timers.current_state(task_id)

    # ---- help ----

    async def request_help(self, task_id: int, actor: Actor) -> List[int]:
        async with self._session_factory() as session:
            task = await self._load(self._repo(session), task_id)
        if actor.role in HELP_DENIED_ROLES:
            _deny(actor, task, "request help")
        return await self.notifications.notify(NotificationType.HELP_REQUEST, task, {"requester": actor})

    # ---- listing ----

    async def list_tasks_for(self, actor: Actor) -> List[Task]:
        async with self._session_factory() as session:
            repo = self._repo(session)
            if actor.role in (Role.ADMIN, Role.PROJECT_MANAGER):
                return await repo.list_tasks()
            if actor.role == Role.TEAM_LEADER:
                members = await repo.team_member_ids(actor.id)
                team_type = actor.team_type.value if actor.team_type else None
                return await repo.list_tasks(team_type=team_type, assignee_ids=members, created_by=actor.id)
            if actor.role == Role.QA:
                return await repo.list_tasks(qa_assigned_to=actor.id, status=TaskStatus.WAITING_FOR_QA.value)
            return await repo.list_tasks(assigned_to=actor.id)

    async def get_task(self, task_id: int) -> Task:
        async with self._session_factory() as session:
            return await self._load(self._repo(session), task_id)
