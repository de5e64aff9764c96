# taskflow/core/roles.py
from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    PROJECT_MANAGER = "PROJECT_MANAGER"
    TEAM_LEADER = "TEAM_LEADER"
    DEVELOPER = "DEVELOPER"
    DESIGNER = "DESIGNER"
    PROGRAMMER = "PROGRAMMER"
    QA = "QA"


class TeamType(str, Enum):
    DEVELOPER = "DEVELOPER"
    DESIGNER = "DESIGNER"
    PROGRAMMER = "PROGRAMMER"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_FOR_QA = "WAITING_FOR_QA"
    APPROVED = "APPROVED"
    REWORK = "REWORK"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class NotificationType(str, Enum):
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_COMPLETED = "TASK_COMPLETED"
    QA_REVIEW_REQUESTED = "QA_REVIEW_REQUESTED"
    READY_FOR_ASSIGNMENT = "READY_FOR_ASSIGNMENT"
    TASK_REWORK = "TASK_REWORK"
    TASK_APPROVED = "TASK_APPROVED"
    TASK_RESUBMITTED = "TASK_RESUBMITTED"
    HELP_REQUEST = "HELP_REQUEST"
    TIME_EXCEEDED = "TIME_EXCEEDED"


class NoteKind(str, Enum):
    COMMENT = "COMMENT"
    APPROVAL = "APPROVAL"
    REJECTION = "REJECTION"
    FEEDBACK_IMAGE = "FEEDBACK_IMAGE"


class TimerStatus(str, Enum):
    NO_TASK = "NO_TASK"
    APPROVED = "APPROVED"
    USED = "USED"
    EXCEEDED = "EXCEEDED"
    WARNING = "WARNING"
    RUNNING = "RUNNING"
    AVAILABLE = "AVAILABLE"


# Admin, project managers and team leaders manage tasks and receive oversight notifications
OVERSIGHT_ROLES = frozenset({Role.ADMIN, Role.PROJECT_MANAGER, Role.TEAM_LEADER})

# Roles that may not raise help requests
HELP_DENIED_ROLES = OVERSIGHT_ROLES | {Role.QA}

# States in which a task carries no running timer
TIMERLESS_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.APPROVED})


def parse_enum(enum_cls, raw):
    """Return the enum member for ``raw`` or None when it is not part of the closed set."""
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        return None
