# taskflow/core/errors.py
from typing import Optional


class WorkflowError(Exception):
    """
    Base error for every core operation.

    ``kind`` is stable and machine readable, ``message`` is safe to show to a
    user. Nothing from the storage layer is carried across the boundary.
    """

    kind = "WorkflowError"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class NotFound(WorkflowError):
    kind = "NotFound"


class Forbidden(WorkflowError):
    kind = "Forbidden"


class InvalidTransition(WorkflowError):
    kind = "InvalidTransition"

    def __init__(self, message: str, from_status: Optional[str] = None, to_status: Optional[str] = None):
        super().__init__(message)
        self.from_status = from_status
        self.to_status = to_status

    @classmethod
    def between(cls, from_status, to_status) -> "InvalidTransition":
        src = getattr(from_status, "value", from_status)
        dst = getattr(to_status, "value", to_status)
        return cls(f"Cannot move task from {src} to {dst}", from_status=src, to_status=dst)


class AlreadyAssigned(WorkflowError):
    kind = "AlreadyAssigned"


class ValidationError(WorkflowError):
    kind = "ValidationError"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class MissingField(ValidationError):
    kind = "MissingField"


class InvalidAssignee(ValidationError):
    kind = "InvalidAssignee"


class InvalidQA(ValidationError):
    kind = "InvalidQA"


class InvalidQAUser(ValidationError):
    kind = "InvalidQAUser"


class NotAuthorizedForTask(WorkflowError):
    kind = "NotAuthorizedForTask"


class NoActiveTimer(WorkflowError):
    kind = "NoActiveTimer"


class StorageError(WorkflowError):
    kind = "StorageError"
    retryable = True
