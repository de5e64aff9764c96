from pydantic import BaseModel, Field
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union


class Comment(BaseModel):
    kind: Literal["COMMENT"] = "COMMENT"
    note: str = Field(..., min_length=1)

class Approval(BaseModel):
    kind: Literal["APPROVAL"] = "APPROVAL"
    note: str = Field(..., min_length=1)

class Rejection(BaseModel):
    kind: Literal["REJECTION"] = "REJECTION"
    note: str = Field(..., min_length=1)

class FeedbackImage(BaseModel):
    kind: Literal["FEEDBACK_IMAGE"] = "FEEDBACK_IMAGE"
    image_ref: str = Field(..., min_length=1)
    caption: Optional[str] = None
    note: str = "Feedback image"


NoteBody = Annotated[Union[Comment, Approval, Rejection, FeedbackImage], Field(discriminator="kind")]

_BODIES = {"COMMENT": Comment, "APPROVAL": Approval, "REJECTION": Rejection, "FEEDBACK_IMAGE": FeedbackImage}


def note_columns(body) -> dict:
    """Flatten a note body into task_notes columns."""
    columns = {"kind": body.kind, "note": body.note}
    if isinstance(body, FeedbackImage):
        columns.update(image_ref=body.image_ref, caption=body.caption)
    return columns


def note_body(row):
    """Rebuild the typed body of a stored note."""
    cls = _BODIES[row.kind]
    if cls is FeedbackImage:
        return FeedbackImage(image_ref=row.image_ref or "", caption=row.caption, note=row.note)
    return cls(note=row.note)


class NoteCreate(BaseModel):
    task_id: int
    body: NoteBody

class FeedbackUpdate(BaseModel):
    note: Optional[str] = None
    caption: Optional[str] = None
    image_ref: Optional[str] = None

class NoteResponse(BaseModel):
    id: int
    task_id: int
    user_id: int
    created_at: Optional[datetime]
    body: NoteBody

class NoteListResponse(BaseModel):
    notes: List[NoteResponse]
