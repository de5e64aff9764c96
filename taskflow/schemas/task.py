from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from taskflow.schemas.note import FeedbackImage

class TaskFile(BaseModel):
    url: str = Field(..., min_length=1)
    name: Optional[str] = None

class TaskCreate(BaseModel):
    project_id: Optional[int] = None
    team_type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    assigned_to: Optional[int] = None
    qa_assigned_to: Optional[int] = None
    estimated_minutes: Optional[int] = None
    files: List[TaskFile] = []

class TaskCreated(BaseModel):
    success: bool = True
    task_id: int

class TaskStatusUpdate(BaseModel):
    status: str  # PENDING, IN_PROGRESS, WAITING_FOR_QA, APPROVED, REWORK

class TaskAssignQA(BaseModel):
    qa_id: int

class TaskEdit(BaseModel):
    # Partial update: only fields present in the request body are applied
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    assigned_to: Optional[int] = None
    qa_assigned_to: Optional[int] = None
    estimated_minutes: Optional[int] = None
    files: Optional[List[TaskFile]] = None

class QAReviewCreate(BaseModel):
    status: str  # APPROVED or REWORK
    note: str = Field(..., min_length=1)
    feedback: List[FeedbackImage] = []

class HelpRequestResponse(BaseModel):
    success: bool = True
    notified: int

class TaskResponse(BaseModel):
    id: int
    project_id: int
    team_type: str
    title: str
    description: Optional[str]
    priority: str
    status: str
    assigned_by: int
    assigned_to: int
    qa_assigned_to: Optional[int]
    qa_assigned_at: Optional[datetime]
    rework_count: int
    estimated_minutes: Optional[int]
    files: Optional[List[TaskFile]] = None
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]

    model_config = {"from_attributes": True}

class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
