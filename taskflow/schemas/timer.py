from pydantic import BaseModel
from datetime import datetime
from typing import Optional

class TimerStart(BaseModel):
    task_id: int

class TimerStop(BaseModel):
    task_id: Optional[int] = None

class TimerResponse(BaseModel):
    id: int
    task_id: int
    start_time: datetime
    end_time: Optional[datetime]
    duration_minutes: Optional[int]
    is_rework: bool

    model_config = {"from_attributes": True}

class TimerStopResponse(BaseModel):
    success: bool = True
    duration_minutes: int

class TimerSnapshotResponse(BaseModel):
    id: int
    task_id: int
    start_time: datetime
    end_time: Optional[datetime] = None
    is_rework: bool
    elapsed_seconds: int
    duration_minutes: Optional[int] = None
    remaining_seconds: Optional[int] = None

    model_config = {"from_attributes": True}

class TimerStateResponse(BaseModel):
    status: str  # NO_TASK, APPROVED, USED, EXCEEDED, WARNING, RUNNING, AVAILABLE
    timer: Optional[TimerSnapshotResponse] = None
