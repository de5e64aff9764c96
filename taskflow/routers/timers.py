from fastapi import APIRouter, Depends, status
from taskflow.core.auth import get_current_actor
from taskflow.core.deps import get_workflow_engine
from taskflow.schemas.timer import (
    TimerStart, TimerStop, TimerResponse, TimerStopResponse, TimerStateResponse, TimerSnapshotResponse
)

router = APIRouter(prefix="/timers", tags=["timers"])

@router.post("", response_model=TimerResponse, status_code=status.HTTP_201_CREATED)
async def start_timer(
    timer_in: TimerStart,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    return await engine.start_timer(timer_in.task_id, actor)


@router.post("/stop", response_model=TimerStopResponse)
async def stop_my_timer(
    stop_in: TimerStop,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    duration = await engine.stop_timer(actor, stop_in.task_id)
    return TimerStopResponse(duration_minutes=duration)


@router.post("/{task_id}/stop", response_model=TimerStopResponse)
async def stop_timer(
    task_id: int,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    duration = await engine.stop_timer(actor, task_id)
    return TimerStopResponse(duration_minutes=duration)


@router.get("/{task_id}/current", response_model=TimerStateResponse)
async def current_timer(
    task_id: int,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    # polled by clients; the first EXCEEDED observation triggers the time-exceeded notice
    state = await engine.get_timer_state(task_id)
    timer = TimerSnapshotResponse.model_validate(state.timer) if state.timer else None
    return TimerStateResponse(status=state.state.value, timer=timer)
