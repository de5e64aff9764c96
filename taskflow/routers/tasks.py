from fastapi import APIRouter, Depends, status
from taskflow.core.auth import get_current_actor
from taskflow.core.deps import get_workflow_engine
from taskflow.schemas.task import (
    TaskCreate, TaskCreated, TaskStatusUpdate, TaskAssignQA, TaskEdit,
    QAReviewCreate, HelpRequestResponse, TaskResponse, TaskListResponse
)

router = APIRouter(prefix="/tasks", tags=["tasks"])

@router.get("", response_model=TaskListResponse)
async def list_tasks(
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    tasks = await engine.list_tasks_for(actor)
    return TaskListResponse(tasks=tasks)


@router.post("", response_model=TaskCreated, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    task_id = await engine.create_task(actor, task_in.model_dump())
    return TaskCreated(task_id=task_id)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    return await engine.get_task(task_id)


@router.put("/{task_id}/status", response_model=TaskResponse)
async def update_status(
    task_id: int,
    status_in: TaskStatusUpdate,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    return await engine.transition_status(task_id, actor, status_in.status)


@router.post("/{task_id}/assign-qa", response_model=TaskResponse)
async def assign_qa(
    task_id: int,
    qa_in: TaskAssignQA,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    return await engine.assign_qa(task_id, actor, qa_in.qa_id)


@router.patch("/{task_id}", response_model=TaskResponse)
async def edit_task(
    task_id: int,
    edit_in: TaskEdit,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    # only fields the client actually sent
    return await engine.edit_fields(task_id, actor, edit_in.model_dump(exclude_unset=True))


@router.post("/{task_id}/review", response_model=TaskResponse)
async def review_task(
    task_id: int,
    review_in: QAReviewCreate,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    return await engine.submit_qa_review(task_id, actor, review_in.status, review_in.note, review_in.feedback)


@router.post("/{task_id}/help", response_model=HelpRequestResponse, status_code=status.HTTP_201_CREATED)
async def request_help(
    task_id: int,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    notified = await engine.request_help(task_id, actor)
    return HelpRequestResponse(notified=len(notified))
