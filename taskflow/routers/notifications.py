from fastapi import APIRouter, Depends
from taskflow.core.auth import get_current_actor
from taskflow.core.deps import get_workflow_engine
from taskflow.schemas.notification import NotificationListResponse, NotificationResponse

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.get("", response_model=NotificationListResponse)
async def get_notifications(
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    notifications, unread = await engine.notifications.list_for_user(actor.id)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=unread
    )


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    engine = Depends(get_workflow_engine),
    actor = Depends(get_current_actor)
):
    await engine.notifications.mark_read(notification_id, actor.id)
    return {"success": True}
