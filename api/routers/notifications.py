from fastapi import APIRouter, Depends, HTTPException

from api.auth import AuthenticatedUser, get_current_user
from api.dependencies import get_notification_writer
from api.schemas import MarkReadBody, MarkReadResponse, NotificationsResponse
from notifications.in_app import NotificationWriter

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationsResponse)
def list_notifications(
    user: AuthenticatedUser = Depends(get_current_user),
    writer: NotificationWriter = Depends(get_notification_writer),
):
    """Latest notifications and the unread count."""
    return NotificationsResponse(**writer.list_for_user(user.user_id))


@router.patch("", response_model=MarkReadResponse)
def mark_notification_read(
    body: MarkReadBody,
    user: AuthenticatedUser = Depends(get_current_user),
    writer: NotificationWriter = Depends(get_notification_writer),
):
    """Mark one of the caller's notifications read."""
    if not writer.mark_read(user.user_id, body.notificationId):
        raise HTTPException(status_code=404, detail="Notification not found")
    return MarkReadResponse(success=True)
