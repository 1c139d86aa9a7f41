# components/notifications.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from core.clock import Clock
from core.database import get_clock, get_store
from core.notifications import NotificationService
from core.security import get_current_user_id
from core.storage import DocumentStore

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


def get_notifier(store: DocumentStore = Depends(get_store),
                 clock: Clock = Depends(get_clock)) -> NotificationService:
    return NotificationService(store, clock)


@router.get("", response_model=dict)
async def get_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[str] = Query(None, pattern="^(earnings|reward|withdrawal|system)$"),
    is_read: Optional[bool] = Query(None, alias="isRead"),
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationService = Depends(get_notifier),
):
    return await notifier.list_notifications(user_id, page, limit, type, is_read)


@router.get("/unread-count", response_model=dict)
async def get_unread_count(
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationService = Depends(get_notifier),
):
    return {"unreadCount": await notifier.unread_count(user_id)}


@router.put("/read-all", response_model=dict)
async def mark_all_read(
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationService = Depends(get_notifier),
):
    return {"updated": await notifier.mark_all_read(user_id)}


@router.put("/{notification_id}/read", response_model=dict)
async def mark_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationService = Depends(get_notifier),
):
    notification = await notifier.mark_read(user_id, notification_id)
    return notification.summary()


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationService = Depends(get_notifier),
):
    await notifier.delete(user_id, notification_id)
