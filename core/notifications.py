# core/notifications.py
import logging
from typing import Any, Dict, Optional

from data.models import NOTIFICATION_TYPES, Notification
from data.repositories import NotificationRepository

from .clock import Clock
from .errors import AccessDenied, InvalidAmount
from .storage import DocumentStore, WriteBatch

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or Clock()
        self.notifications = NotificationRepository(store)

    def build(self, user_id: str, type: str, title: str, message: str,
              data: Optional[Dict[str, Any]] = None) -> Notification:
        if type not in NOTIFICATION_TYPES:
            type = "system"
        now = self.clock.now()
        return Notification(
            user_id=user_id, type=type, title=title, message=message,
            data=data or {}, created_at=now, updated_at=now,
        )

    def stage(self, batch: WriteBatch, user_id: str, type: str, title: str, message: str,
              data: Optional[Dict[str, Any]] = None) -> Notification:
        """Queue a notification alongside the state change that caused it."""
        notification = self.build(user_id, type, title, message, data)
        self.notifications.stage_add(batch, notification)
        return notification

    async def create(self, user_id: str, type: str, title: str, message: str,
                     data: Optional[Dict[str, Any]] = None) -> Notification:
        notification = await self.notifications.create(self.build(user_id, type, title, message, data))
        logger.info(f"[NOTIFY] {type} notification {notification.id} for {user_id}")
        return notification

    # --- Templates ---

    def stage_earnings(self, batch: WriteBatch, user_id: str, amount: int, source: str) -> Notification:
        return self.stage(
            batch, user_id, "earnings", "Earnings Credited",
            f"You earned {amount} coins from {source.replace('_', ' ')}",
            {"amount": amount, "source": source},
        )

    def stage_reward(self, batch: WriteBatch, user_id: str, label_name: str, reward: int) -> Notification:
        message = f"You unlocked the {label_name} label"
        if reward:
            message += f" and received {reward} coins"
        return self.stage(batch, user_id, "reward", "Achievement Unlocked", message,
                          {"label": label_name, "reward": reward})

    def stage_level_up(self, batch: WriteBatch, user_id: str, level: int, title: str) -> Notification:
        return self.stage(batch, user_id, "reward", "Level Up!",
                          f"Congratulations! You reached level {level} ({title})",
                          {"level": level, "title": title})

    def stage_withdrawal(self, batch: WriteBatch, user_id: str, withdrawal_id: str,
                         status: str, amount: int) -> Notification:
        return self.stage(
            batch, user_id, "withdrawal", "Withdrawal Update",
            f"Your withdrawal of {amount} coins is now {status}",
            {"withdrawalId": withdrawal_id, "status": status, "amount": amount},
        )

    # --- Read / update ---

    async def list_notifications(self, user_id: str, page: int = 1, limit: int = 20,
                                 type: Optional[str] = None, is_read: Optional[bool] = None) -> Dict[str, Any]:
        if limit <= 0:
            raise InvalidAmount("Limit must be positive")
        filters = [("user_id", "==", user_id)]
        if type:
            filters.append(("type", "==", type))
        if is_read is not None:
            filters.append(("is_read", "==", is_read))
        result = await self.notifications.page(filters, [("created_at", "desc")], page, limit)
        result["unreadCount"] = await self.unread_count(user_id)
        return result

    async def unread_count(self, user_id: str) -> int:
        return await self.notifications.count([("user_id", "==", user_id), ("is_read", "==", False)])

    async def _owned(self, user_id: str, notification_id: str) -> Notification:
        notification = await self.notifications.require(notification_id, "Notification")
        if notification.user_id != user_id:
            raise AccessDenied()
        return notification

    async def mark_read(self, user_id: str, notification_id: str) -> Notification:
        notification = await self._owned(user_id, notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.updated_at = self.clock.now()
            batch = WriteBatch()
            self.notifications.stage_save(batch, notification, "is_read", "updated_at")
            await self.store.commit(batch)
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        unread = await self.notifications.unread(user_id)
        if not unread:
            return 0
        now = self.clock.now()
        batch = WriteBatch()
        for notification in unread:
            notification.is_read = True
            notification.updated_at = now
            batch.update(self.notifications.collection, notification.id,
                         {"is_read": True, "updated_at": now})
        await self.store.commit(batch)
        logger.info(f"[NOTIFY] Marked {len(unread)} notifications read for {user_id}")
        return len(unread)

    async def delete(self, user_id: str, notification_id: str) -> None:
        await self._owned(user_id, notification_id)
        await self.store.delete(self.notifications.collection, notification_id)
