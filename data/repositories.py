# data/repositories.py
"""
One repository per stored entity. Repositories turn store documents into
models and stage writes into a `WriteBatch`; they never commit on their own
except for lazy creation in `get_or_create`.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from core.errors import DocumentExists, NotFound
from core.storage import DocumentStore, Filter, Order, WriteBatch, new_document_id
from data.models import (
    DailyEarning, Label, Notification, Transaction, UserInvestment, UserLevel,
    Wallet, WithdrawalRequest,
)

logger = logging.getLogger(__name__)

M = TypeVar("M")

# --- Collection names ---
WALLETS = "wallets"
USER_LEVELS = "userLevels"
DAILY_EARNINGS = "dailyEarnings"
LABELS = "labels"
USER_INVESTMENTS = "userInvestments"
TRANSACTIONS = "transactions"
WITHDRAWAL_REQUESTS = "withdrawalRequests"
NOTIFICATIONS = "notifications"
USER_STATS = "userStats"


def paginate(items: List[Dict[str, Any]], total: int, page: int, limit: int) -> Dict[str, Any]:
    pages = (total + limit - 1) // limit if limit else 0
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": pages,
            "hasNext": page < pages,
            "hasPrev": page > 1,
        },
    }


class Repository(Generic[M]):
    collection: str
    model: Type[M]

    def __init__(self, store: DocumentStore):
        self.store = store

    def _load(self, doc: Optional[Dict[str, Any]]) -> Optional[M]:
        if doc is None:
            return None
        return self.model.model_validate(doc)

    async def get(self, doc_id: str) -> Optional[M]:
        return self._load(await self.store.get(self.collection, doc_id))

    async def require(self, doc_id: str, what: str | None = None) -> M:
        entity = await self.get(doc_id)
        if entity is None:
            raise NotFound(f"{what or self.model.__name__} not found")
        return entity

    async def find(self, filters: Optional[List[Filter]] = None, order_by: Optional[List[Order]] = None,
                   offset: int = 0, limit: Optional[int] = None) -> List[M]:
        docs = await self.store.query(self.collection, filters, order_by, offset, limit)
        return [self._load(doc) for doc in docs]

    async def count(self, filters: Optional[List[Filter]] = None) -> int:
        return await self.store.count(self.collection, filters)

    async def page(self, filters: List[Filter], order_by: List[Order], page: int, limit: int) -> Dict[str, Any]:
        page = max(page, 1)
        entities = await self.find(filters, order_by, offset=(page - 1) * limit, limit=limit)
        total = await self.count(filters)
        return paginate([e.summary() for e in entities], total, page, limit)

    async def create(self, entity: M) -> M:
        entity.id = await self.store.add(self.collection, entity.to_document(), entity.id)
        entity.version = 1
        return entity

    def stage_add(self, batch: WriteBatch, entity: M) -> str:
        """Stage an insert; the entity gets its id immediately so others can reference it."""
        entity.id = entity.id or new_document_id()
        batch.add(self.collection, entity.to_document(), entity.id)
        return entity.id

    def stage_save(self, batch: WriteBatch, entity: M, *field_names: str) -> None:
        """Stage an update of `field_names`, guarded by the version the entity was read at."""
        fields = entity.model_dump(include=set(field_names))
        batch.update(self.collection, entity.id, fields, expected_version=entity.version)


class PerUserRepository(Repository[M]):
    """Entities keyed by user id (one document per user, created on first access)."""

    def _new(self, user_id: str, now: datetime) -> M:
        return self.model(id=user_id, user_id=user_id, created_at=now, updated_at=now)

    async def get_or_create(self, user_id: str, now: datetime) -> M:
        existing = await self.get(user_id)
        if existing is not None:
            return existing

        entity = self._new(user_id, now)
        try:
            await self.create(entity)
        except DocumentExists:
            # Another request created it first
            return await self.require(user_id)
        logger.info(f"[{self.collection.upper()}] Created {self.model.__name__} for user {user_id}")
        return entity


class WalletRepository(PerUserRepository[Wallet]):
    collection = WALLETS
    model = Wallet


class UserLevelRepository(PerUserRepository[UserLevel]):
    collection = USER_LEVELS
    model = UserLevel

    def _new(self, user_id: str, now: datetime) -> UserLevel:
        return UserLevel(id=user_id, user_id=user_id, last_level_up=now, created_at=now, updated_at=now)


class DailyEarningRepository(Repository[DailyEarning]):
    collection = DAILY_EARNINGS
    model = DailyEarning

    async def between(self, user_id: str, start: datetime, end: datetime,
                      source: Optional[str] = None) -> List[DailyEarning]:
        filters: List[Filter] = [("user_id", "==", user_id), ("date", ">=", start), ("date", "<", end)]
        if source:
            filters.append(("source", "==", source))
        return await self.find(filters, [("date", "desc")])

    async def recent_by_source(self, user_id: str, source: str, offset: int = 0,
                               limit: int = 100) -> List[DailyEarning]:
        """One page of credited earnings from `source`, newest first."""
        return await self.find(
            [("user_id", "==", user_id), ("source", "==", source), ("status", "==", "credited")],
            [("date", "desc")],
            offset=offset,
            limit=limit,
        )

    async def history(self, user_id: str, source: Optional[str], page: int, limit: int) -> Dict[str, Any]:
        filters: List[Filter] = [("user_id", "==", user_id)]
        if source:
            filters.append(("source", "==", source))
        return await self.page(filters, [("date", "desc")], page, limit)


class LabelRepository(Repository[Label]):
    collection = LABELS
    model = Label

    async def active(self) -> List[Label]:
        return await self.find([("is_active", "==", True)], [("name", "asc")])

    async def by_name(self, name: str) -> Optional[Label]:
        found = await self.find([("name", "==", name)], limit=1)
        return found[0] if found else None


class InvestmentRepository(Repository[UserInvestment]):
    collection = USER_INVESTMENTS
    model = UserInvestment

    async def active_for_user(self, user_id: str) -> Optional[UserInvestment]:
        found = await self.find(
            [("user_id", "==", user_id), ("status", "==", "active")],
            [("start_date", "desc")],
            limit=1,
        )
        return found[0] if found else None

    async def for_user(self, user_id: str) -> List[UserInvestment]:
        return await self.find([("user_id", "==", user_id)], [("start_date", "desc")])


class TransactionRepository(Repository[Transaction]):
    collection = TRANSACTIONS
    model = Transaction

    async def history(self, user_id: str, type: Optional[str], status: Optional[str],
                      page: int, limit: int) -> Dict[str, Any]:
        filters: List[Filter] = [("user_id", "==", user_id)]
        if type:
            filters.append(("type", "==", type))
        if status:
            filters.append(("status", "==", status))
        return await self.page(filters, [("created_at", "desc")], page, limit)

    async def recent(self, user_id: str, limit: int = 5) -> List[Transaction]:
        return await self.find([("user_id", "==", user_id)], [("created_at", "desc")], limit=limit)

    async def by_reference(self, user_id: str, reference: str) -> List[Transaction]:
        return await self.find(
            [("user_id", "==", user_id), ("reference", "==", reference)],
            [("created_at", "asc")],
        )


class WithdrawalRepository(Repository[WithdrawalRequest]):
    collection = WITHDRAWAL_REQUESTS
    model = WithdrawalRequest

    async def history(self, user_id: Optional[str], status: Optional[str],
                      page: int, limit: int) -> Dict[str, Any]:
        filters: List[Filter] = []
        if user_id:
            filters.append(("user_id", "==", user_id))
        if status:
            filters.append(("status", "==", status))
        return await self.page(filters, [("request_date", "desc")], page, limit)

    async def pending_total(self, user_id: str) -> Dict[str, int]:
        pending = await self.find([("user_id", "==", user_id), ("status", "in", ["pending", "approved", "processing"])])
        return {"count": len(pending), "amount": sum(w.amount for w in pending)}


class NotificationRepository(Repository[Notification]):
    collection = NOTIFICATIONS
    model = Notification

    async def unread(self, user_id: str) -> List[Notification]:
        return await self.find([("user_id", "==", user_id), ("is_read", "==", False)])


class UserStatsRepository:
    """Read-only view of per-user counters maintained by the news service."""
    collection = USER_STATS

    def __init__(self, store: DocumentStore):
        self.store = store

    async def news_read_count(self, user_id: str) -> int:
        doc = await self.store.get(self.collection, user_id)
        if not doc:
            return 0
        return int(doc.get("news_read_count", doc.get("newsReadCount", 0)))
