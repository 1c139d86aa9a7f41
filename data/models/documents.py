# data/models/documents.py
# Beanie Document classes for the MongoDB backend. One per collection; the
# entity models in models.py stay plain pydantic so the in-memory store can
# hold them without a database.

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from beanie import Document
from beanie.odm.fields import Indexed as IndexedField
from pydantic import ConfigDict, Field


class StoredDocument(Document):
    """`id` is the entity id the services assign; `version` is bumped on every update."""
    id: Optional[str] = None
    version: int = 1


# ===== WALLET DOCUMENT =====

class WalletDocument(StoredDocument):
    user_id: str
    balance: int = 0
    total_earnings: int = 0
    total_withdrawals: int = 0
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    class Settings:
        name = "wallets"
        use_revision = True


# ===== USER LEVEL DOCUMENT =====

class UserLevelDocument(StoredDocument):
    user_id: str
    current_level: int = 1
    current_exp: int = 0
    total_exp: int = 0
    level_progress: int = 0
    last_level_up: datetime
    achievements: List[Dict[str, Any]] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    class Settings:
        name = "userLevels"
        use_revision = True


# ===== DAILY EARNING DOCUMENT =====

class DailyEarningDocument(StoredDocument):
    user_id: str
    date: datetime
    amount: int = 0
    source: str = "daily"
    description: str = ""
    status: str = "credited"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    class Settings:
        name = "dailyEarnings"
        use_revision = True
        indexes = [
            [("user_id", 1), ("source", 1), ("date", -1)],  # Login checks and streaks
        ]


# ===== LABEL DOCUMENT =====

class LabelDocument(StoredDocument):
    name: Annotated[str, IndexedField(unique=True)]
    description: str = ""
    icon: str = ""
    color: str = "#000000"
    reward: int = 0
    unlock_conditions: List[Dict[str, Any]] = Field(default_factory=list)
    category: str = "general"
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    class Settings:
        name = "labels"
        use_revision = True


# ===== INVESTMENT DOCUMENT =====

class UserInvestmentDocument(StoredDocument):
    user_id: str
    plan_id: str
    plan_name: str
    investment_amount: int
    start_date: datetime
    expiry_date: datetime
    current_level: int = 1
    total_referrals: int = 0
    total_earnings: int = 0
    last_payout_date: Optional[datetime] = None
    status: str = "active"
    created_at: datetime
    updated_at: datetime

    class Settings:
        name = "userInvestments"
        use_revision = True
        indexes = [
            [("user_id", 1), ("status", 1)],  # Active investment lookup
        ]


# ===== TRANSACTION DOCUMENT =====

class TransactionDocument(StoredDocument):
    user_id: str
    type: str
    amount: int
    description: str = ""
    status: str = "pending"
    reference: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    class Settings:
        name = "transactions"
        use_revision = True
        indexes = [
            [("user_id", 1), ("created_at", -1)],  # For user history
            [("user_id", 1), ("reference", 1)],
        ]


# ===== WITHDRAWAL DOCUMENT =====

class WithdrawalRequestDocument(StoredDocument):
    user_id: str
    amount: int
    status: str = "pending"
    payment_method: str = ""
    payment_details: Dict[str, Any] = Field(default_factory=dict)
    request_date: datetime
    processed_date: Optional[datetime] = None
    admin_notes: str = ""
    rejection_reason: str = ""
    created_at: datetime
    updated_at: datetime

    class Settings:
        name = "withdrawalRequests"
        use_revision = True
        indexes = [
            [("user_id", 1), ("request_date", -1)],  # For user withdrawal history
            [("status", 1), ("request_date", -1)],   # For admin pending withdrawals
        ]


# ===== NOTIFICATION DOCUMENT =====

class NotificationDocument(StoredDocument):
    user_id: str
    type: str
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    is_sent: bool = False
    created_at: datetime
    updated_at: datetime

    class Settings:
        name = "notifications"
        use_revision = True
        indexes = [
            [("user_id", 1), ("created_at", -1)],
        ]


# ===== USER STATS DOCUMENT =====

class UserStatsDocument(StoredDocument):
    """Maintained by the news service; only read here."""
    model_config = ConfigDict(extra="allow")

    news_read_count: int = 0

    class Settings:
        name = "userStats"
        use_revision = True


DOCUMENT_MODELS = {
    model.Settings.name: model
    for model in (
        WalletDocument,
        UserLevelDocument,
        DailyEarningDocument,
        LabelDocument,
        UserInvestmentDocument,
        TransactionDocument,
        WithdrawalRequestDocument,
        NotificationDocument,
        UserStatsDocument,
    )
}
