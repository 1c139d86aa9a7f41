# data/models/models.py
# All stored entities are consolidated here to avoid circular imports

from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, ClassVar, Dict, List, Optional, Set, Union

from core.game_logic import EXP_UNIT, MAX_LEVEL, exp_for_next_level


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Notification types ---

NOTIFICATION_TYPES = ("earnings", "reward", "withdrawal", "system")


class StoredModel(BaseModel):
    """
    Base for every persisted entity. Attributes are snake_case in Python and
    in storage; `summary()` emits the camelCase projection the API returns.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[str] = None
    version: int = 0

    summary_exclude: ClassVar[Set[str]] = {"version"}

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id", "version"})

    def summary(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude=self.summary_exclude)


# ===== WALLET MODEL =====

class Wallet(StoredModel):
    user_id: str
    balance: int = 0
    total_earnings: int = 0
    total_withdrawals: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    summary_exclude: ClassVar[Set[str]] = {"version", "created_at", "updated_at"}


# ===== USER LEVEL MODEL =====

class Achievement(BaseModel):
    """Snapshot of a label taken at claim time."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    label_id: str
    name: str
    description: str = ""
    reward: int = 0
    unlocked_at: datetime = Field(default_factory=utcnow)


class UserLevel(StoredModel):
    user_id: str
    current_level: int = 1
    current_exp: int = 0
    total_exp: int = 0
    level_progress: int = 0  # percentage to next level
    last_level_up: datetime = Field(default_factory=utcnow)
    achievements: List[Achievement] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    summary_exclude: ClassVar[Set[str]] = {"version", "created_at", "updated_at"}

    def has_achievement(self, label_id: str) -> bool:
        return any(a.label_id == label_id for a in self.achievements)

    def summary(self, max_level: int = MAX_LEVEL, exp_unit: int = EXP_UNIT) -> Dict[str, Any]:
        data = super().summary()
        data["expForNextLevel"] = exp_for_next_level(self.current_level, self.current_exp, max_level, exp_unit)
        return data


# ===== DAILY EARNING MODEL =====

class DailyEarning(StoredModel):
    user_id: str
    date: datetime = Field(default_factory=utcnow)
    amount: int = 0
    source: str = "daily"  # daily_login, bonus, referral, ...
    description: str = ""
    status: str = "credited"  # credited | pending | cancelled
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    summary_exclude: ClassVar[Set[str]] = {"version", "metadata", "created_at", "updated_at"}


# ===== LABEL MODEL =====

class UnlockCondition(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str
    value: Union[int, float]
    operator: str = "gte"


class Label(StoredModel):
    name: str
    description: str = ""
    icon: str = ""
    color: str = "#000000"
    reward: int = 0  # reward amount when claimed
    unlock_conditions: List[UnlockCondition] = Field(default_factory=list)
    category: str = "general"  # achievement, milestone, special
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    summary_exclude: ClassVar[Set[str]] = {"version", "created_at", "updated_at"}


# ===== INVESTMENT MODEL =====

class UserInvestment(StoredModel):
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
    status: str = "active"  # active | expired | cancelled
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ===== TRANSACTION MODEL =====

class Transaction(StoredModel):
    user_id: str
    type: str  # credit | debit | withdrawal | earning
    amount: int
    description: str = ""
    status: str = "pending"  # pending | completed | failed | cancelled
    reference: str = ""  # id of the entity that caused the balance change
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    summary_exclude: ClassVar[Set[str]] = {"version", "metadata", "updated_at"}


# ===== WITHDRAWAL MODEL =====

class WithdrawalRequest(StoredModel):
    user_id: str
    amount: int
    status: str = "pending"  # pending | approved | rejected | processing | completed
    payment_method: str = ""  # bank_transfer, upi, ...
    payment_details: Dict[str, Any] = Field(default_factory=dict)
    request_date: datetime = Field(default_factory=utcnow)
    processed_date: Optional[datetime] = None
    admin_notes: str = ""
    rejection_reason: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Payment details stay server side
    summary_exclude: ClassVar[Set[str]] = {"version", "payment_details", "created_at", "updated_at"}


# ===== NOTIFICATION MODEL =====

class Notification(StoredModel):
    user_id: str
    type: str  # earnings | reward | withdrawal | system
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    is_sent: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    summary_exclude: ClassVar[Set[str]] = {"version", "user_id"}


# ===== METRICS SNAPSHOT =====

class UserMetrics(BaseModel):
    """What label unlock conditions are evaluated against."""
    login_streak: int = 0
    total_earnings: int = 0
    current_level: int = 1
    total_referrals: int = 0
    news_read_count: int = 0
