# data/models/__init__.py
# Export all models for easy importing

from .models import (
    NOTIFICATION_TYPES, Achievement, DailyEarning, Label, Notification, Transaction, UnlockCondition,
    UserInvestment, UserLevel, UserMetrics, Wallet, WithdrawalRequest, utcnow,
)

__all__ = [
    "NOTIFICATION_TYPES", "Achievement", "DailyEarning", "Label", "Notification", "Transaction", "UnlockCondition",
    "UserInvestment", "UserLevel", "UserMetrics", "Wallet", "WithdrawalRequest", "utcnow",
]
