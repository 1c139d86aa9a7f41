# core/errors.py
"""
Error taxonomy for the rewards engine.

Every error carries the HTTP status the API layer should answer with, so the
routers never have to translate them one by one.
"""


class RewardsError(Exception):
    status_code = 400

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return cls.__name__


class NotFound(RewardsError):
    status_code = 404


class InsufficientBalance(RewardsError):
    status_code = 400

    @classmethod
    def default_message(cls) -> str:
        return "Insufficient wallet balance"


class InvalidAmount(RewardsError):
    status_code = 400

    @classmethod
    def default_message(cls) -> str:
        return "Amount must be a positive whole number"


class InvalidRequest(RewardsError):
    status_code = 400


class DuplicateActiveInvestment(RewardsError):
    status_code = 409

    @classmethod
    def default_message(cls) -> str:
        return "You already have an active investment plan"


class AlreadyClaimedToday(RewardsError):
    status_code = 409

    @classmethod
    def default_message(cls) -> str:
        return "Already claimed for today"


class AlreadyClaimed(RewardsError):
    status_code = 409

    @classmethod
    def default_message(cls) -> str:
        return "Label reward already claimed"


class ConditionsNotMet(RewardsError):
    status_code = 400

    @classmethod
    def default_message(cls) -> str:
        return "Label conditions not met yet"


class AccessDenied(RewardsError):
    status_code = 403

    @classmethod
    def default_message(cls) -> str:
        return "Access denied"


class InvestmentNotActive(RewardsError):
    status_code = 400

    @classmethod
    def default_message(cls) -> str:
        return "Investment is not active"


class InvalidStatusTransition(RewardsError):
    status_code = 400


class DuplicateLabel(RewardsError):
    status_code = 409

    @classmethod
    def default_message(cls) -> str:
        return "Label with this name already exists"


# --- Storage layer ---

class StorageError(RewardsError):
    status_code = 503

    @classmethod
    def default_message(cls) -> str:
        return "Storage operation failed"


class VersionConflict(StorageError):
    """A document changed between read and write (optimistic check failed)."""
    status_code = 409


class DocumentExists(StorageError):
    status_code = 409


# --- API surface ---

async def rewards_error_handler(request, exc: RewardsError):
    """Answer engine errors with the same body shape as the rate-limit handler."""
    from fastapi.responses import JSONResponse
    from datetime import datetime, timezone

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "status_code": exc.status_code,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


def setup_error_handling(app):
    app.add_exception_handler(RewardsError, rewards_error_handler)
    return app
