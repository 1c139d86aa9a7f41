# components/wallet.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field

from core.clock import Clock
from core.database import get_clock, get_store
from core.ledger import WalletLedger
from core.rate_limiter_slowapi import claim_limiter
from core.security import get_current_user_id
from core.storage import DocumentStore
from core.withdrawals import WithdrawalService

router = APIRouter(prefix="/api/wallet", tags=["Wallet"])


# --- DTOs ---

class WithdrawalIn(BaseModel):
    amount: int = Field(..., gt=0, description="Whole coins to withdraw")
    payment_method: str = Field(..., min_length=1, description="bank_transfer, upi, ...")
    payment_details: Dict[str, Any] = Field(default_factory=dict)


# --- Dependencies ---

def get_ledger(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock)) -> WalletLedger:
    return WalletLedger(store, clock)


def get_withdrawals(store: DocumentStore = Depends(get_store),
                    clock: Clock = Depends(get_clock)) -> WithdrawalService:
    return WithdrawalService(store, clock)


# --- Endpoints ---

@router.get("", response_model=dict)
async def get_wallet(
    user_id: str = Depends(get_current_user_id),
    ledger: WalletLedger = Depends(get_ledger),
):
    """Current balance and lifetime totals (the wallet is created on first access)."""
    return await ledger.balance(user_id)


@router.get("/transactions", response_model=dict)
async def get_transactions(
    type: Optional[str] = Query(None, pattern="^(credit|debit|withdrawal|earning)$"),
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(pending|completed|failed|cancelled)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    ledger: WalletLedger = Depends(get_ledger),
):
    return await ledger.recorder.history(user_id, type, status_filter, page, limit)


@router.get("/transactions/{transaction_id}", response_model=dict)
async def get_transaction(
    transaction_id: str,
    user_id: str = Depends(get_current_user_id),
    ledger: WalletLedger = Depends(get_ledger),
):
    transaction = await ledger.recorder.get(user_id, transaction_id)
    return transaction.summary()


@router.post("/withdrawals", response_model=dict, status_code=status.HTTP_201_CREATED)
@claim_limiter.limit("5/minute")
async def request_withdrawal(
    request: Request,
    body: WithdrawalIn,
    user_id: str = Depends(get_current_user_id),
    withdrawals: WithdrawalService = Depends(get_withdrawals),
):
    return await withdrawals.request(user_id, body.amount, body.payment_method, body.payment_details)


@router.get("/withdrawals", response_model=dict)
async def get_withdrawal_history(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    withdrawals: WithdrawalService = Depends(get_withdrawals),
):
    return await withdrawals.history(user_id, status_filter, page, limit)


@router.get("/withdrawals/{withdrawal_id}", response_model=dict)
async def get_withdrawal(
    withdrawal_id: str,
    user_id: str = Depends(get_current_user_id),
    withdrawals: WithdrawalService = Depends(get_withdrawals),
):
    return await withdrawals.get(user_id, withdrawal_id)
