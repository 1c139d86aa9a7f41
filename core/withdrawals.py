# core/withdrawals.py
import logging
from typing import Any, Dict, Optional

from data.models import WithdrawalRequest
from data.repositories import TransactionRepository, WithdrawalRepository

from .clock import Clock
from .config import settings
from .errors import AccessDenied, InsufficientBalance, InvalidAmount, InvalidStatusTransition, NotFound
from .ledger import WalletLedger, validate_amount
from .notifications import NotificationService
from .storage import DocumentStore, WriteBatch, new_document_id, run_atomic

logger = logging.getLogger(__name__)

# pending -> approved|rejected -> (processing) -> completed
WITHDRAWAL_TRANSITIONS = {
    "pending": {"approved", "rejected"},
    "approved": {"processing", "completed"},
    "processing": {"completed"},
}

WITHDRAWAL_FIELDS = ("status", "admin_notes", "rejection_reason", "processed_date", "updated_at")


class WithdrawalService:
    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or Clock()
        self.withdrawals = WithdrawalRepository(store)
        self.transactions = TransactionRepository(store)
        self.ledger = WalletLedger(store, self.clock)
        self.notifier = NotificationService(store, self.clock)

    async def request(self, user_id: str, amount: int, payment_method: str,
                      payment_details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        validate_amount(amount)
        if amount < settings.MINIMUM_WITHDRAWAL:
            raise InvalidAmount(f"Minimum withdrawal is {settings.MINIMUM_WITHDRAWAL}")

        wallet = await self.ledger.get_or_create_wallet(user_id)
        if wallet.balance < amount:
            raise InsufficientBalance()

        now = self.clock.now()
        withdrawal = WithdrawalRequest(
            id=new_document_id(),
            user_id=user_id,
            amount=amount,
            payment_method=payment_method,
            payment_details=payment_details or {},
            request_date=now,
            created_at=now,
            updated_at=now,
        )
        # Balance is untouched until approval; the transaction stays pending until then
        transaction = self.ledger.recorder.build(
            user_id, "withdrawal", amount, f"Withdrawal request via {payment_method}",
            reference=withdrawal.id, status="pending",
            metadata={"paymentMethod": payment_method}, now=now,
        )
        batch = WriteBatch()
        self.withdrawals.stage_add(batch, withdrawal)
        self.ledger.recorder.stage_record(batch, transaction)
        await self.store.commit(batch)

        logger.info(f"[WITHDRAWAL] {user_id} requested {amount} via {payment_method} ({withdrawal.id})")
        return {"withdrawal": withdrawal.summary(), "transactionId": transaction.id}

    async def process(self, withdrawal_id: str, status: str, admin_notes: str = "",
                      rejection_reason: str = "") -> Dict[str, Any]:
        async def operation():
            withdrawal = await self.withdrawals.require(withdrawal_id, "Withdrawal request")
            if status not in WITHDRAWAL_TRANSITIONS.get(withdrawal.status, set()):
                raise InvalidStatusTransition(
                    f"Cannot move withdrawal from {withdrawal.status} to {status}"
                )

            now = self.clock.now()
            batch = WriteBatch()
            paired = await self.transactions.by_reference(withdrawal.user_id, withdrawal.id)
            transaction = next((t for t in paired if t.type == "withdrawal"), None)

            if status == "approved":
                if transaction is None:
                    raise NotFound("Withdrawal transaction not found")
                wallet = await self.ledger.get_or_create_wallet(withdrawal.user_id)
                self.ledger.apply_ledger_mutation(
                    batch, wallet, -withdrawal.amount, transaction, withdrawal=True, now=now
                )
            elif status == "rejected":
                if transaction is not None:
                    self.ledger.recorder.stage_status(batch, transaction, "cancelled", now)
                withdrawal.rejection_reason = rejection_reason

            if status in ("processing", "completed"):
                withdrawal.processed_date = now
            if admin_notes:
                withdrawal.admin_notes = admin_notes
            withdrawal.status = status
            withdrawal.updated_at = now
            self.withdrawals.stage_save(batch, withdrawal, *WITHDRAWAL_FIELDS)
            self.notifier.stage_withdrawal(batch, withdrawal.user_id, withdrawal.id, status, withdrawal.amount)
            await self.store.commit(batch)
            withdrawal.version += 1
            return withdrawal

        withdrawal = await run_atomic(operation, tag="WITHDRAWAL")
        logger.info(f"[WITHDRAWAL] {withdrawal_id} -> {status}")
        return withdrawal.summary()

    async def get(self, user_id: str, withdrawal_id: str) -> Dict[str, Any]:
        withdrawal = await self.withdrawals.require(withdrawal_id, "Withdrawal request")
        if withdrawal.user_id != user_id:
            raise AccessDenied()
        return withdrawal.summary()

    async def history(self, user_id: str, status: Optional[str] = None,
                      page: int = 1, limit: int = 20) -> Dict[str, Any]:
        return await self.withdrawals.history(user_id, status, page, limit)

    async def all_requests(self, status: Optional[str] = None, page: int = 1,
                           limit: int = 20) -> Dict[str, Any]:
        """Admin listing across every user."""
        return await self.withdrawals.history(None, status, page, limit)
