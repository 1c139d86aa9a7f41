# core/ledger.py
"""
Wallet ledger and transaction recorder.

Every balance change goes through `WalletLedger.apply_ledger_mutation`, which
stages the wallet update (guarded by the wallet version) and its transaction
record into the same batch. Callers add their own documents to that batch
(investment, achievement, daily earning...) and commit once.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from data.models import Transaction, Wallet
from data.repositories import TransactionRepository, WalletRepository

from .clock import Clock
from .errors import AccessDenied, InsufficientBalance, InvalidAmount, InvalidStatusTransition
from .storage import DocumentStore, WriteBatch, run_atomic

logger = logging.getLogger(__name__)

WALLET_FIELDS = ("balance", "total_earnings", "total_withdrawals", "updated_at")


def validate_amount(amount) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise InvalidAmount()
    return amount


class TransactionRecorder:
    """Append-only audit log. Only `status` may change, and only out of pending."""

    TRANSITIONS = {
        "pending": {"completed", "failed", "cancelled"},
    }

    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None):
        self.clock = clock or Clock()
        self.transactions = TransactionRepository(store)

    def build(self, user_id: str, type: str, amount: int, description: str = "",
              reference: str = "", status: str = "completed",
              metadata: Optional[Dict[str, Any]] = None, now: Optional[datetime] = None) -> Transaction:
        now = now or self.clock.now()
        return Transaction(
            user_id=user_id,
            type=type,
            amount=amount,
            description=description,
            status=status,
            reference=reference,
            metadata=metadata or {},
            created_at=now,
            updated_at=now,
        )

    def stage_record(self, batch: WriteBatch, transaction: Transaction) -> str:
        return self.transactions.stage_add(batch, transaction)

    def stage_status(self, batch: WriteBatch, transaction: Transaction, status: str,
                     now: Optional[datetime] = None) -> None:
        allowed = self.TRANSITIONS.get(transaction.status, set())
        if status not in allowed:
            raise InvalidStatusTransition(
                f"Transaction cannot move from {transaction.status} to {status}"
            )
        transaction.status = status
        transaction.updated_at = now or self.clock.now()
        self.transactions.stage_save(batch, transaction, "status", "updated_at")

    async def update_status(self, transaction_id: str, status: str) -> Transaction:
        async def operation():
            transaction = await self.transactions.require(transaction_id, "Transaction")
            batch = WriteBatch()
            self.stage_status(batch, transaction, status)
            await self.transactions.store.commit(batch)
            transaction.version += 1
            return transaction

        transaction = await run_atomic(operation, tag="TRANSACTION")
        logger.info(f"[TRANSACTION] {transaction_id} -> {status}")
        return transaction

    async def get(self, user_id: str, transaction_id: str) -> Transaction:
        transaction = await self.transactions.require(transaction_id, "Transaction")
        if transaction.user_id != user_id:
            raise AccessDenied()
        return transaction

    async def history(self, user_id: str, type: Optional[str] = None, status: Optional[str] = None,
                      page: int = 1, limit: int = 20) -> Dict[str, Any]:
        return await self.transactions.history(user_id, type, status, page, limit)

    async def find_by_reference(self, user_id: str, reference: str) -> List[Transaction]:
        return await self.transactions.by_reference(user_id, reference)


class WalletLedger:
    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or Clock()
        self.wallets = WalletRepository(store)
        self.recorder = TransactionRecorder(store, self.clock)

    async def get_or_create_wallet(self, user_id: str) -> Wallet:
        return await self.wallets.get_or_create(user_id, self.clock.now())

    def apply_ledger_mutation(self, batch: WriteBatch, wallet: Wallet, delta: int,
                              transaction: Transaction, withdrawal: bool = False,
                              now: Optional[datetime] = None) -> Transaction:
        """
        Apply `delta` to the wallet in memory and stage it together with its
        transaction. A transaction that is already stored (a pending withdrawal)
        is moved to completed instead of being recorded again.
        """
        if delta == 0:
            raise InvalidAmount()
        now = now or self.clock.now()

        if delta > 0:
            wallet.balance += delta
            wallet.total_earnings += delta
        else:
            if -delta > wallet.balance:
                raise InsufficientBalance()
            wallet.balance += delta
            if withdrawal:
                wallet.total_withdrawals += -delta
        wallet.updated_at = now
        self.wallets.stage_save(batch, wallet, *WALLET_FIELDS)

        if transaction.version:
            self.recorder.stage_status(batch, transaction, "completed", now)
        else:
            transaction.amount = abs(delta)
            self.recorder.stage_record(batch, transaction)
        return transaction

    def stage_credit(self, batch: WriteBatch, wallet: Wallet, amount: int, description: str,
                     reference: str = "", type: str = "credit",
                     metadata: Optional[Dict[str, Any]] = None,
                     now: Optional[datetime] = None) -> Transaction:
        validate_amount(amount)
        transaction = self.recorder.build(
            wallet.user_id, type, amount, description, reference, metadata=metadata, now=now
        )
        return self.apply_ledger_mutation(batch, wallet, amount, transaction, now=now)

    def stage_debit(self, batch: WriteBatch, wallet: Wallet, amount: int, description: str,
                    reference: str = "", type: str = "debit", withdrawal: bool = False,
                    metadata: Optional[Dict[str, Any]] = None,
                    now: Optional[datetime] = None) -> Transaction:
        validate_amount(amount)
        transaction = self.recorder.build(
            wallet.user_id, type, amount, description, reference, metadata=metadata, now=now
        )
        return self.apply_ledger_mutation(batch, wallet, -amount, transaction, withdrawal, now)

    async def credit(self, user_id: str, amount: int, description: str = "Credit",
                     reference: str = "", type: str = "credit",
                     metadata: Optional[Dict[str, Any]] = None) -> Tuple[Wallet, Transaction]:
        validate_amount(amount)

        async def operation():
            wallet = await self.get_or_create_wallet(user_id)
            batch = WriteBatch()
            transaction = self.stage_credit(batch, wallet, amount, description, reference, type, metadata)
            await self.store.commit(batch)
            return wallet, transaction

        wallet, transaction = await run_atomic(operation, tag="LEDGER")
        logger.info(f"[LEDGER] Credited {amount} to {user_id} ({type}), balance {wallet.balance}")
        return wallet, transaction

    async def debit(self, user_id: str, amount: int, description: str = "Debit",
                    reference: str = "", type: str = "debit", withdrawal: bool = False,
                    metadata: Optional[Dict[str, Any]] = None) -> Tuple[Wallet, Transaction]:
        validate_amount(amount)

        async def operation():
            wallet = await self.get_or_create_wallet(user_id)
            batch = WriteBatch()
            transaction = self.stage_debit(
                batch, wallet, amount, description, reference, type, withdrawal, metadata
            )
            await self.store.commit(batch)
            return wallet, transaction

        wallet, transaction = await run_atomic(operation, tag="LEDGER")
        logger.info(f"[LEDGER] Debited {amount} from {user_id} ({type}), balance {wallet.balance}")
        return wallet, transaction

    async def balance(self, user_id: str) -> Dict[str, Any]:
        wallet = await self.get_or_create_wallet(user_id)
        return wallet.summary()
