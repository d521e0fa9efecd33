"""
Account Ledger Module

Authoritative balance and statement history for a single account. Every
mutation runs its read-modify-write under the ledger's own lock, so the
interactive path and background cheque settlement serialize per account
while different accounts never block one another.

Persistence is notified after the lock is released; a slow or failing
store can never delay or undo a committed mutation.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple
import threading

from .errors import ErrorKind, LedgerResult
from .logging_config import get_logger, log_action
from .persistence import PersistenceGateway, PersistenceOutcome, PersistenceRecord
from .statement import EntryKind, StatementEntry


logger = get_logger("atm.ledger")


@dataclass(frozen=True)
class LedgerSnapshot:
    """Consistent view of balance and history taken under the lock"""
    account_id: str
    balance: int
    history: Tuple[StatementEntry, ...]


class Ledger:
    """
    Balance and append-only history for one account.

    Callers are expected to validate user input before calling
    ``deposit``/``withdraw``; a non-positive amount that does reach the
    ledger is still rejected with an INVALID_AMOUNT result and no state
    change.
    """

    def __init__(self, account_id: str, initial_balance: int = 0,
                 gateway: Optional[PersistenceGateway] = None):
        if isinstance(initial_balance, bool) or not isinstance(initial_balance, int):
            raise TypeError("Initial balance must be a whole number")
        if initial_balance < 0:
            raise ValueError("Initial balance cannot be negative")

        self.account_id = account_id
        self.gateway = gateway
        self._initial_balance = initial_balance
        self._balance = initial_balance
        self._history: List[StatementEntry] = []
        self._lock = threading.Lock()

    @property
    def initial_balance(self) -> int:
        return self._initial_balance

    @property
    def balance(self) -> int:
        """Current balance"""
        with self._lock:
            return self._balance

    @property
    def history(self) -> List[StatementEntry]:
        """Copy of the full history, oldest first"""
        with self._lock:
            return list(self._history)

    def deposit(self, amount: int, kind: EntryKind = EntryKind.DEPOSIT) -> LedgerResult:
        """
        Credit the account.

        Args:
            amount: Positive whole amount
            kind: DEPOSIT for counter deposits, CHEQUE_CLEAR for settled cheques

        Returns:
            LedgerResult carrying the new balance and the appended entry
        """
        if kind == EntryKind.WITHDRAW:
            raise ValueError("deposit cannot record a withdrawal")

        invalid = self._reject_invalid(amount)
        if invalid:
            return invalid

        with self._lock:
            self._balance += amount
            entry = self._append(kind, amount)
            balance = self._balance

        logger.debug(f"{self.account_id}: {entry.text}")
        self._persist(entry)
        return LedgerResult.success(balance, entry)

    def withdraw(self, amount: int) -> LedgerResult:
        """
        Debit the account if funds allow.

        Returns:
            LedgerResult; INSUFFICIENT_FUNDS leaves balance and history untouched
        """
        invalid = self._reject_invalid(amount)
        if invalid:
            return invalid

        with self._lock:
            if amount > self._balance:
                balance = self._balance
                entry = None
            else:
                self._balance -= amount
                entry = self._append(EntryKind.WITHDRAW, amount)
                balance = self._balance

        if entry is None:
            log_action(
                logger, "info", f"Withdrawal of {amount} rejected for {self.account_id}",
                user_id=self.account_id, action="withdraw",
                extra={"amount": amount, "balance": balance},
            )
            return LedgerResult.failure(ErrorKind.INSUFFICIENT_FUNDS, balance, "Insufficient balance.")

        logger.debug(f"{self.account_id}: {entry.text}")
        self._persist(entry)
        return LedgerResult.success(balance, entry)

    def snapshot(self) -> LedgerSnapshot:
        """Balance and history as of a single point between mutations"""
        with self._lock:
            return LedgerSnapshot(self.account_id, self._balance, tuple(self._history))

    def recent_history(self, n: int = 5) -> List[StatementEntry]:
        """Last ``n`` entries in chronological order"""
        if n <= 0:
            return []
        with self._lock:
            return self._history[-n:]

    def _append(self, kind: EntryKind, amount: int) -> StatementEntry:
        # Caller holds self._lock
        entry = StatementEntry(
            kind=kind,
            amount=amount,
            balance=self._balance,
            sequence=len(self._history) + 1,
        )
        self._history.append(entry)
        return entry

    def _reject_invalid(self, amount) -> Optional[LedgerResult]:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            return LedgerResult.failure(
                ErrorKind.INVALID_AMOUNT, self.balance, "Enter a valid positive integer amount."
            )
        return None

    def _persist(self, entry: StatementEntry) -> Optional[PersistenceRecord]:
        # The mutation is already committed; nothing below may raise
        if self.gateway is None:
            return None
        try:
            return self.gateway.record(self.account_id, entry.description)
        except Exception as e:
            log_action(
                logger, "warning", f"Persistence degraded for {self.account_id}: {entry.description}",
                user_id=self.account_id, action="record",
                extra={"kind": ErrorKind.PERSISTENCE_DEGRADED.value, "error": str(e)},
            )
            return PersistenceRecord(self.account_id, entry.description, PersistenceOutcome.DEGRADED, str(e))

    def __repr__(self) -> str:
        return f"Ledger(account_id={self.account_id!r}, balance={self.balance})"
