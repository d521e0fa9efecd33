"""
Cheque Settlement Module

A cheque deposit is modelled as a SettlementTask: a worker thread that
waits out the clearing delay and then credits the ledger exactly once.
Cancellation before the credit aborts the task with no ledger change;
cancellation after the credit has started is refused and the credit stands.

State machine:
    PENDING -> SETTLING -> COMPLETED
    PENDING | SETTLING -> ABORTED

The delay is spent waiting on the cancellation event, never while holding
the ledger's lock. Tasks for the same account run independently; each
credit serializes through the ledger itself.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from collections import OrderedDict
from typing import Callable, Dict, List, Optional
import threading
import uuid

from .errors import ErrorKind, InvalidAmountError
from .ledger import Ledger
from .logging_config import get_logger, log_action
from .statement import EntryKind, StatementEntry


logger = get_logger("atm.settlement")


class SettlementState(Enum):
    """Lifecycle states of a cheque settlement"""
    PENDING = "pending"        # Created, worker not started
    SETTLING = "settling"      # Worker running: clearing delay, then credit
    COMPLETED = "completed"    # Credit applied
    ABORTED = "aborted"        # Cancelled before any credit

    @property
    def is_terminal(self) -> bool:
        return self in (SettlementState.COMPLETED, SettlementState.ABORTED)


@dataclass(frozen=True)
class SettlementOutcome:
    """Definitive result reported to the observer"""
    task_id: str
    account_id: str
    amount: int
    state: SettlementState
    balance: Optional[int] = None
    entry: Optional[StatementEntry] = None
    error: Optional[ErrorKind] = None

    @property
    def credited(self) -> bool:
        return self.state == SettlementState.COMPLETED


class SettlementObserver(ABC):
    """Receives the outcome of a settlement; implemented by the presentation layer"""

    @abstractmethod
    def on_completed(self, outcome: SettlementOutcome) -> None:
        """Called once after the credit has been applied"""
        pass

    @abstractmethod
    def on_aborted(self, outcome: SettlementOutcome) -> None:
        """Called once when the task was cancelled before crediting"""
        pass


class SettlementTask:
    """
    Deferred, all-or-nothing credit of a cheque amount to a ledger.

    The task does not own the ledger; many tasks may reference the same one.
    """

    def __init__(
        self,
        ledger: Ledger,
        amount: int,
        delay: float,
        observer: Optional[SettlementObserver] = None,
        task_id: Optional[str] = None,
        on_finished: Optional[Callable[["SettlementTask"], None]] = None,
    ):
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(value=amount)
        if delay < 0:
            raise ValueError("Clearing delay cannot be negative")

        self.id = task_id or str(uuid.uuid4())
        self.ledger = ledger
        self.amount = amount
        self.delay = delay
        self.observer = observer
        self.on_finished = on_finished

        self._state = SettlementState.PENDING
        self._crediting = False
        self._outcome: Optional[SettlementOutcome] = None
        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._done = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"Cheque-Clearing-Thread-{ledger.account_id}-{self.id[:8]}",
            daemon=True,
        )

    @classmethod
    def schedule(
        cls,
        ledger: Ledger,
        amount: int,
        delay: float,
        observer: Optional[SettlementObserver] = None,
    ) -> "SettlementTask":
        """Create a task and start it; returns without waiting"""
        task = cls(ledger, amount, delay, observer)
        task.start()
        return task

    @property
    def account_id(self) -> str:
        return self.ledger.account_id

    @property
    def state(self) -> SettlementState:
        with self._lock:
            return self._state

    @property
    def outcome(self) -> Optional[SettlementOutcome]:
        """Final outcome, or None while the task is still running"""
        with self._lock:
            return self._outcome

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def start(self) -> None:
        """Start the worker thread"""
        with self._lock:
            if self._state == SettlementState.ABORTED:
                return
            if self._state != SettlementState.PENDING:
                raise RuntimeError(f"Settlement {self.id} already started")
            self._state = SettlementState.SETTLING
        self._thread.start()

    def cancel(self) -> bool:
        """
        Request cancellation.

        Returns:
            True if the task is now ABORTED and no credit will be applied,
            False if the credit was already applied or is being applied
        """
        with self._lock:
            if self._state == SettlementState.ABORTED:
                return True
            if self._state == SettlementState.COMPLETED or self._crediting:
                return False
            outcome = self._finish(SettlementState.ABORTED, error=ErrorKind.SETTLEMENT_ABORTED)
            self._cancel_event.set()

        log_action(
            logger, "info", f"Cheque processing interrupted for {self.account_id}",
            user_id=self.account_id, action="cheque_aborted",
            resource=self.id, extra={"amount": self.amount},
        )
        self._report(outcome)
        return True

    def wait(self, timeout: Optional[float] = None) -> Optional[SettlementOutcome]:
        """Block until the task reaches a terminal state or the timeout passes"""
        self._done.wait(timeout)
        return self.outcome

    def _run(self) -> None:
        log_action(
            logger, "info", f"Cheque processing started for {self.account_id}",
            user_id=self.account_id, action="cheque_started",
            resource=self.id, extra={"amount": self.amount, "delay": self.delay},
        )

        # Returns early when cancel() sets the event
        self._cancel_event.wait(self.delay)

        with self._lock:
            if self._state != SettlementState.SETTLING:
                return
            self._crediting = True

        # Ledger.deposit does not raise after committing a credit
        try:
            result = self.ledger.deposit(self.amount, kind=EntryKind.CHEQUE_CLEAR)
        except Exception:
            logger.exception(f"Cheque credit failed for {self.account_id}")
            with self._lock:
                outcome = self._finish(SettlementState.ABORTED, error=ErrorKind.SETTLEMENT_ABORTED)
            self._report(outcome)
            return

        with self._lock:
            outcome = self._finish(
                SettlementState.COMPLETED, balance=result.balance, entry=result.entry
            )

        log_action(
            logger, "info", f"Cheque processing finished for {self.account_id}",
            user_id=self.account_id, action="cheque_cleared",
            resource=self.id, extra={"amount": self.amount, "balance": result.balance},
        )
        self._report(outcome)

    def _finish(self, state: SettlementState, balance: Optional[int] = None,
                entry: Optional[StatementEntry] = None,
                error: Optional[ErrorKind] = None) -> SettlementOutcome:
        # Caller holds self._lock
        self._state = state
        self._outcome = SettlementOutcome(
            task_id=self.id,
            account_id=self.account_id,
            amount=self.amount,
            state=state,
            balance=balance,
            entry=entry,
            error=error,
        )
        return self._outcome

    def _report(self, outcome: SettlementOutcome) -> None:
        if self.on_finished is not None:
            self.on_finished(self)
        self._done.set()
        self._notify(outcome)

    def _notify(self, outcome: SettlementOutcome) -> None:
        if self.observer is None:
            return
        try:
            if outcome.credited:
                self.observer.on_completed(outcome)
            else:
                self.observer.on_aborted(outcome)
        except Exception as e:
            # Observer failures never change the settlement outcome
            logger.error(f"Settlement observer failed for {self.id}: {e}")

    def __repr__(self) -> str:
        return (f"SettlementTask(id={self.id!r}, account_id={self.account_id!r}, "
                f"amount={self.amount}, state={self.state.value})")


class ClearingHouse:
    """
    Registry of scheduled cheque settlements.

    No ordering or deduplication is applied between tasks: concurrently
    scheduled cheques for one account are independent credits. Finished
    tasks leave the active set; the most recent ``keep_finished`` of them
    stay available for lookup.
    """

    def __init__(self, default_delay: float = 5.0, keep_finished: int = 100):
        self.default_delay = default_delay
        self.keep_finished = keep_finished
        self._active: Dict[str, SettlementTask] = {}
        self._finished: "OrderedDict[str, SettlementTask]" = OrderedDict()
        self._lock = threading.RLock()

    def schedule(
        self,
        ledger: Ledger,
        amount: int,
        delay: Optional[float] = None,
        observer: Optional[SettlementObserver] = None,
    ) -> SettlementTask:
        """Register and start a settlement for ``amount``"""
        task = SettlementTask(
            ledger, amount,
            self.default_delay if delay is None else delay,
            observer,
            on_finished=self._release,
        )
        with self._lock:
            self._active[task.id] = task
        task.start()
        return task

    def get(self, task_id: str) -> Optional[SettlementTask]:
        with self._lock:
            return self._active.get(task_id) or self._finished.get(task_id)

    def tasks_for(self, account_id: str) -> List[SettlementTask]:
        """Retained tasks for an account: recently finished first, then active"""
        with self._lock:
            tasks = list(self._finished.values()) + list(self._active.values())
        return [t for t in tasks if t.account_id == account_id]

    def pending(self) -> List[SettlementTask]:
        """Tasks that have not reached a terminal state"""
        with self._lock:
            tasks = list(self._active.values())
        return [t for t in tasks if not t.state.is_terminal]

    def cancel(self, task_id: str) -> bool:
        """
        Cancel a task by id.

        Raises:
            KeyError: If no retained task has this id
        """
        task = self.get(task_id)
        if task is None:
            raise KeyError(task_id)
        return task.cancel()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Cancel every unfinished task and wait for workers to settle"""
        tasks = self.pending()
        for task in tasks:
            task.cancel()
        for task in tasks:
            task.wait(timeout)
        if tasks:
            logger.info(f"Clearing house shut down, {len(tasks)} unfinished cheque(s) handled")

    def _release(self, task: SettlementTask) -> None:
        with self._lock:
            self._active.pop(task.id, None)
            self._finished[task.id] = task
            while len(self._finished) > self.keep_finished:
                self._finished.popitem(last=False)
