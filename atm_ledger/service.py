"""
ATM Service Module

The boundary that invokes ledgers on behalf of an account holder. It
parses raw input, resolves the username through the directory, recovers
ledger failures into results, schedules cheque settlements and turns
their outcomes into user-facing notifications.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from .config import AtmConfig, get_config
from .directory import AccountDirectory
from .errors import InvalidCredentialsError, LedgerResult, parse_amount
from .events import DomainEvent, EventDispatcher, EventPayload, NotificationInbox
from .interest import InterestQuote, calculate_simple_interest
from .ledger import Ledger
from .logging_config import get_logger
from .persistence import PersistenceGateway, PersistenceRecord
from .settlement import ClearingHouse, SettlementObserver, SettlementOutcome, SettlementTask
from .statement import StatementEntry, export_filename, export_history, render_mini_statement


logger = get_logger("atm.service")


@dataclass(frozen=True)
class BalanceEnquiry:
    """Balance with the low-balance alert, if any"""
    username: str
    balance: int
    alert: Optional[str] = None

    @property
    def message(self) -> str:
        text = f"Your balance is Rs{self.balance}"
        if self.alert:
            text += f"\nAlert: {self.alert}"
        return text


class ChequeNotifier(SettlementObserver):
    """Turns settlement outcomes into user-facing events"""

    def __init__(self, dispatcher: EventDispatcher):
        self.dispatcher = dispatcher

    def on_completed(self, outcome: SettlementOutcome) -> None:
        self.dispatcher.publish(EventPayload(
            event_type=DomainEvent.CHEQUE_CLEARED,
            username=outcome.account_id,
            message=f"Cheque of Rs{outcome.amount} cleared and deposited to your account.",
            data={"task_id": outcome.task_id, "amount": outcome.amount, "balance": outcome.balance},
        ))

    def on_aborted(self, outcome: SettlementOutcome) -> None:
        self.dispatcher.publish(EventPayload(
            event_type=DomainEvent.CHEQUE_ABORTED,
            username=outcome.account_id,
            message="Cheque processing interrupted.",
            data={
                "task_id": outcome.task_id,
                "amount": outcome.amount,
                "error": outcome.error.value if outcome.error else None,
            },
        ))


class AtmService:
    """ATM operations with all components wired from configuration"""

    def __init__(
        self,
        config: Optional[AtmConfig] = None,
        gateway: Optional[PersistenceGateway] = None,
        directory: Optional[AccountDirectory] = None,
        clearing_house: Optional[ClearingHouse] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        self.config = config or get_config()
        self.gateway = gateway or self._create_gateway()
        self.directory = directory or AccountDirectory(
            gateway=self.gateway,
            default_opening_balance=self.config.default_opening_balance,
        )
        self.clearing_house = clearing_house or ClearingHouse(self.config.cheque_clearing_delay_seconds)
        self.dispatcher = dispatcher or EventDispatcher()
        self.inbox = NotificationInbox()
        self.inbox.attach(self.dispatcher)
        self.cheque_notifier = ChequeNotifier(self.dispatcher)

        self._seed_demo_account()

    def _create_gateway(self) -> PersistenceGateway:
        """Create persistence gateway based on configuration"""
        if not self.config.persistence_enabled:
            logger.info("Persistence disabled; ledger events stay in memory only")
            return PersistenceGateway.disabled()
        return PersistenceGateway.from_url(
            self.config.database_url, self.config.database_connect_timeout
        )

    def _seed_demo_account(self) -> None:
        username = self.config.demo_username
        if username and self.directory.find(username) is None:
            self.directory.create(username, pin=self.config.demo_pin)

    # Accounts

    def open_account(self, username: str, pin: Any, initial_balance: Optional[int] = None) -> Ledger:
        """Open an account; PIN is required at this boundary"""
        if pin is None:
            raise InvalidCredentialsError("Invalid PIN format.")
        ledger = self.directory.create(username, initial_balance=initial_balance, pin=pin)
        self._publish(DomainEvent.ACCOUNT_CREATED, ledger.account_id,
                      f"Account created successfully for {ledger.account_id}",
                      {"initial_balance": ledger.initial_balance})
        return ledger

    def login(self, username: str, pin: Any) -> Ledger:
        """
        Check credentials and return the account's ledger.

        Raises:
            InvalidCredentialsError: Unknown user or wrong PIN (not distinguished)
        """
        if not self.directory.verify_pin(username, pin):
            raise InvalidCredentialsError("Wrong credentials! Access Denied.")
        return self.directory.resolve(username)

    def change_pin(self, username: str, current_pin: Any, new_pin: Any) -> Optional[PersistenceRecord]:
        record = self.directory.change_pin(username, current_pin, new_pin)
        self._publish(DomainEvent.PIN_CHANGED, username, "PIN updated.")
        return record

    # Ledger operations

    def check_balance(self, username: str) -> BalanceEnquiry:
        balance = self.directory.resolve(username).balance
        return BalanceEnquiry(username, balance, self._low_balance_alert(balance))

    def deposit(self, username: str, raw_amount: Any) -> LedgerResult:
        """
        Deposit user-entered ``raw_amount``.

        Raises:
            InvalidAmountError: Before the ledger is touched
            AccountNotFoundError: Unknown username
        """
        amount = parse_amount(raw_amount)
        result = self.directory.resolve(username).deposit(amount)
        self._publish(DomainEvent.DEPOSITED, username, f"Rs{amount} deposited.",
                      {"amount": amount, "balance": result.balance})
        return result

    def withdraw(self, username: str, raw_amount: Any) -> LedgerResult:
        """Withdraw; an INSUFFICIENT_FUNDS result is returned, not raised"""
        amount = parse_amount(raw_amount)
        result = self.directory.resolve(username).withdraw(amount)

        if not result.ok:
            self._publish(DomainEvent.WITHDRAWAL_REJECTED, username, result.message,
                          {"amount": amount, "balance": result.balance})
            return result

        self._publish(DomainEvent.WITHDRAWN, username, f"Rs{amount} withdrawn.",
                      {"amount": amount, "balance": result.balance})
        alert = self._low_balance_alert(result.balance)
        if alert:
            self._publish(DomainEvent.LOW_BALANCE, username, alert, {"balance": result.balance})
        return result

    def mini_statement(self, username: str, limit: Optional[int] = None) -> List[StatementEntry]:
        """Most recent entries, oldest of them first"""
        size = self.config.mini_statement_size if limit is None else limit
        return self.directory.resolve(username).recent_history(size)

    def render_mini_statement(self, username: str) -> str:
        size = self.config.mini_statement_size
        return render_mini_statement(self.mini_statement(username, size), size)

    def export_history(self, username: str) -> Path:
        """
        Write the full history to ``transaction_history_<username>.txt``.

        Raises:
            OSError: If the export file cannot be written
        """
        history = self.directory.resolve(username).snapshot().history
        directory = Path(self.config.export_directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = export_history(history, directory / export_filename(username))
        logger.info(f"Exported {len(history)} entries for {username} to {path}")
        return path

    def interest(self, username: str, raw_years: Any) -> InterestQuote:
        years = parse_amount(raw_years, field="years")
        balance = self.directory.resolve(username).balance
        return calculate_simple_interest(balance, years, self.config.interest_rate)

    # Cheques

    def deposit_cheque(self, username: str, raw_amount: Any, delay: Optional[float] = None) -> SettlementTask:
        """Schedule a cheque credit and return immediately"""
        amount = parse_amount(raw_amount)
        ledger = self.directory.resolve(username)
        task = self.clearing_house.schedule(ledger, amount, delay, observer=self.cheque_notifier)
        self._publish(DomainEvent.CHEQUE_SCHEDULED, username,
                      "Cheque received. Processing (this runs in background)...",
                      {"task_id": task.id, "amount": amount})
        return task

    def get_cheque(self, task_id: str) -> Optional[SettlementTask]:
        return self.clearing_house.get(task_id)

    def cancel_cheque(self, task_id: str) -> bool:
        """
        Cancel a scheduled cheque.

        Raises:
            KeyError: Unknown task id
        """
        return self.clearing_house.cancel(task_id)

    def notifications(self, username: str, drain: bool = True) -> List[EventPayload]:
        self.directory.resolve(username)
        return self.inbox.drain(username) if drain else self.inbox.peek(username)

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """Abort unfinished cheques and release the persistence store"""
        self.clearing_house.shutdown(timeout)
        self.gateway.close()

    def _low_balance_alert(self, balance: int) -> Optional[str]:
        threshold = self.config.low_balance_threshold
        if balance < threshold:
            return f"Balance below Rs{threshold}!"
        return None

    def _publish(self, event_type: DomainEvent, username: str, message: str, data: Optional[dict] = None) -> None:
        self.dispatcher.publish(EventPayload(
            event_type=event_type, username=username, message=message, data=data or {}
        ))
