"""
Account Directory Module

Maps usernames to ledgers and PIN hashes through an injected store. The
ledger core only depends on ``resolve`` and ``create``; PIN handling lives
here so that no ledger code ever sees a credential.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import hmac
import threading

from .errors import AccountExistsError, AccountNotFoundError, InvalidCredentialsError
from .ledger import Ledger
from .logging_config import get_logger, log_action
from .persistence import PersistenceGateway, PersistenceRecord, hash_secret


logger = get_logger("atm.directory")

_PATH_CHARS = ("/", "\\", "\0")


@dataclass
class AccountRecord:
    """Directory entry for one account holder"""
    username: str
    ledger: Ledger
    pin_hash: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DirectoryStore(ABC):
    """Abstract store behind the account directory"""

    @abstractmethod
    def get(self, username: str) -> Optional[AccountRecord]:
        pass

    @abstractmethod
    def add(self, record: AccountRecord) -> bool:
        """Insert unless the username exists; returns False on conflict"""
        pass

    @abstractmethod
    def set_pin_hash(self, username: str, pin_hash: str) -> None:
        pass

    @abstractmethod
    def usernames(self) -> List[str]:
        pass


class InMemoryDirectoryStore(DirectoryStore):
    """Dictionary-backed directory store"""

    def __init__(self):
        self._records: Dict[str, AccountRecord] = {}
        self._lock = threading.RLock()

    def get(self, username: str) -> Optional[AccountRecord]:
        with self._lock:
            return self._records.get(username)

    def add(self, record: AccountRecord) -> bool:
        with self._lock:
            if record.username in self._records:
                return False
            self._records[record.username] = record
            return True

    def set_pin_hash(self, username: str, pin_hash: str) -> None:
        with self._lock:
            record = self._records.get(username)
            if record is None:
                raise AccountNotFoundError(username)
            record.pin_hash = pin_hash

    def usernames(self) -> List[str]:
        with self._lock:
            return sorted(self._records)


def normalize_pin(pin: Any) -> str:
    """
    Canonical text form of a numeric PIN.

    Raises:
        InvalidCredentialsError: If the PIN is not a non-negative integer
    """
    if isinstance(pin, bool) or pin is None:
        raise InvalidCredentialsError("Invalid PIN format.")
    try:
        value = int(str(pin).strip())
    except ValueError:
        raise InvalidCredentialsError("Invalid PIN format.") from None
    if value < 0:
        raise InvalidCredentialsError("Invalid PIN format.")
    return str(value)


class AccountDirectory:
    """Username to ledger lookup and account opening"""

    def __init__(
        self,
        store: Optional[DirectoryStore] = None,
        gateway: Optional[PersistenceGateway] = None,
        default_opening_balance: int = 10000,
    ):
        self.store = store or InMemoryDirectoryStore()
        self.gateway = gateway
        self.default_opening_balance = default_opening_balance

    def find(self, username: str) -> Optional[Ledger]:
        """Ledger for ``username`` or None"""
        record = self.store.get(username)
        return record.ledger if record else None

    def resolve(self, username: str) -> Ledger:
        """
        Ledger for ``username``.

        Raises:
            AccountNotFoundError: If the username is not registered
        """
        ledger = self.find(username)
        if ledger is None:
            raise AccountNotFoundError(username)
        return ledger

    def create(self, username: str, initial_balance: Optional[int] = None,
               pin: Optional[Any] = None) -> Ledger:
        """
        Open an account.

        Args:
            username: Non-empty name, surrounding whitespace is ignored
            initial_balance: Opening balance, defaults to the configured amount
            pin: Optional numeric PIN

        Returns:
            The new account's Ledger

        Raises:
            InvalidCredentialsError: Empty username, username with a path separator, or malformed PIN
            AccountExistsError: Username already registered
            ValueError: Negative opening balance
        """
        username = (username or "").strip()
        # Usernames name export files, so they must not carry path separators
        if not username or any(c in username for c in _PATH_CHARS):
            raise InvalidCredentialsError("Invalid username.")

        pin_hash = hash_secret(normalize_pin(pin)) if pin is not None else None
        balance = self.default_opening_balance if initial_balance is None else initial_balance
        ledger = Ledger(username, balance, gateway=self.gateway)

        if not self.store.add(AccountRecord(username=username, ledger=ledger, pin_hash=pin_hash)):
            raise AccountExistsError(username)

        log_action(
            logger, "info", f"Account created for {username}",
            user_id=username, action="account_created",
            extra={"initial_balance": balance},
        )
        if self.gateway is not None:
            self.gateway.record(username, f"Account created - initial balance Rs{balance}")
        return ledger

    def verify_pin(self, username: str, pin: Any) -> bool:
        """True if ``pin`` matches the stored PIN for ``username``"""
        record = self.store.get(username)
        if record is None or record.pin_hash is None:
            return False
        try:
            candidate = hash_secret(normalize_pin(pin))
        except InvalidCredentialsError:
            return False
        return hmac.compare_digest(candidate, record.pin_hash)

    def change_pin(self, username: str, current_pin: Any, new_pin: Any) -> Optional[PersistenceRecord]:
        """
        Replace a PIN after checking the current one.

        Returns:
            The persistence record for the mirrored change, or None without a gateway

        Raises:
            AccountNotFoundError: Unknown username
            InvalidCredentialsError: Wrong current PIN or malformed new PIN
        """
        self.resolve(username)
        if not self.verify_pin(username, current_pin):
            raise InvalidCredentialsError("Incorrect current PIN.")

        normalized = normalize_pin(new_pin)
        self.store.set_pin_hash(username, hash_secret(normalized))
        log_action(logger, "info", f"PIN updated for {username}",
                   user_id=username, action="pin_changed")

        if self.gateway is None:
            return None
        return self.gateway.update_credential(username, normalized)

    def usernames(self) -> List[str]:
        return self.store.usernames()
