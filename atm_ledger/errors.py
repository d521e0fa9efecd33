"""
Error Taxonomy Module

Typed error kinds, exceptions raised at the service boundary, and the
outcome type returned by ledger mutations. Ledger operations never raise
for business failures; callers branch on ``LedgerResult.kind`` instead.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    """Machine-readable failure categories"""
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ACCOUNT_NOT_FOUND = "account_not_found"
    SETTLEMENT_ABORTED = "settlement_aborted"
    PERSISTENCE_DEGRADED = "persistence_degraded"
    ACCOUNT_EXISTS = "account_exists"
    INVALID_CREDENTIALS = "invalid_credentials"


class AtmError(Exception):
    """Base class for all errors surfaced by the ATM ledger"""

    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidAmountError(AtmError, ValueError):
    """Amount is non-positive or not a whole number"""

    kind = ErrorKind.INVALID_AMOUNT

    def __init__(self, message: str = "Enter a valid positive integer amount.", value: Any = None):
        super().__init__(message)
        self.value = value


class AccountNotFoundError(AtmError, LookupError):
    """Directory lookup miss"""

    kind = ErrorKind.ACCOUNT_NOT_FOUND

    def __init__(self, username: str):
        super().__init__(f"Account {username!r} not found")
        self.username = username


class AccountExistsError(AtmError):
    """Username is already registered"""

    kind = ErrorKind.ACCOUNT_EXISTS

    def __init__(self, username: str):
        super().__init__("Username already exists.")
        self.username = username


class InvalidCredentialsError(AtmError):
    """PIN did not match or could not be parsed"""

    kind = ErrorKind.INVALID_CREDENTIALS


@dataclass(frozen=True)
class LedgerResult:
    """
    Outcome of a ledger mutation.

    ``kind`` is None on success. On failure the balance is the unchanged
    balance observed under the ledger lock and ``entry`` is None.
    """
    balance: int
    kind: Optional[ErrorKind] = None
    entry: Optional[Any] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, balance: int, entry: Any) -> "LedgerResult":
        """Create a successful result"""
        return cls(balance=balance, entry=entry)

    @classmethod
    def failure(cls, kind: ErrorKind, balance: int, message: str) -> "LedgerResult":
        """Create a failed result"""
        return cls(balance=balance, kind=kind, message=message)

    @property
    def ok(self) -> bool:
        return self.kind is None


YEARS_MESSAGE = "Enter a valid positive integer for years."


def parse_amount(raw: Any, field: str = "amount") -> int:
    """
    Parse user input into a strictly positive whole number.

    Args:
        raw: int or string as typed by the user
        field: "amount" or "years"; selects the error message

    Returns:
        Parsed positive integer

    Raises:
        InvalidAmountError: If the value is missing, not an integer or <= 0
    """
    message = YEARS_MESSAGE if field == "years" else InvalidAmountError().message

    # bool is an int subclass
    if isinstance(raw, bool) or raw is None:
        raise InvalidAmountError(message, raw)

    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            raise InvalidAmountError(message, raw)
        try:
            value = int(text)
        except ValueError:
            raise InvalidAmountError(message, raw) from None
    else:
        raise InvalidAmountError(message, raw)

    if value <= 0:
        raise InvalidAmountError(message, raw)
    return value
