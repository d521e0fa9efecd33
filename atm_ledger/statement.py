"""
Statement Module

Immutable statement entries, their display text, mini-statement rendering
and the plain-text history export.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Sequence, Union


class EntryKind(Enum):
    """Kinds of ledger mutation recorded in history"""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    CHEQUE_CLEAR = "cheque_clear"


def format_rupees(amount: int) -> str:
    """Render a whole-rupee amount the way statements print it"""
    return f"Rs{amount}"


@dataclass(frozen=True)
class StatementEntry:
    """
    One applied mutation.

    ``sequence`` is the 1-based position in the ledger's history and
    ``balance`` the balance immediately after the mutation was applied.
    """
    kind: EntryKind
    amount: int
    balance: int
    sequence: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def description(self) -> str:
        """Short verb phrase, also used as the persistence description"""
        if self.kind == EntryKind.DEPOSIT:
            return f"Deposited {format_rupees(self.amount)}"
        if self.kind == EntryKind.WITHDRAW:
            return f"Withdrew {format_rupees(self.amount)}"
        return f"Cheque cleared: {format_rupees(self.amount)}"

    @property
    def text(self) -> str:
        """Statement line shown on mini-statements and in exports"""
        if self.kind == EntryKind.CHEQUE_CLEAR:
            return self.description
        return f"{self.description} (Balance: {format_rupees(self.balance)})"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "amount": self.amount,
            "balance": self.balance,
            "sequence": self.sequence,
            "created_at": self.created_at.isoformat(),
            "text": self.text,
        }

    def __str__(self) -> str:
        return self.text


def render_mini_statement(entries: Sequence[StatementEntry], size: int = 5) -> str:
    """Render the most recent entries as the mini-statement message"""
    if not entries:
        return "No transactions yet."

    lines = [f"Last {size} Transactions:"]
    lines.extend(entry.text for entry in entries)
    return "\n".join(lines) + "\n"


def export_history(entries: Iterable[StatementEntry], path: Union[str, Path]) -> Path:
    """
    Write every entry, oldest first, one per line.

    No header and no trailing metadata; each line is newline-terminated.

    Returns:
        Path of the written file
    """
    target = Path(path)
    lines: List[str] = [entry.text + "\n" for entry in entries]
    with open(target, "w", encoding="utf-8") as fh:
        fh.writelines(lines)
    return target


def export_filename(username: str) -> str:
    """File name used for a user's history export"""
    return f"transaction_history_{username}.txt"
