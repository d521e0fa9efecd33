"""
Persistence Gateway Module

Best-effort write-through of ledger events and credential changes to an
external store. Every call is a single independent attempt: no retry, no
queue, no reconciliation. Failures are logged and reported as a DEGRADED
outcome; they never propagate to the caller that triggered the write.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional
import hashlib
import threading
import uuid

from .errors import ErrorKind
from .logging_config import get_logger, log_action
from .storage import StorageInterface, create_storage


logger = get_logger("atm.persistence")


class PersistenceOutcome(Enum):
    """Result of a single write attempt"""
    APPLIED = "applied"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class PersistenceRecord:
    """What was handed to the gateway and what became of it"""
    account_id: str
    description: str
    outcome: PersistenceOutcome
    error: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.outcome == PersistenceOutcome.APPLIED

    @property
    def kind(self) -> Optional[ErrorKind]:
        return None if self.applied else ErrorKind.PERSISTENCE_DEGRADED


def hash_secret(secret: str) -> str:
    """SHA-256 digest used wherever a PIN is stored"""
    return hashlib.sha256(str(secret).encode("utf-8")).hexdigest()


class PersistenceGateway:
    """
    Mirror of ledger events into an external store.

    The store is obtained lazily through ``store_factory`` on first use so
    that an unreachable database or a missing driver degrades individual
    writes instead of failing start-up. A factory failure is not cached;
    the next write attempts the connection again.
    """

    transactions_table = "transactions"
    credentials_table = "credentials"

    def __init__(
        self,
        store: Optional[StorageInterface] = None,
        store_factory: Optional[Callable[[], StorageInterface]] = None,
    ):
        self._store = store
        self._store_factory = store_factory
        self._store_lock = threading.Lock()

    @classmethod
    def from_url(cls, database_url: str, connect_timeout: int = 5) -> "PersistenceGateway":
        """Gateway that connects to ``database_url`` on first write"""
        return cls(store_factory=lambda: create_storage(database_url, connect_timeout))

    @classmethod
    def disabled(cls) -> "PersistenceGateway":
        """Gateway with no store; every write is DEGRADED"""
        return cls()

    def _get_store(self) -> StorageInterface:
        with self._store_lock:
            if self._store is not None:
                return self._store
            if self._store_factory is None:
                raise RuntimeError("no persistence store configured")
            factory = self._store_factory

        # Connect outside the lock so a slow server does not queue other writers
        store = factory()
        with self._store_lock:
            if self._store is None:
                self._store = store
                return store
            existing = self._store

        # Another writer connected first
        store.close()
        return existing

    def record(self, account_id: str, description: str) -> PersistenceRecord:
        """
        Write one (account, description) event.

        Returns:
            PersistenceRecord with APPLIED or DEGRADED outcome
        """
        data = {
            "username": account_id,
            "detail": description,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        return self._attempt(
            account_id, description,
            lambda store: store.save(self.transactions_table, str(uuid.uuid4()), data),
            action="record",
        )

    def update_credential(self, account_id: str, new_secret: str) -> PersistenceRecord:
        """Mirror a PIN change; only a hash of the secret leaves the process"""
        data = {
            "username": account_id,
            "pin_hash": hash_secret(new_secret),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        return self._attempt(
            account_id, "PIN changed",
            lambda store: store.save(self.credentials_table, account_id, data),
            action="update_credential",
        )

    def _attempt(self, account_id: str, description: str,
                 write: Callable[[StorageInterface], None], action: str) -> PersistenceRecord:
        try:
            write(self._get_store())
        except Exception as e:
            log_action(
                logger, "warning",
                f"Persistence degraded for {account_id}: {description}",
                user_id=account_id, action=action,
                extra={"outcome": PersistenceOutcome.DEGRADED.value,
                       "kind": ErrorKind.PERSISTENCE_DEGRADED.value, "error": str(e)},
            )
            return PersistenceRecord(account_id, description, PersistenceOutcome.DEGRADED, str(e))

        log_action(
            logger, "debug", f"Persisted for {account_id}: {description}",
            user_id=account_id, action=action,
            extra={"outcome": PersistenceOutcome.APPLIED.value},
        )
        return PersistenceRecord(account_id, description, PersistenceOutcome.APPLIED)

    def close(self) -> None:
        if self._store is not None:
            try:
                self._store.close()
            except Exception as e:
                logger.warning(f"Error closing persistence store: {e}")
