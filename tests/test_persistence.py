"""
Tests for the best-effort persistence gateway
"""

import threading
import time
from unittest.mock import Mock

import pytest

from atm_ledger.errors import ErrorKind
from atm_ledger.persistence import (
    PersistenceGateway, PersistenceOutcome, PersistenceRecord, hash_secret
)
from atm_ledger.storage import InMemoryStorage, StorageError


class TestRecord:
    """Test mirroring ledger events"""

    def test_applied_write(self, gateway, storage):
        record = gateway.record("Priyanshu", "Deposited Rs500")

        assert record.outcome == PersistenceOutcome.APPLIED
        assert record.applied
        assert record.error is None
        rows = storage.load_all("transactions")
        assert len(rows) == 1
        assert rows[0]["username"] == "Priyanshu"
        assert rows[0]["detail"] == "Deposited Rs500"
        assert "created_at" in rows[0]

    def test_each_event_is_a_separate_row(self, gateway, storage):
        gateway.record("a", "Deposited Rs1")
        gateway.record("a", "Deposited Rs1")

        assert storage.count("transactions") == 2

    def test_store_failure_is_degraded_not_raised(self):
        store = Mock()
        store.save.side_effect = ConnectionError("connection refused")
        gateway = PersistenceGateway(store=store)

        record = gateway.record("a", "Withdrew Rs10")

        assert record.outcome == PersistenceOutcome.DEGRADED
        assert not record.applied
        assert "connection refused" in record.error
        assert record.description == "Withdrew Rs10"

    def test_no_retry_after_failure(self):
        store = Mock()
        store.save.side_effect = TimeoutError("slow")
        gateway = PersistenceGateway(store=store)

        gateway.record("a", "Deposited Rs5")

        store.save.assert_called_once()

    def test_disabled_gateway_degrades(self):
        record = PersistenceGateway.disabled().record("a", "Deposited Rs5")

        assert record.outcome == PersistenceOutcome.DEGRADED

    def test_degraded_write_is_logged(self, caplog):
        store = Mock()
        store.save.side_effect = ConnectionError("down")
        gateway = PersistenceGateway(store=store)

        with caplog.at_level("WARNING", logger="atm.persistence"):
            gateway.record("a", "Deposited Rs5")

        assert any("Persistence degraded" in r.getMessage() for r in caplog.records)


class TestLazyStore:
    """Test store creation on first use"""

    def test_factory_called_once(self):
        factory = Mock(return_value=InMemoryStorage())
        gateway = PersistenceGateway(store_factory=factory)

        factory.assert_not_called()
        gateway.record("a", "x")
        gateway.record("a", "y")

        factory.assert_called_once()

    def test_factory_failure_is_retried_on_next_write(self):
        store = InMemoryStorage()
        factory = Mock(side_effect=[StorageError("unreachable"), store])
        gateway = PersistenceGateway(store_factory=factory)

        first = gateway.record("a", "x")
        second = gateway.record("a", "y")

        assert first.outcome == PersistenceOutcome.DEGRADED
        assert second.outcome == PersistenceOutcome.APPLIED
        assert [r["detail"] for r in store.load_all("transactions")] == ["y"]

    def test_slow_connect_does_not_block_other_writers(self):
        store = InMemoryStorage()
        losing_store = Mock(spec=InMemoryStorage)
        connecting = threading.Event()
        release = threading.Event()
        calls = []

        def factory():
            calls.append(threading.current_thread().name)
            if len(calls) == 1:
                connecting.set()
                release.wait(5)
                return losing_store
            return store

        gateway = PersistenceGateway(store_factory=factory)
        slow = threading.Thread(target=gateway.record, args=("a", "slow"), name="slow-writer")
        slow.start()
        assert connecting.wait(5)

        started = time.monotonic()
        fast = gateway.record("b", "fast")
        elapsed = time.monotonic() - started

        release.set()
        slow.join(5)

        assert fast.applied
        assert elapsed < 1.0
        assert [r["detail"] for r in store.load_all("transactions")] == ["fast", "slow"]
        losing_store.close.assert_called_once()
        losing_store.save.assert_not_called()

    def test_from_url_memory(self):
        gateway = PersistenceGateway.from_url("memory://")

        assert gateway.record("a", "x").applied

    def test_from_url_unsupported_scheme_degrades(self):
        gateway = PersistenceGateway.from_url("mongodb://localhost")

        assert gateway.record("a", "x").outcome == PersistenceOutcome.DEGRADED

    def test_close_closes_store(self):
        store = Mock()
        gateway = PersistenceGateway(store=store)

        gateway.close()

        store.close.assert_called_once()

    def test_close_without_store(self):
        PersistenceGateway.disabled().close()


class TestCredentials:
    """Test PIN change mirroring"""

    def test_only_hash_is_stored(self, gateway, storage):
        record = gateway.update_credential("Priyanshu", "4321")

        assert record.applied
        assert record.description == "PIN changed"
        row = storage.load("credentials", "Priyanshu")
        assert row["pin_hash"] == hash_secret("4321")
        assert "4321" not in row.values()

    def test_latest_credential_replaces_previous(self, gateway, storage):
        gateway.update_credential("Priyanshu", "1111")
        gateway.update_credential("Priyanshu", "2222")

        assert storage.count("credentials") == 1
        assert storage.load("credentials", "Priyanshu")["pin_hash"] == hash_secret("2222")

    def test_hash_is_stable(self):
        assert hash_secret("1234") == hash_secret(1234)
        assert hash_secret("1234") != hash_secret("1235")
        assert len(hash_secret("1234")) == 64


class TestPersistenceRecord:
    """Test record values"""

    @pytest.mark.parametrize("outcome,applied", [
        (PersistenceOutcome.APPLIED, True),
        (PersistenceOutcome.DEGRADED, False),
    ])
    def test_applied_property(self, outcome, applied):
        assert PersistenceRecord("a", "d", outcome).applied is applied

    def test_degraded_kind(self):
        assert PersistenceRecord("a", "d", PersistenceOutcome.APPLIED).kind is None
        assert PersistenceRecord("a", "d", PersistenceOutcome.DEGRADED).kind == ErrorKind.PERSISTENCE_DEGRADED
