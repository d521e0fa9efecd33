"""
Shared fixtures for the ATM ledger test suite
"""

import pytest

from atm_ledger.config import AtmConfig
from atm_ledger.ledger import Ledger
from atm_ledger.persistence import PersistenceGateway
from atm_ledger.service import AtmService
from atm_ledger.storage import InMemoryStorage


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def gateway(storage):
    return PersistenceGateway(store=storage)


@pytest.fixture
def ledger(gateway):
    """Ledger opened with the default demo balance of 10000"""
    return Ledger("Priyanshu", 10000, gateway=gateway)


@pytest.fixture
def test_config(tmp_path):
    return AtmConfig(
        database_url="memory://",
        persistence_enabled=True,
        demo_username="Priyanshu",
        demo_pin="1234",
        cheque_clearing_delay_seconds=0.05,
        export_directory=str(tmp_path),
        log_level="DEBUG",
    )


@pytest.fixture
def service(test_config):
    svc = AtmService(config=test_config)
    yield svc
    svc.shutdown(timeout=2)
