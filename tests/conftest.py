"""Shared pytest fixtures for paytrack tests."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from paytrack.clients import MockRemoteStore, StaticSession
from paytrack.config import ENV_OVERRIDES
from paytrack.db.database import Database
from paytrack.models import (
    Currency,
    PaymentCategory,
    PaymentRecord,
    SyncStatus,
    new_payment_id,
)
from paytrack.services import PaymentService, SyncCoordinator, SyncService

OWNER_ID = "user-1"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep PAYTRACK_* variables from the developer's shell out of tests."""
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_db_path(tmp_path):
    """Create a temporary database path."""
    return tmp_path / "test_paytrack.db"


@pytest.fixture
def database(temp_db_path):
    """Create a test database instance."""
    db = Database(temp_db_path)
    yield db
    db.close()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 12, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def mock_remote():
    """In-memory remote store, online."""
    return MockRemoteStore()


@pytest.fixture
def session():
    return StaticSession(OWNER_ID)


@pytest.fixture
def payment_service(database, clock):
    return PaymentService(database, clock=clock)


@pytest.fixture
def sync_service(database, mock_remote, session, clock):
    return SyncService(db=database, remote=mock_remote, session=session, clock=clock)


@pytest.fixture
def coordinator(sync_service, database, clock):
    return SyncCoordinator(sync_service, database, clock=clock)


@pytest.fixture
def make_payment(clock):
    """Factory for payment records with sensible defaults."""

    def _make(
        name: str = "Internet",
        amount: str = "89.90",
        sync_status: SyncStatus = SyncStatus.LOCAL,
        **overrides,
    ) -> PaymentRecord:
        fields = {
            "id": new_payment_id(),
            "name": name,
            "amount": Decimal(amount),
            "currency": Currency.PEN,
            "due_date": datetime(2025, 12, 15, tzinfo=timezone.utc),
            "category": PaymentCategory.SERVICES,
            "sync_status": sync_status,
        }
        if sync_status in (SyncStatus.SYNCED, SyncStatus.MODIFIED):
            fields["last_synced_at"] = clock() - timedelta(days=1)
        fields.update(overrides)
        return PaymentRecord(**fields)

    return _make


@pytest.fixture
def remote_row():
    """Factory for wire-format rows as the backend returns them."""

    def _row(payment_id: str = None, **overrides) -> dict:
        row = {
            "id": payment_id or new_payment_id(),
            "owner_id": OWNER_ID,
            "name": "Luz del Sur",
            "amount": 120.5,
            "currency": "PEN",
            "due_date": "2025-12-20 00:00:00+00",
            "is_paid": False,
            "category": "Servicios",
            "external_ref": None,
            "group_id": None,
            "created_at": "2025-11-01T10:00:00.123456+00:00",
            "updated_at": "2025-11-01T10:00:00.123456+00:00",
        }
        row.update(overrides)
        return row

    return _row
