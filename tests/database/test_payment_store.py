"""Tests for payment storage in the local database.

These tests use a real temporary SQLite database.
"""

import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from paytrack.db.database import MERGE_INSERTED, MERGE_SKIPPED, MERGE_UPDATED, Database
from paytrack.models import SyncStatus, advance_on_upload_failure, advance_on_upload_success

NOW = datetime(2025, 12, 1, 12, 0, tzinfo=timezone.utc)


class TestPaymentCrud:
    """Tests for basic payment persistence."""

    def test_save_and_get_roundtrip(self, database: Database, make_payment) -> None:
        """Saved payments read back with Decimal amounts and aware dates."""
        record = make_payment(amount="1234.56", group_id="g-1", external_calendar_ref="cal-1")
        database.save_payment(record)

        loaded = database.get_payment(record.id)
        assert loaded == record
        assert isinstance(loaded.amount, Decimal)
        assert loaded.due_date.tzinfo is not None

    def test_get_missing_returns_none(self, database: Database) -> None:
        assert database.get_payment("nope") is None

    def test_save_overwrites_existing(self, database: Database, make_payment) -> None:
        record = make_payment()
        database.save_payment(record)
        database.save_payment(record.with_changes(name="Fibra", revision=1))

        loaded = database.get_payment(record.id)
        assert loaded.name == "Fibra"
        assert loaded.revision == 1
        assert database.get_payment_count() == 1

    def test_syncing_is_never_persisted(self, database: Database, make_payment) -> None:
        """The transient 'syncing' status cannot be written."""
        record = make_payment(sync_status=SyncStatus.SYNCING)
        with pytest.raises(ValueError):
            database.save_payment(record)
        assert database.get_payment(record.id) is None

    def test_save_payments_is_atomic(self, database: Database, make_payment) -> None:
        """A bad record in a batch rolls back the whole batch."""
        good = make_payment()
        bad = make_payment(sync_status=SyncStatus.SYNCING)
        with pytest.raises(ValueError):
            database.save_payments([good, bad])
        assert database.get_payment_count() == 0

    def test_get_all_ordered_by_due_date(self, database: Database, make_payment) -> None:
        late = make_payment(name="Late", due_date=datetime(2026, 1, 5, tzinfo=timezone.utc))
        early = make_payment(name="Early", due_date=datetime(2025, 12, 2, tzinfo=timezone.utc))
        database.save_payments([late, early])

        assert [p.name for p in database.get_all_payments()] == ["Early", "Late"]

    def test_pending_payments_and_count(self, database: Database, make_payment) -> None:
        database.save_payments(
            [
                make_payment(sync_status=SyncStatus.LOCAL),
                make_payment(sync_status=SyncStatus.MODIFIED),
                make_payment(sync_status=SyncStatus.ERROR),
                make_payment(sync_status=SyncStatus.SYNCED),
            ]
        )
        assert database.get_pending_count() == 3
        assert {p.sync_status for p in database.get_pending_payments()} == {
            SyncStatus.LOCAL,
            SyncStatus.MODIFIED,
            SyncStatus.ERROR,
        }

    def test_payments_by_group(self, database: Database, make_payment) -> None:
        database.save_payments([make_payment(group_id="g-1"), make_payment(group_id="g-1"), make_payment()])
        assert len(database.get_payments_by_group("g-1")) == 2


class TestDeletionLedger:
    """Tests for deletes and the pending-deletion ledger."""

    def test_delete_synced_creates_ledger_entry(self, database: Database, make_payment) -> None:
        record = make_payment(sync_status=SyncStatus.SYNCED)
        database.save_payment(record)

        deleted = database.delete_payment(record.id)

        assert deleted == record
        assert database.get_payment(record.id) is None
        assert [d.payment_id for d in database.get_pending_deletions()] == [record.id]

    @pytest.mark.parametrize("status", [SyncStatus.MODIFIED, SyncStatus.ERROR])
    def test_delete_previously_uploaded_creates_ledger_entry(
        self, database: Database, make_payment, status
    ) -> None:
        record = make_payment(sync_status=status)
        database.save_payment(record)
        database.delete_payment(record.id)
        assert database.get_pending_deletion_count() == 1

    def test_delete_local_skips_ledger(self, database: Database, make_payment) -> None:
        """A never-uploaded record has nothing to delete remotely."""
        record = make_payment(sync_status=SyncStatus.LOCAL)
        database.save_payment(record)
        database.delete_payment(record.id)
        assert database.get_pending_deletion_count() == 0

    def test_delete_missing_returns_none(self, database: Database) -> None:
        assert database.delete_payment("nope") is None
        assert database.get_pending_deletion_count() == 0

    def test_delete_payments_batch(self, database: Database, make_payment) -> None:
        a = make_payment(sync_status=SyncStatus.SYNCED)
        b = make_payment(sync_status=SyncStatus.LOCAL)
        database.save_payments([a, b])

        assert database.delete_payments([a.id, b.id, "missing"]) == 2
        assert [d.payment_id for d in database.get_pending_deletions()] == [a.id]

    def test_remove_pending_deletions(self, database: Database) -> None:
        database.add_pending_deletion("p-1", NOW)
        database.add_pending_deletion("p-2", NOW)

        assert database.remove_pending_deletions(["p-1"]) == 1
        assert [d.payment_id for d in database.get_pending_deletions()] == ["p-2"]

    def test_ledger_entry_is_unique_per_payment(self, database: Database) -> None:
        database.add_pending_deletion("p-1", NOW)
        database.add_pending_deletion("p-1", NOW)
        assert database.get_pending_deletion_count() == 1

    def test_clear_payments_keeps_ledger_empty(self, database: Database, make_payment) -> None:
        database.save_payment(make_payment(sync_status=SyncStatus.SYNCED))
        assert database.clear_payments() == 1
        assert database.get_pending_deletion_count() == 0


class TestSyncBookkeeping:
    """Tests for upload confirmations and download merges."""

    def test_mark_synced(self, database: Database, make_payment) -> None:
        record = make_payment()
        database.save_payment(record)

        assert database.mark_synced([advance_on_upload_success(record, NOW)]) == 1

        loaded = database.get_payment(record.id)
        assert loaded.sync_status is SyncStatus.SYNCED
        assert loaded.last_synced_at == NOW

    def test_mark_synced_skips_rows_edited_in_flight(self, database: Database, make_payment) -> None:
        """An edit made during upload is not overwritten by the confirmation."""
        record = make_payment()
        database.save_payment(record)
        confirmed = advance_on_upload_success(record, NOW)
        database.save_payment(record.with_changes(name="Edited", revision=1))

        assert database.mark_synced([confirmed]) == 0

        loaded = database.get_payment(record.id)
        assert loaded.name == "Edited"
        assert loaded.sync_status is SyncStatus.LOCAL

    def test_mark_synced_queues_delete_for_rows_deleted_in_flight(
        self, database: Database, make_payment
    ) -> None:
        """A row deleted during upload now exists remotely and must be deleted there."""
        record = make_payment()
        database.save_payment(record)
        confirmed = advance_on_upload_success(record, NOW)
        database.delete_payment(record.id)
        assert database.get_pending_deletion_count() == 0

        database.mark_synced([confirmed])

        assert [d.payment_id for d in database.get_pending_deletions()] == [record.id]
        assert database.get_payment(record.id) is None

    def test_mark_failed(self, database: Database, make_payment) -> None:
        record = make_payment(sync_status=SyncStatus.MODIFIED)
        database.save_payment(record)

        database.mark_failed([advance_on_upload_failure(record)])

        loaded = database.get_payment(record.id)
        assert loaded.sync_status is SyncStatus.ERROR
        assert loaded.last_synced_at == record.last_synced_at

    def test_merge_inserts_absent(self, database: Database, make_payment) -> None:
        remote = make_payment(sync_status=SyncStatus.SYNCED)
        assert database.merge_remote_payment(remote) == MERGE_INSERTED
        assert database.get_payment(remote.id) == remote

    def test_merge_overwrites_synced(self, database: Database, make_payment) -> None:
        local = make_payment(sync_status=SyncStatus.SYNCED, revision=3)
        database.save_payment(local)

        remote = local.with_changes(name="Renamed elsewhere", last_synced_at=NOW)
        assert database.merge_remote_payment(remote) == MERGE_UPDATED

        loaded = database.get_payment(local.id)
        assert loaded.name == "Renamed elsewhere"
        assert loaded.revision == 3

    @pytest.mark.parametrize("status", [SyncStatus.LOCAL, SyncStatus.MODIFIED, SyncStatus.ERROR])
    def test_merge_skips_pending(self, database: Database, make_payment, status) -> None:
        """Pending local edits win over downloaded data."""
        local = make_payment(sync_status=status)
        database.save_payment(local)

        remote = local.with_changes(
            name="Remote", sync_status=SyncStatus.SYNCED, last_synced_at=NOW
        )
        assert database.merge_remote_payment(remote) == MERGE_SKIPPED
        assert database.get_payment(local.id) == local

    def test_merge_does_not_resurrect_deleted(self, database: Database, make_payment) -> None:
        remote = make_payment(sync_status=SyncStatus.SYNCED)
        database.add_pending_deletion(remote.id, NOW)

        assert database.merge_remote_payment(remote) == MERGE_SKIPPED
        assert database.get_payment(remote.id) is None


class TestSyncState:
    """Tests for sync state tracking and clearing."""

    def test_sync_state_roundtrip(self, database: Database) -> None:
        assert database.get_sync_state("payments") is None
        database.update_sync_state("payments", NOW, 4)

        state = database.get_sync_state("payments")
        assert state["last_sync_at"] == NOW
        assert state["record_count"] == 4

    def test_clear_all(self, database: Database, make_payment) -> None:
        database.save_payment(make_payment())
        database.add_pending_deletion("p-9", NOW)
        database.update_sync_state("payments", NOW, 1)

        counts = database.clear_all()

        assert counts == {"payments": 1, "pending_deletions": 1, "sync_state": 1}
        assert database.get_payment_count() == 0
        assert database.get_pending_deletions() == []
        assert database.get_sync_state("payments") is None


class TestRecoveryAndMigrations:
    """Tests for schema migrations and interrupted-upload recovery."""

    def _insert_raw(self, path: Path, payment_id: str, last_synced_at) -> None:
        conn = sqlite3.connect(path)
        conn.execute(
            """INSERT INTO payments (id, name, amount, currency, due_date, category,
            sync_status, last_synced_at) VALUES (?, 'Agua', '45.00', 'PEN',
            '2025-12-10T00:00:00+00:00', 'Servicios', 'syncing', ?)""",
            (payment_id, last_synced_at),
        )
        conn.commit()
        conn.close()

    def test_syncing_rows_recovered_on_open(self, temp_db_path: Path) -> None:
        Database(temp_db_path).close()
        self._insert_raw(temp_db_path, "never", None)
        self._insert_raw(temp_db_path, "before", NOW.isoformat())

        db = Database(temp_db_path)
        try:
            assert db.get_payment("never").sync_status is SyncStatus.LOCAL
            assert db.get_payment("before").sync_status is SyncStatus.MODIFIED
            assert db.get_pending_count() == 2
        finally:
            db.close()

    def test_adds_missing_columns(self, temp_db_path: Path) -> None:
        """Databases created before dual-currency groups gain the new columns."""
        conn = sqlite3.connect(temp_db_path)
        conn.execute(
            """CREATE TABLE payments (
                id TEXT PRIMARY KEY, name TEXT NOT NULL, amount TEXT NOT NULL,
                currency TEXT NOT NULL DEFAULT 'PEN', due_date TIMESTAMP NOT NULL,
                is_paid BOOLEAN DEFAULT 0, category TEXT NOT NULL, external_ref TEXT,
                sync_status TEXT NOT NULL DEFAULT 'local', last_synced_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP, updated_at TIMESTAMP
            )"""
        )
        conn.execute(
            """INSERT INTO payments (id, name, amount, due_date, category)
            VALUES ('old', 'Alquiler', '1500', '2025-12-01T00:00:00+00:00', 'Vivienda')"""
        )
        conn.commit()
        conn.close()

        db = Database(temp_db_path)
        try:
            loaded = db.get_payment("old")
            assert loaded.group_id is None
            assert loaded.revision == 0
        finally:
            db.close()
