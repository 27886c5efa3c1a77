"""Tests for payment models and sync-status transitions."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from paytrack.models import (
    Currency,
    PaymentRecord,
    SyncStatus,
    advance_on_local_edit,
    advance_on_upload_failure,
    advance_on_upload_success,
    pending,
    recover_interrupted,
)

NOW = datetime(2025, 12, 1, 12, 0, tzinfo=timezone.utc)


class TestPaymentRecord:
    """Tests for PaymentRecord construction rules."""

    def test_float_amount_rejected(self):
        """Amounts must be Decimal, never float."""
        with pytest.raises(TypeError):
            PaymentRecord(
                id="p1",
                name="x",
                amount=89.9,
                currency=Currency.PEN,
                due_date=NOW,
            )

    def test_synced_requires_last_synced_at(self):
        """A synced record without last_synced_at cannot be built."""
        with pytest.raises(ValueError):
            PaymentRecord(
                id="p1",
                name="Agua",
                amount=Decimal("10"),
                currency=Currency.PEN,
                due_date=NOW,
                sync_status=SyncStatus.SYNCED,
            )

    def test_records_are_immutable(self, make_payment):
        """Records are frozen values."""
        record = make_payment()
        with pytest.raises(AttributeError):
            record.name = "Other"

    def test_revision_not_part_of_equality(self, make_payment):
        """Two records differing only in revision compare equal."""
        record = make_payment()
        assert record.with_changes(revision=5) == record

    @pytest.mark.parametrize(
        "status,expected",
        [
            (SyncStatus.LOCAL, True),
            (SyncStatus.MODIFIED, True),
            (SyncStatus.ERROR, True),
            (SyncStatus.SYNCED, False),
            (SyncStatus.SYNCING, False),
        ],
    )
    def test_is_pending(self, make_payment, status, expected):
        """Only local, modified and error records are pending."""
        assert make_payment(sync_status=status).is_pending is expected

    def test_display_amount(self, make_payment):
        """Amounts show the currency symbol and two decimals."""
        assert make_payment(amount="1234.5").display_amount == "S/ 1,234.50"
        usd = make_payment(amount="20").with_changes(currency=Currency.USD)
        assert usd.display_amount == "$ 20.00"


class TestSyncStateTransitions:
    """Tests for the per-record state machine."""

    def test_edit_of_synced_becomes_modified(self, make_payment):
        record = make_payment(sync_status=SyncStatus.SYNCED)
        assert advance_on_local_edit(record).sync_status is SyncStatus.MODIFIED

    @pytest.mark.parametrize(
        "status", [SyncStatus.LOCAL, SyncStatus.MODIFIED, SyncStatus.ERROR]
    )
    def test_edit_keeps_other_statuses(self, make_payment, status):
        """Editing a never-uploaded record keeps it local (and so on)."""
        record = make_payment(sync_status=status)
        assert advance_on_local_edit(record).sync_status is status

    def test_upload_success_sets_synced_and_timestamp(self, make_payment):
        record = advance_on_upload_success(make_payment(), NOW)
        assert record.sync_status is SyncStatus.SYNCED
        assert record.last_synced_at == NOW

    def test_upload_failure_keeps_last_synced_at(self, make_payment):
        """A failed upload marks error but remembers the last good sync."""
        original = make_payment(sync_status=SyncStatus.MODIFIED)
        failed = advance_on_upload_failure(original)
        assert failed.sync_status is SyncStatus.ERROR
        assert failed.last_synced_at == original.last_synced_at

    def test_failure_then_success_reaches_synced(self, make_payment):
        record = advance_on_upload_failure(make_payment())
        record = advance_on_upload_success(record, NOW)
        assert record.sync_status is SyncStatus.SYNCED

    def test_recover_never_synced_goes_local(self, make_payment):
        record = make_payment(sync_status=SyncStatus.SYNCING)
        assert recover_interrupted(record).sync_status is SyncStatus.LOCAL

    def test_recover_previously_synced_goes_modified(self, make_payment):
        record = make_payment(sync_status=SyncStatus.SYNCING, last_synced_at=NOW)
        assert recover_interrupted(record).sync_status is SyncStatus.MODIFIED

    def test_recover_leaves_other_statuses(self, make_payment):
        record = make_payment(sync_status=SyncStatus.ERROR)
        assert recover_interrupted(record) is record

    def test_pending_filters_records(self, make_payment):
        records = [
            make_payment(sync_status=SyncStatus.LOCAL),
            make_payment(sync_status=SyncStatus.SYNCED),
            make_payment(sync_status=SyncStatus.ERROR),
        ]
        assert [r.sync_status for r in pending(records)] == [SyncStatus.LOCAL, SyncStatus.ERROR]
