"""Per-record sync-status transitions.

    local ──upload ok──► synced ──local edit──► modified
      │                    ▲                       │
      └──upload failed──► error ◄──upload failed───┘
                           └──────upload ok──────► synced

``local`` is write-once: nothing transitions back to it. Only deletion
removes a never-uploaded record.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from .payment import PaymentRecord, SyncStatus


def advance_on_local_edit(record: PaymentRecord) -> PaymentRecord:
    """Mark a synced record as modified; any other status is kept."""
    if record.sync_status is SyncStatus.SYNCED:
        return record.with_changes(sync_status=SyncStatus.MODIFIED)
    return record


def advance_on_upload_success(record: PaymentRecord, now: datetime) -> PaymentRecord:
    return record.with_changes(sync_status=SyncStatus.SYNCED, last_synced_at=now)


def advance_on_upload_failure(record: PaymentRecord) -> PaymentRecord:
    """Mark a record as failed, keeping its last successful sync time."""
    return record.with_changes(sync_status=SyncStatus.ERROR)


def recover_interrupted(record: PaymentRecord) -> PaymentRecord:
    """Map a record left in ``syncing`` to a durable, retryable status."""
    if record.sync_status is not SyncStatus.SYNCING:
        return record
    if record.last_synced_at is None:
        return record.with_changes(sync_status=SyncStatus.LOCAL)
    return record.with_changes(sync_status=SyncStatus.MODIFIED)


def pending(records: Iterable[PaymentRecord]) -> list[PaymentRecord]:
    """Records that must be uploaded (local, modified or error)."""
    return [r for r in records if r.is_pending]
