"""Sync service for moving payments between the local database and the remote store.

Provides the two halves of a sync cycle:
- upload: push queued deletes, then every pending payment, to the remote store
- download: fetch the owner's remote payments and merge them locally

Failures are raised as SyncError subclasses; the coordinator decides what
to do with them.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from tqdm import tqdm

from ..clients.wire import from_wire, to_wire
from ..db.database import MERGE_INSERTED, MERGE_UPDATED
from ..errors import (
    DeleteFailedError,
    FetchFailedError,
    NotAuthenticatedError,
    RemoteStoreError,
    StorageFaultError,
    UploadFailedError,
    WireFormatError,
)
from ..models import advance_on_upload_failure, advance_on_upload_success, utc_now

if TYPE_CHECKING:
    from ..clients.protocols import RemoteStoreProtocol, SessionProtocol
    from ..db.database import Database

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "payments"

T = TypeVar("T")


def storage_call(operation: Callable[..., T], *args: Any) -> T:
    """Run a local store call, reporting sqlite failures as StorageFaultError."""
    try:
        return operation(*args)
    except sqlite3.Error as e:
        logger.exception("Local storage failure during sync")
        raise StorageFaultError(f"Local storage failure: {e}", cause=e) from e


@dataclass
class UploadResult:
    """Result of an upload."""

    uploaded: int = 0  # Rows confirmed synced
    deleted: int = 0  # Ledger entries confirmed deleted remotely
    stale: int = 0  # Uploaded, but edited locally mid-flight and left pending
    uploaded_ids: list[str] = field(default_factory=list)

    @property
    def nothing_to_do(self) -> bool:
        return not (self.uploaded or self.deleted or self.stale)


@dataclass
class DownloadResult:
    """Result of a download."""

    fetched: int = 0  # Rows returned by the remote store
    inserted: int = 0
    updated: int = 0
    skipped: int = 0  # Pending locally or deleted locally
    rejected: int = 0  # Malformed remote rows
    total: int = 0  # Total payments in DB after merge
    rejected_ids: list[str] = field(default_factory=list)


class SyncService:
    """Service for syncing payments between local SQLite and the remote store.

    Nomenclature:
    - upload: local changes -> remote
    - download: remote -> local
    """

    def __init__(
        self,
        db: Database,
        remote: RemoteStoreProtocol,
        session: SessionProtocol,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize sync service.

        Args:
            db: Database instance for local storage.
            remote: Remote store (real or mock).
            session: Resolves the owner id of the signed-in user.
            clock: Source of "now" for sync timestamps.
        """
        self._db = db
        self._remote = remote
        self._session = session
        self._clock = clock

    def _owner_id(self) -> str:
        owner_id = self._session.current_user_id()
        if not owner_id:
            raise NotAuthenticatedError("No signed-in user to sync for")
        return owner_id

    def upload(self) -> UploadResult:
        """Upload queued deletions and pending payments.

        Deletions go first. If the remote delete fails the ledger is kept
        and nothing else is uploaded. Pending payments are then sent in one
        all-or-nothing batch: on success each row is marked synced unless it
        was edited meanwhile, on failure every row of the batch is marked
        'error'.

        Raises:
            NotAuthenticatedError: No signed-in user.
            DeleteFailedError: Remote delete failed.
            UploadFailedError: Remote upsert failed.
            StorageFaultError: Local store failed.
        """
        owner_id = self._owner_id()
        result = UploadResult()

        deletions = storage_call(self._db.get_pending_deletions)
        if deletions:
            ids = [d.payment_id for d in deletions]
            logger.info("Deleting %d payments from remote store", len(ids))
            try:
                self._remote.delete_all(ids)
            except RemoteStoreError as e:
                logger.warning("Remote delete failed, keeping %d ledger entries: %s", len(ids), e)
                raise DeleteFailedError(f"Could not delete {len(ids)} remote payments", cause=e) from e
            storage_call(self._db.remove_pending_deletions, ids)
            result.deleted = len(ids)

        pending = storage_call(self._db.get_pending_payments)
        if not pending:
            logger.debug("No pending payments to upload")
            return result

        now = self._clock()
        confirmed = [advance_on_upload_success(r, now) for r in pending]
        logger.info("Uploading %d pending payments", len(pending))
        try:
            self._remote.upsert_all([to_wire(r, owner_id) for r in confirmed], owner_id)
        except RemoteStoreError as e:
            failed = [advance_on_upload_failure(r) for r in pending]
            storage_call(self._db.mark_failed, failed)
            logger.warning("Upload of %d payments failed: %s", len(pending), e)
            raise UploadFailedError(f"Could not upload {len(pending)} payments", cause=e) from e

        result.uploaded = storage_call(self._db.mark_synced, confirmed)
        result.stale = len(confirmed) - result.uploaded
        result.uploaded_ids = [r.id for r in confirmed]
        if result.stale:
            logger.info("%d payments changed during upload and stay pending", result.stale)
        return result

    def download(self, show_progress: bool = False) -> DownloadResult:
        """Fetch the owner's remote payments and merge them into the local store.

        Pending local rows and locally deleted ids are never overwritten, and
        local rows missing remotely are never deleted.

        Raises:
            NotAuthenticatedError: No signed-in user.
            FetchFailedError: Remote fetch failed.
            StorageFaultError: Local store failed.
        """
        owner_id = self._owner_id()
        try:
            rows = self._remote.fetch_all(owner_id)
        except RemoteStoreError as e:
            logger.warning("Remote fetch failed: %s", e)
            raise FetchFailedError("Could not fetch remote payments", cause=e) from e

        now = self._clock()
        result = DownloadResult(fetched=len(rows))
        for row in tqdm(rows, desc="Merging payments", unit="payment", disable=not show_progress):
            try:
                record = from_wire(row, now)
            except WireFormatError as e:
                row_id = str(row.get("id")) if isinstance(row, dict) else repr(row)
                logger.warning("Rejected remote payment %s: %s", row_id, e)
                result.rejected += 1
                result.rejected_ids.append(row_id)
                continue
            outcome = storage_call(self._db.merge_remote_payment, record)
            if outcome == MERGE_INSERTED:
                result.inserted += 1
            elif outcome == MERGE_UPDATED:
                result.updated += 1
            else:
                result.skipped += 1

        result.total = storage_call(self._db.get_payment_count)
        logger.info(
            "Downloaded %d payments: %d inserted, %d updated, %d skipped, %d rejected",
            result.fetched,
            result.inserted,
            result.updated,
            result.skipped,
            result.rejected,
        )
        return result
