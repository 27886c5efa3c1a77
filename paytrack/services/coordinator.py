"""Sync coordination and observable sync status.

SyncCoordinator runs one upload-then-download cycle at a time and records the
outcome on a SyncMonitor, which UI code reads or subscribes to. Sync failures
never propagate out of ``perform_sync``: local data stays usable and the
error is exposed as a status value instead.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from ..errors import SyncError
from ..models import utc_now
from .sync import LAST_SYNC_KEY, DownloadResult, UploadResult, storage_call

if TYPE_CHECKING:
    from ..db.database import Database
    from .sync import SyncService

logger = logging.getLogger(__name__)


def unsent_change_count(db: Database) -> int:
    """Pending payments plus queued remote deletes."""
    return db.get_pending_count() + db.get_pending_deletion_count()


def clear_local_store(db: Database, force: bool = False) -> bool:
    """Remove all local payments, the deletion ledger and sync state.

    Unless ``force`` is set, refuses while any change has not been uploaded.

    Returns:
        True if the store was cleared.
    """
    unsent = unsent_change_count(db)
    if unsent and not force:
        logger.warning("Refusing to clear local database: %d unsynced changes", unsent)
        return False
    counts = db.clear_all()
    logger.info("Cleared local database: %s", counts)
    return True


@dataclass(frozen=True)
class SyncSnapshot:
    """Point-in-time view of the sync status."""

    is_syncing: bool = False
    last_sync_date: Optional[datetime] = None
    pending_sync_count: int = 0
    sync_error: Optional[SyncError] = None

    @property
    def error_message(self) -> Optional[str]:
        """User-facing message for the last failure, if any."""
        return self.sync_error.user_message if self.sync_error else None


class SyncMonitor:
    """Read-only sync status with change notifications.

    Only the coordinator writes to it. Subscribers are called with the new
    snapshot after every change, on the thread that made the change.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = SyncSnapshot()
        self._subscribers: list[Callable[[SyncSnapshot], None]] = []

    @property
    def is_syncing(self) -> bool:
        return self._snapshot.is_syncing

    @property
    def last_sync_date(self) -> Optional[datetime]:
        return self._snapshot.last_sync_date

    @property
    def pending_sync_count(self) -> int:
        return self._snapshot.pending_sync_count

    @property
    def sync_error(self) -> Optional[SyncError]:
        return self._snapshot.sync_error

    @property
    def error_message(self) -> Optional[str]:
        return self._snapshot.error_message

    def snapshot(self) -> SyncSnapshot:
        return self._snapshot

    def subscribe(self, callback: Callable[[SyncSnapshot], None]) -> Callable[[], None]:
        """Register a callback for status changes.

        Returns:
            A function that removes the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _update(self, **changes) -> None:
        with self._lock:
            self._snapshot = replace(self._snapshot, **changes)
            snapshot = self._snapshot
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Sync status subscriber %r failed", callback)


@dataclass
class SyncResult:
    """Result of one sync cycle."""

    skipped: bool = False  # Another cycle was already running
    upload: Optional[UploadResult] = None
    download: Optional[DownloadResult] = None
    error: Optional[SyncError] = None

    @property
    def success(self) -> bool:
        return not self.skipped and self.error is None


class SyncCoordinator:
    """Runs sync cycles and keeps the SyncMonitor current.

    At most one cycle runs at a time; a call made while one is in flight
    returns immediately with ``skipped=True``.
    """

    def __init__(
        self,
        sync_service: SyncService,
        db: Database,
        monitor: Optional[SyncMonitor] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._sync = sync_service
        self._db = db
        self._monitor = monitor or SyncMonitor()
        self._clock = clock
        self._guard = threading.Lock()
        self.refresh()

    @property
    def monitor(self) -> SyncMonitor:
        return self._monitor

    def refresh(self) -> None:
        """Reload last sync date and pending count from the local store."""
        try:
            state = self._db.get_sync_state(LAST_SYNC_KEY)
            pending = self._db.get_pending_count()
        except sqlite3.Error:
            logger.exception("Could not read sync state")
            return
        self._monitor._update(
            last_sync_date=state["last_sync_at"] if state else None,
            pending_sync_count=pending,
        )

    def perform_sync(self, show_progress: bool = False) -> SyncResult:
        """Upload pending changes, then download remote changes.

        An upload failure ends the cycle without downloading. Errors are
        recorded on the monitor and returned, never raised.
        """
        if not self._guard.acquire(blocking=False):
            logger.info("Sync already in progress, request coalesced")
            return SyncResult(skipped=True)

        result = SyncResult()
        try:
            self._monitor._update(is_syncing=True, sync_error=None)
            logger.info("Sync started")
            try:
                result.upload = self._sync.upload()
                result.download = self._sync.download(show_progress=show_progress)
                finished_at = self._clock()
                storage_call(
                    self._db.update_sync_state, LAST_SYNC_KEY, finished_at, result.download.total
                )
            except SyncError as e:
                logger.warning("Sync failed [%s]: %s", e.code, e)
                result.error = e
            else:
                self._monitor._update(last_sync_date=finished_at)
                logger.info(
                    "Sync finished: %d uploaded, %d deleted, %d downloaded",
                    result.upload.uploaded,
                    result.upload.deleted,
                    result.download.inserted + result.download.updated,
                )
        finally:
            self._monitor._update(
                is_syncing=False,
                sync_error=result.error,
                pending_sync_count=self._pending_count_or_last(),
            )
            self._guard.release()
        return result

    def perform_initial_sync_if_needed(self, is_authenticated: bool) -> Optional[SyncResult]:
        """Run a first sync after sign-in when the local store is empty.

        Returns:
            The sync result, or None if no sync was needed.
        """
        if not is_authenticated:
            logger.debug("Not authenticated, skipping initial sync")
            return None
        if self._db.get_payment_count() or self._db.get_pending_deletion_count():
            logger.debug("Local store is not empty, skipping initial sync")
            return None
        logger.info("Local store is empty, running initial sync")
        return self.perform_sync()

    def pending_sync_count(self) -> int:
        """Number of payments waiting to be uploaded."""
        count = self._db.get_pending_count()
        self._monitor._update(pending_sync_count=count)
        return count

    def _pending_count_or_last(self) -> int:
        try:
            return self._db.get_pending_count()
        except sqlite3.Error:
            logger.exception("Could not count pending payments")
            return self._monitor.pending_sync_count

    def clear_local_database(self, force: bool = False) -> bool:
        """Remove all local payments, the deletion ledger and sync state.

        Refuses while a sync is running, and, unless ``force`` is set, while
        any change has not been uploaded yet.

        Returns:
            True if the store was cleared.
        """
        if not self._guard.acquire(blocking=False):
            logger.warning("Refusing to clear local database during sync")
            return False
        try:
            if not clear_local_store(self._db, force=force):
                return False
            self._monitor._update(last_sync_date=None, pending_sync_count=0, sync_error=None)
            return True
        finally:
            self._guard.release()
