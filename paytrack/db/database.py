"""SQLite database management for paytrack.

Handles connection management and provides query methods for:
- Payment records and their sync status
- The pending-deletion ledger (local deletes not yet confirmed remotely)
- Sync state tracking
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from ..models import (
    PENDING_STATUSES,
    Currency,
    PaymentCategory,
    PaymentRecord,
    PendingDeletion,
    SyncStatus,
    recover_interrupted,
    utc_now,
)

__all__ = ["Database", "MERGE_INSERTED", "MERGE_UPDATED", "MERGE_SKIPPED"]

logger = logging.getLogger(__name__)

MERGE_INSERTED = "inserted"
MERGE_UPDATED = "updated"
MERGE_SKIPPED = "skipped"

_PENDING_VALUES = tuple(sorted(s.value for s in PENDING_STATUSES))
_PENDING_PLACEHOLDERS = ",".join("?" * len(_PENDING_VALUES))

_PAYMENT_COLUMNS = (
    "id, name, amount, currency, due_date, is_paid, category, external_ref, "
    "group_id, sync_status, last_synced_at, revision"
)


def _now_iso() -> str:
    """Return current UTC datetime as ISO format string."""
    return utc_now().isoformat()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _row_to_record(row: sqlite3.Row) -> PaymentRecord:
    return PaymentRecord(
        id=row["id"],
        name=row["name"],
        amount=Decimal(row["amount"]),
        currency=Currency(row["currency"]),
        due_date=datetime.fromisoformat(row["due_date"]),
        is_paid=bool(row["is_paid"]),
        category=PaymentCategory(row["category"]),
        external_calendar_ref=row["external_ref"],
        group_id=row["group_id"],
        sync_status=SyncStatus(row["sync_status"]),
        last_synced_at=datetime.fromisoformat(row["last_synced_at"])
        if row["last_synced_at"]
        else None,
        revision=row["revision"],
    )


def _record_params(record: PaymentRecord) -> tuple[Any, ...]:
    return (
        record.id,
        record.name,
        str(record.amount),
        record.currency.value,
        record.due_date.isoformat(),
        record.is_paid,
        record.category.value,
        record.external_calendar_ref,
        record.group_id,
        record.sync_status.value,
        _iso(record.last_synced_at),
        record.revision,
    )


class Database:
    """SQLite database manager for payment records and sync bookkeeping.

    Every call is serialized by one re-entrant lock around a single
    connection, so the database can be shared between the sync worker and
    foreground edits.
    """

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create a persistent database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=30000")
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for one serialized transaction."""
        with self._lock:
            conn = self._get_connection()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _count(self, table: str, where: str = "", params: tuple[Any, ...] = ()) -> int:
        """Count rows in a table with optional WHERE clause."""
        query = f"SELECT COUNT(*) as count FROM {table}"
        if where:
            query += f" WHERE {where}"
        with self._connection() as conn:
            row = conn.execute(query, params).fetchone()
            return int(row["count"]) if row else 0

    def _init_schema(self) -> None:
        """Create database tables if they don't exist."""
        with self._connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS payments (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    currency TEXT NOT NULL DEFAULT 'PEN',
                    due_date TIMESTAMP NOT NULL,
                    is_paid BOOLEAN DEFAULT 0,
                    category TEXT NOT NULL,
                    external_ref TEXT,
                    group_id TEXT,
                    sync_status TEXT NOT NULL DEFAULT 'local',
                    last_synced_at TIMESTAMP,
                    revision INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP
                );
                CREATE TABLE IF NOT EXISTS pending_deletions (
                    payment_id TEXT PRIMARY KEY,
                    deleted_at TIMESTAMP NOT NULL
                );
                CREATE TABLE IF NOT EXISTS sync_state (
                    key TEXT PRIMARY KEY,
                    last_sync_at TIMESTAMP,
                    record_count INTEGER
                );
                CREATE INDEX IF NOT EXISTS idx_payments_due_date ON payments(due_date);
                CREATE INDEX IF NOT EXISTS idx_payments_sync_status ON payments(sync_status);
            """)
            self._run_migrations(conn)

    def _run_migrations(self, conn: sqlite3.Connection) -> None:
        """Run all schema migrations."""
        cursor = conn.execute("PRAGMA table_info(payments)")
        columns = {row[1] for row in cursor.fetchall()}
        if "group_id" not in columns:
            conn.execute("ALTER TABLE payments ADD COLUMN group_id TEXT")
        if "revision" not in columns:
            conn.execute("ALTER TABLE payments ADD COLUMN revision INTEGER NOT NULL DEFAULT 0")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_payments_group ON payments(group_id)")

        # Recover rows left in 'syncing' by an interrupted upload
        rows = conn.execute(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE sync_status = ?",
            (SyncStatus.SYNCING.value,),
        ).fetchall()
        for row in rows:
            recovered = recover_interrupted(_row_to_record(row))
            conn.execute(
                "UPDATE payments SET sync_status = ? WHERE id = ?",
                (recovered.sync_status.value, recovered.id),
            )
        if rows:
            logger.warning("Recovered %d payments left in 'syncing' state", len(rows))

    def clear_all(self) -> dict[str, int]:
        """Clear all data from all tables."""
        counts = {}
        with self._connection() as conn:
            for table in ("payments", "pending_deletions", "sync_state"):
                row = conn.execute(f"SELECT COUNT(*) as count FROM {table}").fetchone()
                counts[table] = row["count"] if row else 0
                conn.execute(f"DELETE FROM {table}")
        return counts

    # =========================================================================
    # Payment Methods
    # =========================================================================

    def _upsert(self, conn: sqlite3.Connection, record: PaymentRecord) -> None:
        if record.sync_status is SyncStatus.SYNCING:
            raise ValueError(f"Refusing to persist payment {record.id} in 'syncing' state")
        conn.execute(
            f"""INSERT INTO payments ({_PAYMENT_COLUMNS}, updated_at)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name, amount = excluded.amount,
                currency = excluded.currency, due_date = excluded.due_date,
                is_paid = excluded.is_paid, category = excluded.category,
                external_ref = excluded.external_ref, group_id = excluded.group_id,
                sync_status = excluded.sync_status, last_synced_at = excluded.last_synced_at,
                revision = excluded.revision, updated_at = excluded.updated_at""",
            (*_record_params(record), _now_iso()),
        )

    def save_payment(self, record: PaymentRecord) -> None:
        """Insert or update a payment.

        Raises:
            ValueError: If the record is in the transient 'syncing' state.
        """
        with self._connection() as conn:
            self._upsert(conn, record)

    def save_payments(self, records: Iterable[PaymentRecord]) -> int:
        """Insert or update payments in one transaction."""
        count = 0
        with self._connection() as conn:
            for record in records:
                self._upsert(conn, record)
                count += 1
        return count

    def get_payment(self, payment_id: str) -> Optional[PaymentRecord]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE id = ?", (payment_id,)
            ).fetchone()
            return _row_to_record(row) if row else None

    def get_all_payments(self) -> list[PaymentRecord]:
        """Get all payments ordered by due date."""
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_PAYMENT_COLUMNS} FROM payments ORDER BY due_date, name"
            ).fetchall()
            return [_row_to_record(row) for row in rows]

    def get_pending_payments(self) -> list[PaymentRecord]:
        """Get payments that still have to be uploaded."""
        with self._connection() as conn:
            rows = conn.execute(
                f"""SELECT {_PAYMENT_COLUMNS} FROM payments
                WHERE sync_status IN ({_PENDING_PLACEHOLDERS}) ORDER BY due_date, name""",
                _PENDING_VALUES,
            ).fetchall()
            return [_row_to_record(row) for row in rows]

    def get_payments_by_group(self, group_id: str) -> list[PaymentRecord]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE group_id = ? ORDER BY currency",
                (group_id,),
            ).fetchall()
            return [_row_to_record(row) for row in rows]

    def get_payment_count(self) -> int:
        return self._count("payments")

    def get_pending_count(self) -> int:
        """Count payments with status local, modified or error."""
        return self._count("payments", f"sync_status IN ({_PENDING_PLACEHOLDERS})", _PENDING_VALUES)

    def _delete(self, conn: sqlite3.Connection, payment_id: str) -> Optional[PaymentRecord]:
        row = conn.execute(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE id = ?", (payment_id,)
        ).fetchone()
        if not row:
            return None
        record = _row_to_record(row)
        conn.execute("DELETE FROM payments WHERE id = ?", (payment_id,))
        if record.was_ever_synced:
            conn.execute(
                "INSERT OR REPLACE INTO pending_deletions (payment_id, deleted_at) VALUES (?, ?)",
                (payment_id, _now_iso()),
            )
            logger.debug("Queued remote deletion of payment %s", payment_id)
        return record

    def delete_payment(self, payment_id: str) -> Optional[PaymentRecord]:
        """Delete a payment, queueing a remote delete if it was ever uploaded.

        The row removal and the ledger entry are written in one transaction.

        Returns:
            The deleted record, or None if no such payment exists.
        """
        with self._connection() as conn:
            return self._delete(conn, payment_id)

    def delete_payments(self, payment_ids: Iterable[str]) -> int:
        """Delete several payments in one transaction. Returns number deleted."""
        deleted = 0
        with self._connection() as conn:
            for payment_id in payment_ids:
                if self._delete(conn, payment_id) is not None:
                    deleted += 1
        return deleted

    def clear_payments(self) -> int:
        """Remove every payment without queueing remote deletes."""
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM payments")
            return cursor.rowcount

    # =========================================================================
    # Sync Bookkeeping Methods
    # =========================================================================

    def mark_synced(self, records: Iterable[PaymentRecord]) -> int:
        """Persist upload confirmations for records advanced to 'synced'.

        Each row is only updated if its revision still matches the record's,
        so an edit made while the upload was in flight stays pending. A row
        deleted in the meantime gets a ledger entry, since the remote copy
        now exists.

        Returns:
            Number of rows marked synced.
        """
        updated = 0
        with self._connection() as conn:
            for record in records:
                cursor = conn.execute(
                    """UPDATE payments SET sync_status = ?, last_synced_at = ?, updated_at = ?
                    WHERE id = ? AND revision = ?""",
                    (
                        record.sync_status.value,
                        _iso(record.last_synced_at),
                        _now_iso(),
                        record.id,
                        record.revision,
                    ),
                )
                if cursor.rowcount:
                    updated += 1
                    continue
                exists = conn.execute(
                    "SELECT 1 FROM payments WHERE id = ?", (record.id,)
                ).fetchone()
                if exists:
                    logger.debug("Payment %s was edited during upload; left pending", record.id)
                else:
                    conn.execute(
                        "INSERT OR IGNORE INTO pending_deletions (payment_id, deleted_at) VALUES (?, ?)",
                        (record.id, _now_iso()),
                    )
                    logger.debug("Payment %s was deleted during upload; queued remote delete", record.id)
        return updated

    def mark_failed(self, records: Iterable[PaymentRecord]) -> int:
        """Persist the failed status of records from a rejected upload batch."""
        updated = 0
        with self._connection() as conn:
            for record in records:
                cursor = conn.execute(
                    "UPDATE payments SET sync_status = ?, updated_at = ? WHERE id = ?",
                    (record.sync_status.value, _now_iso(), record.id),
                )
                updated += cursor.rowcount
        return updated

    def merge_remote_payment(self, record: PaymentRecord) -> str:
        """Merge one downloaded record into the local store.

        Inserts when absent and overwrites a local row that is 'synced'.
        Pending local rows and ids waiting in the deletion ledger are left
        alone.

        Returns:
            MERGE_INSERTED, MERGE_UPDATED or MERGE_SKIPPED.
        """
        with self._connection() as conn:
            if conn.execute(
                "SELECT 1 FROM pending_deletions WHERE payment_id = ?", (record.id,)
            ).fetchone():
                logger.debug("Skipping remote payment %s: deleted locally", record.id)
                return MERGE_SKIPPED
            row = conn.execute(
                "SELECT sync_status, revision FROM payments WHERE id = ?", (record.id,)
            ).fetchone()
            if row is None:
                self._upsert(conn, record.with_changes(revision=0))
                return MERGE_INSERTED
            if row["sync_status"] != SyncStatus.SYNCED.value:
                logger.debug(
                    "Skipping remote payment %s: local copy is %s", record.id, row["sync_status"]
                )
                return MERGE_SKIPPED
            self._upsert(conn, record.with_changes(revision=row["revision"]))
            return MERGE_UPDATED

    # =========================================================================
    # Pending Deletion Methods
    # =========================================================================

    def add_pending_deletion(self, payment_id: str, deleted_at: Optional[datetime] = None) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO pending_deletions (payment_id, deleted_at) VALUES (?, ?)",
                (payment_id, (deleted_at or utc_now()).isoformat()),
            )

    def get_pending_deletions(self) -> list[PendingDeletion]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT payment_id, deleted_at FROM pending_deletions ORDER BY deleted_at"
            ).fetchall()
            return [
                PendingDeletion(
                    payment_id=row["payment_id"],
                    deleted_at=datetime.fromisoformat(row["deleted_at"]),
                )
                for row in rows
            ]

    def remove_pending_deletions(self, payment_ids: Iterable[str]) -> int:
        """Remove ledger entries after the remote delete succeeded."""
        removed = 0
        with self._connection() as conn:
            for payment_id in payment_ids:
                cursor = conn.execute(
                    "DELETE FROM pending_deletions WHERE payment_id = ?", (payment_id,)
                )
                removed += cursor.rowcount
        return removed

    def get_pending_deletion_count(self) -> int:
        return self._count("pending_deletions")

    # =========================================================================
    # Sync State Methods
    # =========================================================================

    def get_sync_state(self, key: str) -> Optional[dict[str, Any]]:
        """Get sync state for a given key."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT key, last_sync_at, record_count FROM sync_state WHERE key = ?", (key,)
            ).fetchone()
            if not row:
                return None
            return {
                "key": row["key"],
                "last_sync_at": datetime.fromisoformat(row["last_sync_at"])
                if row["last_sync_at"]
                else None,
                "record_count": row["record_count"],
            }

    def update_sync_state(self, key: str, last_sync_at: datetime, record_count: int) -> None:
        """Update sync state for a given key."""
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, last_sync_at, record_count) VALUES (?,?,?)",
                (key, last_sync_at.isoformat(), record_count),
            )
