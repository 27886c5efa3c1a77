"""In-memory remote store for tests and ``--mock`` mode.

Behaves like the hosted table (keyed by id, scoped by owner, idempotent
deletes) without any network. Flip ``online`` to simulate connectivity loss.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from ..errors import RemoteStoreError

logger = logging.getLogger(__name__)


class MockRemoteStore:
    """Mock remote payment store."""

    def __init__(self, storage_path: Optional[Path] = None, online: bool = True):
        """Initialize the store.

        Args:
            storage_path: Optional JSON file the rows are loaded from and
                saved to, so state survives between CLI invocations.
            online: Whether calls succeed.
        """
        self.rows: dict[str, dict[str, Any]] = {}
        self.online = online
        self.fail_upserts = False
        self.fail_deletes = False
        self.fail_fetches = False
        self.upsert_calls: list[list[str]] = []
        self.delete_calls: list[list[str]] = []
        self.fetch_calls: list[str] = []
        self._storage_path = storage_path
        if storage_path is not None and storage_path.exists():
            with open(storage_path, encoding="utf-8") as f:
                self.rows = {row["id"]: row for row in json.load(f)}
            logger.debug("Loaded %d mock remote rows from %s", len(self.rows), storage_path)

    def save(self) -> None:
        """Write rows to the storage file, if one was given."""
        if self._storage_path is None:
            return
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._storage_path, "w", encoding="utf-8") as f:
            json.dump(list(self.rows.values()), f, indent=2, ensure_ascii=False)

    def _check(self, operation: str, failing: bool) -> None:
        if not self.online:
            raise RemoteStoreError(f"{operation} failed: network unreachable")
        if failing:
            raise RemoteStoreError(f"{operation} failed with HTTP 500", status_code=500)

    def fetch_all(self, owner_id: str) -> list[dict[str, Any]]:
        self.fetch_calls.append(owner_id)
        self._check("fetch_all", self.fail_fetches)
        return [dict(row) for row in self.rows.values() if row.get("owner_id") == owner_id]

    def fetch(self, payment_id: str) -> Optional[dict[str, Any]]:
        self._check("fetch", self.fail_fetches)
        row = self.rows.get(payment_id)
        return dict(row) if row else None

    def upsert(self, row: dict[str, Any], owner_id: str) -> None:
        self.upsert_all([row], owner_id)

    def upsert_all(self, rows: list[dict[str, Any]], owner_id: str) -> None:
        self.upsert_calls.append([row["id"] for row in rows])
        self._check("upsert", self.fail_upserts)
        for row in rows:
            existing = self.rows.get(row["id"], {})
            self.rows[row["id"]] = {
                "created_at": existing.get("created_at") or row.get("updated_at"),
                **row,
                "owner_id": owner_id,
            }
        self.save()

    def delete(self, payment_id: str) -> None:
        self.delete_all([payment_id])

    def delete_all(self, payment_ids: list[str]) -> None:
        self.delete_calls.append(list(payment_ids))
        self._check("delete", self.fail_deletes)
        for payment_id in payment_ids:
            self.rows.pop(payment_id, None)
        self.save()
