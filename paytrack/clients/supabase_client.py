"""REST client for the hosted payments table.

Talks to a PostgREST endpoint (``<url>/rest/v1/<table>``) the way a Supabase
project exposes it. Only transport lives here: rows go in and out as
wire-format dicts and sync status is never looked at.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import httpx

from ..config import RemoteConfig, SyncConfig
from ..errors import RemoteStoreError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class SupabaseRemoteStore:
    """Remote payment store backed by a PostgREST table."""

    def __init__(
        self,
        config: RemoteConfig,
        sync_config: Optional[SyncConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the client.

        Args:
            config: Connection settings (url, api key, access token, table).
            sync_config: Retry policy. Defaults to SyncConfig().
            transport: Optional httpx transport, used by tests.
            sleep: Sleep function used between retries.
        """
        if not config.url:
            raise RemoteStoreError("Remote URL is not configured")
        self._config = config
        self._sync = sync_config or SyncConfig()
        self._sleep = sleep
        self._path = f"/{config.table}"
        self._client = httpx.Client(
            base_url=f"{config.url.rstrip('/')}/rest/v1",
            headers=self._default_headers(),
            timeout=config.timeout_seconds,
            transport=transport,
        )

    def _default_headers(self) -> dict[str, str]:
        token = self._config.access_token or self._config.api_key
        return {
            "apikey": self._config.api_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> SupabaseRemoteStore:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================================================================
    # Transport
    # =========================================================================

    def _backoff_seconds(self, attempt: int) -> float:
        delay = self._sync.backoff_seconds * (2 ** (attempt - 1))
        return min(delay, self._sync.max_backoff_seconds)

    def _request(
        self,
        method: str,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
        ok_statuses: frozenset[int] = frozenset(),
    ) -> httpx.Response:
        """Send a request, retrying transient failures with exponential backoff.

        Connection errors, timeouts, 429 and 5xx are retried up to
        ``retry_attempts`` times in total. Anything else fails immediately.

        Raises:
            RemoteStoreError: When the request ultimately fails.
        """
        attempts = max(1, self._sync.retry_attempts)
        attempt = 1
        while True:
            try:
                response = self._client.request(
                    method, self._path, params=params, json=json, headers=headers
                )
            except httpx.TransportError as e:
                if attempt >= attempts:
                    raise RemoteStoreError(f"{method} {self._path} failed: {e}") from e
                delay = self._backoff_seconds(attempt)
                logger.warning(
                    "%s %s transport error (attempt %d/%d), retrying in %.2fs: %s",
                    method,
                    self._path,
                    attempt,
                    attempts,
                    delay,
                    e,
                )
                self._sleep(delay)
                attempt += 1
                continue
            except httpx.HTTPError as e:
                # DecodingError and TooManyRedirects are not retried
                raise RemoteStoreError(f"{method} {self._path} failed: {e}") from e

            if response.status_code in RETRYABLE_STATUS_CODES and attempt < attempts:
                delay = self._backoff_seconds(attempt)
                logger.warning(
                    "%s %s returned HTTP %d (attempt %d/%d), retrying in %.2fs",
                    method,
                    self._path,
                    response.status_code,
                    attempt,
                    attempts,
                    delay,
                )
                self._sleep(delay)
                attempt += 1
                continue

            if response.is_success or response.status_code in ok_statuses:
                return response
            raise RemoteStoreError(
                f"{method} {self._path} failed with HTTP {response.status_code}: "
                f"{response.text[:200]}",
                status_code=response.status_code,
            )

    def _rows(self, response: httpx.Response) -> list[Any]:
        """Decode a JSON array body.

        Raises:
            RemoteStoreError: If the body is not JSON or not an array.
        """
        try:
            rows = response.json()
        except ValueError as e:
            raise RemoteStoreError(
                f"GET {self._path} returned a non-JSON body: {response.text[:200]!r}",
                status_code=response.status_code,
            ) from e
        if not isinstance(rows, list):
            raise RemoteStoreError(
                f"GET {self._path} returned {type(rows).__name__} instead of a list: "
                f"{str(rows)[:200]}",
                status_code=response.status_code,
            )
        return rows

    # =========================================================================
    # Remote store operations
    # =========================================================================

    def fetch_all(self, owner_id: str) -> list[dict[str, Any]]:
        response = self._request("GET", params={"select": "*", "owner_id": f"eq.{owner_id}"})
        rows = self._rows(response)
        logger.info("Fetched %d remote payments for owner %s", len(rows), owner_id)
        return rows

    def fetch(self, payment_id: str) -> Optional[dict[str, Any]]:
        response = self._request(
            "GET", params={"select": "*", "id": f"eq.{payment_id}", "limit": "1"}
        )
        rows = self._rows(response)
        return rows[0] if rows else None

    def upsert(self, row: dict[str, Any], owner_id: str) -> None:
        self.upsert_all([row], owner_id)

    def upsert_all(self, rows: list[dict[str, Any]], owner_id: str) -> None:
        """Upsert rows in a single request, stamping each with ``owner_id``."""
        if not rows:
            logger.debug("No payments to upsert")
            return
        payload = [{**row, "owner_id": owner_id} for row in rows]
        self._request(
            "POST",
            params={"on_conflict": "id"},
            json=payload,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )
        logger.info("Upserted %d payments", len(payload))

    def delete(self, payment_id: str) -> None:
        self.delete_all([payment_id])

    def delete_all(self, payment_ids: list[str]) -> None:
        """Delete rows by id. Ids that no longer exist are not an error."""
        if not payment_ids:
            logger.debug("No payments to delete")
            return
        id_list = ",".join(payment_ids)
        self._request(
            "DELETE",
            params={"id": f"in.({id_list})"},
            headers={"Prefer": "return=minimal"},
            ok_statuses=frozenset({404}),
        )
        logger.info("Deleted %d remote payments", len(payment_ids))
