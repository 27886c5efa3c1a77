"""Protocol definitions for client interfaces.

These protocols define the expected interface for real and mock clients,
ensuring type safety and interface consistency.
"""

from typing import Any, Optional, Protocol


class RemoteStoreProtocol(Protocol):
    """Protocol defining the remote payment store interface.

    Rows are wire-format dicts (see ``clients.wire``). Deletes must be
    idempotent: deleting an id that does not exist is a success.
    """

    def fetch_all(self, owner_id: str) -> list[dict[str, Any]]:
        """Fetch every payment owned by ``owner_id``."""
        ...

    def fetch(self, payment_id: str) -> Optional[dict[str, Any]]:
        """Fetch one payment by id."""
        ...

    def upsert(self, row: dict[str, Any], owner_id: str) -> None:
        """Insert or update one payment."""
        ...

    def upsert_all(self, rows: list[dict[str, Any]], owner_id: str) -> None:
        """Insert or update payments in one all-or-nothing call."""
        ...

    def delete(self, payment_id: str) -> None:
        """Delete one payment."""
        ...

    def delete_all(self, payment_ids: list[str]) -> None:
        """Delete payments in one call."""
        ...


class SessionProtocol(Protocol):
    """Protocol for the authentication collaborator."""

    def current_user_id(self) -> Optional[str]:
        """Owner id of the signed-in user, or None when signed out."""
        ...


class StaticSession:
    """Session with a fixed owner id, taken from configuration."""

    def __init__(self, user_id: Optional[str]):
        self._user_id = user_id or None

    def current_user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_authenticated(self) -> bool:
        return self._user_id is not None
