"""Shared CLI helpers for context management and service creation."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterator, Optional

import click

from ..errors import PaymentError
from ..models import PaymentCategory

if TYPE_CHECKING:
    from click import Context

    from ..clients.protocols import RemoteStoreProtocol
    from ..clients import StaticSession
    from ..db.database import Database
    from ..services import PaymentService, SyncCoordinator
    from ..services.sync import SyncService

MOCK_USER_ID = "mock-user"

CATEGORY_CHOICES = [c.name.lower() for c in PaymentCategory]


def parse_category(value: Optional[str]) -> Optional[PaymentCategory]:
    """Map a --category choice (e.g. ``credit_card``) to the enum."""
    if value is None:
        return None
    return PaymentCategory[value.upper()]


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a naive datetime from click.DateTime."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@contextmanager
def payment_errors() -> Iterator[None]:
    """Report local payment errors as click errors (exit code 1)."""
    try:
        yield
    except PaymentError as e:
        raise click.ClickException(str(e)) from e


def get_database(ctx: Context) -> Database:
    """Lazily open the local database.

    Args:
        ctx: Click context with config and mock flags.

    Returns:
        Database instance.
    """
    from ..db.database import Database

    if "db" not in ctx.obj:
        cfg = ctx.obj["config"]
        cfg.data_dir.mkdir(parents=True, exist_ok=True)
        # Use separate database for mock mode
        if ctx.obj.get("mock", False):
            db_path = cfg.data_dir / "mock_paytrack.db"
        else:
            db_path = cfg.db_path
        ctx.obj["db"] = Database(db_path)
    return ctx.obj["db"]


def get_session(ctx: Context) -> StaticSession:
    from ..clients import StaticSession

    cfg = ctx.obj["config"]
    if ctx.obj.get("mock", False):
        return StaticSession(cfg.remote.user_id or MOCK_USER_ID)
    return StaticSession(cfg.remote.user_id)


def get_remote(ctx: Context) -> RemoteStoreProtocol:
    """Lazily create the remote store client.

    Raises:
        click.ClickException: If no remote store is configured outside mock mode.
    """
    from ..clients import MockRemoteStore, SupabaseRemoteStore

    if "remote" not in ctx.obj:
        cfg = ctx.obj["config"]
        if ctx.obj.get("mock", False):
            ctx.obj["remote"] = MockRemoteStore(storage_path=cfg.data_dir / "mock_remote.json")
        elif cfg.remote.is_configured:
            ctx.obj["remote"] = SupabaseRemoteStore(cfg.remote, cfg.sync)
        else:
            raise click.ClickException(
                "Remote store is not configured. Set [remote] url and api_key in the config "
                "file or PAYTRACK_REMOTE_URL / PAYTRACK_REMOTE_API_KEY, or use --mock."
            )
    return ctx.obj["remote"]


def has_remote(ctx: Context) -> bool:
    return ctx.obj.get("mock", False) or ctx.obj["config"].remote.is_configured


def get_payment_service(ctx: Context) -> PaymentService:
    from ..services import PaymentService

    if "payment_service" not in ctx.obj:
        ctx.obj["payment_service"] = PaymentService(get_database(ctx))
    return ctx.obj["payment_service"]


def get_sync_service(ctx: Context) -> SyncService:
    """Lazily create the sync service.

    Args:
        ctx: Click context with config and mock flags.

    Returns:
        SyncService instance.
    """
    from ..services.sync import SyncService

    if "sync_service" not in ctx.obj:
        ctx.obj["sync_service"] = SyncService(
            db=get_database(ctx), remote=get_remote(ctx), session=get_session(ctx)
        )
    return ctx.obj["sync_service"]


def get_coordinator(ctx: Context) -> SyncCoordinator:
    from ..services import SyncCoordinator

    if "coordinator" not in ctx.obj:
        ctx.obj["coordinator"] = SyncCoordinator(get_sync_service(ctx), get_database(ctx))
    return ctx.obj["coordinator"]


def resolve_payment_id(service: PaymentService, id_or_prefix: str) -> str:
    """Resolve a full payment id from the short id shown by ``list``.

    Raises:
        click.ClickException: If nothing or more than one payment matches.
    """
    matches = [p.id for p in service.list_payments() if p.id.startswith(id_or_prefix)]
    if id_or_prefix in matches:
        return id_or_prefix
    if not matches:
        raise click.ClickException(f"Payment not found: {id_or_prefix}")
    if len(matches) > 1:
        raise click.ClickException(f"Ambiguous payment id {id_or_prefix!r}: {len(matches)} matches")
    return matches[0]


def close_resources(ctx: Context) -> None:
    """Close the remote client and database opened for this invocation."""
    remote = ctx.obj.get("remote")
    if hasattr(remote, "close"):
        remote.close()
    db = ctx.obj.get("db")
    if db is not None:
        db.close()
