"""paytrack command line interface.

Local commands (list, add, edit, pay, delete) never touch the network.
sync/push/pull talk to the remote store; --mock swaps in a local JSON file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click

from .. import __version__
from ..config import ConfigError, load_config
from ..errors import SyncError
from ..logging_setup import setup_logging
from ..models import Currency
from ..services.coordinator import SyncSnapshot, clear_local_store, unsent_change_count
from ..services.sync import LAST_SYNC_KEY
from .formatters import (
    echo_error,
    echo_header,
    echo_success,
    echo_warning,
    format_download_result,
    format_payment_row,
    format_pending_deletion,
    format_status,
    format_sync_result,
    format_upload_result,
    short_id,
)
from .helpers import (
    CATEGORY_CHOICES,
    as_utc,
    close_resources,
    get_coordinator,
    get_database,
    get_payment_service,
    get_session,
    get_sync_service,
    has_remote,
    parse_category,
    payment_errors,
    resolve_payment_id,
)

logger = logging.getLogger(__name__)

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M"]
CURRENCY_CHOICES = [c.value for c in Currency]


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to config.toml.",
)
@click.option("--mock", is_flag=True, help="Use a local mock remote store (no network).")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.version_option(__version__, prog_name="paytrack")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path], mock: bool, verbose: bool) -> None:
    """paytrack - offline-first payment tracker with remote sync."""
    ctx.ensure_object(dict)
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    setup_logging(cfg.logging, cfg.log_path, verbose=verbose)
    ctx.obj["config"] = cfg
    ctx.obj["mock"] = mock
    ctx.call_on_close(lambda: close_resources(ctx))
    logger.debug("paytrack %s started (mock=%s)", __version__, mock)


# =============================================================================
# Local payment commands
# =============================================================================


@main.command("list")
@click.option("--paid/--unpaid", "is_paid", default=None, help="Filter by paid state.")
@click.option("--pending", is_flag=True, help="Only payments waiting to be uploaded.")
@click.option("--currency", type=click.Choice(CURRENCY_CHOICES, case_sensitive=False))
@click.option("--category", type=click.Choice(CATEGORY_CHOICES, case_sensitive=False))
@click.pass_context
def list_payments(
    ctx: click.Context,
    is_paid: Optional[bool],
    pending: bool,
    currency: Optional[str],
    category: Optional[str],
) -> None:
    """List payments ordered by due date."""
    cfg = ctx.obj["config"]
    if cfg.sync.sync_on_start and has_remote(ctx):
        session = get_session(ctx)
        result = get_coordinator(ctx).perform_initial_sync_if_needed(session.is_authenticated)
        if result is not None and result.error is not None:
            echo_warning(result.error.user_message)

    payments = get_payment_service(ctx).list_payments(
        is_paid=is_paid,
        currency=Currency(currency.upper()) if currency else None,
        category=parse_category(category),
        pending_only=pending,
    )
    if not payments:
        click.echo("No payments found.")
        return
    click.echo(f"Found {len(payments)} payments:\n")
    for payment in payments:
        click.echo(format_payment_row(payment))


@main.command()
@click.argument("name")
@click.argument("amount")
@click.option("--due", required=True, type=click.DateTime(DATE_FORMATS), help="Due date.")
@click.option(
    "--currency",
    type=click.Choice(CURRENCY_CHOICES, case_sensitive=False),
    default=Currency.PEN.value,
    show_default=True,
)
@click.option("--category", type=click.Choice(CATEGORY_CHOICES, case_sensitive=False), default="other")
@click.option("--paid", is_flag=True, help="Mark as already paid.")
@click.pass_context
def add(
    ctx: click.Context,
    name: str,
    amount: str,
    due,
    currency: str,
    category: str,
    paid: bool,
) -> None:
    """Add a payment."""
    with payment_errors():
        payment = get_payment_service(ctx).create_payment(
            name=name,
            amount=amount,
            due_date=as_utc(due),
            currency=Currency(currency.upper()),
            category=parse_category(category),
            is_paid=paid,
        )
    echo_success(f"Added {payment.name} ({payment.display_amount}) as {short_id(payment.id)}")


@main.command("add-dual")
@click.argument("name")
@click.argument("amount_pen")
@click.argument("amount_usd")
@click.option("--due", required=True, type=click.DateTime(DATE_FORMATS), help="Due date.")
@click.option(
    "--category", type=click.Choice(CATEGORY_CHOICES, case_sensitive=False), default="credit_card"
)
@click.pass_context
def add_dual(
    ctx: click.Context, name: str, amount_pen: str, amount_usd: str, due, category: str
) -> None:
    """Add a payment billed in both PEN and USD (e.g. a credit card statement)."""
    with payment_errors():
        pen, usd = get_payment_service(ctx).create_dual_currency_payment(
            name=name,
            amount_pen=amount_pen,
            amount_usd=amount_usd,
            due_date=as_utc(due),
            category=parse_category(category),
        )
    echo_success(f"Added {name}: {pen.display_amount} + {usd.display_amount}")


@main.command()
@click.argument("payment_id")
@click.option("--name")
@click.option("--amount")
@click.option("--due", type=click.DateTime(DATE_FORMATS))
@click.option("--currency", type=click.Choice(CURRENCY_CHOICES, case_sensitive=False))
@click.option("--category", type=click.Choice(CATEGORY_CHOICES, case_sensitive=False))
@click.pass_context
def edit(
    ctx: click.Context,
    payment_id: str,
    name: Optional[str],
    amount: Optional[str],
    due,
    currency: Optional[str],
    category: Optional[str],
) -> None:
    """Edit a payment."""
    changes = {}
    if name is not None:
        changes["name"] = name
    if amount is not None:
        changes["amount"] = amount
    if due is not None:
        changes["due_date"] = as_utc(due)
    if currency is not None:
        changes["currency"] = Currency(currency.upper())
    if category is not None:
        changes["category"] = parse_category(category)
    if not changes:
        raise click.UsageError("Nothing to change. Pass at least one option.")

    service = get_payment_service(ctx)
    with payment_errors():
        payment = service.update_payment(resolve_payment_id(service, payment_id), **changes)
    echo_success(f"Updated {payment.name} [{payment.sync_status.value}]")


@main.command()
@click.argument("payment_id")
@click.pass_context
def pay(ctx: click.Context, payment_id: str) -> None:
    """Toggle the paid state of a payment."""
    service = get_payment_service(ctx)
    with payment_errors():
        payment = service.toggle_paid(resolve_payment_id(service, payment_id))
    state = "paid" if payment.is_paid else "unpaid"
    echo_success(f"{payment.name} marked {state}")


@main.command()
@click.argument("payment_id")
@click.option("--group", is_flag=True, help="Also delete the other currency of a dual payment.")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def delete(ctx: click.Context, payment_id: str, group: bool, yes: bool) -> None:
    """Delete a payment."""
    service = get_payment_service(ctx)
    with payment_errors():
        payment = service.get_payment(resolve_payment_id(service, payment_id))
        if not yes:
            click.confirm(f"Delete {payment.name} ({payment.display_amount})?", abort=True)
        if group and payment.group_id:
            count = service.delete_group(payment.group_id)
            echo_success(f"Deleted {count} payments")
        else:
            service.delete_payment(payment.id)
            echo_success(f"Deleted {payment.name}")


# =============================================================================
# Sync commands
# =============================================================================


@main.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Upload local changes, then download remote changes."""
    result = get_coordinator(ctx).perform_sync(show_progress=True)
    format_sync_result(result)
    if not result.success:
        ctx.exit(1)


@main.command()
@click.pass_context
def push(ctx: click.Context) -> None:
    """Upload local changes only."""
    try:
        result = get_sync_service(ctx).upload()
    except SyncError as e:
        echo_error(e.user_message)
        click.echo(f"    [{e.code}] {e}")
        ctx.exit(1)
    format_upload_result(result)


@main.command()
@click.pass_context
def pull(ctx: click.Context) -> None:
    """Download remote changes only. Pending local edits are kept."""
    try:
        result = get_sync_service(ctx).download(show_progress=True)
    except SyncError as e:
        echo_error(e.user_message)
        click.echo(f"    [{e.code}] {e}")
        ctx.exit(1)
    format_download_result(result)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show payment counts and sync state."""
    db = get_database(ctx)
    counts = {
        "payment_count": db.get_payment_count(),
        "pending_deletion_count": db.get_pending_deletion_count(),
        "authenticated": get_session(ctx).is_authenticated,
    }
    if has_remote(ctx):
        format_status(get_coordinator(ctx).monitor.snapshot(), counts)
        return

    state = db.get_sync_state(LAST_SYNC_KEY)
    snapshot = SyncSnapshot(
        last_sync_date=state["last_sync_at"] if state else None,
        pending_sync_count=db.get_pending_count(),
    )
    format_status(snapshot, counts)
    echo_warning("Remote store is not configured; working offline.")


@main.command()
@click.pass_context
def pending(ctx: click.Context) -> None:
    """Show changes waiting to be uploaded."""
    db = get_database(ctx)
    payments = db.get_pending_payments()
    deletions = db.get_pending_deletions()
    if not payments and not deletions:
        echo_success("Everything is synced")
        return
    if payments:
        echo_header(f"Pending payments ({len(payments)})")
        for payment in payments:
            click.echo(format_payment_row(payment))
    if deletions:
        echo_header(f"Pending deletions ({len(deletions)})")
        for deletion in deletions:
            click.echo(format_pending_deletion(deletion))


@main.command()
@click.option("--force", is_flag=True, help="Clear even if some changes were never uploaded.")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def clear(ctx: click.Context, force: bool, yes: bool) -> None:
    """Remove all local payments (for example after signing out)."""
    if not yes:
        click.confirm("Remove all local payments?", abort=True)
    db = get_database(ctx)
    if has_remote(ctx):
        cleared = get_coordinator(ctx).clear_local_database(force=force)
    else:
        cleared = clear_local_store(db, force=force)
    if not cleared:
        unsent = unsent_change_count(db)
        if unsent:
            echo_error(f"{unsent} changes have not been uploaded. Run 'sync' first or pass --force.")
        else:
            echo_error("Could not clear the local database while a sync is running")
        ctx.exit(1)
    echo_success("Local database cleared")


if __name__ == "__main__":
    main()
