"""CLI output formatters.

Keeps display logic out of main.py.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

import click

if TYPE_CHECKING:
    from ..models import PaymentRecord, PendingDeletion
    from ..services.coordinator import SyncResult, SyncSnapshot
    from ..services.sync import DownloadResult, UploadResult

STATUS_COLORS = {
    "local": "cyan",
    "synced": "green",
    "modified": "yellow",
    "error": "red",
}


def format_sync_time(value: Optional[datetime]) -> str:
    """Format sync time for display in local time."""
    if value is None:
        return "Never"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def short_id(payment_id: str) -> str:
    return payment_id[:8]


def format_payment_row(payment: PaymentRecord, show_status: bool = True) -> str:
    """Format a payment row for CLI display.

    Args:
        payment: Payment record.
        show_status: Whether to show sync status.

    Returns:
        Formatted string for display.
    """
    due = payment.due_date.strftime("%Y-%m-%d")
    paid = "x" if payment.is_paid else " "
    name = payment.name[:28].ljust(28)
    category = payment.category.value[:20].ljust(20)
    row = f"{short_id(payment.id)}  [{paid}] {due}  {payment.display_amount:>14}  {name}  {category}"

    if show_status:
        status = payment.sync_status.value
        row += "  " + click.style(status.upper(), fg=STATUS_COLORS.get(status))
    return row


def echo_success(message: str) -> None:
    """Echo a success message in green."""
    click.echo(click.style(f"✓ {message}", fg="green"))


def echo_error(message: str) -> None:
    """Echo an error message in red."""
    click.echo(click.style(f"✗ {message}", fg="red"))


def echo_warning(message: str) -> None:
    """Echo a warning message in yellow."""
    click.echo(click.style(f"⚠ {message}", fg="yellow"))


def echo_header(message: str) -> None:
    """Echo a header with underline."""
    click.echo(f"\n{message}")
    click.echo("=" * len(message))


def format_upload_result(result: UploadResult) -> None:
    if result.nothing_to_do:
        echo_success("Nothing to upload")
        return
    echo_success(f"Uploaded {result.uploaded} payments")
    if result.deleted:
        click.echo(f"    Deleted remotely: {result.deleted}")
    if result.stale:
        echo_warning(f"{result.stale} payments changed during upload and are still pending")


def format_download_result(result: DownloadResult) -> None:
    echo_success(f"Fetched {result.fetched} remote payments")
    click.echo(f"    Inserted: {result.inserted}, Updated: {result.updated}, Kept local: {result.skipped}")
    if result.rejected:
        echo_warning(f"Rejected {result.rejected} malformed remote payments")
    click.echo(f"    Total in database: {result.total}")


def format_sync_result(result: SyncResult) -> None:
    """Format and display the result of a sync cycle."""
    if result.skipped:
        echo_warning("A sync is already running")
        return
    if result.upload is not None:
        format_upload_result(result.upload)
    if result.download is not None:
        format_download_result(result.download)
    if result.error is not None:
        echo_error(result.error.user_message)
        click.echo(f"    [{result.error.code}] {result.error}")


def format_status(snapshot: SyncSnapshot, status: dict[str, Any]) -> None:
    echo_header("Sync Status")
    click.echo(f"  Payments:          {status['payment_count']}")
    click.echo(f"  Pending upload:    {snapshot.pending_sync_count}")
    click.echo(f"  Pending deletes:   {status['pending_deletion_count']}")
    click.echo(f"  Last sync:         {format_sync_time(snapshot.last_sync_date)}")
    click.echo(f"  Signed in:         {'yes' if status['authenticated'] else 'no'}")
    if snapshot.error_message:
        echo_warning(snapshot.error_message)


def format_pending_deletion(deletion: PendingDeletion) -> str:
    return f"{short_id(deletion.payment_id)}  deleted {format_sync_time(deletion.deleted_at)}"
