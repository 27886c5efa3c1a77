"""Mapping between local payment records and the remote wire format.

Remote rows are plain dicts with the columns of the backend ``payments``
table::

    id, owner_id, name, amount, currency, due_date, is_paid, category,
    external_ref, group_id, created_at, updated_at
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ..errors import WireFormatError
from ..models import Currency, PaymentCategory, PaymentRecord, SyncStatus

WIRE_FIELDS = (
    "id",
    "owner_id",
    "name",
    "amount",
    "currency",
    "due_date",
    "is_paid",
    "category",
    "external_ref",
    "group_id",
    "created_at",
    "updated_at",
)

# Tried in this order; the first match wins.
TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S%z",  # 2025-12-12 20:27:00+00
    "%Y-%m-%d %H:%M:%S.%f%z",  # 2025-12-03 20:30:48.731+00
    "%Y-%m-%dT%H:%M:%S.%f%z",  # 2025-12-03T20:30:48.731Z
    "%Y-%m-%dT%H:%M:%S%z",  # 2025-12-03T20:30:48+05:00
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
)

# Postgres renders a whole-hour UTC offset as "+00", which %z does not accept.
_SHORT_OFFSET = re.compile(r"(\d{2}:\d{2}:\d{2}(?:\.\d+)?)([+-]\d{2})$")


def parse_timestamp(value: str) -> datetime:
    """Parse a remote timestamp into an aware datetime.

    Naive values are taken as UTC.

    Raises:
        WireFormatError: If the value matches none of TIMESTAMP_FORMATS.
    """
    if not isinstance(value, str):
        raise WireFormatError(f"Timestamp must be a string, got {type(value).__name__}")
    text = _SHORT_OFFSET.sub(r"\1\g<2>:00", value.strip())
    for fmt in TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise WireFormatError(f"Unrecognized timestamp format: {value!r}")


def format_timestamp(value: datetime) -> str:
    """Render an RFC3339 timestamp in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _optional_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return parse_timestamp(value)


def to_wire(record: PaymentRecord, owner_id: str) -> dict[str, Any]:
    """Serialize a record for upsert, attaching the owner id.

    ``created_at`` is left to the backend default.
    """
    return {
        "id": record.id,
        "owner_id": owner_id,
        "name": record.name,
        "amount": str(record.amount),
        "currency": record.currency.value,
        "due_date": format_timestamp(record.due_date),
        "is_paid": record.is_paid,
        "category": record.category.value,
        "external_ref": record.external_calendar_ref,
        "group_id": record.group_id,
        "updated_at": format_timestamp(record.last_synced_at)
        if record.last_synced_at
        else None,
    }


def _required_text(row: Mapping[str, Any], key: str) -> str:
    try:
        value = row[key]
    except KeyError as e:
        raise WireFormatError(f"Remote payment is missing field {key!r}") from e
    if not isinstance(value, str) or not value.strip():
        raise WireFormatError(f"Remote payment field {key!r} must be a non-empty string, got {value!r}")
    return value


def _optional_text(row: Mapping[str, Any], key: str, payment_id: str) -> Optional[str]:
    value = row.get(key)
    if value is not None and not isinstance(value, str):
        raise WireFormatError(f"Invalid {key} {value!r} for payment {payment_id}")
    return value


def from_wire(row: Mapping[str, Any], now: datetime) -> PaymentRecord:
    """Map a remote row to a local record that is synced as of ``now``.

    Missing currency defaults to PEN and unknown categories map to OTHER,
    matching rows written by older clients. Anything else malformed raises.

    Raises:
        WireFormatError: If the row is not an object, or a required field is
            missing, of the wrong type or unparseable.
    """
    if not isinstance(row, Mapping):
        raise WireFormatError(f"Remote payment must be an object, got {type(row).__name__}")
    payment_id = _required_text(row, "id")
    name = _required_text(row, "name")
    try:
        raw_amount = row["amount"]
        raw_due = row["due_date"]
    except KeyError as e:
        raise WireFormatError(f"Remote payment is missing field {e.args[0]!r}") from e
    if isinstance(raw_amount, bool):
        raise WireFormatError(f"Invalid amount {raw_amount!r} for payment {payment_id}")

    is_paid = row.get("is_paid", False)
    if not isinstance(is_paid, bool):
        raise WireFormatError(f"Invalid is_paid {is_paid!r} for payment {payment_id}")

    try:
        amount = Decimal(str(raw_amount))
    except InvalidOperation as e:
        raise WireFormatError(f"Invalid amount {raw_amount!r} for payment {payment_id}") from e
    if not amount.is_finite():
        raise WireFormatError(f"Invalid amount {raw_amount!r} for payment {payment_id}")

    currency_code = row.get("currency") or Currency.PEN.value
    try:
        currency = Currency(currency_code)
    except ValueError as e:
        raise WireFormatError(f"Unknown currency {currency_code!r} for payment {payment_id}") from e

    try:
        category = PaymentCategory(row.get("category"))
    except ValueError:
        category = PaymentCategory.OTHER

    _optional_timestamp(row.get("updated_at"))  # reject rows with corrupt audit columns
    _optional_timestamp(row.get("created_at"))

    return PaymentRecord(
        id=payment_id,
        name=name,
        amount=amount,
        currency=currency,
        due_date=parse_timestamp(raw_due),
        is_paid=is_paid,
        category=category,
        external_calendar_ref=_optional_text(row, "external_ref", payment_id),
        group_id=_optional_text(row, "group_id", payment_id),
        sync_status=SyncStatus.SYNCED,
        last_synced_at=now,
    )
