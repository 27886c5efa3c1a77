"""Payment domain models.

Records are immutable values. Every change (user edit, sync transition)
produces a new record via ``dataclasses.replace`` that the caller writes back
to the local store explicitly.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class SyncStatus(str, Enum):
    """Synchronization state of a single payment record."""

    LOCAL = "local"  # created offline, never uploaded
    SYNCING = "syncing"  # upload in flight, never persisted
    SYNCED = "synced"
    MODIFIED = "modified"  # synced once, then edited locally
    ERROR = "error"  # last upload attempt failed


PENDING_STATUSES = frozenset({SyncStatus.LOCAL, SyncStatus.MODIFIED, SyncStatus.ERROR})


class Currency(str, Enum):
    """Supported currencies."""

    PEN = "PEN"
    USD = "USD"

    @property
    def symbol(self) -> str:
        return "S/" if self is Currency.PEN else "$"


class PaymentCategory(str, Enum):
    """Closed set of payment categories.

    Values are the labels stored by the backend, so they go on the wire as-is.
    """

    SERVICES = "Servicios"
    CREDIT_CARD = "Tarjeta de Crédito"
    HOUSING = "Vivienda"
    LOAN = "Préstamo"
    INSURANCE = "Seguro"
    EDUCATION = "Educación"
    TAXES = "Impuestos"
    SUBSCRIPTION = "Suscripción"
    OTHER = "Otro"


def new_payment_id() -> str:
    """Generate a stable identifier for a locally created payment."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PaymentRecord:
    """A recurring payment obligation, the unit of synchronization.

    Attributes:
        id: Stable identifier assigned at local creation.
        name: Display name.
        amount: Fixed-point amount, never a float.
        currency: Currency of the amount.
        due_date: Timezone-aware due date.
        is_paid: Whether the payment was made.
        category: Payment category.
        external_calendar_ref: Calendar event identifier owned by the calendar mirror.
        group_id: Shared id of the two halves of a dual-currency payment.
        sync_status: Where the record stands relative to the remote store.
        last_synced_at: When local and remote last agreed.
        revision: Local edit counter, bumped on every user edit.
    """

    id: str
    name: str
    amount: Decimal
    currency: Currency
    due_date: datetime
    is_paid: bool = False
    category: PaymentCategory = PaymentCategory.OTHER
    external_calendar_ref: Optional[str] = None
    group_id: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.LOCAL
    last_synced_at: Optional[datetime] = None
    revision: int = field(default=0, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise TypeError(f"amount must be a Decimal, got {type(self.amount).__name__}")
        if self.sync_status is SyncStatus.SYNCED and self.last_synced_at is None:
            raise ValueError(f"Payment {self.id} is synced but has no last_synced_at")

    @property
    def is_pending(self) -> bool:
        """True when the record still has to be uploaded."""
        return self.sync_status in PENDING_STATUSES

    @property
    def was_ever_synced(self) -> bool:
        """True when a copy of this record may exist remotely."""
        return self.sync_status is not SyncStatus.LOCAL

    @property
    def display_amount(self) -> str:
        return f"{self.currency.symbol} {self.amount:,.2f}"

    def with_changes(self, **changes: Any) -> PaymentRecord:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


@dataclass(frozen=True)
class PendingDeletion:
    """A local deletion that has not been confirmed by the remote store yet."""

    payment_id: str
    deleted_at: datetime
