"""Domain models for payments and their sync state."""

from .payment import (
    PENDING_STATUSES,
    Currency,
    PaymentCategory,
    PaymentRecord,
    PendingDeletion,
    SyncStatus,
    new_payment_id,
    utc_now,
)
from .sync_state import (
    advance_on_local_edit,
    advance_on_upload_failure,
    advance_on_upload_success,
    pending,
    recover_interrupted,
)

__all__ = [
    "PENDING_STATUSES",
    "Currency",
    "PaymentCategory",
    "PaymentRecord",
    "PendingDeletion",
    "SyncStatus",
    "advance_on_local_edit",
    "advance_on_upload_failure",
    "advance_on_upload_success",
    "new_payment_id",
    "pending",
    "recover_interrupted",
    "utc_now",
]
