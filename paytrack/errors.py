"""Exception hierarchy for local payment operations and synchronization."""

from __future__ import annotations

from typing import Optional

SYNC_UNAVAILABLE_MESSAGE = (
    "Cannot sync right now. Your local data is safe: keep working offline and sync later."
)
STORAGE_FAULT_MESSAGE = (
    "Local storage error. Your payments could not be read or written; "
    "retrying when online will not fix this."
)
NOT_AUTHENTICATED_MESSAGE = "Sign in to sync your payments. Local data is kept on this device."


class PaymentError(Exception):
    """Base class for local payment operation errors."""

    code = "PAYMENT_UNKNOWN"


class ValidationError(PaymentError):
    """A payment failed business validation."""

    code = "PAYMENT_INVALID"

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class PaymentNotFoundError(PaymentError):
    code = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        super().__init__(f"Payment not found: {payment_id}")
        self.payment_id = payment_id


class PaymentSaveError(PaymentError):
    """The local store rejected a write. Sync status was not advanced."""

    code = "PAYMENT_SAVE_FAILED"


class SyncError(Exception):
    """Base class for synchronization errors.

    Attributes:
        code: Stable identifier for logging.
        retryable: Whether retrying later (e.g. when back online) can succeed.
        cause: Underlying transport or storage exception, if any.
    """

    code = "SYNC_UNKNOWN"
    retryable = True
    user_message = SYNC_UNAVAILABLE_MESSAGE

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        super().__init__(message or self.code)
        self.cause = cause


class NotAuthenticatedError(SyncError):
    """No owner id could be resolved for the current session."""

    code = "SYNC_NOT_AUTHENTICATED"
    retryable = False
    user_message = NOT_AUTHENTICATED_MESSAGE


class UploadFailedError(SyncError):
    code = "SYNC_UPLOAD_FAILED"


class FetchFailedError(SyncError):
    code = "SYNC_FETCH_FAILED"


class DeleteFailedError(SyncError):
    code = "SYNC_DELETE_FAILED"


class StorageFaultError(SyncError):
    """Local store I/O failed during sync."""

    code = "SYNC_STORAGE_FAULT"
    retryable = False
    user_message = STORAGE_FAULT_MESSAGE


class RemoteStoreError(Exception):
    """Transport-level failure talking to the remote store."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class WireFormatError(ValueError):
    """A remote payload could not be mapped to a payment record."""
