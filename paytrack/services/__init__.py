"""Business logic services for paytrack."""

from .coordinator import SyncCoordinator, SyncMonitor, SyncResult, SyncSnapshot
from .payments import PaymentService, PaymentValidator
from .sync import DownloadResult, SyncService, UploadResult

__all__ = [
    "DownloadResult",
    "PaymentService",
    "PaymentValidator",
    "SyncCoordinator",
    "SyncMonitor",
    "SyncResult",
    "SyncService",
    "SyncSnapshot",
    "UploadResult",
]
