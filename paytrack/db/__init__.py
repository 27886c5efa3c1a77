"""Local SQLite storage for paytrack."""

from .database import MERGE_INSERTED, MERGE_SKIPPED, MERGE_UPDATED, Database

__all__ = ["Database", "MERGE_INSERTED", "MERGE_SKIPPED", "MERGE_UPDATED"]
