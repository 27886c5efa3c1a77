"""Local payment operations: create, edit, pay, delete.

Every user edit goes through PaymentService so sync status and revision are
advanced consistently. Nothing here touches the network.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from ..errors import PaymentNotFoundError, PaymentSaveError, ValidationError
from ..models import (
    Currency,
    PaymentCategory,
    PaymentRecord,
    SyncStatus,
    advance_on_local_edit,
    new_payment_id,
    utc_now,
)

if TYPE_CHECKING:
    from ..db.database import Database

logger = logging.getLogger(__name__)

AmountLike = Union[Decimal, str, int, float]

# Fields owned by the sync engine, never set through an edit.
PROTECTED_FIELDS = frozenset({"id", "sync_status", "last_synced_at", "revision"})


def to_amount(value: AmountLike) -> Decimal:
    """Convert user input to a Decimal amount.

    Raises:
        ValidationError: If the value is not a finite number.
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValidationError("amount", f"not a number: {value!r}") from e
    if not amount.is_finite():
        raise ValidationError("amount", f"not a number: {value!r}")
    return amount


class PaymentValidator:
    """Business rules a payment must satisfy before it is stored."""

    MAX_NAME_LENGTH = 120

    def validate(self, record: PaymentRecord) -> None:
        """Raise ValidationError for the first rule the record breaks."""
        name = record.name.strip() if isinstance(record.name, str) else ""
        if not name:
            raise ValidationError("name", "must not be empty")
        if len(name) > self.MAX_NAME_LENGTH:
            raise ValidationError("name", f"must be at most {self.MAX_NAME_LENGTH} characters")
        if record.amount <= 0:
            raise ValidationError("amount", "must be greater than zero")
        if not isinstance(record.currency, Currency):
            raise ValidationError("currency", f"unsupported currency {record.currency!r}")
        if not isinstance(record.category, PaymentCategory):
            raise ValidationError("category", f"unknown category {record.category!r}")
        if not isinstance(record.due_date, datetime) or record.due_date.tzinfo is None:
            raise ValidationError("due_date", "must be a timezone-aware datetime")


class PaymentService:
    """Service for local payment CRUD."""

    def __init__(
        self,
        db: Database,
        validator: Optional[PaymentValidator] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._db = db
        self._validator = validator or PaymentValidator()
        self._clock = clock

    def _save(self, *records: PaymentRecord) -> None:
        try:
            self._db.save_payments(records)
        except sqlite3.Error as e:
            logger.exception("Failed to save %d payments", len(records))
            raise PaymentSaveError(f"Could not save payment: {e}") from e

    def create_payment(
        self,
        name: str,
        amount: AmountLike,
        due_date: datetime,
        currency: Currency = Currency.PEN,
        category: PaymentCategory = PaymentCategory.OTHER,
        is_paid: bool = False,
        external_calendar_ref: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> PaymentRecord:
        """Create and store a new payment with status 'local'."""
        record = PaymentRecord(
            id=new_payment_id(),
            name=name.strip(),
            amount=to_amount(amount),
            currency=currency,
            due_date=due_date,
            is_paid=is_paid,
            category=category,
            external_calendar_ref=external_calendar_ref,
            group_id=group_id,
        )
        self._validator.validate(record)
        self._save(record)
        logger.info("Created payment %s (%s %s)", record.id, record.name, record.display_amount)
        return record

    def create_dual_currency_payment(
        self,
        name: str,
        amount_pen: AmountLike,
        amount_usd: AmountLike,
        due_date: datetime,
        category: PaymentCategory = PaymentCategory.CREDIT_CARD,
    ) -> tuple[PaymentRecord, PaymentRecord]:
        """Create a PEN and a USD payment that share one group id.

        Both halves are validated before either is stored, and stored together.
        """
        group_id = new_payment_id()
        halves = tuple(
            PaymentRecord(
                id=new_payment_id(),
                name=name.strip(),
                amount=to_amount(amount),
                currency=currency,
                due_date=due_date,
                category=category,
                group_id=group_id,
            )
            for amount, currency in ((amount_pen, Currency.PEN), (amount_usd, Currency.USD))
        )
        for record in halves:
            self._validator.validate(record)
        self._save(*halves)
        logger.info("Created dual-currency payment group %s (%s)", group_id, name)
        return halves[0], halves[1]

    def get_payment(self, payment_id: str) -> PaymentRecord:
        record = self._db.get_payment(payment_id)
        if record is None:
            raise PaymentNotFoundError(payment_id)
        return record

    def get_group(self, group_id: str) -> list[PaymentRecord]:
        return self._db.get_payments_by_group(group_id)

    def list_payments(
        self,
        is_paid: Optional[bool] = None,
        currency: Optional[Currency] = None,
        category: Optional[PaymentCategory] = None,
        pending_only: bool = False,
    ) -> list[PaymentRecord]:
        """List payments ordered by due date, optionally filtered."""
        records = self._db.get_pending_payments() if pending_only else self._db.get_all_payments()
        if is_paid is not None:
            records = [r for r in records if r.is_paid == is_paid]
        if currency is not None:
            records = [r for r in records if r.currency is currency]
        if category is not None:
            records = [r for r in records if r.category is category]
        return records

    def update_payment(self, payment_id: str, **changes: Any) -> PaymentRecord:
        """Apply a user edit.

        A synced payment becomes 'modified'; a 'local' one stays 'local'.
        The revision is bumped so an upload already in flight cannot mark
        this edit as synced.

        Raises:
            PaymentNotFoundError: If the payment does not exist.
            ValidationError: If the edit breaks a business rule.
            PaymentSaveError: If the local store rejects the write.
        """
        protected = PROTECTED_FIELDS & changes.keys()
        if protected:
            raise ValidationError(sorted(protected)[0], "cannot be edited directly")
        if "amount" in changes:
            changes["amount"] = to_amount(changes["amount"])
        if isinstance(changes.get("name"), str):
            changes["name"] = changes["name"].strip()

        current = self.get_payment(payment_id)
        try:
            edited = current.with_changes(**changes)
        except TypeError as e:
            raise ValidationError("payment", str(e)) from e
        if edited == current:
            logger.debug("Edit of payment %s changes nothing", payment_id)
            return current
        self._validator.validate(edited)

        edited = advance_on_local_edit(edited).with_changes(revision=current.revision + 1)
        self._save(edited)
        logger.info(
            "Updated payment %s (%s -> %s)",
            payment_id,
            current.sync_status.value,
            edited.sync_status.value,
        )
        return edited

    def toggle_paid(self, payment_id: str) -> PaymentRecord:
        current = self.get_payment(payment_id)
        return self.update_payment(payment_id, is_paid=not current.is_paid)

    def delete_payment(self, payment_id: str) -> PaymentRecord:
        """Delete a payment locally.

        If the payment was ever uploaded its id is queued for remote deletion
        in the same transaction.
        """
        try:
            deleted = self._db.delete_payment(payment_id)
        except sqlite3.Error as e:
            logger.exception("Failed to delete payment %s", payment_id)
            raise PaymentSaveError(f"Could not delete payment: {e}") from e
        if deleted is None:
            raise PaymentNotFoundError(payment_id)
        logger.info(
            "Deleted payment %s%s",
            payment_id,
            "" if deleted.sync_status is SyncStatus.LOCAL else " (remote delete queued)",
        )
        return deleted

    def delete_group(self, group_id: str) -> int:
        """Delete both halves of a dual-currency payment."""
        ids = [r.id for r in self._db.get_payments_by_group(group_id)]
        if not ids:
            raise PaymentNotFoundError(group_id)
        try:
            return self._db.delete_payments(ids)
        except sqlite3.Error as e:
            logger.exception("Failed to delete payment group %s", group_id)
            raise PaymentSaveError(f"Could not delete payment group: {e}") from e
