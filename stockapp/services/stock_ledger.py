"""Guarded stock mutations and the ledger entries that record them.

``item.stock`` is only ever changed through :func:`apply_change`, which issues
a single conditional ``UPDATE ... WHERE stock + delta >= 0 RETURNING ...``.
Concurrent writers therefore serialize on the row and the non-negative check
is always evaluated against committed data, never against a value read
earlier in Python.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import update

from stockapp.errors import (
    InsufficientStockError,
    ItemNotFoundError,
    LogNotFoundError,
    ValidationError,
)
from stockapp.extensions import db, notifier
from stockapp.models import Item, LogReason, StockLog
from stockapp.services import views
from stockapp.services.notifications import LowStockAlert, crossed_threshold
from stockapp.storage import transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockChange:
    item_id: str
    item_name: str
    delta: int
    new_stock: int
    log_id: int | None = None
    alert: LowStockAlert | None = None

    @property
    def previous_stock(self) -> int:
        return self.new_stock - self.delta


@dataclass(frozen=True)
class LogCorrection:
    log_id: int
    item_id: str
    difference: int
    new_stock: int | None
    adjustment_log_id: int | None = None


def normalize_item_id(value) -> str:
    """Return ``value`` as a canonical UUID string or raise ValidationError."""

    if isinstance(value, uuid.UUID):
        return str(value)
    try:
        return str(uuid.UUID(str(value).strip()))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"Invalid item id: {value!r}") from None


def coerce_quantity(value, *, field: str = "quantity") -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field.capitalize()} must be a whole number.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{field.capitalize()} must be a whole number.")


def _clean_actor(actor: str | None) -> str | None:
    if actor is None:
        return None
    actor = actor.strip()
    return actor or None


def _guarded_update(item_id: str, delta: int):
    stmt = (
        update(Item)
        .where(Item.id == item_id, Item.stock + delta >= 0)
        .values(stock=Item.stock + delta)
        .returning(
            Item.id,
            Item.name,
            Item.sku,
            Item.category,
            Item.stock,
            Item.min_threshold,
        )
        .execution_options(synchronize_session="fetch")
    )
    return db.session.execute(stmt).one_or_none()


def apply_change(
    item_id: str,
    delta: int,
    reason: str,
    actor: str | None = None,
) -> StockChange:
    """Apply ``delta`` inside the caller's transaction.

    Does not commit. Raises :class:`ItemNotFoundError` or
    :class:`InsufficientStockError` without having changed anything.
    """

    if reason not in LogReason.ALL:
        raise ValidationError(f"Unknown stock change reason: {reason}")

    row = _guarded_update(item_id, delta)
    if row is None:
        item = db.session.get(Item, item_id, populate_existing=True)
        if item is None:
            raise ItemNotFoundError(item_id)
        raise InsufficientStockError(item.name, item.stock, delta)

    log_id = None
    if delta != 0:
        log = StockLog(
            item_id=row.id,
            change_amount=delta,
            reason=reason,
            user_name=_clean_actor(actor),
        )
        db.session.add(log)
        db.session.flush()
        log_id = log.id

    previous_stock = row.stock - delta
    alert = None
    if delta < 0 and crossed_threshold(previous_stock, row.stock, row.min_threshold):
        alert = LowStockAlert(
            item_id=row.id,
            name=row.name,
            sku=row.sku,
            category=row.category,
            stock=row.stock,
            min_threshold=row.min_threshold,
        )

    return StockChange(
        item_id=row.id,
        item_name=row.name,
        delta=delta,
        new_stock=row.stock,
        log_id=log_id,
        alert=alert,
    )


def dispatch_alerts(changes: Iterable[StockChange]) -> None:
    """Hand threshold alerts to the notifier. Call only after commit."""

    alerts = [change.alert for change in changes if change.alert is not None]
    if alerts:
        notifier.schedule(alerts)


def apply_delta(
    item_id,
    delta,
    reason: str | None = None,
    actor: str | None = None,
) -> StockChange:
    item_id = normalize_item_id(item_id)
    delta = coerce_quantity(delta, field="change amount")
    if reason is None:
        reason = LogReason.for_delta(delta)

    with transaction():
        change = apply_change(item_id, delta, reason, actor)

    logger.info(
        "Stock for %s changed by %+d to %d (%s)",
        change.item_name,
        change.delta,
        change.new_stock,
        reason,
    )
    dispatch_alerts([change])
    views.invalidate_views(views.ITEM_LIST, views.item_page(item_id))
    return change


def apply_cases(item_id, cases, reason: str | None = None, actor: str | None = None) -> StockChange:
    """Adjust stock by whole cases using the item's ``quantity_per_unit``."""

    item_id = normalize_item_id(item_id)
    cases = coerce_quantity(cases, field="cases")
    item = db.session.get(Item, item_id)
    if item is None:
        raise ItemNotFoundError(item_id)
    return apply_delta(item_id, cases * (item.quantity_per_unit or 1), reason, actor)


def _get_log(log_id) -> StockLog:
    try:
        log_id = int(log_id)
    except (TypeError, ValueError):
        raise LogNotFoundError() from None
    log = db.session.get(StockLog, log_id)
    if log is None:
        raise LogNotFoundError()
    return log


def signed_correction(log_id, quantity) -> int:
    """Express a corrected quantity with the sign of the stored entry.

    Staff type the corrected size of a consumption as a positive number; the
    ledger stores consumptions as negative amounts.
    """

    quantity = coerce_quantity(quantity)
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than zero.")
    log = _get_log(log_id)
    return -quantity if log.change_amount < 0 else quantity


def _negative_correction(exc: InsufficientStockError, action: str) -> InsufficientStockError:
    return InsufficientStockError(
        exc.item_name,
        exc.available,
        exc.requested,
        message=(
            f"{action} would result in negative stock for {exc.item_name}. "
            f"Available: {exc.available}"
        ),
    )


def edit_log(log_id, new_amount) -> LogCorrection:
    """Correct a ledger entry's amount and compensate the item's stock.

    The original row is rewritten in place to show the corrected amount, and a
    single ``adjustment`` entry records the difference. Both happen in one
    transaction with the guarded stock update; a correction that would drive
    stock negative leaves everything untouched.
    """

    new_amount = coerce_quantity(new_amount, field="amount")
    if new_amount == 0:
        raise ValidationError("A log amount cannot be zero. Delete the log instead.")

    with transaction():
        log = _get_log(log_id)
        difference = new_amount - log.change_amount
        if difference == 0:
            return LogCorrection(
                log_id=log.id,
                item_id=log.item_id,
                difference=0,
                new_stock=None,
            )

        try:
            change = apply_change(
                log.item_id,
                difference,
                LogReason.ADJUSTMENT,
                f"System (Edit of log {log.id})",
            )
        except InsufficientStockError as exc:
            raise _negative_correction(exc, "Adjustment") from exc
        log.change_amount = new_amount
        correction = LogCorrection(
            log_id=log.id,
            item_id=log.item_id,
            difference=difference,
            new_stock=change.new_stock,
            adjustment_log_id=change.log_id,
        )

    logger.info(
        "Edited log %s on %s by %+d, stock now %d",
        correction.log_id,
        change.item_name,
        difference,
        change.new_stock,
    )
    dispatch_alerts([change])
    views.invalidate_views(
        views.ITEM_LIST, views.item_page(correction.item_id), views.HISTORY
    )
    return correction


def delete_log(log_id) -> LogCorrection:
    """Reverse a ledger entry's effect on stock and remove the entry."""

    with transaction():
        log = _get_log(log_id)
        reversal = -log.change_amount
        try:
            change = apply_change(
                log.item_id,
                reversal,
                LogReason.ADJUSTMENT,
                f"System (Deleted log {log.id})",
            )
        except InsufficientStockError as exc:
            raise _negative_correction(exc, "Deleting this log") from exc
        correction = LogCorrection(
            log_id=log.id,
            item_id=log.item_id,
            difference=reversal,
            new_stock=change.new_stock,
            adjustment_log_id=change.log_id,
        )
        db.session.delete(log)

    logger.info(
        "Deleted log %s on %s, stock now %d",
        correction.log_id,
        change.item_name,
        change.new_stock,
    )
    dispatch_alerts([change])
    views.invalidate_views(
        views.ITEM_LIST, views.item_page(correction.item_id), views.HISTORY
    )
    return correction
