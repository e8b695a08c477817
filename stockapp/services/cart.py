from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from stockapp.errors import ItemNotFoundError, ValidationError
from stockapp.extensions import db
from stockapp.models import Item, LogReason
from stockapp.services import views
from stockapp.services.orders import OrderSummary, complete_order_for_fulfillment
from stockapp.services.stock_ledger import (
    StockChange,
    apply_change,
    coerce_quantity,
    dispatch_alerts,
    normalize_item_id,
)
from stockapp.storage import transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartLine:
    item_id: str
    delta: int


@dataclass
class CartResult:
    changes: list[StockChange] = field(default_factory=list)
    order: OrderSummary | None = None

    @property
    def total_lines(self) -> int:
        return len(self.changes)

    def to_dict(self) -> dict:
        data = {
            "changes": [
                {
                    "itemId": change.item_id,
                    "itemName": change.item_name,
                    "changeAmount": change.delta,
                    "newStock": change.new_stock,
                }
                for change in self.changes
            ],
        }
        if self.order is not None:
            data["order"] = self.order.to_dict()
        return data


def parse_cart(raw) -> list[CartLine]:
    """Turn a loosely typed cart into an ordered list of :class:`CartLine`.

    Accepts a mapping of ``item_id -> delta`` or an iterable of
    ``{"itemId": ..., "delta": ...}`` / ``(item_id, delta)`` entries. Item ids
    are validated and normalised, so two spellings of one id merge into a
    single line; first-seen order is preserved.
    """

    if raw is None:
        return []

    if isinstance(raw, Mapping):
        entries: Iterable = raw.items()
    elif isinstance(raw, (list, tuple)):
        entries = raw
    else:
        raise ValidationError("Cart must be a mapping of item ids to quantities.")

    merged: dict[str, int] = {}
    for entry in entries:
        if isinstance(entry, CartLine):
            item_id, delta = entry.item_id, entry.delta
        elif isinstance(entry, Mapping):
            item_id = entry.get("itemId", entry.get("item_id"))
            delta = entry.get("delta", entry.get("changeAmount"))
        else:
            try:
                item_id, delta = entry
            except (TypeError, ValueError):
                raise ValidationError("Cart entries must be item id and quantity pairs.") from None

        key = normalize_item_id(item_id)
        merged[key] = merged.get(key, 0) + coerce_quantity(delta)

    return [CartLine(item_id=key, delta=delta) for key, delta in merged.items()]


def submit_cart(cart, actor: str | None, order_id: str | None = None) -> CartResult:
    """Apply every cart line as one all-or-nothing stock transaction.

    A missing item or a line that would drive stock negative aborts the whole
    batch. When ``order_id`` is given the linked order is marked done in the
    same transaction. Threshold alerts are dispatched only after commit.
    """

    actor = (actor or "").strip()
    if not actor:
        raise ValidationError("Please enter your name before submitting.")

    lines = parse_cart(cart)
    if not lines:
        raise ValidationError("Cart is empty.")

    active_lines = [line for line in lines if line.delta != 0]
    if not active_lines:
        raise ValidationError("Cart is empty.")

    result = CartResult()
    with transaction():
        for line in active_lines:
            item = db.session.get(Item, line.item_id)
            if item is None:
                raise ItemNotFoundError(
                    line.item_id,
                    message=f"Item not found: {line.item_id}. No stock was changed.",
                )
            result.changes.append(
                apply_change(
                    line.item_id,
                    line.delta,
                    LogReason.for_delta(line.delta),
                    actor,
                )
            )

        if order_id is not None:
            result.order = complete_order_for_fulfillment(order_id)

    logger.info(
        "%s submitted a cart of %d line(s)%s",
        actor,
        result.total_lines,
        f" for order {result.order.id}" if result.order is not None else "",
    )
    dispatch_alerts(result.changes)

    stale = [views.ITEM_LIST, views.HISTORY]
    stale.extend(views.item_page(change.item_id) for change in result.changes)
    if result.order is not None:
        stale.append(views.ORDERS)
    views.invalidate_views(*stale)
    return result