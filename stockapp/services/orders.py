"""Volunteer requests, fulfillment orders and the locations they come from."""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from stockapp.errors import (
    ConflictError,
    ItemNotFoundError,
    LocationNotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from stockapp.extensions import db
from stockapp.models import (
    Item,
    Location,
    Order,
    OrderLine,
    OrderStatus,
    StorageClass,
    utcnow,
)
from stockapp.services import views
from stockapp.services.stock_ledger import coerce_quantity, normalize_item_id
from stockapp.storage import transaction

logger = logging.getLogger(__name__)

UNKNOWN_ITEM = "Unknown Item"


@dataclass(frozen=True)
class OrderLineSummary:
    id: int
    item_id: str | None
    item_name: str
    quantity: int


@dataclass(frozen=True)
class OrderSummary:
    id: str
    location_id: str
    location_name: str
    status: str
    storage_class: str | None
    created_at: datetime
    completed_at: datetime | None
    items: list[OrderLineSummary] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "locationId": self.location_id,
            "locationName": self.location_name,
            "status": self.status,
            "storageClass": self.storage_class,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "items": [
                {
                    "id": line.id,
                    "itemId": line.item_id,
                    "itemName": line.item_name,
                    "quantity": line.quantity,
                }
                for line in self.items
            ],
        }


@dataclass(frozen=True)
class RequestResult:
    order_ids: list[str]

    @property
    def group_count(self) -> int:
        return len(self.order_ids)


def summarize_order(order: Order) -> OrderSummary:
    return OrderSummary(
        id=order.id,
        location_id=order.location_id,
        location_name=order.location.name if order.location else "Unknown",
        status=order.status,
        storage_class=order.storage_class,
        created_at=order.created_at,
        completed_at=order.completed_at,
        items=[
            OrderLineSummary(
                id=line.id,
                item_id=line.item_id,
                item_name=line.item.name if line.item is not None else UNKNOWN_ITEM,
                quantity=line.quantity,
            )
            for line in order.order_lines
        ],
    )


############################
# LOCATIONS
############################
def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").strip().lower())
    return slug.strip("-")


def list_locations() -> list[Location]:
    return Location.query.order_by(Location.name.asc()).all()


def get_location_by_slug(slug: str) -> Location:
    location = Location.query.filter_by(slug=slugify(slug)).first()
    if location is None:
        raise LocationNotFoundError()
    return location


def create_location(name: str, slug: str | None = None) -> Location:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Location name is required.")
    slug = slugify(slug or name)
    if not slug:
        raise ValidationError("Location slug is required.")

    with transaction():
        if Location.query.filter_by(slug=slug).first() is not None:
            raise ConflictError("Slug already exists")
        location = Location(name=name, slug=slug)
        db.session.add(location)

    logger.info("Created location %s (%s)", name, slug)
    views.invalidate_views(views.ORDERS)
    return location


############################
# REQUESTS
############################
def _split_by_storage() -> bool:
    return bool(current_app.config.get("SPLIT_ORDERS_BY_STORAGE", True))


def submit_request(location_id: str, requested_quantities) -> RequestResult:
    """Create one order (or one per storage class) from a volunteer request.

    Non-positive quantities are dropped. The request is rejected as a whole
    when the location or any requested item no longer exists.
    """

    if not isinstance(requested_quantities, dict):
        raise ValidationError("Requested items must map item ids to quantities.")

    wanted: OrderedDict[str, int] = OrderedDict()
    for raw_item_id, raw_quantity in requested_quantities.items():
        quantity = coerce_quantity(raw_quantity)
        if quantity <= 0:
            continue
        item_id = normalize_item_id(raw_item_id)
        wanted[item_id] = wanted.get(item_id, 0) + quantity

    if not wanted:
        raise ValidationError("No items selected")

    with transaction():
        location = db.session.get(Location, location_id)
        if location is None:
            raise LocationNotFoundError()

        items = {
            item.id: item
            for item in Item.query.filter(Item.id.in_(list(wanted))).all()
        }
        missing = [item_id for item_id in wanted if item_id not in items]
        if missing:
            raise ItemNotFoundError(
                missing[0],
                message=(
                    "Some requested items are no longer available. "
                    "Please refresh and try again."
                ),
            )

        groups: OrderedDict[str | None, list[tuple[Item, int]]] = OrderedDict()
        for item_id, quantity in wanted.items():
            item = items[item_id]
            key = (item.storage_class or StorageClass.NORMAL) if _split_by_storage() else None
            groups.setdefault(key, []).append((item, quantity))

        orders = []
        for storage_class in sorted(groups, key=lambda key: StorageClass.ALL.index(key) if key else 0):
            order = Order(
                location_id=location.id,
                status=OrderStatus.NEW,
                storage_class=storage_class,
            )
            for item, quantity in groups[storage_class]:
                order.order_lines.append(OrderLine(item_id=item.id, quantity=quantity))
            db.session.add(order)
            orders.append(order)
        db.session.flush()
        order_ids = [order.id for order in orders]

    logger.info(
        "Location %s requested %d item(s) across %d order(s)",
        location.slug,
        len(wanted),
        len(order_ids),
    )
    views.invalidate_views(views.ORDERS)
    return RequestResult(order_ids=order_ids)


############################
# STATUS
############################
def _get_order(order_id: str) -> Order:
    order = db.session.get(Order, order_id) if order_id else None
    if order is None:
        raise OrderNotFoundError()
    return order


def _apply_status(order: Order, new_status: str) -> None:
    if new_status not in OrderStatus.ALL_STATUSES:
        raise ValidationError(f"Unknown order status: {new_status}")
    if not OrderStatus.can_transition(order.status, new_status):
        raise ValidationError(
            f"Cannot move an order from {OrderStatus.LABELS[order.status]} "
            f"to {OrderStatus.LABELS[new_status]}."
        )

    order.status = new_status
    if new_status == OrderStatus.DONE:
        order.completed_at = utcnow()
    else:
        order.completed_at = None


def transition_order(order_id: str, new_status: str) -> OrderSummary:
    with transaction():
        order = _get_order(order_id)
        previous = order.status
        _apply_status(order, new_status)
        summary = summarize_order(order)

    logger.info("Order %s moved from %s to %s", order_id, previous, new_status)
    views.invalidate_views(views.ORDERS)
    return summary


def complete_order_for_fulfillment(order_id: str) -> OrderSummary:
    """Mark an order done inside the caller's stock transaction.

    A ``new`` order is walked through ``in_progress`` first so the status
    rules stay the same as for manual updates. Does not commit.
    """

    order = _get_order(order_id)
    if order.status == OrderStatus.DONE:
        raise ValidationError("This order has already been fulfilled.")
    if order.status == OrderStatus.NEW:
        _apply_status(order, OrderStatus.IN_PROGRESS)
    _apply_status(order, OrderStatus.DONE)
    db.session.flush()
    return summarize_order(order)


############################
# READ MODELS
############################
def _order_query():
    return Order.query.options(
        selectinload(Order.location),
        selectinload(Order.order_lines).selectinload(OrderLine.item),
    )


def list_orders(status: str | None = None, storage_class: str | None = None) -> list[OrderSummary]:
    query = _order_query()
    if status and status != "all":
        if status not in OrderStatus.ALL_STATUSES:
            raise ValidationError(f"Unknown order status: {status}")
        query = query.filter(Order.status == status)
    if storage_class:
        if storage_class not in StorageClass.ALL:
            raise ValidationError(f"Unknown storage class: {storage_class}")
        if storage_class == StorageClass.NORMAL:
            query = query.filter(
                or_(Order.storage_class == StorageClass.NORMAL, Order.storage_class.is_(None))
            )
        else:
            query = query.filter(Order.storage_class == storage_class)
    orders = query.order_by(Order.created_at.asc()).all()
    return [summarize_order(order) for order in orders]


def list_orders_for_location(location_id: str) -> list[OrderSummary]:
    orders = (
        _order_query()
        .filter(Order.location_id == location_id)
        .order_by(Order.created_at.desc())
        .all()
    )
    return [summarize_order(order) for order in orders]


def get_order(order_id: str) -> OrderSummary:
    return summarize_order(_get_order(order_id))


def get_order_as_cart(order_id: str) -> dict[str, int]:
    """Return the order's lines as consumption deltas keyed by item id."""

    lines = (
        OrderLine.query.filter(OrderLine.order_id == order_id)
        .order_by(OrderLine.id)
        .all()
    )
    if not lines:
        raise OrderNotFoundError("Order not found or has no items")

    cart: dict[str, int] = {}
    for line in lines:
        if line.item_id is None:
            # Item deleted since the request was made; nothing left to consume.
            continue
        cart[line.item_id] = cart.get(line.item_id, 0) - line.quantity
    return cart
