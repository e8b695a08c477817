from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from stockapp.errors import ConflictError, ItemNotFoundError, ValidationError
from stockapp.extensions import db
from stockapp.models import Item, StorageClass
from stockapp.services import views
from stockapp.services.stock_ledger import coerce_quantity, normalize_item_id
from stockapp.storage import transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemForm:
    name: str
    sku: str
    category: str
    stock: int
    min_threshold: int
    quantity_per_unit: int
    unit_name: str
    storage_class: str
    size: str | None = None
    image_url: str | None = None

    @classmethod
    def from_payload(cls, data: dict) -> "ItemForm":
        def text(*keys, default=""):
            for key in keys:
                value = data.get(key)
                if value is not None:
                    return str(value).strip()
            return default

        def number(*keys, default):
            for key in keys:
                if data.get(key) not in (None, ""):
                    return coerce_quantity(data[key], field=keys[0])
            return default

        name = text("name")
        sku = text("sku")
        category = text("category")
        if not name:
            raise ValidationError("Name is required.")
        if not sku:
            raise ValidationError("SKU is required.")
        if not category:
            raise ValidationError("Category is required.")

        stock = number("stock", default=0)
        min_threshold = number("minThreshold", "min_threshold", default=10)
        quantity_per_unit = number("quantityPerUnit", "quantity_per_unit", default=1)
        if stock < 0:
            raise ValidationError("Stock cannot be negative.")
        if min_threshold < 0:
            raise ValidationError("Minimum threshold cannot be negative.")
        if quantity_per_unit < 1:
            raise ValidationError("Quantity per unit must be at least 1.")

        storage_class = text("storageClass", "storage_class", default="")
        if not storage_class:
            cold = data.get("coldStorage", data.get("cold_storage"))
            storage_class = StorageClass.COLD if cold in (True, "true", "on", "1", 1) else StorageClass.NORMAL
        if storage_class not in StorageClass.ALL:
            raise ValidationError(f"Unknown storage class: {storage_class}")

        return cls(
            name=name,
            sku=sku,
            category=category,
            stock=stock,
            min_threshold=min_threshold,
            quantity_per_unit=quantity_per_unit,
            unit_name=text("unitName", "unit_name", default="case") or "case",
            storage_class=storage_class,
            size=text("size") or None,
            image_url=text("imageUrl", "image_url") or None,
        )


def list_items() -> list[Item]:
    return Item.query.order_by(Item.category.asc(), Item.name.asc()).all()


def available_items() -> list[dict]:
    """Items a volunteer may request: anything in stock, without the count."""

    items = (
        Item.query.filter(Item.stock > 0)
        .order_by(Item.category.asc(), Item.name.asc())
        .all()
    )
    return [
        {
            "id": item.id,
            "name": item.name,
            "category": item.category,
            "imageUrl": item.image_url,
            "quantityPerUnit": item.quantity_per_unit,
            "unitName": item.unit_name,
            "storageClass": item.storage_class,
        }
        for item in items
    ]


def get_item(item_id) -> Item:
    item = db.session.get(Item, normalize_item_id(item_id))
    if item is None:
        raise ItemNotFoundError(item_id)
    return item


def _sku_taken(sku: str, exclude_id: str | None = None) -> bool:
    query = Item.query.filter(Item.sku == sku)
    if exclude_id is not None:
        query = query.filter(Item.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def create_item(data: dict) -> Item:
    form = ItemForm.from_payload(data)
    try:
        with transaction():
            if _sku_taken(form.sku):
                raise ConflictError("SKU already exists")
            item = Item(
                name=form.name,
                sku=form.sku,
                category=form.category,
                stock=form.stock,
                min_threshold=form.min_threshold,
                quantity_per_unit=form.quantity_per_unit,
                unit_name=form.unit_name,
                storage_class=form.storage_class,
                size=form.size,
                image_url=form.image_url,
            )
            db.session.add(item)
    except IntegrityError as exc:
        # Lost a race with another insert of the same SKU.
        raise ConflictError("SKU already exists") from exc

    logger.info("Created item %s (%s) with opening stock %d", item.name, item.sku, form.stock)
    views.invalidate_views(views.ITEM_LIST, views.RESTOCK)
    return item


def update_item(item_id, data: dict) -> Item:
    """Update an item's descriptive fields.

    ``stock`` is ignored here; quantities only move through the stock ledger.
    """

    form = ItemForm.from_payload(data)
    try:
        with transaction():
            item = get_item(item_id)
            if item.sku != form.sku and _sku_taken(form.sku, exclude_id=item.id):
                raise ConflictError("SKU already exists")
            item.name = form.name
            item.sku = form.sku
            item.category = form.category
            item.min_threshold = form.min_threshold
            item.quantity_per_unit = form.quantity_per_unit
            item.unit_name = form.unit_name
            item.storage_class = form.storage_class
            item.size = form.size
            item.image_url = form.image_url
    except IntegrityError as exc:
        raise ConflictError("SKU already exists") from exc

    logger.info("Updated item %s (%s)", item.name, item.sku)
    views.invalidate_views(views.ITEM_LIST, views.RESTOCK, views.item_page(item.id))
    return item


def delete_item(item_id) -> None:
    with transaction():
        item = get_item(item_id)
        name = item.name
        db.session.delete(item)

    logger.info("Deleted item %s and its stock history", name)
    views.invalidate_views(views.ITEM_LIST, views.RESTOCK, views.HISTORY)
