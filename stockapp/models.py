import uuid
from datetime import datetime, timezone

from stockapp.extensions import db


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StorageClass:
    NORMAL = "normal"
    COLD = "cold"

    ALL = [NORMAL, COLD]


class LogReason:
    CONSUMED = "consumed"
    RESTOCKED = "restocked"
    ADJUSTMENT = "adjustment"

    ALL = [CONSUMED, RESTOCKED, ADJUSTMENT]

    @classmethod
    def for_delta(cls, delta: int) -> str:
        return cls.RESTOCKED if delta > 0 else cls.CONSUMED


class OrderStatus:
    NEW = "new"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    ALL_STATUSES = [NEW, IN_PROGRESS, DONE]
    # new -> done is deliberately absent; fulfillment walks through in_progress.
    TRANSITIONS = {
        NEW: {IN_PROGRESS},
        IN_PROGRESS: {DONE},
        DONE: {IN_PROGRESS},
    }
    LABELS = {
        NEW: "New",
        IN_PROGRESS: "In Progress",
        DONE: "Done",
    }

    @classmethod
    def can_transition(cls, current: str, target: str) -> bool:
        return target in cls.TRANSITIONS.get(current, set())


class Item(db.Model):
    __tablename__ = "item"

    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_item_stock_non_negative"),
        db.CheckConstraint("min_threshold >= 0", name="ck_item_threshold_non_negative"),
        db.CheckConstraint("quantity_per_unit >= 1", name="ck_item_quantity_per_unit"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    sku = db.Column(db.String, unique=True, nullable=False)
    name = db.Column(db.String, nullable=False)
    category = db.Column(db.String, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    min_threshold = db.Column(db.Integer, nullable=False, default=10)
    quantity_per_unit = db.Column(db.Integer, nullable=False, default=1)
    unit_name = db.Column(db.String, nullable=False, default="case")
    size = db.Column(db.String, nullable=True)
    image_url = db.Column(db.String, nullable=True)
    storage_class = db.Column(db.String, nullable=False, default=StorageClass.NORMAL)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    logs = db.relationship(
        "StockLog",
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="StockLog.id",
    )

    def __repr__(self):
        return f"<Item {self.sku} stock={self.stock}>"

    @property
    def is_low(self) -> bool:
        return self.stock <= self.min_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "stock": self.stock,
            "minThreshold": self.min_threshold,
            "isLow": self.is_low,
            "quantityPerUnit": self.quantity_per_unit,
            "unitName": self.unit_name,
            "size": self.size,
            "imageUrl": self.image_url,
            "storageClass": self.storage_class,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class StockLog(db.Model):
    __tablename__ = "stock_log"

    __table_args__ = (
        db.CheckConstraint("change_amount <> 0", name="ck_stock_log_non_zero"),
        db.Index("ix_stock_log_created", "created_at", "id"),
    )

    # Integer key doubles as the ledger sequence for entries sharing a timestamp.
    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(
        db.String(36),
        db.ForeignKey("item.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    change_amount = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String, nullable=False)
    user_name = db.Column(db.String, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    item = db.relationship("Item", back_populates="logs")

    def __repr__(self):
        return (
            f"<StockLog {self.id} item={self.item_id} "
            f"change={self.change_amount} reason={self.reason}>"
        )


class Location(db.Model):
    __tablename__ = "location"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String, nullable=False)
    slug = db.Column(db.String, unique=True, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    orders = db.relationship(
        "Order",
        back_populates="location",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Location {self.slug}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class Order(db.Model):
    __tablename__ = "order"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    location_id = db.Column(
        db.String(36),
        db.ForeignKey("location.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = db.Column(db.String, nullable=False, default=OrderStatus.NEW)
    storage_class = db.Column(db.String, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    location = db.relationship("Location", back_populates="orders")
    order_lines = db.relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderLine.id",
    )

    def __repr__(self):
        return f"<Order {self.id} status={self.status}>"


class OrderLine(db.Model):
    __tablename__ = "order_line"

    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_line_quantity_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.String(36),
        db.ForeignKey("order.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Lines outlive a deleted item so past requests keep their history.
    item_id = db.Column(
        db.String(36),
        db.ForeignKey("item.id", ondelete="SET NULL"),
        nullable=True,
    )
    quantity = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", back_populates="order_lines")
    item = db.relationship("Item")

    def __repr__(self):
        return f"<OrderLine order={self.order_id} item={self.item_id} qty={self.quantity}>"
