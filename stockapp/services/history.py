"""Read-only views over the stock ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import func

from stockapp.errors import ItemNotFoundError
from stockapp.extensions import db
from stockapp.models import Item, LogReason, StockLog, utcnow
from stockapp.services.stock_ledger import normalize_item_id


@dataclass(frozen=True)
class StockPoint:
    day: date
    total: int

    def to_dict(self) -> dict:
        return {"date": self.day.isoformat(), "total": self.total}


@dataclass
class StockHistory:
    points: list[StockPoint] = field(default_factory=list)
    opening_total: int = 0
    current_total: int = 0

    def to_dict(self) -> dict:
        return {
            "points": [point.to_dict() for point in self.points],
            "openingTotal": self.opening_total,
            "currentTotal": self.current_total,
        }


def stock_over_time(item_id=None) -> StockHistory:
    """Rebuild daily stock totals by walking the ledger backwards from now.

    Each ledger entry is turned into the total from just before it was
    applied, and a day keeps the value from its latest entry. Today is always
    the current total. ``opening_total`` is the total before the oldest entry,
    so adding every logged change to it gives ``current_total`` exactly.
    """

    log_query = StockLog.query
    if item_id is not None:
        item_id = normalize_item_id(item_id)
        item = db.session.get(Item, item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        current_total = item.stock
        log_query = log_query.filter(StockLog.item_id == item_id)
    else:
        current_total = db.session.query(func.coalesce(func.sum(Item.stock), 0)).scalar()
    current_total = int(current_total or 0)

    today = utcnow().date()
    # Newest first: each entry yields the total before it was applied, and the
    # first value seen for a day belongs to that day's latest entry.
    points_by_day: dict[date, int] = {today: current_total}
    running = current_total
    logs = log_query.order_by(StockLog.created_at.desc(), StockLog.id.desc()).all()
    for log in logs:
        running -= log.change_amount
        points_by_day.setdefault(log.created_at.date(), running)

    points = [StockPoint(day=day, total=total) for day, total in sorted(points_by_day.items())]
    return StockHistory(points=points, opening_total=running, current_total=current_total)


def order_history(limit: int | None = None) -> list[dict]:
    query = (
        db.session.query(StockLog, Item)
        .join(Item, StockLog.item_id == Item.id)
        .order_by(StockLog.created_at.desc(), StockLog.id.desc())
    )
    if limit:
        query = query.limit(limit)

    return [
        {
            "id": log.id,
            "itemId": item.id,
            "itemName": item.name,
            "sku": item.sku,
            "category": item.category,
            "changeAmount": log.change_amount,
            "reason": log.reason,
            "userName": log.user_name,
            "createdAt": log.created_at.isoformat() if log.created_at else None,
        }
        for log, item in query.all()
    ]


def order_statistics() -> dict:
    total_consumed = (
        db.session.query(func.coalesce(func.sum(func.abs(StockLog.change_amount)), 0))
        .filter(StockLog.reason == LogReason.CONSUMED)
        .scalar()
    )
    total_restocked = (
        db.session.query(func.coalesce(func.sum(StockLog.change_amount), 0))
        .filter(StockLog.reason == LogReason.RESTOCKED)
        .scalar()
    )

    consumed = func.sum(func.abs(StockLog.change_amount)).label("consumed")
    top_items = (
        db.session.query(Item.id, Item.name, consumed)
        .join(StockLog, StockLog.item_id == Item.id)
        .filter(StockLog.reason == LogReason.CONSUMED)
        .group_by(Item.id, Item.name)
        .order_by(consumed.desc(), Item.name.asc())
        .limit(5)
        .all()
    )
    by_category = (
        db.session.query(Item.category, consumed)
        .join(StockLog, StockLog.item_id == Item.id)
        .filter(StockLog.reason == LogReason.CONSUMED)
        .group_by(Item.category)
        .order_by(consumed.desc())
        .all()
    )

    return {
        "totalConsumed": int(total_consumed or 0),
        "totalRestocked": int(total_restocked or 0),
        "topItems": [
            {"itemId": row.id, "itemName": row.name, "consumed": int(row.consumed)}
            for row in top_items
        ],
        "categoryConsumption": {
            row.category: int(row.consumed) for row in by_category
        },
    }
