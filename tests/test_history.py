import os
import sys
from datetime import datetime, timedelta

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from stockapp import create_app
from stockapp.extensions import db, notifier
from stockapp.models import Item, LogReason, StockLog, utcnow
from stockapp.services import history, stock_ledger


@pytest.fixture
def app(monkeypatch):
    monkeypatch.setattr(notifier, "schedule", lambda alerts: [])
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "LOGIN_DISABLED": True,
        }
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def add_item(name, category, stock):
    item = Item(name=name, sku=name.upper(), category=category, stock=stock)
    db.session.add(item)
    db.session.commit()
    return item


def add_log(item, amount, when, reason=None):
    db.session.add(
        StockLog(
            item_id=item.id,
            change_amount=amount,
            reason=reason or LogReason.for_delta(amount),
            created_at=when,
        )
    )
    db.session.commit()


def test_empty_history_is_a_single_point_for_today(app):
    add_item("Milk", "Milk", 12)

    result = history.stock_over_time()

    assert len(result.points) == 1
    assert result.points[0].day == utcnow().date()
    assert result.points[0].total == 12
    assert result.opening_total == result.current_total == 12


def test_reconstruction_walks_back_to_the_opening_total(app):
    milk = add_item("Milk", "Milk", 15)
    cups = add_item("Cups", "Supplies", 30)
    now = utcnow()
    three_days_ago = now - timedelta(days=3)
    yesterday = now - timedelta(days=1)

    add_log(milk, 10, three_days_ago.replace(hour=8))
    add_log(cups, -4, three_days_ago.replace(hour=9))
    add_log(milk, -2, yesterday.replace(hour=10))
    add_log(milk, -3, yesterday.replace(hour=16))

    result = history.stock_over_time()

    total_change = sum(log.change_amount for log in StockLog.query)
    assert result.current_total == 45
    assert result.opening_total + total_change == result.current_total
    assert result.opening_total == 44
    assert [(point.day, point.total) for point in result.points] == [
        (three_days_ago.date(), 54),
        (yesterday.date(), 48),
        (now.date(), 45),
    ]


def test_history_can_be_restricted_to_one_item(app):
    milk = add_item("Milk", "Milk", 5)
    add_item("Cups", "Supplies", 100)
    add_log(milk, -5, utcnow() - timedelta(days=2))

    result = history.stock_over_time(milk.id)

    assert result.current_total == 5
    assert result.opening_total == 10
    assert [point.total for point in result.points] == [10, 5]


def test_history_round_trips_through_the_ledger(app):
    beans = add_item("Beans", "Coffee", 0)
    for delta in (20, -3, -4, 6, -10):
        stock_ledger.apply_delta(beans.id, delta)

    result = history.stock_over_time(beans.id)

    assert result.opening_total == 0
    assert result.points[-1].total == result.current_total == 9


def test_replaying_from_the_oldest_point_reaches_current_stock(app):
    beans = add_item("Beans", "Coffee", 7)
    now = utcnow()
    add_log(beans, 10, now - timedelta(days=3))
    add_log(beans, -2, now - timedelta(days=1))
    add_log(beans, -1, now)

    result = history.stock_over_time(beans.id)

    replayed = result.points[0].total + sum(
        log.change_amount for log in StockLog.query.filter_by(item_id=beans.id)
    )
    assert [point.total for point in result.points] == [0, 10, 7]
    assert replayed == result.current_total == 7


def test_statistics_summarise_consumption(app):
    milk = add_item("Milk", "Milk", 50)
    cups = add_item("Cups", "Supplies", 50)
    when = datetime(2024, 1, 1, 12, 0)
    add_log(milk, -7, when)
    add_log(milk, -3, when)
    add_log(cups, -4, when)
    add_log(cups, 20, when)
    add_log(cups, -2, when, reason=LogReason.ADJUSTMENT)

    stats = history.order_statistics()

    assert stats["totalConsumed"] == 14
    assert stats["totalRestocked"] == 20
    assert stats["topItems"][0] == {"itemId": milk.id, "itemName": "Milk", "consumed": 10}
    assert stats["categoryConsumption"] == {"Milk": 10, "Supplies": 4}


def test_history_endpoint_lists_newest_first(client, app):
    milk = add_item("Milk", "Milk", 50)
    add_log(milk, -1, datetime(2024, 1, 1, 9, 0))
    add_log(milk, -2, datetime(2024, 1, 2, 9, 0))

    payload = client.get("/history/").get_json()

    assert payload["success"] is True
    assert [entry["changeAmount"] for entry in payload["logs"]] == [-2, -1]
    assert payload["logs"][0]["itemName"] == "Milk"


def test_stock_endpoint_returns_points(client, app):
    add_item("Milk", "Milk", 3)

    payload = client.get("/history/stock").get_json()

    assert payload["currentTotal"] == 3
    assert payload["points"] == [{"date": utcnow().date().isoformat(), "total": 3}]
