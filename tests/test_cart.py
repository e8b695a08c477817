import os
import sys
import uuid

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from stockapp import create_app
from stockapp.errors import InsufficientStockError, ItemNotFoundError, ValidationError
from stockapp.extensions import db, notifier
from stockapp.models import Item, Location, LogReason, Order, OrderStatus, StockLog
from stockapp.services import orders as order_service
from stockapp.services.cart import CartLine, parse_cart, submit_cart


@pytest.fixture
def app():
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


@pytest.fixture
def sent_alerts(monkeypatch):
    alerts = []
    monkeypatch.setattr(notifier, "schedule", lambda batch: alerts.extend(batch) or [])
    return alerts


@pytest.fixture
def stock(app):
    item_a = Item(name="Whole Milk", sku="MILK-1", category="Milk", stock=10, min_threshold=6)
    item_b = Item(name="Filters", sku="FILT-1", category="Supplies", stock=2, min_threshold=1)
    db.session.add_all([item_a, item_b])
    db.session.commit()
    return item_a.id, item_b.id


def test_cart_applies_every_line(app, stock, sent_alerts):
    a_id, b_id = stock

    result = submit_cart({a_id: -5, b_id: 3}, "Alex")

    assert result.total_lines == 2
    assert db.session.get(Item, a_id).stock == 5
    assert db.session.get(Item, b_id).stock == 5
    reasons = {log.item_id: log.reason for log in StockLog.query}
    assert reasons == {a_id: LogReason.CONSUMED, b_id: LogReason.RESTOCKED}
    assert [alert.item_id for alert in sent_alerts] == [a_id]


def test_cart_is_all_or_nothing(app, stock, sent_alerts):
    a_id, b_id = stock

    with pytest.raises(InsufficientStockError) as excinfo:
        submit_cart({a_id: -5, b_id: -3}, "Alex")

    assert "Filters" in str(excinfo.value)
    assert db.session.get(Item, a_id).stock == 10
    assert db.session.get(Item, b_id).stock == 2
    assert StockLog.query.count() == 0
    assert sent_alerts == []


def test_cart_with_missing_item_changes_nothing(app, stock, sent_alerts):
    a_id, _ = stock
    missing = str(uuid.uuid4())

    with pytest.raises(ItemNotFoundError) as excinfo:
        submit_cart({a_id: -1, missing: -1}, "Alex")

    assert "No stock was changed" in str(excinfo.value)
    assert db.session.get(Item, a_id).stock == 10


def test_cart_requires_a_name(app, stock):
    a_id, _ = stock
    with pytest.raises(ValidationError, match="enter your name"):
        submit_cart({a_id: -1}, "   ")


@pytest.mark.parametrize("cart", [{}, None, []])
def test_empty_cart_is_rejected(app, cart):
    with pytest.raises(ValidationError, match="Cart is empty"):
        submit_cart(cart, "Alex")


def test_cart_of_zero_quantities_is_rejected(app, stock):
    a_id, _ = stock
    with pytest.raises(ValidationError, match="Cart is empty"):
        submit_cart({a_id: 0}, "Alex")


def test_parse_cart_merges_duplicate_ids_in_order():
    first = str(uuid.uuid4())
    second = str(uuid.uuid4())

    lines = parse_cart(
        [
            {"itemId": second, "delta": -1},
            (first, 4),
            {"item_id": second.upper(), "changeAmount": "-2"},
        ]
    )

    assert lines == [CartLine(second, -3), CartLine(first, 4)]


def test_parse_cart_rejects_bad_entries():
    with pytest.raises(ValidationError):
        parse_cart("not a cart")
    with pytest.raises(ValidationError):
        parse_cart([("only-one-part",)])


def test_fulfilling_an_order_marks_it_done(app, stock, sent_alerts):
    a_id, b_id = stock
    location = order_service.create_location("Second Floor")
    request = order_service.submit_request(location.id, {a_id: 2, b_id: 1})
    order_id = request.order_ids[0]

    cart = order_service.get_order_as_cart(order_id)
    result = submit_cart(cart, "Jo", order_id=order_id)

    assert result.order.status == OrderStatus.DONE
    order = db.session.get(Order, order_id)
    assert order.status == OrderStatus.DONE
    assert order.completed_at is not None
    assert db.session.get(Item, a_id).stock == 8
    assert db.session.get(Item, b_id).stock == 1


def test_failed_fulfillment_leaves_order_open(app, stock, sent_alerts):
    a_id, _ = stock
    location = Location(name="Lab", slug="lab")
    db.session.add(location)
    db.session.commit()
    order_id = order_service.submit_request(location.id, {a_id: 3}).order_ids[0]

    with pytest.raises(InsufficientStockError):
        submit_cart({a_id: -30}, "Jo", order_id=order_id)

    assert db.session.get(Order, order_id).status == OrderStatus.NEW


def test_order_cannot_be_fulfilled_twice(app, stock, sent_alerts):
    a_id, _ = stock
    location = order_service.create_location("Kitchen")
    order_id = order_service.submit_request(location.id, {a_id: 1}).order_ids[0]
    submit_cart({a_id: -1}, "Jo", order_id=order_id)

    with pytest.raises(ValidationError, match="already been fulfilled"):
        submit_cart({a_id: -1}, "Jo", order_id=order_id)

    assert db.session.get(Item, a_id).stock == 9


def test_submit_endpoint_returns_uniform_shape(client, stock, sent_alerts):
    a_id, _ = stock

    ok_response = client.post("/cart/submit", json={"cart": {a_id: -1}, "userName": "Kim"})
    bad_response = client.post("/cart/submit", json={"cart": {a_id: -100}, "userName": "Kim"})

    assert ok_response.status_code == 200
    assert ok_response.get_json()["success"] is True
    assert ok_response.get_json()["changes"][0]["newStock"] == 9
    assert bad_response.status_code == 409
    assert bad_response.get_json() == {
        "success": False,
        "error": "Insufficient stock for Whole Milk. Available: 9",
    }
