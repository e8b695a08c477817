import os
import sys
import uuid

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from stockapp import create_app
from stockapp.errors import InsufficientStockError, LogNotFoundError, ValidationError
from stockapp.extensions import db, notifier
from stockapp.models import Item, LogReason, StockLog
from stockapp.services import stock_ledger


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


def consumed_item(stock=25, consumed=5):
    item = Item(name="Espresso Beans", sku=f"BEANS-{uuid.uuid4().hex[:6]}", category="Coffee", stock=stock)
    db.session.add(item)
    db.session.commit()
    change = stock_ledger.apply_delta(item.id, -consumed, actor="Robin")
    return item.id, change.log_id


def test_edit_log_applies_difference_and_records_adjustment(app):
    item_id, log_id = consumed_item()

    correction = stock_ledger.edit_log(log_id, -8)

    assert correction.difference == -3
    assert correction.new_stock == 17
    assert db.session.get(Item, item_id).stock == 17
    assert db.session.get(StockLog, log_id).change_amount == -8

    adjustment = db.session.get(StockLog, correction.adjustment_log_id)
    assert adjustment.change_amount == -3
    assert adjustment.reason == LogReason.ADJUSTMENT
    assert adjustment.user_name == f"System (Edit of log {log_id})"


def test_edit_log_with_same_amount_is_a_no_op(app):
    item_id, log_id = consumed_item()

    correction = stock_ledger.edit_log(log_id, -5)

    assert correction.difference == 0
    assert StockLog.query.count() == 1
    assert db.session.get(Item, item_id).stock == 20


def test_edit_log_rejects_zero(app):
    _, log_id = consumed_item()

    with pytest.raises(ValidationError):
        stock_ledger.edit_log(log_id, 0)


def test_edit_log_that_would_go_negative_changes_nothing(app):
    item_id, log_id = consumed_item(stock=6, consumed=5)

    with pytest.raises(InsufficientStockError) as excinfo:
        stock_ledger.edit_log(log_id, -10)

    assert "Adjustment would result in negative stock" in str(excinfo.value)
    assert db.session.get(Item, item_id).stock == 1
    assert db.session.get(StockLog, log_id).change_amount == -5
    assert StockLog.query.count() == 1


def test_delete_log_reverses_its_effect(app):
    item_id, log_id = consumed_item()

    correction = stock_ledger.delete_log(log_id)

    assert correction.difference == 5
    assert db.session.get(Item, item_id).stock == 25
    assert db.session.get(StockLog, log_id) is None
    remaining = StockLog.query.one()
    assert remaining.change_amount == 5
    assert remaining.user_name == f"System (Deleted log {log_id})"


def test_deleting_a_restock_that_was_already_used_is_rejected(app):
    item = Item(name="Lids", sku="LIDS-1", category="Supplies", stock=0)
    db.session.add(item)
    db.session.commit()
    restock = stock_ledger.apply_delta(item.id, 10)
    stock_ledger.apply_delta(item.id, -8)

    with pytest.raises(InsufficientStockError) as excinfo:
        stock_ledger.delete_log(restock.log_id)

    assert "Deleting this log would result in negative stock" in str(excinfo.value)
    assert db.session.get(Item, item.id).stock == 2
    assert StockLog.query.count() == 2


def test_missing_log_raises_not_found(app):
    with pytest.raises(LogNotFoundError):
        stock_ledger.delete_log(9999)
    with pytest.raises(LogNotFoundError):
        stock_ledger.edit_log("abc", -1)


def test_edit_endpoint_uses_original_sign_for_quantity(client, app):
    item_id, log_id = consumed_item()

    response = client.put(f"/logs/{log_id}", json={"quantity": 8})

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["success"] is True
    assert payload["newStock"] == 17
    assert db.session.get(StockLog, log_id).change_amount == -8


def test_delete_endpoint_reports_negative_stock_conflict(client, app):
    item = Item(name="Sugar", sku="SUGAR-1", category="Supplies", stock=0)
    db.session.add(item)
    db.session.commit()
    restock = stock_ledger.apply_delta(item.id, 4)
    stock_ledger.apply_delta(item.id, -4)

    response = client.delete(f"/logs/{restock.log_id}")

    assert response.status_code == 409
    assert response.get_json()["success"] is False
