"""Item catalogue, single-item stock changes, cart submission and log edits."""

from flask import Blueprint, current_app, request

from stockapp.auth import site_password_guard
from stockapp.errors import ValidationError
from stockapp.responses import ok
from stockapp.services import cart as cart_service
from stockapp.services import items as item_service
from stockapp.services import stock_ledger

bp = Blueprint("inventory", __name__)
bp.before_request(site_password_guard())


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object.")
    return data


############################
# ITEMS
############################
@bp.get("/items/")
def list_items():
    return ok(items=[item.to_dict() for item in item_service.list_items()])


@bp.post("/items/")
def create_item():
    item = item_service.create_item(_json_body())
    return ok(201, item=item.to_dict())


@bp.get("/items/available")
def available_items():
    return ok(items=item_service.available_items())


@bp.get("/items/<item_id>")
def get_item(item_id):
    return ok(item=item_service.get_item(item_id).to_dict())


@bp.put("/items/<item_id>")
def update_item(item_id):
    item = item_service.update_item(item_id, _json_body())
    return ok(item=item.to_dict())


@bp.delete("/items/<item_id>")
def delete_item(item_id):
    item_service.delete_item(item_id)
    return ok()


@bp.post("/items/<item_id>/stock")
def change_stock(item_id):
    data = _json_body()
    reason = data.get("reason") or None
    actor = data.get("userName") or data.get("user_name")

    if data.get("cases") not in (None, ""):
        change = stock_ledger.apply_cases(item_id, data["cases"], reason, actor)
    else:
        amount = data.get("changeAmount", data.get("delta"))
        if amount in (None, ""):
            raise ValidationError("A change amount is required.")
        change = stock_ledger.apply_delta(item_id, amount, reason, actor)

    return ok(
        itemId=change.item_id,
        itemName=change.item_name,
        changeAmount=change.delta,
        newStock=change.new_stock,
        logId=change.log_id,
    )


############################
# CART
############################
@bp.post("/cart/submit")
def submit_cart():
    data = _json_body()
    result = cart_service.submit_cart(
        data.get("cart"),
        data.get("userName") or data.get("user_name"),
        order_id=data.get("orderId") or data.get("order_id"),
    )
    current_app.logger.info("Cart submitted with %d line(s)", result.total_lines)
    return ok(**result.to_dict())


############################
# LOGS
############################
def _correction_payload(correction):
    return {
        "logId": correction.log_id,
        "itemId": correction.item_id,
        "difference": correction.difference,
        "newStock": correction.new_stock,
        "adjustmentLogId": correction.adjustment_log_id,
    }


@bp.put("/logs/<log_id>")
def edit_log(log_id):
    data = _json_body()
    if data.get("quantity") not in (None, ""):
        new_amount = stock_ledger.signed_correction(log_id, data["quantity"])
    elif data.get("changeAmount") not in (None, ""):
        new_amount = data["changeAmount"]
    else:
        raise ValidationError("A corrected quantity is required.")

    correction = stock_ledger.edit_log(log_id, new_amount)
    return ok(**_correction_payload(correction))


@bp.delete("/logs/<log_id>")
def delete_log(log_id):
    correction = stock_ledger.delete_log(log_id)
    return ok(**_correction_payload(correction))
