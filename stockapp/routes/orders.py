"""Volunteer request flow and the stock room's order queue."""

from flask import Blueprint, request

from stockapp.auth import site_password_guard
from stockapp.errors import ValidationError
from stockapp.responses import ok
from stockapp.services import orders as order_service

bp = Blueprint("orders", __name__)
bp.before_request(site_password_guard())


############################
# LOCATIONS
############################
@bp.get("/locations/")
def list_locations():
    return ok(locations=[location.to_dict() for location in order_service.list_locations()])


@bp.post("/locations/")
def create_location():
    data = request.get_json(silent=True) or request.form
    location = order_service.create_location(data.get("name"), data.get("slug"))
    return ok(201, location=location.to_dict())


@bp.get("/locations/<slug>")
def location_detail(slug):
    location = order_service.get_location_by_slug(slug)
    return ok(location=location.to_dict())


@bp.post("/locations/<slug>/requests")
def submit_request(slug):
    location = order_service.get_location_by_slug(slug)
    data = request.get_json(silent=True) or {}
    result = order_service.submit_request(location.id, data.get("items"))
    return ok(201, orderIds=result.order_ids, groupCount=result.group_count)


@bp.get("/locations/<slug>/orders")
def location_orders(slug):
    location = order_service.get_location_by_slug(slug)
    orders = order_service.list_orders_for_location(location.id)
    return ok(orders=[order.to_dict() for order in orders])


############################
# ORDERS
############################
@bp.get("/orders/")
def list_orders():
    orders = order_service.list_orders(
        status=request.args.get("status"),
        storage_class=request.args.get("storage"),
    )
    return ok(orders=[order.to_dict() for order in orders])


@bp.get("/orders/<order_id>")
def order_detail(order_id):
    return ok(order=order_service.get_order(order_id).to_dict())


@bp.post("/orders/<order_id>/status")
def update_status(order_id):
    data = request.get_json(silent=True) or request.form
    new_status = (data.get("status") or "").strip()
    if not new_status:
        raise ValidationError("A status is required.")
    summary = order_service.transition_order(order_id, new_status)
    return ok(order=summary.to_dict())


@bp.get("/orders/<order_id>/cart")
def order_cart(order_id):
    return ok(cart=order_service.get_order_as_cart(order_id))
