from flask import Blueprint, request

from stockapp.auth import site_password_guard
from stockapp.responses import ok
from stockapp.services import history as history_service

bp = Blueprint("history", __name__, url_prefix="/history")
bp.before_request(site_password_guard())


@bp.get("/")
def ledger():
    limit = request.args.get("limit", type=int)
    return ok(logs=history_service.order_history(limit=limit))


@bp.get("/statistics")
def statistics():
    return ok(statistics=history_service.order_statistics())


@bp.get("/stock")
def stock():
    history = history_service.stock_over_time(request.args.get("itemId") or None)
    return ok(**history.to_dict())
