from __future__ import annotations

from flask import Blueprint, current_app
from werkzeug.exceptions import HTTPException

from stockapp.errors import StockRoomError
from stockapp.extensions import db
from stockapp.responses import fail

bp = Blueprint("errors", __name__)


@bp.app_errorhandler(StockRoomError)
def handle_stock_room_error(error: StockRoomError):
    return fail(str(error), error.status_code)


@bp.app_errorhandler(Exception)
def handle_exception(error: Exception):
    # Allow HTTP errors that are not 500 to propagate to their default handlers.
    if isinstance(error, HTTPException) and error.code != 500:
        return error

    current_app.logger.exception("Unhandled exception", exc_info=error)
    db.session.rollback()
    return fail("Something went wrong", 500)
