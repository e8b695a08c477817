from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import OperationalError

from stockapp.storage import ping_database

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    try:
        ping_database()
    except OperationalError as exc:
        current_app.logger.warning("Health check could not reach the database: %s", exc)
        return (
            jsonify(
                {
                    "status": "degraded",
                    "database": False,
                    "error": current_app.config.get("DATABASE_ERROR")
                    or "Database unavailable",
                }
            ),
            503,
        )
    return jsonify({"status": "ok", "database": True})
