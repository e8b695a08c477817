"""Shared-password gate for the stock room pages."""

from __future__ import annotations

from flask import current_app, session
from werkzeug.security import check_password_hash, generate_password_hash

from stockapp.responses import fail

SESSION_FLAG = "authenticated"


def init_site_password(app) -> None:
    app.config["SITE_PASSWORD_HASH"] = generate_password_hash(
        app.config.get("SITE_PASSWORD") or ""
    )


def check_site_password(password: str | None) -> bool:
    password_hash = current_app.config.get("SITE_PASSWORD_HASH")
    if not password or not password_hash:
        return False
    return check_password_hash(password_hash, password)


def is_authenticated() -> bool:
    if current_app.config.get("LOGIN_DISABLED"):
        return True
    return bool(session.get(SESSION_FLAG))


def site_password_guard():
    """Return a ``before_request`` handler rejecting unauthenticated sessions."""

    def handler():
        if not is_authenticated():
            return fail("Please sign in first.", 401)
        return None

    return handler
