from flask import Blueprint, current_app, request, session

from stockapp.auth import SESSION_FLAG, check_site_password
from stockapp.responses import fail, ok

bp = Blueprint("auth", __name__, url_prefix="/auth")


@bp.post("/login")
def login():
    data = request.get_json(silent=True) or request.form
    password = (data.get("password") or "").strip()
    if not check_site_password(password):
        current_app.logger.warning("Rejected stock room sign-in from %s", request.remote_addr)
        return fail("Incorrect password", 401)

    session.clear()
    session.permanent = True
    session[SESSION_FLAG] = True
    return ok()


@bp.post("/logout")
def logout():
    session.pop(SESSION_FLAG, None)
    return ok()
