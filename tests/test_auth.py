import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from stockapp import create_app
from stockapp.extensions import db


@pytest.fixture
def app():
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SITE_PASSWORD": "letmein",
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


def test_password_is_stored_hashed(app):
    assert app.config["SITE_PASSWORD_HASH"] != "letmein"


def test_pages_require_sign_in(client):
    response = client.get("/items/")
    assert response.status_code == 401
    assert response.get_json() == {"success": False, "error": "Please sign in first."}


def test_wrong_password_is_rejected(client):
    response = client.post("/auth/login", json={"password": "nope"})
    assert response.status_code == 401
    assert client.get("/orders/").status_code == 401


def test_login_then_logout(client):
    assert client.post("/auth/login", json={"password": "letmein"}).get_json() == {
        "success": True
    }
    assert client.get("/items/").status_code == 200

    client.post("/auth/logout")
    assert client.get("/items/").status_code == 401


def test_health_is_public(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "database": True}
