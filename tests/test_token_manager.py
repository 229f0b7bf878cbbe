# tests/test_token_manager.py
import time

import pytest
from flask import Flask
from flask_jwt_extended import JWTManager, jwt_required

from ballotguard.security.token_manager import TokenManager


@pytest.fixture
def app():
    app = Flask(__name__)
    app.config['TESTING'] = True
    app.config['JWT_SECRET_KEY'] = "test-secret-key-with-enough-length-123"
    JWTManager(app)
    return app


@pytest.fixture
def token_manager(app):
    manager = TokenManager(app)

    @app.route("/whoami")
    @jwt_required()
    def whoami():
        return {"id": manager.get_identity()}

    return manager


def whoami(app, token):
    with app.test_client() as client:
        return client.get("/whoami", headers={"Authorization": f"Bearer {token}"})


def test_generated_token_identifies_user(app, token_manager):
    with app.app_context():
        token = token_manager.generate_token("42")
    assert isinstance(token, str)
    rv = whoami(app, token)
    assert rv.status_code == 200
    assert rv.get_json() == {"id": 42}


def test_token_expiry(app, token_manager):
    with app.app_context():
        token = token_manager.generate_token("2", expires_in=1)
    assert whoami(app, token).status_code == 200
    time.sleep(2)
    assert whoami(app, token).status_code == 401


def test_tampered_token_rejected(app, token_manager):
    with app.app_context():
        header, payload, _ = token_manager.generate_token("3").split(".")
        foreign_signature = token_manager.generate_token("4").split(".")[2]
    assert whoami(app, f"{header}.{payload}.{foreign_signature}").status_code in (401, 422)
