from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from sigs import create_app
from sigs.core.config import Config
from sigs.core.context import ActorContext
from sigs.core.extensions import db
from sigs.core.models import Policy, User, seed_demo_data
from sigs.core.storage import LocalStorage


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"


@pytest.fixture
def app(tmp_path):
    app = create_app(TestConfig)
    app.extensions["sigs_storage"] = LocalStorage(tmp_path / "storage")
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def actor(app):
    """Build the request actor for a demo user, e.g. ``actor("agente")``."""

    def _actor(role_name: str) -> ActorContext:
        user = User.query.filter_by(email=f"{role_name}@patria.local").one()
        return ActorContext.for_user(user)

    return _actor


@pytest.fixture
def user_id(app):
    def _user_id(role_name: str) -> int:
        return User.query.filter_by(email=f"{role_name}@patria.local").one().id

    return _user_id


@pytest.fixture
def policy_id(app):
    def _policy_id(number: str) -> int:
        return Policy.query.filter_by(number=number).one().id

    return _policy_id


@pytest.fixture
def login(client):
    def _login(role_name: str, password: str | None = None):
        return client.post(
            "/auth/login",
            json={"email": f"{role_name}@patria.local", "password": password or f"{role_name}123"},
        )

    return _login


@pytest.fixture
def login_admin(login):
    def _login():
        return login("admin")

    return _login
