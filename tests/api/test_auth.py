from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app import create_app
from dataflow.errors import constraint_name
from dataflow.models.tables import AuthSession, User
from dataflow.services.sessions import prune_expired


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("RATELIMIT_ENABLED", "false")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    application = create_app()
    application.config.update(TESTING=True)
    yield application
    application.extensions["database"].dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def database(app):
    return app.extensions["database"]


def _register(client, username="demo", password="demo", **extra):
    return client.post(
        "/api/auth/register",
        json={"username": username, "password": password, **extra},
    )


def _login(client, username="demo", password="demo"):
    return client.post("/api/auth/login", json={"username": username, "password": password})


def test_demo_login_register_scenario(client, database):
    assert _login(client).status_code == 401

    response = _register(client)
    assert response.status_code == 201
    user = response.get_json()["user"]
    assert user["username"] == "demo"
    assert "passwordHash" not in user

    with database.session_scope() as session:
        stored = session.execute(select(User).where(User.username == "demo")).scalar_one()
        assert stored.password_hash != "demo"
        assert stored.password_hash.startswith("$2")

    response = _login(client)
    assert response.status_code == 200
    assert response.get_json()["user"]["username"] == "demo"

    current = client.get("/api/auth/user")
    assert current.status_code == 200
    assert current.get_json()["user"]["username"] == "demo"


def test_wrong_password_is_rejected(client):
    _register(client)

    response = _login(client, password="nope")

    assert response.status_code == 401
    assert response.get_json() == {"message": "Invalid username or password"}


def test_duplicate_username_is_rejected(client, database):
    _register(client, email="first@example.com")

    response = _register(client, password="other")

    assert response.status_code == 409
    assert response.get_json()["constraint"] == "uq_users_username"
    with database.session_scope() as session:
        users = session.execute(select(User)).scalars().all()
        assert len(users) == 1
        assert users[0].email == "first@example.com"


def test_unique_username_enforced_by_storage(database):
    with database.session_scope() as session:
        session.add(User(username="alice", password_hash="x"))

    with pytest.raises(IntegrityError) as excinfo:
        with database.session_scope() as session:
            session.add(User(username="alice", password_hash="y"))

    assert constraint_name(excinfo.value) == "uq_users_username"


def test_registration_rejects_unknown_fields(client):
    response = _register(client, role="admin")

    assert response.status_code == 400
    assert response.get_json()["errors"][0]["reason"] == "unknown_field"


def test_current_user_requires_session(client):
    response = client.get("/api/auth/user")

    assert response.status_code == 401
    assert response.get_json() == {"message": "Authentication required"}


def test_login_persists_server_side_session(client, database):
    _register(client)
    _login(client)

    with database.session_scope() as session:
        rows = session.execute(select(AuthSession)).scalars().all()
        assert len(rows) == 1
        assert isinstance(rows[0].sess["user_id"], int)
        expire = rows[0].expire.replace(tzinfo=timezone.utc)
        assert expire > datetime.now(timezone.utc) + timedelta(days=6)


def test_logout_ends_session(client, database):
    _register(client)
    _login(client)

    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/user").status_code == 401
    with database.session_scope() as session:
        assert session.execute(select(AuthSession)).scalars().all() == []


def test_expired_session_is_ignored_and_pruned(client, database):
    _register(client)
    _login(client)
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    with database.session_scope() as session:
        session.execute(update(AuthSession).values(expire=past))

    assert client.get("/api/auth/user").status_code == 401
    assert prune_expired(database) == 1


def test_ensure_demo_user_command(app, client):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["ensure-demo-user"])
    second = runner.invoke(args=["ensure-demo-user"])

    assert "created" in first.output
    assert "already exists" in second.output
    assert _login(client).status_code == 200
