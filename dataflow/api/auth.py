"""Registration, login and session endpoints."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, session

from dataflow.api.common import SESSION_USER_KEY, json_body, require_user_id
from dataflow.errors import AuthenticationFailed
from dataflow.extensions import limiter
from dataflow.models.contracts import PublicUser, serialize, validate_payload
from dataflow.models.db import session_scope
from dataflow.models.tables import User
from dataflow.services.auth import authenticate, register_user
from dataflow.services.validators import LoginInput, RegistrationInput

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _login_limit() -> str:
    return current_app.config.get("LOGIN_RATE_LIMIT", "10/minute")


def _start_session(user: User) -> None:
    rotate = getattr(session, "rotate", None)
    session.clear()
    if rotate is not None:
        rotate()
    session[SESSION_USER_KEY] = user.id


@bp.post("/register")
def register():
    registration = validate_payload(RegistrationInput, json_body())
    with session_scope() as db_session:
        user = register_user(
            db_session,
            registration,
            rounds=current_app.config["BCRYPT_ROUNDS"],
        )
        payload = serialize(PublicUser, user)
    current_app.logger.info("New account %s", registration.username)
    return jsonify({"user": payload}), 201


@bp.post("/login")
@limiter.limit(_login_limit)
def login():
    credentials = validate_payload(LoginInput, json_body())
    with session_scope() as db_session:
        user = authenticate(db_session, credentials.username, credentials.password)
        payload = serialize(PublicUser, user)
        _start_session(user)
    return jsonify({"user": payload, "message": "Login successful"})


@bp.post("/logout")
def logout():
    session.clear()
    return jsonify({"message": "Logged out"})


@bp.get("/user")
def current_user():
    user_id = require_user_id()
    with session_scope() as db_session:
        user = db_session.get(User, user_id)
        if user is None or user.is_active is False:
            session.clear()
            raise AuthenticationFailed("Authentication required")
        payload = serialize(PublicUser, user)
    return jsonify({"user": payload})
