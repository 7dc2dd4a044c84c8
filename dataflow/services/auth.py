"""Account registration and password authentication."""

from __future__ import annotations

import logging

import bcrypt
from sqlalchemy import select
from sqlalchemy.orm import Session

from dataflow.errors import AuthenticationFailed, DuplicateRecord
from dataflow.models.contracts import UserInsert, validate_payload
from dataflow.models.tables import User
from dataflow.services.validators import RegistrationInput

_LOGGER = logging.getLogger(__name__)

DEMO_USERNAME = "demo"
DEMO_PASSWORD = "demo"
_INVALID_CREDENTIALS = "Invalid username or password"


def hash_password(password: str, rounds: int = 12) -> str:
    """Return the bcrypt hash of ``password`` as text."""

    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
    except ValueError:
        # Not a bcrypt hash.
        return False


def find_user(session: Session, username: str) -> User | None:
    return session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()


def register_user(
    session: Session, registration: RegistrationInput, *, rounds: int = 12
) -> User:
    """Insert a new account; the stored row never carries the raw password."""

    if find_user(session, registration.username) is not None:
        raise DuplicateRecord(
            "Username already exists", constraint="uq_users_username"
        )

    values = validate_payload(
        UserInsert,
        {
            "username": registration.username,
            "email": registration.email,
            "passwordHash": hash_password(registration.password, rounds),
        },
    )
    user = User(**values.to_values())
    session.add(user)
    session.flush()
    _LOGGER.info("Registered user %s (id=%s)", user.username, user.id)
    return user


def authenticate(session: Session, username: str, password: str) -> User:
    """Return the active user matching the credentials.

    Unknown usernames, wrong passwords and deactivated accounts all raise the
    same :class:`AuthenticationFailed` so callers cannot tell them apart.
    """

    user = find_user(session, username)
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationFailed(_INVALID_CREDENTIALS)
    if user.is_active is False:
        raise AuthenticationFailed(_INVALID_CREDENTIALS)
    return user


def ensure_demo_user(session: Session, *, rounds: int = 12) -> tuple[User, bool]:
    """Create the ``demo``/``demo`` account when missing.

    Returns the user and whether it was created by this call.
    """

    existing = find_user(session, DEMO_USERNAME)
    if existing is not None:
        return existing, False
    user = register_user(
        session,
        RegistrationInput(username=DEMO_USERNAME, password=DEMO_PASSWORD),
        rounds=rounds,
    )
    return user, True


__all__ = [
    "DEMO_PASSWORD",
    "DEMO_USERNAME",
    "authenticate",
    "ensure_demo_user",
    "find_user",
    "hash_password",
    "register_user",
    "verify_password",
]
