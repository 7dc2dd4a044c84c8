"""Request helpers shared by the JSON blueprints."""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, TypeVar

from flask import current_app, request, session

from dataflow.errors import AuthenticationFailed, ContractViolation
from dataflow.extensions import ASSISTANT_KEY
from dataflow.services.assistant import AssistantClient

F = TypeVar("F", bound=Callable[..., Any])
SESSION_USER_KEY = "user_id"


def current_user_id() -> int | None:
    value = session.get(SESSION_USER_KEY)
    return value if isinstance(value, int) else None


def require_user_id() -> int:
    user_id = current_user_id()
    if user_id is None:
        raise AuthenticationFailed("Authentication required")
    return user_id


def login_required(view: F) -> F:
    """Answer 401 before running ``view`` when no user is signed in."""

    @wraps(view)
    def wrapper(*args: Any, **kwargs: Any):
        require_user_id()
        return view(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def json_body() -> Any:
    """Return the parsed JSON body or raise a 400 with a field-level error."""

    payload = request.get_json(silent=True)
    if payload is None:
        raise ContractViolation.single(
            "body", "wrong_type", "Request body must be a JSON object"
        )
    return payload


def get_assistant() -> AssistantClient | None:
    return current_app.extensions.get(ASSISTANT_KEY)


__all__ = [
    "SESSION_USER_KEY",
    "current_user_id",
    "get_assistant",
    "json_body",
    "login_required",
    "require_user_id",
]
