"""Exception taxonomy and the Flask handlers that render it as JSON."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any

from flask import Flask, current_app, jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: (?P<columns>[\w., ]+)")


@dataclass(slots=True)
class FieldError:
    """A single field-level validation failure."""

    field: str
    reason: str
    message: str


class DataflowError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message}


class ContractViolation(DataflowError):
    """A write payload did not satisfy its insert or update contract."""

    status_code = 400

    def __init__(self, errors: list[FieldError], message: str | None = None) -> None:
        if message is None:
            message = "; ".join(f"{error.field}: {error.message}" for error in errors)
            message = f"Invalid input: {message}" if message else "Invalid input"
        super().__init__(message)
        self.errors = errors

    @classmethod
    def single(cls, field: str, reason: str, message: str) -> "ContractViolation":
        return cls([FieldError(field=field, reason=reason, message=message)])

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "errors": [asdict(error) for error in self.errors]}


class AuthenticationFailed(DataflowError):
    """Missing session or bad credentials."""

    status_code = 401


class RecordNotFound(DataflowError):
    status_code = 404


class PersistenceError(DataflowError):
    """A storage constraint rejected the write."""

    status_code = 409

    def __init__(self, message: str, constraint: str | None = None) -> None:
        super().__init__(message)
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.constraint:
            payload["constraint"] = self.constraint
        return payload


class DuplicateRecord(PersistenceError):
    pass


class ReferenceNotFound(PersistenceError):
    pass


class InvalidTransition(PersistenceError):
    pass


class UpstreamError(DataflowError):
    """A collaborator (assistant, file parser) failed; its message is passed through."""

    status_code = 502


class AssistantUnavailable(DataflowError):
    status_code = 503


def constraint_name(exc: IntegrityError) -> str | None:
    """Best-effort extraction of the violated constraint from a driver error."""

    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    name = getattr(diag, "constraint_name", None)
    if name:
        return str(name)

    text = str(orig) if orig is not None else str(exc)
    match = _SQLITE_UNIQUE.search(text)
    if match:
        columns = [part.strip() for part in match.group("columns").split(",")]
        table = columns[0].split(".", 1)[0]
        names = "_".join(column.split(".", 1)[-1] for column in columns)
        return f"uq_{table}_{names}"
    if "FOREIGN KEY constraint failed" in text:
        return "foreign_key"
    return None


def register_error_handlers(app: Flask) -> None:
    """Install JSON renderers for the error taxonomy."""

    @app.errorhandler(DataflowError)
    def _handle_dataflow_error(exc: DataflowError):
        if exc.status_code >= 500:
            current_app.logger.warning("%s: %s", type(exc).__name__, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(IntegrityError)
    def _handle_integrity_error(exc: IntegrityError):
        name = constraint_name(exc)
        current_app.logger.info("Integrity error on constraint %s", name)
        error = PersistenceError("Write rejected by a database constraint", constraint=name)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def _handle_http_exception(exc: HTTPException):
        return jsonify({"message": exc.description or exc.name}), exc.code or 500

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):  # pragma: no cover - safety net
        current_app.logger.exception("Unhandled error while serving request")
        return jsonify({"message": "Internal server error"}), 500


__all__ = [
    "AssistantUnavailable",
    "AuthenticationFailed",
    "ContractViolation",
    "DataflowError",
    "DuplicateRecord",
    "FieldError",
    "InvalidTransition",
    "PersistenceError",
    "RecordNotFound",
    "ReferenceNotFound",
    "UpstreamError",
    "constraint_name",
    "register_error_handlers",
]
