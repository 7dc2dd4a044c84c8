"""Application configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

_DEFAULT_DATABASE_URL = "sqlite:///dataflow.db"
_DEFAULT_SESSION_TTL = 7 * 24 * 60 * 60
_DEFAULT_BASE_URL = "https://api.openai.com/v1"
_DEFAULT_MODEL = "gpt-4o-mini"
_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(slots=True)
class AppConfig:
    """Typed view over the environment variables the service understands."""

    database_url: str = _DEFAULT_DATABASE_URL
    secret_key: str = "change-me"
    session_cookie_name: str = "dataflow_session"
    session_ttl_seconds: int = _DEFAULT_SESSION_TTL
    rate_limit_per_minute: int = 60
    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True
    upload_dir: Path = field(default_factory=lambda: Path.cwd() / "uploads")
    max_upload_mb: int = 100
    bcrypt_rounds: int = 12
    openai_api_key: str | None = None
    openai_base_url: str = _DEFAULT_BASE_URL
    openai_model: str = _DEFAULT_MODEL
    log_level: str = "INFO"


def load_config() -> AppConfig:
    """Return an :class:`AppConfig` populated from ``os.environ``.

    A ``.env`` file in the working directory is honoured but never overrides
    variables that are already set.
    """

    load_dotenv()

    rate_limit = _env_int("RATE_LIMIT_PER_MINUTE", 60)
    if rate_limit <= 0:
        raise RuntimeError("RATE_LIMIT_PER_MINUTE must be a positive integer.")
    rounds = _env_int("BCRYPT_ROUNDS", 12)
    if not 4 <= rounds <= 31:
        raise RuntimeError("BCRYPT_ROUNDS must be between 4 and 31.")

    upload_dir = os.getenv("UPLOAD_DIR")
    api_key = (os.getenv("OPENAI_API_KEY") or "").strip() or None

    return AppConfig(
        database_url=os.getenv("DATABASE_URL", _DEFAULT_DATABASE_URL),
        secret_key=os.getenv("FLASK_SECRET_KEY", "change-me"),
        session_cookie_name=os.getenv("SESSION_COOKIE_NAME", "dataflow_session"),
        session_ttl_seconds=_env_int("SESSION_TTL_SECONDS", _DEFAULT_SESSION_TTL),
        rate_limit_per_minute=rate_limit,
        login_rate_limit=os.getenv("LOGIN_RATE_LIMIT", "10/minute"),
        rate_limit_enabled=_env_bool("RATELIMIT_ENABLED", True),
        upload_dir=Path(upload_dir) if upload_dir else Path.cwd() / "uploads",
        max_upload_mb=_env_int("MAX_UPLOAD_MB", 100),
        bcrypt_rounds=rounds,
        openai_api_key=api_key,
        openai_base_url=(os.getenv("OPENAI_BASE_URL") or _DEFAULT_BASE_URL).strip(),
        openai_model=os.getenv("OPENAI_MODEL", _DEFAULT_MODEL),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


__all__ = ["AppConfig", "load_config"]
