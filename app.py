"""Application entry point."""

from __future__ import annotations

import atexit
import logging
from datetime import timedelta
from pathlib import Path

import click
from flask import Flask

from dataflow.api import auth, conversations, dashboard, data_sources, pages, queries
from dataflow.api.resources import contracts_bp, plain_resource_blueprints
from dataflow.config import AppConfig, load_config
from dataflow.errors import register_error_handlers
from dataflow.extensions import ASSISTANT_KEY, limiter
from dataflow.models.db import EXTENSION_KEY, Database
from dataflow.services.assistant import OpenAIAssistant
from dataflow.services.auth import ensure_demo_user
from dataflow.services.sessions import DatabaseSessionInterface, prune_expired

_ROOT_DIR = Path(__file__).resolve().parent


def create_app(config: AppConfig | None = None) -> Flask:
    """Application factory."""

    config = config or load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(
        __name__,
        template_folder=str(_ROOT_DIR / "templates"),
        static_folder=str(_ROOT_DIR / "static"),
    )
    app.secret_key = config.secret_key
    app.config.update(
        DATAFLOW_CONFIG=config,
        SESSION_COOKIE_NAME=config.session_cookie_name,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        UPLOAD_DIR=str(config.upload_dir),
        MAX_CONTENT_LENGTH=config.max_upload_mb * 1024 * 1024,
        BCRYPT_ROUNDS=config.bcrypt_rounds,
        LOGIN_RATE_LIMIT=config.login_rate_limit,
        RATELIMIT_DEFAULT=f"{config.rate_limit_per_minute}/minute",
        RATELIMIT_ENABLED=config.rate_limit_enabled,
    )

    database = Database(config.database_url)
    database.create_all()
    app.extensions[EXTENSION_KEY] = database
    atexit.register(database.dispose)

    app.extensions[ASSISTANT_KEY] = OpenAIAssistant.from_config(config)
    if app.extensions[ASSISTANT_KEY] is None:
        app.logger.info("OPENAI_API_KEY not set; the AI assistant is disabled")

    app.session_interface = DatabaseSessionInterface(
        database, timedelta(seconds=config.session_ttl_seconds)
    )
    limiter.init_app(app)
    register_error_handlers(app)
    register_blueprints(app)
    register_commands(app)
    return app


def register_blueprints(app: Flask) -> None:
    """Register application blueprints."""

    app.register_blueprint(pages.bp)
    app.register_blueprint(auth.bp)
    app.register_blueprint(contracts_bp)
    for blueprint in plain_resource_blueprints():
        app.register_blueprint(blueprint)
    app.register_blueprint(data_sources.create_blueprint(Path(app.config["UPLOAD_DIR"])))
    app.register_blueprint(queries.bp)
    app.register_blueprint(conversations.bp)
    app.register_blueprint(dashboard.bp)


def register_commands(app: Flask) -> None:
    database: Database = app.extensions[EXTENSION_KEY]

    @app.cli.command("init-db")
    def init_db_command() -> None:
        """Initialise database tables."""

        database.create_all()
        click.echo("Database initialised")

    @app.cli.command("ensure-demo-user")
    def ensure_demo_user_command() -> None:
        """Create the demo/demo account if it does not exist."""

        with database.session_scope() as session:
            user, created = ensure_demo_user(session, rounds=app.config["BCRYPT_ROUNDS"])
            username = user.username
        click.echo(f"Demo user {username} {'created' if created else 'already exists'}")

    @app.cli.command("prune-sessions")
    def prune_sessions_command() -> None:
        """Delete expired login sessions."""

        removed = prune_expired(database)
        click.echo(f"Removed {removed} expired session(s)")


if __name__ == "__main__":
    application = create_app()
    application.run(debug=True)
