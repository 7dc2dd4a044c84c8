"""Server-side sessions persisted in the ``sessions`` table.

The cookie only carries an opaque random id; the session dictionary itself
lives in the database together with its expiry.  Rows past their expiry are
treated as absent and removed by :func:`prune_expired`.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from flask import Flask, Request, Response
from flask.sessions import SessionInterface, SessionMixin
from sqlalchemy import delete
from werkzeug.datastructures import CallbackDict

from dataflow.models.db import Database
from dataflow.models.tables import AuthSession, utcnow

_LOGGER = logging.getLogger(__name__)
_SID_BYTES = 32


def _new_sid() -> str:
    return secrets.token_urlsafe(_SID_BYTES)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DatabaseSession(CallbackDict, SessionMixin):
    """Session dictionary that remembers its id and whether it changed."""

    def __init__(
        self,
        initial: dict[str, Any] | None = None,
        sid: str | None = None,
        new: bool = False,
    ) -> None:
        def on_update(session: "DatabaseSession") -> None:
            session.modified = True

        super().__init__(initial, on_update)
        self.sid = sid or _new_sid()
        self.new = new
        self.modified = False
        self.previous_sid: str | None = None

    def rotate(self) -> None:
        """Issue a fresh id, dropping the old row on save (used on login)."""

        if self.previous_sid is None and not self.new:
            self.previous_sid = self.sid
        self.sid = _new_sid()
        self.modified = True


class DatabaseSessionInterface(SessionInterface):
    """Flask session interface backed by :class:`AuthSession` rows."""

    def __init__(
        self,
        database: Database,
        ttl: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.database = database
        self.ttl = ttl
        self.clock = clock

    def open_session(self, app: Flask, request: Request) -> DatabaseSession:
        sid = request.cookies.get(self.get_cookie_name(app))
        if not sid:
            return DatabaseSession(new=True)

        with self.database.session_scope() as db_session:
            record = db_session.get(AuthSession, sid)
            if record is not None and _as_aware(record.expire) > self.clock():
                return DatabaseSession(dict(record.sess or {}), sid=sid)
        return DatabaseSession(new=True)

    def save_session(
        self, app: Flask, session: DatabaseSession, response: Response
    ) -> None:
        cookie_name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)

        if not session:
            if session.modified and not session.new:
                self._delete(session.sid, session.previous_sid)
                response.delete_cookie(cookie_name, domain=domain, path=path)
            return

        if not session.modified:
            return

        expire = self.clock() + self.ttl
        with self.database.session_scope() as db_session:
            if session.previous_sid:
                db_session.execute(
                    delete(AuthSession).where(AuthSession.sid == session.previous_sid)
                )
            record = db_session.get(AuthSession, session.sid)
            if record is None:
                db_session.add(
                    AuthSession(sid=session.sid, sess=dict(session), expire=expire)
                )
            else:
                record.sess = dict(session)
                record.expire = expire

        response.set_cookie(
            cookie_name,
            session.sid,
            expires=expire,
            httponly=self.get_cookie_httponly(app),
            domain=domain,
            path=path,
            secure=self.get_cookie_secure(app),
            samesite=self.get_cookie_samesite(app),
        )

    def _delete(self, *sids: str | None) -> None:
        targets = [sid for sid in sids if sid]
        if not targets:
            return
        with self.database.session_scope() as db_session:
            db_session.execute(delete(AuthSession).where(AuthSession.sid.in_(targets)))


def prune_expired(database: Database, now: datetime | None = None) -> int:
    """Delete expired session rows and return how many were removed."""

    cutoff = now or utcnow()
    with database.session_scope() as db_session:
        result = db_session.execute(
            delete(AuthSession).where(AuthSession.expire <= cutoff)
        )
        removed = result.rowcount or 0
    _LOGGER.info("Pruned %s expired session(s)", removed)
    return removed


__all__ = ["DatabaseSession", "DatabaseSessionInterface", "prune_expired"]
