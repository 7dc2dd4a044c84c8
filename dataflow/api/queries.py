"""Query history endpoints."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from dataflow.api.common import json_body, login_required, require_user_id
from dataflow.models.contracts import QueryHistoryRecord, serialize
from dataflow.models.db import session_scope
from dataflow.services.query_history import QueryHistoryRecords

bp = Blueprint("queries", __name__, url_prefix="/api/query/history")
_records = QueryHistoryRecords()


@bp.get("")
@login_required
def list_history():
    limit = request.args.get("limit", default=100, type=int)
    with session_scope() as db_session:
        rows = _records.recent(db_session, require_user_id(), limit=max(limit, 1))
        payload = [serialize(QueryHistoryRecord, row) for row in rows]
    return jsonify(payload)


@bp.post("")
@login_required
def start_query():
    payload = json_body()
    with session_scope() as db_session:
        row = _records.start(db_session, require_user_id(), payload)
        body = serialize(QueryHistoryRecord, row)
    return jsonify(body), 201


@bp.get("/<int:record_id>")
@login_required
def get_query(record_id: int):
    with session_scope() as db_session:
        row = _records.get(db_session, require_user_id(), record_id)
        body = serialize(QueryHistoryRecord, row)
    return jsonify(body)


@bp.post("/<int:record_id>/complete")
@login_required
def complete_query(record_id: int):
    payload = json_body()
    with session_scope() as db_session:
        row = _records.complete(db_session, require_user_id(), record_id, payload)
        body = serialize(QueryHistoryRecord, row)
    return jsonify(body)
