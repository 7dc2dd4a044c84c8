"""AI conversation endpoints."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from dataflow.api.common import get_assistant, json_body, login_required, require_user_id
from dataflow.errors import UpstreamError
from dataflow.models.contracts import AIConversationRecord, serialize
from dataflow.models.db import session_scope
from dataflow.services.conversations import ConversationRecords

bp = Blueprint("conversations", __name__, url_prefix="/api/ai/conversations")
_records = ConversationRecords()


@bp.get("")
@login_required
def list_conversations():
    with session_scope() as db_session:
        rows = _records.list_owned(db_session, require_user_id())
        payload = [serialize(AIConversationRecord, row) for row in rows]
    return jsonify(payload)


@bp.post("")
@login_required
def create_conversation():
    payload = json_body()
    with session_scope() as db_session:
        row = _records.create(db_session, require_user_id(), payload)
        body = serialize(AIConversationRecord, row)
    return jsonify(body), 201


@bp.get("/<int:record_id>")
@login_required
def get_conversation(record_id: int):
    with session_scope() as db_session:
        row = _records.get(db_session, require_user_id(), record_id)
        body = serialize(AIConversationRecord, row)
    return jsonify(body)


@bp.patch("/<int:record_id>")
@login_required
def update_conversation(record_id: int):
    payload = json_body()
    with session_scope() as db_session:
        row = _records.update(db_session, require_user_id(), record_id, payload)
        body = serialize(AIConversationRecord, row)
    return jsonify(body)


@bp.delete("/<int:record_id>")
@login_required
def delete_conversation(record_id: int):
    with session_scope() as db_session:
        _records.delete(db_session, require_user_id(), record_id)
    return jsonify({"message": f"Conversation {record_id} deleted"})


@bp.post("/<int:record_id>/messages")
@login_required
def post_message(record_id: int):
    """Append the user's message, then the assistant's reply.

    The user's message is committed before the assistant is called, so it
    survives an assistant failure.
    """

    payload = json_body()
    user_id = require_user_id()
    with session_scope() as db_session:
        _records.post_user_message(db_session, user_id, record_id, payload)

    try:
        with session_scope() as db_session:
            row = _records.request_reply(db_session, user_id, record_id, get_assistant())
            body = serialize(AIConversationRecord, row)
    except UpstreamError:
        current_app.logger.warning("Assistant reply failed for conversation %s", record_id)
        raise
    return jsonify(body)
