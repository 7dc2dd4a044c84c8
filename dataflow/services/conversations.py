"""AI conversations whose message log only ever grows."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from dataflow.errors import AssistantUnavailable, ContractViolation, UpstreamError
from dataflow.models.contracts import CONTRACTS, validate_payload
from dataflow.models.tables import AIConversation, utcnow
from dataflow.services.assistant import AssistantClient, AssistantError
from dataflow.services.records import OwnedRecords
from dataflow.services.validators import MessageInput

_LOGGER = logging.getLogger(__name__)


def make_message(role: str, content: str, **extra: Any) -> dict[str, Any]:
    message = {"role": role, "content": content, "createdAt": utcnow().isoformat()}
    message.update(extra)
    return message


class ConversationRecords(OwnedRecords[AIConversation]):
    def __init__(self) -> None:
        super().__init__(CONTRACTS["ai-conversations"])

    def create(self, session: Session, user_id: int, payload: Any) -> AIConversation:
        if isinstance(payload, dict) and "messages" not in payload:
            payload = {**payload, "messages": []}
        return super().create(session, user_id, payload)

    def append(
        self, session: Session, record: AIConversation, *messages: dict[str, Any]
    ) -> AIConversation:
        """Add messages at the end of the log without touching existing ones."""

        # Reassign so the JSON column is flagged dirty.
        record.messages = [*(record.messages or []), *messages]
        session.flush()
        return record

    def post_user_message(
        self,
        session: Session,
        user_id: int,
        record_id: int,
        payload: Any,
    ) -> AIConversation:
        message = validate_payload(MessageInput, payload)
        record = self.get(session, user_id, record_id)
        return self.append(session, record, make_message("user", message.content))

    def request_reply(
        self,
        session: Session,
        user_id: int,
        record_id: int,
        assistant: AssistantClient | None,
    ) -> AIConversation:
        """Ask the assistant to answer the log and append its reply."""

        if assistant is None:
            raise AssistantUnavailable(
                "The AI assistant is not configured; set OPENAI_API_KEY to enable it"
            )
        record = self.get(session, user_id, record_id)
        if not record.messages:
            raise ContractViolation.single(
                "messages", "constraint", "Conversation has no messages to answer"
            )
        try:
            reply = assistant.reply(record.messages, record.context)
        except AssistantError as exc:
            _LOGGER.warning("Assistant failed for conversation %s: %s", record_id, exc)
            raise UpstreamError(str(exc)) from exc

        extra = {"suggestions": reply.suggestions} if reply.suggestions else {}
        return self.append(session, record, make_message("assistant", reply.content, **extra))


__all__ = ["ConversationRecords", "make_message"]
