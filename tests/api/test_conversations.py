from __future__ import annotations

from pathlib import Path
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app import create_app
from dataflow.services.assistant import AssistantError, AssistantReply


class _FakeAssistant:
    def __init__(self, content: str = "Revenue is up 12%", error: str | None = None):
        self.content = content
        self.error = error
        self.seen: list[list[dict]] = []

    def reply(self, messages, context=None):
        self.seen.append([dict(message) for message in messages])
        if self.error:
            raise AssistantError(self.error)
        return AssistantReply(content=self.content, suggestions=["Show by sector"])


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("RATELIMIT_ENABLED", "false")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    application = create_app()
    application.config.update(TESTING=True)
    yield application
    application.extensions["database"].dispose()


@pytest.fixture
def client(app):
    client = app.test_client()
    client.post("/api/auth/register", json={"username": "demo", "password": "demo"})
    client.post("/api/auth/login", json={"username": "demo", "password": "demo"})
    return client


@pytest.fixture
def conversation_id(client):
    response = client.post("/api/ai/conversations", json={"context": {"page": "dashboard"}})
    assert response.status_code == 201
    assert response.get_json()["messages"] == []
    return response.get_json()["id"]


def test_reply_is_appended_after_user_message(app, client, conversation_id):
    assistant = _FakeAssistant()
    app.extensions["assistant"] = assistant

    response = client.post(
        f"/api/ai/conversations/{conversation_id}/messages",
        json={"content": "How is revenue trending?"},
    )

    assert response.status_code == 200
    messages = response.get_json()["messages"]
    assert [message["role"] for message in messages] == ["user", "assistant"]
    assert messages[0]["content"] == "How is revenue trending?"
    assert messages[1]["content"] == "Revenue is up 12%"
    assert messages[1]["suggestions"] == ["Show by sector"]
    assert assistant.seen[0][0]["content"] == "How is revenue trending?"


def test_existing_messages_are_never_rewritten(app, client, conversation_id):
    app.extensions["assistant"] = _FakeAssistant()
    url = f"/api/ai/conversations/{conversation_id}/messages"
    first = client.post(url, json={"content": "First"}).get_json()["messages"]

    second = client.post(url, json={"content": "Second"}).get_json()["messages"]

    assert len(second) == 4
    assert second[:2] == first


def test_missing_assistant_answers_503_and_keeps_message(client, conversation_id):
    response = client.post(
        f"/api/ai/conversations/{conversation_id}/messages", json={"content": "Hello"}
    )

    assert response.status_code == 503
    stored = client.get(f"/api/ai/conversations/{conversation_id}").get_json()
    assert [message["role"] for message in stored["messages"]] == ["user"]


def test_assistant_failure_is_reported_as_upstream_error(app, client, conversation_id):
    app.extensions["assistant"] = _FakeAssistant(error="model overloaded")

    response = client.post(
        f"/api/ai/conversations/{conversation_id}/messages", json={"content": "Hello"}
    )

    assert response.status_code == 502
    assert response.get_json()["message"] == "model overloaded"
    stored = client.get(f"/api/ai/conversations/{conversation_id}").get_json()
    assert len(stored["messages"]) == 1


def test_only_context_can_be_patched(client, conversation_id):
    url = f"/api/ai/conversations/{conversation_id}"

    rejected = client.patch(url, json={"messages": []})
    accepted = client.patch(url, json={"context": {"page": "portfolio"}})

    assert rejected.status_code == 400
    assert rejected.get_json()["errors"][0]["reason"] == "unknown_field"
    assert accepted.status_code == 200
    assert accepted.get_json()["context"] == {"page": "portfolio"}


def test_empty_message_is_rejected(client, conversation_id):
    response = client.post(
        f"/api/ai/conversations/{conversation_id}/messages", json={"content": ""}
    )

    assert response.status_code == 400
