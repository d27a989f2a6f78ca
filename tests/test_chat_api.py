"""Tests for the orchestration stream endpoint via FastAPI TestClient."""

import json
from typing import List
from unittest.mock import patch

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from artemis.core.schemas_events import DoneEvent, SessionEvent
from artemis.core.sse import encode_event
from artemis.main import app

client = TestClient(app)

SESSION_ID = "33333333-3333-3333-3333-333333333333"
URL = "/v1/chat/orchestrate/stream"


def parse_sse_events(text: str) -> List[dict]:
    """Parse SSE response body into a list of event dicts."""
    events = []
    for line in text.strip().split("\n"):
        line = line.strip()
        if line.startswith("data: "):
            events.append(json.loads(line[6:]))
    return events


@pytest.fixture
def captured():
    """Replace the turn pipeline with one that records its config."""
    calls = {}

    async def fake_stream(config, erp):
        calls["config"] = config
        calls["erp"] = erp
        yield encode_event(
            SessionEvent(
                session_id=config.session_id,
                user_message_id=config.user_message_id,
                is_new=config.is_new_session,
            )
        )
        yield encode_event(DoneEvent(message_id="a1"))

    with patch("artemis.api.chat.generate_orchestration_stream", new=fake_stream):
        yield calls


class TestOrchestrateStream:
    def test_new_session(self, captured):
        with patch("artemis.api.chat.create_chat_session", return_value={"id": SESSION_ID}), \
             patch("artemis.api.chat.insert_chat_message", return_value={"id": "u1"}) as mock_insert:
            response = client.post(URL, json={"message": "Show October sales"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        events = parse_sse_events(response.text)
        assert [e["type"] for e in events] == ["session", "done"]
        assert events[0] == {"type": "session", "sessionId": SESSION_ID, "userMessageId": "u1", "isNew": True}

        mock_insert.assert_called_once_with(SESSION_ID, "user", "Show October sales")
        assert captured["config"].is_new_session is True
        assert captured["config"].history == []

    def test_existing_session_passes_context_and_ui(self, captured):
        messages = [
            {"id": "m1", "role": "user", "content": "Show sales"},
            {"id": "m2", "role": "assistant", "content": "Here they are"},
            {"id": "m3", "role": "user", "content": "Only October"},
        ]
        with patch("artemis.api.chat.get_chat_session", return_value={"id": SESSION_ID}), \
             patch("artemis.api.chat.list_chat_messages", return_value=messages), \
             patch("artemis.api.chat.insert_chat_message", return_value={"id": "u9"}):
            response = client.post(
                URL,
                json={
                    "message": "Only November",
                    "sessionId": SESSION_ID,
                    "currentUIContent": '{"version": 1, "sections": []}',
                    "forkFromMessageId": "m3",
                    "mergeSignal": "same_artifact",
                    "targetSections": ["table-orders"],
                },
            )

        assert response.status_code == 200
        config = captured["config"]
        assert config.is_new_session is False
        assert [m["content"] for m in config.history] == ["Show sales", "Here they are"]
        assert config.current_ui_content == '{"version": 1, "sections": []}'
        assert config.fork_from_message_id == "m3"
        assert config.merge_signal.value == "same_artifact"
        assert config.target_sections == ["table-orders"]

    def test_unknown_session(self, captured):
        with patch("artemis.api.chat.get_chat_session", return_value=None):
            response = client.post(URL, json={"message": "hi", "sessionId": SESSION_ID})

        assert response.status_code == 404
        assert "config" not in captured

    def test_empty_message_rejected(self, captured):
        response = client.post(URL, json={"message": ""})

        assert response.status_code == 422

    def test_unknown_merge_signal_rejected(self, captured):
        response = client.post(URL, json={"message": "hi", "mergeSignal": "merge_everything"})

        assert response.status_code == 422

    def test_storage_failure_before_stream(self, captured):
        with patch("artemis.api.chat.create_chat_session", side_effect=Exception("db down")):
            response = client.post(URL, json={"message": "hi"})

        assert response.status_code == 500
        assert "config" not in captured

    def test_rate_limited(self, captured):
        with patch(
            "artemis.api.chat.check_chat_rate_limit",
            side_effect=HTTPException(status_code=429, detail="Rate limit exceeded"),
        ):
            response = client.post(URL, json={"message": "hi"})

        assert response.status_code == 429
