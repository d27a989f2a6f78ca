"""Tests for the orchestration turn pipeline.

Covers event ordering for text, UI and form turns, the merge handshake, and
how each class of failure ends the stream.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from artemis.core.errors import DecisionValidationError
from artemis.core.orchestration_stream import OrchestrationStreamConfig, generate_orchestration_stream
from artemis.core.schemas_orchestration import OrchestrationDecision, validate_decision
from artemis.core.ui_merge import UIDocument, UISection
from artemis.services.erp_client import ErpError
from artemis.services.ui_generator import UIChunk

MODULE = "artemis.core.orchestration_stream"


# ──────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────


def _decision(**fields) -> OrchestrationDecision:
    base = {"responseFormat": "text", "layoutIntent": "preview", "textResponse": "Hello!"}
    base.update(fields)
    return OrchestrationDecision.model_validate(base)


def _ui_decision(**fields) -> OrchestrationDecision:
    return _decision(
        thinking="Need October orders",
        responseFormat="ui",
        layoutIntent="hidden",
        textResponse="October sales",
        apiCalls=[{"targetId": "export_sales_orders", "reason": "orders", "parameters": {"dateFrom": "2026-10-01"}}],
        uiSpec={"type": "table", "dataDescription": "October orders"},
        **fields,
    )


def _document(*ids: str) -> str:
    return UIDocument(sections=[UISection(id=sid, type="table") for sid in ids]).serialize()


def _ui_stream(*chunks: UIChunk):
    async def fake_stream_ui(prompt):
        for chunk in chunks:
            yield chunk

    return fake_stream_ui


def _config(**overrides) -> OrchestrationStreamConfig:
    fields = {
        "session_id": "s1",
        "user_message_id": "u1",
        "message": "Show October sales",
        "history": [],
    }
    fields.update(overrides)
    return OrchestrationStreamConfig(**fields)


async def _collect(config: OrchestrationStreamConfig, erp) -> list[dict]:
    frames = [frame async for frame in generate_orchestration_stream(config, erp)]
    assert all(frame.startswith("data: ") and frame.endswith("\n\n") for frame in frames)
    return [json.loads(frame[len("data: "):]) for frame in frames]


def _types(events: list[dict]) -> list[str]:
    return [event["type"] for event in events]


@pytest.fixture
def erp():
    client = MagicMock()
    client.execute = AsyncMock(return_value=[{"orderNo": "SO-1", "total": 120.0}])
    return client


@pytest.fixture
def mock_db():
    with patch(f"{MODULE}.insert_chat_message", return_value={"id": "a1"}) as mock_insert, \
         patch(f"{MODULE}.update_session_title") as mock_title:
        yield MagicMock(insert=mock_insert, update_title=mock_title)


@pytest.fixture
def mock_chains():
    with patch(f"{MODULE}.generate_ui_summary", new_callable=AsyncMock, return_value="Here are October's orders.") as summary, \
         patch(f"{MODULE}.generate_session_title", new_callable=AsyncMock, return_value="October sales") as title:
        yield MagicMock(summary=summary, title=title)


# ──────────────────────────────────────────────────────────────────────
# Successful turns
# ──────────────────────────────────────────────────────────────────────


class TestTextTurn:
    @pytest.mark.asyncio
    async def test_text_turn_has_no_ui_events(self, erp, mock_db, mock_chains):
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, return_value=_decision()):
            events = await _collect(_config(), erp)

        assert _types(events) == ["session", "text", "done"]
        assert events[0] == {"type": "session", "sessionId": "s1", "userMessageId": "u1", "isNew": False}
        assert events[1]["content"] == "Hello!"
        assert events[2] == {"type": "done", "layoutIntent": "preview", "messageId": "a1"}
        erp.execute.assert_not_called()

        args, kwargs = mock_db.insert.call_args
        assert args[:3] == ("s1", "assistant", "Hello!")
        assert kwargs["response_type"] == "text"

    @pytest.mark.asyncio
    async def test_clarification_attached_to_text(self, erp, mock_db, mock_chains):
        decision = _decision(
            textResponse="Which period do you mean?",
            error={
                "kind": "clarification_needed",
                "message": "Period missing",
                "clarifyingQuestion": "Which period?",
                "suggestions": ["This month", "Last month"],
            },
        )
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, return_value=decision):
            events = await _collect(_config(), erp)

        text = events[1]
        assert text["clarification"] == {"question": "Which period?", "suggestions": ["This month", "Last month"]}

    @pytest.mark.asyncio
    async def test_new_session_gets_title_before_done(self, erp, mock_db, mock_chains):
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, return_value=_decision()):
            events = await _collect(_config(is_new_session=True), erp)

        assert _types(events) == ["session", "text", "title_update", "done"]
        assert events[0]["isNew"] is True
        assert events[2]["title"] == "October sales"
        mock_db.update_title.assert_called_once_with("s1", "October sales")

    @pytest.mark.asyncio
    async def test_title_failure_skips_title_update(self, erp, mock_db, mock_chains):
        mock_chains.title.side_effect = RuntimeError("title model down")
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, return_value=_decision()):
            events = await _collect(_config(is_new_session=True), erp)

        assert _types(events) == ["session", "text", "done"]


class TestUiTurn:
    @pytest.mark.asyncio
    async def test_event_order(self, erp, mock_db, mock_chains):
        stream = _ui_stream(
            UIChunk(kind="thinking", content="Laying out a table"),
            UIChunk(kind="content", content=_document("table-orders")[:20]),
            UIChunk(kind="content", content=_document("table-orders")[20:]),
        )
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, return_value=_ui_decision()), \
             patch(f"{MODULE}.stream_ui", new=stream):
            events = await _collect(_config(), erp)

        assert _types(events) == [
            "session",
            "thinking",
            "tool_call",
            "data",
            "thinking",
            "ui_action",
            "summary_message",
            "ui_complete",
            "done",
        ]
        assert events[2]["content"]["targetId"] == "export_sales_orders"
        assert events[3]["content"]["result"] == [{"orderNo": "SO-1", "total": 120.0}]
        assert events[5]["content"]["action"] == "NEW"
        assert events[5]["content"]["hasExisting"] is False
        assert events[6]["content"] == "Here are October's orders."
        assert json.loads(events[7]["content"])["sections"][0]["id"] == "table-orders"
        assert events[8]["layoutIntent"] == "hidden"

        erp.execute.assert_awaited_once_with("export_sales_orders", {"dateFrom": "2026-10-01"})
        metadata = mock_db.insert.call_args.kwargs["metadata"]
        assert metadata["uiAction"] == "NEW"
        assert metadata["toolCalls"][0]["status"] == "complete"

    @pytest.mark.asyncio
    async def test_merges_into_current_ui(self, erp, mock_db, mock_chains):
        stream = _ui_stream(UIChunk(kind="content", content=_document("table-orders")))
        config = _config(current_ui_content=_document("metrics-kpis", "table-orders"))
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, return_value=_ui_decision()), \
             patch(f"{MODULE}.stream_ui", new=stream):
            events = await _collect(config, erp)

        ui_action = next(e for e in events if e["type"] == "ui_action")
        ui_complete = next(e for e in events if e["type"] == "ui_complete")
        assert ui_action["content"]["action"] == "MODIFY"
        assert ui_action["content"]["hasExisting"] is True
        assert [s["id"] for s in json.loads(ui_complete["content"])["sections"]] == [
            "metrics-kpis",
            "table-orders",
        ]

    @pytest.mark.asyncio
    async def test_erp_failure_becomes_data_error(self, erp, mock_db, mock_chains):
        erp.execute.side_effect = ErpError("ERP rejected the filter")
        stream = _ui_stream(UIChunk(kind="content", content=_document("table-orders")))
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, return_value=_ui_decision()), \
             patch(f"{MODULE}.stream_ui", new=stream):
            events = await _collect(_config(), erp)

        data = next(e for e in events if e["type"] == "data")
        assert data["content"] == {"targetId": "export_sales_orders", "error": "ERP rejected the filter"}
        assert "error" not in _types(events)
        assert _types(events)[-1] == "done"
        assert mock_db.insert.call_args.kwargs["metadata"]["toolCalls"][0]["status"] == "error"

    @pytest.mark.asyncio
    async def test_summary_failure_falls_back_to_decision_text(self, erp, mock_db, mock_chains):
        mock_chains.summary.side_effect = RuntimeError("summary model down")
        stream = _ui_stream(UIChunk(kind="content", content=_document("table-orders")))
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, return_value=_ui_decision()), \
             patch(f"{MODULE}.stream_ui", new=stream):
            events = await _collect(_config(), erp)

        summary = next(e for e in events if e["type"] == "summary_message")
        assert summary["content"] == "October sales"

    @pytest.mark.asyncio
    async def test_form_turn_produces_ui(self, erp, mock_db, mock_chains):
        decision = _decision(
            responseFormat="form",
            layoutIntent="hidden",
            textResponse="Fill in the customer.",
            formSpec={"actionType": "create_customer", "title": "New customer"},
        )
        stream = _ui_stream(UIChunk(kind="content", content=_document("form-customer")))
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, return_value=decision), \
             patch(f"{MODULE}.stream_ui", new=stream):
            events = await _collect(_config(), erp)

        assert "ui_complete" in _types(events)
        assert mock_db.insert.call_args.kwargs["response_type"] == "form"


# ──────────────────────────────────────────────────────────────────────
# Failures
# ──────────────────────────────────────────────────────────────────────


class TestFailures:
    @pytest.mark.asyncio
    async def test_invalid_decision_yields_one_error_then_done(self, erp, mock_db, mock_chains):
        bad = {"responseFormat": "video", "layoutIntent": "preview", "textResponse": "x"}
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, side_effect=lambda *a, **k: validate_decision(bad)):
            events = await _collect(_config(), erp)

        assert _types(events) == ["session", "error", "done"]
        assert events[1]["code"] == "operation_failed"
        assert "layoutIntent" not in events[2]
        mock_db.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_ui_output_is_generation_error(self, erp, mock_db, mock_chains):
        stream = _ui_stream(UIChunk(kind="thinking", content="hmm"))
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, return_value=_ui_decision()), \
             patch(f"{MODULE}.stream_ui", new=stream):
            events = await _collect(_config(), erp)

        assert "ui_complete" not in _types(events)
        assert _types(events)[-2:] == ["error", "done"]
        assert events[-2]["code"] == "operation_failed"

    @pytest.mark.asyncio
    async def test_upstream_outage_terminates_without_done(self, erp, mock_db, mock_chains):
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, side_effect=httpx.ConnectError("refused")):
            events = await _collect(_config(), erp)

        assert _types(events) == ["session", "error"]
        assert events[1]["code"] == "upstream_unavailable"

    @pytest.mark.asyncio
    async def test_provider_rate_limit(self, erp, mock_db, mock_chains):
        response = httpx.Response(429, request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
        error = openai.RateLimitError("Rate limit reached", response=response, body=None)
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, side_effect=error):
            events = await _collect(_config(), erp)

        assert _types(events) == ["session", "error"]
        assert events[1]["code"] == "rate_limited"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_unknown(self, erp, mock_db, mock_chains):
        mock_db.insert.side_effect = RuntimeError("db down")
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, return_value=_decision()):
            events = await _collect(_config(), erp)

        assert _types(events) == ["session", "text", "error"]
        assert events[2]["code"] == "unknown_error"

    @pytest.mark.asyncio
    async def test_decision_error_class_is_generation_error(self, erp, mock_db, mock_chains):
        with patch(f"{MODULE}.decide_turn", new_callable=AsyncMock, side_effect=DecisionValidationError("bad")):
            events = await _collect(_config(), erp)

        assert [e["type"] for e in events if e["type"] == "error"] == ["error"]
        assert _types(events)[-1] == "done"
