"""Orchestration turn pipeline: decision → ERP calls → UI generation → merge.

Yields SSE frames in this order:
session → thinking? → (tool_call → data)* → ui_action → summary_message →
ui_complete | text → title_update? → done

Errors end the turn with a single ``error`` event. Generation failures
(``operation_failed``) are still followed by ``done`` so the client closes
the turn normally; upstream failures terminate the stream immediately.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import httpx

from artemis.chains.generate_session_title import generate_session_title
from artemis.chains.generate_ui_summary import generate_ui_summary
from artemis.chains.orchestrate_decision import decide_turn
from artemis.core.errors import ErrorCode, OrchestrationError, classify_upstream_error
from artemis.core.logging import get_logger, log_with_context
from artemis.core.schemas_events import (
    Clarification,
    DataContent,
    DataEvent,
    DoneEvent,
    ErrorEvent,
    SessionEvent,
    SummaryMessageEvent,
    TextEvent,
    ThinkingEvent,
    TitleUpdateEvent,
    ToolCallContent,
    ToolCallEvent,
    UiActionContent,
    UiActionEvent,
    UiCompleteEvent,
)
from artemis.core.schemas_orchestration import DecisionErrorKind, OrchestrationDecision
from artemis.core.sse import encode_event
from artemis.core.ui_merge import (
    MergeAccumulator,
    MergePolicy,
    MergeSignal,
    UIDocument,
    derive_merge_signal,
    parse_ui_document,
)
from artemis.db.chat_sessions import insert_chat_message, update_session_title
from artemis.services.erp_client import ErpClient, ErpError
from artemis.services.ui_generator import build_generation_prompt, stream_ui

logger = get_logger(__name__)

FORM_VISUALIZATION = "form"


@dataclass
class OrchestrationStreamConfig:
    """Explicit inputs for one orchestration turn."""

    session_id: str
    user_message_id: str
    message: str
    history: list[dict[str, str]]
    is_new_session: bool = False
    current_ui_content: str | None = None
    fork_from_message_id: str | None = None
    merge_signal: MergeSignal | None = None
    target_sections: list[str] | None = None
    merge_policy: MergePolicy = field(default_factory=MergePolicy)
    turn_id: str = field(default_factory=lambda: uuid4().hex[:12])


@dataclass
class _ToolRun:
    target_id: str
    reason: str
    parameters: dict[str, Any]
    status: str = "complete"
    error: str | None = None

    def to_metadata(self) -> dict[str, Any]:
        entry = {"targetId": self.target_id, "reason": self.reason, "status": self.status}
        if self.error:
            entry["error"] = self.error
        return entry


async def _run_api_calls(
    decision: OrchestrationDecision,
    erp: ErpClient,
    runs: list[_ToolRun],
    data: dict[str, Any],
) -> AsyncGenerator[str, None]:
    """Execute the decision's ERP calls in order, one round-trip each."""
    for call in decision.api_calls or []:
        yield encode_event(
            ToolCallEvent(
                content=ToolCallContent(
                    target_id=call.target_id,
                    reason=call.reason,
                    parameters=call.parameters,
                )
            )
        )

        run = _ToolRun(target_id=call.target_id, reason=call.reason, parameters=call.parameters)
        runs.append(run)
        try:
            result = await erp.execute(call.target_id, call.parameters)
        except (ErpError, httpx.HTTPError) as e:
            # A failed tool call is data for the turn, not a turn failure
            logger.warning(f"ERP call {call.target_id} failed: {e}")
            run.status = "error"
            run.error = str(e) or type(e).__name__
            yield encode_event(DataEvent(content=DataContent(target_id=call.target_id, error=run.error)))
            continue

        data[call.target_id] = result
        yield encode_event(DataEvent(content=DataContent(target_id=call.target_id, result=result)))


async def generate_orchestration_stream(
    config: OrchestrationStreamConfig,
    erp: ErpClient,
) -> AsyncGenerator[str, None]:
    """Run one turn and yield its SSE frames."""
    log_extra = {"session_id": config.session_id, "turn_id": config.turn_id}

    yield encode_event(
        SessionEvent(
            session_id=config.session_id,
            user_message_id=config.user_message_id,
            is_new=config.is_new_session,
        )
    )

    try:
        previous: UIDocument | None = parse_ui_document(config.current_ui_content)

        decision = await decide_turn(config.message, config.history, previous)

        if decision.thinking:
            yield encode_event(ThinkingEvent(content=decision.thinking))

        runs: list[_ToolRun] = []
        data: dict[str, Any] = {}
        async for frame in _run_api_calls(decision, erp, runs, data):
            yield frame

        metadata: dict[str, Any] = {"layoutIntent": decision.layout_intent.value}
        if runs:
            metadata["toolCalls"] = [run.to_metadata() for run in runs]

        if decision.produces_ui:
            visualization = decision.ui_spec.type.value if decision.ui_spec else FORM_VISUALIZATION
            accumulator = MergeAccumulator(
                previous=previous,
                signal=derive_merge_signal(
                    config.merge_signal,
                    is_fork=config.fork_from_message_id is not None,
                    previous=previous,
                    visualization_type=visualization,
                ),
                explicit_targets=config.target_sections,
                policy=config.merge_policy,
            )

            prompt = build_generation_prompt(
                config.message,
                decision.ui_spec,
                decision.form_spec,
                data,
                previous,
                targets=config.target_sections,
            )
            async for chunk in stream_ui(prompt):
                if chunk.kind == "thinking":
                    yield encode_event(ThinkingEvent(content=chunk.content))
                else:
                    accumulator.feed(chunk.content)

            if not accumulator.has_content:
                raise OrchestrationError("The UI generator returned no content.", code=ErrorCode.OPERATION_FAILED)

            merge = accumulator.resolve()
            log_with_context(
                logger,
                logging.INFO,
                f"Merge resolved: {merge.action.value}",
                session_id=config.session_id,
                turn_id=config.turn_id,
                confidence=round(merge.confidence, 2),
                defaulted=merge.defaulted,
            )
            yield encode_event(UiActionEvent(content=UiActionContent(**merge.to_event_content())))

            summary = await _summarize(config, decision, merge.action)
            yield encode_event(SummaryMessageEvent(content=summary))
            yield encode_event(UiCompleteEvent(content=merge.document.serialize()))

            assistant_content = summary
            metadata.update(merge.to_metadata())
            metadata["uiResponse"] = True
        else:
            clarification = None
            if decision.error and decision.error.kind == DecisionErrorKind.CLARIFICATION_NEEDED:
                clarification = Clarification(
                    question=decision.error.clarifying_question or decision.error.message,
                    suggestions=decision.error.suggestions or [],
                )
            yield encode_event(TextEvent(content=decision.text_response, clarification=clarification))
            assistant_content = decision.text_response

        assistant_row = insert_chat_message(
            config.session_id,
            "assistant",
            assistant_content,
            response_type=decision.response_format.value,
            metadata=metadata,
        )

        if config.is_new_session:
            title = await _title(config)
            if title:
                yield encode_event(TitleUpdateEvent(title=title))

        yield encode_event(
            DoneEvent(layout_intent=decision.layout_intent, message_id=str(assistant_row["id"]))
        )

    except (asyncio.CancelledError, GeneratorExit):
        logger.info("Client disconnected, turn abandoned", extra=log_extra)
        raise

    except Exception as e:
        error = classify_upstream_error(e)
        if error.code == ErrorCode.OPERATION_FAILED:
            logger.warning(f"Turn generation failed: {e}", extra=log_extra)
        else:
            logger.error(f"Error in orchestration stream: {e}", exc_info=True, extra=log_extra)

        yield encode_event(ErrorEvent(code=error.code.value, message=error.message))
        if error.code == ErrorCode.OPERATION_FAILED:
            yield encode_event(DoneEvent())


async def _summarize(config: OrchestrationStreamConfig, decision: OrchestrationDecision, action) -> str:
    """UI summary for the chat history; falls back to the decision's own text."""
    description = (
        decision.ui_spec.data_description
        if decision.ui_spec
        else decision.form_spec.title if decision.form_spec else decision.text_response
    )
    highlights = decision.ui_spec.highlights if decision.ui_spec else None
    try:
        return await generate_ui_summary(config.message, description, highlights, action)
    except Exception as e:
        logger.warning(f"UI summary failed, using decision text: {e}", extra={"session_id": config.session_id})
        return decision.text_response


async def _title(config: OrchestrationStreamConfig) -> str | None:
    """Generate and store a session title; failure keeps the default title."""
    try:
        title = await generate_session_title(config.message)
        update_session_title(config.session_id, title)
        return title
    except Exception as e:
        logger.warning(f"Title generation failed: {e}", extra={"session_id": config.session_id})
        return None
