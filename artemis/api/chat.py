"""Orchestration stream endpoint."""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from artemis.core.config import get_settings
from artemis.core.logging import get_logger
from artemis.core.orchestration_stream import OrchestrationStreamConfig, generate_orchestration_stream
from artemis.core.rate_limiter import check_chat_rate_limit
from artemis.core.sse import SSE_HEADERS
from artemis.core.ui_merge import MergePolicy, MergeSignal
from artemis.db.chat_sessions import (
    conversation_context,
    create_chat_session,
    get_chat_session,
    insert_chat_message,
    list_chat_messages,
)
from artemis.services.erp_client import ErpClient

logger = get_logger(__name__)

router = APIRouter()


class OrchestrateRequest(BaseModel):
    """Request to run one orchestration turn."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field(..., min_length=1, max_length=8000)
    session_id: str | None = None
    current_ui_content: str | None = Field(default=None, alias="currentUIContent")
    fork_from_message_id: str | None = None
    merge_signal: MergeSignal | None = None
    target_sections: list[str] | None = None


@router.post("/chat/orchestrate/stream")
async def orchestrate_stream(body: OrchestrateRequest, request: Request) -> StreamingResponse:
    """
    Run one assistant turn and stream its events.

    This endpoint:
    1. Applies the per-session rate limit
    2. Loads or creates the session and builds conversation context
    3. Persists the user message
    4. Streams decision, tool, UI and completion events as SSE

    Returns:
        StreamingResponse with Server-Sent Events
    """
    check_chat_rate_limit(body.session_id, request.client.host if request.client else None)

    settings = get_settings()
    is_new_session = body.session_id is None

    try:
        if is_new_session:
            session = create_chat_session()
            history: list[dict[str, str]] = []
        else:
            session = get_chat_session(body.session_id)
            if not session:
                raise HTTPException(status_code=404, detail="Session not found")
            history = conversation_context(
                list_chat_messages(body.session_id),
                window=settings.HISTORY_WINDOW,
                fork_from_message_id=body.fork_from_message_id,
            )

        session_id = str(session["id"])
        user_message = insert_chat_message(session_id, "user", body.message)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to start orchestration turn: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to start turn") from e

    config = OrchestrationStreamConfig(
        session_id=session_id,
        user_message_id=str(user_message["id"]),
        message=body.message,
        history=history,
        is_new_session=is_new_session,
        current_ui_content=body.current_ui_content,
        fork_from_message_id=body.fork_from_message_id,
        merge_signal=body.merge_signal,
        target_sections=body.target_sections,
        merge_policy=MergePolicy.from_settings(),
    )

    return StreamingResponse(
        generate_orchestration_stream(config, ErpClient.from_settings()),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
