"""Running state of one turn, folded event by event.

The state is immutable; ``reduce_turn`` returns a new TurnState for every
event so the value read when committing a snapshot is exactly the value the
last event produced.
"""

from dataclasses import dataclass, field, replace
from typing import Any

from artemis.core.schemas_events import (
    Clarification,
    DataEvent,
    DoneEvent,
    ErrorEvent,
    SessionEvent,
    StreamEvent,
    SummaryMessageEvent,
    TextEvent,
    ThinkingEvent,
    TitleUpdateEvent,
    ToolCallEvent,
    UiActionContent,
    UiActionEvent,
    UiCompleteEvent,
    UnknownEvent,
)
from artemis.core.schemas_orchestration import LayoutIntent

CANCELLED_TEXT = "[Request cancelled]"


@dataclass(frozen=True)
class TurnState:
    session_id: str | None = None
    user_message_id: str | None = None
    is_new_session: bool = False
    response_type: str | None = None
    thinking: str = ""
    text: str = ""
    clarification: Clarification | None = None
    summary: str = ""
    ui_content: str | None = None
    ui_action: UiActionContent | None = None
    tool_calls: tuple[dict[str, Any], ...] = ()
    data: tuple[dict[str, Any], ...] = ()
    title: str | None = None
    layout_intent: LayoutIntent | None = None
    assistant_message_id: str | None = None
    done: bool = False
    error: ErrorEvent | None = None
    cancelled: bool = False
    ignored_events: tuple[str, ...] = field(default=())

    @property
    def is_terminal(self) -> bool:
        return self.done or self.cancelled or (self.error is not None)

    @property
    def produced_ui(self) -> bool:
        return self.response_type == "ui" and bool(self.ui_content and self.ui_content.strip())

    @property
    def committable(self) -> bool:
        """Completed successfully with UI content worth a snapshot."""
        return self.done and self.error is None and not self.cancelled and self.produced_ui

    def snapshot_metadata(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "toolCalls": list(self.tool_calls),
            "summaryMessage": self.summary,
        }
        if self.ui_action is not None:
            metadata["uiAction"] = self.ui_action.action.value
            metadata["mergeDefaulted"] = self.ui_action.defaulted
            metadata["mergeReason"] = self.ui_action.reason
        return metadata


def reduce_turn(state: TurnState, event: StreamEvent) -> TurnState:
    """Fold one event into the turn state."""
    # An error may still be followed by done; nothing follows done or a cancel
    if state.done or state.cancelled:
        return state

    if isinstance(event, SessionEvent):
        return replace(
            state,
            session_id=event.session_id,
            user_message_id=event.user_message_id,
            is_new_session=event.is_new,
        )
    if isinstance(event, ThinkingEvent):
        return replace(state, thinking=event.content)
    if isinstance(event, ToolCallEvent):
        return replace(state, tool_calls=(*state.tool_calls, event.content.to_wire()))
    if isinstance(event, DataEvent):
        return replace(state, data=(*state.data, event.content.to_wire()))
    if isinstance(event, UiActionEvent):
        return replace(state, ui_action=event.content)
    if isinstance(event, SummaryMessageEvent):
        return replace(state, summary=event.content)
    if isinstance(event, UiCompleteEvent):
        return replace(state, response_type="ui", ui_content=event.content)
    if isinstance(event, TextEvent):
        return replace(
            state,
            response_type="text",
            text=state.text + event.content,
            clarification=event.clarification or state.clarification,
        )
    if isinstance(event, TitleUpdateEvent):
        return replace(state, title=event.title)
    if isinstance(event, DoneEvent):
        return replace(
            state,
            done=True,
            layout_intent=event.layout_intent,
            assistant_message_id=event.message_id,
        )
    if isinstance(event, ErrorEvent):
        return replace(state, error=event)
    if isinstance(event, UnknownEvent):
        return replace(state, ignored_events=(*state.ignored_events, event.type))
    return state


def cancel_turn(state: TurnState) -> TurnState:
    """Record a user abort; partial UI is discarded."""
    if state.done:
        return state
    return replace(state, cancelled=True, text=CANCELLED_TEXT, ui_content=None, response_type="text")
