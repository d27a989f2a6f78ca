"""Stream event wire contract.

Every frame on the orchestration stream carries exactly one of these events.
The union is closed and discriminated on ``type``; any other ``type`` value
decodes to ``UnknownEvent`` so newer servers never crash older clients.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from artemis.core.schemas_orchestration import LayoutIntent
from artemis.core.ui_merge import MergeAction


class EventModel(BaseModel):
    """Base for event payloads: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Payload parts
# =============================================================================


class ToolCallContent(EventModel):
    target_id: str
    reason: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class DataContent(EventModel):
    target_id: str
    result: Any = None
    error: str | None = None


class UiActionContent(EventModel):
    """Merge decision announced before the merged document is flushed."""

    action: MergeAction
    has_existing: bool
    confidence: float
    defaulted: bool = False
    reason: str = ""


class Clarification(EventModel):
    question: str
    suggestions: list[str] = Field(default_factory=list)


# =============================================================================
# Events
# =============================================================================


class SessionEvent(EventModel):
    type: Literal["session"] = "session"
    session_id: str
    user_message_id: str
    is_new: bool = False


class ThinkingEvent(EventModel):
    type: Literal["thinking"] = "thinking"
    content: str


class ToolCallEvent(EventModel):
    type: Literal["tool_call"] = "tool_call"
    content: ToolCallContent


class DataEvent(EventModel):
    type: Literal["data"] = "data"
    content: DataContent


class UiActionEvent(EventModel):
    type: Literal["ui_action"] = "ui_action"
    content: UiActionContent


class SummaryMessageEvent(EventModel):
    type: Literal["summary_message"] = "summary_message"
    content: str


class UiCompleteEvent(EventModel):
    type: Literal["ui_complete"] = "ui_complete"
    content: str


class TextEvent(EventModel):
    type: Literal["text"] = "text"
    content: str
    clarification: Clarification | None = None


class TitleUpdateEvent(EventModel):
    type: Literal["title_update"] = "title_update"
    title: str


class DoneEvent(EventModel):
    type: Literal["done"] = "done"
    layout_intent: LayoutIntent | None = None
    message_id: str | None = None


class ErrorEvent(EventModel):
    type: Literal["error"] = "error"
    # Plain string so codes added later still reach the client
    code: str
    message: str


class UnknownEvent(BaseModel):
    """Any event whose ``type`` this client does not know."""

    model_config = ConfigDict(extra="forbid")

    type: str
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {**self.payload, "type": self.type}


KnownEvent = Annotated[
    Union[
        SessionEvent,
        ThinkingEvent,
        ToolCallEvent,
        DataEvent,
        UiActionEvent,
        SummaryMessageEvent,
        UiCompleteEvent,
        TextEvent,
        TitleUpdateEvent,
        DoneEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

StreamEvent = Union[KnownEvent, UnknownEvent]

EVENT_TYPES: frozenset[str] = frozenset(
    {
        "session",
        "thinking",
        "tool_call",
        "data",
        "ui_action",
        "summary_message",
        "ui_complete",
        "text",
        "title_update",
        "done",
        "error",
    }
)

_known_event_adapter: TypeAdapter = TypeAdapter(KnownEvent)


def parse_event(data: dict[str, Any]) -> StreamEvent:
    """
    Decode one event object at the deserialization boundary.

    Args:
        data: Parsed JSON object from one ``data:`` frame

    Returns:
        The matching event variant, or UnknownEvent for an unrecognized type

    Raises:
        pydantic.ValidationError: If a known event type has a malformed payload
    """
    event_type = data.get("type")
    if event_type not in EVENT_TYPES:
        payload = {k: v for k, v in data.items() if k != "type"}
        return UnknownEvent(type=str(event_type), payload=payload)
    return _known_event_adapter.validate_python(data)
