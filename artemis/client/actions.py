"""Routing of actions raised by the rendered UI.

Conversational affordances (continue, navigate, refresh, close) only feed
their LLM-facing message back as the next turn. Everything else is a write
operation that must go through the write-action executor first.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from artemis.core.logging import get_logger
from artemis.core.schemas_orchestration import FormActionType

logger = get_logger(__name__)

NON_ACTIONABLE_TYPES = frozenset({"continue_conversation", "navigate", "refresh", "close", "unknown"})

# Renderer action names that differ from our write action types
ACTION_ALIASES: dict[str, str] = {
    "create_order": FormActionType.CREATE_SALES_ORDER.value,
}


@dataclass
class RenderAction:
    """An action event emitted by the rendering collaborator."""

    type: str = "unknown"
    params: dict[str, Any] = field(default_factory=dict)
    human_friendly_message: str = ""
    llm_friendly_message: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RenderAction":
        return cls(
            type=payload.get("type") or "unknown",
            params=payload.get("params") or {},
            human_friendly_message=payload.get("humanFriendlyMessage") or "",
            llm_friendly_message=payload.get("llmFriendlyMessage") or "",
        )


@dataclass(frozen=True)
class ActionRoute:
    """Where an action goes: a plain next turn, or a write followed by a turn."""

    write_action: FormActionType | None
    next_message: str | None
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def is_write(self) -> bool:
        return self.write_action is not None


def route_action(action: RenderAction) -> ActionRoute:
    """Classify a rendered-UI action."""
    action_type = ACTION_ALIASES.get(action.type, action.type)
    next_message = action.llm_friendly_message.strip() or None

    if action_type in NON_ACTIONABLE_TYPES:
        return ActionRoute(write_action=None, next_message=next_message)

    try:
        write_action = FormActionType(action_type)
    except ValueError:
        logger.warning(f"Ignoring unsupported action type '{action.type}'")
        return ActionRoute(write_action=None, next_message=next_message)

    return ActionRoute(write_action=write_action, next_message=next_message, params=action.params)


WriteExecutor = Callable[[FormActionType, dict[str, Any]], Awaitable[bool]]
SendMessage = Callable[[str], Awaitable[Any]]


async def handle_action(
    action: RenderAction,
    execute_write: WriteExecutor,
    send_message: SendMessage,
) -> bool:
    """
    Route one action and run its side effects.

    Args:
        action: Action from the renderer
        execute_write: Runs a write operation, returns True on success
        send_message: Starts the next turn with the given message

    Returns:
        True if a next turn was started
    """
    route = route_action(action)

    if route.is_write:
        succeeded = await execute_write(route.write_action, route.params)
        if not succeeded:
            logger.info(f"Write action {route.write_action.value} did not succeed")
            return False

    if route.next_message:
        await send_message(route.next_message)
        return True
    return False
