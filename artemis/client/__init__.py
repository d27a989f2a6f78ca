"""Python client half: stream consumption, surface state and branch navigation."""

from artemis.client.actions import ActionRoute, RenderAction, handle_action, route_action
from artemis.client.api import ArtemisClient
from artemis.client.conversation import ChatEntry, ConversationController, TurnHandle
from artemis.client.surface import AssistantSurface, SurfaceState
from artemis.client.turn_state import CANCELLED_TEXT, TurnState, cancel_turn, reduce_turn

__all__ = [
    "ActionRoute",
    "ArtemisClient",
    "AssistantSurface",
    "CANCELLED_TEXT",
    "ChatEntry",
    "ConversationController",
    "RenderAction",
    "SurfaceState",
    "TurnHandle",
    "TurnState",
    "cancel_turn",
    "handle_action",
    "reduce_turn",
    "route_action",
]
