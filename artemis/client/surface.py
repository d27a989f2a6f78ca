"""Assistant surface display state machine.

States: hidden, thinking, preview, expanded, full, and a transient button
re-entry affordance. Server layout intents are applied on ``done`` unless
the user changed the surface manually during the turn. Auto-hide only runs
after the user has interacted with the current turn's surface, and its timers
need a running event loop; driven from plain synchronous code the surface
changes state but never hides itself.
"""

import asyncio
from collections.abc import Callable
from enum import Enum

from artemis.core.logging import get_logger
from artemis.core.schemas_events import ErrorEvent, StreamEvent, SummaryMessageEvent, TextEvent
from artemis.core.schemas_orchestration import LayoutIntent

logger = get_logger(__name__)


class SurfaceState(str, Enum):
    HIDDEN = "hidden"
    THINKING = "thinking"
    PREVIEW = "preview"
    EXPANDED = "expanded"
    FULL = "full"
    BUTTON = "button"


LAYOUT_TO_SURFACE: dict[LayoutIntent, SurfaceState] = {
    LayoutIntent.FULL: SurfaceState.FULL,
    LayoutIntent.EXTENDED: SurfaceState.EXPANDED,
    LayoutIntent.PREVIEW: SurfaceState.PREVIEW,
    LayoutIntent.HIDDEN: SurfaceState.HIDDEN,
}


class AssistantSurface:
    """Drives the visible assistant surface for one client."""

    def __init__(
        self,
        auto_hide_delay: float = 3.0,
        button_hide_delay: float = 2.5,
        on_change: Callable[[SurfaceState], None] | None = None,
    ):
        self.auto_hide_delay = auto_hide_delay
        self.button_hide_delay = button_hide_delay
        self.state = SurfaceState.HIDDEN
        self.manual_override = False
        self.user_interacted = False
        self.hovering = False
        self._started_full = False
        self._seen_text = False
        self._timer: asyncio.TimerHandle | None = None
        self._on_change = on_change

    @property
    def timer_pending(self) -> bool:
        return self._timer is not None

    # ------------------------------------------------------------------
    # Turn lifecycle
    # ------------------------------------------------------------------

    def begin_turn(self) -> None:
        """A new turn starts: clear the override and show thinking."""
        self._cancel_timer()
        self.manual_override = False
        self.user_interacted = False
        self._seen_text = False
        self._started_full = self.state == SurfaceState.FULL
        if not self._started_full:
            self._set(SurfaceState.THINKING)

    def on_event(self, event: StreamEvent, has_existing_ui: bool = False) -> None:
        """
        React to one in-flight stream event. Completion goes through apply_layout.

        Args:
            event: Decoded stream event
            has_existing_ui: Whether the current branch already shows UI
        """
        if isinstance(event, ErrorEvent):
            self._set(SurfaceState.HIDDEN)
            return

        if self.manual_override or self._started_full:
            return

        if isinstance(event, SummaryMessageEvent):
            self._set(SurfaceState.PREVIEW)
        elif isinstance(event, TextEvent) and not self._seen_text:
            self._seen_text = True
            self._set(SurfaceState.EXPANDED if has_existing_ui else SurfaceState.PREVIEW)

    def apply_layout(self, intent: LayoutIntent | None, produced_ui: bool = False) -> None:
        """Apply a server layout intent unless the user overrode the surface."""
        if self.manual_override or self._started_full:
            logger.debug(f"Skipped layout intent {intent} (manual override or full)")
            return
        if intent is None:
            target = SurfaceState.EXPANDED if produced_ui else SurfaceState.PREVIEW
        else:
            target = LAYOUT_TO_SURFACE[intent]
        self._set(target)

    def fail(self) -> None:
        """Transport failure or cancel: retract the surface."""
        self._set(SurfaceState.HIDDEN)

    # ------------------------------------------------------------------
    # User input
    # ------------------------------------------------------------------

    def user_set(self, state: SurfaceState) -> None:
        """A user-initiated change; suppresses layout intents until next turn."""
        self.manual_override = True
        self.user_interacted = True
        self._set(state)

    def interact(self) -> None:
        self.user_interacted = True
        self._schedule_auto_hide()

    def hover(self) -> None:
        self.hovering = True
        self._cancel_timer()

    def unhover(self) -> None:
        self.hovering = False
        self._schedule_auto_hide()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set(self, state: SurfaceState) -> None:
        if state != self.state:
            logger.debug(f"Surface {self.state.value} -> {state.value}")
            self.state = state
            if self._on_change is not None:
                self._on_change(state)
        self._schedule_auto_hide()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_auto_hide(self) -> None:
        self._cancel_timer()
        if not self.user_interacted or self.hovering:
            return

        if self.state == SurfaceState.PREVIEW:
            delay = self.auto_hide_delay
        elif self.state == SurfaceState.BUTTON:
            delay = self.button_hide_delay
        else:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, auto-hide from {self.state.value} not scheduled")
            return
        self._timer = loop.call_later(delay, self._auto_hide_step)

    def _auto_hide_step(self) -> None:
        self._timer = None
        if self.state == SurfaceState.PREVIEW:
            self._set(SurfaceState.BUTTON)
        elif self.state == SurfaceState.BUTTON:
            self._set(SurfaceState.HIDDEN)
