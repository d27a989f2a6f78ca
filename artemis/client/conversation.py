"""Client-side conversation controller.

Owns the per-session ConversationCursor and branch mirror, runs one turn at
a time, forks when the user sends or edits while exploring history, and
commits a snapshot when a UI turn completes.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

from artemis.client.actions import RenderAction, handle_action
from artemis.client.api import ArtemisClient
from artemis.client.surface import AssistantSurface
from artemis.client.turn_state import TurnState, cancel_turn, reduce_turn
from artemis.core.branching import BranchHistory, BranchIntegrityError, ConversationCursor, ForkPlan
from artemis.core.errors import TransportError, TurnInProgressError
from artemis.core.logging import get_logger
from artemis.core.schemas_events import SessionEvent
from artemis.core.schemas_orchestration import FormActionType
from artemis.core.schemas_snapshots import SnapshotCreate, UISnapshot

logger = get_logger(__name__)


@dataclass
class ChatEntry:
    """One user message and how the assistant answered it."""

    user_text: str
    user_message_id: str | None = None
    assistant_text: str = ""
    response_type: str | None = None
    cancelled: bool = False
    failed: bool = False


class TurnHandle:
    """Cancellation handle for the single outstanding turn."""

    def __init__(self, controller: "ConversationController", task: "asyncio.Task[TurnState]"):
        self._controller = controller
        self._task = task
        self._cancel_requested = False

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        """Abort the transport read loop; the turn never reaches done."""
        self._cancel_requested = True
        self._task.cancel()

    async def result(self) -> TurnState:
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._cancel_requested and self._task.cancelled():
                return self._controller.last_turn
            raise


class ConversationController:
    """Drives turns, history navigation and forking for one session."""

    def __init__(
        self,
        client: ArtemisClient,
        session_id: str | None = None,
        surface: AssistantSurface | None = None,
        history: BranchHistory | None = None,
    ):
        self.client = client
        self.session_id = session_id
        self.surface = surface or AssistantSurface()
        self.history = history or BranchHistory()
        self.cursor = ConversationCursor()
        self.entries: list[ChatEntry] = []
        self.last_turn = TurnState()
        self.last_commit_error: Exception | None = None
        self._handle: TurnHandle | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_processing(self) -> bool:
        return self._handle is not None and not self._handle.done

    @property
    def is_exploring(self) -> bool:
        return not self.cursor.is_live

    @property
    def current_ui_content(self) -> str | None:
        snapshot = self.history.snapshot_at(self.cursor)
        return snapshot.content if snapshot else None

    @property
    def user_message_order(self) -> list[str]:
        return [e.user_message_id for e in self.entries if e.user_message_id]

    async def load(self, session_id: str, message_order: list[str] | None = None) -> None:
        """Load a session's branches and start in LIVE mode on main."""
        self.session_id = session_id
        snapshots = await self.client.list_snapshots(session_id, include_inactive=True)
        self.history = BranchHistory(snapshots)
        self.cursor = ConversationCursor()
        if message_order:
            self.entries = [ChatEntry(user_text="", user_message_id=mid) for mid in message_order]

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def back(self) -> str | None:
        self.cursor = self.history.back(self.cursor)
        return self.current_ui_content

    def forward(self) -> str | None:
        self.cursor = self.history.forward(self.cursor)
        return self.current_ui_content

    def branch_family(self, message_id: str) -> list[str]:
        return self.history.branch_family(message_id)

    def switch_branch(self, message_id: str, branch_name: str) -> str | None:
        cursor = self.history.switch_to_branch(message_id, branch_name)
        if cursor is not None:
            self.cursor = cursor
        return self.current_ui_content

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def start(self, message: str) -> TurnHandle:
        """
        Start a new turn from a fresh message.

        Raises:
            TurnInProgressError: If another turn is still streaming
        """
        return self._start(message, fork_from_message_id=None)

    def start_edit(self, message_id: str, new_text: str) -> TurnHandle:
        """
        Re-ask an earlier user message with new text.

        Raises:
            TurnInProgressError: If another turn is still streaming
        """
        return self._start(new_text, fork_from_message_id=message_id)

    async def send(self, message: str) -> TurnState:
        return await self.start(message).result()

    async def edit(self, message_id: str, new_text: str) -> TurnState:
        return await self.start_edit(message_id, new_text).result()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()

    async def execute_write(self, action_type: FormActionType, params: dict[str, Any]) -> bool:
        try:
            await self.client.execute_action(action_type, params, self.session_id)
        except TransportError as e:
            logger.warning(f"Write action {action_type.value} failed: {e}")
            return False
        return True

    async def run_action(self, action: RenderAction) -> bool:
        """Run an action raised by the rendered UI; True if a follow-up turn ran."""
        return await handle_action(action, self.execute_write, self.send)

    def _start(self, message: str, fork_from_message_id: str | None) -> TurnHandle:
        if self.is_processing:
            raise TurnInProgressError("A turn is already in progress")
        if not message.strip():
            raise ValueError("Message must not be empty")

        task = asyncio.create_task(self._run_turn(message.strip(), fork_from_message_id))
        self._handle = TurnHandle(self, task)
        return self._handle

    async def _fork_if_needed(self, fork_from_message_id: str | None) -> None:
        plan: ForkPlan | None
        if fork_from_message_id is not None:
            plan = self.history.plan_edit_fork(self.cursor, fork_from_message_id, self.user_message_order)
        else:
            plan = self.history.plan_fork(self.cursor)

        if plan is None:
            self.cursor = self.cursor.live()
            return

        if plan.deactivate_ids and self.session_id:
            await self.client.deactivate_snapshots(self.session_id, plan.deactivate_ids)
        self.cursor = self.history.apply_fork(plan)
        logger.info(
            f"Created branch {plan.new_branch} (fork from {plan.source_branch} at index {plan.fork_index})"
        )

    def _drop_entries_from(self, message_id: str) -> None:
        """Remove the edited message and everything after it, keeping the new entry."""
        ids = [e.user_message_id for e in self.entries]
        if message_id in ids:
            cut = ids.index(message_id)
            self.entries = self.entries[:cut] + [self.entries[-1]]

    async def _run_turn(self, message: str, fork_from_message_id: str | None) -> TurnState:
        state = TurnState()
        self.last_turn = state
        entry = ChatEntry(user_text=message)
        self.entries.append(entry)
        self.surface.begin_turn()

        try:
            # The document on screen before any fork is what the new UI merges into
            displayed_ui = self.current_ui_content
            await self._fork_if_needed(fork_from_message_id)
            if fork_from_message_id is not None:
                self._drop_entries_from(fork_from_message_id)

            body: dict[str, Any] = {
                "sessionId": self.session_id,
                "message": message,
                "currentUIContent": displayed_ui,
                "forkFromMessageId": fork_from_message_id,
            }

            async for event in self.client.stream_turn(body):
                state = reduce_turn(state, event)
                self.last_turn = state
                if isinstance(event, SessionEvent):
                    self.session_id = event.session_id
                    entry.user_message_id = event.user_message_id
                self.surface.on_event(event, has_existing_ui=self.history.length(self.cursor.branch_name) > 0)

            if not state.done and state.error is None:
                raise TransportError("Stream ended before the turn completed")

        except asyncio.CancelledError:
            state = cancel_turn(state)
            self.last_turn = state
            entry.assistant_text = state.text
            entry.cancelled = True
            self.surface.fail()
            raise

        except TransportError:
            entry.failed = True
            self.surface.fail()
            raise

        entry.assistant_text = state.summary if state.produced_ui else state.text
        entry.response_type = state.response_type
        entry.failed = state.error is not None

        if state.done:
            self.surface.apply_layout(state.layout_intent, produced_ui=state.produced_ui)
        if state.committable:
            await self._commit_snapshot(state)
        return state

    async def _commit_snapshot(self, state: TurnState) -> UISnapshot | None:
        """Persist the completed turn's UI at the tip of the current branch."""
        if not self.session_id or not state.user_message_id:
            return None

        create = SnapshotCreate(
            message_id=state.user_message_id,
            content=state.ui_content,
            branch_name=self.cursor.branch_name,
            layout_intent=state.layout_intent,
            metadata=state.snapshot_metadata(),
        )
        try:
            snapshot = await self.client.create_snapshot(self.session_id, create)
        except TransportError as e:
            # The turn itself succeeded; history just does not advance
            logger.error(f"Failed to save UI snapshot: {e}", extra={"session_id": self.session_id})
            self.last_commit_error = e
            return None

        try:
            self.history.append(snapshot)
        except BranchIntegrityError:
            logger.warning("Branch moved while committing, reloading history")
            self.history = BranchHistory(
                await self.client.list_snapshots(self.session_id, include_inactive=True)
            )
        self.cursor = self.cursor.live()
        self.last_commit_error = None
        return snapshot
