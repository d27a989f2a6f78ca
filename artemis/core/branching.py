"""Git-style branch/fork model over UI snapshots.

A session's snapshots form named branches, each an ordered sequence indexed
contiguously from 0. The client views them through a ConversationCursor that
is either LIVE (tracking the newest snapshot) or pinned to a historical index.
A pinned cursor always holds a stored ``snapshot_index``; navigation steps over
inactive snapshots, so indices on a branch with a tombstoned stretch are not
positions in its active list.
Sending or editing while pinned before the tip forks: later snapshots on the
branch are deactivated, never deleted or renumbered, and a new ``fork-<ms>``
branch receives the next snapshot.

Everything here is pure; persistence goes through BranchStore.
"""

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from artemis.core.schemas_snapshots import MAIN_BRANCH, BranchSummary, ForkPoint, UISnapshot

LIVE = -1
FORK_PREFIX = "fork-"


class BranchIntegrityError(ValueError):
    """An operation would break index contiguity on a branch."""


@dataclass(frozen=True)
class ConversationCursor:
    """Client-held view position: a branch plus a pinned index or LIVE."""

    branch_name: str = MAIN_BRANCH
    snapshot_index: int = LIVE

    @property
    def is_live(self) -> bool:
        return self.snapshot_index == LIVE

    def live(self) -> "ConversationCursor":
        return ConversationCursor(branch_name=self.branch_name)


@dataclass(frozen=True)
class ForkPlan:
    """What a fork does: which snapshots to deactivate and where writes go next."""

    source_branch: str
    fork_index: int
    new_branch: str
    deactivate_ids: list[str] = field(default_factory=list)


def new_branch_name(now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{FORK_PREFIX}{now_ms}"


class BranchHistory:
    """In-memory mirror of a session's branches."""

    def __init__(self, snapshots: Iterable[UISnapshot] = ()):
        self._branches: dict[str, list[UISnapshot]] = {MAIN_BRANCH: []}
        for snapshot in sorted(snapshots, key=lambda s: (s.branch_name, s.snapshot_index)):
            self.append(snapshot)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def branch_names(self) -> list[str]:
        return list(self._branches)

    def has_branch(self, branch_name: str) -> bool:
        return branch_name in self._branches

    def snapshots(self, branch_name: str) -> list[UISnapshot]:
        """Every snapshot on the branch, inactive ones included."""
        return list(self._branches.get(branch_name, []))

    def active_snapshots(self, branch_name: str) -> list[UISnapshot]:
        return [s for s in self._branches.get(branch_name, []) if s.is_active]

    def length(self, branch_name: str) -> int:
        """Number of navigable (active) snapshots on the branch."""
        return len(self.active_snapshots(branch_name))

    def latest(self, branch_name: str) -> UISnapshot | None:
        active = self.active_snapshots(branch_name)
        return active[-1] if active else None

    def snapshot_at(self, cursor: ConversationCursor) -> UISnapshot | None:
        """Snapshot the cursor shows (newest active one when LIVE)."""
        if cursor.is_live:
            return self.latest(cursor.branch_name)
        for snapshot in self.active_snapshots(cursor.branch_name):
            if snapshot.snapshot_index == cursor.snapshot_index:
                return snapshot
        return None

    def _active_indices(self, branch_name: str) -> list[int]:
        return [s.snapshot_index for s in self.active_snapshots(branch_name)]

    def next_append(self, branch_name: str) -> tuple[int, str | None]:
        """Index and parent id the next snapshot on the branch must use."""
        existing = self._branches.get(branch_name, [])
        parent = existing[-1].id if existing else None
        return len(existing), parent

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def ensure_branch(self, branch_name: str) -> None:
        self._branches.setdefault(branch_name, [])

    def append(self, snapshot: UISnapshot) -> None:
        """
        Add a committed snapshot to its branch.

        Raises:
            BranchIntegrityError: If the index is not the branch's next index
        """
        branch = self._branches.setdefault(snapshot.branch_name, [])
        if snapshot.snapshot_index != len(branch):
            raise BranchIntegrityError(
                f"Snapshot index {snapshot.snapshot_index} on '{snapshot.branch_name}' "
                f"does not follow {len(branch) - 1}"
            )
        branch.append(snapshot)

    def deactivate(self, snapshot_ids: Iterable[str]) -> int:
        """Mark snapshots inactive. Returns how many changed."""
        ids = set(snapshot_ids)
        changed = 0
        for name, branch in self._branches.items():
            for i, snapshot in enumerate(branch):
                if snapshot.id in ids and snapshot.is_active:
                    branch[i] = snapshot.model_copy(update={"is_active": False})
                    changed += 1
        return changed

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def can_go_back(self, cursor: ConversationCursor) -> bool:
        indices = self._active_indices(cursor.branch_name)
        if cursor.is_live:
            return bool(indices)
        return any(i < cursor.snapshot_index for i in indices)

    def can_go_forward(self, cursor: ConversationCursor) -> bool:
        return not cursor.is_live

    def back(self, cursor: ConversationCursor) -> ConversationCursor:
        """Step to the previous active snapshot; from LIVE, pin to the newest one."""
        indices = self._active_indices(cursor.branch_name)
        if cursor.is_live:
            if not indices:
                return cursor
            return ConversationCursor(cursor.branch_name, indices[-1])
        earlier = [i for i in indices if i < cursor.snapshot_index]
        if earlier:
            return ConversationCursor(cursor.branch_name, earlier[-1])
        return cursor

    def forward(self, cursor: ConversationCursor) -> ConversationCursor:
        """Step to the next active snapshot; past the newest one, return to LIVE."""
        if cursor.is_live:
            return cursor
        later = [i for i in self._active_indices(cursor.branch_name) if i > cursor.snapshot_index]
        if later:
            return ConversationCursor(cursor.branch_name, later[0])
        return cursor.live()

    # ------------------------------------------------------------------
    # Forking
    # ------------------------------------------------------------------

    def needs_fork(self, cursor: ConversationCursor) -> bool:
        """True when the cursor is pinned before the newest active snapshot of its branch."""
        if cursor.is_live:
            return False
        return any(i > cursor.snapshot_index for i in self._active_indices(cursor.branch_name))

    def plan_fork(self, cursor: ConversationCursor, now_ms: int | None = None) -> ForkPlan | None:
        """
        Plan the fork a new message triggers at the cursor.

        Returns:
            ForkPlan, or None when the cursor is not pinned before the tip
        """
        if not self.needs_fork(cursor):
            return None

        after = [
            s.id
            for s in self.active_snapshots(cursor.branch_name)
            if s.snapshot_index > cursor.snapshot_index
        ]
        return ForkPlan(
            source_branch=cursor.branch_name,
            fork_index=cursor.snapshot_index,
            new_branch=new_branch_name(now_ms),
            deactivate_ids=after,
        )

    def plan_edit_fork(
        self,
        cursor: ConversationCursor,
        message_id: str,
        message_order: list[str],
        now_ms: int | None = None,
    ) -> ForkPlan | None:
        """
        Plan the fork caused by editing an earlier user message.

        Snapshots on the cursor's branch answering messages after the edited
        one are deactivated; snapshots up to and including it are kept.

        Args:
            cursor: Current cursor
            message_id: The edited user message
            message_order: User message ids of the session in chronological order

        Returns:
            ForkPlan, or None when the edited message is the latest one and the
            cursor is not pinned before the tip
        """
        if message_id not in message_order:
            return None

        position = {mid: i for i, mid in enumerate(message_order)}
        edited_at = position[message_id]
        is_last = edited_at == len(message_order) - 1
        if is_last and not self.needs_fork(cursor):
            return None

        branch = self.active_snapshots(cursor.branch_name)
        later = [s for s in branch if position.get(s.message_id, -1) > edited_at]
        kept = [s for s in branch if s not in later]
        return ForkPlan(
            source_branch=cursor.branch_name,
            fork_index=kept[-1].snapshot_index if kept else -1,
            new_branch=new_branch_name(now_ms),
            deactivate_ids=[s.id for s in later],
        )

    def apply_fork(self, plan: ForkPlan) -> ConversationCursor:
        """Deactivate the superseded snapshots and move writes to the new branch."""
        self.deactivate(plan.deactivate_ids)
        self.ensure_branch(plan.new_branch)
        return ConversationCursor(branch_name=plan.new_branch)

    # ------------------------------------------------------------------
    # Branch discovery
    # ------------------------------------------------------------------

    def branch_family(self, message_id: str) -> list[str]:
        """Branches holding an active snapshot that answers the message."""
        return [
            name
            for name in self._branches
            if any(s.message_id == message_id for s in self.active_snapshots(name))
        ]

    def switch_to_branch(self, message_id: str, branch_name: str) -> ConversationCursor | None:
        """Pin the cursor to the message's snapshot on another branch."""
        for snapshot in self.active_snapshots(branch_name):
            if snapshot.message_id == message_id:
                return ConversationCursor(branch_name, snapshot.snapshot_index)
        return None

    def fork_points(self) -> list[ForkPoint]:
        """Messages answered on more than one branch."""
        branches_by_message: dict[str, list[str]] = {}
        for name, branch in self._branches.items():
            for snapshot in branch:
                names = branches_by_message.setdefault(snapshot.message_id, [])
                if name not in names:
                    names.append(name)

        points = []
        for message_id, names in branches_by_message.items():
            for i, from_branch in enumerate(names):
                for to_branch in names[i + 1:]:
                    points.append(
                        ForkPoint(message_id=message_id, from_branch=from_branch, to_branch=to_branch)
                    )
        return points

    def summaries(self) -> list[BranchSummary]:
        result = []
        for name, branch in self._branches.items():
            stamps = [s.created_at for s in branch if s.created_at is not None]
            last_update: datetime | None = max(stamps) if stamps else None
            result.append(
                BranchSummary(
                    name=name,
                    snapshot_count=len(branch),
                    active_count=sum(1 for s in branch if s.is_active),
                    last_update=last_update,
                )
            )
        return result
