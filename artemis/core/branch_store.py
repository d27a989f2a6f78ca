"""Persistent branch/fork store over the ui_snapshots table."""

import asyncio
import weakref
from functools import lru_cache

from artemis.core.branching import BranchHistory
from artemis.core.config import get_settings
from artemis.core.logging import get_logger
from artemis.core.schemas_snapshots import BranchListResponse, SnapshotCreate, UISnapshot
from artemis.db.ui_snapshots import (
    deactivate_snapshots,
    get_last_snapshot,
    insert_snapshot,
    is_unique_violation,
    list_snapshots,
)

logger = get_logger(__name__)


class SnapshotConflictError(Exception):
    """The branch tip kept moving and the append ran out of retries."""


class BranchStore:
    """
    Serialized, append-only snapshot writes per (session, branch).

    Appends are compare-and-append: read the branch tip, insert at tip + 1,
    and let the unique key reject a racing writer from another process. An
    asyncio.Lock per branch keeps writers in this process from racing at all.
    Locks are held weakly and vanish once no append holds or awaits them.
    """

    def __init__(self, append_retries: int = 3, soft_limit: int = 50):
        self.append_retries = max(1, append_retries)
        self.soft_limit = soft_limit
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, session_id: str, branch_name: str) -> asyncio.Lock:
        key = (session_id, branch_name)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def append(self, session_id: str, create: SnapshotCreate) -> UISnapshot:
        """
        Append a snapshot to the tip of its branch.

        Args:
            session_id: Owning session
            create: Snapshot fields; ``parent_id`` defaults to the branch tip

        Returns:
            The committed snapshot

        Raises:
            SnapshotConflictError: If every attempt lost the race for the tip
            Exception: If the database operation fails for any other reason
        """
        branch = create.branch_name

        async with self._lock_for(session_id, branch):
            for attempt in range(1, self.append_retries + 1):
                tip = get_last_snapshot(session_id, branch)
                snapshot_index = tip["snapshot_index"] + 1 if tip else 0
                parent_id = create.parent_id or (str(tip["id"]) if tip else None)

                try:
                    row = insert_snapshot(
                        session_id=session_id,
                        message_id=create.message_id,
                        branch_name=branch,
                        snapshot_index=snapshot_index,
                        content=create.content,
                        parent_id=parent_id,
                        layout_intent=create.layout_intent.value if create.layout_intent else None,
                        metadata=create.metadata,
                    )
                except Exception as e:
                    if is_unique_violation(e):
                        logger.warning(
                            f"Lost race for index {snapshot_index} on '{branch}' "
                            f"(attempt {attempt}/{self.append_retries})",
                            extra={"session_id": session_id},
                        )
                        continue
                    logger.error(f"Failed to append snapshot: {e}", extra={"session_id": session_id})
                    raise

                if snapshot_index + 1 > self.soft_limit:
                    logger.warning(
                        f"Branch '{branch}' has {snapshot_index + 1} snapshots "
                        f"(soft limit {self.soft_limit})",
                        extra={"session_id": session_id},
                    )

                logger.info(
                    f"Saved UI snapshot {snapshot_index} on '{branch}'",
                    extra={"session_id": session_id},
                )
                return UISnapshot.from_row(row)

        raise SnapshotConflictError(
            f"Could not append to branch '{branch}' after {self.append_retries} attempts"
        )

    async def deactivate(self, session_id: str, snapshot_ids: list[str]) -> int:
        return deactivate_snapshots(session_id, snapshot_ids)

    async def snapshots(
        self,
        session_id: str,
        branch_name: str | None = None,
        include_inactive: bool = False,
    ) -> list[UISnapshot]:
        rows = list_snapshots(session_id, branch_name=branch_name, include_inactive=include_inactive)
        return [UISnapshot.from_row(row) for row in rows]

    async def load_history(self, session_id: str) -> BranchHistory:
        """Full branch history of a session, inactive snapshots included."""
        return BranchHistory(await self.snapshots(session_id, include_inactive=True))

    async def branches(self, session_id: str) -> BranchListResponse:
        history = await self.load_history(session_id)
        return BranchListResponse(branches=history.summaries(), fork_points=history.fork_points())


@lru_cache(maxsize=1)
def get_branch_store() -> BranchStore:
    """Get the process-wide branch store (cached singleton)."""
    settings = get_settings()
    return BranchStore(
        append_retries=settings.SNAPSHOT_APPEND_RETRIES,
        soft_limit=settings.SNAPSHOT_SOFT_LIMIT,
    )
