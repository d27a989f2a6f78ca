"""UI snapshot database operations.

Rows are append-only. The table's unique key on
(session_id, branch_name, snapshot_index) is what makes concurrent appends to
the same branch safe: the losing writer gets a unique violation and retries
against the new tip.
"""

from typing import Any

from artemis.core.logging import get_logger
from artemis.db.supabase_client import get_supabase

logger = get_logger(__name__)

UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: BaseException) -> bool:
    """True when a PostgREST error reports a unique-constraint violation."""
    code = getattr(exc, "code", None)
    if code == UNIQUE_VIOLATION:
        return True
    return UNIQUE_VIOLATION in str(exc) and "duplicate key" in str(exc)


def get_last_snapshot(session_id: str, branch_name: str) -> dict[str, Any] | None:
    """
    Get the tip of a branch (highest snapshot_index, inactive rows included).

    Returns:
        Snapshot row, or None for an empty branch
    """
    supabase = get_supabase()

    try:
        response = (
            supabase.table("ui_snapshots")
            .select("id, snapshot_index")
            .eq("session_id", session_id)
            .eq("branch_name", branch_name)
            .order("snapshot_index", desc=True)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    except Exception as e:
        logger.error(
            f"Failed to read tip of branch '{branch_name}': {e}",
            extra={"session_id": session_id},
        )
        raise


def insert_snapshot(
    session_id: str,
    message_id: str,
    branch_name: str,
    snapshot_index: int,
    content: str,
    parent_id: str | None = None,
    layout_intent: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Insert one snapshot row.

    Raises:
        Exception: If the insert fails (including unique violations, which
            callers detect with is_unique_violation)
    """
    supabase = get_supabase()

    response = (
        supabase.table("ui_snapshots")
        .insert(
            {
                "session_id": session_id,
                "message_id": message_id,
                "branch_name": branch_name,
                "snapshot_index": snapshot_index,
                "parent_id": parent_id,
                "content": content,
                "layout_intent": layout_intent,
                "metadata": metadata or {},
                "is_active": True,
            }
        )
        .execute()
    )

    if not response.data:
        raise ValueError("No data returned from insert_snapshot")

    return response.data[0]


def list_snapshots(
    session_id: str,
    branch_name: str | None = None,
    include_inactive: bool = False,
) -> list[dict[str, Any]]:
    """
    List snapshots of a session ordered by branch then index.

    Args:
        session_id: Session id
        branch_name: Restrict to one branch
        include_inactive: Include snapshots superseded by a fork

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        query = supabase.table("ui_snapshots").select("*").eq("session_id", session_id)
        if branch_name:
            query = query.eq("branch_name", branch_name)
        if not include_inactive:
            query = query.eq("is_active", True)

        response = query.order("branch_name").order("snapshot_index").execute()
        return response.data or []

    except Exception as e:
        logger.error(f"Failed to list snapshots: {e}", extra={"session_id": session_id})
        raise


def deactivate_snapshots(session_id: str, snapshot_ids: list[str]) -> int:
    """
    Mark snapshots inactive. Rows are never deleted.

    Args:
        session_id: Owning session (ids from other sessions are ignored)
        snapshot_ids: Snapshots superseded by a fork

    Returns:
        Number of rows updated

    Raises:
        Exception: If database operation fails
    """
    if not snapshot_ids:
        return 0

    supabase = get_supabase()

    try:
        response = (
            supabase.table("ui_snapshots")
            .update({"is_active": False})
            .eq("session_id", session_id)
            .in_("id", snapshot_ids)
            .execute()
        )
        updated = len(response.data or [])
        logger.info(
            f"Deactivated {updated} snapshots",
            extra={"session_id": session_id, "requested": len(snapshot_ids)},
        )
        return updated

    except Exception as e:
        logger.error(f"Failed to deactivate snapshots: {e}", extra={"session_id": session_id})
        raise
