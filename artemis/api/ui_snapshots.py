"""UI snapshot history endpoints.

Snapshots are append-only: there is a create, list and bulk-deactivate
endpoint, and deliberately no delete.
"""

from fastapi import APIRouter, HTTPException, Query

from artemis.core.branch_store import SnapshotConflictError, get_branch_store
from artemis.core.logging import get_logger
from artemis.core.schemas_snapshots import (
    BranchListResponse,
    BulkDeactivateRequest,
    BulkDeactivateResponse,
    SnapshotCreate,
    SnapshotListResponse,
    UISnapshot,
)
from artemis.db.chat_sessions import get_chat_session

logger = get_logger(__name__)

router = APIRouter()


def _require_session(session_id: str) -> None:
    try:
        session = get_chat_session(session_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail="Failed to load session") from e
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")


@router.post("/chat/sessions/{session_id}/ui-snapshots", response_model=UISnapshot, status_code=201)
async def create_snapshot(session_id: str, body: SnapshotCreate) -> UISnapshot:
    """
    Commit a UI snapshot at the tip of its branch.

    The index is assigned server-side; ``parentId`` defaults to the current tip.
    """
    _require_session(session_id)

    try:
        return await get_branch_store().append(session_id, body)
    except SnapshotConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Failed to save snapshot: {e}", extra={"session_id": session_id})
        raise HTTPException(status_code=500, detail="Failed to save snapshot") from e


@router.get("/chat/sessions/{session_id}/ui-snapshots", response_model=SnapshotListResponse)
async def list_ui_snapshots(
    session_id: str,
    branch: str | None = Query(None, description="Restrict to one branch"),
    include_inactive: bool = Query(False, alias="includeInactive", description="Include superseded snapshots"),
) -> SnapshotListResponse:
    """List snapshots ordered by branch and index (active ones only by default)."""
    _require_session(session_id)

    try:
        snapshots = await get_branch_store().snapshots(
            session_id, branch_name=branch, include_inactive=include_inactive
        )
    except Exception as e:
        logger.error(f"Failed to list snapshots: {e}", extra={"session_id": session_id})
        raise HTTPException(status_code=500, detail="Failed to list snapshots") from e

    return SnapshotListResponse(snapshots=snapshots, total=len(snapshots))


@router.get("/chat/sessions/{session_id}/ui-snapshots/branches", response_model=BranchListResponse)
async def list_branches(session_id: str) -> BranchListResponse:
    """Branch summaries plus the messages where branches diverge."""
    _require_session(session_id)

    try:
        return await get_branch_store().branches(session_id)
    except Exception as e:
        logger.error(f"Failed to list branches: {e}", extra={"session_id": session_id})
        raise HTTPException(status_code=500, detail="Failed to list branches") from e


@router.patch("/chat/sessions/{session_id}/ui-snapshots/bulk", response_model=BulkDeactivateResponse)
async def bulk_deactivate(session_id: str, body: BulkDeactivateRequest) -> BulkDeactivateResponse:
    """Mark snapshots superseded by a fork as inactive."""
    _require_session(session_id)

    try:
        updated = await get_branch_store().deactivate(session_id, body.snapshot_ids)
    except Exception as e:
        logger.error(f"Failed to deactivate snapshots: {e}", extra={"session_id": session_id})
        raise HTTPException(status_code=500, detail="Failed to update snapshots") from e

    return BulkDeactivateResponse(updated=updated)
