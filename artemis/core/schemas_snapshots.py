"""Pydantic models for UI snapshots and branch history."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from artemis.core.schemas_orchestration import LayoutIntent

MAIN_BRANCH = "main"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UISnapshot(CamelModel):
    """
    One committed version of the generated UI for a turn.

    Immutable once written apart from ``is_active``, which flips to False when
    a fork supersedes the snapshot.
    """

    id: str
    session_id: str
    message_id: str
    branch_name: str = MAIN_BRANCH
    parent_id: str | None = None
    content: str
    layout_intent: LayoutIntent | None = None
    snapshot_index: int = Field(..., ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "UISnapshot":
        """Build from a ``ui_snapshots`` table row (snake_case columns)."""
        return cls.model_validate(
            {
                "id": str(row["id"]),
                "session_id": str(row["session_id"]),
                "message_id": str(row["message_id"]),
                "branch_name": row.get("branch_name") or MAIN_BRANCH,
                "parent_id": str(row["parent_id"]) if row.get("parent_id") else None,
                "content": row["content"],
                "layout_intent": row.get("layout_intent"),
                "snapshot_index": row["snapshot_index"],
                "metadata": row.get("metadata") or {},
                "is_active": row.get("is_active", True),
                "created_at": row.get("created_at"),
            }
        )


class SnapshotCreate(CamelModel):
    """Request body for committing a snapshot."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    message_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    branch_name: str = Field(default=MAIN_BRANCH, min_length=1, max_length=100)
    parent_id: str | None = None
    layout_intent: LayoutIntent | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SnapshotListResponse(CamelModel):
    snapshots: list[UISnapshot]
    total: int


class BranchSummary(CamelModel):
    name: str
    snapshot_count: int
    active_count: int
    last_update: datetime | None = None


class ForkPoint(CamelModel):
    """A message answered on two different branches."""

    message_id: str
    from_branch: str
    to_branch: str


class BranchListResponse(CamelModel):
    branches: list[BranchSummary]
    fork_points: list[ForkPoint]


class BulkDeactivateRequest(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    snapshot_ids: list[str] = Field(..., min_length=1)


class BulkDeactivateResponse(CamelModel):
    updated: int
