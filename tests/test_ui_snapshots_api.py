"""Tests for the UI snapshot history endpoints."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from artemis.core.branch_store import SnapshotConflictError
from artemis.core.schemas_snapshots import (
    BranchListResponse,
    BranchSummary,
    ForkPoint,
    UISnapshot,
)
from artemis.main import app

client = TestClient(app)

SESSION_ID = "44444444-4444-4444-4444-444444444444"
BASE = f"/v1/chat/sessions/{SESSION_ID}/ui-snapshots"


def _snapshot(index: int = 0, branch: str = "main") -> UISnapshot:
    return UISnapshot(
        id=f"snap-{index}",
        session_id=SESSION_ID,
        message_id=f"msg-{index}",
        branch_name=branch,
        content='{"version": 1, "sections": []}',
        snapshot_index=index,
    )


@pytest.fixture
def store():
    """Session exists; branch store is a mock."""
    mock_store = MagicMock()
    mock_store.append = AsyncMock(return_value=_snapshot(3))
    mock_store.snapshots = AsyncMock(return_value=[_snapshot(0), _snapshot(1)])
    mock_store.deactivate = AsyncMock(return_value=2)
    mock_store.branches = AsyncMock(
        return_value=BranchListResponse(
            branches=[BranchSummary(name="main", snapshot_count=2, active_count=1)],
            fork_points=[ForkPoint(message_id="msg-1", from_branch="main", to_branch="fork-9")],
        )
    )
    with patch("artemis.api.ui_snapshots.get_chat_session", return_value={"id": SESSION_ID}), \
         patch("artemis.api.ui_snapshots.get_branch_store", return_value=mock_store):
        yield mock_store


class TestCreateSnapshot:
    def test_create(self, store):
        response = client.post(
            BASE,
            json={"messageId": "msg-3", "content": "{}", "branchName": "main", "layoutIntent": "full"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["snapshotIndex"] == 3
        assert data["isActive"] is True

        session_id, create = store.append.call_args.args
        assert session_id == SESSION_ID
        assert create.message_id == "msg-3"
        assert create.layout_intent.value == "full"

    def test_client_cannot_choose_index(self, store):
        response = client.post(BASE, json={"messageId": "msg-3", "content": "{}", "snapshotIndex": 7})

        assert response.status_code == 422
        store.append.assert_not_called()

    def test_empty_content_rejected(self, store):
        response = client.post(BASE, json={"messageId": "msg-3", "content": ""})

        assert response.status_code == 422

    def test_conflict(self, store):
        store.append.side_effect = SnapshotConflictError("tip kept moving")

        response = client.post(BASE, json={"messageId": "msg-3", "content": "{}"})

        assert response.status_code == 409

    def test_storage_failure(self, store):
        store.append.side_effect = Exception("db down")

        response = client.post(BASE, json={"messageId": "msg-3", "content": "{}"})

        assert response.status_code == 500

    def test_unknown_session(self):
        with patch("artemis.api.ui_snapshots.get_chat_session", return_value=None):
            response = client.post(BASE, json={"messageId": "msg-3", "content": "{}"})

        assert response.status_code == 404


class TestListSnapshots:
    def test_list_active(self, store):
        response = client.get(BASE)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert [s["snapshotIndex"] for s in data["snapshots"]] == [0, 1]
        store.snapshots.assert_awaited_once_with(SESSION_ID, branch_name=None, include_inactive=False)

    def test_list_branch_with_inactive(self, store):
        response = client.get(BASE, params={"branch": "fork-9", "includeInactive": "true"})

        assert response.status_code == 200
        store.snapshots.assert_awaited_once_with(SESSION_ID, branch_name="fork-9", include_inactive=True)

    def test_branches(self, store):
        response = client.get(f"{BASE}/branches")

        assert response.status_code == 200
        data = response.json()
        assert data["branches"][0]["activeCount"] == 1
        assert data["forkPoints"][0] == {"messageId": "msg-1", "fromBranch": "main", "toBranch": "fork-9"}


class TestBulkDeactivate:
    def test_deactivate(self, store):
        response = client.patch(f"{BASE}/bulk", json={"snapshotIds": ["snap-2", "snap-3"]})

        assert response.status_code == 200
        assert response.json() == {"updated": 2}
        store.deactivate.assert_awaited_once_with(SESSION_ID, ["snap-2", "snap-3"])

    def test_empty_id_list_rejected(self, store):
        response = client.patch(f"{BASE}/bulk", json={"snapshotIds": []})

        assert response.status_code == 422

    def test_no_delete_endpoint(self, store):
        response = client.delete(f"{BASE}/snap-1")

        assert response.status_code in (404, 405)
