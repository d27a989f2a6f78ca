"""Tests for the branch/fork model over UI snapshots."""

import pytest

from artemis.core.branching import (
    LIVE,
    BranchHistory,
    BranchIntegrityError,
    ConversationCursor,
    new_branch_name,
)
from artemis.core.schemas_snapshots import UISnapshot


def _snap(index: int, branch: str = "main", message_id: str | None = None, active: bool = True) -> UISnapshot:
    return UISnapshot(
        id=f"{branch}-{index}",
        session_id="s1",
        message_id=message_id or f"m{index}",
        branch_name=branch,
        content=f"ui {branch} {index}",
        snapshot_index=index,
        is_active=active,
    )


def _history(count: int = 4) -> BranchHistory:
    return BranchHistory([_snap(i) for i in range(count)])


# ──────────────────────────────────────────────────────────────────────
# Contiguity
# ──────────────────────────────────────────────────────────────────────


class TestContiguity:
    def test_constructor_sorts_rows(self):
        history = BranchHistory([_snap(2), _snap(0), _snap(1)])

        assert [s.snapshot_index for s in history.snapshots("main")] == [0, 1, 2]

    def test_gap_rejected(self):
        history = _history(2)

        with pytest.raises(BranchIntegrityError):
            history.append(_snap(3))

    def test_duplicate_index_rejected(self):
        history = _history(2)

        with pytest.raises(BranchIntegrityError):
            history.append(_snap(1))

    def test_next_append_counts_inactive_snapshots(self):
        history = BranchHistory([_snap(0), _snap(1, active=False)])

        assert history.next_append("main") == (2, "main-1")
        assert history.length("main") == 1

    def test_empty_branch_next_append(self):
        assert BranchHistory().next_append("fork-1") == (0, None)


# ──────────────────────────────────────────────────────────────────────
# Navigation
# ──────────────────────────────────────────────────────────────────────


class TestNavigation:
    def test_back_from_live_pins_newest(self):
        cursor = _history().back(ConversationCursor())

        assert cursor.snapshot_index == 3

    def test_back_stops_at_zero(self):
        history = _history()
        cursor = ConversationCursor("main", 0)

        assert history.back(cursor) == cursor
        assert history.can_go_back(cursor) is False

    def test_back_on_empty_branch_stays_live(self):
        cursor = BranchHistory().back(ConversationCursor())

        assert cursor.is_live

    def test_forward_past_tip_returns_live(self):
        history = _history()

        cursor = history.forward(ConversationCursor("main", 2))
        assert cursor.snapshot_index == 3

        cursor = history.forward(cursor)
        assert cursor.snapshot_index == LIVE

    def test_forward_when_live_is_noop(self):
        cursor = ConversationCursor()

        assert _history().forward(cursor) == cursor
        assert _history().can_go_forward(cursor) is False

    def test_snapshot_at(self):
        history = _history()

        assert history.snapshot_at(ConversationCursor()).id == "main-3"
        assert history.snapshot_at(ConversationCursor("main", 1)).id == "main-1"
        assert history.snapshot_at(ConversationCursor("main", 9)) is None
        assert history.snapshot_at(ConversationCursor("fork-1")) is None


# ──────────────────────────────────────────────────────────────────────
# Forking
# ──────────────────────────────────────────────────────────────────────


class TestFork:
    def test_no_fork_when_live_or_at_tip(self):
        history = _history()

        assert history.plan_fork(ConversationCursor()) is None
        assert history.plan_fork(ConversationCursor("main", 3)) is None

    def test_plan_fork_before_tip(self):
        plan = _history().plan_fork(ConversationCursor("main", 1), now_ms=1234)

        assert plan.new_branch == "fork-1234"
        assert plan.source_branch == "main"
        assert plan.fork_index == 1
        assert plan.deactivate_ids == ["main-2", "main-3"]

    def test_apply_fork_never_touches_earlier_snapshots(self):
        history = _history()
        before = history.snapshots("main")[:2]

        plan = history.plan_fork(ConversationCursor("main", 1), now_ms=1234)
        cursor = history.apply_fork(plan)

        after = history.snapshots("main")
        assert after[:2] == before
        assert [s.is_active for s in after] == [True, True, False, False]
        assert [s.snapshot_index for s in after] == [0, 1, 2, 3]
        assert cursor == ConversationCursor("fork-1234", LIVE)
        assert history.has_branch("fork-1234")
        assert history.length("main") == 2

    def test_writes_after_fork_start_at_zero_on_new_branch(self):
        history = _history()
        cursor = history.apply_fork(history.plan_fork(ConversationCursor("main", 1), now_ms=1234))

        history.append(_snap(0, branch=cursor.branch_name, message_id="m4"))

        assert history.length("fork-1234") == 1
        assert history.latest("fork-1234").message_id == "m4"
        assert history.branch_names == ["main", "fork-1234"]

    def test_new_branch_name_uses_clock(self):
        assert new_branch_name(42) == "fork-42"
        assert new_branch_name().startswith("fork-")


class TestEditFork:
    """Rewind, then edit an earlier message."""

    ORDER = ["m0", "m1", "m2", "m3"]

    def test_edit_earlier_message_deactivates_later_answers(self):
        history = _history()
        cursor = history.back(history.back(history.back(ConversationCursor())))
        assert cursor.snapshot_index == 1

        plan = history.plan_edit_fork(cursor, "m1", self.ORDER, now_ms=99)

        assert plan.deactivate_ids == ["main-2", "main-3"]
        assert plan.fork_index == 1

        new_cursor = history.apply_fork(plan)
        history.append(_snap(0, branch=new_cursor.branch_name, message_id="m1-edited"))

        assert [s.message_id for s in history.active_snapshots("main")] == ["m0", "m1"]
        assert history.latest("fork-99").message_id == "m1-edited"
        assert len(history.snapshots("main")) == 4

    def test_edit_first_message_keeps_nothing(self):
        plan = _history().plan_edit_fork(ConversationCursor(), "m0", self.ORDER, now_ms=1)

        assert plan.deactivate_ids == ["main-1", "main-2", "main-3"]
        assert plan.fork_index == 0

    def test_edit_latest_message_while_live_needs_no_fork(self):
        assert _history().plan_edit_fork(ConversationCursor(), "m3", self.ORDER) is None

    def test_edit_unknown_message(self):
        assert _history().plan_edit_fork(ConversationCursor(), "zzz", self.ORDER) is None


# ──────────────────────────────────────────────────────────────────────
# Branch discovery
# ──────────────────────────────────────────────────────────────────────


class TestBranchDiscovery:
    def _forked(self) -> BranchHistory:
        history = _history(3)
        history.apply_fork(history.plan_fork(ConversationCursor("main", 0), now_ms=7))
        history.append(_snap(0, branch="fork-7", message_id="m1"))
        return history

    def test_fork_points(self):
        points = self._forked().fork_points()

        assert len(points) == 1
        assert points[0].message_id == "m1"
        assert points[0].from_branch == "main"
        assert points[0].to_branch == "fork-7"

    def test_branch_family_only_counts_active(self):
        history = self._forked()

        assert history.branch_family("m1") == ["fork-7"]
        assert history.branch_family("m0") == ["main"]

    def test_switch_to_branch(self):
        history = self._forked()

        assert history.switch_to_branch("m1", "fork-7") == ConversationCursor("fork-7", 0)
        assert history.switch_to_branch("m2", "fork-7") is None

    def test_summaries(self):
        summaries = {s.name: s for s in self._forked().summaries()}

        assert summaries["main"].snapshot_count == 3
        assert summaries["main"].active_count == 1
        assert summaries["fork-7"].active_count == 1


# ──────────────────────────────────────────────────────────────────────
# Navigation across a tombstoned stretch
# ──────────────────────────────────────────────────────────────────────


class TestIndicesAfterTombstones:
    """main has indices 0, 2, 3 active and 1 inactive."""

    def _gapped(self) -> BranchHistory:
        return BranchHistory(
            [
                _snap(0),
                _snap(1, active=False),
                _snap(2, message_id="m9"),
                _snap(3, message_id="m10"),
            ]
        )

    def test_switch_to_branch_shows_the_snapshot(self):
        history = self._gapped()

        cursor = history.switch_to_branch("m9", "main")

        assert cursor == ConversationCursor("main", 2)
        assert history.snapshot_at(cursor).message_id == "m9"

    def test_navigation_skips_inactive_snapshots(self):
        history = self._gapped()

        cursor = history.back(ConversationCursor())
        assert cursor.snapshot_index == 3
        cursor = history.back(cursor)
        assert cursor.snapshot_index == 2
        cursor = history.back(cursor)
        assert cursor.snapshot_index == 0
        assert history.can_go_back(cursor) is False

        cursor = history.forward(cursor)
        assert cursor.snapshot_index == 2
        assert history.forward(history.forward(cursor)).is_live

    def test_fork_keeps_the_snapshot_on_screen(self):
        history = self._gapped()
        cursor = history.switch_to_branch("m9", "main")

        plan = history.plan_fork(cursor, now_ms=5)

        assert plan.deactivate_ids == ["main-3"]
        history.apply_fork(plan)
        assert history.snapshot_at(cursor).is_active

    def test_send_fork_switch_back_send(self):
        history = _history(2)

        # Rewind to index 0 and send: fork
        cursor = history.back(history.back(ConversationCursor()))
        cursor = history.apply_fork(history.plan_fork(cursor, now_ms=1))
        history.append(_snap(0, branch=cursor.branch_name, message_id="m5"))

        # Back to main, forward to LIVE, send: appends after the inactive index 1
        cursor = history.switch_to_branch("m0", "main")
        cursor = history.forward(cursor)
        assert cursor.is_live
        index, _ = history.next_append("main")
        history.append(_snap(index, message_id="m6"))

        assert [s.snapshot_index for s in history.snapshots("main")] == [0, 1, 2]
        assert [s.snapshot_index for s in history.snapshots("main")] == list(range(len(history.snapshots("main"))))

        cursor = history.switch_to_branch("m6", "main")
        assert history.snapshot_at(cursor).message_id == "m6"
        assert history.needs_fork(cursor) is False

        cursor = history.back(cursor)
        assert history.snapshot_at(cursor).message_id == "m0"
        before = [s.model_copy() for s in history.snapshots("main") if s.snapshot_index <= cursor.snapshot_index]

        plan = history.plan_fork(cursor, now_ms=2)
        history.apply_fork(plan)

        assert plan.deactivate_ids == ["main-2"]
        after = [s for s in history.snapshots("main") if s.snapshot_index <= cursor.snapshot_index]
        assert after == before
