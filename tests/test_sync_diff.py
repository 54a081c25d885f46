"""Tests for change detection."""

from ccsync.models import InteractionGroup, Message, SyncedGroup
from ccsync.sync.diff import Create, Update, diff_groups, partition_actions


def msg(uuid: str, kind: str = "assistant") -> Message:
    if kind == "user":
        return Message(uuid=uuid, type="user", role="user", content="prompt", timestamp="")
    return Message(uuid=uuid, type="assistant", role="assistant", content="reply", timestamp="")


def group(*uuids: str) -> InteractionGroup:
    first, *rest = uuids
    return InteractionGroup([msg(first, "user")] + [msg(u) for u in rest])


def synced_for(g: InteractionGroup, remote_id: str) -> SyncedGroup:
    return SyncedGroup.from_group(remote_id, g)


class TestDiffGroups:
    """Tests for diff_groups."""

    def test_everything_new_is_created(self) -> None:
        """Groups with no recorded counterpart are created."""
        groups = [group("u1", "a1"), group("u2")]

        actions = diff_groups(groups, [])

        assert actions == [Create(groups[0]), Create(groups[1])]

    def test_unchanged_groups_produce_nothing(self) -> None:
        """Groups matching their recorded shape need no action."""
        groups = [group("u1", "a1"), group("u2", "a2")]
        recorded = [synced_for(g, f"r{i}") for i, g in enumerate(groups)]

        assert diff_groups(groups, recorded) == []

    def test_grown_group_is_updated_with_remote_id(self) -> None:
        """A grown group is updated under its recorded remote id."""
        recorded = [synced_for(group("u1", "a1"), "remote-1")]
        grown = group("u1", "a1", "a2")

        actions = diff_groups([grown], recorded)

        assert actions == [Update(grown, "remote-1")]

    def test_same_count_different_last_is_updated(self) -> None:
        """A changed last message triggers an update."""
        recorded = [synced_for(group("u1", "a1"), "remote-1")]
        changed = group("u1", "b1")

        assert diff_groups([changed], recorded) == [Update(changed, "remote-1")]

    def test_same_last_different_count_is_updated(self) -> None:
        """A changed message count triggers an update."""
        recorded = [SyncedGroup("remote-1", "u1", "a1", 5)]
        current = group("u1", "a1")

        assert diff_groups([current], recorded) == [Update(current, "remote-1")]

    def test_recorded_groups_without_counterpart_are_ignored(self) -> None:
        """Remote records are never deleted."""
        recorded = [synced_for(group("gone", "x"), "r-gone")]

        assert diff_groups([], recorded) == []

    def test_preserves_current_order(self) -> None:
        """Actions follow the order of the current groups."""
        g1, g2, g3 = group("u1", "a1"), group("u2"), group("u3")
        recorded = [synced_for(group("u1"), "r1")]

        actions = diff_groups([g1, g2, g3], recorded)

        assert actions == [Update(g1, "r1"), Create(g2), Create(g3)]

    def test_is_idempotent_after_recording(self) -> None:
        """Recording the result of a diff makes the next diff empty."""
        groups = [group("u1", "a1", "a2"), group("u2", "a3")]
        first = diff_groups(groups, [])
        recorded = [synced_for(action.group, f"r{i}") for i, action in enumerate(first)]

        assert diff_groups(groups, recorded) == []


class TestPartitionActions:
    """Tests for partition_actions."""

    def test_splits_by_kind_keeping_order(self) -> None:
        """Creates and updates are separated, each keeping its order."""
        g1, g2, g3 = group("u1"), group("u2"), group("u3")
        actions = [Update(g1, "r1"), Create(g2), Update(g3, "r3")]

        creates, updates = partition_actions(actions)

        assert creates == [Create(g2)]
        assert updates == [Update(g1, "r1"), Update(g3, "r3")]

    def test_empty(self) -> None:
        """No actions split into two empty lists."""
        assert partition_actions([]) == ([], [])
