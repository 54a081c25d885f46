"""Change detection between current groups and recorded sync state."""

from dataclasses import dataclass
from typing import Sequence

from ccsync.models import InteractionGroup, SyncedGroup


@dataclass(frozen=True)
class Create:
    """Group never published before."""

    group: InteractionGroup


@dataclass(frozen=True)
class Update:
    """Group published before whose content has grown or changed."""

    group: InteractionGroup
    remote_id: str


GroupAction = Create | Update


def diff_groups(
    current: Sequence[InteractionGroup],
    synced: Sequence[SyncedGroup],
) -> list[GroupAction]:
    """Decide which groups must be created or updated remotely.

    Groups are matched on their anchor id. A recorded group with no
    current counterpart yields nothing; remote records are never deleted.

    Args:
        current: Groups computed from the log, in log order
        synced: Groups recorded at the last successful sync

    Returns:
        Actions in current-group order
    """
    by_anchor = {group.anchor_message_id: group for group in synced}
    actions: list[GroupAction] = []

    for group in current:
        prior = by_anchor.get(group.anchor_id)
        if prior is None:
            actions.append(Create(group))
        elif prior.last_message_id != group.last_id or prior.message_count != len(group):
            actions.append(Update(group, prior.remote_id))

    return actions


def partition_actions(actions: Sequence[GroupAction]) -> tuple[list[Create], list[Update]]:
    creates = [action for action in actions if isinstance(action, Create)]
    updates = [action for action in actions if isinstance(action, Update)]
    return creates, updates
