"""Segmentation of a session log into interaction groups."""

from typing import Iterable

from ccsync.models import InteractionGroup, Message


def group_messages(messages: Iterable[Message]) -> list[InteractionGroup]:
    """Split messages into interaction groups.

    A group opens at every user message with plain text content and
    collects the assistant replies, tool calls and tool results that
    follow. Summary entries are dropped.

    Anything logged before the first user text message forms a leading
    group of its own. It is kept so its content still gets published,
    even though it has no user input to anchor on.
    """
    groups: list[InteractionGroup] = []
    current: list[Message] = []

    for message in messages:
        if message.is_summary:
            continue

        if message.is_user_text:
            if current:
                groups.append(InteractionGroup(current))
            current = [message]
        else:
            current.append(message)

    if current:
        groups.append(InteractionGroup(current))

    return groups
