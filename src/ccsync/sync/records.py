"""Conversion of interaction groups into remote records."""

from dataclasses import asdict, dataclass, field
from pathlib import PurePosixPath
from typing import Any

import uuid6

from ccsync.models import InteractionGroup, Message
from ccsync.sessions.reader import parse_timestamp, truncate

NAME_LENGTH = 100
UNKNOWN_PROJECT = "unknown-project"


def new_record_id() -> str:
    """Generate a time-ordered UUIDv7 string for a new record."""
    return str(uuid6.uuid7())


@dataclass
class InteractionRecord:
    """One interaction group as published to the record store."""

    id: str
    session_id: str
    thread_id: str
    project_name: str
    name: str
    input: str
    output: str
    start_ts: int
    end_ts: int
    message_count: int
    anchor_message_id: str
    last_message_id: str
    working_directory: str = ""
    claude_version: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    tags: list[str] = field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        return asdict(self)


def build_record(
    group: InteractionGroup,
    record_id: str,
    project_name: str = "Claude Code",
) -> InteractionRecord:
    """Build the record published for a group.

    The leading group that precedes the first user prompt has no input;
    it is named after its first message instead.

    Args:
        group: Interaction group to convert
        record_id: Remote id to assign
        project_name: Remote project the record belongs to

    Returns:
        InteractionRecord for the group
    """
    first = group.first
    if group.has_anchor:
        user_input = first.content
        replies = group.messages[1:]
        name = truncate(user_input, NAME_LENGTH)
    else:
        user_input = ""
        replies = group.messages
        name = f"({first.type or 'unknown'} without prompt)"

    input_tokens, output_tokens = _total_tokens(group)
    working_dir_name = _project_from_cwd(first.cwd)

    return InteractionRecord(
        id=record_id,
        session_id=first.session_id,
        thread_id=first.session_id,
        project_name=project_name,
        name=name,
        input=user_input,
        output=build_output(replies),
        start_ts=parse_timestamp(first.timestamp),
        end_ts=parse_timestamp(group.last.timestamp or first.timestamp),
        message_count=len(group),
        anchor_message_id=group.anchor_id,
        last_message_id=group.last_id,
        working_directory=first.cwd,
        claude_version=first.version,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        tags=["claude-code", f"project:{working_dir_name}"],
    )


def record_patch(record: InteractionRecord) -> dict[str, Any]:
    """Fields sent when updating an existing record."""
    document = record.to_document()
    document.pop("id")
    return document


def build_output(messages: tuple[Message, ...]) -> str:
    """Join assistant text and tool call markers in log order."""
    parts: list[str] = []
    for message in messages:
        if message.type != "assistant":
            continue
        content = message.content
        if isinstance(content, str):
            parts.append(content)
        elif isinstance(content, list):
            for block in content:
                if not isinstance(block, dict):
                    continue
                block_type = block.get("type")
                if block_type == "text":
                    parts.append(block.get("text", ""))
                elif block_type == "tool_use":
                    parts.append(f"[Tool: {block.get('name', 'unknown')}]")
    return "\n\n".join(part for part in parts if part)


def _total_tokens(group: InteractionGroup) -> tuple[int, int]:
    input_tokens = 0
    output_tokens = 0
    for message in group:
        if message.usage:
            input_tokens += message.usage.get("input_tokens") or 0
            output_tokens += message.usage.get("output_tokens") or 0
    return input_tokens, output_tokens


def _project_from_cwd(cwd: str) -> str:
    if not cwd:
        return UNKNOWN_PROJECT
    return PurePosixPath(cwd).name or UNKNOWN_PROJECT
