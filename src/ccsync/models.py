"""Canonical data models for sessions and sync state."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator, Sequence


def utc_now_iso() -> str:
    """Current time as an ISO 8601 UTC string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Message:
    """One entry of a Claude Code session log.

    Content is either plain text or a list of structured blocks
    (text, tool_use, tool_result).
    """

    uuid: str
    type: str  # user, assistant, summary, ...
    role: str
    content: str | list[Any] | None
    timestamp: str
    parent_uuid: str | None = None
    tool_use_result: Any = None
    session_id: str = ""
    cwd: str = ""
    version: str = ""
    usage: dict[str, Any] | None = None

    @property
    def is_user_text(self) -> bool:
        """True for a user-authored message with plain text content."""
        return self.type == "user" and isinstance(self.content, str)

    @property
    def is_summary(self) -> bool:
        return self.type == "summary"

    @classmethod
    def from_entry(cls, entry: dict[str, Any]) -> "Message":
        """Build a Message from one decoded JSONL line."""
        message = entry.get("message") or {}
        if not isinstance(message, dict):
            message = {}
        entry_type = entry.get("type", "")
        usage = message.get("usage")
        return cls(
            uuid=entry.get("uuid", ""),
            type=entry_type,
            role=message.get("role") or entry_type,
            content=message.get("content"),
            timestamp=entry.get("timestamp", ""),
            parent_uuid=entry.get("parentUuid"),
            tool_use_result=entry.get("toolUseResult"),
            session_id=entry.get("sessionId", ""),
            cwd=entry.get("cwd", ""),
            version=entry.get("version", ""),
            usage=usage if isinstance(usage, dict) else None,
        )


class InteractionGroup:
    """An ordered, non-empty run of messages forming one exchange."""

    def __init__(self, messages: Sequence[Message]) -> None:
        if not messages:
            raise ValueError("InteractionGroup requires at least one message")
        self._messages = tuple(messages)

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._messages

    @property
    def first(self) -> Message:
        return self._messages[0]

    @property
    def last(self) -> Message:
        return self._messages[-1]

    @property
    def anchor_id(self) -> str:
        """Id of the first message, used as the diff key."""
        return self.first.uuid

    @property
    def last_id(self) -> str:
        return self.last.uuid

    @property
    def has_anchor(self) -> bool:
        """False for the leading group that precedes the first user text."""
        return self.first.is_user_text

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InteractionGroup):
            return NotImplemented
        return self._messages == other._messages

    def __repr__(self) -> str:
        return f"InteractionGroup(anchor_id={self.anchor_id!r}, messages={len(self)})"


@dataclass
class SyncedGroup:
    """Last-known published shape of one interaction group."""

    remote_id: str
    anchor_message_id: str
    last_message_id: str
    message_count: int

    @classmethod
    def from_group(cls, remote_id: str, group: InteractionGroup) -> "SyncedGroup":
        return cls(
            remote_id=remote_id,
            anchor_message_id=group.anchor_id,
            last_message_id=group.last_id,
            message_count=len(group),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "remoteId": self.remote_id,
            "anchorMessageId": self.anchor_message_id,
            "lastMessageId": self.last_message_id,
            "messageCount": self.message_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncedGroup":
        # traceId/userMessageUuid/lastMessageUuid are the legacy key names
        return cls(
            remote_id=_first_key(data, "remoteId", "traceId"),
            anchor_message_id=_first_key(data, "anchorMessageId", "userMessageUuid"),
            last_message_id=_first_key(data, "lastMessageId", "lastMessageUuid"),
            message_count=int(data["messageCount"]),
        )


def _first_key(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    raise KeyError(keys[0])


@dataclass
class Fingerprint:
    """Change signal over session metadata."""

    session_id: str
    message_count: int
    last_message_time: str
    file_mod_time: str
    checksum: str


@dataclass
class SessionSyncState:
    """Persisted sync state for one session."""

    session_id: str
    last_sync_time: str
    fingerprint: str
    message_count: int
    last_message_time: str
    synced_groups: list[SyncedGroup] = field(default_factory=list)

    @classmethod
    def from_fingerprint(
        cls,
        fingerprint: Fingerprint,
        synced_groups: list[SyncedGroup] | None = None,
    ) -> "SessionSyncState":
        return cls(
            session_id=fingerprint.session_id,
            last_sync_time=utc_now_iso(),
            fingerprint=fingerprint.checksum,
            message_count=fingerprint.message_count,
            last_message_time=fingerprint.last_message_time,
            synced_groups=list(synced_groups or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "lastSyncTime": self.last_sync_time,
            "fingerprint": self.fingerprint,
            "messageCount": self.message_count,
            "lastMessageTime": self.last_message_time,
            "syncedGroups": [group.to_dict() for group in self.synced_groups],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionSyncState":
        # Older state files carry no syncedGroups; every group is recreated
        groups = data.get("syncedGroups") or []
        return cls(
            session_id=data["sessionId"],
            last_sync_time=data.get("lastSyncTime", ""),
            fingerprint=data.get("fingerprint", ""),
            message_count=int(data.get("messageCount", 0)),
            last_message_time=data.get("lastMessageTime", ""),
            synced_groups=[SyncedGroup.from_dict(group) for group in groups],
        )


@dataclass
class SyncStateFile:
    """The whole persisted store."""

    sessions: dict[str, SessionSyncState] = field(default_factory=dict)
    last_updated: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions": {
                session_id: session.to_dict() for session_id, session in self.sessions.items()
            },
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncStateFile":
        sessions = data.get("sessions", {})
        return cls(
            sessions={
                session_id: SessionSyncState.from_dict(session)
                for session_id, session in sessions.items()
            },
            last_updated=data.get("lastUpdated") or utc_now_iso(),
        )
