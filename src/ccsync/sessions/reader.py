"""Reader for Claude Code session logs.

Claude Code stores conversations as JSONL files at:
    ~/.claude/projects/<encoded-project-path>/<session-id>.jsonl

Each line is a JSON object with:
- type: "user", "assistant", "summary", or another bookkeeping type
- uuid / parentUuid: message identifiers
- message.role: "user" or "assistant"
- message.content: string or array of content blocks
- timestamp: ISO 8601 timestamp
- sessionId: UUID session identifier
- cwd: Working directory (project path)
- toolUseResult: structured tool result payload (user tool results only)
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from ccsync.logging import get_logger
from ccsync.models import Message

logger = get_logger("reader")

DESCRIPTION_LENGTH = 100


@dataclass
class SessionInfo:
    """Listing metadata for one session file."""

    session_id: str
    project_path: str
    description: str
    timestamp: str
    message_count: int
    path: Path


def parse_session(path: Path) -> list[Message]:
    """Parse a session log into messages.

    Every decodable line becomes a Message, summaries included; grouping
    decides what to keep.

    Args:
        path: Path to the JSONL file

    Returns:
        Messages in log order
    """
    messages: list[Message] = []

    with open(path, encoding="utf-8", errors="replace") as f:
        for line_number, line in enumerate(f, start=1):
            line_text = line.strip()
            if not line_text:
                continue

            try:
                entry = json.loads(line_text)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed line: path=%s line=%d", path.name, line_number)
                continue

            if not isinstance(entry, dict):
                continue

            messages.append(Message.from_entry(entry))

    return messages


def projects_dir(claude_data_dir: Path) -> Path:
    return claude_data_dir / "projects"


def encode_project_path(project_path: str) -> str:
    """Encode a filesystem path the way Claude Code names project dirs."""
    return re.sub(r"[/\\]", "-", project_path)


def find_session_file(session_id: str, claude_data_dir: Path) -> Path | None:
    """Locate the log file for a session across all project directories.

    Args:
        session_id: Session UUID
        claude_data_dir: Claude data directory (usually ~/.claude)

    Returns:
        Path to the session file, or None if not found
    """
    base_path = projects_dir(claude_data_dir)
    if not base_path.exists():
        return None

    for project_dir in sorted(base_path.iterdir()):
        if not project_dir.is_dir():
            continue
        candidate = project_dir / f"{session_id}.jsonl"
        if candidate.exists():
            return candidate

    return None


def list_sessions(claude_data_dir: Path, project: str | None = None) -> list[SessionInfo]:
    """List sessions, newest first.

    Args:
        claude_data_dir: Claude data directory
        project: Optional project path filter, matched against the
            encoded project directory name

    Returns:
        SessionInfo entries sorted by timestamp descending
    """
    base_path = projects_dir(claude_data_dir)
    if not base_path.exists():
        return []

    project_filter = encode_project_path(project) if project else None
    sessions: list[SessionInfo] = []

    for project_dir in sorted(base_path.iterdir()):
        if not project_dir.is_dir():
            continue
        if project_filter and project_filter not in project_dir.name:
            continue

        for session_file in sorted(project_dir.glob("*.jsonl")):
            try:
                sessions.append(_session_info(session_file, project_dir.name))
            except (OSError, ValueError) as e:
                logger.warning("Could not read session: path=%s error=%s", session_file, e)

    sessions.sort(key=lambda s: _sort_key(s.timestamp), reverse=True)
    return sessions


def _session_info(session_file: Path, project_dir_name: str) -> SessionInfo:
    text = session_file.read_text(encoding="utf-8", errors="replace")
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise ValueError("Empty session file")

    first = json.loads(lines[0])
    project_path = project_dir_name.replace("-", "/")

    if first.get("type") == "summary":
        # Summary-only files carry no usable timestamp
        return SessionInfo(
            session_id=session_file.stem,
            project_path=project_path,
            description=first.get("summary") or "Summary file",
            timestamp=file_mod_time(session_file),
            message_count=len(lines),
            path=session_file,
        )

    timestamp = first.get("timestamp")
    if not timestamp or parse_timestamp(timestamp) == 0:
        raise ValueError(f"Invalid timestamp in first message: {timestamp!r}")

    description = "No user message found"
    for line in lines:
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        message = Message.from_entry(entry)
        if message.is_user_text:
            description = truncate(message.content, DESCRIPTION_LENGTH)
            break

    return SessionInfo(
        session_id=session_file.stem,
        project_path=project_path,
        description=description,
        timestamp=timestamp,
        message_count=len(lines),
        path=session_file,
    )


def _sort_key(timestamp: str) -> float:
    if timestamp.endswith("Z"):
        timestamp = timestamp[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(timestamp).timestamp()
    except ValueError:
        return 0.0


def parse_timestamp(timestamp_str: str | None) -> int:
    """Parse ISO 8601 timestamp to Unix timestamp.

    Args:
        timestamp_str: ISO 8601 timestamp string (e.g., "2026-01-26T00:38:34.590Z")

    Returns:
        Unix timestamp in seconds, 0 when missing or malformed
    """
    if not timestamp_str:
        return 0

    try:
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        dt = datetime.fromisoformat(timestamp_str)
        return int(dt.timestamp())
    except (ValueError, AttributeError):
        return 0


def file_mod_time(path: Path) -> str:
    """File modification time as an ISO 8601 UTC string."""
    mtime = path.stat().st_mtime
    dt = datetime.fromtimestamp(mtime, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."
