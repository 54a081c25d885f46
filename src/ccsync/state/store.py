"""Sync state persistence in a JSON file.

The whole store is one JSON document rewritten on every mutation. Saves
go through a sibling temp file and an atomic rename, so readers see
either the previous or the next version, never a partial one.
"""

import asyncio
import hashlib
import json
import os
from pathlib import Path
from typing import Any, Callable, Sequence

from ccsync.errors import StateCorrupt
from ccsync.logging import get_logger
from ccsync.models import (
    Fingerprint,
    Message,
    SessionSyncState,
    SyncedGroup,
    SyncStateFile,
    utc_now_iso,
)
from ccsync.sessions.reader import file_mod_time
from ccsync.state.lock import LockManager

logger = get_logger("state")

STATE_FILENAME = "sessions.json"
LOCK_FILENAME = "sessions.lock"


def compute_fingerprint(
    session_id: str,
    message_count: int,
    last_message_time: str,
    file_mod_time: str,
) -> str:
    """SHA-256 hex digest over the session metadata, ':'-separated."""
    data = f"{session_id}:{message_count}:{last_message_time}:{file_mod_time}"
    return hashlib.sha256(data.encode()).hexdigest()


def create_fingerprint(
    session_id: str,
    session_file: Path,
    messages: Sequence[Message],
) -> Fingerprint:
    """Build the fingerprint of a parsed session log.

    Args:
        session_id: Session identifier
        session_file: Path to the session log (for its mtime)
        messages: Parsed messages of that log

    Returns:
        Fingerprint for the current log contents
    """
    mod_time = file_mod_time(session_file)
    last_message_time = messages[-1].timestamp if messages else ""
    # Empty logs fall back to the mtime so the fingerprint stays stable
    last_message_time = last_message_time or mod_time

    return Fingerprint(
        session_id=session_id,
        message_count=len(messages),
        last_message_time=last_message_time,
        file_mod_time=mod_time,
        checksum=compute_fingerprint(session_id, len(messages), last_message_time, mod_time),
    )


def decode_state(raw: str) -> SyncStateFile:
    """Decode the state file contents.

    Raises:
        StateCorrupt: If the text is not a valid state document
    """
    try:
        data: Any = json.loads(raw)
        if not isinstance(data, dict) or not isinstance(data.get("sessions", {}), dict):
            raise StateCorrupt("State file is not a JSON object with a sessions map")
        return SyncStateFile.from_dict(data)
    except StateCorrupt:
        raise
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise StateCorrupt(f"Invalid state file: {e}") from e


class StateStore:
    """Manages the persisted session -> sync state mapping.

    Plain load()/save() touch the file directly. The async operations
    each run one locked load/mutate/save cycle, with the blocking file
    work moved off the event loop.
    """

    def __init__(self, state_dir: Path, lock_manager: LockManager | None = None) -> None:
        """Initialize the store.

        Args:
            state_dir: Directory holding the state and lock files. It is
                created if it doesn't exist.
            lock_manager: Lock guarding the state file (defaults to a
                LockManager on state_dir/sessions.lock)
        """
        self._state_dir = state_dir
        self._state_path = state_dir / STATE_FILENAME
        state_dir.mkdir(parents=True, exist_ok=True)
        self._lock = lock_manager or LockManager(state_dir / LOCK_FILENAME)

    @property
    def state_path(self) -> Path:
        return self._state_path

    @property
    def lock(self) -> LockManager:
        return self._lock

    def load(self) -> SyncStateFile:
        """Load the state file.

        Never raises: a missing file or one that cannot be decoded
        yields an empty state, the latter with a warning.
        """
        try:
            raw = self._state_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return SyncStateFile()
        except OSError as e:
            logger.warning("Failed to read sync state: path=%s error=%s", self._state_path, e)
            return SyncStateFile()

        try:
            return decode_state(raw)
        except StateCorrupt as e:
            logger.warning(
                "Sync state is corrupt, starting fresh: path=%s error=%s", self._state_path, e
            )
            return SyncStateFile()

    def save(self, state: SyncStateFile) -> None:
        """Write the state file atomically.

        Args:
            state: Full state to persist; its last_updated is refreshed
        """
        state.last_updated = utc_now_iso()
        temp_path = self._state_path.with_name(f"{STATE_FILENAME}.{os.getpid()}.tmp")

        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self._state_path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

    async def snapshot(self) -> SyncStateFile:
        async with self._lock.hold():
            return await asyncio.to_thread(self.load)

    async def get_session(self, session_id: str) -> SessionSyncState | None:
        state = await self.snapshot()
        return state.sessions.get(session_id)

    async def needs_sync(self, session_id: str, fingerprint: Fingerprint) -> tuple[bool, str]:
        """Compare a fingerprint against the stored one.

        Returns:
            Tuple of (needs_sync, reason)
        """
        existing = await self.get_session(session_id)
        if existing is None:
            return True, "Session not previously synced"
        if existing.fingerprint != fingerprint.checksum:
            return True, (
                f"Session changed (messages: {existing.message_count} -> "
                f"{fingerprint.message_count})"
            )
        return False, "Session unchanged since last sync"

    async def set_synced_groups(
        self,
        session_id: str,
        fingerprint: Fingerprint,
        groups: Sequence[SyncedGroup],
    ) -> None:
        """Record the published groups of a session with its fingerprint."""

        def mutate(state: SyncStateFile) -> None:
            state.sessions[session_id] = SessionSyncState.from_fingerprint(
                fingerprint, list(groups)
            )

        await self._update(mutate)

    async def mark_fully_synced(self, session_id: str, fingerprint: Fingerprint) -> None:
        """Record a session as synced without any group tracking."""

        def mutate(state: SyncStateFile) -> None:
            state.sessions[session_id] = SessionSyncState.from_fingerprint(fingerprint)

        await self._update(mutate)

    async def remove_session(self, session_id: str) -> bool:
        """Forget a session.

        Returns:
            True if the session was present
        """
        removed = False

        def mutate(state: SyncStateFile) -> None:
            nonlocal removed
            removed = state.sessions.pop(session_id, None) is not None

        await self._update(mutate)
        return removed

    async def clear(self) -> None:
        """Reset the store to an empty state."""
        async with self._lock.hold():
            await asyncio.to_thread(self.save, SyncStateFile())

    async def _update(self, mutate: Callable[[SyncStateFile], None]) -> None:
        async with self._lock.hold():

            def load_mutate_save() -> None:
                state = self.load()
                mutate(state)
                self.save(state)

            await asyncio.to_thread(load_mutate_save)
