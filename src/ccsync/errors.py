"""Error taxonomy for the sync engine.

Recoverable conditions (StateCorrupt, SideEffectError) are caught and
logged where they occur. Structural conditions (SessionNotFound,
LockTimeout, PublishError) propagate to the caller.
"""


class SyncError(Exception):
    """Base class for ccsync errors."""


class LockTimeout(SyncError):
    """The state lock could not be acquired within the retry budget."""

    def __init__(self, lock_path: str, attempts: int) -> None:
        super().__init__(f"Failed to acquire lock {lock_path} after {attempts} attempts")
        self.lock_path = lock_path
        self.attempts = attempts


class StateCorrupt(SyncError):
    """The persisted state file could not be decoded."""


class SessionNotFound(SyncError):
    """No log file exists for the requested session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class PublishError(SyncError):
    """A create or update call against the remote record store failed."""


class SideEffectError(SyncError):
    """A non-essential publisher call (e.g. thread tagging) failed."""
