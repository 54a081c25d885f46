"""Cross-process advisory lock over the sync state file.

The lock is a sibling file created with O_CREAT | O_EXCL and holding
"<pid>:<acquired_at_epoch_millis>". A holder that dies mid-section
leaves the file behind; the next acquirer reclaims it once it is older
than the staleness threshold.
"""

import asyncio
import os
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from ccsync.errors import LockTimeout
from ccsync.logging import get_logger

logger = get_logger("lock")

STALE_LOCK_SECONDS = 30.0
MAX_ATTEMPTS = 10
BASE_DELAY_SECONDS = 0.1
MAX_DELAY_SECONDS = 2.0


class LockManager:
    """Serializes read-modify-write access to the state file.

    Usage:
        async with lock_manager.hold():
            ...
    """

    def __init__(
        self,
        lock_path: Path,
        stale_after: float = STALE_LOCK_SECONDS,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = BASE_DELAY_SECONDS,
        max_delay: float = MAX_DELAY_SECONDS,
    ) -> None:
        self._lock_path = lock_path
        self._stale_after = stale_after
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._token: str | None = None

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        """Hold the lock for the duration of the block.

        The lock file is removed on every exit path; exceptions raised
        inside the block propagate after release.

        Raises:
            LockTimeout: If the lock is still held after max_attempts tries
        """
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    async def acquire(self) -> None:
        attempts = 0
        while attempts < self._max_attempts:
            if self._try_create():
                return

            current = self._read_lock()
            if current is None:
                # Holder released between our create and stat
                continue
            token, age = current
            if age > self._stale_after:
                logger.warning(
                    "Removing stale lock file: path=%s age=%.1fs", self._lock_path, age
                )
                self._unlink_if(token)
                continue

            attempts += 1
            if attempts >= self._max_attempts:
                break
            delay = min(self._base_delay * 2 ** (attempts - 1), self._max_delay)
            logger.debug(
                "Lock busy, retrying: path=%s attempt=%d/%d delay=%.2fs",
                self._lock_path,
                attempts,
                self._max_attempts,
                delay,
            )
            await asyncio.sleep(delay)

        raise LockTimeout(str(self._lock_path), self._max_attempts)

    def release(self) -> None:
        """Remove the lock file if it still holds our token."""
        token, self._token = self._token, None
        if token is None:
            return
        if not self._unlink_if(token):
            logger.warning("Lock was taken over before release: path=%s", self._lock_path)

    def clean_stale(self) -> bool:
        """Remove the lock file if it is stale.

        Returns:
            True if a stale lock was removed
        """
        current = self._read_lock()
        if current is None:
            return False
        token, age = current
        if age <= self._stale_after:
            return False
        logger.warning("Removing stale lock file: path=%s age=%.1fs", self._lock_path, age)
        return self._unlink_if(token)

    def _try_create(self) -> bool:
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self._lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        token = f"{os.getpid()}:{int(time.time() * 1000)}"
        try:
            os.write(fd, token.encode())
        finally:
            os.close(fd)
        self._token = token
        return True

    def _read_token(self) -> str | None:
        try:
            return self._lock_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None

    def _read_lock(self) -> tuple[str, float] | None:
        """Token of the current lock and seconds since it was taken."""
        try:
            token = self._lock_path.read_text(encoding="utf-8").strip()
            mtime = self._lock_path.stat().st_mtime
        except FileNotFoundError:
            return None

        acquired_at = mtime
        _, _, millis = token.partition(":")
        if millis.isdigit():
            acquired_at = int(millis) / 1000

        return token, time.time() - acquired_at

    def _unlink_if(self, token: str) -> bool:
        """Delete the lock file only while it still holds the given token.

        Another process may have reclaimed the lock since the token was
        read; its fresh lock must survive.
        """
        if self._read_token() != token:
            return False
        try:
            self._lock_path.unlink()
        except FileNotFoundError:
            return False
        return True
