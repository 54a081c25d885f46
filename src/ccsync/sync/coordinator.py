"""Sync coordinator: check -> diff -> apply -> persist for one session."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from ccsync.config import Config
from ccsync.errors import LockTimeout, PublishError, SessionNotFound
from ccsync.logging import get_logger
from ccsync.models import SyncedGroup
from ccsync.sessions.grouper import group_messages
from ccsync.sessions.reader import find_session_file, list_sessions, parse_session
from ccsync.state.store import StateStore, create_fingerprint
from ccsync.sync.diff import Create, GroupAction, Update, diff_groups, partition_actions
from ccsync.sync.publisher import Publisher
from ccsync.sync.records import InteractionRecord, build_record, new_record_id, record_patch

logger = get_logger("sync")


class SyncStatus(Enum):
    """Outcome of syncing one session."""

    SKIPPED = "skipped"
    APPLIED = "applied"
    FAILED = "failed"


class SyncPhase(Enum):
    IDLE = "idle"
    CHECKING = "checking"
    DIFFING = "diffing"
    APPLYING = "applying"
    PERSISTING = "persisting"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Result of a sync operation."""

    status: SyncStatus
    session_id: str
    reason: str = ""
    actions: list[GroupAction] = field(default_factory=list)
    created: int = 0
    updated: int = 0
    dump_path: Path | None = None
    error: str | None = None


class SyncCoordinator:
    """Publishes the changed interaction groups of a session.

    The store is passed in rather than shared globally; one store per
    process is expected. Nothing is cached between calls.
    """

    def __init__(
        self,
        config: Config,
        store: StateStore,
        publisher: Publisher,
        id_factory: Callable[[], str] = new_record_id,
    ) -> None:
        """Initialize the coordinator.

        Args:
            config: Application configuration
            store: State store for recorded sync state
            publisher: Remote record store
            id_factory: Generates ids for newly created records
        """
        self._config = config
        self._store = store
        self._publisher = publisher
        self._id_factory = id_factory
        self._phase = SyncPhase.IDLE

    @property
    def phase(self) -> SyncPhase:
        """Phase reached by the most recent sync call."""
        return self._phase

    def _enter(self, phase: SyncPhase, session_id: str) -> None:
        self._phase = phase
        logger.debug("Sync phase: session=%s phase=%s", session_id, phase.value)

    async def sync(
        self,
        session_id: str,
        force: bool = False,
        dry_run: bool = False,
    ) -> SyncResult:
        """Sync one session to the record store.

        Args:
            session_id: Session to sync
            force: Skip the fingerprint check and diff against whatever
                groups are recorded
            dry_run: Compute and log the actions without publishing

        Returns:
            SyncResult; status SKIPPED when nothing needed publishing,
            APPLIED with the path of the dumped records otherwise

        Raises:
            SessionNotFound: If no log file exists for the session
            LockTimeout: If the state lock cannot be acquired
            PublishError: If a create or update call fails
        """
        self._enter(SyncPhase.CHECKING, session_id)
        try:
            session_file = find_session_file(session_id, self._config.claude_data_dir)
            if session_file is None:
                raise SessionNotFound(session_id)

            logger.debug("Reading session: session=%s path=%s", session_id, session_file)
            messages = await asyncio.to_thread(parse_session, session_file)
            fingerprint = create_fingerprint(session_id, session_file, messages)

            if force:
                reason = "Force sync enabled"
            else:
                needed, reason = await self._store.needs_sync(session_id, fingerprint)
                if not needed:
                    self._enter(SyncPhase.SKIPPED, session_id)
                    return SyncResult(SyncStatus.SKIPPED, session_id, reason=reason)

            self._enter(SyncPhase.DIFFING, session_id)
            existing = await self._store.get_session(session_id)
        except (SessionNotFound, LockTimeout):
            self._enter(SyncPhase.FAILED, session_id)
            raise

        synced = existing.synced_groups if existing else []
        groups = group_messages(messages)
        logger.debug(
            "Parsed session: session=%s messages=%d groups=%d recorded=%d",
            session_id,
            len(messages),
            len(groups),
            len(synced),
        )

        actions = diff_groups(groups, synced)
        if not actions:
            self._enter(SyncPhase.SKIPPED, session_id)
            return SyncResult(SyncStatus.SKIPPED, session_id, reason="No groups changed")

        if dry_run:
            for action in actions:
                kind = "CREATE" if isinstance(action, Create) else "UPDATE"
                logger.info(
                    "[DRY RUN] %s: session=%s anchor=%s messages=%d",
                    kind,
                    session_id,
                    action.group.anchor_id,
                    len(action.group),
                )
            self._enter(SyncPhase.SKIPPED, session_id)
            return SyncResult(
                SyncStatus.SKIPPED, session_id, reason="Dry run", actions=list(actions)
            )

        self._enter(SyncPhase.APPLYING, session_id)
        creates, updates = partition_actions(actions)
        merged = list(synced)
        records: list[InteractionRecord] = []

        try:
            await self._apply_creates(creates, merged, records)
            await self._apply_updates(updates, merged, records)
        except Exception as e:
            self._enter(SyncPhase.FAILED, session_id)
            logger.error("Failed to publish session: session=%s error=%s", session_id, e)
            dump_path = await self._dump_records(session_id, records)
            if dump_path is not None:
                logger.info("Records are still available in: %s", dump_path)
            if isinstance(e, PublishError):
                raise
            raise PublishError(f"Failed to publish session {session_id}: {e}") from e

        dump_path = await self._dump_records(session_id, records)
        logger.info(
            "Synced session: session=%s reason=%r created=%d updated=%d",
            session_id,
            reason,
            len(creates),
            len(updates),
        )

        self._enter(SyncPhase.PERSISTING, session_id)
        try:
            await self._store.set_synced_groups(session_id, fingerprint, merged)
            logger.debug(
                "Session state updated: session=%s groups=%d", session_id, len(merged)
            )
        except Exception as e:
            # Published data stays; the next diff reconciles the state
            logger.warning(
                "Sync completed but state update failed: session=%s error=%s", session_id, e
            )

        self._enter(SyncPhase.DONE, session_id)
        return SyncResult(
            SyncStatus.APPLIED,
            session_id,
            reason=reason,
            actions=list(actions),
            created=len(creates),
            updated=len(updates),
            dump_path=dump_path,
        )

    async def _apply_creates(
        self,
        creates: Sequence[Create],
        merged: list[SyncedGroup],
        records: list[InteractionRecord],
    ) -> None:
        if not creates:
            return

        # Ids are minted up front so they are known whatever the store returns
        batch = [
            build_record(action.group, self._id_factory(), self._config.project_name)
            for action in creates
        ]
        records.extend(batch)
        assigned = await self._publisher.create_batch(batch)
        if assigned and list(assigned) != [record.id for record in batch]:
            logger.debug("Record store returned different ids, keeping minted ones")

        for action, record in zip(creates, batch):
            merged.append(SyncedGroup.from_group(record.id, action.group))
            logger.debug("Created record: id=%s anchor=%s", record.id, action.group.anchor_id)
            await self._tag_thread(record)

    async def _apply_updates(
        self,
        updates: Sequence[Update],
        merged: list[SyncedGroup],
        records: list[InteractionRecord],
    ) -> None:
        for action in updates:
            record = build_record(action.group, action.remote_id, self._config.project_name)
            records.append(record)
            await self._publisher.update_one(action.remote_id, record_patch(record))
            logger.debug("Updated record: id=%s anchor=%s", record.id, action.group.anchor_id)

            for index, synced in enumerate(merged):
                if synced.remote_id == action.remote_id:
                    merged[index] = SyncedGroup.from_group(action.remote_id, action.group)
                    break

            await self._tag_thread(record)

    async def _tag_thread(self, record: InteractionRecord) -> None:
        tag_thread = getattr(self._publisher, "tag_thread", None)
        if tag_thread is None or not record.thread_id or not record.tags:
            return
        try:
            await tag_thread(record.thread_id, record.tags)
            logger.debug("Updated thread tags: thread=%s", record.thread_id)
        except Exception as e:
            logger.warning("Failed to update thread tags: thread=%s error=%s", record.thread_id, e)

    async def _dump_records(
        self, session_id: str, records: Sequence[InteractionRecord]
    ) -> Path | None:
        """Write the submitted records to the dump directory.

        The dump is informational only; a failed write is logged and
        yields None so it never changes the outcome of the sync.
        """
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")
        path = self._config.dump_dir / f"ccsync-records-{session_id}-{timestamp}.json"
        try:
            await asyncio.to_thread(_write_dump, path, records)
        except OSError as e:
            logger.warning("Failed to write records dump: path=%s error=%s", path, e)
            return None

        logger.debug("Records written to: %s", path)
        return path

    async def sync_all(
        self,
        project: str | None = None,
        force: bool = False,
        dry_run: bool = False,
    ) -> list[SyncResult]:
        """Sync every discovered session, optionally for one project.

        Per-session failures are logged and reported as FAILED results.
        """
        sessions = list_sessions(self._config.claude_data_dir, project)
        if not sessions:
            logger.info("No sessions found: project=%s", project or "*")
            return []

        logger.info("Found sessions to sync: count=%d", len(sessions))

        results: list[SyncResult] = []
        for session in sessions:
            try:
                result = await self.sync(session.session_id, force=force, dry_run=dry_run)
            except (SessionNotFound, LockTimeout, PublishError) as e:
                logger.error("Failed to sync session: session=%s error=%s", session.session_id, e)
                result = SyncResult(SyncStatus.FAILED, session.session_id, error=str(e))
            results.append(result)

        counts = {status: 0 for status in SyncStatus}
        for result in results:
            counts[result.status] += 1
        logger.info(
            "Sync completed: synced=%d skipped=%d failed=%d",
            counts[SyncStatus.APPLIED],
            counts[SyncStatus.SKIPPED],
            counts[SyncStatus.FAILED],
        )
        return results


def _write_dump(path: Path, records: Sequence[InteractionRecord]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump([record.to_document() for record in records], f, indent=2)
