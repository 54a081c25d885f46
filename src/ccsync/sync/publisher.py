"""Remote record store for published interaction records."""

import asyncio
from typing import Any, Protocol, Sequence

import typesense
from typesense.exceptions import ObjectNotFound

from ccsync.config import TypesenseConfig
from ccsync.errors import PublishError, SideEffectError
from ccsync.logging import get_logger
from ccsync.sync.records import InteractionRecord

logger = get_logger("publisher")


class Publisher(Protocol):
    """Remote store the coordinator publishes records to.

    Implementations may also provide
    ``async tag_thread(thread_id, tags) -> None``; it is optional.
    """

    async def create_batch(self, records: Sequence[InteractionRecord]) -> list[str]:
        """Create records, returning the ids the store assigned."""
        ...

    async def update_one(self, remote_id: str, patch: dict[str, Any]) -> None:
        """Update one existing record."""
        ...


def records_schema(name: str) -> dict[str, Any]:
    return {
        "name": name,
        "fields": [
            {"name": "id", "type": "string"},
            {"name": "session_id", "type": "string", "facet": True},
            {"name": "thread_id", "type": "string", "facet": True},
            {"name": "project_name", "type": "string", "facet": True},
            {"name": "name", "type": "string"},
            {"name": "input", "type": "string"},
            {"name": "output", "type": "string"},
            {"name": "start_ts", "type": "int64", "sort": True},
            {"name": "end_ts", "type": "int64", "sort": True},
            {"name": "message_count", "type": "int32"},
            {"name": "anchor_message_id", "type": "string"},
            {"name": "last_message_id", "type": "string"},
            {"name": "working_directory", "type": "string", "facet": True, "optional": True},
            {"name": "claude_version", "type": "string", "optional": True},
            {"name": "input_tokens", "type": "int64"},
            {"name": "output_tokens", "type": "int64"},
            {"name": "tags", "type": "string[]", "facet": True},
        ],
        "default_sorting_field": "start_ts",
    }


def threads_schema(name: str) -> dict[str, Any]:
    return {
        "name": name,
        "fields": [
            {"name": "id", "type": "string"},
            {"name": "tags", "type": "string[]", "facet": True},
        ],
    }


class TypesensePublisher:
    """Publishes interaction records to Typesense.

    The typesense client is synchronous; every call runs in a worker
    thread so the event loop stays free.
    """

    def __init__(self, config: TypesenseConfig) -> None:
        """Initialize publisher with Typesense configuration.

        Args:
            config: TypesenseConfig with connection details
        """
        self._config = config
        self._client = typesense.Client({
            "nodes": [{
                "host": config.host,
                "port": str(config.port),
                "protocol": config.protocol,
            }],
            "api_key": config.api_key,
            "connection_timeout_seconds": 5,
        })

    @property
    def client(self) -> typesense.Client:
        """Access the underlying Typesense client."""
        return self._client

    def ensure_collections(self) -> None:
        """Create the records and threads collections if they don't exist."""
        self._ensure_collection(records_schema(self._config.records_collection))
        self._ensure_collection(threads_schema(self._config.threads_collection))

    def _ensure_collection(self, schema: dict[str, Any]) -> None:
        name = schema["name"]
        try:
            self._client.collections[name].retrieve()
            logger.debug("Collection already exists: collection=%s", name)
        except ObjectNotFound:
            self._client.collections.create(schema)
            logger.info("Created collection: collection=%s", name)

    async def create_batch(self, records: Sequence[InteractionRecord]) -> list[str]:
        """Create records in one import call.

        Raises:
            PublishError: If the call fails or any document is rejected
        """
        if not records:
            return []

        documents = [record.to_document() for record in records]
        collection = self._client.collections[self._config.records_collection]

        try:
            results = await asyncio.to_thread(
                collection.documents.import_, documents, {"action": "create"}
            )
        except Exception as e:
            raise PublishError(f"Failed to create {len(documents)} records: {e}") from e

        failures = [result for result in results if not result.get("success", False)]
        if failures:
            raise PublishError(
                f"Failed to create {len(failures)} of {len(documents)} records: "
                f"{failures[0].get('error', 'unknown')}"
            )

        logger.debug("Created records: count=%d", len(documents))
        return [document["id"] for document in documents]

    async def update_one(self, remote_id: str, patch: dict[str, Any]) -> None:
        """Update an existing record.

        Raises:
            PublishError: If the record cannot be updated
        """
        collection = self._client.collections[self._config.records_collection]
        try:
            await asyncio.to_thread(collection.documents[remote_id].update, patch)
        except Exception as e:
            raise PublishError(f"Failed to update record {remote_id}: {e}") from e

        logger.debug("Updated record: id=%s", remote_id)

    async def tag_thread(self, thread_id: str, tags: list[str]) -> None:
        """Set the tags of the thread a record belongs to.

        Raises:
            SideEffectError: If the thread document cannot be written
        """
        collection = self._client.collections[self._config.threads_collection]
        try:
            await asyncio.to_thread(
                collection.documents.upsert, {"id": thread_id, "tags": list(tags)}
            )
        except Exception as e:
            raise SideEffectError(f"Failed to update thread {thread_id} tags: {e}") from e
