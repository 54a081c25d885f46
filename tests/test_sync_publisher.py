"""Tests for the Typesense publisher."""

from unittest.mock import MagicMock, patch

import pytest
from typesense.exceptions import ObjectNotFound, RequestMalformed

from ccsync.config import TypesenseConfig
from ccsync.errors import PublishError, SideEffectError
from ccsync.models import InteractionGroup, Message
from ccsync.sync.publisher import TypesensePublisher, records_schema, threads_schema
from ccsync.sync.records import InteractionRecord, build_record


@pytest.fixture
def config() -> TypesenseConfig:
    """Provide a test TypesenseConfig."""
    return TypesenseConfig(
        host="localhost",
        port=8108,
        protocol="http",
        api_key="test-api-key",
    )


@pytest.fixture
def mock_client() -> MagicMock:
    """Provide a mock Typesense client."""
    return MagicMock()


@pytest.fixture
def publisher(config: TypesenseConfig, mock_client: MagicMock) -> TypesensePublisher:
    """Provide a TypesensePublisher with mocked client."""
    with patch("ccsync.sync.publisher.typesense.Client", return_value=mock_client):
        return TypesensePublisher(config)


def make_record(record_id: str) -> InteractionRecord:
    group = InteractionGroup([
        Message(uuid=f"u-{record_id}", type="user", role="user", content="hi", timestamp="", session_id="s1")
    ])
    return build_record(group, record_id)


class TestTypesensePublisherInit:
    """Tests for TypesensePublisher initialization."""

    def test_creates_client_with_config(self, config: TypesenseConfig) -> None:
        with patch("ccsync.sync.publisher.typesense.Client") as mock_client_class:
            TypesensePublisher(config)

            mock_client_class.assert_called_once_with({
                "nodes": [{
                    "host": "localhost",
                    "port": "8108",
                    "protocol": "http",
                }],
                "api_key": "test-api-key",
                "connection_timeout_seconds": 5,
            })

    def test_client_property(self, publisher: TypesensePublisher, mock_client: MagicMock) -> None:
        assert publisher.client is mock_client


class TestEnsureCollections:
    """Tests for ensure_collections."""

    def test_creates_missing_collections(
        self, publisher: TypesensePublisher, mock_client: MagicMock
    ) -> None:
        mock_client.collections.__getitem__.return_value.retrieve.side_effect = [
            ObjectNotFound("interactions"),
            ObjectNotFound("threads"),
        ]

        publisher.ensure_collections()

        mock_client.collections.create.assert_any_call(records_schema("interactions"))
        mock_client.collections.create.assert_any_call(threads_schema("threads"))

    def test_keeps_existing_collections(
        self, publisher: TypesensePublisher, mock_client: MagicMock
    ) -> None:
        mock_client.collections.__getitem__.return_value.retrieve.return_value = {"name": "x"}

        publisher.ensure_collections()

        mock_client.collections.create.assert_not_called()


class TestCreateBatch:
    """Tests for create_batch."""

    @pytest.mark.asyncio
    async def test_imports_documents_with_create_action(
        self, publisher: TypesensePublisher, mock_client: MagicMock
    ) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.import_.return_value = [{"success": True}, {"success": True}]
        records = [make_record("r1"), make_record("r2")]

        ids = await publisher.create_batch(records)

        assert ids == ["r1", "r2"]
        mock_client.collections.__getitem__.assert_called_with("interactions")
        documents.import_.assert_called_once_with(
            [records[0].to_document(), records[1].to_document()],
            {"action": "create"},
        )

    @pytest.mark.asyncio
    async def test_empty_batch_skips_call(
        self, publisher: TypesensePublisher, mock_client: MagicMock
    ) -> None:
        assert await publisher.create_batch([]) == []
        mock_client.collections.__getitem__.return_value.documents.import_.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_document_raises(
        self, publisher: TypesensePublisher, mock_client: MagicMock
    ) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.import_.return_value = [{"success": True}, {"success": False, "error": "dup id"}]

        with pytest.raises(PublishError, match="dup id"):
            await publisher.create_batch([make_record("r1"), make_record("r2")])

    @pytest.mark.asyncio
    async def test_client_error_raises(
        self, publisher: TypesensePublisher, mock_client: MagicMock
    ) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.import_.side_effect = RequestMalformed("bad")

        with pytest.raises(PublishError):
            await publisher.create_batch([make_record("r1")])


class TestUpdateOne:
    """Tests for update_one."""

    @pytest.mark.asyncio
    async def test_updates_document(
        self, publisher: TypesensePublisher, mock_client: MagicMock
    ) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents

        await publisher.update_one("r1", {"output": "more"})

        documents.__getitem__.assert_called_with("r1")
        documents.__getitem__.return_value.update.assert_called_once_with({"output": "more"})

    @pytest.mark.asyncio
    async def test_missing_document_raises(
        self, publisher: TypesensePublisher, mock_client: MagicMock
    ) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.__getitem__.return_value.update.side_effect = ObjectNotFound("r1")

        with pytest.raises(PublishError, match="r1"):
            await publisher.update_one("r1", {})


class TestTagThread:
    """Tests for tag_thread."""

    @pytest.mark.asyncio
    async def test_upserts_thread(
        self, publisher: TypesensePublisher, mock_client: MagicMock
    ) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents

        await publisher.tag_thread("s1", ["claude-code"])

        mock_client.collections.__getitem__.assert_called_with("threads")
        documents.upsert.assert_called_once_with({"id": "s1", "tags": ["claude-code"]})

    @pytest.mark.asyncio
    async def test_failure_is_side_effect_error(
        self, publisher: TypesensePublisher, mock_client: MagicMock
    ) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.upsert.side_effect = RequestMalformed("bad")

        with pytest.raises(SideEffectError):
            await publisher.tag_thread("s1", ["x"])
