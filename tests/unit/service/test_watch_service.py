"""Unit tests for the document watch service."""

from unittest.mock import AsyncMock, Mock

import pytest
from doc_change_monitor.core.interfaces import IMetadataClient, INotifier
from doc_change_monitor.models import (
    AlreadyWatchedError,
    DocumentMetadata,
    DocumentNotTrackedError,
    DocumentState,
    PermissionDeniedError,
    ResourceNotFoundError,
    TransientFetchError,
)
from doc_change_monitor.monitoring import DocumentPoller
from doc_change_monitor.service import DocumentWatchService


class TestDocumentWatchService:
    """Test cases for DocumentWatchService."""

    @pytest.fixture
    def metadata(self):
        """Create upstream metadata for the watched document."""
        return DocumentMetadata(token="doccnABC", title="Roadmap", modified_at=1700000000, modified_by="ou_alice")

    @pytest.fixture
    def client(self, metadata):
        """Create a metadata client mock."""
        client = Mock(spec=IMetadataClient)
        client.fetch = AsyncMock(return_value=metadata)
        return client

    @pytest.fixture
    def service(self, client, store):
        """Create a service without a poller."""
        return DocumentWatchService(client, store)

    @pytest.mark.asyncio
    async def test_watch_creates_pending_document(self, service, client, store):
        """Test watching probes the document and stores its title."""
        doc = await service.watch("ou_owner", " doccnABC ", "oc_chat", "docx")

        assert doc.token == "doccnABC"
        assert doc.state == DocumentState.PENDING
        assert doc.title == "Roadmap"
        assert doc.doc_type == "docx"
        client.fetch.assert_awaited_once_with("doccnABC", "docx", use_cache=False)
        assert await store.get_document("ou_owner", "doccnABC") == doc

    @pytest.mark.asyncio
    async def test_watch_invalid_doc_type(self, service, client):
        """Test unknown document types are rejected before any request."""
        with pytest.raises(ValueError):
            await service.watch("ou_owner", "doccnABC", "oc_chat", "slides")

        client.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_watch_twice_rejected(self, service):
        """Test watching an already watched document fails."""
        await service.watch("ou_owner", "doccnABC", "oc_chat")

        with pytest.raises(AlreadyWatchedError) as exc_info:
            await service.watch("ou_owner", "doccnABC", "oc_chat")

        assert exc_info.value.context["state"] == "pending"

    @pytest.mark.asyncio
    async def test_watch_paused_document_resumes(self, service, store):
        """Test watching a paused document reactivates it."""
        await service.watch("ou_owner", "doccnABC", "oc_chat")
        await service.unwatch("ou_owner", "doccnABC")

        doc = await service.watch("ou_owner", "doccnABC", "oc_chat")

        assert doc.state == DocumentState.PENDING
        assert len(await store.list_documents("ou_owner")) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [ResourceNotFoundError("HTTP 404"), PermissionDeniedError("HTTP 403")])
    async def test_watch_permanent_probe_failure(self, service, client, store, error):
        """Test missing or inaccessible documents are not watched."""
        client.fetch.side_effect = error

        with pytest.raises(type(error)):
            await service.watch("ou_owner", "doccnABC", "oc_chat")

        assert await store.get_document("ou_owner", "doccnABC") is None

    @pytest.mark.asyncio
    async def test_watch_transient_probe_failure(self, service, client):
        """Test a transient probe failure still creates the watch."""
        client.fetch.side_effect = TransientFetchError("HTTP 503")

        doc = await service.watch("ou_owner", "doccnABC", "oc_chat")

        assert doc.state == DocumentState.PENDING
        assert doc.title is None

    @pytest.mark.asyncio
    async def test_unwatch_and_resume(self, service):
        """Test pausing and resuming a watch."""
        await service.watch("ou_owner", "doccnABC", "oc_chat")

        paused = await service.unwatch("ou_owner", "doccnABC")
        assert paused.state == DocumentState.PAUSED
        assert paused.pause_reason == "Stopped by owner"

        resumed = await service.resume("ou_owner", "doccnABC")
        assert resumed.state == DocumentState.PENDING

    @pytest.mark.asyncio
    async def test_unwatch_other_owner(self, service):
        """Test owners cannot pause each other's watches."""
        await service.watch("ou_alice", "doccnABC", "oc_chat")

        with pytest.raises(DocumentNotTrackedError):
            await service.unwatch("ou_bob", "doccnABC")

    @pytest.mark.asyncio
    async def test_delete(self, service, client, store):
        """Test deleting a watch also drops its cached metadata."""
        await service.watch("ou_owner", "doccnABC", "oc_chat")

        await service.delete("ou_owner", "doccnABC")

        assert await store.get_document("ou_owner", "doccnABC") is None
        client.invalidate.assert_called_once_with("doccnABC")

    @pytest.mark.asyncio
    async def test_check_now(self, service, client, metadata):
        """Test checking a watched document uses the cache and its type."""
        await service.watch("ou_owner", "doccnABC", "oc_chat", "sheet")
        client.fetch.reset_mock()

        result = await service.check_now("ou_owner", "doccnABC")

        assert result == metadata
        client.fetch.assert_awaited_once_with("doccnABC", "sheet", use_cache=True)

    @pytest.mark.asyncio
    async def test_check_now_requires_watch(self, service, client):
        """Test checking an untracked document fails."""
        with pytest.raises(DocumentNotTrackedError):
            await service.check_now("ou_owner", "doccnABC")

        client.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_list_watched(self, service):
        """Test listing only returns the caller's documents."""
        await service.watch("ou_alice", "doccnA", "oc_chat")
        await service.watch("ou_alice", "doccnB", "oc_chat")
        await service.watch("ou_bob", "doccnC", "oc_chat")
        await service.unwatch("ou_alice", "doccnB")

        assert [d.token for d in await service.list_watched("ou_alice")] == ["doccnA", "doccnB"]
        assert [d.token for d in await service.list_watched("ou_alice", include_paused=False)] == ["doccnA"]

    @pytest.mark.asyncio
    async def test_history_and_stats(self, config, client, store, clock):
        """Test history and stats after a poll cycle."""
        notifier = Mock(spec=INotifier)
        notifier.send = AsyncMock()
        poller = DocumentPoller(config, client, store, notifier, clock=clock)
        service = DocumentWatchService(client, store, poller)
        await service.watch("ou_owner", "doccnABC", "oc_chat")

        await poller.run_cycle()

        history = await service.get_change_history("ou_owner", "doccnABC")
        assert [event.kind for event in history] == ["new_document"]
        stats = await service.get_change_stats("ou_owner", "doccnABC")
        assert stats["notifications_sent"] == 1

        health = service.health_and_metrics()
        assert health["status"] == "healthy"
        assert health["metrics"]["notifications_sent"] == 1

    def test_health_without_poller(self, service):
        """Test health is unknown when no poller is attached."""
        assert service.health_and_metrics() == {"status": None, "metrics": None}
