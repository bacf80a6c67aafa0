"""
Inbound command surface for watching documents.

Chat commands, CLIs and agents call into ``DocumentWatchService``; every
operation is scoped to the calling owner and returns typed results or raises
typed errors.
"""

import logging
from typing import Any

from doc_change_monitor.core.interfaces import IMetadataClient, IStateStore
from doc_change_monitor.models import (
    AlreadyWatchedError,
    ChangeEvent,
    DocumentMetadata,
    DocumentNotTrackedError,
    DocumentState,
    DocumentType,
    TrackedDocument,
    TransientFetchError,
)
from doc_change_monitor.monitoring import DocumentPoller

logger = logging.getLogger(__name__)


class DocumentWatchService:
    """Per-owner operations on tracked documents."""

    def __init__(
        self,
        metadata_client: IMetadataClient,
        state_store: IStateStore,
        poller: DocumentPoller | None = None,
    ):
        self.metadata_client = metadata_client
        self.state_store = state_store
        self.poller = poller

    async def watch(
        self, owner_id: str, token: str, notify_target: str, doc_type: str = DocumentType.DOC.value
    ) -> TrackedDocument:
        """
        Start watching a document.

        The document is probed once so that missing or inaccessible documents
        are rejected up front. A transient probe failure does not block the
        watch; the poller will pick the document up on its next cycle.
        Watching a paused document resumes it.

        Args:
            owner_id: Calling owner
            token: Upstream document token
            notify_target: Where change notifications are delivered
            doc_type: Upstream document type

        Returns:
            The tracked document

        Raises:
            AlreadyWatchedError: If the owner already watches the document
            PermanentFetchError: If the document does not exist or is not readable
        """
        token = token.strip()
        doc_type = DocumentType(doc_type).value

        existing = await self.state_store.get_document(owner_id, token)
        if existing is not None:
            if existing.is_pollable():
                raise AlreadyWatchedError(
                    f"Document {token} is already being watched",
                    owner_id=owner_id,
                    token=token,
                    state=DocumentState(existing.state).value,
                )
            logger.info("Document %s already tracked by %s in paused state, resuming", token, owner_id)
            return await self.state_store.resume_document(owner_id, token)

        title = None
        try:
            metadata = await self.metadata_client.fetch(token, doc_type, use_cache=False)
            title = metadata.title
        except TransientFetchError as e:
            logger.warning("Could not probe %s before watching, will retry on next poll: %s", token, e)

        document = await self.state_store.create_document(owner_id, token, notify_target, doc_type, title)
        logger.info("Owner %s started watching %s (%s)", owner_id, token, title or "untitled")
        return document

    async def unwatch(self, owner_id: str, token: str, reason: str | None = None) -> TrackedDocument:
        """Pause a watch; history and baseline are kept."""
        return await self.state_store.pause_document(owner_id, token, reason=reason or "Stopped by owner")

    async def resume(self, owner_id: str, token: str) -> TrackedDocument:
        return await self.state_store.resume_document(owner_id, token)

    async def delete(self, owner_id: str, token: str) -> None:
        """Remove a watch entirely. The change audit log is retained."""
        await self.state_store.delete_document(owner_id, token)
        self.metadata_client.invalidate(token)

    async def check_now(self, owner_id: str, token: str, doc_type: str | None = None) -> DocumentMetadata:
        """
        Return the current metadata of a watched document.

        Served from the metadata cache when fresh. Does not notify and does
        not touch the baseline.
        """
        document = await self.state_store.get_document(owner_id, token)
        if document is None:
            raise DocumentNotTrackedError(f"Document {token} is not tracked", owner_id=owner_id, token=token)
        return await self.metadata_client.fetch(token, doc_type or document.doc_type, use_cache=True)

    async def list_watched(self, owner_id: str, include_paused: bool = True) -> list[TrackedDocument]:
        return await self.state_store.list_documents(owner_id, include_paused=include_paused)

    async def get_change_history(self, owner_id: str, token: str | None = None, limit: int = 50) -> list[ChangeEvent]:
        return await self.state_store.get_change_history(owner_id, token, limit=limit)

    async def get_change_stats(self, owner_id: str, token: str) -> dict[str, Any]:
        return await self.state_store.get_change_stats(owner_id, token)

    def health_and_metrics(self) -> dict[str, Any]:
        """Health status and last-cycle metrics of the attached poller."""
        if self.poller is None:
            return {"status": None, "metrics": None}
        return {
            "status": self.poller.health_status().value,
            "metrics": self.poller.metrics().model_dump(mode="json"),
        }
