"""
Abstract interfaces for the document change monitor.

These interfaces define the contracts for core components, enabling
dependency injection for testing and alternative implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from doc_change_monitor.models import (
    ChangeEvent,
    Decision,
    DocumentMetadata,
    NotificationEvent,
    TrackedDocument,
)


class IClock(ABC):
    """Source of the current time, replaceable for deterministic tests."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        pass


class IMetadataCache(ABC):
    """Short-lived, process-local cache of fetched metadata."""

    @abstractmethod
    def get(self, token: str) -> DocumentMetadata | None:
        """Return a cached snapshot, or None when absent or expired."""
        pass

    @abstractmethod
    def set(self, token: str, metadata: DocumentMetadata) -> None:
        """Store a snapshot for the configured TTL."""
        pass

    @abstractmethod
    def expire(self, token: str) -> None:
        """Drop the cached snapshot for a token, if any."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Drop every cached snapshot."""
        pass


class IMetadataClient(ABC):
    """Interface for fetching document metadata from the upstream API."""

    @abstractmethod
    async def fetch(self, token: str, doc_type: str = "doc", use_cache: bool = True) -> DocumentMetadata:
        """
        Fetch the current metadata of a document.

        Args:
            token: Opaque upstream document token
            doc_type: Upstream document type
            use_cache: Whether a cached snapshot may be returned

        Returns:
            Current document metadata

        Raises:
            TransientFetchError: If the upstream kept failing after all retries
            PermanentFetchError: If the document is missing or inaccessible
        """
        pass

    @abstractmethod
    def invalidate(self, token: str) -> None:
        """Forget any cached snapshot for the token."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        pass


class INotifier(ABC):
    """Interface for delivering notifications to a human-facing channel."""

    @abstractmethod
    async def send(self, notify_target: str, event: NotificationEvent) -> None:
        """
        Deliver (or durably accept) a notification.

        Args:
            notify_target: Opaque destination identifier
            event: Notification payload

        Raises:
            NotificationTransportError: If the notification was not accepted
        """
        pass


class IStateStore(ABC):
    """
    Interface for durable tracked-document state and the change audit log.

    Every per-user operation takes a mandatory ``owner_id`` and only ever
    reads or mutates that owner's rows. ``load_active`` is the single
    privileged exception, reserved for the poller.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables if needed."""
        pass

    @abstractmethod
    async def load_active(self) -> list[TrackedDocument]:
        """
        Return every pollable document of every owner.

        Privileged internal call for the poller; not owner-scoped.

        Raises:
            PersistenceError: If the store is unreachable
        """
        pass

    @abstractmethod
    async def create_document(
        self,
        owner_id: str,
        token: str,
        notify_target: str,
        doc_type: str = "doc",
        title: str | None = None,
    ) -> TrackedDocument:
        """
        Register a new pending watch.

        Raises:
            AlreadyWatchedError: If the owner already has a row for the token
        """
        pass

    @abstractmethod
    async def get_document(self, owner_id: str, token: str) -> TrackedDocument | None:
        """Return the owner's row for a token, if any."""
        pass

    @abstractmethod
    async def list_documents(self, owner_id: str, include_paused: bool = True) -> list[TrackedDocument]:
        """Return the owner's watched documents."""
        pass

    @abstractmethod
    async def pause_document(self, owner_id: str, token: str, reason: str | None = None) -> TrackedDocument:
        """Transition a document to paused, keeping its baseline."""
        pass

    @abstractmethod
    async def resume_document(self, owner_id: str, token: str) -> TrackedDocument:
        """Transition a paused document back to polling."""
        pass

    @abstractmethod
    async def delete_document(self, owner_id: str, token: str) -> None:
        """Remove the row irreversibly. Audit events are retained."""
        pass

    @abstractmethod
    async def commit_observation(
        self,
        owner_id: str,
        token: str,
        observed: DocumentMetadata,
        decision: Decision,
        delivered: bool,
        now: datetime,
    ) -> TrackedDocument | None:
        """
        Atomically record a successful poll.

        Updates the last-observed fields and the pending flag, appends audit
        events, and advances the baseline only when the decision required a
        notification and it was delivered.

        Returns:
            The updated document, or None if the row no longer exists
        """
        pass

    @abstractmethod
    async def record_fetch_error(
        self,
        owner_id: str,
        token: str,
        message: str,
        permanent: bool,
        now: datetime,
    ) -> TrackedDocument | None:
        """Increment the error counters of a document."""
        pass

    @abstractmethod
    async def get_change_history(
        self, owner_id: str, token: str | None = None, limit: int = 50
    ) -> list[ChangeEvent]:
        """Return the owner's audit events, newest first."""
        pass

    @abstractmethod
    async def get_change_stats(self, owner_id: str, token: str) -> dict[str, Any]:
        """Summarize the audit log of one document."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the store answers queries."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""
        pass
