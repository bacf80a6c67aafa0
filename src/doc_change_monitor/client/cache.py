"""
Process-local TTL cache for document metadata.

The cache is advisory: a miss is always safe, it only costs an upstream call.
"""

import logging
from datetime import datetime, timedelta

from doc_change_monitor.core.clock import SystemClock
from doc_change_monitor.core.interfaces import IClock, IMetadataCache
from doc_change_monitor.models import DocumentMetadata

logger = logging.getLogger(__name__)


class TTLMetadataCache(IMetadataCache):
    """Metadata cache whose entries expire after a fixed time-to-live."""

    def __init__(self, ttl_seconds: float = 30.0, clock: IClock | None = None):
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds cannot be negative")
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock or SystemClock()
        self._entries: dict[str, tuple[DocumentMetadata, datetime]] = {}
        self._last_purge = self.clock.now()

    def get(self, token: str) -> DocumentMetadata | None:
        entry = self._entries.get(token)
        if entry is None:
            return None

        metadata, stored_at = entry
        if self.clock.now() - stored_at >= self.ttl:
            del self._entries[token]
            return None
        return metadata

    def set(self, token: str, metadata: DocumentMetadata) -> None:
        if self.ttl <= timedelta(0):
            return
        now = self.clock.now()
        self._entries[token] = (metadata, now)
        # Expired entries are swept at most once per TTL
        if now - self._last_purge >= self.ttl:
            self._purge_expired(now)

    def expire(self, token: str) -> None:
        self._entries.pop(token, None)

    def clear(self) -> None:
        self._entries.clear()
        logger.debug("Metadata cache cleared")

    def _purge_expired(self, now: datetime) -> None:
        expired = [token for token, (_, stored_at) in self._entries.items() if now - stored_at >= self.ttl]
        for token in expired:
            del self._entries[token]
        self._last_purge = now
        if expired:
            logger.debug("Purged %d expired metadata cache entries", len(expired))

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict[str, float]:
        """Get cache size and TTL for monitoring."""
        return {"size": len(self._entries), "ttl_seconds": self.ttl.total_seconds()}
