"""Owner-facing command surface."""

from .watch_service import DocumentWatchService

__all__ = ["DocumentWatchService"]
