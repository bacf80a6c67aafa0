"""Core contracts shared by the monitor's components."""

from doc_change_monitor.core.clock import SystemClock
from doc_change_monitor.core.interfaces import (
    IClock,
    IMetadataCache,
    IMetadataClient,
    INotifier,
    IStateStore,
)

__all__ = [
    "IClock",
    "IMetadataCache",
    "IMetadataClient",
    "INotifier",
    "IStateStore",
    "SystemClock",
]
