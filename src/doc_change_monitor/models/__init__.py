"""Data models and schemas for the document change monitor."""

from doc_change_monitor.models.change import (
    ChangeEvent,
    ChangeKind,
    Decision,
    DecisionAction,
    NotificationEvent,
    NotificationKind,
)
from doc_change_monitor.models.document import (
    POLLABLE_STATES,
    DocumentMetadata,
    DocumentState,
    DocumentType,
    TrackedDocument,
)
from doc_change_monitor.models.exceptions import (
    AlreadyWatchedError,
    BaseError,
    ConfigurationError,
    DocumentNotTrackedError,
    FetchError,
    MonitoringError,
    NotificationTransportError,
    PermanentFetchError,
    PermissionDeniedError,
    PersistenceError,
    ResourceNotFoundError,
    TransientFetchError,
)
from doc_change_monitor.models.metrics import HealthReport, HealthStatus, PollCycleMetrics

__all__ = [
    "DocumentMetadata",
    "DocumentState",
    "DocumentType",
    "POLLABLE_STATES",
    "TrackedDocument",
    "ChangeEvent",
    "ChangeKind",
    "Decision",
    "DecisionAction",
    "NotificationEvent",
    "NotificationKind",
    "HealthReport",
    "HealthStatus",
    "PollCycleMetrics",
    "BaseError",
    "ConfigurationError",
    "FetchError",
    "TransientFetchError",
    "PermanentFetchError",
    "ResourceNotFoundError",
    "PermissionDeniedError",
    "PersistenceError",
    "NotificationTransportError",
    "AlreadyWatchedError",
    "DocumentNotTrackedError",
    "MonitoringError",
]
