"""
Models for poll cycle metrics and health reporting.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class HealthStatus(str, Enum):
    """Coarse health of the poller, for external health checks."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class PollCycleMetrics(BaseModel):
    """Counters collected during one reconciliation cycle."""

    cycle_started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    documents_polled: int = Field(default=0, ge=0)
    fetch_successes: int = Field(default=0, ge=0)
    fetch_errors: int = Field(default=0, ge=0)
    permanent_errors: int = Field(default=0, ge=0)
    changes_detected: int = Field(default=0, ge=0)
    debounced_changes: int = Field(default=0, ge=0)
    notifications_sent: int = Field(default=0, ge=0)
    notifications_failed: int = Field(default=0, ge=0)
    persistence_errors: int = Field(default=0, ge=0)
    auto_paused: int = Field(default=0, ge=0)
    unexpected_errors: int = Field(default=0, ge=0, description="Documents whose poll raised an unclassified error")
    failed_documents: int = Field(default=0, ge=0, description="Documents with at least one failure this cycle")
    skipped: int = Field(default=0, ge=0, description="Documents not polled because a stop was requested")
    average_fetch_latency_ms: float = Field(default=0.0, ge=0.0)
    cycle_duration_ms: float = Field(default=0.0, ge=0.0)

    @computed_field
    @property
    def error_rate(self) -> float:
        """Share of attempted documents that failed to fetch or persist."""
        attempted = self.fetch_successes + self.fetch_errors
        if attempted == 0:
            return 0.0
        return round(min(self.failed_documents, attempted) / attempted, 4)

    model_config = ConfigDict(validate_assignment=True)


class HealthReport(BaseModel):
    """Health status plus the metrics it was derived from."""

    status: HealthStatus
    reason: str
    running: bool = False
    store_available: bool = True
    cycles_completed: int = 0
    errors_in_last_hour: int = 0
    last_cycle: PollCycleMetrics | None = None

    model_config = ConfigDict(use_enum_values=True)
