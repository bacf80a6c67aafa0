"""
Poll cycle metrics history and health evaluation.
"""

from collections import deque
from datetime import datetime, timedelta

from doc_change_monitor.models import HealthReport, HealthStatus, PollCycleMetrics

ERROR_WINDOW = timedelta(hours=1)


class PollMetricsTracker:
    """
    Keeps a bounded history of cycle metrics and derives health from it.

    Health is computed from the latest cycle's error rate: above
    ``degraded_error_rate`` the poller is degraded, above
    ``unhealthy_error_rate`` it is unhealthy. An unreachable state store is
    always unhealthy.
    """

    def __init__(self, degraded_error_rate: float, unhealthy_error_rate: float, history_size: int = 100):
        self.degraded_error_rate = degraded_error_rate
        self.unhealthy_error_rate = unhealthy_error_rate
        self._history: deque[PollCycleMetrics] = deque(maxlen=history_size)
        self._errors: deque[tuple[datetime, int]] = deque()
        self.cycles_completed = 0

    @property
    def last_cycle(self) -> PollCycleMetrics | None:
        return self._history[-1] if self._history else None

    def record_cycle(self, metrics: PollCycleMetrics) -> None:
        self._history.append(metrics)
        self.cycles_completed += 1
        failures = (
            metrics.fetch_errors + metrics.persistence_errors + metrics.notifications_failed + metrics.unexpected_errors
        )
        if failures:
            self._errors.append((metrics.cycle_started_at, failures))

    def record_errors(self, at: datetime, count: int = 1) -> None:
        """Record failures that happened outside a completed cycle."""
        self._errors.append((at, count))

    def errors_in_last_hour(self, now: datetime) -> int:
        cutoff = now - ERROR_WINDOW
        while self._errors and self._errors[0][0] < cutoff:
            self._errors.popleft()
        return sum(count for _, count in self._errors)

    def average_cycle_duration_ms(self) -> float:
        if not self._history:
            return 0.0
        return round(sum(m.cycle_duration_ms for m in self._history) / len(self._history), 2)

    def evaluate(self, now: datetime, running: bool, store_available: bool) -> HealthReport:
        last = self.last_cycle
        status, reason = self._classify(last, store_available)
        return HealthReport(
            status=status,
            reason=reason,
            running=running,
            store_available=store_available,
            cycles_completed=self.cycles_completed,
            errors_in_last_hour=self.errors_in_last_hour(now),
            last_cycle=last,
        )

    def _classify(self, last: PollCycleMetrics | None, store_available: bool) -> tuple[HealthStatus, str]:
        if not store_available:
            return HealthStatus.UNHEALTHY, "State store unreachable"
        if last is None:
            return HealthStatus.HEALTHY, "No poll cycle completed yet"
        if last.error_rate > self.unhealthy_error_rate:
            return HealthStatus.UNHEALTHY, f"Error rate {last.error_rate:.2f} > {self.unhealthy_error_rate:.2f}"
        if last.error_rate > self.degraded_error_rate:
            return HealthStatus.DEGRADED, f"Error rate {last.error_rate:.2f} > {self.degraded_error_rate:.2f}"
        if last.documents_polled == 0:
            return HealthStatus.HEALTHY, "No documents tracked"
        return HealthStatus.HEALTHY, "All systems operational"
