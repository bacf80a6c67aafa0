"""Wall-clock implementation of the clock interface."""

from datetime import UTC, datetime

from doc_change_monitor.core.interfaces import IClock


class SystemClock(IClock):
    """Clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(UTC)
