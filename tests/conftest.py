"""Shared fixtures for the document change monitor tests."""

from datetime import UTC, datetime, timedelta

import pytest
from doc_change_monitor.config import MonitorConfig
from doc_change_monitor.core.interfaces import IClock
from doc_change_monitor.storage import Base, SqlStateStore
from sqlalchemy import create_engine


class FakeClock(IClock):
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


@pytest.fixture
def clock():
    """Create a fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    """Create a configuration pointing at a temporary SQLite database."""
    return MonitorConfig(
        _env_file=None,
        api_base_url="https://open.feishu.test",
        api_access_token="test-token",
        database_url=f"sqlite:///{tmp_path / 'state.db'}",
        debounce_window_seconds=5.0,
        auto_pause_threshold=3,
        fetch_max_retries=2,
        fetch_backoff_base_seconds=0.1,
        fetch_backoff_max_seconds=1.0,
        poll_interval_seconds=1.0,
        notification_timeout_seconds=1.0,
    )


@pytest.fixture
def store(config, clock):
    """Create a state store with its tables already created."""
    engine = create_engine(config.database_url, **config.get_engine_options())
    Base.metadata.create_all(engine)
    store = SqlStateStore(config, engine=engine, clock=clock)
    yield store
    engine.dispose()
