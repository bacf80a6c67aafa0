"""
Runtime wiring for the document change monitor.

Builds the metadata client, state store, notifier, poller and watch service
from a single configuration object.
"""

import logging
import logging.config

from doc_change_monitor.client import FeishuMetadataClient
from doc_change_monitor.config import MonitorConfig, get_config
from doc_change_monitor.core.interfaces import INotifier
from doc_change_monitor.monitoring import DocumentPoller
from doc_change_monitor.notifications import LoggingNotifier, WebhookNotifier
from doc_change_monitor.service import DocumentWatchService
from doc_change_monitor.storage import SqlStateStore

logger = logging.getLogger(__name__)


class MonitorRuntime:
    """All wired components of one monitor process."""

    def __init__(
        self,
        config: MonitorConfig,
        metadata_client: FeishuMetadataClient,
        state_store: SqlStateStore,
        notifier: INotifier,
        poller: DocumentPoller,
        service: DocumentWatchService,
    ):
        self.config = config
        self.metadata_client = metadata_client
        self.state_store = state_store
        self.notifier = notifier
        self.poller = poller
        self.service = service

    async def start(self) -> None:
        """Create tables if needed and start polling."""
        await self.state_store.initialize()
        await self.poller.start()

    async def close(self) -> None:
        """Stop polling and release every resource, in reverse start order."""
        try:
            await self.poller.stop()
        finally:
            await self.metadata_client.close()
            if isinstance(self.notifier, WebhookNotifier):
                await self.notifier.close()
            await self.state_store.close()


def configure_logging(config: MonitorConfig) -> None:
    logging.config.dictConfig(config.get_log_config())


def create_notifier(config: MonitorConfig) -> INotifier:
    """Webhook notifier when a webhook is configured, logging notifier otherwise."""
    if config.notifier_webhook_url:
        return WebhookNotifier(config)
    logger.warning("No notifier webhook configured, notifications will only be logged")
    return LoggingNotifier()


def create_runtime(config: MonitorConfig | None = None, notifier: INotifier | None = None) -> MonitorRuntime:
    """
    Wire a complete runtime.

    Args:
        config: Monitor configuration (global configuration if not provided)
        notifier: Optional notifier overriding the configured one

    Returns:
        Runtime with every component constructed but not started
    """
    config = config or get_config()
    metadata_client = FeishuMetadataClient(config)
    state_store = SqlStateStore(config)
    notifier = notifier or create_notifier(config)
    poller = DocumentPoller(config, metadata_client, state_store, notifier)
    service = DocumentWatchService(metadata_client, state_store, poller)

    return MonitorRuntime(config, metadata_client, state_store, notifier, poller, service)
