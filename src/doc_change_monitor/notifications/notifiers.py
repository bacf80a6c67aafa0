"""
Notifier implementations.

The real chat transport lives outside this package; these notifiers hand
events to it over a webhook, or just log them for local runs.
"""

import logging
from typing import Any

import httpx

from doc_change_monitor.config.settings import MonitorConfig
from doc_change_monitor.core.interfaces import INotifier
from doc_change_monitor.models import NotificationEvent, NotificationTransportError

logger = logging.getLogger(__name__)


class WebhookNotifier(INotifier):
    """
    Posts notification events as JSON to a webhook.

    Any non-2xx answer or transport failure is reported as a
    ``NotificationTransportError`` so the poller keeps the baseline and
    retries on the next cycle.
    """

    def __init__(self, config: MonitorConfig, http_client: httpx.AsyncClient | None = None):
        if not config.notifier_webhook_url:
            raise ValueError("notifier_webhook_url must be configured for WebhookNotifier")
        self.config = config
        self.webhook_url = config.notifier_webhook_url
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=config.notification_timeout_seconds)

    async def send(self, notify_target: str, event: NotificationEvent) -> None:
        payload = self._build_payload(notify_target, event)
        try:
            response = await self._http.post(self.webhook_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationTransportError(
                f"Webhook delivery failed for {event.token}: {e}",
                notify_target=notify_target,
                token=event.token,
                underlying_error=e,
            ) from e

        logger.info("Notification %s for %s delivered to %s", event.kind, event.token, notify_target)

    async def close(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    @staticmethod
    def _build_payload(notify_target: str, event: NotificationEvent) -> dict[str, Any]:
        return {
            "notify_target": notify_target,
            "text": event.render_text(),
            "event": event.model_dump(mode="json"),
        }


class LoggingNotifier(INotifier):
    """Notifier that only logs events. Keeps the last events for inspection."""

    def __init__(self, history_size: int = 100):
        self.history_size = history_size
        self.sent: list[tuple[str, NotificationEvent]] = []

    async def send(self, notify_target: str, event: NotificationEvent) -> None:
        logger.info("[%s] %s", notify_target, event.render_text().replace("\n", " | "))
        self.sent.append((notify_target, event))
        if len(self.sent) > self.history_size:
            self.sent = self.sent[-self.history_size :]
