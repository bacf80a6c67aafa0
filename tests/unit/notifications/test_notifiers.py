"""Unit tests for notifier implementations."""

import json

import httpx
import pytest
from doc_change_monitor.models import NotificationEvent, NotificationKind, NotificationTransportError
from doc_change_monitor.notifications import LoggingNotifier, WebhookNotifier


@pytest.fixture
def event():
    """Create a change notification event."""
    return NotificationEvent(
        token="doccnABC",
        kind=NotificationKind.USER_CHANGED,
        observed_at=1700000000,
        observed_by="ou_bob",
        title="Roadmap",
        doc_type="doc",
        owner_id="ou_owner",
    )


class TestWebhookNotifier:
    """Test cases for WebhookNotifier."""

    @pytest.fixture
    def webhook_config(self, config):
        """Create a configuration with a webhook URL."""
        return config.model_copy(update={"notifier_webhook_url": "https://hooks.example.test/notify"})

    def test_requires_webhook_url(self, config):
        """Test the notifier refuses to start without a URL."""
        with pytest.raises(ValueError):
            WebhookNotifier(config)

    @pytest.mark.asyncio
    async def test_send_posts_event(self, webhook_config, event):
        """Test the event is posted as JSON."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        notifier = WebhookNotifier(webhook_config, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        await notifier.send("oc_chat", event)

        assert len(requests) == 1
        assert requests[0].url == "https://hooks.example.test/notify"
        payload = json.loads(requests[0].content)
        assert payload["notify_target"] == "oc_chat"
        assert payload["event"]["kind"] == "user_changed"
        assert payload["event"]["is_error"] is False
        assert "Modified by: ou_bob" in payload["text"]

    @pytest.mark.asyncio
    async def test_error_status_raises_transport_error(self, webhook_config, event):
        """Test a non-2xx answer is a transport failure."""
        transport = httpx.MockTransport(lambda request: httpx.Response(502))
        notifier = WebhookNotifier(webhook_config, http_client=httpx.AsyncClient(transport=transport))

        with pytest.raises(NotificationTransportError) as exc_info:
            await notifier.send("oc_chat", event)

        assert exc_info.value.context == {"notify_target": "oc_chat", "token": "doccnABC"}
        assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_connection_failure_raises_transport_error(self, webhook_config, event):
        """Test network failures are transport failures."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        notifier = WebhookNotifier(webhook_config, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        with pytest.raises(NotificationTransportError):
            await notifier.send("oc_chat", event)


class TestLoggingNotifier:
    """Test cases for LoggingNotifier."""

    @pytest.mark.asyncio
    async def test_send_records_event(self, event, caplog):
        """Test events are logged and kept."""
        notifier = LoggingNotifier()

        with caplog.at_level("INFO", logger="doc_change_monitor.notifications.notifiers"):
            await notifier.send("oc_chat", event)

        assert notifier.sent == [("oc_chat", event)]
        assert "[oc_chat] **Roadmap** | Modified by: ou_bob" in caplog.text

    @pytest.mark.asyncio
    async def test_history_bounded(self, event):
        """Test only the most recent events are kept."""
        notifier = LoggingNotifier(history_size=2)

        for target in ("a", "b", "c"):
            await notifier.send(target, event)

        assert [target for target, _ in notifier.sent] == ["b", "c"]
