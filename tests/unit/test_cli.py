"""Unit tests for the command line interface."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner
from doc_change_monitor.app import create_runtime
from doc_change_monitor.cli import main
from doc_change_monitor.client import FeishuMetadataClient
from doc_change_monitor.models import DocumentMetadata, ResourceNotFoundError
from doc_change_monitor.notifications import LoggingNotifier, WebhookNotifier
from rich.console import Console


class TestCreateRuntime:
    """Test cases for runtime wiring."""

    def test_logging_notifier_without_webhook(self, config):
        """Test the logging notifier is used when no webhook is configured."""
        runtime = create_runtime(config)

        assert isinstance(runtime.notifier, LoggingNotifier)
        assert runtime.poller.state_store is runtime.state_store
        assert runtime.service.poller is runtime.poller

    def test_webhook_notifier_when_configured(self, config):
        """Test the webhook notifier is used when a webhook is configured."""
        runtime = create_runtime(config.model_copy(update={"notifier_webhook_url": "https://hooks.example.test"}))

        assert isinstance(runtime.notifier, WebhookNotifier)


class TestCli:
    """Test cases for the click commands."""

    @pytest.fixture
    def runner(self, config):
        """Create a CLI runner using the test configuration."""
        with (
            patch("doc_change_monitor.cli.get_config", return_value=config),
            patch("doc_change_monitor.cli.configure_logging"),
            patch("doc_change_monitor.cli.console", Console(width=200)),
        ):
            yield CliRunner()

    def test_list_empty(self, runner):
        """Test listing an owner without watches."""
        result = runner.invoke(main, ["list", "ou_owner"])

        assert result.exit_code == 0
        assert "ou_owner is not watching any documents" in result.output

    def test_list_documents(self, runner, store):
        """Test listing renders a table of watches."""
        asyncio.run(store.create_document("ou_owner", "doccnABC", "oc_chat", title="Roadmap"))

        result = runner.invoke(main, ["list", "ou_owner"])

        assert result.exit_code == 0
        assert "doccnABC" in result.output
        assert "Roadmap" in result.output
        assert "pending" in result.output

    def test_check(self, runner):
        """Test checking a document prints its metadata."""
        metadata = DocumentMetadata(token="doccnABC", title="Roadmap", modified_at=1700000000, modified_by="ou_bob")

        with patch.object(FeishuMetadataClient, "fetch", AsyncMock(return_value=metadata)) as fetch:
            result = runner.invoke(main, ["check", "doccnABC", "--doc-type", "docx"])

        assert result.exit_code == 0
        assert "ou_bob" in result.output
        assert "2023-11-14 22:13:20" in result.output
        fetch.assert_awaited_once_with("doccnABC", "docx", use_cache=False)

    def test_check_failure(self, runner):
        """Test a failed check exits non-zero."""
        error = ResourceNotFoundError("HTTP 404 fetching metadata for doccnABC")

        with patch.object(FeishuMetadataClient, "fetch", AsyncMock(side_effect=error)):
            result = runner.invoke(main, ["check", "doccnABC"])

        assert result.exit_code == 1
        assert "Check failed" in result.output

    def test_watch_and_history(self, runner):
        """Test watching a document from the command line."""
        metadata = DocumentMetadata(token="doccnABC", title="Roadmap", modified_at=1700000000, modified_by="ou_bob")

        with patch.object(FeishuMetadataClient, "fetch", AsyncMock(return_value=metadata)):
            result = runner.invoke(main, ["watch", "ou_owner", "doccnABC", "-n", "oc_chat"])

        assert result.exit_code == 0
        assert "Watching" in result.output

        result = runner.invoke(main, ["history", "ou_owner"])
        assert result.exit_code == 0
        assert "No changes recorded" in result.output
