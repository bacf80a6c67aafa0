"""Unit tests for document, change and metrics models."""

from datetime import UTC, datetime

import pytest
from doc_change_monitor.models import (
    ChangeKind,
    Decision,
    DecisionAction,
    DocumentMetadata,
    DocumentState,
    NotificationEvent,
    NotificationKind,
    PollCycleMetrics,
    TrackedDocument,
)
from doc_change_monitor.models.exceptions import (
    FetchError,
    PermanentFetchError,
    PermissionDeniedError,
    ResourceNotFoundError,
    TransientFetchError,
)
from pydantic import ValidationError


class TestDocumentMetadata:
    """Test cases for DocumentMetadata model."""

    def test_defaults_for_missing_fields(self):
        """Test that only the token is required."""
        metadata = DocumentMetadata(token="doccnABC")

        assert metadata.title == "Unknown"
        assert metadata.doc_type == "doc"
        assert metadata.modified_by == "unknown"
        assert metadata.modified_at == 0
        assert metadata.fetched_at.tzinfo is not None

    def test_empty_token_rejected(self):
        """Test that an empty token is invalid."""
        with pytest.raises(ValidationError):
            DocumentMetadata(token="")

    def test_same_revision(self):
        """Test revision comparison uses both time and user."""
        metadata = DocumentMetadata(token="doccnABC", modified_at=1700000000, modified_by="ou_alice")

        assert metadata.same_revision(1700000000, "ou_alice")
        assert not metadata.same_revision(1700000000, "ou_bob")
        assert not metadata.same_revision(1700000060, "ou_alice")
        assert not metadata.same_revision(None, None)

    def test_metadata_is_frozen(self):
        """Test snapshots cannot be mutated."""
        metadata = DocumentMetadata(token="doccnABC")

        with pytest.raises(ValidationError):
            metadata.modified_by = "ou_mallory"


class TestTrackedDocument:
    """Test cases for TrackedDocument model."""

    def test_create_pending_document(self):
        """Test a new document starts pending without a baseline."""
        doc = TrackedDocument(owner_id="ou_owner", token="doccnABC", notify_target="oc_chat")

        assert doc.state == DocumentState.PENDING
        assert doc.has_baseline is False
        assert doc.pending_change is False
        assert doc.consecutive_errors == 0
        assert doc.is_pollable()

    def test_state_stored_as_value(self):
        """Test enum fields hold plain values."""
        doc = TrackedDocument(
            owner_id="ou_owner", token="doccnABC", notify_target="oc_chat", state=DocumentState.PAUSED
        )

        assert doc.state == "paused"
        assert not doc.is_pollable()

    def test_deleted_is_not_pollable(self):
        """Test deleted rows are not polled."""
        doc = TrackedDocument(owner_id="ou_owner", token="doccnABC", notify_target="oc_chat", state="deleted")

        assert not doc.is_pollable()

    def test_doc_type_validation(self):
        """Test only upstream document types are accepted."""
        doc = TrackedDocument(owner_id="ou_owner", token="doccnABC", notify_target="oc_chat", doc_type="sheet")
        assert doc.doc_type == "sheet"

        with pytest.raises(ValidationError) as exc_info:
            TrackedDocument(owner_id="ou_owner", token="doccnABC", notify_target="oc_chat", doc_type="slides")

        assert "doc_type must be one of" in str(exc_info.value)

    def test_owner_required(self):
        """Test that owner_id cannot be empty."""
        with pytest.raises(ValidationError):
            TrackedDocument(owner_id="", token="doccnABC", notify_target="oc_chat")

    def test_has_baseline_after_notification(self):
        """Test the computed baseline flag."""
        doc = TrackedDocument(
            owner_id="ou_owner",
            token="doccnABC",
            notify_target="oc_chat",
            state=DocumentState.ACTIVE,
            baseline_modified_at=1700000000,
            baseline_modified_by="ou_alice",
        )

        assert doc.has_baseline is True
        assert doc.model_dump()["has_baseline"] is True


class TestDecision:
    """Test cases for Decision model."""

    def test_first_tracking(self):
        """Test first tracking notifies with the new document kind."""
        decision = Decision.first_tracking()

        assert decision.action == DecisionAction.FIRST_TRACKING
        assert decision.kind == ChangeKind.NEW_DOCUMENT
        assert decision.should_notify
        assert decision.is_change
        assert not decision.is_debounced

    def test_no_change(self):
        """Test no change has no kind and never notifies."""
        decision = Decision.no_change()

        assert decision.kind is None
        assert not decision.should_notify
        assert not decision.is_change

    def test_notify_and_debounced(self):
        """Test notify and debounced decisions carry the change kind."""
        notify = Decision.notify(ChangeKind.USER_CHANGED)
        debounced = Decision.debounced(ChangeKind.TIME_UPDATED)

        assert notify.should_notify and notify.kind == "user_changed"
        assert not debounced.should_notify
        assert debounced.is_change
        assert debounced.is_debounced


class TestNotificationEvent:
    """Test cases for NotificationEvent model."""

    def test_change_notification_text(self):
        """Test rendering a change notification."""
        event = NotificationEvent(
            token="doccnABC",
            kind=NotificationKind.USER_CHANGED,
            observed_at=1700000000,
            observed_by="ou_bob",
            title="Roadmap",
            doc_type="docx",
        )

        text = event.render_text()
        assert event.is_error is False
        assert "**Roadmap**" in text
        assert "Modified by: ou_bob" in text
        assert "2023-11-14T22:13:20+00:00" in text
        assert "Document type: docx" in text

    def test_error_notification_text(self):
        """Test rendering an auto-pause notification."""
        event = NotificationEvent(
            token="doccnABC",
            kind=NotificationKind.AUTO_PAUSED,
            error_context={"reason": "3 consecutive permanent errors (RESOURCE_NOT_FOUND)"},
        )

        assert event.is_error is True
        assert event.render_text() == (
            "Stopped watching doccnABC: 3 consecutive permanent errors (RESOURCE_NOT_FOUND)"
        )


class TestPollCycleMetrics:
    """Test cases for PollCycleMetrics model."""

    def test_error_rate_without_attempts(self):
        """Test error rate is zero when nothing was polled."""
        assert PollCycleMetrics().error_rate == 0.0

    def test_error_rate_counts_fetch_and_persistence_errors(self):
        """Test error rate over attempted documents."""
        metrics = PollCycleMetrics(
            cycle_started_at=datetime(2024, 1, 1, tzinfo=UTC),
            fetch_successes=8,
            fetch_errors=2,
            persistence_errors=1,
            failed_documents=3,
        )

        assert metrics.error_rate == 0.3

    def test_error_rate_counts_each_document_once(self):
        """Test a document that failed twice in one cycle is one failure."""
        metrics = PollCycleMetrics(
            cycle_started_at=datetime(2024, 1, 1, tzinfo=UTC),
            fetch_errors=1,
            persistence_errors=1,
            failed_documents=1,
        )

        assert metrics.error_rate == 1.0

    def test_negative_counter_rejected(self):
        """Test counters are validated on assignment."""
        metrics = PollCycleMetrics()

        with pytest.raises(ValidationError):
            metrics.fetch_errors = -1


class TestFetchErrors:
    """Test cases for the fetch error hierarchy."""

    def test_transient_error(self):
        """Test transient errors are flagged and coded."""
        error = TransientFetchError("HTTP 503", token="doccnABC", status_code=503)

        assert isinstance(error, FetchError)
        assert error.transient is True
        assert error.error_code == "TRANSIENT_FETCH_ERROR"
        assert error.context == {"token": "doccnABC", "status_code": 503}
        assert str(error) == "[TRANSIENT_FETCH_ERROR] HTTP 503"

    def test_permanent_error_subclasses(self):
        """Test permanent error subclasses keep their own codes."""
        not_found = ResourceNotFoundError("gone", token="doccnABC", status_code=404)
        denied = PermissionDeniedError("forbidden", token="doccnABC", status_code=403)

        assert isinstance(not_found, PermanentFetchError)
        assert isinstance(denied, PermanentFetchError)
        assert not_found.transient is False
        assert not_found.error_code == "RESOURCE_NOT_FOUND"
        assert denied.error_code == "PERMISSION_DENIED"
