"""
Data models for watched documents and their upstream metadata.

These models represent the core data structures shared by the metadata
client, the change detector, the state store and the poller.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class DocumentState(str, Enum):
    """Lifecycle state of a tracked document."""

    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    DELETED = "deleted"


class DocumentType(str, Enum):
    """Upstream document types accepted by the metadata endpoint."""

    DOC = "doc"
    DOCX = "docx"
    SHEET = "sheet"
    BITABLE = "bitable"
    FILE = "file"


POLLABLE_STATES = (DocumentState.PENDING, DocumentState.ACTIVE)


class DocumentMetadata(BaseModel):
    """
    Snapshot of a document's metadata as reported by the upstream API.

    Only ``modified_at`` and ``modified_by`` take part in change detection;
    the remaining fields are carried along for notifications and display.
    """

    token: str = Field(..., min_length=1, description="Opaque upstream document token")
    title: str = Field(default="Unknown", description="Document title")
    doc_type: str = Field(default="doc", description="Upstream document type")
    owner_id: str = Field(default="unknown", description="Upstream owner of the document")
    created_time: int = Field(default=0, ge=0, description="Creation time (Unix seconds)")
    modified_at: int = Field(default=0, ge=0, description="Last modification time (Unix seconds)")
    modified_by: str = Field(default="unknown", description="User ID of the last modifier")
    fetched_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When this snapshot was fetched",
    )

    def same_revision(self, modified_at: int | None, modified_by: str | None) -> bool:
        """Check whether this snapshot matches the given (time, user) pair."""
        return self.modified_at == modified_at and self.modified_by == modified_by

    def __str__(self) -> str:
        return f"DocumentMetadata({self.token}, {self.modified_at} by {self.modified_by})"

    model_config = ConfigDict(use_enum_values=True, frozen=True)


class TrackedDocument(BaseModel):
    """
    A document watched by one owner.

    The baseline fields hold the metadata as of the last notification that
    was actually delivered. The last-observed fields hold whatever the most
    recent successful poll returned.
    """

    owner_id: str = Field(..., min_length=1, description="User who registered the watch")
    token: str = Field(..., min_length=1, description="Opaque upstream document token")
    notify_target: str = Field(..., min_length=1, description="Destination passed to the notifier")
    doc_type: str = Field(default="doc", description="Upstream document type")
    title: str | None = Field(None, description="Last known document title")
    state: DocumentState = Field(default=DocumentState.PENDING, description="Lifecycle state")

    baseline_modified_at: int | None = Field(None, description="Modification time at last notification")
    baseline_modified_by: str | None = Field(None, description="Modifier at last notification")
    last_observed_modified_at: int | None = Field(None, description="Modification time at last poll")
    last_observed_modified_by: str | None = Field(None, description="Modifier at last poll")
    last_notified_at: datetime | None = Field(None, description="When the last notification fired")
    pending_change: bool = Field(default=False, description="Observed differs from baseline, not yet notified")

    consecutive_errors: int = Field(default=0, ge=0, description="Fetch failures since last success")
    consecutive_permanent_errors: int = Field(default=0, ge=0, description="Permanent failures in a row")
    last_error: str | None = Field(None, description="Most recent fetch error message")
    pause_reason: str | None = Field(None, description="Why the document was paused")
    last_polled_at: datetime | None = Field(None, description="Last successful poll")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), description="Row creation time")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC), description="Last row update")

    @field_validator('doc_type')
    @classmethod
    def validate_doc_type(cls, v):
        """Ensure the document type is one the upstream API understands."""
        try:
            return DocumentType(v).value
        except ValueError:
            allowed = sorted(t.value for t in DocumentType)
            raise ValueError(f"doc_type must be one of {allowed}") from None

    @computed_field
    @property
    def has_baseline(self) -> bool:
        """Whether a notification has ever been delivered for this document."""
        return self.baseline_modified_at is not None

    def is_pollable(self) -> bool:
        """Check if the poller should fetch this document."""
        return self.state in POLLABLE_STATES

    def __str__(self) -> str:
        return f"TrackedDocument({self.owner_id}/{self.token}, {self.state})"

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)
