"""
Models for change decisions, audit events and outbound notifications.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ChangeKind(str, Enum):
    """Kind of change recorded in the audit log."""

    NEW_DOCUMENT = "new_document"
    TIME_UPDATED = "time_updated"
    USER_CHANGED = "user_changed"


class DecisionAction(str, Enum):
    """Outcome of comparing a fetched snapshot against the baseline."""

    FIRST_TRACKING = "first_tracking"
    NO_CHANGE = "no_change"
    NOTIFY = "notify"
    DEBOUNCED = "debounced"


class Decision(BaseModel):
    """
    Result of change detection for a single poll of a single document.

    ``kind`` is set for every action except ``no_change``.
    """

    action: DecisionAction
    kind: ChangeKind | None = None
    reason: str = ""

    @classmethod
    def first_tracking(cls, reason: str = "First time tracking document") -> "Decision":
        return cls(action=DecisionAction.FIRST_TRACKING, kind=ChangeKind.NEW_DOCUMENT, reason=reason)

    @classmethod
    def no_change(cls, reason: str = "No metadata change (same user, same time)") -> "Decision":
        return cls(action=DecisionAction.NO_CHANGE, reason=reason)

    @classmethod
    def notify(cls, kind: ChangeKind, reason: str = "") -> "Decision":
        return cls(action=DecisionAction.NOTIFY, kind=kind, reason=reason)

    @classmethod
    def debounced(cls, kind: ChangeKind, reason: str = "") -> "Decision":
        return cls(action=DecisionAction.DEBOUNCED, kind=kind, reason=reason)

    @property
    def should_notify(self) -> bool:
        """Whether a notification must be sent for this decision."""
        return self.action in (DecisionAction.FIRST_TRACKING, DecisionAction.NOTIFY)

    @property
    def is_change(self) -> bool:
        """Whether the snapshot differs from the baseline."""
        return self.action != DecisionAction.NO_CHANGE

    @property
    def is_debounced(self) -> bool:
        return self.action == DecisionAction.DEBOUNCED

    model_config = ConfigDict(use_enum_values=True, frozen=True)


class ChangeEvent(BaseModel):
    """
    One row of the append-only change audit log.

    Events are written whether or not the change was debounced and are kept
    after the tracked document itself is deleted.
    """

    id: int | None = Field(None, description="Storage identifier")
    owner_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    kind: ChangeKind
    observed_at: int = Field(..., ge=0, description="Upstream modification time that was observed")
    observed_by: str = Field(..., description="Upstream modifier that was observed")
    previous_modified_at: int | None = Field(None, description="Baseline time when the change was detected")
    previous_modified_by: str | None = Field(None, description="Baseline modifier when the change was detected")
    debounced: bool = False
    notification_sent: bool = False
    detected_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = ConfigDict(use_enum_values=True, frozen=True)


class NotificationKind(str, Enum):
    """Kinds of events handed to the notifier."""

    NEW_DOCUMENT = "new_document"
    TIME_UPDATED = "time_updated"
    USER_CHANGED = "user_changed"
    AUTO_PAUSED = "auto_paused"


class NotificationEvent(BaseModel):
    """Payload delivered to a notify target."""

    token: str
    kind: NotificationKind
    observed_at: int | None = None
    observed_by: str | None = None
    title: str | None = None
    doc_type: str | None = None
    owner_id: str | None = None
    error_context: dict[str, Any] | None = None

    @computed_field
    @property
    def is_error(self) -> bool:
        """Error notifications are distinct from change notifications."""
        return self.error_context is not None

    def render_text(self) -> str:
        """Render a short human-readable message for chat transports."""
        if self.is_error:
            reason = (self.error_context or {}).get("reason", "repeated fetch failures")
            return f"Stopped watching {self.title or self.token}: {reason}"

        lines = [f"**{self.title or self.token}**"]
        if self.observed_by:
            lines.append(f"Modified by: {self.observed_by}")
        if self.observed_at:
            lines.append(f"Modified at: {datetime.fromtimestamp(self.observed_at, UTC).isoformat()}")
        if self.doc_type:
            lines.append(f"Document type: {self.doc_type}")
        return "\n".join(lines)

    model_config = ConfigDict(use_enum_values=True, frozen=True)
