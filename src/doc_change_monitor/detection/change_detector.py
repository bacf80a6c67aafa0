"""
Change detection with debouncing.

Compares a freshly fetched metadata snapshot against the document's
notification baseline (never against the previous poll), so repeated polls
of the same unnotified edit always produce the same decision, and an edit
that was debounced is notified on the first poll after the window elapses.
"""

import logging
from datetime import datetime, timedelta

from doc_change_monitor.models import (
    ChangeKind,
    Decision,
    DecisionAction,
    DocumentMetadata,
    DocumentState,
    TrackedDocument,
)

logger = logging.getLogger(__name__)


def decide(
    observed: DocumentMetadata,
    doc: TrackedDocument,
    now: datetime,
    debounce_window: timedelta,
) -> Decision:
    """
    Decide what a poll result means for a tracked document.

    Args:
        observed: Metadata returned by the upstream API
        doc: Tracked document as currently persisted
        now: Current time
        debounce_window: Minimum time between two notifications

    Returns:
        FirstTracking, NoChange, Notify(kind) or Debounced(kind)
    """
    if doc.state == DocumentState.PENDING or not doc.has_baseline:
        return Decision.first_tracking()

    if observed.same_revision(doc.baseline_modified_at, doc.baseline_modified_by):
        return Decision.no_change()

    if observed.modified_by != doc.baseline_modified_by:
        kind = ChangeKind.USER_CHANGED
        description = f"Different user detected ({doc.baseline_modified_by} -> {observed.modified_by})"
    else:
        kind = ChangeKind.TIME_UPDATED
        description = f"Document updated by {observed.modified_by}"

    if doc.last_notified_at is None:
        return Decision.notify(kind, reason=description)

    elapsed = now - doc.last_notified_at
    if elapsed >= debounce_window:
        return Decision.notify(kind, reason=description)

    return Decision.debounced(
        kind,
        reason=(
            f"Debounced: {elapsed.total_seconds():.1f}s since last notification "
            f"< {debounce_window.total_seconds():.1f}s window"
        ),
    )


def format_decision(decision: Decision) -> str:
    """Format a decision for a log line."""
    labels = {
        DecisionAction.FIRST_TRACKING: "FIRST TRACKING",
        DecisionAction.NO_CHANGE: "NO CHANGE",
        DecisionAction.NOTIFY: "DETECTED",
        DecisionAction.DEBOUNCED: "DEBOUNCED",
    }
    label = labels[DecisionAction(decision.action)]
    if decision.kind:
        label = f"{label} [{decision.kind}]"
    return f"{label} ({decision.reason})" if decision.reason else label


class ChangeDetector:
    """Change detector bound to a fixed debounce window."""

    def __init__(self, debounce_window: timedelta):
        if debounce_window < timedelta(0):
            raise ValueError("debounce_window cannot be negative")
        self.debounce_window = debounce_window

    def decide(self, observed: DocumentMetadata, doc: TrackedDocument, now: datetime) -> Decision:
        decision = decide(observed, doc, now, self.debounce_window)
        logger.debug("Change detection for %s: %s", doc.token, format_decision(decision))
        return decision
