"""
Monitoring package for periodic document change reconciliation.

This package provides the poller that walks every tracked document,
detects metadata changes and notifies owners, plus its metrics and health
tracking.
"""

from .document_poller import DocumentPoller, DocumentPollOutcome
from .metrics import PollMetricsTracker

__all__ = [
    "DocumentPollOutcome",
    "DocumentPoller",
    "PollMetricsTracker",
]
