"""Outbound notification delivery."""

from .notifiers import LoggingNotifier, WebhookNotifier

__all__ = [
    "LoggingNotifier",
    "WebhookNotifier",
]
