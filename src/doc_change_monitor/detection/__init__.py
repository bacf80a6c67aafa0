"""Pure change detection for polled document metadata."""

from .change_detector import ChangeDetector, decide, format_decision

__all__ = [
    "ChangeDetector",
    "decide",
    "format_decision",
]
