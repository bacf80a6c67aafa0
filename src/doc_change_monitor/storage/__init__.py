"""Durable state storage."""

from .schema import Base, ChangeEventRow, TrackedDocumentRow
from .sql_store import SqlStateStore

__all__ = [
    "Base",
    "ChangeEventRow",
    "SqlStateStore",
    "TrackedDocumentRow",
]
