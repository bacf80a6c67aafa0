"""
Relational schema for tracked documents and the change audit log.
"""

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class TrackedDocumentRow(Base):
    """One watch, unique per (owner, token)."""

    __tablename__ = "document_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(128), nullable=False, index=True)
    token = Column(String(128), nullable=False, index=True)
    doc_type = Column(String(16), nullable=False, default="doc")
    notify_target = Column(String(255), nullable=False)
    title = Column(Text, nullable=True)
    state = Column(String(16), nullable=False, index=True)

    baseline_modified_at = Column(BigInteger, nullable=True)
    baseline_modified_by = Column(String(128), nullable=True)
    last_observed_modified_at = Column(BigInteger, nullable=True)
    last_observed_modified_by = Column(String(128), nullable=True)
    last_notified_at = Column(DateTime(timezone=True), nullable=True)
    pending_change = Column(Boolean, nullable=False, default=False)

    consecutive_errors = Column(Integer, nullable=False, default=0)
    consecutive_permanent_errors = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    pause_reason = Column(Text, nullable=True)
    last_polled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (UniqueConstraint("owner_id", "token", name="uq_document_tracking_owner_token"),)

    def __repr__(self):
        return f"<TrackedDocumentRow(owner_id={self.owner_id}, token={self.token}, state={self.state})>"


class ChangeEventRow(Base):
    """Append-only audit row. Not linked to document_tracking so it outlives deletes."""

    __tablename__ = "document_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(128), nullable=False, index=True)
    token = Column(String(128), nullable=False)
    kind = Column(String(32), nullable=False)
    observed_at = Column(BigInteger, nullable=False)
    observed_by = Column(String(128), nullable=False)
    previous_modified_at = Column(BigInteger, nullable=True)
    previous_modified_by = Column(String(128), nullable=True)
    debounced = Column(Boolean, nullable=False, default=False)
    notification_sent = Column(Boolean, nullable=False, default=False)
    detected_at = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (Index("ix_document_changes_token_observed_at", "token", "observed_at"),)

    def __repr__(self):
        return f"<ChangeEventRow(token={self.token}, kind={self.kind}, observed_at={self.observed_at})>"
