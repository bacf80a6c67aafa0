"""
SQL state store implementation.

Persists tracked documents and the change audit log through SQLAlchemy, so
any number of poller processes can share one database. Blocking database
work runs in worker threads to keep the event loop responsive.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from sqlalchemy import create_engine, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from doc_change_monitor.config.settings import MonitorConfig
from doc_change_monitor.core.clock import SystemClock
from doc_change_monitor.core.interfaces import IClock, IStateStore
from doc_change_monitor.models import (
    POLLABLE_STATES,
    AlreadyWatchedError,
    ChangeEvent,
    Decision,
    DocumentMetadata,
    DocumentNotTrackedError,
    DocumentState,
    PersistenceError,
    TrackedDocument,
)
from doc_change_monitor.storage.schema import Base, ChangeEventRow, TrackedDocumentRow

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ERROR_MESSAGE_LENGTH = 500


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; everything stored is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _require_owner(owner_id: str) -> None:
    if not owner_id or not owner_id.strip():
        raise ValueError("owner_id is required for per-owner operations")


class SqlStateStore(IStateStore):
    """
    SQLAlchemy-backed state store.

    Row-level isolation is enforced here: every per-owner method filters on
    ``owner_id`` and refuses an empty one.
    """

    def __init__(self, config: MonitorConfig, engine: Engine | None = None, clock: IClock | None = None):
        """Initialize the store with configuration and an optional engine."""
        self.config = config
        self.clock = clock or SystemClock()
        self._engine = engine or create_engine(config.database_url, **config.get_engine_options())
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self._run("initialize", lambda: Base.metadata.create_all(self._engine))
        self._initialized = True
        logger.info("State store initialized (%s)", self._engine.url.render_as_string(hide_password=True))

    async def load_active(self) -> list[TrackedDocument]:
        def _load() -> list[TrackedDocument]:
            with self._session_factory() as session:
                rows = session.scalars(
                    select(TrackedDocumentRow)
                    .where(TrackedDocumentRow.state.in_([s.value for s in POLLABLE_STATES]))
                    .order_by(TrackedDocumentRow.id)
                ).all()
                return [self._to_document(row) for row in rows]

        return await self._run("load_active", _load)

    async def create_document(
        self,
        owner_id: str,
        token: str,
        notify_target: str,
        doc_type: str = "doc",
        title: str | None = None,
    ) -> TrackedDocument:
        _require_owner(owner_id)
        now = self.clock.now()
        document = TrackedDocument(
            owner_id=owner_id,
            token=token,
            notify_target=notify_target,
            doc_type=doc_type,
            title=title,
            state=DocumentState.PENDING,
            created_at=now,
            updated_at=now,
        )

        def _create() -> TrackedDocument:
            try:
                with self._session_factory.begin() as session:
                    existing = self._owned_row(session, owner_id, token)
                    if existing is not None:
                        raise AlreadyWatchedError(
                            f"Document {token} is already watched",
                            owner_id=owner_id,
                            token=token,
                            state=existing.state,
                        )
                    row = TrackedDocumentRow(
                        owner_id=owner_id,
                        token=token,
                        doc_type=document.doc_type,
                        notify_target=notify_target,
                        title=title,
                        state=DocumentState.PENDING.value,
                        pending_change=False,
                        consecutive_errors=0,
                        consecutive_permanent_errors=0,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(row)
                    session.flush()
                    return self._to_document(row)
            except IntegrityError as e:
                # Another process inserted the same (owner, token) concurrently
                raise AlreadyWatchedError(
                    f"Document {token} is already watched", owner_id=owner_id, token=token
                ) from e

        created = await self._run("create_document", _create, owner_id=owner_id, token=token)
        logger.info("Started tracking %s for %s -> %s", token, owner_id, notify_target)
        return created

    async def get_document(self, owner_id: str, token: str) -> TrackedDocument | None:
        _require_owner(owner_id)

        def _get() -> TrackedDocument | None:
            with self._session_factory() as session:
                row = self._owned_row(session, owner_id, token)
                return self._to_document(row) if row is not None else None

        return await self._run("get_document", _get, owner_id=owner_id, token=token)

    async def list_documents(self, owner_id: str, include_paused: bool = True) -> list[TrackedDocument]:
        _require_owner(owner_id)
        states = [s.value for s in POLLABLE_STATES]
        if include_paused:
            states.append(DocumentState.PAUSED.value)

        def _list() -> list[TrackedDocument]:
            with self._session_factory() as session:
                rows = session.scalars(
                    select(TrackedDocumentRow)
                    .where(TrackedDocumentRow.owner_id == owner_id, TrackedDocumentRow.state.in_(states))
                    .order_by(TrackedDocumentRow.created_at, TrackedDocumentRow.id)
                ).all()
                return [self._to_document(row) for row in rows]

        return await self._run("list_documents", _list, owner_id=owner_id)

    async def pause_document(self, owner_id: str, token: str, reason: str | None = None) -> TrackedDocument:
        _require_owner(owner_id)
        now = self.clock.now()

        def _pause() -> TrackedDocument:
            with self._session_factory.begin() as session:
                row = self._require_row(session, owner_id, token)
                row.state = DocumentState.PAUSED.value
                row.pause_reason = reason
                row.updated_at = now
                return self._to_document(row)

        paused = await self._run("pause_document", _pause, owner_id=owner_id, token=token)
        logger.info("Paused tracking %s for %s (%s)", token, owner_id, reason or "requested")
        return paused

    async def resume_document(self, owner_id: str, token: str) -> TrackedDocument:
        _require_owner(owner_id)
        now = self.clock.now()

        def _resume() -> TrackedDocument:
            with self._session_factory.begin() as session:
                row = self._require_row(session, owner_id, token)
                if row.state == DocumentState.PAUSED.value:
                    # A document paused before its first notification has no baseline yet
                    has_baseline = row.baseline_modified_at is not None
                    row.state = (DocumentState.ACTIVE if has_baseline else DocumentState.PENDING).value
                    row.pause_reason = None
                    row.consecutive_errors = 0
                    row.consecutive_permanent_errors = 0
                    row.last_error = None
                    row.updated_at = now
                return self._to_document(row)

        resumed = await self._run("resume_document", _resume, owner_id=owner_id, token=token)
        logger.info("Resumed tracking %s for %s (%s)", token, owner_id, resumed.state)
        return resumed

    async def delete_document(self, owner_id: str, token: str) -> None:
        _require_owner(owner_id)

        def _delete() -> None:
            with self._session_factory.begin() as session:
                row = self._require_row(session, owner_id, token)
                session.delete(row)

        await self._run("delete_document", _delete, owner_id=owner_id, token=token)
        logger.info("Deleted tracking record %s for %s", token, owner_id)

    async def commit_observation(
        self,
        owner_id: str,
        token: str,
        observed: DocumentMetadata,
        decision: Decision,
        delivered: bool,
        now: datetime,
    ) -> TrackedDocument | None:
        _require_owner(owner_id)
        advance = decision.should_notify and delivered

        def _commit() -> TrackedDocument | None:
            with self._session_factory.begin() as session:
                row = self._owned_row(session, owner_id, token, for_update=True)
                if row is None:
                    return None

                previous_at, previous_by = row.baseline_modified_at, row.baseline_modified_by
                new_observation = not observed.same_revision(
                    row.last_observed_modified_at, row.last_observed_modified_by
                )

                row.last_observed_modified_at = observed.modified_at
                row.last_observed_modified_by = observed.modified_by
                row.title = observed.title
                row.last_polled_at = now
                row.consecutive_errors = 0
                row.consecutive_permanent_errors = 0
                row.last_error = None

                if advance:
                    row.baseline_modified_at = observed.modified_at
                    row.baseline_modified_by = observed.modified_by
                    row.last_notified_at = now
                    if row.state == DocumentState.PENDING.value:
                        row.state = DocumentState.ACTIVE.value

                row.pending_change = not observed.same_revision(row.baseline_modified_at, row.baseline_modified_by)
                row.updated_at = now

                # One event per distinct edit, plus one for each delivered notification
                if decision.is_change and (new_observation or advance):
                    session.add(
                        ChangeEventRow(
                            owner_id=owner_id,
                            token=token,
                            kind=decision.kind,
                            observed_at=observed.modified_at,
                            observed_by=observed.modified_by,
                            previous_modified_at=previous_at,
                            previous_modified_by=previous_by,
                            debounced=decision.is_debounced,
                            notification_sent=advance,
                            detected_at=now,
                        )
                    )

                session.flush()
                return self._to_document(row)

        return await self._run("commit_observation", _commit, owner_id=owner_id, token=token)

    async def record_fetch_error(
        self,
        owner_id: str,
        token: str,
        message: str,
        permanent: bool,
        now: datetime,
    ) -> TrackedDocument | None:
        _require_owner(owner_id)

        def _record() -> TrackedDocument | None:
            with self._session_factory.begin() as session:
                row = self._owned_row(session, owner_id, token, for_update=True)
                if row is None:
                    return None
                row.consecutive_errors = (row.consecutive_errors or 0) + 1
                if permanent:
                    row.consecutive_permanent_errors = (row.consecutive_permanent_errors or 0) + 1
                else:
                    row.consecutive_permanent_errors = 0
                row.last_error = message[:MAX_ERROR_MESSAGE_LENGTH]
                row.updated_at = now
                return self._to_document(row)

        return await self._run("record_fetch_error", _record, owner_id=owner_id, token=token)

    async def get_change_history(
        self, owner_id: str, token: str | None = None, limit: int = 50
    ) -> list[ChangeEvent]:
        _require_owner(owner_id)

        def _history() -> list[ChangeEvent]:
            with self._session_factory() as session:
                stmt = select(ChangeEventRow).where(ChangeEventRow.owner_id == owner_id)
                if token is not None:
                    stmt = stmt.where(ChangeEventRow.token == token)
                stmt = stmt.order_by(ChangeEventRow.detected_at.desc(), ChangeEventRow.id.desc()).limit(limit)
                return [self._to_event(row) for row in session.scalars(stmt).all()]

        return await self._run("get_change_history", _history, owner_id=owner_id, token=token)

    async def get_change_stats(self, owner_id: str, token: str) -> dict[str, Any]:
        events = await self.get_change_history(owner_id, token, limit=10_000)

        by_kind = Counter(event.kind for event in events)
        notified = [event for event in events if event.notification_sent]
        return {
            "token": token,
            "total_events": len(events),
            "notifications_sent": len(notified),
            "debounced": sum(1 for event in events if event.debounced),
            "by_kind": dict(by_kind),
            "unique_editors": sorted({event.observed_by for event in events}),
            "first_detected_at": events[-1].detected_at if events else None,
            "last_detected_at": events[0].detected_at if events else None,
            "last_notified_at": notified[0].detected_at if notified else None,
        }

    async def health_check(self) -> bool:
        def _ping() -> bool:
            with self._session_factory() as session:
                session.execute(text("SELECT 1"))
                return True

        try:
            return await self._run("health_check", _ping)
        except PersistenceError as e:
            logger.warning("State store health check failed: %s", e)
            return False

    async def close(self) -> None:
        await asyncio.to_thread(self._engine.dispose)
        self._initialized = False
        logger.info("State store closed")

    async def _run(
        self,
        operation: str,
        func: Callable[[], T],
        owner_id: str | None = None,
        token: str | None = None,
    ) -> T:
        """Run blocking database work in a thread, translating storage failures."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(func), timeout=self.config.store_timeout_seconds)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"State store {operation} failed: {e}",
                operation=operation,
                owner_id=owner_id,
                token=token,
                underlying_error=e,
            ) from e
        except TimeoutError as e:
            raise PersistenceError(
                f"State store {operation} timed out after {self.config.store_timeout_seconds}s",
                operation=operation,
                owner_id=owner_id,
                token=token,
                underlying_error=e,
            ) from e

    @staticmethod
    def _owned_row(
        session: Session, owner_id: str, token: str, for_update: bool = False
    ) -> TrackedDocumentRow | None:
        _require_owner(owner_id)
        stmt = select(TrackedDocumentRow).where(
            TrackedDocumentRow.owner_id == owner_id,
            TrackedDocumentRow.token == token,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return session.scalars(stmt).one_or_none()

    def _require_row(self, session: Session, owner_id: str, token: str) -> TrackedDocumentRow:
        row = self._owned_row(session, owner_id, token, for_update=True)
        if row is None:
            raise DocumentNotTrackedError(f"Document {token} is not tracked", owner_id=owner_id, token=token)
        return row

    @staticmethod
    def _to_document(row: TrackedDocumentRow) -> TrackedDocument:
        return TrackedDocument(
            owner_id=row.owner_id,
            token=row.token,
            notify_target=row.notify_target,
            doc_type=row.doc_type,
            title=row.title,
            state=DocumentState(row.state),
            baseline_modified_at=row.baseline_modified_at,
            baseline_modified_by=row.baseline_modified_by,
            last_observed_modified_at=row.last_observed_modified_at,
            last_observed_modified_by=row.last_observed_modified_by,
            last_notified_at=_as_utc(row.last_notified_at),
            pending_change=bool(row.pending_change),
            consecutive_errors=row.consecutive_errors or 0,
            consecutive_permanent_errors=row.consecutive_permanent_errors or 0,
            last_error=row.last_error,
            pause_reason=row.pause_reason,
            last_polled_at=_as_utc(row.last_polled_at),
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    @staticmethod
    def _to_event(row: ChangeEventRow) -> ChangeEvent:
        return ChangeEvent(
            id=row.id,
            owner_id=row.owner_id,
            token=row.token,
            kind=row.kind,
            observed_at=row.observed_at,
            observed_by=row.observed_by,
            previous_modified_at=row.previous_modified_at,
            previous_modified_by=row.previous_modified_by,
            debounced=bool(row.debounced),
            notification_sent=bool(row.notification_sent),
            detected_at=_as_utc(row.detected_at),
        )
