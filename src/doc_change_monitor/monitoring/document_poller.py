"""
Document poller for periodic change reconciliation.

Each cycle loads every pollable document from the state store, fetches its
metadata in bounded-concurrency batches, decides whether the owner must be
notified, notifies, and only then commits the observation. Failures are
contained per document; the cycle always runs to completion.
"""

import asyncio
import logging
import time
from collections.abc import Iterator
from typing import Any

from doc_change_monitor.config.settings import MonitorConfig
from doc_change_monitor.core.clock import SystemClock
from doc_change_monitor.core.interfaces import IClock, IMetadataClient, INotifier, IStateStore
from doc_change_monitor.detection import ChangeDetector, format_decision
from doc_change_monitor.models import (
    Decision,
    DocumentMetadata,
    DocumentNotTrackedError,
    FetchError,
    HealthReport,
    HealthStatus,
    MonitoringError,
    NotificationEvent,
    NotificationKind,
    NotificationTransportError,
    PermanentFetchError,
    PersistenceError,
    PollCycleMetrics,
    TrackedDocument,
    TransientFetchError,
)
from doc_change_monitor.monitoring.metrics import PollMetricsTracker

logger = logging.getLogger(__name__)


class DocumentPollOutcome:
    """What happened to one document during one cycle."""

    def __init__(self, document: TrackedDocument):
        self.document = document
        self.skipped = False
        self.fetched = False
        self.fetch_error: FetchError | None = None
        self.latency_ms = 0.0
        self.decision: Decision | None = None
        self.notification_sent = False
        self.notification_failed = False
        self.persistence_error = False
        self.auto_paused = False
        self.unexpected_error: Exception | None = None

    @property
    def permanent_error(self) -> bool:
        return isinstance(self.fetch_error, PermanentFetchError)

    @property
    def failed(self) -> bool:
        """Whether the document counts against the cycle error rate."""
        return not self.fetched or self.persistence_error or self.unexpected_error is not None

    def __str__(self) -> str:
        status = "skipped" if self.skipped else "fetched" if self.fetched else "failed"
        return f"DocumentPollOutcome({self.document.token}: {status})"


class DocumentPoller:
    """
    Orchestrates reconciliation cycles over all tracked documents.

    Dependencies are injected; the poller holds no authoritative state of its
    own, so several pollers may share one state store.
    """

    def __init__(
        self,
        config: MonitorConfig,
        metadata_client: IMetadataClient,
        state_store: IStateStore,
        notifier: INotifier,
        clock: IClock | None = None,
        detector: ChangeDetector | None = None,
    ):
        """
        Initialize the poller.

        Args:
            config: Monitor configuration
            metadata_client: Client used to fetch document metadata
            state_store: Durable store of tracked documents
            notifier: Delivery channel for change and error notifications
            clock: Optional clock (system clock if not provided)
            detector: Optional change detector (built from config if not provided)
        """
        self.config = config
        self.metadata_client = metadata_client
        self.state_store = state_store
        self.notifier = notifier
        self.clock = clock or SystemClock()
        self.detector = detector or ChangeDetector(config.debounce_window)
        self.metrics_tracker = PollMetricsTracker(
            degraded_error_rate=config.degraded_error_rate,
            unhealthy_error_rate=config.unhealthy_error_rate,
        )

        self.interval_seconds = config.poll_interval_seconds
        self.batch_size = config.poll_batch_size

        self._semaphore = asyncio.Semaphore(config.max_concurrent_fetches)
        self._cycle_lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._loop_task: asyncio.Task | None = None
        self._stop_requested = False

        self._store_available = True
        self._store_failures = 0

    async def start(self, interval_seconds: float | None = None, batch_size: int | None = None) -> None:
        """
        Start the polling loop in the background.

        Args:
            interval_seconds: Time between the end of a cycle and the next one
            batch_size: Documents per batch

        Raises:
            MonitoringError: If the poller is already running or arguments are invalid
        """
        if self.is_running:
            raise MonitoringError("Poller is already running", operation="start")
        if interval_seconds is not None and interval_seconds <= 0:
            raise MonitoringError("interval_seconds must be positive", operation="start")
        if batch_size is not None and batch_size < 1:
            raise MonitoringError("batch_size must be at least 1", operation="start")

        self.interval_seconds = interval_seconds or self.interval_seconds
        self.batch_size = batch_size or self.batch_size
        self._stop_requested = False
        self._wake.clear()
        self._loop_task = asyncio.create_task(self._run_loop(), name="document-poller")

        logger.info(
            "Polling started every %ss (batch size %d, %d workers, debounce %ss)",
            self.interval_seconds,
            self.batch_size,
            self.config.max_concurrent_fetches,
            self.config.debounce_window_seconds,
        )

    async def stop(self) -> None:
        """
        Stop the polling loop, letting an in-flight cycle drain.

        Documents whose processing already started are committed; the rest
        of the cycle is skipped.
        """
        if not self.is_running:
            logger.debug("Poller not running, nothing to stop")
            return

        logger.info("Stopping poller...")
        self._stop_requested = True
        self._wake.set()

        try:
            await self._loop_task
        except Exception as e:
            raise MonitoringError("Poller loop failed", operation="stop", underlying_error=e) from e
        finally:
            self._loop_task = None

        logger.info("Poller stopped")

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def store_available(self) -> bool:
        return self._store_available

    def metrics(self) -> PollCycleMetrics:
        """Metrics of the most recent cycle (empty before the first one)."""
        return self.metrics_tracker.last_cycle or PollCycleMetrics(cycle_started_at=self.clock.now())

    def health_status(self) -> HealthStatus:
        return HealthStatus(self.health_report().status)

    def health_report(self) -> HealthReport:
        return self.metrics_tracker.evaluate(self.clock.now(), self.is_running, self._store_available)

    async def run_cycle(self) -> PollCycleMetrics:
        """
        Run one reconciliation cycle over every pollable document.

        Never raises for per-document failures. If the state store cannot be
        read the poller is marked unhealthy and an empty cycle is returned.
        """
        async with self._cycle_lock:
            started = time.perf_counter()
            metrics = PollCycleMetrics(cycle_started_at=self.clock.now())

            try:
                documents = await self.state_store.load_active()
            except PersistenceError as e:
                self._mark_store_unavailable(e)
                metrics.cycle_duration_ms = self._elapsed_ms(started)
                return metrics

            self._mark_store_available()
            if documents:
                logger.info("Polling %d document(s)...", len(documents))

            outcomes: list[DocumentPollOutcome] = []
            for batch in self._partition(documents):
                if self._stop_requested:
                    outcomes.extend(self._skipped(batch))
                    continue
                outcomes.extend(await asyncio.gather(*(self._poll_with_slot(doc) for doc in batch)))

            self._aggregate(metrics, outcomes)
            metrics.cycle_duration_ms = self._elapsed_ms(started)
            self.metrics_tracker.record_cycle(metrics)

            logger.info(
                "Poll cycle completed in %.0fms (%d success, %d errors, %d notified, %d debounced)",
                metrics.cycle_duration_ms,
                metrics.fetch_successes,
                metrics.fetch_errors,
                metrics.notifications_sent,
                metrics.debounced_changes,
            )
            return metrics

    def get_stats(self) -> dict[str, Any]:
        """
        Get poller statistics.

        Returns:
            Dictionary with lifecycle, health and configuration details
        """
        report = self.health_report()
        return {
            "running": self.is_running,
            "health": report.model_dump(mode="json"),
            "average_cycle_duration_ms": self.metrics_tracker.average_cycle_duration_ms(),
            "configuration": {
                "interval_seconds": self.interval_seconds,
                "batch_size": self.batch_size,
                "max_concurrent_fetches": self.config.max_concurrent_fetches,
                "debounce_window_seconds": self.config.debounce_window_seconds,
                "auto_pause_threshold": self.config.auto_pause_threshold,
            },
        }

    async def _run_loop(self) -> None:
        while not self._stop_requested:
            if self._store_available:
                try:
                    await self.run_cycle()
                except Exception as e:
                    logger.exception("Unexpected error during poll cycle: %s", e)
                delay = self.interval_seconds
            else:
                if await self._probe_store():
                    continue
                delay = self._recovery_delay()
                logger.warning("State store still unreachable, next probe in %.1fs", delay)

            if not self._stop_requested:
                await self._sleep_until_next_tick(delay)

    async def _sleep_until_next_tick(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=delay)
        except TimeoutError:
            pass

    async def _probe_store(self) -> bool:
        if await self.state_store.health_check():
            logger.info("State store reachable again after %d failed attempt(s)", self._store_failures)
            self._mark_store_available()
            return True
        self._store_failures += 1
        return False

    def _recovery_delay(self) -> float:
        exponent = min(self._store_failures, 16)
        return min(self.interval_seconds * (2 ** max(exponent - 1, 0)), self.config.store_recovery_max_backoff_seconds)

    def _mark_store_unavailable(self, error: Exception) -> None:
        if self._store_available:
            logger.error("State store unreachable, suspending poll cycles: %s", error)
        self._store_available = False
        self._store_failures += 1
        self.metrics_tracker.record_errors(self.clock.now())

    def _mark_store_available(self) -> None:
        self._store_available = True
        self._store_failures = 0

    def _partition(self, documents: list[TrackedDocument]) -> Iterator[list[TrackedDocument]]:
        for start in range(0, len(documents), self.batch_size):
            yield documents[start : start + self.batch_size]

    @staticmethod
    def _skipped(documents: list[TrackedDocument]) -> list[DocumentPollOutcome]:
        outcomes = []
        for doc in documents:
            outcome = DocumentPollOutcome(doc)
            outcome.skipped = True
            outcomes.append(outcome)
        return outcomes

    async def _poll_with_slot(self, doc: TrackedDocument) -> DocumentPollOutcome:
        async with self._semaphore:
            if self._stop_requested:
                return self._skipped([doc])[0]

            outcome = DocumentPollOutcome(doc)
            try:
                await self._poll_document(doc, outcome)
            except Exception as e:
                outcome.unexpected_error = e
                logger.exception("Unexpected error polling %s/%s: %s", doc.owner_id, doc.token, e)
            return outcome

    async def _poll_document(self, doc: TrackedDocument, outcome: DocumentPollOutcome) -> None:
        """Fetch, decide, notify, then commit. The order matters for crash safety."""
        started = time.perf_counter()
        try:
            observed = await self.metadata_client.fetch(doc.token, doc.doc_type)
        except (TransientFetchError, PermanentFetchError) as e:
            outcome.latency_ms = self._elapsed_ms(started)
            outcome.fetch_error = e
            await self._handle_fetch_error(doc, e, outcome)
            return
        outcome.latency_ms = self._elapsed_ms(started)
        outcome.fetched = True

        now = self.clock.now()
        decision = self.detector.decide(observed, doc, now)
        outcome.decision = decision

        delivered = False
        if decision.should_notify:
            delivered = await self._deliver_change(doc, observed, decision)
            outcome.notification_sent = delivered
            outcome.notification_failed = not delivered
        elif decision.is_debounced:
            logger.info("Change debounced for %s: %s", doc.token, format_decision(decision))

        try:
            await self.state_store.commit_observation(doc.owner_id, doc.token, observed, decision, delivered, now)
        except PersistenceError as e:
            outcome.persistence_error = True
            logger.error("Failed to persist observation for %s/%s: %s", doc.owner_id, doc.token, e)

    async def _deliver_change(self, doc: TrackedDocument, observed: DocumentMetadata, decision: Decision) -> bool:
        event = NotificationEvent(
            token=doc.token,
            kind=decision.kind,
            observed_at=observed.modified_at,
            observed_by=observed.modified_by,
            title=observed.title,
            doc_type=observed.doc_type,
            owner_id=doc.owner_id,
        )
        if await self._send(doc, event):
            logger.info("Notification sent for %s to %s (%s)", doc.token, doc.notify_target, decision.kind)
            return True
        return False

    async def _send(self, doc: TrackedDocument, event: NotificationEvent) -> bool:
        try:
            await asyncio.wait_for(
                self.notifier.send(doc.notify_target, event),
                timeout=self.config.notification_timeout_seconds,
            )
            return True
        except NotificationTransportError as e:
            logger.warning("Failed to send notification for %s: %s", doc.token, e)
        except TimeoutError:
            logger.warning(
                "Notification for %s timed out after %ss", doc.token, self.config.notification_timeout_seconds
            )
        except Exception as e:
            logger.exception("Notifier raised unexpectedly for %s: %s", doc.token, e)
        return False

    async def _handle_fetch_error(self, doc: TrackedDocument, error: FetchError, outcome: DocumentPollOutcome) -> None:
        permanent = isinstance(error, PermanentFetchError)
        logger.warning(
            "Failed to fetch metadata for %s/%s (%s): %s",
            doc.owner_id,
            doc.token,
            "permanent" if permanent else "transient",
            error,
        )

        try:
            updated = await self.state_store.record_fetch_error(
                doc.owner_id, doc.token, str(error), permanent, self.clock.now()
            )
        except PersistenceError as e:
            outcome.persistence_error = True
            logger.error("Failed to record fetch error for %s/%s: %s", doc.owner_id, doc.token, e)
            return

        if updated is None or not permanent:
            return
        if updated.consecutive_permanent_errors >= self.config.auto_pause_threshold:
            await self._auto_pause(updated, error, outcome)

    async def _auto_pause(self, doc: TrackedDocument, error: FetchError, outcome: DocumentPollOutcome) -> None:
        """
        Tell the owner the watch is stopping, then pause it.

        The document is only paused once the notice was delivered. If the send
        fails the document stays pollable, so the next cycle hits the same
        error and retries the whole step.
        """
        reason = f"{doc.consecutive_permanent_errors} consecutive permanent errors ({error.error_code})"
        event = NotificationEvent(
            token=doc.token,
            kind=NotificationKind.AUTO_PAUSED,
            title=doc.title,
            doc_type=doc.doc_type,
            owner_id=doc.owner_id,
            error_context={
                "reason": reason,
                "error_code": error.error_code,
                "status_code": error.status_code,
                "consecutive_errors": doc.consecutive_permanent_errors,
                "message": error.message,
            },
        )
        if not await self._send(doc, event):
            outcome.notification_failed = True
            logger.warning("Auto-pause of %s/%s deferred until the owner can be notified", doc.owner_id, doc.token)
            return
        outcome.notification_sent = True

        try:
            await self.state_store.pause_document(doc.owner_id, doc.token, reason=reason)
        except (PersistenceError, DocumentNotTrackedError) as e:
            outcome.persistence_error = True
            logger.error("Failed to auto-pause %s/%s: %s", doc.owner_id, doc.token, e)
            return

        outcome.auto_paused = True
        logger.warning("Auto-paused %s/%s after %s", doc.owner_id, doc.token, reason)

    @staticmethod
    def _aggregate(metrics: PollCycleMetrics, outcomes: list[DocumentPollOutcome]) -> None:
        latencies = []
        for outcome in outcomes:
            if outcome.skipped:
                metrics.skipped += 1
                continue

            metrics.documents_polled += 1
            latencies.append(outcome.latency_ms)
            if outcome.fetched:
                metrics.fetch_successes += 1
            else:
                metrics.fetch_errors += 1
                if outcome.permanent_error:
                    metrics.permanent_errors += 1

            if outcome.decision is not None and outcome.decision.is_change:
                metrics.changes_detected += 1
                if outcome.decision.is_debounced:
                    metrics.debounced_changes += 1

            metrics.notifications_sent += int(outcome.notification_sent)
            metrics.notifications_failed += int(outcome.notification_failed)
            metrics.persistence_errors += int(outcome.persistence_error)
            metrics.auto_paused += int(outcome.auto_paused)
            metrics.unexpected_errors += int(outcome.unexpected_error is not None)
            metrics.failed_documents += int(outcome.failed)

        if latencies:
            metrics.average_fetch_latency_ms = round(sum(latencies) / len(latencies), 2)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)
