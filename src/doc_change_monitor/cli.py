"""
Command line interface for the document change monitor.

Usage:
    doc-change-monitor serve [--interval SECONDS] [--duration SECONDS]
    doc-change-monitor check TOKEN [--doc-type TYPE]
    doc-change-monitor list OWNER [--active-only]
    doc-change-monitor watch OWNER TOKEN --notify-target TARGET
    doc-change-monitor history OWNER [TOKEN]
"""

import asyncio
import logging
from datetime import UTC, datetime

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from doc_change_monitor.app import MonitorRuntime, configure_logging, create_runtime
from doc_change_monitor.config import get_config
from doc_change_monitor.models import (
    BaseError,
    ChangeEvent,
    DocumentMetadata,
    DocumentState,
    DocumentType,
    HealthStatus,
    PollCycleMetrics,
    TrackedDocument,
)

logger = logging.getLogger(__name__)

console = Console()

STATE_STYLES = {
    DocumentState.PENDING: "yellow",
    DocumentState.ACTIVE: "green",
    DocumentState.PAUSED: "dim",
    DocumentState.DELETED: "red",
}

HEALTH_STYLES = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.DEGRADED: "yellow",
    HealthStatus.UNHEALTHY: "red",
}


def _format_timestamp(value: int | None) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value, UTC).strftime("%Y-%m-%d %H:%M:%S")


def _format_datetime(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def create_documents_table(owner_id: str, documents: list[TrackedDocument]) -> Table:
    """Create a rich table of an owner's tracked documents."""
    table = Table(title=f"📄 Documents watched by {owner_id}", show_header=True)
    table.add_column("Token", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Type", style="dim")
    table.add_column("State")
    table.add_column("Last Modified", style="white")
    table.add_column("Modified By", style="white")
    table.add_column("Pending", style="yellow")
    table.add_column("Errors", style="red")

    for doc in documents:
        state = DocumentState(doc.state)
        table.add_row(
            doc.token,
            doc.title or "-",
            doc.doc_type,
            f"[{STATE_STYLES[state]}]{state.value}[/{STATE_STYLES[state]}]",
            _format_timestamp(doc.last_observed_modified_at),
            doc.last_observed_modified_by or "-",
            "yes" if doc.pending_change else "",
            str(doc.consecutive_errors) if doc.consecutive_errors else "",
        )

    return table


def create_metadata_table(metadata: DocumentMetadata) -> Table:
    table = Table(title="🔍 Document Metadata", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Token", metadata.token)
    table.add_row("Title", metadata.title)
    table.add_row("Type", metadata.doc_type)
    table.add_row("Owner", metadata.owner_id)
    table.add_row("Created", _format_timestamp(metadata.created_time))
    table.add_row("Last Modified", _format_timestamp(metadata.modified_at))
    table.add_row("Modified By", metadata.modified_by)

    return table


def create_history_table(events: list[ChangeEvent]) -> Table:
    table = Table(title="🕘 Change History", show_header=True)
    table.add_column("Detected", style="dim")
    table.add_column("Token", style="cyan")
    table.add_column("Kind", style="white")
    table.add_column("Modified At", style="white")
    table.add_column("Modified By", style="white")
    table.add_column("Notified", style="green")
    table.add_column("Debounced", style="yellow")

    for event in events:
        table.add_row(
            _format_datetime(event.detected_at),
            event.token,
            event.kind,
            _format_timestamp(event.observed_at),
            event.observed_by,
            "yes" if event.notification_sent else "",
            "yes" if event.debounced else "",
        )

    return table


def create_cycle_table(metrics: PollCycleMetrics, status: HealthStatus) -> Table:
    """Create a rich table summarizing the last poll cycle."""
    style = HEALTH_STYLES[status]
    table = Table(title="📊 Last Poll Cycle", show_header=True)
    table.add_column("Metric", style="cyan", width=22)
    table.add_column("Value", style="white", width=15)

    table.add_row("Health", f"[{style}]{status.value}[/{style}]")
    table.add_row("Documents Polled", str(metrics.documents_polled))
    table.add_row("Fetch Errors", str(metrics.fetch_errors))
    table.add_row("Changes Detected", str(metrics.changes_detected))
    table.add_row("Debounced", str(metrics.debounced_changes))
    table.add_row("Notifications Sent", str(metrics.notifications_sent))
    table.add_row("Notifications Failed", str(metrics.notifications_failed))
    table.add_row("Auto-paused", str(metrics.auto_paused))
    table.add_row("Avg Fetch Latency", f"{metrics.average_fetch_latency_ms:.0f}ms")
    table.add_row("Cycle Duration", f"{metrics.cycle_duration_ms:.0f}ms")

    return table


async def _serve(runtime: MonitorRuntime, interval: float | None, duration: float | None) -> None:
    await runtime.state_store.initialize()
    await runtime.poller.start(interval_seconds=interval)
    console.print("✅ [bold green]Polling started[/bold green] (Ctrl+C to stop)")

    loop = asyncio.get_running_loop()
    deadline = loop.time() + duration if duration else None
    try:
        while deadline is None or loop.time() < deadline:
            await asyncio.sleep(runtime.poller.interval_seconds)
            last = runtime.poller.metrics_tracker.last_cycle
            if last is not None:
                console.print(create_cycle_table(last, runtime.poller.health_status()))
    finally:
        console.print("\n🛑 [yellow]Stopping poller...[/yellow]")
        await runtime.close()


async def _check(runtime: MonitorRuntime, token: str, doc_type: str) -> DocumentMetadata:
    try:
        return await runtime.metadata_client.fetch(token, doc_type, use_cache=False)
    finally:
        await runtime.close()


async def _with_store(runtime: MonitorRuntime, operation):
    await runtime.state_store.initialize()
    try:
        return await operation(runtime.service)
    finally:
        await runtime.close()


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """Watch cloud documents for metadata changes and notify their owners."""
    config = get_config()
    configure_logging(config)
    if verbose:
        logging.getLogger("doc_change_monitor").setLevel(logging.DEBUG)
    ctx.obj = create_runtime(config)


@main.command()
@click.option('--interval', '-i', type=float, default=None, help='Seconds between poll cycles')
@click.option('--duration', '-t', type=float, default=None, help='Stop after this many seconds')
@click.pass_obj
def serve(runtime: MonitorRuntime, interval: float | None, duration: float | None):
    """Run the poller until interrupted."""
    console.print(
        Panel.fit(
            "🔍 [bold blue]Document Change Monitor[/bold blue]\n"
            f"Database: [cyan]{runtime.config.database_url}[/cyan]\n"
            f"Interval: [yellow]{interval or runtime.config.poll_interval_seconds}s[/yellow] | "
            f"Debounce: [yellow]{runtime.config.debounce_window_seconds}s[/yellow]",
            title="Serving",
            border_style="blue",
        )
    )
    try:
        asyncio.run(_serve(runtime, interval, duration))
    except KeyboardInterrupt:
        console.print("⚡ [yellow]Interrupted by user[/yellow]")
    console.print("✅ [bold green]Poller stopped[/bold green]")


@main.command()
@click.argument('token')
@click.option(
    '--doc-type',
    type=click.Choice([t.value for t in DocumentType]),
    default=DocumentType.DOC.value,
    help='Upstream document type',
)
@click.pass_obj
def check(runtime: MonitorRuntime, token: str, doc_type: str):
    """Fetch the current metadata of a document."""
    try:
        metadata = asyncio.run(_check(runtime, token, doc_type))
    except BaseError as e:
        console.print(f"❌ [red]Check failed:[/red] {e}")
        raise SystemExit(1) from e
    console.print(create_metadata_table(metadata))


@main.command(name='list')
@click.argument('owner_id')
@click.option('--active-only', is_flag=True, help='Hide paused documents')
@click.pass_obj
def list_documents(runtime: MonitorRuntime, owner_id: str, active_only: bool):
    """List the documents an owner watches."""
    documents = asyncio.run(
        _with_store(runtime, lambda service: service.list_watched(owner_id, include_paused=not active_only))
    )
    if not documents:
        console.print(f"[dim]{owner_id} is not watching any documents[/dim]")
        return
    console.print(create_documents_table(owner_id, documents))


@main.command()
@click.argument('owner_id')
@click.argument('token')
@click.option('--notify-target', '-n', required=True, help='Where change notifications are delivered')
@click.option(
    '--doc-type',
    type=click.Choice([t.value for t in DocumentType]),
    default=DocumentType.DOC.value,
    help='Upstream document type',
)
@click.pass_obj
def watch(runtime: MonitorRuntime, owner_id: str, token: str, notify_target: str, doc_type: str):
    """Start watching a document for an owner."""
    try:
        document = asyncio.run(
            _with_store(runtime, lambda service: service.watch(owner_id, token, notify_target, doc_type))
        )
    except BaseError as e:
        console.print(f"❌ [red]Watch failed:[/red] {e}")
        raise SystemExit(1) from e
    console.print(f"✅ [bold green]Watching[/bold green] [cyan]{document.token}[/cyan] ({document.state})")


@main.command()
@click.argument('owner_id')
@click.argument('token', required=False)
@click.option('--limit', '-l', type=int, default=20, help='Maximum number of events')
@click.pass_obj
def history(runtime: MonitorRuntime, owner_id: str, token: str | None, limit: int):
    """Show the change audit log of an owner's documents."""
    events = asyncio.run(_with_store(runtime, lambda service: service.get_change_history(owner_id, token, limit)))
    if not events:
        console.print("[dim]No changes recorded[/dim]")
        return
    console.print(create_history_table(events))


if __name__ == "__main__":
    main()
