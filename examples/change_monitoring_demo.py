#!/usr/bin/env python3
"""
Demonstration script for the document change monitor.

Runs the real poller, state store and change detector against a simulated
upstream API whose documents are edited while the demo runs, so debouncing,
catch-up notifications and auto-pause can be watched without credentials.

Usage:
    python examples/change_monitoring_demo.py [--cycles N] [--debounce SECONDS]
"""

import asyncio
import logging
import random
import tempfile
from pathlib import Path

import click
from doc_change_monitor.config import MonitorConfig
from doc_change_monitor.core.interfaces import IMetadataClient
from doc_change_monitor.models import DocumentMetadata, ResourceNotFoundError
from doc_change_monitor.monitoring import DocumentPoller
from doc_change_monitor.notifications import LoggingNotifier
from doc_change_monitor.service import DocumentWatchService
from doc_change_monitor.storage import SqlStateStore
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

logging.basicConfig(level=logging.WARNING, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

console = Console()

EDITORS = ["ou_alice", "ou_bob", "ou_carol"]


class SimulatedUpstream(IMetadataClient):
    """In-memory stand-in for the document API."""

    def __init__(self):
        self.documents: dict[str, DocumentMetadata] = {}
        self.deleted: set[str] = set()

    def publish(self, token: str, title: str, modified_at: int, modified_by: str) -> None:
        self.documents[token] = DocumentMetadata(
            token=token, title=title, modified_at=modified_at, modified_by=modified_by
        )

    def edit_randomly(self, tick: int) -> list[str]:
        """Edit a random subset of live documents."""
        edited = []
        for token, metadata in self.documents.items():
            if token in self.deleted or random.random() > 0.5:
                continue
            self.publish(token, metadata.title, metadata.modified_at + tick, random.choice(EDITORS))
            edited.append(token)
        return edited

    async def fetch(self, token: str, doc_type: str = "doc", use_cache: bool = True) -> DocumentMetadata:
        await asyncio.sleep(0.01)
        if token in self.deleted or token not in self.documents:
            raise ResourceNotFoundError(f"HTTP 404 fetching metadata for {token}", token=token, status_code=404)
        return self.documents[token]

    def invalidate(self, token: str) -> None:
        pass

    async def close(self) -> None:
        pass


def create_cycle_table(cycle: int, metrics, edited: list[str]) -> Table:
    """Create a rich table for one poll cycle."""
    table = Table(title=f"📊 Cycle {cycle}", show_header=True)
    table.add_column("Metric", style="cyan", width=22)
    table.add_column("Value", style="white", width=10)

    table.add_row("✏️  Edited upstream", str(len(edited)))
    table.add_row("📄 Documents polled", str(metrics.documents_polled))
    table.add_row("🔔 Notifications", str(metrics.notifications_sent))
    table.add_row("⏳ Debounced", str(metrics.debounced_changes))
    table.add_row("⚠️  Fetch errors", str(metrics.fetch_errors))
    table.add_row("⏸️  Auto-paused", str(metrics.auto_paused))

    return table


async def demonstrate_monitoring(cycles: int, debounce: float, interval: float):
    """
    Run a number of poll cycles while the simulated documents change.

    Args:
        cycles: Number of poll cycles to run
        debounce: Debounce window in seconds
        interval: Pause between cycles in seconds
    """
    with tempfile.TemporaryDirectory() as workdir:
        config = MonitorConfig(
            _env_file=None,
            database_url=f"sqlite:///{Path(workdir) / 'demo.db'}",
            debounce_window_seconds=debounce,
            auto_pause_threshold=2,
        )
        upstream = SimulatedUpstream()
        store = SqlStateStore(config)
        notifier = LoggingNotifier()
        poller = DocumentPoller(config, upstream, store, notifier)
        service = DocumentWatchService(upstream, store, poller)
        await store.initialize()

        for index, title in enumerate(["Roadmap", "Release Notes", "On-call Handbook", "Retired Runbook"]):
            token = f"doccnDemo{index}"
            upstream.publish(token, title, 1700000000, EDITORS[0])
            await service.watch("ou_demo", token, "oc_demo_chat")
        console.print("✅ [bold green]Watching 4 simulated documents[/bold green]")

        try:
            for cycle in range(1, cycles + 1):
                edited = upstream.edit_randomly(cycle)
                if cycle == 2:
                    upstream.deleted.add("doccnDemo3")
                    console.print("🗑️  [yellow]doccnDemo3 was deleted upstream[/yellow]")

                metrics = await poller.run_cycle()
                console.print(create_cycle_table(cycle, metrics, edited))
                await asyncio.sleep(interval)

            documents = await service.list_watched("ou_demo")
            summary = Table(title="📄 Final State", show_header=True)
            summary.add_column("Token", style="cyan")
            summary.add_column("State", style="white")
            summary.add_column("Baseline By", style="white")
            summary.add_column("Pending", style="yellow")
            for doc in documents:
                pending = "yes" if doc.pending_change else ""
                summary.add_row(doc.token, doc.state, doc.baseline_modified_by or "-", pending)
            console.print(summary)
            console.print(f"🔔 [bold]{len(notifier.sent)}[/bold] notifications delivered")
        finally:
            await store.close()


@click.command()
@click.option('--cycles', '-c', type=int, default=6, help='Number of poll cycles to run')
@click.option('--debounce', '-d', type=float, default=1.0, help='Debounce window in seconds')
@click.option('--interval', '-i', type=float, default=0.5, help='Seconds between cycles')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
def main(cycles: int, debounce: float, interval: float, verbose: bool):
    """Run the document change monitor demonstration."""
    if verbose:
        logging.getLogger().setLevel(logging.INFO)

    console.print(
        Panel.fit(
            "🔍 [bold blue]Document Change Monitor Demo[/bold blue]\n\n"
            "Simulated documents are edited between poll cycles. Edits closer\n"
            "together than the debounce window are held back and delivered once\n"
            "the window has passed; a deleted document is paused automatically.",
            title="Welcome",
            border_style="blue",
        )
    )

    try:
        asyncio.run(demonstrate_monitoring(cycles, debounce, interval))
    except KeyboardInterrupt:
        console.print("\n⚡ [yellow]Demo interrupted by user[/yellow]")


if __name__ == "__main__":
    main()
