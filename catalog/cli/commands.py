# Copyright 2024 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""CLI commands for inspecting inventory health and offline snapshots."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import click
import structlog
from rich import get_console
from rich.table import Table

from catalog.lib.settings import get_settings
from catalog.services.fallback import FallbackStore
from catalog.utils.sync_tools import run_

if TYPE_CHECKING:
    from catalog.schemas import FallbackSnapshot, HealthStatus


logger = structlog.get_logger()

# Constants
MAX_TITLE_DISPLAY = 40
STATE_STYLES = {
    "healthy": "bold green",
    "slow": "bold yellow",
    "degraded": "bold yellow",
    "down": "bold red",
}


@click.group(name="inventory", help="Inspect inventory read-path health and offline snapshots.")
def inventory_group() -> None:
    """Inventory commands."""


@inventory_group.command(name="health", help="Probe the listing table and report database health.")
@click.option("--probes", default=1, show_default=True, help="Number of consecutive probes to run")
def health_cmd(probes: int) -> None:
    """Run health probes against the configured database."""
    from catalog.config import db, setup_logging, sqlspec
    from catalog.services.inventory import build_health_monitor
    from catalog.services.store import ListingStore

    setup_logging()
    settings = get_settings()
    console = get_console()
    console.rule("[bold blue]Database Health", style="blue", align="left")
    console.print()

    async def _check() -> HealthStatus:
        store = ListingStore(sqlspec, db, settings.db.LISTING_TABLE)
        monitor = build_health_monitor(store, settings.inventory)
        with console.status("[bold yellow]Probing database...", spinner="dots"):
            for _ in range(max(probes, 1)):
                await monitor.check()
        console.print(f"  State: [{STATE_STYLES[monitor.state]}]{monitor.state}[/]")
        return monitor.status

    status = run_(_check)()
    _display_health_status(status)


def _display_health_status(status: HealthStatus) -> None:
    console = get_console()
    response_time = f"{status.response_time_ms} ms" if status.response_time_ms is not None else "[dim]N/A[/dim]"
    console.print(f"  Response time: {response_time}")
    console.print(f"  Error count: [bold]{status.error_count}[/bold]")
    console.print(f"  Last probe ok: {'✓' if status.last_ok else '✗'}")
    console.print()


@inventory_group.group(name="fallback", help="Manage per-user offline snapshots.")
def fallback_group() -> None:
    """Offline snapshot commands."""


def _fallback_store(user: str, fallback_dir: str | None) -> FallbackStore:
    settings = get_settings().inventory
    directory = Path(fallback_dir) if fallback_dir else settings.FALLBACK_DIR
    return FallbackStore.for_user(directory, user, stale_after=timedelta(hours=settings.FALLBACK_STALE_HOURS))


@fallback_group.command(name="show", help="Show the offline snapshot saved for a user.")
@click.option("--user", "-u", required=True, help="User id the snapshot belongs to")
@click.option("--fallback-dir", type=click.Path(file_okay=False), help="Snapshot directory (defaults to settings)")
def fallback_show(user: str, fallback_dir: str | None) -> None:
    """Display a user's offline snapshot."""
    console = get_console()
    store = _fallback_store(user, fallback_dir)
    snapshot = store.load()
    if snapshot is None:
        console.print(f"[yellow]No offline snapshot for {user}[/yellow]")
        return
    _display_snapshot(snapshot, stale=store.is_stale(snapshot))


def _display_snapshot(snapshot: FallbackSnapshot, stale: bool) -> None:
    console = get_console()
    console.rule("[bold blue]Offline Snapshot", style="blue", align="left")
    console.print(f"  Saved at: {snapshot.saved_at.isoformat()}")
    console.print(f"  Stale: {'[red]yes[/red]' if stale else '[green]no[/green]'}")
    console.print()

    table = Table(show_header=True, header_style="bold blue", expand=True)
    table.add_column("ID", style="dim", ratio=2)
    table.add_column("Title", style="cyan", ratio=4)
    table.add_column("Status", ratio=1)
    table.add_column("Price", justify="right", ratio=1)
    for listing in snapshot.listings:
        row = listing.to_dict()
        title = row["title"]
        table.add_row(
            row["id"],
            title[:MAX_TITLE_DISPLAY] + "..." if len(title) > MAX_TITLE_DISPLAY else title,
            row.get("status") or "[dim]N/A[/dim]",
            f"{row['price']:.2f}",
        )
    console.print(table)
    console.print(f"[bold]{len(snapshot.listings)}[/bold] listings")


@fallback_group.command(name="clear", help="Delete the offline snapshot saved for a user.")
@click.option("--user", "-u", required=True, help="User id the snapshot belongs to")
@click.option("--fallback-dir", type=click.Path(file_okay=False), help="Snapshot directory (defaults to settings)")
def fallback_clear(user: str, fallback_dir: str | None) -> None:
    """Remove a user's offline snapshot."""
    console = get_console()
    if _fallback_store(user, fallback_dir).clear():
        console.print(f"[bold green]✓ Cleared offline snapshot for {user}[/bold green]")
    else:
        console.print(f"[yellow]No offline snapshot for {user}[/yellow]")
