"""state commands: inspect and prune the processed-message store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from mentionbot_store.base import DAY_MS

console = Console()


@click.group("state")
def state_group():
    """Inspect the store that remembers which mentions were handled."""


@state_group.command("stats")
@click.pass_context
def stats_cmd(ctx):
    """Show how many processed markers are stored and how many are still live."""
    store = ctx.obj["store"]
    stats = store.stats()

    table = Table(title="Processed messages", show_header=True)
    table.add_column("Store", style="bold")
    table.add_column("Total", justify="right")
    table.add_column("Unexpired", justify="right")
    table.add_column("Max age", justify="right")
    table.add_row(
        type(store).__name__,
        str(stats.total),
        str(stats.unexpired),
        f"{store.max_age_ms / DAY_MS:g} days",
    )
    console.print(table)


@state_group.command("sweep")
@click.option(
    "--max-age-days",
    type=float,
    default=None,
    help="Drop markers older than this many days. Defaults to the store's max age.",
)
@click.pass_context
def sweep_cmd(ctx, max_age_days: float | None):
    """Delete expired markers."""
    if max_age_days is not None and max_age_days < 0:
        raise click.BadParameter("must not be negative", param_hint="--max-age-days")
    store = ctx.obj["store"]
    max_age_ms = int(max_age_days * DAY_MS) if max_age_days is not None else None
    removed = store.sweep(max_age_ms)
    console.print(f"Removed [bold]{removed}[/bold] expired marker(s).")
