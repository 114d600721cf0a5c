"""Click-based CLI for case-tracker.

Thin wrapper around library modules. Zero business logic; every operation
delegates to ingestion, prices, sweep, or api modules.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from case_tracker.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from case_tracker.prices import create_store

    return await create_store(config.storage)


def _format_change(change: float | None) -> str:
    if change is None:
        return "N/A"
    colour = "green" if change >= 0 else "red"
    return f"[{colour}]{change:+.2f}%[/{colour}]"


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="CASE_TRACKER_CONFIG",
    default=None,
    help="Path to case-tracker.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="case-tracker")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Case Tracker: market price sweeper for item cases."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# sweep
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--sweeps",
    "-n",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after N sweeps (default: run forever).",
)
@click.option(
    "--catalog",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Catalog JSON file (overrides sweep.catalog_path).",
)
@click.pass_context
def sweep(ctx: click.Context, sweeps: int | None, catalog: str | None) -> None:
    """Fetch prices for every catalog item, over and over."""
    from case_tracker.core import CatalogError
    from case_tracker.ingestion import MarketClient, load_catalog
    from case_tracker.sweep import SweepOrchestrator

    config = _load_config(ctx)
    try:
        items = load_catalog(catalog or config.sweep.catalog_path)
    except CatalogError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)

    async def _run():
        store = await _create_store_async(config)
        try:
            async with MarketClient(config.market) as client:
                orchestrator = SweepOrchestrator(config.sweep, items, client, store)
                completed = await orchestrator.run_forever(max_sweeps=sweeps)
            report = orchestrator.last_report
            console.print(
                f"[green]✓[/green] Completed {completed} sweep(s)"
                + (
                    f"; last: {report.items_updated} updated, "
                    f"{report.items_skipped} skipped"
                    if report
                    else ""
                )
            )
        finally:
            await store.close()

    try:
        _run_async(_run())
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow]")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: api.host).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default: api.port).")
@click.option(
    "--with-sweeper/--no-sweeper",
    default=None,
    help="Run the sweep loop inside the server process.",
)
@click.pass_context
def serve(
    ctx: click.Context, host: str | None, port: int | None, with_sweeper: bool | None
) -> None:
    """Start the REST API and live update server."""
    import uvicorn

    from case_tracker.api import create_app

    config = _load_config(ctx)
    if with_sweeper is not None:
        config = config.model_copy(
            update={"sweep": config.sweep.model_copy(update={"run_in_api": with_sweeper})}
        )
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting case-tracker API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(create_app(config), host=host, port=port, log_config=None)


# ---------------------------------------------------------------------------
# prices
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--hours", type=click.IntRange(min=1), default=24, help="Change window.")
@click.pass_context
def prices(ctx: click.Context, hours: int) -> None:
    """Show current prices with change over the last N hours."""
    from case_tracker.core import utc_now
    from case_tracker.prices import percent_change

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            snapshot = await store.current_snapshot()
            if not snapshot:
                console.print("[yellow]No prices stored. Run 'sweep' first.[/yellow]")
                return

            now = utc_now()
            table = Table(title="Current Prices")
            table.add_column("Item", style="bold")
            table.add_column("Price", justify="right")
            table.add_column(f"{hours}h Change", justify="right")
            table.add_column("Updated", justify="right")

            for item_id, info in snapshot.items():
                reference = await store.nearest_observation_to(
                    item_id, now - timedelta(hours=hours), now=now
                )
                change = percent_change(
                    reference.price if reference else None, info["price"]
                )
                table.add_row(
                    item_id,
                    f"${info['price']:.2f}",
                    _format_change(change),
                    info["timestamp"].strftime("%Y-%m-%d %H:%M"),
                )

            console.print(table)
        finally:
            await store.close()

    _run_async(_run())


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("item")
@click.option("--hours", type=click.IntRange(min=1), default=None, help="Only the last N hours.")
@click.pass_context
def history(ctx: click.Context, item: str, hours: int | None) -> None:
    """Show stored observations for one ITEM."""
    from case_tracker.core import utc_now

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            since = utc_now() - timedelta(hours=hours) if hours else None
            observations = await store.get_history(item, since=since)
            if not observations:
                console.print(f"[yellow]No history for {item!r}.[/yellow]")
                raise SystemExit(1)

            table = Table(title=f"History: {item}")
            table.add_column("Observed", style="bold")
            table.add_column("Price", justify="right")
            for obs in observations:
                table.add_row(
                    obs.observed_at.strftime("%Y-%m-%d %H:%M:%S"), f"${obs.price:.2f}"
                )
            console.print(table)
        finally:
            await store.close()

    _run_async(_run())


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show stored data coverage and the last sweep."""

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            stats = await store.get_statistics()
            last = await store.last_sweep()

            table = Table(title="Case Tracker Status")
            table.add_column("Metric", style="bold")
            table.add_column("Value", justify="right")

            table.add_row("Database path", config.storage.sqlite_path)
            table.add_row("Catalog", config.sweep.catalog_path)
            table.add_section()
            table.add_row("Tracked items", str(stats["tracked_items"]))
            table.add_row("History rows", str(stats["history_rows"]))
            table.add_row("Completed sweeps", str(stats["completed_sweeps"]))
            table.add_section()
            if last is not None:
                table.add_row("Last sweep finished", last.completed_at.isoformat())
                table.add_row(
                    "Last sweep result",
                    f"{last.items_updated} updated, {last.items_skipped} skipped",
                )
            else:
                table.add_row("Last sweep finished", "N/A")

            console.print(table)
        finally:
            await store.close()

    _run_async(_run())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
