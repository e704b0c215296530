"""
Almanac CLI.

Commands:
- init: create the database and seed the default configs
- serve: run the HTTP API (scheduler and queue included)
- run: execute one config in-process and print the report
- status: enabled configs and their next fire times
- audit: recent audit entries with cost totals
- configs list / configs import
- sources list / sources feedback / sources recalculate
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from almanac import __version__
from almanac.config import AlmanacConfig
from almanac.errors import AlmanacError, ConfigError, InvalidFeedbackError
from almanac.observability import configure_logging
from almanac.research.cron import CronExpression
from almanac.research.models import AuditStatus, ResearchConfig, ResearchReport, dump

console = Console()


def _load_config(ctx: click.Context) -> AlmanacConfig:
    if "config" not in ctx.obj:
        try:
            config = AlmanacConfig.load(ctx.obj.get("config_path"))
        except ConfigError as e:
            raise click.ClickException(str(e)) from e
        configure_logging(config.logging.level, json_format=config.logging.json)
        ctx.obj["config"] = config
    return ctx.obj["config"]


def _stores(ctx: click.Context):
    """Stores over the configured database (no scheduler, no provider)."""
    from almanac.research.trust import TrustScorer
    from almanac.store import AuditLedger, ConfigStore, Database, SourceStore

    config = _load_config(ctx)
    db = Database(config.database.path)
    sources = SourceStore(db)
    return ConfigStore(db), AuditLedger(db), TrustScorer(sources)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=Path, help="Path to config file (default: almanac.yaml)")
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """Almanac - Scheduled deep-research jobs."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config


@main.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create the database and seed the default research configs."""
    config_store, _, _ = _stores(ctx)
    inserted = config_store.seed_defaults()
    console.print(f"[green]✓[/green] Database ready at {_load_config(ctx).database.path}")
    console.print(f"  Seeded {inserted} default config(s)")


@main.command()
@click.option("--host", type=str, help="Bind address (overrides server.host)")
@click.option("--port", type=int, help="Port (overrides server.port)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the HTTP API with the scheduler and job queue."""
    import uvicorn

    from almanac.api import create_app

    config = _load_config(ctx)
    app = create_app(config=config)
    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,
    )


@main.command()
@click.argument("config_id")
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def run(ctx: click.Context, config_id: str, as_json: bool) -> None:
    """Execute one research config now and print the report."""
    from almanac.research.orchestrator import Orchestrator

    config = _load_config(ctx)

    async def _run() -> ResearchReport:
        orchestrator = Orchestrator(config)
        try:
            return await orchestrator.run_once(config_id)
        finally:
            await orchestrator.stop()

    try:
        report = asyncio.run(_run())
    except AlmanacError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        console.print_json(data=dump(report))
        return
    _print_report(report)


def _print_report(report: ResearchReport) -> None:
    console.print(f"[bold]{report.config_name}[/bold] [dim]({report.category})[/dim]")
    console.print(report.summary or "[dim]No summary[/dim]")
    if report.is_empty:
        return

    table = Table(title=f"{len(report.items)} item(s)")
    table.add_column("Score", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Source")
    table.add_column("Published", style="dim")
    for item in report.items:
        table.add_row(
            f"{item.relevance_score:.1f}",
            item.title,
            item.source or "",
            item.published_at or "",
        )
    console.print(table)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show enabled configs and their next fire times."""
    config_store, ledger, _ = _stores(ctx)
    tz = _load_config(ctx).tzinfo
    now = datetime.now(UTC).astimezone(tz)

    table = Table(title="Research Schedule")
    table.add_column("Config", style="cyan")
    table.add_column("Schedule", style="dim")
    table.add_column("Next Run")

    configs = config_store.list_configs(enabled_only=True)
    for config in configs:
        try:
            next_run = CronExpression.parse(config.schedule).next_run(now)
            next_str = next_run.strftime("%Y-%m-%d %H:%M %Z") if next_run else "[dim]--[/dim]"
        except AlmanacError as e:
            next_str = f"[red]{e}[/red]"
        table.add_row(config.id, config.schedule, next_str)

    if not configs:
        console.print("[yellow]No enabled research configs[/yellow]")
    else:
        console.print(table)

    running = ledger.list_running()
    if running:
        console.print(f"[bold]Jobs marked running: {len(running)}[/bold]")
        for entry in running:
            console.print(f"  • {entry.config_id} (since {entry.created_at:%Y-%m-%d %H:%M})")


@main.command()
@click.option("--limit", type=click.IntRange(1, 500), default=50, help="Last N entries")
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def audit(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent audit entries with cost totals."""
    _, ledger, _ = _stores(ctx)
    entries = ledger.list_recent(limit)
    totals = ledger.totals(entries)

    if as_json:
        data = {"entries": [dump(e) for e in entries], "totals": dump(totals)}
        console.print_json(data=data)
        return

    table = Table(title="Audit Log")
    table.add_column("Started", style="dim")
    table.add_column("Config", style="cyan")
    table.add_column("Status")
    table.add_column("Tokens in/out", justify="right")
    table.add_column("Searches", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Runtime", justify="right")
    table.add_column("Error", style="dim")

    status_style = {
        AuditStatus.STARTED: "[yellow]started[/yellow]",
        AuditStatus.COMPLETED: "[green]completed[/green]",
        AuditStatus.FAILED: "[red]failed[/red]",
    }
    for entry in entries:
        table.add_row(
            entry.created_at.strftime("%Y-%m-%d %H:%M"),
            entry.config_id or "",
            status_style[entry.status],
            f"{entry.input_tokens}/{entry.output_tokens}",
            str(entry.web_search_calls),
            f"${entry.estimated_cost_cents / 100:.4f}",
            f"{entry.runtime_ms / 1000:.1f}s",
            (entry.error_message or "")[:60],
        )

    console.print(table)
    console.print(
        f"Total: ${totals.cost_cents / 100:.4f} · "
        f"{totals.input_tokens}/{totals.output_tokens} tokens · "
        f"{totals.web_searches} searches"
    )


# =============================================================================
# Configs
# =============================================================================


@main.group()
def configs() -> None:
    """Research config management."""
    pass


@configs.command(name="list")
@click.option("--enabled-only", is_flag=True, help="Only show enabled configs")
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def list_configs(ctx: click.Context, enabled_only: bool, as_json: bool) -> None:
    """List research configs."""
    config_store, _, _ = _stores(ctx)
    items = config_store.list_configs(enabled_only=enabled_only)

    if as_json:
        console.print_json(data=[dump(c) for c in items])
        return

    if not items:
        console.print("[yellow]No research configs found[/yellow]")
        console.print("Run `almanac init` to seed the defaults")
        return

    table = Table(title="Research Configs")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Enabled")
    table.add_column("Schedule", style="dim")
    table.add_column("Topics", style="dim")

    for config in items:
        enabled = "[green]✓[/green]" if config.enabled else "[red]✗[/red]"
        table.add_row(
            config.id,
            config.name,
            config.category.value,
            enabled,
            config.schedule,
            ", ".join(config.topics),
        )

    console.print(table)


@configs.command(name="import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_configs(ctx: click.Context, path: Path) -> None:
    """Create or replace configs from a YAML file."""
    from pydantic import ValidationError

    config_store, _, _ = _stores(ctx)
    try:
        loaded = ResearchConfig.from_yaml_file(path)
    except (ValidationError, ValueError) as e:
        raise click.ClickException(f"Invalid config file {path}: {e}") from e

    for config in loaded:
        try:
            CronExpression.parse(config.schedule)
        except AlmanacError as e:
            raise click.ClickException(f"{config.id}: {e}") from e

    for config in loaded:
        config_store.save(config)
        console.print(f"[green]✓[/green] {config.id}")
    console.print(f"Imported {len(loaded)} config(s)")


# =============================================================================
# Sources
# =============================================================================


@main.group()
def sources() -> None:
    """Source reputation."""
    pass


@sources.command(name="list")
@click.option("--category", type=str, help="Filter by category")
@click.pass_context
def list_sources(ctx: click.Context, category: str | None) -> None:
    """List sources ranked by trust score."""
    _, _, trust = _stores(ctx)
    ranked = trust.top_sources(category=category)

    if not ranked:
        console.print("[yellow]No source feedback yet[/yellow]")
        return

    table = Table(title="Sources")
    table.add_column("Domain", style="cyan")
    table.add_column("Trust", justify="right")
    table.add_column("Up", justify="right")
    table.add_column("Down", justify="right")
    table.add_column("Category", style="dim")
    for source in ranked:
        table.add_row(
            source.domain,
            f"{source.trust_score:.3f}",
            str(source.upvotes),
            str(source.downvotes),
            source.category or "",
        )
    console.print(table)


@sources.command(name="feedback")
@click.argument("domain")
@click.option("--up", "rating", flag_value=1, help="Upvote the source")
@click.option("--down", "rating", flag_value=-1, help="Downvote the source")
@click.option("--item", "item_id", type=str, help="Item the feedback refers to")
@click.pass_context
def source_feedback(ctx: click.Context, domain: str, rating: int | None, item_id: str | None) -> None:
    """Record an upvote or downvote for a source domain."""
    if rating is None:
        raise click.UsageError("Pass --up or --down")
    _, _, trust = _stores(ctx)
    try:
        trust.submit_feedback(domain, rating, item_id=item_id)
    except InvalidFeedbackError as e:
        raise click.ClickException(str(e)) from e

    score = trust.recompute_score(domain)
    console.print(f"[green]✓[/green] Recorded {'upvote' if rating > 0 else 'downvote'} for {domain}")
    if score is not None:
        console.print(f"  Trust score: {score:.3f}")


@sources.command(name="recalculate")
@click.pass_context
def recalculate(ctx: click.Context) -> None:
    """Recompute every trust score."""
    _, _, trust = _stores(ctx)
    updated = trust.recompute_all()
    console.print(f"[green]✓[/green] Recalculated {updated} source(s)")


if __name__ == "__main__":
    main()
