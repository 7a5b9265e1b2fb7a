#!/usr/bin/env python3
"""
Command-line interface for Agent Desk CRM.

Provides database setup, lead export and import, trash management and the
production dashboard from the terminal.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Optional, Tuple

import click
import pandas as pd  # type: ignore[import-untyped]
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from sqlalchemy import text
from sqlalchemy.orm import Session

from . import __version__
from .config import CRMConfig, ExportFormat, get_config
from .dashboard import TEAM, ChartView, load_dashboard
from .db import create_db_engine, create_session_factory, init_db
from .export import export_leads, read_leads_csv
from .leads import LeadFilter, LeadService, SortOption, filter_leads, sort_leads
from .models import Lead, User
from .seed import seed_demo_data
from .soft_delete.models import TrashTab
from .soft_delete.services import TrashService
from .timeutil import to_local

console = Console()
logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def _session(ctx: click.Context) -> Session:
    """Open a session on the database selected for this invocation."""
    engine = create_db_engine(ctx.obj["database_url"])
    init_db(engine)
    session = create_session_factory(engine)()
    ctx.call_on_close(session.close)
    return session


def _actor(ctx: click.Context, session: Session) -> Optional[User]:
    user_id = ctx.obj.get("user_id")
    if not user_id:
        return None
    user = User.query_active(session).filter(User.id == user_id).first()
    if user is None:
        console.print(f"[red]Error: Unknown user '{user_id}'[/red]")
        sys.exit(1)
    return user


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.option("--database-url", help="Database URL (overrides configuration)")
@click.option("--as-user", "user_id", help="Act as this team member")
@click.pass_context
def cli(
    ctx: click.Context, database_url: Optional[str], user_id: Optional[str]
) -> None:
    """Agent Desk CRM - leads, deals and the trash from the terminal."""
    config = get_config()
    _setup_logging(config.log_level)
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url or config.database_url
    ctx.obj["user_id"] = user_id

    if ctx.invoked_subcommand is None:
        console.print(
            Panel.fit(
                f"[bold blue]{config.application_name}[/bold blue] v{__version__}\n"
                "[dim]Real-estate CRM core[/dim]\n\n"
                "Use [bold]agentdesk --help[/bold] to see available commands.",
                border_style="blue",
            )
        )


@cli.group()
def config() -> None:
    """Show and check configuration."""
    pass


@config.command("show")
@click.option("--format", type=click.Choice(["table", "json", "yaml"]), default="table")
def config_show(format: str) -> None:
    """Display current configuration."""
    try:
        config_dict = get_config().to_dict()

        if format == "json":
            console.print_json(data=config_dict)
        elif format == "yaml":
            import yaml

            console.print(yaml.dump(config_dict, default_flow_style=False))
        else:
            table = Table(title="Agent Desk Configuration", show_header=True)
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")

            categories = {
                "General": [
                    "application_name",
                    "environment",
                    "timezone",
                    "database_url",
                    "log_level",
                ],
                "Lists": ["default_page_size", "page_size_options"],
                "Trash": ["trash_retention_days"],
                "Dashboard": [
                    "default_volume_target",
                    "default_unit_target",
                    "default_gci_target",
                    "closing_soon_days",
                    "lead_source_mix_limit",
                ],
                "Export": ["export_filename_prefix", "export_format"],
            }

            for category, settings in categories.items():
                table.add_row(f"[bold]{category}[/bold]", "")
                for setting in settings:
                    value = config_dict.get(setting)
                    if value is None:
                        value = "[dim]Not configured[/dim]"
                    table.add_row(f"  {setting}", str(value))

            console.print(table)

    except Exception as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)


@config.command("validate")
@click.option(
    "--file",
    "path",
    type=click.Path(exists=True, dir_okay=False),
    help="Validate a JSON or YAML configuration file instead",
)
def config_validate(path: Optional[str]) -> None:
    """Validate configuration."""
    try:
        cfg: CRMConfig = CRMConfig.from_file(path) if path else get_config()
    except Exception as e:
        console.print(f"[red]✗ Configuration validation failed:[/red]\n{e}")
        sys.exit(1)

    warnings = []
    if cfg.environment == "production" and cfg.database_url.startswith("sqlite"):
        warnings.append("SQLite database not recommended for production")
    if cfg.trash_retention_days is None:
        warnings.append("Trash is never emptied automatically")

    console.print("[green]✓ Configuration is valid[/green]")
    if warnings:
        console.print("\n[yellow]⚠ Warnings:[/yellow]")
        for warning in warnings:
            console.print(f"  [yellow]• {warning}[/yellow]")


@cli.group()
def db() -> None:
    """Database management."""
    pass


@db.command("init")
@click.pass_context
def db_init(ctx: click.Context) -> None:
    """Create the database schema."""
    try:
        engine = create_db_engine(ctx.obj["database_url"])
        init_db(engine)
        console.print(f"[green]✓[/green] Database ready at {ctx.obj['database_url']}")
    except Exception as e:
        console.print(f"[red]Error initialising database: {e}[/red]")
        sys.exit(1)


@db.command("seed")
@click.option("--seed", type=int, default=7721, help="Random seed")
@click.option("--leads", "lead_count", type=int, default=40, help="Number of leads")
@click.pass_context
def db_seed(ctx: click.Context, seed: int, lead_count: int) -> None:
    """Load demo data into an empty database."""
    try:
        counts = seed_demo_data(_session(ctx), seed=seed, lead_count=lead_count)
    except Exception as e:
        console.print(f"[red]Error seeding database: {e}[/red]")
        sys.exit(1)

    table = Table(title="Demo data")
    table.add_column("Records", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for name, count in counts.items():
        table.add_row(name.replace("_", " ").title(), str(count))
    console.print(table)


@cli.group()
def leads() -> None:
    """Lead list, export and import."""
    pass


def _lead_filter_options(func: Any) -> Any:
    options = [
        click.option("--status", default="ALL", help="ALL or a lead status"),
        click.option("--source", "sources", multiple=True, help="Lead source"),
        click.option("--tag", "tags", multiple=True, help="Lead tag"),
        click.option("--search", default="", help="Text search"),
        click.option(
            "--sort",
            type=click.Choice([o.value for o in SortOption]),
            default=SortOption.TEMP_DESC.value,
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _selected_leads(
    ctx: click.Context,
    status: str,
    sources: Tuple[str, ...],
    tags: Tuple[str, ...],
    search: str,
) -> Tuple[LeadService, LeadFilter]:
    session = _session(ctx)
    criteria = LeadFilter(
        status=status, sources=list(sources), tags=list(tags), search=search
    )
    service = LeadService(session, actor=_actor(ctx, session))
    return service, criteria


@leads.command("list")
@_lead_filter_options
@click.option("--page", type=int, default=1)
@click.option("--per-page", type=int, default=None)
@click.option("--format", type=click.Choice(["table", "json", "csv"]), default="table")
@click.pass_context
def leads_list(
    ctx: click.Context,
    status: str,
    sources: Tuple[str, ...],
    tags: Tuple[str, ...],
    search: str,
    sort: str,
    page: int,
    per_page: Optional[int],
    format: str,
) -> None:
    """List leads."""
    try:
        service, criteria = _selected_leads(ctx, status, sources, tags, search)
        result = service.list_leads(criteria, sort, page, per_page)
    except Exception as e:
        console.print(f"[red]Error listing leads: {e}[/red]")
        sys.exit(1)

    rows = [
        {
            "id": lead.id,
            "name": lead.full_name,
            "status": lead.status.value,
            "temperature": lead.temperature.value,
            "source": lead.source,
            "budget": lead.budget,
            "email": lead.email,
        }
        for lead in result.items
    ]

    if format == "json":
        console.print_json(data=rows)
    elif format == "csv":
        print(pd.DataFrame(rows).to_csv(index=False))
    else:
        table = Table(
            title=(
                f"Leads {result.start_index}-{result.end_index} of {result.total} "
                f"(page {result.page}/{max(result.total_pages, 1)})"
            )
        )
        for column in ("ID", "Name", "Status", "Temp", "Source", "Budget", "Email"):
            table.add_column(column)
        for row in rows:
            table.add_row(
                row["id"],
                row["name"],
                row["status"],
                row["temperature"],
                row["source"],
                f"${row['budget']:,.0f}",
                row["email"],
            )
        console.print(table)


@leads.command("export")
@_lead_filter_options
@click.option("--output", type=click.Path(dir_okay=False), help="Output file path")
@click.option(
    "--format", type=click.Choice([f.value for f in ExportFormat]), default=None
)
@click.pass_context
def leads_export(
    ctx: click.Context,
    status: str,
    sources: Tuple[str, ...],
    tags: Tuple[str, ...],
    search: str,
    sort: str,
    output: Optional[str],
    format: Optional[str],
) -> None:
    """Export the filtered lead list to CSV or Excel."""
    try:
        service, criteria = _selected_leads(ctx, status, sources, tags, search)
        selected = sort_leads(filter_leads(service.visible_leads(), criteria), sort)
        path = export_leads(selected, output, format)
    except Exception as e:
        console.print(f"[red]Error exporting leads: {e}[/red]")
        sys.exit(1)

    console.print(f"[green]✓ Exported {len(selected)} leads to {path}[/green]")


@leads.command("import")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def leads_import(ctx: click.Context, csv_file: str) -> None:
    """Import leads from a CSV file."""
    try:
        session = _session(ctx)
        rows = read_leads_csv(Path(csv_file))
        created = LeadService(session, actor=_actor(ctx, session)).import_leads(rows)
    except Exception as e:
        console.print(f"[red]Error importing leads: {e}[/red]")
        sys.exit(1)

    console.print(f"[green]✓ Successfully imported {len(created)} leads[/green]")


@cli.group()
def trash() -> None:
    """Consolidated trash: list, restore and permanently delete."""
    pass


def _trash_service(ctx: click.Context) -> TrashService:
    session = _session(ctx)
    return TrashService(session, actor=_actor(ctx, session))


@trash.command("list")
@click.option(
    "--tab",
    type=click.Choice([t.value for t in TrashTab], case_sensitive=False),
    default=TrashTab.ALL.value,
)
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def trash_list(ctx: click.Context, tab: str, format: str) -> None:
    """List trashed records, newest first."""
    try:
        service = _trash_service(ctx)
        items = service.list_items(tab)
        counts = service.counts()
    except Exception as e:
        console.print(f"[red]Error reading trash: {e}[/red]")
        sys.exit(1)

    if format == "json":
        console.print_json(data=[item.model_dump(mode="json") for item in items])
        return

    if not items:
        console.print("[yellow]Trash is empty[/yellow]")
        return

    table = Table(title=f"Trash ({counts[TrashTab.ALL]} items)")
    table.add_column("ID", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Name", style="green")
    table.add_column("Details", style="dim")
    table.add_column("Deleted", style="yellow")
    for item in items:
        table.add_row(
            item.id,
            item.type.value,
            item.label,
            item.sub_label,
            to_local(item.deleted_at).strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


def _print_result(verb: str, result: Any) -> None:
    total = sum(len(keys) for keys in result.values())
    console.print(f"[green]✓ {verb} {total} item(s)[/green]")
    for tab, keys in result.items():
        if keys:
            console.print(f"  [dim]{tab.value}:[/dim] {', '.join(keys)}")


@trash.command("restore")
@click.argument("item_ids", nargs=-1, required=True)
@click.pass_context
def trash_restore(ctx: click.Context, item_ids: Tuple[str, ...]) -> None:
    """Restore trash items by their trash ids."""
    try:
        result = _trash_service(ctx).restore_items(item_ids)
    except Exception as e:
        console.print(f"[red]Error restoring items: {e}[/red]")
        sys.exit(1)
    _print_result("Restored", result)


@trash.command("purge")
@click.argument("item_ids", nargs=-1, required=True)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def trash_purge(ctx: click.Context, item_ids: Tuple[str, ...], yes: bool) -> None:
    """Permanently delete trash items."""
    if not yes:
        click.confirm(
            f"Permanently delete {len(item_ids)} item(s)? This cannot be undone",
            abort=True,
        )
    try:
        result = _trash_service(ctx).purge_items(item_ids)
    except Exception as e:
        console.print(f"[red]Error purging items: {e}[/red]")
        sys.exit(1)
    _print_result("Permanently deleted", result)


@trash.command("empty")
@click.option(
    "--tab",
    type=click.Choice([t.value for t in TrashTab], case_sensitive=False),
    default=TrashTab.ALL.value,
)
@click.option("--expired", is_flag=True, help="Only records past the retention period")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def trash_empty(ctx: click.Context, tab: str, expired: bool, yes: bool) -> None:
    """Permanently delete everything in the trash (or one tab of it)."""
    if not yes:
        click.confirm("Empty the trash? This cannot be undone", abort=True)
    try:
        service = _trash_service(ctx)
        total = service.purge_expired() if expired else service.empty_trash(tab)
    except Exception as e:
        console.print(f"[red]Error emptying trash: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ Permanently deleted {total} record(s)[/green]")


@cli.command()
@click.option("--agent", "agent_id", default=TEAM, help="TEAM or an agent id")
@click.option(
    "--chart",
    type=click.Choice([v.value for v in ChartView]),
    default=ChartView.VOLUME.value,
)
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def dashboard(ctx: click.Context, agent_id: str, chart: str, format: str) -> None:
    """Show year-to-date production."""
    try:
        summary = load_dashboard(_session(ctx), agent_id, chart_view=ChartView(chart))
    except Exception as e:
        console.print(f"[red]Error building dashboard: {e}[/red]")
        sys.exit(1)

    if format == "json":
        console.print_json(summary.model_dump_json())
        return

    m = summary.metrics
    production = Table(title=f"Production {summary.year} ({summary.viewing_agent_id})")
    production.add_column("Metric", style="cyan")
    production.add_column("Value", justify="right", style="green")
    production.add_row("Closed volume", f"${m.total_volume:,.0f}")
    production.add_row("Closed units", str(m.total_units))
    production.add_row("Buyer / seller units", f"{m.buyer_units} / {m.seller_units}")
    production.add_row("Earned commission", f"${m.earned_commission:,.0f}")
    production.add_row("Pending commission", f"${m.pending_commission:,.0f}")
    production.add_row("Active commission", f"${m.active_commission:,.0f}")
    production.add_row("GCI goal", f"${summary.goal.gci_target:,.0f}")
    production.add_row(
        "Earned of goal", f"{summary.commission_progress.earned:.1f}%"
    )
    console.print(production)
    console.print(f"[bold]{summary.comparison.text}[/bold]")

    monthly = Table(title=f"Monthly {summary.chart_view.value}")
    monthly.add_column("Month")
    monthly.add_column(str(summary.year), justify="right")
    monthly.add_column(str(summary.year - 1), justify="right")
    for point in summary.monthly:
        monthly.add_row(point.month, f"{point.current:,.0f}", f"{point.previous:,.0f}")
    console.print(monthly)

    board = Table(title="Agent Leaderboard")
    board.add_column("#", justify="right")
    board.add_column("Agent", style="cyan")
    board.add_column("Volume", justify="right", style="green")
    board.add_column("Units", justify="right")
    for rank, entry in enumerate(summary.leaderboard, start=1):
        board.add_row(str(rank), entry.name, f"${entry.volume:,.0f}", str(entry.units))
    console.print(board)

    ms = summary.milestones
    console.print(
        f"Today: {ms.todos} open tasks, {ms.birthdays} birthdays, "
        f"{ms.wedding_anniversaries} wedding and {ms.home_anniversaries} home "
        "anniversaries"
    )


@cli.command()
@click.pass_context
def doctor(ctx: click.Context) -> None:
    """Run diagnostic checks on the installation."""
    console.print("[bold]Running Agent Desk diagnostics...[/bold]\n")

    checks_passed = 0
    checks_failed = 0

    # Check 1: Configuration
    try:
        config = get_config()
        console.print(
            f"[green]✓[/green] Configuration loaded ({config.environment}, "
            f"{config.timezone})"
        )
        checks_passed += 1
    except Exception as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        checks_failed += 1

    # Check 2: Database connectivity
    try:
        engine = create_db_engine(ctx.obj["database_url"])
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        console.print("[green]✓[/green] Database connection successful")
        checks_passed += 1
    except Exception as e:
        console.print(f"[red]✗[/red] Database connection failed: {e}")
        checks_failed += 1

    # Check 3: Schema
    try:
        session = _session(ctx)
        count = Lead.query_all(session).count()
        console.print(f"[green]✓[/green] Schema ready ({count} leads)")
        checks_passed += 1
    except Exception as e:
        console.print(f"[red]✗[/red] Schema check failed: {e}")
        checks_failed += 1

    # Check 4: Excel export engine
    try:
        import openpyxl  # noqa: F401

        console.print("[green]✓[/green] Excel export available (openpyxl)")
        checks_passed += 1
    except ImportError as e:
        console.print(f"[yellow]⚠[/yellow] Excel export unavailable: {e}")
        checks_failed += 1

    console.print("\n[bold]Summary:[/bold]")
    console.print(f"  Checks passed: [green]{checks_passed}[/green]")
    console.print(f"  Checks failed: [red]{checks_failed}[/red]")

    if checks_failed == 0:
        console.print("\n[green]✓ All systems operational[/green]")
    else:
        console.print(
            "\n[yellow]⚠ Some issues detected, review output above[/yellow]"
        )
        sys.exit(1)


if __name__ == "__main__":
    cli()
