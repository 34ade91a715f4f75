"""
CLI interface for Copilot Usage Analyzer.

Terminal front-end over the ingestion pipeline and the derived views.
"""

import sys
from pathlib import Path
from typing import List, Optional, Tuple

import typer
import yaml
from rich.console import Console
from rich.table import Table

from copilot_usage.config.loader import AnalyzerConfig, load_analyzer_config
from copilot_usage.core.aggregation import DAY_NAMES, model_user_breakdown, share_breakdown, model_key, user_key
from copilot_usage.core.dashboard import DashboardSummary, build_dashboard, build_record_table
from copilot_usage.core.quota import filter_quota_records, quota_summary, sort_quota_records
from copilot_usage.demo.sample_data import generate_sample_csv
from copilot_usage.storage.csv_reader import IngestionError
from copilot_usage.storage.csv_writer import export_csv, export_filename
from copilot_usage.storage.models import ALL, FilterCriteria, QuotaStatus, UsageEvent
from copilot_usage.storage.repository import UsageRepository, get_repository
from copilot_usage.utils.logging import setup_logging

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

STATUS_CHOICES = {
    "normal": QuotaStatus.NORMAL,
    "near": QuotaStatus.NEAR_QUOTA,
    "over": QuotaStatus.OVER_QUOTA,
}

STATUS_STYLES = {
    QuotaStatus.NORMAL: "green",
    QuotaStatus.NEAR_QUOTA: "yellow",
    QuotaStatus.OVER_QUOTA: "red",
}

DaysOption = typer.Option("all", "--days", "-d", help="Only include the last N days, or 'all'")
UserOption = typer.Option(ALL, "--user", "-u", help="Only include this user")
ModelOption = typer.Option(ALL, "--model", "-m", help="Only include this model")
SearchOption = typer.Option("", "--search", "-s", help="Case-insensitive search on user, model and date")
ConfigOption = typer.Option(None, "--config", "-c", help="Path to YAML analyzer config")


class CliError(Exception):
    """Raised for user-facing failures that end the command."""


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Copilot Usage Analyzer CLI."""
    setup_logging("DEBUG" if verbose else "WARNING")
    if ctx.invoked_subcommand is None:
        console.print("Copilot Usage Analyzer - Use --help to see available commands")


def _parse_days(days: str):
    if days.strip().lower() == ALL:
        return ALL
    try:
        value = int(days)
    except ValueError:
        raise CliError(f"--days must be a number of days or 'all', got {days!r}")
    if value < 0:
        raise CliError("--days cannot be negative")
    return value


def _criteria(days: str, user: str, model: str, search: str) -> FilterCriteria:
    return FilterCriteria(
        date_window_days=_parse_days(days),
        user=user,
        model=model,
        search_text=search,
    )


def _load(csv_path: str, config_path: Optional[str]) -> Tuple[UsageRepository, AnalyzerConfig]:
    """Load the config and ingest the CSV file into the shared repository."""
    config = load_analyzer_config(config_path)
    repository = get_repository(config)
    result = repository.load_path(csv_path)
    if not result.ok:
        raise CliError(result.message)
    if result.stats.total_rejected:
        console.print(f"[yellow]![/] Dropped {result.stats.total_rejected:,} invalid rows")
    return repository, config


def _fail(e: Exception) -> None:
    console.print(f"[red]Error:[/] {str(e)}")
    sys.exit(EXIT_CODE_FAIL)


def _format_number(value: float) -> str:
    return f"{value:,.0f}" if float(value).is_integer() else f"{value:,.2f}"


def _format_percent(value: float) -> str:
    return f"{'+' if value >= 0 else ''}{value:,.1f}%"


@app.command()
def summary(
    csv_path: str = typer.Argument(..., help="Usage export CSV"),
    days: str = DaysOption,
    user: str = UserOption,
    model: str = ModelOption,
    search: str = SearchOption,
    config_path: Optional[str] = ConfigOption,
):
    """Show headline statistics and chart data for the filtered events."""
    try:
        criteria = _criteria(days, user, model, search)
        repository, config = _load(csv_path, config_path)
        events = repository.get_events(criteria)
        _display_summary(build_dashboard(events, config), len(events))
    except (CliError, IngestionError, ValueError, OSError, yaml.YAMLError) as e:
        _fail(e)
    sys.exit(EXIT_CODE_PASS)


def _display_summary(dashboard: DashboardSummary, event_count: int) -> None:
    """Display the stat cards followed by the distribution tables."""
    stats = dashboard.stats
    console.print("\n[bold]Copilot Usage Summary[/bold]")
    console.print("-" * 40)

    if event_count == 0:
        console.print("\n[dim]No events match the current filters.[/]")

    console.print(f"Total users: {stats.total_users:,}")
    console.print(f"Total requests: {_format_number(stats.total_requests)}")
    console.print(f"Total models: {stats.total_models:,}")
    console.print(f"Avg requests/user: {_format_number(round(stats.avg_requests_per_user))}")
    console.print(f"Daily average: {_format_number(round(stats.daily_average))}")
    console.print(f"Most popular model: {stats.most_popular_model or '-'}")
    if stats.peak_hour.hour is not None:
        console.print(f"Peak hour: {stats.peak_hour.hour:02d}:00 ({_format_number(stats.peak_hour.requests)} requests)")

    growth = stats.growth
    window = "half split" if growth.split_by_count else f"{growth.period_days}d"
    console.print(f"Growth ({window}): {_format_percent(growth.growth_percentage)}")

    if dashboard.top_models:
        console.print(_ranking_table("Top Models", "Model", dashboard.top_models))
    if dashboard.top_users:
        console.print(_ranking_table("Top Users", "User", dashboard.top_users))
    if event_count:
        weekday = list(zip(DAY_NAMES, dashboard.weekday))
        console.print(_ranking_table("Requests by Day of Week", "Day", weekday))


def _ranking_table(title: str, label: str, rows: List[Tuple[str, float]]) -> Table:
    table = Table(title=title)
    table.add_column(label)
    table.add_column("Requests", justify="right")
    for key, requests in rows:
        table.add_row(str(key), _format_number(requests))
    return table


@app.command()
def quota(
    csv_path: str = typer.Argument(..., help="Usage export CSV"),
    status: Optional[str] = typer.Option(None, "--status", help="normal, near or over"),
    sort_by: str = typer.Option("usage", "--sort", help="usage, requests or user"),
    days: str = DaysOption,
    user: str = UserOption,
    model: str = ModelOption,
    search: str = SearchOption,
    config_path: Optional[str] = ConfigOption,
):
    """Show per-user quota consumption."""
    try:
        status_filter = None
        if status is not None:
            if status.lower() not in STATUS_CHOICES:
                raise CliError(f"--status must be one of: {list(STATUS_CHOICES)}")
            status_filter = STATUS_CHOICES[status.lower()]

        criteria = _criteria(days, user, model, "")
        repository, _ = _load(csv_path, config_path)
        records = repository.get_quota_records(criteria)
        records = sort_quota_records(
            filter_quota_records(records, status=status_filter, search_text=search),
            by=sort_by,
        )
    except (CliError, IngestionError, ValueError, OSError, yaml.YAMLError) as e:
        _fail(e)

    table = Table(title="Quota Consumption")
    # Fits an 80-column terminal; only the User column may wrap
    table.add_column("User")
    for column in ("Used", "Quota", "Usage"):
        table.add_column(column, justify="right", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    for column in ("Normal", "Excess", "Remaining"):
        table.add_column(column, justify="right", no_wrap=True)
    for record in records:
        style = STATUS_STYLES[record.status]
        table.add_row(
            record.user,
            _format_number(record.total_requests),
            f"{record.monthly_quota:,}",
            f"{record.usage_percentage:.1f}%",
            f"[{style}]{record.status.value}[/]",
            _format_number(record.normal_portion),
            _format_number(record.exceeding_portion),
            _format_number(record.remaining_quota),
        )
    console.print(table)

    totals = quota_summary(records)
    console.print(
        f"{totals.users:,} users: {totals.normal:,} normal, "
        f"{totals.near_quota:,} near quota, {totals.over_quota:,} over quota"
    )
    sys.exit(EXIT_CODE_PASS)


@app.command()
def top(
    csv_path: str = typer.Argument(..., help="Usage export CSV"),
    by: str = typer.Option("model", "--by", "-b", help="model or user"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of rows to show"),
    for_model: Optional[str] = typer.Option(None, "--for-model", help="Break one model down by user"),
    days: str = DaysOption,
    user: str = UserOption,
    model: str = ModelOption,
    search: str = SearchOption,
    config_path: Optional[str] = ConfigOption,
):
    """Rank models or users by requests with their share of the total."""
    try:
        if by not in ("model", "user"):
            raise CliError("--by must be 'model' or 'user'")
        repository, _ = _load(csv_path, config_path)
        events = repository.get_events(_criteria(days, user, model, search))
    except (CliError, IngestionError, ValueError, OSError, yaml.YAMLError) as e:
        _fail(e)

    if for_model is not None:
        rows = model_user_breakdown(events, for_model)
        title = f"Users for Model: {for_model}"
        label = "User"
    else:
        rows = share_breakdown(events, model_key if by == "model" else user_key)
        title = f"Requests by {by.title()}"
        label = by.title()

    table = Table(title=title)
    table.add_column(label)
    table.add_column("Requests", justify="right")
    table.add_column("Percentage", justify="right")
    for row in rows[:max(limit, 0)]:
        table.add_row(row.key, _format_number(row.requests), f"{row.percentage:.1f}%")
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def records(
    csv_path: str = typer.Argument(..., help="Usage export CSV"),
    limit: int = typer.Option(100, "--limit", "-n", help="Maximum rows to show"),
    days: str = DaysOption,
    user: str = UserOption,
    model: str = ModelOption,
    search: str = SearchOption,
    config_path: Optional[str] = ConfigOption,
):
    """List the filtered usage records."""
    try:
        repository, _ = _load(csv_path, config_path)
        events = repository.get_events(_criteria(days, user, model, search))
    except (CliError, IngestionError, ValueError, OSError, yaml.YAMLError) as e:
        _fail(e)

    record_table = build_record_table(events, limit=limit)
    table = Table(title="Usage Records")
    for column in ("Timestamp", "User", "Model", "Requests", "Exceeds Quota", "Quota"):
        table.add_column(column)
    for row in record_table.rows:
        table.add_row(row.timestamp, row.user, row.model, row.requests, row.exceeds_quota, row.monthly_quota)
    console.print(table)
    if record_table.truncated:
        console.print(f"[dim]{record_table.note}[/]")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def export(
    csv_path: str = typer.Argument(..., help="Usage export CSV"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Destination file"),
    days: str = DaysOption,
    user: str = UserOption,
    model: str = ModelOption,
    search: str = SearchOption,
    config_path: Optional[str] = ConfigOption,
):
    """Write the filtered events back to CSV with their original values."""
    try:
        repository, _ = _load(csv_path, config_path)
        events: List[UsageEvent] = repository.get_events(_criteria(days, user, model, search))
        if not events:
            raise CliError("No data to export")
        destination = Path(output or export_filename())
        destination.write_text(export_csv(events, headers=repository.headers) + "\n", encoding="utf-8")
    except (CliError, IngestionError, ValueError, OSError, yaml.YAMLError) as e:
        _fail(e)

    console.print(f"[green]✓[/] Exported {len(events):,} events to {destination}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def sample(
    output: str = typer.Argument(..., help="Destination CSV file"),
    users: int = typer.Option(12, "--users", help="Number of users"),
    days: int = typer.Option(45, "--days", help="Days of history"),
    seed: int = typer.Option(42, "--seed", help="Random seed"),
):
    """Write a sample usage export to try the other commands on."""
    try:
        Path(output).write_text(generate_sample_csv(users=users, days=days, seed=seed), encoding="utf-8")
    except (ValueError, OSError) as e:
        _fail(e)
    console.print(f"[green]✓[/] Sample data written to {output}")
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
