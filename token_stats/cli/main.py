"""
CLI interface for token-stats.

Provides command-line access to daily reports, period aggregation and
usage analytics.
"""

import logging
import sys
from dataclasses import replace
from datetime import date, datetime
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from token_stats.config.loader import AppConfig, load_config
from token_stats.core.aggregator import (
    TimePeriod,
    aggregate,
    calculate_streaks,
    extract_all_models,
    filter_by_models,
)
from token_stats.core.analytics import (
    budget_status,
    busiest_weekday,
    calculate_projection,
    compare_weeks,
    favorite_model,
    weekend_ratio,
)
from token_stats.core.providers import Provider, parse_provider
from token_stats.core.report import CostUsageDailyReport
from token_stats.core.scanner import ScanOptions, load_daily_report, load_daily_reports

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

PROVIDER_OPTION = typer.Option("claude", "--provider", "-p", help="Provider to scan (amp, claude, codex)")
SINCE_OPTION = typer.Option(None, "--since", help="First day (YYYY-MM-DD)")
UNTIL_OPTION = typer.Option(None, "--until", help="Last day (YYYY-MM-DD)")
ALL_TIME_OPTION = typer.Option(False, "--all-time", help="Use the full, never-pruned history")
FORCE_OPTION = typer.Option(False, "--force", help="Ignore the cache and re-parse every file")
CACHE_ROOT_OPTION = typer.Option(None, "--cache-root", help="Override the cache directory")
CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML configuration")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """token-stats CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        console.print("token-stats - Use --help to see available commands")


@app.command()
def daily(
    provider: str = PROVIDER_OPTION,
    since: Optional[str] = SINCE_OPTION,
    until: Optional[str] = UNTIL_OPTION,
    all_time: bool = ALL_TIME_OPTION,
    force: bool = FORCE_OPTION,
    cache_root: Optional[str] = CACHE_ROOT_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Show per-day token usage and cost."""
    try:
        report, _ = _load(provider, since, until, all_time, force, cache_root, config)
    except Exception as e:
        _fail(e)

    if not report.data:
        console.print("\n[bold yellow]No usage found for this range[/]\n")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Daily usage")
    for column in ("Date", "Input", "Output", "Cache read", "Cache write", "Total", "Cost", "Top models"):
        table.add_column(column, justify="left" if column in ("Date", "Top models") else "right")
    for entry in report.data:
        table.add_row(
            entry.date,
            _format_tokens(entry.input_tokens),
            _format_tokens(entry.output_tokens),
            _format_tokens(entry.cache_read_tokens),
            _format_tokens(entry.cache_creation_tokens),
            _format_tokens(entry.total_tokens),
            _format_currency(entry.cost_usd),
            ", ".join(b.model_name for b in entry.model_breakdowns or ()),
        )
    console.print(table)

    if report.summary:
        console.print(
            f"Total: {_format_tokens(report.summary.total_tokens)} tokens, "
            f"{_format_currency(report.summary.total_cost_usd)}"
        )
    sys.exit(EXIT_CODE_PASS)


@app.command(name="aggregate")
def aggregate_command(
    period: str = typer.Option("week", "--period", help="day, week, month, halfYear or year"),
    models: Optional[List[str]] = typer.Option(None, "--model", "-m", help="Only include these models"),
    provider: str = PROVIDER_OPTION,
    since: Optional[str] = SINCE_OPTION,
    until: Optional[str] = UNTIL_OPTION,
    all_time: bool = ALL_TIME_OPTION,
    force: bool = FORCE_OPTION,
    cache_root: Optional[str] = CACHE_ROOT_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Group daily usage into calendar periods."""
    try:
        time_period = TimePeriod(period)
        report, _ = _load(provider, since, until, all_time, force, cache_root, config)
    except Exception as e:
        _fail(e)

    entries = list(report.data)
    if models:
        entries = filter_by_models(entries, set(models))
    result = aggregate(entries, time_period)

    table = Table(title=f"Usage by {time_period.display_name.lower()}")
    for column in ("Period", "Id", "Total", "Cost", "Models"):
        table.add_column(column, justify="right" if column in ("Total", "Cost") else "left")
    for entry in result.entries:
        table.add_row(
            entry.period_label,
            entry.id,
            _format_tokens(entry.total_tokens),
            _format_currency(entry.cost_usd),
            ", ".join(entry.models_used),
        )
    console.print(table)
    console.print(
        f"Total: {_format_tokens(result.total_tokens)} tokens, {_format_currency(result.total_cost_usd)}"
    )
    sys.exit(EXIT_CODE_PASS)


@app.command(name="models")
def models_command(
    provider: str = PROVIDER_OPTION,
    all_time: bool = ALL_TIME_OPTION,
    cache_root: Optional[str] = CACHE_ROOT_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """List every model seen in the usage history."""
    try:
        report, _ = _load(provider, None, None, all_time, False, cache_root, config)
    except Exception as e:
        _fail(e)

    for model in extract_all_models(report.data):
        console.print(model)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def streaks(
    provider: str = PROVIDER_OPTION,
    cache_root: Optional[str] = CACHE_ROOT_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Show consecutive-day usage streaks per model."""
    try:
        report, _ = _load(provider, None, None, True, False, cache_root, config)
    except Exception as e:
        _fail(e)

    table = Table(title="Model streaks")
    for column in ("Model", "Current", "Longest", "Last active"):
        table.add_column(column)
    for streak in calculate_streaks(report.data):
        table.add_row(
            streak.model_name,
            str(streak.current_streak),
            str(streak.longest_streak),
            streak.last_active_date or "-",
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def projection(
    provider: str = PROVIDER_OPTION,
    budget: Optional[float] = typer.Option(None, "--budget", "-b", help="Monthly budget in USD"),
    cache_root: Optional[str] = CACHE_ROOT_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Project this month's spend."""
    today = date.today()
    month_start = today.replace(day=1).isoformat()
    try:
        report, app_config = _load(provider, month_start, None, False, False, cache_root, config)
    except Exception as e:
        _fail(e)

    days = aggregate(report.data, TimePeriod.DAY)
    result = calculate_projection(days.entries, today)
    if result is None:
        console.print("\n[bold yellow]No usage recorded this month[/]\n")
        sys.exit(EXIT_CODE_PASS)

    console.print(f"\n[bold]{result.month_label}[/bold]")
    console.print(f"Spent so far: {_format_currency(result.current_spend)}")
    console.print(f"Daily average: {_format_currency(result.daily_average)}")
    console.print(f"Projected: {_format_currency(result.projected_spend)}")
    console.print(f"Month progress: {result.month_progress:.0%} ({result.days_elapsed}/{result.days_in_month} days)")

    monthly_budget = budget
    if monthly_budget is None and app_config.budget is not None:
        monthly_budget = app_config.budget.monthly
    if monthly_budget is not None:
        status = budget_status(result, monthly_budget)
        colour = "red" if status.will_exceed else "green"
        console.print(
            f"Budget: {_format_currency(monthly_budget)} "
            f"[{colour}]({status.projected_ratio:.0%} projected)[/]"
        )
    sys.exit(EXIT_CODE_PASS)


@app.command()
def stats(
    provider: str = PROVIDER_OPTION,
    cache_root: Optional[str] = CACHE_ROOT_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Week-over-week and weekday usage statistics."""
    try:
        report, _ = _load(provider, None, None, False, False, cache_root, config)
    except Exception as e:
        _fail(e)

    days = aggregate(report.data, TimePeriod.DAY).entries
    comparison = compare_weeks(days, date.today())
    console.print("\n[bold]This week vs last week[/bold]")
    console.print(
        f"Tokens: {_format_tokens(comparison.current.tokens)} "
        f"(last week {_format_tokens(comparison.previous.tokens)}, {_format_change(comparison.tokens_change_percent)})"
    )
    console.print(
        f"Cost: {_format_currency(comparison.current.cost)} "
        f"(last week {_format_currency(comparison.previous.cost)}, {_format_change(comparison.cost_change_percent)})"
    )

    busiest = busiest_weekday(days)
    if busiest:
        console.print(f"Busiest weekday: {busiest[0]} ({_format_tokens(busiest[1])} tokens)")
    weekend_share, _, total = weekend_ratio(days)
    if total:
        console.print(f"Weekend share: {weekend_share:.0%}")
    favorite = favorite_model(days)
    if favorite:
        console.print(f"Favorite model: {favorite[0]} ({favorite[1]} days)")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def scan(
    all_time: bool = ALL_TIME_OPTION,
    force: bool = FORCE_OPTION,
    cache_root: Optional[str] = CACHE_ROOT_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Refresh every provider and summarize the results."""
    try:
        app_config = load_config(config) if config else AppConfig()
        options = app_config.scan_options(all_time=all_time, force_rescan=force)
        if cache_root:
            options = _with_cache_root(options, cache_root)
        result = load_daily_reports(list(Provider), options=options)
    except Exception as e:
        _fail(e)

    table = Table(title="Providers")
    for column in ("Provider", "Days", "Total", "Cost"):
        table.add_column(column)
    for provider in Provider:
        if provider in result.errors:
            table.add_row(provider.display_name, "-", "-", f"[red]{result.errors[provider]}[/]")
            continue
        summary = result.reports[provider].summary
        table.add_row(
            provider.display_name,
            str(len(result.reports[provider].data)),
            _format_tokens(summary.total_tokens if summary else 0),
            _format_currency(summary.total_cost_usd if summary else None),
        )
    console.print(table)
    sys.exit(EXIT_CODE_FAIL if result.errors else EXIT_CODE_PASS)


def _load(
    provider: str,
    since: Optional[str],
    until: Optional[str],
    all_time: bool,
    force: bool,
    cache_root: Optional[str],
    config: Optional[str]
) -> Tuple[CostUsageDailyReport, AppConfig]:
    app_config = load_config(config) if config else AppConfig()
    options = app_config.scan_options(all_time=all_time, force_rescan=force)
    if cache_root:
        options = _with_cache_root(options, cache_root)
    report = load_daily_report(
        parse_provider(provider),
        since=_parse_day(since, "--since"),
        until=_parse_day(until, "--until"),
        options=options,
    )
    return report, app_config


def _with_cache_root(options: ScanOptions, cache_root: str) -> ScanOptions:
    return replace(options, cache_root=cache_root)


def _parse_day(value: Optional[str], option: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValueError(f"{option} must be YYYY-MM-DD, got {value!r}")


def _fail(error: Exception):
    console.print(f"[red]Error:[/] {str(error)}")
    sys.exit(EXIT_CODE_FAIL)


def _format_currency(amount: Optional[float]) -> str:
    """Format currency, or a dash when cost is unknown."""
    if amount is None:
        return "-"
    return f"${abs(amount):,.2f}"


def _format_change(percent: Optional[float]) -> str:
    if percent is None:
        return "no change"
    return f"{percent:+.0f}%"


def _format_tokens(count: Optional[int]) -> str:
    if count is None:
        return "-"
    return f"{count:,}"


if __name__ == "__main__":
    app()
