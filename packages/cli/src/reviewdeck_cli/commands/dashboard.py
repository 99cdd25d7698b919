"""Dashboard commands — aggregate quality metrics over a trailing window."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from reviewdeck_cli.render import ISSUE_STYLE
from reviewdeck_core.metrics import MetricsAggregator, TrendPeriod

console = Console()

_days_option = click.option(
    "--days",
    type=click.IntRange(min=1),
    default=None,
    help="Window size in days. Defaults to window_days from the config file.",
)


def _window(ctx, days: int | None) -> tuple[MetricsAggregator, int]:
    return MetricsAggregator(ctx.obj["store"]), days or ctx.obj["config"].get("window_days", 30)


def _signed(value: float) -> str:
    if value > 0:
        return f"[green]+{value:.1f}[/green]"
    if value < 0:
        return f"[red]{value:.1f}[/red]"
    return "0.0"


@click.command("dashboard")
@_days_option
@click.pass_context
def dashboard_cmd(ctx, days: int | None):
    """Show review totals, average quality and the score distribution."""
    metrics, days = _window(ctx, days)
    overview = metrics.overview(days)

    console.print(f"\n[bold]Dashboard — last {days} day(s)[/bold]")
    console.print(f"  Total reviews:         {overview.total_reviews}")
    console.print(f"  Active repositories:   {overview.active_repositories}")
    console.print(f"  Average quality score: {overview.average_quality_score:.1f}")
    console.print(f"  Critical issues:       {overview.critical_issues}")
    console.print(f"  Completion rate:       {overview.completion_rate * 100:.1f}%")

    quality = metrics.quality_metrics(days)
    if not quality.analyzed_reviews:
        return

    console.print(f"  Median quality score:  {quality.median_score:.1f}")
    table = Table(title="Score Distribution", show_header=True)
    table.add_column("Band", style="bold")
    table.add_column("Reviews", justify="right")
    table.add_column("% of analyzed", justify="right")
    for band, count in quality.distribution.items():
        table.add_row(band, str(count), f"{count / quality.analyzed_reviews * 100:.1f}%")
    console.print(table)


@click.command("ranking")
@click.argument("subject", type=click.Choice(["repos", "developers"]))
@_days_option
@click.option("--limit", type=click.IntRange(min=0), default=None, help="Rows to show. Defaults to ranking_limit.")
@click.pass_context
def ranking_cmd(ctx, subject: str, days: int | None, limit: int | None):
    """Rank repositories or developers by average quality score."""
    metrics, days = _window(ctx, days)
    if limit is None:
        limit = ctx.obj["config"].get("ranking_limit", 5)

    if subject == "repos":
        rows = metrics.repository_ranking(days, limit)
        label, plural, trend_label = "Repository", "repositories", "Trend"
    else:
        rows = metrics.developer_ranking(days, limit)
        label, plural, trend_label = "Developer", "developers", "Improvement"

    if not rows:
        console.print("[yellow]No completed reviews in this window.[/yellow]")
        return

    table = Table(title=f"Top {plural} — last {days} day(s)", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", width=3)
    table.add_column(label)
    table.add_column("Avg score", justify="right")
    table.add_column("Reviews", justify="right")
    table.add_column("Critical", justify="right")
    table.add_column(trend_label, justify="right")
    for position, row in enumerate(rows, start=1):
        table.add_row(
            str(position),
            escape(row.subject_id),
            f"{row.average_score:.1f}",
            str(row.total_reviews),
            str(row.critical_issues),
            _signed(row.trend),
        )
    console.print(table)


@click.command("trends")
@_days_option
@click.option(
    "--period",
    type=click.Choice(["daily", "weekly"], case_sensitive=False),
    default="daily",
    show_default=True,
    help="Bucket size.",
)
@click.pass_context
def trends_cmd(ctx, days: int | None, period: str):
    """Show average score and issue counts per day or week."""
    metrics, days = _window(ctx, days)
    points = metrics.trends(days, TrendPeriod(period.upper()))
    if not points:
        console.print("[yellow]No reviews in this window.[/yellow]")
        return

    table = Table(title=f"{period.capitalize()} trend — last {days} day(s)", show_header=True, header_style="bold cyan")
    table.add_column("Week of" if period.lower() == "weekly" else "Date")
    table.add_column("Reviews", justify="right")
    table.add_column("Avg score", justify="right")
    table.add_column("Issues", justify="right")
    for point in points:
        table.add_row(point.date.isoformat(), str(point.review_count), f"{point.average_score:.1f}", str(point.issue_count))
    console.print(table)


@click.command("issues")
@_days_option
@click.option("--top", default=10, show_default=True, help="Number of top entries to show per category.")
@click.pass_context
def issues_cmd(ctx, days: int | None, top: int):
    """Show which issues are found most, by type, severity and file."""
    metrics, days = _window(ctx, days)
    stats = metrics.issue_statistics(days, top=top)
    if not stats.total_issues:
        console.print("[yellow]No issues found in this window.[/yellow]")
        return

    console.print(f"\n[bold]Issues — last {days} day(s)[/bold]")
    console.print(f"  Total issues: {stats.total_issues}")

    type_table = Table(title="By Type", show_header=True)
    type_table.add_column("Type", style="bold")
    type_table.add_column("Count", justify="right")
    type_table.add_column("% of total", justify="right")
    for issue_type, count in stats.by_type.items():
        style = ISSUE_STYLE.get(issue_type.value, "white")
        type_table.add_row(f"[{style}]{issue_type.value}[/{style}]", str(count), f"{count / stats.total_issues * 100:.1f}%")
    console.print(type_table)

    severity_table = Table(title="By Severity", show_header=True)
    severity_table.add_column("Severity", justify="right")
    severity_table.add_column("Count", justify="right")
    for severity, count in stats.by_severity.items():
        severity_table.add_row(str(severity), str(count))
    console.print(severity_table)

    top_table = Table(title=f"Top {top} Issues", show_header=True)
    top_table.add_column("Issue")
    top_table.add_column("Count", justify="right")
    for message, count in stats.top_issues:
        top_table.add_row(escape(message), str(count))
    console.print(top_table)

    file_table = Table(title=f"Top {top} Most Flagged Files", show_header=True)
    file_table.add_column("File")
    file_table.add_column("Issues", justify="right")
    for file_path, count in list(stats.by_file.items())[:top]:
        file_table.add_row(escape(file_path), str(count))
    console.print(file_table)
