"""Rich rendering of reviews shared by the review commands."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from reviewdeck_store.models import CodeReview

STATUS_STYLE = {
    "PENDING": "yellow",
    "IN_PROGRESS": "cyan",
    "COMPLETED": "green",
    "FAILED": "red",
}

ISSUE_STYLE = {"CRITICAL": "red", "WARNING": "yellow", "INFO": "blue"}

SHORT_ID = 8


def styled_status(review: CodeReview) -> str:
    style = STATUS_STYLE.get(review.status.value, "white")
    return f"[{style}]{review.status.value}[/{style}]"


def score_text(review: CodeReview) -> str:
    if review.analysis_result is None:
        return "-"
    return str(review.analysis_result.quality_score)


def review_table(reviews: list[CodeReview], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold", width=SHORT_ID)
    table.add_column("File", max_width=30)
    table.add_column("Repository", max_width=24)
    table.add_column("Developer", max_width=16)
    table.add_column("Status", width=11)
    table.add_column("Score", justify="right", width=5)
    table.add_column("Created", width=16)

    for r in reviews:
        table.add_row(
            r.id[:SHORT_ID],
            escape(r.file_name),
            escape(r.repository_id),
            escape(r.developer),
            styled_status(r),
            score_text(r),
            r.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    return table


def print_review(console: Console, review: CodeReview) -> None:
    """Full detail view of one review, result included when present."""
    console.print(f"\n[bold]Review {review.id}[/bold]")
    console.print(f"  File:        {escape(review.file_path or review.file_name)}")
    console.print(f"  Repository:  {escape(review.repository_id)}" + (f" ({escape(review.branch)})" if review.branch else ""))
    console.print(f"  Developer:   {escape(review.developer)}")
    if review.commit_sha:
        console.print(f"  Commit:      {review.commit_sha[:7]} {escape(review.title)}")
    console.print(f"  Status:      {styled_status(review)}")
    if review.model_id:
        console.print(f"  Model:       {escape(review.model_id)}")
    console.print(f"  Created:     {review.created_at.isoformat(timespec='seconds')}")
    if review.completed_at:
        console.print(f"  Completed:   {review.completed_at.isoformat(timespec='seconds')}")
    if review.error_message:
        console.print(f"  [red]Error:[/red]       {escape(review.error_message)}")

    result = review.analysis_result
    if result is None:
        return

    console.print(f"\n  Quality score: [bold]{result.quality_score}[/bold]/100")

    if result.issues:
        table = Table(title="Issues", show_header=True)
        table.add_column("Type", style="bold")
        table.add_column("Severity", justify="right")
        table.add_column("Line", justify="right")
        table.add_column("Message")
        for issue in result.issues:
            style = ISSUE_STYLE.get(issue.type.value, "white")
            table.add_row(
                f"[{style}]{issue.type.value}[/{style}]",
                str(issue.severity),
                str(issue.line) if issue.line is not None else "-",
                escape(issue.message),
            )
        console.print(table)
    else:
        console.print("  [green]No issues found.[/green]")

    if result.suggestions:
        console.print("\n  [bold]Suggestions[/bold]")
        for suggestion in result.suggestions:
            console.print(f"   • {escape(suggestion)}")
