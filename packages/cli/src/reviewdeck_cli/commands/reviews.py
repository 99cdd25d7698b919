"""Review record commands — list, show, retry and delete stored reviews."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import click
from rich.console import Console
from rich.markup import escape

from reviewdeck_cli.commands.submit import build_backend, build_controller
from reviewdeck_cli.render import print_review, review_table
from reviewdeck_core.config import load_prompt
from reviewdeck_store.errors import NotFoundError, ValidationError
from reviewdeck_store.models import ReviewFilter, ReviewStatus, review_to_dict

console = Console()


def resolve_review_id(store, review_id: str) -> str:
    """Accept a full id or an unambiguous prefix, like a short git SHA."""
    try:
        return store.get(review_id).id
    except NotFoundError:
        pass
    matches = [r.id for r in store.list_reviews() if r.id.startswith(review_id)]
    if len(matches) > 1:
        raise ValidationError(f"Review id prefix {review_id!r} is ambiguous ({len(matches)} matches)")
    if not matches:
        raise NotFoundError(review_id)
    return matches[0]


@click.command("reviews")
@click.option("--repo", default=None, help="Only reviews of this repository.")
@click.option(
    "--status",
    type=click.Choice([s.value for s in ReviewStatus], case_sensitive=False),
    default=None,
    help="Only reviews in this status.",
)
@click.option("--developer", default=None, help="Only reviews by this developer.")
@click.option("--search", default=None, help="Case-insensitive match on file name, branch or developer.")
@click.option("--since", "since_days", type=click.IntRange(min=1), default=None, help="Only reviews created in the last N days.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
@click.pass_context
def reviews_cmd(
    ctx,
    repo: str | None,
    status: str | None,
    developer: str | None,
    search: str | None,
    since_days: int | None,
    limit: int,
    as_json: bool,
):
    """List stored reviews, most recent first."""
    review_filter = ReviewFilter(
        repository_id=repo,
        status=ReviewStatus(status.upper()) if status else None,
        developer=developer,
        created_after=datetime.now(timezone.utc) - timedelta(days=since_days) if since_days else None,
        search=search,
    )
    records = list(reversed(ctx.obj["store"].list_reviews(review_filter)))[:limit]

    if as_json:
        payload = []
        for r in records:
            d = review_to_dict(r)
            d.pop("file_content")
            payload.append(d)
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    if not records:
        console.print("[yellow]No reviews found.[/yellow]")
        return
    console.print(review_table(records, title="Reviews"))


@click.command("show")
@click.argument("review_id")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of formatted output.")
@click.pass_context
def show_cmd(ctx, review_id: str, as_json: bool):
    """Show one review and its analysis result."""
    store = ctx.obj["store"]
    review = store.get(resolve_review_id(store, review_id))
    if as_json:
        click.echo(json.dumps(review_to_dict(review), indent=2, ensure_ascii=False))
        return
    print_review(console, review)


@click.command("retry")
@click.argument("review_id")
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option("--no-analyze", "no_analyze", is_flag=True, help="Only reset the review to PENDING.")
@click.pass_context
def retry_cmd(ctx, review_id: str, model: str | None, no_analyze: bool):
    """Send a FAILED review back to PENDING and analyze it again."""
    config = ctx.obj["config"]
    store = ctx.obj["store"]
    review = store.get(resolve_review_id(store, review_id))
    # Resolve everything the analysis needs before leaving FAILED.
    backend = prompt = None
    if not no_analyze:
        prompt = load_prompt(config, review.review_prompt_id)
        backend = build_backend(config, model)

    controller = build_controller(ctx)
    review = controller.retry(review.id)
    if backend is not None:
        with console.status(f"Analyzing {escape(review.file_name)}..."):
            review = controller.dispatch(review.id, backend, prompt=prompt)
    print_review(console, review)


@click.command("delete")
@click.argument("review_id")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_context
def delete_cmd(ctx, review_id: str, yes: bool):
    """Delete a review permanently."""
    store = ctx.obj["store"]
    try:
        review_id = resolve_review_id(store, review_id)
    except NotFoundError:
        console.print(f"[yellow]No review {review_id}; nothing to delete.[/yellow]")
        return
    if not yes:
        click.confirm(f"Delete review {review_id}?", abort=True)
    store.delete(review_id)
    console.print(f"[green]Deleted review {review_id}.[/green]")
