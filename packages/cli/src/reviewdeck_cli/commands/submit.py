"""submit commands — create reviews and run them through the analysis backend."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from reviewdeck_cli.render import print_review, review_table
from reviewdeck_core.config import load_prompt
from reviewdeck_core.extractor import ResultExtractor
from reviewdeck_core.gh.commit import commit_drafts, get_repo
from reviewdeck_core.lifecycle import LifecycleController, get_analyzer
from reviewdeck_store.models import ReviewDraft

console = Console()

_model_option = click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)


def build_controller(ctx: click.Context) -> LifecycleController:
    config = ctx.obj["config"]
    return LifecycleController(
        ctx.obj["store"],
        extractor=ResultExtractor.from_config(config),
        max_chars=config.get("max_chars_per_file"),
    )


def build_backend(config: dict, model: str | None = None):
    """Resolve the analysis backend, failing early when its API key is missing."""
    provider = model or config["model"]
    if provider == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
    if provider == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")
    try:
        return get_analyzer({**config, "model": provider})
    except ValueError as e:
        raise click.UsageError(str(e)) from e


@click.command("submit")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--repo", required=True, help="Repository the file belongs to (e.g. owner/name).")
@click.option("--developer", required=True, help="Author of the code under review.")
@click.option("--branch", default="", help="Branch the file was taken from.")
@click.option("--prompt-id", "prompt_id", default=None, help="Review prompt id from the config file.")
@_model_option
@click.option("--no-analyze", "no_analyze", is_flag=True, help="Only record the review; leave it PENDING.")
@click.pass_context
def submit_cmd(
    ctx,
    file: str,
    repo: str,
    developer: str,
    branch: str,
    prompt_id: str | None,
    model: str | None,
    no_analyze: bool,
):
    """Submit FILE for review and analyze it.

    \b
    Required environment variables (unless --no-analyze):
      ANTHROPIC_API_KEY    when using --model anthropic
      OPENAI_API_KEY       when using --model openai
    """
    config = ctx.obj["config"]
    # Resolve everything that can fail before a record is created.
    prompt = load_prompt(config, prompt_id)
    backend = None if no_analyze else build_backend(config, model)

    path = Path(file)
    draft = ReviewDraft(
        file_name=path.name,
        file_path=file,
        repository_id=repo,
        developer=developer,
        file_content=path.read_text(encoding="utf-8", errors="replace"),
        branch=branch,
        review_prompt_id=prompt_id,
    )

    controller = build_controller(ctx)
    review = controller.submit(draft)
    if backend is not None:
        with console.status(f"Analyzing {escape(review.file_name)}..."):
            review = controller.dispatch(review.id, backend, prompt=prompt)
    print_review(console, review)


@click.command("submit-commit")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--sha", required=True, help="Commit SHA whose changed files are reviewed.")
@click.option("--branch", default=None, help="Branch name. Defaults to the repository default branch.")
@click.option("--prompt-id", "prompt_id", default=None, help="Review prompt id from the config file.")
@_model_option
@click.option("--no-analyze", "no_analyze", is_flag=True, help="Only record the reviews; leave them PENDING.")
@click.pass_context
def submit_commit_cmd(
    ctx,
    repo: str,
    sha: str,
    branch: str | None,
    prompt_id: str | None,
    model: str | None,
    no_analyze: bool,
):
    """Submit every source file changed in a GitHub commit.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
    """
    from reviewdeck_cli.auth import require_github_token

    config = ctx.obj["config"]
    token = require_github_token(config)
    prompt = load_prompt(config, prompt_id)
    backend = None if no_analyze else build_backend(config, model)

    drafts = commit_drafts(get_repo(repo, token=token), sha, branch=branch, review_prompt_id=prompt_id)
    if not drafts:
        console.print(f"[yellow]No reviewable source files in commit {sha[:7]}.[/yellow]")
        return

    controller = build_controller(ctx)
    reviews = [controller.submit(d) for d in drafts]
    if backend is not None:
        with console.status(f"Analyzing {len(reviews)} file(s)..."):
            reviews = controller.dispatch_many([r.id for r in reviews], backend, prompt=prompt)

    console.print(review_table(reviews, title=f"Commit {sha[:7]} — {repo}"))
