"""CLI entry point for reviewdeck.

Commands:
  submit         — submit a local file for review and analyze it
  submit-commit  — submit every source file changed in a GitHub commit
  reviews        — list stored reviews
  show / retry / delete
  dashboard      — overview and quality distribution for a time window
  ranking        — repository or developer ranking by average score
  trends         — score and issue trends per day or week
  issues         — issue statistics by type, severity and file
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from reviewdeck_cli.commands.dashboard import dashboard_cmd, issues_cmd, ranking_cmd, trends_cmd
from reviewdeck_cli.commands.reviews import delete_cmd, retry_cmd, reviews_cmd, show_cmd
from reviewdeck_cli.commands.submit import submit_cmd, submit_commit_cmd
from reviewdeck_store.errors import ReviewDeckError

console = Console()


class _ReviewDeckGroup(click.Group):
    """Turns library errors into clean click errors instead of tracebacks."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except ReviewDeckError as e:
            raise click.ClickException(str(e)) from e


def _build_store(config: dict):
    """Instantiate the configured store from .reviewdeck.yml settings.

      store: sqlite → SQLiteStore (store_path, default .reviewdeck.db)
      store: memory → MemoryStore (nothing survives the process)

    This factory lives in cli.py so neither reviewdeck_core nor
    reviewdeck_store know about the CLI config format.
    """
    store_type = config.get("store", "sqlite")

    if store_type == "memory":
        from reviewdeck_store.memory import MemoryStore

        return MemoryStore()

    if store_type == "sqlite":
        from reviewdeck_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path") or ".reviewdeck.db")

    raise click.UsageError(f"Unknown store {store_type!r} in config. Use 'sqlite' or 'memory'.")


@click.group(cls=_ReviewDeckGroup)
@click.version_option(
    version=importlib.metadata.version("reviewdeck"),
    prog_name="reviewdeck",
)
@click.option(
    "--config",
    "config_path",
    default=".reviewdeck.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="REVIEWDECK_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """AI-assisted code review tracking and quality dashboards."""
    from reviewdeck_cli.auth import resolve_github_token
    from reviewdeck_core.config import load_config

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
            force=True,
        )

    ctx.ensure_object(dict)

    config = load_config(config_path)

    # Resolve once here so submit-commit and any later GitHub use agree.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(submit_cmd)
main.add_command(submit_commit_cmd)
main.add_command(reviews_cmd)
main.add_command(show_cmd)
main.add_command(retry_cmd)
main.add_command(delete_cmd)
main.add_command(dashboard_cmd)
main.add_command(ranking_cmd)
main.add_command(trends_cmd)
main.add_command(issues_cmd)
