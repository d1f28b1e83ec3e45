"""CLI entry point for crbot.

Commands:
  webhook  — run one webhook delivery through the review pipeline
  history  — display stored pull request reviews for a project
  stats    — per-author change and review statistics
  report   — LLM-written daily report over stored reviews
  init     — write a starter .codereview.yml
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from crbot_cli.commands.history import history_cmd
from crbot_cli.commands.init import init_cmd
from crbot_cli.commands.report import report_cmd
from crbot_cli.commands.stats import stats_cmd
from crbot_cli.commands.webhook import webhook_cmd

console = Console()


def _build_store(settings: dict):
    """Instantiate the configured store from .crbot.yml settings.

    Store selection hierarchy:
      store: gist   → GistStore  (requires gist_id and github_token)
      store: sqlite → SQLiteStore (requires store_path or uses .crbot.db)
      (default)     → NoOpStore  (no persistence)
    """
    from crbot_store.noop import NoOpStore

    store_type = settings.get("store", "noop")

    if store_type == "gist":
        from crbot_store.gist import GistStore

        gist_id = settings.get("gist_id")
        token = settings.get("github_token")
        if not gist_id or not token:
            console.print("[yellow]GistStore requires gist_id and a GitHub token. Falling back to no store.[/yellow]")
            return NoOpStore()
        return GistStore(gist_id=gist_id, token=token)

    if store_type == "sqlite":
        from crbot_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=settings.get("store_path") or ".crbot.db")

    return NoOpStore()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("crbot"),
    prog_name="crbot",
)
@click.option(
    "--config",
    "config_path",
    default=".crbot.yml",
    show_default=True,
    help="Path to the bot settings file.",
    envvar="CRBOT_CONFIG",
)
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides the settings file.",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, model: str | None):
    """AI code-review bot for pull requests and pushes."""
    from crbot_cli.auth import resolve_github_token
    from crbot_core.config import load_settings

    ctx.ensure_object(dict)

    settings = load_settings(config_path, cli_overrides={"model": model})
    _configure_logging(settings.get("log_level") or "INFO")

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        settings["github_token"] = token

    store = _build_store(settings)
    ctx.obj["store"] = store
    ctx.obj["settings"] = settings
    ctx.call_on_close(store.close)


main.add_command(webhook_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
main.add_command(report_cmd)
main.add_command(init_cmd)
