"""webhook command — process one webhook delivery."""

from __future__ import annotations

import json

import click
from rich.console import Console

from crbot_cli.commands.common import require_llm_credentials
from crbot_core.gh.base import create_git_client
from crbot_core.providers.base import get_reviewer
from crbot_core.reviewer import ReviewOrchestrator, dispatch_webhook

console = Console()


@click.command("webhook")
@click.option(
    "--platform",
    type=click.Choice(["github", "gitlab"]),
    default="github",
    show_default=True,
    help=(
        "Git host that sent the delivery. Only github ships a client; "
        "gitlab deliveries are rejected unless a GitLab client is registered."
    ),
)
@click.option(
    "--event",
    "event_type",
    required=True,
    help="Event name from the delivery header (pull_request or push).",
)
@click.argument("payload", type=click.File("r"))
@click.pass_context
def webhook_cmd(ctx, platform: str, event_type: str, payload):
    """Review the change described by a webhook PAYLOAD file (- for stdin).

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when model is anthropic
      OPENAI_API_KEY       Required when model is openai
    """
    settings = ctx.obj["settings"]

    if not settings.get("github_token"):
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    require_llm_credentials(settings)

    try:
        data = json.load(payload)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"payload is not valid JSON: {e}", param_hint="PAYLOAD")
    if not isinstance(data, dict):
        raise click.BadParameter("payload must be a JSON object", param_hint="PAYLOAD")

    orchestrator = ReviewOrchestrator(
        git_client_factory=lambda client_type: create_git_client(client_type, settings),
        llm_client=get_reviewer(settings),
        store=ctx.obj["store"],
        settings=settings,
    )
    message = dispatch_webhook(orchestrator, platform, event_type, data)
    console.print(f"[green]{message}[/green]")
