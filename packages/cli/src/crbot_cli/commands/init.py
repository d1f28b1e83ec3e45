"""init command — write a starter .codereview.yml for a repository."""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from rich.console import Console

console = Console()

CONFIG_FILE = ".codereview.yml"


def build_starter_config(language: str, mode: str, branches: list[str], channel: str | None, webhook: str | None) -> dict:
    from crbot_core.config import DEFAULT_PROJECT_CONFIG

    config = {
        "version": DEFAULT_PROJECT_CONFIG["version"],
        "review": {**DEFAULT_PROJECT_CONFIG["review"], "language": language, "mode": mode},
        "files": {key: list(value) for key, value in DEFAULT_PROJECT_CONFIG["files"].items()},
        "trigger": {
            "events": list(DEFAULT_PROJECT_CONFIG["trigger"]["events"]),
            "branches": branches,
            "include_draft": False,
            "ignore_rules": {
                key: list(value) for key, value in DEFAULT_PROJECT_CONFIG["trigger"]["ignore_rules"].items()
            },
        },
        "references": [],
    }
    if channel:
        entry: dict = {"enabled": True}
        if webhook:
            entry["notification"] = {"webhook_url": webhook}
        config["integrations"] = {channel: entry}
    return config


@click.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing .codereview.yml.")
def init_cmd(force: bool):
    """Create a .codereview.yml with the default review rules.

    Commit the file to the repository; the bot reads it at the ref of every
    event, so each branch can tune its own rules.
    """
    console.print("\n[bold cyan]crbot init[/bold cyan] — project review setup\n")

    path = Path(CONFIG_FILE)
    if path.exists() and not force:
        raise click.UsageError(f"{CONFIG_FILE} already exists. Use --force to overwrite it.")

    language = click.prompt("Review language", type=click.Choice(["zh", "en"]), default="zh")
    mode = click.prompt("Review mode", type=click.Choice(["strict", "light"]), default="strict")
    branches = click.prompt("Branches to review (comma separated)", default="master,develop,main")

    console.print("\nNotification channel:")
    console.print("  [bold]none[/bold]      — no notifications (default)")
    console.print("  [bold]dingtalk[/bold], [bold]feishu[/bold], [bold]wecom[/bold] — chat robot webhook")
    console.print("  [bold]pingcode[/bold]  — comment on the work item named in the PR title")
    channel = click.prompt(
        "Channel",
        type=click.Choice(["none", "dingtalk", "feishu", "wecom", "pingcode"]),
        default="none",
    )
    webhook = None
    if channel in ("dingtalk", "feishu", "wecom"):
        webhook = click.prompt("Robot webhook URL")

    config = build_starter_config(
        language,
        mode,
        [b.strip() for b in branches.split(",") if b.strip()],
        None if channel == "none" else channel,
        webhook,
    )
    path.write_text(yaml.safe_dump(config, default_flow_style=False, sort_keys=False, allow_unicode=True))
    console.print(f"[green]Created {CONFIG_FILE}[/green]")
    if channel == "pingcode":
        console.print(
            "[yellow]Remember to set [bold]PINGCODE_CLIENT_ID[/bold] and [bold]PINGCODE_CLIENT_SECRET[/bold] "
            "where the bot runs.[/yellow]"
        )
    console.print("\n[bold green]Setup complete![/bold green]")
