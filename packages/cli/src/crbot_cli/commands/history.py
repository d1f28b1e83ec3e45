"""history command — display stored pull request reviews."""

from __future__ import annotations

from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from crbot_cli.commands.common import require_store
from crbot_store.models import ReviewQuery

console = Console()


def format_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M") if ms else ""


@click.command("history")
@click.option("--project", required=True, help="Project name (owner/name).")
@click.option("--author", default=None, help="Only show pull requests by this author.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of pull requests to show.")
@click.pass_context
def history_cmd(ctx, project: str, author: str | None, limit: int):
    """Show the reviewed pull requests of a project, newest first."""
    store = require_store(ctx)

    query = ReviewQuery(project_names=[project], authors=[author] if author else [])
    reviews = store.list_merge_request_reviews(query)[:limit]
    if not reviews:
        console.print("[yellow]No review records found.[/yellow]")
        return

    table = Table(title=f"Review History — {project}", show_header=True, header_style="bold cyan")
    table.add_column("Pull request", max_width=50)
    table.add_column("Author")
    table.add_column("Branch", max_width=30)
    table.add_column("Passes", justify="right")
    table.add_column("Last commit", width=8)
    table.add_column("+/-", justify="right")
    table.add_column("Updated", width=16)

    for r in reviews:
        table.add_row(
            r.url,
            r.author,
            f"{r.source_branch} → {r.target_branch}",
            str(len(r.review_records)),
            (r.last_commit_id or "")[:7],
            f"[green]+{r.additions}[/green] [red]-{r.deletions}[/red]",
            format_ms(r.updated_at),
        )

    console.print(table)
