"""stats command — aggregate change and review statistics per author."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from crbot_cli.commands.common import require_store
from crbot_store.models import ReviewQuery

console = Console()


@click.command("stats")
@click.option("--project", required=True, help="Project name (owner/name).")
@click.option("--top", default=10, show_default=True, help="Number of authors to show.")
@click.pass_context
def stats_cmd(ctx, project: str, top: int):
    """Show lines changed and review passes per author for a project.

    Pull request passes count every stored review record, so a PR reviewed
    incrementally three times contributes three passes.
    """
    store = require_store(ctx)

    query = ReviewQuery(project_names=[project])
    reviews = store.list_merge_request_reviews(query)
    pushes = store.list_push_reviews(query)
    if not reviews and not pushes:
        console.print("[yellow]No review records found for this project.[/yellow]")
        return

    additions: Counter[str] = Counter()
    deletions: Counter[str] = Counter()
    pull_requests: Counter[str] = Counter()
    passes: Counter[str] = Counter()
    push_count: Counter[str] = Counter()

    for r in reviews:
        additions[r.author] += r.additions
        deletions[r.author] += r.deletions
        pull_requests[r.author] += 1
        passes[r.author] += len(r.review_records)
    for p in pushes:
        additions[p.author] += p.additions
        deletions[p.author] += p.deletions
        push_count[p.author] += 1

    # --- Summary ---
    console.print(f"\n[bold]Review stats for [cyan]{project}[/cyan][/bold]")
    console.print(f"  Pull requests:  {len(reviews)}")
    console.print(f"  Review passes:  {sum(passes.values())}")
    console.print(f"  Pushes:         {len(pushes)}")

    # --- Per author ---
    authors = sorted(additions, key=lambda a: additions[a] + deletions[a], reverse=True)[:top]
    table = Table(title=f"Top {top} Authors by Lines Changed", show_header=True)
    table.add_column("Author", style="bold")
    table.add_column("PRs", justify="right")
    table.add_column("Passes", justify="right")
    table.add_column("Pushes", justify="right")
    table.add_column("Additions", justify="right", style="green")
    table.add_column("Deletions", justify="right", style="red")
    for author in authors:
        table.add_row(
            author,
            str(pull_requests[author]),
            str(passes[author]),
            str(push_count[author]),
            str(additions[author]),
            str(deletions[author]),
        )
    console.print(table)
