"""report command — LLM-written daily report over stored reviews."""

from __future__ import annotations

from datetime import datetime, time
from pathlib import Path

import click
from rich.console import Console
from rich.markdown import Markdown

from crbot_cli.commands.common import require_llm_credentials, require_store
from crbot_store.models import ReviewQuery

console = Console()

REPORT_TITLE = "代码提交日报"


def _to_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def _parse_iso(ctx, param, value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"expected an ISO date or datetime, got {value!r}")


def collect_report_rows(store, since_ms: int, until_ms: int, push_review_enabled: bool) -> list[dict]:
    """Rows for the report prompt: one per distinct (author, commit messages), sorted by author."""
    query = ReviewQuery(updated_at_gte=since_ms, updated_at_lte=until_ms)
    if push_review_enabled:
        rows = [
            {
                "author": p.author,
                "project_name": p.project_name,
                "branch": p.branch,
                "commit_messages": p.commit_messages,
                "review_result": p.review_result,
            }
            for p in store.list_push_reviews(query)
        ]
    else:
        rows = [
            {
                "author": r.author,
                "project_name": r.project_name,
                "branch": f"{r.source_branch} -> {r.target_branch}",
                "commit_messages": "; ".join(c.message for c in r.commits),
                "review_result": r.review_records[-1].llm_result if r.review_records else "",
            }
            for r in store.list_merge_request_reviews(query)
        ]

    seen: set[tuple[str, str]] = set()
    unique = []
    for row in rows:
        key = (row["author"], row["commit_messages"])
        if key in seen:
            continue
        seen.add(key)
        unique.append(row)
    return sorted(unique, key=lambda row: row["author"])


@click.command("report")
@click.option("--since", callback=_parse_iso, default=None, help="Start of the window (ISO). Default: today 00:00.")
@click.option("--until", callback=_parse_iso, default=None, help="End of the window (ISO). Default: today 23:59:59.")
@click.option("--notify", is_flag=True, help="Also send the report to the channels of a project config.")
@click.option(
    "--project-config",
    "project_config_path",
    default=".codereview.yml",
    show_default=True,
    help="Project config whose integrations receive the report (with --notify).",
)
@click.pass_context
def report_cmd(ctx, since: datetime | None, until: datetime | None, notify: bool, project_config_path: str):
    """Summarise the reviews stored in a time window as a daily report.

    Uses push reviews when push review is enabled, pull request reviews
    otherwise.
    """
    from crbot_core.providers.base import get_reviewer

    settings = ctx.obj["settings"]
    store = require_store(ctx)
    require_llm_credentials(settings)

    today = datetime.now().date()
    since = since or datetime.combine(today, time.min)
    until = until or datetime.combine(today, time(23, 59, 59))

    rows = collect_report_rows(store, _to_ms(since), _to_ms(until), settings.get("push_review_enabled", False))
    if not rows:
        console.print("[yellow]No data to process for report.[/yellow]")
        return

    report = get_reviewer(settings).generate_report(rows)
    console.print(Markdown(report))

    if notify:
        from crbot_core.config import parse_project_config
        from crbot_core.integrations.base import NotificationMessage
        from crbot_core.integrations.service import send_notification

        path = Path(project_config_path)
        if not path.exists():
            raise click.UsageError(f"{project_config_path} not found; it is needed to know where to send the report.")
        config = parse_project_config(path.read_text())
        outcome = send_notification(
            NotificationMessage(content=report, title=REPORT_TITLE, msg_type="markdown"),
            config["integrations"],
            settings,
        )
        for channel, ok in outcome.items():
            style = "green" if ok else "red"
            console.print(f"[{style}]{channel}: {'sent' if ok else 'failed'}[/{style}]")
