"""Normalise GitHub webhook payloads into ParsedWebhookData."""

from __future__ import annotations

from typing import Any, Optional

from crbot_core.models import CommitInfo, ParsedWebhookData

# PR actions that should produce a review. Payloads without an action
# (e.g. replayed deliveries) fall back to the PR state.
REVIEWABLE_PR_ACTIONS = frozenset({"opened", "reopened", "synchronize", "ready_for_review"})


def _parse_pull_request(payload: dict[str, Any]) -> ParsedWebhookData:
    pr = payload.get("pull_request") or {}
    repository = payload.get("repository") or {}
    return ParsedWebhookData(
        client_type="github",
        event_type="pull_request",
        owner=(repository.get("owner") or {}).get("login", ""),
        repo=repository.get("name", ""),
        project_name=repository.get("full_name", ""),
        author=(pr.get("user") or {}).get("login", ""),
        url=pr.get("html_url", ""),
        pull_number=pr.get("number"),
        source_branch=(pr.get("head") or {}).get("ref"),
        target_branch=(pr.get("base") or {}).get("ref"),
        state=pr.get("state"),
        action=payload.get("action"),
        webhook_data=payload,
    )


def _push_author(payload: dict[str, Any], commits: list[dict]) -> str:
    pusher = (payload.get("pusher") or {}).get("name")
    if pusher:
        return pusher
    if commits:
        return (commits[0].get("author") or {}).get("name") or "unknown"
    return "unknown"


def _parse_push(payload: dict[str, Any]) -> ParsedWebhookData:
    repository = payload.get("repository") or {}
    commits = payload.get("commits") or []
    ref = payload.get("ref") or ""
    return ParsedWebhookData(
        client_type="github",
        event_type="push",
        owner=(repository.get("owner") or {}).get("login", ""),
        repo=repository.get("name", ""),
        project_name=repository.get("full_name", ""),
        author=_push_author(payload, commits),
        url=repository.get("html_url", ""),
        branch_name=ref.removeprefix("refs/heads/"),
        commits=[
            CommitInfo(
                id=c.get("id", ""),
                message=c.get("message", ""),
                author=(c.get("author") or {}).get("name") or "unknown",
                timestamp=c.get("timestamp", ""),
            )
            for c in commits
        ],
        webhook_data=payload,
    )


def parse_github_webhook(payload: dict[str, Any], event_type: str) -> Optional[ParsedWebhookData]:
    """Return the parsed delivery, or None for events the bot does not handle."""
    if event_type == "pull_request":
        return _parse_pull_request(payload)
    if event_type == "push":
        return _parse_push(payload)
    return None


def is_reviewable_pull_request(parsed: ParsedWebhookData) -> bool:
    if parsed.action:
        return parsed.action in REVIEWABLE_PR_ACTIONS
    return parsed.state == "open"
