"""Git host client interface and registry.

The orchestrator only talks to a ``GitClient``; concrete hosts live in their
own modules and register under a type tag so the webhook layer can pick one
from the delivery it received.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Callable, Optional, Protocol

from crbot_core.models import FileChange, ParsedWebhookData, PullRequestInfo, PushInfo


class GitClientType:
    GITHUB = "github"
    GITLAB = "gitlab"


class GitClient(Protocol):
    def get_pull_request_info(self, owner: str, repo: str, number: int) -> PullRequestInfo: ...

    def get_push_info(self, owner: str, repo: str, commit_sha: str, branch: Optional[str] = None) -> PushInfo: ...

    def get_commit_files(self, owner: str, repo: str, commit_sha: str | Sequence[str]) -> list[FileChange]: ...

    def get_content_as_text(self, owner: str, repo: str, path: str, ref: Optional[str] = None) -> Optional[str]: ...

    def create_pull_request_comment(self, owner: str, repo: str, number: int, body: str) -> bool: ...

    def create_pull_request_line_comments(
        self, owner: str, repo: str, number: int, comments: list[dict]
    ) -> bool: ...

    def create_commit_comment(self, owner: str, repo: str, commit_sha: str, body: str) -> bool: ...

    def parse_webhook_data(self, payload: dict[str, Any], event_type: str) -> Optional[ParsedWebhookData]: ...


_REGISTRY: dict[str, Callable[[dict], GitClient]] = {}


def register_git_client(client_type: str, factory: Callable[[dict], GitClient]) -> None:
    _REGISTRY[client_type] = factory


def create_git_client(client_type: str, settings: dict) -> GitClient:
    """Instantiate the client registered for ``client_type``."""
    if client_type == GitClientType.GITHUB and client_type not in _REGISTRY:
        # Imported lazily so PyGithub is only loaded when GitHub is used.
        from crbot_core.gh.github import GitHubClient

        register_git_client(GitClientType.GITHUB, GitHubClient.from_settings)

    factory = _REGISTRY.get(client_type)
    if factory is None:
        raise ValueError(f"No Git client registered for {client_type!r}.")
    return factory(settings)


def merge_file_changes(files: Iterable[FileChange]) -> list[FileChange]:
    """Collapse repeated entries for the same file across several commits.

    Counts are summed; the patch and status of the latest entry win.
    """
    merged: dict[str, FileChange] = {}
    for f in files:
        existing = merged.get(f.filename)
        if existing is None:
            merged[f.filename] = FileChange(
                filename=f.filename,
                status=f.status,
                additions=f.additions,
                deletions=f.deletions,
                changes=f.changes,
                patch=f.patch,
            )
            continue
        existing.additions += f.additions
        existing.deletions += f.deletions
        existing.changes += f.changes
        existing.patch = f.patch
        existing.status = f.status
    return list(merged.values())
