"""GitHub implementation of the Git host client, backed by PyGithub."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Optional

from github import Auth, Github, GithubException, UnknownObjectException

from crbot_core.gh.base import merge_file_changes
from crbot_core.gh.webhook import parse_github_webhook
from crbot_core.models import CommitInfo, FILE_STATUSES, FileChange, ParsedWebhookData, PullRequestInfo, PushInfo

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


def _to_file_change(f) -> FileChange:
    status = f.status if f.status in FILE_STATUSES else "modified"
    return FileChange(
        filename=f.filename,
        status=status,
        additions=f.additions or 0,
        deletions=f.deletions or 0,
        changes=f.changes or 0,
        patch=f.patch or "",
    )


def _to_commit_info(c) -> CommitInfo:
    git_author = c.commit.author
    login = c.author.login if c.author is not None else None
    return CommitInfo(
        id=c.sha,
        message=c.commit.message or "",
        author=(git_author.name if git_author is not None else None) or login or "unknown",
        timestamp=git_author.date.isoformat() if git_author is not None and git_author.date else "",
    )


class GitHubClient:
    """GitClient over the GitHub REST API.

    Read helpers that only enrich a review (files, commits, contents) degrade
    to empty results on API errors; the PR lookup itself raises so the
    orchestrator aborts the event.
    """

    def __init__(self, token: str, base_url: Optional[str] = None, gh: Optional[Github] = None):
        self._gh = gh if gh is not None else Github(auth=Auth.Token(token), base_url=base_url or DEFAULT_API_URL)

    @classmethod
    def from_settings(cls, settings: dict) -> GitHubClient:
        token = settings.get("github_token")
        if not token:
            raise ValueError("GitHubClient requires a GitHub token (set GITHUB_TOKEN).")
        return cls(token=token, base_url=settings.get("github_url"))

    def _repo(self, owner: str, repo: str):
        return self._gh.get_repo(f"{owner}/{repo}")

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    def get_pull_request_info(self, owner: str, repo: str, number: int) -> PullRequestInfo:
        pr = self._repo(owner, repo).get_pull(number)

        try:
            files = [_to_file_change(f) for f in pr.get_files()]
        except GithubException as e:
            logger.error("Failed to get files of %s/%s#%d: %s", owner, repo, number, e)
            files = []
        try:
            commits = [_to_commit_info(c) for c in pr.get_commits()]
        except GithubException as e:
            logger.error("Failed to get commits of %s/%s#%d: %s", owner, repo, number, e)
            commits = []

        return PullRequestInfo(
            number=pr.number,
            title=pr.title or "",
            author=pr.user.login if pr.user is not None else "",
            url=pr.html_url,
            source_branch=pr.head.ref,
            target_branch=pr.base.ref,
            files=files,
            commits=commits,
            is_draft=bool(pr.draft),
            webhook_data=pr.raw_data,
        )

    def get_push_info(self, owner: str, repo: str, commit_sha: str, branch: Optional[str] = None) -> PushInfo:
        commit = self._repo(owner, repo).get_commit(commit_sha)
        return PushInfo(
            author=commit.author.login if commit.author is not None else _to_commit_info(commit).author,
            branch=branch or "unknown",
            url=commit.html_url,
            files=[_to_file_change(f) for f in commit.files],
            commits=[_to_commit_info(commit)],
            webhook_data=commit.raw_data,
        )

    def get_commit_files(self, owner: str, repo: str, commit_sha: str | Sequence[str]) -> list[FileChange]:
        shas = [commit_sha] if isinstance(commit_sha, str) else list(commit_sha)
        this_repo = self._repo(owner, repo)
        files: list[FileChange] = []
        for sha in shas:
            try:
                files.extend(_to_file_change(f) for f in this_repo.get_commit(sha).files)
            except GithubException as e:
                logger.error("Failed to get files of commit %s in %s/%s: %s", sha, owner, repo, e)
        return merge_file_changes(files)

    def get_content_as_text(self, owner: str, repo: str, path: str, ref: Optional[str] = None) -> Optional[str]:
        try:
            kwargs = {"ref": ref} if ref else {}
            content = self._repo(owner, repo).get_contents(path, **kwargs)
        except UnknownObjectException:
            return None
        except GithubException as e:
            logger.warning("Failed to get %s from %s/%s@%s: %s", path, owner, repo, ref, e)
            return None
        if isinstance(content, list):
            # A directory, not a file.
            return None
        return content.decoded_content.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------ #
    # Writes                                                               #
    # ------------------------------------------------------------------ #

    def create_pull_request_comment(self, owner: str, repo: str, number: int, body: str) -> bool:
        try:
            self._repo(owner, repo).get_pull(number).create_issue_comment(body)
            return True
        except GithubException as e:
            logger.error("Failed to create comment on %s/%s#%d: %s", owner, repo, number, e)
            return False

    def create_pull_request_line_comments(self, owner: str, repo: str, number: int, comments: list[dict]) -> bool:
        """Post all inline comments as a single COMMENT review."""
        if not comments:
            return True
        api_comments: list[Any] = [
            {"path": c["path"], "line": c["line"], "side": "RIGHT", "body": c["body"]} for c in comments
        ]
        try:
            pr = self._repo(owner, repo).get_pull(number)
            pr.create_review(event="COMMENT", comments=api_comments)
            return True
        except GithubException as e:
            logger.error("Failed to create line comments on %s/%s#%d: %s", owner, repo, number, e)
            return False

    def create_commit_comment(self, owner: str, repo: str, commit_sha: str, body: str) -> bool:
        try:
            self._repo(owner, repo).get_commit(commit_sha).create_comment(body)
            return True
        except GithubException as e:
            logger.error("Failed to create comment on commit %s in %s/%s: %s", commit_sha, owner, repo, e)
            return False

    def parse_webhook_data(self, payload: dict[str, Any], event_type: str) -> Optional[ParsedWebhookData]:
        return parse_github_webhook(payload, event_type)
