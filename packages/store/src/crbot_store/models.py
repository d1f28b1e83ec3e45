"""Persisted review aggregates.

Standalone from crbot_core: the store layer imports nothing from it, so a
backend can be used on its own. All timestamps are epoch milliseconds.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Optional


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CommitRecord:
    id: str
    message: str = ""


@dataclass
class ReviewRecord:
    """One review pass over a pull request.

    ``llm_result`` is the inline comments joined with ``"; "``, a blank line,
    then the detail comment. The next pass feeds it back to the model.
    """

    last_commit_id: str
    created_at: int
    llm_result: str


@dataclass
class MergeRequestReview:
    """Everything known about one pull request, keyed by its URL slug."""

    identifier: str
    project_name: str
    author: str
    source_branch: str
    target_branch: str
    url: str
    webhook_data: dict[str, Any] = field(default_factory=dict)
    additions: int = 0
    deletions: int = 0
    commits: list[CommitRecord] = field(default_factory=list)
    review_records: list[ReviewRecord] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    @property
    def last_commit_id(self) -> Optional[str]:
        return self.review_records[-1].last_commit_id if self.review_records else None


@dataclass
class PushReview:
    project_name: str
    author: str
    branch: str
    commit_messages: str
    review_result: str
    url_slug: str
    webhook_data: dict[str, Any] = field(default_factory=dict)
    additions: int = 0
    deletions: int = 0
    updated_at: int = field(default_factory=now_ms)


@dataclass
class ReviewQuery:
    """Filter for list operations. Empty lists and None bounds match everything."""

    authors: list[str] = field(default_factory=list)
    project_names: list[str] = field(default_factory=list)
    updated_at_gte: Optional[int] = None
    updated_at_lte: Optional[int] = None

    def matches(self, author: str, project_name: str, updated_at: int) -> bool:
        if self.authors and author not in self.authors:
            return False
        if self.project_names and project_name not in self.project_names:
            return False
        if self.updated_at_gte is not None and updated_at < self.updated_at_gte:
            return False
        if self.updated_at_lte is not None and updated_at > self.updated_at_lte:
            return False
        return True


# ---------------------------------------------------------------------------
# Serialisation shared by the JSON-based backends
# ---------------------------------------------------------------------------


def to_dict(obj: MergeRequestReview | PushReview) -> dict:
    return asdict(obj)


def merge_request_review_from_dict(d: dict) -> MergeRequestReview:
    return MergeRequestReview(
        identifier=d["identifier"],
        project_name=d.get("project_name", ""),
        author=d.get("author", ""),
        source_branch=d.get("source_branch", ""),
        target_branch=d.get("target_branch", ""),
        url=d.get("url", ""),
        webhook_data=d.get("webhook_data") or {},
        additions=d.get("additions", 0),
        deletions=d.get("deletions", 0),
        commits=[CommitRecord(id=c.get("id", ""), message=c.get("message", "")) for c in d.get("commits") or []],
        review_records=[
            ReviewRecord(
                last_commit_id=r.get("last_commit_id", ""),
                created_at=r.get("created_at", 0),
                llm_result=r.get("llm_result", ""),
            )
            for r in d.get("review_records") or []
        ],
        created_at=d.get("created_at", 0),
        updated_at=d.get("updated_at", 0),
    )


def push_review_from_dict(d: dict) -> PushReview:
    return PushReview(
        project_name=d.get("project_name", ""),
        author=d.get("author", ""),
        branch=d.get("branch", ""),
        commit_messages=d.get("commit_messages", ""),
        review_result=d.get("review_result", ""),
        url_slug=d.get("url_slug", ""),
        webhook_data=d.get("webhook_data") or {},
        additions=d.get("additions", 0),
        deletions=d.get("deletions", 0),
        updated_at=d.get("updated_at", 0),
    )
