"""Data shapes shared by the review pipeline.

These are the values that flow between the Git host client, the diff
utilities, the LLM providers and the orchestrator. None of them know about
persistence; the store package has its own models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

FILE_STATUSES = ("added", "modified", "removed", "renamed")


@dataclass
class FileChange:
    """One file's diff inside a changeset."""

    filename: str
    status: str = "modified"  # "added" | "modified" | "removed" | "renamed"
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str = ""  # empty for binary or oversized files


@dataclass
class CommitInfo:
    id: str
    message: str = ""
    author: str = "unknown"
    timestamp: str = ""


@dataclass
class PullRequestInfo:
    number: int
    title: str
    author: str
    url: str
    source_branch: str
    target_branch: str
    files: list[FileChange] = field(default_factory=list)
    commits: list[CommitInfo] = field(default_factory=list)
    is_draft: bool = False
    webhook_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class PushInfo:
    author: str
    branch: str
    url: str
    files: list[FileChange] = field(default_factory=list)
    commits: list[CommitInfo] = field(default_factory=list)
    webhook_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ParsedWebhookData:
    """Normalised view of a webhook delivery, independent of the Git host."""

    client_type: str  # "github" | "gitlab"
    event_type: str  # "pull_request" | "push"
    owner: str
    repo: str
    project_name: str
    author: str = ""
    url: str = ""
    pull_number: int | None = None
    source_branch: str | None = None
    target_branch: str | None = None
    branch_name: str | None = None
    state: str | None = None
    action: str | None = None
    commits: list[CommitInfo] = field(default_factory=list)
    webhook_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class LineComment:
    """An inline comment as proposed by the model (file + new-file line)."""

    file: str
    line: int
    comment: str


@dataclass
class CorrectedLineComment(LineComment):
    """A line comment whose target has been reconciled against the diff."""

    is_valid: bool = True
    corrected: bool = False


@dataclass
class ReviewResult:
    """Structured output of a single LLM review pass."""

    overview: str = ""
    detail_comment: str = ""
    line_comments: list[LineComment] = field(default_factory=list)
    notification: str = ""


@dataclass
class DiffLineInfo:
    """One physical line inside a parsed patch.

    ``line_number`` is the new-file number for additions and context lines
    and the old-file number for deletions. Annotation lines such as
    ``\\ No newline at end of file`` carry ``line_number == 0`` and are neither
    additions nor deletions.
    """

    line_number: int
    is_addition: bool
    is_deletion: bool
    content: str
    file_path: str


@dataclass
class LineMappingResult:
    original_line: int
    actual_line: int
    is_valid: bool
