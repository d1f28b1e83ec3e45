"""Decide whether an event gets reviewed, and which files are in scope."""

from __future__ import annotations

import fnmatch
import logging
import posixpath
import re
from collections.abc import Iterable, Sequence
from typing import Optional, TypeVar

from crbot_core.models import FileChange

logger = logging.getLogger(__name__)

_F = TypeVar("_F", bound=FileChange)

_BRACE_RE = re.compile(r"\{([^{}]*)\}")


def should_trigger_review(
    trigger: dict,
    event_type: str,
    branch_name: str,
    title: Optional[str] = None,
    is_draft: Optional[bool] = None,
) -> bool:
    """Apply the project's trigger rules to one event.

    Checks run in a fixed order and the first failing rule wins: event type,
    branch allow-list, draft/title rules (pull requests only), then branch
    ignore patterns.
    """
    if event_type not in (trigger.get("events") or []):
        return False

    branches = trigger.get("branches") or []
    branch = branch_name or ""
    if branches and branch.lower() not in {b.lower() for b in branches}:
        return False

    ignore_rules = trigger.get("ignore_rules") or {}

    if event_type == "pull_request":
        if is_draft and not trigger.get("include_draft", False):
            return False
        if title:
            lowered = title.lower()
            if any(rule.lower() in lowered for rule in ignore_rules.get("title_contains") or []):
                return False

    for rule in ignore_rules.get("branch_matches") or []:
        if "*" in rule:
            pattern = "^" + rule.replace("*", ".*") + "$"
            if re.match(pattern, branch):
                return False
        elif branch == rule:
            return False

    return True


def _expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives into separate glob patterns."""
    match = _BRACE_RE.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded = []
    for option in match.group(1).split(","):
        expanded.extend(_expand_braces(head + option + tail))
    return expanded


def _match_segments(parts: list[str], pattern_parts: list[str]) -> bool:
    """Match path segments; only a ``**`` segment may span directories."""
    if not pattern_parts:
        return not parts
    head, rest = pattern_parts[0], pattern_parts[1:]
    if head == "**":
        return any(_match_segments(parts[i:], rest) for i in range(len(parts) + 1))
    if not parts:
        return False
    return fnmatch.fnmatchcase(parts[0], head) and _match_segments(parts[1:], rest)


def glob_match(filename: str, pattern: str) -> bool:
    """Shell-style match of a repository path against one glob.

    ``*``, ``?`` and ``[...]`` stay within one path segment; ``**`` matches
    any number of directories and ``{a,b}`` expands to alternatives.
    """
    parts = filename.split("/")
    return any(_match_segments(parts, expanded.split("/")) for expanded in _expand_braces(pattern))


def _extension(filename: str) -> str:
    return posixpath.splitext(filename)[1].lower()


def filter_reviewable_files(files: Iterable[_F], files_config: dict) -> list[_F]:
    extensions = {e.lower() for e in files_config.get("extensions") or []}
    include = files_config.get("include") or []
    exclude = files_config.get("exclude") or []

    kept = []
    for f in files or []:
        if extensions and _extension(f.filename) not in extensions:
            continue
        if include and not any(glob_match(f.filename, p) for p in include):
            continue
        if exclude and any(glob_match(f.filename, p) for p in exclude):
            continue
        kept.append(f)
    return kept


def check_review_limits(files: Sequence[FileChange], review_config: dict) -> bool:
    """Return True when the changeset is too large to review."""
    max_files = review_config.get("max_files")
    if max_files is not None and len(files) > max_files:
        logger.warning("File count (%d) exceeds limit (%d)", len(files), max_files)
        return True

    max_content = review_config.get("max_content_length")
    total = sum(len(f.patch or "") for f in files)
    if max_content is not None and total > max_content:
        logger.warning("Diff size (%d chars) exceeds limit (%d)", total, max_content)
        return True
    return False


def should_skip_review(
    config: dict,
    event_type: str,
    branch_name: str,
    files: Sequence[FileChange],
    title: Optional[str] = None,
    is_draft: Optional[bool] = None,
) -> bool:
    if not files:
        logger.info("No supported file changes found, skipping review")
        return True
    if check_review_limits(files, config.get("review") or {}):
        logger.warning("File count or size exceeds limit, skipping review")
        return True
    if not should_trigger_review(config.get("trigger") or {}, event_type, branch_name, title, is_draft):
        logger.info("Review trigger check failed, skipping review")
        return True
    return False


def slugify_url(url: str) -> str:
    """Turn a PR URL into a stable identifier: ``github_com_org_repo_pull_5``."""
    slug = re.sub(r"^https?://", "", url or "")
    slug = re.sub(r"[^a-zA-Z0-9]", "_", slug)
    slug = re.sub(r"_+", "_", slug)
    return slug.strip("_")


def calculate_additions(files: Iterable[FileChange]) -> int:
    return sum(f.additions for f in files)


def calculate_deletions(files: Iterable[FileChange]) -> int:
    return sum(f.deletions for f in files)
