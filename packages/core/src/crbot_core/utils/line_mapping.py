"""Reconcile model-proposed comment lines with the lines a host will accept.

Host comment APIs reject inline comments on lines that are not part of the
diff's new side. The model is usually right, sometimes off by a few lines,
and occasionally points at a deleted or untouched line. The functions here
try, in order:

  1. an exact match on the parsed diff
  2. a content match: the first added line mentioning a keyword of the comment
  3. the nearest added line within ``max_distance``

Comments that still cannot be placed are dropped rather than failing the
whole review.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from crbot_core.models import CorrectedLineComment, FileChange, LineComment, LineMappingResult
from crbot_core.utils.diff import parse_diff_lines

logger = logging.getLogger(__name__)

DEFAULT_MAX_DISTANCE = 5
DEFAULT_MAX_KEYWORDS = 3
DEFAULT_STOP_WORDS = frozenset({"the", "and", "or", "but", "for", "with", "this", "that"})

_PUNCTUATION_RE = re.compile(r"[^\w\s]", re.ASCII)


@dataclass(frozen=True)
class LineMatchingOptions:
    enable_smart_matching: bool = True
    enable_content_matching: bool = True
    max_distance: int = DEFAULT_MAX_DISTANCE
    max_keywords: int = DEFAULT_MAX_KEYWORDS
    stop_words: frozenset[str] = field(default=DEFAULT_STOP_WORDS)

    @classmethod
    def from_settings(cls, settings: dict | None) -> LineMatchingOptions:
        """Build options from the ``line_matching`` section of the bot settings."""
        section = (settings or {}).get("line_matching") or {}
        return cls(
            enable_smart_matching=section.get("enable_smart_matching", True),
            enable_content_matching=section.get("enable_content_matching", True),
            max_distance=section.get("max_distance", DEFAULT_MAX_DISTANCE),
            max_keywords=section.get("max_keywords", DEFAULT_MAX_KEYWORDS),
        )


def _invalid(line: int) -> LineMappingResult:
    return LineMappingResult(original_line=line, actual_line=line, is_valid=False)


def map_diff_line_to_actual_line(file_change: FileChange, diff_line_number: int) -> LineMappingResult:
    if diff_line_number <= 0:
        # Annotation lines carry 0 and are never addressable.
        return _invalid(diff_line_number)
    target = next((ln for ln in parse_diff_lines(file_change) if ln.line_number == diff_line_number), None)
    if target is None or target.is_deletion:
        return _invalid(diff_line_number)
    # Additions are exact; context lines are accepted on a best-effort basis.
    return LineMappingResult(original_line=diff_line_number, actual_line=diff_line_number, is_valid=True)


def find_nearest_valid_line(
    file_change: FileChange,
    target_line: int,
    max_distance: int = DEFAULT_MAX_DISTANCE,
) -> LineMappingResult:
    additions = [ln for ln in parse_diff_lines(file_change) if ln.is_addition]
    if not additions:
        return _invalid(target_line)

    # min() keeps the first candidate on ties, i.e. the earliest in patch order.
    nearest = min(additions, key=lambda ln: abs(ln.line_number - target_line))
    if abs(nearest.line_number - target_line) <= max_distance:
        return LineMappingResult(original_line=target_line, actual_line=nearest.line_number, is_valid=True)
    return _invalid(target_line)


def extract_keywords(
    comment: str,
    max_keywords: int = DEFAULT_MAX_KEYWORDS,
    stop_words: Iterable[str] = DEFAULT_STOP_WORDS,
) -> list[str]:
    stop = set(stop_words)
    words = _PUNCTUATION_RE.sub(" ", comment.lower()).split()
    return [w for w in words if len(w) > 2 and w not in stop][:max_keywords]


def find_line_by_content(
    file_change: FileChange,
    comment: str,
    target_line: int,
    options: LineMatchingOptions | None = None,
) -> LineMappingResult:
    options = options or LineMatchingOptions()
    keywords = extract_keywords(comment, options.max_keywords, options.stop_words)

    if keywords:
        for line in parse_diff_lines(file_change):
            if not line.is_addition:
                continue
            content = line.content.lower()
            if any(k in content for k in keywords):
                return LineMappingResult(original_line=target_line, actual_line=line.line_number, is_valid=True)

    return find_nearest_valid_line(file_change, target_line, options.max_distance)


def validate_and_correct_line_numbers(
    line_comments: Iterable[LineComment],
    file_changes: Iterable[FileChange],
    options: LineMatchingOptions | None = None,
) -> list[CorrectedLineComment]:
    """Return only the comments that can be placed on an addressable line."""
    options = options or LineMatchingOptions()
    by_name: dict[str, FileChange] = {}
    for fc in file_changes:
        by_name.setdefault(fc.filename, fc)

    results: list[CorrectedLineComment] = []
    for comment in line_comments:
        file_change = by_name.get(comment.file)
        if file_change is None:
            logger.debug("Dropping comment for %s:%d (file not in diff)", comment.file, comment.line)
            continue

        mapping = map_diff_line_to_actual_line(file_change, comment.line)
        if not mapping.is_valid and options.enable_smart_matching:
            if options.enable_content_matching:
                mapping = find_line_by_content(file_change, comment.comment, comment.line, options)
            if not mapping.is_valid:
                mapping = find_nearest_valid_line(file_change, comment.line, options.max_distance)

        if not mapping.is_valid:
            logger.debug("Dropping comment for %s:%d (no addressable line)", comment.file, comment.line)
            continue

        results.append(
            CorrectedLineComment(
                file=comment.file,
                line=mapping.actual_line,
                comment=comment.comment,
                is_valid=True,
                corrected=mapping.actual_line != comment.line,
            )
        )
    return results
