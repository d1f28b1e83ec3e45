"""Unified diff parsing and rendering.

Host APIs hand us one patch per file: a sequence of ``@@`` hunks without the
``---``/``+++`` file headers. Everything here is a pure function of the patch
text, so the same FileChange can be parsed as many times as needed.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from crbot_core.models import DiffLineInfo, FileChange

NO_NEWLINE_MARKER = "\\ No newline at end of file"
FILE_SEPARATOR = "\n\n==================== 文件分隔 ====================\n\n"
HUNK_SEPARATOR = "\n\n-----\n\n"

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


@dataclass
class DiffChange:
    """A single line of a hunk, with both old and new line counters resolved."""

    type: str  # "add" | "del" | "normal" | "marker"
    content: str  # raw text including the leading diff symbol
    old_line: int | None = None
    new_line: int | None = None

    @property
    def line_number(self) -> int | None:
        if self.type == "add":
            return self.new_line
        if self.type == "del":
            return self.old_line
        if self.type == "normal":
            return self.new_line if self.new_line is not None else self.old_line
        return None

    @property
    def symbol(self) -> str:
        return {"add": "+", "del": "-"}.get(self.type, " ")

    @property
    def text(self) -> str:
        """Content with the leading ``+``/``-``/space stripped."""
        if self.type == "marker":
            return self.content
        return self.content[1:] if self.content[:1] in ("+", "-", " ") else self.content


@dataclass
class Hunk:
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    changes: list[DiffChange] = field(default_factory=list)

    @property
    def header(self) -> str:
        return f"@@ -{self.old_start},{self.old_lines} +{self.new_start},{self.new_lines} @@"


def parse_hunks(patch: str | None) -> list[Hunk]:
    """Split a patch into hunks and number every line.

    Lines before the first valid ``@@`` header (including ``---``/``+++`` file
    headers) are ignored, as are lines following a malformed header.
    """
    hunks: list[Hunk] = []
    if not patch:
        return hunks

    current: Hunk | None = None
    old_line = new_line = 0

    for raw in patch.splitlines():
        if raw.startswith("@@"):
            match = _HUNK_HEADER_RE.match(raw)
            if match is None:
                current = None
                continue
            old_start, old_count, new_start, new_count = match.groups()
            current = Hunk(
                old_start=int(old_start),
                old_lines=int(old_count) if old_count is not None else 1,
                new_start=int(new_start),
                new_lines=int(new_count) if new_count is not None else 1,
            )
            hunks.append(current)
            old_line, new_line = current.old_start, current.new_start
            continue

        if current is None:
            continue

        if raw.strip() == NO_NEWLINE_MARKER:
            current.changes.append(DiffChange(type="marker", content=raw.strip()))
        elif raw.startswith("+"):
            current.changes.append(DiffChange(type="add", content=raw, new_line=new_line))
            new_line += 1
        elif raw.startswith("-"):
            current.changes.append(DiffChange(type="del", content=raw, old_line=old_line))
            old_line += 1
        else:
            # Context line. Some hosts strip the trailing space of blank
            # context lines, so an empty string still counts as context as
            # long as the hunk header says lines remain.
            if old_line >= current.old_start + current.old_lines and new_line >= current.new_start + current.new_lines:
                continue
            current.changes.append(DiffChange(type="normal", content=raw, old_line=old_line, new_line=new_line))
            old_line += 1
            new_line += 1

    return hunks


def parse_diff_lines(file_change: FileChange) -> list[DiffLineInfo]:
    """Flatten a file's patch into addressable line records in patch order."""
    lines: list[DiffLineInfo] = []
    for hunk in parse_hunks(file_change.patch):
        for change in hunk.changes:
            if change.type == "marker":
                lines.append(
                    DiffLineInfo(
                        line_number=0,
                        is_addition=False,
                        is_deletion=False,
                        content=f"\n{change.text}",
                        file_path=file_change.filename,
                    )
                )
                continue
            lines.append(
                DiffLineInfo(
                    line_number=change.line_number or 0,
                    is_addition=change.type == "add",
                    is_deletion=change.type == "del",
                    content=change.text,
                    file_path=file_change.filename,
                )
            )
    return lines


def _render_change(change: DiffChange) -> str:
    if change.type == "marker":
        return f"\n{change.text}"
    return f"{change.symbol} ({change.line_number}) {change.text}"


def _render_file(change: FileChange) -> str | None:
    hunks = parse_hunks(change.patch)
    if not hunks:
        return None
    body = HUNK_SEPARATOR.join(
        hunk.header + "\n" + "\n".join(_render_change(c) for c in hunk.changes) for hunk in hunks
    )
    return f"文件: {change.filename}\n{body}"


def format_diffs(
    changes: Iterable[FileChange],
    mode: str = "ai-friendly",
    include_deleted_files: bool = False,
) -> str:
    """Render file changes into one text blob for the model.

    ``raw`` sends each patch verbatim and is the cheaper option in tokens.
    ``ai-friendly`` inlines the new-file line number on every line so the
    model can point its inline comments at real lines.
    """
    if mode == "raw":
        return FILE_SEPARATOR.join(f"文件: {c.filename}\n{c.patch or ''}" for c in changes)
    if mode != "ai-friendly":
        raise ValueError(f"Unknown diff format mode: {mode!r}. Choose 'raw' or 'ai-friendly'.")

    rendered = []
    for change in changes:
        if not change.patch:
            continue
        if change.status == "removed" and not include_deleted_files:
            continue
        text = _render_file(change)
        if text is not None:
            rendered.append(text)
    return FILE_SEPARATOR.join(rendered)
