"""Prompt construction for whole-changeset reviews and daily reports.

The review prompt has three parts: a reviewer persona (system), the mode
specific body with references, commit messages and diff (user), and the
output contract (appended to the user prompt). The output contract is what
``BaseReviewer._parse_review`` relies on, so both sides change together.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

SYSTEM_PROMPT = """You are a senior code reviewer for a software team.
You review a whole changeset at once: every file, every hunk.
Each diff line is rendered as `<symbol> (<line number>) <content>`, where the
line number is the line in the new file for added and unchanged lines, and
the line in the old file for removed lines.
Only comment on what the change introduces. Be concise and actionable."""

OUTPUT_EXAMPLE = {
    "overview": "Summary of what the change implements",
    "detailComment": "Detailed review result, markdown allowed",
    "lineComments": [
        {"file": "path/to/file", "line": 1, "comment": "Specific comment, markdown allowed"},
    ],
    "notification": "",
}

_NOTIFICATION_TEMPLATE = """
  Status: {{ status }}  ✅ mergeable, 🔍 needs checking, 💥 serious problem
  1. 2 naming issues, consider renaming the variables
  2. 1 serious defect"""

_LANGUAGE_NAMES = {"zh": "Chinese", "en": "English"}

_STRICT_FOCUS = """Review the following changes strictly for:
1. Code quality and conventions
2. Potential security issues
3. Potential performance problems (endless loops, leaks, bottlenecks)
4. Performance optimisation opportunities
5. Maintainability and readability
6. Best practices"""

_LIGHT_FOCUS = """Review the following changes, focusing only on:
1. Bugs and obvious logic errors
2. Security issues
Skip style preferences and minor naming issues."""


def _references_section(references: Sequence[str]) -> str:
    if not references:
        return ""
    items = "\n".join(f"- {r}" for r in references)
    return f"\n## References\n{items}\n"


def build_outro(language: str, max_review_length: int) -> str:
    lang = _LANGUAGE_NAMES.get(language, language)
    return f"""
Important constraints:
1. Write every text field in {lang}.
2. Respond with JSON only, strictly following this example: {json.dumps(OUTPUT_EXAMPLE, ensure_ascii=False)}
3. "overview" summarises what the change implements, without review opinions. Leave it empty when the change has no business meaning.
4. "lineComments" holds only issues that must be fixed. Each entry has exactly "file", "line" and "comment". Use the new-file line number shown in parentheses. If the line comments cover everything, "detailComment" may be empty.
5. Prefer line comments to locate problems; use "detailComment" (markdown, at most {max_review_length} characters) for the summary and anything that does not belong to one line.
6. References support the review. If a previous review result is present, check whether its findings were addressed.
7. "notification" is plain text for chat notifications, following this template:{_NOTIFICATION_TEMPLATE}
8. Use emoji sparingly: 🐛 bug, 💥 serious problem, 🎯 improvement, 🔍 needs a closer look."""


def build_review_prompt(
    diff: str,
    commit_messages: str,
    references: Sequence[str],
    language: str = "zh",
    mode: str = "strict",
    max_review_length: int = 2000,
) -> tuple[str, str]:
    """Return ``(system_prompt, user_prompt)`` for one review call."""
    focus = _LIGHT_FOCUS if mode == "light" else _STRICT_FOCUS
    user = f"""{focus}
{_references_section(references)}
## Commit messages
{commit_messages}

## Changes
```
{diff}
```
{build_outro(language, max_review_length)}"""
    return SYSTEM_PROMPT, user


REPORT_SYSTEM_PROMPT = (
    "You are a project report generator. Write a concise daily report based on the review records provided."
)


def build_report_prompt(rows: Sequence[dict]) -> str:
    return f"""Write a daily report from the following review records:

{json.dumps(list(rows), indent=2, ensure_ascii=False)}

Include:
1. An overview of today's changes
2. Main features developed
3. Code quality observations
4. Contributions per developer
5. Issues that need attention

Keep it short and suitable for sharing with the team."""
