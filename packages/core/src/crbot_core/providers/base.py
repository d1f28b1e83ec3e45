"""Base reviewer implementing the Template Method pattern.

All providers share the same review algorithm:
    generate_review() → build_review_prompt()
                      → _call_with_retry() → _call_api()   ← only this differs per provider
                      → _parse_review()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence

from crbot_core.models import LineComment, ReviewResult
from crbot_core.providers.prompts import REPORT_SYSTEM_PROMPT, build_report_prompt, build_review_prompt

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_MAX_TOKENS = 4096


class ReviewGenerationError(RuntimeError):
    """The provider could not produce a response after all retries."""


class BaseReviewer(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    MODEL: str = ""

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def generate_review(
        self,
        diff: str,
        commit_messages: str,
        references: Sequence[str],
        config: dict,
    ) -> ReviewResult:
        """Review a formatted changeset and return the structured result.

        Raises ReviewGenerationError when the API keeps failing, so the caller
        can abort the event instead of posting an empty review.
        """
        review_config = config.get("review") or {}
        system, user = build_review_prompt(
            diff,
            commit_messages,
            references,
            language=review_config.get("language", "zh"),
            mode=review_config.get("mode", "strict"),
            max_review_length=review_config.get("max_review_length", 2000),
        )
        raw = self._call_with_retry(system, user)
        if raw is None:
            raise ReviewGenerationError(f"{self.__class__.__name__} returned no review")
        return self._parse_review(raw)

    def generate_report(self, rows: Sequence[dict]) -> str:
        raw = self._call_with_retry(REPORT_SYSTEM_PROMPT, build_report_prompt(rows))
        if raw is None:
            raise ReviewGenerationError(f"{self.__class__.__name__} returned no report")
        return raw

    # ------------------------------------------------------------------ #
    # Abstract — implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        It should raise on failure — _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str) -> str | None:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(system_prompt, user_prompt)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    return None
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        return None

    def _parse_review(self, raw: str) -> ReviewResult:
        """Parse the model's JSON object into a ReviewResult.

        Unparseable output yields an empty result rather than an exception:
        the model answered, it just did not follow the contract.
        """
        try:
            # Strip only the outer ```json ... ``` fence, not backticks inside values.
            cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip(), flags=re.IGNORECASE)
            cleaned = re.sub(r"\s*```$", "", cleaned.strip())
            parsed = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.warning("%s: failed to parse response as JSON: %s", self.__class__.__name__, raw[:200])
            return ReviewResult()

        if not isinstance(parsed, dict):
            logger.warning("%s: expected a JSON object, got %s", self.__class__.__name__, type(parsed).__name__)
            return ReviewResult()

        line_comments = []
        for c in parsed.get("lineComments") or []:
            if not isinstance(c, dict):
                continue
            file, line, text = c.get("file"), c.get("line"), c.get("comment")
            # bool is an int subclass; a line of `true` is not a line number.
            if not file or not text or not isinstance(line, int) or isinstance(line, bool):
                continue
            line_comments.append(LineComment(file=file, line=line, comment=text))

        def _text(key: str) -> str:
            value = parsed.get(key)
            return value if isinstance(value, str) else ""

        return ReviewResult(
            overview=_text("overview"),
            detail_comment=_text("detailComment"),
            line_comments=line_comments,
            notification=_text("notification"),
        )


def get_reviewer(settings: dict) -> BaseReviewer:
    model = settings["model"]
    if model == "anthropic":
        from crbot_core.providers.anthropic import AnthropicReviewer

        return AnthropicReviewer(api_key=settings["anthropic_api_key"], model=settings.get("llm_model"))
    if model == "openai":
        from crbot_core.providers.openai import OpenAIReviewer

        return OpenAIReviewer(
            api_key=settings["openai_api_key"],
            model=settings.get("llm_model"),
            base_url=settings.get("openai_base_url"),
        )
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")
