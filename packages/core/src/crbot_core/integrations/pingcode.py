"""PingCode work-item comments.

Pull requests reference a work item in their title (``#PRJ-12 fix login``).
The review notification is posted as a comment on that work item. The API is
authorised with an OAuth client-credentials token that is cached until it
expires.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from typing import Callable, Optional

import requests

from crbot_core.integrations.base import NotificationMessage

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://open.pingcode.com"
_IDENTIFIER_RE = re.compile(r"#([a-zA-Z0-9]+-\d+)")
_TIMEOUT = 10
_DEFAULT_TTL = 3600
_EXPIRY_MARGIN = 60


def extract_identifier(title: Optional[str]) -> Optional[str]:
    if not title:
        return None
    match = _IDENTIFIER_RE.search(title)
    return match.group(1) if match else None


class TokenCache:
    """Holds one access token until its expiry time."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def get(self) -> Optional[str]:
        if self._token and self._clock() < self._expires_at:
            return self._token
        return None

    def set(self, token: str, ttl: float) -> None:
        self._token = token
        # Refresh a little early so a token never expires mid-request.
        self._expires_at = self._clock() + max(ttl - _EXPIRY_MARGIN, 0)

    def clear(self) -> None:
        self._token = None
        self._expires_at = 0.0


_TOKEN_CACHES: dict[tuple, TokenCache] = {}
_TOKEN_CACHES_LOCK = threading.Lock()


def shared_token_cache(api_url: Optional[str], client_id: Optional[str]) -> TokenCache:
    """Return the process-wide cache for one set of client credentials."""
    key = ((api_url or DEFAULT_API_URL).rstrip("/"), client_id)
    with _TOKEN_CACHES_LOCK:
        return _TOKEN_CACHES.setdefault(key, TokenCache())


class PingCodeClient:
    def __init__(
        self,
        channel_config: dict,
        api_url: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str],
        token_cache: Optional[TokenCache] = None,
    ):
        self.config = channel_config or {}
        self.api_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_cache = token_cache or TokenCache()

    @classmethod
    def from_settings(cls, channel_config: dict, settings: dict) -> "PingCodeClient":
        api_url = settings.get("pingcode_api")
        client_id = settings.get("pingcode_client_id")
        return cls(
            channel_config,
            api_url=api_url,
            client_id=client_id,
            client_secret=settings.get("pingcode_client_secret"),
            token_cache=shared_token_cache(api_url, client_id),
        )

    def is_enabled(self) -> bool:
        return bool(self.config.get("enabled")) and bool(self.api_url and self.client_id and self.client_secret)

    # ------------------------------------------------------------------ #
    # API helpers                                                          #
    # ------------------------------------------------------------------ #

    def _get_access_token(self) -> Optional[str]:
        token = self.token_cache.get()
        if token:
            return token
        try:
            resp = requests.get(
                f"{self.api_url}/v1/auth/token",
                params={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                timeout=_TIMEOUT,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Failed to get PingCode access token: %s", e)
            return None

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            logger.error("Failed to get PingCode access token: no access_token in response")
            return None
        self.token_cache.set(token, float(data.get("expires_in") or _DEFAULT_TTL))
        return token

    def _find_work_item(self, identifier: str, token: str) -> Optional[dict]:
        try:
            resp = requests.get(
                f"{self.api_url}/v1/project/work_items",
                params={"identifier": identifier},
                headers={"Authorization": f"Bearer {token}"},
                timeout=_TIMEOUT,
            )
            resp.raise_for_status()
            values = resp.json().get("values") or []
        except (requests.RequestException, ValueError, AttributeError) as e:
            logger.error("Failed to look up work item %s: %s", identifier, e)
            return None
        return values[0] if values else None

    @staticmethod
    def _format_message(message: NotificationMessage) -> str:
        content = ""
        if message.pull_request and message.pull_request.title:
            content += f"🔗 URL: {message.pull_request.url}\n"
        return content + message.content

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def send_notification(self, message: NotificationMessage) -> bool:
        title = message.pull_request.title if message.pull_request else None
        identifier = extract_identifier(title)
        if not identifier:
            logger.info("No work item identifier found in pull request title")
            return False

        token = self._get_access_token()
        if not token:
            return False

        work_item = self._find_work_item(identifier, token)
        if not work_item:
            logger.info("Work item not found for identifier: %s", identifier)
            return False

        try:
            resp = requests.post(
                f"{self.api_url}/v1/comments",
                json={
                    "content": self._format_message(message),
                    "principal_type": "work_item",
                    "principal_id": work_item.get("id"),
                },
                headers={"Authorization": f"Bearer {token}"},
                timeout=_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error("PingCode notification failed: %s", e)
            return False
        if resp.status_code == 401:
            self.token_cache.clear()
        return resp.status_code in (200, 201)

    def get_work_item_details_from_title(self, title: str) -> Optional[str]:
        """Return ``标题：…`` / ``描述：…`` lines for the work item named in ``title``."""
        identifier = extract_identifier(title)
        if not identifier:
            return None
        token = self._get_access_token()
        if not token:
            return None
        work_item = self._find_work_item(identifier, token)
        if not work_item:
            return None

        parts = []
        if work_item.get("title"):
            parts.append(f"标题：{work_item['title']}")
        if work_item.get("description"):
            parts.append(f"描述：{work_item['description']}")
        return "\n".join(parts) or None
