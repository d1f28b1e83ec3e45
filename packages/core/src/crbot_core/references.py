"""Load the reference documents a project wants the model to see.

A reference is either a file in the reviewed repository (``path``) or a web
page (``url``). URLs are fetched only over HTTPS and only from allowed hosts,
since the project config is controlled by whoever opens the pull request.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlparse

import requests

if TYPE_CHECKING:
    from crbot_core.gh.base import GitClient

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_DOMAINS = ("github.com",)
_URL_TIMEOUT = 10
_USER_AGENT = "crbot-reviewer/1.0"
_MAX_WORKERS = 8


@dataclass
class LoadedReference:
    content: str
    source: str
    description: Optional[str] = None


def is_allowed_url(url: str, allowed_domains: Optional[list[str]] = None) -> bool:
    """Only https URLs on github.com or a configured domain (or a subdomain)."""
    try:
        parsed = urlparse(url)
    except ValueError:
        logger.warning("Invalid URL format: %s", url)
        return False

    if parsed.scheme != "https":
        logger.warning("URL protocol not allowed: %s", parsed.scheme or "<none>")
        return False

    host = (parsed.hostname or "").lower()
    domains = [*DEFAULT_ALLOWED_DOMAINS, *(allowed_domains or [])]
    if not any(host == d or host.endswith(f".{d}") for d in domains):
        logger.warning("URL domain not in allow-list: %s", host)
        return False
    return True


def load_file_content(path: str, git_client: GitClient, owner: str, repo: str, ref: str) -> str:
    try:
        content = git_client.get_content_as_text(owner, repo, path, ref)
    except Exception as e:
        logger.warning("Failed to load file content: %s in %s/%s@%s: %s", path, owner, repo, ref, e)
        return ""
    if not content:
        logger.warning("File content is empty or not found: %s in %s/%s@%s", path, owner, repo, ref)
        return ""
    return content


def load_url_content(url: str, allowed_domains: Optional[list[str]] = None) -> str:
    if not is_allowed_url(url, allowed_domains):
        return ""
    try:
        resp = requests.get(url, timeout=_URL_TIMEOUT, headers={"User-Agent": _USER_AGENT})
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.warning("Failed to load URL content: %s: %s", url, e)
        return ""
    return resp.text


def _load_one(
    reference: dict,
    git_client: GitClient,
    owner: str,
    repo: str,
    ref: str,
    allowed_domains: Optional[list[str]],
) -> Optional[LoadedReference]:
    if reference.get("path"):
        content = load_file_content(reference["path"], git_client, owner, repo, ref)
        source = f"文件: {reference['path']}"
    elif reference.get("url"):
        content = load_url_content(reference["url"], allowed_domains)
        source = f"URL: {reference['url']}"
    else:
        logger.warning("Reference item has neither path nor url: %r", reference)
        return None

    if not content:
        return None
    return LoadedReference(content=content, source=source, description=reference.get("description"))


def load_references(
    references: Optional[list[dict]],
    git_client: GitClient,
    owner: str,
    repo: str,
    ref: str,
    allowed_domains: Optional[list[str]] = None,
) -> list[LoadedReference]:
    """Load all references concurrently, keeping config order.

    One failing reference never affects the others: each load is settled on
    its own and failures are logged and dropped.
    """
    if not references:
        return []

    with ThreadPoolExecutor(max_workers=min(_MAX_WORKERS, len(references))) as pool:
        futures = [
            pool.submit(_load_one, reference, git_client, owner, repo, ref, allowed_domains)
            for reference in references
        ]

    loaded = []
    for reference, future in zip(references, futures):
        try:
            item = future.result()
        except Exception as e:
            logger.error("Failed to load reference %r: %s", reference, e)
            continue
        if item is not None:
            loaded.append(item)
    return loaded


def format_references(references: list[LoadedReference]) -> list[str]:
    """Render loaded references as prompt blocks."""
    blocks = []
    for r in references:
        block = f"来源: {r.source}"
        if r.description:
            block += f"\n描述: {r.description}"
        block += f"\n内容:\n{r.content}"
        blocks.append(block)
    return blocks
