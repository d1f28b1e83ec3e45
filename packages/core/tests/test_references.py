"""Tests for reference document loading."""

from unittest.mock import MagicMock

import pytest
import requests

from crbot_core.references import (
    LoadedReference,
    format_references,
    is_allowed_url,
    load_references,
    load_url_content,
)


@pytest.fixture
def git_client():
    client = MagicMock()
    client.get_content_as_text.side_effect = lambda owner, repo, path, ref: {
        "docs/style.md": "Use snake_case.",
        "docs/empty.md": "",
    }.get(path)
    return client


# ---------------------------------------------------------------------------
# is_allowed_url
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "url, allowed, expected",
    [
        ("https://github.com/org/repo/blob/main/README.md", None, True),
        ("https://raw.github.com/x", None, True),
        ("http://github.com/org/repo", None, False),
        ("https://evil.com/x", None, False),
        ("https://notgithub.com/x", None, False),
        ("https://docs.example.com/guide", ["example.com"], True),
        ("https://example.com.evil.net/guide", ["example.com"], False),
        ("ftp://github.com/x", None, False),
        ("not a url", None, False),
    ],
)
def test_is_allowed_url(url, allowed, expected):
    assert is_allowed_url(url, allowed) is expected


# ---------------------------------------------------------------------------
# load_url_content
# ---------------------------------------------------------------------------


def test_load_url_content_fetches_allowed_url(mocker):
    get = mocker.patch("crbot_core.references.requests.get")
    get.return_value.text = "# Guide"
    assert load_url_content("https://github.com/org/repo/wiki") == "# Guide"
    assert get.call_args.kwargs["timeout"] == 10
    assert get.call_args.kwargs["headers"]["User-Agent"] == "crbot-reviewer/1.0"


def test_load_url_content_never_fetches_disallowed_url(mocker):
    get = mocker.patch("crbot_core.references.requests.get")
    assert load_url_content("https://evil.com/x") == ""
    get.assert_not_called()


def test_load_url_content_http_error_is_empty(mocker):
    get = mocker.patch("crbot_core.references.requests.get")
    get.return_value.raise_for_status.side_effect = requests.HTTPError("404")
    assert load_url_content("https://github.com/missing") == ""


# ---------------------------------------------------------------------------
# load_references
# ---------------------------------------------------------------------------


def test_load_references_keeps_order_and_drops_failures(mocker, git_client):
    get = mocker.patch("crbot_core.references.requests.get")
    get.return_value.text = "wiki text"
    refs = [
        {"url": "https://github.com/org/repo/wiki", "description": "Wiki"},
        {"path": "docs/missing.md"},
        {"path": "docs/empty.md"},
        {"url": "https://evil.com/x"},
        {"description": "neither"},
        {"path": "docs/style.md", "description": "Style guide"},
    ]
    loaded = load_references(refs, git_client, "org", "repo", "main")
    assert [r.source for r in loaded] == ["URL: https://github.com/org/repo/wiki", "文件: docs/style.md"]
    assert loaded[1].content == "Use snake_case."
    assert loaded[1].description == "Style guide"


def test_load_references_isolates_raising_client():
    def get_content(owner, repo, path, ref):
        if path == "bad.md":
            raise RuntimeError("boom")
        return "ok"

    client = MagicMock()
    client.get_content_as_text.side_effect = get_content
    loaded = load_references([{"path": "bad.md"}, {"path": "good.md"}], client, "org", "repo", "main")
    assert [r.content for r in loaded] == ["ok"]


def test_load_references_reads_at_given_ref(git_client):
    load_references([{"path": "docs/style.md"}], git_client, "org", "repo", "feature/x")
    git_client.get_content_as_text.assert_called_once_with("org", "repo", "docs/style.md", "feature/x")


def test_load_references_empty():
    assert load_references([], MagicMock(), "org", "repo", "main") == []
    assert load_references(None, MagicMock(), "org", "repo", "main") == []


# ---------------------------------------------------------------------------
# format_references
# ---------------------------------------------------------------------------


def test_format_references_with_and_without_description():
    blocks = format_references(
        [
            LoadedReference(content="A", source="文件: a.md", description="Doc A"),
            LoadedReference(content="B", source="URL: https://github.com/b"),
        ]
    )
    assert blocks[0] == "来源: 文件: a.md\n描述: Doc A\n内容:\nA"
    assert blocks[1] == "来源: URL: https://github.com/b\n内容:\nB"
