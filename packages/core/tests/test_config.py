"""Tests for bot settings and project config loading."""

from unittest.mock import MagicMock

import pytest

from crbot_core.config import DEFAULT_PROJECT_CONFIG, load_project_config, load_settings, parse_project_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PUSH_REVIEW_ENABLED", "DEBUG", "LOG_LEVEL", "PINGCODE_API", "GITHUB_TOKEN"):
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# load_settings
# ---------------------------------------------------------------------------


def test_defaults_applied_when_no_settings_file(tmp_path):
    settings = load_settings(config_path=str(tmp_path / "nonexistent.yml"))
    assert settings["model"] == "anthropic"
    assert settings["store"] == "noop"
    assert settings["push_review_enabled"] is False
    assert settings["line_matching"]["max_distance"] == 5
    assert settings["pingcode_api"] == "https://open.pingcode.com"


def test_settings_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".crbot.yml"
    cfg.write_text("model: openai\nstore: sqlite\nline_matching:\n  max_distance: 2\n")
    settings = load_settings(config_path=str(cfg))
    assert settings["model"] == "openai"
    assert settings["store"] == "sqlite"
    assert settings["line_matching"]["max_distance"] == 2
    assert settings["line_matching"]["enable_smart_matching"] is True


def test_cli_overrides_settings_file(tmp_path):
    cfg = tmp_path / ".crbot.yml"
    cfg.write_text("model: openai\n")
    assert load_settings(str(cfg), cli_overrides={"model": "anthropic"})["model"] == "anthropic"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".crbot.yml"
    cfg.write_text("model: openai\n")
    assert load_settings(str(cfg), cli_overrides={"model": None})["model"] == "openai"


def test_defaults_are_not_shared_between_loads(tmp_path):
    first = load_settings(str(tmp_path / "none.yml"))
    first["allowed_reference_domains"].append("example.com")
    first["line_matching"]["max_distance"] = 99
    second = load_settings(str(tmp_path / "none.yml"))
    assert second["allowed_reference_domains"] == []
    assert second["line_matching"]["max_distance"] == 5


@pytest.mark.parametrize("value, expected", [("1", True), ("true", False), ("0", False)])
def test_push_review_flag_only_accepts_one(tmp_path, monkeypatch, value, expected):
    monkeypatch.setenv("PUSH_REVIEW_ENABLED", value)
    assert load_settings(str(tmp_path / "none.yml"))["push_review_enabled"] is expected


def test_debug_and_log_level_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = load_settings(str(tmp_path / "none.yml"))
    assert settings["debug"] is True
    assert settings["log_level"] == "DEBUG"


def test_credentials_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_x")
    monkeypatch.setenv("PINGCODE_CLIENT_ID", "cid")
    settings = load_settings(str(tmp_path / "none.yml"))
    assert settings["github_token"] == "ghp_x"
    assert settings["pingcode_client_id"] == "cid"


# ---------------------------------------------------------------------------
# parse_project_config
# ---------------------------------------------------------------------------


def test_empty_project_config_gives_defaults():
    assert parse_project_config(None) == DEFAULT_PROJECT_CONFIG
    assert parse_project_config("") == DEFAULT_PROJECT_CONFIG


def test_invalid_yaml_gives_defaults():
    assert parse_project_config("review: [unclosed") == DEFAULT_PROJECT_CONFIG


def test_non_mapping_gives_defaults():
    assert parse_project_config("- just\n- a list\n") == DEFAULT_PROJECT_CONFIG


def test_sections_merge_one_level_deep():
    config = parse_project_config("trigger:\n  branches: [develop]\nreview:\n  mode: light\n")
    assert config["trigger"]["branches"] == ["develop"]
    assert config["trigger"]["ignore_rules"] == DEFAULT_PROJECT_CONFIG["trigger"]["ignore_rules"]
    assert config["review"]["mode"] == "light"
    assert config["review"]["max_files"] == 30


def test_integrations_and_references_loaded():
    text = (
        "integrations:\n"
        "  dingtalk:\n"
        "    enabled: true\n"
        "    notification:\n"
        "      webhook_url: https://oapi.dingtalk.com/robot/send\n"
        "references:\n"
        "  - path: docs/style.md\n"
        "    description: Style guide\n"
    )
    config = parse_project_config(text)
    assert config["integrations"]["dingtalk"]["enabled"] is True
    assert config["references"] == [{"path": "docs/style.md", "description": "Style guide"}]


def test_empty_sections_keep_defaults():
    config = parse_project_config("review:\ntrigger: null\nintegrations:\nreferences:\n")
    assert config == DEFAULT_PROJECT_CONFIG


def test_mistyped_sections_keep_defaults():
    config = parse_project_config("files: src/\ntrigger: [main]\nreferences: docs/style.md\nversion: 1.1\n")
    assert config["files"] == DEFAULT_PROJECT_CONFIG["files"]
    assert config["trigger"] == DEFAULT_PROJECT_CONFIG["trigger"]
    assert config["references"] == []
    assert config["version"] == 1.1


def test_parse_does_not_mutate_defaults():
    parse_project_config("files:\n  extensions: [.go]\n")
    assert ".go" not in DEFAULT_PROJECT_CONFIG["files"]["extensions"]


# ---------------------------------------------------------------------------
# load_project_config
# ---------------------------------------------------------------------------


def test_load_project_config_prefers_yaml_extension():
    client = MagicMock()
    client.get_content_as_text.side_effect = lambda owner, repo, path, ref: (
        "review:\n  language: en\n" if path == ".codereview.yaml" else "review:\n  language: zh\n"
    )
    config = load_project_config(client, "org", "repo", "main")
    assert config["review"]["language"] == "en"


def test_load_project_config_falls_back_to_yml():
    client = MagicMock()
    client.get_content_as_text.side_effect = lambda owner, repo, path, ref: (
        "review:\n  enabled: false\n" if path == ".codereview.yml" else None
    )
    config = load_project_config(client, "org", "repo", "feature/x")
    assert config["review"]["enabled"] is False
    client.get_content_as_text.assert_any_call("org", "repo", ".codereview.yml", "feature/x")


def test_load_project_config_defaults_when_missing():
    client = MagicMock()
    client.get_content_as_text.return_value = None
    assert load_project_config(client, "org", "repo", "main") == DEFAULT_PROJECT_CONFIG
