"""Bot settings and per-project review configuration.

Two separate layers:

- Bot settings (``.crbot.yml`` + environment) describe how this deployment
  runs: which model, which store, credentials, feature flags.
- Project config (``.codereview.yml`` in the reviewed repository) describes
  what a project wants reviewed and when. It is read at the ref of each
  event, so a branch can change its own rules.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import yaml

if TYPE_CHECKING:
    from crbot_core.gh.base import GitClient

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILES = (".codereview.yaml", ".codereview.yml")

DEFAULT_SETTINGS: dict = {
    "model": "anthropic",
    "llm_model": None,  # None = provider default
    "store": "noop",
    "store_path": ".crbot.db",
    "gist_id": None,
    "push_review_enabled": False,
    "debug": False,
    "log_level": "INFO",
    "allowed_reference_domains": [],
    "line_matching": {
        "enable_smart_matching": True,
        "enable_content_matching": True,
        "max_distance": 5,
        "max_keywords": 3,
    },
}

DEFAULT_PROJECT_CONFIG: dict = {
    "version": "1.0",
    "review": {
        "enabled": True,
        "language": "zh",
        "mode": "strict",
        "max_review_length": 2000,
        "max_files": 30,
        "max_content_length": 20000,
    },
    "files": {
        "extensions": [".js", ".ts", ".vue", ".py", ".java", ".yml", ".json", ".md", ".sql"],
        "include": ["**/*"],
        "exclude": [
            "dist/**/*",
            "node_modules/**/*",
            "test/**/*",
            "**/*.min.js",
            "**/*.min.css",
        ],
    },
    "trigger": {
        "events": ["pull_request", "push"],
        "branches": ["master", "develop", "main"],
        "include_draft": False,
        "ignore_rules": {
            "title_contains": ["WIP", "Draft", "DO NOT REVIEW"],
            "branch_matches": ["release/*"],
        },
    },
    "integrations": {},
    "references": [],
}

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() in _TRUTHY


def load_settings(config_path: str = ".crbot.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load bot settings by merging (in order of precedence):
      1. Built-in defaults
      2. .crbot.yml in the current directory
      3. CLI argument overrides
    Credentials and feature flags are then resolved from the environment.
    """
    settings = copy.deepcopy(DEFAULT_SETTINGS)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_settings = yaml.safe_load(f) or {}
        line_matching = file_settings.pop("line_matching", None) or {}
        settings.update(file_settings)
        settings["line_matching"].update(line_matching)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                settings[key] = value

    settings["github_token"] = os.environ.get("GITHUB_TOKEN")
    settings["github_url"] = os.environ.get("GITHUB_URL")
    settings["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    settings["openai_api_key"] = os.environ.get("OPENAI_API_KEY")
    settings["openai_base_url"] = os.environ.get("OPENAI_BASE_URL")
    settings["pingcode_api"] = os.environ.get("PINGCODE_API") or "https://open.pingcode.com"
    settings["pingcode_client_id"] = os.environ.get("PINGCODE_CLIENT_ID")
    settings["pingcode_client_secret"] = os.environ.get("PINGCODE_CLIENT_SECRET")

    # Only PUSH_REVIEW_ENABLED=1 turns push review on.
    if os.environ.get("PUSH_REVIEW_ENABLED") is not None:
        settings["push_review_enabled"] = os.environ["PUSH_REVIEW_ENABLED"].strip() == "1"
    debug = _env_flag("DEBUG")
    if debug is not None:
        settings["debug"] = debug
    if os.environ.get("LOG_LEVEL"):
        settings["log_level"] = os.environ["LOG_LEVEL"].upper()

    return settings


def parse_project_config(yaml_text: Optional[str]) -> dict:
    """Parse a project's ``.codereview.yml`` and merge it over the defaults.

    Each top-level section is merged one level deep, so a project that only
    sets ``trigger.branches`` keeps the default ``trigger.ignore_rules``.
    Invalid YAML never fails a review; it falls back to the defaults.
    """
    config = copy.deepcopy(DEFAULT_PROJECT_CONFIG)
    if not yaml_text:
        return config

    try:
        parsed = yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        logger.warning("Invalid YAML in project config (%s), using defaults", e)
        return config

    if not isinstance(parsed, dict):
        logger.warning("Invalid project config: configuration must be a mapping, using defaults")
        return config

    for key, value in parsed.items():
        default = config.get(key)
        if isinstance(default, (dict, list)) and not isinstance(value, type(default)):
            # An empty or mistyped section keeps its defaults.
            if value is not None:
                logger.warning("Ignoring project config section %r: expected a %s", key, type(default).__name__)
            continue
        if isinstance(default, dict) and key != "integrations":
            default.update(value)
        else:
            config[key] = value
    return config


def load_project_config(git_client: GitClient, owner: str, repo: str, ref: str) -> dict:
    """Read the project config from the repository at ``ref``."""
    for name in PROJECT_CONFIG_FILES:
        text = git_client.get_content_as_text(owner, repo, name, ref)
        if text:
            logger.debug("Loaded %s from %s/%s@%s", name, owner, repo, ref)
            return parse_project_config(text)
    return parse_project_config(None)
