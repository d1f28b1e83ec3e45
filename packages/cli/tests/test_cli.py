"""Tests for the CLI entry point."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import yaml
from click.testing import CliRunner

from crbot_cli.cli import _build_store, main
from crbot_cli.commands.init import build_starter_config
from crbot_cli.commands.report import collect_report_rows
from crbot_cli.commands.webhook import webhook_cmd
from crbot_store.gist import GistStore
from crbot_store.models import CommitRecord, MergeRequestReview, PushReview, ReviewRecord
from crbot_store.noop import NoOpStore
from crbot_store.sqlite import SQLiteStore


def _make_settings(github_token="tok", model="anthropic", anthropic_key="ant", openai_key=None, **extra):
    settings = {
        "github_token": github_token,
        "model": model,
        "llm_model": None,
        "anthropic_api_key": anthropic_key,
        "openai_api_key": openai_key,
        "openai_base_url": None,
        "store": "sqlite",
        "push_review_enabled": False,
        "debug": False,
        "log_level": "INFO",
        "allowed_reference_domains": [],
        "line_matching": {},
    }
    settings.update(extra)
    return settings


def _patch_common(mocker, settings=None, token="tok"):
    """Patch load_settings, resolve_github_token, and _build_store for most tests."""
    cfg = settings or _make_settings()
    mocker.patch("crbot_core.config.load_settings", return_value=cfg)
    mocker.patch("crbot_cli.auth.resolve_github_token", return_value=token)
    # Use SQLiteStore spec so isinstance(store, NoOpStore) returns False —
    # history, stats and report must not mistake this for an unconfigured store.
    mock_store = MagicMock(spec=SQLiteStore)
    mock_store.list_merge_request_reviews.return_value = []
    mock_store.list_push_reviews.return_value = []
    mocker.patch("crbot_cli.cli._build_store", return_value=mock_store)
    return cfg, mock_store


def _patch_noop(mocker):
    mocker.patch("crbot_core.config.load_settings", return_value=_make_settings(store="noop"))
    mocker.patch("crbot_cli.auth.resolve_github_token", return_value="tok")
    mocker.patch("crbot_cli.cli._build_store", return_value=NoOpStore())


def _make_review(identifier="pr1", author="alice", passes=1, additions=10, deletions=2, messages=("feat: a",)):
    return MergeRequestReview(
        identifier=identifier,
        project_name="org/repo",
        author=author,
        source_branch="feature/x",
        target_branch="main",
        url=f"https://github.com/org/repo/pull/{identifier}",
        additions=additions,
        deletions=deletions,
        commits=[CommitRecord(id=f"c{i}", message=m) for i, m in enumerate(messages)],
        review_records=[
            ReviewRecord(last_commit_id=f"sha{i}", created_at=1000, llm_result=f"pass {i}") for i in range(passes)
        ],
        created_at=1000,
        updated_at=2000,
    )


def _make_push(author="bob", messages="fix: a"):
    return PushReview(
        project_name="org/repo",
        author=author,
        branch="main",
        commit_messages=messages,
        review_result="ok",
        url_slug="slug",
        additions=3,
        deletions=1,
        updated_at=2000,
    )


# ---------------------------------------------------------------------------
# webhook command
# ---------------------------------------------------------------------------


def _write_payload(tmp_path, data):
    path = tmp_path / "payload.json"
    path.write_text(json.dumps(data) if not isinstance(data, str) else data)
    return str(path)


class TestWebhookCommand:
    def test_missing_github_token(self, mocker, tmp_path):
        _patch_common(mocker, settings=_make_settings(github_token=None), token=None)

        result = CliRunner().invoke(main, ["webhook", "--event", "push", _write_payload(tmp_path, {})])
        assert result.exit_code != 0
        assert "GITHUB_TOKEN" in result.output

    def test_missing_anthropic_key(self, mocker, tmp_path):
        _patch_common(mocker, settings=_make_settings(anthropic_key=None))

        result = CliRunner().invoke(main, ["webhook", "--event", "push", _write_payload(tmp_path, {})])
        assert result.exit_code != 0
        assert "ANTHROPIC_API_KEY" in result.output

    def test_missing_openai_key(self, mocker, tmp_path):
        _patch_common(mocker, settings=_make_settings(model="openai", anthropic_key=None))

        result = CliRunner().invoke(main, ["webhook", "--event", "push", _write_payload(tmp_path, {})])
        assert result.exit_code != 0
        assert "OPENAI_API_KEY" in result.output

    def test_invalid_json(self, mocker, tmp_path):
        _patch_common(mocker)
        mocker.patch("crbot_cli.commands.webhook.get_reviewer")

        result = CliRunner().invoke(main, ["webhook", "--event", "push", _write_payload(tmp_path, "{nope")])
        assert result.exit_code != 0
        assert "not valid JSON" in result.output

    def test_non_object_payload(self, mocker, tmp_path):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["webhook", "--event", "push", _write_payload(tmp_path, [1, 2])])
        assert result.exit_code != 0
        assert "JSON object" in result.output

    def test_dispatches_delivery(self, mocker, tmp_path):
        _, mock_store = _patch_common(mocker)
        reviewer = MagicMock()
        mocker.patch("crbot_cli.commands.webhook.get_reviewer", return_value=reviewer)
        dispatch = mocker.patch(
            "crbot_cli.commands.webhook.dispatch_webhook", return_value="Pull request org/repo#5 processed"
        )

        payload = {"action": "opened", "pull_request": {"number": 5}}
        result = CliRunner().invoke(
            main, ["webhook", "--event", "pull_request", _write_payload(tmp_path, payload)]
        )

        assert result.exit_code == 0, result.output
        assert "Pull request org/repo#5 processed" in result.output
        orchestrator, platform, event_type, data = dispatch.call_args.args
        assert (platform, event_type, data) == ("github", "pull_request", payload)
        assert orchestrator.llm is reviewer
        assert orchestrator.store is mock_store

    def test_reads_payload_from_stdin(self, mocker):
        _patch_common(mocker)
        mocker.patch("crbot_cli.commands.webhook.get_reviewer")
        dispatch = mocker.patch("crbot_cli.commands.webhook.dispatch_webhook", return_value="Ignored event: issues")

        result = CliRunner().invoke(main, ["webhook", "--event", "issues", "-"], input="{}")

        assert result.exit_code == 0, result.output
        assert dispatch.call_args.args[3] == {}

    def test_git_client_factory_uses_settings(self, mocker, tmp_path):
        settings, _ = _patch_common(mocker)
        mocker.patch("crbot_cli.commands.webhook.get_reviewer")
        create = mocker.patch("crbot_cli.commands.webhook.create_git_client")
        dispatch = mocker.patch("crbot_cli.commands.webhook.dispatch_webhook", return_value="ok")

        CliRunner().invoke(main, ["webhook", "--event", "push", _write_payload(tmp_path, {})])

        orchestrator = dispatch.call_args.args[0]
        orchestrator.git_client_factory("github")
        create.assert_called_once_with("github", settings)

    def test_gitlab_delivery_rejected_without_client(self, mocker, tmp_path):
        _patch_common(mocker)
        mocker.patch("crbot_cli.commands.webhook.get_reviewer")

        result = CliRunner().invoke(
            main, ["webhook", "--platform", "gitlab", "--event", "push", _write_payload(tmp_path, {})]
        )

        assert result.exit_code == 0, result.output
        assert "Invalid push webhook" in result.output
        assert "gitlab" in result.output

    def test_platform_help_says_gitlab_is_not_bundled(self):
        platform = next(p for p in webhook_cmd.params if p.name == "platform")
        assert "Only github ships a client" in platform.help


# ---------------------------------------------------------------------------
# auth.py
# ---------------------------------------------------------------------------


class TestResolveGithubToken:
    def test_returns_env_var_when_set(self, monkeypatch):
        from crbot_cli.auth import resolve_github_token

        monkeypatch.setenv("GITHUB_TOKEN", "env-token")
        assert resolve_github_token() == "env-token"

    def test_falls_back_to_gh_cli(self, monkeypatch):
        from crbot_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="gh-token\n")
            result = resolve_github_token()
        assert result == "gh-token"

    def test_returns_none_when_gh_not_installed(self, monkeypatch):
        from crbot_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=FileNotFoundError):
            result = resolve_github_token()
        assert result is None

    def test_returns_none_when_gh_times_out(self, monkeypatch):
        from crbot_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="gh", timeout=5)):
            result = resolve_github_token()
        assert result is None

    def test_returns_none_when_gh_returns_error(self, monkeypatch):
        from crbot_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1, stdout="")
            result = resolve_github_token()
        assert result is None


# ---------------------------------------------------------------------------
# _build_store
# ---------------------------------------------------------------------------


class TestBuildStore:
    def test_returns_noop_by_default(self):
        assert isinstance(_build_store({}), NoOpStore)

    def test_returns_sqlite_store(self, tmp_path):
        store = _build_store({"store": "sqlite", "store_path": str(tmp_path / "test.db")})
        assert isinstance(store, SQLiteStore)
        store.close()

    def test_sqlite_uses_default_path_when_not_specified(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        store = _build_store({"store": "sqlite"})
        assert isinstance(store, SQLiteStore)
        assert (tmp_path / ".crbot.db").exists()
        store.close()

    def test_returns_gist_store_when_configured(self):
        with patch("github.Github"):  # Github is a local import inside GistStore.__init__
            store = _build_store({"store": "gist", "gist_id": "abc123", "github_token": "tok"})
        assert isinstance(store, GistStore)

    def test_falls_back_to_noop_when_gist_id_missing(self):
        assert isinstance(_build_store({"store": "gist", "github_token": "tok"}), NoOpStore)

    def test_falls_back_to_noop_when_token_missing(self):
        assert isinstance(_build_store({"store": "gist", "gist_id": "abc123"}), NoOpStore)


# ---------------------------------------------------------------------------
# history command
# ---------------------------------------------------------------------------


class TestHistoryCommand:
    def test_shows_table_when_records_exist(self, mocker):
        _, mock_store = _patch_common(mocker)
        mock_store.list_merge_request_reviews.return_value = [_make_review(passes=3)]

        result = CliRunner().invoke(main, ["history", "--project", "org/repo"])

        assert result.exit_code == 0, result.output
        assert "alice" in result.output
        assert "sha2" in result.output

    def test_shows_empty_message_when_no_records(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["history", "--project", "org/repo"])

        assert result.exit_code == 0
        assert "No review records found" in result.output

    def test_errors_when_noop_store(self, mocker):
        _patch_noop(mocker)

        result = CliRunner().invoke(main, ["history", "--project", "org/repo"])

        assert result.exit_code != 0
        assert "No store configured" in result.output

    def test_filters_by_project_and_author(self, mocker):
        _, mock_store = _patch_common(mocker)

        CliRunner().invoke(main, ["history", "--project", "org/repo", "--author", "alice"])

        query = mock_store.list_merge_request_reviews.call_args.args[0]
        assert query.project_names == ["org/repo"]
        assert query.authors == ["alice"]

    def test_limit_applied(self, mocker):
        _, mock_store = _patch_common(mocker)
        mock_store.list_merge_request_reviews.return_value = [
            _make_review(identifier=f"pr{i}", author=f"dev{i}") for i in range(10)
        ]

        result = CliRunner().invoke(main, ["history", "--project", "org/repo", "--limit", "3"])

        assert result.exit_code == 0
        assert "dev2" in result.output
        assert "dev3" not in result.output


# ---------------------------------------------------------------------------
# stats command
# ---------------------------------------------------------------------------


class TestStatsCommand:
    def test_counts_passes_and_pushes_per_author(self, mocker):
        _, mock_store = _patch_common(mocker)
        mock_store.list_merge_request_reviews.return_value = [
            _make_review("pr1", author="alice", passes=3),
            _make_review("pr2", author="alice", passes=1),
        ]
        mock_store.list_push_reviews.return_value = [_make_push(author="bob")]

        result = CliRunner().invoke(main, ["stats", "--project", "org/repo"])

        assert result.exit_code == 0, result.output
        assert "Pull requests:  2" in result.output
        assert "Review passes:  4" in result.output
        assert "Pushes:         1" in result.output
        assert "alice" in result.output
        assert "bob" in result.output

    def test_empty_message_when_no_records(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["stats", "--project", "org/repo"])

        assert result.exit_code == 0
        assert "No review records found" in result.output

    def test_errors_when_noop_store(self, mocker):
        _patch_noop(mocker)

        result = CliRunner().invoke(main, ["stats", "--project", "org/repo"])

        assert result.exit_code != 0
        assert "No store configured" in result.output


# ---------------------------------------------------------------------------
# report command
# ---------------------------------------------------------------------------


class TestCollectReportRows:
    def test_pull_request_rows_deduplicated_and_sorted(self):
        store = MagicMock()
        store.list_merge_request_reviews.return_value = [
            _make_review("pr1", author="carol", messages=("feat: c",)),
            _make_review("pr2", author="alice", messages=("feat: a", "fix: a")),
            _make_review("pr3", author="alice", messages=("feat: a", "fix: a")),
        ]

        rows = collect_report_rows(store, 0, 10**13, push_review_enabled=False)

        assert [r["author"] for r in rows] == ["alice", "carol"]
        assert rows[0]["commit_messages"] == "feat: a; fix: a"
        assert rows[0]["branch"] == "feature/x -> main"
        assert rows[0]["review_result"] == "pass 0"
        store.list_push_reviews.assert_not_called()

    def test_push_rows_when_push_review_enabled(self):
        store = MagicMock()
        store.list_push_reviews.return_value = [_make_push("bob"), _make_push("ann", messages="docs")]

        rows = collect_report_rows(store, 100, 200, push_review_enabled=True)

        assert [r["author"] for r in rows] == ["ann", "bob"]
        query = store.list_push_reviews.call_args.args[0]
        assert (query.updated_at_gte, query.updated_at_lte) == (100, 200)


class TestReportCommand:
    def test_no_data(self, mocker):
        _patch_common(mocker)
        get_reviewer = mocker.patch("crbot_core.providers.base.get_reviewer")

        result = CliRunner().invoke(main, ["report"])

        assert result.exit_code == 0
        assert "No data to process for report." in result.output
        get_reviewer.assert_not_called()

    def test_prints_generated_report(self, mocker):
        _, mock_store = _patch_common(mocker)
        mock_store.list_merge_request_reviews.return_value = [_make_review()]
        reviewer = MagicMock()
        reviewer.generate_report.return_value = "# Daily report\n\nAll good."
        mocker.patch("crbot_core.providers.base.get_reviewer", return_value=reviewer)

        result = CliRunner().invoke(main, ["report", "--since", "2024-01-01", "--until", "2024-01-02T00:00:00"])

        assert result.exit_code == 0, result.output
        assert "Daily report" in result.output
        rows = reviewer.generate_report.call_args.args[0]
        assert rows[0]["author"] == "alice"

    def test_invalid_date(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["report", "--since", "yesterday"])

        assert result.exit_code != 0
        assert "ISO" in result.output

    def test_notify_sends_markdown_to_project_channels(self, mocker, tmp_path):
        _, mock_store = _patch_common(mocker)
        mock_store.list_merge_request_reviews.return_value = [_make_review()]
        reviewer = MagicMock()
        reviewer.generate_report.return_value = "# Daily report"
        mocker.patch("crbot_core.providers.base.get_reviewer", return_value=reviewer)
        send = mocker.patch("crbot_core.integrations.service.send_notification", return_value={"dingtalk": True})
        project_config = tmp_path / ".codereview.yml"
        project_config.write_text(
            "integrations:\n  dingtalk:\n    enabled: true\n    notification:\n      webhook_url: https://x\n"
        )

        result = CliRunner().invoke(main, ["report", "--notify", "--project-config", str(project_config)])

        assert result.exit_code == 0, result.output
        message, channels, _ = send.call_args.args
        assert message.msg_type == "markdown"
        assert message.title == "代码提交日报"
        assert message.content == "# Daily report"
        assert "dingtalk" in channels
        assert "dingtalk: sent" in result.output

    def test_requires_llm_credentials(self, mocker):
        _patch_common(mocker, settings=_make_settings(anthropic_key=None))

        result = CliRunner().invoke(main, ["report"])

        assert result.exit_code != 0
        assert "ANTHROPIC_API_KEY" in result.output


# ---------------------------------------------------------------------------
# init command
# ---------------------------------------------------------------------------


class TestInitCommand:
    def test_writes_codereview_yml(self, mocker, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        _patch_common(mocker)

        result = CliRunner().invoke(
            main,
            ["init"],
            input="en\nlight\nmain, develop\ndingtalk\nhttps://oapi.dingtalk.com/robot/send?access_token=x\n",
        )

        assert result.exit_code == 0, result.output
        config = yaml.safe_load((tmp_path / ".codereview.yml").read_text())
        assert config["review"]["language"] == "en"
        assert config["review"]["mode"] == "light"
        assert config["trigger"]["branches"] == ["main", "develop"]
        assert config["integrations"]["dingtalk"]["notification"]["webhook_url"].startswith("https://oapi")

    def test_defaults_without_channel(self, mocker, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["init"], input="\n\n\n\n")

        assert result.exit_code == 0, result.output
        config = yaml.safe_load((tmp_path / ".codereview.yml").read_text())
        assert config["review"]["language"] == "zh"
        assert config["trigger"]["branches"] == ["master", "develop", "main"]
        assert "integrations" not in config

    def test_refuses_to_overwrite_without_force(self, mocker, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        _patch_common(mocker)
        (tmp_path / ".codereview.yml").write_text("review:\n  enabled: false\n")

        result = CliRunner().invoke(main, ["init"], input="\n\n\n\n")

        assert result.exit_code != 0
        assert "already exists" in result.output
        assert "enabled: false" in (tmp_path / ".codereview.yml").read_text()

    def test_pingcode_channel_has_no_webhook(self):
        config = build_starter_config("zh", "strict", ["main"], "pingcode", None)
        assert config["integrations"] == {"pingcode": {"enabled": True}}
