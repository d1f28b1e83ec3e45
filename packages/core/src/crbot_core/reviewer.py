"""Review orchestration: one webhook delivery in, comments and records out."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from crbot_core.config import load_project_config
from crbot_core.gh.base import GitClient
from crbot_core.gh.webhook import is_reviewable_pull_request
from crbot_core.integrations.base import NotificationMessage, PullRequestRef
from crbot_core.integrations.service import get_work_item_details, send_notification
from crbot_core.models import FileChange, ParsedWebhookData, PullRequestInfo, ReviewResult
from crbot_core.providers.base import BaseReviewer
from crbot_core.references import format_references, load_references
from crbot_core.trigger import (
    calculate_additions,
    calculate_deletions,
    filter_reviewable_files,
    should_skip_review,
    should_trigger_review,
    slugify_url,
)
from crbot_core.utils.diff import format_diffs
from crbot_core.utils.line_mapping import LineMatchingOptions, validate_and_correct_line_numbers
from crbot_store.base import BaseStore
from crbot_store.models import CommitRecord, MergeRequestReview, PushReview, ReviewRecord, now_ms

Notifier = Callable[[NotificationMessage, dict, dict], Any]

_PREVIOUS_REVIEW_PREFIX = "上一次审查结果："
_WORK_ITEM_PREFIX = "关联工作项：\n"


def build_llm_result(result: ReviewResult) -> str:
    """The text remembered for a pass and fed to the model on the next one."""
    return "; ".join(c.comment for c in result.line_comments) + "\n\n" + result.detail_comment


class ReviewOrchestrator:
    """Runs pull request and push reviews end to end.

    Handlers never raise: every failure is logged with the event context and
    the event is dropped. Nothing is retried at this level.
    """

    def __init__(
        self,
        git_client_factory: Callable[[str], GitClient],
        llm_client: BaseReviewer,
        store: BaseStore,
        settings: dict,
        notifier: Notifier = send_notification,
        logger: Optional[logging.Logger] = None,
    ):
        self.git_client_factory = git_client_factory
        self.llm = llm_client
        self.store = store
        self.settings = settings
        self.notifier = notifier
        self.logger = logger or logging.getLogger(__name__)
        self.line_matching = LineMatchingOptions.from_settings(settings)

    # ------------------------------------------------------------------ #
    # Pull requests                                                        #
    # ------------------------------------------------------------------ #

    def _is_pull_request_changed(self, pr: PullRequestInfo, existing: Optional[MergeRequestReview]) -> bool:
        if self.settings.get("debug"):
            return True
        newest = pr.commits[-1].id if pr.commits else None
        last_reviewed = existing.last_commit_id if existing else None
        return newest != last_reviewed

    def handle_pull_request(self, parsed: ParsedWebhookData) -> None:
        where = f"{parsed.project_name}#{parsed.pull_number}"
        try:
            self._review_pull_request(parsed)
        except Exception as e:
            self.logger.error("Pull request review failed for %s: %s", where, e, exc_info=self.settings.get("debug"))

    def _review_pull_request(self, parsed: ParsedWebhookData) -> None:
        git_client = self.git_client_factory(parsed.client_type)
        owner, repo = parsed.owner, parsed.repo

        pr = git_client.get_pull_request_info(owner, repo, parsed.pull_number)
        config = load_project_config(git_client, owner, repo, parsed.source_branch or pr.source_branch)
        if not config["review"].get("enabled", True):
            self.logger.info("Review disabled for %s", parsed.project_name)
            return

        pr.files = filter_reviewable_files(pr.files, config["files"])
        if should_skip_review(
            config,
            event_type="pull_request",
            branch_name=parsed.target_branch or pr.target_branch,
            files=pr.files,
            title=pr.title,
            is_draft=pr.is_draft,
        ):
            return

        identifier = slugify_url(pr.url)
        existing = self.store.get_merge_request_review(identifier)
        if not self._is_pull_request_changed(pr, existing):
            self.logger.info("No new commits to review on %s, skipping review", identifier)
            return

        change_commits = pr.commits
        change_files: list[FileChange] = pr.files
        references: list[str] = []
        if existing and existing.review_records:
            last_reviewed = existing.last_commit_id
            ids = [c.id for c in pr.commits]
            start = ids.index(last_reviewed) + 1 if last_reviewed in ids else 0
            # Forced re-review of an unchanged head keeps the full PR in scope.
            if start < len(pr.commits):
                change_commits = pr.commits[start:]
                change_files = filter_reviewable_files(
                    git_client.get_commit_files(owner, repo, [c.id for c in change_commits]),
                    config["files"],
                )
            references.append(f"{_PREVIOUS_REVIEW_PREFIX}{existing.review_records[-1].llm_result or ''} \n \n")
            self.logger.info(
                "Incremental review of %s: %d new commit(s) since %s",
                identifier,
                len(change_commits),
                (last_reviewed or "")[:7],
            )

        work_item = get_work_item_details(pr.title, config.get("integrations"), self.settings)
        if work_item:
            references.append(f"{_WORK_ITEM_PREFIX}{work_item}\n")

        result = self._generate_review(
            git_client,
            owner,
            repo,
            parsed.source_branch or pr.source_branch,
            change_files,
            "; ".join(c.message for c in change_commits),
            references,
            config,
        )

        additions = calculate_additions(pr.files)
        deletions = calculate_deletions(pr.files)
        record = ReviewRecord(
            last_commit_id=change_commits[-1].id if change_commits else "",
            created_at=now_ms(),
            llm_result=build_llm_result(result),
        )
        if existing is None:
            self.store.create_merge_request_review(
                MergeRequestReview(
                    identifier=identifier,
                    project_name=parsed.project_name,
                    author=pr.author,
                    source_branch=pr.source_branch,
                    target_branch=pr.target_branch,
                    url=pr.url,
                    webhook_data=pr.webhook_data,
                    additions=additions,
                    deletions=deletions,
                    commits=[CommitRecord(id=c.id, message=c.message) for c in change_commits],
                    review_records=[record],
                )
            )
        else:
            self.store.append_review_record(
                identifier,
                record,
                commits=[CommitRecord(id=c.id, message=c.message) for c in pr.commits],
                additions=additions,
                deletions=deletions,
                expected_last_commit_id=existing.last_commit_id,
            )

        line_comments = validate_and_correct_line_numbers(result.line_comments, change_files, self.line_matching)
        dropped = len(result.line_comments) - len(line_comments)
        if dropped:
            self.logger.info("%d line comment(s) on %s could not be placed and were dropped", dropped, identifier)
        git_client.create_pull_request_line_comments(
            owner,
            repo,
            pr.number,
            [{"path": c.file, "line": c.line, "body": c.comment} for c in line_comments],
        )
        if result.detail_comment:
            git_client.create_pull_request_comment(owner, repo, pr.number, result.detail_comment)

        self._notify(result, parsed.project_name, config, pr)

    # ------------------------------------------------------------------ #
    # Pushes                                                               #
    # ------------------------------------------------------------------ #

    def handle_push(self, parsed: ParsedWebhookData) -> None:
        where = f"{parsed.project_name}@{parsed.branch_name}"
        try:
            self._review_push(parsed)
        except Exception as e:
            self.logger.error("Push review failed for %s: %s", where, e, exc_info=self.settings.get("debug"))

    def _review_push(self, parsed: ParsedWebhookData) -> None:
        if not self.settings.get("push_review_enabled"):
            self.logger.info("Push review is disabled")
            return
        if not parsed.commits:
            self.logger.info("Push to %s carries no commits, skipping review", parsed.branch_name)
            return

        git_client = self.git_client_factory(parsed.client_type)
        owner, repo, branch = parsed.owner, parsed.repo, parsed.branch_name or ""

        config = load_project_config(git_client, owner, repo, branch)
        if not config["review"].get("enabled", True):
            self.logger.info("Review disabled for %s", parsed.project_name)
            return
        if not should_trigger_review(config["trigger"], "push", branch):
            self.logger.info("Review trigger check failed for push to %s, skipping review", branch)
            return

        push = git_client.get_push_info(owner, repo, parsed.commits[-1].id, branch)
        push.files = filter_reviewable_files(push.files, config["files"])
        if should_skip_review(config, event_type="push", branch_name=branch, files=push.files):
            return

        commit_messages = "; ".join(c.message for c in push.commits)
        result = self._generate_review(git_client, owner, repo, branch, push.files, commit_messages, [], config)

        self.store.create_push_review(
            PushReview(
                project_name=parsed.project_name,
                author=push.author,
                branch=push.branch,
                commit_messages=commit_messages,
                review_result=result.detail_comment,
                url_slug=slugify_url(push.url),
                webhook_data=push.webhook_data,
                additions=calculate_additions(push.files),
                deletions=calculate_deletions(push.files),
            )
        )

        if push.commits and result.detail_comment:
            git_client.create_commit_comment(owner, repo, push.commits[-1].id, result.detail_comment)

        self._notify(result, parsed.project_name, config, None)

    # ------------------------------------------------------------------ #
    # Shared steps                                                         #
    # ------------------------------------------------------------------ #

    def _generate_review(
        self,
        git_client: GitClient,
        owner: str,
        repo: str,
        ref: str,
        changes: list[FileChange],
        commit_messages: str,
        references: list[str],
        config: dict,
    ) -> ReviewResult:
        config_references: list[str] = []
        if config.get("references"):
            try:
                loaded = load_references(
                    config["references"],
                    git_client,
                    owner,
                    repo,
                    ref,
                    self.settings.get("allowed_reference_domains"),
                )
                config_references = format_references(loaded)
            except Exception as e:
                self.logger.error("Failed to load config references for %s/%s: %s", owner, repo, e)

        return self.llm.generate_review(format_diffs(changes), commit_messages, references + config_references, config)

    def _notify(
        self,
        result: ReviewResult,
        project_name: str,
        config: dict,
        pr: Optional[PullRequestInfo],
    ) -> None:
        if not result.notification:
            return
        message = NotificationMessage(
            content=result.notification,
            title=f"crbot - {project_name}",
            msg_type="text",
            pull_request=PullRequestRef(title=pr.title, url=pr.url) if pr else None,
        )
        try:
            outcome = self.notifier(message, config.get("integrations") or {}, self.settings)
        except Exception as e:
            self.logger.error("Notification fan-out failed for %s: %s", project_name, e)
            return
        if outcome:
            self.logger.debug("Notification outcome for %s: %s", project_name, outcome)


def dispatch_webhook(
    orchestrator: ReviewOrchestrator,
    client_type: str,
    event_type: str,
    payload: dict[str, Any],
) -> str:
    """Route one webhook delivery to the matching handler.

    Returns a short acknowledgement for the caller to log or echo; never raises.
    """
    try:
        git_client = orchestrator.git_client_factory(client_type)
        parsed = git_client.parse_webhook_data(payload, event_type)
    except Exception as e:
        orchestrator.logger.error("Cannot parse %s %s webhook: %s", client_type, event_type, e)
        return f"Invalid {event_type} webhook: {e}"

    if parsed is None:
        return f"Ignored event: {event_type}"

    if parsed.event_type == "pull_request":
        if not is_reviewable_pull_request(parsed):
            return f"Ignored pull request action: {parsed.action or parsed.state}"
        orchestrator.handle_pull_request(parsed)
        return f"Pull request {parsed.project_name}#{parsed.pull_number} processed"

    if parsed.event_type == "push":
        orchestrator.handle_push(parsed)
        return f"Push to {parsed.project_name}@{parsed.branch_name} processed"

    return f"Ignored event: {event_type}"
