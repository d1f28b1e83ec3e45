"""GistStore — zero-infrastructure review history in a GitHub Gist.

Data format: a single JSON file named `crbot_history.json` inside the Gist::

    {"merge_request_reviews": [...], "push_reviews": [...]}

Every write reads the whole document, changes it in memory and writes it
back. The compare-and-swap on append is checked against the document just
read, so it narrows the race window but cannot close it the way the SQLite
conditional UPDATE does. Use SQLiteStore for deployments that process
deliveries in parallel.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Optional

from crbot_store.base import BaseStore, ConcurrentUpdateError, DuplicateReviewError, StoreError
from crbot_store.models import (
    MergeRequestReview,
    PushReview,
    ReviewQuery,
    merge_request_review_from_dict,
    now_ms,
    push_review_from_dict,
    to_dict,
)

if TYPE_CHECKING:
    from crbot_store.models import CommitRecord, ReviewRecord

logger = logging.getLogger(__name__)

_GIST_FILENAME = "crbot_history.json"


class GistStore(BaseStore):
    """Stores both collections in one Gist file.

    Reads filter in memory, which suits hundreds or low thousands of
    records. The Gist ID lives in .crbot.yml under `gist_id`.
    """

    def __init__(self, gist_id: str, token: str, gh=None):
        if gh is None:
            from github import Auth, Github

            gh = Github(auth=Auth.Token(token))
        self._gist_id = gist_id
        self._gh = gh

    def _get_gist(self):
        return self._gh.get_gist(self._gist_id)

    def _load(self):
        from github import GithubException

        try:
            gist = self._get_gist()
        except GithubException as e:
            raise StoreError(f"Cannot read gist {self._gist_id}: {e}") from e
        return gist, self._read_document(gist)

    def _save(self, gist, document: dict) -> None:
        from github import GithubException

        try:
            gist.edit(files={_GIST_FILENAME: {"content": json.dumps(document, indent=2, ensure_ascii=False)}})
        except GithubException as e:
            raise StoreError(f"Cannot write gist {self._gist_id}: {e}") from e

    @staticmethod
    def _read_document(gist) -> dict:
        """Read the current JSON document from the Gist file, or an empty one."""
        empty = {"merge_request_reviews": [], "push_reviews": []}
        file_obj = gist.files.get(_GIST_FILENAME)
        if file_obj is None:
            return empty
        try:
            document = json.loads(file_obj.content) or {}
        except (json.JSONDecodeError, TypeError):
            logger.warning("Gist %s holds invalid JSON, starting from an empty history", gist.id)
            return empty
        return {**empty, **document}

    # ------------------------------------------------------------------ #
    # Pull request aggregates                                              #
    # ------------------------------------------------------------------ #

    def create_merge_request_review(self, review: MergeRequestReview) -> None:
        gist, document = self._load()
        if any(d.get("identifier") == review.identifier for d in document["merge_request_reviews"]):
            raise DuplicateReviewError(f"Review {review.identifier!r} already exists")
        document["merge_request_reviews"].append(to_dict(review))
        self._save(gist, document)

    def get_merge_request_review(self, identifier: str) -> Optional[MergeRequestReview]:
        _, document = self._load()
        for d in document["merge_request_reviews"]:
            if d.get("identifier") == identifier:
                return merge_request_review_from_dict(d)
        return None

    def append_review_record(
        self,
        identifier: str,
        record: ReviewRecord,
        commits: list[CommitRecord],
        additions: int,
        deletions: int,
        expected_last_commit_id: Optional[str] = None,
    ) -> None:
        gist, document = self._load()
        target = next((d for d in document["merge_request_reviews"] if d.get("identifier") == identifier), None)
        if target is None:
            raise StoreError(f"No review found for {identifier!r}")

        current = merge_request_review_from_dict(target)
        if expected_last_commit_id is not None and current.last_commit_id != expected_last_commit_id:
            raise ConcurrentUpdateError(
                f"{identifier!r} was updated concurrently (expected last commit {expected_last_commit_id!r})"
            )

        current.review_records.append(record)
        current.commits = list(commits)
        current.additions = additions
        current.deletions = deletions
        current.updated_at = now_ms()
        target.clear()
        target.update(to_dict(current))
        self._save(gist, document)

    def list_merge_request_reviews(self, query: Optional[ReviewQuery] = None) -> list[MergeRequestReview]:
        _, document = self._load()
        reviews = [merge_request_review_from_dict(d) for d in document["merge_request_reviews"]]
        if query is not None:
            reviews = [r for r in reviews if query.matches(r.author, r.project_name, r.updated_at)]
        return sorted(reviews, key=lambda r: r.updated_at, reverse=True)

    # ------------------------------------------------------------------ #
    # Push reviews                                                         #
    # ------------------------------------------------------------------ #

    def create_push_review(self, review: PushReview) -> None:
        gist, document = self._load()
        document["push_reviews"].append(to_dict(review))
        self._save(gist, document)

    def list_push_reviews(self, query: Optional[ReviewQuery] = None) -> list[PushReview]:
        _, document = self._load()
        reviews = [push_review_from_dict(d) for d in document["push_reviews"]]
        if query is not None:
            reviews = [r for r in reviews if query.matches(r.author, r.project_name, r.updated_at)]
        return sorted(reviews, key=lambda r: r.updated_at, reverse=True)
