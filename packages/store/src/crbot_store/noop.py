"""No-op store — the default when no store is configured.

Reviews are still posted to the Git host but nothing is remembered, so every
delivery is reviewed as if it were the first. Using a NoOpStore rather than
None lets the orchestrator always call the store without conditional checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from crbot_store.base import BaseStore

if TYPE_CHECKING:
    from crbot_store.models import CommitRecord, MergeRequestReview, PushReview, ReviewQuery, ReviewRecord


class NoOpStore(BaseStore):
    """Silently discards all records — zero configuration required."""

    def create_merge_request_review(self, review: MergeRequestReview) -> None:
        pass  # intentional no-op

    def get_merge_request_review(self, identifier: str) -> Optional[MergeRequestReview]:
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
        pass

    def list_merge_request_reviews(self, query: Optional[ReviewQuery] = None) -> list[MergeRequestReview]:
        return []

    def create_push_review(self, review: PushReview) -> None:
        pass

    def list_push_reviews(self, query: Optional[ReviewQuery] = None) -> list[PushReview]:
        return []
