"""Abstract store interface.

Any storage backend (Gist, SQLite, Postgres) implements this interface. The
orchestrator and the CLI depend on BaseStore, not on a concrete backend, so
backends are swappable without touching either.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from crbot_store.models import CommitRecord, MergeRequestReview, PushReview, ReviewQuery, ReviewRecord


class StoreError(Exception):
    """A backend failed to read or write."""


class DuplicateReviewError(StoreError):
    """A MergeRequestReview with the same identifier already exists."""


class ConcurrentUpdateError(StoreError):
    """The aggregate moved on since it was read (compare-and-swap lost)."""


class BaseStore(ABC):
    """Pluggable persistence for pull request and push reviews.

    Only the orchestrator creates and appends; every other caller reads.
    Errors propagate as StoreError so the caller decides how to degrade.
    """

    @abstractmethod
    def create_merge_request_review(self, review: MergeRequestReview) -> None:
        """Persist a new aggregate. Raises DuplicateReviewError if it exists."""

    @abstractmethod
    def get_merge_request_review(self, identifier: str) -> Optional[MergeRequestReview]:
        """Return the aggregate for ``identifier`` or None."""

    @abstractmethod
    def append_review_record(
        self,
        identifier: str,
        record: ReviewRecord,
        commits: list[CommitRecord],
        additions: int,
        deletions: int,
        expected_last_commit_id: Optional[str] = None,
    ) -> None:
        """Append ``record``, replace the commit snapshot and stats.

        When ``expected_last_commit_id`` is given and the stored aggregate's
        last reviewed commit differs, nothing is written and
        ConcurrentUpdateError is raised.
        """

    @abstractmethod
    def list_merge_request_reviews(self, query: Optional[ReviewQuery] = None) -> list[MergeRequestReview]:
        """Aggregates matching ``query``, most recently updated first."""

    @abstractmethod
    def create_push_review(self, review: PushReview) -> None:
        """Persist one push review."""

    @abstractmethod
    def list_push_reviews(self, query: Optional[ReviewQuery] = None) -> list[PushReview]:
        """Push reviews matching ``query``, most recently updated first."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional. The default is a no-op so callers can always call close().
        """
