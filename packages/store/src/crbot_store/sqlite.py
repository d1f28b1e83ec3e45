"""SQLiteStore — local file-based store for a single bot deployment.

Schema:
  merge_request_reviews — one row per pull request; commits and review
                          records are JSON columns, the last reviewed
                          commit is denormalised for the compare-and-swap.
  push_reviews          — one row per reviewed push.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict
from typing import TYPE_CHECKING, Iterator, Optional

from crbot_store.base import BaseStore, ConcurrentUpdateError, DuplicateReviewError, StoreError
from crbot_store.models import (
    MergeRequestReview,
    PushReview,
    ReviewQuery,
    merge_request_review_from_dict,
    now_ms,
    push_review_from_dict,
)

if TYPE_CHECKING:
    from crbot_store.models import CommitRecord, ReviewRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS merge_request_reviews (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    identifier      TEXT NOT NULL UNIQUE,
    project_name    TEXT NOT NULL,
    author          TEXT,
    source_branch   TEXT,
    target_branch   TEXT,
    url             TEXT,
    webhook_data    TEXT DEFAULT '{}',
    additions       INTEGER DEFAULT 0,
    deletions       INTEGER DEFAULT 0,
    commits         TEXT DEFAULT '[]',
    review_records  TEXT DEFAULT '[]',
    last_commit_id  TEXT,
    created_at      INTEGER NOT NULL,
    updated_at      INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_mr_project ON merge_request_reviews (project_name);
CREATE INDEX IF NOT EXISTS idx_mr_updated ON merge_request_reviews (updated_at);

CREATE TABLE IF NOT EXISTS push_reviews (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    project_name    TEXT NOT NULL,
    author          TEXT,
    branch          TEXT,
    commit_messages TEXT,
    review_result   TEXT,
    url_slug        TEXT,
    webhook_data    TEXT DEFAULT '{}',
    additions       INTEGER DEFAULT 0,
    deletions       INTEGER DEFAULT 0,
    updated_at      INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_push_project ON push_reviews (project_name);
CREATE INDEX IF NOT EXISTS idx_push_updated ON push_reviews (updated_at);
"""


def _where(query: Optional[ReviewQuery]) -> tuple[str, list]:
    if query is None:
        return "", []
    clauses, params = [], []
    if query.authors:
        clauses.append(f"author IN ({', '.join('?' * len(query.authors))})")
        params.extend(query.authors)
    if query.project_names:
        clauses.append(f"project_name IN ({', '.join('?' * len(query.project_names))})")
        params.extend(query.project_names)
    if query.updated_at_gte is not None:
        clauses.append("updated_at >= ?")
        params.append(query.updated_at_gte)
    if query.updated_at_lte is not None:
        clauses.append("updated_at <= ?")
        params.append(query.updated_at_lte)
    if not clauses:
        return "", []
    return " WHERE " + " AND ".join(clauses), params


class SQLiteStore(BaseStore):
    """Stores review history in a local SQLite database file.

    The database file path defaults to `.crbot.db` in the current working
    directory. Configure via .crbot.yml: `store_path: /path/to/crbot.db`.
    """

    def __init__(self, db_path: str = ".crbot.db"):
        try:
            self._conn = sqlite3.connect(db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open SQLite store at {db_path}: {e}") from e

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._conn:
                yield self._conn
        except sqlite3.IntegrityError as e:
            raise DuplicateReviewError(str(e)) from e
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    # ------------------------------------------------------------------ #
    # Pull request aggregates                                              #
    # ------------------------------------------------------------------ #

    def create_merge_request_review(self, review: MergeRequestReview) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO merge_request_reviews
                  (identifier, project_name, author, source_branch, target_branch, url,
                   webhook_data, additions, deletions, commits, review_records,
                   last_commit_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    review.identifier,
                    review.project_name,
                    review.author,
                    review.source_branch,
                    review.target_branch,
                    review.url,
                    json.dumps(review.webhook_data),
                    review.additions,
                    review.deletions,
                    json.dumps([asdict(c) for c in review.commits]),
                    json.dumps([asdict(r) for r in review.review_records]),
                    review.last_commit_id,
                    review.created_at,
                    review.updated_at,
                ),
            )

    def get_merge_request_review(self, identifier: str) -> Optional[MergeRequestReview]:
        try:
            row = self._conn.execute(
                "SELECT * FROM merge_request_reviews WHERE identifier=?", (identifier,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        return self._row_to_review(row) if row else None

    def append_review_record(
        self,
        identifier: str,
        record: ReviewRecord,
        commits: list[CommitRecord],
        additions: int,
        deletions: int,
        expected_last_commit_id: Optional[str] = None,
    ) -> None:
        current = self.get_merge_request_review(identifier)
        if current is None:
            raise StoreError(f"No review found for {identifier!r}")

        # Guard on what we read when the caller did not ask for a specific value,
        # so a concurrent append between read and write is never overwritten.
        guard = expected_last_commit_id if expected_last_commit_id is not None else current.last_commit_id
        records = [asdict(r) for r in current.review_records] + [asdict(record)]

        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE merge_request_reviews
                   SET review_records=?, last_commit_id=?, commits=?,
                       additions=?, deletions=?, updated_at=?
                 WHERE identifier=? AND last_commit_id IS ?
                """,
                (
                    json.dumps(records),
                    record.last_commit_id,
                    json.dumps([asdict(c) for c in commits]),
                    additions,
                    deletions,
                    now_ms(),
                    identifier,
                    guard,
                ),
            )
        if cur.rowcount == 0:
            raise ConcurrentUpdateError(f"{identifier!r} was updated concurrently (expected last commit {guard!r})")

    def list_merge_request_reviews(self, query: Optional[ReviewQuery] = None) -> list[MergeRequestReview]:
        where, params = _where(query)
        try:
            rows = self._conn.execute(
                f"SELECT * FROM merge_request_reviews{where} ORDER BY updated_at DESC", params
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        return [self._row_to_review(r) for r in rows]

    # ------------------------------------------------------------------ #
    # Push reviews                                                         #
    # ------------------------------------------------------------------ #

    def create_push_review(self, review: PushReview) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO push_reviews
                  (project_name, author, branch, commit_messages, review_result, url_slug,
                   webhook_data, additions, deletions, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    review.project_name,
                    review.author,
                    review.branch,
                    review.commit_messages,
                    review.review_result,
                    review.url_slug,
                    json.dumps(review.webhook_data),
                    review.additions,
                    review.deletions,
                    review.updated_at,
                ),
            )

    def list_push_reviews(self, query: Optional[ReviewQuery] = None) -> list[PushReview]:
        where, params = _where(query)
        try:
            rows = self._conn.execute(f"SELECT * FROM push_reviews{where} ORDER BY updated_at DESC", params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        return [
            push_review_from_dict({**dict(r), "webhook_data": json.loads(r["webhook_data"] or "{}")}) for r in rows
        ]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_review(row: sqlite3.Row) -> MergeRequestReview:
        d = dict(row)
        d["webhook_data"] = json.loads(d.get("webhook_data") or "{}")
        d["commits"] = json.loads(d.get("commits") or "[]")
        d["review_records"] = json.loads(d.get("review_records") or "[]")
        return merge_request_review_from_dict(d)
