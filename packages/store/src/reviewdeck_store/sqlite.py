"""SQLiteStore — local file-based store for the CLI and small teams.

Why SQLite as the default persistent store:
- Batteries included: ships with Python, no extra dependencies.
- Indexed lookups on repository/status/developer are cheap, so list
  filters are pushed down into SQL instead of scanning every row.
- One file is easy to share between CI jobs or back up.

Schema:
  reviews — one row per CodeReview. The AnalysisResult (score, issues,
            suggestions, raw text) is embedded as JSON in analysis_json;
            rankings and trends are always recomputed, never stored.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime
from typing import Iterator

from reviewdeck_store.base import BaseStore
from reviewdeck_store.models import (
    CodeReview,
    ReviewFilter,
    ReviewStatus,
    result_from_dict,
    result_to_dict,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reviews (
    id                TEXT PRIMARY KEY,
    file_name         TEXT NOT NULL,
    file_path         TEXT,
    file_content      TEXT,
    commit_sha        TEXT,
    repository_id     TEXT NOT NULL,
    branch            TEXT,
    developer         TEXT NOT NULL,
    title             TEXT,
    status            TEXT NOT NULL,
    review_prompt_id  TEXT,
    model_id          TEXT,
    analysis_json     TEXT,
    error_message     TEXT,
    created_at        TEXT NOT NULL,
    completed_at      TEXT
);
CREATE INDEX IF NOT EXISTS idx_reviews_repo      ON reviews (repository_id);
CREATE INDEX IF NOT EXISTS idx_reviews_status    ON reviews (status);
CREATE INDEX IF NOT EXISTS idx_reviews_developer ON reviews (developer);
CREATE INDEX IF NOT EXISTS idx_reviews_created   ON reviews (created_at);
"""

_COLUMNS = (
    "id",
    "file_name",
    "file_path",
    "file_content",
    "commit_sha",
    "repository_id",
    "branch",
    "developer",
    "title",
    "status",
    "review_prompt_id",
    "model_id",
    "analysis_json",
    "error_message",
    "created_at",
    "completed_at",
)


class SQLiteStore(BaseStore):
    """Stores reviews in a local SQLite database file.

    The database file path defaults to `.reviewdeck.db` in the current
    working directory. Configure via .reviewdeck.yml: `store_path: /path/to/reviews.db`.
    """

    def __init__(self, db_path: str = ".reviewdeck.db", clock=None):
        super().__init__(clock=clock)
        # One connection shared across threads; _conn_lock serializes statements.
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn_lock = threading.RLock()
        with self._conn_lock:
            self._conn.executescript(_SCHEMA)
            self._conn.commit()

    def list_reviews(self, review_filter: ReviewFilter | None = None) -> list[CodeReview]:
        review_filter = review_filter or ReviewFilter()
        clauses: list[str] = []
        params: list = []
        if review_filter.repository_id is not None:
            clauses.append("repository_id = ?")
            params.append(review_filter.repository_id)
        if review_filter.status is not None:
            clauses.append("status = ?")
            params.append(review_filter.status.value)
        if review_filter.developer is not None:
            clauses.append("developer = ?")
            params.append(review_filter.developer)

        sql = "SELECT * FROM reviews"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        with self._conn_lock:
            rows = self._conn.execute(sql, params).fetchall()

        # Date range and free-text search are applied on the decoded rows:
        # timestamps with different UTC offsets do not sort correctly as text.
        reviews = [self._row_to_review(r) for r in rows]
        return sorted((r for r in reviews if review_filter.matches(r)), key=lambda r: r.created_at)

    def close(self) -> None:
        with self._conn_lock:
            self._conn.close()

    def _insert(self, review: CodeReview) -> None:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with self._conn_lock:
            self._conn.execute(
                f"INSERT INTO reviews ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                self._review_to_row(review),
            )
            self._conn.commit()

    def _fetch(self, review_id: str) -> CodeReview | None:
        with self._conn_lock:
            row = self._conn.execute("SELECT * FROM reviews WHERE id = ?", (review_id,)).fetchone()
        return self._row_to_review(row) if row is not None else None

    def _replace(self, review: CodeReview, expected_status: ReviewStatus) -> bool:
        # Other processes may share the file: write only if the status is unchanged.
        assignments = ", ".join(f"{col} = ?" for col in _COLUMNS[1:])
        values = self._review_to_row(review)
        with self._conn_lock:
            cursor = self._conn.execute(
                f"UPDATE reviews SET {assignments} WHERE id = ? AND status = ?",
                (*values[1:], values[0], expected_status.value),
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def _remove(self, review_id: str) -> bool:
        with self._conn_lock:
            cursor = self._conn.execute("DELETE FROM reviews WHERE id = ?", (review_id,))
            self._conn.commit()
        return cursor.rowcount > 0

    def _all(self) -> Iterator[CodeReview]:
        with self._conn_lock:
            rows = self._conn.execute("SELECT * FROM reviews").fetchall()
        for row in rows:
            yield self._row_to_review(row)

    @staticmethod
    def _review_to_row(review: CodeReview) -> tuple:
        analysis_json = json.dumps(result_to_dict(review.analysis_result)) if review.analysis_result else None
        return (
            review.id,
            review.file_name,
            review.file_path,
            review.file_content,
            review.commit_sha,
            review.repository_id,
            review.branch,
            review.developer,
            review.title,
            review.status.value,
            review.review_prompt_id,
            review.model_id,
            analysis_json,
            review.error_message,
            review.created_at.isoformat(),
            review.completed_at.isoformat() if review.completed_at else None,
        )

    @staticmethod
    def _row_to_review(row: sqlite3.Row) -> CodeReview:
        analysis = json.loads(row["analysis_json"]) if row["analysis_json"] else None
        return CodeReview(
            id=row["id"],
            file_name=row["file_name"],
            file_path=row["file_path"] or "",
            file_content=row["file_content"],
            commit_sha=row["commit_sha"],
            repository_id=row["repository_id"],
            branch=row["branch"] or "",
            developer=row["developer"],
            title=row["title"] or "",
            status=ReviewStatus(row["status"]),
            review_prompt_id=row["review_prompt_id"],
            model_id=row["model_id"],
            analysis_result=result_from_dict(analysis) if analysis is not None else None,
            error_message=row["error_message"],
            created_at=datetime.fromisoformat(row["created_at"]),
            completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
        )
