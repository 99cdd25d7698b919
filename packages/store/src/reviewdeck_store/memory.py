"""In-memory store: the backend for tests and single-process deployments.

Nothing survives the process. Records are copied on the way in and out so
callers holding a CodeReview never see (or cause) changes behind the
store's back.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import TYPE_CHECKING, Iterator

from reviewdeck_store.base import BaseStore

if TYPE_CHECKING:
    from reviewdeck_store.models import CodeReview, ReviewStatus


class MemoryStore(BaseStore):
    """Keeps reviews in a dict keyed by id."""

    def __init__(self, clock=None):
        super().__init__(clock=clock)
        self._reviews: dict[str, CodeReview] = {}
        # Guards the dict itself; per-record ordering is BaseStore's job.
        self._mutex = threading.Lock()

    def _insert(self, review: CodeReview) -> None:
        with self._mutex:
            self._reviews[review.id] = dataclasses.replace(review)

    def _fetch(self, review_id: str) -> CodeReview | None:
        with self._mutex:
            review = self._reviews.get(review_id)
        return dataclasses.replace(review) if review is not None else None

    def _replace(self, review: CodeReview, expected_status: ReviewStatus) -> bool:
        with self._mutex:
            stored = self._reviews.get(review.id)
            if stored is None or stored.status is not expected_status:
                return False
            self._reviews[review.id] = dataclasses.replace(review)
        return True

    def _remove(self, review_id: str) -> bool:
        with self._mutex:
            return self._reviews.pop(review_id, None) is not None

    def _all(self) -> Iterator[CodeReview]:
        with self._mutex:
            snapshot = list(self._reviews.values())
        for review in snapshot:
            yield dataclasses.replace(review)
