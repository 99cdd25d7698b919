"""Abstract store interface.

Any storage backend (in-memory, SQLite, Postgres) implements this
interface. reviewdeck_core depends on BaseStore, not on a concrete backend,
so backends are swappable without touching the lifecycle or metrics code.

BaseStore owns the rules every backend must share: required-field
validation on create, the patchable-field whitelist and the state machine
check on update, and per-record write serialization. Backends only
implement raw persistence (_insert, _fetch, _replace, _remove, _all).
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Iterator

from reviewdeck_store.errors import InvalidTransitionError, NotFoundError, ValidationError
from reviewdeck_store.models import (
    PATCHABLE_FIELDS,
    CodeReview,
    ReviewDraft,
    ReviewFilter,
    ReviewStatus,
    can_transition,
)

logger = logging.getLogger(__name__)

_REQUIRED_DRAFT_FIELDS = ("file_name", "repository_id", "developer")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseStore(ABC):
    """Pluggable persistence layer for code reviews.

    ``clock`` supplies the creation timestamp; tests inject a fixed clock to
    place records inside or outside a dashboard window.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or utcnow
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def create(self, draft: ReviewDraft) -> CodeReview:
        """Persist a new review in PENDING state and return it."""
        missing = [name for name in _REQUIRED_DRAFT_FIELDS if not (getattr(draft, name) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

        review = CodeReview(
            id=uuid.uuid4().hex,
            file_name=draft.file_name.strip(),
            repository_id=draft.repository_id.strip(),
            developer=draft.developer.strip(),
            created_at=self._clock(),
            status=ReviewStatus.PENDING,
            file_path=draft.file_path or draft.file_name,
            file_content=draft.file_content,
            commit_sha=draft.commit_sha,
            branch=draft.branch,
            title=draft.title,
            review_prompt_id=draft.review_prompt_id,
        )
        self._insert(review)
        logger.debug("Created review %s for %s in %s", review.id, review.file_name, review.repository_id)
        return dataclasses.replace(review)

    def get(self, review_id: str) -> CodeReview:
        """Return the review with ``review_id`` or raise NotFoundError."""
        review = self._fetch(review_id)
        if review is None:
            raise NotFoundError(review_id)
        return review

    def update(self, review_id: str, patch: dict) -> CodeReview:
        """Apply a lifecycle patch atomically with respect to other writers of the same id.

        The transition check and the write happen under the record's lock,
        and the backend only writes if the stored status is still the one
        that was checked. Two concurrent retries of one FAILED review cannot
        both succeed, even from separate processes sharing one database.
        """
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(f"Field(s) not updatable: {', '.join(sorted(unknown))}")

        changes = dict(patch)
        with self._record_lock(review_id):
            try:
                review = self.get(review_id)
            except NotFoundError:
                self._drop_lock(review_id)
                raise
            if "status" in changes:
                target = ReviewStatus(changes["status"])
                if not can_transition(review.status, target):
                    raise InvalidTransitionError(review.status, target, review_id)
                changes["status"] = target
            updated = dataclasses.replace(review, **changes)
            _check_consistent(updated)
            if not self._replace(updated, expected_status=review.status):
                # Another writer changed the record between our read and write.
                current = self.get(review_id)
                raise InvalidTransitionError(current.status, updated.status, review_id)
        return updated

    def list_reviews(self, review_filter: ReviewFilter | None = None) -> list[CodeReview]:
        """Return reviews matching ``review_filter``, oldest first.

        Returns an empty list when nothing matches; never raises.
        """
        review_filter = review_filter or ReviewFilter()
        matched = [r for r in self._all() if review_filter.matches(r)]
        return sorted(matched, key=lambda r: r.created_at)

    def delete(self, review_id: str) -> None:
        """Remove a review permanently. Deleting an unknown id is a no-op."""
        with self._record_lock(review_id):
            removed = self._remove(review_id)
        self._drop_lock(review_id)
        if not removed:
            logger.debug("delete(%s): no such review, ignoring", review_id)

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional; subclasses that need cleanup should override this.
        """

    # ------------------------------------------------------------------ #
    # Abstract, implemented by each backend                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _insert(self, review: CodeReview) -> None:
        """Store a brand new review."""

    @abstractmethod
    def _fetch(self, review_id: str) -> CodeReview | None:
        """Return a copy of the stored review, or None."""

    @abstractmethod
    def _replace(self, review: CodeReview, expected_status: ReviewStatus) -> bool:
        """Overwrite the stored review with the same id if its status is still ``expected_status``.

        Returns False, writing nothing, when the stored status differs or
        the record is gone.
        """

    @abstractmethod
    def _remove(self, review_id: str) -> bool:
        """Delete the review; return False if it did not exist."""

    @abstractmethod
    def _all(self) -> Iterator[CodeReview]:
        """Yield every stored review (copies, in any order)."""

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    def _record_lock(self, review_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(review_id)
            if lock is None:
                lock = self._locks[review_id] = threading.Lock()
            return lock

    def _drop_lock(self, review_id: str) -> None:
        with self._locks_guard:
            self._locks.pop(review_id, None)


def _check_consistent(review: CodeReview) -> None:
    """A result exists only on COMPLETED reviews, an error message only on FAILED ones."""
    completed = review.status is ReviewStatus.COMPLETED
    failed = review.status is ReviewStatus.FAILED
    if completed != (review.analysis_result is not None):
        raise ValidationError(
            f"analysis_result must be set if and only if status is COMPLETED (status is {review.status.value})"
        )
    if failed != (review.error_message is not None):
        raise ValidationError(
            f"error_message must be set if and only if status is FAILED (status is {review.status.value})"
        )
