"""Error taxonomy shared by the store, the lifecycle controller and the CLI.

Lives in the store package because the store is the lowest layer that
raises them; reviewdeck_core re-uses these classes rather than defining its
own so callers catch one hierarchy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reviewdeck_store.models import ReviewStatus


class ReviewDeckError(Exception):
    """Base class for every error raised by reviewdeck."""


class ValidationError(ReviewDeckError):
    """Malformed input: missing required fields or unknown patch fields."""


class NotFoundError(ReviewDeckError):
    """No review exists with the requested id."""

    def __init__(self, review_id: str):
        self.review_id = review_id
        super().__init__(f"Review {review_id} not found")


class InvalidTransitionError(ReviewDeckError):
    """A status change not permitted by the review state machine.

    Always a caller bug; never retried automatically.
    """

    def __init__(self, current: ReviewStatus, target: ReviewStatus, review_id: str | None = None):
        self.current = current
        self.target = target
        self.review_id = review_id
        msg = f"Invalid transition from {current.value} to {target.value}"
        if review_id:
            msg += f" for review {review_id}"
        super().__init__(msg)


class UpstreamAnalysisError(ReviewDeckError):
    """The analysis backend failed or returned an empty response.

    Recorded as the review's error_message; the lifecycle controller never
    lets it escape.
    """
