"""Review lifecycle: the only code that writes CodeReview.status.

    PENDING     → IN_PROGRESS   dispatch accepted by the backend
    PENDING     → FAILED        dispatch impossible (nothing to analyze)
    IN_PROGRESS → COMPLETED     non-empty reply, AnalysisResult attached
    IN_PROGRESS → FAILED        backend error, empty reply or timeout
    FAILED      → PENDING       explicit retry, same review id
    COMPLETED                   terminal

Every transition is one BaseStore.update() call; the store validates the
edge under the record's lock. Upstream failures are recorded on the review
and never raised, so one bad file does not abort a batch.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Iterable

from reviewdeck_core.config import DEFAULT_PROMPT
from reviewdeck_core.extractor import ExtractionContext, ResultExtractor
from reviewdeck_core.providers.anthropic import AnthropicAnalyzer
from reviewdeck_core.providers.base import AnalysisRequest
from reviewdeck_core.providers.openai import OpenAIAnalyzer
from reviewdeck_store.errors import InvalidTransitionError, UpstreamAnalysisError
from reviewdeck_store.models import CodeReview, ReviewDraft, ReviewStatus

if TYPE_CHECKING:
    from reviewdeck_core.providers.base import BaseAnalyzer
    from reviewdeck_store.base import BaseStore

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_MESSAGE = "Analysis backend returned an empty response"
NO_CONTENT_MESSAGE = "Nothing to analyze: the review has no file content"


def get_analyzer(config: dict) -> BaseAnalyzer:
    model = config["model"]
    if model == "anthropic":
        return AnthropicAnalyzer(api_key=config["anthropic_api_key"])
    if model == "openai":
        return OpenAIAnalyzer(api_key=config["openai_api_key"])
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")


class LifecycleController:
    """Drives reviews through the state machine above."""

    def __init__(
        self,
        store: BaseStore,
        extractor: ResultExtractor | None = None,
        clock: Callable[[], datetime] | None = None,
        max_chars: int | None = None,
    ):
        self.store = store
        self.extractor = extractor or ResultExtractor()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_chars = max_chars

    def submit(self, draft: ReviewDraft) -> CodeReview:
        review = self.store.create(draft)
        logger.info("review %s: submitted %s (%s)", review.id, review.file_name, review.repository_id)
        return review

    def start(self, review_id: str, model_id: str | None = None) -> CodeReview:
        changes: dict = {}
        if model_id:
            changes["model_id"] = model_id
        return self._transition(review_id, ReviewStatus.IN_PROGRESS, **changes)

    def complete(self, review_id: str, raw_text: str, context: ExtractionContext | None = None) -> CodeReview:
        """Attach the extracted result, or fail the review if ``raw_text`` is blank."""
        if not raw_text or not raw_text.strip():
            return self.fail(review_id, EMPTY_RESPONSE_MESSAGE)

        if context is None:
            review = self.store.get(review_id)
            context = ExtractionContext(
                file_name=review.file_name,
                file_content=review.file_content,
                model_id=review.model_id,
            )
        result = self.extractor.extract(raw_text, context)
        return self._transition(
            review_id,
            ReviewStatus.COMPLETED,
            analysis_result=result,
            error_message=None,
            completed_at=self._clock(),
        )

    def fail(self, review_id: str, message: str) -> CodeReview:
        logger.warning("review %s: analysis failed: %s", review_id, message)
        return self._transition(
            review_id,
            ReviewStatus.FAILED,
            error_message=message or "Analysis failed",
            analysis_result=None,
        )

    def time_out(self, review_id: str, seconds: float) -> CodeReview:
        """Fail an IN_PROGRESS review whose backend did not answer in time."""
        return self.fail(review_id, f"Analysis timed out after {seconds:g}s without a response")

    def retry(self, review_id: str) -> CodeReview:
        """Send a FAILED review back to PENDING under the same id."""
        return self._transition(review_id, ReviewStatus.PENDING, error_message=None, analysis_result=None)

    def dispatch(
        self,
        review_id: str,
        backend: BaseAnalyzer,
        model_id: str | None = None,
        prompt: str | None = None,
    ) -> CodeReview:
        """Run one PENDING review through ``backend`` synchronously.

        Returns the review in its final state (COMPLETED or FAILED). Raises
        only for caller errors: unknown id, or a review that is not PENDING.
        """
        review = self.store.get(review_id)
        if review.status is not ReviewStatus.PENDING:
            raise InvalidTransitionError(review.status, ReviewStatus.IN_PROGRESS, review_id)

        code = review.file_content or ""
        if not code.strip():
            return self.fail(review_id, NO_CONTENT_MESSAGE)
        if self.max_chars and len(code) > self.max_chars:
            code = code[: self.max_chars] + "\n... [file truncated]"

        model = model_id or backend.MODEL or None
        self.start(review_id, model_id=model)
        request = AnalysisRequest(code=code, file_name=review.file_name, model_id=model, prompt=prompt or DEFAULT_PROMPT)
        try:
            raw = backend.analyze(request)
        except UpstreamAnalysisError as e:
            return self.fail(review_id, str(e))
        except Exception as e:
            # A misbehaving backend must not leave the review stuck IN_PROGRESS.
            logger.exception("review %s: unexpected backend error", review_id)
            return self.fail(review_id, f"{type(e).__name__}: {e}")

        context = ExtractionContext(file_name=review.file_name, file_content=review.file_content, model_id=model)
        return self.complete(review_id, raw, context)

    def dispatch_many(
        self,
        review_ids: Iterable[str],
        backend: BaseAnalyzer,
        model_id: str | None = None,
        prompt: str | None = None,
    ) -> list[CodeReview]:
        """Dispatch each review in order with the same backend.

        Backend failures only mark that review FAILED and the batch carries on.
        An unknown id or a review that is not PENDING raises and stops the
        batch; reviews dispatched before it keep their outcome.
        """
        return [self.dispatch(review_id, backend, model_id=model_id, prompt=prompt) for review_id in review_ids]

    def _transition(self, review_id: str, target: ReviewStatus, **changes) -> CodeReview:
        review = self.store.update(review_id, {"status": target, **changes})
        logger.info("review %s: -> %s", review_id, target.value)
        return review
