"""Base analysis backend implementing the Template Method pattern.

All providers share the same algorithm:
    analyze() → _build_system_prompt() + _build_user_prompt()
              → _call_with_retry() → _call_api()   ← only this differs per provider

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

The backend returns the model's prose untouched; turning it into a score,
issues and suggestions is the ResultExtractor's job. Any failure, including
an empty reply, surfaces as UpstreamAnalysisError so the lifecycle
controller can record it on the review.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from reviewdeck_core.config import DEFAULT_PROMPT
from reviewdeck_store.errors import UpstreamAnalysisError

logger = logging.getLogger(__name__)

# Shared defaults; subclasses may override as class attributes if needed.
_MAX_RETRIES = 3
_MAX_TOKENS = 4096


@dataclass(frozen=True)
class AnalysisRequest:
    """What the core sends to a backend: the code, its file name and the model."""

    code: str
    file_name: str
    model_id: str | None = None
    prompt: str = DEFAULT_PROMPT


class BaseAnalyzer(ABC):
    MODEL: str = ""
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def analyze(self, request: AnalysisRequest) -> str:
        """Send one file to the model and return its raw text reply.

        Raises UpstreamAnalysisError when every attempt failed or the reply
        is blank.
        """
        model = request.model_id or self.MODEL
        system = self._build_system_prompt(request.prompt)
        user = self._build_user_prompt(request.file_name, request.code)
        raw = self._call_with_retry(system, user, model)
        if not raw or not raw.strip():
            raise UpstreamAnalysisError(f"{self.__class__.__name__} returned an empty response")
        return raw

    # ------------------------------------------------------------------ #
    # Abstract, implemented by each provider                            #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str, model: str) -> str:
        """Make a single API call and return the raw text response.

        It should raise on failure — _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str, model: str) -> str:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(system_prompt, user_prompt, model)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise UpstreamAnalysisError(
                        f"{self.__class__.__name__} failed after {self.MAX_RETRIES} attempts: {e}"
                    ) from e
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        raise UpstreamAnalysisError(f"{self.__class__.__name__} made no attempts (MAX_RETRIES={self.MAX_RETRIES})")

    def _build_system_prompt(self, review_prompt: str) -> str:
        return f"""You are a strict and precise senior code reviewer.

{review_prompt}

Rules:
- Write your review as plain prose, not JSON.
- Reference line numbers as "line N" when pointing at specific code.
- Do not comment on code that already follows best practices.
- Avoid assumptions when context is unclear. Be concise and actionable."""

    def _build_user_prompt(self, file_name: str, code: str) -> str:
        return f"""Review the file `{file_name}`.

## File Content
{code}"""
