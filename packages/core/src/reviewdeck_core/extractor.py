"""Heuristic extraction of a structured AnalysisResult from free-form model text.

The analysis backend answers in prose (usually Portuguese, the language the
review prompts were written in). Scoring, issue detection and suggestions
are keyword heuristics over that prose:

    score        75 + 5 per positive keyword - 8 per negative keyword, clamped to [40, 100]
    issues       one Issue per matching trigger rule, never duplicated
    suggestions  generic list, topic suggestions prepended, capped at 5

The thresholds and keyword lists are part of the observable contract:
changing them changes every stored score. Extraction is pure and
deterministic; even the fallback line numbers come from a stable hash.
"""

from __future__ import annotations

import logging
import re
import zlib
from dataclasses import dataclass

from reviewdeck_store.models import AnalysisResult, Issue, IssueType

logger = logging.getLogger(__name__)

BASE_SCORE = 75
POSITIVE_BONUS = 5
NEGATIVE_PENALTY = 8
MIN_SCORE = 40
MAX_SCORE = 100
MAX_SUGGESTIONS = 5
# Fallback line numbers fall in [1, FALLBACK_LINE_SPAN].
FALLBACK_LINE_SPAN = 20

POSITIVE_KEYWORDS: tuple[str, ...] = ("boa qualidade", "bem estruturado", "adequado", "correto", "bom")
NEGATIVE_KEYWORDS: tuple[str, ...] = ("problema", "erro", "crítico", "vulnerabilidade", "melhorar")


@dataclass(frozen=True)
class IssueRule:
    name: str
    triggers: tuple[str, ...]
    type: IssueType
    message: str
    severity: int


ISSUE_RULES: tuple[IssueRule, ...] = (
    IssueRule(
        name="credentials",
        triggers=("senha", "password"),
        type=IssueType.CRITICAL,
        message="Possible security risk: password or credential handled in plain text",
        severity=9,
    ),
    IssueRule(
        name="null-handling",
        triggers=("null", "nullpointer"),
        type=IssueType.WARNING,
        message="Possible NullPointerException risk: value used without a null check",
        severity=6,
    ),
    IssueRule(
        name="performance",
        triggers=("performance", "lento"),
        type=IssueType.INFO,
        message="Performance improvement opportunity identified",
        severity=3,
    ),
    IssueRule(
        name="connection-leak",
        triggers=("empresta", "devolve", "conexão"),
        type=IssueType.CRITICAL,
        message="Check the empresta()/devolve() pattern to avoid leaking database connections",
        severity=9,
    ),
)

GENERIC_SUGGESTIONS: tuple[str, ...] = (
    "Consider adding more robust input validation",
    "Add proper logging to make debugging easier",
    "Handle exceptions with specific exception types",
    "Consider applying appropriate design patterns",
    "Document public methods",
)

# Applied in order, each one prepended: the last match ends up first.
TOPIC_SUGGESTIONS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("conexão", "database"), "Use the empresta()/devolve() pattern to manage connections"),
    (("segurança", "security"), "Review the security practices in this code"),
    (("performance",), "Consider the suggested performance optimizations"),
)

_LINE_REF_RE = re.compile(r"\b(?:line|linha)s?\s*:?\s*(\d+)")
_SENTENCE_BREAK_RE = re.compile(r"[.!?\n]")


@dataclass(frozen=True)
class ExtractionContext:
    """Request context an extraction may use. Never affects the score."""

    file_name: str = ""
    file_content: str | None = None
    model_id: str | None = None


class ResultExtractor:
    """Converts raw backend text into an AnalysisResult.

    Keyword lists default to the built-in ones; ``from_config`` lets a
    deployment override them under the ``scoring`` key.
    """

    def __init__(
        self,
        positive_keywords: tuple[str, ...] | list[str] | None = None,
        negative_keywords: tuple[str, ...] | list[str] | None = None,
    ):
        self.positive_keywords = tuple(k.lower() for k in (positive_keywords or POSITIVE_KEYWORDS))
        self.negative_keywords = tuple(k.lower() for k in (negative_keywords or NEGATIVE_KEYWORDS))

    @classmethod
    def from_config(cls, config: dict) -> ResultExtractor:
        scoring = config.get("scoring") or {}
        return cls(
            positive_keywords=scoring.get("positive_keywords"),
            negative_keywords=scoring.get("negative_keywords"),
        )

    def extract(self, raw_text: str, context: ExtractionContext | None = None) -> AnalysisResult:
        """Build the AnalysisResult for ``raw_text``. Never raises."""
        context = context or ExtractionContext()
        raw_text = raw_text or ""
        text = raw_text.lower()

        result = AnalysisResult(
            quality_score=self.score(text),
            issues=self.find_issues(text, context),
            suggestions=self.suggest(text),
            raw_review=raw_text,
        )
        logger.debug(
            "Extracted score=%d issues=%d suggestions=%d from %d chars",
            result.quality_score,
            len(result.issues),
            len(result.suggestions),
            len(raw_text),
        )
        return result

    def score(self, text: str) -> int:
        text = text.lower()
        score = BASE_SCORE
        score += POSITIVE_BONUS * sum(1 for k in self.positive_keywords if k in text)
        score -= NEGATIVE_PENALTY * sum(1 for k in self.negative_keywords if k in text)
        return max(MIN_SCORE, min(MAX_SCORE, score))

    def find_issues(self, text: str, context: ExtractionContext) -> tuple[Issue, ...]:
        text = text.lower()
        issues = []
        for rule in ISSUE_RULES:
            positions = [text.find(t) for t in rule.triggers if t in text]
            if not positions:
                continue
            line = _line_reference(text, min(positions))
            if line is None:
                line = _fallback_line(rule, text, context)
            issues.append(Issue(type=rule.type, message=rule.message, severity=rule.severity, line=line))
        return tuple(issues)

    def suggest(self, text: str) -> tuple[str, ...]:
        text = text.lower()
        suggestions = list(GENERIC_SUGGESTIONS)
        for triggers, suggestion in TOPIC_SUGGESTIONS:
            if any(t in text for t in triggers):
                suggestions.insert(0, suggestion)
        return tuple(suggestions[:MAX_SUGGESTIONS])


def _line_reference(text: str, position: int) -> int | None:
    """Return a "line N"/"linha N" number from the sentence around ``position``."""
    start = 0
    for match in _SENTENCE_BREAK_RE.finditer(text, 0, position):
        start = match.end()
    end_match = _SENTENCE_BREAK_RE.search(text, position)
    end = end_match.start() if end_match else len(text)

    match = _LINE_REF_RE.search(text, start, end)
    if match is None:
        return None
    line = int(match.group(1))
    return line if line >= 1 else None


def _fallback_line(rule: IssueRule, text: str, context: ExtractionContext) -> int:
    """Plausible line when the text names none: stable for identical input."""
    span = FALLBACK_LINE_SPAN
    if context.file_content:
        span = max(1, min(span, context.file_content.count("\n") + 1))
    digest = zlib.crc32(f"{rule.name}|{context.file_name}|{text}".encode("utf-8"))
    return digest % span + 1


_default = ResultExtractor()


def extract(raw_text: str, context: ExtractionContext | None = None) -> AnalysisResult:
    """Extract with the built-in keyword lists."""
    return _default.extract(raw_text, context)
