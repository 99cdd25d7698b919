"""Review data models.

Decoupled from reviewdeck_core so the store layer can be used on its own.
The status enum and its transition table live here because the store
enforces them on every update.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class IssueType(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"


# Authoritative state machine definition.
VALID_TRANSITIONS: dict[ReviewStatus, frozenset[ReviewStatus]] = {
    ReviewStatus.PENDING: frozenset({ReviewStatus.IN_PROGRESS, ReviewStatus.FAILED}),
    ReviewStatus.IN_PROGRESS: frozenset({ReviewStatus.COMPLETED, ReviewStatus.FAILED}),
    ReviewStatus.COMPLETED: frozenset(),  # terminal
    ReviewStatus.FAILED: frozenset({ReviewStatus.PENDING}),
}


def can_transition(current: ReviewStatus, target: ReviewStatus) -> bool:
    return target in VALID_TRANSITIONS[current]


@dataclass(frozen=True)
class Issue:
    """A single problem found in the reviewed code."""

    type: IssueType
    message: str
    severity: int
    line: int | None = None


@dataclass(frozen=True)
class AnalysisResult:
    """Structured outcome of one analysis. Immutable once attached to a review."""

    quality_score: int
    issues: tuple[Issue, ...] = ()
    suggestions: tuple[str, ...] = ()
    raw_review: str = ""

    @property
    def critical_issues(self) -> int:
        return sum(1 for i in self.issues if i.type is IssueType.CRITICAL)


@dataclass
class ReviewDraft:
    """Submission input for BaseStore.create().

    Either file_content or commit_sha identifies what is reviewed; the
    repository connector fills commit metadata for commit-level reviews.
    """

    file_name: str
    repository_id: str
    developer: str
    file_path: str = ""
    file_content: str | None = None
    commit_sha: str | None = None
    branch: str = ""
    title: str = ""
    review_prompt_id: str | None = None


@dataclass
class CodeReview:
    id: str
    file_name: str
    repository_id: str
    developer: str
    created_at: datetime
    status: ReviewStatus = ReviewStatus.PENDING
    file_path: str = ""
    file_content: str | None = None
    commit_sha: str | None = None
    branch: str = ""
    title: str = ""
    review_prompt_id: str | None = None
    model_id: str | None = None
    analysis_result: AnalysisResult | None = None
    error_message: str | None = None
    completed_at: datetime | None = None


@dataclass
class ReviewFilter:
    """Conjunctive filter for BaseStore.list_reviews(). None means "match all"."""

    repository_id: str | None = None
    status: ReviewStatus | None = None
    developer: str | None = None
    created_after: datetime | None = None  # inclusive
    created_before: datetime | None = None  # exclusive
    search: str | None = None

    def matches(self, review: CodeReview) -> bool:
        if self.repository_id is not None and review.repository_id != self.repository_id:
            return False
        if self.status is not None and review.status is not self.status:
            return False
        if self.developer is not None and review.developer != self.developer:
            return False
        if self.created_after is not None and review.created_at < self.created_after:
            return False
        if self.created_before is not None and review.created_at >= self.created_before:
            return False
        if self.search:
            needle = self.search.lower()
            haystack = (review.file_name, review.branch, review.developer)
            if not any(needle in (value or "").lower() for value in haystack):
                return False
        return True


# Fields the lifecycle controller may patch through BaseStore.update().
PATCHABLE_FIELDS = frozenset({"status", "analysis_result", "error_message", "completed_at", "model_id"})


def issue_to_dict(issue: Issue) -> dict:
    return {"type": issue.type.value, "message": issue.message, "line": issue.line, "severity": issue.severity}


def issue_from_dict(d: dict) -> Issue:
    return Issue(
        type=IssueType(d.get("type", IssueType.INFO.value)),
        message=d.get("message", ""),
        line=d.get("line"),
        severity=d.get("severity", 1),
    )


def result_to_dict(result: AnalysisResult) -> dict:
    return {
        "quality_score": result.quality_score,
        "issues": [issue_to_dict(i) for i in result.issues],
        "suggestions": list(result.suggestions),
        "raw_review": result.raw_review,
    }


def result_from_dict(d: dict) -> AnalysisResult:
    return AnalysisResult(
        quality_score=d.get("quality_score", 0),
        issues=tuple(issue_from_dict(i) for i in d.get("issues", [])),
        suggestions=tuple(d.get("suggestions", [])),
        raw_review=d.get("raw_review", ""),
    )


def review_to_dict(review: CodeReview) -> dict:
    """Plain JSON-serializable form used for persistence and export."""
    return {
        "id": review.id,
        "file_name": review.file_name,
        "file_path": review.file_path,
        "file_content": review.file_content,
        "commit_sha": review.commit_sha,
        "repository_id": review.repository_id,
        "branch": review.branch,
        "developer": review.developer,
        "title": review.title,
        "status": review.status.value,
        "review_prompt_id": review.review_prompt_id,
        "model_id": review.model_id,
        "analysis_result": result_to_dict(review.analysis_result) if review.analysis_result else None,
        "error_message": review.error_message,
        "created_at": review.created_at.isoformat(),
        "completed_at": review.completed_at.isoformat() if review.completed_at else None,
    }
