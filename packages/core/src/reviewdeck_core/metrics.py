"""Dashboard metrics computed on demand from the review store.

Every query reads the store through BaseStore.list_reviews() with the same
window filter, so aggregate counts always agree with what a list call over
the same window returns. Nothing here writes to the store and nothing is
cached: rankings and trends are recomputed on each call.
"""

from __future__ import annotations

import logging
import statistics
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable

from reviewdeck_store.errors import ValidationError
from reviewdeck_store.models import CodeReview, IssueType, ReviewFilter, ReviewStatus

if TYPE_CHECKING:
    from reviewdeck_store.base import BaseStore

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30
DEFAULT_RANKING_LIMIT = 5

# Lower bounds of the quality-distribution buckets, highest first.
SCORE_BUCKETS: tuple[tuple[str, int], ...] = (("excellent", 90), ("good", 80), ("average", 70), ("poor", 0))


class TrendPeriod(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


@dataclass(frozen=True)
class DashboardOverview:
    total_reviews: int
    active_repositories: int
    average_quality_score: float
    critical_issues: int
    completion_rate: float  # ratio in [0, 1]
    window_days: int


@dataclass(frozen=True)
class RepositoryRanking:
    subject_id: str
    average_score: float
    total_reviews: int
    critical_issues: int
    trend: float


@dataclass(frozen=True)
class DeveloperRanking:
    subject_id: str
    average_score: float
    total_reviews: int
    critical_issues: int
    trend: float
    improvement: float


@dataclass(frozen=True)
class TrendPoint:
    date: date
    average_score: float
    issue_count: int
    review_count: int


@dataclass(frozen=True)
class IssueStatistics:
    total_issues: int
    by_type: dict[IssueType, int]
    by_severity: dict[int, int]
    top_issues: list[tuple[str, int]]
    by_file: dict[str, int]


@dataclass(frozen=True)
class QualityMetrics:
    analyzed_reviews: int
    average_score: float
    median_score: float
    distribution: dict[str, int]
    scores_by_repository: dict[str, float] = field(default_factory=dict)


@dataclass
class _Group:
    scores: list[int] = field(default_factory=list)
    critical: int = 0
    recent: list[int] = field(default_factory=list)
    earlier: list[int] = field(default_factory=list)


def _mean(values: Iterable[int]) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


class MetricsAggregator:
    """Read-only dashboard queries over a trailing window of ``days``."""

    def __init__(self, store: BaseStore, clock: Callable[[], datetime] | None = None):
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------ #
    # Windowing                                                            #
    # ------------------------------------------------------------------ #

    def window_filter(self, days: int = DEFAULT_WINDOW_DAYS, **criteria) -> ReviewFilter:
        """The filter every query uses: created within the last ``days`` days."""
        if days < 1:
            raise ValidationError(f"days must be at least 1, got {days}")
        return ReviewFilter(created_after=self._clock() - timedelta(days=days), **criteria)

    def _window(self, days: int, **criteria) -> list[CodeReview]:
        return self.store.list_reviews(self.window_filter(days, **criteria))

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    def overview(self, days: int = DEFAULT_WINDOW_DAYS) -> DashboardOverview:
        reviews = self._window(days)
        completed = [r for r in reviews if r.status is ReviewStatus.COMPLETED]
        overview = DashboardOverview(
            total_reviews=len(reviews),
            active_repositories=len({r.repository_id for r in reviews}),
            average_quality_score=_mean(r.analysis_result.quality_score for r in completed),
            critical_issues=sum(r.analysis_result.critical_issues for r in completed),
            completion_rate=len(completed) / len(reviews) if reviews else 0.0,
            window_days=days,
        )
        logger.debug("overview(%d): %s", days, overview)
        return overview

    def repository_ranking(self, days: int = DEFAULT_WINDOW_DAYS, limit: int = DEFAULT_RANKING_LIMIT) -> list[RepositoryRanking]:
        groups = self._group_completed(days, key=lambda r: r.repository_id)
        rankings = [
            RepositoryRanking(
                subject_id=subject,
                average_score=_mean(g.scores),
                total_reviews=len(g.scores),
                critical_issues=g.critical,
                trend=self._trend(g),
            )
            for subject, g in groups.items()
        ]
        return self._rank(rankings, limit)

    def developer_ranking(self, days: int = DEFAULT_WINDOW_DAYS, limit: int = DEFAULT_RANKING_LIMIT) -> list[DeveloperRanking]:
        groups = self._group_completed(days, key=lambda r: r.developer)
        rankings = []
        for subject, g in groups.items():
            improvement = self._trend(g)
            rankings.append(
                DeveloperRanking(
                    subject_id=subject,
                    average_score=_mean(g.scores),
                    total_reviews=len(g.scores),
                    critical_issues=g.critical,
                    trend=improvement,
                    improvement=improvement,
                )
            )
        return self._rank(rankings, limit)

    def trends(self, days: int = DEFAULT_WINDOW_DAYS, period: TrendPeriod | str = TrendPeriod.DAILY) -> list[TrendPoint]:
        """One point per occupied calendar bucket, oldest first. Empty buckets are omitted.

        ``review_count`` counts every review created in the bucket;
        ``average_score`` and ``issue_count`` cover its COMPLETED reviews.
        """
        try:
            period = TrendPeriod(period.upper())
        except ValueError:
            raise ValidationError(f"Unknown trend period: {period!r}. Choose DAILY or WEEKLY.") from None
        buckets: dict[date, list[CodeReview]] = defaultdict(list)
        for review in self._window(days):
            buckets[self._bucket(review.created_at, period)].append(review)

        points = []
        for bucket in sorted(buckets):
            reviews = buckets[bucket]
            results = [r.analysis_result for r in reviews if r.status is ReviewStatus.COMPLETED]
            points.append(
                TrendPoint(
                    date=bucket,
                    average_score=_mean(res.quality_score for res in results),
                    issue_count=sum(len(res.issues) for res in results),
                    review_count=len(reviews),
                )
            )
        return points

    def issue_statistics(self, days: int = DEFAULT_WINDOW_DAYS, top: int = 10) -> IssueStatistics:
        by_type: Counter[IssueType] = Counter({t: 0 for t in IssueType})
        by_severity: Counter[int] = Counter()
        messages: Counter[str] = Counter()
        by_file: Counter[str] = Counter()

        for review in self._window(days, status=ReviewStatus.COMPLETED):
            for issue in review.analysis_result.issues:
                by_type[issue.type] += 1
                by_severity[issue.severity] += 1
                messages[issue.message] += 1
                by_file[review.file_path or review.file_name] += 1

        return IssueStatistics(
            total_issues=sum(by_type.values()),
            by_type=dict(by_type),
            by_severity=dict(sorted(by_severity.items(), reverse=True)),
            top_issues=messages.most_common(top),
            by_file=dict(by_file.most_common()),
        )

    def quality_metrics(self, days: int = DEFAULT_WINDOW_DAYS, repository_id: str | None = None) -> QualityMetrics:
        completed = self._window(days, status=ReviewStatus.COMPLETED, repository_id=repository_id)
        scores = [r.analysis_result.quality_score for r in completed]

        distribution = {name: 0 for name, _ in SCORE_BUCKETS}
        for score in scores:
            for name, lower in SCORE_BUCKETS:
                if score >= lower:
                    distribution[name] += 1
                    break

        per_repo: dict[str, list[int]] = defaultdict(list)
        for review in completed:
            per_repo[review.repository_id].append(review.analysis_result.quality_score)

        return QualityMetrics(
            analyzed_reviews=len(scores),
            average_score=_mean(scores),
            median_score=float(statistics.median(scores)) if scores else 0.0,
            distribution=distribution,
            scores_by_repository={repo: _mean(s) for repo, s in sorted(per_repo.items())},
        )

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    def _group_completed(self, days: int, key: Callable[[CodeReview], str]) -> dict[str, _Group]:
        # Reviews created at or after the midpoint form the "recent" half.
        midpoint = self._clock() - timedelta(days=days) / 2
        groups: dict[str, _Group] = defaultdict(_Group)
        for review in self._window(days, status=ReviewStatus.COMPLETED):
            group = groups[key(review)]
            score = review.analysis_result.quality_score
            group.scores.append(score)
            group.critical += review.analysis_result.critical_issues
            (group.recent if review.created_at >= midpoint else group.earlier).append(score)
        return groups

    @staticmethod
    def _trend(group: _Group) -> float:
        if not group.recent or not group.earlier:
            return 0.0
        return _mean(group.recent) - _mean(group.earlier)

    @staticmethod
    def _rank(rankings: list, limit: int) -> list:
        if limit < 0:
            raise ValidationError(f"limit must not be negative, got {limit}")
        rankings.sort(key=lambda r: (-r.average_score, -r.total_reviews, r.subject_id))
        return rankings[:limit]

    @staticmethod
    def _bucket(created_at: datetime, period: TrendPeriod) -> date:
        if created_at.tzinfo is not None:
            created_at = created_at.astimezone(timezone.utc)
        day = created_at.date()
        if period is TrendPeriod.WEEKLY:
            return day - timedelta(days=day.weekday())
        return day
