"""Outcome feedback, per-strategy statistics and weight adjustment."""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from statistics import mean

from sqlalchemy.exc import SQLAlchemyError

from estatepress.errors import DuplicateRecordError, ValidationError
from estatepress.learning.strategies import MAX_WEIGHT, MIN_WEIGHT
from estatepress.research.similarity import similarity
from estatepress.storage.models import (
    ArticleRecord,
    ArticleStatus,
    FeedbackEvent,
    FeedbackType,
    StrategyRecord,
)
from estatepress.storage.store import ContentStore

logger = logging.getLogger(__name__)

MIN_USES_FOR_DECISIONS = 5
MIN_USES_FOR_ADJUSTMENT = 10
MAX_EDIT_FOR_SUCCESS = 30.0
WEIGHT_STEP = 20
PERIOD_DAYS = {"week": 7, "month": 30, "quarter": 90}


@dataclass
class StrategyStats:
    strategy_key: str
    version: str
    total_uses: int
    published_count: int
    avg_quality_score: float
    avg_edit_distance: float | None
    success_rate: float

    @property
    def has_enough_data(self) -> bool:
        return self.total_uses >= MIN_USES_FOR_DECISIONS


@dataclass
class WeightAdjustment:
    action: str  # increase | decrease
    strategy_key: str
    version: str
    old_weight: int
    new_weight: int
    reason: str


@dataclass
class InsightsReport:
    period: str
    start: datetime
    end: datetime
    summary: dict
    weekly_trends: list[dict] = field(default_factory=list)
    top_strategies: list[dict] = field(default_factory=list)
    needs_attention: list[dict] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


def _avg(values: list[float], digits: int = 2) -> float | None:
    return round(mean(values), digits) if values else None


def compute_stats(key: str, version: str, articles: list[ArticleRecord]) -> StrategyStats:
    """Aggregate one strategy version's articles.

    Success counts only when editors did not have to rewrite much: versions
    averaging 30% or more edit distance, or with no edit data yet, score zero.
    """
    total = len(articles)
    published = sum(1 for a in articles if a.status == ArticleStatus.PUBLISHED.value)
    avg_edit = _avg([a.edit_distance for a in articles if a.edit_distance is not None])
    if total and avg_edit is not None and avg_edit < MAX_EDIT_FOR_SUCCESS:
        success = round(published / total * 100, 2)
    else:
        success = 0.0
    return StrategyStats(
        strategy_key=key,
        version=version,
        total_uses=total,
        published_count=published,
        avg_quality_score=_avg([a.seo_score for a in articles]) or 0.0,
        avg_edit_distance=avg_edit,
        success_rate=success,
    )


def classify_strategy(record: StrategyRecord) -> str | None:
    """excellent | good | poor | needs_improvement | fair, or None without enough data."""
    if record.total_uses < MIN_USES_FOR_DECISIONS:
        return None
    sr, quality = record.success_rate, record.avg_quality_score
    if sr >= 80 and quality >= 75:
        return "excellent"
    if sr >= 60 and quality >= 65:
        return "good"
    if sr < 40 or quality < 50:
        return "poor"
    if (record.avg_edit_distance or 0) > 50:
        return "needs_improvement"
    return "fair"


class FeedbackLearner:
    """Learn which strategy versions produce articles that ship unedited."""

    def __init__(self, store: ContentStore, *, now: datetime | None = None) -> None:
        self._store = store
        self._now = now

    def _clock(self) -> datetime:
        return self._now or datetime.now()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(
        self,
        article_id: int,
        type: str,
        metric_name: str,
        value: float,
        metadata: dict | None = None,
    ) -> int | None:
        """Append a feedback event. Returns its id, or None if it was not stored."""
        try:
            event = FeedbackEvent(
                article_id=article_id,
                type=FeedbackType(type).value,
                metric_name=metric_name,
                metric_value=float(value),
                metadata_json=json.dumps(metadata or {}, default=str),
                recorded_at=self._clock(),
            )
            return self._store.insert(event)
        except (ValueError, TypeError) as exc:
            logger.warning("Rejected feedback for article %s: %s", article_id, exc)
        except (SQLAlchemyError, DuplicateRecordError) as exc:
            logger.warning("Could not store feedback for article %s: %s", article_id, exc)
        return None

    def record_edit(self, article_id: int, original: str, edited: str) -> float:
        """Store how much of the generated text an editor changed, in percent."""
        distance = round(100.0 - similarity(original, edited), 2)
        self._store.update(ArticleRecord, article_id, edit_distance=distance)
        self.record(
            article_id,
            FeedbackType.EDIT_DISTANCE,
            "edit_percentage",
            distance,
            {"original_length": len(original), "edited_length": len(edited)},
        )
        return distance

    def record_rating(self, article_id: int, rating: float) -> int | None:
        if not 1 <= rating <= 5:
            raise ValidationError("rating must be between 1 and 5")
        self._store.update(ArticleRecord, article_id, user_rating=rating)
        return self.record(article_id, FeedbackType.USER_RATING, "rating", rating)

    def article_feedback(self, article_id: int) -> dict:
        """Every event for one article plus the latest value per metric."""
        events = self._store.find_by(FeedbackEvent, article_id=article_id)
        latest: dict[str, float] = {}
        for event in events:
            latest[f"{event.type}.{event.metric_name}"] = event.metric_value
        return {
            "article_id": article_id,
            "event_count": len(events),
            "latest": latest,
            "events": [
                {
                    "type": e.type,
                    "metric_name": e.metric_name,
                    "metric_value": e.metric_value,
                    "metadata": json.loads(e.metadata_json or "{}"),
                    "recorded_at": e.recorded_at.isoformat(),
                }
                for e in events
            ],
        }

    # ------------------------------------------------------------------
    # Statistics and weights
    # ------------------------------------------------------------------

    def update_strategy_statistics(self) -> list[StrategyStats]:
        """Recompute usage and outcome aggregates for every strategy version."""
        groups: dict[tuple[str, str], list[ArticleRecord]] = defaultdict(list)
        for article in self._store.find_by(ArticleRecord):
            if article.strategy_key:
                groups[(article.strategy_key, article.strategy_version)].append(article)

        results = []
        for record in self._store.find_by(StrategyRecord):
            stats = compute_stats(
                record.strategy_key, record.version,
                groups.get((record.strategy_key, record.version), []),
            )
            self._store.update(
                StrategyRecord,
                record.id,
                total_uses=stats.total_uses,
                success_rate=stats.success_rate,
                avg_quality_score=stats.avg_quality_score,
                avg_edit_distance=stats.avg_edit_distance,
            )
            results.append(stats)
        return results

    def auto_adjust_weights(self, threshold: float = 10.0) -> list[WeightAdjustment]:
        """Nudge selection weight toward the best version of each strategy.

        Acts only when every active version of a key has at least ten uses
        and success rates differ by ``threshold`` points or more. The best
        version gains 20 weight and the worst loses 20, within [10, 200].
        """
        by_key: dict[str, list[StrategyRecord]] = defaultdict(list)
        for record in self._store.find_by(StrategyRecord, is_active=True):
            by_key[record.strategy_key].append(record)

        adjustments: list[WeightAdjustment] = []
        for key, versions in by_key.items():
            if len(versions) < 2:
                continue
            if any(v.total_uses < MIN_USES_FOR_ADJUSTMENT for v in versions):
                logger.debug("Skipping %s: not every version has %d uses", key, MIN_USES_FOR_ADJUSTMENT)
                continue

            best = max(versions, key=lambda v: v.success_rate)
            worst = min(versions, key=lambda v: v.success_rate)
            spread = best.success_rate - worst.success_rate
            if spread < threshold:
                continue

            reason = (
                f"success rate spread {spread:.1f} >= {threshold:.1f} "
                f"(best {best.version} {best.success_rate:.1f}%, "
                f"worst {worst.version} {worst.success_rate:.1f}%)"
            )
            for record, step, action in ((best, WEIGHT_STEP, "increase"), (worst, -WEIGHT_STEP, "decrease")):
                new_weight = max(MIN_WEIGHT, min(MAX_WEIGHT, record.weight + step))
                if new_weight == record.weight:
                    continue
                if not self._store.update_where(
                    StrategyRecord, record.id, {"weight": record.weight}, weight=new_weight
                ):
                    logger.warning("Weight of %s v%s changed concurrently; skipped", key, record.version)
                    continue
                adjustment = WeightAdjustment(
                    action=action,
                    strategy_key=key,
                    version=record.version,
                    old_weight=record.weight,
                    new_weight=new_weight,
                    reason=reason,
                )
                logger.info(
                    "Strategy %s v%s weight %d -> %d (%s)",
                    key, record.version, record.weight, new_weight, reason,
                )
                adjustments.append(adjustment)
        return adjustments

    def strategy_recommendations(self) -> list[dict]:
        recs = []
        for record in self._store.find_by(StrategyRecord, is_active=True):
            status = classify_strategy(record)
            if status is None:
                continue
            recs.append({
                "strategy_key": record.strategy_key,
                "version": record.version,
                "status": status,
                "success_rate": record.success_rate,
                "avg_quality_score": record.avg_quality_score,
                "avg_edit_distance": record.avg_edit_distance,
                "weight": record.weight,
            })
        return recs

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def insights_report(self, period: str = "month") -> InsightsReport:
        if period not in PERIOD_DAYS:
            raise ValidationError(f"period must be one of {', '.join(PERIOD_DAYS)}")
        end = self._clock()
        start = end - timedelta(days=PERIOD_DAYS[period])

        articles = self._store.find_by(
            ArticleRecord, since=start, until=end, date_field="generated_at"
        )
        events = self._store.find_by(
            FeedbackEvent, since=start, until=end, date_field="recorded_at"
        )

        published = [a for a in articles if a.status == ArticleStatus.PUBLISHED.value]
        avg_seo = _avg([a.seo_score for a in articles])
        avg_edit = _avg([a.edit_distance for a in articles if a.edit_distance is not None])
        summary = {
            "total_articles": len(articles),
            "published": len(published),
            "publish_rate": round(len(published) / len(articles) * 100, 1) if articles else 0.0,
            "avg_seo_score": avg_seo,
            "avg_geo_score": _avg([a.geo_score for a in articles]),
            "avg_edit_distance": avg_edit,
            "avg_rating": _avg([a.user_rating for a in articles if a.user_rating is not None]),
            "feedback_events": len(events),
        }

        weeks: dict[str, list[ArticleRecord]] = defaultdict(list)
        for article in articles:
            year, week, _ = article.generated_at.isocalendar()
            weeks[f"{year}-W{week:02d}"].append(article)
        trends = [
            {
                "week": week,
                "articles": len(items),
                "published": sum(1 for a in items if a.status == ArticleStatus.PUBLISHED.value),
                "avg_seo_score": _avg([a.seo_score for a in items]),
                "avg_edit_distance": _avg(
                    [a.edit_distance for a in items if a.edit_distance is not None]
                ),
            }
            for week, items in sorted(weeks.items())
        ]

        rated = self.strategy_recommendations()
        top = sorted(rated, key=lambda r: r["success_rate"], reverse=True)[:3]
        attention = [r for r in rated if r["status"] in ("poor", "needs_improvement")]

        recommendations = []
        if avg_seo is not None and avg_seo < 70:
            recommendations.append(
                f"Average SEO score is {avg_seo:.1f}; tighten the article_structure "
                "strategy around titles, headings and internal links."
            )
        if avg_edit is not None and avg_edit > 40:
            recommendations.append(
                f"Editors are changing {avg_edit:.1f}% of generated text on average; "
                "revise the section_writing strategy's tone and local detail."
            )
        if attention:
            names = ", ".join(f"{r['strategy_key']} v{r['version']}" for r in attention)
            recommendations.append(f"Underperforming strategy versions need review: {names}.")

        return InsightsReport(
            period=period,
            start=start,
            end=end,
            summary=summary,
            weekly_trends=trends,
            top_strategies=top,
            needs_attention=attention,
            recommendations=recommendations,
        )
