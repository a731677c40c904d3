"""Topic discovery: merge sources, deduplicate, score, rank and persist."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from estatepress.config import RegionProfile
from estatepress.content.base import TopicCandidate, slugify
from estatepress.errors import (
    DuplicateRecordError,
    InvalidTransitionError,
    TopicSourceError,
    ValidationError,
)
from estatepress.research.scorer import TopicScorer, TopicScores
from estatepress.research.similarity import is_duplicate
from estatepress.research.sources import TopicSource
from estatepress.storage.models import (
    ArticleRecord,
    ArticleStatus,
    TopicRecord,
    TopicStatus,
    can_transition,
)
from estatepress.storage.store import ContentStore

logger = logging.getLogger(__name__)

DUPLICATE_THRESHOLD = 70.0
HISTORY_LIMIT = 50
PUBLISHED_HISTORY_DAYS = 180
RECENT_TOPIC_DAYS = 30


@dataclass
class ScoredTopic:
    """A candidate with its scores and, once persisted, its topic id."""

    candidate: TopicCandidate
    scores: TopicScores
    id: int | None = None

    @property
    def title(self) -> str:
        return self.candidate.title

    @property
    def slug(self) -> str:
        return self.candidate.slug

    @property
    def total_score(self) -> float:
        return self.scores.total

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "description": self.candidate.description,
            "keywords": self.candidate.keywords,
            "related_locations": self.candidate.locations,
            "source": self.candidate.source,
            "relevance_score": self.scores.relevance,
            "recency_score": self.scores.recency,
            "authority_score": self.scores.authority,
            "uniqueness_score": self.scores.uniqueness,
            "total_score": self.total_score,
        }


@dataclass
class DiscoveryResult:
    success: bool
    topics: list[ScoredTopic] = field(default_factory=list)
    error: str | None = None
    failures: dict[str, str] = field(default_factory=dict)


@dataclass
class SweepResult:
    archived: int
    deleted: int


def deduplicate(
    candidates: list[TopicCandidate], threshold: float = DUPLICATE_THRESHOLD
) -> list[TopicCandidate]:
    """Drop any candidate too similar to one seen earlier. First seen wins."""
    kept: list[TopicCandidate] = []
    for candidate in candidates:
        if not any(is_duplicate(candidate.title, k.title, threshold) for k in kept):
            kept.append(candidate)
    return kept


class TopicDiscoveryEngine:
    """Find, rank and store new article topics.

    Args:
        store: Persistent store for topics and article history.
        sources: Topic sources; higher weights are merged first.
        scorer: Topic scorer, built from ``region`` if omitted.
        now: Fixed clock for reproducible runs.
    """

    def __init__(
        self,
        store: ContentStore,
        sources: list[TopicSource],
        scorer: TopicScorer | None = None,
        *,
        region: RegionProfile | None = None,
        expiry_days: int = 30,
        retention_days: int = 90,
        recent_window_days: int = 60,
        now: datetime | None = None,
    ) -> None:
        self._store = store
        self._sources = sources
        self._scorer = scorer or TopicScorer(region, now=now)
        self._expiry_days = expiry_days
        self._retention_days = retention_days
        self._recent_window_days = recent_window_days
        self._now = now

    def _clock(self) -> datetime:
        return self._now or datetime.now()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(
        self,
        count: int = 5,
        exclude_recent: bool = True,
        min_score: float = 50.0,
    ) -> DiscoveryResult:
        if count < 1:
            return DiscoveryResult(success=False, error="count must be at least 1")

        candidates, failures = self.collect(count)
        if not candidates:
            if failures:
                detail = "; ".join(f"{name}: {err}" for name, err in failures.items())
                error = f"All topic sources failed ({detail})"
            elif not any(s.enabled for s in self._sources):
                error = "No topic sources are enabled"
            else:
                error = "No topics found"
            return DiscoveryResult(success=False, error=error, failures=failures)

        unique = deduplicate(candidates)
        published, recent = self._history()
        scored = [
            ScoredTopic(c, self._scorer.score(c, published, recent)) for c in unique
        ]

        if exclude_recent:
            taken = self._recently_used_slugs()
            scored = [t for t in scored if t.slug not in taken]

        scored = [t for t in scored if t.total_score >= min_score]
        # sorted() is stable, so equal scores keep discovery order.
        ranked = sorted(scored, key=lambda t: t.total_score, reverse=True)[:count]

        self.persist(ranked)
        logger.info(
            "Discovered %d topics from %d candidates (%d after dedup)",
            len(ranked), len(candidates), len(unique),
        )
        return DiscoveryResult(success=True, topics=ranked, failures=failures)

    def collect(self, count: int) -> tuple[list[TopicCandidate], dict[str, str]]:
        """Query every enabled source, recording failures instead of raising."""
        candidates: list[TopicCandidate] = []
        failures: dict[str, str] = {}
        enabled = [s for s in self._sources if s.enabled]

        for source in sorted(enabled, key=lambda s: s.weight, reverse=True):
            try:
                found = source.fetch(count)
            except TopicSourceError as exc:
                failures[source.name] = str(exc)
                logger.warning("Topic source %s failed: %s", source.name, exc)
                continue
            except Exception as exc:  # noqa: BLE001 - any source failure is isolated
                failures[source.name] = f"{type(exc).__name__}: {exc}"
                logger.warning("Topic source %s raised: %s", source.name, exc)
                continue
            logger.info("Topic source %s returned %d candidates", source.name, len(found))
            candidates.extend(found)

        return candidates, failures

    def _history(self) -> tuple[list[str], list[str]]:
        now = self._clock()
        articles = self._store.find_by(
            ArticleRecord,
            status=[s for s in ArticleStatus if s != ArticleStatus.ARCHIVED],
            since=now - timedelta(days=PUBLISHED_HISTORY_DAYS),
            date_field="generated_at",
            order_by="generated_at",
            limit=HISTORY_LIMIT,
        )
        topics = self._store.find_by(
            TopicRecord,
            status=[s for s in TopicStatus if s != TopicStatus.ARCHIVED],
            since=now - timedelta(days=RECENT_TOPIC_DAYS),
            order_by="created_at",
            limit=HISTORY_LIMIT,
        )
        return [a.title for a in articles], [t.title for t in topics]

    def _recently_used_slugs(self) -> set[str]:
        records = self._store.find_by(
            TopicRecord,
            status=[TopicStatus.SELECTED, TopicStatus.GENERATED, TopicStatus.PUBLISHED],
            since=self._clock() - timedelta(days=self._recent_window_days),
        )
        return {r.slug for r in records}

    def persist(self, topics: list[ScoredTopic]) -> None:
        """Store topics as pending. Slugs already on file are left untouched."""
        now = self._clock()
        for topic in topics:
            record = self._to_record(topic.candidate, topic.scores, now)
            try:
                topic.id = self._store.insert(record)
            except DuplicateRecordError:
                existing = self._store.find_by(TopicRecord, slug=topic.slug)
                topic.id = existing[0].id if existing else None

    def _to_record(
        self,
        candidate: TopicCandidate,
        scores: TopicScores,
        now: datetime,
        status: TopicStatus = TopicStatus.PENDING,
    ) -> TopicRecord:
        return TopicRecord(
            title=candidate.title,
            slug=candidate.slug,
            description=candidate.description,
            keywords_json=json.dumps(candidate.keywords),
            locations_json=json.dumps(candidate.locations),
            market_stats_json=json.dumps(candidate.market_stats) if candidate.market_stats else "",
            relevance_score=scores.relevance,
            recency_score=scores.recency,
            authority_score=scores.authority,
            uniqueness_score=scores.uniqueness,
            total_score=scores.total,
            source=candidate.source,
            status=status.value,
            researched_at=now,
            expires_at=now + timedelta(days=self._expiry_days),
            created_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def pending_topics(self, limit: int = 10) -> list[TopicRecord]:
        """Unexpired pending topics, best first."""
        now = self._clock()
        records = self._store.find_by(
            TopicRecord, status=TopicStatus.PENDING, order_by="total_score"
        )
        live = [r for r in records if r.expires_at is None or r.expires_at > now]
        return live[:limit]

    def transition(self, topic_id: int, status: TopicStatus) -> TopicRecord:
        """Move a topic along its lifecycle.

        Raises:
            ValidationError: the topic does not exist.
            InvalidTransitionError: the move is not allowed or lost a race.
        """
        record = self._store.get(TopicRecord, topic_id)
        if record is None:
            raise ValidationError(f"topic {topic_id} not found")
        if not can_transition(record.status, status):
            raise InvalidTransitionError(record.status, status.value)
        if not self._store.update_where(
            TopicRecord, topic_id, {"status": record.status}, status=status
        ):
            raise InvalidTransitionError(record.status, status.value)
        return self._store.get(TopicRecord, topic_id)

    def select_topic(self, topic_id: int) -> TopicRecord:
        return self.transition(topic_id, TopicStatus.SELECTED)

    def create_custom_topic(
        self,
        title: str,
        description: str = "",
        keywords: list[str] | None = None,
        locations: list[str] | None = None,
    ) -> TopicRecord:
        """Record a manually chosen topic, already selected for generation.

        Raises:
            ValidationError: empty title or a topic with the same slug exists.
        """
        if not title or not title.strip() or not slugify(title):
            raise ValidationError("topic title is required")

        candidate = TopicCandidate(
            title=title,
            description=description,
            keywords=keywords or [],
            locations=locations or [],
            source="manual",
        )
        scores = TopicScores(relevance=100, recency=100, authority=100, uniqueness=100)
        record = self._to_record(candidate, scores, self._clock(), TopicStatus.SELECTED)
        try:
            self._store.insert(record)
        except DuplicateRecordError as exc:
            raise ValidationError(f"a topic with slug '{candidate.slug}' already exists") from exc
        return record

    def sweep_expired(self) -> SweepResult:
        """Archive expired pending topics and purge old archived ones."""
        now = self._clock()
        archived = 0
        expired = self._store.find_by(
            TopicRecord, status=TopicStatus.PENDING, until=now, date_field="expires_at"
        )
        for record in expired:
            if self._store.update_where(
                TopicRecord, record.id, {"status": TopicStatus.PENDING},
                status=TopicStatus.ARCHIVED, updated_at=now,
            ):
                archived += 1

        cutoff = now - timedelta(days=self._retention_days)
        deleted = self._store.delete_where(
            TopicRecord,
            TopicRecord.status == TopicStatus.ARCHIVED.value,
            TopicRecord.updated_at < cutoff,
        )
        if archived or deleted:
            logger.info("Topic sweep archived %d and deleted %d topics", archived, deleted)
        return SweepResult(archived=archived, deleted=deleted)
