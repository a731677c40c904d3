"""Versioned generation strategies and weight-proportional selection."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from estatepress.errors import DuplicateRecordError, ValidationError
from estatepress.llm.prompts import template_source
from estatepress.storage.models import StrategyRecord
from estatepress.storage.store import ContentStore

logger = logging.getLogger(__name__)

TOPIC_RESEARCH = "topic_research"
ARTICLE_STRUCTURE = "article_structure"
SECTION_WRITING = "section_writing"

DEFAULT_VERSION = "1.0.0"
DEFAULT_WEIGHT = 100
MIN_WEIGHT = 10
MAX_WEIGHT = 200

DEFAULT_TEMPLATES = {
    TOPIC_RESEARCH: "topic_research.j2",
    ARTICLE_STRUCTURE: "article_structure.j2",
    SECTION_WRITING: "section_writing.j2",
}


@dataclass(frozen=True)
class StrategyVersion:
    """Detached snapshot of a strategy record."""

    id: int
    strategy_key: str
    version: str
    content: str
    weight: int
    is_active: bool
    total_uses: int
    success_rate: float
    avg_quality_score: float
    avg_edit_distance: float | None

    @classmethod
    def from_record(cls, record: StrategyRecord) -> StrategyVersion:
        return cls(
            id=record.id,
            strategy_key=record.strategy_key,
            version=record.version,
            content=record.content,
            weight=record.weight,
            is_active=record.is_active,
            total_uses=record.total_uses,
            success_rate=record.success_rate,
            avg_quality_score=record.avg_quality_score,
            avg_edit_distance=record.avg_edit_distance,
        )


class StrategyManager:
    """Reads strategy versions and picks one per generation call.

    Weights are never written here; the feedback learner owns that path.
    """

    def __init__(self, store: ContentStore, rng: random.Random | None = None) -> None:
        self._store = store
        self._rng = rng or random.Random()

    def seed_defaults(self) -> int:
        """Insert the bundled version of every default strategy. Idempotent."""
        created = 0
        for key, template_name in DEFAULT_TEMPLATES.items():
            if self.get(key, DEFAULT_VERSION):
                continue
            record = StrategyRecord(
                strategy_key=key,
                version=DEFAULT_VERSION,
                content=template_source(template_name),
                weight=DEFAULT_WEIGHT,
            )
            try:
                self._store.insert(record)
                created += 1
            except DuplicateRecordError:
                continue
        return created

    def versions(self, key: str | None = None, active_only: bool = True) -> list[StrategyVersion]:
        filters: dict = {}
        if key is not None:
            filters["strategy_key"] = key
        if active_only:
            filters["is_active"] = True
        records = self._store.find_by(StrategyRecord, **filters)
        return [StrategyVersion.from_record(r) for r in records]

    def get(self, key: str, version: str) -> StrategyVersion | None:
        records = self._store.find_by(StrategyRecord, strategy_key=key, version=version)
        return StrategyVersion.from_record(records[0]) if records else None

    def select(self, key: str) -> StrategyVersion:
        """Pick an active version of ``key`` with probability proportional to weight."""
        candidates = self.versions(key)
        if not candidates and key in DEFAULT_TEMPLATES:
            self.seed_defaults()
            candidates = self.versions(key)
        if not candidates:
            raise ValidationError(f"no active strategy versions for '{key}'")

        chosen = self._rng.choices(candidates, weights=[c.weight for c in candidates])[0]
        logger.debug("Selected %s v%s (weight %d)", key, chosen.version, chosen.weight)
        return chosen

    def add_version(
        self, key: str, version: str, content: str, weight: int = DEFAULT_WEIGHT
    ) -> StrategyVersion:
        """Register a new competing version.

        Raises:
            DuplicateRecordError: ``version`` already exists for ``key``.
        """
        weight = max(MIN_WEIGHT, min(MAX_WEIGHT, weight))
        record = StrategyRecord(strategy_key=key, version=version, content=content, weight=weight)
        self._store.insert(record)
        return StrategyVersion.from_record(record)

    def set_active(self, key: str, version: str, active: bool) -> bool:
        current = self.get(key, version)
        if current is None:
            return False
        return self._store.update(StrategyRecord, current.id, is_active=active)
