"""SQLModel database models."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class TopicStatus(str, Enum):
    PENDING = "pending"
    SELECTED = "selected"
    GENERATED = "generated"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ArticleStatus(str, Enum):
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class FeedbackType(str, Enum):
    EDIT_DISTANCE = "edit_distance"
    USER_RATING = "user_rating"
    ENGAGEMENT = "engagement"
    SEARCH_PERFORMANCE = "search_performance"


# Forward order of the topic lifecycle; archived sits outside it.
_TOPIC_ORDER = [
    TopicStatus.PENDING,
    TopicStatus.SELECTED,
    TopicStatus.GENERATED,
    TopicStatus.PUBLISHED,
]
_TERMINAL = {TopicStatus.PUBLISHED, TopicStatus.ARCHIVED}


def can_transition(current: str, requested: str) -> bool:
    """Return True if a topic may move from ``current`` to ``requested``."""
    current, requested = TopicStatus(current), TopicStatus(requested)
    if current in _TERMINAL:
        return False
    if requested == TopicStatus.ARCHIVED:
        return True
    return _TOPIC_ORDER.index(requested) > _TOPIC_ORDER.index(current)


class TopicRecord(SQLModel, table=True):
    """A scored candidate subject for a future article."""

    id: int | None = Field(default=None, primary_key=True)
    title: str
    slug: str = Field(index=True, unique=True)
    description: str = ""
    keywords_json: str = "[]"
    locations_json: str = "[]"
    market_stats_json: str = ""
    relevance_score: float = 0.0
    recency_score: float = 0.0
    authority_score: float = 0.0
    uniqueness_score: float = 0.0
    total_score: float = Field(default=0.0, index=True)
    source: str = "manual"
    status: str = Field(default=TopicStatus.PENDING.value, index=True)
    researched_at: datetime = Field(default_factory=datetime.now)
    expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def keywords(self) -> list[str]:
        return json.loads(self.keywords_json or "[]")

    @property
    def locations(self) -> list[str]:
        return json.loads(self.locations_json or "[]")

    @property
    def market_stats(self) -> dict | None:
        return json.loads(self.market_stats_json) if self.market_stats_json else None


class ArticleRecord(SQLModel, table=True):
    """A generated article and the quality signals recorded against it."""

    id: int | None = Field(default=None, primary_key=True)
    topic_id: int | None = Field(default=None, foreign_key="topicrecord.id")
    title: str
    slug: str = Field(index=True, unique=True)
    content: str
    meta_description: str = ""
    meta_keywords: str = ""
    primary_keyword: str = ""
    seo_score: float = 0.0
    geo_score: float = 0.0
    word_count: int = 0
    cta_type: str = ""
    cta_position: str = "end"
    strategy_key: str = ""
    strategy_version: str = ""
    featured_image_url: str = ""
    schema_markup_json: str = "{}"
    status: str = Field(default=ArticleStatus.DRAFT.value, index=True)
    post_id: str = ""
    generated_at: datetime = Field(default_factory=datetime.now, index=True)
    published_at: datetime | None = None
    user_rating: float | None = None
    edit_distance: float | None = None
    metadata_json: str = "{}"


class FeedbackEvent(SQLModel, table=True):
    """Append-only post-publication signal for one article."""

    id: int | None = Field(default=None, primary_key=True)
    article_id: int = Field(foreign_key="articlerecord.id", index=True)
    type: str
    metric_name: str
    metric_value: float
    metadata_json: str = "{}"
    recorded_at: datetime = Field(default_factory=datetime.now, index=True)


class StrategyRecord(SQLModel, table=True):
    """One competing version of a generation prompt."""

    __table_args__ = (UniqueConstraint("strategy_key", "version"),)

    id: int | None = Field(default=None, primary_key=True)
    strategy_key: str = Field(index=True)
    version: str
    content: str
    weight: int = 100
    is_active: bool = True
    total_uses: int = 0
    success_rate: float = 0.0
    avg_quality_score: float = 0.0
    avg_edit_distance: float | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
