"""Weighted multi-criteria scoring of topic candidates."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from estatepress.config import RegionProfile
from estatepress.content.base import TopicCandidate
from estatepress.research.similarity import similarity

WEIGHTS = {"relevance": 0.35, "recency": 0.25, "authority": 0.20, "uniqueness": 0.20}

DOMAIN_KEYWORDS = [
    "home", "house", "property", "real estate",
    "mortgage", "buyer", "seller", "market",
]
MAX_DOMAIN_BONUS = 25

SEASONAL_KEYWORDS = {
    "spring": ["spring", "selling season", "move", "garden"],
    "summer": ["summer", "back to school", "fall market"],
    "fall": ["fall", "autumn", "holiday", "year end"],
    "winter": ["winter", "new year", "forecast", "prediction"],
}
TRENDING_TOKENS = ["new", "latest", "update", "change", "trend", "rising", "falling"]

DATA_KEYWORDS = ["statistics", "data", "report", "analysis", "study", "research", "survey"]
EXPERT_KEYWORDS = ["guide", "tips", "how to", "expert", "professional", "advice"]
SOURCE_AUTHORITY = {"market_data": 10, "rss_feeds": 5}

GENERIC_PHRASES = [
    "tips for buying", "things to know", "guide to",
    "everything you need", "complete guide",
]


def season_for(month: int) -> str:
    if 3 <= month <= 5:
        return "spring"
    if 6 <= month <= 8:
        return "summer"
    if 9 <= month <= 11:
        return "fall"
    return "winter"


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _contains_word(text: str, term: str) -> bool:
    return re.search(rf"\b{re.escape(term)}\b", text) is not None


@dataclass(frozen=True)
class TopicScores:
    relevance: float
    recency: float
    authority: float
    uniqueness: float

    @property
    def total(self) -> float:
        return round(
            WEIGHTS["relevance"] * self.relevance
            + WEIGHTS["recency"] * self.recency
            + WEIGHTS["authority"] * self.authority
            + WEIGHTS["uniqueness"] * self.uniqueness,
            2,
        )


class TopicScorer:
    """Score candidates for relevance, recency, authority and uniqueness.

    ``published_titles`` and ``recent_topic_titles`` are the history the
    uniqueness score decays against; the caller fetches them once per run.
    """

    def __init__(
        self,
        region: RegionProfile | None = None,
        *,
        now: datetime | None = None,
    ) -> None:
        self._region = region or RegionProfile()
        self._now = now

    def score(
        self,
        candidate: TopicCandidate,
        published_titles: list[str] | None = None,
        recent_topic_titles: list[str] | None = None,
    ) -> TopicScores:
        return TopicScores(
            relevance=self.relevance(candidate),
            recency=self.recency(candidate),
            authority=self.authority(candidate),
            uniqueness=self.uniqueness(
                candidate, published_titles or [], recent_topic_titles or []
            ),
        )

    def relevance(self, candidate: TopicCandidate) -> float:
        text = candidate.text
        score = 50.0

        if any(_contains_word(text, term) for term in self._region.region_terms):
            score += 20
        if any(city.lower() in text for city in self._region.sub_regions):
            score += 10

        matched = sum(5 for kw in DOMAIN_KEYWORDS if kw in text)
        score += min(matched, MAX_DOMAIN_BONUS)
        score += min(len(candidate.locations) * 5, 15)

        return _clamp(score)

    def recency(self, candidate: TopicCandidate) -> float:
        now = self._now or datetime.now()
        text = candidate.text
        score = 50.0

        if str(now.year) in text:
            score += 25
        if any(kw in text for kw in SEASONAL_KEYWORDS[season_for(now.month)]):
            score += 10
        # Each trending token counts once however often it appears.
        score += sum(5 for token in TRENDING_TOKENS if _contains_word(text, token))

        return _clamp(score)

    def authority(self, candidate: TopicCandidate) -> float:
        text = candidate.text
        score = 50.0

        score += sum(10 for kw in DATA_KEYWORDS if kw in text)
        score += sum(5 for kw in EXPERT_KEYWORDS if kw in text)
        if candidate.market_stats:
            score += 15
        score += SOURCE_AUTHORITY.get(candidate.source, 0)

        return _clamp(score)

    def uniqueness(
        self,
        candidate: TopicCandidate,
        published_titles: list[str],
        recent_topic_titles: list[str],
    ) -> float:
        title = candidate.title
        score = 70.0

        for published in published_titles:
            pct = similarity(title, published)
            if pct > 50:
                score -= 20
            elif pct > 30:
                score -= 10

        for recent in recent_topic_titles:
            pct = similarity(title, recent)
            if pct > 60:
                score -= 30
            elif pct > 40:
                score -= 15

        lowered = title.lower()
        score -= sum(10 for phrase in GENERIC_PHRASES if phrase in lowered)

        return _clamp(score)
