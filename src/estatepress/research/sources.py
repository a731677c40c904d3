"""Topic sources: each proposes raw candidates from one kind of input."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from estatepress.config import RegionProfile
from estatepress.content.base import TopicCandidate, parse_topic_candidates
from estatepress.errors import TopicSourceError
from estatepress.learning.strategies import TOPIC_RESEARCH, StrategyManager
from estatepress.llm.client import ClaudeClient
from estatepress.llm.prompts import render, render_string
from estatepress.research.fetcher import FeedFetcher

logger = logging.getLogger(__name__)


class TopicSource(ABC):
    """A weighted, independently toggleable producer of topic candidates."""

    name: str = ""

    def __init__(self, weight: float = 1.0, enabled: bool = True) -> None:
        self.weight = weight
        self.enabled = enabled

    @abstractmethod
    def fetch(self, count: int) -> list[TopicCandidate]:
        """Return raw candidates.

        Raises:
            TopicSourceError: the source could not produce any candidates.
        """
        ...


class ModelTopicSource(TopicSource):
    """Shared plumbing for sources that ask the model to propose topics."""

    def __init__(
        self,
        client: ClaudeClient,
        region: RegionProfile,
        *,
        strategies: StrategyManager | None = None,
        weight: float = 1.0,
        enabled: bool = True,
        now: datetime | None = None,
    ) -> None:
        super().__init__(weight=weight, enabled=enabled)
        self._client = client
        self._region = region
        self._strategies = strategies
        self._now = now

    def _system_prompt(self, count: int) -> str:
        context = {
            "region": self._region,
            "count": count,
            "year": (self._now or datetime.now()).year,
        }
        if self._strategies is not None:
            strategy = self._strategies.select(TOPIC_RESEARCH)
            return render_string(strategy.content, **context)
        return render("topic_research.j2", **context)

    def _propose(self, user_message: str, count: int) -> list[TopicCandidate]:
        result = self._client.complete(
            user_message,
            self._system_prompt(count),
            temperature=0.7,
        )
        if not result.success:
            raise TopicSourceError(f"{self.name}: {result.kind}: {result.error}")

        candidates = parse_topic_candidates(result.text, source=self.name)
        if not candidates:
            raise TopicSourceError(f"{self.name}: invalid_response: no topics in output")
        return candidates


class WebSearchTopicSource(ModelTopicSource):
    """Topics proposed from regional search themes."""

    name = "web_search"

    def search_contexts(self) -> list[str]:
        year = (self._now or datetime.now()).year
        region = self._region.name
        return [
            f"{region} real estate market trends {year}",
            f"{region} housing market news",
            f"{region} home buying tips",
            f"{region} neighborhood guide",
            f"{self._region.state} real estate news",
        ]

    def fetch(self, count: int) -> list[TopicCandidate]:
        contexts = "\n".join(f"- {c}" for c in self.search_contexts())
        message = (
            f"Propose {count} blog topics for a {self._region.name} real estate "
            f"audience drawing on these search themes:\n{contexts}"
        )
        return self._propose(message, count)


class FeedTopicSource(ModelTopicSource):
    """Industry news from RSS feeds, localized into regional topics."""

    name = "rss_feeds"

    def __init__(
        self,
        client: ClaudeClient,
        region: RegionProfile,
        feed_urls: list[str],
        fetcher: FeedFetcher | None = None,
        **kwargs: object,
    ) -> None:
        super().__init__(client, region, **kwargs)
        self._feed_urls = feed_urls
        self._fetcher = fetcher or FeedFetcher()

    def fetch(self, count: int) -> list[TopicCandidate]:
        items = self._fetcher.fetch_all(self._feed_urls, max_items=5)
        if not items:
            raise TopicSourceError(f"{self.name}: no feed items available")

        headlines = "\n".join(f"- {item.title}: {item.summary[:200]}" for item in items[:20])
        message = (
            f"These are recent real estate industry headlines:\n{headlines}\n\n"
            f"Propose {count} blog topics that localize these stories for "
            f"{self._region.name} home buyers and sellers."
        )
        return self._propose(message, count)


class MarketDataTopicSource(ModelTopicSource):
    """Topics grounded in current local market statistics.

    The statistics file is a JSON object such as
    ``{"median_price": 825000, "days_on_market": 24, "inventory": 1830}``.
    """

    name = "market_data"

    def __init__(
        self,
        client: ClaudeClient,
        region: RegionProfile,
        stats_path: Path,
        **kwargs: object,
    ) -> None:
        super().__init__(client, region, **kwargs)
        self._stats_path = stats_path

    def load_stats(self) -> dict:
        try:
            stats = json.loads(self._stats_path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise TopicSourceError(f"{self.name}: market statistics unavailable: {exc}") from exc
        if not isinstance(stats, dict) or not stats:
            raise TopicSourceError(f"{self.name}: market statistics file is empty")
        return stats

    def fetch(self, count: int) -> list[TopicCandidate]:
        stats = self.load_stats()
        message = (
            f"Current {self._region.name} market statistics:\n"
            f"{json.dumps(stats, indent=2)}\n\n"
            f"Propose {count} data-driven blog topics built on these numbers."
        )
        candidates = self._propose(message, count)
        return [c.model_copy(update={"market_stats": stats}) for c in candidates]
