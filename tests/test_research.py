"""Tests for topic sources, scoring, deduplication and discovery."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from estatepress.config import RegionProfile
from estatepress.content.base import TopicCandidate, parse_topic_candidates
from estatepress.errors import InvalidTransitionError, TopicSourceError, ValidationError
from estatepress.llm.client import ClaudeClient
from estatepress.research.discovery import TopicDiscoveryEngine, deduplicate
from estatepress.research.fetcher import FeedFetcher, FeedItem
from estatepress.research.scorer import TopicScorer, TopicScores, season_for
from estatepress.research.similarity import is_duplicate, max_similarity, similarity
from estatepress.research.sources import (
    FeedTopicSource,
    MarketDataTopicSource,
    WebSearchTopicSource,
)
from estatepress.storage.models import TopicRecord, TopicStatus
from estatepress.storage.store import ContentStore
from tests.conftest import FIXED_NOW, FakeSource, failing_source, make_mock_response


def make_engine(store: ContentStore, sources: list) -> TopicDiscoveryEngine:
    return TopicDiscoveryEngine(store, sources, region=RegionProfile(), now=FIXED_NOW)


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------


class TestSimilarity:
    def test_identical_titles_ignore_case(self) -> None:
        """Test that similarity is case-insensitive."""
        assert similarity("Boston Condo Market", "boston condo market") == 100.0

    def test_one_word_variation_is_duplicate(self) -> None:
        """Test that titles differing by a hyphen count as duplicates."""
        assert similarity("5-Year Market Outlook", "5 Year Market Outlook") > 70
        assert is_duplicate("5-Year Market Outlook", "5 Year Market Outlook")

    def test_unrelated_titles_are_not_duplicates(self) -> None:
        assert not is_duplicate(
            "First-Time Buyer Programs in Quincy", "Luxury Condo Inventory in Back Bay"
        )

    def test_max_similarity_empty_history(self) -> None:
        assert max_similarity("Anything", []) == 0.0


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


class TestTopicScorer:
    def test_component_scores(self) -> None:
        """Test each scoring component for a known candidate."""
        scorer = TopicScorer(RegionProfile(), now=FIXED_NOW)
        candidate = TopicCandidate(
            title="Boston Housing Market Report 2026: Latest Spring Trends",
            locations=["Cambridge", "Somerville"],
            source="rss_feeds",
        )

        scores = scorer.score(candidate)
        assert scores.relevance == 95
        assert scores.recency == 90
        assert scores.authority == 65
        assert scores.uniqueness == 70
        assert scores.total == 82.75

    def test_total_is_weighted_sum_rounded(self) -> None:
        scores = TopicScores(relevance=77, recency=61, authority=55, uniqueness=33)
        expected = round(0.35 * 77 + 0.25 * 61 + 0.20 * 55 + 0.20 * 33, 2)
        assert scores.total == expected

    def test_scores_are_clamped(self) -> None:
        """Test that stacked bonuses never push a score past 100."""
        scorer = TopicScorer(RegionProfile(), now=FIXED_NOW)
        candidate = TopicCandidate(
            title="Statistics, data, report and analysis: study, research and survey guide",
            description="expert tips and advice from a professional",
            source="market_data",
            market_stats={"median_price": 825000},
        )
        assert scorer.authority(candidate) == 100

        generic = TopicCandidate(
            title="Complete guide to everything you need: tips for buying and things to know"
        )
        history = [generic.title] * 5
        assert scorer.uniqueness(generic, history, history) == 0

    def test_uniqueness_decreases_with_similar_history(self) -> None:
        """Test that more similar published titles never raise uniqueness."""
        scorer = TopicScorer(RegionProfile(), now=FIXED_NOW)
        candidate = TopicCandidate(title="Waltham Townhouse Prices")
        previous = scorer.uniqueness(candidate, [], [])
        for n in range(1, 6):
            current = scorer.uniqueness(candidate, [candidate.title] * n, [])
            assert current <= previous
            previous = current
        assert previous == 0

    def test_uniqueness_tiers(self) -> None:
        scorer = TopicScorer(RegionProfile(), now=FIXED_NOW)
        candidate = TopicCandidate(title="Waltham Townhouse Prices")
        assert scorer.uniqueness(candidate, [candidate.title], []) == 50
        assert scorer.uniqueness(candidate, [], [candidate.title]) == 40

    def test_seasonal_bonus_follows_month(self) -> None:
        scorer = TopicScorer(RegionProfile(), now=FIXED_NOW.replace(month=12))
        candidate = TopicCandidate(title="Winter Forecast for Condo Owners")
        assert season_for(12) == "winter"
        assert scorer.recency(candidate) == 60

    def test_trending_tokens_match_whole_words(self) -> None:
        scorer = TopicScorer(RegionProfile(), now=FIXED_NOW)
        assert scorer.recency(TopicCandidate(title="Newton news")) == 50
        assert scorer.recency(TopicCandidate(title="New rules, new listings")) == 55


# ---------------------------------------------------------------------------
# Candidate parsing and sources
# ---------------------------------------------------------------------------


class TestTopicCandidates:
    def test_parse_topics_object_in_fence(self) -> None:
        text = (
            "Here you go:\n```json\n"
            + json.dumps({
                "topics": [
                    {
                        "title": "Somerville Condo Conversions",
                        "description": "What buyers should know.",
                        "keywords": "somerville condos, conversions",
                        "related_cities": ["Somerville"],
                    },
                    {"title": "  ", "description": "no title"},
                ]
            })
            + "\n```"
        )
        candidates = parse_topic_candidates(text, source="web_search")
        assert len(candidates) == 1
        assert candidates[0].keywords == ["somerville condos", "conversions"]
        assert candidates[0].locations == ["Somerville"]
        assert candidates[0].source == "web_search"

    def test_parse_garbage_returns_empty(self) -> None:
        assert parse_topic_candidates("I could not think of anything.", "web_search") == []


class TestTopicSources:
    def test_web_search_source_parses_model_output(self, mock_claude_client: ClaudeClient) -> None:
        """Test that the web search source turns model JSON into candidates."""
        payload = json.dumps({"topics": [
            {"title": "Boston Spring Market Preview", "keywords": ["boston homes"]},
            {"title": "Brookline School District Guide", "related_cities": ["Brookline"]},
        ]})
        mock_claude_client._client.messages.create.return_value = make_mock_response(payload)

        source = WebSearchTopicSource(mock_claude_client, RegionProfile(), now=FIXED_NOW)
        candidates = source.fetch(2)

        assert [c.title for c in candidates] == [
            "Boston Spring Market Preview",
            "Brookline School District Guide",
        ]
        assert all(c.source == "web_search" for c in candidates)
        system = mock_claude_client._client.messages.create.call_args.kwargs["system"]
        assert "Boston" in system

    def test_model_failure_raises_source_error(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response("")
        source = WebSearchTopicSource(mock_claude_client, RegionProfile(), now=FIXED_NOW)
        with pytest.raises(TopicSourceError, match="empty_response"):
            source.fetch(3)

    def test_unparseable_output_raises_source_error(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response("No ideas.")
        source = WebSearchTopicSource(mock_claude_client, RegionProfile(), now=FIXED_NOW)
        with pytest.raises(TopicSourceError, match="invalid_response"):
            source.fetch(3)

    def test_feed_source_without_items_fails(self, mock_claude_client: ClaudeClient) -> None:
        fetcher = MagicMock()
        fetcher.fetch_all.return_value = []
        source = FeedTopicSource(
            mock_claude_client, RegionProfile(), ["https://example.com/feed"], fetcher=fetcher
        )
        with pytest.raises(TopicSourceError):
            source.fetch(3)
        mock_claude_client._client.messages.create.assert_not_called()

    def test_feed_source_sends_headlines(self, mock_claude_client: ClaudeClient) -> None:
        fetcher = MagicMock()
        fetcher.fetch_all.return_value = [
            FeedItem(
                url="https://example.com/rates",
                title="Mortgage rates dip again",
                source="Housing Wire",
                published=None,
                summary="Rates fell for the third week.",
            )
        ]
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            json.dumps([{"title": "What Lower Rates Mean for Boston Buyers"}])
        )
        source = FeedTopicSource(
            mock_claude_client, RegionProfile(), ["https://example.com/feed"], fetcher=fetcher
        )

        candidates = source.fetch(1)
        assert candidates[0].source == "rss_feeds"
        message = mock_claude_client._client.messages.create.call_args.kwargs["messages"][0]
        assert "Mortgage rates dip again" in message["content"]

    def test_market_source_attaches_stats(
        self, mock_claude_client: ClaudeClient, tmp_path: Path
    ) -> None:
        stats_path = tmp_path / "stats.json"
        stats_path.write_text(json.dumps({"median_price": 825000, "days_on_market": 24}))
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            json.dumps([{"title": "Median Price Tops $825K"}])
        )
        source = MarketDataTopicSource(mock_claude_client, RegionProfile(), stats_path)

        candidates = source.fetch(1)
        assert candidates[0].market_stats == {"median_price": 825000, "days_on_market": 24}
        assert candidates[0].source == "market_data"

    def test_market_source_missing_file(
        self, mock_claude_client: ClaudeClient, tmp_path: Path
    ) -> None:
        source = MarketDataTopicSource(mock_claude_client, RegionProfile(), tmp_path / "none.json")
        with pytest.raises(TopicSourceError, match="unavailable"):
            source.fetch(1)


# ---------------------------------------------------------------------------
# Feed fetcher
# ---------------------------------------------------------------------------


SAMPLE_RSS = """<?xml version="1.0"?>
<rss version="2.0">
  <channel>
    <title>Housing News</title>
    <item>
      <title>Inventory climbs in the suburbs</title>
      <link>https://news.example.com/inventory</link>
      <description>&lt;p&gt;More &lt;b&gt;listings&lt;/b&gt; this month.&lt;/p&gt;</description>
      <pubDate>Mon, 13 Apr 2026 09:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""


class TestFeedFetcher:
    def test_fetch_feed_parses_entries(self) -> None:
        """Test that feed entries become FeedItems with plain-text summaries."""
        with patch("estatepress.research.fetcher.httpx.Client"):
            fetcher = FeedFetcher()
            mock_http = MagicMock()
            fetcher._client = mock_http
            mock_resp = MagicMock()
            mock_resp.text = SAMPLE_RSS
            mock_http.get.return_value = mock_resp

            items = fetcher.fetch_feed("https://news.example.com/rss")

            assert len(items) == 1
            assert items[0].title == "Inventory climbs in the suburbs"
            assert items[0].summary == "More listings this month."
            assert items[0].source == "Housing News"
            assert items[0].published is not None
            assert len(items[0].id) == 12

    def test_fetch_all_skips_failing_feeds(self) -> None:
        with patch("estatepress.research.fetcher.httpx.Client"):
            fetcher = FeedFetcher()
            mock_http = MagicMock()
            fetcher._client = mock_http
            good = MagicMock()
            good.text = SAMPLE_RSS
            mock_http.get.side_effect = [httpx.ConnectError("refused"), good]

            items = fetcher.fetch_all(["https://down.example.com", "https://news.example.com"])
            assert [i.title for i in items] == ["Inventory climbs in the suburbs"]


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestDeduplicate:
    def test_near_duplicates_collapse_to_first(self) -> None:
        candidates = [
            TopicCandidate(title="5-Year Market Outlook"),
            TopicCandidate(title="5 Year Market Outlook"),
            TopicCandidate(title="Jamaica Plain Triple-Decker Guide"),
        ]
        kept = deduplicate(candidates)
        assert [c.title for c in kept] == ["5-Year Market Outlook", "Jamaica Plain Triple-Decker Guide"]


class TestTopicDiscovery:
    def test_near_duplicates_across_sources(self, store: ContentStore) -> None:
        """Test that near-duplicate titles from two sources yield one topic."""
        engine = make_engine(store, [
            FakeSource("web_search", ["5-Year Market Outlook"], weight=0.4),
            FakeSource("rss_feeds", ["5 Year Market Outlook"], weight=0.3),
        ])
        result = engine.discover(count=5, min_score=0)

        assert result.success
        assert [t.title for t in result.topics] == ["5-Year Market Outlook"]

    def test_one_failing_source_is_tolerated(self, store: ContentStore) -> None:
        """Test that a failing source does not fail the run."""
        engine = make_engine(store, [
            failing_source("web_search"),
            FakeSource("rss_feeds", ["Boston Condo Prices Report 2026"], weight=0.3),
        ])
        result = engine.discover(count=3, min_score=0)

        assert result.success
        assert len(result.topics) == 1
        assert "web_search" in result.failures

    def test_unexpected_exception_is_isolated(self, store: ContentStore) -> None:
        engine = make_engine(store, [
            FakeSource("web_search", error=RuntimeError("boom")),
            FakeSource("rss_feeds", ["Arlington Starter Homes"]),
        ])
        result = engine.discover(count=3, min_score=0)
        assert result.success
        assert result.failures["web_search"] == "RuntimeError: boom"

    def test_all_sources_failing_is_an_error(self, store: ContentStore) -> None:
        engine = make_engine(store, [failing_source("web_search"), failing_source("rss_feeds")])
        result = engine.discover()

        assert not result.success
        assert result.error.startswith("All topic sources failed")
        assert set(result.failures) == {"web_search", "rss_feeds"}

    def test_no_enabled_sources(self, store: ContentStore) -> None:
        source = FakeSource("web_search", ["Anything"], enabled=False)
        result = make_engine(store, [source]).discover()
        assert not result.success
        assert result.error == "No topic sources are enabled"
        assert source.calls == 0

    def test_invalid_count(self, store: ContentStore) -> None:
        result = make_engine(store, [FakeSource("web_search", ["A"])]).discover(count=0)
        assert not result.success

    def test_results_sorted_truncated_and_filtered(self, store: ContentStore) -> None:
        titles = [
            "Quincy Condo Outlook",
            "Boston Home Prices Report 2026",
            "Complete guide to everything you need",
        ]
        engine = make_engine(store, [FakeSource("web_search", titles)])

        result = engine.discover(count=2, min_score=0)
        scores = [t.total_score for t in result.topics]
        assert len(result.topics) == 2
        assert scores == sorted(scores, reverse=True)
        assert result.topics[0].title == "Boston Home Prices Report 2026"

        strict = make_engine(store, [FakeSource("web_search", titles)]).discover(
            count=5, exclude_recent=False, min_score=60
        )
        assert all(t.total_score >= 60 for t in strict.topics)

    def test_equal_scores_keep_source_order(self, store: ContentStore) -> None:
        """Test that ties keep discovery order, higher-weight sources first."""
        engine = make_engine(store, [
            FakeSource("low", ["Medford Rental Picture"], weight=0.3),
            FakeSource("high", ["Quincy Condo Outlook"], weight=0.4),
        ])
        result = engine.discover(count=5, min_score=0)

        assert result.topics[0].total_score == result.topics[1].total_score
        assert [t.title for t in result.topics] == ["Quincy Condo Outlook", "Medford Rental Picture"]

    def test_recently_used_topics_are_excluded(self, store: ContentStore) -> None:
        store.insert(TopicRecord(
            title="Cambridge Condo Prices Climb",
            slug="cambridge-condo-prices-climb",
            status=TopicStatus.SELECTED.value,
            created_at=FIXED_NOW - timedelta(days=10),
        ))
        titles = ["Cambridge Condo Prices Climb", "Somerville Rental Market Report"]

        excluded = make_engine(store, [FakeSource("web_search", titles)]).discover(min_score=0)
        assert [t.title for t in excluded.topics] == ["Somerville Rental Market Report"]

        included = make_engine(store, [FakeSource("web_search", titles)]).discover(
            exclude_recent=False, min_score=0
        )
        assert "Cambridge Condo Prices Climb" in [t.title for t in included.topics]

    def test_rediscovery_does_not_duplicate_records(self, store: ContentStore) -> None:
        """Test that persisting the same topics twice keeps one row per slug."""
        titles = ["Newton Luxury Listings", "Watertown First-Time Buyers"]
        first = make_engine(store, [FakeSource("web_search", titles)]).discover(
            exclude_recent=False, min_score=0
        )
        second = make_engine(store, [FakeSource("web_search", titles)]).discover(
            exclude_recent=False, min_score=0
        )

        assert len(store.find_by(TopicRecord)) == 2
        assert {t.id for t in first.topics} == {t.id for t in second.topics}

    def test_persisted_topics_are_pending_with_expiry(self, store: ContentStore) -> None:
        result = make_engine(store, [FakeSource("web_search", ["Belmont Hill Homes"])]).discover(
            min_score=0
        )
        record = store.get(TopicRecord, result.topics[0].id)
        assert record.status == TopicStatus.PENDING.value
        assert record.expires_at == FIXED_NOW + timedelta(days=30)
        assert record.total_score == result.topics[0].total_score


class TestTopicLifecycle:
    def test_forward_transitions(self, store: ContentStore) -> None:
        engine = make_engine(store, [])
        topic_id = store.insert(TopicRecord(title="Dedham Ranch Homes", slug="dedham-ranch-homes"))

        assert engine.select_topic(topic_id).status == TopicStatus.SELECTED.value
        assert engine.transition(topic_id, TopicStatus.GENERATED).status == "generated"

        with pytest.raises(InvalidTransitionError):
            engine.transition(topic_id, TopicStatus.PENDING)

    def test_terminal_states(self, store: ContentStore) -> None:
        engine = make_engine(store, [])
        topic_id = store.insert(TopicRecord(title="Milton Colonials", slug="milton-colonials"))
        engine.transition(topic_id, TopicStatus.ARCHIVED)

        with pytest.raises(InvalidTransitionError):
            engine.transition(topic_id, TopicStatus.SELECTED)

    def test_missing_topic(self, store: ContentStore) -> None:
        with pytest.raises(ValidationError):
            make_engine(store, []).transition(999, TopicStatus.SELECTED)

    def test_custom_topic(self, store: ContentStore) -> None:
        """Test that a manual topic is stored selected with full scores."""
        engine = make_engine(store, [])
        record = engine.create_custom_topic(
            "Needham Schools and Home Values", keywords=["needham homes"], locations=["Needham"]
        )

        stored = store.get(TopicRecord, record.id)
        assert stored.status == TopicStatus.SELECTED.value
        assert stored.source == "manual"
        assert stored.total_score == 100
        assert stored.locations == ["Needham"]

        with pytest.raises(ValidationError, match="already exists"):
            engine.create_custom_topic("Needham Schools and Home Values")

    def test_custom_topic_requires_title(self, store: ContentStore) -> None:
        with pytest.raises(ValidationError):
            make_engine(store, []).create_custom_topic("   ")

    def test_pending_topics_skip_expired(self, store: ContentStore) -> None:
        store.insert(TopicRecord(
            title="Fresh", slug="fresh", total_score=60, expires_at=FIXED_NOW + timedelta(days=5)
        ))
        store.insert(TopicRecord(
            title="Stale", slug="stale", total_score=90, expires_at=FIXED_NOW - timedelta(days=1)
        ))
        pending = make_engine(store, []).pending_topics()
        assert [r.slug for r in pending] == ["fresh"]

    def test_sweep_archives_and_purges(self, store: ContentStore) -> None:
        """Test that the sweep archives expired topics and deletes old archived ones."""
        store.insert(TopicRecord(
            title="Expired", slug="expired", expires_at=FIXED_NOW - timedelta(days=1)
        ))
        store.insert(TopicRecord(
            title="Live", slug="live", expires_at=FIXED_NOW + timedelta(days=1)
        ))
        store.insert(TopicRecord(
            title="Old", slug="old",
            status=TopicStatus.ARCHIVED.value,
            updated_at=FIXED_NOW - timedelta(days=100),
        ))
        engine = make_engine(store, [])

        result = engine.sweep_expired()
        assert (result.archived, result.deleted) == (1, 1)
        assert store.find_by(TopicRecord, slug="expired")[0].status == "archived"
        assert store.find_by(TopicRecord, slug="live")[0].status == "pending"
        assert store.find_by(TopicRecord, slug="old") == []

        again = engine.sweep_expired()
        assert (again.archived, again.deleted) == (0, 0)
