"""Request/response surface for callers, with a uniform result envelope."""

from __future__ import annotations

import logging
from dataclasses import asdict

from estatepress.config import Settings
from estatepress.content.article import ArticleGenerator
from estatepress.content.base import ArticleDraft, TopicCandidate
from estatepress.content.cta import CTASelector
from estatepress.content.linker import InternalLinker
from estatepress.errors import EstatePressError
from estatepress.learning.feedback import FeedbackLearner
from estatepress.learning.strategies import StrategyManager
from estatepress.llm.client import ClaudeClient
from estatepress.media.images import (
    ImageResolver,
    PexelsProvider,
    PropertyPhotoCatalog,
    UnsplashProvider,
)
from estatepress.pipeline import ArticlePipeline, GenerationOptions
from estatepress.publishing.wordpress import WordPressClient
from estatepress.research.discovery import TopicDiscoveryEngine
from estatepress.research.sources import (
    FeedTopicSource,
    MarketDataTopicSource,
    TopicSource,
    WebSearchTopicSource,
)
from estatepress.seo.quality import QualityAnalyzer
from estatepress.storage.store import ContentStore

logger = logging.getLogger(__name__)


def ok(data: object) -> dict:
    return {"success": True, "data": data}


def fail(error: str, **details: object) -> dict:
    envelope: dict = {"success": False, "error": error}
    if details:
        envelope["details"] = details
    return envelope


class ContentService:
    """Synchronous entry points for topic discovery, generation, analysis and feedback."""

    def __init__(
        self,
        store: ContentStore,
        discovery: TopicDiscoveryEngine,
        pipeline: ArticlePipeline,
        analyzer: QualityAnalyzer,
        feedback: FeedbackLearner,
        strategies: StrategyManager,
        *,
        default_min_score: float = 50.0,
        local_business_schema: bool = True,
    ) -> None:
        self.store = store
        self.discovery = discovery
        self.pipeline = pipeline
        self.analyzer = analyzer
        self.feedback = feedback
        self.strategies = strategies
        self._default_min_score = default_min_score
        self._local_business_schema = local_business_schema

    def discover_topics(
        self, count: int = 5, exclude_recent: bool = True, min_score: float | None = None
    ) -> dict:
        result = self.discovery.discover(
            count=count,
            exclude_recent=exclude_recent,
            min_score=self._default_min_score if min_score is None else min_score,
        )
        if not result.success:
            return fail(result.error or "discovery failed", failures=result.failures)
        return ok({
            "topics": [t.to_dict() for t in result.topics],
            "source_failures": result.failures,
        })

    def generate_article(
        self,
        topic_id: int | None = None,
        title: str | None = None,
        description: str = "",
        keywords: list[str] | None = None,
        locations: list[str] | None = None,
        cta_type: str = "auto",
        publish: bool = False,
    ) -> dict:
        topic = None
        if title is not None:
            if not title.strip():
                return fail("topic title is required", stage="validation")
            topic = TopicCandidate(
                title=title,
                description=description,
                keywords=keywords or [],
                locations=locations or [],
            )
        result = self.pipeline.run(
            topic_id=topic_id,
            topic=topic,
            options=GenerationOptions(cta_type=cta_type, publish=publish),
        )
        if not result.success:
            return fail(result.error or "generation failed", stage=result.stage, kind=result.error_kind)
        return ok(result.to_dict())

    def analyze_quality(
        self,
        title: str,
        content: str,
        meta_description: str = "",
        primary_keyword: str = "",
        optimize: bool = False,
        local_business_schema: bool | None = None,
    ) -> dict:
        """Score caller-supplied HTML. ``local_business_schema`` defaults to the site setting."""
        if not title.strip() or not content.strip():
            return fail("title and content are required")
        if local_business_schema is None:
            local_business_schema = self._local_business_schema
        draft = ArticleDraft(
            title=title,
            content=content,
            meta_description=meta_description,
            primary_keyword=primary_keyword,
            local_business_schema=local_business_schema,
        )
        data = self.analyzer.analyze(draft).to_dict()
        if optimize:
            data["optimized_content"] = self.analyzer.optimize(content, title)
        return ok(data)

    def record_feedback(
        self,
        article_id: int,
        type: str,
        metric_name: str,
        value: float,
        metadata: dict | None = None,
    ) -> dict:
        event_id = self.feedback.record(article_id, type, metric_name, value, metadata)
        if event_id is None:
            return fail("feedback was not recorded")
        return ok({"event_id": event_id})

    def refresh_statistics(self) -> dict:
        return ok([asdict(s) for s in self.feedback.update_strategy_statistics()])

    def adjust_weights(self, threshold: float = 10.0) -> dict:
        self.feedback.update_strategy_statistics()
        return ok([asdict(a) for a in self.feedback.auto_adjust_weights(threshold)])

    def insights(self, period: str = "month") -> dict:
        try:
            report = self.feedback.insights_report(period)
        except EstatePressError as exc:
            return fail(str(exc))
        data = asdict(report)
        data["start"], data["end"] = report.start.isoformat(), report.end.isoformat()
        return ok(data)


def build_sources(
    settings: Settings, client: ClaudeClient, strategies: StrategyManager
) -> list[TopicSource]:
    region = settings.region
    return [
        WebSearchTopicSource(
            client, region, strategies=strategies,
            weight=settings.web_search_weight, enabled=settings.web_search_enabled,
        ),
        FeedTopicSource(
            client, region, settings.research_feeds, strategies=strategies,
            weight=settings.rss_feeds_weight,
            enabled=settings.rss_feeds_enabled and bool(settings.research_feeds),
        ),
        MarketDataTopicSource(
            client, region, settings.market_stats_path, strategies=strategies,
            weight=settings.market_data_weight, enabled=settings.market_data_enabled,
        ),
    ]


def build_service(settings: Settings, client: ClaudeClient | None = None) -> ContentService:
    """Wire every component from settings."""
    client = client or ClaudeClient(settings)
    region = settings.region
    store = ContentStore(settings.db_path)
    strategies = StrategyManager(store)
    strategies.seed_defaults()

    discovery = TopicDiscoveryEngine(
        store,
        build_sources(settings, client, strategies),
        region=region,
        expiry_days=settings.topic_expiry_days,
        retention_days=settings.archive_retention_days,
        recent_window_days=settings.recent_topic_window_days,
    )
    analyzer = QualityAnalyzer(region, settings.site_url)
    resolver = ImageResolver(
        [
            UnsplashProvider(settings.unsplash_access_key, settings.image_timeout),
            PexelsProvider(settings.pexels_api_key, settings.image_timeout),
        ],
        PropertyPhotoCatalog(settings.photo_catalog_path),
        region,
    )
    publisher = None
    if settings.wordpress_url and settings.wordpress_user:
        publisher = WordPressClient(
            settings.wordpress_url, settings.wordpress_user, settings.wordpress_app_password
        )

    pipeline = ArticlePipeline(
        store,
        discovery,
        ArticleGenerator(client, strategies, region, linker=InternalLinker(region)),
        analyzer,
        resolver,
        CTASelector(settings.site_url, region),
        publisher=publisher,
        local_business_schema=settings.local_business_schema,
    )
    return ContentService(
        store,
        discovery,
        pipeline,
        analyzer,
        FeedbackLearner(store),
        strategies,
        default_min_score=settings.default_min_score,
        local_business_schema=settings.local_business_schema,
    )
