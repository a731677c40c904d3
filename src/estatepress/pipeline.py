"""End-to-end article pipeline: topic to finished, stored article."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from estatepress.content.article import ArticleGenerator
from estatepress.content.base import ArticleDraft, TopicCandidate
from estatepress.content.cta import CTA, CTASelector, insert_cta
from estatepress.errors import (
    DuplicateRecordError,
    EstatePressError,
    GenerationError,
    PipelineError,
    ValidationError,
)
from estatepress.media.images import ImageResolver, ResolvedImages, insert_images
from estatepress.publishing.wordpress import DraftResult, WordPressClient
from estatepress.research.discovery import TopicDiscoveryEngine
from estatepress.seo.quality import QualityAnalyzer, QualityReport
from estatepress.storage.models import (
    ArticleRecord,
    ArticleStatus,
    TopicRecord,
    TopicStatus,
)
from estatepress.storage.store import ContentStore

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    VALIDATION = "validation"
    DISCOVERY = "discovery"
    GENERATION = "generation"
    ANALYSIS = "analysis"
    OPTIMIZATION = "optimization"
    IMAGES = "images"
    CTA = "cta"
    PUBLISHING = "publishing"
    PERSISTENCE = "persistence"


@dataclass
class GenerationOptions:
    cta_type: str = "auto"
    cta_position: str | None = None
    featured_images: int = 1
    content_images: int = 3
    publish: bool = False
    draft_options: dict = field(default_factory=dict)


@dataclass
class PipelineResult:
    success: bool
    article: ArticleRecord | None = None
    topic_id: int | None = None
    report: QualityReport | None = None
    cta: CTA | None = None
    images: ResolvedImages | None = None
    draft: DraftResult | None = None
    stage: str | None = None
    error: str | None = None
    error_kind: str | None = None

    def to_dict(self) -> dict:
        if not self.success:
            return {"stage": self.stage, "error": self.error, "kind": self.error_kind}
        article = self.article
        return {
            "article_id": article.id,
            "topic_id": self.topic_id,
            "title": article.title,
            "slug": article.slug,
            "status": article.status,
            "seo_score": article.seo_score,
            "geo_score": article.geo_score,
            "word_count": article.word_count,
            "cta_type": article.cta_type,
            "strategy_version": article.strategy_version,
            "featured_image": article.featured_image_url or None,
            "post_id": article.post_id or None,
            "urls": self.draft.urls if self.draft else {},
            "recommendations": [r.message for r in self.report.recommendations] if self.report else [],
        }


class ArticlePipeline:
    """Sequence discovery, generation, analysis and enrichment for one article.

    Every collaborator is passed in. A failing stage stops the run and is
    named in the result; nothing is stored as an article unless every stage
    succeeded.
    """

    def __init__(
        self,
        store: ContentStore,
        discovery: TopicDiscoveryEngine,
        generator: ArticleGenerator,
        analyzer: QualityAnalyzer,
        resolver: ImageResolver,
        cta_selector: CTASelector,
        *,
        publisher: WordPressClient | None = None,
        local_business_schema: bool = True,
    ) -> None:
        self._store = store
        self._discovery = discovery
        self._generator = generator
        self._analyzer = analyzer
        self._resolver = resolver
        self._cta_selector = cta_selector
        self._publisher = publisher
        self._local_business_schema = local_business_schema

    def run(
        self,
        topic_id: int | None = None,
        topic: TopicCandidate | None = None,
        options: GenerationOptions | None = None,
    ) -> PipelineResult:
        """Generate an article for a stored topic, a custom topic, or the best new one."""
        options = options or GenerationOptions()
        stage = Stage.VALIDATION
        try:
            if topic_id is None and topic is None:
                stage = Stage.DISCOVERY
            topic_id, candidate = self._resolve_topic(topic_id, topic)

            stage = Stage.GENERATION
            logger.info("Generating article for topic %s: %s", topic_id, candidate.title)
            generated = self._generator.generate(candidate)
            if self._store.find_by(ArticleRecord, slug=generated.slug):
                raise PipelineError(
                    Stage.PERSISTENCE.value, f"an article with slug '{generated.slug}' already exists"
                )

            stage = Stage.ANALYSIS
            draft = ArticleDraft(
                title=generated.title,
                content=generated.content,
                meta_description=generated.meta_description,
                primary_keyword=generated.primary_keyword,
                keywords=generated.keywords,
                local_business_schema=self._local_business_schema,
            )
            schema = self._analyzer.article_schema(
                draft, word_count=generated.metadata.get("word_count")
            )
            draft = draft.model_copy(update={"schema_markup": schema})
            report = self._analyzer.analyze(draft)

            stage = Stage.OPTIMIZATION
            content = self._analyzer.optimize(draft.content, draft.title)

            stage = Stage.IMAGES
            images = self._resolver.resolve(
                content,
                related_locations=candidate.locations,
                keywords=generated.keywords,
                featured_count=options.featured_images,
                content_count=options.content_images,
            )
            content = insert_images(content, images.content)
            if images.featured:
                schema["image"] = images.featured.url

            stage = Stage.CTA
            cta = self._cta_selector.select(
                candidate.title,
                candidate.description,
                candidate.keywords,
                preferred_type=options.cta_type,
                position=options.cta_position,
            )
            content = insert_cta(content, cta)

            article = ArticleRecord(
                topic_id=topic_id,
                title=generated.title,
                slug=generated.slug,
                content=f"{content}\n{self._analyzer.schema_script(schema)}",
                meta_description=generated.meta_description,
                meta_keywords=", ".join(generated.keywords),
                primary_keyword=generated.primary_keyword,
                seo_score=report.seo_score,
                geo_score=report.geo_score,
                word_count=report.signals.word_count if report.signals else 0,
                cta_type=cta.type,
                cta_position=cta.position,
                strategy_key=generated.strategy_key,
                strategy_version=generated.strategy_version,
                featured_image_url=images.featured.url if images.featured else "",
                schema_markup_json=json.dumps(schema),
                status=ArticleStatus.DRAFT.value,
                metadata_json=json.dumps(generated.metadata, default=str),
            )

            draft_result = None
            if self._publisher is not None:
                stage = Stage.PUBLISHING
                draft_result = self._hand_off(article, options)

            stage = Stage.PERSISTENCE
            try:
                self._store.insert(article)
            except DuplicateRecordError as exc:
                raise PipelineError(stage.value, str(exc)) from exc

        except PipelineError as exc:
            return self._failure(exc.stage, exc.cause)
        except GenerationError as exc:
            return self._failure(stage.value, str(exc), exc.kind)
        except EstatePressError as exc:
            return self._failure(stage.value, str(exc))

        if topic_id is not None:
            final = TopicStatus.PUBLISHED if article.status == ArticleStatus.PUBLISHED.value else TopicStatus.GENERATED
            self._advance_topic(topic_id, final)

        logger.info(
            "Article %s stored (SEO %.1f, GEO %.1f)", article.slug, article.seo_score, article.geo_score
        )
        return PipelineResult(
            success=True,
            article=article,
            topic_id=topic_id,
            report=report,
            cta=cta,
            images=images,
            draft=draft_result,
        )

    def _resolve_topic(
        self, topic_id: int | None, topic: TopicCandidate | None
    ) -> tuple[int | None, TopicCandidate]:
        if topic is not None:
            record = self._discovery.create_custom_topic(
                topic.title, topic.description, topic.keywords, topic.locations
            )
            return record.id, topic

        if topic_id is None:
            result = self._discovery.discover(count=1)
            if not result.success or not result.topics:
                raise PipelineError(Stage.DISCOVERY.value, result.error or "no topics qualified")
            chosen = result.topics[0]
            self._advance_topic(chosen.id, TopicStatus.SELECTED)
            return chosen.id, chosen.candidate

        record = self._store.get(TopicRecord, topic_id)
        if record is None:
            raise ValidationError(f"topic {topic_id} not found")
        if record.status not in (TopicStatus.PENDING.value, TopicStatus.SELECTED.value):
            raise ValidationError(f"topic {topic_id} is already {record.status}")
        if record.status == TopicStatus.PENDING.value:
            self._discovery.select_topic(topic_id)
        return topic_id, TopicCandidate(
            title=record.title,
            description=record.description,
            keywords=record.keywords,
            locations=record.locations,
            source=record.source,
            market_stats=record.market_stats,
        )

    def _hand_off(self, article: ArticleRecord, options: GenerationOptions) -> DraftResult:
        draft = self._publisher.create_draft(article, options.draft_options)
        if not draft.success:
            raise PipelineError(Stage.PUBLISHING.value, draft.error or "draft creation failed")
        article.post_id = draft.post_id or ""
        if options.publish:
            published = self._publisher.publish(draft.post_id)
            if not published.success:
                raise PipelineError(Stage.PUBLISHING.value, published.error or "publish failed")
            article.status = ArticleStatus.PUBLISHED.value
            article.published_at = datetime.now()
        return draft

    def _advance_topic(self, topic_id: int | None, status: TopicStatus) -> None:
        if topic_id is None:
            return
        try:
            self._discovery.transition(topic_id, status)
        except ValidationError as exc:
            logger.warning("Topic %s not moved to %s: %s", topic_id, status.value, exc)

    @staticmethod
    def _failure(stage: str, error: str, kind: str | None = None) -> PipelineResult:
        logger.error("Pipeline failed at %s: %s", stage, error)
        return PipelineResult(success=False, stage=stage, error=error, error_kind=kind)
