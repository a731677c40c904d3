"""Search (SEO) and local-relevance (GEO) quality scoring for articles."""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass

from markupsafe import escape

from estatepress.config import RegionProfile
from estatepress.content.base import ArticleDraft
from estatepress.content.signals import ContentSignals, extract_signals, is_external_link

GOOD, OK, POOR = "good", "ok", "poor"
STATUS_WEIGHTS = {GOOD: 1.0, OK: 0.6, POOR: 0.2}

SAFE_REL = ("noopener", "noreferrer")
# alt="", alt='' or a bare alt attribute
_EMPTY_ALT = re.compile(r"\salt(?:\s*=\s*([\"'])\s*\1)?(?=[\s/>])", re.I)
_REL = re.compile(r"\srel\s*=\s*(?:([\"'])(.*?)\1|([^\s\"'>]+))", re.I)

SEO_POINTS = {
    "title_length": 10,
    "meta_description": 10,
    "h1_heading": 5,
    "h2_headings": 5,
    "word_count": 10,
    "keyword_density": 10,
    "internal_links": 15,
    "external_links": 10,
    "images": 15,
    "schema_markup": 10,
}

GEO_POINTS = {
    "region_mentions": 15,
    "local_area_mentions": 10,
    "state_mentions": 5,
    "school_references": 10,
    "market_data": 20,
    "price_data": 15,
    "local_business_schema": 10,
    "nap_consistency": 10,
    "local_landmarks": 5,
}

REMEDIATIONS = {
    "title_length": "Rewrite the title to 50-60 characters with the primary keyword near the start.",
    "meta_description": "Write a 140-155 character meta description that includes the primary keyword.",
    "h1_heading": "Use exactly one H1 heading, reserved for the article title.",
    "h2_headings": "Organize the article into 3-8 H2 sections with descriptive headings.",
    "word_count": "Expand the article to 1,200-2,500 words with locally specific detail.",
    "keyword_density": "Use the primary keyword naturally, aiming for a 0.5-2.5% density.",
    "internal_links": "Add 3-7 internal links to listings, school pages and site tools.",
    "external_links": "Cite 2-5 authoritative external sources such as market reports.",
    "images": "Include 2-6 images and give every image descriptive alt text.",
    "schema_markup": "Attach Article structured data (JSON-LD) to the post.",
    "region_mentions": "Mention the region by name at least three times.",
    "local_area_mentions": "Reference at least two specific neighborhoods or nearby cities.",
    "state_mentions": "Mention the state at least once to anchor the article geographically.",
    "school_references": "Discuss local schools or districts; families weigh them heavily.",
    "market_data": "Add quantifiable market data: median prices, percentages, inventory.",
    "price_data": "Include at least three concrete price figures.",
    "local_business_schema": "Enable LocalBusiness structured data for the brokerage.",
    "nap_consistency": "Include the business name, phone number and office address.",
    "local_landmarks": "Reference well-known local landmarks readers recognize.",
}


def _band(value: float, good: tuple[float, float], ok: tuple[float, float]) -> str:
    if good[0] <= value <= good[1]:
        return GOOD
    if ok[0] <= value <= ok[1]:
        return OK
    return POOR


def _at_least(value: float, good: float, ok: float) -> str:
    if value >= good:
        return GOOD
    if value >= ok:
        return OK
    return POOR


@dataclass
class Finding:
    criterion: str
    status: str
    value: object
    max_points: int


@dataclass
class Recommendation:
    criterion: str
    category: str
    severity: str
    status: str
    message: str


@dataclass
class QualityReport:
    seo_score: float
    geo_score: float
    seo_findings: dict[str, Finding]
    geo_findings: dict[str, Finding]
    recommendations: list[Recommendation]
    schema: dict
    signals: ContentSignals | None = None

    def to_dict(self) -> dict:
        return {
            "seo_score": self.seo_score,
            "geo_score": self.geo_score,
            "seo": {k: asdict(v) for k, v in self.seo_findings.items()},
            "geo": {k: asdict(v) for k, v in self.geo_findings.items()},
            "recommendations": [asdict(r) for r in self.recommendations],
            "schema": self.schema,
        }


def composite_score(findings: dict[str, Finding]) -> float:
    """Weighted share of available points, as a percentage to one decimal."""
    possible = sum(f.max_points for f in findings.values())
    if not possible:
        return 0.0
    earned = sum(f.max_points * STATUS_WEIGHTS[f.status] for f in findings.values())
    return round(earned / possible * 100, 1)


class QualityAnalyzer:
    """Classify an article against SEO and GEO criteria and suggest fixes."""

    def __init__(self, region: RegionProfile | None = None, site_url: str = "") -> None:
        self._region = region or RegionProfile()
        self._site_url = (site_url or f"https://{self._region.site_domain}").rstrip("/")

    def analyze(self, draft: ArticleDraft) -> QualityReport:
        signals = extract_signals(
            draft.title,
            draft.content,
            draft.meta_description,
            draft.primary_keyword,
            self._region,
        )
        seo = self.seo_findings(signals, has_schema=signals.has_schema or bool(draft.schema_markup))
        geo = self.geo_findings(signals, local_business_schema=draft.local_business_schema)

        return QualityReport(
            seo_score=composite_score(seo),
            geo_score=composite_score(geo),
            seo_findings=seo,
            geo_findings=geo,
            recommendations=self.recommendations(seo, geo),
            schema=draft.schema_markup or self.article_schema(draft, word_count=signals.word_count),
            signals=signals,
        )

    def seo_findings(self, s: ContentSignals, has_schema: bool) -> dict[str, Finding]:
        if s.keyword_occurrences:
            density_status = _band(s.keyword_density, (0.5, 2.5), (0.3, 3.5))
        else:
            density_status = POOR

        if s.image_count and 2 <= s.image_count <= 6 and s.images_missing_alt == 0:
            images_status = GOOD
        elif 1 <= s.image_count <= 8:
            images_status = OK
        else:
            images_status = POOR

        if s.h1_count == 1:
            h1_status = GOOD
        elif s.h1_count == 0:
            h1_status = POOR
        else:
            h1_status = OK

        statuses = {
            "title_length": (_band(s.title_length, (50, 60), (40, 70)), s.title_length),
            "meta_description": (
                _band(s.meta_description_length, (140, 155), (120, 160)),
                s.meta_description_length,
            ),
            "h1_heading": (h1_status, s.h1_count),
            "h2_headings": (_band(s.h2_count, (3, 8), (2, 10)), s.h2_count),
            "word_count": (_band(s.word_count, (1200, 2500), (800, 3000)), s.word_count),
            "keyword_density": (density_status, s.keyword_density),
            "internal_links": (_band(s.internal_links, (3, 7), (2, 10)), s.internal_links),
            "external_links": (_band(s.external_links, (2, 5), (1, 7)), s.external_links),
            "images": (images_status, s.image_count),
            "schema_markup": (GOOD if has_schema else POOR, has_schema),
        }
        return {
            name: Finding(name, status, value, SEO_POINTS[name])
            for name, (status, value) in statuses.items()
        }

    def geo_findings(self, s: ContentSignals, local_business_schema: bool) -> dict[str, Finding]:
        statuses = {
            "region_mentions": (_at_least(s.region_mentions, 3, 1), s.region_mentions),
            "local_area_mentions": (_at_least(s.local_area_mentions, 2, 1), s.local_area_mentions),
            "state_mentions": (GOOD if s.state_mentions >= 1 else POOR, s.state_mentions),
            "school_references": (_at_least(s.school_mentions, 2, 1), s.school_mentions),
            "market_data": (_at_least(s.market_data_mentions, 5, 2), s.market_data_mentions),
            "price_data": (_at_least(s.price_mentions, 3, 1), s.price_mentions),
            "local_business_schema": (
                GOOD if local_business_schema else POOR,
                local_business_schema,
            ),
            "nap_consistency": (_at_least(s.nap_elements, 2, 1), s.nap_elements),
            "local_landmarks": (GOOD if s.landmark_mentions >= 1 else OK, s.landmark_mentions),
        }
        return {
            name: Finding(name, status, value, GEO_POINTS[name])
            for name, (status, value) in statuses.items()
        }

    @staticmethod
    def recommendations(
        seo: dict[str, Finding], geo: dict[str, Finding]
    ) -> list[Recommendation]:
        """One recommendation per non-good criterion, poor before ok."""
        recs = []
        for category, findings in (("seo", seo), ("geo", geo)):
            for finding in findings.values():
                if finding.status == GOOD:
                    continue
                recs.append(
                    Recommendation(
                        criterion=finding.criterion,
                        category=category,
                        severity="high" if finding.status == POOR else "medium",
                        status=finding.status,
                        message=REMEDIATIONS[finding.criterion],
                    )
                )
        return sorted(recs, key=lambda r: 0 if r.status == POOR else 1)

    # ------------------------------------------------------------------
    # Structured data
    # ------------------------------------------------------------------

    def article_schema(
        self,
        draft: ArticleDraft,
        *,
        word_count: int | None = None,
        image_url: str | None = None,
        published_at: str | None = None,
    ) -> dict:
        """Article JSON-LD for the post."""
        organization = {
            "@type": "Organization",
            "name": self._region.site_name,
            "url": self._site_url,
        }
        schema: dict = {
            "@context": "https://schema.org",
            "@type": "Article",
            "headline": draft.title[:110],
            "description": draft.meta_description,
            "author": organization,
            "publisher": organization,
            "mainEntityOfPage": {
                "@type": "WebPage",
                "@id": f"{self._site_url}/{draft.slug}/",
            },
            "spatialCoverage": {
                "@type": "Place",
                "name": f"{self._region.name}, {self._region.state}",
            },
        }
        if draft.keywords:
            schema["keywords"] = ", ".join(draft.keywords)
        if word_count:
            schema["wordCount"] = word_count
        if image_url:
            schema["image"] = image_url
        if published_at:
            schema["datePublished"] = published_at
        return schema

    @staticmethod
    def schema_script(schema: dict) -> str:
        return (
            '<script type="application/ld+json">'
            f"{json.dumps(schema, ensure_ascii=False)}"
            "</script>"
        )

    # ------------------------------------------------------------------
    # Mechanical repairs
    # ------------------------------------------------------------------

    def optimize(self, content: str, title: str) -> str:
        """Fill in missing image alt text and external-link safety attributes.

        Only the affected opening tags are rewritten, so applying this twice
        gives the same result as applying it once.
        """
        alt_text = str(escape(f"{title} - {self._region.name} real estate"))

        def fix_img(match: re.Match) -> str:
            tag = match.group(0)
            if _EMPTY_ALT.search(tag):
                return _EMPTY_ALT.sub(lambda _: f' alt="{alt_text}"', tag, count=1)
            if not re.search(r"\salt\s*=", tag, re.I):
                return re.sub(r"^<img\b", lambda _: f'<img alt="{alt_text}"', tag, count=1, flags=re.I)
            return tag

        def fix_link(match: re.Match) -> str:
            tag = match.group(0)
            href = re.search(r"\shref\s*=\s*([\"'])(.*?)\1", tag, re.I)
            if not href or not is_external_link(href.group(2), self._region.site_domain):
                return tag
            additions = ""
            if not re.search(r"\starget\s*=", tag, re.I):
                additions += ' target="_blank"'
            rel = _REL.search(tag)
            if rel is None:
                additions += f' rel="{" ".join(SAFE_REL)}"'
            else:
                tokens = (rel.group(2) if rel.group(1) else rel.group(3)).split()
                missing = [t for t in SAFE_REL if t not in {x.lower() for x in tokens}]
                if missing:
                    tag = f'{tag[:rel.start()]} rel="{" ".join(tokens + missing)}"{tag[rel.end():]}'
            if not additions:
                return tag
            return re.sub(r"^<a\b", f"<a{additions}", tag, count=1, flags=re.I)

        content = re.sub(r"<img\b[^>]*>", fix_img, content, flags=re.I)
        return re.sub(r"<a\b[^>]*>", fix_link, content, flags=re.I)
