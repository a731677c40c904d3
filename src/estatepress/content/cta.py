"""Rule-based call-to-action selection and insertion."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urljoin

from estatepress.config import RegionProfile
from estatepress.llm.prompts import render_html

AUTO = "auto"


@dataclass(frozen=True)
class CTATemplate:
    type: str
    title: str
    description: str
    button_text: str
    button_target: str
    icon: str
    keywords: tuple[str, ...]
    topic_tags: tuple[str, ...]
    position: str = "end"


@dataclass
class CTA:
    """A selected call-to-action with its rendered markup."""

    type: str
    title: str
    description: str
    button_text: str
    button_url: str
    icon: str
    position: str
    html: str = ""


CTA_TEMPLATES: tuple[CTATemplate, ...] = (
    CTATemplate(
        type="search",
        title="Find Your Next Home in {region}",
        description="Browse every active {region}-area listing with instant alerts for new homes.",
        button_text="Search Homes",
        button_target="/search/",
        icon="🏠",
        keywords=("buy", "buying", "listing", "for sale", "house hunting", "condo", "home search"),
        topic_tags=("first-time buyer", "home buying", "neighborhood guide", "relocation"),
    ),
    CTATemplate(
        type="schools",
        title="Compare {region} Schools",
        description="See school ratings and district boundaries before you choose a neighborhood.",
        button_text="Explore Schools",
        button_target="/schools/",
        icon="🎓",
        keywords=("school", "education", "district", "family", "kids", "children"),
        topic_tags=("school district", "family friendly", "top schools"),
    ),
    CTATemplate(
        type="contact",
        title="Talk to a {region} Market Expert",
        description="Get a straight answer on pricing, timing and strategy from a local agent.",
        button_text="Contact an Agent",
        button_target="/contact/",
        icon="💬",
        keywords=("invest", "expert", "advice", "strategy", "negotiat", "agent"),
        topic_tags=("market update", "investment property", "market forecast"),
    ),
    CTATemplate(
        type="valuation",
        title="What Is Your Home Worth?",
        description="Request a free, data-backed valuation from an agent who knows your street.",
        button_text="Get My Home Value",
        button_target="/home-value/",
        icon="📈",
        keywords=("sell", "selling", "home value", "worth", "appraisal", "equity"),
        topic_tags=("home valuation", "selling your home", "listing your home"),
        position="middle",
    ),
    CTATemplate(
        type="book",
        title="Tour Homes This Week",
        description="Book a private showing at a time that works for you.",
        button_text="Schedule a Showing",
        button_target="/book/",
        icon="📅",
        keywords=("tour", "showing", "open house", "visit"),
        topic_tags=("open house", "home tour"),
    ),
    CTATemplate(
        type="calculator",
        title="Estimate Your Monthly Payment",
        description="Run the numbers on price, rate and down payment in under a minute.",
        button_text="Open the Calculator",
        button_target="/mortgage-calculator/",
        icon="🧮",
        keywords=("mortgage", "rate", "payment", "loan", "afford", "down payment"),
        topic_tags=("mortgage rates", "affordability", "financing"),
        position="middle",
    ),
)

# Applied in order when no template matches any keyword or tag.
FALLBACK_RULES: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"first[- ]time|starter home|first home", re.I), "search"),
    (re.compile(r"school|family|families|kids|children", re.I), "schools"),
    (re.compile(r"market|invest|trend|forecast", re.I), "contact"),
)
DEFAULT_TYPE = "search"


def topic_text(title: str, description: str = "", keywords: list[str] | None = None) -> str:
    return " ".join([title, description, *(keywords or [])]).lower()


class CTASelector:
    """Match a topic to one of the fixed call-to-action templates."""

    def __init__(
        self,
        site_url: str,
        region: RegionProfile | None = None,
        templates: tuple[CTATemplate, ...] = CTA_TEMPLATES,
    ) -> None:
        self._site_url = site_url.rstrip("/") + "/"
        self._region = region or RegionProfile()
        self._templates = {t.type: t for t in templates}

    @property
    def types(self) -> list[str]:
        return list(self._templates)

    def score(self, template: CTATemplate, text: str) -> int:
        return (
            sum(10 for kw in template.keywords if kw in text)
            + sum(20 for tag in template.topic_tags if tag in text)
        )

    def choose_type(self, text: str) -> str:
        best_type, best_score = DEFAULT_TYPE, 0
        for template in self._templates.values():
            score = self.score(template, text)
            if score > best_score:
                best_type, best_score = template.type, score
        if best_score:
            return best_type

        for pattern, cta_type in FALLBACK_RULES:
            if pattern.search(text) and cta_type in self._templates:
                return cta_type
        return DEFAULT_TYPE

    def select(
        self,
        title: str,
        description: str = "",
        keywords: list[str] | None = None,
        preferred_type: str = AUTO,
        position: str | None = None,
    ) -> CTA:
        if preferred_type != AUTO and preferred_type in self._templates:
            cta_type = preferred_type
        else:
            cta_type = self.choose_type(topic_text(title, description, keywords))
        return self.build(self._templates[cta_type], position)

    def build(self, template: CTATemplate, position: str | None = None) -> CTA:
        region = self._region.name
        cta = CTA(
            type=template.type,
            title=template.title.format(region=region),
            description=template.description.format(region=region),
            button_text=template.button_text,
            button_url=urljoin(self._site_url, template.button_target),
            icon=template.icon,
            position=position or template.position,
        )
        cta.html = render_html("cta.html.j2", cta=cta)
        return cta


def insert_cta(content: str, cta: CTA) -> str:
    """Place the CTA after ~60% of paragraphs for ``middle``, else at the end."""
    if cta.position == "middle":
        closings = [m.end() for m in re.finditer(r"</p>", content, re.I)]
        if closings:
            at = closings[max(0, int(len(closings) * 0.6) - 1)]
            return f"{content[:at]}\n{cta.html}\n{content[at:]}"
    return f"{content.rstrip()}\n{cta.html}\n"
