"""Structural and lexical signals extracted from article HTML.

Everything here is a pure function of the input text; the quality analyzer
decides what the numbers mean.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

from estatepress.config import RegionProfile

PRICE_PATTERN = re.compile(
    r"\$\d[\d,]*(?:\.\d+)?(?:\s?(?:k|m|million|thousand)\b)?", re.IGNORECASE
)
PERCENT_PATTERN = re.compile(r"\d+(?:\.\d+)?%")
MARKET_TERM_PATTERN = re.compile(r"\b(?:median|average|inventory|days on market)\b", re.IGNORECASE)
SCHOOL_PATTERN = re.compile(
    r"\b(?:schools?|education|districts?|elementary)\b", re.IGNORECASE
)
PHONE_PATTERN = re.compile(r"\(?\b\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b")
ADDRESS_PATTERN = re.compile(
    r"\b\d{1,5}\s+(?:[A-Z][\w.]*\s+){1,4}"
    r"(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr|Way|Place|Pl|Square|Sq)\b"
)


def _count_term(text: str, term: str) -> int:
    return len(re.findall(rf"\b{re.escape(term)}\b", text, re.IGNORECASE))


def _has_term(text: str, term: str) -> bool:
    return re.search(rf"\b{re.escape(term)}\b", text, re.IGNORECASE) is not None


def plain_text(html: str) -> str:
    """Visible text of an HTML fragment with whitespace collapsed."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return " ".join(soup.get_text(" ").split())


def word_count(html: str) -> int:
    return len(plain_text(html).split())


@dataclass
class ContentSignals:
    """Raw counts the SEO and local-relevance criteria are scored from."""

    title_length: int
    meta_description_length: int
    word_count: int
    h1_count: int
    h2_count: int
    internal_links: int
    external_links: int
    image_count: int
    images_missing_alt: int
    keyword_occurrences: int
    keyword_density: float
    has_schema: bool
    region_mentions: int
    local_area_mentions: int
    state_mentions: int
    school_mentions: int
    market_data_mentions: int
    price_mentions: int
    nap_elements: int
    landmark_mentions: int


def is_internal_link(href: str, site_domain: str) -> bool:
    return (href.startswith("/") and not href.startswith("//")) or site_domain in href


def is_external_link(href: str, site_domain: str) -> bool:
    return href.startswith(("http://", "https://")) and site_domain not in href


def extract_signals(
    title: str,
    content: str,
    meta_description: str = "",
    primary_keyword: str = "",
    region: RegionProfile | None = None,
) -> ContentSignals:
    """Measure an article. ``content`` is an HTML fragment."""
    region = region or RegionProfile()
    soup = BeautifulSoup(content, "html.parser")

    hrefs = [a["href"].strip() for a in soup.find_all("a", href=True)]
    images = soup.find_all("img")

    text = plain_text(content)
    words = len(text.split())
    lowered = text.lower()

    keyword = primary_keyword.strip().lower()
    occurrences = lowered.count(keyword) if keyword else 0
    density = round(occurrences / words * 100, 2) if words and keyword else 0.0

    state_mentions = _count_term(text, region.state) + _count_term(text, region.state_abbrev)
    nap_elements = sum([
        any(name.lower() in lowered for name in region.business_names),
        PHONE_PATTERN.search(text) is not None,
        ADDRESS_PATTERN.search(text) is not None,
    ])

    return ContentSignals(
        title_length=len(title.strip()),
        meta_description_length=len(meta_description.strip()),
        word_count=words,
        h1_count=len(soup.find_all("h1")),
        h2_count=len(soup.find_all("h2")),
        internal_links=sum(1 for h in hrefs if is_internal_link(h, region.site_domain)),
        external_links=sum(1 for h in hrefs if is_external_link(h, region.site_domain)),
        image_count=len(images),
        images_missing_alt=sum(1 for img in images if not (img.get("alt") or "").strip()),
        keyword_occurrences=occurrences,
        keyword_density=density,
        has_schema="application/ld+json" in content or '"@type"' in content,
        region_mentions=_count_term(text, region.name),
        local_area_mentions=sum(1 for area in region.local_areas if _has_term(text, area)),
        state_mentions=state_mentions,
        school_mentions=len(SCHOOL_PATTERN.findall(text)),
        market_data_mentions=(
            len(PRICE_PATTERN.findall(text))
            + len(PERCENT_PATTERN.findall(text))
            + len(MARKET_TERM_PATTERN.findall(text))
        ),
        price_mentions=len(PRICE_PATTERN.findall(text)),
        nap_elements=nap_elements,
        landmark_mentions=sum(1 for mark in region.landmarks if _has_term(text, mark)),
    )
