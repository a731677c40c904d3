"""Fixed-shape records for model output crossing into the pipeline."""

from __future__ import annotations

import json
import re
import unicodedata
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, field_validator

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def slugify(text: str, max_length: int = 80) -> str:
    """Lowercase ASCII slug with hyphen separators."""
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode()
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug[:max_length].rstrip("-")


def extract_json(text: str) -> object | None:
    """Pull the first JSON document out of free-form model output.

    Looks for a fenced ```json block, then the outermost object or array,
    then tries the whole text. Returns None if nothing parses.
    """
    candidates: list[str] = []
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    spans = []
    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        start, end = text.find(open_ch), text.rfind(close_ch)
        if start != -1 and end > start:
            spans.append((start, text[start : end + 1]))
    # Whichever bracket opens first encloses the other.
    candidates.extend(span for _, span in sorted(spans))
    candidates.append(text)

    for candidate in candidates:
        try:
            return json.loads(candidate.strip())
        except json.JSONDecodeError:
            continue
    return None


def _as_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(v).strip() for v in value if str(v).strip()]


class TopicCandidate(BaseModel):
    """A raw topic proposal from any source, before scoring."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list, alias="related_cities")
    source: str = "manual"
    market_stats: dict | None = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def _strip(cls, value: object) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("keywords", "locations", mode="before")
    @classmethod
    def _coerce_list(cls, value: object) -> list[str]:
        return _as_list(value)

    @property
    def slug(self) -> str:
        return slugify(self.title)

    @property
    def text(self) -> str:
        """Title and description, lowercased, as scored by the topic scorer."""
        return f"{self.title} {self.description}".lower()


def parse_topic_candidates(text: str, source: str) -> list[TopicCandidate]:
    """Coerce model output into candidates, dropping entries without a title."""
    payload = extract_json(text)
    if isinstance(payload, dict):
        payload = payload.get("topics", [])
    if not isinstance(payload, list):
        return []

    candidates = []
    for item in payload:
        if not isinstance(item, dict) or not str(item.get("title") or "").strip():
            continue
        item = {**item, "source": source}
        candidates.append(TopicCandidate.model_validate(item))
    return candidates


class SectionPlan(BaseModel):
    model_config = ConfigDict(extra="ignore")

    heading: str
    key_points: list[str] = Field(default_factory=list)
    target_words: int = 300

    @field_validator("key_points", mode="before")
    @classmethod
    def _coerce_points(cls, value: object) -> list[str]:
        return _as_list(value)


class ArticleStructure(BaseModel):
    """Outline returned by the structure-planning call."""

    model_config = ConfigDict(extra="ignore")

    title: str
    meta_description: str = ""
    primary_keyword: str = ""
    keywords: list[str] = Field(default_factory=list)
    introduction: str = ""
    sections: list[SectionPlan] = Field(default_factory=list)
    conclusion: str = ""

    @field_validator("keywords", mode="before")
    @classmethod
    def _coerce_keywords(cls, value: object) -> list[str]:
        return _as_list(value)


@dataclass
class GeneratedArticle:
    """Output from the article generator, before analysis and enrichment."""

    title: str
    content: str
    meta_description: str
    primary_keyword: str
    keywords: list[str]
    strategy_key: str
    strategy_version: str
    metadata: dict = field(default_factory=dict)

    @property
    def slug(self) -> str:
        return slugify(self.title)


class ArticleDraft(BaseModel):
    """The article fields the quality analyzer works from."""

    model_config = ConfigDict(extra="ignore")

    title: str
    content: str
    meta_description: str = ""
    primary_keyword: str = ""
    keywords: list[str] = Field(default_factory=list)
    schema_markup: dict | None = None
    local_business_schema: bool = False

    @field_validator("keywords", mode="before")
    @classmethod
    def _coerce_keywords(cls, value: object) -> list[str]:
        return _as_list(value)

    @property
    def slug(self) -> str:
        return slugify(self.title)
