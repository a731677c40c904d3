"""Article generator: outline first, then one call per section."""

from __future__ import annotations

import re
import time

import markdown as md_lib
from pydantic import ValidationError as SchemaError

from estatepress.config import RegionProfile
from estatepress.content.base import (
    ArticleStructure,
    GeneratedArticle,
    TopicCandidate,
    extract_json,
)
from estatepress.content.linker import InternalLinker
from estatepress.content.signals import plain_text
from estatepress.errors import GenerationError
from estatepress.learning.strategies import (
    ARTICLE_STRUCTURE,
    SECTION_WRITING,
    StrategyManager,
    StrategyVersion,
)
from estatepress.llm.client import ClaudeClient
from estatepress.llm.prompts import render_string

META_DESCRIPTION_LIMIT = 155


def truncate_words(text: str, limit: int) -> str:
    """Cut ``text`` to at most ``limit`` characters on a word boundary."""
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    cut = text[: limit - 3].rsplit(" ", 1)[0].rstrip(",;:")
    return f"{cut}..."


def _strip_repeated_heading(body: str, heading: str) -> str:
    lines = body.strip().splitlines()
    if lines and lines[0].lstrip("# ").strip().lower() == heading.strip().lower():
        return "\n".join(lines[1:]).strip()
    return body.strip()


class ArticleGenerator:
    """Generates long-form local real estate articles.

    The outline and section prompts come from the currently weight-selected
    strategy versions; the outline version is recorded on the article so the
    feedback learner can attribute its outcomes.
    """

    def __init__(
        self,
        client: ClaudeClient,
        strategies: StrategyManager,
        region: RegionProfile | None = None,
        *,
        linker: InternalLinker | None = None,
        target_word_count: int = 1800,
    ) -> None:
        self._client = client
        self._strategies = strategies
        self._region = region or RegionProfile()
        self._linker = linker or InternalLinker(self._region)
        self._target_word_count = target_word_count

    def generate(self, topic: TopicCandidate) -> GeneratedArticle:
        """Raises GenerationError as soon as any model call fails."""
        start = time.time()
        structure_strategy = self._strategies.select(ARTICLE_STRUCTURE)
        section_strategy = self._strategies.select(SECTION_WRITING)

        structure = self.plan(topic, structure_strategy)
        primary_keyword = structure.primary_keyword or (topic.keywords[0] if topic.keywords else "")
        system = render_string(
            section_strategy.content,
            region=self._region,
            primary_keyword=primary_keyword,
            topic=topic,
        )

        intro = self._write(
            system,
            f"Write the introduction (about 150 words) for the article "
            f"'{structure.title}'. {structure.introduction}",
            "introduction",
        )
        parts = [f"# {structure.title}", intro]
        for section in structure.sections:
            points = "\n".join(f"- {p}" for p in section.key_points)
            body = self._write(
                system,
                f"Write the section '{section.heading}' (about {section.target_words} "
                f"words) for the article '{structure.title}'.\nKey points:\n{points}",
                f"section '{section.heading}'",
            )
            parts.append(f"## {section.heading}\n\n{_strip_repeated_heading(body, section.heading)}")
        conclusion = self._write(
            system,
            f"Write a short conclusion (about 150 words) for the article "
            f"'{structure.title}'. {structure.conclusion}",
            "conclusion",
        )
        parts.append(f"## Final Thoughts\n\n{_strip_repeated_heading(conclusion, 'Final Thoughts')}")

        html = md_lib.markdown("\n\n".join(parts), extensions=["tables", "fenced_code"])
        html = self._linker.process(html)
        text = plain_text(html)

        return GeneratedArticle(
            title=structure.title,
            content=html,
            meta_description=self.meta_description(structure, text),
            primary_keyword=primary_keyword,
            keywords=structure.keywords or topic.keywords,
            strategy_key=structure_strategy.strategy_key,
            strategy_version=structure_strategy.version,
            metadata={
                "section_strategy_version": section_strategy.version,
                "word_count": len(text.split()),
                "generation_time_seconds": round(time.time() - start, 2),
                "token_usage": self._client.usage_summary,
            },
        )

    def plan(self, topic: TopicCandidate, strategy: StrategyVersion) -> ArticleStructure:
        system = render_string(
            strategy.content,
            region=self._region,
            topic=topic,
            word_count=self._target_word_count,
            market_stats=topic.market_stats,
        )
        result = self._client.complete(
            f"Create the article outline for: {topic.title}", system, temperature=0.4
        )
        if not result.success:
            raise GenerationError(f"outline: {result.error}", result.kind or "api_error")

        payload = extract_json(result.text)
        if not isinstance(payload, dict):
            raise GenerationError("outline: response was not a JSON object", "invalid_response")
        try:
            structure = ArticleStructure.model_validate(payload)
        except SchemaError as exc:
            raise GenerationError(f"outline: {exc.error_count()} invalid fields", "invalid_response") from exc
        if not structure.title.strip() or not structure.sections:
            raise GenerationError("outline: missing title or sections", "invalid_response")
        return structure

    def _write(self, system: str, prompt: str, part: str) -> str:
        result = self._client.complete(prompt, system)
        if not result.success:
            raise GenerationError(f"{part}: {result.error}", result.kind or "api_error")
        return result.text.strip()

    @staticmethod
    def meta_description(structure: ArticleStructure, text: str) -> str:
        if structure.meta_description.strip():
            return truncate_words(structure.meta_description, META_DESCRIPTION_LIMIT)
        # Skip the title, which leads the plain text.
        body = text[len(structure.title):].strip() if text.startswith(structure.title) else text
        sentences = re.split(r"(?<=[.!?])\s+", body)
        summary = ""
        for sentence in sentences:
            if len(summary) + len(sentence) + 1 > META_DESCRIPTION_LIMIT:
                break
            summary = f"{summary} {sentence}".strip()
        return summary or truncate_words(body, META_DESCRIPTION_LIMIT)
