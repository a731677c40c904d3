"""Internal links from article text to the site's own pages and tools."""

from __future__ import annotations

import re
from dataclasses import dataclass

from estatepress.config import RegionProfile
from estatepress.content.base import slugify

MAX_TOTAL_LINKS = 7


@dataclass(frozen=True)
class LinkTarget:
    path: str
    phrases: tuple[str, ...]
    max_links: int = 1


LINK_TARGETS = {
    "search": LinkTarget(
        "/search/", ("homes for sale", "search for homes", "browse listings", "property search"), 2
    ),
    "schools": LinkTarget("/schools/", ("school ratings", "school districts", "top-rated schools")),
    "book": LinkTarget("/book/", ("schedule a showing", "book a tour", "private showing")),
    "calculator": LinkTarget(
        "/mortgage-calculator/", ("mortgage calculator", "monthly payment", "estimate your payment")
    ),
    "app": LinkTarget("/app/", ("our app", "mobile app")),
}

_PLACEHOLDER = re.compile(r'href=(["\'])INTERNAL:(\w+)\1')
_ANCHOR = re.compile(r"<a\b.*?</a>|<h[1-6]\b.*?</h[1-6]>", re.I | re.S)


def city_path(city: str, state_abbrev: str) -> str:
    return f"/homes-for-sale-in-{slugify(city)}-{state_abbrev.lower()}/"


class InternalLinker:
    """Resolve ``INTERNAL:type`` placeholders and link known phrases once each."""

    def __init__(
        self,
        region: RegionProfile | None = None,
        targets: dict[str, LinkTarget] | None = None,
        max_total: int = MAX_TOTAL_LINKS,
    ) -> None:
        self._region = region or RegionProfile()
        self._targets = targets or LINK_TARGETS
        self._max_total = max_total

    def resolve_placeholders(self, html: str) -> str:
        def replace(match: re.Match) -> str:
            target = self._targets.get(match.group(2))
            path = target.path if target else self._targets["search"].path
            return f'href="{path}"'

        return _PLACEHOLDER.sub(replace, html)

    def process(self, html: str) -> str:
        html = self.resolve_placeholders(html)
        budget = self._max_total - len(re.findall(r'<a\b[^>]*href="/', html))

        for target in self._targets.values():
            used = html.count(f'href="{target.path}"')
            for phrase in target.phrases:
                if budget <= 0:
                    return html
                if used >= target.max_links:
                    break
                html, linked = self._link_first(html, phrase, target.path)
                used += linked
                budget -= linked

        for city in self._region.sub_regions:
            if budget <= 0:
                break
            path = city_path(city, self._region.state_abbrev)
            if f'href="{path}"' in html:
                continue
            for suffix in ("homes", "real estate"):
                phrase = f"{city} {suffix}"
                html, linked = self._link_first(html, phrase, path)
                budget -= linked
                if linked:
                    break
        return html

    @staticmethod
    def _link_first(html: str, phrase: str, path: str) -> tuple[str, int]:
        """Link the first plain-text occurrence of ``phrase``.

        Text already inside a link or heading is left alone.
        """
        pattern = re.compile(rf"(?<![\w-]){re.escape(phrase)}(?![\w-])", re.I)
        protected = [m.span() for m in _ANCHOR.finditer(html)]

        for match in pattern.finditer(html):
            start, end = match.span()
            if any(s <= start < e for s, e in protected):
                continue
            # Skip matches inside a tag's attributes.
            if html.rfind("<", 0, start) > html.rfind(">", 0, start):
                continue
            link = f'<a href="{path}">{match.group(0)}</a>'
            return html[:start] + link + html[end:], 1
        return html, 0
