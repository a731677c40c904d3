"""Fetch industry news items from RSS/Atom feeds."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime

import feedparser
import httpx
from bs4 import BeautifulSoup
from dateutil import parser as dateparser

logger = logging.getLogger(__name__)


@dataclass
class FeedItem:
    """A single feed entry with its summary reduced to plain text."""

    url: str
    title: str
    source: str
    published: datetime | None
    summary: str
    content_hash: str = ""

    def __post_init__(self) -> None:
        if not self.content_hash:
            self.content_hash = hashlib.sha256(
                (self.url + self.title).encode()
            ).hexdigest()

    @property
    def id(self) -> str:
        return self.content_hash[:12]


class FeedFetcher:
    """Download and parse feeds with a bounded timeout."""

    def __init__(self, timeout: float = 30.0) -> None:
        self._client = httpx.Client(
            timeout=timeout,
            headers={"User-Agent": "estatepress topic research/0.1"},
            follow_redirects=True,
        )

    def fetch_feed(self, feed_url: str, max_items: int = 10) -> list[FeedItem]:
        """Parse an RSS/Atom feed and return its newest entries.

        Raises:
            httpx.HTTPError: the feed could not be downloaded.
        """
        resp = self._client.get(feed_url)
        resp.raise_for_status()
        feed = feedparser.parse(resp.text)
        items: list[FeedItem] = []

        for entry in feed.entries[:max_items]:
            summary_raw = entry.get("summary", "")
            summary = BeautifulSoup(summary_raw, "html.parser").get_text()[:500]

            items.append(
                FeedItem(
                    url=entry.get("link", ""),
                    title=entry.get("title", "Untitled"),
                    source=feed.feed.get("title", feed_url),
                    published=self._parse_date(entry.get("published")),
                    summary=summary.strip(),
                )
            )

        return items

    def fetch_all(self, feed_urls: list[str], max_items: int = 10) -> list[FeedItem]:
        """Fetch every feed, skipping the ones that fail."""
        items: list[FeedItem] = []
        for url in feed_urls:
            try:
                items.extend(self.fetch_feed(url, max_items=max_items))
            except httpx.HTTPError as exc:
                logger.warning("Feed %s unavailable: %s", url, exc)
        return items

    @staticmethod
    def _parse_date(date_str: str | None) -> datetime | None:
        if not date_str:
            return None
        try:
            return dateparser.parse(date_str)
        except (ValueError, TypeError, OverflowError):
            return None

    def close(self) -> None:
        self._client.close()
