"""Shared test fixtures."""

from __future__ import annotations

import random
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from estatepress.config import Settings
from estatepress.content.base import TopicCandidate
from estatepress.errors import TopicSourceError
from estatepress.learning.strategies import StrategyManager
from estatepress.llm.client import ClaudeClient
from estatepress.media.images import ImageDescriptor, ImageProvider
from estatepress.research.sources import TopicSource
from estatepress.storage.store import ContentStore

# A Wednesday in spring, so seasonal scoring is predictable.
FIXED_NOW = datetime(2026, 4, 15, 10, 0, 0)


@pytest.fixture
def tmp_data_dir(tmp_path: Path) -> Path:
    """Create a temporary data directory structure."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def settings(tmp_data_dir: Path) -> Settings:
    """Create test settings with temporary paths."""
    return Settings(
        anthropic_api_key="test-key-not-real",
        model="claude-sonnet-4-20250514",
        max_tokens=1024,
        temperature=0.7,
        site_url="https://bmnboston.com",
        db_path=tmp_data_dir / "test.db",
        photo_catalog_path=tmp_data_dir / "photo_catalog.json",
        market_stats_path=tmp_data_dir / "market_stats.json",
    )


@pytest.fixture
def store(settings: Settings) -> ContentStore:
    return ContentStore(settings.db_path)


@pytest.fixture
def strategies(store: ContentStore) -> StrategyManager:
    manager = StrategyManager(store, rng=random.Random(7))
    manager.seed_defaults()
    return manager


@pytest.fixture
def mock_claude_client(settings: Settings) -> ClaudeClient:
    """Create a ClaudeClient with a mocked Anthropic SDK."""
    client = ClaudeClient(settings)
    # Replace the internal Anthropic client with a mock
    mock_anthropic = MagicMock()
    client._client = mock_anthropic
    return client


def make_mock_response(text: str, input_tokens: int = 100, output_tokens: int = 200):
    """Helper to create a mock Anthropic API response."""
    mock_response = MagicMock()
    mock_response.content = [MagicMock(text=text)]
    mock_response.usage.input_tokens = input_tokens
    mock_response.usage.output_tokens = output_tokens
    return mock_response


class FakeSource(TopicSource):
    """Topic source returning canned candidates, or failing on demand."""

    def __init__(
        self,
        name: str,
        titles: list[str] | None = None,
        *,
        weight: float = 1.0,
        enabled: bool = True,
        error: Exception | None = None,
    ) -> None:
        super().__init__(weight=weight, enabled=enabled)
        self.name = name
        self._titles = titles or []
        self._error = error
        self.calls = 0

    def fetch(self, count: int) -> list[TopicCandidate]:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return [TopicCandidate(title=t, source=self.name) for t in self._titles]


def failing_source(name: str) -> FakeSource:
    return FakeSource(name, error=TopicSourceError(f"{name}: api_error: unavailable"))


class FakeImageProvider(ImageProvider):
    """Image provider that answers from a query -> url map."""

    def __init__(self, name: str, urls: dict[str, str] | None = None, *, always: str = "") -> None:
        self.name = name
        self._urls = urls or {}
        self._always = always
        self.queries: list[str] = []

    def search(self, query: str, orientation: str = "landscape", page_offset: int = 0):
        self.queries.append(query)
        url = self._urls.get(query) or (f"{self._always}/{page_offset}.jpg" if self._always else "")
        if not url:
            return None
        return ImageDescriptor(source=self.name, url=url, alt_text=query, attribution=f"Photo on {self.name}")
