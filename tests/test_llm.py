"""Tests for the Claude client wrapper and prompt templates."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
from anthropic import APIConnectionError, APIStatusError

from estatepress.config import RegionProfile
from estatepress.content.base import TopicCandidate
from estatepress.llm.client import ClaudeClient
from estatepress.llm.prompts import render, render_html, render_string, template_source
from tests.conftest import make_mock_response

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


class TestClaudeClient:
    def test_generate_returns_text(self, mock_claude_client: ClaudeClient) -> None:
        """Test that generate() returns the text from Claude's response."""
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            "Hello from Claude!"
        )

        result = mock_claude_client.generate(
            system="You are helpful.",
            messages=[{"role": "user", "content": "Hi"}],
        )
        assert result == "Hello from Claude!"

    def test_generate_tracks_tokens(self, mock_claude_client: ClaudeClient) -> None:
        """Test that token usage is tracked across calls."""
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            "Response", input_tokens=50, output_tokens=100
        )

        mock_claude_client.generate(system="sys", messages=[{"role": "user", "content": "msg"}])
        mock_claude_client.generate(system="sys", messages=[{"role": "user", "content": "msg"}])

        usage = mock_claude_client.usage_summary
        assert usage["total_input_tokens"] == 100
        assert usage["total_output_tokens"] == 200

    def test_generate_with_no_content(self, mock_claude_client: ClaudeClient) -> None:
        response = make_mock_response("")
        response.content = []
        mock_claude_client._client.messages.create.return_value = response
        assert mock_claude_client.generate(system="s", messages=[]) == ""

    def test_complete_success(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response("Body text")

        result = mock_claude_client.complete("Write it", "You are an editor.", temperature=0.2)

        assert result.success
        assert result.text == "Body text"
        kwargs = mock_claude_client._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "You are an editor."
        assert kwargs["messages"] == [{"role": "user", "content": "Write it"}]
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 1024

    def test_complete_empty_response(self, mock_claude_client: ClaudeClient) -> None:
        """Test that whitespace-only output is reported as an empty response."""
        mock_claude_client._client.messages.create.return_value = make_mock_response("  \n ")

        result = mock_claude_client.complete("Write it")
        assert not result.success
        assert result.kind == "empty_response"

    def test_complete_api_error(self, mock_claude_client: ClaudeClient) -> None:
        """Test that provider failures are returned rather than raised."""
        mock_claude_client._client.messages.create.side_effect = APIConnectionError(request=REQUEST)

        result = mock_claude_client.complete("Write it")
        assert not result.success
        assert result.kind == "api_error"
        assert mock_claude_client._client.messages.create.call_count == 1

    def test_complete_status_error(self, mock_claude_client: ClaudeClient) -> None:
        response = httpx.Response(529, request=REQUEST)
        mock_claude_client._client.messages.create.side_effect = APIStatusError(
            "overloaded", response=response, body=None
        )

        result = mock_claude_client.complete("Write it")
        assert result.kind == "api_error"
        assert "overloaded" in result.error

    def test_sdk_retries_disabled(self, settings) -> None:
        client = ClaudeClient(settings)
        assert client._client.max_retries == 0


class TestPrompts:
    def test_topic_research_template(self) -> None:
        text = render("topic_research.j2", region=RegionProfile(), count=4, year=2026)
        assert "Boston" in text
        assert "4" in text
        assert "related_cities" in text

    def test_strategy_body_renders_like_template(self) -> None:
        context = {
            "region": RegionProfile(),
            "topic": TopicCandidate(title="Condo Fees Explained", keywords=["condo fees"]),
            "word_count": 1800,
            "market_stats": {"median_price": 825000},
        }
        source = template_source("article_structure.j2")
        rendered = render_string(source, **context)

        assert rendered == render("article_structure.j2", **context)
        assert "Condo Fees Explained" in rendered
        assert "condo fees" in rendered
        assert "825000" in rendered

    def test_section_template_mentions_placeholders(self) -> None:
        text = render("section_writing.j2", region=RegionProfile(), primary_keyword="back bay condos")
        assert "back bay condos" in text
        assert "INTERNAL:search" in text

    def test_html_templates_escape(self) -> None:
        cta = MagicMock(
            type="search",
            icon="🏠",
            title="<script>alert(1)</script>",
            description="Fast & free",
            button_url="https://bmnboston.com/search/",
            button_text="Search",
        )
        html = render_html("cta.html.j2", cta=cta)
        assert "<script>" not in html
        assert "Fast &amp; free" in html
        assert html.startswith('<div class="ep-cta ep-cta-search">')
