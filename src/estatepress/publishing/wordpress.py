"""WordPress REST API client used as the publishing sink.

Authenticates with an application password (Users > Profile > Application
Passwords) over HTTP Basic auth.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field

import httpx

from estatepress.storage.models import ArticleRecord

logger = logging.getLogger(__name__)


@dataclass
class DraftResult:
    success: bool
    post_id: str | None = None
    urls: dict[str, str] = field(default_factory=dict)
    error: str | None = None


@dataclass
class PublishResult:
    success: bool
    status: str = ""
    error: str | None = None


class WordPressClient:
    """Wrapper around the WordPress posts endpoint."""

    def __init__(
        self, site_url: str, username: str, app_password: str, timeout: float = 30.0
    ) -> None:
        self._site_url = site_url.rstrip("/")
        token = base64.b64encode(f"{username}:{app_password}".encode()).decode()
        self._client = httpx.Client(
            base_url=f"{self._site_url}/wp-json/wp/v2",
            headers={
                "Authorization": f"Basic {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
        )

    def create_draft(self, article: ArticleRecord, options: dict | None = None) -> DraftResult:
        """Create a post from ``article``.

        Args:
            article: The assembled article, body already final.
            options: ``status`` (default "draft"), ``categories``, ``tags``
                as lists of term ids.

        Returns:
            DraftResult with the post id and edit/preview/view URLs.
        """
        options = options or {}
        payload: dict = {
            "title": article.title,
            "slug": article.slug,
            "content": article.content,
            "excerpt": article.meta_description,
            "status": options.get("status", "draft"),
        }
        for key in ("categories", "tags"):
            if options.get(key):
                payload[key] = options[key]

        try:
            resp = self._client.post("/posts", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("WordPress draft creation failed: %s", exc)
            return DraftResult(success=False, error=str(exc))

        post_id = str(data["id"])
        link = data.get("link", "")
        return DraftResult(
            success=True,
            post_id=post_id,
            urls={
                "edit": f"{self._site_url}/wp-admin/post.php?post={post_id}&action=edit",
                "preview": f"{self._site_url}/?p={post_id}&preview=true",
                "view": link,
            },
        )

    def publish(self, post_id: str) -> PublishResult:
        try:
            resp = self._client.post(f"/posts/{post_id}", json={"status": "publish"})
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("WordPress publish of post %s failed: %s", post_id, exc)
            return PublishResult(success=False, error=str(exc))
        return PublishResult(success=True, status=data.get("status", ""))

    def close(self) -> None:
        self._client.close()
