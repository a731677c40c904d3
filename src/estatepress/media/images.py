"""Image lookup across the local photo catalog and stock-photo providers."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from estatepress.config import RegionProfile
from estatepress.llm.prompts import render_html

logger = logging.getLogger(__name__)

FEATURED_HINT = "real estate skyline"
CONTENT_QUERIES = [
    "modern home interior",
    "neighborhood street",
    "home exterior",
    "real estate agent",
    "house keys",
    "moving boxes",
]


@dataclass
class ImageDescriptor:
    source: str  # platform | unsplash | pexels
    url: str
    alt_text: str
    caption: str = ""
    attribution: str = ""


@dataclass
class ResolvedImages:
    featured: ImageDescriptor | None
    content: list[ImageDescriptor]


def _is_transient(exc: BaseException) -> bool:
    """Timeouts, connection drops, rate limits and 5xx deserve one more try."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429 or exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


class ImageProvider(ABC):
    """One source of images. ``search`` never raises."""

    name: str = ""

    @abstractmethod
    def search(
        self, query: str, orientation: str = "landscape", page_offset: int = 0
    ) -> ImageDescriptor | None:
        ...


class StockPhotoProvider(ImageProvider):
    """Shared HTTP plumbing for stock-photo APIs."""

    base_url: str = ""
    search_path: str = ""

    def __init__(self, api_key: str, timeout: float = 15.0) -> None:
        self._api_key = api_key
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=self.auth_headers(api_key),
            timeout=min(timeout, 30.0),
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    @abstractmethod
    def auth_headers(self, api_key: str) -> dict[str, str]:
        ...

    @abstractmethod
    def to_descriptor(self, payload: dict, query: str) -> ImageDescriptor | None:
        ...

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        reraise=True,
    )
    def _request(self, params: dict) -> dict:
        resp = self._client.get(self.search_path, params=params)
        resp.raise_for_status()
        return resp.json()

    def search(
        self, query: str, orientation: str = "landscape", page_offset: int = 0
    ) -> ImageDescriptor | None:
        if not self.configured:
            return None
        params = {
            "query": query,
            "orientation": orientation,
            "per_page": 1,
            "page": page_offset + 1,
        }
        try:
            return self.to_descriptor(self._request(params), query)
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            logger.debug("%s found nothing for %r: %s", self.name, query, exc)
            return None

    def close(self) -> None:
        self._client.close()


class UnsplashProvider(StockPhotoProvider):
    name = "unsplash"
    base_url = "https://api.unsplash.com"
    search_path = "/search/photos"

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Client-ID {api_key}", "Accept-Version": "v1"}

    def to_descriptor(self, payload: dict, query: str) -> ImageDescriptor | None:
        results = payload.get("results") or []
        if not results:
            return None
        photo = results[0]
        user = photo.get("user") or {}
        return ImageDescriptor(
            source=self.name,
            url=photo["urls"]["regular"],
            alt_text=photo.get("alt_description") or query,
            caption=photo.get("description") or "",
            attribution=f"Photo by {user.get('name', 'Unknown')} on Unsplash",
        )


class PexelsProvider(StockPhotoProvider):
    name = "pexels"
    base_url = "https://api.pexels.com"
    search_path = "/v1/search"

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": api_key}

    def to_descriptor(self, payload: dict, query: str) -> ImageDescriptor | None:
        photos = payload.get("photos") or []
        if not photos:
            return None
        photo = photos[0]
        return ImageDescriptor(
            source=self.name,
            url=photo["src"]["large"],
            alt_text=photo.get("alt") or query,
            attribution=f"Photo by {photo.get('photographer', 'Unknown')} on Pexels",
        )


class PropertyPhotoCatalog:
    """Listing photos from the platform's own catalog, keyed by city.

    The catalog file maps a city name to a list of
    ``{"url", "address", "caption"}`` objects.
    """

    def __init__(self, catalog_path: Path) -> None:
        self._catalog_path = catalog_path
        self._photos: dict[str, list[dict]] | None = None

    def _load(self) -> dict[str, list[dict]]:
        if self._photos is None:
            try:
                raw = json.loads(self._catalog_path.read_text())
            except (OSError, json.JSONDecodeError) as exc:
                logger.debug("Photo catalog unavailable: %s", exc)
                raw = {}
            self._photos = {k.lower(): v for k, v in raw.items()} if isinstance(raw, dict) else {}
        return self._photos

    def photo_for_location(self, location: str) -> ImageDescriptor | None:
        photos = self._load().get(location.strip().lower()) or []
        for photo in photos:
            if isinstance(photo, dict) and photo.get("url"):
                return ImageDescriptor(
                    source="platform",
                    url=photo["url"],
                    alt_text=f"Home for sale in {location}",
                    caption=photo.get("caption") or photo.get("address") or "",
                )
        return None


class ImageResolver:
    """Featured and in-content images from an ordered fallback chain.

    A provider that errors, times out or returns nothing is skipped; a
    missing image is never an error.
    """

    def __init__(
        self,
        providers: list[ImageProvider],
        catalog: PropertyPhotoCatalog | None = None,
        region: RegionProfile | None = None,
    ) -> None:
        self._providers = providers
        self._catalog = catalog
        self._region = region or RegionProfile()

    def _first_hit(
        self, query: str, orientation: str = "landscape", page_offset: int = 0
    ) -> ImageDescriptor | None:
        for provider in self._providers:
            try:
                image = provider.search(query, orientation, page_offset)
            except Exception as exc:  # noqa: BLE001 - adapters should not raise; isolate if one does
                logger.warning("Image provider %s raised: %s", provider.name, exc)
                continue
            if image and image.url:
                return image
        return None

    def featured(self, locations: list[str], keywords: list[str]) -> ImageDescriptor | None:
        location = locations[0] if locations else ""
        if location and self._catalog is not None:
            image = self._catalog.photo_for_location(location)
            if image:
                return image
        query = f"{location or self._region.name} {FEATURED_HINT}"
        return self._first_hit(query, "landscape")

    def content_queries(self, keywords: list[str]) -> list[str]:
        return CONTENT_QUERIES + [f"{kw} real estate" for kw in keywords[:2]]

    def content_images(self, keywords: list[str], count: int = 3) -> list[ImageDescriptor]:
        images: list[ImageDescriptor] = []
        seen: set[str] = set()
        for offset, query in enumerate(self.content_queries(keywords)):
            if len(images) >= count:
                break
            image = self._first_hit(query, "landscape", offset)
            if image and image.url not in seen:
                seen.add(image.url)
                images.append(image)
        return images

    def resolve(
        self,
        content: str = "",
        related_locations: list[str] | None = None,
        keywords: list[str] | None = None,
        featured_count: int = 1,
        content_count: int = 3,
    ) -> ResolvedImages:
        locations = related_locations or self.locations_in(content)
        keywords = keywords or []
        featured = self.featured(locations, keywords) if featured_count else None
        return ResolvedImages(
            featured=featured,
            content=self.content_images(keywords, content_count) if content_count else [],
        )

    def locations_in(self, content: str) -> list[str]:
        """Sub-regions named in the text, in the order first mentioned."""
        found = []
        for city in self._region.sub_regions:
            match = re.search(rf"\b{re.escape(city)}\b", content, re.I)
            if match:
                found.append((match.start(), city))
        return [city for _, city in sorted(found)]


def figure_html(image: ImageDescriptor) -> str:
    return render_html("image_figure.html.j2", image=image)


def insert_images(content: str, images: list[ImageDescriptor]) -> str:
    """Place one figure after each of several evenly spaced ``<h2>`` headings."""
    if not images:
        return content
    headings = [m.end() for m in re.finditer(r"</h2>", content, re.I)]
    if not headings:
        return content + "\n" + "\n".join(figure_html(img) for img in images)

    if len(images) >= len(headings):
        slots = headings
    else:
        # Centre of each of len(images) equal runs of headings.
        span = len(headings) / len(images)
        slots = [headings[int((i + 0.5) * span)] for i in range(len(images))]
    leftovers = images[len(slots):]

    # Insert back to front so earlier offsets stay valid.
    for at, image in reversed(list(zip(slots, images))):
        content = f"{content[:at]}\n{figure_html(image)}\n{content[at:]}"
    if leftovers:
        content += "\n" + "\n".join(figure_html(img) for img in leftovers)
    return content
