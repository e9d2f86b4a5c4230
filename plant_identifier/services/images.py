"""
Similar-image enrichment via the Unsplash search API.

Without an Unsplash key the service runs in mock mode. Empty results and
every failure (HTTP error, network error, unexpected body) degrade to
deterministic picsum.photos placeholders, so callers always get images back.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx

from ..config import Settings
from ..models import ImageResult, ImageSearchResult

logger = logging.getLogger(__name__)

MAX_IMAGES = 30
QUERY_TERMS = 3
DEFAULT_QUERY = "plant"
DEFAULT_PHOTOGRAPHER = "Unsplash Photographer"
PLACEHOLDER_PHOTOGRAPHER = "Botanical Photos"
PLACEHOLDER_PROFILE = "https://unsplash.com/@botanical"
UNSPLASH_HOME = "https://unsplash.com"


def clamp_count(count: Any) -> int:
    try:
        value = int(count)
    except (TypeError, ValueError):
        return 6
    return min(max(value, 1), MAX_IMAGES)


def build_query(terms: Optional[Sequence[str]], fallback_name: Optional[str] = None) -> str:
    """Join the top search terms; fall back to the plant name, then "plant"."""
    cleaned = [t.strip() for t in (terms or []) if isinstance(t, str) and t.strip()]
    if cleaned:
        return " ".join(cleaned[:QUERY_TERMS])
    if fallback_name and fallback_name.strip():
        return fallback_name.strip()
    return DEFAULT_QUERY


def placeholder_images(query: str, count: int) -> List[ImageResult]:
    encoded = quote(query, safe="")
    return [
        ImageResult(
            id=f"placeholder-{i}",
            url=f"https://picsum.photos/600/400?random={i}&plant={encoded}",
            thumbnailUrl=f"https://picsum.photos/150/100?random={i}&plant={encoded}",
            altText=f"{query} plant image {i + 1}",
            photographerName=PLACEHOLDER_PHOTOGRAPHER,
            photographerUrl=PLACEHOLDER_PROFILE,
            sourceUrl=UNSPLASH_HOME,
        )
        for i in range(count)
    ]


def _map_photo(photo: Dict[str, Any], query: str) -> ImageResult:
    urls = photo.get("urls") or {}
    user = photo.get("user") or {}
    links = photo.get("links") or {}
    username = user.get("username")
    profile = (user.get("links") or {}).get("html") or (f"{UNSPLASH_HOME}/@{username}" if username else UNSPLASH_HOME)
    url = urls.get("regular") or urls.get("full") or urls.get("small")
    if not url:
        raise ValueError("photo without image URL")
    return ImageResult(
        id=str(photo.get("id") or url),
        url=url,
        thumbnailUrl=urls.get("thumb") or urls.get("small") or url,
        altText=photo.get("alt_description") or photo.get("description") or f"{query} plant",
        photographerName=user.get("name") or DEFAULT_PHOTOGRAPHER,
        photographerUrl=profile,
        sourceUrl=links.get("html") or UNSPLASH_HOME,
    )


class ImageSearchService:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    @property
    def mock_mode(self) -> bool:
        return not self.settings.unsplash_api_key

    def _fallback(self, query: str, count: int, page: int, note: str) -> ImageSearchResult:
        images = placeholder_images(query, count)
        return ImageSearchResult(
            query=query,
            page=page,
            total=len(images),
            total_pages=1,
            images=images,
            mock=True,
            note=note,
        )

    async def search(self, query: str, count: int = 6, page: int = 1) -> ImageSearchResult:
        """Search photos for `query`. Never raises."""
        query = (query or "").strip() or DEFAULT_QUERY
        count = clamp_count(count)
        page = page if isinstance(page, int) and page > 0 else 1

        if self.mock_mode:
            logger.warning("[Unsplash] API key not configured; using placeholder images")
            return self._fallback(query, count, page, "Using mock images. Set UNSPLASH_API_KEY for real images.")

        url = f"{self.settings.unsplash_api_base.rstrip('/')}/search/photos"
        params = {"query": query, "per_page": count, "page": page}
        headers = {
            "Accept-Version": "v1",
            "Authorization": f"Client-ID {self.settings.unsplash_api_key}",
        }
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self.settings.image_search_timeout_seconds
            ) as client:
                response = await client.get(url, params=params, headers=headers)
                response.raise_for_status()
                data = response.json()
            results = data.get("results") or []
            images = [_map_photo(photo, query) for photo in results]
            total = int(data.get("total") or len(images))
            total_pages = int(data.get("total_pages") or 1)
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as e:
            logger.warning("[Unsplash] search for %r failed: %s", query, e)
            return self._fallback(query, count, page, f"Image search failed ({e.__class__.__name__}); showing placeholders.")

        if not images:
            logger.info("[Unsplash] no results for %r; using placeholders", query)
            return self._fallback(query, count, page, "No images found; showing placeholders.")

        return ImageSearchResult(
            query=query,
            page=page,
            total=total,
            total_pages=total_pages,
            images=images,
        )

    async def images_for_terms(
        self,
        terms: Optional[Sequence[str]],
        count: int = 6,
        page: int = 1,
        fallback_name: Optional[str] = None,
    ) -> ImageSearchResult:
        """Search with a plant's terms (top 3 joined), or its name when there are none."""
        return await self.search(build_query(terms, fallback_name), count, page)
