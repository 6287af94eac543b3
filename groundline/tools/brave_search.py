from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from groundline.config import settings
from groundline.errors import ConfigurationError, ProviderError
from groundline.models.research import ImageResult, OrganicResult
from groundline.tools.provider_call import call_provider

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_IMAGES_URL = "https://api.search.brave.com/res/v1/images/search"
BRAVE_MAX_COUNT = 20
BRAVE_MAX_OFFSET = 9

FRESHNESS_MAP = {
    "day": "pd",
    "week": "pw",
    "month": "pm",
    "year": "py",
}


@dataclass
class BravePage:
    results: list[OrganicResult] = field(default_factory=list)
    thumbnails: list[ImageResult] = field(default_factory=list)


def is_configured() -> bool:
    return bool(settings.brave_api_key)


def _headers() -> dict[str, str]:
    if not settings.brave_api_key:
        raise ConfigurationError("BRAVE_API_KEY is not configured")
    return {
        "Accept": "application/json",
        "X-Subscription-Token": settings.brave_api_key,
    }


async def _get_json(url: str, params: dict[str, Any], timeout_s: float) -> dict[str, Any]:
    headers = _headers()

    async def request() -> Any:
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
            return response.json()

    payload = await call_provider("brave", url.rsplit("/", 2)[-2], request, timeout_s=timeout_s)
    if not isinstance(payload, dict):
        raise ProviderError("brave", "response is not a JSON object")
    return payload


def _object_field(container: dict[str, Any], key: str) -> dict[str, Any]:
    value = container.get(key) or {}
    if not isinstance(value, dict):
        raise ProviderError("brave", f"malformed payload: '{key}' is not an object")
    return value


def _list_field(container: dict[str, Any], key: str) -> list[Any]:
    value = container.get(key) or []
    if not isinstance(value, list):
        raise ProviderError("brave", f"malformed payload: '{key}' is not a list")
    return value


def _map_web_results(payload: dict[str, Any]) -> BravePage:
    page = BravePage()
    raw_results = _list_field(_object_field(payload, "web"), "results")
    for item in raw_results:
        if not isinstance(item, dict):
            continue
        url = str(item.get("url") or "").strip()
        if not url:
            continue
        snippets = item.get("extra_snippets") or []
        if not isinstance(snippets, list):
            snippets = [snippets]
        description = str(item.get("description") or "")
        snippet = description.strip() or " ".join(str(s) for s in snippets).strip()
        title = str(item.get("title") or "").strip() or url
        page.results.append(OrganicResult(title=title, url=url, snippet=snippet))

        thumbnail = item.get("thumbnail")
        if isinstance(thumbnail, dict):
            image_url = str(thumbnail.get("original") or thumbnail.get("src") or "")
            if image_url:
                page.thumbnails.append(ImageResult(title=title, image_url=image_url, link_url=url))
    return page


async def fetch_web_page(
    query: str,
    *,
    count: int,
    offset: int = 0,
    time_range: str | None = None,
    timeout_s: float | None = None,
) -> BravePage:
    """Fetch one page of Brave web results.

    ``offset`` is Brave's zero-based page index in units of ``count``.
    """
    params: dict[str, Any] = {
        "q": query,
        "count": max(1, min(int(count), BRAVE_MAX_COUNT)),
    }
    if offset:
        params["offset"] = max(0, min(int(offset), BRAVE_MAX_OFFSET))
    if time_range and time_range in FRESHNESS_MAP:
        params["freshness"] = FRESHNESS_MAP[time_range]

    payload = await _get_json(
        BRAVE_SEARCH_URL,
        params,
        timeout_s or settings.search_page_timeout_s,
    )
    return _map_web_results(payload)


async def search_images(
    query: str,
    *,
    max_results: int = 6,
    timeout_s: float | None = None,
) -> list[ImageResult]:
    """Dedicated Brave image search."""
    payload = await _get_json(
        BRAVE_IMAGES_URL,
        {"q": query, "count": max(1, int(max_results))},
        timeout_s or settings.search_page_timeout_s,
    )
    images: list[ImageResult] = []
    for item in _list_field(payload, "results"):
        if not isinstance(item, dict):
            continue
        properties = item.get("properties")
        thumbnail = item.get("thumbnail")
        image_url = ""
        if isinstance(properties, dict):
            image_url = str(properties.get("url") or "")
        if not image_url and isinstance(thumbnail, dict):
            image_url = str(thumbnail.get("src") or "")
        if not image_url:
            continue
        images.append(
            ImageResult(
                title=str(item.get("title") or ""),
                image_url=image_url,
                link_url=str(item.get("url") or ""),
            )
        )
    return images[:max_results]
