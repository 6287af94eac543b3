from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tavily import AsyncTavilyClient

from groundline.config import settings
from groundline.errors import ConfigurationError, ProviderError, ResearchError
from groundline.models.research import ImageResult, OrganicResult
from groundline.tools.provider_call import call_provider


@dataclass
class TavilyAnswer:
    answer: str = ""
    results: list[OrganicResult] = field(default_factory=list)
    images: list[ImageResult] = field(default_factory=list)


def is_configured() -> bool:
    return bool(settings.tavily_api_key)


def _map_images(raw_images: list[Any]) -> list[ImageResult]:
    images: list[ImageResult] = []
    for item in raw_images:
        # Plain URL strings, or {"url", "description"} with image descriptions on.
        if isinstance(item, str):
            images.append(ImageResult(title="", image_url=item, link_url=item))
        elif isinstance(item, dict) and item.get("url"):
            images.append(
                ImageResult(
                    title=str(item.get("description") or ""),
                    image_url=str(item["url"]),
                    link_url=str(item["url"]),
                )
            )
    return images


async def search_with_answer(
    query: str,
    *,
    max_results: int = 8,
    search_depth: str = "basic",
    time_range: str | None = None,
    timeout_s: float | None = None,
) -> TavilyAnswer:
    """Single synthesized search call: a direct answer plus supporting results."""
    if not settings.tavily_api_key:
        raise ConfigurationError("TAVILY_API_KEY is not configured")

    client = AsyncTavilyClient(api_key=settings.tavily_api_key)

    kwargs: dict[str, Any] = {
        "query": query,
        "search_depth": search_depth,
        "max_results": max_results,
        "include_answer": True,
        "include_images": True,
    }
    if time_range:
        kwargs["time_range"] = time_range

    try:
        response = await call_provider(
            "tavily",
            "search",
            lambda: client.search(**kwargs),
            timeout_s=timeout_s or settings.quick_search_timeout_s,
        )
    except ResearchError:
        raise
    except Exception as exc:
        # tavily-python raises its own error classes for 4xx/5xx responses.
        raise ProviderError("tavily", f"{type(exc).__name__}: {exc}") from exc

    if not isinstance(response, dict):
        raise ProviderError("tavily", "response is not a JSON object")

    raw_results = response.get("results") or []
    raw_images = response.get("images") or []
    if not isinstance(raw_results, list) or not isinstance(raw_images, list):
        raise ProviderError("tavily", "malformed payload: results/images must be lists")

    results: list[OrganicResult] = []
    for r in raw_results:
        if not isinstance(r, dict):
            continue
        url = str(r.get("url") or "").strip()
        if not url:
            continue
        results.append(
            OrganicResult(
                title=str(r.get("title") or "").strip() or url,
                url=url,
                snippet=str(r.get("content") or "").strip(),
            )
        )

    return TavilyAnswer(
        answer=str(response.get("answer") or "").strip(),
        results=results[:max_results],
        images=_map_images(raw_images),
    )
