from __future__ import annotations

import asyncio
import math
from typing import Awaitable, Callable

from loguru import logger

from groundline.config import settings
from groundline.errors import ConfigurationError, ResearchError
from groundline.models.research import (
    ImageResult,
    OrganicResult,
    ResearchMode,
    SearchOutcome,
)
from groundline.services.cache import ResultCache, cache_key
from groundline.tools import brave_search, tavily_search
from groundline.tools.brave_search import BravePage

TAVILY_MAX_RESULTS = 20

PageFetcher = Callable[[int, int], Awaitable[BravePage]]


def merge_unique(
    seen: set[str],
    merged: list[OrganicResult],
    page: list[OrganicResult],
) -> int:
    """Append results with unseen URLs to ``merged``; returns how many were new."""
    added = 0
    for result in page:
        if not result.url or result.url in seen:
            continue
        seen.add(result.url)
        merged.append(result)
        added += 1
    return added


async def paginate_organic(
    fetch_page: PageFetcher,
    *,
    target: int,
    page_size: int,
    max_extra_pages: int,
) -> tuple[list[OrganicResult], list[ImageResult]]:
    """Collect up to ``target`` unique organic results across sequential pages.

    The first page asks for the whole target. Extra pages ask for ``page_size``
    each at the next unseen offset and stop as soon as the target is met or a
    page contributes nothing new. A failed page counts as an empty one.
    """
    merged: list[OrganicResult] = []
    thumbnails: list[ImageResult] = []
    seen: set[str] = set()
    fetched_raw = 0

    for page_number in range(max_extra_pages + 1):
        if page_number == 0:
            count, offset = target, 0
        else:
            count, offset = page_size, math.ceil(fetched_raw / max(page_size, 1))
        try:
            page = await fetch_page(count, offset)
        except ResearchError as exc:
            logger.warning(f"Search page {page_number + 1} failed, stopping pagination: {exc}")
            break

        fetched_raw += len(page.results)
        thumbnails.extend(page.thumbnails)
        added = merge_unique(seen, merged, page.results)
        logger.debug(
            f"Search page {page_number + 1}: {len(page.results)} results, {added} new, "
            f"{len(merged)}/{target} total"
        )
        if added == 0 or len(merged) >= target:
            break

    merged = merged[:target]
    for rank, result in enumerate(merged, start=1):
        result.rank = rank
    return merged, thumbnails


def _time_range() -> str | None:
    return settings.search_time_range.strip().lower() or None


async def _quick_search(query: str, *, max_results: int | None = None) -> SearchOutcome:
    answer = await tavily_search.search_with_answer(
        query,
        max_results=max_results or settings.quick_max_results,
        search_depth=settings.quick_search_depth,
        time_range=_time_range(),
    )
    for rank, result in enumerate(answer.results, start=1):
        result.rank = rank
    return SearchOutcome(
        organic=answer.results,
        images=answer.images,
        answer=answer.answer,
        provider="tavily",
    )


async def _image_search(query: str) -> list[ImageResult]:
    try:
        return await brave_search.search_images(
            query,
            max_results=settings.image_search_max_results,
        )
    except ResearchError as exc:
        logger.warning(f"Image search failed, using inline thumbnails: {exc}")
        return []


async def _deep_search(query: str) -> SearchOutcome:
    if not brave_search.is_configured():
        raise ConfigurationError("BRAVE_API_KEY is not configured")

    async def fetch_page(count: int, offset: int) -> BravePage:
        return await brave_search.fetch_web_page(
            query, count=count, offset=offset, time_range=_time_range()
        )

    (organic, thumbnails), images = await asyncio.gather(
        paginate_organic(
            fetch_page,
            target=settings.deep_target_results,
            page_size=settings.deep_page_size,
            max_extra_pages=settings.deep_max_extra_pages,
        ),
        _image_search(query),
    )
    if not images:
        images = thumbnails[: settings.image_search_max_results]
    return SearchOutcome(organic=organic, images=images, provider="brave")


async def search(
    query: str,
    mode: ResearchMode,
    *,
    cache: ResultCache | None = None,
) -> SearchOutcome:
    """Run the search stage for ``mode``. Never raises for provider failures."""
    key = cache_key("search", mode, _time_range() or "", query.strip().lower())
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            logger.debug(f"Search cache hit ({mode}): {query[:80]}")
            return SearchOutcome.from_cache(cached)

    if mode == "quick":
        try:
            outcome = await _quick_search(query)
        except ResearchError as exc:
            logger.warning(f"Quick search unavailable: {exc}")
            outcome = SearchOutcome()
    elif mode == "deep":
        try:
            outcome = await _deep_search(query)
            fallback_reason = None if outcome.organic else "brave returned zero results"
        except ResearchError as exc:
            logger.warning(f"Deep search unavailable: {exc}")
            outcome = SearchOutcome()
            fallback_reason = str(exc)

        if fallback_reason and settings.search_fallback_to_tavily and tavily_search.is_configured():
            try:
                fallback = await _quick_search(
                    query, max_results=min(settings.deep_target_results, TAVILY_MAX_RESULTS)
                )
            except ResearchError as exc:
                logger.warning(f"Tavily fallback failed: {exc}")
            else:
                fallback.images = fallback.images or outcome.images
                fallback.fallback_from = "brave"
                fallback.fallback_reason = fallback_reason
                outcome = fallback
    else:
        raise ValueError(f"Unsupported research mode: {mode}")

    if cache is not None and outcome.organic:
        cache.set(key, outcome.to_cache())
    return outcome
