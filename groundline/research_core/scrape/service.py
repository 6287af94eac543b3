from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from loguru import logger

from groundline.config import settings
from groundline.models.research import OrganicResult, ScrapedSource, ScrapeMethod
from groundline.services.cache import ResultCache, cache_key
from groundline.tools import firecrawl_scraper, jina_reader, web_utils

Fetch = Callable[[str], Awaitable[str]]
ProgressCallback = Callable[[int, int], Any]


@dataclass(frozen=True, slots=True)
class ScrapeTier:
    method: ScrapeMethod
    fetch: Fetch
    timeout_s: float


def default_tiers() -> list[ScrapeTier]:
    """Remote tiers in fallback order; tiers without credentials are left out."""
    tiers: list[ScrapeTier] = []
    if firecrawl_scraper.is_configured():
        tiers.append(
            ScrapeTier("firecrawl", firecrawl_scraper.scrape, settings.scrape_tier_timeout_s)
        )
    if jina_reader.is_configured():
        tiers.append(ScrapeTier("jina", jina_reader.read, settings.scrape_tier_timeout_s))
    return tiers


class ScraperPool:
    """Bounded-concurrency page fetcher with a tiered fallback chain per result.

    Every result resolves: the first tier returning non-empty text wins, and the
    search snippet is the floor when all tiers come back empty or fail.
    """

    def __init__(
        self,
        *,
        tiers: Sequence[ScrapeTier] | None = None,
        cache: ResultCache | None = None,
        concurrency_limit: int | None = None,
        max_content_chars: int | None = None,
    ):
        self.tiers = list(default_tiers() if tiers is None else tiers)
        self.cache = cache
        self.concurrency_limit = max(
            int(concurrency_limit or settings.scrape_max_parallel_requests), 1
        )
        self.max_content_chars = int(max_content_chars or settings.scrape_max_content_chars)

    async def scrape(
        self,
        results: Sequence[OrganicResult],
        concurrency_limit: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[ScrapedSource]:
        sources = [ScrapedSource.pending(r) for r in results]
        total = len(sources)
        if total == 0:
            return sources

        limit = max(int(concurrency_limit or self.concurrency_limit), 1)
        semaphore = asyncio.Semaphore(limit)
        started = time.monotonic()

        async def run_one(source: ScrapedSource) -> None:
            async with semaphore:
                await self._resolve(source)

        tasks = [asyncio.create_task(run_one(source)) for source in sources]
        completed = 0
        try:
            # Progress is reported from this loop, so ticks arrive strictly in order.
            for finished in asyncio.as_completed(tasks):
                await finished
                completed += 1
                if on_progress is not None:
                    outcome = on_progress(completed, total)
                    if inspect.isawaitable(outcome):
                        await outcome
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                # In-flight fetches have unwound before scrape() returns or re-raises.
                await asyncio.gather(*pending, return_exceptions=True)

        by_method: dict[str, int] = {}
        for source in sources:
            by_method[source.scrape_method] = by_method.get(source.scrape_method, 0) + 1
        logger.info(
            f"Scraped {total} results in {int((time.monotonic() - started) * 1000)}ms "
            f"(limit={limit}): {by_method}"
        )
        return sources

    async def _resolve(self, source: ScrapedSource) -> None:
        if not web_utils.is_valid_url(source.url):
            source.resolve(None, "snippet")
            return

        key = cache_key("scrape", source.url)
        if self.cache is not None:
            cached = self.cache.get(key)
            if isinstance(cached, dict) and cached.get("content"):
                source.resolve(str(cached["content"]), cached.get("method", "firecrawl"))
                return

        for tier in self.tiers:
            content = await self._try_tier(tier, source.url)
            if content:
                source.resolve(content, tier.method)
                if self.cache is not None:
                    self.cache.set(key, {"content": source.full_content, "method": tier.method})
                return

        source.resolve(None, "snippet")

    async def _try_tier(self, tier: ScrapeTier, url: str) -> str:
        try:
            raw = await asyncio.wait_for(tier.fetch(url), timeout=tier.timeout_s)
        except asyncio.TimeoutError:
            logger.debug(f"{tier.method} timed out after {tier.timeout_s:g}s: {url}")
            return ""
        except Exception as exc:
            logger.debug(f"{tier.method} produced nothing for {url}: {exc}")
            return ""
        if not isinstance(raw, str):
            return ""
        return web_utils.clean_content(raw, max_length=self.max_content_chars)
