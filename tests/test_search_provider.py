from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from groundline.config import settings
from groundline.errors import ProviderError, ProviderTimeout
from groundline.models.research import ImageResult, OrganicResult
from groundline.services.cache import MemoryCacheStore, ResultCache
from groundline.tools import brave_search, search_provider
from groundline.tools.brave_search import BravePage
from groundline.tools.tavily_search import TavilyAnswer


def _results(start: int, stop: int) -> list[OrganicResult]:
    return [
        OrganicResult(title=f"Result {i}", url=f"https://site{i}.com/a", snippet=f"snippet {i}")
        for i in range(start, stop)
    ]


class _Pages:
    def __init__(self, *pages):
        self.pages = list(pages)
        self.calls: list[tuple[int, int]] = []

    async def __call__(self, count: int, offset: int) -> BravePage:
        self.calls.append((count, offset))
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page


@pytest.mark.asyncio
async def test_paginate_merges_unique_results_in_order():
    fetch = _Pages(
        BravePage(results=_results(0, 20)),
        BravePage(results=_results(18, 28)),
    )

    merged, _ = await search_provider.paginate_organic(
        fetch, target=28, page_size=10, max_extra_pages=3
    )

    assert fetch.calls == [(28, 0), (10, 2)]
    assert [r.url for r in merged] == [f"https://site{i}.com/a" for i in range(28)]
    assert [r.rank for r in merged] == list(range(1, 29))


@pytest.mark.asyncio
async def test_paginate_stops_when_page_adds_nothing():
    fetch = _Pages(
        BravePage(results=_results(0, 5)),
        BravePage(results=_results(0, 5)),
        BravePage(results=_results(5, 10)),
    )

    merged, _ = await search_provider.paginate_organic(
        fetch, target=28, page_size=10, max_extra_pages=3
    )

    assert len(fetch.calls) == 2
    assert len(merged) == 5


@pytest.mark.asyncio
async def test_paginate_keeps_earlier_pages_when_a_page_fails():
    fetch = _Pages(
        BravePage(results=_results(0, 10)),
        ProviderTimeout("brave", 12),
    )

    merged, _ = await search_provider.paginate_organic(
        fetch, target=28, page_size=10, max_extra_pages=3
    )

    assert len(merged) == 10
    assert len(fetch.calls) == 2


@pytest.mark.asyncio
async def test_paginate_respects_extra_page_limit_and_truncates():
    fetch = _Pages(
        BravePage(results=_results(0, 10)),
        BravePage(results=_results(10, 20)),
        BravePage(results=_results(20, 30)),
    )

    merged, _ = await search_provider.paginate_organic(
        fetch, target=15, page_size=10, max_extra_pages=1
    )

    assert len(fetch.calls) == 2
    assert len(merged) == 15
    assert merged[-1].rank == 15


@pytest.mark.asyncio
async def test_quick_search_uses_tavily(monkeypatch):
    monkeypatch.setattr(settings, "quick_max_results", 8)
    answer = TavilyAnswer(
        answer="Short answer",
        results=_results(0, 3),
        images=[ImageResult(title="", image_url="https://img/1.png", link_url="https://img/1.png")],
    )
    with patch(
        "groundline.tools.search_provider.tavily_search.search_with_answer",
        new=AsyncMock(return_value=answer),
    ) as tavily:
        outcome = await search_provider.search("what is rust", "quick")

    tavily.assert_awaited_once()
    assert tavily.await_args.kwargs["max_results"] == 8
    assert outcome.provider == "tavily"
    assert outcome.answer == "Short answer"
    assert [r.rank for r in outcome.organic] == [1, 2, 3]
    assert len(outcome.images) == 1


@pytest.mark.asyncio
async def test_quick_search_failure_yields_empty_outcome():
    with patch(
        "groundline.tools.search_provider.tavily_search.search_with_answer",
        new=AsyncMock(side_effect=ProviderError("tavily", "HTTP 500", status_code=500)),
    ):
        outcome = await search_provider.search("what is rust", "quick")

    assert outcome.organic == []
    assert outcome.images == []


@pytest.mark.asyncio
async def test_deep_search_paginates_brave_and_collects_images(monkeypatch):
    monkeypatch.setattr(settings, "brave_api_key", "test-key")
    monkeypatch.setattr(settings, "deep_target_results", 28)
    monkeypatch.setattr(settings, "deep_page_size", 10)
    images = [ImageResult(title=f"img {i}", image_url=f"https://img/{i}.jpg", link_url="") for i in range(6)]

    with (
        patch(
            "groundline.tools.search_provider.brave_search.fetch_web_page",
            new=AsyncMock(side_effect=[BravePage(results=_results(0, 20)), BravePage(results=_results(20, 30))]),
        ) as fetch_page,
        patch(
            "groundline.tools.search_provider.brave_search.search_images",
            new=AsyncMock(return_value=images),
        ),
        patch(
            "groundline.tools.search_provider.tavily_search.search_with_answer",
            new=AsyncMock(),
        ) as tavily,
    ):
        outcome = await search_provider.search("compare rust and go", "deep")

    assert fetch_page.await_count == 2
    tavily.assert_not_awaited()
    assert outcome.provider == "brave"
    assert len(outcome.organic) == 28
    assert len(outcome.images) == 6


@pytest.mark.asyncio
async def test_deep_search_uses_thumbnails_when_image_search_fails(monkeypatch):
    monkeypatch.setattr(settings, "brave_api_key", "test-key")
    thumbs = [ImageResult(title="t", image_url="https://img/t.jpg", link_url="https://site0.com/a")]

    with (
        patch(
            "groundline.tools.search_provider.brave_search.fetch_web_page",
            new=AsyncMock(return_value=BravePage(results=_results(0, 5), thumbnails=thumbs)),
        ),
        patch(
            "groundline.tools.search_provider.brave_search.search_images",
            new=AsyncMock(side_effect=ProviderError("brave", "HTTP 429", status_code=429)),
        ),
    ):
        outcome = await search_provider.search("rust", "deep")

    assert outcome.images == thumbs


@pytest.mark.asyncio
async def test_deep_search_falls_back_to_tavily_on_brave_error(monkeypatch):
    monkeypatch.setattr(settings, "brave_api_key", "test-key")
    monkeypatch.setattr(settings, "tavily_api_key", "test-key")
    monkeypatch.setattr(settings, "search_fallback_to_tavily", True)

    with (
        patch(
            "groundline.tools.search_provider.brave_search.fetch_web_page",
            new=AsyncMock(side_effect=ProviderError("brave", "HTTP 503", status_code=503)),
        ),
        patch(
            "groundline.tools.search_provider.brave_search.search_images",
            new=AsyncMock(return_value=[]),
        ),
        patch(
            "groundline.tools.search_provider.tavily_search.search_with_answer",
            new=AsyncMock(return_value=TavilyAnswer(results=_results(0, 4))),
        ) as tavily,
    ):
        outcome = await search_provider.search("rust", "deep")

    tavily.assert_awaited_once()
    assert tavily.await_args.kwargs["max_results"] == search_provider.TAVILY_MAX_RESULTS
    assert outcome.provider == "tavily"
    assert outcome.fallback_from == "brave"
    assert outcome.fallback_reason == "brave returned zero results"
    assert len(outcome.organic) == 4


@pytest.mark.asyncio
async def test_deep_search_without_brave_key_falls_back(monkeypatch):
    monkeypatch.setattr(settings, "brave_api_key", "")
    monkeypatch.setattr(settings, "tavily_api_key", "test-key")
    monkeypatch.setattr(settings, "search_fallback_to_tavily", True)

    with patch(
        "groundline.tools.search_provider.tavily_search.search_with_answer",
        new=AsyncMock(return_value=TavilyAnswer(results=_results(0, 2))),
    ):
        outcome = await search_provider.search("rust", "deep")

    assert outcome.fallback_from == "brave"
    assert "BRAVE_API_KEY" in (outcome.fallback_reason or "")


@pytest.mark.asyncio
async def test_deep_search_without_fallback_returns_empty(monkeypatch):
    monkeypatch.setattr(settings, "brave_api_key", "")
    monkeypatch.setattr(settings, "search_fallback_to_tavily", False)

    outcome = await search_provider.search("rust", "deep")

    assert outcome.organic == []


@pytest.mark.asyncio
async def test_search_results_are_cached_per_mode_and_query():
    cache = ResultCache(MemoryCacheStore())
    tavily = AsyncMock(return_value=TavilyAnswer(results=_results(0, 3)))

    with patch("groundline.tools.search_provider.tavily_search.search_with_answer", new=tavily):
        first = await search_provider.search("Rust Lang", "quick", cache=cache)
        second = await search_provider.search("  rust lang ", "quick", cache=cache)

    assert tavily.await_count == 1
    assert [r.url for r in second.organic] == [r.url for r in first.organic]


@pytest.mark.asyncio
async def test_search_raises_for_unsupported_mode():
    with pytest.raises(ValueError):
        await search_provider.search("rust", "exhaustive")


@pytest.mark.asyncio
async def test_deep_search_survives_malformed_brave_payloads(monkeypatch):
    monkeypatch.setattr(settings, "brave_api_key", "test-key")
    monkeypatch.setattr(settings, "tavily_api_key", "test-key")
    monkeypatch.setattr(settings, "search_fallback_to_tavily", True)

    async def fake_get_json(url, params, timeout_s):  # noqa: ARG001
        if url == brave_search.BRAVE_IMAGES_URL:
            return {"results": [{"properties": "oops"}]}
        return {"web": ["not", "a", "dict"]}

    with (
        patch("groundline.tools.brave_search._get_json", new=fake_get_json),
        patch(
            "groundline.tools.search_provider.tavily_search.search_with_answer",
            new=AsyncMock(return_value=TavilyAnswer(results=_results(0, 3))),
        ),
    ):
        outcome = await search_provider.search("rust", "deep")

    assert outcome.provider == "tavily"
    assert outcome.fallback_from == "brave"
    assert len(outcome.organic) == 3


@pytest.mark.asyncio
async def test_search_time_range_and_depth_come_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "brave_api_key", "test-key")
    monkeypatch.setattr(settings, "search_time_range", " Week ")
    monkeypatch.setattr(settings, "quick_search_depth", "advanced")

    with (
        patch(
            "groundline.tools.search_provider.tavily_search.search_with_answer",
            new=AsyncMock(return_value=TavilyAnswer(results=_results(0, 2))),
        ) as tavily,
        patch(
            "groundline.tools.search_provider.brave_search.fetch_web_page",
            new=AsyncMock(return_value=BravePage(results=_results(0, 2))),
        ) as fetch_page,
        patch(
            "groundline.tools.search_provider.brave_search.search_images",
            new=AsyncMock(return_value=[]),
        ),
    ):
        await search_provider.search("rust", "quick")
        await search_provider.search("rust", "deep")

    assert tavily.await_args.kwargs["time_range"] == "week"
    assert tavily.await_args.kwargs["search_depth"] == "advanced"
    assert fetch_page.await_args.kwargs["time_range"] == "week"


@pytest.mark.asyncio
async def test_search_cache_is_keyed_by_time_range(monkeypatch):
    cache = ResultCache(MemoryCacheStore())
    tavily = AsyncMock(return_value=TavilyAnswer(results=_results(0, 3)))

    with patch("groundline.tools.search_provider.tavily_search.search_with_answer", new=tavily):
        await search_provider.search("rust", "quick", cache=cache)
        monkeypatch.setattr(settings, "search_time_range", "day")
        await search_provider.search("rust", "quick", cache=cache)

    assert tavily.await_count == 2
