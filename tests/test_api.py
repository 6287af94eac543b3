"""Tests for API routes."""
from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from groundline.agents.orchestrator import ResearchPipeline
from groundline.api.deps import get_pipeline
from groundline.client.stream_parser import StreamParser
from groundline.models.events import DONE_SENTINEL
from groundline.models.research import ImageResult, OrganicResult, SearchOutcome
from groundline.research_core.rank.service import Reranker
from groundline.research_core.scrape.service import ScrapeTier, ScraperPool
from groundline.services.cache import MemoryCacheStore, ResultCache


async def _read(url: str) -> str:
    return f"Full article text from {url}"


@pytest.fixture
def pipeline():
    outcome = SearchOutcome(
        organic=[
            OrganicResult(title="Fed holds rates", url="https://www.reuters.com/fed", snippet="The Fed held."),
            OrganicResult(title="Markets react", url="https://apnews.com/markets", snippet="Stocks rose."),
        ],
        images=[ImageResult(title="Powell", image_url="https://img.example.com/p.jpg", link_url="https://apnews.com")],
        answer="The Fed held rates steady.",
        provider="brave",
    )
    cache = ResultCache(MemoryCacheStore())
    return ResearchPipeline(
        search=AsyncMock(return_value=outcome),
        scraper=ScraperPool(tiers=[ScrapeTier("jina", _read, 1.0)], cache=cache),
        reranker=Reranker(enabled=False),
        cache=cache,
    )


@pytest.fixture(autouse=True)
def _reset_sse_exit_event():
    from sse_starlette.sse import AppStatus

    # The exit event binds to the first test's loop.
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest.fixture
def client(pipeline):
    from groundline.main import app

    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


def _data_frames(client: TestClient, payload: dict) -> list[str]:
    with client.stream("POST", "/api/chat/stream", json=payload) as response:
        assert response.status_code == 200
        return [line[len("data: ") :] for line in response.iter_lines() if line.startswith("data: ")]


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "groundline"}


def test_research_returns_context_and_sources(client):
    response = client.post("/api/research", json={"query": "fed rate decision", "mode": "deep"})

    assert response.status_code == 200
    data = response.json()
    assert data["mode"] == "deep"
    assert data["answer"] == "The Fed held rates steady."
    assert [s["index"] for s in data["sources"]] == [1, 2]
    assert data["sources"][0]["domain"] == "reuters.com"
    assert data["sources"][0]["scrape_method"] == "jina"
    assert data["images"][0]["image_url"] == "https://img.example.com/p.jpg"
    assert "[Source 1] Fed holds rates (https://www.reuters.com/fed)" in data["context"]


def test_research_rejects_empty_query(client):
    response = client.post("/api/research", json={"query": ""})
    assert response.status_code == 422


def test_chat_stream_interleaves_progress_and_answer(client):
    async def fake_stream(messages, *, context="", model=None):
        assert "[Source 2]" in context
        for token in ["The Fed ", "held [1]", ".", " <think>hm</think>"]:
            yield token

    with (
        patch("groundline.api.routes.chat.llm_client.is_configured", return_value=True),
        patch("groundline.api.routes.chat.llm_client.stream_answer", new=fake_stream),
    ):
        frames = _data_frames(
            client,
            {"messages": [{"role": "user", "content": "fed rate decision"}], "mode": "deep"},
        )

    assert frames[0].startswith("<search_status>")
    assert frames[-1] == DONE_SENTINEL

    parser = StreamParser()
    for frame in frames[:-1]:
        parser.feed(frame)
    final = parser.feed(frames[-1])

    assert final.done
    assert final.text == "The Fed held [1]."
    assert final.progress.stage == "done"
    assert len(final.sources) == 2
    assert len(final.images) == 1


def test_chat_stream_without_web_search_skips_research(client, pipeline):
    async def fake_stream(messages, *, context="", model=None):
        assert context == ""
        yield "Hello"

    with (
        patch("groundline.api.routes.chat.llm_client.is_configured", return_value=True),
        patch("groundline.api.routes.chat.llm_client.stream_answer", new=fake_stream),
    ):
        frames = _data_frames(
            client,
            {"messages": [{"role": "user", "content": "hi"}], "web_search": False},
        )

    assert frames == ["Hello", DONE_SENTINEL]
    pipeline._search.assert_not_awaited()


def test_chat_stream_reports_generator_failure(client):
    async def failing_stream(messages, *, context="", model=None):
        yield "Partial"
        raise RuntimeError("upstream closed")

    with (
        patch("groundline.api.routes.chat.llm_client.is_configured", return_value=True),
        patch("groundline.api.routes.chat.llm_client.stream_answer", new=failing_stream),
    ):
        frames = _data_frames(
            client,
            {"messages": [{"role": "user", "content": "fed"}], "mode": "quick"},
        )

    body = "\n".join(frames)
    assert "_Error: upstream closed_" in body
    assert frames[-1] == DONE_SENTINEL


def test_chat_stream_without_generator_still_finishes(client):
    with patch("groundline.api.routes.chat.llm_client.is_configured", return_value=False):
        frames = _data_frames(
            client,
            {"messages": [{"role": "user", "content": "fed"}], "mode": "quick"},
        )

    assert any("not configured" in f for f in frames)
    assert frames[-1] == DONE_SENTINEL
