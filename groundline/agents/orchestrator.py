from __future__ import annotations

import re
from typing import Awaitable, Callable

from loguru import logger

from groundline.config import settings
from groundline.models.research import (
    RankedSource,
    ResearchMode,
    ResearchResult,
    ScrapedSource,
    SearchOutcome,
    SearchQuery,
)
from groundline.research_core.rank.service import Reranker, pass_through
from groundline.research_core.scrape.service import ScraperPool
from groundline.services import logger as log_service
from groundline.services.cache import ResultCache, build_cache
from groundline.services.context_formatter import ContextBudget, apply_budgets, format_context
from groundline.services.session import ResearchSession, SessionState
from groundline.tools import search_provider

SearchFn = Callable[..., Awaitable[SearchOutcome]]

DEEP_HINTS = re.compile(
    r"\b(latest|today|tonight|this week|news|current|recent|compare|comparison|versus|vs\.?|"
    r"analy[sz]e|analysis|research|deep dive|why|explain|outlook|forecast|report)\b",
    re.IGNORECASE,
)
DEEP_WORD_THRESHOLD = 12


def select_mode(query: str, requested: str | None = None) -> ResearchMode:
    """Pick quick or deep; an explicit request wins over configuration and heuristics.

    Requesting ``auto`` always runs the query heuristics, whatever the configured default.
    """
    normalized = (requested or "").lower().strip() or settings.default_research_mode.lower().strip()
    if normalized in ("quick", "deep"):
        return normalized  # type: ignore[return-value]
    if DEEP_HINTS.search(query) or len(query.split()) > DEEP_WORD_THRESHOLD:
        return "deep"
    return "quick"


class ResearchPipeline:
    """Search → scrape → rerank → format, with progress blocks at each boundary."""

    def __init__(
        self,
        *,
        search: SearchFn | None = None,
        scraper: ScraperPool | None = None,
        reranker: Reranker | None = None,
        cache: ResultCache | None = None,
        budget: ContextBudget | None = None,
    ):
        self.cache = cache if cache is not None else build_cache()
        self._search = search or search_provider.search
        self.scraper = scraper or ScraperPool(cache=self.cache)
        self.reranker = reranker or Reranker()
        self.budget = budget or ContextBudget.from_settings()

    async def run_research(
        self,
        query: str,
        mode: str | None = None,
        session: ResearchSession | None = None,
    ) -> ResearchResult:
        search_query = SearchQuery(query)
        resolved_mode = select_mode(search_query.text, mode)
        if session is None:
            async with ResearchSession() as owned:
                return await self._run(search_query, resolved_mode, owned)
        if session.state is SessionState.CREATED:
            session.open()
        return await self._run(search_query, resolved_mode, session)

    async def _run(
        self,
        query: SearchQuery,
        mode: ResearchMode,
        session: ResearchSession,
    ) -> ResearchResult:
        session.ensure_active()
        emitter = session.emitter
        logger.info(f"Research ({mode}) started: {query.text[:100]}")
        log_service.log_research_step(session.session_id, "search", "started", {"mode": mode})

        await emitter.searching()
        outcome = await self._search(query.text, mode, cache=self.cache)
        log_service.log_research_step(
            session.session_id,
            "search",
            "completed",
            {
                "provider": outcome.provider,
                "organic": len(outcome.organic),
                "images": len(outcome.images),
                "fallback_from": outcome.fallback_from,
            },
        )

        if not outcome.organic:
            logger.warning(f"No sources found for: {query.text[:100]}")
            await emitter.sources([], outcome.images)
            return ResearchResult(
                context_text="",
                images=outcome.images,
                mode=mode,
                answer=outcome.answer,
            )

        if mode == "quick":
            ranked = self._quick_sources(outcome)
        else:
            ranked = await self._deep_sources(query, outcome, session)

        apply_budgets(ranked, self.budget)
        await emitter.sources(ranked, outcome.images)
        context = format_context(query.text, ranked, answer=outcome.answer, budget=self.budget)
        log_service.log_research_step(
            session.session_id,
            "context",
            "completed",
            {
                "sources": len(ranked),
                "snippet_only": sum(1 for s in ranked if s.is_snippet_only),
                "context_chars": len(context),
                "elapsed_ms": session.elapsed_ms,
            },
        )
        return ResearchResult(
            context_text=context,
            sources=ranked,
            images=outcome.images,
            mode=mode,
            answer=outcome.answer,
        )

    def _quick_sources(self, outcome: SearchOutcome) -> list[RankedSource]:
        # Quick mode cites the provider's own excerpts without a scrape stage.
        scraped = [ScrapedSource.pending(r).resolve(None, "snippet") for r in outcome.organic]
        return pass_through(scraped)

    async def _deep_sources(
        self,
        query: SearchQuery,
        outcome: SearchOutcome,
        session: ResearchSession,
    ) -> list[RankedSource]:
        emitter = session.emitter
        total = len(outcome.organic)

        if settings.research_preview_sources:
            preview = self._quick_sources(outcome)
            await emitter.sources(preview, outcome.images)

        await emitter.reading(0, total)
        scraped = await self.scraper.scrape(
            outcome.organic,
            on_progress=emitter.reading,
        )
        log_service.log_research_step(
            session.session_id,
            "scrape",
            "completed",
            {"total": total, "snippet_only": sum(1 for s in scraped if s.is_snippet_only)},
        )

        await emitter.analyzing()
        ranked = await self.reranker.rerank(query.text, scraped)
        log_service.log_research_step(
            session.session_id,
            "rerank",
            "completed",
            {"enabled": self.reranker.enabled, "count": len(ranked)},
        )
        return ranked


async def run_research(
    query: str,
    mode: str | None = None,
    session: ResearchSession | None = None,
) -> ResearchResult:
    """Run the research pipeline with default providers."""
    return await ResearchPipeline().run_research(query, mode, session)
