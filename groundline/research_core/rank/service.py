from __future__ import annotations

from typing import Awaitable, Callable, Sequence

from loguru import logger

from groundline.config import settings
from groundline.errors import ResearchError
from groundline.models.research import RankedSource, ScrapedSource, assign_display_indices
from groundline.tools import jina_rerank
from groundline.tools.jina_rerank import RerankHit

RerankFn = Callable[[str, list[str]], Awaitable[list[RerankHit]]]


def pass_through(sources: Sequence[ScrapedSource]) -> list[RankedSource]:
    return assign_display_indices([RankedSource(source=s) for s in sources])


def rerank_document(source: ScrapedSource, doc_chars: int) -> str:
    return f"{source.title}\n{source.full_content[:doc_chars]}"


class Reranker:
    """Optional neural re-scoring; any failure degrades to search order."""

    def __init__(
        self,
        *,
        rerank_fn: RerankFn | None = None,
        enabled: bool | None = None,
        doc_chars: int | None = None,
    ):
        self._rerank_fn = rerank_fn or jina_rerank.rerank
        self.enabled = jina_rerank.is_configured() if enabled is None else enabled
        self.doc_chars = int(doc_chars or settings.rerank_doc_chars)

    async def rerank(self, query: str, sources: Sequence[ScrapedSource]) -> list[RankedSource]:
        if not sources or not self.enabled:
            return pass_through(sources)

        documents = [rerank_document(s, self.doc_chars) for s in sources]
        try:
            hits = await self._rerank_fn(query, documents)
        except ResearchError as exc:
            logger.warning(f"Rerank unavailable, keeping search order: {exc}")
            return pass_through(sources)

        ranked: list[RankedSource] = []
        placed: set[int] = set()
        for hit in hits:
            if hit.index in placed or not 0 <= hit.index < len(sources):
                continue
            placed.add(hit.index)
            ranked.append(RankedSource(source=sources[hit.index], relevance_score=hit.relevance_score))

        # Sources the service left out keep their search order at the end.
        for index, source in enumerate(sources):
            if index not in placed:
                ranked.append(RankedSource(source=source))

        return assign_display_indices(ranked)
