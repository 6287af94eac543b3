from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from groundline.config import settings
from groundline.errors import ConfigurationError, ProviderError
from groundline.tools.provider_call import call_provider


@dataclass
class RerankHit:
    index: int
    relevance_score: float


def is_configured() -> bool:
    return bool(settings.jina_api_key)


def _parse_hits(payload: Any) -> list[RerankHit]:
    if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
        raise ProviderError("jina_rerank", "response missing results list")
    hits: list[RerankHit] = []
    for item in payload["results"]:
        if not isinstance(item, dict):
            continue
        try:
            index = int(item["index"])
            score = float(item.get("relevance_score", 0.0) or 0.0)
        except (KeyError, TypeError, ValueError):
            continue
        hits.append(RerankHit(index=index, relevance_score=score))
    return hits


async def rerank(
    query: str,
    documents: list[str],
    *,
    timeout_s: float | None = None,
) -> list[RerankHit]:
    """Batch-rerank ``documents`` against ``query``; returns hits in ranked order."""
    if not settings.jina_api_key:
        raise ConfigurationError("JINA_API_KEY is not configured")
    if not documents:
        return []

    timeout_s = timeout_s or settings.rerank_timeout_s
    body = {
        "model": settings.jina_rerank_model,
        "query": query,
        "documents": documents,
        "top_n": len(documents),
        "return_documents": False,
    }
    headers = {
        "Authorization": f"Bearer {settings.jina_api_key}",
        "Content-Type": "application/json",
    }

    async def request() -> Any:
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            response = await client.post(settings.jina_rerank_url, json=body, headers=headers)
            response.raise_for_status()
            return response.json()

    payload = await call_provider("jina_rerank", "rerank", request, timeout_s=timeout_s)
    return _parse_hits(payload)
