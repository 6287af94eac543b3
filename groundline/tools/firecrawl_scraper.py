from __future__ import annotations

from typing import Any

import httpx

from groundline.config import settings
from groundline.errors import ConfigurationError, ProviderError
from groundline.tools.provider_call import call_provider


def is_configured() -> bool:
    return bool(settings.firecrawl_api_key)


def _extract_markdown(data: Any) -> str:
    if not isinstance(data, dict):
        raise ProviderError("firecrawl", "response is not a JSON object")
    if data.get("success") is False:
        raise ProviderError("firecrawl", str(data.get("error") or "scrape unsuccessful"))
    body = data.get("data", data)
    if not isinstance(body, dict):
        return ""
    return str(body.get("markdown") or body.get("content") or "")


async def scrape(url: str, *, timeout_s: float | None = None) -> str:
    """Full-page render + main-content extraction via Firecrawl ``/v1/scrape``."""
    if not settings.firecrawl_api_key:
        raise ConfigurationError("FIRECRAWL_API_KEY is not configured")

    timeout_s = timeout_s or settings.scrape_tier_timeout_s
    endpoint = settings.firecrawl_base_url.rstrip("/") + "/v1/scrape"
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.firecrawl_api_key}",
    }
    payload = {
        "url": url,
        "formats": ["markdown"],
        "onlyMainContent": True,
        "timeout": int(timeout_s * 1000),
    }

    async def request() -> Any:
        async with httpx.AsyncClient(timeout=timeout_s, follow_redirects=True) as client:
            response = await client.post(endpoint, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()

    data = await call_provider("firecrawl", "scrape", request, timeout_s=timeout_s)
    return _extract_markdown(data)
