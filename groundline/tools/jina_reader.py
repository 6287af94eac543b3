from __future__ import annotations

import httpx

from groundline.config import settings
from groundline.errors import ConfigurationError
from groundline.tools.provider_call import call_provider


def is_configured() -> bool:
    return bool(settings.jina_api_key)


async def read(url: str, *, timeout_s: float | None = None) -> str:
    """Fetch a page as markdown through the Jina Reader API.

    API: GET https://r.jina.ai/<url>
    Headers:
        - Authorization: Bearer <api_key>
        - X-Return-Format: markdown
    """
    if not settings.jina_api_key:
        raise ConfigurationError("JINA_API_KEY is not configured")

    timeout_s = timeout_s or settings.scrape_tier_timeout_s
    base = settings.jina_reader_base_url
    if "{url}" in base:
        target = base.format(url=url)
    else:
        target = base.rstrip("/") + "/" + url

    headers = {
        "Authorization": f"Bearer {settings.jina_api_key}",
        "X-Return-Format": "markdown",
        "X-Timeout": str(int(timeout_s)),
    }

    async def request() -> str:
        async with httpx.AsyncClient(timeout=timeout_s, follow_redirects=True) as client:
            response = await client.get(target, headers=headers)
            response.raise_for_status()
            # Reader returns the page body directly as text/markdown
            return response.text

    return await call_provider("jina", "read", request, timeout_s=timeout_s)
