"""OpenRouter generator client with research-context injection."""
from __future__ import annotations

from typing import Any, AsyncIterator

from groundline.config import settings
from groundline.errors import ConfigurationError

BASE_SYSTEM_PROMPT = (
    "You are a research assistant. Answer clearly and concisely. "
    "When web research results are provided, ground every factual claim in them."
)


def build_messages(
    messages: list[dict[str, Any]],
    context: str = "",
    system: str = BASE_SYSTEM_PROMPT,
) -> list[dict[str, Any]]:
    """Prepend the system prompt and, when present, the research context."""
    openai_messages: list[dict[str, Any]] = [{"role": "system", "content": system}]
    if context:
        openai_messages.append({"role": "system", "content": context})
    for message in messages:
        role = message.get("role")
        if role not in ("user", "assistant"):
            continue
        openai_messages.append({"role": role, "content": str(message.get("content", ""))})
    return openai_messages


def _temperature_for_model(model: str) -> float:
    # Some OpenAI GPT-5-compatible gateways reject non-default temperature.
    return 1 if "gpt-5" in (model or "").lower() else 0.3


async def stream_answer(
    messages: list[dict[str, Any]],
    *,
    context: str = "",
    model: str | None = None,
) -> AsyncIterator[str]:
    """Yield generator text deltas as they arrive."""
    model = model or get_model()
    stream = await client().chat.completions.create(
        model=model,
        messages=build_messages(messages, context),
        max_tokens=settings.generator_max_tokens,
        temperature=_temperature_for_model(model),
        stream=True,
    )
    try:
        async for chunk in stream:
            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            delta = getattr(choices[0], "delta", None)
            text = getattr(delta, "content", None) if delta else None
            if text:
                yield text
    finally:
        await stream.close()


def get_client():
    """Get OpenRouter client via OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    if not settings.openrouter_api_key:
        raise ConfigurationError("OPENROUTER_API_KEY is not configured")
    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    return AsyncOpenAI(api_key=settings.openrouter_api_key, base_url=base_url)


def get_model() -> str:
    """Get the active OpenRouter model id."""
    if settings.openrouter_model:
        return settings.openrouter_model
    return settings.default_model


def is_configured() -> bool:
    return bool(settings.openrouter_api_key)


_client = None


def client():
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
