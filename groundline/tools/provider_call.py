from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

import httpx

from groundline.errors import ProviderError, ProviderTimeout
from groundline.services import logger as log_service

T = TypeVar("T")


async def call_provider(
    provider: str,
    operation: str,
    request: Callable[[], Awaitable[T]],
    *,
    timeout_s: float,
) -> T:
    """Run one provider request under a cancellation deadline.

    Transport failures are translated into ``ProviderError``/``ProviderTimeout``
    so callers only need to handle the pipeline taxonomy.
    """
    started = time.monotonic()
    try:
        result = await asyncio.wait_for(request(), timeout=timeout_s)
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        _log_failure(provider, operation, started, "timeout")
        raise ProviderTimeout(provider, timeout_s) from exc
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        _log_failure(provider, operation, started, f"http {status}")
        raise ProviderError(provider, f"HTTP {status}", status_code=status) from exc
    except httpx.HTTPError as exc:
        _log_failure(provider, operation, started, f"{type(exc).__name__}: {exc}")
        raise ProviderError(provider, str(exc) or type(exc).__name__) from exc
    except ValueError as exc:
        # response.json() on a non-JSON body
        _log_failure(provider, operation, started, f"malformed payload: {exc}")
        raise ProviderError(provider, f"malformed payload: {exc}") from exc

    log_service.log_provider_call(
        provider,
        operation,
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    return result


def _log_failure(provider: str, operation: str, started: float, error: str) -> None:
    log_service.log_provider_call(
        provider,
        operation,
        status="error",
        duration_ms=int((time.monotonic() - started) * 1000),
        error=error,
    )
