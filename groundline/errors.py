"""Error taxonomy for the research pipeline.

Tools raise these; pipeline components catch them and degrade to the next
fallback tier or an empty result.
"""
from __future__ import annotations


class ResearchError(Exception):
    """Base class for all pipeline errors."""


class ProviderError(ResearchError):
    """Non-2xx or malformed response from a remote provider."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderTimeout(ProviderError):
    """A provider call exceeded its cancellation deadline."""

    def __init__(self, provider: str, timeout_s: float):
        super().__init__(provider, f"timed out after {timeout_s:g}s")
        self.timeout_s = timeout_s


class ParseError(ResearchError):
    """Malformed JSON inside an embedded tag or a provider payload."""


class ConfigurationError(ResearchError):
    """A provider has no credential configured and is disabled for the run."""
