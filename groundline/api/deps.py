from __future__ import annotations

from groundline.agents.orchestrator import ResearchPipeline

_pipeline: ResearchPipeline | None = None


def get_pipeline() -> ResearchPipeline:
    """Shared pipeline; its result cache is reused across requests."""
    global _pipeline
    if _pipeline is None:
        _pipeline = ResearchPipeline()
    return _pipeline
