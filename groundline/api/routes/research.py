from __future__ import annotations

from fastapi import APIRouter, Depends

from groundline.agents.orchestrator import ResearchPipeline
from groundline.api.deps import get_pipeline
from groundline.models.schemas import ResearchRequest, ResearchResponse
from groundline.services import logger as log_service

router = APIRouter(prefix="/api/research", tags=["research"])


@router.post("", response_model=ResearchResponse)
async def research(
    request: ResearchRequest,
    pipeline: ResearchPipeline = Depends(get_pipeline),
):
    """Run the pipeline once and return the context with its sources."""
    log_service.log_event(
        event_type="research_requested",
        message="Research requested",
        mode=request.mode,
        query=request.query[:100],
    )
    result = await pipeline.run_research(request.query, request.mode)
    return ResearchResponse.from_payload(result.to_payload())
