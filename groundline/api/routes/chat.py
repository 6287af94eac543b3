from __future__ import annotations

import asyncio
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from loguru import logger
from sse_starlette.sse import EventSourceResponse

from groundline import llm_client
from groundline.agents.orchestrator import ResearchPipeline
from groundline.api.deps import get_pipeline
from groundline.models.events import DONE_SENTINEL
from groundline.models.research import ResearchResult
from groundline.models.schemas import ChatRequest
from groundline.services import logger as log_service
from groundline.services.progress import QueueSink
from groundline.services.session import ResearchSession

router = APIRouter(prefix="/api/chat", tags=["chat"])


async def research_channel(
    pipeline: ResearchPipeline,
    query: str,
    mode: str | None,
    results: list[ResearchResult],
) -> AsyncIterator[str]:
    """Yield progress/sources blocks as the run emits them; appends the result."""
    queue: asyncio.Queue[str | None] = asyncio.Queue()
    session = ResearchSession.with_sink(QueueSink(queue))

    async def run() -> ResearchResult:
        try:
            return await pipeline.run_research(query, mode, session)
        finally:
            await queue.put(None)

    task = asyncio.create_task(run())
    try:
        while (block := await queue.get()) is not None:
            yield block
        results.append(await task)
    finally:
        if not task.done():
            # Client went away; in-flight scrapes are abandoned.
            task.cancel()
        session.close()


async def chat_channel(pipeline: ResearchPipeline, request: ChatRequest) -> AsyncIterator[str]:
    """The generator channel: research blocks first, then answer tokens, then [DONE]."""
    messages = [m.model_dump() for m in request.messages]
    user_turns = [m["content"] for m in messages if m["role"] == "user"]
    context = ""

    if request.web_search and user_turns:
        results: list[ResearchResult] = []
        async for block in research_channel(pipeline, user_turns[-1], request.mode, results):
            yield block
        if results:
            context = results[0].context_text

    if llm_client.is_configured():
        try:
            async for token in llm_client.stream_answer(
                messages,
                context=context,
                model=request.model,
            ):
                yield token
        except Exception as exc:
            logger.exception(f"Generator stream failed: {exc}")
            yield f"\n\n_Error: {exc}_"
    else:
        yield "_Answer generation is not configured; research context was assembled._"

    yield DONE_SENTINEL


@router.post("/stream")
async def stream_chat(
    request: ChatRequest,
    pipeline: ResearchPipeline = Depends(get_pipeline),
):
    """SSE endpoint; each ``data`` frame is a raw chunk of the generator channel."""
    log_service.log_event(
        event_type="chat_stream_started",
        message="Chat stream started",
        mode=request.mode,
        web_search=request.web_search,
    )

    async def event_generator():
        async for chunk in chat_channel(pipeline, request):
            yield {"data": chunk}

    return EventSourceResponse(event_generator())
