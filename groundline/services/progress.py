from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Sequence

from loguru import logger

from groundline.models.events import TaggedBlock, TagType
from groundline.models.research import STAGE_ORDER, ImageResult, ProgressEvent, RankedSource

Sink = Callable[[str], Any]


def status_block(event: ProgressEvent) -> TaggedBlock:
    return TaggedBlock(tag=TagType.SEARCH_STATUS, data=event.to_payload())


def sources_block(sources: Sequence[RankedSource], images: Sequence[ImageResult]) -> TaggedBlock:
    return TaggedBlock(
        tag=TagType.SEARCH_SOURCES,
        data={
            "sources": [s.to_payload() for s in sources],
            "images": [i.to_payload() for i in images],
        },
    )


class QueueSink:
    """Sink that feeds emitted blocks into an ``asyncio.Queue`` for a streaming response."""

    def __init__(self, queue: asyncio.Queue[str] | None = None):
        self.queue: asyncio.Queue[str] = queue or asyncio.Queue()

    async def __call__(self, text: str) -> None:
        await self.queue.put(text)


class ProgressEmitter:
    """Writes status/sources blocks into the generator channel for one run.

    Stage order never regresses and ``completed`` never decreases within the
    ``reading`` stage; out-of-order updates are dropped.
    """

    def __init__(self, sink: Sink | None = None):
        self._sink = sink
        self.emitted: list[TaggedBlock] = []
        self._stage_index = -1
        self._completed = -1
        self._sources_emitted = 0

    @property
    def stage(self) -> str | None:
        return STAGE_ORDER[self._stage_index] if self._stage_index >= 0 else None

    async def _write(self, block: TaggedBlock) -> None:
        self.emitted.append(block)
        if self._sink is None:
            return
        outcome = self._sink(block.format())
        if inspect.isawaitable(outcome):
            await outcome

    async def status(self, event: ProgressEvent) -> bool:
        index = STAGE_ORDER.index(event.stage)
        if index < self._stage_index:
            logger.debug(f"Dropping stage regression {self.stage} -> {event.stage}")
            return False
        if index == self._stage_index:
            if event.stage != "reading":
                return False
            if event.completed is not None and event.completed < self._completed:
                logger.debug(f"Dropping stale progress tick {event.completed} < {self._completed}")
                return False
        if index > self._stage_index:
            self._completed = -1
        self._stage_index = index
        if event.completed is not None:
            self._completed = event.completed
        await self._write(status_block(event))
        return True

    async def searching(self) -> bool:
        return await self.status(ProgressEvent(stage="searching"))

    async def reading(self, completed: int, total: int) -> bool:
        return await self.status(ProgressEvent(stage="reading", total=total, completed=completed))

    async def analyzing(self) -> bool:
        return await self.status(ProgressEvent(stage="analyzing"))

    async def sources(
        self,
        sources: Sequence[RankedSource],
        images: Sequence[ImageResult],
    ) -> bool:
        # A run emits at most a preview and a final block.
        if self._sources_emitted >= 2:
            return False
        self._sources_emitted += 1
        await self._write(sources_block(sources, images))
        return True
