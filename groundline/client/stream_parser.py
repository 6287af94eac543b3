"""Client-side parser for the generator channel.

The channel interleaves assistant prose with control blocks
(``<search_status>``, ``<search_sources>``, ``<tool_call>``, ``<think>``) that
may be split across chunks at any byte. The parser keeps the whole turn in a
buffer and reports, after every chunk, the state a full rescan of that buffer
would give:

* the last complete, valid status block sets the progress stage;
* the last complete, valid sources block sets the source and image lists;
* display text is the buffer with every complete control block removed;
* an unterminated block (or a half-arrived opening tag) at the tail is held
  back until it completes.

A cursor marks the last confirmed block boundary so each byte is scanned once.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Callable

from loguru import logger

from groundline.client.tool_calls import ToolCall, parse_tool_call
from groundline.errors import ParseError
from groundline.models.events import CONTROL_TAGS, DONE_SENTINEL, TagType
from groundline.models.research import STAGE_ORDER

OPEN_TAG = re.compile("<(" + "|".join(re.escape(t.value) for t in CONTROL_TAGS) + ")>")
OPEN_TAG_STRINGS = tuple(t.open for t in CONTROL_TAGS)


@dataclass
class SearchProgress:
    stage: str
    total: int | None = None
    completed: int | None = None

    @property
    def label(self) -> str:
        if self.stage == "reading" and self.total:
            return f"reading ({self.completed or 0}/{self.total})"
        return self.stage


@dataclass
class StreamSnapshot:
    text: str = ""
    progress: SearchProgress | None = None
    sources: list[dict[str, Any]] = field(default_factory=list)
    images: list[dict[str, Any]] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    done: bool = False


def _decode_object(tag: TagType, body: str) -> dict[str, Any]:
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise ParseError(f"{tag.value}: invalid JSON ({exc})") from exc
    if not isinstance(data, dict):
        raise ParseError(f"{tag.value}: expected a JSON object")
    return data


def _partial_open_start(buffer: str, start: int) -> int:
    """Index where a possibly incomplete opening tag begins at the tail, else len(buffer)."""
    last = buffer.rfind("<", start)
    if last == -1:
        return len(buffer)
    tail = buffer[last:]
    if any(len(tail) < len(tag) and tag.startswith(tail) for tag in OPEN_TAG_STRINGS):
        return last
    return len(buffer)


class StreamParser:
    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._buffer = ""
        self._cursor = 0
        self._text = ""
        self._progress: SearchProgress | None = None
        self._sources: list[dict[str, Any]] = []
        self._images: list[dict[str, Any]] = []
        self._tool_calls: list[ToolCall] = []

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, chunk: str) -> StreamSnapshot:
        """Append one chunk and rescan; a ``[DONE]`` chunk completes the turn."""
        if chunk.strip() == DONE_SENTINEL:
            return self.finish()
        self._buffer += chunk
        self._scan()
        return self.snapshot()

    def snapshot(self, *, done: bool = False) -> StreamSnapshot:
        return StreamSnapshot(
            text=self._text.strip(),
            progress=SearchProgress(**vars(self._progress)) if self._progress else None,
            sources=list(self._sources),
            images=list(self._images),
            tool_calls=list(self._tool_calls),
            done=done,
        )

    def finish(self) -> StreamSnapshot:
        """Final scan for the turn; returns the final state and clears the buffer."""
        self._flush_tail()
        if self._progress is not None:
            self._progress = SearchProgress(
                stage="done",
                total=self._progress.total,
                completed=self._progress.completed,
            )
        final = self.snapshot(done=True)
        self._reset()
        return final

    def stop(self) -> str:
        """Abort the turn and return whatever clean text arrived so far."""
        self._flush_tail()
        text = self._text.strip()
        self._reset()
        return text

    async def consume(
        self,
        chunks: AsyncIterable[str],
        on_update: Callable[[StreamSnapshot], Any] | None = None,
    ) -> StreamSnapshot:
        """Feed a whole turn; completes on the sentinel or when the channel closes."""
        async for chunk in chunks:
            if chunk.strip() == DONE_SENTINEL:
                break
            snapshot = self.feed(chunk)
            if on_update is not None:
                on_update(snapshot)
        return self.finish()

    def _flush_tail(self) -> None:
        self._scan()
        # Held-back prefixes like "<sea" were prose after all; an unterminated
        # control block is dropped.
        if not OPEN_TAG.match(self._buffer, self._cursor):
            self._text += self._buffer[self._cursor :]
        self._cursor = len(self._buffer)

    def _scan(self) -> None:
        buffer = self._buffer
        cursor = self._cursor
        while True:
            match = OPEN_TAG.search(buffer, cursor)
            if match is None:
                hold = _partial_open_start(buffer, cursor)
                self._text += buffer[cursor:hold]
                cursor = hold
                break

            self._text += buffer[cursor : match.start()]
            tag = TagType(match.group(1))
            close_at = buffer.find(tag.close, match.end())
            if close_at == -1:
                cursor = match.start()
                break

            self._apply(tag, buffer[match.end() : close_at])
            cursor = close_at + len(tag.close)
        self._cursor = cursor

    def _apply(self, tag: TagType, body: str) -> None:
        if tag is TagType.THINK:
            return
        if tag is TagType.TOOL_CALL:
            call = parse_tool_call(body)
            if call is not None:
                self._tool_calls.append(call)
            return
        try:
            data = _decode_object(tag, body)
            if tag is TagType.SEARCH_STATUS:
                self._progress = self._parse_status(data)
            elif tag is TagType.SEARCH_SOURCES:
                self._sources, self._images = self._parse_sources(data)
        except ParseError as exc:
            logger.debug(f"Ignoring malformed block: {exc}")

    @staticmethod
    def _parse_status(data: dict[str, Any]) -> SearchProgress:
        stage = data.get("stage")
        if stage not in STAGE_ORDER:
            raise ParseError(f"search_status: unknown stage {stage!r}")
        total = data.get("total")
        completed = data.get("completed")
        return SearchProgress(
            stage=stage,
            total=total if isinstance(total, int) else None,
            completed=completed if isinstance(completed, int) else None,
        )

    @staticmethod
    def _parse_sources(data: dict[str, Any]) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        sources = data.get("sources")
        images = data.get("images", [])
        if not isinstance(sources, list) or not isinstance(images, list):
            raise ParseError("search_sources: sources/images must be lists")
        return (
            [s for s in sources if isinstance(s, dict)],
            [i for i in images if isinstance(i, dict)],
        )
