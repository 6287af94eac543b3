from __future__ import annotations

import json
import random

import pytest

from groundline.client.stream_parser import StreamParser, StreamSnapshot
from groundline.client.tool_calls import ChangeSymbol

SOURCES = {
    "sources": [
        {"index": 1, "title": "Rust", "url": "https://rust-lang.org", "snippet": "s", "domain": "rust-lang.org"},
        {"index": 2, "title": "Go", "url": "https://go.dev", "snippet": "g", "domain": "go.dev"},
    ],
    "images": [{"title": "logo", "image_url": "https://img/rust.png", "link_url": "https://rust-lang.org"}],
}

TURN = (
    '<search_status>{"stage": "searching"}</search_status>'
    '<search_status>{"stage": "reading", "total": 2, "completed": 0}</search_status>'
    '<search_status>{"stage": "reading", "total": 2, "completed": 2}</search_status>'
    '<search_status>{"stage": "analyzing"}</search_status>'
    f"<search_sources>{json.dumps(SOURCES)}</search_sources>"
    "<think>compare the two languages</think>"
    "Rust favours zero-cost abstractions [1] while Go a < b favours simplicity [2]. "
    '<tool_call>{"tool": "change_symbol", "params": {"symbol": "msft"}}</tool_call>'
    "Done."
)


def _state(snapshot: StreamSnapshot) -> tuple:
    progress = None
    if snapshot.progress is not None:
        progress = (snapshot.progress.stage, snapshot.progress.total, snapshot.progress.completed)
    return (snapshot.text, progress, snapshot.sources, snapshot.images, snapshot.tool_calls)


def _split(text: str, cuts: list[int]) -> list[str]:
    bounds = [0, *sorted(set(cuts)), len(text)]
    return [text[a:b] for a, b in zip(bounds, bounds[1:])]


def _feed_all(chunks: list[str]) -> tuple[list[StreamSnapshot], StreamSnapshot]:
    parser = StreamParser()
    snapshots = [parser.feed(chunk) for chunk in chunks]
    return snapshots, parser.finish()


def test_whole_turn_in_one_chunk():
    _, final = _feed_all([TURN])

    assert final.done
    assert final.text == (
        "Rust favours zero-cost abstractions [1] while Go a < b favours simplicity [2]. Done."
    )
    assert final.progress.stage == "done"
    assert [s["url"] for s in final.sources] == ["https://rust-lang.org", "https://go.dev"]
    assert final.images[0]["image_url"] == "https://img/rust.png"
    assert isinstance(final.tool_calls[0], ChangeSymbol)
    assert final.tool_calls[0].params.symbol == "MSFT"


def test_every_two_way_split_gives_same_final_state():
    _, reference = _feed_all([TURN])

    for cut in range(1, len(TURN)):
        _, final = _feed_all(_split(TURN, [cut]))
        assert _state(final) == _state(reference), f"split at {cut}"


def test_random_partitions_give_same_final_state():
    rng = random.Random(1234)
    _, reference = _feed_all([TURN])

    for _ in range(200):
        cuts = rng.sample(range(1, len(TURN)), rng.randint(1, 40))
        _, final = _feed_all(_split(TURN, cuts))
        assert _state(final) == _state(reference)


def test_single_character_chunks_match_full_rescan_at_every_step():
    parser = StreamParser()
    for end in range(1, len(TURN) + 1):
        incremental = parser.feed(TURN[end - 1])
        rescan = StreamParser().feed(TURN[:end])
        assert _state(incremental) == _state(rescan), f"prefix {end}"


def test_partial_opening_tag_is_withheld():
    parser = StreamParser()

    assert parser.feed("Hello <search_sta").text == "Hello"
    snapshot = parser.feed('tus>{"stage": "searching"}')
    assert snapshot.text == "Hello"
    assert snapshot.progress is None

    snapshot = parser.feed("</search_status> world")
    assert snapshot.progress.stage == "searching"
    assert snapshot.text == "Hello  world"


def test_lookalike_prefix_is_released_as_text():
    parser = StreamParser()

    assert parser.feed("x <se").text == "x"
    assert parser.feed("al>").text == "x <seal>"


def test_malformed_block_keeps_previous_state():
    parser = StreamParser()
    parser.feed('<search_status>{"stage": "reading", "total": 5, "completed": 2}</search_status>')
    parser.feed(f"<search_sources>{json.dumps(SOURCES)}</search_sources>")

    snapshot = parser.feed('<search_status>{"stage": "reading", "total": 5,</search_status>')
    snapshot = parser.feed('<search_status>{"stage": "teleporting"}</search_status>')
    snapshot = parser.feed('<search_sources>{"sources": "nope"}</search_sources>')
    snapshot = parser.feed("<search_sources>[1, 2]</search_sources>after")

    assert (snapshot.progress.stage, snapshot.progress.completed) == ("reading", 2)
    assert len(snapshot.sources) == 2
    assert snapshot.text == "after"


def test_last_valid_block_wins():
    parser = StreamParser()
    parser.feed('<search_status>{"stage": "reading", "total": 4, "completed": 1}</search_status>')
    snapshot = parser.feed('<search_status>{"stage": "reading", "total": 4, "completed": 3}</search_status>')

    assert snapshot.progress.label == "reading (3/4)"


def test_finish_drops_unterminated_block_and_resets():
    parser = StreamParser()
    parser.feed('<search_status>{"stage": "analyzing"}</search_status>Answer text ')
    parser.feed('<tool_call>{"tool": "change_sym')

    final = parser.finish()

    assert final.text == "Answer text"
    assert final.tool_calls == []
    assert final.progress.stage == "done"
    assert parser.buffer == ""
    assert parser.snapshot().progress is None


def test_finish_without_research_has_no_progress():
    parser = StreamParser()
    parser.feed("plain answer")

    final = parser.finish()

    assert final.text == "plain answer"
    assert final.progress is None


def test_done_sentinel_completes_the_turn():
    parser = StreamParser()
    parser.feed('<search_status>{"stage": "searching"}</search_status>Hi')

    snapshot = parser.feed("[DONE]")

    assert snapshot.done
    assert snapshot.text == "Hi"
    assert snapshot.progress.stage == "done"


def test_stop_returns_clean_text():
    parser = StreamParser()
    parser.feed("Partial answer <think>still reasoning")

    assert parser.stop() == "Partial answer"
    assert parser.buffer == ""


@pytest.mark.asyncio
async def test_consume_stops_at_sentinel():
    async def channel():
        for chunk in ["<search_st", 'atus>{"stage": "searching"}</search_status>', "Hel", "lo", "[DONE]", "ignored"]:
            yield chunk

    updates: list[StreamSnapshot] = []
    parser = StreamParser()
    final = await parser.consume(channel(), on_update=updates.append)

    assert final.text == "Hello"
    assert final.done
    assert len(updates) == 4
