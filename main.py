"""groundline - web research grounding

Simple CLI for running research queries.
"""

import argparse
import asyncio

from groundline.agents.orchestrator import ResearchPipeline
from groundline.client.stream_parser import StreamParser, StreamSnapshot
from groundline.models.research import ResearchResult
from groundline.services.session import ResearchSession


class _StageReporter:
    def __init__(self) -> None:
        self.last_label: str | None = None

    def __call__(self, snapshot: StreamSnapshot) -> None:
        if snapshot.progress is None:
            return
        label = snapshot.progress.label
        if label != self.last_label:
            print(f"  [~] {label}")
            self.last_label = label


async def run_research(query: str, mode: str | None, context_only: bool):
    """Run research on the given query."""
    print(f"Research query: {query}")
    print("-" * 50)

    parser = StreamParser()
    reporter = _StageReporter()
    pipeline = ResearchPipeline()

    # Feed our own progress blocks through the client parser, as a UI would.
    session = ResearchSession.with_sink(lambda block: reporter(parser.feed(block)))
    async with session:
        result: ResearchResult = await pipeline.run_research(query, mode, session)
    final = parser.finish()

    print(f"\n[*] Mode: {result.mode}  Sources: {len(final.sources)}  Images: {len(final.images)}")
    for source in final.sources:
        print(f"  {source['index']:>2}. {source['title'][:80]} [{source['scrape_method']}]")
        print(f"      {source['url']}")

    print(f"\n{'='*50}")
    print("CONTEXT:")
    print(f"{'='*50}")
    print(result.context_text or "(no sources found)")

    if context_only:
        return

    from groundline import llm_client

    if not llm_client.is_configured():
        print("\n[!] OPENROUTER_API_KEY not set; skipping answer generation.")
        return

    print(f"\n{'='*50}")
    print("ANSWER:")
    print(f"{'='*50}")
    answer_parser = StreamParser()
    async for token in llm_client.stream_answer(
        [{"role": "user", "content": query}],
        context=result.context_text,
    ):
        answer_parser.feed(token)
        print(token, end="", flush=True)
    answer = answer_parser.finish()
    for call in answer.tool_calls:
        print(f"\n[tool] {call.tool}")
    print()


def main():
    parser = argparse.ArgumentParser(description="groundline web research")
    parser.add_argument("--query", "-q", required=True, help="Research query")
    parser.add_argument(
        "--mode",
        "-m",
        choices=["quick", "deep", "auto"],
        help="Research mode (default: from config)",
    )
    parser.add_argument(
        "--context-only",
        action="store_true",
        help="Print the assembled context without generating an answer",
    )

    args = parser.parse_args()

    asyncio.run(run_research(args.query, args.mode, args.context_only))


if __name__ == "__main__":
    main()
