"""Render ranked sources into the size-budgeted context block for the generator."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from groundline.config import settings
from groundline.models.research import RankedSource
from groundline.tools import web_utils

SNIPPET_ONLY_TAG = "[snippet only]"
DISCLAIMER = (
    "Note: many of these sources could only be read as short search snippets, "
    "so the available information is less detailed than usual. Say so where it matters."
)
CITATION_INSTRUCTION = (
    "Answer using only the sources above and cite them inline with their numbers, "
    "e.g. [1] or [2][5]. Do not invent facts, quotes, figures or sources that are "
    "not supplied here; if the sources do not cover something, say so."
)


@dataclass(frozen=True, slots=True)
class ContextBudget:
    max_sources: int = 28
    top_tier_count: int = 10
    top_budget_chars: int = 1200
    tail_budget_chars: int = 800
    disclaimer_threshold: int = 8

    @classmethod
    def from_settings(cls) -> "ContextBudget":
        return cls(
            max_sources=settings.context_max_sources,
            top_tier_count=settings.context_top_tier_count,
            top_budget_chars=settings.context_top_budget_chars,
            tail_budget_chars=settings.context_tail_budget_chars,
            disclaimer_threshold=settings.context_snippet_disclaimer_threshold,
        )

    def chars_for(self, display_index: int) -> int:
        if display_index <= self.top_tier_count:
            return self.top_budget_chars
        return self.tail_budget_chars


def format_source(source: RankedSource, budget_chars: int) -> str:
    header = f"[Source {source.display_index}] {source.title} ({source.url})"
    if source.is_snippet_only:
        header = f"{header} {SNIPPET_ONLY_TAG}"
    body = web_utils.truncate(source.full_content, budget_chars)
    return f"{header}\n{body}"


def apply_budgets(sources: Sequence[RankedSource], budget: ContextBudget | None = None) -> None:
    """Record each source's content budget from its display index."""
    budget = budget or ContextBudget.from_settings()
    for source in sources:
        source.source.content_char_budget = budget.chars_for(source.display_index)


def format_context(
    query: str,
    sources: Sequence[RankedSource],
    *,
    answer: str = "",
    budget: ContextBudget | None = None,
) -> str:
    """Build the context block; returns "" when there is nothing to cite."""
    budget = budget or ContextBudget.from_settings()
    included = list(sources)[: budget.max_sources]
    if not included:
        return ""

    lines: list[str] = [f'Web research results for: "{query.strip()}"']
    if answer:
        lines.append(f"Summary: {web_utils.truncate(answer, budget.top_budget_chars)}")
    lines.append("")

    for source in included:
        lines.append(format_source(source, budget.chars_for(source.display_index)))
        lines.append("")

    snippet_only = sum(1 for s in included if s.is_snippet_only)
    if snippet_only > budget.disclaimer_threshold:
        lines.append(DISCLAIMER)
    lines.append(CITATION_INSTRUCTION)
    return "\n".join(lines)
