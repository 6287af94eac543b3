from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from groundline.tools import web_utils

ResearchMode = Literal["quick", "deep"]
ScrapeMethod = Literal["firecrawl", "jina", "snippet"]
Stage = Literal["searching", "reading", "analyzing"]

STAGE_ORDER: tuple[str, ...] = ("searching", "reading", "analyzing")


@dataclass(frozen=True, slots=True)
class SearchQuery:
    text: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "text", " ".join(self.text.split()))


@dataclass(slots=True)
class OrganicResult:
    title: str
    url: str
    snippet: str
    rank: int = 0


@dataclass(slots=True)
class ImageResult:
    title: str
    image_url: str
    link_url: str

    def to_payload(self) -> dict[str, str]:
        return {"title": self.title, "image_url": self.image_url, "link_url": self.link_url}


@dataclass(slots=True)
class ScrapedSource:
    """An organic result upgraded with the text of the page.

    Starts pending (``full_content`` empty) and is resolved exactly once when its
    fallback chain finishes.
    """

    title: str
    url: str
    snippet: str
    rank: int
    full_content: str = ""
    scrape_method: ScrapeMethod = "snippet"
    content_char_budget: int = 0
    resolved: bool = False

    @classmethod
    def pending(cls, result: OrganicResult) -> "ScrapedSource":
        return cls(title=result.title, url=result.url, snippet=result.snippet, rank=result.rank)

    def resolve(self, content: str | None, method: ScrapeMethod) -> "ScrapedSource":
        if self.resolved:
            raise RuntimeError(f"Source already resolved: {self.url}")
        text = (content or "").strip()
        if not text or method == "snippet":
            # Snippet is the floor; title covers providers that return no snippet.
            text = self.snippet.strip() or self.title.strip() or self.url
            method = "snippet"
        self.full_content = text
        self.scrape_method = method
        self.resolved = True
        return self

    @property
    def is_snippet_only(self) -> bool:
        return self.scrape_method == "snippet" or self.full_content == self.snippet


@dataclass(slots=True)
class RankedSource:
    source: ScrapedSource
    relevance_score: float = 0.0
    display_index: int = 0

    @property
    def title(self) -> str:
        return self.source.title

    @property
    def url(self) -> str:
        return self.source.url

    @property
    def snippet(self) -> str:
        return self.source.snippet

    @property
    def full_content(self) -> str:
        return self.source.full_content

    @property
    def scrape_method(self) -> str:
        return self.source.scrape_method

    @property
    def is_snippet_only(self) -> bool:
        return self.source.is_snippet_only

    def to_payload(self) -> dict[str, Any]:
        domain = web_utils.display_domain(self.url)
        return {
            "index": self.display_index,
            "title": self.title,
            "url": self.url,
            "snippet": self.snippet,
            "domain": domain,
            "favicon": web_utils.favicon_url(domain),
            "scrape_method": self.scrape_method,
            "relevance_score": round(self.relevance_score, 4),
        }


def assign_display_indices(ranked: list[RankedSource]) -> list[RankedSource]:
    for index, item in enumerate(ranked, start=1):
        item.display_index = index
    return ranked


@dataclass(slots=True)
class ProgressEvent:
    stage: Stage
    total: int | None = None
    completed: int | None = None

    def to_payload(self) -> dict[str, Any]:
        data: dict[str, Any] = {"stage": self.stage}
        if self.total is not None:
            data["total"] = self.total
        if self.completed is not None:
            data["completed"] = self.completed
        return data


@dataclass(slots=True)
class SearchOutcome:
    organic: list[OrganicResult] = field(default_factory=list)
    images: list[ImageResult] = field(default_factory=list)
    answer: str = ""
    provider: str | None = None
    fallback_from: str | None = None
    fallback_reason: str | None = None

    def to_cache(self) -> dict[str, Any]:
        return {
            "organic": [
                {"title": r.title, "url": r.url, "snippet": r.snippet, "rank": r.rank}
                for r in self.organic
            ],
            "images": [i.to_payload() for i in self.images],
            "answer": self.answer,
            "provider": self.provider,
        }

    @classmethod
    def from_cache(cls, payload: dict[str, Any]) -> "SearchOutcome":
        return cls(
            organic=[OrganicResult(**r) for r in payload.get("organic", [])],
            images=[ImageResult(**i) for i in payload.get("images", [])],
            answer=payload.get("answer", ""),
            provider=payload.get("provider"),
        )


@dataclass(slots=True)
class ResearchResult:
    context_text: str
    sources: list[RankedSource] = field(default_factory=list)
    images: list[ImageResult] = field(default_factory=list)
    mode: ResearchMode = "deep"
    answer: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "context": self.context_text,
            "sources": [s.to_payload() for s in self.sources],
            "images": [i.to_payload() for i in self.images],
            "mode": self.mode,
            "answer": self.answer,
        }
