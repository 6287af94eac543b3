from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


# --- Requests ---


class ResearchRequest(BaseModel):
    query: str = Field(min_length=1)
    mode: Literal["quick", "deep", "auto"] | None = None


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(min_length=1)
    mode: Literal["quick", "deep", "auto"] | None = None
    web_search: bool = True
    model: str | None = None


# --- Responses ---


class SourcePayload(BaseModel):
    index: int
    title: str
    url: str
    snippet: str
    domain: str
    favicon: str
    scrape_method: str
    relevance_score: float


class ImagePayload(BaseModel):
    title: str
    image_url: str
    link_url: str


class ResearchResponse(BaseModel):
    context: str
    sources: list[SourcePayload]
    images: list[ImagePayload]
    mode: str
    answer: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ResearchResponse":
        return cls.model_validate(payload)
