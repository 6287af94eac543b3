from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from groundline.services.progress import ProgressEmitter, Sink


class SessionState(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class ResearchSession:
    """Handle for one research run; passed explicitly to every pipeline call."""

    emitter: ProgressEmitter = field(default_factory=ProgressEmitter)
    session_id: str = field(default_factory=lambda: str(uuid4()))
    state: SessionState = SessionState.CREATED
    started_at: float | None = None
    closed_at: float | None = None

    @classmethod
    def with_sink(cls, sink: Sink | None) -> "ResearchSession":
        return cls(emitter=ProgressEmitter(sink))

    def open(self) -> "ResearchSession":
        if self.state is not SessionState.CREATED:
            raise RuntimeError(f"Session {self.session_id} cannot be opened from {self.state.value}")
        self.state = SessionState.ACTIVE
        self.started_at = time.monotonic()
        return self

    def close(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self.closed_at = time.monotonic()

    def ensure_active(self) -> None:
        if self.state is not SessionState.ACTIVE:
            raise RuntimeError(f"Session {self.session_id} is {self.state.value}, not active")

    @property
    def elapsed_ms(self) -> int:
        if self.started_at is None:
            return 0
        end = self.closed_at if self.closed_at is not None else time.monotonic()
        return int((end - self.started_at) * 1000)

    async def __aenter__(self) -> "ResearchSession":
        return self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
