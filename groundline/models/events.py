from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DONE_SENTINEL = "[DONE]"


class TagType(str, Enum):
    SEARCH_STATUS = "search_status"
    SEARCH_SOURCES = "search_sources"
    TOOL_CALL = "tool_call"
    THINK = "think"

    @property
    def open(self) -> str:
        return f"<{self.value}>"

    @property
    def close(self) -> str:
        return f"</{self.value}>"


# Tags the client strips from display text; status/sources also carry state.
CONTROL_TAGS: tuple[TagType, ...] = tuple(TagType)


@dataclass
class TaggedBlock:
    tag: TagType
    data: dict[str, Any] = field(default_factory=dict)

    def format(self) -> str:
        return f"{self.tag.open}{json.dumps(self.data, ensure_ascii=False)}{self.tag.close}"
