"""Short-TTL result cache shared by every pipeline stage.

The cache stores ``(payload, updated_at)`` per key and compares timestamps on
read; it knows nothing about what a payload means. The TTL for a read comes from
the key's resource class (the ``resource:`` prefix built by :func:`cache_key`).
"""
from __future__ import annotations

import json
import os
import tempfile
import time
from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path
from typing import Any, Callable, Protocol

from loguru import logger

from groundline.config import settings

CACHE_VERSION = 1

DEFAULT_TTL_SECONDS: dict[str, float] = {
    "quote": 5,
    "symbol_search": 300,
    "overview": 60,
    "news": 1800,
    "search": 300,
    "scrape": 1800,
    "rerank": 300,
}


@dataclass(slots=True)
class CacheEntry:
    key: str
    payload: Any
    updated_at: float


class CacheStore(Protocol):
    def get(self, key: str) -> CacheEntry | None: ...

    def upsert(self, key: str, payload: Any, updated_at: float) -> None: ...

    def prune(self, is_expired: Callable[[CacheEntry], bool]) -> int: ...


class MemoryCacheStore:
    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def upsert(self, key: str, payload: Any, updated_at: float) -> None:
        # Whole-entry replacement; readers never observe a half-written value.
        self._entries[key] = CacheEntry(key=key, payload=payload, updated_at=updated_at)

    def prune(self, is_expired: Callable[[CacheEntry], bool]) -> int:
        expired = [key for key, entry in self._entries.items() if is_expired(entry)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class FileCacheStore:
    """One JSON file per key, written via temp file + ``os.replace``."""

    def __init__(self, cache_dir: str | Path) -> None:
        self.cache_dir = Path(cache_dir)

    def _path(self, key: str) -> Path:
        digest = sha256(f"v{CACHE_VERSION}|{key}".encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest}.json"

    @staticmethod
    def _read(path: Path) -> CacheEntry | None:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(raw, dict) or not isinstance(raw.get("key"), str):
            return None
        updated_at = raw.get("updated_at")
        if not isinstance(updated_at, (int, float)):
            return None
        return CacheEntry(key=raw["key"], payload=raw.get("payload"), updated_at=float(updated_at))

    def get(self, key: str) -> CacheEntry | None:
        path = self._path(key)
        if not path.exists():
            return None
        entry = self._read(path)
        if entry is None or entry.key != key:
            return None
        return entry

    def prune(self, is_expired: Callable[[CacheEntry], bool]) -> int:
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            entry = self._read(path)
            # Unreadable files are dead weight too.
            if entry is None or is_expired(entry):
                path.unlink(missing_ok=True)
                removed += 1
        return removed

    def upsert(self, key: str, payload: Any, updated_at: float) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        body = json.dumps(
            {"version": CACHE_VERSION, "key": key, "updated_at": updated_at, "payload": payload},
            ensure_ascii=True,
        )
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(body)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def cache_key(resource: str, *parts: Any) -> str:
    material = "|".join(str(p) for p in parts)
    return f"{resource}:{sha256(material.encode('utf-8')).hexdigest()}"


def resource_class(key: str) -> str:
    return key.split(":", 1)[0] if ":" in key else ""


class ResultCache:
    def __init__(
        self,
        store: CacheStore | None = None,
        *,
        ttl_seconds: dict[str, float] | None = None,
        default_ttl: float | None = None,
        clock: Callable[[], float] = time.time,
        prune_every: int | None = None,
    ) -> None:
        self.store = store if store is not None else MemoryCacheStore()
        self.ttl_seconds = {**DEFAULT_TTL_SECONDS, **(ttl_seconds or {})}
        self.default_ttl = float(
            settings.cache_default_ttl_s if default_ttl is None else default_ttl
        )
        self._clock = clock
        self.prune_every = max(int(prune_every or settings.cache_prune_every), 1)
        self._writes = 0

    def ttl_for(self, key: str) -> float:
        return float(self.ttl_seconds.get(resource_class(key), self.default_ttl))

    def get(self, key: str, ttl: float | None = None) -> Any | None:
        entry = self.store.get(key)
        if entry is None:
            return None
        max_age = self.ttl_for(key) if ttl is None else float(ttl)
        if self._clock() - entry.updated_at > max_age:
            return None
        return entry.payload

    def set(self, key: str, payload: Any) -> None:
        try:
            self.store.upsert(key, payload, self._clock())
        except (OSError, TypeError, ValueError) as exc:
            # A failed write only costs a future recomputation.
            logger.warning(f"Cache write failed for {resource_class(key)} key: {exc}")
            return
        self._writes += 1
        if self._writes % self.prune_every == 0:
            self.prune()

    def is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.updated_at > self.ttl_for(entry.key)

    def prune(self) -> int:
        """Drop every entry past its class TTL; returns how many were removed."""
        try:
            removed = self.store.prune(self.is_expired)
        except OSError as exc:
            logger.warning(f"Cache prune failed: {exc}")
            return 0
        if removed:
            logger.debug(f"Pruned {removed} expired cache entries")
        return removed


def build_cache() -> ResultCache:
    backend = settings.cache_backend.lower().strip()
    if backend == "file":
        return ResultCache(FileCacheStore(settings.cache_dir))
    return ResultCache(MemoryCacheStore())
