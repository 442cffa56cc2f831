"""Read-through cache shared by the catalog components.

``MemoryCacheStore`` is the key-value backend: JSON-serialised values with a
per-entry TTL and a bounded LRU capacity. ``ResponseCache`` wraps any store
with the same async ``get``/``set``/``delete`` contract. It builds the catalog's
cache keys and never lets a store failure escape to the caller.
"""

from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Protocol
from uuid import uuid4

from .config import Settings
from .models import MovieFilter
from .utils import canonical_json

logger = logging.getLogger(__name__)

MOVIE_KEY_PREFIX = "movie:id:"
EXTERNAL_KEY_PREFIX = "movie:ext:"
LIST_KEY_PREFIX = "movies:list:"
LIST_GENERATION_KEY = "movies:list:generation"


@dataclass(frozen=True, slots=True)
class CacheConfig:
    """Explicit cache lifetime and capacity."""

    ttl_seconds: int = 300
    max_entries: int = 100

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheConfig":
        return cls(
            ttl_seconds=settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
        )


class CacheStore(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...


@dataclass(slots=True)
class _Entry:
    payload: str
    expires_at: float | None


class MemoryCacheStore:
    """In-process cache with TTL expiry and least-recently-used eviction."""

    def __init__(
        self,
        *,
        max_entries: int = 100,
        default_ttl: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()

    @classmethod
    def from_config(cls, config: CacheConfig) -> "MemoryCacheStore":
        return cls(max_entries=config.max_entries, default_ttl=config.ttl_seconds)

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return json.loads(entry.payload)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store ``value``; a ``ttl`` of ``0`` keeps it until evicted."""

        lifetime = self._default_ttl if ttl is None else ttl
        now = self._clock()
        expires_at = now + lifetime if lifetime > 0 else None
        self._entries[key] = _Entry(json.dumps(value), expires_at)
        self._entries.move_to_end(key)
        if len(self._entries) > self._max_entries:
            self._purge_expired(now)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cache entry %s", evicted)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()

    def _purge_expired(self, now: float) -> None:
        expired = [
            key for key, entry in self._entries.items() if self._is_expired(entry, now)
        ]
        for key in expired:
            del self._entries[key]

    @staticmethod
    def _is_expired(entry: _Entry, now: float) -> bool:
        return entry.expires_at is not None and entry.expires_at <= now


def movie_key(movie_id: str) -> str:
    return f"{MOVIE_KEY_PREFIX}{movie_id}"


def external_key(external_id: int) -> str:
    return f"{EXTERNAL_KEY_PREFIX}{external_id}"


def list_key(movie_filter: MovieFilter, generation: str) -> str:
    return f"{LIST_KEY_PREFIX}{generation}:{canonical_json(movie_filter.to_payload())}"


class ResponseCache:
    """Fault-tolerant cache facade used by the catalog services.

    Store failures are logged and reported as misses, so a cache outage
    never fails a query or a mutation.
    """

    def __init__(self, store: CacheStore, *, ttl_seconds: int = 300):
        self._store = store
        self._ttl_seconds = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    async def get(self, key: str) -> Any | None:
        try:
            return await self._store.get(key)
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self._store.set(
                key, value, self._ttl_seconds if ttl is None else ttl
            )
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            try:
                await self._store.delete(key)
            except Exception as exc:
                logger.warning("Cache delete failed for %s: %s", key, exc)

    async def list_generation(self) -> str | None:
        """Return the token embedded in list keys, creating one if needed.

        ``None`` means the cache cannot be trusted for list reads right now.
        """

        try:
            generation = await self._store.get(LIST_GENERATION_KEY)
            if isinstance(generation, str) and generation:
                return generation
            generation = uuid4().hex
            await self._store.set(LIST_GENERATION_KEY, generation, 0)
            return generation
        except Exception as exc:
            logger.warning("Cache list generation unavailable: %s", exc)
            return None

    async def invalidate_lists(self) -> None:
        """Make every cached listing unreachable."""

        await self.delete(LIST_GENERATION_KEY)

    async def invalidate_movie(self, movie_id: str, external_id: int) -> None:
        await self.delete(movie_key(movie_id), external_key(external_id))
