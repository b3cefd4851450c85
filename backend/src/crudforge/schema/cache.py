"""
Process-wide cache of validated schemas and their context projections.

Entries are keyed by (entity, connection, normalized context string) and are
replaced as whole values, never mutated in place. An entry is dropped when
its source fingerprint (file path + mtime) changes, when its TTL expires, or
when it is cleared explicitly.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

FULL_CONTEXT = "full"

Fingerprint = tuple[str, int]
CacheKey = tuple[str, str, str]


def normalize_context(context_spec: str | None) -> str:
    """Canonical form of a context string: stripped, deduplicated, comma-joined.

    ``None`` and blank specs normalize to ``"full"``. Order is preserved so
    ``"list,form"`` and ``"form,list"`` stay distinct cache keys; they produce
    maps with different key order.
    """
    if context_spec is None:
        return FULL_CONTEXT
    names: list[str] = []
    for part in context_spec.split(","):
        name = part.strip()
        if name and name not in names:
            names.append(name)
    return ",".join(names) or FULL_CONTEXT


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    fingerprint: Fingerprint | None
    stored_at: float


class SchemaCache:
    """Thread-safe keyed store for schema documents and projections.

    Example:
        cache = SchemaCache(ttl=3600)
        cache.put("users", None, "list", view, fingerprint)
        cache.get("users", None, "list", fingerprint)
    """

    def __init__(
        self,
        ttl: int = 3600,
        debug_mode: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.debug_mode = debug_mode
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def make_key(entity: str, connection: str | None, context_spec: str | None) -> CacheKey:
        return (entity, connection or "", normalize_context(context_spec))

    def get(
        self,
        entity: str,
        connection: str | None,
        context_spec: str | None,
        fingerprint: Fingerprint | None = None,
    ) -> Any | None:
        """Return the cached value, or None on miss, expiry or stale source."""
        key = self.make_key(entity, connection, context_spec)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._debug("Schema cache miss: %s", key)
                return None
            if fingerprint is not None and entry.fingerprint != fingerprint:
                del self._entries[key]
                self._debug("Schema cache stale (source changed): %s", key)
                return None
            if self.ttl > 0 and self._clock() - entry.stored_at > self.ttl:
                del self._entries[key]
                self._debug("Schema cache expired: %s", key)
                return None
            self._debug("Schema cache hit: %s", key)
            return entry.value

    def put(
        self,
        entity: str,
        connection: str | None,
        context_spec: str | None,
        value: Any,
        fingerprint: Fingerprint | None = None,
    ) -> None:
        key = self.make_key(entity, connection, context_spec)
        entry = CacheEntry(value=value, fingerprint=fingerprint, stored_at=self._clock())
        with self._lock:
            self._entries[key] = entry
        self._debug("Schema cached: %s", key)

    def clear(self, entity: str, connection: str | None = None) -> int:
        """Drop every entry for an entity (optionally one connection only).

        Returns:
            Number of entries removed
        """
        with self._lock:
            doomed = [
                key
                for key in self._entries
                if key[0] == entity and (connection is None or key[1] == connection)
            ]
            for key in doomed:
                del self._entries[key]
        logger.debug("Cleared %d schema cache entries for '%s'", len(doomed), entity)
        return len(doomed)

    def clear_all(self) -> None:
        with self._lock:
            self._entries = {}
        logger.debug("Cleared schema cache")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _debug(self, message: str, key: CacheKey) -> None:
        if self.debug_mode:
            logger.debug(message, ":".join(key))
