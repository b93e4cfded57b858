# Overview: Optional cache-aside collaborator for read paths.

from __future__ import annotations

import threading
import time
from typing import Any

from flask import current_app


class NullCache:
    """Cache that never stores anything. The engine must stay correct with it."""

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        return None

    def invalidate_prefix(self, prefix: str) -> int:
        return 0


class MemoryCache:
    """Process-local TTL cache. Values must be treated as read-only by callers."""

    def __init__(self, default_ttl: int = 60):
        self.default_ttl = default_ttl
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at < time.monotonic():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl, value)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)


def build_cache(config) -> NullCache | MemoryCache:
    if config.get("CACHE_ENABLED"):
        return MemoryCache(default_ttl=config.get("CACHE_DEFAULT_TTL", 60))
    return NullCache()


def get_cache():
    return current_app.extensions["posledger_cache"]


def stock_prefix(business_id: int) -> str:
    return f"stock:{business_id}:"


def invalidate_stock(business_id: int) -> None:
    get_cache().invalidate_prefix(stock_prefix(business_id))
