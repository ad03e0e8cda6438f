"""
TTLCache -- injectable in-memory cache with a background cleanup thread.

Contract:
    - Constructed with explicit settings and passed by reference to the
      services that use it.  There is no module-level instance.
    - ``start()`` launches the cleanup thread, ``close()`` stops it and drops
      all entries.  Usable as a context manager.
    - Expired entries are never returned, whether or not the cleanup thread
      has run yet.

Thread safety:
    All access to the entry map goes through one lock.  The cleanup thread
    wakes on a ``threading.Event`` so ``close()`` returns promptly.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from exchange_kernel.logging_config import get_logger

logger = get_logger("utils.cache")


@dataclass
class _Entry:
    value: Any
    expires_at: float


@dataclass(frozen=True)
class CacheStats:
    size: int
    hits: int
    misses: int
    evictions: int


class TTLCache:
    """Key/value cache where every entry expires ``ttl_seconds`` after it is set."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        cleanup_interval_seconds: float = 60.0,
        time_source: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds cannot be negative")
        if cleanup_interval_seconds <= 0:
            raise ValueError("cleanup_interval_seconds must be positive")
        self._ttl = ttl_seconds
        self._interval = cleanup_interval_seconds
        self._time = time_source
        self._name = name
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> TTLCache:
        if self._thread is not None and self._thread.is_alive():
            return self
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_cleanup,
            name=f"{self._name}-cleanup",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "cache_started",
            extra={"cache": self._name, "ttl_seconds": self._ttl,
                   "cleanup_interval_seconds": self._interval},
        )
        return self

    def close(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        self.clear()
        logger.info("cache_closed", extra={"cache": self._name})

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def __enter__(self) -> TTLCache:
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        now = self._time()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            if entry.expires_at <= now:
                del self._entries[key]
                self._evictions += 1
                self._misses += 1
                return default
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._time() + ttl)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop expired entries now; returns how many were removed."""
        now = self._time()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_cleanup(self) -> None:
        while not self._stop_event.wait(timeout=self._interval):
            removed = self.purge_expired()
            if removed:
                logger.debug("cache_entries_expired", extra={"cache": self._name, "count": removed})
