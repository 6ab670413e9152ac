"""Content-addressed memoization of chunk assembly.

Keys are the SHA-256 hex digest of the exact document text, so any edit
to a document produces a new key and a stale entry simply ages out.

Entries are bounded two ways:

* **Age** -- an entry older than ``ttl_seconds`` is treated as a miss and
  dropped during the next cleanup.
* **Count** -- when more than ``max_entries`` remain after expired entries
  are gone, the oldest entries are dropped first.

Storage is a ``cachetools.FIFOCache``.  An entry is always removed before
it is re-inserted, so insertion order equals timestamp order and FIFO
eviction is "oldest timestamp first".

The cache is safe to share between threads.  The lock guards only the
map; chunk computation runs outside it, so two concurrent misses on the
same text may both compute, and the last write wins.
"""

from __future__ import annotations

import hashlib
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from cachetools import FIFOCache

from src.models.chunk import Chunk
from src.services.chunking.chunker import ChunkAssembler

logger = structlog.get_logger(logger_name=__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Cached chunks for one document text and the time they were stored."""

    chunks: tuple[Chunk, ...]
    timestamp: float


def _copy_chunks(chunks) -> list[Chunk]:
    return [chunk.model_copy(deep=True) for chunk in chunks]


class ChunkCache:
    """Time- and size-bounded cache of :class:`ChunkAssembler` results.

    Construct one per pipeline and call :meth:`clear` on reset commands
    (e.g. after the vector store is rebuilt).

    Parameters
    ----------
    assembler:
        The assembler whose output is memoized.
    ttl_seconds:
        Maximum entry age (default 300 seconds).
    max_entries:
        Maximum number of entries kept after cleanup (default 100).
    timer:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        assembler: ChunkAssembler,
        ttl_seconds: float = 300.0,
        max_entries: int = 100,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._assembler = assembler
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._timer = timer
        # One slot of headroom: the new entry is inserted before cleanup
        # trims back down to max_entries.
        self._entries: FIFOCache[str, CacheEntry] = FIFOCache(maxsize=max_entries + 1)
        self._lock = threading.Lock()

    @property
    def assembler(self) -> ChunkAssembler:
        return self._assembler

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def digest(text: str) -> str:
        """Return the cache key for *text*."""
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def get_or_compute(self, text: str) -> list[Chunk]:
        """Return the chunks for *text*, computing them on a miss.

        The returned list and its chunks are never shared with the cache;
        callers may mutate them freely.
        """
        key = self.digest(text)

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._timer() - entry.timestamp <= self._ttl:
                logger.debug("chunk_cache_hit", key=key[:12], num_chunks=len(entry.chunks))
                return _copy_chunks(entry.chunks)

        logger.debug("chunk_cache_miss", key=key[:12])
        chunks = self._assembler.chunk(text)
        stored = tuple(_copy_chunks(chunks))

        with self._lock:
            now = self._timer()
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(chunks=stored, timestamp=now)
            self._cleanup(now)

        return chunks

    def clear(self) -> None:
        """Drop every entry unconditionally."""
        with self._lock:
            self._entries.clear()
        logger.debug("chunk_cache_cleared")

    def _cleanup(self, now: float) -> None:
        # Caller holds the lock.
        expired = [
            key for key, entry in self._entries.items() if now - entry.timestamp > self._ttl
        ]
        for key in expired:
            del self._entries[key]
        while len(self._entries) > self._max_entries:
            self._entries.popitem()
