"""Bounded, expiring analysis cache keyed by a text fingerprint."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from actionlens.extraction.models import AnalysisResult


def fingerprint(text: str) -> str:
    """Short, order-sensitive digest of *text* used as the cache key.

    A 32-bit rolling hash (``h = h * 31 + code point``) rendered in base 36,
    prefixed with the text length. Not collision-free: a collision costs a
    stale result, never a malformed one.
    """
    h = 0
    for char in text:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return f"{len(text):x}-{_base36(h)}"


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    sign = "-" if value < 0 else ""
    value = abs(value)
    if value == 0:
        return "0"
    out: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return sign + "".join(reversed(out))


@dataclass
class CacheEntry:
    result: AnalysisResult
    timestamp: float
    access_count: int
    fingerprint: str
    sequence: int  # insertion order, breaks access-count ties


class AnalysisCache:
    """Approximate-LFU cache with absolute expiry.

    Entries expire ``ttl_seconds`` after insertion. At capacity, expired
    entries are purged first; if the cache is still full the entry with the
    lowest access count is evicted (earliest insertion on ties).
    """

    def __init__(
        self,
        max_entries: int = 100,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._clock = clock
        self._sequence = 0

    def get(self, key: str) -> AnalysisResult | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            return None
        entry.access_count += 1
        return entry.result

    def put(self, key: str, result: AnalysisResult) -> None:
        if key not in self._entries and len(self._entries) >= self._max_entries:
            self.purge_expired()
            if len(self._entries) >= self._max_entries:
                victim = min(
                    self._entries.values(), key=lambda e: (e.access_count, e.sequence)
                )
                del self._entries[victim.fingerprint]

        self._sequence += 1
        self._entries[key] = CacheEntry(
            result=result,
            timestamp=self._clock(),
            access_count=1,
            fingerprint=key,
            sequence=self._sequence,
        )

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp > self._ttl
