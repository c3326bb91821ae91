"""Process-local response cache with stale-while-revalidate."""

from __future__ import annotations

import dataclasses
import hashlib
import json
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pytablecraft._constants import DEFAULT_CACHE_MAX_ENTRIES


def _canonical(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _canonical(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_canonical(v) for v in value]
        return sorted(items, key=repr) if isinstance(value, (set, frozenset)) else items
    return value


def build_cache_key(name: str, params: Any = None, context: Any = None) -> str:
    """Deterministic SHA-256 key for a table name, request params and context."""
    payload = json.dumps(
        [name, _canonical(params), _canonical(context)],
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    stale: bool


@dataclass
class _Record:
    value: Any
    stored_at: float
    ttl: float
    stale_window: float


class ResponseCache:
    """Bounded in-memory cache shared across requests.

    An entry is fresh for ``ttl`` seconds, then served as stale for
    ``stale_window`` more seconds, then dropped. At capacity the oldest
    entry is evicted. :meth:`mark_revalidating` lets exactly one caller
    refresh a stale key while the others keep reading the old value.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._records: OrderedDict[str, _Record] = OrderedDict()
        self._revalidating: set[str] = set()

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            age = self._clock() - record.stored_at
            if age > record.ttl + record.stale_window:
                del self._records[key]
                self._revalidating.discard(key)
                return None
            return CacheEntry(record.value, stale=age > record.ttl)

    def set(self, key: str, value: Any, ttl: float, stale_window: float = 0) -> None:
        with self._lock:
            self._records.pop(key, None)
            while len(self._records) >= self.max_entries:
                evicted, _ = self._records.popitem(last=False)
                self._revalidating.discard(evicted)
            self._records[key] = _Record(value, self._clock(), ttl, stale_window)

    def delete(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)
            self._revalidating.discard(key)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._revalidating.clear()

    def mark_revalidating(self, key: str) -> bool:
        """Claim the refresh of ``key``; False if another caller holds it."""
        with self._lock:
            if key in self._revalidating:
                return False
            self._revalidating.add(key)
            return True

    def unmark_revalidating(self, key: str) -> None:
        with self._lock:
            self._revalidating.discard(key)

    def is_revalidating(self, key: str) -> bool:
        with self._lock:
            return key in self._revalidating

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
