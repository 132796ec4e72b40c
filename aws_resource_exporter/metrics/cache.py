from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from ..exceptions import ExpiredEntryError
from .base import MetricSample

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    sample: MetricSample
    created: float


class MetricCache:
    """Label-keyed sample store whose entries expire ``ttl`` seconds after insertion.

    Expired entries are dropped lazily when :meth:`snapshot` walks the map.
    """

    def __init__(self, ttl: float, clock: Clock = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def add_metric(self, sample: MetricSample) -> None:
        key = sample.fingerprint()
        with self._lock:
            self._entries[key] = CacheEntry(sample=sample, created=self._clock())

    def snapshot(self) -> List[MetricSample]:
        now = self._clock()
        samples: List[MetricSample] = []
        with self._lock:
            for key in list(self._entries):
                entry = self._entries[key]
                if now - entry.created > self.ttl:
                    del self._entries[key]
                else:
                    samples.append(entry.sample)
        return samples

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class MemoEntry:
    value: Any
    ttl: int
    created: float


class ResultMemo:
    """TTL map for structured API results of rate-limited endpoints.

    Each entry carries its own TTL in whole seconds.
    """

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, MemoEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            raise KeyError(f"{key}: metric not found")
        if self._clock() - entry.created > entry.ttl:
            raise ExpiredEntryError(f"{key}: metric ttl has expired")
        return entry.value

    def store(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            self._entries[key] = MemoEntry(value=value, ttl=ttl, created=self._clock())


# Shared by every RDS collector for the process lifetime.
default_memo = ResultMemo()
