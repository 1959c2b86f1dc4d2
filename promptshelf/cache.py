"""Bounded least-recently-used cache."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Any, Hashable, Optional

logger = logging.getLogger("promptshelf.cache")

DEFAULT_CAPACITY = 500


class LRUCache:
    """Ordered-map LRU cache with move-to-front on access.

    All operations take one lock so eviction and recency updates stay
    consistent when debounce timers call in from other threads.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._data: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
                self.hits += 1
                return self._data[key]
            self.misses += 1
            return None

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
                self._data[key] = value
                return
            if len(self._data) >= self.capacity:
                evicted, _ = self._data.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted)
            self._data[key] = value

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self.hits = 0
            self.misses = 0

    def keys(self) -> list:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._data.keys())

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
