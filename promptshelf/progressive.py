"""Batched filtering for very large collections.

The async runner yields to the event loop between batches so a long filter
does not starve other tasks. Every run takes a request id; when a newer run
starts (or ``cancel`` is called) older runs stop at their next batch
boundary and return ``None``, so a stale result never replaces a newer one.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Iterator, List, Optional, Sequence, Union

from promptshelf.filters import (
    DEFAULT_BATCH_SIZE,
    TagFilterEngine,
    apply_complex_filters,
    validate_filters,
)
from promptshelf.models import BaseItem, FilterConfig, ItemLike, ItemType, parse_items

logger = logging.getLogger("promptshelf.progressive")


def iter_batches(items: Sequence[BaseItem], batch_size: int) -> Iterator[Sequence[BaseItem]]:
    """Yield contiguous slices of at most ``batch_size`` items."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    for start in range(0, len(items), batch_size):
        yield items[start : start + batch_size]


class ProgressiveFilterRunner:
    """Apply the filter pipeline batch by batch."""

    def __init__(self, engine: TagFilterEngine, batch_size: int = DEFAULT_BATCH_SIZE):
        self.engine = engine
        self.batch_size = batch_size
        self._lock = threading.Lock()
        self._latest_request_id = 0

    def _next_request_id(self) -> int:
        with self._lock:
            self._latest_request_id += 1
            return self._latest_request_id

    def _is_current(self, request_id: int) -> bool:
        with self._lock:
            return request_id == self._latest_request_id

    def cancel(self) -> None:
        """Invalidate any run still in flight."""
        self._next_request_id()

    def run_sync(
        self,
        items: Sequence[ItemLike],
        config: Union[FilterConfig, dict, None],
        item_type: Union[ItemType, str, None],
        batch_size: Optional[int] = None,
    ) -> List[BaseItem]:
        """Filter batch by batch without yielding; same result as one pass."""
        config = validate_filters(config)
        parsed = parse_items(items, item_type)
        results: List[BaseItem] = []
        for batch in iter_batches(parsed, batch_size or self.batch_size):
            results.extend(apply_complex_filters(batch, config, item_type, self.engine))
        return results

    async def run(
        self,
        items: Sequence[ItemLike],
        config: Union[FilterConfig, dict, None],
        item_type: Union[ItemType, str, None],
        batch_size: Optional[int] = None,
    ) -> Optional[List[BaseItem]]:
        """Filter batch by batch, yielding to the event loop in between.

        Returns:
            The filtered items, or None if this run was superseded
        """
        request_id = self._next_request_id()
        config = validate_filters(config)
        parsed = parse_items(items, item_type)
        size = batch_size or self.batch_size

        results: List[BaseItem] = []
        for start in range(0, len(parsed), size):
            batch = parsed[start : start + size]
            results.extend(apply_complex_filters(batch, config, item_type, self.engine))
            if start + size < len(parsed):
                await asyncio.sleep(0)
                if not self._is_current(request_id):
                    logger.debug("Progressive run %d superseded after %d items", request_id, start + size)
                    return None

        if not self._is_current(request_id):
            return None
        return results
