"""Search history store for tracking recent queries."""

from __future__ import annotations

import logging
from typing import List, Optional

from promptshelf.storage import KeyValueStore, StorageError

logger = logging.getLogger("promptshelf.search_history")

HISTORY_KEY = "promptshelf-search-history"
DEFAULT_CAPACITY = 10


class SearchHistoryStore:
    """Bounded, most-recent-first list of past queries.

    Persistence is best effort: an unreadable store starts the history empty,
    and a failed write keeps the in-memory history.
    """

    def __init__(self, store: Optional[KeyValueStore] = None, capacity: int = DEFAULT_CAPACITY):
        """Initialize and load any persisted history."""
        self.store = store
        self.capacity = capacity
        self._entries: List[str] = []
        self._load()

    def _load(self):
        """Load history from storage."""
        if self.store is None:
            return
        try:
            data = self.store.get(HISTORY_KEY)
        except StorageError as exc:
            logger.warning("Error reading search history: %s", exc)
            return
        if data is None:
            return
        if not isinstance(data, list):
            logger.warning("Ignoring malformed search history of type %s", type(data).__name__)
            return
        entries = [e.strip() for e in data if isinstance(e, str) and e.strip()]
        self._entries = entries[: self.capacity]

    def _save(self):
        """Save history to storage."""
        if self.store is None:
            return
        try:
            self.store.set(HISTORY_KEY, list(self._entries))
        except StorageError as exc:
            logger.warning("Error saving search history: %s", exc)

    def add_search(self, term: Optional[str]) -> None:
        """Record a query; blank queries are ignored."""
        if not term or not term.strip():
            return
        term = term.strip()

        # Move an earlier occurrence to the front
        self._entries = [term] + [e for e in self._entries if e != term]
        if len(self._entries) > self.capacity:
            self._entries = self._entries[: self.capacity]

        self._save()

    def get_history(self, limit: Optional[int] = None) -> List[str]:
        """Recent queries, most recent first."""
        if limit is None:
            return list(self._entries)
        return self._entries[:limit]

    def get_by_index(self, index: int) -> Optional[str]:
        """Get a query by index (0-based)."""
        if 0 <= index < len(self._entries):
            return self._entries[index]
        return None

    def clear_history(self) -> None:
        """Clear all history."""
        self._entries = []
        self._save()

    def __len__(self) -> int:
        return len(self._entries)
