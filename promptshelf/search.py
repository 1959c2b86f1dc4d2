"""
Search engine - one entry point for ranking, filtering and suggestions.

Wires the scorer, the tag filter engine, the analytics cache, search history
and the filter session around a single key/value store.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from promptshelf.cache import LRUCache
from promptshelf.config import Settings, load_settings
from promptshelf.debounce import DebounceState, Debouncer, TimerFactory, thread_timer
from promptshelf.filter_session import FilterSession
from promptshelf.filters import TagFilterEngine, optimized_filter
from promptshelf.models import (
    BaseItem,
    FilterConfig,
    ItemLike,
    ItemType,
    RankedResult,
    TagFrequencyRecord,
    parse_items,
)
from promptshelf.progressive import ProgressiveFilterRunner
from promptshelf.scoring import rank_items
from promptshelf.search_history import SearchHistoryStore
from promptshelf.storage import JsonFileStore, KeyValueStore
from promptshelf.suggestions import filter_tag_suggestions, generate_search_suggestions
from promptshelf.tag_analytics import TagAnalyticsCache, extract_all_tags

logger = logging.getLogger("promptshelf.search")


class DebouncedSearch:
    """Runs a search once the query has been quiet for the debounce delay.

    A newer query replaces a pending one, so only the last query typed is
    ranked. A blank query cancels any pending search and reports no results
    right away.
    """

    def __init__(
        self,
        engine: SearchEngine,
        items: Iterable[ItemLike],
        on_results: Callable[[str, List[RankedResult]], Any],
        *,
        item_type: Union[ItemType, str, None] = None,
        debounce_ms: Optional[int] = None,
        sort_by: str = "relevance",
        record: bool = False,
        timer_factory: TimerFactory = thread_timer,
    ):
        self.engine = engine
        self.items = parse_items(items, item_type)
        self.on_results = on_results
        self.sort_by = sort_by
        self.record = record
        delay = engine.settings.debounce_ms if debounce_ms is None else debounce_ms
        self._debouncer = Debouncer(self._run, delay, timer_factory)

    def _run(self, query: str) -> None:
        results = self.engine.perform_advanced_search(
            self.items, query, sort_by=self.sort_by, record=self.record
        )
        self.on_results(query, results)

    @property
    def is_searching(self) -> bool:
        return self._debouncer.pending

    def update_query(self, query: str) -> bool:
        """Schedule a search for ``query``. Returns False once closed."""
        if not query or not query.strip():
            self._debouncer.cancel()
            if self._debouncer.state == DebounceState.CLOSED:
                return False
            self.on_results(query or "", [])
            return True
        return self._debouncer.schedule(query)

    def flush(self) -> bool:
        return self._debouncer.flush()

    def cancel(self) -> None:
        self._debouncer.cancel()

    def close(self) -> None:
        self._debouncer.close()


class SearchEngine:
    """Unified search, filter and suggestion engine for a prompt library."""

    def __init__(self, settings: Optional[Settings] = None, store: Optional[KeyValueStore] = None):
        """Initialize the engine.

        Args:
            settings: Tunables (defaults to ``load_settings()``)
            store: Backing store (defaults to a JSON file at ``settings.storage_path``)
        """
        self.settings = settings or load_settings()
        self.store = store if store is not None else JsonFileStore(self.settings.storage_path)

        self.tag_engine = TagFilterEngine(LRUCache(self.settings.cache_capacity))
        self.analytics = TagAnalyticsCache(self.store, ttl_seconds=self.settings.tag_cache_ttl_seconds)
        self.history = SearchHistoryStore(self.store, capacity=self.settings.history_capacity)
        self.runner = ProgressiveFilterRunner(self.tag_engine, batch_size=self.settings.batch_size)
        self.session = FilterSession(
            self.tag_engine,
            self.store,
            batch_size=self.settings.batch_size,
            progressive_threshold=self.settings.progressive_threshold,
            optimized_threshold=self.settings.optimized_threshold,
        )

    @property
    def filters(self) -> FilterConfig:
        return self.session.filters

    def apply_filters(
        self, items: Iterable[ItemLike], item_type: Union[ItemType, str, None]
    ) -> List[BaseItem]:
        """Filter a collection with the session's current filters."""
        return self.session.apply_filters(items, item_type)

    def filter_items(
        self,
        items: Iterable[ItemLike],
        config: Union[FilterConfig, dict, None],
        item_type: Union[ItemType, str, None],
    ) -> List[BaseItem]:
        """Filter with an explicit configuration, leaving the session untouched."""
        items = parse_items(items, item_type)
        return optimized_filter(
            items,
            config,
            item_type,
            self.tag_engine,
            progressive=len(items) > self.settings.progressive_threshold,
            batch_size=self.settings.batch_size,
            optimized_threshold=self.settings.optimized_threshold,
            progressive_threshold=self.settings.progressive_threshold,
        )

    async def apply_filters_async(
        self, items: Iterable[ItemLike], item_type: Union[ItemType, str, None]
    ) -> Optional[List[BaseItem]]:
        """Async variant; None means a newer call superseded this one."""
        return await self.session.apply_filters_async(items, item_type, runner=self.runner)

    def perform_advanced_search(
        self,
        items: Iterable[ItemLike],
        search_term: str,
        item_type: Union[ItemType, str, None] = None,
        *,
        min_score: Optional[float] = None,
        max_results: Optional[int] = None,
        sort_by: str = "relevance",
        record: bool = False,
    ) -> List[RankedResult]:
        """Rank items for a query.

        Args:
            items: Items to search
            search_term: Free-text query
            item_type: Kind assumed for raw mappings
            min_score: Minimum relevance (defaults to settings)
            max_results: Result limit (defaults to settings)
            sort_by: ``relevance``, ``name`` or ``date``
            record: Also add the query to the search history

        Returns:
            Ranked results
        """
        results = rank_items(
            items,
            search_term,
            item_type,
            min_score=self.settings.min_score if min_score is None else min_score,
            max_results=self.settings.max_results if max_results is None else max_results,
            sort_by=sort_by,
        )
        if record:
            self.history.add_search(search_term)
        logger.debug("Search %r matched %d items", search_term, len(results))
        return results

    def get_cached_tag_frequency(
        self, items: Iterable[ItemLike], item_type: Union[ItemType, str, None] = None
    ) -> List[TagFrequencyRecord]:
        return self.analytics.get_cached_tag_frequency(items, item_type)

    def filter_tag_suggestions(
        self,
        records: Sequence[TagFrequencyRecord],
        input_value: Optional[str],
        max_results: Optional[int] = None,
    ) -> List[TagFrequencyRecord]:
        limit = self.settings.max_tag_suggestions if max_results is None else max_results
        return filter_tag_suggestions(records, input_value, limit)

    def extract_all_tags(self, collections: Mapping[str, Iterable[ItemLike]]) -> List[str]:
        return extract_all_tags(collections)

    def suggest(
        self,
        items: Iterable[ItemLike],
        partial: str,
        max_suggestions: Optional[int] = None,
        item_type: Union[ItemType, str, None] = None,
    ) -> List[str]:
        """Search-box completions for ``partial``."""
        limit = self.settings.max_search_suggestions if max_suggestions is None else max_suggestions
        return generate_search_suggestions(items, partial, limit, item_type)

    def search_collections(
        self,
        collections: Mapping[str, Iterable[ItemLike]],
        search_term: str,
        *,
        min_score: Optional[float] = None,
        max_results: Optional[int] = None,
        sort_by: str = "relevance",
        record: bool = False,
    ) -> List[RankedResult]:
        """Search every collection of a library and merge the rankings."""
        merged: List[BaseItem] = []
        for name, items in collections.items():
            merged.extend(parse_items(items, ItemType.coerce(name)))
        return self.perform_advanced_search(
            merged,
            search_term,
            min_score=min_score,
            max_results=max_results,
            sort_by=sort_by,
            record=record,
        )

    def debounced_search(
        self,
        items: Iterable[ItemLike],
        on_results: Callable[[str, List[RankedResult]], Any],
        item_type: Union[ItemType, str, None] = None,
        **kwargs: Any,
    ) -> DebouncedSearch:
        """A search box over ``items`` that ranks only the settled query."""
        return DebouncedSearch(self, items, on_results, item_type=item_type, **kwargs)

    def clear_caches(self) -> None:
        """Forget cached tag-filter results and stored tag analytics."""
        self.tag_engine.clear_cache()
        self.analytics.clear()

    def stats(self) -> Dict[str, int]:
        return {
            "cachedFilters": len(self.tag_engine.cache),
            "cacheHits": self.tag_engine.cache.hits,
            "cacheMisses": self.tag_engine.cache.misses,
            "historySize": len(self.history),
        }


# Global instance
_search_engine: Optional[SearchEngine] = None


def get_search_engine() -> SearchEngine:
    """Get the global search engine instance.

    Returns:
        The SearchEngine singleton
    """
    global _search_engine
    if _search_engine is None:
        _search_engine = SearchEngine()
    return _search_engine


def reset_search_engine() -> None:
    """Drop the global instance so the next call rebuilds it from settings."""
    global _search_engine
    _search_engine = None
