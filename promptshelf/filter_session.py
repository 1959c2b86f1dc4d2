"""Filter state for one UI session.

Holds the current FilterConfig, persists it as preferences, and applies it to
item collections with the size-appropriate strategy.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from promptshelf.filters import (
    DEFAULT_BATCH_SIZE,
    OPTIMIZED_THRESHOLD,
    PROGRESSIVE_THRESHOLD,
    TagFilterEngine,
    optimized_filter,
    validate_filters,
)
from promptshelf.models import BaseItem, FilterConfig, FilterMode, ItemLike, ItemType
from promptshelf.progressive import ProgressiveFilterRunner
from promptshelf.storage import KeyValueStore, StorageError
from promptshelf.tag_analytics import TagStats, extract_all_tags, get_tag_stats

logger = logging.getLogger("promptshelf.filter_session")

PREFERENCES_KEY = "promptshelf-filter-preferences"

Collections = Mapping[str, Iterable[ItemLike]]


def collection_item_type(name: str) -> Optional[ItemType]:
    """``templates`` -> TEMPLATE; unknown collection names give None."""
    return ItemType.coerce(name)


class FilterSession:
    """Current filters plus the operations a filter panel needs."""

    def __init__(
        self,
        engine: Optional[TagFilterEngine] = None,
        store: Optional[KeyValueStore] = None,
        *,
        default_filter_mode: FilterMode = FilterMode.OR,
        persist: bool = True,
        batch_size: int = DEFAULT_BATCH_SIZE,
        progressive_threshold: int = PROGRESSIVE_THRESHOLD,
        optimized_threshold: int = OPTIMIZED_THRESHOLD,
    ):
        self.engine = engine or TagFilterEngine()
        self.store = store
        self.persist = persist
        self.default_filter_mode = default_filter_mode
        self.batch_size = batch_size
        self.progressive_threshold = progressive_threshold
        self.optimized_threshold = optimized_threshold
        self.filters = self._load_preferences()

    def _load_preferences(self) -> FilterConfig:
        defaults = FilterConfig(filter_mode=self.default_filter_mode)
        if not self.persist or self.store is None:
            return defaults
        try:
            saved = self.store.get(PREFERENCES_KEY)
        except StorageError as exc:
            logger.warning("Error loading filter preferences: %s", exc)
            return defaults
        if not isinstance(saved, dict):
            return defaults
        merged = {**defaults.to_payload(), **saved}
        return validate_filters(merged)

    def _save_preferences(self) -> None:
        if not self.persist or self.store is None:
            return
        try:
            self.store.set(PREFERENCES_KEY, self.filters.to_payload())
        except StorageError as exc:
            logger.warning("Error saving filter preferences: %s", exc)

    def update(self, **updates: Any) -> FilterConfig:
        """Merge updates (snake_case or camelCase keys) and re-validate."""
        fields = FilterConfig.model_fields
        updates = {
            (fields[key].alias or key) if key in fields else key: value for key, value in updates.items()
        }
        merged = {**self.filters.to_payload(), **updates}
        self.filters = validate_filters(merged)
        self._save_preferences()
        return self.filters

    def set_selected_tags(self, tags: Iterable[str]) -> None:
        self.update(selectedTags=list(tags))

    def set_filter_mode(self, mode: Union[FilterMode, str]) -> None:
        self.update(filterMode=mode)

    def set_category(self, category: str) -> None:
        self.update(category=category)

    def set_favorite_only(self, favorite_only: bool) -> None:
        self.update(favoriteOnly=favorite_only)

    def set_has_content(self, has_content: bool) -> None:
        self.update(hasContent=has_content)

    def set_type(self, type_: str) -> None:
        self.update(type=type_)

    def add_tag(self, tag: str) -> None:
        if tag not in self.filters.selected_tags:
            self.set_selected_tags(self.filters.selected_tags + [tag])

    def remove_tag(self, tag: str) -> None:
        self.set_selected_tags(t for t in self.filters.selected_tags if t != tag)

    def toggle_tag(self, tag: str) -> None:
        if tag in self.filters.selected_tags:
            self.remove_tag(tag)
        else:
            self.add_tag(tag)

    def clear_tag_filters(self) -> None:
        self.set_selected_tags([])

    def clear_all_filters(self) -> None:
        """Reset every filter and drop cached tag-filter results."""
        self.update(
            selectedTags=[],
            filterMode=self.default_filter_mode,
            category="all",
            favoriteOnly=False,
            hasContent=False,
            type="all",
        )
        self.engine.clear_cache()

    @property
    def has_active_filters(self) -> bool:
        f = self.filters
        return bool(
            f.selected_tags or f.category != "all" or f.favorite_only or f.has_content or f.type != "all"
        )

    def apply_filters(
        self, items: Optional[Iterable[ItemLike]], item_type: Union[ItemType, str, None]
    ) -> List[BaseItem]:
        """Filter one collection with the current configuration."""
        if not items:
            return []
        items = list(items)
        return optimized_filter(
            items,
            self.filters,
            item_type,
            self.engine,
            progressive=len(items) > self.progressive_threshold,
            batch_size=self.batch_size,
            optimized_threshold=self.optimized_threshold,
            progressive_threshold=self.progressive_threshold,
        )

    async def apply_filters_async(
        self,
        items: Optional[Iterable[ItemLike]],
        item_type: Union[ItemType, str, None],
        runner: Optional[ProgressiveFilterRunner] = None,
    ) -> Optional[List[BaseItem]]:
        """Like ``apply_filters`` but yields between batches on large inputs.

        Returns None when a newer run on the same runner superseded this one.
        """
        if not items:
            return []
        items = list(items)
        if len(items) <= self.progressive_threshold:
            return self.apply_filters(items, item_type)
        runner = runner or ProgressiveFilterRunner(self.engine, batch_size=self.batch_size)
        return await runner.run(items, self.filters, item_type)

    def filtered_collections(self, collections: Collections) -> Dict[str, List[BaseItem]]:
        """Apply the filters to every collection, keyed as given."""
        return {
            name: self.apply_filters(items, collection_item_type(name))
            for name, items in collections.items()
        }

    def available_tags(self, collections: Collections) -> List[str]:
        return extract_all_tags(collections)

    def tag_stats(self, collections: Collections) -> Dict[str, TagStats]:
        return {
            name: get_tag_stats(items, collection_item_type(name))
            for name, items in collections.items()
        }

    def export_state(self, collections: Collections) -> Dict[str, Any]:
        """Snapshot of filters, vocabulary and filter efficiency."""
        collections = {name: list(items) for name, items in collections.items()}
        total = sum(len(items) for items in collections.values())
        filtered = sum(len(items) for items in self.filtered_collections(collections).values())
        efficiency = round(filtered / total * 100, 1) if total else 0
        return {
            "timestamp": datetime.now().isoformat(),
            "filters": self.filters.to_payload(),
            "availableTags": self.available_tags(collections),
            "stats": {
                "totalItems": total,
                "filteredItems": filtered,
                "efficiency": efficiency,
            },
        }

    def import_state(self, payload: Any) -> bool:
        """Load filters from an ``export_state`` payload."""
        if not isinstance(payload, dict) or not isinstance(payload.get("filters"), dict):
            return False
        self.filters = validate_filters(payload["filters"])
        self._save_preferences()
        return True
