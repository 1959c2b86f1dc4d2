"""Tag filtering and the multi-criteria filter pipeline.

Stages run cheapest and most selective first: type, favorite, content,
category, and finally the tag-set checks, whose results are LRU-cached.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Hashable, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from promptshelf.cache import DEFAULT_CAPACITY, LRUCache
from promptshelf.models import (
    BaseItem,
    FilterConfig,
    FilterMode,
    ItemLike,
    ItemType,
    parse_items,
)

logger = logging.getLogger("promptshelf.filters")

OPTIMIZED_THRESHOLD = 100
PROGRESSIVE_THRESHOLD = 10_000
DEFAULT_BATCH_SIZE = 1000


def _type_label(item_type: Union[ItemType, str, None]) -> str:
    kind = ItemType.coerce(item_type)
    return kind.value if kind else "mixed"


CacheKey = Tuple[Any, ...]


def make_cache_key(
    items: Sequence[BaseItem],
    selected_tags: Iterable[str],
    mode: FilterMode,
    item_type: Union[ItemType, str, None],
    scope: Hashable = None,
) -> CacheKey:
    """Cache key from an approximate collection signature and the filter.

    The signature is only the size plus the first item's id, so an in-place
    edit that keeps both returns stale results until the cache is cleared.
    ``scope`` identifies the stages that produced ``items``; two differently
    narrowed lists can share a size and first id.
    """
    first_id = items[0].id if items else None
    tags = tuple(sorted(selected_tags))
    return (len(items), first_id, tags, FilterMode(mode).value, _type_label(item_type), scope)


def matches_tags(item: BaseItem, selected_tags: Sequence[str], mode: FilterMode) -> bool:
    item_tags = set(item.tags)
    if mode == FilterMode.AND:
        return all(tag in item_tags for tag in selected_tags)
    return any(tag in item_tags for tag in selected_tags)


class TagFilterEngine:
    """Filters collections by selected tags under AND/OR semantics."""

    def __init__(self, cache: Optional[LRUCache] = None, capacity: int = DEFAULT_CAPACITY):
        self.cache = cache if cache is not None else LRUCache(capacity)

    def filter_by_tags(
        self,
        items: Sequence[ItemLike],
        selected_tags: Optional[Iterable[str]],
        mode: Union[FilterMode, str] = FilterMode.OR,
        item_type: Union[ItemType, str, None] = None,
        scope: Hashable = None,
    ) -> List[BaseItem]:
        """Keep the items carrying all (AND) or any (OR) of ``selected_tags``.

        Input order is preserved. With no tags selected the parsed input is
        returned unchanged. Callers that narrow ``items`` first pass a
        ``scope`` naming that narrowing, which becomes part of the cache key.
        Cached lists are shared between callers and must not be mutated.
        """
        parsed = parse_items(items, item_type)
        tags = [t.strip() for t in (selected_tags or []) if isinstance(t, str) and t.strip()]
        if not tags:
            return parsed

        mode = FilterConfig(filter_mode=mode).filter_mode
        key = make_cache_key(parsed, tags, mode, item_type, scope)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Tag filter cache hit: %s", key)
            return cached

        result = [item for item in parsed if matches_tags(item, tags, mode)]
        self.cache.put(key, result)
        return result

    def clear_cache(self) -> None:
        self.cache.clear()


def _type_mismatch(config: FilterConfig, item_type: Union[ItemType, str, None]) -> bool:
    """True when the config asks for a different kind than this collection holds."""
    wanted = ItemType.coerce(config.type)
    current = ItemType.coerce(item_type)
    return wanted is not None and current is not None and wanted != current


def _type_predicate(config: FilterConfig, item_type: Union[ItemType, str, None]):
    wanted = ItemType.coerce(config.type)
    if config.type == "all" or wanted is None or ItemType.coerce(item_type) is not None:
        return None
    # Mixed collection: keep only the requested kind
    return lambda item: item.item_type == wanted


def _stage_scope(config: FilterConfig) -> Tuple[str, bool, bool, str]:
    """The settings of the stages that run before the tag stage."""
    return (config.type, config.favorite_only, config.has_content, config.category)


def _stage_predicates(config: FilterConfig, item_type: Union[ItemType, str, None]) -> list:
    predicates = []
    type_predicate = _type_predicate(config, item_type)
    if type_predicate is not None:
        predicates.append(type_predicate)
    if config.favorite_only:
        predicates.append(lambda item: item.favorite)
    if config.has_content:
        predicates.append(lambda item: item.has_content)
    if config.category != "all":
        category = config.category
        predicates.append(lambda item: item.category == category)
    return predicates


def apply_complex_filters(
    items: Sequence[ItemLike],
    config: Union[FilterConfig, dict, None],
    item_type: Union[ItemType, str, None],
    engine: TagFilterEngine,
) -> List[BaseItem]:
    """Run the type, favorite, content, category and tag stages in order.

    Args:
        items: Items to filter
        config: Filter configuration (raw dicts are validated)
        item_type: Kind of the collection, or None for a mixed collection
        engine: Tag filter engine used for the last stage

    Returns:
        Filtered items in input order; empty when the config's type names a
        different kind than ``item_type``
    """
    config = validate_filters(config)
    if _type_mismatch(config, item_type):
        return []

    result = parse_items(items, item_type)
    for predicate in _stage_predicates(config, item_type):
        result = [item for item in result if predicate(item)]

    if config.selected_tags:
        result = engine.filter_by_tags(
            result, config.selected_tags, config.filter_mode, item_type, scope=_stage_scope(config)
        )
    return result


def optimized_filter(
    items: Sequence[ItemLike],
    config: Union[FilterConfig, dict, None],
    item_type: Union[ItemType, str, None],
    engine: TagFilterEngine,
    *,
    progressive: bool = False,
    batch_size: int = DEFAULT_BATCH_SIZE,
    optimized_threshold: int = OPTIMIZED_THRESHOLD,
    progressive_threshold: int = PROGRESSIVE_THRESHOLD,
) -> List[BaseItem]:
    """Filter with a strategy picked by collection size.

    Small collections use the plain pipeline, very large ones (with
    ``progressive``) are processed in batches, and everything in between
    runs over an index-tagged working copy. All strategies return the same
    items in the same order.
    """
    config = validate_filters(config)
    parsed = parse_items(items, item_type)

    if len(parsed) < optimized_threshold:
        return apply_complex_filters(parsed, config, item_type, engine)

    if progressive and len(parsed) > progressive_threshold:
        from promptshelf.progressive import ProgressiveFilterRunner

        runner = ProgressiveFilterRunner(engine, batch_size=batch_size)
        return runner.run_sync(parsed, config, item_type)

    if _type_mismatch(config, item_type):
        return []

    indexed: List[Tuple[int, BaseItem]] = list(enumerate(parsed))
    for predicate in _stage_predicates(config, item_type):
        indexed = [(index, item) for index, item in indexed if predicate(item)]

    result = [item for _, item in indexed]
    if config.selected_tags:
        result = engine.filter_by_tags(
            result, config.selected_tags, config.filter_mode, item_type, scope=_stage_scope(config)
        )
    return result


def validate_filters(raw: Union[FilterConfig, dict, None]) -> FilterConfig:
    """Normalize a raw filter mapping into a FilterConfig."""
    if isinstance(raw, FilterConfig):
        return raw
    if not isinstance(raw, dict):
        return FilterConfig()
    return FilterConfig.model_validate(raw)


def export_filters(config: Union[FilterConfig, dict, None]) -> str:
    """Serialize filters for persistence or sharing."""
    return json.dumps(validate_filters(config).to_payload(), indent=2)


def import_filters(text: str) -> FilterConfig:
    """Parse exported filters; anything unreadable yields the defaults."""
    try:
        data: Any = json.loads(text)
        return validate_filters(data)
    except (TypeError, ValueError, ValidationError) as exc:
        logger.warning("Error importing filters: %s", exc)
        return FilterConfig()
