"""Tag analytics - usage frequency, vocabulary extraction and tag statistics."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from promptshelf.models import ItemLike, ItemType, TagFrequencyRecord, parse_items
from promptshelf.storage import KeyValueStore, StorageError

logger = logging.getLogger("promptshelf.tag_analytics")

CACHE_KEY = "promptshelf-tag-analytics"
CACHE_TTL_SECONDS = 5 * 60
HASH_LENGTH = 16

FALLBACK_TAGS = ["development", "formatting", "quality", "accessibility", "technical"]

# Collection names understood by extract_all_tags, in merge order
COLLECTION_TYPES = {
    "templates": ItemType.TEMPLATE,
    "workflows": ItemType.WORKFLOW,
    "snippets": ItemType.SNIPPET,
}


def analyze_tag_frequency(
    items: Iterable[ItemLike], item_type: Union[ItemType, str, None] = None
) -> List[TagFrequencyRecord]:
    """Count normalized (trimmed, lowercase) tag usage across a collection.

    Returns:
        Records sorted by count, most used first
    """
    parsed = parse_items(items, item_type)
    if not parsed:
        return []

    counts: Counter = Counter()
    for item in parsed:
        counts.update(tag.lower() for tag in item.tags)

    total = len(parsed)
    return [
        TagFrequencyRecord(tag=tag, count=count, percentage=round(count / total * 100))
        for tag, count in counts.most_common()
    ]


def generate_collection_hash(items: Iterable[ItemLike], item_type=None) -> str:
    """Digest of ids, update stamps and tags, used to invalidate cached analytics."""
    parts = [
        f"{item.id}-{item.updated_at}-{json.dumps(item.tags)}"
        for item in parse_items(items, item_type)
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:HASH_LENGTH]


class TagAnalyticsCache:
    """Persisted tag-frequency cache guarded by a collection hash and a TTL.

    Storage problems never reach the caller: they are logged and the data is
    recomputed.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore],
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def _load(self, current_hash: str) -> Optional[List[TagFrequencyRecord]]:
        if self.store is None:
            return None
        try:
            cached = self.store.get(CACHE_KEY)
            if not cached:
                return None
            timestamp = float(cached["timestamp"])
            if self.clock() - timestamp >= self.ttl_seconds:
                return None
            if cached["snippetHash"] != current_hash:
                return None
            return [TagFrequencyRecord.model_validate(r) for r in cached["data"]]
        except (StorageError, KeyError, TypeError, ValueError, ValidationError) as exc:
            logger.warning("Failed to load cached tag analytics: %s", exc)
            return None

    def _save(self, records: List[TagFrequencyRecord], collection_hash: str) -> None:
        if self.store is None:
            return
        payload = {
            "data": [r.model_dump() for r in records],
            "timestamp": self.clock(),
            "snippetHash": collection_hash,
        }
        try:
            self.store.set(CACHE_KEY, payload)
        except StorageError as exc:
            logger.warning("Failed to cache tag analytics: %s", exc)

    def get_cached_tag_frequency(
        self, items: Iterable[ItemLike], item_type: Union[ItemType, str, None] = None
    ) -> List[TagFrequencyRecord]:
        """Return tag frequency data, reusing the stored copy while it is valid."""
        parsed = parse_items(items, item_type)
        current_hash = generate_collection_hash(parsed)

        cached = self._load(current_hash)
        if cached is not None:
            logger.debug("Tag analytics cache hit (%s)", current_hash)
            return cached

        fresh = analyze_tag_frequency(parsed)
        self._save(fresh, current_hash)
        return fresh

    def clear(self) -> None:
        """Drop the stored analytics (e.g. after a bulk import)."""
        if self.store is None:
            return
        try:
            self.store.remove(CACHE_KEY)
        except StorageError as exc:
            logger.warning("Failed to clear tag analytics cache: %s", exc)


def extract_tags(items: Iterable[ItemLike], item_type: Union[ItemType, str, None] = None) -> List[str]:
    """Unique trimmed tags of a collection, alphabetically sorted."""
    tags = set()
    for item in parse_items(items, item_type):
        tags.update(item.tags)
    return sorted(tags)


def extract_all_tags(collections: Mapping[str, Iterable[ItemLike]]) -> List[str]:
    """Merge the tag vocabularies of ``templates``, ``workflows`` and ``snippets``.

    Args:
        collections: Mapping of collection name to items

    Returns:
        Alphabetically sorted, de-duplicated tags
    """
    all_tags = set()
    for name, item_type in COLLECTION_TYPES.items():
        items = collections.get(name)
        if items:
            all_tags.update(extract_tags(items, item_type))
    return sorted(all_tags)


@dataclass
class TagUsage:
    tag: str
    count: int
    percentage: float


@dataclass
class TagStats:
    """Tag usage summary for one collection."""

    total_tags: int
    total_items: int
    most_used_tags: List[TagUsage] = field(default_factory=list)
    all_tags: List[TagUsage] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "totalTags": self.total_tags,
            "totalItems": self.total_items,
            "mostUsedTags": [vars(t) for t in self.most_used_tags],
            "allTags": [vars(t) for t in self.all_tags],
        }


def get_tag_stats(items: Iterable[ItemLike], item_type: Union[ItemType, str, None] = None) -> TagStats:
    """Case-preserving tag counts with one-decimal percentages."""
    parsed = parse_items(items, item_type)
    counts: Counter = Counter()
    for item in parsed:
        counts.update(item.tags)

    total = len(parsed)
    usage = [
        TagUsage(tag=tag, count=count, percentage=round(count / total * 100, 1))
        for tag, count in counts.most_common()
    ]
    return TagStats(
        total_tags=len(counts),
        total_items=total,
        most_used_tags=usage[:10],
        all_tags=usage,
    )


def get_fallback_tags() -> List[TagFrequencyRecord]:
    """Starter vocabulary offered when a library has no tags yet."""
    return [TagFrequencyRecord(tag=tag, count=0, percentage=0) for tag in FALLBACK_TAGS]


def get_suggested_tags(content: str, existing_tags: Iterable[str], limit: int = 5) -> List[str]:
    """Suggest known tags for a piece of content.

    Tags appearing verbatim in the content rank above tags that only share a
    partial word with it.
    """
    tags = list(existing_tags or [])
    if not content or not tags:
        return []

    content_lower = content.lower()
    words = content_lower.split()
    high: List[str] = []
    medium: List[str] = []

    for tag in tags:
        tag_lower = tag.lower()
        if tag_lower in content_lower:
            high.append(tag)
        elif any(tag_lower in word or word in tag_lower for word in words):
            medium.append(tag)

    ordered: List[str] = []
    for tag in high + medium:
        if tag not in ordered:
            ordered.append(tag)
    return ordered[:limit]
