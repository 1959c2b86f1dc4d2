"""Autocomplete suggestions for the search box and the tag picker."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from promptshelf.debounce import Debouncer, TimerFactory, thread_timer
from promptshelf.models import ItemLike, ItemType, TagFrequencyRecord, parse_items
from promptshelf.scoring import HighlightSegments, get_search_fields, highlight_match
from promptshelf.tag_analytics import TagAnalyticsCache, get_fallback_tags

logger = logging.getLogger("promptshelf.suggestions")

MIN_QUERY_LENGTH = 2
DEFAULT_MAX_SUGGESTIONS = 8
DEFAULT_MAX_TAG_SUGGESTIONS = 15

# Base scores for tag matches; usage frequency is added on top
EXACT_SCORE = 1000
PREFIX_SCORE = 800
SUBSTRING_SCORE = 400
FUZZY_SCORE = 200


def generate_search_suggestions(
    items: Iterable[ItemLike],
    partial: str,
    max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
    item_type: Union[ItemType, str, None] = None,
) -> List[str]:
    """Suggest completions for a partially typed query.

    Collects lowercase words that start with (and are longer than) the
    partial term, plus whole field values that start with it.

    Args:
        items: Items whose searchable fields feed the suggestions
        partial: What the user has typed so far (at least two characters)
        max_suggestions: Maximum number of suggestions
        item_type: Kind assumed for raw mappings

    Returns:
        De-duplicated suggestions in the order they were found
    """
    if not partial or len(partial) < MIN_QUERY_LENGTH:
        return []

    partial_lower = partial.lower()
    suggestions: Dict[str, None] = {}

    for item in parse_items(items, item_type):
        for field in get_search_fields(item):
            value_lower = field.value.lower()
            if not value_lower or partial_lower not in value_lower:
                continue
            for word in value_lower.split():
                if word.startswith(partial_lower) and len(word) > len(partial_lower):
                    suggestions.setdefault(word, None)
            if value_lower.startswith(partial_lower):
                suggestions.setdefault(field.value, None)

    return list(suggestions)[:max_suggestions]


def tag_fuzzy_match(text: str, query: str) -> bool:
    """Typo-tolerant ordered match.

    Allows skipping up to ``len(query) // 3`` characters of ``text`` while
    every query character is matched in order.
    """
    if len(query) < MIN_QUERY_LENGTH:
        return False

    max_mistakes = len(query) // 3
    mistakes = 0
    query_index = 0
    text_index = 0

    while query_index < len(query) and text_index < len(text):
        if query[query_index] == text[text_index]:
            query_index += 1
        else:
            mistakes += 1
            if mistakes > max_mistakes:
                return False
        text_index += 1

    return query_index == len(query)


def calculate_tag_score(tag: str, query: str, frequency: int) -> int:
    """Relevance of ``tag`` for ``query``; 0 means no match."""
    if not tag or not query:
        return 0

    tag_lower = tag.lower()
    query_lower = query.lower()

    if tag_lower == query_lower:
        return EXACT_SCORE + frequency
    if tag_lower.startswith(query_lower):
        return PREFIX_SCORE + frequency
    if query_lower in tag_lower:
        return SUBSTRING_SCORE + frequency
    if tag_fuzzy_match(tag_lower, query_lower):
        return FUZZY_SCORE + frequency
    return 0


def filter_tag_suggestions(
    records: Sequence[TagFrequencyRecord],
    input_value: Optional[str],
    max_results: int = DEFAULT_MAX_TAG_SUGGESTIONS,
) -> List[TagFrequencyRecord]:
    """Rank tag records against the typed input.

    Blank input returns the most popular tags. Otherwise exact beats prefix
    beats substring beats fuzzy, and more popular tags win within a tier.
    """
    if not input_value or not input_value.strip():
        return list(records[:max_results])

    query = input_value.strip().lower()
    scored = [(calculate_tag_score(r.tag, query, r.count), r) for r in records]
    scored = [pair for pair in scored if pair[0] > 0]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [record for _, record in scored[:max_results]]


class TagSuggester:
    """Tag-picker suggestions over a collection's tag frequencies.

    Already-selected tags are excluded (case-insensitively). Typed input is
    debounced through :class:`Debouncer`; call ``close`` when the picker goes
    away so no callback fires afterwards.
    """

    def __init__(
        self,
        items: Iterable[ItemLike],
        analytics: TagAnalyticsCache,
        *,
        current_tags: Optional[Iterable[str]] = None,
        item_type: Union[ItemType, str, None] = None,
        max_suggestions: int = DEFAULT_MAX_TAG_SUGGESTIONS,
        debounce_ms: int = 300,
        min_input_length: int = 0,
        enable_fallback: bool = True,
        timer_factory: TimerFactory = thread_timer,
    ):
        self.items = parse_items(items, item_type)
        self.analytics = analytics
        self.current_tags = list(current_tags or [])
        self.max_suggestions = max_suggestions
        self.min_input_length = min_input_length
        self.enable_fallback = enable_fallback
        self.suggestions: List[TagFrequencyRecord] = []
        self._callback: Optional[Callable[[List[TagFrequencyRecord]], Any]] = None
        self._debouncer = Debouncer(self._apply_input, debounce_ms, timer_factory)
        self.tag_frequency_data = self._load_frequency_data()

    def _load_frequency_data(self) -> List[TagFrequencyRecord]:
        if not self.items:
            return get_fallback_tags() if self.enable_fallback else []
        return self.analytics.get_cached_tag_frequency(self.items)

    @property
    def available_tags(self) -> List[TagFrequencyRecord]:
        selected = {tag.lower() for tag in self.current_tags}
        return [r for r in self.tag_frequency_data if r.tag.lower() not in selected]

    @property
    def is_loading(self) -> bool:
        return self._debouncer.pending

    def suggestions_for(self, value: Optional[str]) -> List[TagFrequencyRecord]:
        """Suggestions for ``value`` right now, bypassing the debounce."""
        available = self.available_tags
        if not value or len(value) < self.min_input_length:
            return available[: self.max_suggestions]
        return filter_tag_suggestions(available, value, self.max_suggestions)

    def update_input(
        self, value: str, callback: Optional[Callable[[List[TagFrequencyRecord]], Any]] = None
    ) -> bool:
        """Debounced input change; ``callback`` receives the new suggestions."""
        if callback is not None:
            self._callback = callback
        return self._debouncer.schedule(value)

    def _apply_input(self, value: str) -> None:
        self.suggestions = self.suggestions_for(value)
        if self._callback is not None:
            self._callback(self.suggestions)

    def flush(self) -> bool:
        return self._debouncer.flush()

    def set_current_tags(self, tags: Iterable[str]) -> None:
        self.current_tags = list(tags)

    def is_tag_already_selected(self, tag: str) -> bool:
        tag_lower = tag.lower()
        return any(current.lower() == tag_lower for current in self.current_tags)

    def get_tag_frequency(self, tag: str) -> int:
        tag_lower = tag.lower()
        for record in self.tag_frequency_data:
            if record.tag.lower() == tag_lower:
                return record.count
        return 0

    def highlight_match(self, text: str, query: str) -> Optional[HighlightSegments]:
        return highlight_match(text, query)

    def refresh_cache(self) -> None:
        """Forget cached analytics and recompute from the current items."""
        self.analytics.clear()
        self.tag_frequency_data = self._load_frequency_data()

    def stats(self) -> Dict[str, Any]:
        return {
            "totalUniqueTags": len(self.tag_frequency_data),
            "availableForSelection": len(self.available_tags),
            "currentSuggestions": len(self.suggestions),
            "isLoading": self.is_loading,
        }

    def close(self) -> None:
        self._debouncer.close()
        self._callback = None


class SearchSuggester:
    """Debounced search-box suggestions."""

    def __init__(
        self,
        items: Iterable[ItemLike],
        on_suggestions: Callable[[List[str]], Any],
        *,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
        debounce_ms: int = 200,
        item_type: Union[ItemType, str, None] = None,
        timer_factory: TimerFactory = thread_timer,
    ):
        self.items = parse_items(items, item_type)
        self.on_suggestions = on_suggestions
        self.max_suggestions = max_suggestions
        self._debouncer = Debouncer(self._compute, debounce_ms, timer_factory)

    def _compute(self, partial: str) -> None:
        self.on_suggestions(generate_search_suggestions(self.items, partial, self.max_suggestions))

    def update_input(self, partial: str) -> bool:
        return self._debouncer.schedule(partial)

    def flush(self) -> bool:
        return self._debouncer.flush()

    def cancel(self) -> None:
        self._debouncer.cancel()

    def close(self) -> None:
        self._debouncer.close()
