"""Relevance scoring - fuzzy, field-weighted matching of items against a query.

Scores are computed per searchable field, weighted by the field's role, and
combined as ``0.7 * best + 0.3 * average`` over the fields that matched.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, NamedTuple, Optional, Union

from rich.markup import escape

from promptshelf.models import (
    BaseItem,
    ItemLike,
    ItemType,
    RankedResult,
    SnippetItem,
    TemplateItem,
    WorkflowItem,
    parse_items,
)

logger = logging.getLogger("promptshelf.scoring")

DEFAULT_MIN_SCORE = 0.1
DEFAULT_MAX_RESULTS = 100

# Weight applied to a field's match score, by the role the field plays
FIELD_WEIGHTS = {
    "name": 3.0,
    "description": 2.0,
    "content": 1.5,
    "tag": 2.0,
    "category": 1.0,
    "variable": 1.0,
    "language": 1.0,
    "step": 1.0,
}

SORT_KEYS = ("relevance", "name", "date")


class SearchField(NamedTuple):
    role: str
    value: str


class HighlightSegments(NamedTuple):
    before: str
    match: str
    after: str


def fuzzy_match(query: str, text: str) -> float:
    """Score how well ``text`` matches ``query``.

    Args:
        query: Search term
        text: Field value to match against

    Returns:
        1.0 for an exact match, 0.9 for a prefix, 0.7 for a substring;
        otherwise an ordered-subsequence score (at least 0.3), or 0.0 when
        the query characters do not all appear in order.
    """
    if not query or not text:
        return 0.0

    term = query.lower()
    target = text.lower()

    if target == term:
        return 1.0
    if target.startswith(term):
        return 0.9
    if term in target:
        return 0.7

    score = 0.0
    term_index = 0
    for char in target:
        if term_index >= len(term):
            break
        if char == term[term_index]:
            score += 1 / len(target)
            term_index += 1

    if term_index == len(term):
        return max(score, 0.3)
    return 0.0


def get_search_fields(item: BaseItem) -> List[SearchField]:
    """Extract the searchable fields of an item, tagged with their role."""
    fields = [
        SearchField("name", item.name),
        SearchField("description", item.description),
        SearchField("category", item.category),
    ]
    fields.extend(SearchField("tag", tag) for tag in item.tags)

    if isinstance(item, TemplateItem):
        fields.append(SearchField("content", item.content))
        fields.extend(SearchField("variable", var) for var in item.variables)
    elif isinstance(item, WorkflowItem):
        fields.extend(SearchField("step", step.name) for step in item.steps)
        fields.extend(SearchField("step", step.description) for step in item.steps)
    elif isinstance(item, SnippetItem):
        fields.append(SearchField("content", item.content))
        fields.append(SearchField("language", item.language))

    return fields


def calculate_relevance_score(item: BaseItem, query: str) -> float:
    """Combined relevance of ``item`` for ``query``.

    An empty query matches everything with score 1.0. The result is not
    clamped to 1.0: a perfect name match alone contributes 3.0.
    """
    if not query:
        return 1.0

    weighted: List[float] = []
    for field in get_search_fields(item):
        if not field.value:
            continue
        score = fuzzy_match(query, field.value)
        if score > 0:
            weighted.append(score * FIELD_WEIGHTS.get(field.role, 1.0))

    if not weighted:
        return 0.0
    average = sum(weighted) / len(weighted)
    return max(weighted) * 0.7 + average * 0.3


def _parse_timestamp(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def _recency(result: RankedResult) -> float:
    stamp = _parse_timestamp(result.item.last_used) or _parse_timestamp(result.item.created_at)
    return stamp if stamp is not None else float("-inf")


def rank_items(
    items: Iterable[ItemLike],
    query: str,
    item_type: Union[ItemType, str, None] = None,
    *,
    min_score: float = DEFAULT_MIN_SCORE,
    max_results: int = DEFAULT_MAX_RESULTS,
    sort_by: str = "relevance",
) -> List[RankedResult]:
    """Rank items against a free-text query.

    Args:
        items: Items (or raw mappings) to search
        query: Search term; blank returns every item unfiltered with score 1.0
        item_type: Kind assumed for raw mappings that do not carry one
        min_score: Results scoring below this are dropped
        max_results: Maximum number of results
        sort_by: ``relevance`` (desc), ``name`` (asc) or ``date`` (newest first)

    Returns:
        Ranked results; ties keep their input order
    """
    parsed = parse_items(items, item_type)
    query = (query or "").strip()
    if not query:
        return [RankedResult(item, 1.0) for item in parsed]

    results = []
    for item in parsed:
        score = calculate_relevance_score(item, query)
        if score >= min_score:
            results.append(RankedResult(item, score))

    if sort_by == "relevance":
        results.sort(key=lambda r: r.relevance_score, reverse=True)
    elif sort_by == "name":
        results.sort(key=lambda r: r.item.name.casefold())
    elif sort_by == "date":
        results.sort(key=_recency, reverse=True)
    else:
        logger.debug("Unknown sort key %r, keeping input order", sort_by)

    return results[:max_results]


def highlight_match(text: str, query: str) -> Optional[HighlightSegments]:
    """Split ``text`` around the first case-insensitive occurrence of ``query``.

    Fuzzy (non-contiguous) matches are not highlighted.
    """
    if not text or not query:
        return None
    index = text.lower().find(query.lower())
    if index == -1:
        return None
    end = index + len(query)
    return HighlightSegments(text[:index], text[index:end], text[end:])


def highlight_search_term(text: str, query: str, style: str = "bold yellow") -> str:
    """Rich markup for ``text`` with the first occurrence of ``query`` styled.

    Uses the same match as ``highlight_match``; everything else is escaped.
    """
    segments = highlight_match(text, query)
    if segments is None:
        return escape(text or "")
    before, match, after = segments
    return f"{escape(before)}[{style}]{escape(match)}[/{style}]{escape(after)}"
