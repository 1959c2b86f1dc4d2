"""Tests for the filter session."""

import asyncio

import pytest

from promptshelf.filter_session import PREFERENCES_KEY, FilterSession
from promptshelf.filters import TagFilterEngine
from promptshelf.models import FilterMode
from promptshelf.storage import MemoryStore, StorageError


class FailingStore(MemoryStore):
    def get(self, key):
        raise StorageError("unreadable")

    def set(self, key, value):
        raise StorageError("read-only")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def session(store):
    return FilterSession(TagFilterEngine(), store)


@pytest.fixture
def library():
    return {
        "templates": [
            {"id": "t1", "name": "Readme", "snippetTags": ["docs"], "category": "writing", "favorite": True},
            {"id": "t2", "name": "Review", "snippetTags": ["review"], "content": "Check {code}"},
        ],
        "workflows": [
            {"id": "w1", "name": "Release", "snippetTags": ["docs", "release"]},
        ],
        "snippets": [
            {"id": "s1", "name": "Docstring", "tags": ["docs", "python"], "content": "def f(): ..."},
        ],
    }


def test_starts_with_defaults(session):
    assert session.filters.selected_tags == []
    assert session.filters.filter_mode is FilterMode.OR
    assert not session.has_active_filters


def test_tag_operations(session):
    session.add_tag("docs")
    session.add_tag("docs")
    session.add_tag("python")
    assert session.filters.selected_tags == ["docs", "python"]

    session.toggle_tag("docs")
    assert session.filters.selected_tags == ["python"]
    session.toggle_tag("docs")
    assert session.filters.selected_tags == ["python", "docs"]

    session.remove_tag("python")
    assert session.filters.selected_tags == ["docs"]
    assert session.has_active_filters

    session.clear_tag_filters()
    assert session.filters.selected_tags == []


def test_setters_normalize(session):
    session.set_filter_mode("and")
    session.set_category("")
    session.set_type("snippets")
    session.set_favorite_only(1)
    session.set_has_content(True)

    filters = session.filters
    assert filters.filter_mode is FilterMode.AND
    assert filters.category == "all"
    assert filters.type == "snippets"
    assert filters.favorite_only is True
    assert filters.has_content is True


def test_preferences_persist(store):
    FilterSession(TagFilterEngine(), store).update(selectedTags=["docs"], filterMode="AND")

    assert store.get(PREFERENCES_KEY)["selectedTags"] == ["docs"]
    restored = FilterSession(TagFilterEngine(), store)
    assert restored.filters.selected_tags == ["docs"]
    assert restored.filters.filter_mode is FilterMode.AND


def test_persist_disabled(store):
    FilterSession(TagFilterEngine(), store, persist=False).add_tag("docs")
    assert store.get(PREFERENCES_KEY) is None


def test_corrupted_preferences_use_defaults(store):
    store.set_raw(PREFERENCES_KEY, "{{")
    session = FilterSession(TagFilterEngine(), store)
    assert session.filters.selected_tags == []


def test_failing_store_still_updates_in_memory():
    session = FilterSession(TagFilterEngine(), FailingStore())
    session.add_tag("docs")
    assert session.filters.selected_tags == ["docs"]


def test_clear_all_filters_clears_cache(session, library):
    session.update(selectedTags=["docs"], category="writing", favoriteOnly=True)
    session.apply_filters(library["templates"], "templates")
    assert len(session.engine.cache) == 1

    session.clear_all_filters()
    assert not session.has_active_filters
    assert len(session.engine.cache) == 0


def test_apply_filters(session, library):
    assert session.apply_filters([], "templates") == []
    assert session.apply_filters(None, "templates") == []

    session.set_selected_tags(["docs"])
    result = session.filtered_collections(library)
    assert [i.id for i in result["templates"]] == ["t1"]
    assert [i.id for i in result["workflows"]] == ["w1"]
    assert [i.id for i in result["snippets"]] == ["s1"]

    session.set_type("snippet")
    result = session.filtered_collections(library)
    assert result["templates"] == []
    assert [i.id for i in result["snippets"]] == ["s1"]


def test_apply_filters_uses_progressive_path_for_large_inputs(store):
    items = [{"id": str(i), "tags": ["even" if i % 2 == 0 else "odd"]} for i in range(60)]
    session = FilterSession(TagFilterEngine(), store, batch_size=7, progressive_threshold=50, optimized_threshold=10)
    session.set_selected_tags(["even"])

    result = session.apply_filters(items, "snippet")
    assert [i.id for i in result] == [str(i) for i in range(0, 60, 2)]


def test_apply_filters_async(store):
    items = [{"id": str(i), "tags": ["a"] if i % 3 == 0 else []} for i in range(120)]
    session = FilterSession(TagFilterEngine(), store, batch_size=25, progressive_threshold=100)
    session.set_selected_tags(["a"])

    result = asyncio.run(session.apply_filters_async(items, "snippet"))
    assert [i.id for i in result] == [str(i) for i in range(0, 120, 3)]

    small = asyncio.run(session.apply_filters_async(items[:9], "snippet"))
    assert [i.id for i in small] == ["0", "3", "6"]


def test_tag_views(session, library):
    assert session.available_tags(library) == ["docs", "python", "release", "review"]
    stats = session.tag_stats(library)
    assert stats["templates"].total_items == 2
    assert stats["snippets"].most_used_tags[0].tag == "docs"


def test_export_and_import_state(session, library, store):
    session.set_selected_tags(["docs"])
    state = session.export_state(library)

    assert state["filters"]["selectedTags"] == ["docs"]
    assert state["availableTags"] == ["docs", "python", "release", "review"]
    assert state["stats"] == {"totalItems": 5, "filteredItems": 3, "efficiency": 60.0}

    other = FilterSession(TagFilterEngine(), MemoryStore())
    assert other.import_state(state)
    assert other.filters == session.filters
    assert not other.import_state({"filters": "nope"})
    assert not other.import_state(None)


def test_update_accepts_field_names(session):
    session.update(selected_tags=["docs"], favorite_only=True)
    assert session.filters.selected_tags == ["docs"]
    assert session.filters.favorite_only is True
