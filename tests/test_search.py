"""Tests for the search engine facade."""

import asyncio

import pytest

from promptshelf.config import Settings
from promptshelf.models import TagFrequencyRecord
from promptshelf.search import SearchEngine, get_search_engine, reset_search_engine
from promptshelf.storage import MemoryStore


@pytest.fixture
def engine(tmp_path):
    return SearchEngine(Settings(storage_path=tmp_path / "storage.json", history_capacity=3))


@pytest.fixture
def library():
    return {
        "templates": [
            {"id": "t1", "name": "Generate README", "snippetTags": ["docs"]},
            {"id": "t2", "name": "Readme helper", "snippetTags": ["docs", "dev"]},
        ],
        "snippets": [
            {"id": "s1", "name": "Read file", "tags": ["python"], "language": "python"},
        ],
    }


def test_perform_advanced_search(engine, library):
    results = engine.perform_advanced_search(library["templates"], "read", "template")
    assert [r.id for r in results] == ["t2", "t1"]
    assert engine.history.get_history() == []


def test_search_records_history(engine, library):
    engine.perform_advanced_search(library["templates"], "read", "template", record=True)
    engine.perform_advanced_search(library["templates"], "  ", "template", record=True)
    assert engine.history.get_history() == ["read"]


def test_search_uses_settings_defaults(tmp_path, library):
    strict = SearchEngine(Settings(storage_path=tmp_path / "s.json", min_score=2.5, max_results=1))
    results = strict.perform_advanced_search(library["templates"], "read", "template")
    assert [r.id for r in results] == ["t2"]

    relaxed = strict.perform_advanced_search(library["templates"], "read", "template", min_score=0, max_results=5)
    assert len(relaxed) == 2


def test_search_collections_merges_kinds(engine, library):
    results = engine.search_collections(library, "read")
    assert {r.item.item_type.value for r in results} == {"template", "snippet"}
    # Equal scores keep collection order
    assert [r.id for r in results] == ["t2", "s1", "t1"]


def test_filters_go_through_session(engine, library):
    engine.session.set_selected_tags(["dev"])
    assert [i.id for i in engine.apply_filters(library["templates"], "templates")] == ["t2"]
    assert engine.filters.selected_tags == ["dev"]

    explicit = engine.filter_items(library["templates"], {"selectedTags": ["docs"]}, "template")
    assert len(explicit) == 2
    assert engine.filters.selected_tags == ["dev"]


def test_filter_results_follow_the_whole_config(engine):
    items = [
        {"id": "A", "favorite": True, "category": "x"},
        {"id": "B", "category": "x", "tags": ["t"]},
        {"id": "C", "favorite": True, "category": "y"},
    ]
    by_category = engine.filter_items(items, {"category": "x", "selectedTags": ["t"]}, "snippet")
    assert [i.id for i in by_category] == ["B"]
    assert engine.filter_items(items, {"favoriteOnly": True, "selectedTags": ["t"]}, "snippet") == []

    engine.session.update(category="x", selected_tags=["t"])
    assert [i.id for i in engine.apply_filters(items, "snippets")] == ["B"]
    engine.session.update(category="all", favorite_only=True)
    assert engine.apply_filters(items, "snippets") == []


def test_apply_filters_async(engine, library):
    result = asyncio.run(engine.apply_filters_async(library["templates"], "templates"))
    assert len(result) == 2


def test_tag_helpers(engine, library):
    records = engine.get_cached_tag_frequency(library["templates"], "template")
    assert records[0] == TagFrequencyRecord(tag="docs", count=2, percentage=100)

    assert [r.tag for r in engine.filter_tag_suggestions(records, "de")] == ["dev"]
    assert engine.extract_all_tags(library) == ["dev", "docs", "python"]


def test_suggest(engine, library):
    assert engine.suggest(library["templates"], "rea", item_type="template") == [
        "readme",
        "Readme helper",
    ]


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback

    def start(self):
        pass

    def cancel(self):
        pass

    def fire(self):
        self.callback()


class FakeTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer


def test_debounced_search_ranks_only_the_last_query(engine, library):
    timers = FakeTimerFactory()
    received = []
    search = engine.debounced_search(
        library["templates"],
        lambda query, results: received.append((query, [r.id for r in results])),
        "template",
        debounce_ms=50,
        timer_factory=timers,
    )

    search.update_query("zzz")
    search.update_query("read")
    assert search.is_searching
    assert timers.timers[0].delay == 0.05

    timers.timers[0].fire()
    assert received == []

    timers.timers[1].fire()
    assert received == [("read", ["t2", "t1"])]
    assert not search.is_searching


def test_debounced_search_cancel_and_close(engine, library):
    timers = FakeTimerFactory()
    received = []
    search = engine.debounced_search(
        library["templates"], lambda q, r: received.append(q), "template", timer_factory=timers
    )

    search.update_query("read")
    search.cancel()
    timers.timers[-1].fire()
    assert search.flush() is False

    search.update_query("readme")
    search.close()
    timers.timers[-1].fire()
    assert received == []
    assert search.update_query("read") is False
    assert search.update_query("") is False


def test_debounced_search_blank_query_clears_results(engine, library):
    timers = FakeTimerFactory()
    received = []
    search = engine.debounced_search(
        library["templates"], lambda q, r: received.append((q, r)), "template", record=True, timer_factory=timers
    )

    search.update_query("read")
    search.update_query("   ")
    timers.timers[-1].fire()
    assert received == [("   ", [])]

    search.update_query("read")
    assert search.flush() is True
    assert received[-1][0] == "read"
    assert engine.history.get_history() == ["read"]


def test_clear_caches_and_stats(engine, library):
    engine.filter_items(library["templates"], {"selectedTags": ["docs"]}, "template")
    engine.get_cached_tag_frequency(library["templates"], "template")
    engine.history.add_search("docs")

    stats = engine.stats()
    assert stats["cachedFilters"] == 1
    assert stats["historySize"] == 1

    engine.clear_caches()
    assert engine.stats()["cachedFilters"] == 0


def test_custom_store(library):
    store = MemoryStore()
    engine = SearchEngine(Settings(), store=store)
    engine.history.add_search("memory")
    assert store.get("promptshelf-search-history") == ["memory"]


def test_global_instance(monkeypatch, tmp_path):
    monkeypatch.setenv("PROMPTSHELF_STORAGE", str(tmp_path / "global.json"))
    reset_search_engine()
    try:
        first = get_search_engine()
        assert get_search_engine() is first
        assert first.settings.storage_path == tmp_path / "global.json"
    finally:
        reset_search_engine()
