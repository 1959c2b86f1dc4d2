from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from cli.main import app as cli_app
from promptshelf.search import reset_search_engine


runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path, monkeypatch):
    storage = tmp_path / "storage.json"
    monkeypatch.setenv("PROMPTSHELF_STORAGE", str(storage))
    reset_search_engine()
    yield storage
    reset_search_engine()


@pytest.fixture
def library_file(tmp_path):
    path = tmp_path / "library.json"
    path.write_text(
        json.dumps(
            {
                "templates": [
                    {"id": "t1", "name": "Generate README", "snippetTags": ["docs"], "category": "writing"},
                    {"id": "t2", "name": "Readme helper", "snippetTags": ["docs", "dev"], "favorite": True},
                ],
                "workflows": [
                    {"id": "w1", "name": "Release train", "snippetTags": ["release"], "steps": ["Tag", "Publish"]},
                ],
                "snippets": [
                    {"id": "s1", "name": "Parse args", "tags": ["python", "cli"], "content": "argparse"},
                ],
            },
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )
    return path


def test_search_json(library_file):
    result = runner.invoke(cli_app, ["search", "read", "--library", str(library_file), "--json"])
    assert result.exit_code == 0, result.output

    out = json.loads(result.output)
    assert out["query"] == "read"
    assert [r["id"] for r in out["results"]] == ["t2", "t1"]
    assert out["results"][0]["relevanceScore"] == pytest.approx(2.7)


def test_search_records_history(library_file):
    runner.invoke(cli_app, ["search", "read", "--library", str(library_file), "--json"])
    runner.invoke(cli_app, ["search", "parse", "--library", str(library_file), "--no-record"])

    result = runner.invoke(cli_app, ["history", "list", "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == ["read"]


def test_search_table(library_file):
    result = runner.invoke(cli_app, ["search", "parse", "--library", str(library_file)])
    assert result.exit_code == 0, result.output
    assert "Parse args" in result.output


def test_search_no_results(library_file):
    result = runner.invoke(cli_app, ["search", "zzzz", "--library", str(library_file)])
    assert result.exit_code == 0, result.output
    assert "No results found" in result.output


def test_markup_in_query_is_printed_literally(library_file):
    result = runner.invoke(cli_app, ["search", "[/bold]", "--library", str(library_file)])
    assert result.exit_code == 0, result.output
    assert "[/bold]" in result.output

    result = runner.invoke(cli_app, ["history", "list"])
    assert result.exit_code == 0, result.output
    assert "[/bold]" in result.output

    result = runner.invoke(cli_app, ["suggest", "[/x]", "--library", str(library_file)])
    assert result.exit_code == 0, result.output
    assert "No suggestions for" in result.output


def test_search_library_from_env(library_file, monkeypatch):
    monkeypatch.setenv("PROMPTSHELF_LIBRARY", str(library_file))
    result = runner.invoke(cli_app, ["search", "release", "--type", "workflow", "--json"])
    assert result.exit_code == 0, result.output
    assert [r["id"] for r in json.loads(result.output)["results"]] == ["w1"]


def test_invalid_sort_key(library_file):
    result = runner.invoke(cli_app, ["search", "read", "--library", str(library_file), "--sort", "size"])
    assert result.exit_code == 1


def test_unknown_type(library_file):
    result = runner.invoke(cli_app, ["search", "read", "--library", str(library_file), "--type", "folder"])
    assert result.exit_code != 0


def test_missing_library(tmp_path):
    result = runner.invoke(cli_app, ["search", "read", "--library", str(tmp_path / "nope.json")])
    assert result.exit_code == 1
    assert "Error" in result.output


def test_invalid_library(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"snippets": [{"name": "no id"}]}), encoding="utf-8")
    result = runner.invoke(cli_app, ["tags", "--library", str(bad)])
    assert result.exit_code == 1


def test_filter_and_mode(library_file):
    result = runner.invoke(
        cli_app,
        ["filter", "--library", str(library_file), "--tag", "docs", "--tag", "dev", "--mode", "AND", "--json"],
    )
    assert result.exit_code == 0, result.output

    out = json.loads(result.output)
    assert out["total_results"] == 1
    assert [i["id"] for i in out["results"]["templates"]] == ["t2"]
    assert out["filters"]["filterMode"] == "AND"


def test_filter_type_and_favorite(library_file):
    result = runner.invoke(cli_app, ["filter", "--library", str(library_file), "--type", "snippet", "--json"])
    out = json.loads(result.output)
    assert out["results"]["templates"] == []
    assert [i["id"] for i in out["results"]["snippets"]] == ["s1"]

    result = runner.invoke(cli_app, ["filter", "--library", str(library_file), "--favorite"])
    assert result.exit_code == 0, result.output
    assert "Readme helper" in result.output


def test_filter_invalid_mode(library_file):
    result = runner.invoke(cli_app, ["filter", "--library", str(library_file), "--mode", "XOR"])
    assert result.exit_code == 1


def test_tags_frequency_and_suggestions(library_file):
    result = runner.invoke(cli_app, ["tags", "--library", str(library_file), "--type", "template", "--json"])
    assert result.exit_code == 0, result.output
    records = json.loads(result.output)
    assert records[0] == {"tag": "docs", "count": 2, "percentage": 100}

    result = runner.invoke(cli_app, ["tags", "py", "--library", str(library_file), "--json"])
    assert [r["tag"] for r in json.loads(result.output)] == ["python"]

    result = runner.invoke(
        cli_app, ["tags", "--library", str(library_file), "--exclude", "docs", "--json"]
    )
    assert "docs" not in [r["tag"] for r in json.loads(result.output)]


def test_tags_fallback_for_empty_library(tmp_path):
    empty = tmp_path / "empty.json"
    empty.write_text("{}", encoding="utf-8")
    result = runner.invoke(cli_app, ["tags", "--library", str(empty), "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)[0]["tag"] == "development"


def test_suggest(library_file):
    result = runner.invoke(cli_app, ["suggest", "rea", "--library", str(library_file), "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == ["readme", "Readme helper"]


def test_stats(library_file):
    result = runner.invoke(cli_app, ["stats", "--library", str(library_file), "--json"])
    assert result.exit_code == 0, result.output
    out = json.loads(result.output)
    assert out["templates"]["totalItems"] == 2
    assert out["snippets"]["totalTags"] == 2


def test_history_clear(library_file, isolated_storage):
    runner.invoke(cli_app, ["search", "read", "--library", str(library_file), "--json"])

    result = runner.invoke(cli_app, ["history", "clear"], input="n\n")
    assert "Cancelled" in result.output

    result = runner.invoke(cli_app, ["history", "clear", "--force"])
    assert result.exit_code == 0, result.output
    assert json.loads(isolated_storage.read_text(encoding="utf-8"))["promptshelf-search-history"] == []


def test_history_list_empty():
    result = runner.invoke(cli_app, ["history", "list"])
    assert result.exit_code == 0, result.output
    assert "No search history" in result.output


def test_version():
    result = runner.invoke(cli_app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("promptshelf ")
