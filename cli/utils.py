from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from promptshelf.models import BaseItem, ItemType, parse_items

COLLECTION_NAMES = [t.plural for t in ItemType]


class LibraryError(Exception):
    """The library file could not be read or does not describe items."""


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def load_library(path: Path) -> Dict[str, List[BaseItem]]:
    """Read a library file shaped ``{"templates": [...], "workflows": [...], "snippets": [...]}``.

    Missing collections are empty; unknown top-level keys are ignored.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise LibraryError(f"Cannot read library {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise LibraryError(f"Library {path} must contain a JSON object")

    library: Dict[str, List[BaseItem]] = {}
    for name in COLLECTION_NAMES:
        raw = data.get(name) or []
        if not isinstance(raw, list):
            raise LibraryError(f"'{name}' in {path} must be a list")
        try:
            library[name] = parse_items(raw, ItemType.coerce(name))
        except (ValueError, ValidationError) as exc:
            raise LibraryError(f"Invalid item in '{name}': {exc}") from exc
    return library


def _load_or_exit(path: Path, console: Console) -> Dict[str, List[BaseItem]]:
    try:
        return load_library(path)
    except LibraryError as exc:
        console.print(f"[red]❌ Error:[/red] {escape(str(exc))}")
        raise typer.Exit(1)


def _check_type(item_type: str | None) -> ItemType | None:
    if not item_type or item_type == "all":
        return None
    kind = ItemType.coerce(item_type)
    if kind is None:
        raise typer.BadParameter(f"Unknown type '{item_type}'. Valid types: template, workflow, snippet")
    return kind


def _select(library: Dict[str, List[BaseItem]], item_type: str | None) -> Dict[str, List[BaseItem]]:
    """Restrict the library to one collection when a type is given."""
    kind = _check_type(item_type)
    if kind is None:
        return library
    return {kind.plural: library.get(kind.plural, [])}


def _emit_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def _preview(text: str, width: int = 60) -> str:
    flat = text.replace("\n", " ")
    return flat[:width] + ("..." if len(flat) > width else "")
