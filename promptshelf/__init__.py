"""Search, tag-filtering and tag-suggestion engine for prompt libraries.

Exposes a best-effort __version__ attribute so the CLI can surface the
current package version without failing in editable/dev mode.
"""

from __future__ import annotations

try:  # Prefer installed distribution metadata
    from importlib.metadata import version, PackageNotFoundError

    try:
        __version__ = version("promptshelf")
    except PackageNotFoundError:
        __version__ = "0.0.0-dev"
except Exception:  # pragma: no cover
    __version__ = "0.0.0-dev"


def get_version() -> str:
    """Return the resolved package version."""
    return __version__


__all__ = ["__version__", "get_version"]
