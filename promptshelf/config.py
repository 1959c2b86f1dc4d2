"""Runtime settings for the search engine.

Defaults live on :class:`Settings`; ``load_settings`` layers ``PROMPTSHELF_*``
environment variables on top of them.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger("promptshelf.config")

ENV_PREFIX = "PROMPTSHELF_"
STORAGE_ENV_VAR = "PROMPTSHELF_STORAGE"
DEFAULT_STORAGE_PATH = Path.home() / ".promptshelf" / "storage.json"


class Settings(BaseModel):
    """Tunables shared by the filter, search and suggestion components."""

    storage_path: Path = Field(default=DEFAULT_STORAGE_PATH)
    cache_capacity: int = Field(default=500, ge=1)
    tag_cache_ttl_seconds: float = Field(default=300.0, gt=0)
    history_capacity: int = Field(default=10, ge=1)
    min_score: float = Field(default=0.1, ge=0)
    max_results: int = Field(default=100, ge=1)
    batch_size: int = Field(default=1000, ge=1)
    progressive_threshold: int = Field(default=10_000, ge=0)
    optimized_threshold: int = Field(default=100, ge=0)
    debounce_ms: int = Field(default=300, ge=0)
    max_search_suggestions: int = Field(default=8, ge=1)
    max_tag_suggestions: int = Field(default=15, ge=1)


# Environment variable suffix -> Settings field
_ENV_FIELDS = {
    "STORAGE": "storage_path",
    "CACHE_CAPACITY": "cache_capacity",
    "TAG_CACHE_TTL": "tag_cache_ttl_seconds",
    "HISTORY_CAPACITY": "history_capacity",
    "MIN_SCORE": "min_score",
    "MAX_RESULTS": "max_results",
    "BATCH_SIZE": "batch_size",
    "PROGRESSIVE_THRESHOLD": "progressive_threshold",
    "OPTIMIZED_THRESHOLD": "optimized_threshold",
    "DEBOUNCE_MS": "debounce_ms",
    "MAX_SEARCH_SUGGESTIONS": "max_search_suggestions",
    "MAX_TAG_SUGGESTIONS": "max_tag_suggestions",
}


def load_settings(environ: Optional[Dict[str, str]] = None) -> Settings:
    """Build settings from defaults plus ``PROMPTSHELF_*`` overrides.

    A value that does not validate is dropped with a warning; the default for
    that field is used instead.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``)

    Returns:
        Validated Settings instance
    """
    env = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}

    for suffix, field_name in _ENV_FIELDS.items():
        raw = env.get(f"{ENV_PREFIX}{suffix}")
        if raw is None or not raw.strip():
            continue
        value: Any = Path(raw).expanduser() if field_name == "storage_path" else raw.strip()
        try:
            Settings(**{field_name: value})
        except ValidationError:
            logger.warning("Ignoring invalid %s%s=%r", ENV_PREFIX, suffix, raw)
            continue
        overrides[field_name] = value

    return Settings(**overrides)
