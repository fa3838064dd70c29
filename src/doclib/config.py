"""Environment driven configuration."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

LOGGER = logging.getLogger(__name__)


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


def _bool_from_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off", ""}


def _path_from_env(name: str, default: str | None) -> Path | None:
    value = os.getenv(name, default)
    if not value:
        return None
    return Path(value)


@dataclass(slots=True)
class Settings:
    """Runtime knobs for ingestion, caching and context assembly."""

    cache_path: Path = Path("data/document_cache.sqlite3")
    docs_dir: Path | None = Path("docs")
    catalog_path: Path | None = None
    max_chunk_tokens: int = 800
    primary_tokens: int = 2000
    secondary_tokens: int = 350
    fetch_timeout: float = 60.0
    warm_up_on_start: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            cache_path=_path_from_env("DOCLIB_CACHE_PATH", "data/document_cache.sqlite3")
            or Path("data/document_cache.sqlite3"),
            docs_dir=_path_from_env("DOCLIB_DOCS_DIR", "docs"),
            catalog_path=_path_from_env("DOCLIB_CATALOG_PATH", None),
            max_chunk_tokens=_int_from_env("DOCLIB_MAX_CHUNK_TOKENS", 800),
            primary_tokens=_int_from_env("DOCLIB_PRIMARY_TOKENS", 2000),
            secondary_tokens=_int_from_env("DOCLIB_SECONDARY_TOKENS", 350),
            fetch_timeout=_float_from_env("DOCLIB_FETCH_TIMEOUT", 60.0),
            warm_up_on_start=_bool_from_env("DOCLIB_WARM_UP_ON_START", False),
        )


__all__ = ["Settings"]
