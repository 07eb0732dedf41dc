"""
Environment-driven settings.

Everything here is read at call time so tests can tweak `os.environ`
without reloading modules.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_MAX_DEPTH = 3
DEFAULT_CONCURRENCY = 4
DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in _TRUE_VALUES


@dataclass(frozen=True)
class IncludeSettings:
    max_depth: int = DEFAULT_MAX_DEPTH
    strict: bool = False
    debug: bool = False
    concurrency: int = DEFAULT_CONCURRENCY


def include_settings() -> IncludeSettings:
    max_depth = _env_int("INCLUDE_MAX_DEPTH", DEFAULT_MAX_DEPTH)
    if max_depth < 1:
        max_depth = DEFAULT_MAX_DEPTH

    concurrency = _env_int("INCLUDE_CONCURRENCY", DEFAULT_CONCURRENCY)
    if concurrency < 1:
        concurrency = DEFAULT_CONCURRENCY

    return IncludeSettings(
        max_depth=max_depth,
        strict=_env_bool("INCLUDE_STRICT"),
        debug=_env_bool("INCLUDE_DEBUG"),
        concurrency=concurrency,
    )


def pool_max_size() -> int:
    size = _env_int("DB_POOL_MAX_SIZE", 5)
    return size if size > 0 else 5


def cors_origins() -> list[str]:
    raw = os.environ.get("CORS_ORIGINS", "").strip()
    if not raw:
        return list(DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
