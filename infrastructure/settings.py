"""Settings access helpers for JSON-based configuration."""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any

from loguru import logger

DEFAULT_SETTINGS: dict[str, Any] = {
    "grid": {"rows": 2, "cols": 4, "aspect_ratio": "16/9"},
    "numbering": {"format": "01"},
    "scheduling": {
        "renumber_delay_ms": 16,
        "settle_delay_ms": 16,
        "autosave_delay_ms": 2000,
    },
    "logging": {"dir": None, "level": "INFO"},
}


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class JsonSettings:
    """JSON settings reader with dotted-key access and built-in defaults.

    A missing or unreadable file leaves the defaults in place.
    """

    def __init__(
        self, settings_path: str | Path | None = None, defaults: dict[str, Any] | None = None
    ) -> None:
        self._data: dict[str, Any] = copy.deepcopy(defaults if defaults is not None else DEFAULT_SETTINGS)
        self._path = Path(settings_path) if settings_path is not None else None
        if self._path is None:
            return
        if not self._path.exists():
            logger.warning("settings.json not found: {}, using defaults", self._path)
            return
        try:
            with self._path.open("r", encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, ValueError) as ex:
            logger.error("Failed to read settings {}: {}", self._path, ex)
            return
        if isinstance(loaded, dict):
            self._data = _merge(self._data, loaded)
        else:
            logger.error("Settings root must be an object: {}", self._path)

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return value for dotted `key`, or `default` if not present."""
        parts = key.split(".")
        node: Any = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def get_int(self, key: str, default: int) -> int:
        """Return an int for `key`, falling back to `default` on bad values."""
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Setting {} is not an integer: {!r}", key, value)
            return default
