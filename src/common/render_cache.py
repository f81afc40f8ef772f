from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional


logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR_ENV = "RAMBUTAN_CACHE_DIR"
DEFAULT_MAX_ENTRIES = 256
_CACHE_FILE = "render_cache.json"


def _default_cache_file() -> Path:
    # Explicit dir wins; on Lambda only /tmp is writable
    base = os.environ.get(DEFAULT_CACHE_DIR_ENV)
    if base:
        return Path(base) / _CACHE_FILE
    if os.environ.get("AWS_LAMBDA_FUNCTION_NAME"):
        return Path("/tmp") / _CACHE_FILE
    return Path(".cache") / _CACHE_FILE


class RenderCache:
    """
    Rendered page text keyed by `RenderOptions.cache_key(...)`.

    - Backed by a single JSON object { cache_key: text }, loaded on first use.
    - Holds at most `max_entries`; the least recently used entry is evicted first.
    - `persist=False` keeps entries in memory only (tests, one-off renders).
    - Best effort: unreadable files start empty, failed writes are logged and dropped.
    - On Lambda, /tmp survives only while the container stays warm.
    """

    def __init__(
        self,
        path: Optional[os.PathLike[str] | str] = None,
        *,
        persist: bool = True,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self._path = Path(path) if path else _default_cache_file()
        self._persist = persist
        self._max_entries = max_entries
        self._data: Dict[str, str] = {}
        self._loaded = not persist

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable render cache at %s", self._path)
            return
        if isinstance(raw, dict):
            # file order is oldest first; keep the newest entries
            entries = [(str(k), v) for k, v in raw.items() if isinstance(v, str)]
            self._data = dict(entries[-self._max_entries:])

    def _evict(self) -> None:
        while len(self._data) > self._max_entries:
            oldest = next(iter(self._data))
            del self._data[oldest]

    def _save(self) -> None:
        if not self._persist:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
        except OSError:
            logger.warning("Could not write render cache to %s", self._path)

    def get(self, key: str) -> Optional[str]:
        self._ensure_loaded()
        text = self._data.pop(key, None)
        if text is not None:
            self._data[key] = text
        return text

    def set(self, key: str, text: str) -> None:
        self._ensure_loaded()
        self._data.pop(key, None)
        self._data[key] = text
        self._evict()
        self._save()

    def __contains__(self, key: object) -> bool:
        self._ensure_loaded()
        return key in self._data

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._data)


__all__ = ["RenderCache"]
