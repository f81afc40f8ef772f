from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from state.models import PREF_ENABLED, ToggleState, Viewer

from .timegate import is_active


logger = logging.getLogger(__name__)

PreferenceLookup = Callable[[Viewer], ToggleState]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RenderOption:
    """
    A per-render value the formatters depend on.

    Attributes
    - name: option key, also used in the cache key.
    - default: value used when nothing can be loaded.
    - in_cache_key: renders that differ in this value must never share a cache entry.
    - loader: computes the value on first read; receives the owning RenderOptions.
    """

    name: str
    default: Any
    in_cache_key: bool
    loader: Callable[["RenderOptions"], Any]


def _load_rambutan_mode(opts: "RenderOptions") -> bool:
    viewer = opts.viewer
    if not viewer.is_registered:
        return False
    toggle = opts.toggle()
    return is_active(toggle, viewer, opts.zone, opts.clock())


RAMBUTAN_OPTION = RenderOption(
    name=PREF_ENABLED,
    default=False,
    in_cache_key=True,
    loader=_load_rambutan_mode,
)

DEFAULT_REGISTRY: Dict[str, RenderOption] = {RAMBUTAN_OPTION.name: RAMBUTAN_OPTION}


class RenderOptions:
    """
    Option values for a single render, each loaded lazily and then frozen.

    The cache key and the formatters both read through `get`, so the value that
    partitions the cache is the value that produced the output.
    """

    def __init__(
        self,
        viewer: Viewer,
        *,
        lookup: PreferenceLookup,
        zone: tzinfo,
        clock: Optional[Clock] = None,
        registry: Optional[Mapping[str, RenderOption]] = None,
    ) -> None:
        self.viewer = viewer
        self.lookup = lookup
        self.zone = zone
        self.clock = clock or _utcnow
        self._registry = dict(registry if registry is not None else DEFAULT_REGISTRY)
        self._values: Dict[str, Any] = {}
        self._toggle: Optional[ToggleState] = None

    def toggle(self) -> ToggleState:
        """The viewer's stored toggle, read at most once per render."""
        if self._toggle is None:
            self._toggle = self.lookup(self.viewer) if self.viewer.is_registered else ToggleState()
        return self._toggle

    def get(self, name: str) -> Any:
        if name in self._values:
            return self._values[name]
        opt = self._registry[name]
        try:
            value = opt.loader(self)
        except Exception:
            logger.warning("Loading render option %s failed; using default", name, exc_info=True)
            value = opt.default
        self._values[name] = value
        return value

    @property
    def rambutan_active(self) -> bool:
        return bool(self.get(RAMBUTAN_OPTION.name))

    def resolved(self) -> Dict[str, Any]:
        return dict(self._values)

    def cache_key(self, content: str, used: Optional[Iterable[str]] = None) -> str:
        """Key for the rendered form of `content` under these options.

        Only cache-varying options in `used` (all of them when None) take part,
        e.g. "3f1c...e9!rambutanmode=1".
        """
        digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
        names = set(self._registry) if used is None else set(used)
        parts = [digest]
        for name in sorted(names):
            if self._registry[name].in_cache_key:
                parts.append(f"{name}={_key_value(self.get(name))}")
        return "!".join(parts)


def _key_value(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return "" if value is None else str(value)


__all__ = [
    "DEFAULT_REGISTRY",
    "RAMBUTAN_OPTION",
    "RenderOption",
    "RenderOptions",
]
