from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Dict, List, Optional

from common.config import ConfigError, load_settings, load_ssm_params, require
from common.directives import expand, uses_directives
from common.render_cache import RenderCache
from common.render_options import RAMBUTAN_OPTION, Clock, PreferenceLookup, RenderOptions
from common.timegate import expires_at
from state.models import Viewer
from state.s3_store import S3PreferenceStore


logger = logging.getLogger(__name__)

PREFERENCES_MODULE = "ext.rambutanMode.preferences"


@dataclass(frozen=True)
class RenderResult:
    text: str
    cache_key: str
    rambutan_active: bool
    cached: bool
    modules: List[str] = field(default_factory=list)
    expires_at: Optional[datetime] = None


def page_modules(viewer: Viewer) -> List[str]:
    """Client modules to attach to the page; only accounts get the toggle."""
    if viewer.is_registered:
        return [PREFERENCES_MODULE]
    return []


def render_page(
    content: str,
    viewer: Viewer,
    *,
    lookup: PreferenceLookup,
    zone: tzinfo,
    cache: Optional[RenderCache] = None,
    clock: Optional[Clock] = None,
) -> RenderResult:
    """
    Expand Rambutan directives in `content` for `viewer`.

    The mode is resolved at most once, and only when the content contains a
    directive; the same value keys the cache entry and drives the formatters.
    `expires_at` is the local midnight that ends an active toggle, when known.
    """
    options = RenderOptions(viewer, lookup=lookup, zone=zone, clock=clock)
    used = [RAMBUTAN_OPTION.name] if uses_directives(content) else []
    key = options.cache_key(content, used=used)
    active = options.rambutan_active if used else False
    expiry = expires_at(options.toggle(), zone) if active else None
    if expiry is not None:
        logger.debug("Rambutan Mode for user %s lapses at %s", viewer.user_id, expiry.isoformat())

    if cache is not None:
        hit = cache.get(key)
        if hit is not None:
            logger.info("Render cache hit %s", key)
            return RenderResult(hit, key, active, True, page_modules(viewer), expiry)

    text = expand(content, active)
    if cache is not None:
        logger.info("Render cache miss %s", key)
        cache.set(key, text)
    return RenderResult(text, key, active, False, page_modules(viewer), expiry)


def _viewer_from_event(event: Dict[str, Any]) -> Viewer:
    raw = event.get("viewer")
    if not isinstance(raw, dict):
        return Viewer.anonymous()
    user_id = raw.get("user_id")
    return Viewer(
        user_id=str(user_id) if user_id not in (None, "") else None,
        is_registered=bool(raw.get("is_registered")) and user_id not in (None, ""),
    )


def run_once(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Render one page for one viewer.

    - Loads settings from env; an invalid RAMBUTAN_TIMEZONE fails here.
    - Loads the Fernet key from SSM under PARAM_PREFIX.
    - Reads viewer preferences from S3 only if the page uses a directive.

    Returns: {"ok", "text", "cache_key", "rambutan_active", "cached", "modules", "expires_at"}.
    """
    settings = load_settings()
    bucket = require(settings.state_bucket, "STATE_BUCKET")
    prefix = require(settings.param_prefix, "PARAM_PREFIX")

    params = load_ssm_params(prefix, ["fernet_key"])
    fernet_key = require(params.get("fernet_key"), f"{prefix}fernet_key")

    store = S3PreferenceStore(bucket=bucket, key=settings.state_key, fernet_key=fernet_key)
    cache = RenderCache()

    content = event.get("content")
    if not isinstance(content, str):
        content = ""
    viewer = _viewer_from_event(event)

    result = render_page(content, viewer, lookup=store.lookup, zone=settings.timezone, cache=cache)
    return {
        "ok": True,
        "text": result.text,
        "cache_key": result.cache_key,
        "rambutan_active": result.rambutan_active,
        "cached": result.cached,
        "modules": result.modules,
        "expires_at": result.expires_at.isoformat() if result.expires_at else None,
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """AWS Lambda entry for page renders.

    Environment:
    - RAMBUTAN_TIMEZONE (default America/New_York), STATE_BUCKET,
      STATE_KEY (default preferences.json), PARAM_PREFIX, RAMBUTAN_CACHE_DIR
    - SSM under PARAM_PREFIX must provide: fernet_key
    """
    try:
        return run_once(event or {})
    except ConfigError:
        logger.exception("Render handler misconfigured")
        raise
