from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from state.models import ToggleState, Viewer


logger = logging.getLogger(__name__)


def _require_aware(now: datetime) -> datetime:
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("now must be timezone-aware")
    return now


def today_midnight(zone: tzinfo, now: Optional[datetime] = None) -> datetime:
    """Return the latest local midnight in `zone` at or before `now`.

    Where clocks fall back across midnight the wall time 00:00 happens twice;
    the later occurrence wins once it has passed.
    """
    now = _require_aware(now or datetime.now(timezone.utc))
    local = now.astimezone(zone).replace(hour=0, minute=0, second=0, microsecond=0)
    candidates = [local.replace(fold=0), local.replace(fold=1)]
    passed = [c for c in candidates if c.astimezone(timezone.utc) <= now.astimezone(timezone.utc)]
    if not passed:
        return candidates[0]
    return max(passed, key=lambda c: c.astimezone(timezone.utc))


def _enabled_at(toggle: ToggleState, zone: tzinfo) -> Optional[datetime]:
    if toggle.enabled_at is None:
        return None
    try:
        return datetime.fromtimestamp(toggle.enabled_at, tz=timezone.utc).astimezone(zone)
    except (OverflowError, OSError, ValueError):
        # Out-of-range timestamps behave like a missing one
        logger.debug("Ignoring unrepresentable enabled_at=%r", toggle.enabled_at)
        return None


def expires_at(toggle: ToggleState, zone: tzinfo) -> Optional[datetime]:
    """Local midnight that ends the activation, or None when no expiry applies."""
    if not toggle.enabled:
        return None
    enabled_at = _enabled_at(toggle, zone)
    if enabled_at is None:
        return None
    day = enabled_at.date()
    # A repeated midnight later the same day still ends it
    repeat = datetime(day.year, day.month, day.day, tzinfo=zone, fold=1)
    if repeat.astimezone(timezone.utc) > enabled_at.astimezone(timezone.utc):
        return repeat
    next_day = day + timedelta(days=1)
    return datetime(next_day.year, next_day.month, next_day.day, tzinfo=zone)


def is_active(
    toggle: ToggleState,
    viewer: Viewer,
    zone: tzinfo,
    now: Optional[datetime] = None,
) -> bool:
    """
    Decide whether Rambutan Mode applies to `viewer` right now.

    - Anonymous viewers and disabled toggles are never active.
    - Without a usable activation timestamp the toggle stays active.
    - Otherwise the toggle lapses at the first local midnight in `zone` after it
      was switched on. Nothing is written back; the stored flag stays set until
      the viewer toggles again.
    """
    if not viewer.is_registered or not toggle.enabled:
        return False

    enabled_at = _enabled_at(toggle, zone)
    if enabled_at is None:
        return True

    midnight = today_midnight(zone, now)
    # Compare instants; same-tzinfo datetimes would otherwise compare wall time
    if enabled_at.astimezone(timezone.utc) < midnight.astimezone(timezone.utc):
        logger.debug(
            "Rambutan Mode lapsed for user %s (enabled %s, midnight %s)",
            viewer.user_id,
            enabled_at.isoformat(),
            midnight.isoformat(),
        )
        return False
    return True


__all__ = ["expires_at", "is_active", "today_midnight"]
