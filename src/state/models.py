from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Preference keys as stored per viewer
PREF_ENABLED = "rambutanmode"
PREF_ENABLED_AT = "rambutanmode-enabled-at"

_FALSY_STRINGS = {"", "0", "false", "off", "no"}


class Viewer(BaseModel):
    """Identity reference for the account a page is rendered for."""

    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    is_registered: bool = False

    @classmethod
    def anonymous(cls) -> "Viewer":
        return cls()


class ToggleState(BaseModel):
    """
    Per-viewer Rambutan Mode toggle as read from the preference store.

    Fields
    - enabled: whether the viewer switched the mode on.
    - enabled_at: epoch seconds of the last switch-on, or None when unknown.

    Notes
    - Stored values are often strings ("1", "1700000000"); both fields coerce them.
    - An unusable timestamp (0, fractional, garbage) becomes None so the gate
      skips the expiry check instead of failing the render.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    enabled_at: Optional[int] = None

    @field_validator("enabled", mode="before")
    @classmethod
    def _coerce_enabled(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() not in _FALSY_STRINGS
        return bool(v)

    @field_validator("enabled_at", mode="before")
    @classmethod
    def _coerce_enabled_at(cls, v: Any) -> Optional[int]:
        if v is None or isinstance(v, bool):
            return None
        try:
            if isinstance(v, str):
                ts = int(v.strip())
            elif isinstance(v, float):
                if not v.is_integer():
                    return None
                ts = int(v)
            else:
                ts = int(v)
        except (TypeError, ValueError, OverflowError):
            return None
        return ts or None

    @classmethod
    def from_preferences(cls, prefs: Optional[Mapping[str, Any]]) -> "ToggleState":
        if not prefs:
            return cls()
        return cls(
            enabled=prefs.get(PREF_ENABLED, False),
            enabled_at=prefs.get(PREF_ENABLED_AT),
        )


class State(BaseModel):
    """
    Persisted preference document, serialized to JSON and encrypted at rest.

    Fields
    - preferences: map of user id to that user's raw option values, e.g.
      {"42": {"rambutanmode": "1", "rambutanmode-enabled-at": "1760670000"}}.

    Rendering only reads this document; switching the mode on or off is done by
    the host's preference UI.
    """

    preferences: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Raw option values keyed by user id",
    )

    @classmethod
    def empty(cls) -> "State":
        return cls()

    def toggle_for(self, user_id: Optional[str]) -> ToggleState:
        if user_id is None:
            return ToggleState()
        return ToggleState.from_preferences(self.preferences.get(str(user_id)))
