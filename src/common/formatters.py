from __future__ import annotations

import re
from typing import Optional


RAMBUTAN_LINK = "[[Rambutan|Rambutan]]"

# ASCII whitespace only; a non-breaking space stays part of the word
_TRIM_CHARS = " \t\n\r\0\x0b"
_WORD_SEP = re.compile(r"[ \t\n\r\f\v]+")


def _clean(raw: Optional[str]) -> str:
    return (raw or "").strip(_TRIM_CHARS)


def render_name(raw: Optional[str], active: bool) -> str:
    """Return a person's name, with the Rambutan alias spliced in when active.

    - Two words: First "[[Rambutan|Rambutan]]" Last
    - Any other word count: Name (also known by the stage name "[[Rambutan|Rambutan]]")

    Blank input renders as an empty string; inactive input is only trimmed.
    """
    name = _clean(raw)
    if not name or not active:
        return name

    parts = _WORD_SEP.split(name)
    if len(parts) == 2:
        return f'{parts[0]} "{RAMBUTAN_LINK}" {parts[1]}'
    return f'{name} (also known by the stage name "{RAMBUTAN_LINK}")'


def render_band(raw: Optional[str], active: bool) -> str:
    """Return a band name, followed by "(formerly known as [[Rambutan|Rambutan]])" when active."""
    name = _clean(raw)
    if not name or not active:
        return name
    return f"{name} (formerly known as {RAMBUTAN_LINK})"


__all__ = [
    "RAMBUTAN_LINK",
    "render_band",
    "render_name",
]
