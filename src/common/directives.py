from __future__ import annotations

import re
from typing import Callable, Dict, Optional

from .formatters import render_band, render_name


Handler = Callable[[Optional[str], bool], str]

# Directive name -> formatter; both take (first argument, active)
DIRECTIVES: Dict[str, Handler] = {
    "rambutan": render_name,
    "rambutanband": render_band,
}

# {{#rambutan:Elton John}}, {{#rambutanband:The Strokes|ignored}}, {{#rambutan}}
_DIRECTIVE_RE = re.compile(
    r"\{\{#(?P<name>[A-Za-z][\w-]*)(?::(?P<args>[^{}]*))?\}\}",
)


def _first_arg(args: Optional[str]) -> str:
    if not args:
        return ""
    return args.split("|", 1)[0]


def call(name: str, *args: Optional[str], active: bool) -> str:
    """Run directive `name` with positional arguments; only the first is used.

    Raises KeyError for names that are not registered.
    """
    handler = DIRECTIVES[name.lower()]
    return handler(args[0] if args else "", active)


def uses_directives(text: Optional[str]) -> bool:
    if not text:
        return False
    return any(m.group("name").lower() in DIRECTIVES for m in _DIRECTIVE_RE.finditer(text))


def expand(text: Optional[str], active: bool) -> str:
    """Replace every registered directive in `text` with its rendered output.

    Constructs with unregistered names are left exactly as written.
    """
    if not text:
        return ""

    def _sub(m: re.Match[str]) -> str:
        handler = DIRECTIVES.get(m.group("name").lower())
        if handler is None:
            return m.group(0)
        return handler(_first_arg(m.group("args")), active)

    return _DIRECTIVE_RE.sub(_sub, text)


__all__ = ["DIRECTIVES", "call", "expand", "uses_directives"]
