"""
Common building blocks for Rambutan Mode rendering.

Modules:
- timegate: decides whether a viewer's toggle is still live (lapses at local midnight)
- formatters: person and band name rewriting
- directives: {{#rambutan:...}} / {{#rambutanband:...}} expansion
- render_options: lazily resolved per-render options and cache keys
- render_cache: JSON-backed cache of rendered text
- config: environment settings and SSM parameters
"""

__all__ = [
    "config",
    "directives",
    "formatters",
    "render_cache",
    "render_options",
    "timegate",
]
