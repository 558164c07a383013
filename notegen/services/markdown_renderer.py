"""Markdown -> HTML rendering for streamed and final content."""

from __future__ import annotations

import re
from functools import lru_cache

from markdown_it import MarkdownIt

_FENCE_RE = re.compile(r"^[ ]{0,3}(`{3,}|~{3,})", re.MULTILINE)
# Bullets with or without a trailing space; ordered markers only with one,
# so a final line such as "2024." stays visible.
_BARE_LIST_MARKER_RE = re.compile(r"(?:^|\n)[ \t]*(?:[-*+][ \t]*|\d+[.)][ \t]+)$")


@lru_cache(maxsize=1)
def _markdown() -> MarkdownIt:
    # Raw HTML from the model is escaped, never passed through.
    return MarkdownIt("js-default", {"html": False, "breaks": True})


def render_complete(markdown: str) -> str:
    """Render finished Markdown."""
    if not markdown:
        return ""
    return _markdown().render(markdown)


def close_open_fence(markdown: str) -> str:
    """Append a closing fence when a code block is still open."""
    opener = None
    for match in _FENCE_RE.finditer(markdown):
        marker = match.group(1)
        if opener is None:
            opener = marker
        elif marker[0] == opener[0] and len(marker) >= len(opener):
            opener = None
    if opener is None:
        return markdown
    suffix = "" if markdown.endswith("\n") else "\n"
    return f"{markdown}{suffix}{opener}\n"


def drop_trailing_list_marker(markdown: str) -> str:
    """A lone "- " at the end renders as an empty bullet; hide it until text arrives."""
    match = _BARE_LIST_MARKER_RE.search(markdown)
    if not match:
        return markdown
    return markdown[:match.start()]


def render_stream(markdown: str) -> str:
    """
    Render Markdown that may be cut off mid-structure.

    Unclosed code fences are closed and a trailing bare list marker is
    dropped. Partial headings and emphasis render as whatever Markdown
    makes of them at this point.
    """
    if not markdown:
        return ""
    return _markdown().render(close_open_fence(drop_trailing_list_marker(markdown)))
