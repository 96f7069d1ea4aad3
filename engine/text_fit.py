"""
Fit a single line of text into a fixed width.

Strategies are tried in order: the text as given, its compact form
("KSh 12,345,678" → "KSh 12.3M"), a smaller font size (never below the
floor), and finally truncation with an ellipsis at the floor size.  The
result always fits, and fitting a result again returns it unchanged.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from engine.surface import FONT_BODY, text_width
from utils.formatting import compact_text

ELLIPSIS = "…"
MIN_FONT_SIZE = 8.0
_EPSILON = 1e-6


@dataclass(frozen=True)
class FittedText:
    text: str
    font_size: float
    tier: str          # full | compact | shrunk | truncated


def _fits(text: str, max_width: float, font_name: str, font_size: float) -> bool:
    return text_width(text, font_name, font_size) <= max_width + _EPSILON


def truncate_to_width(text: str, max_width: float, font_name: str = FONT_BODY,
                      font_size: float = 10) -> str:
    """Longest prefix of *text* plus an ellipsis that fits; "" if nothing does."""
    if _fits(text, max_width, font_name, font_size):
        return text
    if not _fits(ELLIPSIS, max_width, font_name, font_size):
        return ""
    lo, hi = 0, len(text)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if _fits(text[:mid].rstrip() + ELLIPSIS, max_width, font_name, font_size):
            lo = mid
        else:
            hi = mid - 1
    return text[:lo].rstrip() + ELLIPSIS


def fit_text(text: str, max_width: float, font_name: str = FONT_BODY,
             font_size: float = 10, min_font_size: float = MIN_FONT_SIZE,
             compact: bool = True) -> FittedText:
    text = str(text)
    if _fits(text, max_width, font_name, font_size):
        return FittedText(text, font_size, "full")

    candidate = text
    if compact:
        compacted = compact_text(text)
        if compacted != text:
            if _fits(compacted, max_width, font_name, font_size):
                return FittedText(compacted, font_size, "compact")
            candidate = compacted

    floor = min(min_font_size, font_size)
    natural = text_width(candidate, font_name, font_size)
    if natural > 0 and max_width > 0:
        # Width scales linearly with size; round down to 0.1pt.
        size = math.floor(font_size * max_width / natural * 10) / 10
        if size >= floor and _fits(candidate, max_width, font_name, size):
            return FittedText(candidate, size, "shrunk")

    return FittedText(truncate_to_width(candidate, max_width, font_name, floor), floor, "truncated")
