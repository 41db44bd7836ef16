"""Content-based deduplication shared by the pattern engine and the analysis engine."""

from __future__ import annotations

import re
from collections.abc import Iterable

from actionlens.extraction.models import DetectedActionItem

_WHITESPACE = re.compile(r"\s+")


def normalize_content(content: str) -> str:
    """Case-fold and collapse whitespace so near-identical spans share a key."""
    return _WHITESPACE.sub(" ", content.casefold()).strip()


def deduplicate_items(items: Iterable[DetectedActionItem]) -> list[DetectedActionItem]:
    """Merge items by normalized content, keeping the most confident one.

    On equal confidence the first occurrence wins.

    Returns:
        Unique items sorted by descending confidence.
    """
    unique: dict[str, DetectedActionItem] = {}
    for item in items:
        key = normalize_content(item.content)
        current = unique.get(key)
        if current is None or current.confidence < item.confidence:
            unique[key] = item
    return sorted(unique.values(), key=lambda item: item.confidence, reverse=True)
