"""Fixed-size slicing of oversized text and offset remapping of slice results."""

from __future__ import annotations

from dataclasses import dataclass, replace

from actionlens.extraction.models import DetectedActionItem


@dataclass(frozen=True)
class TextChunk:
    """A contiguous slice of the original text."""

    text: str
    offset: int
    chunk_index: int = 0


def split_into_chunks(text: str, chunk_size: int = 2000) -> list[TextChunk]:
    """Split *text* into contiguous slices of *chunk_size* characters.

    Slices do not overlap; the last one may be shorter.

    Args:
        text: Text to split.
        chunk_size: Characters per slice.

    Returns:
        List of :class:`TextChunk` with the slice's offset in *text*.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [
        TextChunk(text=text[start : start + chunk_size], offset=start, chunk_index=idx)
        for idx, start in enumerate(range(0, len(text), chunk_size))
    ]


def remap_items(items: list[DetectedActionItem], offset: int) -> list[DetectedActionItem]:
    """Shift chunk-local text positions into original-text coordinates."""
    if offset == 0:
        return list(items)
    return [replace(item, text_position=item.text_position.shifted(offset)) for item in items]
