"""Text helpers including paragraph-aware chunking."""

from __future__ import annotations

import re
from typing import List

from ottotext.models import Segment

_LINE_BREAK = re.compile(r"[\r\n]")


def split_paragraphs(text: str) -> List[str]:
    """Split text on line breaks, dropping units that are blank after trimming."""
    return [unit for unit in _LINE_BREAK.split(text) if unit.strip()]


def chunk_text(text: str, *, max_chars: int = 500, overlap: int = 50) -> List[Segment]:
    """Group paragraphs into segments of roughly `max_chars` characters.

    When a paragraph would push the running buffer past `max_chars`, the buffer
    is closed and the next one is seeded with its last `overlap` characters so
    neighbouring segments share context. Paragraphs are never split, so a single
    paragraph longer than `max_chars` becomes one oversized segment.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be positive")
    if overlap < 0:
        raise ValueError("overlap must not be negative")

    segments: List[Segment] = []
    buffer = ""

    for paragraph in split_paragraphs(text):
        if buffer and len(buffer) + 1 + len(paragraph) > max_chars:
            segments.append(Segment(text=buffer, ordinal=len(segments)))
            buffer = _carry(buffer, overlap, room=max_chars - len(paragraph) - 1)
        buffer += ("\n" if buffer else "") + paragraph

    if buffer:
        segments.append(Segment(text=buffer, ordinal=len(segments)))
    return segments


def _carry(closed: str, overlap: int, *, room: int) -> str:
    # The seed is shortened so seed + paragraph still fits in one segment.
    size = min(overlap, room)
    if size <= 0:
        return ""
    return closed[-size:]
