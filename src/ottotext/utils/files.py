"""Utility helpers for working with files."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

LOGGER = logging.getLogger(__name__)


def load_corpus(path: Path, *, max_chars: int | None = 80_000) -> str:
    """Read the reference corpus, truncated to `max_chars` characters."""
    text = Path(path).read_text(encoding="utf-8")
    if max_chars is not None and len(text) > max_chars:
        LOGGER.info("Corpus %s truncated from %d to %d characters", path, len(text), max_chars)
        text = text[:max_chars]
    return text


def atomic_write_text(path: Path, content: str) -> None:
    """Replace `path` with `content` without exposing a half-written file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
