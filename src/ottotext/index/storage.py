"""JSON file persistence for segment embeddings."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple, Union

import numpy as np

from ottotext.models import EmbeddingRecord
from ottotext.utils.files import atomic_write_text

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CacheAbsent:
    """The cache must be regenerated."""

    reason: str


@dataclass(slots=True, frozen=True)
class CacheValid:
    records: Tuple[EmbeddingRecord, ...]


CacheState = Union[CacheAbsent, CacheValid]


def _parse_records(payload: object) -> List[EmbeddingRecord]:
    if not isinstance(payload, list):
        raise ValueError("cache payload is not a list")

    records: List[EmbeddingRecord] = []
    dimension: int | None = None
    for position, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ValueError(f"entry {position} is not an object")
        text = item.get("text")
        values = item.get("vector")
        if not isinstance(text, str) or not isinstance(values, list) or not values:
            raise ValueError(f"entry {position} is missing text or vector")
        if not all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in values):
            raise ValueError(f"entry {position} has non-numeric vector values")

        vector = np.asarray(values, dtype="float32")
        if not np.isfinite(vector).all():
            raise ValueError(f"entry {position} has non-finite vector values")
        if dimension is None:
            dimension = vector.shape[0]
        elif vector.shape[0] != dimension:
            raise ValueError(
                f"entry {position} has dimension {vector.shape[0]}, expected {dimension}"
            )
        records.append(EmbeddingRecord(text=text, vector=vector))
    return records


class EmbeddingCache:
    """Persisted sequence of embedding records at a fixed path.

    The file is either absent or a well-formed JSON list of
    ``{"text": ..., "vector": [...]}`` objects with one shared dimension.
    Anything else loads as `CacheAbsent` and the caller regenerates the whole
    cache; entries are never repaired one by one.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> CacheState:
        if not self.path.exists():
            return CacheAbsent("cache file not found")

        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            records = _parse_records(payload)
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            LOGGER.warning("Discarding embedding cache %s: %s", self.path, exc)
            return CacheAbsent(f"unreadable cache: {exc}")
        if not records:
            return CacheAbsent("cache file holds no embeddings")

        LOGGER.info("Loaded %d embeddings from %s", len(records), self.path)
        return CacheValid(tuple(records))

    def save(self, records: Sequence[EmbeddingRecord]) -> bool:
        """Overwrite the cache file; returns False when the write fails."""
        content = json.dumps([record.to_dict() for record in records], ensure_ascii=False)
        try:
            atomic_write_text(self.path, content)
        except OSError as exc:
            LOGGER.error("Failed to write embedding cache %s: %s", self.path, exc)
            return False

        LOGGER.info("Saved %d embeddings to %s", len(records), self.path)
        return True
