"""Core ottotext data models."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(slots=True, frozen=True)
class Segment:
    """Excerpt of the reference corpus produced by one chunking pass."""

    text: str
    ordinal: int


@dataclass(slots=True, frozen=True, eq=False)
class EmbeddingRecord:
    """Segment text paired with its embedding vector."""

    text: str
    vector: np.ndarray

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EmbeddingRecord):
            return NotImplemented
        return self.text == other.text and np.array_equal(self.vector, other.vector)

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])

    def to_dict(self) -> dict:
        return {"text": self.text, "vector": [float(value) for value in self.vector]}


@dataclass(slots=True, frozen=True)
class ScoredSegment:
    text: str
    similarity: float
    ordinal: int
