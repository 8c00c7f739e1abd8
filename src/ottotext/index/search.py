"""Cosine-similarity ranking over cached embeddings."""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from ottotext.models import EmbeddingRecord, ScoredSegment

CONTEXT_SEPARATOR = "\n\n---\n\n"


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Return the cosine of the angle between `a` and `b`.

    Zero-magnitude vectors (and vectors of different length) score 0.0.
    """
    a = np.asarray(a, dtype="float32")
    b = np.asarray(b, dtype="float32")
    if a.shape != b.shape:
        return 0.0

    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(a, b)) / (norm_a * norm_b)
    return max(-1.0, min(1.0, score))


def score_records(query: np.ndarray, records: Sequence[EmbeddingRecord]) -> List[ScoredSegment]:
    """Score every record against `query`, best first; ties keep corpus order."""
    scored = [
        ScoredSegment(text=record.text, similarity=cosine_similarity(query, record.vector), ordinal=ordinal)
        for ordinal, record in enumerate(records)
    ]
    # sorted() is stable, so equal scores stay in corpus order
    return sorted(scored, key=lambda item: item.similarity, reverse=True)


def rank(query: np.ndarray, records: Sequence[EmbeddingRecord], k: int = 3) -> List[str]:
    """Return the texts of the `k` records most similar to `query`."""
    if k <= 0 or not records:
        return []
    return [item.text for item in score_records(query, records)[:k]]


def join_context(texts: Sequence[str]) -> str:
    return CONTEXT_SEPARATOR.join(texts)
