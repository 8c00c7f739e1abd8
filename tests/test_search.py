"""Tests for similarity ranking."""

from __future__ import annotations

import numpy as np
import pytest

from ottotext.index.search import (
    CONTEXT_SEPARATOR,
    cosine_similarity,
    join_context,
    rank,
    score_records,
)
from ottotext.models import EmbeddingRecord


def _record(text: str, *values: float) -> EmbeddingRecord:
    return EmbeddingRecord(text=text, vector=np.array(values, dtype="float32"))


class TestCosineSimilarity:
    """Test cosine_similarity function."""

    def test_identical_vectors(self) -> None:
        assert cosine_similarity(np.array([1.0, 0.0]), np.array([1.0, 0.0])) == pytest.approx(1.0)

    def test_orthogonal_vectors(self) -> None:
        assert cosine_similarity(np.array([1.0, 0.0]), np.array([0.0, 1.0])) == pytest.approx(0.0)

    def test_opposite_vectors(self) -> None:
        assert cosine_similarity(np.array([1.0, 2.0]), np.array([-1.0, -2.0])) == pytest.approx(-1.0)

    def test_scale_invariant(self) -> None:
        a = np.array([0.3, 0.4, 0.5])
        assert cosine_similarity(a, a * 10) == pytest.approx(1.0)

    def test_zero_vector(self) -> None:
        """Zero magnitude should score 0 instead of dividing by zero."""
        with np.errstate(all="raise"):
            assert cosine_similarity(np.zeros(3), np.array([1.0, 2.0, 3.0])) == 0.0
            assert cosine_similarity(np.array([1.0, 2.0, 3.0]), np.zeros(3)) == 0.0
            assert cosine_similarity(np.zeros(3), np.zeros(3)) == 0.0

    def test_dimension_mismatch(self) -> None:
        assert cosine_similarity(np.array([1.0, 0.0]), np.array([1.0, 0.0, 0.0])) == 0.0


class TestScoreRecords:
    """Test score_records function."""

    def test_orders_by_similarity(self) -> None:
        """[1,0] should rank [1,0] (1.0) above [0,1] (0.0)."""
        records = [_record("second", 0.0, 1.0), _record("first", 1.0, 0.0)]

        scored = score_records(np.array([1.0, 0.0]), records)

        assert [item.text for item in scored] == ["first", "second"]
        assert scored[0].similarity == pytest.approx(1.0)
        assert scored[1].similarity == pytest.approx(0.0)
        assert scored[0].ordinal == 1

    def test_ties_keep_corpus_order(self) -> None:
        records = [_record("a", 3.0, 4.0), _record("b", 6.0, 8.0), _record("c", 30.0, 40.0)]

        scored = score_records(np.array([3.0, 4.0]), records)

        assert [item.text for item in scored] == ["a", "b", "c"]

    def test_zero_vector_record(self) -> None:
        records = [_record("zero", 0.0, 0.0), _record("match", 1.0, 0.0)]

        scored = score_records(np.array([1.0, 0.0]), records)

        assert [item.text for item in scored] == ["match", "zero"]
        assert scored[1].similarity == 0.0


class TestRank:
    """Test rank function."""

    def test_top_k(self) -> None:
        records = [
            _record("far", -1.0, 0.0),
            _record("close", 0.9, 0.1),
            _record("exact", 1.0, 0.0),
            _record("side", 0.0, 1.0),
        ]

        assert rank(np.array([1.0, 0.0]), records, k=3) == ["exact", "close", "side"]

    def test_fewer_records_than_k(self) -> None:
        records = [_record("only", 1.0, 0.0)]

        assert rank(np.array([1.0, 0.0]), records, k=3) == ["only"]

    def test_empty_records(self) -> None:
        """No records means no context, not an error."""
        assert rank(np.array([1.0, 0.0]), [], k=3) == []

    def test_non_positive_k(self) -> None:
        assert rank(np.array([1.0, 0.0]), [_record("a", 1.0, 0.0)], k=0) == []

    def test_default_k_is_three(self) -> None:
        records = [_record(str(i), 1.0, float(i)) for i in range(6)]

        assert len(rank(np.array([1.0, 0.0]), records)) == 3


class TestJoinContext:
    def test_separator_between_segments(self) -> None:
        assert join_context(["a", "b"]) == "a" + CONTEXT_SEPARATOR + "b"

    def test_empty(self) -> None:
        assert join_context([]) == ""
