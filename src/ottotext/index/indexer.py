"""Corpus embedding pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

from ottotext.config import AppConfig
from ottotext.embedding.encoder import EmbeddingClient, EmbeddingError
from ottotext.index.storage import CacheAbsent, EmbeddingCache
from ottotext.models import EmbeddingRecord, Segment
from ottotext.utils.files import load_corpus
from ottotext.utils.text import chunk_text

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexStats:
    source: str = "empty"
    segments: int = 0
    records: int = 0
    dropped: int = 0
    saved: bool = False


class KnowledgeIndex:
    """Holds the embedding records once they are ready.

    Records are published once as an immutable tuple, so concurrent readers
    only ever see "not ready" or the complete set.
    """

    def __init__(self) -> None:
        self._records: Tuple[EmbeddingRecord, ...] | None = None
        self.stats = IndexStats()

    @property
    def ready(self) -> bool:
        return self._records is not None

    @property
    def records(self) -> Tuple[EmbeddingRecord, ...]:
        return self._records or ()

    def publish(self, records: Sequence[EmbeddingRecord], stats: IndexStats) -> None:
        self._records = tuple(records)
        self.stats = stats


class Indexer:
    """Coordinates chunking, batch embedding and cache persistence."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        cache: EmbeddingCache,
        *,
        chunk_chars: int = 500,
        overlap: int = 50,
        batch_size: int = 50,
    ) -> None:
        self.embedder = embedder
        self.cache = cache
        self.chunk_chars = chunk_chars
        self.overlap = overlap
        self.batch_size = batch_size

    async def embed_batches(
        self, segments: Sequence[Segment], *, batch_size: int | None = None
    ) -> List[EmbeddingRecord]:
        """Embed segments batch by batch, one request at a time.

        Segments that come back without a vector are left out. Any failed batch
        raises `EmbeddingError` and nothing from the run is kept.
        """
        size = batch_size or self.batch_size
        if size < 1:
            raise ValueError("batch_size must be positive")

        records: List[EmbeddingRecord] = []
        for start in range(0, len(segments), size):
            batch = segments[start : start + size]
            vectors = await self.embedder.embed([segment.text for segment in batch])
            for segment, vector in zip(batch, vectors):
                if vector is None or vector.size == 0:
                    LOGGER.debug("No embedding returned for segment %d", segment.ordinal)
                    continue
                records.append(EmbeddingRecord(text=segment.text, vector=vector))
            LOGGER.info("Processed a batch of %d segments", len(batch))
        return records

    async def generate(self, corpus: str) -> Tuple[List[EmbeddingRecord], IndexStats]:
        """Chunk and embed the whole corpus, then persist it."""
        segments = chunk_text(corpus, max_chars=self.chunk_chars, overlap=self.overlap)
        LOGGER.info("Generating embeddings for %d text segments...", len(segments))

        records = await self.embed_batches(segments)
        stats = IndexStats(
            source="generated",
            segments=len(segments),
            records=len(records),
            dropped=len(segments) - len(records),
        )
        if records:
            stats.saved = self.cache.save(records)
        else:
            LOGGER.warning("No embeddings produced; cache left untouched")
        return records, stats

    async def load_or_generate(
        self, corpus: str, *, force: bool = False
    ) -> Tuple[List[EmbeddingRecord], IndexStats]:
        """Load the persisted cache, regenerating everything when it is unusable.

        With `force` the cache is not read and a fresh set is generated; the
        file on disk is only replaced once generation succeeds. Generation
        failures are logged and yield an empty record list, so the caller falls
        back to answering without context for this run.
        """
        if force:
            LOGGER.info("Forced rebuild requested. Generating new embeddings...")
        else:
            state = self.cache.load()
            if not isinstance(state, CacheAbsent):
                records = list(state.records)
                return records, IndexStats(source="cache", records=len(records))
            LOGGER.info("No usable embeddings (%s). Generating new ones...", state.reason)

        try:
            return await self.generate(corpus)
        except EmbeddingError as exc:
            LOGGER.error("Error generating embeddings: %s", exc)
            return [], IndexStats(source="failed")

    async def warm(self, index: KnowledgeIndex, corpus: str, *, force: bool = False) -> IndexStats:
        """Build the records and publish them to `index`."""
        records, stats = await self.load_or_generate(corpus, force=force)
        _publish(index, records, stats, force=force)
        return stats


def _publish(
    index: KnowledgeIndex,
    records: Sequence[EmbeddingRecord],
    stats: IndexStats,
    *,
    force: bool,
) -> None:
    # A rebuild that produced nothing never replaces records already in use
    if force and not records and index.records:
        LOGGER.warning(
            "Rebuild produced no embeddings; keeping the %d records already loaded",
            len(index.records),
        )
        return
    index.publish(records, stats)


async def warm_from_config(
    config: AppConfig,
    embedder: EmbeddingClient,
    index: KnowledgeIndex,
    *,
    force: bool = False,
) -> IndexStats:
    """Read the configured corpus and publish its embeddings to `index`.

    Without a corpus the index is published empty and answers carry no context.
    """
    corpus = ""
    if config.corpus_path is not None:
        try:
            corpus = load_corpus(config.corpus_path, max_chars=config.corpus_max_chars)
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.error("Could not read corpus %s: %s", config.corpus_path, exc)
            stats = IndexStats(source="failed")
            _publish(index, [], stats, force=force)
            return stats
    if not corpus.strip():
        LOGGER.warning("No reference corpus configured; answering without context")
        stats = IndexStats()
        _publish(index, [], stats, force=force)
        return stats

    indexer = Indexer(
        embedder,
        EmbeddingCache(config.resolve_cache_path(Path.cwd())),
        chunk_chars=config.chunk_chars,
        overlap=config.overlap,
        batch_size=config.batch_size,
    )
    return await indexer.warm(index, corpus, force=force)
