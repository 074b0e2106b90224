"""
Batch Pipeline

Drives many records through cache check, normalization and cache write, and
optionally embeds the resulting chunks for the downstream indexer.

Errors are per record: one bad record is reported in the ``BatchSummary`` and
never stops the batch. The only batch-aborting error is ``ModelLoadError``
from the embedding step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np

from .core.errors import describe_error
from .embeddings.generator import EmbeddingGenerator, ProgressCallback
from .normalizer.cache import DIRECT_MODEL_ID, NormalizedCache
from .normalizer.engine import normalize, supports_direct
from .records.common import ContentChunk
from .records.parsed import ParsedBase

logger = logging.getLogger("corpus.pipeline")


@dataclass(frozen=True)
class SourceDocument:
    """One input record: its source id, raw source content and parsed data."""

    url: str
    html: str
    record: Union[ParsedBase, Mapping[str, Any]]

    @property
    def content_type(self) -> Optional[str]:
        if isinstance(self.record, Mapping):
            return self.record.get("type")
        return getattr(self.record, "type", None)

    @property
    def name(self) -> str:
        if isinstance(self.record, Mapping):
            return str(self.record.get("name") or self.url)
        return str(getattr(self.record, "name", None) or self.url)


@dataclass
class BatchSummary:
    processed: int = 0
    skipped: int = 0
    succeeded: int = 0
    failed: List[Tuple[str, str]] = field(default_factory=list)
    needs_fallback: List[str] = field(default_factory=list)
    cache_write_failures: List[str] = field(default_factory=list)
    chunks: List[ContentChunk] = field(default_factory=list)

    def format(self) -> str:
        lines = [
            f"Processed: {self.processed}",
            f"Skipped (cached): {self.skipped}",
            f"Succeeded: {self.succeeded}",
            f"Failed: {len(self.failed)}",
            f"Needs fallback: {len(self.needs_fallback)}",
        ]
        if self.cache_write_failures:
            lines.append(f"Cache write failures: {len(self.cache_write_failures)}")
        lines.extend(f"  - {name}: {error}" for name, error in self.failed)
        return "\n".join(lines)


@dataclass(frozen=True)
class EmbeddedChunk:
    chunk: ContentChunk
    embedding: np.ndarray


@dataclass
class ChunkEmbeddingResult:
    embedded: List[EmbeddedChunk] = field(default_factory=list)
    failed: List[Tuple[ContentChunk, str]] = field(default_factory=list)


# ---------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------

def normalize_records(
    documents: Iterable[SourceDocument],
    cache: NormalizedCache,
    force_reprocess: bool = False,
) -> BatchSummary:
    """
    Normalize every document not already cached for its exact source.

    Successful records are written to the cache; failed ones are recorded as
    failures so the next run retries them. Records of an unsupported type are
    listed under ``needs_fallback`` and not cached.
    """
    summary = BatchSummary()

    for doc in documents:
        if not cache.needs_normalization(doc.url, doc.html, force_reprocess=force_reprocess):
            summary.skipped += 1
            logger.debug("Skipping cached %s", doc.url)
            continue

        summary.processed += 1
        result = normalize(doc.record)

        if result.needs_fallback:
            summary.needs_fallback.append(doc.name)
            continue

        if not result.success:
            message = describe_error(result.error) if result.error else "Unknown error"
            summary.failed.append((doc.name, message))
            if supports_direct(doc.content_type):
                cache.set_failed(doc.url, doc.content_type, doc.html, message)
            continue

        summary.succeeded += 1
        summary.chunks.extend(result.chunks)
        stored = cache.set(
            doc.url,
            result.data.type,
            result.data,
            result.chunks,
            doc.html,
            DIRECT_MODEL_ID,
        )
        if not stored:
            summary.cache_write_failures.append(doc.name)

    logger.info(
        "Normalization batch: %d processed, %d skipped, %d succeeded, %d failed, %d need fallback",
        summary.processed,
        summary.skipped,
        summary.succeeded,
        len(summary.failed),
        len(summary.needs_fallback),
    )
    return summary


# ---------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------

async def embed_chunks(
    generator: EmbeddingGenerator,
    chunks: Iterable[ContentChunk],
    on_progress: Optional[ProgressCallback] = None,
) -> ChunkEmbeddingResult:
    """
    Embed each chunk's ``content``.

    Chunks whose text could not be embedded are reported in ``failed``.
    ``ModelLoadError`` propagates and aborts the whole call.
    """
    chunk_list = list(chunks)
    batch = await generator.embed_batch([c.content for c in chunk_list], on_progress=on_progress)

    vectors: Dict[str, np.ndarray] = {r.text: r.embedding for r in batch.results}
    errors: Dict[str, str] = {e.text: e.error for e in batch.errors}

    outcome = ChunkEmbeddingResult()
    for chunk in chunk_list:
        vector = vectors.get(chunk.content)
        if vector is not None:
            outcome.embedded.append(EmbeddedChunk(chunk=chunk, embedding=vector))
        else:
            outcome.failed.append((chunk, errors.get(chunk.content, "Not embedded")))

    if outcome.failed:
        logger.warning("%d of %d chunks could not be embedded", len(outcome.failed), len(chunk_list))
    return outcome
