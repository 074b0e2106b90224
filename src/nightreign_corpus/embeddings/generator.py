"""
Embedding Generator

This module turns chunk text into dense vectors with a sentence-transformers
model (mean pooling, L2-normalized output). It is responsible for:

- Loading the model once per generator, with concurrent first use sharing a
  single in-flight initialization task
- Hardware-aware execution: CUDA when configured and usable, CPU otherwise
- Fixed-size, sequential batches with per-item retry when a batch fails
- Releasing the model on ``dispose`` and reloading transparently afterwards

Blocking model calls run in a worker thread (``asyncio.to_thread``) so the
event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from threading import RLock
from typing import Any, Callable, List, Optional, Sequence

import numpy as np

from ..config import settings
from ..core.errors import EmbeddingError, InvalidInputError, ModelLoadError, describe_error
from .device import DeviceConfig, get_device_config
from .models import BatchEmbeddingResult, EmbeddingFailure, EmbeddingResult

logger = logging.getLogger("corpus.embeddings")

ProgressCallback = Callable[[int, int], None]
ModelFactory = Callable[[str, str], Any]


def load_sentence_transformer(model_name: str, device: str) -> Any:
    """
    Build a mean-pooling sentence-transformers pipeline on ``device``.

    Weights load in the library default (fp32) on both CPU and CUDA.
    """
    if not settings.allow_remote_models:
        os.environ["HF_HUB_OFFLINE"] = "1"
        os.environ["TRANSFORMERS_OFFLINE"] = "1"

    from sentence_transformers import SentenceTransformer, models

    transformer = models.Transformer(model_name)
    pooling = models.Pooling(
        transformer.get_word_embedding_dimension(),
        pooling_mode="mean",
    )
    return SentenceTransformer(modules=[transformer, pooling], device=device)


class EmbeddingGenerator:
    """
    Asynchronous text embedding generator.

    One instance holds at most one loaded model. Instances are safe to share
    across coroutines on one event loop.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        batch_size: Optional[int] = None,
        device_config: Optional[DeviceConfig] = None,
        model_factory: Optional[ModelFactory] = None,
    ) -> None:
        """
        Parameters
        ----------
        model_name : Optional[str]
            Hugging Face model id. Defaults to settings.embedding_model.

        batch_size : Optional[int]
            Texts per sub-batch in ``embed_batch``. Defaults to
            settings.embedding_batch_size.

        device_config : Optional[DeviceConfig]
            Device selection. Defaults to the process-wide resolved config.

        model_factory : Optional[ModelFactory]
            ``(model_name, device) -> model`` loader. The model must expose
            sentence-transformers' ``encode``.
        """
        self.model_name = model_name or settings.embedding_model
        self.batch_size = batch_size or settings.embedding_batch_size
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self._device_config = device_config
        self._model_factory = model_factory or load_sentence_transformer

        self._model: Optional[Any] = None
        self._device: Optional[str] = None
        self._init_task: Optional[asyncio.Future] = None
        # Bumped by dispose; a load started under an older value is discarded
        self._generation = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def device(self) -> Optional[str]:
        """Device the model was loaded on, or None before initialization."""
        return self._device

    @property
    def dimension(self) -> int:
        """Output vector length (configured value until the model is loaded)."""
        if self._model is not None:
            getter = getattr(self._model, "get_sentence_embedding_dimension", None)
            dim = getter() if getter is not None else None
            if dim:
                return int(dim)
        return settings.embedding_dimensions

    def is_ready(self) -> bool:
        return self._model is not None

    async def initialize(self) -> None:
        """
        Load the model if it is not loaded yet.

        Concurrent callers await the same initialization task. A failed load
        is not memoized; the next call tries again. A load still in flight
        when ``dispose`` runs is discarded, so the generator stays unloaded.

        Raises
        ------
        ModelLoadError
            If the model cannot be loaded on any device.
        """
        if self._model is not None:
            return

        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._load(self._generation))
        task = self._init_task

        try:
            await asyncio.shield(task)
        except BaseException:
            if task.done() and self._init_task is task:
                self._init_task = None
            raise

    async def _load(self, generation: int) -> None:
        config = self._device_config or get_device_config()
        device = config.device

        try:
            model = await self._load_on(device)
        except ModelLoadError:
            if device == "cpu":
                raise
            logger.warning("Loading %s on %s failed, falling back to CPU", self.model_name, device)
            device = "cpu"
            model = await self._load_on(device)

        if generation != self._generation:
            logger.info("Discarding %s loaded on %s, generator was disposed", self.model_name, device)
            return

        self._model = model
        self._device = device
        logger.info("Embedding model %s ready on %s", self.model_name, device)

    async def _load_on(self, device: str) -> Any:
        started = time.perf_counter()
        try:
            model = await asyncio.to_thread(self._model_factory, self.model_name, device)
        except Exception as exc:
            logger.error(
                "Failed to load embedding model %s on %s: %s",
                self.model_name,
                device,
                describe_error(exc),
            )
            raise ModelLoadError(
                f"Failed to load embedding model {self.model_name} on {device}: {describe_error(exc)}"
            ) from exc

        logger.debug("Loaded %s on %s in %.0f ms", self.model_name, device, (time.perf_counter() - started) * 1000)
        return model

    def dispose(self) -> None:
        """Release the model; the next embed call reloads it."""
        model, device = self._model, self._device
        self._generation += 1
        self._model = None
        self._device = None
        self._init_task = None

        if model is None:
            return
        del model

        if device == "cuda":
            try:
                import torch

                torch.cuda.empty_cache()
            except (ImportError, RuntimeError) as exc:
                logger.debug("Could not empty CUDA cache: %s", exc)

        logger.info("Embedding model %s disposed", self.model_name)

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def _encode(self, texts: Sequence[str]) -> np.ndarray:
        model = self._model
        if model is None:
            raise ModelLoadError("Embedding model is not loaded")

        vectors = model.encode(
            list(texts),
            batch_size=self.batch_size,
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        vectors = np.asarray(vectors, dtype=np.float32)
        if vectors.ndim != 2 or vectors.shape[0] != len(texts):
            raise EmbeddingError(
                f"Model returned shape {vectors.shape} for {len(texts)} texts"
            )
        return vectors

    @staticmethod
    def _check_text(text: str) -> None:
        if not text or not text.strip():
            raise InvalidInputError("Cannot embed empty or whitespace-only text")

    async def embed(self, text: str) -> np.ndarray:
        """
        Embed one text.

        Raises
        ------
        InvalidInputError
            If ``text`` is empty or whitespace-only.
        ModelLoadError
            If the model cannot be loaded.
        """
        self._check_text(text)
        await self.initialize()
        vectors = await asyncio.to_thread(self._encode, [text])
        return vectors[0]

    async def embed_batch(
        self,
        texts: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchEmbeddingResult:
        """
        Embed many texts in sequential sub-batches of ``batch_size``.

        A failing sub-batch is retried one text at a time, so one bad input
        only produces one error entry. ``on_progress(completed, total)`` fires
        after every sub-batch.

        Parameters
        ----------
        texts : Sequence[str]
            Input texts. Blank entries become per-item errors.

        on_progress : Optional[ProgressCallback]
            Called with monotonically increasing ``completed`` counts; the
            last call has ``completed == total``.

        Raises
        ------
        ModelLoadError
            If the model cannot be loaded; no partial result is returned.
        """
        started = time.perf_counter()
        outcome = BatchEmbeddingResult()
        total = len(texts)

        if total == 0:
            outcome.processing_time_ms = (time.perf_counter() - started) * 1000
            return outcome

        await self.initialize()

        for offset in range(0, total, self.batch_size):
            batch = list(texts[offset : offset + self.batch_size])

            valid: List[str] = []
            for text in batch:
                try:
                    self._check_text(text)
                except InvalidInputError as exc:
                    outcome.errors.append(EmbeddingFailure(text=text, error=describe_error(exc)))
                else:
                    valid.append(text)

            if valid:
                await self._embed_sub_batch(valid, offset, outcome)

            if on_progress is not None:
                on_progress(min(offset + self.batch_size, total), total)

        outcome.processing_time_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Embedded %d/%d texts in %.0f ms (%d errors)",
            len(outcome.results),
            total,
            outcome.processing_time_ms,
            len(outcome.errors),
        )
        return outcome

    async def _embed_sub_batch(
        self,
        batch: List[str],
        offset: int,
        outcome: BatchEmbeddingResult,
    ) -> None:
        try:
            vectors = await asyncio.to_thread(self._encode, batch)
        except ModelLoadError:
            raise
        except Exception as exc:
            logger.warning(
                "Batch at offset %d failed (%s), retrying %d texts individually",
                offset,
                describe_error(exc),
                len(batch),
            )
        else:
            outcome.results.extend(
                EmbeddingResult(text=text, embedding=vector) for text, vector in zip(batch, vectors)
            )
            return

        for text in batch:
            try:
                vectors = await asyncio.to_thread(self._encode, [text])
            except ModelLoadError:
                raise
            except Exception as exc:
                logger.warning("Failed to embed text (%d chars): %s", len(text), describe_error(exc))
                outcome.errors.append(EmbeddingFailure(text=text, error=describe_error(exc)))
            else:
                outcome.results.append(EmbeddingResult(text=text, embedding=vectors[0]))


# ---------------------------------------------------------------------
# Process-wide Generator
# ---------------------------------------------------------------------

_default_generator: Optional[EmbeddingGenerator] = None
_generator_lock = RLock()


def get_embedding_generator() -> EmbeddingGenerator:
    """Return the shared generator, creating it on first use."""
    global _default_generator
    with _generator_lock:
        if _default_generator is None:
            _default_generator = EmbeddingGenerator()
        return _default_generator


def dispose_embedding_generator() -> None:
    """Release the shared generator's model and forget the instance."""
    global _default_generator
    with _generator_lock:
        if _default_generator is not None:
            _default_generator.dispose()
        _default_generator = None


def create_embedding_generator(
    model_name: Optional[str] = None,
    batch_size: Optional[int] = None,
    device_config: Optional[DeviceConfig] = None,
    model_factory: Optional[ModelFactory] = None,
) -> EmbeddingGenerator:
    """Create an isolated generator that does not share the process-wide model."""
    return EmbeddingGenerator(
        model_name=model_name,
        batch_size=batch_size,
        device_config=device_config,
        model_factory=model_factory,
    )
