from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

import numpy as np


@dataclass(frozen=True)
class EmbeddingResult:
    text: str
    embedding: np.ndarray


@dataclass(frozen=True)
class EmbeddingFailure:
    text: str
    error: str


@dataclass
class BatchEmbeddingResult:
    """
    Outcome of ``EmbeddingGenerator.embed_batch``.

    ``results`` and ``errors`` together cover every input text exactly once.
    """

    results: List[EmbeddingResult] = field(default_factory=list)
    errors: List[EmbeddingFailure] = field(default_factory=list)
    processing_time_ms: float = 0.0
