"""
Error Hierarchy

This module defines every error kind raised by the corpus pipeline.

Design Goals
------------
- One exception type per failure mode, so callers can branch on it
- Per-record failures are carried as data (see ``NormalizationResult``);
  only model loading aborts a whole batch
- Deterministic one-line rendering for cache metadata and batch summaries,
  never a stack trace
"""

from __future__ import annotations

from typing import Optional


# ---------------------------------------------------------------------
# Embedding Errors
# ---------------------------------------------------------------------

class EmbeddingError(RuntimeError):
    """Base error for embedding generation failures."""


class ModelLoadError(EmbeddingError):
    """Raised when the embedding model pipeline cannot be constructed."""


class InvalidInputError(EmbeddingError, ValueError):
    """Raised when text cannot be embedded (empty or whitespace-only)."""


class DimensionMismatchError(EmbeddingError, ValueError):
    """Raised when two vectors of different length are compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(
            f"Embeddings must have the same dimensions (got {left} and {right})"
        )
        self.left = left
        self.right = right


# ---------------------------------------------------------------------
# Normalization Errors
# ---------------------------------------------------------------------

class NormalizationError(RuntimeError):
    """
    Raised (or returned) when a type-specific transform fails.

    Carries the identifying name of the record and the underlying cause.
    """

    def __init__(self, name: str, cause: BaseException) -> None:
        super().__init__(f"Failed to normalize '{name}': {describe_error(cause)}")
        self.name = name
        self.cause = cause


class UnsupportedTypeError(ValueError):
    """Raised when no transform is registered for a content type."""

    def __init__(self, content_type: Optional[str]) -> None:
        super().__init__(f"Unknown content type: {content_type}")
        self.content_type = content_type


# ---------------------------------------------------------------------
# Cache Errors
# ---------------------------------------------------------------------

class CacheIOError(OSError):
    """Raised when a cache entry or the metadata index cannot be read or written."""

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.path = path


# ---------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------

def describe_error(exc: BaseException) -> str:
    """
    Render an exception as ``"<Type>: <message>"``.

    Used wherever an error is stored or summarized instead of raised.
    """
    message = " ".join(str(exc).split())
    if not message:
        return type(exc).__name__
    return f"{type(exc).__name__}: {message}"
