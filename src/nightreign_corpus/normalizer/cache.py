"""
Content-Addressed Normalization Cache

This module persists normalized records so unchanged sources are never
normalized twice, and so an interrupted batch resumes where it stopped.

Layout
------
- One ``<safe-name>_<md5[:8]>.json`` file per source id holding the full
  ``CacheEntry`` (normalized data, chunks, hash, schema version, timestamp,
  model id)
- One shared ``metadata.json`` index mapping every source id to its
  lightweight ``CacheMetadata``

The index is consulted before any entry file is opened and is rewritten
atomically (temp file + rename) after every mutation.

Invalidation
------------
An entry is current only if its metadata is successful, its schema version
equals ``SCHEMA_VERSION`` and its source hash equals the SHA-256 of the
current source. Bumping ``SCHEMA_VERSION`` marks every entry stale without
deleting any file.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, SerializeAsAny, ValidationError, field_validator

from ..config import settings
from ..core.errors import CacheIOError, UnsupportedTypeError
from ..records.common import ContentChunk, RecordModel
from ..records.normalized import NormalizedBase, load_record
from .engine import supports_direct

logger = logging.getLogger("corpus.cache")

# Bump whenever transforms, tag rules or chunk text change
SCHEMA_VERSION = 9

METADATA_FILENAME = "metadata.json"
DIRECT_MODEL_ID = "direct"

_URL_SCHEME = re.compile(r"^https?://")
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


# ---------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheMetadata(RecordModel):
    url: str
    content_type: str = Field(..., min_length=1)
    source_hash: str
    schema_version: int
    timestamp: datetime = Field(default_factory=_utcnow)
    success: bool
    error_message: Optional[str] = None


class CacheEntry(RecordModel):
    url: str
    content_type: str = Field(..., min_length=1)
    data: SerializeAsAny[NormalizedBase]
    chunks: List[ContentChunk] = Field(default_factory=list)
    source_hash: str
    schema_version: int
    timestamp: datetime = Field(default_factory=_utcnow)
    model: str = DIRECT_MODEL_ID

    @field_validator("data", mode="before")
    @classmethod
    def _load_data(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return load_record(v)
        return v


class TypeStats(BaseModel):
    success: int = 0
    failed: int = 0


class CacheStats(BaseModel):
    total_entries: int = 0
    successful_entries: int = 0
    failed_entries: int = 0
    outdated_entries: int = 0
    total_size_bytes: int = 0
    by_content_type: Dict[str, TypeStats] = Field(default_factory=dict)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def hash_content(content: str) -> str:
    """SHA-256 hex digest of the exact source content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def entry_filename(url: str) -> str:
    """
    Deterministic, filesystem-safe filename for a source id.

    The readable prefix is truncated; the md5 suffix keeps ids that share a
    prefix apart.
    """
    digest = hashlib.md5(url.encode("utf-8")).hexdigest()[:8]
    safe_name = _UNSAFE_CHARS.sub("_", _URL_SCHEME.sub("", url))[:100]
    return f"{safe_name}_{digest}.json"


def _require_registered(content_type: str) -> None:
    if not supports_direct(content_type):
        raise UnsupportedTypeError(content_type)


def _write_json_atomic(path: Path, payload: Any) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as exc:
        raise CacheIOError(f"Failed to write {path.name}: {type(exc).__name__}", str(path)) from exc


# ---------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------

class NormalizedCache:
    """
    Per-source-id cache of normalized records.

    Every source id is independent: a crash mid-batch leaves written entries
    intact, and only unprocessed or failed ids are retried on restart.

    This class is thread-safe.
    """

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        schema_version: Optional[int] = None,
    ) -> None:
        """
        Open (or create) a cache directory.

        Parameters
        ----------
        cache_dir : Optional[str]
            Directory holding entry files and the metadata index.
            Defaults to settings.normalized_cache_dir.

        schema_version : Optional[int]
            Current normalization rule version. Defaults to SCHEMA_VERSION.
        """
        self._cache_dir = Path(cache_dir or settings.normalized_cache_dir)
        self._metadata_path = self._cache_dir / METADATA_FILENAME
        self.schema_version = SCHEMA_VERSION if schema_version is None else schema_version

        self._metadata: Dict[str, CacheMetadata] = {}
        self._lock = RLock()

        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheIOError(
                f"Failed to create cache directory: {type(exc).__name__}",
                str(self._cache_dir),
            ) from exc

        self._load_metadata()

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    # ------------------------------------------------------------------
    # Metadata Index
    # ------------------------------------------------------------------

    def _load_metadata(self) -> None:
        if not self._metadata_path.exists():
            return

        try:
            with self._metadata_path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
            self._metadata = {
                url: CacheMetadata.model_validate(meta) for url, meta in raw.items()
            }
        except (OSError, ValueError, AttributeError, ValidationError) as exc:
            # Unreadable index: every id will be renormalized
            logger.warning(
                "Discarding unreadable cache metadata %s (%s)",
                self._metadata_path,
                type(exc).__name__,
            )
            self._metadata = {}

    def _save_metadata(self) -> None:
        payload = {
            url: meta.model_dump(mode="json", by_alias=True, exclude_none=True)
            for url, meta in self._metadata.items()
        }
        _write_json_atomic(self._metadata_path, payload)

    def _commit(self, url: str, meta: Optional[CacheMetadata]) -> bool:
        """Apply one metadata change and persist it, reverting in memory on failure."""
        previous = self._metadata.get(url)
        if meta is None:
            self._metadata.pop(url, None)
        else:
            self._metadata[url] = meta

        try:
            self._save_metadata()
        except CacheIOError as exc:
            logger.error("Cache metadata write failed for %s: %s", url, exc)
            if previous is None:
                self._metadata.pop(url, None)
            else:
                self._metadata[url] = previous
            return False
        return True

    def _entry_path(self, url: str) -> Path:
        return self._cache_dir / entry_filename(url)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def needs_normalization(
        self,
        url: str,
        source_content: str,
        force_reprocess: bool = False,
    ) -> bool:
        """
        Return True unless ``url`` has a current, successful entry for
        exactly ``source_content``.

        Checked in order: forced, unknown id, previous failure, schema
        version mismatch, source hash mismatch.
        """
        if force_reprocess:
            return True

        with self._lock:
            meta = self._metadata.get(url)

        if meta is None:
            return True
        if not meta.success:
            return True
        if meta.schema_version != self.schema_version:
            return True
        return meta.source_hash != hash_content(source_content)

    def get_urls_needing_normalization(
        self,
        sources: Iterable[Tuple[str, str]],
        force_reprocess: bool = False,
    ) -> List[Tuple[str, str]]:
        """Filter ``(url, source_content)`` pairs down to those needing work."""
        return [
            (url, content)
            for url, content in sources
            if self.needs_normalization(url, content, force_reprocess=force_reprocess)
        ]

    def has(self, url: str) -> bool:
        with self._lock:
            meta = self._metadata.get(url)
        return meta is not None and meta.success and meta.schema_version == self.schema_version

    def get_metadata(self, url: str) -> Optional[CacheMetadata]:
        with self._lock:
            return self._metadata.get(url)

    def get_all_urls(self) -> List[str]:
        with self._lock:
            return list(self._metadata)

    def get(self, url: str) -> Optional[CacheEntry]:
        """
        Load the cached entry for ``url``.

        Returns None if there is no successful metadata record. A missing or
        unreadable entry file drops the stale metadata record.
        """
        with self._lock:
            meta = self._metadata.get(url)
            if meta is None or not meta.success:
                return None

            path = self._entry_path(url)
            try:
                with path.open("r", encoding="utf-8") as f:
                    return CacheEntry.model_validate(json.load(f))
            except FileNotFoundError:
                logger.warning("Cache entry missing for %s, dropping metadata", url)
            except (OSError, ValueError, ValidationError) as exc:
                logger.warning(
                    "Cache entry unreadable for %s (%s), dropping metadata",
                    url,
                    type(exc).__name__,
                )

            self._commit(url, None)
            return None

    def get_all_by_type(self, content_type: str) -> List[CacheEntry]:
        """All current, successful entries of one content type."""
        with self._lock:
            urls = [
                url
                for url, meta in self._metadata.items()
                if meta.content_type == content_type
                and meta.success
                and meta.schema_version == self.schema_version
            ]

        entries: List[CacheEntry] = []
        for url in urls:
            entry = self.get(url)
            if entry is not None:
                entries.append(entry)
        return entries

    def get_stats(self) -> CacheStats:
        """
        Summarize the cache.

        Outdated entries (older schema version) are counted separately and
        not included in the success or failure counts.
        """
        with self._lock:
            stats = CacheStats(total_entries=len(self._metadata))
            for url, meta in self._metadata.items():
                type_stats = stats.by_content_type.setdefault(meta.content_type, TypeStats())
                if meta.schema_version != self.schema_version:
                    stats.outdated_entries += 1
                elif meta.success:
                    stats.successful_entries += 1
                    type_stats.success += 1
                else:
                    stats.failed_entries += 1
                    type_stats.failed += 1

                path = self._entry_path(url)
                try:
                    stats.total_size_bytes += path.stat().st_size
                except FileNotFoundError:
                    pass
            return stats

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set(
        self,
        url: str,
        content_type: str,
        data: NormalizedBase,
        chunks: Sequence[ContentChunk],
        source_content: str,
        model_id: str = DIRECT_MODEL_ID,
    ) -> bool:
        """
        Store a successful normalization.

        Returns False (and logs) if either file could not be written; the id
        then still reads as needing normalization. Raises
        ``UnsupportedTypeError`` if ``content_type`` has no registered handler.
        """
        _require_registered(content_type)
        entry = CacheEntry(
            url=url,
            content_type=content_type,
            data=data,
            chunks=list(chunks),
            source_hash=hash_content(source_content),
            schema_version=self.schema_version,
            model=model_id,
        )
        meta = CacheMetadata(
            url=url,
            content_type=content_type,
            source_hash=entry.source_hash,
            schema_version=entry.schema_version,
            timestamp=entry.timestamp,
            success=True,
        )

        with self._lock:
            try:
                _write_json_atomic(
                    self._entry_path(url),
                    entry.model_dump(mode="json", by_alias=True, exclude_none=True),
                )
            except CacheIOError as exc:
                logger.error("Cache entry write failed for %s: %s", url, exc)
                return False
            return self._commit(url, meta)

    def set_failed(
        self,
        url: str,
        content_type: str,
        source_content: str,
        error_message: str,
    ) -> bool:
        """Record a failed attempt; no entry file is written."""
        _require_registered(content_type)
        meta = CacheMetadata(
            url=url,
            content_type=content_type,
            source_hash=hash_content(source_content),
            schema_version=self.schema_version,
            success=False,
            error_message=error_message,
        )
        with self._lock:
            return self._commit(url, meta)

    def remove(self, url: str) -> bool:
        with self._lock:
            path = self._entry_path(url)
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning("Failed to delete cache entry %s: %s", path, type(exc).__name__)
            return self._commit(url, None)

    def clear(self) -> None:
        """Delete every entry file and empty the index (the index file is kept)."""
        with self._lock:
            for path in self._cache_dir.glob("*.json"):
                if path.name == METADATA_FILENAME:
                    continue
                try:
                    path.unlink()
                except OSError as exc:
                    logger.warning("Failed to delete cache entry %s: %s", path, type(exc).__name__)

            self._metadata.clear()
            try:
                self._save_metadata()
            except CacheIOError as exc:
                logger.error("Cache metadata write failed during clear: %s", exc)
