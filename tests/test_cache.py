"""
Normalization Cache Tests

Covers the per-id state machine, schema-version invalidation, persistence
across instances and tolerance of damaged files.
"""

import json

import pytest

from nightreign_corpus.core.errors import CacheIOError, UnsupportedTypeError
from nightreign_corpus.normalizer import cache as cache_module
from nightreign_corpus.normalizer.cache import (
    METADATA_FILENAME,
    NormalizedCache,
    entry_filename,
    hash_content,
)
from nightreign_corpus.normalizer.engine import normalize

URL = "https://nightreign.wiki.fextralife.com/Gladius"
HTML = "<html><body>Gladius, Beast of Night</body></html>"


def store(cache, record, url=URL, html=HTML):
    result = normalize(record)
    assert cache.set(url, result.data.type, result.data, result.chunks, html, "direct")
    return result


class TestHelpers:

    def test_hash_content_is_sha256(self):
        assert hash_content("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_entry_filename(self):
        name = entry_filename(URL)

        assert name.startswith("nightreign_wiki_fextralife_com_Gladius_")
        assert name.endswith(".json")
        assert entry_filename(URL) == name
        assert entry_filename(URL + "2") != name


class TestStateMachine:
    """Tests for needs_normalization transitions."""

    def test_unknown_id_needs_normalization(self, cache):
        assert cache.needs_normalization(URL, HTML)
        assert not cache.has(URL)
        assert cache.get(URL) is None

    def test_success_with_same_source_is_skipped(self, cache, gladius):
        store(cache, gladius)

        assert not cache.needs_normalization(URL, HTML)
        assert cache.needs_normalization(URL, HTML, force_reprocess=True)
        assert cache.has(URL)

    def test_changed_source_needs_normalization(self, cache, gladius):
        store(cache, gladius)
        assert cache.needs_normalization(URL, HTML + " ")

    def test_failure_always_forces_retry(self, cache, gladius):
        store(cache, gladius)
        assert cache.set_failed(URL, "boss", HTML, "NormalizationError: boom")

        assert cache.needs_normalization(URL, HTML)
        assert not cache.has(URL)
        assert cache.get(URL) is None
        assert cache.get_metadata(URL).error_message == "NormalizationError: boom"

    def test_unregistered_type_is_rejected(self, cache):
        with pytest.raises(UnsupportedTypeError):
            cache.set_failed(URL, "quest", HTML, "boom")
        assert cache.get_metadata(URL) is None

    def test_failed_attempt_writes_no_entry(self, cache):
        cache.set_failed(URL, "boss", HTML, "boom")

        files = sorted(p.name for p in cache.cache_dir.iterdir())
        assert files == [METADATA_FILENAME]

    def test_get_returns_stored_entry(self, cache, gladius):
        result = store(cache, gladius)
        entry = cache.get(URL)

        assert entry.data == result.data
        assert entry.chunks == list(result.chunks)
        assert entry.source_hash == hash_content(HTML)
        assert entry.schema_version == cache_module.SCHEMA_VERSION
        assert entry.model == "direct"


class TestSchemaVersion:
    """Bumping the version invalidates without deleting files."""

    def test_bump_invalidates_all_entries(self, tmp_path, gladius, sample_records):
        cache_dir = str(tmp_path / "normalized")
        old = NormalizedCache(cache_dir=cache_dir, schema_version=3)
        store(old, gladius)
        store(old, sample_records[1], url="weapon-1")
        files_before = sorted(p.name for p in old.cache_dir.iterdir())

        new = NormalizedCache(cache_dir=cache_dir, schema_version=4)

        assert new.needs_normalization(URL, HTML)
        assert new.needs_normalization("weapon-1", HTML)
        assert not new.has(URL)
        assert sorted(p.name for p in new.cache_dir.iterdir()) == files_before

        stats = new.get_stats()
        assert stats.outdated_entries == 2
        assert stats.successful_entries == 0

    def test_rollback_reactivates_entries(self, tmp_path, gladius):
        cache_dir = str(tmp_path / "normalized")
        store(NormalizedCache(cache_dir=cache_dir, schema_version=3), gladius)

        NormalizedCache(cache_dir=cache_dir, schema_version=4)
        rolled_back = NormalizedCache(cache_dir=cache_dir, schema_version=3)

        assert not rolled_back.needs_normalization(URL, HTML)


class TestPersistence:

    def test_reopened_cache_sees_entries(self, tmp_path, gladius):
        cache_dir = str(tmp_path / "normalized")
        store(NormalizedCache(cache_dir=cache_dir), gladius)

        reopened = NormalizedCache(cache_dir=cache_dir)

        assert not reopened.needs_normalization(URL, HTML)
        assert reopened.get(URL).data.name == "Gladius"

    def test_corrupt_metadata_starts_empty(self, tmp_path):
        cache_dir = tmp_path / "normalized"
        cache_dir.mkdir()
        (cache_dir / METADATA_FILENAME).write_text("{not json", encoding="utf-8")

        cache = NormalizedCache(cache_dir=str(cache_dir))
        assert cache.get_all_urls() == []

    def test_missing_entry_file_drops_metadata(self, cache, gladius):
        store(cache, gladius)
        (cache.cache_dir / entry_filename(URL)).unlink()

        assert cache.get(URL) is None
        assert cache.get_all_urls() == []
        assert cache.needs_normalization(URL, HTML)

    def test_unreadable_entry_file_drops_metadata(self, cache, gladius):
        store(cache, gladius)
        (cache.cache_dir / entry_filename(URL)).write_text("garbage", encoding="utf-8")

        assert cache.get(URL) is None
        assert URL not in cache.get_all_urls()

    def test_metadata_file_is_plain_json(self, cache, gladius):
        store(cache, gladius)
        with (cache.cache_dir / METADATA_FILENAME).open(encoding="utf-8") as f:
            raw = json.load(f)

        assert raw[URL]["success"] is True
        assert raw[URL]["contentType"] == "boss"
        assert raw[URL]["schemaVersion"] == cache_module.SCHEMA_VERSION


class TestWriteFailures:

    def test_metadata_write_failure_is_not_cached(self, cache, gladius, monkeypatch):
        def failing_write(path, payload):
            raise CacheIOError("disk full", str(path))

        monkeypatch.setattr(cache_module, "_write_json_atomic", failing_write)
        result = normalize(gladius)

        assert cache.set(URL, "boss", result.data, result.chunks, HTML) is False
        assert cache.set_failed(URL, "boss", HTML, "boom") is False
        assert cache.needs_normalization(URL, HTML)
        assert cache.get_all_urls() == []


class TestQueries:

    def test_stats_and_type_listing(self, cache, gladius, sample_records):
        store(cache, gladius)
        store(cache, sample_records[1], url="weapon-1")
        cache.set_failed("weapon-2", "weapon", "<html/>", "boom")

        stats = cache.get_stats()
        assert stats.total_entries == 3
        assert stats.successful_entries == 2
        assert stats.failed_entries == 1
        assert stats.total_size_bytes > 0
        assert stats.by_content_type["weapon"].success == 1
        assert stats.by_content_type["weapon"].failed == 1

        weapons = cache.get_all_by_type("weapon")
        assert [e.url for e in weapons] == ["weapon-1"]

    def test_urls_needing_normalization(self, cache, gladius):
        store(cache, gladius)
        pending = cache.get_urls_needing_normalization([(URL, HTML), ("new", "<p/>")])
        assert pending == [("new", "<p/>")]

    def test_remove_and_clear(self, cache, gladius, sample_records):
        store(cache, gladius)
        store(cache, sample_records[1], url="weapon-1")

        cache.remove(URL)
        assert cache.needs_normalization(URL, HTML)
        assert not (cache.cache_dir / entry_filename(URL)).exists()

        cache.clear()
        assert cache.get_all_urls() == []
        assert sorted(p.name for p in cache.cache_dir.iterdir()) == [METADATA_FILENAME]
