"""
Normalization Engine Tests

Covers dispatch, per-type transforms, failure results, the fallback signal
and idempotence.
"""

from typing import Literal, Optional

import pytest

from nightreign_corpus.core.errors import NormalizationError, UnsupportedTypeError
from nightreign_corpus.normalizer import engine
from nightreign_corpus.normalizer.engine import normalize, supports_direct
from nightreign_corpus.records import CONTENT_TYPES, ContentChunk, dump_record, load_record, parse_record
from nightreign_corpus.records.normalized import NormalizedBase
from nightreign_corpus.records.parsed import ParsedBase


class ParsedQuest(ParsedBase):
    type: Literal["quest"] = "quest"
    objective: str = ""


class NormalizedQuest(NormalizedBase):
    type: Literal["quest"] = "quest"
    objective: Optional[str] = None


def quest_tags(parsed):
    return ["quest"]


def transform_quest(parsed, tags):
    return NormalizedQuest(name=parsed.name, objective=parsed.objective or None, tags=tags)


def quest_chunks(record):
    yield ContentChunk(
        type=record.type,
        name=record.name,
        section="overview",
        content=f"{record.name}: {record.objective}",
    )


class TestDispatch:
    """Tests for type dispatch and the registry."""

    def test_every_content_type_is_supported(self):
        for content_type in CONTENT_TYPES:
            assert supports_direct(content_type)
        assert not supports_direct("quest")
        assert not supports_direct(None)
        assert not supports_direct(["boss"])

    @pytest.mark.parametrize("record", [None, "boss", 42])
    def test_non_record_input_needs_fallback(self, record):
        result = normalize(record)

        assert not result.success
        assert result.needs_fallback
        assert isinstance(result.error, UnsupportedTypeError)

    def test_unknown_type_needs_fallback(self):
        result = normalize({"type": "quest", "name": "Find the Key"})

        assert not result.success
        assert result.needs_fallback
        assert result.data is None
        assert isinstance(result.error, UnsupportedTypeError)
        assert result.error_message == "Unknown content type: quest"

    def test_missing_type_needs_fallback(self):
        result = normalize({"name": "Mystery"})
        assert result.needs_fallback

    def test_accepts_parsed_model(self, gladius):
        result = normalize(parse_record(gladius))
        assert result.success
        assert result.data.name == "Gladius"


class TestGladiusExample:
    """The reference scenario from the tag and chunk rules."""

    def test_tags_and_chunks(self, gladius):
        result = normalize(gladius)

        assert result.success
        assert not result.needs_fallback
        for tag in ("night-lord", "fire-weak", "high-stance", "stance-breakable", "non-parryable"):
            assert tag in result.data.tags

        by_section = {c.section: c.content for c in result.chunks}
        assert "Gladius is a Night Lord" in by_section["overview"]
        assert "Stance: 160" in by_section["combat"]
        assert "Not parryable" in by_section["combat"]


class TestTransforms:
    """Per-type field mapping."""

    def test_every_sample_normalizes(self, sample_records):
        for raw in sample_records:
            result = normalize(raw)

            assert result.success, result.error_message
            assert result.data.type == raw["type"]
            assert result.chunks[0].section == "overview"
            for chunk in result.chunks:
                assert chunk.content.strip()
                assert chunk.content == chunk.content.strip()

    def test_boss_joins_strategies_and_rewards(self, sample_records):
        boss = normalize(sample_records[0]).data

        assert boss.strategies == "Stay close.\n\nUse holy damage."
        assert boss.rewards == "Night Lord's Relic"
        assert boss.hp_by_player_count.trio == 11250

    def test_absent_data_is_omitted(self):
        data = dump_record(normalize({"type": "boss", "name": "Nameless", "location": "  "}).data)

        assert data == {"type": "boss", "name": "Nameless", "tags": [], "category": "Boss", "weaknesses": [], "phases": []}

    def test_spell_and_shield_requirements(self, sample_records):
        spell = normalize(sample_records[7]).data
        shield = normalize(sample_records[9]).data
        bare = normalize({"type": "shield", "name": "Buckler"}).data

        assert spell.requirements == "Int 10"
        assert shield.requirements == "Str 16"
        assert bare.requirements is None
        assert bare.guard is None

    def test_merchant_notable_items(self, sample_records):
        merchant = normalize(sample_records[11]).data
        assert merchant.notable_items == ["Ash of War: Lion's Claw"]

    def test_nightfarer_abilities(self, sample_records):
        wylder = normalize(sample_records[4]).data

        assert wylder.passive == "Sixth Sense: Survive one fatal blow."
        assert wylder.vessel == "Wylder's Chalice: Holds two relics."
        assert wylder.ultimate is None

    def test_enemy_and_expedition_strategies_from_description(self, sample_records):
        assert normalize(sample_records[2]).data.strategies == "Keep your distance from the tail swipe."
        assert normalize(sample_records[13]).data.strategies == "Bring fire."

    def test_serialized_form_round_trips(self, sample_records):
        for raw in sample_records:
            record = normalize(raw).data
            assert load_record(dump_record(record)) == record


class TestFailures:
    """Handler exceptions become NormalizationError results."""

    def test_validation_error(self):
        result = normalize({"type": "weapon", "name": "Broken", "weight": "heavy"})

        assert not result.success
        assert not result.needs_fallback
        assert result.data is None
        assert isinstance(result.error, NormalizationError)
        assert result.error.name == "Broken"
        assert result.error_message.startswith("Failed to normalize 'Broken': ValidationError")

    def test_handler_exception_is_captured(self, monkeypatch, gladius):
        def exploding(parsed, tags):
            raise KeyError("phases")

        original = engine._HANDLERS["boss"]
        monkeypatch.setitem(engine._HANDLERS, "boss", original._replace(transform=exploding))

        result = normalize(gladius)

        assert not result.success
        assert result.data is None
        assert result.chunks == ()
        assert isinstance(result.error.cause, KeyError)

    def test_blank_name_is_rejected(self):
        result = normalize({"type": "talisman", "name": "   "})
        assert not result.success
        assert isinstance(result.error, NormalizationError)


class TestIdempotence:

    @pytest.mark.parametrize("index", range(15))
    def test_same_input_same_output(self, sample_records, index):
        first = normalize(sample_records[index])
        second = normalize(sample_records[index])

        assert dump_record(first.data) == dump_record(second.data)
        assert [c.model_dump() for c in first.chunks] == [c.model_dump() for c in second.chunks]


class TestRegistration:

    def test_registering_a_handler(self, monkeypatch, gladius):
        monkeypatch.setattr(engine, "_HANDLERS", dict(engine._HANDLERS))
        engine.register(
            "boss",
            lambda parsed, tags: engine.transform_boss(parsed, tags + ["custom"]),
            engine.tag_rules.boss_tags,
            engine.chunk_builders.boss_chunks,
        )

        result = normalize(gladius)
        assert "custom" in result.data.tags

    def test_new_content_type_end_to_end(self, monkeypatch, cache):
        monkeypatch.setattr(engine, "_HANDLERS", dict(engine._HANDLERS))
        engine.register("quest", transform_quest, quest_tags, quest_chunks)

        result = normalize(ParsedQuest(name="Find the Key", objective="Open the gate"))

        assert result.success
        assert [c.type for c in result.chunks] == ["quest"]
        assert cache.set("https://wiki/quest", "quest", result.data, result.chunks, "<html>quest</html>")

        entry = cache.get("https://wiki/quest")
        assert entry.content_type == "quest"
        assert entry.data.type == "quest"
        assert entry.data.name == "Find the Key"
        assert entry.data.objective == "Open the gate"
        assert entry.data.tags == ["quest"]
        assert list(entry.chunks) == list(result.chunks)

    def test_raw_dict_of_new_type_needs_fallback(self, monkeypatch):
        monkeypatch.setattr(engine, "_HANDLERS", dict(engine._HANDLERS))
        engine.register("quest", transform_quest, quest_tags, quest_chunks)

        result = normalize({"type": "quest", "name": "Find the Key"})

        assert not result.success
        assert result.needs_fallback
