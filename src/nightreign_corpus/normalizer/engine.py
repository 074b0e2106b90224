"""
Deterministic Normalization Engine

This module is the single entry point turning a parsed record into a
normalized record plus its retrieval chunks.

Dispatch
--------
Each content type is served by a ``ContentHandler`` triple registered under
its ``type`` discriminator:

- ``transform(parsed, tags)`` builds the normalized record
- ``tags(parsed)`` derives search tags (see ``tags.py``)
- ``chunks(record)`` slices the record into sections (see ``chunks.py``)

Adding a content type means writing those three functions and calling
``register``; nothing else changes.

Failure Semantics
-----------------
``normalize`` never raises for a bad record. Failures come back as a
``NormalizationResult`` with ``success=False``:

- Unregistered types, and input that is neither a mapping nor a parsed
  record, carry ``UnsupportedTypeError`` and ``needs_fallback=True`` so a
  slower normalization path can take over.
- Any exception inside a handler becomes a ``NormalizationError`` naming the
  record. No partially built record is ever returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError

from ..core.errors import NormalizationError, UnsupportedTypeError
from ..records.common import (
    AttributeRequirements,
    ContentChunk,
    HpByPlayerCount,
    NightfarerAbility,
    VesselInfo,
)
from ..records.normalized import (
    NormalizedArmor,
    NormalizedBase,
    NormalizedBoss,
    NormalizedEnemy,
    NormalizedExpedition,
    NormalizedItem,
    NormalizedLocation,
    NormalizedMerchant,
    NormalizedNightfarer,
    NormalizedNPC,
    NormalizedRelic,
    NormalizedShield,
    NormalizedSkill,
    NormalizedSpell,
    NormalizedTalisman,
    NormalizedWeapon,
)
from ..records.parsed import (
    ParsedArmor,
    ParsedBase,
    ParsedBoss,
    ParsedEnemy,
    ParsedExpedition,
    ParsedItem,
    ParsedLocation,
    ParsedMerchant,
    ParsedNightfarer,
    ParsedNPC,
    ParsedRelic,
    ParsedShield,
    ParsedSkill,
    ParsedSpell,
    ParsedTalisman,
    ParsedWeapon,
    parse_record,
)
from . import chunks as chunk_builders
from . import tags as tag_rules
from .chunks import ChunkSequence

logger = logging.getLogger("corpus.normalizer")

# Merchant goods at or above this price are listed as notable
NOTABLE_PRICE = 1000


# ---------------------------------------------------------------------
# Result and Registry
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class NormalizationResult:
    """
    Outcome of normalizing one record.

    On success ``data`` and ``chunks`` are populated. On failure ``error``
    holds the cause and ``data`` is ``None``.
    """

    success: bool
    data: Optional[NormalizedBase] = None
    chunks: Tuple[ContentChunk, ...] = ()
    error: Optional[Exception] = None
    needs_fallback: bool = False

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return str(self.error)


class ContentHandler(NamedTuple):
    transform: Callable[[Any, List[str]], NormalizedBase]
    tags: Callable[[Any], List[str]]
    chunks: Callable[[Any], Iterable[ContentChunk]]


_HANDLERS: Dict[str, ContentHandler] = {}


def register(
    content_type: str,
    transform: Callable[[Any, List[str]], NormalizedBase],
    tags: Callable[[Any], List[str]],
    chunks: Callable[[Any], Iterable[ContentChunk]],
) -> None:
    """Register (or replace) the handler triple for a content type."""
    _HANDLERS[content_type] = ContentHandler(transform, tags, chunks)


def supports_direct(content_type: Optional[str]) -> bool:
    """Return True if a deterministic handler exists for ``content_type``."""
    return isinstance(content_type, str) and content_type in _HANDLERS


def registered_types() -> Tuple[str, ...]:
    return tuple(_HANDLERS)


# ---------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------

def normalize(parsed: Union[ParsedBase, Mapping[str, Any]]) -> NormalizationResult:
    """
    Normalize one parsed record.

    Parameters
    ----------
    parsed : ParsedBase or Mapping
        A validated ``Parsed*`` model, or the raw dict emitted by the parser
        (validated here).

    Returns
    -------
    NormalizationResult
        Never raises for record-level problems.
    """
    if isinstance(parsed, Mapping):
        content_type = parsed.get("type")
        name = str(parsed.get("name") or "<unnamed>")
    elif isinstance(parsed, ParsedBase):
        content_type = getattr(parsed, "type", None)
        name = parsed.name
    else:
        logger.warning("Not a parsed record: %s", type(parsed).__name__)
        return NormalizationResult(
            success=False,
            error=UnsupportedTypeError(getattr(parsed, "type", None)),
            needs_fallback=True,
        )

    handler = _HANDLERS.get(content_type) if isinstance(content_type, str) else None
    if handler is None:
        logger.warning("No direct handler for '%s' (type=%s), fallback needed", name, content_type)
        return NormalizationResult(
            success=False,
            error=UnsupportedTypeError(content_type),
            needs_fallback=True,
        )

    if isinstance(parsed, Mapping):
        try:
            parsed = parse_record(parsed)
        except UnsupportedTypeError as exc:
            # Registered handler without a parsed schema: only model input works
            logger.warning("Cannot parse raw '%s' record: %s", content_type, exc)
            return NormalizationResult(success=False, error=exc, needs_fallback=True)
        except ValidationError as exc:
            error = NormalizationError(name, exc)
            logger.warning("%s", error)
            return NormalizationResult(success=False, error=error)

    try:
        tags = handler.tags(parsed)
        record = handler.transform(parsed, tags)
        built = tuple(ChunkSequence(handler.chunks, record))
    except Exception as exc:
        error = NormalizationError(name, exc)
        logger.warning("%s", error)
        return NormalizationResult(success=False, error=error)

    logger.debug("Normalized %s '%s' (%d tags, %d chunks)", content_type, name, len(tags), len(built))
    return NormalizationResult(success=True, data=record, chunks=built)


def normalize_many(records: Iterable[Union[ParsedBase, Mapping[str, Any]]]) -> List[NormalizationResult]:
    """Normalize records independently; one failure never affects the others."""
    results = [normalize(record) for record in records]
    failed = sum(1 for r in results if not r.success)
    if failed:
        logger.info("Normalized %d records, %d failed", len(results) - failed, failed)
    return results


# ---------------------------------------------------------------------
# Field Helpers
# ---------------------------------------------------------------------

def _text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _strings(values: Optional[Iterable[str]]) -> List[str]:
    return [v.strip() for v in values or () if v and v.strip()]


def _optional_strings(values: Optional[Iterable[str]]) -> Optional[List[str]]:
    cleaned = _strings(values)
    return cleaned or None


def _has_values(model: Optional[BaseModel]) -> bool:
    if model is None:
        return False
    return any(v is not None for v in model.model_dump().values())


def _requirements(reqs: AttributeRequirements, fields: Tuple[Tuple[str, str], ...]) -> Optional[str]:
    parts = [f"{label} {getattr(reqs, attr)}" for attr, label in fields if getattr(reqs, attr)]
    return ", ".join(parts) or None


def _ability(ability: Optional[Union[NightfarerAbility, VesselInfo]]) -> Optional[str]:
    if ability is None:
        return None
    name = ability.name.strip()
    description = ability.description.strip()
    if name and description:
        return f"{name}: {description}"
    return name or description or None


# ---------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------

def transform_boss(parsed: ParsedBoss, tags: List[str]) -> NormalizedBoss:
    hp_by_player_count = parsed.hp_by_player_count
    if hp_by_player_count is None and parsed.hp is not None:
        hp_by_player_count = HpByPlayerCount(solo=parsed.hp)

    rewards = [r.name.strip() for r in parsed.rewards if r.name.strip()]
    return NormalizedBoss(
        name=parsed.name,
        tags=tags,
        category=_text(parsed.category) or "Boss",
        location=_text(parsed.location),
        weaknesses=_strings(parsed.weaknesses),
        phases=list(parsed.phases),
        strategies=_text("\n\n".join(_strings(parsed.strategies))),
        rewards=_text(", ".join(rewards)),
        hp_by_player_count=hp_by_player_count,
        stance=parsed.stance,
        parry_info=parsed.parry_info,
        damage_negation=parsed.damage_negation,
        status_resistances=parsed.status_resistances,
        stronger_vs=_optional_strings(parsed.stronger_vs),
        damage_types_dealt=_optional_strings(parsed.damage_types_dealt),
        status_effects_inflicted=_optional_strings(parsed.status_effects_inflicted),
        attack_patterns=parsed.attack_patterns,
    )


def transform_weapon(parsed: ParsedWeapon, tags: List[str]) -> NormalizedWeapon:
    return NormalizedWeapon(
        name=parsed.name,
        tags=tags,
        weapon_type=_text(parsed.weapon_type) or "Weapon",
        stats=parsed.stats,
        status_buildup=parsed.status_buildup if _has_values(parsed.status_buildup) else None,
        scaling=parsed.scaling,
        requirements=parsed.requirements if _has_values(parsed.requirements) else None,
        weight=parsed.weight,
        skill=_text(parsed.skill),
        description=_text(parsed.description),
        location=_text(parsed.location),
        passive_benefits=_optional_strings(parsed.passive_benefits),
        unique_effect=_text(parsed.unique_effect),
        upgrade_progression=parsed.upgrade_progression,
    )


def transform_enemy(parsed: ParsedEnemy, tags: List[str]) -> NormalizedEnemy:
    return NormalizedEnemy(
        name=parsed.name,
        tags=tags,
        category=_text(parsed.category) or "Enemy",
        locations=_strings(parsed.locations),
        weaknesses=_strings(parsed.weaknesses),
        drops=_strings(parsed.drops),
        strategies=_text(parsed.description),
        hp=parsed.hp,
        runes=parsed.runes,
    )


def transform_relic(parsed: ParsedRelic, tags: List[str]) -> NormalizedRelic:
    return NormalizedRelic(
        name=parsed.name,
        tags=tags,
        color=_text(parsed.color),
        tier=_text(parsed.tier),
        effects=_strings(parsed.effects),
        class_effects=list(parsed.class_effects) if parsed.class_effects else None,
        location=_text(parsed.location),
    )


def transform_nightfarer(parsed: ParsedNightfarer, tags: List[str]) -> NormalizedNightfarer:
    return NormalizedNightfarer(
        name=parsed.name,
        tags=tags,
        stats=parsed.stats,
        passive=_ability(parsed.passive),
        skill=_ability(parsed.skill),
        ultimate=_ability(parsed.ultimate),
        vessel=_ability(parsed.vessel),
        progression=parsed.progression,
    )


def transform_skill(parsed: ParsedSkill, tags: List[str]) -> NormalizedSkill:
    return NormalizedSkill(
        name=parsed.name,
        tags=tags,
        fp_cost=parsed.fp_cost,
        stamina_cost=parsed.stamina_cost,
        weapon_types=_strings(parsed.weapon_types),
        effect=_text(parsed.effect),
        location=_text(parsed.location),
    )


def transform_talisman(parsed: ParsedTalisman, tags: List[str]) -> NormalizedTalisman:
    return NormalizedTalisman(
        name=parsed.name,
        tags=tags,
        effect=_text(parsed.effect),
        weight=parsed.weight,
        location=_text(parsed.location),
    )


def transform_spell(parsed: ParsedSpell, tags: List[str]) -> NormalizedSpell:
    return NormalizedSpell(
        name=parsed.name,
        tags=tags,
        spell_type=_text(parsed.spell_type) or "Spell",
        fp_cost=parsed.fp_cost,
        slots=parsed.slots,
        effect=_text(parsed.effect),
        requirements=_requirements(
            parsed.requirements,
            (("intelligence", "Int"), ("faith", "Fai"), ("arcane", "Arc")),
        ),
        location=_text(parsed.location),
    )


def transform_armor(parsed: ParsedArmor, tags: List[str]) -> NormalizedArmor:
    return NormalizedArmor(
        name=parsed.name,
        tags=tags,
        slot=_text(parsed.slot),
        damage_negation=parsed.damage_negation,
        resistance=parsed.resistance,
        weight=parsed.weight,
        poise=parsed.resistance.poise,
        location=_text(parsed.location),
    )


def transform_shield(parsed: ParsedShield, tags: List[str]) -> NormalizedShield:
    return NormalizedShield(
        name=parsed.name,
        tags=tags,
        shield_type=_text(parsed.shield_type) or "Shield",
        skill=_text(parsed.skill),
        requirements=_requirements(
            parsed.requirements,
            (("strength", "Str"), ("dexterity", "Dex")),
        ),
        weight=parsed.weight,
        guard_boost=parsed.guard_boost,
        guard=parsed.guard if _has_values(parsed.guard) else None,
        location=_text(parsed.location),
    )


def transform_npc(parsed: ParsedNPC, tags: List[str]) -> NormalizedNPC:
    return NormalizedNPC(
        name=parsed.name,
        tags=tags,
        role=_text(parsed.role) or "NPC",
        location=_text(parsed.location),
        quests=_strings(parsed.quests),
        services=_strings(parsed.services),
    )


def transform_merchant(parsed: ParsedMerchant, tags: List[str]) -> NormalizedMerchant:
    return NormalizedMerchant(
        name=parsed.name,
        tags=tags,
        location=_text(parsed.location),
        inventory=list(parsed.inventory),
        notable_items=[item.name for item in parsed.inventory if item.price >= NOTABLE_PRICE],
    )


def transform_location(parsed: ParsedLocation, tags: List[str]) -> NormalizedLocation:
    return NormalizedLocation(
        name=parsed.name,
        tags=tags,
        region=_text(parsed.region),
        description=_text(parsed.description),
        notable_items=_strings(parsed.items),
        enemies=_strings(parsed.enemies),
        bosses=_strings(parsed.bosses),
        connections=_strings(parsed.connections),
        elemental_affinity=_text(parsed.elemental_affinity),
        crystal_types=_optional_strings(parsed.crystal_types),
        favor=_text(parsed.favor),
    )


def transform_expedition(parsed: ParsedExpedition, tags: List[str]) -> NormalizedExpedition:
    return NormalizedExpedition(
        name=parsed.name,
        tags=tags,
        difficulty=_text(parsed.difficulty),
        recommended_level=parsed.recommended_level,
        objectives=_strings(parsed.objectives),
        rewards=_strings(parsed.rewards),
        locations=_strings(parsed.locations),
        strategies=_text(parsed.description),
    )


def transform_item(parsed: ParsedItem, tags: List[str]) -> NormalizedItem:
    return NormalizedItem(
        name=parsed.name,
        tags=tags,
        category=_text(parsed.category) or "Item",
        effect=_text(parsed.effect),
        description=_text(parsed.description),
        locations=_strings(parsed.locations),
        uses=parsed.uses,
        purchase_locations=list(parsed.purchase_locations) if parsed.purchase_locations else None,
    )


# ---------------------------------------------------------------------
# Built-in Handlers
# ---------------------------------------------------------------------

register("boss", transform_boss, tag_rules.boss_tags, chunk_builders.boss_chunks)
register("weapon", transform_weapon, tag_rules.weapon_tags, chunk_builders.weapon_chunks)
register("enemy", transform_enemy, tag_rules.enemy_tags, chunk_builders.enemy_chunks)
register("relic", transform_relic, tag_rules.relic_tags, chunk_builders.relic_chunks)
register("nightfarer", transform_nightfarer, tag_rules.nightfarer_tags, chunk_builders.nightfarer_chunks)
register("skill", transform_skill, tag_rules.skill_tags, chunk_builders.skill_chunks)
register("talisman", transform_talisman, tag_rules.talisman_tags, chunk_builders.talisman_chunks)
register("spell", transform_spell, tag_rules.spell_tags, chunk_builders.spell_chunks)
register("armor", transform_armor, tag_rules.armor_tags, chunk_builders.armor_chunks)
register("shield", transform_shield, tag_rules.shield_tags, chunk_builders.shield_chunks)
register("npc", transform_npc, tag_rules.npc_tags, chunk_builders.npc_chunks)
register("merchant", transform_merchant, tag_rules.merchant_tags, chunk_builders.merchant_chunks)
register("location", transform_location, tag_rules.location_tags, chunk_builders.location_chunks)
register("expedition", transform_expedition, tag_rules.expedition_tags, chunk_builders.expedition_chunks)
register("item", transform_item, tag_rules.item_tags, chunk_builders.item_chunks)
