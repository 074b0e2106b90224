"""
Shared Record Models

Building blocks reused by both the parsed (input) and normalized (output)
record schemas, plus the ``ContentChunk`` retrieval unit.

All models accept camelCase keys (as emitted by the wiki parser) as well as
snake_case attribute names, and are immutable once created.
"""

from __future__ import annotations

from typing import List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------
# Content Types
# ---------------------------------------------------------------------

ContentType = Literal[
    "boss",
    "weapon",
    "enemy",
    "relic",
    "nightfarer",
    "skill",
    "talisman",
    "spell",
    "armor",
    "shield",
    "npc",
    "merchant",
    "location",
    "expedition",
    "item",
]

CONTENT_TYPES: Tuple[str, ...] = (
    "boss",
    "weapon",
    "enemy",
    "relic",
    "nightfarer",
    "skill",
    "talisman",
    "spell",
    "armor",
    "shield",
    "npc",
    "merchant",
    "location",
    "expedition",
    "item",
)

Number = Union[int, float]


# ---------------------------------------------------------------------
# Base Model
# ---------------------------------------------------------------------

class RecordModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------
# Boss Building Blocks
# ---------------------------------------------------------------------

class BossPhase(RecordModel):
    name: str
    description: str = ""
    threshold: Optional[str] = None


class BossReward(RecordModel):
    name: str
    quantity: Optional[int] = None
    type: Optional[str] = None


class HpByPlayerCount(RecordModel):
    solo: Optional[int] = None
    duo: Optional[int] = None
    trio: Optional[int] = None


class ParryInfo(RecordModel):
    can_parry: bool
    parries_required: Optional[int] = None
    notes: Optional[List[str]] = None


class DamageNegationValues(RecordModel):
    standard: Optional[Number] = None
    slash: Optional[Number] = None
    strike: Optional[Number] = None
    pierce: Optional[Number] = None
    magic: Optional[Number] = None
    fire: Optional[Number] = None
    lightning: Optional[Number] = None
    holy: Optional[Number] = None


class BossDamageNegation(RecordModel):
    phase1: Optional[DamageNegationValues] = None
    phase2: Optional[DamageNegationValues] = None


class StatusResistanceValue(RecordModel):
    immune: bool = False
    value: Optional[Number] = None
    progression: Optional[List[Number]] = None


class StatusResistances(RecordModel):
    poison: Optional[StatusResistanceValue] = None
    scarlet_rot: Optional[StatusResistanceValue] = None
    blood_loss: Optional[StatusResistanceValue] = None
    frostbite: Optional[StatusResistanceValue] = None
    sleep: Optional[StatusResistanceValue] = None
    madness: Optional[StatusResistanceValue] = None


class AttackPattern(RecordModel):
    name: str
    description: str = ""
    damage_types: Optional[List[str]] = None
    status_effects: Optional[List[str]] = None
    counter: Optional[str] = None
    tells: Optional[List[str]] = None
    phases: Optional[List[int]] = None


class AttackPatterns(RecordModel):
    general: Optional[List[AttackPattern]] = None
    phase1: Optional[List[AttackPattern]] = None
    phase2: Optional[List[AttackPattern]] = None
    phase3: Optional[List[AttackPattern]] = None


# ---------------------------------------------------------------------
# Equipment Building Blocks
# ---------------------------------------------------------------------

class WeaponStats(RecordModel):
    physical_damage: Optional[Number] = None
    magic_damage: Optional[Number] = None
    fire_damage: Optional[Number] = None
    lightning_damage: Optional[Number] = None
    holy_damage: Optional[Number] = None
    critical: Optional[Number] = None


class WeaponScaling(RecordModel):
    """Scaling grades (S, A, B, C, D, E) per attribute."""

    strength: Optional[str] = None
    dexterity: Optional[str] = None
    intelligence: Optional[str] = None
    faith: Optional[str] = None
    arcane: Optional[str] = None


class StatusBuildup(RecordModel):
    blood_loss: Optional[Number] = None
    frostbite: Optional[Number] = None
    poison: Optional[Number] = None
    scarlet_rot: Optional[Number] = None
    sleep: Optional[Number] = None
    madness: Optional[Number] = None


class AttributeRequirements(RecordModel):
    strength: Optional[int] = None
    dexterity: Optional[int] = None
    intelligence: Optional[int] = None
    faith: Optional[int] = None
    arcane: Optional[int] = None


class UpgradeTierStats(RecordModel):
    atk_pwr: Optional[Number] = None
    dmg_neg: Optional[Number] = None


class UpgradeLevelStats(RecordModel):
    level: int
    common: Optional[UpgradeTierStats] = None
    rare: Optional[UpgradeTierStats] = None
    epic: Optional[UpgradeTierStats] = None
    legendary: Optional[UpgradeTierStats] = None


class ClassUpgrades(RecordModel):
    nightfarer_class: str
    levels: List[UpgradeLevelStats] = Field(default_factory=list)


class UpgradeProgression(RecordModel):
    weapon_name: str
    upgrades_by_class: List[ClassUpgrades] = Field(default_factory=list)


class ArmorNegation(RecordModel):
    physical: Optional[Number] = None
    strike: Optional[Number] = None
    slash: Optional[Number] = None
    pierce: Optional[Number] = None
    magic: Optional[Number] = None
    fire: Optional[Number] = None
    lightning: Optional[Number] = None
    holy: Optional[Number] = None


class ArmorResistance(RecordModel):
    immunity: Optional[Number] = None
    robustness: Optional[Number] = None
    focus: Optional[Number] = None
    vitality: Optional[Number] = None
    poise: Optional[Number] = None


class RelicClassEffect(RecordModel):
    nightfarer_class: str
    effect: str
    notes: Optional[str] = None


# ---------------------------------------------------------------------
# Character Building Blocks
# ---------------------------------------------------------------------

class NightfarerStats(RecordModel):
    vigor: Optional[int] = None
    mind: Optional[int] = None
    endurance: Optional[int] = None
    strength: Optional[int] = None
    dexterity: Optional[int] = None
    intelligence: Optional[int] = None
    faith: Optional[int] = None
    arcane: Optional[int] = None


class NightfarerAbility(RecordModel):
    name: str = ""
    description: str = ""
    fp_cost: Optional[Number] = None


class VesselInfo(RecordModel):
    name: str = ""
    description: str = ""
    starting_weapon: Optional[str] = None
    starting_armor: Optional[str] = None


class LevelStats(RecordModel):
    level: int
    hp: Optional[int] = None
    fp: Optional[int] = None
    stamina: Optional[int] = None


class AttributeProgression(RecordModel):
    level: int
    vigor: Optional[int] = None
    mind: Optional[int] = None
    endurance: Optional[int] = None
    strength: Optional[int] = None
    dexterity: Optional[int] = None
    intelligence: Optional[int] = None
    faith: Optional[int] = None
    arcane: Optional[int] = None


class NightfarerProgression(RecordModel):
    character_name: str
    stat_progression: List[LevelStats] = Field(default_factory=list)
    attribute_progression: Optional[List[AttributeProgression]] = None


# ---------------------------------------------------------------------
# Trade Building Blocks
# ---------------------------------------------------------------------

class MerchantItem(RecordModel):
    name: str
    price: Number
    currency: str = "Runes"


class PurchaseLocation(RecordModel):
    merchant_name: str
    location: str = ""
    price: Number
    stock: Optional[int] = None


# ---------------------------------------------------------------------
# Retrieval Chunk
# ---------------------------------------------------------------------

class ContentChunk(RecordModel):
    """
    One retrievable unit of text about one entity.

    ``content`` is never empty; chunk builders omit a section rather than
    emitting a placeholder. ``type`` is any registered content type, not only
    the built-in ones.
    """

    type: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    section: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )
