"""
Normalized Record Models

The canonical, search-ready schema: one variant per content type,
discriminated by ``type``.

Absent or unknown data is represented by omitting the field (``None`` in
Python, dropped on serialization), never by a placeholder string. ``tags`` is
always present and deduplicated.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from .common import (
    CONTENT_TYPES,
    ArmorNegation,
    ArmorResistance,
    AttackPatterns,
    AttributeRequirements,
    BossDamageNegation,
    BossPhase,
    HpByPlayerCount,
    MerchantItem,
    NightfarerProgression,
    NightfarerStats,
    Number,
    ParryInfo,
    PurchaseLocation,
    RecordModel,
    RelicClassEffect,
    StatusBuildup,
    StatusResistances,
    UpgradeProgression,
    WeaponScaling,
    WeaponStats,
)


class NormalizedBase(RecordModel):
    name: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )


class NormalizedBoss(NormalizedBase):
    type: Literal["boss"] = "boss"
    category: str = "Boss"
    location: Optional[str] = None
    weaknesses: List[str] = Field(default_factory=list)
    phases: List[BossPhase] = Field(default_factory=list)
    strategies: Optional[str] = None
    rewards: Optional[str] = None
    hp_by_player_count: Optional[HpByPlayerCount] = None
    stance: Optional[Number] = None
    parry_info: Optional[ParryInfo] = None
    damage_negation: Optional[BossDamageNegation] = None
    status_resistances: Optional[StatusResistances] = None
    stronger_vs: Optional[List[str]] = None
    damage_types_dealt: Optional[List[str]] = None
    status_effects_inflicted: Optional[List[str]] = None
    attack_patterns: Optional[AttackPatterns] = None


class NormalizedWeapon(NormalizedBase):
    type: Literal["weapon"] = "weapon"
    weapon_type: str = "Weapon"
    stats: WeaponStats = Field(default_factory=WeaponStats)
    status_buildup: Optional[StatusBuildup] = None
    scaling: WeaponScaling = Field(default_factory=WeaponScaling)
    requirements: Optional[AttributeRequirements] = None
    weight: Optional[Number] = None
    skill: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    passive_benefits: Optional[List[str]] = None
    unique_effect: Optional[str] = None
    upgrade_progression: Optional[UpgradeProgression] = None


class NormalizedEnemy(NormalizedBase):
    type: Literal["enemy"] = "enemy"
    category: str = "Enemy"
    locations: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    drops: List[str] = Field(default_factory=list)
    strategies: Optional[str] = None
    hp: Optional[int] = None
    runes: Optional[int] = None


class NormalizedRelic(NormalizedBase):
    type: Literal["relic"] = "relic"
    color: Optional[str] = None
    tier: Optional[str] = None
    effects: List[str] = Field(default_factory=list)
    class_effects: Optional[List[RelicClassEffect]] = None
    location: Optional[str] = None


class NormalizedNightfarer(NormalizedBase):
    type: Literal["nightfarer"] = "nightfarer"
    stats: NightfarerStats = Field(default_factory=NightfarerStats)
    passive: Optional[str] = None
    skill: Optional[str] = None
    ultimate: Optional[str] = None
    vessel: Optional[str] = None
    progression: Optional[NightfarerProgression] = None


class NormalizedSkill(NormalizedBase):
    type: Literal["skill"] = "skill"
    fp_cost: Optional[Number] = None
    stamina_cost: Optional[Number] = None
    weapon_types: List[str] = Field(default_factory=list)
    effect: Optional[str] = None
    location: Optional[str] = None


class NormalizedTalisman(NormalizedBase):
    type: Literal["talisman"] = "talisman"
    effect: Optional[str] = None
    weight: Optional[Number] = None
    location: Optional[str] = None


class NormalizedSpell(NormalizedBase):
    type: Literal["spell"] = "spell"
    spell_type: str = "Spell"
    fp_cost: Optional[Number] = None
    slots: Optional[int] = None
    effect: Optional[str] = None
    requirements: Optional[str] = None
    location: Optional[str] = None


class NormalizedArmor(NormalizedBase):
    type: Literal["armor"] = "armor"
    slot: Optional[str] = None
    damage_negation: ArmorNegation = Field(default_factory=ArmorNegation)
    resistance: ArmorResistance = Field(default_factory=ArmorResistance)
    weight: Optional[Number] = None
    poise: Optional[Number] = None
    location: Optional[str] = None


class NormalizedShield(NormalizedBase):
    type: Literal["shield"] = "shield"
    shield_type: str = "Shield"
    skill: Optional[str] = None
    requirements: Optional[str] = None
    weight: Optional[Number] = None
    guard_boost: Optional[Number] = None
    guard: Optional[ArmorNegation] = None
    location: Optional[str] = None


class NormalizedNPC(NormalizedBase):
    type: Literal["npc"] = "npc"
    role: str = "NPC"
    location: Optional[str] = None
    quests: List[str] = Field(default_factory=list)
    services: List[str] = Field(default_factory=list)


class NormalizedMerchant(NormalizedBase):
    type: Literal["merchant"] = "merchant"
    location: Optional[str] = None
    inventory: List[MerchantItem] = Field(default_factory=list)
    notable_items: List[str] = Field(default_factory=list)


class NormalizedLocation(NormalizedBase):
    type: Literal["location"] = "location"
    region: Optional[str] = None
    description: Optional[str] = None
    notable_items: List[str] = Field(default_factory=list)
    enemies: List[str] = Field(default_factory=list)
    bosses: List[str] = Field(default_factory=list)
    connections: List[str] = Field(default_factory=list)
    elemental_affinity: Optional[str] = None
    crystal_types: Optional[List[str]] = None
    favor: Optional[str] = None


class NormalizedExpedition(NormalizedBase):
    type: Literal["expedition"] = "expedition"
    difficulty: Optional[str] = None
    recommended_level: Optional[int] = None
    objectives: List[str] = Field(default_factory=list)
    rewards: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)
    strategies: Optional[str] = None


class NormalizedItem(NormalizedBase):
    type: Literal["item"] = "item"
    category: str = "Item"
    effect: Optional[str] = None
    description: Optional[str] = None
    locations: List[str] = Field(default_factory=list)
    uses: Optional[int] = None
    purchase_locations: Optional[List[PurchaseLocation]] = None


NormalizedRecord = Annotated[
    Union[
        NormalizedBoss,
        NormalizedWeapon,
        NormalizedEnemy,
        NormalizedRelic,
        NormalizedNightfarer,
        NormalizedSkill,
        NormalizedTalisman,
        NormalizedSpell,
        NormalizedArmor,
        NormalizedShield,
        NormalizedNPC,
        NormalizedMerchant,
        NormalizedLocation,
        NormalizedExpedition,
        NormalizedItem,
    ],
    Field(discriminator="type"),
]


class NormalizedExtension(NormalizedBase):
    """
    Stored form of a record whose type was registered at runtime.

    Keeps every serialized field, since no schema for the type is known here.
    """

    type: str = Field(..., min_length=1)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="allow",
    )


_normalized_adapter: TypeAdapter = TypeAdapter(NormalizedRecord)


def dump_record(record: NormalizedBase) -> Dict[str, Any]:
    """Serialize a normalized record to its camelCase JSON form, omitting absent fields."""
    return record.model_dump(mode="json", by_alias=True, exclude_none=True)


def load_record(data: Mapping[str, Any]) -> NormalizedBase:
    """
    Rebuild a normalized record from its serialized form.

    Built-in types validate into their own variant; any other type comes back
    as a ``NormalizedExtension``.
    """
    if data.get("type") in CONTENT_TYPES:
        return _normalized_adapter.validate_python(dict(data))
    return NormalizedExtension.model_validate(dict(data))
