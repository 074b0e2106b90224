"""
Parsed Record Models

The loosely-structured input produced by the external wiki parser: one
variant per content type, discriminated by ``type``. Every variant carries at
minimum a non-empty ``name``.
"""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Mapping, Optional, Union

from pydantic import Field, TypeAdapter, field_validator

from ..core.errors import UnsupportedTypeError
from .common import (
    CONTENT_TYPES,
    ArmorNegation,
    ArmorResistance,
    AttackPatterns,
    AttributeRequirements,
    BossDamageNegation,
    BossPhase,
    BossReward,
    HpByPlayerCount,
    MerchantItem,
    NightfarerAbility,
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
    VesselInfo,
    WeaponScaling,
    WeaponStats,
)


class ParsedBase(RecordModel):
    name: str = Field(..., min_length=1)
    source_url: Optional[str] = None
    description: str = ""
    parse_success: bool = True
    parse_warnings: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class ParsedBoss(ParsedBase):
    type: Literal["boss"] = "boss"
    category: str = ""
    weaknesses: List[str] = Field(default_factory=list)
    phases: List[BossPhase] = Field(default_factory=list)
    strategies: List[str] = Field(default_factory=list)
    rewards: List[BossReward] = Field(default_factory=list)
    location: str = ""
    hp: Optional[int] = None
    hp_by_player_count: Optional[HpByPlayerCount] = None
    stance: Optional[Number] = None
    parry_info: Optional[ParryInfo] = None
    damage_negation: Optional[BossDamageNegation] = None
    status_resistances: Optional[StatusResistances] = None
    stronger_vs: Optional[List[str]] = None
    damage_types_dealt: Optional[List[str]] = None
    status_effects_inflicted: Optional[List[str]] = None
    attack_patterns: Optional[AttackPatterns] = None


class ParsedWeapon(ParsedBase):
    type: Literal["weapon"] = "weapon"
    weapon_type: str = ""
    stats: WeaponStats = Field(default_factory=WeaponStats)
    status_buildup: Optional[StatusBuildup] = None
    scaling: WeaponScaling = Field(default_factory=WeaponScaling)
    skill: str = ""
    requirements: AttributeRequirements = Field(default_factory=AttributeRequirements)
    weight: Optional[Number] = None
    location: str = ""
    passive_benefits: Optional[List[str]] = None
    unique_effect: Optional[str] = None
    upgrade_progression: Optional[UpgradeProgression] = None


class ParsedEnemy(ParsedBase):
    type: Literal["enemy"] = "enemy"
    category: str = ""
    locations: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    drops: List[str] = Field(default_factory=list)
    hp: Optional[int] = None
    runes: Optional[int] = None


class ParsedRelic(ParsedBase):
    type: Literal["relic"] = "relic"
    color: str = ""
    tier: str = ""
    effects: List[str] = Field(default_factory=list)
    class_effects: Optional[List[RelicClassEffect]] = None
    location: str = ""


class ParsedNightfarer(ParsedBase):
    type: Literal["nightfarer"] = "nightfarer"
    stats: NightfarerStats = Field(default_factory=NightfarerStats)
    passive: Optional[NightfarerAbility] = None
    skill: Optional[NightfarerAbility] = None
    ultimate: Optional[NightfarerAbility] = None
    vessel: Optional[VesselInfo] = None
    progression: Optional[NightfarerProgression] = None


class ParsedSkill(ParsedBase):
    type: Literal["skill"] = "skill"
    fp_cost: Optional[Number] = None
    weapon_types: List[str] = Field(default_factory=list)
    effect: str = ""
    stamina_cost: Optional[Number] = None
    location: str = ""


class ParsedTalisman(ParsedBase):
    type: Literal["talisman"] = "talisman"
    effect: str = ""
    weight: Optional[Number] = None
    location: str = ""


class ParsedSpell(ParsedBase):
    type: Literal["spell"] = "spell"
    spell_type: str = ""
    fp_cost: Optional[Number] = None
    slots: Optional[int] = None
    effect: str = ""
    requirements: AttributeRequirements = Field(default_factory=AttributeRequirements)
    location: str = ""


class ParsedArmor(ParsedBase):
    type: Literal["armor"] = "armor"
    slot: str = ""
    damage_negation: ArmorNegation = Field(default_factory=ArmorNegation)
    resistance: ArmorResistance = Field(default_factory=ArmorResistance)
    weight: Optional[Number] = None
    location: str = ""


class ParsedShield(ParsedBase):
    type: Literal["shield"] = "shield"
    shield_type: str = ""
    guard: ArmorNegation = Field(default_factory=ArmorNegation)
    guard_boost: Optional[Number] = None
    skill: str = ""
    weight: Optional[Number] = None
    requirements: AttributeRequirements = Field(default_factory=AttributeRequirements)
    location: str = ""


class ParsedNPC(ParsedBase):
    type: Literal["npc"] = "npc"
    role: str = ""
    location: str = ""
    quests: List[str] = Field(default_factory=list)
    services: List[str] = Field(default_factory=list)


class ParsedMerchant(ParsedBase):
    type: Literal["merchant"] = "merchant"
    location: str = ""
    inventory: List[MerchantItem] = Field(default_factory=list)


class ParsedLocation(ParsedBase):
    type: Literal["location"] = "location"
    region: str = ""
    elemental_affinity: Optional[str] = None
    items: List[str] = Field(default_factory=list)
    enemies: List[str] = Field(default_factory=list)
    bosses: List[str] = Field(default_factory=list)
    connections: List[str] = Field(default_factory=list)
    crystal_types: Optional[List[str]] = None
    favor: Optional[str] = None


class ParsedExpedition(ParsedBase):
    type: Literal["expedition"] = "expedition"
    difficulty: str = ""
    recommended_level: Optional[int] = None
    objectives: List[str] = Field(default_factory=list)
    rewards: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)


class ParsedItem(ParsedBase):
    type: Literal["item"] = "item"
    category: str = ""
    effect: str = ""
    locations: List[str] = Field(default_factory=list)
    uses: Optional[int] = None
    purchase_locations: Optional[List[PurchaseLocation]] = None


ParsedRecord = Annotated[
    Union[
        ParsedBoss,
        ParsedWeapon,
        ParsedEnemy,
        ParsedRelic,
        ParsedNightfarer,
        ParsedSkill,
        ParsedTalisman,
        ParsedSpell,
        ParsedArmor,
        ParsedShield,
        ParsedNPC,
        ParsedMerchant,
        ParsedLocation,
        ParsedExpedition,
        ParsedItem,
    ],
    Field(discriminator="type"),
]

_parsed_adapter: TypeAdapter = TypeAdapter(ParsedRecord)


def parse_record(data: Mapping[str, Any]) -> ParsedRecord:
    """
    Validate a raw parser dict into the matching ``Parsed*`` variant.

    Raises
    ------
    UnsupportedTypeError
        If ``type`` is missing or not one of the known content types.
    pydantic.ValidationError
        If the fields do not match the variant's schema.
    """
    content_type = data.get("type")
    if content_type not in CONTENT_TYPES:
        raise UnsupportedTypeError(content_type)
    return _parsed_adapter.validate_python(dict(data))
