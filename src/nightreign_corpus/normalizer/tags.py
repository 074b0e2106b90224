"""
Search Tag Rules

Pure, deterministic functions deriving lowercase, hyphen-joined search tags
from a parsed record: one function per content type.

Every rule inspects categorical strings, numeric thresholds, list membership
or keywords in free text. Missing optional fields contribute nothing and never
raise. The same input always yields the same tags, deduplicated, in first-seen
order.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from ..records.common import Number
from ..records.parsed import (
    ParsedArmor,
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
)


_WHITESPACE = re.compile(r"\s+")
_INVALID_TAG_CHARS = re.compile(r"[^a-z0-9-]")
_HAS_ALNUM = re.compile(r"[a-z0-9]")

HIGH_SCALING_GRADES = ("S", "A", "B")
ELEMENTAL_DAMAGE_TYPES = ("magic", "fire", "lightning", "holy")


# ---------------------------------------------------------------------
# Tag Normalization
# ---------------------------------------------------------------------

def to_tag(value: str) -> str:
    """
    Normalize a string to tag form.

    Lowercase, trim, collapse whitespace runs to single hyphens, and strip any
    character outside ``[a-z0-9-]``. ``"Scarlet Rot"`` and ``"scarlet-rot "``
    both become ``"scarlet-rot"``.
    """
    tag = _WHITESPACE.sub("-", value.lower().strip())
    return _INVALID_TAG_CHARS.sub("", tag)


class TagSet:
    """Ordered, deduplicated collection of normalized tags."""

    def __init__(self) -> None:
        self._tags: Dict[str, None] = {}

    def add(self, value: Optional[str], suffix: str = "") -> None:
        if not value:
            return
        tag = to_tag(value)
        # Tags made only of hyphens carry no meaning
        if not _HAS_ALNUM.search(tag):
            return
        self._tags[f"{tag}{suffix}"] = None

    def add_all(self, values: Optional[Iterable[str]], suffix: str = "") -> None:
        for value in values or ():
            self.add(value, suffix)

    def to_list(self) -> List[str]:
        return list(self._tags)


def _mentions(text: str, *keywords: str) -> bool:
    return any(keyword in text for keyword in keywords)


def _positive(value: Optional[Number]) -> bool:
    return value is not None and value > 0


# ---------------------------------------------------------------------
# Combat Entities
# ---------------------------------------------------------------------

def boss_tags(parsed: ParsedBoss) -> List[str]:
    tags = TagSet()

    category = parsed.category.lower()
    if "night lord" in category:
        tags.add("night-lord")
    elif "night boss" in category:
        tags.add("night-boss")
    elif "field boss" in category:
        tags.add("field-boss")
    elif "mini boss" in category:
        tags.add("mini-boss")
    elif "boss" in category:
        tags.add("boss")

    tags.add_all(parsed.weaknesses, "-weak")
    tags.add_all(parsed.stronger_vs, "-resistant")

    if parsed.parry_info is not None:
        tags.add("parryable" if parsed.parry_info.can_parry else "non-parryable")

    if parsed.stance is not None:
        if parsed.stance >= 150:
            tags.add("high-stance")
        elif parsed.stance <= 80:
            tags.add("low-stance")
        tags.add("stance-breakable")

    tags.add_all(parsed.status_effects_inflicted, "-inflict")

    if parsed.damage_types_dealt and any(
        d.strip().lower() in ELEMENTAL_DAMAGE_TYPES for d in parsed.damage_types_dealt
    ):
        tags.add("elemental")

    if len(parsed.phases) > 1:
        tags.add("multi-phase")

    res = parsed.status_resistances
    if res is not None:
        for value, label in (
            (res.poison, "poison"),
            (res.scarlet_rot, "rot"),
            (res.blood_loss, "bleed"),
            (res.frostbite, "frost"),
            (res.sleep, "sleep"),
            (res.madness, "madness"),
        ):
            if value is not None and value.immune:
                tags.add(label, "-immune")

    return tags.to_list()


def enemy_tags(parsed: ParsedEnemy) -> List[str]:
    tags = TagSet()
    tags.add(parsed.category)
    tags.add_all(parsed.weaknesses, "-weak")
    return tags.to_list()


# ---------------------------------------------------------------------
# Equipment
# ---------------------------------------------------------------------

def weapon_tags(parsed: ParsedWeapon) -> List[str]:
    tags = TagSet()
    tags.add(parsed.weapon_type)

    scaling = parsed.scaling
    for grade, tag in (
        (scaling.strength, "str-weapon"),
        (scaling.dexterity, "dex-weapon"),
        (scaling.intelligence, "int-weapon"),
        (scaling.faith, "fai-weapon"),
        (scaling.arcane, "arc-weapon"),
    ):
        if grade and grade.strip().upper() in HIGH_SCALING_GRADES:
            tags.add(tag)

    stats = parsed.stats
    for value, tag in (
        (stats.magic_damage, "magic-damage"),
        (stats.fire_damage, "fire-damage"),
        (stats.lightning_damage, "lightning-damage"),
        (stats.holy_damage, "holy-damage"),
    ):
        if _positive(value):
            tags.add(tag)

    # Buildup tags let "what weapon bleeds?" match boss weakness tags
    buildup = parsed.status_buildup
    if buildup is not None:
        if _positive(buildup.blood_loss):
            tags.add("bleed")
            tags.add("blood-loss")
        if _positive(buildup.frostbite):
            tags.add("frost")
            tags.add("frostbite")
        if _positive(buildup.poison):
            tags.add("poison")
        if _positive(buildup.scarlet_rot):
            tags.add("rot")
            tags.add("scarlet-rot")
        if _positive(buildup.sleep):
            tags.add("sleep")
        if _positive(buildup.madness):
            tags.add("madness")

    if parsed.unique_effect and parsed.unique_effect.strip():
        tags.add("unique-effect")

    return tags.to_list()


def armor_tags(parsed: ParsedArmor) -> List[str]:
    tags = TagSet()
    tags.add(parsed.slot)

    if parsed.weight is not None:
        if parsed.weight <= 3:
            tags.add("light-armor")
        elif parsed.weight <= 8:
            tags.add("medium-armor")
        else:
            tags.add("heavy-armor")

    res = parsed.resistance
    if res.poise is not None:
        if res.poise >= 15:
            tags.add("high-poise")
        if res.poise <= 3:
            tags.add("low-poise")

    if res.immunity is not None and res.immunity >= 30:
        tags.add("poison-resistant")
    if res.robustness is not None and res.robustness >= 30:
        tags.add("bleed-resistant")
    if res.focus is not None and res.focus >= 30:
        tags.add("focus-resistant")

    return tags.to_list()


def shield_tags(parsed: ParsedShield) -> List[str]:
    tags = TagSet()
    tags.add(parsed.shield_type)

    if parsed.guard_boost is not None:
        if parsed.guard_boost >= 60:
            tags.add("high-guard")
        if parsed.guard_boost <= 30:
            tags.add("low-guard")

    if parsed.guard.physical is not None and parsed.guard.physical >= 100:
        tags.add("100-block")

    skill = parsed.skill.lower()
    if "parry" in skill:
        tags.add("parry")
    if "bash" in skill:
        tags.add("bash")

    if parsed.weight is not None:
        if parsed.weight <= 3:
            tags.add("light")
        if parsed.weight >= 10:
            tags.add("heavy")

    return tags.to_list()


def talisman_tags(parsed: ParsedTalisman) -> List[str]:
    tags = TagSet()

    effect = parsed.effect.lower()
    if _mentions(effect, "damage", "attack"):
        tags.add("damage-boost")
    if _mentions(effect, "health", "hp"):
        tags.add("health")
    if "stamina" in effect:
        tags.add("stamina")
    if _mentions(effect, "fp", "mana"):
        tags.add("fp-boost")
    if _mentions(effect, "equip load", "weight"):
        tags.add("equip-load")
    if _mentions(effect, "defense", "negation"):
        tags.add("defensive")
    if "rune" in effect:
        tags.add("rune-boost")
    if _mentions(effect, "heal", "restore"):
        tags.add("healing")

    if parsed.weight is not None:
        if parsed.weight <= 0.5:
            tags.add("light")
        if parsed.weight >= 2.0:
            tags.add("heavy")

    return tags.to_list()


def relic_tags(parsed: ParsedRelic) -> List[str]:
    tags = TagSet()
    tags.add(parsed.color)
    tags.add(parsed.tier)

    effects = " ".join(parsed.effects).lower()
    if _mentions(effects, "damage", "attack"):
        tags.add("damage-boost")
    if _mentions(effects, "health", "hp"):
        tags.add("health")
    if _mentions(effects, "defense", "negation"):
        tags.add("defensive")
    if "stamina" in effects:
        tags.add("stamina")
    if _mentions(effects, "fp", "mana"):
        tags.add("fp")
    if _mentions(effects, "spell", "sorcery", "incantation"):
        tags.add("spell-boost")
    if _mentions(effects, "bleed", "blood"):
        tags.add("bleed")
    if _mentions(effects, "frost", "cold"):
        tags.add("frost")
    if _mentions(effects, "fire", "flame"):
        tags.add("fire")
    if "lightning" in effects:
        tags.add("lightning")
    if _mentions(effects, "holy", "sacred"):
        tags.add("holy")
    if "poison" in effects:
        tags.add("poison")
    if _mentions(effects, "rot", "scarlet"):
        tags.add("rot")

    return tags.to_list()


# ---------------------------------------------------------------------
# Abilities
# ---------------------------------------------------------------------

def nightfarer_tags(parsed: ParsedNightfarer) -> List[str]:
    tags = TagSet()

    stats = parsed.stats
    for value, tag in (
        (stats.strength, "str-build"),
        (stats.dexterity, "dex-build"),
        (stats.intelligence, "int-build"),
        (stats.faith, "fai-build"),
        (stats.arcane, "arc-build"),
        (stats.vigor, "tanky"),
        (stats.mind, "caster"),
    ):
        if value is not None and value >= 14:
            tags.add(tag)

    abilities = " ".join(
        ability.description
        for ability in (parsed.passive, parsed.skill, parsed.ultimate)
        if ability is not None
    ).lower()

    if _mentions(abilities, "melee", "weapon"):
        tags.add("melee")
    if _mentions(abilities, "spell", "sorcery", "incantation"):
        tags.add("spellcaster")
    if _mentions(abilities, "heal", "support"):
        tags.add("support")
    if _mentions(abilities, "tank", "defense"):
        tags.add("tank")
    if _mentions(abilities, "stealth", "sneak"):
        tags.add("stealth")
    if "summon" in abilities:
        tags.add("summoner")

    return tags.to_list()


def skill_tags(parsed: ParsedSkill) -> List[str]:
    tags = TagSet()
    tags.add_all(parsed.weapon_types)

    effect = parsed.effect.lower()
    if _mentions(effect, "aoe", "area"):
        tags.add("aoe")
    if _mentions(effect, "buff", "boost"):
        tags.add("buff")
    if "damage" in effect:
        tags.add("damage")
    if "heal" in effect:
        tags.add("heal")
    if _mentions(effect, "stance", "poise"):
        tags.add("stance-break")
    if _mentions(effect, "bleed", "blood"):
        tags.add("bleed")
    if "frost" in effect:
        tags.add("frost")

    if parsed.fp_cost is not None:
        if parsed.fp_cost <= 10:
            tags.add("low-cost")
        if parsed.fp_cost >= 30:
            tags.add("high-cost")

    return tags.to_list()


def spell_tags(parsed: ParsedSpell) -> List[str]:
    tags = TagSet()
    tags.add(parsed.spell_type)

    if parsed.slots is not None:
        if parsed.slots == 1:
            tags.add("single-slot")
        if parsed.slots >= 3:
            tags.add("multi-slot")

    effect = parsed.effect.lower()
    if _mentions(effect, "projectile", "bolt"):
        tags.add("projectile")
    if _mentions(effect, "aoe", "area"):
        tags.add("aoe")
    if _mentions(effect, "buff", "boost"):
        tags.add("buff")
    if "heal" in effect:
        tags.add("heal")
    if _mentions(effect, "fire", "flame"):
        tags.add("fire")
    if "lightning" in effect:
        tags.add("lightning")
    if _mentions(effect, "frost", "cold"):
        tags.add("frost")
    if _mentions(effect, "holy", "sacred"):
        tags.add("holy")
    if _mentions(effect, "magic", "glintstone"):
        tags.add("magic")

    if parsed.fp_cost is not None:
        if parsed.fp_cost <= 15:
            tags.add("low-cost")
        if parsed.fp_cost >= 40:
            tags.add("high-cost")

    return tags.to_list()


# ---------------------------------------------------------------------
# People and Places
# ---------------------------------------------------------------------

def npc_tags(parsed: ParsedNPC) -> List[str]:
    tags = TagSet()
    tags.add(parsed.role)

    for service in parsed.services:
        service = service.lower()
        if _mentions(service, "sell", "buy"):
            tags.add("vendor")
        if _mentions(service, "teach", "spell"):
            tags.add("spell-vendor")
        if _mentions(service, "upgrade", "smith"):
            tags.add("smithing")
        if "summon" in service:
            tags.add("summon")

    if parsed.quests:
        tags.add("quest-giver")

    return tags.to_list()


def merchant_tags(parsed: ParsedMerchant) -> List[str]:
    tags = TagSet()
    tags.add("vendor")

    names = [item.name.lower() for item in parsed.inventory]
    if any(_mentions(n, "sword", "axe", "staff", "bow") for n in names):
        tags.add("weapons")
    if any(_mentions(n, "armor", "helm", "gauntlet", "greaves") for n in names):
        tags.add("armor")
    if any(_mentions(n, "sorcery", "incantation") for n in names):
        tags.add("spells")
    if any(_mentions(n, "stone", "material") for n in names):
        tags.add("materials")

    return tags.to_list()


def location_tags(parsed: ParsedLocation) -> List[str]:
    tags = TagSet()
    tags.add(parsed.region)
    tags.add(parsed.elemental_affinity)

    if parsed.bosses:
        tags.add("has-boss")
    if parsed.enemies:
        tags.add("has-enemies")
    if parsed.items:
        tags.add("has-loot")

    description = parsed.description.lower()
    if _mentions(description, "dungeon", "cave"):
        tags.add("dungeon")
    if _mentions(description, "legacy", "castle"):
        tags.add("legacy")
    if _mentions(description, "overworld", "field"):
        tags.add("overworld")

    return tags.to_list()


def expedition_tags(parsed: ParsedExpedition) -> List[str]:
    tags = TagSet()
    tags.add(parsed.difficulty)

    if parsed.recommended_level is not None:
        if parsed.recommended_level <= 20:
            tags.add("early-game")
        elif parsed.recommended_level <= 50:
            tags.add("mid-game")
        else:
            tags.add("late-game")

    objectives = " ".join(parsed.objectives).lower()
    if _mentions(objectives, "boss", "defeat"):
        tags.add("boss")
    if _mentions(objectives, "collect", "find"):
        tags.add("collection")
    if "explore" in objectives:
        tags.add("exploration")

    return tags.to_list()


def item_tags(parsed: ParsedItem) -> List[str]:
    tags = TagSet()
    tags.add(parsed.category)

    effect = parsed.effect.lower()
    if _mentions(effect, "unlock", "open"):
        tags.add("unlock")
    if "summon" in effect:
        tags.add("summon")
    if _mentions(effect, "restore", "heal"):
        tags.add("healing")
    if _mentions(effect, "buff", "boost"):
        tags.add("buff")
    if "upgrade" in effect:
        tags.add("upgrade")
    if "craft" in effect:
        tags.add("crafting")
    if _mentions(effect, "imp", "statue"):
        tags.add("imp-statue")

    if parsed.purchase_locations:
        tags.add("purchasable")

    return tags.to_list()
