"""
Retrieval Chunk Builders

One generator per content type slicing a normalized record into named
sections. Every builder yields an ``overview`` chunk first, then optional
sections gated on their source field being non-empty.

Numeric values are rendered with a fixed format and fixed field order so that
building the same record twice yields byte-identical text.

Chunk tags start empty; record-level tags live on the normalized record.
"""

from __future__ import annotations

from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..records.common import ContentChunk, Number
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


ChunkBuilder = Callable[[NormalizedBase], Iterator[ContentChunk]]


class ChunkSequence:
    """
    Lazy, restartable sequence of chunks for one record.

    Each iteration re-runs the builder, so the sequence can be consumed any
    number of times.
    """

    def __init__(self, builder: ChunkBuilder, record: NormalizedBase) -> None:
        self._builder = builder
        self._record = record

    def __iter__(self) -> Iterator[ContentChunk]:
        return self._builder(self._record)


# ---------------------------------------------------------------------
# Formatting Helpers
# ---------------------------------------------------------------------

def format_number(value: Number) -> str:
    """Render integral values without a decimal point, others as-is."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _format_fields(pairs: Sequence[Tuple[str, Optional[Number]]], sep: str = ": ") -> List[str]:
    return [f"{label}{sep}{format_number(value)}" for label, value in pairs if value is not None]


def _clean(values: Iterable[str]) -> List[str]:
    return [v.strip() for v in values if v and v.strip()]


def _section(record: NormalizedBase, section: str, content: Optional[str]) -> Iterator[ContentChunk]:
    if content is None or not content.strip():
        return
    yield ContentChunk(
        type=record.type,
        name=record.name,
        section=section,
        content=content.strip(),
        tags=[],
    )


def _listing(record: NormalizedBase, section: str, label: str, values: Iterable[str], sep: str = ", ") -> Iterator[ContentChunk]:
    items = _clean(values)
    if items:
        yield from _section(record, section, f"{label}: {sep.join(items)}")


# ---------------------------------------------------------------------
# Combat Entities
# ---------------------------------------------------------------------

def boss_chunks(boss: NormalizedBoss) -> Iterator[ContentChunk]:
    overview = f"{boss.name} is a {boss.category}"
    if boss.location:
        overview += f" located in {boss.location}"
    overview += "."
    weaknesses = _clean(boss.weaknesses)
    if weaknesses:
        overview += f" Weaknesses: {', '.join(weaknesses)}."
    yield from _section(boss, "overview", overview)

    yield from _section(boss, "strategy", boss.strategies)
    yield from _section(boss, "rewards", boss.rewards)

    combat: List[str] = []
    if boss.hp_by_player_count is not None:
        hp = boss.hp_by_player_count
        hp_parts = [
            f"{label}: {value:,}"
            for label, value in (("Solo", hp.solo), ("Duo", hp.duo), ("Trio", hp.trio))
            if value
        ]
        if hp_parts:
            combat.append(f"HP: {', '.join(hp_parts)}")
    if boss.stance is not None:
        combat.append(f"Stance: {format_number(boss.stance)}")
    if boss.parry_info is not None:
        if boss.parry_info.can_parry:
            required = boss.parry_info.parries_required
            combat.append(f"Parryable ({required} parries)" if required else "Parryable")
        else:
            combat.append("Not parryable")
    if combat:
        yield from _section(boss, "combat", ". ".join(combat) + ".")

    phases = [
        f"{p.name}" + (f" ({p.threshold})" if p.threshold else "") + (f": {p.description.strip()}" if p.description.strip() else "")
        for p in boss.phases
    ]
    yield from _listing(boss, "phases", "Phases", phases, sep="; ")

    yield from _section(boss, "resistances", _boss_resistances(boss))


def _boss_resistances(boss: NormalizedBoss) -> Optional[str]:
    parts: List[str] = []

    negation = boss.damage_negation
    if negation is not None:
        for label, phase in (("Phase 1", negation.phase1), ("Phase 2", negation.phase2)):
            if phase is None:
                continue
            fields = _format_fields(
                (
                    ("Standard", phase.standard),
                    ("Slash", phase.slash),
                    ("Strike", phase.strike),
                    ("Pierce", phase.pierce),
                    ("Magic", phase.magic),
                    ("Fire", phase.fire),
                    ("Lightning", phase.lightning),
                    ("Holy", phase.holy),
                ),
                sep=" ",
            )
            if fields:
                parts.append(f"{label} damage negation: {', '.join(fields)}")

    res = boss.status_resistances
    if res is not None:
        immune: List[str] = []
        values: List[str] = []
        for label, value in (
            ("Poison", res.poison),
            ("Scarlet Rot", res.scarlet_rot),
            ("Blood Loss", res.blood_loss),
            ("Frostbite", res.frostbite),
            ("Sleep", res.sleep),
            ("Madness", res.madness),
        ):
            if value is None:
                continue
            if value.immune:
                immune.append(label)
            elif value.value is not None:
                values.append(f"{label} {format_number(value.value)}")
        if immune:
            parts.append(f"Immune to: {', '.join(immune)}")
        if values:
            parts.append(f"Status resistance: {', '.join(values)}")

    stronger = _clean(boss.stronger_vs or [])
    if stronger:
        parts.append(f"Resistant to: {', '.join(stronger)}")

    if not parts:
        return None
    return ". ".join(parts) + "."


def enemy_chunks(enemy: NormalizedEnemy) -> Iterator[ContentChunk]:
    overview = f"{enemy.name} is a {enemy.category} enemy"
    locations = _clean(enemy.locations)
    if locations:
        overview += f" found in {', '.join(locations)}"
    overview += "."
    yield from _section(enemy, "overview", overview)

    yield from _listing(enemy, "weaknesses", "Weaknesses", enemy.weaknesses)
    yield from _listing(enemy, "drops", "Drops", enemy.drops)
    yield from _section(enemy, "strategy", enemy.strategies)


# ---------------------------------------------------------------------
# Equipment
# ---------------------------------------------------------------------

def weapon_chunks(weapon: NormalizedWeapon) -> Iterator[ContentChunk]:
    overview = f"{weapon.name} is a {weapon.weapon_type}."
    if weapon.description:
        overview += f" {weapon.description}"
    yield from _section(weapon, "overview", overview)

    stats = weapon.stats
    damage = [
        f"{label}: {format_number(value)}"
        for label, value in (
            ("Physical", stats.physical_damage),
            ("Magic", stats.magic_damage),
            ("Fire", stats.fire_damage),
            ("Lightning", stats.lightning_damage),
            ("Holy", stats.holy_damage),
        )
        if value
    ]
    if damage and stats.critical is not None:
        damage.append(f"Critical: {format_number(stats.critical)}")
    yield from _section(weapon, "stats", ", ".join(damage))

    scaling = weapon.scaling
    grades = [
        f"{label} {grade.strip()}"
        for label, grade in (
            ("Str", scaling.strength),
            ("Dex", scaling.dexterity),
            ("Int", scaling.intelligence),
            ("Fai", scaling.faith),
            ("Arc", scaling.arcane),
        )
        if grade and grade.strip() and grade.strip() != "-"
    ]
    if grades:
        yield from _section(weapon, "scaling", f"Scaling: {', '.join(grades)}")

    buildup = weapon.status_buildup
    if buildup is not None:
        parts = [
            f"{label}: {format_number(value)}"
            for label, value in (
                ("Blood Loss", buildup.blood_loss),
                ("Frostbite", buildup.frostbite),
                ("Poison", buildup.poison),
                ("Scarlet Rot", buildup.scarlet_rot),
                ("Sleep", buildup.sleep),
                ("Madness", buildup.madness),
            )
            if value
        ]
        if parts:
            yield from _section(weapon, "status", f"Status Buildup: {', '.join(parts)}")

    if weapon.skill:
        yield from _section(weapon, "skill", f"Weapon Skill: {weapon.skill}")
    if weapon.unique_effect:
        yield from _section(weapon, "unique", f"Unique Effect: {weapon.unique_effect}")
    yield from _listing(weapon, "passive", "Passive Benefits", weapon.passive_benefits or [], sep="; ")


def armor_chunks(armor: NormalizedArmor) -> Iterator[ContentChunk]:
    overview = f"{armor.name} is {armor.slot} armor" if armor.slot else f"{armor.name} is armor"
    if armor.weight:
        overview += f" weighing {format_number(armor.weight)}"
    if armor.poise:
        overview += f" with {format_number(armor.poise)} poise"
    yield from _section(armor, "overview", overview + ".")

    neg = armor.damage_negation
    negation = _format_fields(
        (
            ("Physical", neg.physical),
            ("Strike", neg.strike),
            ("Slash", neg.slash),
            ("Pierce", neg.pierce),
            ("Magic", neg.magic),
            ("Fire", neg.fire),
            ("Lightning", neg.lightning),
            ("Holy", neg.holy),
        )
    )
    res = armor.resistance
    resistance = _format_fields(
        (
            ("Immunity", res.immunity),
            ("Robustness", res.robustness),
            ("Focus", res.focus),
            ("Vitality", res.vitality),
            ("Poise", res.poise),
        )
    )
    defense: List[str] = []
    if negation:
        defense.append(f"Damage Negation: {', '.join(negation)}")
    if resistance:
        defense.append(f"Resistances: {', '.join(resistance)}")
    if defense:
        yield from _section(armor, "defense", ". ".join(defense))

    if armor.location:
        yield from _section(armor, "location", f"Location: {armor.location}")


def shield_chunks(shield: NormalizedShield) -> Iterator[ContentChunk]:
    overview = f"{shield.name} is a {shield.shield_type}"
    if shield.weight:
        overview += f" weighing {format_number(shield.weight)}"
    if shield.guard_boost:
        overview += f" with {format_number(shield.guard_boost)} guard boost"
    yield from _section(shield, "overview", overview + ".")

    skill: List[str] = []
    if shield.skill:
        skill.append(f"Skill: {shield.skill}")
    if shield.requirements:
        skill.append(f"Requirements: {shield.requirements}")
    if skill:
        yield from _section(shield, "skill", ". ".join(skill))

    if shield.guard is not None:
        guard = _format_fields(
            (
                ("Physical", shield.guard.physical),
                ("Strike", shield.guard.strike),
                ("Slash", shield.guard.slash),
                ("Pierce", shield.guard.pierce),
                ("Magic", shield.guard.magic),
                ("Fire", shield.guard.fire),
                ("Lightning", shield.guard.lightning),
                ("Holy", shield.guard.holy),
            )
        )
        if guard:
            yield from _section(shield, "guard", f"Guarded Damage Negation: {', '.join(guard)}")

    if shield.location:
        yield from _section(shield, "location", f"Location: {shield.location}")


def talisman_chunks(talisman: NormalizedTalisman) -> Iterator[ContentChunk]:
    overview = f"{talisman.name} is a talisman"
    if talisman.weight:
        overview += f" (Weight: {format_number(talisman.weight)})"
    overview += "."
    if talisman.location:
        overview += f" Location: {talisman.location}"
    yield from _section(talisman, "overview", overview)
    yield from _section(talisman, "effect", talisman.effect)


def relic_chunks(relic: NormalizedRelic) -> Iterator[ContentChunk]:
    descriptor = " ".join(part for part in (relic.color, relic.tier) if part)
    overview = f"{relic.name} is a {descriptor} relic." if descriptor else f"{relic.name} is a relic."
    if relic.location:
        overview += f" Location: {relic.location}"
    yield from _section(relic, "overview", overview)

    yield from _listing(relic, "effects", "Effects", relic.effects, sep="; ")

    class_effects = [
        f"{ce.nightfarer_class.capitalize()}: {ce.effect}" + (f" ({ce.notes})" if ce.notes else "")
        for ce in relic.class_effects or []
    ]
    yield from _listing(relic, "class-effects", "Class Effects", class_effects, sep="; ")


# ---------------------------------------------------------------------
# Abilities
# ---------------------------------------------------------------------

_ATTRIBUTE_ORDER = (
    "vigor",
    "mind",
    "endurance",
    "strength",
    "dexterity",
    "intelligence",
    "faith",
    "arcane",
)


def nightfarer_chunks(nightfarer: NormalizedNightfarer) -> Iterator[ContentChunk]:
    stats = _format_fields(
        [(attr.capitalize(), getattr(nightfarer.stats, attr)) for attr in _ATTRIBUTE_ORDER]
    )
    overview = f"{nightfarer.name} is a nightfarer."
    if stats:
        overview += f" Starting stats: {', '.join(stats)}"
    yield from _section(nightfarer, "overview", overview)

    if nightfarer.passive:
        yield from _section(nightfarer, "passive", f"Passive: {nightfarer.passive}")
    if nightfarer.skill:
        yield from _section(nightfarer, "skill", f"Skill: {nightfarer.skill}")
    if nightfarer.ultimate:
        yield from _section(nightfarer, "ultimate", f"Ultimate: {nightfarer.ultimate}")
    if nightfarer.vessel:
        yield from _section(nightfarer, "vessel", f"Vessel: {nightfarer.vessel}")

    if nightfarer.progression is not None:
        levels = []
        for row in nightfarer.progression.stat_progression:
            fields = _format_fields((("HP", row.hp), ("FP", row.fp), ("Stamina", row.stamina)), sep=" ")
            if fields:
                levels.append(f"Level {row.level}: {', '.join(fields)}")
        yield from _listing(nightfarer, "progression", "Progression", levels, sep="; ")


def skill_chunks(skill: NormalizedSkill) -> Iterator[ContentChunk]:
    overview = f"{skill.name} is a weapon skill"
    if skill.fp_cost is not None:
        overview += f" costing {format_number(skill.fp_cost)} FP"
    weapon_types = _clean(skill.weapon_types)
    overview += f". Compatible with: {', '.join(weapon_types) or 'All weapons'}."
    yield from _section(skill, "overview", overview)
    yield from _section(skill, "effect", skill.effect)
    if skill.location:
        yield from _section(skill, "location", f"Location: {skill.location}")


def spell_chunks(spell: NormalizedSpell) -> Iterator[ContentChunk]:
    overview = f"{spell.name} is a {spell.spell_type}"
    costs: List[str] = []
    if spell.fp_cost is not None:
        costs.append(f"costs {format_number(spell.fp_cost)} FP")
    if spell.slots is not None:
        costs.append(f"requires {spell.slots} slot(s)")
    if costs:
        overview += " that " + " and ".join(costs)
    yield from _section(spell, "overview", overview + ".")

    yield from _section(spell, "effect", spell.effect)

    details: List[str] = []
    if spell.requirements:
        details.append(f"Requirements: {spell.requirements}")
    if spell.location:
        details.append(f"Location: {spell.location}")
    if details:
        yield from _section(spell, "requirements", ". ".join(details))


# ---------------------------------------------------------------------
# People and Places
# ---------------------------------------------------------------------

def npc_chunks(npc: NormalizedNPC) -> Iterator[ContentChunk]:
    overview = f"{npc.name} is a {npc.role}"
    if npc.location:
        overview += f" located at {npc.location}"
    yield from _section(npc, "overview", overview + ".")
    yield from _listing(npc, "quests", "Quests", npc.quests)
    yield from _listing(npc, "services", "Services", npc.services)


def merchant_chunks(merchant: NormalizedMerchant) -> Iterator[ContentChunk]:
    overview = f"{merchant.name} is a merchant"
    if merchant.location:
        overview += f" located at {merchant.location}"
    yield from _section(merchant, "overview", overview + ".")

    inventory = [
        f"{item.name} ({format_number(item.price)} {item.currency})"
        for item in merchant.inventory
    ]
    yield from _listing(merchant, "inventory", "Inventory", inventory)
    yield from _listing(merchant, "notable", "Notable Items", merchant.notable_items)


def location_chunks(location: NormalizedLocation) -> Iterator[ContentChunk]:
    if location.region:
        overview = f"{location.name} is located in {location.region}."
    else:
        overview = f"{location.name} is a location."
    if location.description:
        overview += f" {location.description}"
    yield from _section(location, "overview", overview)

    yield from _listing(location, "enemies", "Enemies", location.enemies)
    yield from _listing(location, "bosses", "Bosses", location.bosses)
    yield from _listing(location, "items", "Notable Items", location.notable_items)
    yield from _listing(location, "connections", "Connections", location.connections)

    details: List[str] = []
    if location.elemental_affinity:
        details.append(f"Elemental affinity: {location.elemental_affinity}")
    crystals = _clean(location.crystal_types or [])
    if crystals:
        details.append(f"Crystal types: {', '.join(crystals)}")
    if location.favor:
        details.append(f"Favor: {location.favor}")
    if details:
        yield from _section(location, "details", ". ".join(details))


def expedition_chunks(expedition: NormalizedExpedition) -> Iterator[ContentChunk]:
    if expedition.difficulty:
        overview = f"{expedition.name} is a {expedition.difficulty} expedition"
    else:
        overview = f"{expedition.name} is an expedition"
    if expedition.recommended_level:
        overview += f" (recommended level {expedition.recommended_level})"
    yield from _section(expedition, "overview", overview + ".")

    yield from _listing(expedition, "objectives", "Objectives", expedition.objectives)
    yield from _listing(expedition, "rewards", "Rewards", expedition.rewards)
    yield from _listing(expedition, "locations", "Locations", expedition.locations)
    yield from _section(expedition, "strategies", expedition.strategies)


def item_chunks(item: NormalizedItem) -> Iterator[ContentChunk]:
    overview = f"{item.name} is a {item.category}."
    if item.description:
        overview += f" {item.description}"
    if item.uses is not None:
        overview += f" Uses: {item.uses}."
    yield from _section(item, "overview", overview)

    if item.effect:
        yield from _section(item, "effect", f"Effect: {item.effect}")
    yield from _listing(item, "locations", "Where to find", item.locations, sep="; ")

    purchases = [
        f"{p.merchant_name}: {format_number(p.price)} runes"
        + (f" at {p.location}" if p.location else "")
        for p in item.purchase_locations or []
    ]
    yield from _listing(item, "purchase", "Purchase", purchases, sep="; ")
