from __future__ import annotations

import logging
import re
from typing import Any

from name_resolver import NameTable, base_id_of
from skill_classifier import SkillCatalog
from stat_decoder import as_int, decode, is_plausible, stat_name

logger = logging.getLogger(__name__)

CHARACTER = 1
SHIP = 2

CURRENCY_BUCKETS = (
    "credits",
    "crystals",
    "ally_points",
    "squad_arena_tokens",
    "fleet_arena_tokens",
    "guild_tokens",
    "guild_event_tokens",
    "galactic_war_tokens",
    "shard_shop_tokens",
    "cantina_tokens",
)
CURRENCY_BUCKETS_BY_ID = {
    1: "credits",
    2: "crystals",
    4: "ally_points",
    5: "squad_arena_tokens",
    6: "galactic_war_tokens",
    7: "guild_tokens",
    8: "shard_shop_tokens",
    9: "cantina_tokens",
    10: "fleet_arena_tokens",
    11: "guild_event_tokens",
}
# Checked in order; fleet arena and guild event patterns must win over plain arena and guild.
CURRENCY_BUCKETS_BY_TEXT = (
    ("SHIPARENA", "fleet_arena_tokens"),
    ("FLEET", "fleet_arena_tokens"),
    ("ARENA", "squad_arena_tokens"),
    ("GUILDEVENT", "guild_event_tokens"),
    ("GET1", "guild_event_tokens"),
    ("GET2", "guild_event_tokens"),
    ("GET3", "guild_event_tokens"),
    ("GUILD", "guild_tokens"),
    ("GALACTICWAR", "galactic_war_tokens"),
    ("SHARD", "shard_shop_tokens"),
    ("CANTINA", "cantina_tokens"),
    ("SOCIAL", "ally_points"),
    ("ALLY", "ally_points"),
    ("PREMIUM", "crystals"),
    ("CRYSTAL", "crystals"),
    ("GRIND", "credits"),
    ("CREDIT", "credits"),
)
CURRENCY_FIELDS = ("currency", "currencies", "currencyItem")
DATACRON_FIELDS = ("datacron", "datacrons", "datacronList")


def as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def first_present(source: dict[str, Any], keys: tuple[str, ...]) -> list[Any] | None:
    for key in keys:
        value = source.get(key)
        if isinstance(value, list):
            return value
    return None


def relic_display(raw_tier: Any) -> int:
    tier = as_int(raw_tier)
    return tier - 2 if tier > 2 else 0


def combat_type_of(unit: dict[str, Any], gear_level: int, raw_relic: int) -> int:
    explicit = unit.get("combatType")
    if isinstance(explicit, str):
        if "SHIP" in explicit.upper():
            return SHIP
        if "CHAR" in explicit.upper():
            return CHARACTER
    elif as_int(explicit) in (CHARACTER, SHIP):
        return as_int(explicit)
    return CHARACTER if gear_level > 1 or raw_relic > 0 else SHIP


def extract_power(profile_stats: Any) -> dict[str, int]:
    power = {"galactic_power": 0, "character_gp": 0, "ship_gp": 0}
    matched = False
    for entry in as_list(profile_stats):
        entry = as_dict(entry)
        key = str(entry.get("nameKey") or entry.get("name") or "").lower().replace(" ", "_")
        if "galactic_power" not in key:
            continue
        if "ship" in key:
            field = "ship_gp"
        elif "char" in key:
            field = "character_gp"
        else:
            field = "galactic_power"
        power[field] = as_int(entry.get("value"))
        matched = True
    if matched:
        return power
    rows = as_list(profile_stats)
    for index, field in enumerate(("galactic_power", "character_gp", "ship_gp")):
        if index < len(rows):
            row = rows[index]
            power[field] = as_int(row.get("value") if isinstance(row, dict) else row)
    return power


def read_stat(entry: Any) -> tuple[int, Any]:
    entry = as_dict(entry)
    stat = as_dict(entry.get("stat")) or entry
    stat_id = as_int(stat.get("unitStatId") if "unitStatId" in stat else stat.get("statId"))
    for key in ("unscaledDecimalValue", "statValue", "value"):
        if stat.get(key) is not None:
            return stat_id, stat.get(key)
    return stat_id, 0


class RosterNormalizer:
    def __init__(self, names: NameTable, skills: SkillCatalog):
        self.names = names
        self.skills = skills

    def decode_stat(self, entry: Any, implausible: list[str]) -> dict[str, Any]:
        stat_id, raw = read_stat(entry)
        value = decode(stat_id, raw)
        if not is_plausible(stat_id, value):
            implausible.append(f"{stat_name(stat_id)}={value}")
        return {"stat": stat_name(stat_id), "value": value}

    def normalize_mod(self, mod: Any, implausible: list[str]) -> dict[str, Any]:
        mod = as_dict(mod)
        primary = as_dict(mod.get("primaryStat"))
        secondaries = []
        for entry in as_list(mod.get("secondaryStat")):
            decoded = self.decode_stat(entry, implausible)
            decoded["rolls"] = as_int(as_dict(entry).get("statRolls") or as_dict(entry).get("rolls"))
            secondaries.append(decoded)
        return {
            "definitionId": str(mod.get("definitionId") or mod.get("id") or ""),
            "level": as_int(mod.get("level")),
            "tier": as_int(mod.get("tier")),
            "primary": self.decode_stat(primary, implausible) if primary else None,
            "secondaries": secondaries,
        }

    def normalize_unit(self, unit: Any, implausible: list[str]) -> dict[str, Any]:
        unit = as_dict(unit)
        definition_id = unit.get("definitionId") or unit.get("baseId") or ""
        gear_level = as_int(unit.get("currentTier"))
        raw_relic = as_int(as_dict(unit.get("relic")).get("currentTier"))
        combat_type = combat_type_of(unit, gear_level, raw_relic)
        tier_a_count, tier_b_count = self.skills.count_upgrades(as_list(unit.get("skill")))
        unit_stats = unit.get("unitStat")
        stats = None
        if isinstance(unit_stats, list):
            stats = {}
            for entry in unit_stats:
                decoded = self.decode_stat(entry, implausible)
                stats[decoded["stat"]] = decoded["value"]
        return {
            "base_id": base_id_of(definition_id),
            "name": self.names.resolve(definition_id),
            "combat_type": combat_type,
            "rarity": as_int(unit.get("currentRarity")),
            "level": as_int(unit.get("currentLevel")),
            "gear_level": gear_level if combat_type == CHARACTER else 0,
            "relic_tier": relic_display(raw_relic) if combat_type == CHARACTER else 0,
            "tier_a_count": tier_a_count,
            "tier_b_count": tier_b_count,
            "mods": [self.normalize_mod(mod, implausible) for mod in as_list(unit.get("equippedStatMod"))],
            "stats": stats,
        }

    def normalize(self, player: dict[str, Any]) -> dict[str, Any]:
        player = as_dict(player)
        implausible: list[str] = []
        characters: list[dict[str, Any]] = []
        ships: list[dict[str, Any]] = []
        for raw_unit in as_list(player.get("rosterUnit")):
            unit = self.normalize_unit(raw_unit, implausible)
            (characters if unit["combat_type"] == CHARACTER else ships).append(unit)
        if implausible:
            logger.warning("Decoded %d implausible stat values (first: %s); check stat scale configuration.", len(implausible), implausible[0])
        return {
            "ally_code": str(player.get("allyCode") or ""),
            "name": str(player.get("name") or ""),
            "level": as_int(player.get("level")),
            "guild_name": str(player.get("guildName") or ""),
            **extract_power(player.get("profileStat")),
            "characters": characters,
            "ships": ships,
            "currencies": extract_currencies(player),
            "arena": extract_arena(player),
            "datacrons": extract_datacrons(player),
        }


def pvp_rank(profiles: list[Any], tab: int) -> int | None:
    for profile in profiles:
        profile = as_dict(profile)
        if as_int(profile.get("tab")) == tab and profile.get("rank") is not None:
            return as_int(profile.get("rank"))
    return None


def extract_grand_arena(player: dict[str, Any]) -> dict[str, Any] | None:
    season = next((as_dict(entry) for entry in as_list(player.get("seasonStatus")) if as_dict(entry).get("league") or as_dict(entry).get("division")), {})
    rating = as_dict(player.get("playerRating"))
    rank_status = as_dict(rating.get("playerRankStatus"))
    league = season.get("league") or rank_status.get("leagueId")
    division = season.get("division") if season.get("division") is not None else rank_status.get("divisionId")
    skill_rating = as_dict(rating.get("playerSkillRating")).get("skillRating")
    if not league and division is None and skill_rating is None:
        return None
    return {
        "league": str(league or ""),
        "division": as_int(division) if division is not None else None,
        "skill_rating": as_int(skill_rating) if skill_rating is not None else None,
    }


def extract_arena(player: dict[str, Any]) -> dict[str, Any]:
    profiles = as_list(player.get("pvpProfile"))
    return {"squad_rank": pvp_rank(profiles, 1), "fleet_rank": pvp_rank(profiles, 2), "grand_arena": extract_grand_arena(player)}


def currency_bucket(currency_id: Any) -> str | None:
    if isinstance(currency_id, (int, float)) or (isinstance(currency_id, str) and currency_id.strip().isdigit()):
        return CURRENCY_BUCKETS_BY_ID.get(as_int(currency_id))
    text = re.sub(r"[^A-Z0-9]", "", str(currency_id or "").upper())
    if not text:
        return None
    return next((bucket for pattern, bucket in CURRENCY_BUCKETS_BY_TEXT if pattern in text), None)


def currency_entries(player: dict[str, Any]) -> list[tuple[Any, Any]]:
    listed = first_present(player, CURRENCY_FIELDS)
    if listed is None:
        listed = first_present(as_dict(player.get("inventory")), ("currencyItem", "currency"))
    if listed is not None:
        return [(row.get("currency", row.get("id", row.get("type"))), row.get("quantity", row.get("amount"))) for row in listed if isinstance(row, dict)]
    entries: list[tuple[Any, Any]] = []
    for key, value in player.items():
        if "currenc" not in str(key).lower():
            continue
        if isinstance(value, list):
            entries.extend((row.get("currency", row.get("id")), row.get("quantity", row.get("amount"))) for row in value if isinstance(row, dict))
        elif isinstance(value, dict):
            entries.extend(value.items())
        else:
            entries.append((key, value))
    return entries


def extract_currencies(player: dict[str, Any]) -> dict[str, int]:
    currencies = {bucket: 0 for bucket in CURRENCY_BUCKETS}
    for currency_id, quantity in currency_entries(player):
        bucket = currency_bucket(currency_id)
        if bucket:
            currencies[bucket] += as_int(quantity)
    return currencies


def extract_datacrons(player: dict[str, Any]) -> list[dict[str, Any]]:
    datacrons = []
    for entry in first_present(player, DATACRON_FIELDS) or []:
        entry = as_dict(entry)
        affixes = []
        for affix in as_list(entry.get("affix") or entry.get("affixes")):
            affix = as_dict(affix)
            stat_id = as_int(affix.get("statType"))
            affixes.append(
                {
                    "target_rule": str(affix.get("targetRule") or ""),
                    "ability_id": str(affix.get("abilityId") or ""),
                    "stat": stat_name(stat_id) if stat_id else "",
                    "value": decode(stat_id, affix.get("statValue")) if stat_id else 0,
                }
            )
        datacrons.append(
            {
                "id": str(entry.get("id") or ""),
                "set_id": as_int(entry.get("setId")),
                "template_id": str(entry.get("templateId") or ""),
                "tier": as_int(entry.get("tier")),
                "focused": bool(entry.get("focused")),
                "reroll_count": as_int(entry.get("rerollCount")),
                "affixes": affixes,
            }
        )
    return datacrons


def build_roster_summary(roster: dict[str, Any]) -> str:
    lines = [
        f"Player: {roster.get('name') or 'Unknown'} | Level {roster.get('level') or 0} | GP {roster.get('galactic_power') or 0} (Characters {roster.get('character_gp') or 0}, Ships {roster.get('ship_gp') or 0})",
    ]
    arena = as_dict(roster.get("arena"))
    grand_arena = as_dict(arena.get("grand_arena"))
    if arena.get("squad_rank") is not None or arena.get("fleet_rank") is not None or grand_arena:
        ga_text = f"{grand_arena.get('league') or '?'} {grand_arena.get('division') or ''}".strip() if grand_arena else "n/a"
        lines.append(f"Arena: Squad #{arena.get('squad_rank') or '-'} | Fleet #{arena.get('fleet_rank') or '-'} | Grand Arena {ga_text}")
    lines.append(f"Characters ({len(as_list(roster.get('characters')))}):")
    for unit in as_list(roster.get("characters")):
        lines.append(f"{unit['name']}|G{unit['gear_level']}|{unit['rarity']}*|R{unit['relic_tier']}|Z{unit['tier_a_count']}|O{unit['tier_b_count']}")
    lines.append(f"Ships ({len(as_list(roster.get('ships')))}):")
    for unit in as_list(roster.get("ships")):
        lines.append(f"{unit['name']}|{unit['rarity']}*")
    return "\n".join(lines)
