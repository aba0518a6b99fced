from __future__ import annotations

from typing import Any

import settings

PERCENT = "percent"
FLAT = "flat"

STAT_DEFINITIONS: dict[int, dict[str, str]] = {
    1: {"name": "Health", "category": FLAT},
    5: {"name": "Speed", "category": FLAT},
    6: {"name": "Physical Damage", "category": FLAT},
    7: {"name": "Special Damage", "category": FLAT},
    8: {"name": "Armor", "category": FLAT},
    9: {"name": "Resistance", "category": FLAT},
    10: {"name": "Armor Penetration", "category": FLAT},
    11: {"name": "Resistance Penetration", "category": FLAT},
    12: {"name": "Dodge Rating", "category": FLAT},
    13: {"name": "Deflection Rating", "category": FLAT},
    14: {"name": "Physical Critical Rating", "category": FLAT},
    15: {"name": "Special Critical Rating", "category": FLAT},
    16: {"name": "Critical Damage", "category": PERCENT},
    17: {"name": "Potency", "category": PERCENT},
    18: {"name": "Tenacity", "category": PERCENT},
    27: {"name": "Health Steal", "category": FLAT},
    28: {"name": "Protection", "category": FLAT},
    39: {"name": "Dodge", "category": PERCENT},
    41: {"name": "Offense", "category": FLAT},
    42: {"name": "Defense", "category": FLAT},
    48: {"name": "Offense %", "category": PERCENT},
    49: {"name": "Defense %", "category": PERCENT},
    52: {"name": "Accuracy", "category": PERCENT},
    53: {"name": "Critical Chance", "category": PERCENT},
    54: {"name": "Critical Avoidance", "category": PERCENT},
    55: {"name": "Health %", "category": PERCENT},
    56: {"name": "Protection %", "category": PERCENT},
}

# Upper bounds used only to flag suspicious decodes; values above them are still returned.
PLAUSIBLE_MAX = {PERCENT: 2000.0, FLAT: 10_000_000.0}


def as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def stat_category(stat_id: Any) -> str:
    return (STAT_DEFINITIONS.get(as_int(stat_id)) or {}).get("category", FLAT)


def is_percent_stat(stat_id: Any) -> bool:
    return stat_category(stat_id) == PERCENT


def stat_name(stat_id: Any) -> str:
    parsed = as_int(stat_id)
    definition = STAT_DEFINITIONS.get(parsed)
    return definition["name"] if definition else f"Stat {parsed}"


def decode(stat_id: Any, raw_magnitude: Any, percent_scale: int | None = None, flat_scale: int | None = None) -> float | int:
    raw = as_int(raw_magnitude)
    try:
        if is_percent_stat(stat_id):
            return round(raw * 100 / (percent_scale or settings.STAT_PERCENT_SCALE), 4)
        return round(raw / (flat_scale or settings.STAT_FLAT_SCALE))
    except OverflowError:
        return 0


def is_plausible(stat_id: Any, value: float | int) -> bool:
    return abs(value) <= PLAUSIBLE_MAX[stat_category(stat_id)]
