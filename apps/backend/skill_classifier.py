from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from errors import RelayError
from stat_decoder import as_int

logger = logging.getLogger(__name__)

FALLBACK_TIER_A = 8
FALLBACK_TIER_B = 9
# Owned skills report how many upgrades were applied; the game counts the untouched skill as tier 1.
GAME_TIER_OFFSET = 1
# The first entry of a definition's tier list upgrades the skill to game tier 2.
TIER_LIST_OFFSET = 2


@dataclass(frozen=True)
class SkillDefinition:
    skill_id: str
    has_tier_a_upgrade: bool
    max_tier: int
    tier_a_threshold: int = 0
    tier_b_threshold: int = 0
    tier_b_mode: int = 0


def game_tier(applied_tier: Any) -> int:
    return as_int(applied_tier) + GAME_TIER_OFFSET


class SkillCatalog:
    def __init__(self, definitions: dict[str, SkillDefinition] | None = None):
        self._definitions: dict[str, SkillDefinition] = dict(definitions or {})
        self.version: str | None = None
        self.loaded_at = 0.0

    def __len__(self) -> int:
        return len(self._definitions)

    def get(self, skill_id: str) -> SkillDefinition | None:
        return self._definitions.get(skill_id)

    def replace(self, definitions: dict[str, SkillDefinition], version: str | None = None) -> None:
        self._definitions = definitions
        self.version = version
        self.loaded_at = time.time()

    def classify(self, skill: dict[str, Any] | None) -> dict[str, bool]:
        skill = skill if isinstance(skill, dict) else {}
        tier = game_tier(skill.get("tier"))
        definition = self._definitions.get(str(skill.get("id") or ""))
        if definition is None:
            return {"has_tier_a": tier >= FALLBACK_TIER_A, "has_tier_b": tier >= FALLBACK_TIER_B}
        return {
            "has_tier_a": definition.tier_a_threshold > 0 and tier >= definition.tier_a_threshold,
            "has_tier_b": definition.tier_b_threshold > 0 and tier >= definition.tier_b_threshold,
        }

    def count_upgrades(self, skills: list[Any] | None) -> tuple[int, int]:
        tier_a = 0
        tier_b = 0
        for skill in skills if isinstance(skills, list) else []:
            result = self.classify(skill)
            tier_a += int(result["has_tier_a"])
            tier_b += int(result["has_tier_b"])
        return tier_a, tier_b


def first_marked_tier(tiers: list[Any], marker: str) -> int:
    for index, tier in enumerate(tiers):
        if isinstance(tier, dict) and tier.get(marker) is True:
            return index + TIER_LIST_OFFSET
    return 0


def parse_skill_definitions(game_data: dict[str, Any]) -> dict[str, SkillDefinition]:
    definitions: dict[str, SkillDefinition] = {}
    for entry in game_data.get("skill") or []:
        if not isinstance(entry, dict):
            continue
        skill_id = str(entry.get("id") or "").strip()
        tiers = entry.get("tier")
        if not skill_id or not isinstance(tiers, list) or not tiers:
            continue
        tier_a_threshold = first_marked_tier(tiers, "isZetaTier")
        definitions[skill_id] = SkillDefinition(
            skill_id=skill_id,
            has_tier_a_upgrade=bool(entry.get("isZeta")) or tier_a_threshold > 0,
            max_tier=len(tiers) + 1,
            tier_a_threshold=tier_a_threshold,
            tier_b_threshold=first_marked_tier(tiers, "isOmicronTier"),
            tier_b_mode=as_int(entry.get("omicronMode")),
        )
    return definitions


async def load_skill_definitions(client: Any, catalog: SkillCatalog) -> bool:
    try:
        metadata = await client.get_metadata()
        version = str(metadata.get("latestGamedataVersion") or "").strip()
        if not version:
            logger.warning("Metadata carried no game data version; keeping %d cached skills.", len(catalog))
            return False
        if version == catalog.version and len(catalog):
            return True
        definitions = parse_skill_definitions(await client.get_game_data(version))
    except RelayError as error:
        logger.warning("Skill definition refresh failed: %s", error)
        return False
    if not definitions:
        logger.warning("Game data %s had no skill definitions with tiers.", version)
        return False
    catalog.replace(definitions, version)
    logger.info("Loaded %d skill definitions from game data %s.", len(definitions), version)
    return True
