import asyncio

from errors import UpstreamUnavailable
from skill_classifier import SkillCatalog, SkillDefinition, game_tier, load_skill_definitions, parse_skill_definitions


def _tiers(count: int, zeta_at: int | None = None, omicron_at: int | None = None) -> list[dict]:
    return [{"recipeId": f"recipe{index}", "isZetaTier": index == zeta_at, "isOmicronTier": index == omicron_at} for index in range(count)]


GAME_DATA = {
    "skill": [
        {"id": "leaderskill_DARTHREVAN", "isZeta": True, "omicronMode": 7, "tier": _tiers(8, zeta_at=6, omicron_at=7)},
        {"id": "basicskill_DARTHREVAN", "tier": _tiers(7)},
        {"id": "uniqueskill_NOTIERS", "tier": []},
        {"tier": _tiers(3)},
        "garbage",
    ]
}


class FakeComlink:
    def __init__(self, metadata=None, game_data=None, error=None):
        self.metadata = metadata if metadata is not None else {"latestGamedataVersion": "data-1"}
        self.game_data = game_data if game_data is not None else GAME_DATA
        self.error = error

    async def get_metadata(self):
        if self.error:
            raise self.error
        return self.metadata

    async def get_game_data(self, version):
        return self.game_data


def test_game_tier_adds_one_to_applied_tier():
    assert game_tier(0) == 1
    assert game_tier(7) == 8
    assert game_tier("junk") == 1


def test_fallback_thresholds_with_empty_catalog():
    catalog = SkillCatalog()
    assert catalog.classify({"id": "anything", "tier": 6}) == {"has_tier_a": False, "has_tier_b": False}
    assert catalog.classify({"id": "anything", "tier": 7}) == {"has_tier_a": True, "has_tier_b": False}
    assert catalog.classify({"id": "anything", "tier": 8}) == {"has_tier_a": True, "has_tier_b": True}


def test_classify_tolerates_missing_fields():
    catalog = SkillCatalog()
    assert catalog.classify(None) == {"has_tier_a": False, "has_tier_b": False}
    assert catalog.classify({}) == {"has_tier_a": False, "has_tier_b": False}


def test_parse_skill_definitions_records_marker_tiers():
    definitions = parse_skill_definitions(GAME_DATA)
    assert set(definitions) == {"leaderskill_DARTHREVAN", "basicskill_DARTHREVAN"}
    leader = definitions["leaderskill_DARTHREVAN"]
    assert leader.max_tier == 9
    assert leader.tier_a_threshold == 8
    assert leader.tier_b_threshold == 9
    assert leader.tier_b_mode == 7
    assert leader.has_tier_a_upgrade
    basic = definitions["basicskill_DARTHREVAN"]
    assert basic.max_tier == 8
    assert basic.tier_a_threshold == 0
    assert not basic.has_tier_a_upgrade


def test_definition_thresholds_override_fallback():
    catalog = SkillCatalog(parse_skill_definitions(GAME_DATA))
    assert catalog.classify({"id": "leaderskill_DARTHREVAN", "tier": 6}) == {"has_tier_a": False, "has_tier_b": False}
    assert catalog.classify({"id": "leaderskill_DARTHREVAN", "tier": 7}) == {"has_tier_a": True, "has_tier_b": False}
    assert catalog.classify({"id": "leaderskill_DARTHREVAN", "tier": 8}) == {"has_tier_a": True, "has_tier_b": True}
    assert catalog.classify({"id": "basicskill_DARTHREVAN", "tier": 12}) == {"has_tier_a": False, "has_tier_b": False}


def test_tier_b_only_skill():
    catalog = SkillCatalog({"specialskill_X": SkillDefinition("specialskill_X", False, 9, tier_a_threshold=0, tier_b_threshold=9, tier_b_mode=4)})
    assert catalog.classify({"id": "specialskill_X", "tier": 8}) == {"has_tier_a": False, "has_tier_b": True}


def test_count_upgrades():
    catalog = SkillCatalog()
    skills = [{"id": "a", "tier": 7}, {"id": "b", "tier": 8}, {"id": "c", "tier": 2}, None]
    assert catalog.count_upgrades(skills) == (2, 1)
    assert catalog.count_upgrades(None) == (0, 0)


def test_load_skill_definitions_populates_catalog():
    catalog = SkillCatalog()
    assert asyncio.run(load_skill_definitions(FakeComlink(), catalog)) is True
    assert len(catalog) == 2
    assert catalog.version == "data-1"
    assert catalog.get("leaderskill_DARTHREVAN").tier_a_threshold == 8


def test_load_skill_definitions_failure_keeps_fallback():
    catalog = SkillCatalog()
    assert asyncio.run(load_skill_definitions(FakeComlink(error=UpstreamUnavailable("down")), catalog)) is False
    assert asyncio.run(load_skill_definitions(FakeComlink(metadata={}), catalog)) is False
    assert asyncio.run(load_skill_definitions(FakeComlink(game_data={"skill": []}), catalog)) is False
    assert len(catalog) == 0
    assert catalog.classify({"id": "leaderskill_DARTHREVAN", "tier": 7})["has_tier_a"] is True
