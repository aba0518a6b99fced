"""Pytest fixtures for the coach relay. Sets provider env before any backend import."""

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
os.environ.setdefault("OPENAI_API_KEY", "test-key-for-unit-tests")
os.environ.setdefault("COMLINK_URL", "http://comlink.test")

from name_resolver import NameTable
from roster_normalizer import RosterNormalizer
from skill_classifier import SkillCatalog


@pytest.fixture()
def normalizer() -> RosterNormalizer:
    return RosterNormalizer(NameTable(), SkillCatalog())


@pytest.fixture()
def revan_unit() -> dict:
    return {
        "definitionId": "DARTHREVAN:SEVEN_STAR",
        "currentRarity": 7,
        "currentLevel": 85,
        "currentTier": 13,
        "relic": {"currentTier": 9},
        "combatType": 1,
        "skill": [{"id": "basicskill_DARTHREVAN", "tier": 7}],
    }
