import math

import pytest

from stat_decoder import decode, is_percent_stat, is_plausible, stat_name

SPEED = 5
OFFENSE = 41
CRITICAL_CHANCE = 53
POTENCY = 17


def test_percent_stat_fixture():
    assert decode(CRITICAL_CHANCE, 1385000) == 138.5


def test_flat_stat_fixture():
    assert decode(SPEED, 250000) == 25


def test_percent_keeps_four_decimals():
    assert decode(POTENCY, 12345) == 1.2345


def test_flat_rounds_to_integer():
    assert decode(OFFENSE, 1234567) == 123
    assert isinstance(decode(OFFENSE, 1234567), int)


def test_string_magnitudes_are_parsed():
    assert decode(SPEED, "250000") == 25
    assert decode(CRITICAL_CHANCE, "1385000") == 138.5
    assert decode(str(SPEED), "250000.0") == 25


@pytest.mark.parametrize("raw", [None, "", "abc", "nan", "inf", [], {}])
def test_unparsable_magnitudes_decode_to_zero(raw):
    assert decode(SPEED, raw) == 0
    assert decode(CRITICAL_CHANCE, raw) == 0


@pytest.mark.parametrize("stat_id", [SPEED, CRITICAL_CHANCE, 0, 999, None, "junk"])
@pytest.mark.parametrize("raw", [0, 1, 9999, 10**12, 10**400])
def test_decode_is_total_and_finite(stat_id, raw):
    value = decode(stat_id, raw)
    assert isinstance(value, (int, float))
    assert math.isfinite(value)


def test_unknown_stat_is_flat():
    assert not is_percent_stat(999)
    assert decode(999, 250000) == 25
    assert stat_name(999) == "Stat 999"


def test_scale_factors_can_be_overridden():
    assert decode(CRITICAL_CHANCE, 13850000, percent_scale=10_000_000) == 138.5
    assert decode(SPEED, 25000000, flat_scale=1_000_000) == 25


def test_plausibility_flags_runaway_values():
    assert is_plausible(SPEED, 30)
    assert not is_plausible(SPEED, decode(SPEED, 10**15))
    assert not is_plausible(CRITICAL_CHANCE, 50000.0)
