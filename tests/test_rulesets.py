"""
Tests for rule tables and role catalog.
"""

import doctest

import pytest

from roundtable.core import rulesets
from roundtable.core.roles import Alignment, Role, alignment_of, pair_percival_morgana
from roundtable.core.rulesets import DEFAULT_RULES, GameRules, describe_ruleset

EXPECTED_SIZES = {
    5: [2, 3, 2, 3, 3],
    6: [2, 3, 4, 3, 4],
    7: [2, 3, 3, 4, 4],
    8: [3, 4, 4, 5, 5],
    9: [3, 4, 4, 5, 5],
    10: [3, 4, 4, 5, 5],
}


@pytest.mark.parametrize("players", sorted(EXPECTED_SIZES))
def test_team_sizes_match_table(players):
    assert [DEFAULT_RULES.team_size(players, ordinal) for ordinal in range(5)] == EXPECTED_SIZES[players]


@pytest.mark.parametrize("players", sorted(EXPECTED_SIZES))
def test_fail_threshold_only_doubles_on_fourth_mission_with_seven_or_more(players):
    thresholds = [DEFAULT_RULES.fail_threshold(players, ordinal) for ordinal in range(5)]
    expected = [1, 1, 1, 2 if players >= 7 else 1, 1]
    assert thresholds == expected


@pytest.mark.parametrize("players,evil", [(5, 2), (6, 2), (7, 3), (8, 3), (9, 3), (10, 4)])
def test_evil_count_is_ceil_of_a_third(players, evil):
    assert DEFAULT_RULES.evil_count(players) == evil
    ruleset = DEFAULT_RULES.ruleset(players)
    assert ruleset.good + ruleset.evil == players


@pytest.mark.parametrize("players", [0, 4, 11])
def test_unsupported_player_counts(players):
    assert not DEFAULT_RULES.supports(players)
    with pytest.raises(ValueError):
        DEFAULT_RULES.ruleset(players)


def test_rules_are_immutable():
    with pytest.raises(AttributeError):
        DEFAULT_RULES.missions_to_win = 2  # type: ignore[misc]


def test_custom_rules_change_the_table():
    rules = GameRules(double_fail_min_players=5)
    assert rules.fail_threshold(5, 3) == 2
    assert DEFAULT_RULES.fail_threshold(5, 3) == 1


def test_describe_ruleset_mentions_double_fail():
    assert "Mission 4 needs at least two fail votes" in describe_ruleset(DEFAULT_RULES.ruleset(7))
    assert "two fail votes" not in describe_ruleset(DEFAULT_RULES.ruleset(6))


def test_rulesets_doctests():
    results = doctest.testmod(rulesets)
    assert results.failed == 0


def test_role_alignment_and_codes():
    assert alignment_of(Role.MERLIN) == Alignment.GOOD
    assert alignment_of(Role.MORDRED) == Alignment.EVIL
    assert alignment_of(Role.UNDECIDED) == Alignment.UNKNOWN
    for role in Role:
        assert Role.from_code(role.code) is role
        if role.code > 0:
            assert alignment_of(role) == Alignment.GOOD
        elif role.code < 0:
            assert alignment_of(role) == Alignment.EVIL
    with pytest.raises(ValueError):
        Role.from_code(42)


def test_percival_brings_morgana():
    assert pair_percival_morgana([Role.PERCIVAL]) == [Role.PERCIVAL, Role.MORGANA]
    assert pair_percival_morgana([Role.OBERON]) == [Role.OBERON]
    assert pair_percival_morgana([Role.MORGANA, Role.PERCIVAL]) == [Role.MORGANA, Role.PERCIVAL]
