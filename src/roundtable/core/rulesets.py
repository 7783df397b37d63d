"""Avalon rule tables for five to ten players.

Number of players:   5   6   7   8   9   10
Good                 3   4   4   5   6   6
Evil                 2   2   3   3   3   4

Mission 1            2   2   2   3   3   3
Mission 2            3   3   3   4   4   4
Mission 3            2   4   3   4   4   4
Mission 4            3   3   4*  5*  5*  5*
Mission 5            3   4   4   5   5   5

Missions marked with an asterisk need two fail votes to fail.

The tables are bundled into an immutable :class:`GameRules` value that is
handed to the engine instead of being read from module globals.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Ruleset:
    """Rules for a session with a specific number of players."""

    players: int
    good: int
    evil: int
    mission_sizes: Tuple[int, ...]
    double_fail_mission: Optional[int] = None  # Mission ordinal (0-based) needing 2 fail votes

    def __post_init__(self) -> None:
        if self.good + self.evil != self.players:
            raise ValueError(f"Good ({self.good}) + Evil ({self.evil}) must equal players ({self.players})")
        if self.double_fail_mission is not None and not 0 <= self.double_fail_mission < len(self.mission_sizes):
            raise ValueError("Double fail mission must index into mission_sizes")

    def team_size(self, mission_ordinal: int) -> int:
        """Get the required team size for a mission (0-based ordinal)."""
        return self.mission_sizes[mission_ordinal]

    def fail_threshold(self, mission_ordinal: int) -> int:
        """Number of fail votes that make the mission fail."""
        return 2 if self.double_fail_mission == mission_ordinal else 1

    def get_mission_sizes_description(self) -> str:
        return "-".join(map(str, self.mission_sizes))


DEFAULT_MISSION_SIZES: Mapping[int, Tuple[int, ...]] = MappingProxyType(
    {
        5: (2, 3, 2, 3, 3),
        6: (2, 3, 4, 3, 4),
        7: (2, 3, 3, 4, 4),
        8: (3, 4, 4, 5, 5),
        9: (3, 4, 4, 5, 5),
        10: (3, 4, 4, 5, 5),
    }
)


@dataclass(frozen=True)
class GameRules:
    """Immutable rule configuration shared by the engine, assignment and advisor.

    >>> DEFAULT_RULES.team_size(5, 0)
    2
    >>> DEFAULT_RULES.fail_threshold(7, 3), DEFAULT_RULES.fail_threshold(7, 0)
    (2, 1)
    >>> DEFAULT_RULES.evil_count(10)
    4
    """

    mission_sizes: Mapping[int, Tuple[int, ...]] = field(default_factory=lambda: DEFAULT_MISSION_SIZES, hash=False)
    min_players: int = 5
    max_players: int = 10
    missions_to_win: int = 3
    missions_count: int = 5
    max_team_attempts: int = 5
    double_fail_mission: int = 3
    double_fail_min_players: int = 7

    def supports(self, players: int) -> bool:
        return self.min_players <= players <= self.max_players and players in self.mission_sizes

    def evil_count(self, players: int) -> int:
        return math.ceil(players / 3)

    def good_count(self, players: int) -> int:
        return players - self.evil_count(players)

    def team_size(self, players: int, mission_ordinal: int) -> int:
        return self.ruleset(players).team_size(mission_ordinal)

    def fail_threshold(self, players: int, mission_ordinal: int) -> int:
        return self.ruleset(players).fail_threshold(mission_ordinal)

    def ruleset(self, players: int) -> Ruleset:
        """Get the ruleset for a specific number of players.

        Raises:
            ValueError: If no ruleset is defined for the given number of players
        """
        if not self.supports(players):
            available = ", ".join(map(str, self.available_player_counts()))
            raise ValueError(f"No ruleset defined for {players} players. Available: {available}")
        return Ruleset(
            players=players,
            good=self.good_count(players),
            evil=self.evil_count(players),
            mission_sizes=tuple(self.mission_sizes[players]),
            double_fail_mission=self.double_fail_mission if players >= self.double_fail_min_players else None,
        )

    def available_player_counts(self) -> List[int]:
        return [count for count in sorted(self.mission_sizes) if self.min_players <= count <= self.max_players]


DEFAULT_RULES = GameRules()


def describe_ruleset(ruleset: Ruleset) -> str:
    """Format a human-readable description of the ruleset."""
    text = (
        f"{ruleset.players} players: {ruleset.good} good, {ruleset.evil} evil.\n"
        f"Mission team sizes: {ruleset.get_mission_sizes_description()}.\n"
    )
    if ruleset.double_fail_mission is not None:
        text += f"Mission {ruleset.double_fail_mission + 1} needs at least two fail votes to fail.\n"
    return text
