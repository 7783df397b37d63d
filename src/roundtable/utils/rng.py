"""Seeded randomness helpers for deterministic sessions."""

import random
from typing import List, Sequence, TypeVar

T = TypeVar("T")


def build_rng(*, seed: int | None = None) -> random.Random:
    """Return a deterministic random generator."""
    return random.Random(seed)


def shuffled(rng: random.Random, items: Sequence[T]) -> List[T]:
    """Return a uniformly shuffled copy of ``items``."""
    deck = list(items)
    rng.shuffle(deck)
    return deck


def sample_team(rng: random.Random, *, team_size: int, total_players: int) -> List[int]:
    """Sample a random team of player indices, sorted.

    Args:
        rng: Random number generator
        team_size: Number of players to select
        total_players: Number of seated players

    Returns:
        Sorted list of 0-based player indices
    """
    team = rng.sample(range(total_players), team_size)
    team.sort()
    return team
