"""Role assignment at game start and the play-again reset."""

from __future__ import annotations

import random
from collections import Counter
from typing import Iterable, List

import structlog

from .errors import InvalidPlayerCount, InvalidRoleSelection
from .roles import (
    ADDITIONAL_ROLES,
    EVIL_FILLER,
    GOOD_FILLER,
    MANDATORY_ROLES,
    Role,
    count_evil,
    count_good,
)
from .rulesets import DEFAULT_RULES, GameRules
from .schemas import GameSession
from ..utils.rng import shuffled

LOGGER = structlog.get_logger(__name__)


def validate_additional_roles(players: int, additional_roles: Iterable[Role], rules: GameRules = DEFAULT_RULES) -> List[Role]:
    """Check the optional roles chosen by the owner and return them as a list.

    The Assassin always takes one evil slot and Merlin one good slot, so the
    owner may add at most ``evil - 1`` evil and ``good - 1`` good roles.
    """

    selected = list(additional_roles)
    unknown = [role for role in selected if role not in ADDITIONAL_ROLES]
    if unknown:
        raise InvalidRoleSelection(roles=[role.value for role in unknown])
    duplicates = [role for role, count in Counter(selected).items() if count > 1]
    if duplicates:
        raise InvalidRoleSelection("Each additional role can only be selected once.", roles=[r.value for r in duplicates])

    evil_budget = rules.evil_count(players) - 1
    if count_evil(selected) > evil_budget:
        raise InvalidRoleSelection(
            f"You can only select up to {evil_budget} additional evil role(s).",
            evil_budget=evil_budget,
        )
    good_budget = rules.good_count(players) - 1
    if count_good(selected) > good_budget:
        raise InvalidRoleSelection(
            f"You can only select up to {good_budget} additional good role(s).",
            good_budget=good_budget,
        )
    return selected


def build_role_deck(players: int, additional_roles: Iterable[Role], rules: GameRules = DEFAULT_RULES) -> List[Role]:
    """Return the unshuffled multiset of roles for ``players`` seats.

    Merlin and the Assassin are always present; Servants and Minions fill the
    remaining good and evil slots.
    """

    if not rules.supports(players):
        raise InvalidPlayerCount(players=players)
    selected = validate_additional_roles(players, additional_roles, rules)
    deck = selected + list(MANDATORY_ROLES)
    servants = rules.good_count(players) - count_good(deck)
    minions = rules.evil_count(players) - count_evil(deck)
    return deck + [GOOD_FILLER] * servants + [EVIL_FILLER] * minions


def assign_roles(
    session: GameSession,
    additional_roles: Iterable[Role],
    rng: random.Random,
    rules: GameRules = DEFAULT_RULES,
) -> None:
    """Shuffle a role deck and deal it to the seated players in order.

    Clears the mission list and any earlier Merlin guess; the caller starts
    the first mission.
    """

    deck = shuffled(rng, build_role_deck(len(session.players), additional_roles, rules))
    for player, role in zip(session.players, deck):
        player.role = role
    session.missions = []
    session.guess_merlin = None
    LOGGER.info(
        "roles.assigned",
        session_id=session.id,
        players=len(session.players),
        evil=count_evil(deck),
        roles=sorted(role.value for role in set(deck)),
    )


def reset_roles(session: GameSession) -> None:
    """Return the session to the lobby so the same table can play again."""

    for player in session.players:
        player.role = Role.UNDECIDED
    session.missions = []
    session.guess_merlin = None
    session.messages = []
    LOGGER.info("roles.reset", session_id=session.id)
