"""Avalon role catalog and alignment lookup."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List


class Role(str, Enum):
    """Roles a seat can hold in an Avalon session."""

    UNDECIDED = "Undecided"
    # Good
    SERVANT = "Servant"
    MERLIN = "Merlin"
    PERCIVAL = "Percival"
    # Evil
    MINION = "Minion"
    ASSASSIN = "Assassin"
    MORDRED = "Mordred"
    MORGANA = "Morgana"
    OBERON = "Oberon"

    @property
    def code(self) -> int:
        """Signed integer code used by older clients (sign is the alignment)."""
        return ROLE_DEFINITIONS[self].code

    @classmethod
    def from_code(cls, code: int) -> "Role":
        for role, info in ROLE_DEFINITIONS.items():
            if info.code == code:
                return role
        raise ValueError(f"Unknown role code {code}")


class Alignment(str, Enum):
    """Role alignment. UNKNOWN covers undecided seats and hidden information."""

    GOOD = "Good"
    EVIL = "Evil"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class RoleInfo:
    """Static description of a role."""

    role: Role
    alignment: Alignment
    code: int
    summary: str


ROLE_DEFINITIONS: Dict[Role, RoleInfo] = {
    Role.UNDECIDED: RoleInfo(Role.UNDECIDED, Alignment.UNKNOWN, 0, "Role not assigned yet"),
    Role.SERVANT: RoleInfo(
        Role.SERVANT, Alignment.GOOD, 1, "Loyal servant of Arthur: knows how many evil players exist, not who they are"
    ),
    Role.MERLIN: RoleInfo(Role.MERLIN, Alignment.GOOD, 2, "Knows who the evil players are, except Mordred"),
    Role.PERCIVAL: RoleInfo(Role.PERCIVAL, Alignment.GOOD, 3, "Sees Merlin and Morgana but cannot tell them apart"),
    Role.MINION: RoleInfo(Role.MINION, Alignment.EVIL, -1, "Minion of Mordred: knows the other evil players"),
    Role.ASSASSIN: RoleInfo(
        Role.ASSASSIN, Alignment.EVIL, -2, "Gets one guess at Merlin's identity when good completes three missions"
    ),
    Role.MORDRED: RoleInfo(Role.MORDRED, Alignment.EVIL, -3, "Hidden from Merlin"),
    Role.MORGANA: RoleInfo(Role.MORGANA, Alignment.EVIL, -4, "Appears as Merlin to Percival"),
    Role.OBERON: RoleInfo(
        Role.OBERON, Alignment.EVIL, -5, "Unknown to the other evil players and does not know them either"
    ),
}

MANDATORY_ROLES: tuple[Role, ...] = (Role.MERLIN, Role.ASSASSIN)
ADDITIONAL_ROLES: FrozenSet[Role] = frozenset({Role.PERCIVAL, Role.MORDRED, Role.MORGANA, Role.OBERON})
GOOD_FILLER = Role.SERVANT
EVIL_FILLER = Role.MINION


def alignment_of(role: Role) -> Alignment:
    """Return the alignment of ``role``."""
    return ROLE_DEFINITIONS[role].alignment


def is_evil(role: Role) -> bool:
    return alignment_of(role) == Alignment.EVIL


def is_good(role: Role) -> bool:
    return alignment_of(role) == Alignment.GOOD


def count_evil(roles: Iterable[Role]) -> int:
    return sum(1 for role in roles if is_evil(role))


def count_good(roles: Iterable[Role]) -> int:
    return sum(1 for role in roles if is_good(role))


def pair_percival_morgana(roles: Iterable[Role]) -> List[Role]:
    """Add Morgana whenever Percival is chosen, keeping the caller's order.

    Percival without Morgana sees only Merlin, which gives good a free reveal.
    """

    selected = list(dict.fromkeys(roles))
    if Role.PERCIVAL in selected and Role.MORGANA not in selected:
        selected.append(Role.MORGANA)
    return selected
