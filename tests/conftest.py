"""
Pytest fixtures and helpers for roundtable tests.
"""

import asyncio
from typing import List, Optional, Sequence

import pytest

from roundtable.config.settings import ServiceConfig
from roundtable.core.assignment import build_role_deck
from roundtable.core.fsm import MissionEngine, Phase
from roundtable.core.roles import Role
from roundtable.core.schemas import GameSession, Player
from roundtable.services.commands import SessionService


def player_ids(count: int) -> List[str]:
    return [f"p{index}" for index in range(count)]


def make_session(players: int = 5, roles: Optional[Sequence[Role]] = None) -> GameSession:
    """Seated session with fixed roles (Merlin, Assassin, then fillers by default)."""
    roles = list(roles) if roles is not None else build_role_deck(players, [])
    ids = player_ids(players)
    return GameSession(
        owner_id=ids[0],
        name="table",
        players=[Player(id=user_id, role=role) for user_id, role in zip(ids, roles)],
    )


def leader_id(engine: MissionEngine, session: GameSession) -> str:
    return session.players[engine.leader_index(session)].id


def propose(engine: MissionEngine, session: GameSession, members: Optional[Sequence[int]] = None) -> List[int]:
    """Have the current leader select ``members`` (the first seats by default)."""
    members = list(members) if members is not None else list(range(engine.required_team_size(session)))
    engine.select_members(session, leader_id(engine, session), members)
    return members


def approve_all(engine: MissionEngine, session: GameSession, approvals) -> None:
    """Cast approvals for every player; ``approvals`` is a bool or one bool per player."""
    if isinstance(approvals, bool):
        approvals = [approvals] * len(session.players)
    for player, approval in zip(list(session.players), approvals):
        engine.approve(session, player.id, approval)


def vote_all(engine: MissionEngine, session: GameSession, fails: int = 0) -> None:
    """Team members vote; the first ``fails`` members vote fail."""
    team = session.last_team()
    for position, index in enumerate(list(team.member_indices)):
        engine.vote(session, session.players[index].id, position >= fails)


def play_mission(engine: MissionEngine, session: GameSession, *, succeed: bool = True, fails: Optional[int] = None) -> None:
    assert engine.phase(session) == Phase.SELECTING_MEMBERS
    propose(engine, session)
    approve_all(engine, session, True)
    if fails is None:
        fails = 0 if succeed else engine.current_fail_threshold(session)
    vote_all(engine, session, fails=fails)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def engine() -> MissionEngine:
    return MissionEngine()


@pytest.fixture
def started_session(engine) -> GameSession:
    session = make_session(5)
    engine.start_mission(session)
    return session


@pytest.fixture
def service() -> SessionService:
    return SessionService(config=ServiceConfig(seed=7))


async def seat_players(service: SessionService, count: int, name: str = "table") -> GameSession:
    ids = player_ids(count)
    session = await service.create_session(ids[0], name)
    for user_id in ids[1:]:
        session = await service.join(user_id, session.id)
    return session
