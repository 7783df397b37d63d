"""
Tests for the session command service and its projections.
"""

import asyncio
from collections import Counter

import pytest

from roundtable.config.settings import ServiceConfig
from roundtable.core.errors import (
    AccessDenied,
    AlreadyMember,
    GameInProgress,
    InvalidPlayerCount,
    InvalidRoleSelection,
    NotAuthenticated,
    NotMember,
    SessionFull,
    SessionNotFound,
)
from roundtable.core.fsm import Phase
from roundtable.core.roles import Role
from roundtable.services.commands import SessionService

from conftest import run, seat_players


def test_create_seats_the_owner(service):
    session = run(service.create_session("p0", "table"))
    assert session.owner_id == "p0"
    assert session.player_ids() == ["p0"]
    assert session.version == 1


def test_commands_require_a_caller(service):
    async def scenario():
        with pytest.raises(NotAuthenticated):
            await service.create_session(None, "table")
        session = await service.create_session("p0", "table")
        with pytest.raises(NotAuthenticated):
            await service.join("", session.id)

    run(scenario())


def test_join_rules(service):
    async def scenario():
        session = await seat_players(service, 10)
        with pytest.raises(AlreadyMember):
            await service.join("p3", session.id)
        with pytest.raises(SessionFull):
            await service.join("p10", session.id)
        with pytest.raises(SessionNotFound):
            await service.join("p10", "missing")
        return await service.store.get(session.id)

    session = run(scenario())
    assert len(session.players) == 10
    assert session.version == 10


def test_join_is_closed_while_playing(service):
    async def scenario():
        session = await seat_players(service, 5)
        await service.start("p0", session.id)
        with pytest.raises(GameInProgress):
            await service.join("late", session.id)

    run(scenario())


def test_only_the_owner_starts(service):
    async def scenario():
        session = await seat_players(service, 5)
        with pytest.raises(AccessDenied):
            await service.start("p1", session.id)
        return await service.store.get(session.id)

    session = run(scenario())
    assert session.version == 5
    assert not session.is_playing()


def test_start_deals_roles_and_opens_the_first_mission(service):
    async def scenario():
        session = await seat_players(service, 7)
        return await service.start("p0", session.id, additional_roles=[Role.PERCIVAL, Role.MORGANA])

    session = run(scenario())
    roles = Counter(player.role for player in session.players)
    assert roles[Role.MERLIN] == roles[Role.ASSASSIN] == roles[Role.PERCIVAL] == roles[Role.MORGANA] == 1
    assert roles[Role.UNDECIDED] == 0
    assert service.engine.phase(session) == Phase.SELECTING_MEMBERS
    assert service.engine.leader_index(session) == 0


def test_start_validation(service):
    async def scenario():
        session = await seat_players(service, 4)
        with pytest.raises(InvalidPlayerCount):
            await service.start("p0", session.id)
        await service.join("p4", session.id)
        with pytest.raises(InvalidRoleSelection):
            await service.start("p0", session.id, additional_roles=[Role.MORDRED, Role.MORGANA])
        with pytest.raises(InvalidRoleSelection):
            await service.start("p0", session.id, reset=True, additional_roles=[Role.MERLIN])
        return await service.store.get(session.id)

    session = run(scenario())
    assert not session.is_playing()
    assert session.version == 5


def test_reset_start_returns_to_lobby(service):
    async def scenario():
        session = await seat_players(service, 5)
        await service.start("p0", session.id)
        await service.send_message("p2", session.id, "hello")
        return await service.start("p0", session.id, reset=True)

    session = run(scenario())
    assert not session.is_playing()
    assert session.messages == []
    assert all(player.role == Role.UNDECIDED for player in session.players)


def test_restart_redeals_and_clears_the_guess(service):
    async def scenario():
        session = await seat_players(service, 5)
        await service.start("p0", session.id)
        return await service.start("p0", session.id)

    session = run(scenario())
    assert len(session.missions) == 1
    assert session.guess_merlin is None


def test_rejected_commands_leave_the_version_unchanged(service):
    async def scenario():
        session = await seat_players(service, 5)
        session = await service.start("p0", session.id)
        with pytest.raises(AccessDenied):
            await service.select_members("p3", session.id, [0, 1])
        with pytest.raises(NotMember):
            await service.approve("stranger", session.id, True)
        return session.version, (await service.store.get(session.id)).version

    before, after = run(scenario())
    assert before == after


def _seat_of(session, role):
    return next(index for index, player in enumerate(session.players) if player.role == role)


def test_full_game_through_the_service(service):
    async def scenario():
        session = await seat_players(service, 5)
        session = await service.start("p0", session.id)
        engine = service.engine
        while engine.phase(session) == Phase.SELECTING_MEMBERS:
            leader = session.players[engine.leader_index(session)].id
            session = await service.select_members(leader, session.id, list(range(engine.required_team_size(session))))
            for player in session.player_ids():
                session = await service.approve(player, session.id, True)
            for index in list(session.last_team().member_indices):
                session = await service.vote(session.players[index].id, session.id, True)
        assert engine.phase(session) == Phase.GUESSING_MERLIN

        assassin = session.players[_seat_of(session, Role.ASSASSIN)].id
        merlin = _seat_of(session, Role.MERLIN)
        target = next(index for index in range(5) if index != merlin and session.players[index].id != assassin)
        return await service.guess_merlin(assassin, session.id, target)

    session = run(scenario())
    assert service.engine.phase(session) == Phase.FINISHED
    assert service.engine.situation(session).good_won is True
    assert session.guess_merlin is False


def test_leave_rules(service):
    async def scenario():
        session = await seat_players(service, 5)
        session = await service.leave("p0", session.id)
        assert session.owner_id == "p1"
        assert session.player_ids() == ["p1", "p2", "p3", "p4"]
        with pytest.raises(NotMember):
            await service.leave("p0", session.id)

        await service.join("p5", session.id)
        await service.start("p1", session.id)
        with pytest.raises(GameInProgress):
            await service.leave("p2", session.id)

    run(scenario())


def test_last_player_leaving_removes_the_session(service):
    async def scenario():
        session = await service.create_session("p0", "solo")
        result = await service.leave("p0", session.id)
        return result, await service.list_sessions()

    result, sessions = run(scenario())
    assert result is None
    assert sessions == []


def test_messages(service):
    async def scenario():
        session = await seat_players(service, 2)
        unchanged = await service.send_message("p1", session.id, "")
        session = await service.send_message("p1", session.id, "x" * 600)
        with pytest.raises(NotMember):
            await service.send_message("stranger", session.id, "hi")
        return unchanged, session

    unchanged, session = run(scenario())
    assert unchanged.version == 2
    assert unchanged.messages == []
    assert session.version == 3
    assert session.messages[0].sender_index == 1
    assert len(session.messages[0].text) == 500


def test_list_projection_never_carries_roles(service):
    async def scenario():
        session = await seat_players(service, 5)
        await service.start("p0", session.id)
        return await service.list_sessions()

    (item,) = run(scenario())
    dumped = item.model_dump(by_alias=True)
    assert set(dumped) == {"id", "name", "ownerId", "playerIds", "missionsCount"}
    assert dumped["missionsCount"] == 1


def test_detail_projection_is_redacted_per_viewer(service):
    async def scenario():
        session = await seat_players(service, 5)
        await service.start("p0", session.id)
        return await service.get_session(session.id, "p2"), await service.get_session(session.id, None)

    own, spectator = run(scenario())
    assert own.players[2].role != Role.UNDECIDED
    assert all(player.role == Role.UNDECIDED for index, player in enumerate(own.players) if index != 2)
    assert all(player.role == Role.UNDECIDED for player in spectator.players)


def test_redaction_can_be_disabled():
    service = SessionService(config=ServiceConfig(seed=1, redact_roles=False))

    async def scenario():
        session = await seat_players(service, 5)
        await service.start("p0", session.id)
        return await service.get_session(session.id, None)

    session = run(scenario())
    assert all(player.role != Role.UNDECIDED for player in session.players)


def test_board_view(service):
    async def scenario():
        session = await seat_players(service, 5)
        await service.start("p0", session.id)
        return await service.view(session.id, "p0")

    view = run(scenario())
    assert view.phase == "SELECTING_MEMBERS"
    assert view.leader_index == 0
    assert view.team_size == 2
    assert view.fail_threshold == 1
    assert view.mission_results == [None]
    assert view.suggestion == "Select 2 team members"
    assert view.players[0].is_leader
    assert view.players[0].label != "Undecided"


def test_seeded_services_deal_the_same_roles():
    async def deal(seed):
        service = SessionService(config=ServiceConfig(seed=seed))
        session = await seat_players(service, 8)
        session = await service.start("p0", session.id)
        return [player.role for player in session.players]

    assert run(deal(5)) == run(deal(5))


def test_leaving_keeps_message_senders_aligned(service):
    async def scenario():
        session = await seat_players(service, 3)
        await service.send_message("p2", session.id, "hello from p2")
        await service.send_message("p1", session.id, "from p1")
        await service.send_message("p0", session.id, "from p0")
        await service.leave("p1", session.id)
        await service.join("p3", session.id)
        return await service.send_message("p3", session.id, "from p3")

    session = run(scenario())
    assert session.player_ids() == ["p0", "p2", "p3"]
    senders = [(session.players[message.sender_index].id, message.text) for message in session.messages]
    assert senders == [("p2", "hello from p2"), ("p0", "from p0"), ("p3", "from p3")]


def test_concurrent_casts_are_tallied_in_one_round(service):
    async def scenario():
        session = await seat_players(service, 5)
        await service.start("p0", session.id)
        session = await service.select_members("p0", session.id, [0, 1])
        selected = session.version

        await asyncio.gather(*(service.approve(f"p{index}", session.id, True) for index in range(5)))
        voting = await service.store.get(session.id)
        await asyncio.gather(*(service.vote(user_id, session.id, True) for user_id in ("p0", "p1")))
        return selected, voting, await service.store.get(session.id)

    selected, voting, resolved = run(scenario())
    engine = service.engine

    assert engine.phase(voting) == Phase.WAITING_FOR_VOTE
    assert len(voting.missions[0].teams) == 1
    assert voting.last_team().success_votes == {"p0": None, "p1": None}
    assert voting.version == selected + 5

    assert engine.phase(resolved) == Phase.SELECTING_MEMBERS
    assert engine.mission_results(resolved) == [True, None]
    assert len(resolved.missions[0].teams) == 1
    assert resolved.version == selected + 7


def test_concurrent_denials_open_exactly_one_new_team(service):
    async def scenario():
        session = await seat_players(service, 5)
        await service.start("p0", session.id)
        session = await service.select_members("p0", session.id, [0, 1])
        await asyncio.gather(*(service.approve(f"p{index}", session.id, False) for index in range(5)))
        return await service.store.get(session.id)

    session = run(scenario())
    assert len(session.missions) == 1
    assert len(session.missions[0].teams) == 2
    assert service.engine.leader_index(session) == 1
    assert service.engine.phase(session) == Phase.SELECTING_MEMBERS
