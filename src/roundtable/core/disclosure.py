"""What each viewer may learn about each player.

Knowledge is asymmetric:

- Merlin sees every evil player except Mordred.
- Percival sees Merlin and Morgana, without telling them apart.
- The evil team sees each other, except Oberon, who sees nobody and is seen
  by nobody.
- Servants see nothing.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

from .fsm import MissionEngine, Phase
from .roles import Alignment, Role, alignment_of, is_evil, is_good
from .schemas import Disclosure, GameSession, PlayerCard

UNDECIDED = Disclosure(label="Undecided", alignment=Alignment.UNKNOWN)
UNKNOWN = Disclosure(label="Unknown", alignment=Alignment.UNKNOWN)
SEEN_GOOD = Disclosure(label="Good", alignment=Alignment.GOOD)
SEEN_EVIL = Disclosure(label="Evil", alignment=Alignment.EVIL)
SEEN_AS_MERLIN = Disclosure(label="Merlin", alignment=Alignment.GOOD)


def _servant_view(target: Role) -> Disclosure:
    return UNKNOWN


def _merlin_view(target: Role) -> Disclosure:
    if is_evil(target) and target != Role.MORDRED:
        return SEEN_EVIL
    return SEEN_GOOD


def _percival_view(target: Role) -> Disclosure:
    if target in (Role.MERLIN, Role.MORGANA):
        return SEEN_AS_MERLIN
    return UNKNOWN


def _evil_view(target: Role) -> Disclosure:
    if is_good(target) or target == Role.OBERON:
        return SEEN_GOOD
    return SEEN_EVIL


def _oberon_view(target: Role) -> Disclosure:
    return UNKNOWN


KNOWLEDGE_MAP: Dict[Role, Callable[[Role], Disclosure]] = {
    Role.SERVANT: _servant_view,
    Role.MERLIN: _merlin_view,
    Role.PERCIVAL: _percival_view,
    Role.MINION: _evil_view,
    Role.ASSASSIN: _evil_view,
    Role.MORDRED: _evil_view,
    Role.MORGANA: _evil_view,
    Role.OBERON: _oberon_view,
}


def disclose(viewer_role: Optional[Role], target_role: Role, *, is_self: bool = False) -> Disclosure:
    """Return the label and alignment ``viewer_role`` sees for ``target_role``.

    ``viewer_role`` is ``None`` for spectators who are not seated.

    >>> disclose(Role.MERLIN, Role.MORDRED).label
    'Good'
    >>> disclose(Role.ASSASSIN, Role.OBERON).label
    'Good'
    >>> disclose(Role.OBERON, Role.OBERON, is_self=True).label
    'Oberon'
    """

    if target_role == Role.UNDECIDED:
        return UNDECIDED
    if viewer_role is None or viewer_role == Role.UNDECIDED:
        return UNKNOWN
    if is_self:
        return Disclosure(label=target_role.value, alignment=alignment_of(target_role))
    return KNOWLEDGE_MAP[viewer_role](target_role)


def player_status(session: GameSession, viewer_id: Optional[str], player_index: int, engine: MissionEngine) -> str:
    """Round status of one player as shown to ``viewer_id``.

    Approvals are public once cast. Success votes stay hidden except to the
    member who cast them.
    """

    phase = engine.phase(session)
    team = session.last_team()
    if team is None:
        return ""
    player = session.players[player_index]

    if phase == Phase.WAITING_FOR_APPROVAL:
        approval = team.approvals.get(player.id)
        if approval is None:
            return "Undecided"
        return "Approved" if approval else "Denied"

    if phase == Phase.WAITING_FOR_VOTE:
        if player.id not in team.success_votes:
            return ""
        vote = team.success_votes[player.id]
        if player.id != viewer_id or vote is None:
            return "Waiting"
        return "Voted Success" if vote else "Voted Fail"

    return ""


def player_card(session: GameSession, viewer_id: Optional[str], player_index: int, engine: MissionEngine) -> PlayerCard:
    player = session.players[player_index]
    disclosure = disclose(session.role_of(viewer_id), player.role, is_self=player.id == viewer_id)
    team = session.last_team()
    return PlayerCard(
        index=player_index,
        player_id=player.id,
        label=disclosure.label,
        alignment=disclosure.alignment,
        status=player_status(session, viewer_id, player_index, engine),
        is_leader=engine.leader_index(session) == player_index and engine.phase(session) != Phase.FINISHED,
        is_member=team is not None and player_index in team.member_indices,
    )


def redact_session(session: GameSession, viewer_id: Optional[str], engine: MissionEngine) -> GameSession:
    """Copy of ``session`` without the roles and votes ``viewer_id`` may not see.

    Other players' roles become Undecided; the viewer keeps their own role, and
    once the game is over every role is revealed. Success votes cast by other
    members are hidden too; mission results and fail counts are available from
    the summaries of the board view.
    """

    redacted = session.model_copy(deep=True)
    if session.is_playing() and engine.phase(session) == Phase.FINISHED:
        return redacted
    for player in redacted.players:
        if player.id != viewer_id:
            player.role = Role.UNDECIDED
    for mission in redacted.missions:
        for team in mission.teams:
            team.success_votes = {
                member: (vote if member == viewer_id else None) for member, vote in team.success_votes.items()
            }
    return redacted
