"""Contextual hints telling a viewer what they can do next."""

from __future__ import annotations

from typing import Optional

from .fsm import MissionEngine, Phase
from .roles import Role
from .schemas import GameSession


def suggest(session: GameSession, viewer_id: Optional[str], engine: MissionEngine) -> Optional[str]:
    """Return the hint for ``viewer_id``, or ``None`` when there is nothing to do."""

    phase = engine.phase(session)
    team = session.last_team()

    if phase == Phase.NOT_STARTED and session.has_owner(viewer_id):
        budget = engine.rules.evil_count(len(session.players)) - 1
        return f"Select additional roles if you want (you can only select up to {budget} additional evil role(s))"

    if phase == Phase.SELECTING_MEMBERS and engine.is_leader(session, viewer_id):
        return f"Select {engine.required_team_size(session)} team members"

    if phase == Phase.WAITING_FOR_APPROVAL and session.has_player(viewer_id) and team is not None:
        approval = team.approvals.get(viewer_id or "")
        echo = "" if approval is None else f" (You {'approved' if approval else 'denied'})"
        return f"Approve or deny the mission team members{echo}"

    if phase == Phase.WAITING_FOR_VOTE and engine.is_team_member(session, viewer_id) and team is not None:
        vote = team.success_votes.get(viewer_id or "")
        echo = "" if vote is None else f" (You voted for {'success' if vote else 'fail'})"
        return f"Vote for the mission success or fail{echo}"

    if phase == Phase.GUESSING_MERLIN and session.role_of(viewer_id) == Role.ASSASSIN:
        return "Select one player to guess who is Merlin"

    return None
