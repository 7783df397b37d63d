"""Pydantic models for game sessions and their read projections."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .roles import Alignment, Role


def _now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


class Model(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Player(Model):
    """A seat in the session."""

    id: str
    role: Role = Role.UNDECIDED


class Team(Model):
    """One team proposal attempt within a mission.

    ``approvals`` maps every player id to ``None`` (undecided), ``True``
    (approve) or ``False`` (deny) once the leader has selected members.
    ``success_votes`` maps every selected member's id to the same tri-state
    once the team has been approved.
    """

    member_indices: List[int] = Field(default_factory=list)
    approvals: Dict[str, Optional[bool]] = Field(default_factory=dict)
    success_votes: Dict[str, Optional[bool]] = Field(default_factory=dict)


class Mission(Model):
    """A mission and every team attempt made for it."""

    teams: List[Team] = Field(default_factory=list)


class Message(Model):
    """A chat message. ``sender_index`` is the sender's current seat."""

    sender_index: int
    text: str
    sent_at: datetime = Field(default_factory=_now)


class GameSession(Model):
    """The whole session document. Owns every nested entity."""

    id: str = Field(default_factory=_new_id)
    owner_id: str
    name: str
    players: List[Player] = Field(default_factory=list)
    missions: List[Mission] = Field(default_factory=list)
    guess_merlin: Optional[bool] = None  # True when the Assassin named Merlin
    messages: List[Message] = Field(default_factory=list)
    version: int = 0
    created_at: datetime = Field(default_factory=_now)

    def player_ids(self) -> List[str]:
        return [player.id for player in self.players]

    def index_of(self, user_id: Optional[str]) -> Optional[int]:
        for index, player in enumerate(self.players):
            if player.id == user_id:
                return index
        return None

    def has_player(self, user_id: Optional[str]) -> bool:
        return self.index_of(user_id) is not None

    def has_owner(self, user_id: Optional[str]) -> bool:
        return self.owner_id == user_id

    def role_of(self, user_id: Optional[str]) -> Optional[Role]:
        """Role held by ``user_id``, or ``None`` when the user is not seated."""
        index = self.index_of(user_id)
        return None if index is None else self.players[index].role

    def remove_player(self, user_id: str) -> None:
        """Unseat ``user_id`` and keep message senders pointing at the right seats.

        The departing player's messages are dropped; later seats shift down
        by one, and so do their messages' ``sender_index``.
        """
        index = self.index_of(user_id)
        if index is None:
            return
        del self.players[index]
        self.messages = [message for message in self.messages if message.sender_index != index]
        for message in self.messages:
            if message.sender_index > index:
                message.sender_index -= 1

    def is_playing(self) -> bool:
        return len(self.missions) != 0

    def last_mission(self) -> Optional[Mission]:
        return self.missions[-1] if self.missions else None

    def last_team(self) -> Optional[Team]:
        mission = self.last_mission()
        if mission is None or not mission.teams:
            return None
        return mission.teams[-1]

    def teams_count(self) -> int:
        return sum(len(mission.teams) for mission in self.missions)


# ---------------------------------------------------------------------------
# Read projections
# ---------------------------------------------------------------------------


class TeamResult(str, Enum):
    """Derived result of a single team attempt."""

    SELECTING = "SELECTING"
    APPROVAL_PENDING = "APPROVAL_PENDING"
    DENIED = "DENIED"
    VOTE_PENDING = "VOTE_PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class TeamSummary(Model):
    """What a finished (or in-flight) team attempt amounted to."""

    mission_index: int
    attempt_index: int
    leader_index: int
    member_indices: List[int] = Field(default_factory=list)
    denier_indices: List[int] = Field(default_factory=list)
    fail_votes_count: Optional[int] = None
    result: TeamResult = TeamResult.SELECTING


class Disclosure(Model):
    """What a viewer may learn about one player's role."""

    label: str
    alignment: Alignment


class PlayerCard(Model):
    """A player as seen by one viewer."""

    index: int
    player_id: str
    label: str
    alignment: Alignment
    status: str = ""
    is_leader: bool = False
    is_member: bool = False


class Situation(Model):
    """One-line status of a session.

    ``slot`` is only meaningful before play: ``None`` while more players are
    needed, otherwise whether another player can still join. ``good_won`` is
    set once the game is finished.
    """

    status: str = ""
    slot: Optional[bool] = None
    good_won: Optional[bool] = None


class SessionListItem(Model):
    """Public list projection. Roles and votes are never included."""

    id: str
    name: str
    owner_id: str
    player_ids: List[str]
    missions_count: int


class SessionView(Model):
    """Per-viewer board projection."""

    id: str
    name: str
    owner_id: str
    version: int
    phase: str
    situation: Situation
    leader_index: Optional[int] = None
    team_size: Optional[int] = None
    fail_threshold: Optional[int] = None
    mission_results: List[Optional[bool]] = Field(default_factory=list)
    summaries: List[List[TeamSummary]] = Field(default_factory=list)
    players: List[PlayerCard] = Field(default_factory=list)
    suggestion: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)
