"""State machine driving missions, team proposals and votes.

The phase of a session is never stored. It is derived from the session
document alone, so any snapshot can be inspected without replaying history:

    NOT_STARTED -> SELECTING_MEMBERS -> WAITING_FOR_APPROVAL
        -> (denied) SELECTING_MEMBERS
        -> WAITING_FOR_VOTE -> next mission ... -> GUESSING_MERLIN -> FINISHED

Transitions mutate the session they are given. Callers hand in a private
copy and persist it only when the transition returns without raising, and a
transition always carries the session through every deterministic follow-up
step (tally -> next team, last vote -> next mission) before returning.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from .errors import AccessDenied, InvalidPhase, InvalidTarget, InvalidTeamSelection, NotMember
from .roles import Role
from .rulesets import DEFAULT_RULES, GameRules
from .schemas import GameSession, Mission, Situation, Team, TeamResult, TeamSummary

LOGGER = structlog.get_logger(__name__)


class Phase(str, Enum):
    """Derived session phases."""

    NOT_STARTED = "NOT_STARTED"
    SELECTING_MEMBERS = "SELECTING_MEMBERS"
    WAITING_FOR_APPROVAL = "WAITING_FOR_APPROVAL"
    WAITING_FOR_VOTE = "WAITING_FOR_VOTE"
    GUESSING_MERLIN = "GUESSING_MERLIN"
    FINISHED = "FINISHED"


class Outcome(str, Enum):
    """Game outcomes."""

    GOOD_WIN = "Good"
    EVIL_WIN = "Evil"


def leader_for_attempt(attempt: int, players: int) -> int:
    """Index of the player leading the ``attempt``-th team of the session (0-based)."""
    return attempt % players


def count_approvals(team: Team) -> Tuple[int, int]:
    """Return ``(approves, denies)`` among cast approvals."""
    approves = sum(1 for value in team.approvals.values() if value is True)
    denies = sum(1 for value in team.approvals.values() if value is False)
    return approves, denies


def count_fail_votes(team: Team) -> int:
    return sum(1 for value in team.success_votes.values() if value is False)


def _all_decided(slots: Iterable[Optional[bool]]) -> bool:
    return all(value is not None for value in slots)


class MissionEngine:
    """Computes and applies mission/team transitions under a fixed rule set."""

    def __init__(self, rules: GameRules = DEFAULT_RULES) -> None:
        self.rules = rules

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def team_result(self, session: GameSession, mission_index: int, team: Team) -> TeamResult:
        if not team.member_indices:
            return TeamResult.SELECTING
        if not team.approvals or not _all_decided(team.approvals.values()):
            return TeamResult.APPROVAL_PENDING
        approves, denies = count_approvals(team)
        if denies >= approves:
            return TeamResult.DENIED
        if not team.success_votes or not _all_decided(team.success_votes.values()):
            return TeamResult.VOTE_PENDING
        threshold = self.rules.fail_threshold(len(session.players), mission_index)
        return TeamResult.FAILED if count_fail_votes(team) >= threshold else TeamResult.SUCCEEDED

    def mission_result(self, session: GameSession, mission_index: int) -> Optional[bool]:
        """``True`` succeeded, ``False`` failed, ``None`` unresolved.

        A mission whose last allowed team attempt was denied counts as failed.
        """

        mission = session.missions[mission_index]
        if not mission.teams:
            return None
        result = self.team_result(session, mission_index, mission.teams[-1])
        if result == TeamResult.SUCCEEDED:
            return True
        if result == TeamResult.FAILED:
            return False
        if result == TeamResult.DENIED and len(mission.teams) >= self.rules.max_team_attempts:
            return False
        return None

    def mission_results(self, session: GameSession) -> List[Optional[bool]]:
        return [self.mission_result(session, index) for index in range(len(session.missions))]

    def tally(self, session: GameSession) -> Tuple[int, int]:
        """Return ``(succeeded, failed)`` mission counts."""
        results = self.mission_results(session)
        return results.count(True), results.count(False)

    def summaries(self, session: GameSession) -> List[List[TeamSummary]]:
        """Per-mission list of per-attempt summaries, in play order."""

        summaries: List[List[TeamSummary]] = []
        attempt = 0
        for mission_index, mission in enumerate(session.missions):
            rows: List[TeamSummary] = []
            for attempt_index, team in enumerate(mission.teams):
                result = self.team_result(session, mission_index, team)
                deniers: List[int] = []
                if result not in (TeamResult.SELECTING, TeamResult.APPROVAL_PENDING):
                    deniers = [
                        index for index, player in enumerate(session.players) if team.approvals.get(player.id) is False
                    ]
                rows.append(
                    TeamSummary(
                        mission_index=mission_index,
                        attempt_index=attempt_index,
                        leader_index=leader_for_attempt(attempt, len(session.players)),
                        member_indices=list(team.member_indices),
                        denier_indices=deniers,
                        fail_votes_count=(
                            count_fail_votes(team) if result in (TeamResult.SUCCEEDED, TeamResult.FAILED) else None
                        ),
                        result=result,
                    )
                )
                attempt += 1
            summaries.append(rows)
        return summaries

    def outcome(self, session: GameSession) -> Optional[Outcome]:
        succeeded, failed = self.tally(session)
        if failed >= self.rules.missions_to_win:
            return Outcome.EVIL_WIN
        if succeeded >= self.rules.missions_to_win and session.guess_merlin is not None:
            return Outcome.EVIL_WIN if session.guess_merlin else Outcome.GOOD_WIN
        return None

    def phase(self, session: GameSession) -> Phase:
        if not session.is_playing():
            return Phase.NOT_STARTED
        team = session.last_team()
        if team is not None:
            result = self.team_result(session, len(session.missions) - 1, team)
            if result == TeamResult.SELECTING:
                return Phase.SELECTING_MEMBERS
            if result == TeamResult.APPROVAL_PENDING:
                return Phase.WAITING_FOR_APPROVAL
            if result == TeamResult.VOTE_PENDING:
                return Phase.WAITING_FOR_VOTE
        succeeded, failed = self.tally(session)
        if (
            failed < self.rules.missions_to_win
            and succeeded >= self.rules.missions_to_win
            and session.guess_merlin is None
        ):
            return Phase.GUESSING_MERLIN
        return Phase.FINISHED

    def current_mission_ordinal(self, session: GameSession) -> Optional[int]:
        return len(session.missions) - 1 if session.missions else None

    def required_team_size(self, session: GameSession) -> Optional[int]:
        ordinal = self.current_mission_ordinal(session)
        if ordinal is None or not self.rules.supports(len(session.players)):
            return None
        return self.rules.team_size(len(session.players), ordinal)

    def current_fail_threshold(self, session: GameSession) -> Optional[int]:
        ordinal = self.current_mission_ordinal(session)
        if ordinal is None or not self.rules.supports(len(session.players)):
            return None
        return self.rules.fail_threshold(len(session.players), ordinal)

    def leader_index(self, session: GameSession) -> Optional[int]:
        """Leader of the current team attempt. Leadership rotates on every attempt, denied ones included."""
        attempts = session.teams_count()
        if attempts == 0 or not session.players:
            return None
        return leader_for_attempt(attempts - 1, len(session.players))

    def is_leader(self, session: GameSession, user_id: Optional[str]) -> bool:
        index = self.leader_index(session)
        return index is not None and session.players[index].id == user_id

    def is_team_member(self, session: GameSession, user_id: Optional[str]) -> bool:
        team = session.last_team()
        index = session.index_of(user_id)
        return team is not None and index is not None and index in team.member_indices

    def situation(self, session: GameSession) -> Situation:
        players = len(session.players)
        if not session.is_playing():
            if players < self.rules.min_players:
                return Situation(status="Waiting for more players", slot=None)
            return Situation(status="Ready", slot=players < self.rules.max_players)

        phase = self.phase(session)
        if phase == Phase.SELECTING_MEMBERS:
            return Situation(status="Leader is selecting team members")
        if phase == Phase.WAITING_FOR_APPROVAL:
            return Situation(status="Waiting for players to approve the mission team members")
        if phase == Phase.WAITING_FOR_VOTE:
            return Situation(status="Waiting for team members to vote for the mission success or fail")
        if phase == Phase.GUESSING_MERLIN:
            return Situation(status="Waiting for Assassin to guess Merlin's identity")
        good_won = self.outcome(session) == Outcome.GOOD_WIN
        return Situation(status="Good players win" if good_won else "Evil players win", good_won=good_won)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start_mission(self, session: GameSession) -> bool:
        """Append the next mission with an open team, unless the game is decided."""

        succeeded, failed = self.tally(session)
        if succeeded >= self.rules.missions_to_win or failed >= self.rules.missions_to_win:
            self._log_progression_stopped(session, succeeded, failed)
            return False
        if len(session.missions) >= self.rules.missions_count:
            return False
        session.missions.append(Mission(teams=[Team()]))
        LOGGER.info(
            "mission.started",
            session_id=session.id,
            mission=len(session.missions) - 1,
            leader=self.leader_index(session),
        )
        return True

    def select_members(self, session: GameSession, user_id: str, member_indices: Sequence[int]) -> None:
        if self.phase(session) != Phase.SELECTING_MEMBERS:
            raise InvalidTeamSelection("The team for this attempt is already selected.")
        if not self.is_leader(session, user_id):
            raise AccessDenied("Only the current leader can select team members.")
        self._validate_members(session, member_indices)

        team = self._current_team(session)
        team.member_indices = list(member_indices)
        team.approvals = {player.id: None for player in session.players}
        LOGGER.info(
            "team.selected",
            session_id=session.id,
            mission=len(session.missions) - 1,
            members=team.member_indices,
        )

    def approve(self, session: GameSession, user_id: str, approval: bool) -> None:
        if not session.has_player(user_id):
            raise NotMember()
        if self.phase(session) != Phase.WAITING_FOR_APPROVAL:
            raise InvalidPhase("The team is not waiting for approvals.")

        team = self._current_team(session)
        team.approvals[user_id] = approval
        if _all_decided(team.approvals.values()):
            self._resolve_approval(session, team)

    def vote(self, session: GameSession, user_id: str, success: bool) -> None:
        if not self.is_team_member(session, user_id):
            raise NotMember("Only members of the current team can vote.")
        if self.phase(session) != Phase.WAITING_FOR_VOTE:
            raise InvalidPhase("The mission is not waiting for votes.")

        team = self._current_team(session)
        team.success_votes[user_id] = success
        if _all_decided(team.success_votes.values()):
            self._resolve_mission(session, team)

    def guess_merlin(self, session: GameSession, user_id: str, target_index: int) -> bool:
        """Record whether the Assassin named Merlin. Returns the stored outcome."""

        if self.phase(session) != Phase.GUESSING_MERLIN or session.role_of(user_id) != Role.ASSASSIN:
            raise AccessDenied("Only the Assassin can guess Merlin, and only after good completes three missions.")
        if not 0 <= target_index < len(session.players):
            raise InvalidTarget(target_index=target_index)

        session.guess_merlin = session.players[target_index].role == Role.MERLIN
        LOGGER.info(
            "merlin.guessed",
            session_id=session.id,
            target=target_index,
            correct=session.guess_merlin,
            outcome=getattr(self.outcome(session), "value", None),
        )
        return session.guess_merlin

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _current_team(self, session: GameSession) -> Team:
        team = session.last_team()
        if team is None:
            raise InvalidPhase("No team attempt is open.")
        return team

    def _validate_members(self, session: GameSession, member_indices: Sequence[int]) -> None:
        required = self.required_team_size(session)
        if len(member_indices) != required:
            raise InvalidTeamSelection(f"Select exactly {required} team members.", required=required)
        if len(set(member_indices)) != len(member_indices):
            raise InvalidTeamSelection("Team members must be different players.")
        if any(not 0 <= index < len(session.players) for index in member_indices):
            raise InvalidTeamSelection("Team members must be seated players.")

    def _open_team(self, session: GameSession) -> bool:
        mission = session.missions[-1]
        if len(mission.teams) >= self.rules.max_team_attempts:
            return False
        mission.teams.append(Team())
        return True

    def _resolve_approval(self, session: GameSession, team: Team) -> None:
        approves, denies = count_approvals(team)
        mission_index = len(session.missions) - 1
        if denies >= approves:
            LOGGER.info("team.denied", session_id=session.id, mission=mission_index, approves=approves, denies=denies)
            if not self._open_team(session):
                LOGGER.info("mission.resolved", session_id=session.id, mission=mission_index, succeeded=False, reason="attempts_exhausted")
                self.start_mission(session)
            return

        LOGGER.info("team.approved", session_id=session.id, mission=mission_index, approves=approves, denies=denies)
        team.success_votes = {session.players[index].id: None for index in team.member_indices}

    def _resolve_mission(self, session: GameSession, team: Team) -> None:
        mission_index = len(session.missions) - 1
        LOGGER.info(
            "mission.resolved",
            session_id=session.id,
            mission=mission_index,
            succeeded=self.mission_result(session, mission_index),
            fails=count_fail_votes(team),
        )
        self.start_mission(session)

    def _log_progression_stopped(self, session: GameSession, succeeded: int, failed: int) -> None:
        phase = self.phase(session)
        LOGGER.info(
            "game.guessing_merlin" if phase == Phase.GUESSING_MERLIN else "game.finished",
            session_id=session.id,
            succeeded=succeeded,
            failed=failed,
            outcome=getattr(self.outcome(session), "value", None),
        )
