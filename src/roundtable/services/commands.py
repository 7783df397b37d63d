"""Authenticated session commands and read projections.

Each command reads the stored session, validates the caller and computes the
next state on a private copy inside :meth:`SessionStore.update`, so it
either applies in full or is rejected with nothing written.
"""

from __future__ import annotations

import random
from typing import Callable, List, Optional, Sequence, TypeVar

import structlog

from ..config.settings import ServiceConfig
from ..core.assignment import assign_roles, reset_roles, validate_additional_roles
from ..core.disclosure import player_card, redact_session
from ..core.errors import (
    AccessDenied,
    AlreadyMember,
    GameError,
    GameInProgress,
    NotAuthenticated,
    NotMember,
    SessionFull,
    StorageError,
)
from ..core.fsm import MissionEngine, Phase
from ..core.roles import Role
from ..core.rulesets import DEFAULT_RULES, GameRules
from ..core.schemas import GameSession, Message, Player, SessionListItem, SessionView
from ..core.suggestions import suggest
from ..utils.rng import build_rng
from .store import SessionStore

LOGGER = structlog.get_logger(__name__)

T = TypeVar("T")


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise NotAuthenticated()
    return user_id


class SessionService:
    """Entry point for every command a client can issue against a session."""

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        *,
        config: Optional[ServiceConfig] = None,
        rules: GameRules = DEFAULT_RULES,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or ServiceConfig()
        self.store = store or SessionStore(self.config.snapshot_dir)
        self.engine = MissionEngine(rules)
        self.rng = rng or build_rng(seed=self.config.seed)

    @property
    def rules(self) -> GameRules:
        return self.engine.rules

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_session(self, user_id: Optional[str], name: str) -> GameSession:
        owner = _require_user(user_id)
        session = GameSession(owner_id=owner, name=name, players=[Player(id=owner)])
        stored = await self.store.insert(session)
        LOGGER.info("session.created", session_id=stored.id, owner=owner, name=name)
        return stored

    async def join(self, user_id: Optional[str], session_id: str) -> GameSession:
        caller = _require_user(user_id)

        def mutate(session: GameSession) -> None:
            if session.has_player(caller):
                raise AlreadyMember()
            if session.is_playing():
                raise GameInProgress()
            if len(session.players) >= self.rules.max_players:
                raise SessionFull(max_players=self.rules.max_players)
            session.players.append(Player(id=caller))

        return await self._execute("join", session_id, caller, mutate)

    async def leave(self, user_id: Optional[str], session_id: str) -> Optional[GameSession]:
        """Remove the caller; the session is deleted when its last player leaves.

        Leaving a finished game sends the remaining players back to the lobby.
        Ownership passes to the next seated player when the owner leaves.
        """

        caller = _require_user(user_id)

        def mutate(session: GameSession) -> None:
            if not session.has_player(caller):
                raise NotMember()
            phase = self.engine.phase(session)
            if phase not in (Phase.NOT_STARTED, Phase.FINISHED):
                raise GameInProgress("Can't leave while the game is in progress.")
            if phase == Phase.FINISHED:
                reset_roles(session)
            session.remove_player(caller)
            if session.players and session.has_owner(caller):
                session.owner_id = session.players[0].id

        return await self._execute("leave", session_id, caller, mutate, allow_removal=True)

    async def start(
        self,
        user_id: Optional[str],
        session_id: str,
        *,
        reset: bool = False,
        additional_roles: Sequence[Role] = (),
    ) -> GameSession:
        caller = _require_user(user_id)
        roles = list(additional_roles)

        def mutate(session: GameSession) -> None:
            if not session.has_owner(caller):
                raise AccessDenied("Don't have permission to start playing.")
            validate_additional_roles(len(session.players), roles, self.rules)
            if reset:
                reset_roles(session)
                return
            assign_roles(session, roles, self.rng, self.rules)
            self.engine.start_mission(session)

        return await self._execute("start", session_id, caller, mutate)

    async def select_members(self, user_id: Optional[str], session_id: str, member_indices: Sequence[int]) -> GameSession:
        caller = _require_user(user_id)
        members = list(member_indices)
        return await self._execute(
            "select_members", session_id, caller, lambda session: self.engine.select_members(session, caller, members)
        )

    async def approve(self, user_id: Optional[str], session_id: str, approval: bool) -> GameSession:
        caller = _require_user(user_id)
        return await self._execute(
            "approve", session_id, caller, lambda session: self.engine.approve(session, caller, approval)
        )

    async def vote(self, user_id: Optional[str], session_id: str, success: bool) -> GameSession:
        caller = _require_user(user_id)
        return await self._execute("vote", session_id, caller, lambda session: self.engine.vote(session, caller, success))

    async def guess_merlin(self, user_id: Optional[str], session_id: str, target_index: int) -> GameSession:
        caller = _require_user(user_id)
        return await self._execute(
            "guess_merlin",
            session_id,
            caller,
            lambda session: self.engine.guess_merlin(session, caller, target_index),
        )

    async def send_message(self, user_id: Optional[str], session_id: str, text: str) -> GameSession:
        caller = _require_user(user_id)
        if not text:
            return await self.store.get(session_id)

        def mutate(session: GameSession) -> None:
            sender = session.index_of(caller)
            if sender is None:
                raise NotMember()
            session.messages.append(Message(sender_index=sender, text=text[: self.config.max_message_length]))

        return await self._execute("send_message", session_id, caller, mutate)

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    async def list_sessions(self) -> List[SessionListItem]:
        return [
            SessionListItem(
                id=session.id,
                name=session.name,
                owner_id=session.owner_id,
                player_ids=session.player_ids(),
                missions_count=len(session.missions),
            )
            for session in await self.store.list_sessions()
        ]

    async def get_session(self, session_id: str, viewer_id: Optional[str] = None) -> GameSession:
        """Detail projection. Roles are redacted for ``viewer_id`` unless disabled in the config."""
        session = await self.store.get(session_id)
        if not self.config.redact_roles:
            return session
        return redact_session(session, viewer_id, self.engine)

    async def view(self, session_id: str, viewer_id: Optional[str]) -> SessionView:
        return self.build_view(await self.store.get(session_id), viewer_id)

    def build_view(self, session: GameSession, viewer_id: Optional[str]) -> SessionView:
        """Board as seen by ``viewer_id``: phase, summaries, disclosed player cards and the hint."""
        engine = self.engine
        return SessionView(
            id=session.id,
            name=session.name,
            owner_id=session.owner_id,
            version=session.version,
            phase=engine.phase(session).value,
            situation=engine.situation(session),
            leader_index=engine.leader_index(session),
            team_size=engine.required_team_size(session),
            fail_threshold=engine.current_fail_threshold(session),
            mission_results=engine.mission_results(session),
            summaries=engine.summaries(session),
            players=[player_card(session, viewer_id, index, engine) for index in range(len(session.players))],
            suggestion=suggest(session, viewer_id, engine),
            messages=list(session.messages),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _execute(
        self,
        command: str,
        session_id: str,
        user_id: str,
        mutator: Callable[[GameSession], T],
        *,
        allow_removal: bool = False,
    ) -> Optional[GameSession]:
        log = LOGGER.bind(command=command, session_id=session_id, user_id=user_id)
        try:
            session, _ = await self.store.update(session_id, mutator)
        except GameError as exc:
            log.info("command.rejected", code=exc.code, reason=exc.message)
            raise
        except StorageError as exc:
            log.error("command.storage_failed", error=str(exc))
            raise
        if session is None and not allow_removal:
            raise StorageError(f"Session {session_id} was removed by {command}")
        log.info("command.applied", version=getattr(session, "version", None))
        return session
