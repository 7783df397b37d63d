"""Error taxonomy for session commands.

Every :class:`GameError` is a terminal, pre-mutation rejection of a single
command. :class:`StorageError` is kept outside that hierarchy so gateway
failures are never mistaken for rule violations.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class GameError(Exception):
    """Base class for rejected commands."""

    code = "game.error"
    default_message = "Command rejected."

    def __init__(self, message: Optional[str] = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, **({"details": self.details} if self.details else {})}


class NotAuthenticated(GameError):
    code = "session.notAuthenticated"
    default_message = "Must be logged in."


class AlreadyMember(GameError):
    code = "session.alreadyJoined"
    default_message = "Already joined this session."


class NotMember(GameError):
    code = "session.notMember"
    default_message = "Not a member of this session."


class AccessDenied(GameError):
    code = "session.accessDenied"
    default_message = "Don't have permission to do that."


class InvalidRoleSelection(GameError):
    code = "session.invalidAdditionalRoles"
    default_message = "Invalid selected additional roles."


class InvalidTeamSelection(GameError):
    code = "session.invalidMembers"
    default_message = "Invalid selected mission team members."


class SessionNotFound(GameError):
    code = "session.notFound"
    default_message = "Session not found."


class InvalidPhase(GameError):
    code = "session.invalidPhase"
    default_message = "That action is not available right now."


class InvalidPlayerCount(GameError):
    code = "session.invalidPlayerCount"
    default_message = "Sessions need between 5 and 10 players to start."


class InvalidTarget(GameError):
    code = "session.invalidTarget"
    default_message = "Invalid target player."


class GameInProgress(GameError):
    code = "session.inProgress"
    default_message = "The game is already in progress."


class SessionFull(GameError):
    code = "session.full"
    default_message = "This session is full."


class StorageError(RuntimeError):
    """Raised when the persistence gateway cannot complete an operation."""


class VersionConflict(StorageError):
    """Raised when a compare-and-set write targets a stale version."""

    def __init__(self, session_id: str, expected: int, actual: int) -> None:
        self.session_id = session_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Session {session_id} is at version {actual}, expected {expected}")
