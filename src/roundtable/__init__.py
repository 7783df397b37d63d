"""Avalon game sessions: rules, state machine, disclosure and command service."""

from .core import assignment, disclosure, errors, fsm, roles, rulesets, schemas, suggestions
from .core.fsm import MissionEngine, Outcome, Phase
from .core.roles import Alignment, Role
from .core.rulesets import DEFAULT_RULES, GameRules
from .core.schemas import GameSession
from .services.commands import SessionService
from .services.store import SessionStore

__version__ = "0.1.0"

__all__ = [
    "Alignment",
    "DEFAULT_RULES",
    "GameRules",
    "GameSession",
    "MissionEngine",
    "Outcome",
    "Phase",
    "Role",
    "SessionService",
    "SessionStore",
    "assignment",
    "disclosure",
    "errors",
    "fsm",
    "roles",
    "rulesets",
    "schemas",
    "suggestions",
]
