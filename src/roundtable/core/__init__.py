"""Core game logic and data structures."""

from . import assignment, disclosure, errors, fsm, roles, rulesets, schemas, suggestions

__all__ = ["assignment", "disclosure", "errors", "fsm", "roles", "rulesets", "schemas", "suggestions"]
