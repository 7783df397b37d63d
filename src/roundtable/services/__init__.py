"""Service modules for the session store, commands, CLI and web API."""

from . import commands, store

__all__ = ["commands", "store"]
