"""In-process persistence gateway for session documents.

Every write is a whole-document replacement performed under a per-session
:class:`asyncio.Lock` and bumps the session ``version``. A mutator that
raises leaves the stored document untouched, which gives commands their
all-or-nothing behaviour.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

import orjson
import structlog

from ..core.errors import SessionNotFound, StorageError, VersionConflict
from ..core.schemas import GameSession

LOGGER = structlog.get_logger(__name__)

T = TypeVar("T")
Mutator = Callable[[GameSession], T]


class SessionStore:
    """Registry of session documents with atomic versioned updates and change notification."""

    def __init__(self, snapshot_dir: Optional[Path] = None) -> None:
        self._sessions: Dict[str, GameSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock = asyncio.Lock()
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)
        self.snapshot_dir = snapshot_dir
        if snapshot_dir is not None:
            self._load_snapshots(snapshot_dir)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, session_id: str) -> GameSession:
        """Return a private copy of the stored document."""
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id=session_id)
            return session.model_copy(deep=True)

    async def list_sessions(self) -> List[GameSession]:
        async with self._lock:
            return [session.model_copy(deep=True) for session in self._sessions.values()]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, session: GameSession) -> GameSession:
        async with self._lock:
            if session.id in self._sessions:
                raise StorageError(f"Session {session.id} already exists")
            stored = session.model_copy(deep=True)
            stored.version = 1
            self._persist(stored)
            self._sessions[stored.id] = stored
            self._locks[stored.id] = asyncio.Lock()
        self._notify(stored.id, stored)
        return stored.model_copy(deep=True)

    async def update(self, session_id: str, mutator: Mutator[T]) -> Tuple[Optional[GameSession], T]:
        """Apply ``mutator`` to a copy of the session and store it atomically.

        Returns the new document (``None`` when the mutation left the session
        without players, in which case it is removed) and the mutator's result.
        """

        lock = await self._lock_for(session_id)
        async with lock:
            current = self._sessions.get(session_id)
            if current is None:
                raise SessionNotFound(session_id=session_id)
            draft = current.model_copy(deep=True)
            result = mutator(draft)
            if not draft.players:
                await self._remove(session_id)
                return None, result
            return self._commit(current, draft), result

    async def compare_and_set(self, session: GameSession, expected_version: int) -> GameSession:
        """Store ``session`` only if the stored document is still at ``expected_version``.

        Optimistic-concurrency entry point for writers outside the command
        service, such as admin tools editing a snapshot they read earlier.
        Commands go through :meth:`update`, which holds the session lock for
        the whole read-modify-write.
        """

        lock = await self._lock_for(session.id)
        async with lock:
            current = self._sessions.get(session.id)
            if current is None:
                raise SessionNotFound(session_id=session.id)
            if current.version != expected_version:
                raise VersionConflict(session.id, expected_version, current.version)
            return self._commit(current, session.model_copy(deep=True))

    async def remove(self, session_id: str) -> None:
        lock = await self._lock_for(session_id)
        async with lock:
            if session_id not in self._sessions:
                raise SessionNotFound(session_id=session_id)
            await self._remove(session_id)

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, session_id: str) -> asyncio.Queue:
        """Queue receiving every new snapshot of the session, then ``None`` on removal."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers[session_id].append(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(session_id)
        if queues and queue in queues:
            queues.remove(queue)
            if not queues:
                self._subscribers.pop(session_id, None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _lock_for(self, session_id: str) -> asyncio.Lock:
        async with self._lock:
            lock = self._locks.get(session_id)
            if lock is None:
                raise SessionNotFound(session_id=session_id)
            return lock

    def _commit(self, current: GameSession, draft: GameSession) -> GameSession:
        draft.version = current.version + 1
        self._persist(draft)
        self._sessions[draft.id] = draft
        self._notify(draft.id, draft)
        return draft.model_copy(deep=True)

    async def _remove(self, session_id: str) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)
            self._locks.pop(session_id, None)
        if self.snapshot_dir is not None:
            try:
                self._snapshot_path(self.snapshot_dir, session_id).unlink(missing_ok=True)
            except OSError as exc:
                raise StorageError(f"Could not remove snapshot for {session_id}: {exc}") from exc
        self._notify(session_id, None)
        LOGGER.info("session.removed", session_id=session_id)

    def _notify(self, session_id: str, session: Optional[GameSession]) -> None:
        for queue in list(self._subscribers.get(session_id, [])):
            queue.put_nowait(None if session is None else session.model_copy(deep=True))

    @staticmethod
    def _snapshot_path(snapshot_dir: Path, session_id: str) -> Path:
        return snapshot_dir / f"{session_id}.json"

    def _persist(self, session: GameSession) -> None:
        if self.snapshot_dir is None:
            return
        payload = orjson.dumps(session.model_dump(mode="json", by_alias=True), option=orjson.OPT_INDENT_2)
        try:
            self.snapshot_dir.mkdir(parents=True, exist_ok=True)
            self._snapshot_path(self.snapshot_dir, session.id).write_bytes(payload)
        except OSError as exc:
            LOGGER.error("snapshot.write_failed", session_id=session.id, error=str(exc))
            raise StorageError(f"Could not write snapshot for {session.id}: {exc}") from exc

    def _load_snapshots(self, snapshot_dir: Path) -> None:
        if not snapshot_dir.exists():
            return
        for path in sorted(snapshot_dir.glob("*.json")):
            try:
                session = GameSession.model_validate(orjson.loads(path.read_bytes()))
            except (OSError, ValueError) as exc:
                raise StorageError(f"Could not load snapshot {path}: {exc}") from exc
            self._sessions[session.id] = session
            self._locks[session.id] = asyncio.Lock()
        LOGGER.info("snapshots.loaded", directory=str(snapshot_dir), sessions=len(self._sessions))
