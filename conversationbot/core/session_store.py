"""Session storage with durable JSON snapshots."""
import os
import json
import asyncio
import logging
import aiofiles
from contextlib import asynccontextmanager
from typing import Dict, List, Optional
from pydantic import TypeAdapter

from conversationbot.models.schemas import UserSession

logger = logging.getLogger(__name__)

_snapshot_adapter = TypeAdapter(Dict[str, UserSession])


class ReadWriteLock:
    """Asyncio lock with a shared side for lookups and an exclusive side for inserts."""

    def __init__(self):
        self._condition = asyncio.Condition()
        self._readers = 0
        self._writer = False

    @asynccontextmanager
    async def shared(self):
        async with self._condition:
            await self._condition.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            async with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @asynccontextmanager
    async def exclusive(self):
        async with self._condition:
            await self._condition.wait_for(lambda: not self._writer and self._readers == 0)
            self._writer = True
        try:
            yield
        finally:
            async with self._condition:
                self._writer = False
                self._condition.notify_all()


class SessionStore:
    """
    Registry of per-actor sessions.

    The store guards membership of the mapping only. Callers mutating a
    session they obtained from it must hold ``session_lock(actor_id)``.
    """

    def __init__(self, storage_path: str):
        """
        Initialize session store.

        Args:
            storage_path: Snapshot file used when load/persist get no path
        """
        self.storage_path = storage_path
        self._sessions: Dict[str, UserSession] = {}
        self._membership = ReadWriteLock()
        self._persist_lock = asyncio.Lock()
        self._locks: Dict[str, asyncio.Lock] = {}  # Per-session locks for mutations

    def __len__(self) -> int:
        return len(self._sessions)

    def session_lock(self, actor_id: str) -> asyncio.Lock:
        """Get or create the mutation lock for a session."""
        if actor_id not in self._locks:
            self._locks[actor_id] = asyncio.Lock()
        return self._locks[actor_id]

    async def get(self, actor_id: str) -> Optional[UserSession]:
        """Look up a session without creating it."""
        async with self._membership.shared():
            return self._sessions.get(actor_id)

    async def get_or_create(self, actor_id: str) -> UserSession:
        """
        Return the session for an actor, creating a default one on first contact.

        Args:
            actor_id: Actor identifier

        Returns:
            The single session record owned by the store for this actor
        """
        async with self._membership.shared():
            session = self._sessions.get(actor_id)
        if session is not None:
            return session

        async with self._membership.exclusive():
            # Another caller may have inserted while we waited
            session = self._sessions.get(actor_id)
            if session is None:
                session = UserSession()
                self._sessions[actor_id] = session
                logger.info(f"Created new session: {actor_id}")
            return session

    async def actor_ids(self) -> List[str]:
        """List known actors."""
        async with self._membership.shared():
            return list(self._sessions.keys())

    async def load(self, path: Optional[str] = None):
        """
        Replace the in-memory mapping with the snapshot at ``path``.

        A missing, empty or unreadable snapshot leaves the store empty.
        """
        path = path or self.storage_path
        sessions: Dict[str, UserSession] = {}

        if not os.path.exists(path):
            logger.info(f"No existing storage file found at {path}. Starting fresh.")
        else:
            try:
                async with aiofiles.open(path, 'r') as f:
                    data = await f.read()
                if data.strip():
                    sessions = _snapshot_adapter.validate_json(data)
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load storage from {path}, starting empty: {e}")
                sessions = {}

        async with self._membership.exclusive():
            self._sessions = sessions

        logger.info(f"Loaded {len(sessions)} sessions from disk.")

    async def persist(self, path: Optional[str] = None) -> bool:
        """
        Write every session to ``path`` atomically.

        Returns:
            True if the snapshot was written
        """
        path = path or self.storage_path
        temp_file = f"{path}.tmp"

        async with self._persist_lock:
            async with self._membership.shared():
                snapshot = {
                    actor_id: session.model_dump(mode='json', exclude_none=True)
                    for actor_id, session in self._sessions.items()
                }

            try:
                directory = os.path.dirname(path)
                if directory:
                    os.makedirs(directory, exist_ok=True)

                # Write to temporary file first
                async with aiofiles.open(temp_file, 'w') as f:
                    await f.write(json.dumps(snapshot, indent=2))

                # Atomic move
                os.replace(temp_file, path)

                logger.debug(f"Storage saved: {len(snapshot)} sessions")
                return True

            except OSError as e:
                logger.error(f"Failed to save storage to {path}: {e}")
                # Clean up temp file if it exists
                if os.path.exists(temp_file):
                    try:
                        os.remove(temp_file)
                    except OSError:
                        logger.warning(f"Could not remove temp file {temp_file}")
                return False
