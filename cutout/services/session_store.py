from __future__ import annotations

import logging
import time
from typing import Callable, Dict

from cutout.core.errors import SessionNotFoundError
from cutout.services.session import EditingSession

logger = logging.getLogger(__name__)


class SessionStore:
    """In-memory registry of editing sessions with idle expiry."""

    def __init__(self, factory: Callable[[], EditingSession], ttl_seconds: int):
        self.factory = factory
        self.ttl_seconds = ttl_seconds
        self.sessions: Dict[str, EditingSession] = {}
        self._last_access: Dict[str, float] = {}

    def create(self) -> EditingSession:
        self._evict_expired()
        session = self.factory()
        self.sessions[session.session_id] = session
        self._last_access[session.session_id] = time.time()
        logger.info("Created session %s", session.session_id)
        return session

    def get(self, session_id: str) -> EditingSession:
        self._evict_expired()
        try:
            session = self.sessions[session_id]
        except KeyError as exc:
            raise SessionNotFoundError(f"Session {session_id} not found") from exc
        self._last_access[session_id] = time.time()
        return session

    def discard(self, session_id: str) -> None:
        session = self.sessions.pop(session_id, None)
        self._last_access.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        session.close()

    def close_all(self) -> None:
        for session_id in list(self.sessions):
            self.discard(session_id)

    def _evict_expired(self) -> None:
        now = time.time()
        expired = [
            session_id
            for session_id, last_access in self._last_access.items()
            if now - last_access > self.ttl_seconds
        ]
        for session_id in expired:
            logger.info("Evicting idle session %s", session_id)
            self.discard(session_id)
