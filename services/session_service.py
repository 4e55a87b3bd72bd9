"""Session Service Module

This module provides:
1. The SessionStore interface (get/put/delete keyed by session id)
2. An in-memory, process-lifetime implementation with LRU eviction

There is no durability: sessions vanish on eviction or restart.
"""
import logging
import threading
import uuid
from collections import OrderedDict
from typing import Optional, Protocol

from config.settings import MAX_SESSIONS
from models.session import ConversationSession

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Keyed storage for conversation sessions."""

    def get(self, session_id: str) -> Optional[ConversationSession]:
        ...

    def put(self, session: ConversationSession) -> None:
        ...

    def delete(self, session_id: str) -> bool:
        ...


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:12]}"


class InMemorySessionService:
    """
    In-memory session store.

    Features:
    - Get/Put/Delete sessions, safe across threads
    - Least-recently-used eviction beyond ``max_sessions``
    """

    def __init__(self, max_sessions: int = MAX_SESSIONS):
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, ConversationSession]" = OrderedDict()
        self._mutex = threading.Lock()

    # === SessionStore ===

    def get(self, session_id: str) -> Optional[ConversationSession]:
        with self._mutex:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session

    def put(self, session: ConversationSession) -> None:
        with self._mutex:
            self._sessions[session.session_id] = session
            self._sessions.move_to_end(session.session_id)
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info(f"Evicted least recently used session: {evicted}")

    def delete(self, session_id: str) -> bool:
        with self._mutex:
            if self._sessions.pop(session_id, None) is not None:
                logger.info(f"Deleted session: {session_id}")
                return True
            return False

    def __len__(self) -> int:
        with self._mutex:
            return len(self._sessions)
