"""
Sequential Thinking Session Registry

Maps caller session ids to their own ThinkingEngine. Engines idle for longer
than the configured TTL are dropped; their persisted sequences are not.
"""
import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from app.thinking.engine import ThinkingEngine

logger = logging.getLogger(__name__)

DEFAULT_SESSION_ID = "default"


class SessionRegistry:
    def __init__(
        self,
        engine_factory: Callable[[str], ThinkingEngine],
        ttl_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._engine_factory = engine_factory
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, Tuple[ThinkingEngine, float]] = {}
        self._lock = threading.Lock()

    def get(self, session_id: Optional[str] = None) -> ThinkingEngine:
        """The engine for ``session_id``, created on first use."""
        session_id = session_id or DEFAULT_SESSION_ID
        with self._lock:
            self._expire_locked()
            entry = self._sessions.get(session_id)
            if entry is None:
                engine = self._engine_factory(session_id)
                logger.info("Session created", extra={"session_id": session_id})
            else:
                engine = entry[0]
            self._sessions[session_id] = (engine, self._clock())
            return engine

    def expire(self) -> int:
        """Drop idle sessions; returns how many were dropped."""
        with self._lock:
            return self._expire_locked()

    def drop(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def _expire_locked(self) -> int:
        now = self._clock()
        stale = [
            session_id
            for session_id, (_, last_used) in self._sessions.items()
            if now - last_used > self._ttl_seconds
        ]
        for session_id in stale:
            del self._sessions[session_id]
            logger.info("Session expired", extra={"session_id": session_id})
        return len(stale)
