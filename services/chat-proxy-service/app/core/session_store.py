from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Literal

from app.core.settings import SETTINGS

logger = logging.getLogger(__name__)

ANONYMOUS_SESSION_ID = "anonymous"

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class Turn:
    role: Role
    content: str


class SessionStore:
    """Process-wide conversation history keyed by session id.

    Sessions live until ``clear`` is called or, when ``max_sessions`` is set,
    until they become the least recently appended entry past the cap. The lock
    only guards the mapping itself; two requests on the same session still
    append in completion order.
    """

    def __init__(self, max_sessions: int = 0) -> None:
        self.max_sessions = max(0, max_sessions)
        self._sessions: OrderedDict[str, list[Turn]] = OrderedDict()
        self._lock = Lock()

    def append(self, session_id: str, turn: Turn) -> None:
        with self._lock:
            turns = self._sessions.get(session_id)
            if turns is None:
                turns = []
                self._sessions[session_id] = turns
            else:
                self._sessions.move_to_end(session_id)
            turns.append(turn)
            self._evict_locked()

    def recent(self, session_id: str, n: int) -> tuple[Turn, ...]:
        if n <= 0:
            return ()
        with self._lock:
            turns = self._sessions.get(session_id)
            if not turns:
                return ()
            return tuple(turns[-n:])

    def turns(self, session_id: str) -> tuple[Turn, ...]:
        with self._lock:
            return tuple(self._sessions.get(session_id, ()))

    def clear(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def size(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _evict_locked(self) -> None:
        if not self.max_sessions:
            return
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Evicted chat session %s (max_sessions=%d)", evicted, self.max_sessions)


STORE = SessionStore(max_sessions=SETTINGS.max_sessions)
