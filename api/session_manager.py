# api/session_manager.py
"""
Manages conversation sessions in process memory.

The SessionStore keeps each session's ordered chat history and the
SessionLockSet records which sessions currently have a request in flight.
Both live for the lifetime of the process and are owned by the FastAPI
application (see main.create_app); nothing here survives a restart.

The history of a single session is capped (Settings.max_history_messages),
but the number of sessions is not: every new session id adds an entry that
is only removed by clear_history.
"""
import logging
from typing import Callable, Dict, List, Set

from schemas.chat_schemas import ChatMessage

logger = logging.getLogger(__name__)


class SessionStore:
    """In-memory mapping from session id to its ordered list of turns."""

    def __init__(self, max_history_messages: int = 0) -> None:
        # 0 disables the cap.
        self.max_history_messages = max_history_messages
        self._sessions: Dict[str, List[ChatMessage]] = {}

    def get_history(self, session_id: str) -> List[ChatMessage]:
        """Returns a copy of the session history, creating the session on first access."""
        history = self._sessions.setdefault(session_id, [])
        return list(history)

    def peek_history(self, session_id: str) -> List[ChatMessage]:
        """Returns a copy of the session history without creating the session."""
        return list(self._sessions.get(session_id, []))

    def append_exchange(self, session_id: str, user_turn: ChatMessage, assistant_turn: ChatMessage) -> None:
        """
        Appends a completed user/assistant exchange to the session history.
        When the cap is exceeded the oldest exchanges are dropped whole, so the
        history always starts with a user turn and holds complete pairs.
        """
        if user_turn.role != "user" or assistant_turn.role != "assistant":
            raise ValueError("An exchange must be a user turn followed by an assistant turn.")

        history = self._sessions.setdefault(session_id, [])
        history.append(user_turn)
        history.append(assistant_turn)

        if self.max_history_messages:
            # Round the limit down to whole exchanges.
            limit = max(self.max_history_messages - self.max_history_messages % 2, 2)
            if len(history) > limit:
                del history[:len(history) - limit]
                logger.info(f"History for session_id '{session_id}' trimmed to the last {limit} turns.")

        logger.info(f"Exchange saved for session_id '{session_id}' ({len(history)} turns).")

    def clear_history(self, session_id: str) -> None:
        """Removes a session and its history."""
        if self._sessions.pop(session_id, None) is not None:
            logger.info(f"History cleared for session_id: {session_id}")

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class SessionLockSet:
    """
    Set of session ids with a request in flight.

    The relay runs on a single asyncio event loop, so is_locked followed by
    lock is atomic as long as no await sits between the two calls.
    """

    def __init__(self) -> None:
        self._in_flight: Set[str] = set()

    def is_locked(self, session_id: str) -> bool:
        return session_id in self._in_flight

    def lock(self, session_id: str) -> None:
        self._in_flight.add(session_id)
        logger.debug(f"Session '{session_id}' locked.")

    def unlock(self, session_id: str) -> None:
        """Releases the session. Safe to call more than once."""
        if session_id in self._in_flight:
            self._in_flight.discard(session_id)
            logger.debug(f"Session '{session_id}' released.")

    def releaser(self, session_id: str) -> Callable[[], None]:
        """
        Returns a release callback bound to one request. Only its first call
        unlocks, so a late second call cannot free the lock of a newer
        request for the same session.
        """
        released = False

        def release() -> None:
            nonlocal released
            if released:
                return
            released = True
            self.unlock(session_id)

        return release

    def __len__(self) -> int:
        return len(self._in_flight)
