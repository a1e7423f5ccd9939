"""
Session registry: which connection currently speaks for which user.
Single source of truth for presence.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from support_relay.orchestration.connection import ConnectionHandle
from support_relay.core.schemas import Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Active realtime connection record for one authenticated user."""
    user_id: str
    connection: ConnectionHandle
    role: Optional[Role] = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SessionRegistry:
    """
    Maps user id to its current connection handle.

    At most one session per user id; a new register() replaces the previous
    one. A reverse index keyed by handle identity makes unregister() O(1) and
    guarantees that a late disconnect of a superseded handle never removes the
    session installed by the newer login.

    All operations take the internal lock, so the registry can be shared by
    every connection task and by worker threads.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}
        self._users_by_handle: Dict[int, str] = {}  # id(handle) -> user_id

    def register(self, user_id: str, handle: ConnectionHandle, role: Optional[Role] = None) -> None:
        """Insert or replace the session for user_id. Last writer wins."""
        session = Session(user_id=user_id, connection=handle, role=role)
        with self._lock:
            previous = self._sessions.get(user_id)
            if previous is not None and previous.connection is not handle:
                self._users_by_handle.pop(id(previous.connection), None)

            # A handle speaks for one user; re-login under another id moves it.
            other_user = self._users_by_handle.get(id(handle))
            if other_user is not None and other_user != user_id:
                other = self._sessions.get(other_user)
                if other is not None and other.connection is handle:
                    del self._sessions[other_user]

            self._sessions[user_id] = session
            self._users_by_handle[id(handle)] = user_id

        if previous is not None and previous.connection is not handle:
            logger.info(f"Session for {user_id} superseded by a new login")
        else:
            logger.debug(f"Registered session for {user_id}")

    def unregister(self, handle: ConnectionHandle) -> Optional[str]:
        """
        Remove the session owned by this handle.

        Returns:
            The user id that went offline, or None if the handle was not
            registered (never logged in, or already superseded).
        """
        with self._lock:
            user_id = self._users_by_handle.pop(id(handle), None)
            if user_id is None:
                return None
            current = self._sessions.get(user_id)
            if current is None or current.connection is not handle:
                return None
            del self._sessions[user_id]

        logger.debug(f"Unregistered session for {user_id}")
        return user_id

    def lookup(self, user_id: str) -> Optional[ConnectionHandle]:
        with self._lock:
            session = self._sessions.get(user_id)
        return session.connection if session is not None else None

    def is_online(self, user_id: str) -> bool:
        return self.lookup(user_id) is not None

    def get_session(self, user_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(user_id)

    def online_user_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions.keys())

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __len__(self) -> int:
        return self.count()

    def clear(self) -> int:
        """Drop every session. Used at shutdown; handles are not closed."""
        with self._lock:
            dropped = len(self._sessions)
            self._sessions.clear()
            self._users_by_handle.clear()
        if dropped:
            logger.info(f"Cleared {dropped} active session(s)")
        return dropped
