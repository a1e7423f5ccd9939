"""
In-memory user directory, optionally seeded from configuration.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Set

from support_relay.data_access.base import UserDirectory
from support_relay.core.schemas import Role, UserRecord

logger = logging.getLogger(__name__)


class InMemoryUserDirectory(UserDirectory):
    """Username-keyed user records. Generated ids look like 'customer-3'."""

    def __init__(self, users: Optional[Iterable[dict]] = None):
        self._lock = threading.Lock()
        self._users: Dict[str, UserRecord] = {}
        self._counter = 0
        self._taken_ids: Set[str] = set()

        for entry in users or []:
            self.add_user(entry["username"], Role.parse(entry.get("role", Role.CUSTOMER)), entry.get("id"))

    def _next_id(self, role: Role) -> str:
        # Seeded ids share the namespace, skip any already in use
        while True:
            self._counter += 1
            candidate = f"{role.value.lower()}-{self._counter}"
            if candidate not in self._taken_ids:
                return candidate

    def add_user(self, username: str, role: Role, user_id: Optional[str] = None) -> UserRecord:
        with self._lock:
            record = UserRecord(id=user_id or self._next_id(role), username=username, role=role)
            self._users[username] = record
            self._taken_ids.add(record.id)
        logger.debug(f"Directory entry {record.id} ({username}, {role.value})")
        return record

    async def list_by_role(self, role: Role) -> List[UserRecord]:
        with self._lock:
            return [user for user in self._users.values() if user.role is role]

    async def get_by_username(self, username: str) -> Optional[UserRecord]:
        with self._lock:
            return self._users.get(username)

    async def get_or_create(self, username: str, role: Role) -> UserRecord:
        with self._lock:
            existing = self._users.get(username)
            if existing is not None:
                return existing
            record = UserRecord(id=self._next_id(role), username=username, role=role)
            self._users[username] = record
            self._taken_ids.add(record.id)

        logger.info(f"Registered new {role.value.lower()} {username} as {record.id}")
        return record
