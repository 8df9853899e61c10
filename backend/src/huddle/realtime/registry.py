"""In-memory registry of authenticated connections."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.monitoring.metrics import relay_registered_users
from app.schemas import UserSnapshot

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ConnectionEntry:
    """Live connection of one user."""

    sid: str
    external_id: str
    user: UserSnapshot

    @property
    def user_id(self) -> int:
        return self.user.id


class ConnectionRegistry:
    """Track at most one live connection per user.

    Every method completes without awaiting, so each call is atomic on the
    event loop and readers from other connections' handlers always observe a
    consistent map.
    """

    def __init__(self) -> None:
        self._entries: dict[int, ConnectionEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, user_id: int, entry: ConnectionEntry) -> ConnectionEntry | None:
        """Store *entry* for *user_id*, returning the entry it replaced."""

        previous = self._entries.get(user_id)
        self._entries[user_id] = entry
        if previous is not None and previous.sid != entry.sid:
            logger.info(
                "User %s re-authenticated on %s; dropping registry entry for %s",
                user_id,
                entry.sid,
                previous.sid,
            )
        relay_registered_users.set(len(self._entries))
        return previous

    def lookup(self, user_id: int) -> ConnectionEntry | None:
        return self._entries.get(user_id)

    def remove(self, user_id: int, *, sid: str | None = None) -> bool:
        """Drop the entry for *user_id*.

        When *sid* is given the entry is only removed if it still belongs to
        that connection, so a stale connection closing never evicts a newer one.
        """

        entry = self._entries.get(user_id)
        if entry is None:
            return False
        if sid is not None and entry.sid != sid:
            return False
        del self._entries[user_id]
        relay_registered_users.set(len(self._entries))
        return True
