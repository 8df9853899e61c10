"""Friend presence notifications."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from app.monitoring.metrics import relay_soft_failures_total

from .emitter import Emitter, safe_emit
from .errors import StepOutcome
from .events import OutboundEvent
from .registry import ConnectionRegistry
from .store import ChatStore

logger = logging.getLogger(__name__)


class PresenceNotifier:
    """Tell a user's connected friends that the user went online or offline.

    Friends without a registry entry get nothing; presence only reflects the
    moment of the change and is never queued.
    """

    def __init__(self, store: ChatStore, registry: ConnectionRegistry, emitter: Emitter) -> None:
        self._store = store
        self._registry = registry
        self._emitter = emitter

    async def notify_status_change(
        self,
        user_id: int,
        is_online: bool,
        *,
        exclude_sid: str | None = None,
        last_seen: datetime | None = None,
    ) -> StepOutcome:
        try:
            friend_ids = await self._store.find_friend_ids(user_id)
        except Exception as exc:
            logger.warning(
                "Unable to load friends of user %s; skipping presence notification",
                user_id,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            relay_soft_failures_total.labels("presence").inc()
            return StepOutcome.failure("presence", exc)

        seen_at = last_seen or datetime.now(timezone.utc)
        payload = {
            "userId": user_id,
            "isOnline": is_online,
            "lastSeen": seen_at.isoformat(),
        }
        notified = 0
        # Registry reads happen after the await above; entries may have changed meanwhile.
        for friend_id in friend_ids:
            entry = self._registry.lookup(friend_id)
            if entry is None or entry.sid == exclude_sid:
                continue
            if await safe_emit(self._emitter, entry.sid, OutboundEvent.FRIEND_STATUS_CHANGE, payload):
                notified += 1
        logger.debug(
            "Notified %d of %d friends that user %s is %s",
            notified,
            len(friend_ids),
            user_id,
            "online" if is_online else "offline",
        )
        return StepOutcome.success("presence", affected=notified)
