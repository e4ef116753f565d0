"""Presence registry: which identity is bound to which live connection.

The registry keeps two indices that always change together:

    - entries:  userId -> PresenceEntry (forward index)
    - sessions: connectionId -> userId  (reverse index, for disconnects)

Every public mutator updates both in the same call, so a reader can never
observe one index without the other. Each namespace owns its own registry
instance; there is no module-level state.

Thread Safety:
    Designed for a single asyncio event loop. All methods are synchronous
    and never await, so each call is atomic with respect to other events.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

SELLER_PREFIX = "toko_"
BUYER_PREFIX = "pembeli_"


def seller_identity(store_id) -> str:
    """Identity of the seller account owning store ``store_id``."""
    return f"{SELLER_PREFIX}{store_id}"


def buyer_identity(buyer_id) -> str:
    """Identity of buyer ``buyer_id``."""
    return f"{BUYER_PREFIX}{buyer_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PresenceEntry(BaseModel):
    """Live presence record for one connected identity.

    Attributes:
        userId: Role-prefixed identity (e.g. ``toko_1``, ``pembeli_5``).
        connectionId: Transport handle the identity is bound to.
        isViewingChat: True while a conversation is open in the foreground.
        conversationId: The conversation being viewed, if any.
        lastSeen: When the entry was created or last changed.
        role: Free-form role supplied at registration.
    """
    userId: str = Field(..., description="Role-prefixed user identity")
    connectionId: str = Field(..., description="Owning connection handle")
    isViewingChat: bool = Field(default=False)
    conversationId: Optional[str] = Field(default=None)
    lastSeen: datetime = Field(default_factory=_utcnow)
    role: Optional[str] = Field(default=None)

    def touch(self) -> None:
        self.lastSeen = _utcnow()


class UserStatus(BaseModel):
    """Per-identity status entry of a presence snapshot."""
    isOnline: bool = True
    isViewingChat: bool = False
    conversationId: Optional[str] = None
    role: Optional[str] = None


class PresenceSnapshot(BaseModel):
    """Full online set as broadcast in ``online_users_update``."""
    users: List[str] = Field(default_factory=list)
    statuses: Dict[str, UserStatus] = Field(default_factory=dict)


class PresenceRegistry:
    """Bidirectional identity <-> connection index for one namespace."""

    def __init__(self) -> None:
        self._entries: Dict[str, PresenceEntry] = {}
        self._sessions: Dict[str, str] = {}

    def register(
        self, user_id: str, connection_id: str, role: Optional[str] = None
    ) -> Optional[str]:
        """Bind ``user_id`` to ``connection_id`` (last registration wins).

        Returns:
            The connection id that previously owned ``user_id`` when it
            differs from ``connection_id``, otherwise None. The caller
            decides what to do with the superseded connection.
        """
        previous = self._entries.get(user_id)
        superseded = None
        if previous is not None and previous.connectionId != connection_id:
            superseded = previous.connectionId

        # A connection speaks for one identity; re-registering it under a new
        # name releases the old name.
        old_identity = self._sessions.get(connection_id)
        if old_identity is not None and old_identity != user_id:
            old_entry = self._entries.get(old_identity)
            if old_entry is not None and old_entry.connectionId == connection_id:
                del self._entries[old_identity]

        self._entries[user_id] = PresenceEntry(
            userId=user_id, connectionId=connection_id, role=role
        )
        self._sessions[connection_id] = user_id
        return superseded

    def release_connection(self, connection_id: str) -> Optional[str]:
        """Drop only the reverse-index session of a superseded connection.

        The identity's entry is left untouched because it now belongs to a
        newer connection.
        """
        user_id = self._sessions.get(connection_id)
        if user_id is None:
            return None
        entry = self._entries.get(user_id)
        if entry is not None and entry.connectionId == connection_id:
            # Still the owner; this is not a superseded connection.
            return None
        del self._sessions[connection_id]
        return user_id

    def lookup(self, user_id: Optional[str]) -> Optional[PresenceEntry]:
        """Return the live entry for ``user_id``; None means offline."""
        if not user_id:
            return None
        return self._entries.get(user_id)

    def identity_for(self, connection_id: str) -> Optional[str]:
        """Return the identity bound to ``connection_id``, if any."""
        return self._sessions.get(connection_id)

    def connection_for(self, user_id: Optional[str]) -> Optional[str]:
        entry = self.lookup(user_id)
        return entry.connectionId if entry else None

    def remove(self, user_id: str) -> Optional[PresenceEntry]:
        """Remove ``user_id`` and the session of its owning connection."""
        entry = self._entries.pop(user_id, None)
        if entry is None:
            return None
        if self._sessions.get(entry.connectionId) == user_id:
            del self._sessions[entry.connectionId]
        return entry

    def remove_by_connection(self, connection_id: str) -> Optional[PresenceEntry]:
        """Remove whatever identity ``connection_id`` is bound to.

        An entry owned by a newer connection is never removed: only the
        stale session is dropped and None is returned.
        """
        user_id = self._sessions.pop(connection_id, None)
        if user_id is None:
            return None
        entry = self._entries.get(user_id)
        if entry is None or entry.connectionId != connection_id:
            logger.debug(
                "Stale session %s for %s released without touching presence",
                connection_id, user_id,
            )
            return None
        del self._entries[user_id]
        return entry

    def online_count(self) -> int:
        return len(self._entries)

    def session_count(self) -> int:
        return len(self._sessions)

    def online_users(self) -> List[str]:
        return list(self._entries.keys())

    def snapshot(self) -> PresenceSnapshot:
        """Build the full presence snapshot, read fresh on every call."""
        return PresenceSnapshot(
            users=self.online_users(),
            statuses={
                user_id: UserStatus(
                    isOnline=True,
                    isViewingChat=entry.isViewingChat,
                    conversationId=entry.conversationId,
                    role=entry.role,
                )
                for user_id, entry in self._entries.items()
            },
        )
