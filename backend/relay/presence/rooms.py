"""Conversation rooms: broadcast groups keyed by conversation id.

Rooms hold connection ids, not identities, and store no message content.
They only scope who hears viewing-state changes, typing indicators and read
receipts for a conversation. Empty rooms are dropped immediately.
"""
import logging
from typing import Dict, FrozenSet, List, Optional, Set

logger = logging.getLogger(__name__)


class RoomRouter:
    """Idempotent room membership for one namespace."""

    def __init__(self) -> None:
        # conversation_id -> connection ids
        self._rooms: Dict[str, Set[str]] = {}
        # connection_id -> conversation ids, for O(rooms) teardown
        self._memberships: Dict[str, Set[str]] = {}

    def join(self, connection_id: str, conversation_id: str) -> bool:
        """Add a connection to a room. Returns False if already a member."""
        members = self._rooms.setdefault(conversation_id, set())
        if connection_id in members:
            return False
        members.add(connection_id)
        self._memberships.setdefault(connection_id, set()).add(conversation_id)
        return True

    def leave(self, connection_id: str, conversation_id: str) -> bool:
        """Remove a connection from a room. Returns False if not a member."""
        members = self._rooms.get(conversation_id)
        if not members or connection_id not in members:
            return False
        members.discard(connection_id)
        if not members:
            del self._rooms[conversation_id]

        rooms = self._memberships.get(connection_id)
        if rooms is not None:
            rooms.discard(conversation_id)
            if not rooms:
                del self._memberships[connection_id]
        return True

    def leave_all(self, connection_id: str) -> List[str]:
        """Remove a connection from every room it joined."""
        rooms = sorted(self._memberships.get(connection_id, ()))
        for conversation_id in rooms:
            self.leave(connection_id, conversation_id)
        return rooms

    def members(self, conversation_id: str) -> FrozenSet[str]:
        return frozenset(self._rooms.get(conversation_id, ()))

    def rooms_of(self, connection_id: str) -> FrozenSet[str]:
        return frozenset(self._memberships.get(connection_id, ()))

    def is_member(self, connection_id: str, conversation_id: str) -> bool:
        return connection_id in self._rooms.get(conversation_id, ())

    def broadcast_targets(
        self, conversation_id: Optional[str], exclude: Optional[str] = None
    ) -> FrozenSet[str]:
        """Recipients of a room broadcast, optionally minus the originator."""
        if not conversation_id:
            return frozenset()
        members = self._rooms.get(conversation_id, set())
        return frozenset(conn for conn in members if conn != exclude)

    def room_count(self) -> int:
        return len(self._rooms)
