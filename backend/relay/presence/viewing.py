"""Viewing-state tracking layered on the presence registry.

Per identity:

    OFFLINE            no presence entry
    CONNECTED          entry exists, not viewing any conversation
    VIEWING(c)         entry exists, conversation ``c`` open in the foreground

Transitions only flip the flags on the presence entry; joining rooms and
notifying peers is the dispatcher's job. Operations on identities without a
presence entry are no-ops so duplicate or out-of-order client events are
tolerated.
"""
import logging
from enum import Enum
from typing import Optional

from .registry import PresenceEntry, PresenceRegistry

logger = logging.getLogger(__name__)


class ViewingStatus(str, Enum):
    """Presence state of an identity as seen by the delivery resolver."""
    OFFLINE = "offline"
    CONNECTED = "connected"
    VIEWING = "viewing"


class ViewingTracker:
    """Reads and mutates the viewing flags of presence entries."""

    def __init__(self, registry: PresenceRegistry) -> None:
        self.registry = registry

    def status_of(self, user_id: Optional[str]) -> ViewingStatus:
        entry = self.registry.lookup(user_id)
        if entry is None:
            return ViewingStatus.OFFLINE
        return ViewingStatus.VIEWING if entry.isViewingChat else ViewingStatus.CONNECTED

    def viewing_status(
        self, user_id: Optional[str], conversation_id: Optional[str]
    ) -> ViewingStatus:
        """Status relative to one conversation.

        Viewing some other conversation counts as CONNECTED. Without a
        conversation id to compare against, any viewing counts.
        """
        status = self.status_of(user_id)
        if status is not ViewingStatus.VIEWING or conversation_id is None:
            return status
        entry = self.registry.lookup(user_id)
        if entry.conversationId != conversation_id:
            return ViewingStatus.CONNECTED
        return status

    def active_conversation(self, user_id: Optional[str]) -> Optional[str]:
        entry = self.registry.lookup(user_id)
        if entry is None or not entry.isViewingChat:
            return None
        return entry.conversationId

    def start_viewing(
        self, user_id: str, conversation_id: str
    ) -> Optional[PresenceEntry]:
        """CONNECTED -> VIEWING(conversation_id). Returns None if offline."""
        entry = self.registry.lookup(user_id)
        if entry is None:
            return None
        entry.isViewingChat = True
        entry.conversationId = conversation_id
        entry.touch()
        return entry

    def stop_viewing(self, user_id: str) -> Optional[str]:
        """VIEWING(c) -> CONNECTED.

        Returns:
            The conversation id that was being viewed, or None when the
            identity is offline or was not viewing anything.
        """
        entry = self.registry.lookup(user_id)
        if entry is None:
            return None
        previous = entry.conversationId if entry.isViewingChat else None
        entry.isViewingChat = False
        entry.conversationId = None
        entry.touch()
        return previous
