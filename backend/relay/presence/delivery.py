"""Delivery-status resolution and read-receipt memory.

The check mark shown next to a sent message reflects the *recipient* only:

    recipient OFFLINE    -> single       (sent, not delivered live)
    recipient CONNECTED  -> double_gray  (delivered, not being viewed)
    recipient VIEWING    -> double_blue  (delivered into an open conversation)

The sender's status is logged for observability but never changes the
verdict.

Once a conversation thread is marked read, every message recorded for that
thread before the read reports ``double_blue`` from then on. Read is
terminal: it never regresses to ``double_gray`` or ``single``.
"""
import logging
from collections import OrderedDict
from enum import Enum
from typing import Optional, Tuple

from .viewing import ViewingStatus

logger = logging.getLogger(__name__)

# Maximum number of conversations remembered by a ReadLedger
DEFAULT_LEDGER_SIZE = 10000

# Maximum number of messages remembered per conversation
DEFAULT_MESSAGES_PER_CONVERSATION = 500


class CheckMarkStatus(str, Enum):
    """Three-state delivery indicator shown to the sender."""
    SINGLE = "single"
    DOUBLE_GRAY = "double_gray"
    DOUBLE_BLUE = "double_blue"


class MessageStatus(str, Enum):
    """Coarse delivery status reported alongside the check mark."""
    SENT = "sent"
    DELIVERED = "delivered"


_RECIPIENT_VERDICT = {
    ViewingStatus.OFFLINE: CheckMarkStatus.SINGLE,
    ViewingStatus.CONNECTED: CheckMarkStatus.DOUBLE_GRAY,
    ViewingStatus.VIEWING: CheckMarkStatus.DOUBLE_BLUE,
}

_RANK = {
    CheckMarkStatus.SINGLE: 0,
    CheckMarkStatus.DOUBLE_GRAY: 1,
    CheckMarkStatus.DOUBLE_BLUE: 2,
}


def resolve(
    sender_status: ViewingStatus, recipient_status: ViewingStatus
) -> CheckMarkStatus:
    """Derive the check mark for a message from sender/recipient presence."""
    verdict = _RECIPIENT_VERDICT.get(recipient_status, CheckMarkStatus.SINGLE)
    logger.debug(
        "CHECK_MARK_CALCULATION sender=%s recipient=%s -> %s",
        sender_status.value, recipient_status.value, verdict.value,
    )
    return verdict


def message_status_for(check_mark: CheckMarkStatus) -> MessageStatus:
    if check_mark is CheckMarkStatus.SINGLE:
        return MessageStatus.SENT
    return MessageStatus.DELIVERED


class _Thread:
    """Messages of one conversation, oldest first.

    Each message carries the sequence number it was first recorded with.
    Messages at or below ``read_through`` were recorded before the latest
    read and report ``double_blue``.
    """
    __slots__ = ("messages", "sequence", "read_through", "read")

    def __init__(self) -> None:
        self.messages: "OrderedDict[str, Tuple[int, CheckMarkStatus]]" = OrderedDict()
        self.sequence = 0
        self.read_through = 0
        self.read = False

    def effective(self, sequence: int, status: CheckMarkStatus) -> CheckMarkStatus:
        if sequence <= self.read_through:
            return CheckMarkStatus.DOUBLE_BLUE
        return status


class ReadLedger:
    """Bounded in-memory memory of message statuses per conversation.

    This is not persistence: it only lets the relay answer status queries
    consistently while it is running. Least recently touched conversations
    are evicted once ``max_conversations`` is exceeded, and the oldest
    messages of a conversation once ``max_messages`` is exceeded.
    """

    def __init__(
        self,
        max_conversations: int = DEFAULT_LEDGER_SIZE,
        max_messages: int = DEFAULT_MESSAGES_PER_CONVERSATION,
    ) -> None:
        self.max_conversations = max_conversations
        self.max_messages = max_messages
        self._threads: "OrderedDict[str, _Thread]" = OrderedDict()

    def _thread(self, conversation_id: str) -> _Thread:
        thread = self._threads.get(conversation_id)
        if thread is None:
            thread = _Thread()
            self._threads[conversation_id] = thread
            while len(self._threads) > self.max_conversations:
                self._threads.popitem(last=False)
        else:
            self._threads.move_to_end(conversation_id)
        return thread

    def record(
        self, conversation_id: str, message_id: str, status: CheckMarkStatus
    ) -> CheckMarkStatus:
        """Remember ``status`` for a message, never lowering a known status.

        Returns:
            The status now reported for the message.
        """
        thread = self._thread(conversation_id)
        known = thread.messages.get(message_id)
        if known is not None:
            sequence, stored = known
            current = thread.effective(sequence, stored)
            if _RANK[current] >= _RANK[status]:
                return current
            thread.messages[message_id] = (sequence, status)
            return status

        thread.sequence += 1
        thread.messages[message_id] = (thread.sequence, status)
        while len(thread.messages) > self.max_messages:
            thread.messages.popitem(last=False)
        return status

    def mark_read(self, conversation_id: str) -> int:
        """Mark every message recorded so far in the thread as ``double_blue``.

        Returns:
            Number of remembered messages this call escalated.
        """
        thread = self._thread(conversation_id)
        escalated = sum(
            1
            for sequence, status in thread.messages.values()
            if thread.effective(sequence, status) is not CheckMarkStatus.DOUBLE_BLUE
        )
        thread.read_through = thread.sequence
        thread.read = True
        return escalated

    def is_read(self, conversation_id: str) -> bool:
        thread = self._threads.get(conversation_id)
        return bool(thread and thread.read)

    def status_of(
        self, conversation_id: str, message_id: str
    ) -> Optional[CheckMarkStatus]:
        thread = self._threads.get(conversation_id)
        if thread is None:
            return None
        known = thread.messages.get(message_id)
        if known is None:
            return None
        return thread.effective(*known)

    def __len__(self) -> int:
        return len(self._threads)
