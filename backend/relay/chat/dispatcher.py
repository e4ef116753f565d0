"""Chat namespace: presence, viewing state and delivery status.

Handlers in this module are plain functions keyed by inbound event name in
``CHAT_HANDLERS``. Each takes ``(state, connection_id, payload)`` and returns
the outbound ``Emit`` effects; none of them touch the transport.

Inbound events:
    - user_connect: bind identity, broadcast presence
    - start_viewing_chat / stop_viewing_chat: viewing transitions + room
    - request_status_update: unicast presence snapshot
    - user_logout: explicit teardown
    - notify_seller / send_message_to_buyer: message relay + check marks
    - mark_messages_as_read: read receipt to room peers
    - get_message_status: current check marks from the read ledger
    - typing_start / typing_stop: typing indicators
    - join_room: room membership only
    - check_online_status: single identity status query

Teardown (logout or disconnect) notifies room peers that the user stopped
viewing *before* removing the presence entry, then broadcasts
``user_disconnected`` and a fresh presence snapshot.
"""
import logging
from typing import Any, Dict, List, Optional

from relay.presence.delivery import (
    DEFAULT_LEDGER_SIZE,
    DEFAULT_MESSAGES_PER_CONVERSATION,
    CheckMarkStatus,
    MessageStatus,
    ReadLedger,
    resolve,
)
from relay.presence.registry import PresenceEntry, buyer_identity, seller_identity
from relay.presence.rooms import RoomRouter
from relay.presence.viewing import ViewingTracker
from relay.realtime.dispatcher import EventDispatcher, Handler, NamespaceState, parse_payload
from relay.realtime.effects import Emit

from .schemas import (
    BuyerMessage,
    JoinRoom,
    MarkRead,
    MessageStatusQuery,
    NotifySeller,
    OnlineStatusQuery,
    StopViewing,
    Typing,
    UserConnect,
    UserLogout,
    ViewingChange,
)

logger = logging.getLogger(__name__)

CHAT_NAMESPACE = "chat"


class ChatState(NamespaceState):
    """Everything the chat namespace owns."""

    def __init__(
        self,
        evict_superseded: bool = True,
        ledger_size: int = DEFAULT_LEDGER_SIZE,
        ledger_messages: int = DEFAULT_MESSAGES_PER_CONVERSATION,
    ) -> None:
        super().__init__(CHAT_NAMESPACE)
        self.viewing = ViewingTracker(self.registry)
        self.rooms = RoomRouter()
        self.ledger = ReadLedger(ledger_size, ledger_messages)
        self.evict_superseded = evict_superseded


# =============================================================================
# Effect helpers
# =============================================================================


def presence_broadcast(state: ChatState) -> Emit:
    snapshot = state.registry.snapshot()
    state.log_user(
        "SYSTEM", "BROADCAST_ONLINE_USERS",
        totalOnline=len(snapshot.users), users=snapshot.users,
    )
    return Emit.to_all("online_users_update", snapshot.model_dump(mode="json"))


def presence_unicast(state: ChatState, connection_id: str) -> Emit:
    snapshot = state.registry.snapshot()
    return Emit.to_connection(
        connection_id, "online_users_update", snapshot.model_dump(mode="json")
    )


def _room_emit(
    state: ChatState,
    conversation_id: Optional[str],
    event: str,
    payload: Any,
    exclude: Optional[str] = None,
) -> List[Emit]:
    targets = state.rooms.broadcast_targets(conversation_id, exclude=exclude)
    if not targets:
        return []
    return [Emit.to_connections(targets, event, payload)]


def _viewing_notice(
    state: ChatState,
    connection_id: str,
    user_id: str,
    conversation_id: str,
    is_viewing: bool,
) -> List[Emit]:
    return _room_emit(
        state,
        conversation_id,
        "user_viewing_status_changed",
        {"userId": user_id, "isViewing": is_viewing, "conversationId": conversation_id},
        exclude=connection_id,
    )


def _leave_conversation(
    state: ChatState, connection_id: str, user_id: str, conversation_id: str
) -> List[Emit]:
    """Notify peers, then leave. Peers must still resolve the departing user."""
    effects = _viewing_notice(state, connection_id, user_id, conversation_id, False)
    state.rooms.leave(connection_id, conversation_id)
    return effects


def _teardown_identity(
    state: ChatState, entry: PresenceEntry, action: str, **details: Any
) -> List[Emit]:
    effects: List[Emit] = []
    if entry.isViewingChat and entry.conversationId:
        effects.extend(
            _viewing_notice(state, entry.connectionId, entry.userId, entry.conversationId, False)
        )
    state.rooms.leave_all(entry.connectionId)
    state.registry.remove(entry.userId)

    effects.append(Emit.to_all("user_disconnected", {"userId": entry.userId}))
    state.log_user(entry.userId, action, socketId=entry.connectionId, **details)
    effects.append(presence_broadcast(state))
    return effects


def teardown_connection(state: ChatState, connection_id: str) -> List[Emit]:
    """Transport disconnect. Idempotent: a second call emits nothing."""
    user_id = state.registry.identity_for(connection_id)
    entry = state.registry.lookup(user_id)
    if entry is None or entry.connectionId != connection_id:
        state.registry.remove_by_connection(connection_id)
        state.rooms.leave_all(connection_id)
        state.log("UNKNOWN_USER_DISCONNECTED", socketId=connection_id, staleUser=user_id)
        return []
    return _teardown_identity(state, entry, "DISCONNECTED")


# =============================================================================
# Presence and viewing handlers
# =============================================================================


def handle_user_connect(state: ChatState, connection_id: str, payload: Any) -> List[Emit]:
    data = parse_payload(UserConnect, payload)
    effects: List[Emit] = []

    # The connection used to speak for another identity that is still viewing.
    previous_identity = state.registry.identity_for(connection_id)
    if previous_identity and previous_identity != data.userId:
        conversation_id = state.viewing.active_conversation(previous_identity)
        if conversation_id:
            effects.extend(
                _leave_conversation(state, connection_id, previous_identity, conversation_id)
            )

    previous = state.registry.lookup(data.userId)
    if (
        previous is not None
        and previous.connectionId == connection_id
        and previous.isViewingChat
        and previous.conversationId
    ):
        # Re-registering resets the entry to CONNECTED.
        effects.extend(
            _leave_conversation(state, connection_id, data.userId, previous.conversationId)
        )
    superseded = state.registry.register(data.userId, connection_id, data.role)
    if superseded and state.evict_superseded:
        if previous is not None and previous.isViewingChat and previous.conversationId:
            effects.extend(
                _viewing_notice(state, superseded, data.userId, previous.conversationId, False)
            )
        left = state.rooms.leave_all(superseded)
        state.registry.release_connection(superseded)
        state.log_user(
            data.userId, "SUPERSEDED_CONNECTION_RELEASED", socketId=superseded, rooms=left
        )

    state.log_user(data.userId, "CONNECTED", role=data.role, socketId=connection_id)
    effects.append(presence_broadcast(state))
    return effects


def handle_start_viewing(state: ChatState, connection_id: str, payload: Any) -> List[Emit]:
    data = parse_payload(ViewingChange, payload)
    if state.registry.lookup(data.userId) is None:
        state.log_user(data.userId, "START_VIEWING_IGNORED", reason="not registered")
        return []

    effects: List[Emit] = []
    current = state.viewing.active_conversation(data.userId)
    if current and current != data.conversationId:
        effects.extend(_leave_conversation(state, connection_id, data.userId, current))

    state.viewing.start_viewing(data.userId, data.conversationId)
    state.log_user(data.userId, "STARTED_VIEWING_CHAT", conversationId=data.conversationId)
    effects.append(presence_broadcast(state))

    state.rooms.join(connection_id, data.conversationId)
    effects.extend(
        _viewing_notice(state, connection_id, data.userId, data.conversationId, True)
    )
    return effects


def handle_stop_viewing(state: ChatState, connection_id: str, payload: Any) -> List[Emit]:
    data = parse_payload(StopViewing, payload)
    if state.registry.lookup(data.userId) is None:
        state.log_user(data.userId, "STOP_VIEWING_IGNORED", reason="not registered")
        return []

    viewed = state.viewing.stop_viewing(data.userId)
    state.log_user(
        data.userId, "STOPPED_VIEWING_CHAT",
        conversationId=viewed, requestedConversationId=data.conversationId,
    )
    effects = [presence_broadcast(state)]

    # The room of the conversation actually viewed is always left; a
    # different conversation named by the client is left too if joined.
    if viewed:
        effects.extend(_leave_conversation(state, connection_id, data.userId, viewed))
    requested = data.conversationId
    if requested and requested != viewed and state.rooms.is_member(connection_id, requested):
        effects.extend(_leave_conversation(state, connection_id, data.userId, requested))
    return effects


def handle_request_status_update(
    state: ChatState, connection_id: str, payload: Any
) -> List[Emit]:
    requester = state.registry.identity_for(connection_id)
    if not requester:
        state.log("STATUS_UPDATE_IGNORED", socketId=connection_id, reason="not registered")
        return []
    state.log_user(requester, "REQUESTED_STATUS_UPDATE")
    return [presence_unicast(state, connection_id)]


def handle_user_logout(state: ChatState, connection_id: str, payload: Any) -> List[Emit]:
    data = parse_payload(UserLogout, payload)
    entry = state.registry.lookup(data.userId)
    if entry is None:
        state.log_user(data.userId, "LOGOUT_IGNORED", reason="not registered")
        return []
    if entry.connectionId != connection_id:
        # Logging out from a connection that does not own the identity still
        # tears down the owner, but this connection leaves its rooms too.
        state.rooms.leave_all(connection_id)
    return _teardown_identity(
        state, entry, "EXPLICIT_LOGOUT", isPemilikToko=data.isPemilikToko
    )


# =============================================================================
# Messaging handlers
# =============================================================================


def _deliver_message(
    state: ChatState,
    sender_id: str,
    recipient_id: str,
    message_id: Any,
    conversation_id: Optional[str],
    forward_event: str,
    forward_payload: Any,
    delivered_action: str,
    offline_action: str,
) -> List[Emit]:
    effects: List[Emit] = []
    recipient = state.registry.lookup(recipient_id)

    if recipient is not None:
        effects.append(
            Emit.to_connection(recipient.connectionId, forward_event, forward_payload)
        )
        state.log_user(
            sender_id, delivered_action, recipientId=recipient_id, messageId=message_id
        )
        sender_status = state.viewing.status_of(sender_id)
        recipient_status = state.viewing.viewing_status(recipient_id, conversation_id)
        state.log_user(
            sender_id, "CHECK_MARK_CALCULATION",
            senderStatus=sender_status.value,
            recipientStatus=recipient_status.value,
            recipient=recipient_id,
        )
        check_mark = resolve(sender_status, recipient_status)
        status = MessageStatus.DELIVERED
    else:
        state.log_user(
            sender_id, offline_action, recipientId=recipient_id, messageId=message_id
        )
        check_mark = CheckMarkStatus.SINGLE
        status = MessageStatus.SENT

    if conversation_id:
        check_mark = state.ledger.record(conversation_id, str(message_id), check_mark)

    sender_connection = state.registry.connection_for(sender_id)
    if sender_connection:
        effects.append(
            Emit.to_connection(
                sender_connection,
                "update_message_status",
                {
                    "messageIds": [message_id],
                    "status": status.value,
                    "checkMarkStatus": check_mark.value,
                },
            )
        )
    return effects


def handle_notify_seller(state: ChatState, connection_id: str, payload: Any) -> List[Emit]:
    """Buyer -> seller message."""
    data = parse_payload(NotifySeller, payload)
    return _deliver_message(
        state,
        sender_id=buyer_identity(data.message_data.sender_id),
        recipient_id=seller_identity(data.id_toko),
        message_id=data.message_data.id,
        conversation_id=data.conversationId or data.message_data.conversation_id,
        forward_event="seller_update_notification",
        forward_payload=payload,
        delivered_action="NOTIFIED_SELLER",
        offline_action="SELLER_OFFLINE",
    )


def handle_send_message_to_buyer(
    state: ChatState, connection_id: str, payload: Any
) -> List[Emit]:
    """Seller -> buyer message."""
    data = parse_payload(BuyerMessage, payload)
    return _deliver_message(
        state,
        sender_id=seller_identity(data.sender_id),
        recipient_id=data.recipientId,
        message_id=data.id,
        conversation_id=data.conversationId,
        forward_event="receive_message",
        forward_payload=payload,
        delivered_action="SENT_MESSAGE_TO_BUYER",
        offline_action="BUYER_OFFLINE",
    )


def handle_mark_read(state: ChatState, connection_id: str, payload: Any) -> List[Emit]:
    data = parse_payload(MarkRead, payload)
    escalated = state.ledger.mark_read(data.conversationId)
    state.log_user(
        data.readerId, "MARKED_MESSAGES_READ",
        conversationId=data.conversationId, escalated=escalated,
    )
    return _room_emit(
        state,
        data.conversationId,
        "messages_were_read",
        {
            "conversationId": data.conversationId,
            "readerId": data.readerId,
            "checkMarkStatus": CheckMarkStatus.DOUBLE_BLUE.value,
        },
        exclude=connection_id,
    )


def handle_get_message_status(
    state: ChatState, connection_id: str, payload: Any
) -> List[Emit]:
    """Answer a sender's status query from the read ledger.

    Messages the ledger no longer remembers (or never saw) report None.
    """
    data = parse_payload(MessageStatusQuery, payload)
    statuses = []
    for message_id in data.messageIds:
        status = state.ledger.status_of(data.conversationId, str(message_id))
        statuses.append(
            {"messageId": message_id, "checkMarkStatus": status.value if status else None}
        )
    state.log_user(
        state.registry.identity_for(connection_id), "MESSAGE_STATUS_QUERIED",
        conversationId=data.conversationId, count=len(statuses),
    )
    return [
        Emit.to_connection(
            connection_id,
            "message_status_response",
            {
                "conversationId": data.conversationId,
                "isRead": state.ledger.is_read(data.conversationId),
                "statuses": statuses,
            },
        )
    ]


def _typing(
    state: ChatState, connection_id: str, payload: Any, action: str, event: str
) -> List[Emit]:
    data = parse_payload(Typing, payload)
    state.log_user(
        data.userId, action,
        recipientId=data.recipientId, conversationId=data.conversationId,
    )
    body = {"userId": data.userId, "conversationId": data.conversationId}
    if data.recipientId:
        recipient_connection = state.registry.connection_for(data.recipientId)
        if recipient_connection is None:
            return []
        return [Emit.to_connection(recipient_connection, event, body)]
    return _room_emit(state, data.conversationId, event, body, exclude=connection_id)


def handle_typing_start(state: ChatState, connection_id: str, payload: Any) -> List[Emit]:
    return _typing(state, connection_id, payload, "TYPING_START", "typing_start_from_server")


def handle_typing_stop(state: ChatState, connection_id: str, payload: Any) -> List[Emit]:
    return _typing(state, connection_id, payload, "TYPING_STOP", "typing_stop_from_server")


# =============================================================================
# Room and status queries
# =============================================================================


def handle_join_room(state: ChatState, connection_id: str, payload: Any) -> List[Emit]:
    if not isinstance(payload, dict):
        payload = {"conversationId": payload}
    data = parse_payload(JoinRoom, payload)
    state.rooms.join(connection_id, data.conversationId)
    state.log_user(
        state.registry.identity_for(connection_id), "JOINED_ROOM",
        conversationId=data.conversationId,
    )
    return []


def handle_check_online_status(
    state: ChatState, connection_id: str, payload: Any
) -> List[Emit]:
    if not isinstance(payload, dict):
        payload = {"userId": payload}
    data = parse_payload(OnlineStatusQuery, payload)
    status = state.viewing.status_of(data.userId)
    entry = state.registry.lookup(data.userId)
    state.log_user(
        data.userId, "STATUS_CHECKED",
        requestedBy=state.registry.identity_for(connection_id), status=status.value,
    )
    return [
        Emit.to_connection(
            connection_id,
            "online_status_response",
            {
                "userId": data.userId,
                "isOnline": entry is not None,
                "isViewingChat": entry.isViewingChat if entry else False,
                "status": status.value,
            },
        )
    ]


CHAT_HANDLERS: Dict[str, Handler] = {
    "user_connect": handle_user_connect,
    "start_viewing_chat": handle_start_viewing,
    "stop_viewing_chat": handle_stop_viewing,
    "request_status_update": handle_request_status_update,
    "user_logout": handle_user_logout,
    "notify_seller": handle_notify_seller,
    "send_message_to_buyer": handle_send_message_to_buyer,
    "mark_messages_as_read": handle_mark_read,
    "get_message_status": handle_get_message_status,
    "typing_start": handle_typing_start,
    "typing_stop": handle_typing_stop,
    "join_room": handle_join_room,
    "check_online_status": handle_check_online_status,
}


class ChatDispatcher(EventDispatcher):
    """Dispatcher for the ``/chat`` namespace."""

    handlers = CHAT_HANDLERS

    def __init__(
        self,
        evict_superseded: bool = True,
        ledger_size: int = DEFAULT_LEDGER_SIZE,
        ledger_messages: int = DEFAULT_MESSAGES_PER_CONVERSATION,
    ) -> None:
        super().__init__(
            ChatState(
                evict_superseded=evict_superseded,
                ledger_size=ledger_size,
                ledger_messages=ledger_messages,
            )
        )

    def _teardown(self, connection_id: str) -> List[Emit]:
        return teardown_connection(self.state, connection_id)
