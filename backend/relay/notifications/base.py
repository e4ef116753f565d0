"""Shared pieces of the notification namespaces (refund, cancellation, order).

These namespaces only need an online/offline lookup: a client registers its
identity, and server-side or peer events are relayed to the target identity
when it is connected. Offline targets are logged and skipped; they pick the
change up from the REST backend on their next page load.
"""
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict

from relay.chat.schemas import Identifier, RawId
from relay.realtime.dispatcher import NamespaceState, parse_payload
from relay.realtime.effects import Emit


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp in the ``...Z`` form browsers expect."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class NotificationPayload(BaseModel):
    model_config = ConfigDict(extra="allow")


class RegisterUser(NotificationPayload):
    userId: Identifier


class SellerTargeted(NotificationPayload):
    """Buyer-originated event routed to the seller of ``id_toko``."""
    id_toko: RawId
    order_number: Optional[RawId] = None


class BuyerTargeted(NotificationPayload):
    """Seller-originated event routed to buyer ``id_pembeli``."""
    id_pembeli: RawId
    order_number: Optional[RawId] = None
    status: Optional[str] = None
    message: Optional[str] = None


class StatusCheck(NotificationPayload):
    order_number: Optional[RawId] = None


class Announcement(NotificationPayload):
    message: Optional[str] = None


def handle_register_user(
    state: NamespaceState, connection_id: str, payload: Any
) -> List[Emit]:
    data = parse_payload(RegisterUser, payload)
    superseded = state.registry.register(data.userId, connection_id)
    if superseded:
        state.registry.release_connection(superseded)
    state.log("USER_REGISTERED", userId=data.userId, socketId=connection_id)
    return []


def relay_to(
    state: NamespaceState,
    user_id: str,
    event: str,
    payload: Any,
    delivered_action: Optional[str],
    offline_action: Optional[str],
    **details: Any,
) -> List[Emit]:
    """Unicast to ``user_id`` when online, logging either outcome."""
    connection_id = state.registry.connection_for(user_id)
    if connection_id is None:
        if offline_action:
            state.log(offline_action, targetUser=user_id, **details)
        return []
    if delivered_action:
        state.log(delivered_action, targetUser=user_id, targetSocket=connection_id, **details)
    return [Emit.to_connection(connection_id, event, payload)]


def status_check_response(
    state: NamespaceState, connection_id: str, payload: Any, action: str, event: str
) -> List[Emit]:
    data = parse_payload(StatusCheck, payload)
    state.log(action, by=state.registry.identity_for(connection_id), order_number=data.order_number)
    return [
        Emit.to_connection(
            connection_id,
            event,
            {
                "order_number": data.order_number,
                "timestamp": utc_timestamp(),
                "message": "Status check request received",
            },
        )
    ]


def announcement(
    state: NamespaceState, connection_id: str, payload: Any, action: str, event: str
) -> List[Emit]:
    data = parse_payload(Announcement, payload)
    sender = state.registry.identity_for(connection_id)
    state.log(action, **{"from": sender, "message": data.message})
    return [
        Emit.to_all(
            event,
            {"message": data.message, "timestamp": utc_timestamp(), "from": sender},
        )
    ]
