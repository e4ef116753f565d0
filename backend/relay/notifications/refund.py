"""Refund namespace: relays refund requests and status changes."""
from typing import Any, Dict, List

from relay.presence.registry import buyer_identity, seller_identity
from relay.realtime.dispatcher import EventDispatcher, Handler, NamespaceState, parse_payload
from relay.realtime.effects import Emit

from .base import (
    BuyerTargeted,
    SellerTargeted,
    announcement,
    handle_register_user,
    relay_to,
    status_check_response,
    utc_timestamp,
)

REFUND_NAMESPACE = "refund"


def handle_refund_request(state: NamespaceState, connection_id: str, payload: Any) -> List[Emit]:
    """Buyer filed a refund via the REST backend; tell the seller."""
    data = parse_payload(SellerTargeted, payload)
    state.log(
        "REFUND_REQUEST_RECEIVED",
        **{"from": state.registry.identity_for(connection_id), "data": payload},
    )
    return relay_to(
        state,
        seller_identity(data.id_toko),
        "new_refund_notification",
        payload,
        delivered_action="NOTIFIED_SELLER",
        offline_action="SELLER_OFFLINE",
    )


def handle_refund_status_update(
    state: NamespaceState, connection_id: str, payload: Any
) -> List[Emit]:
    data = parse_payload(BuyerTargeted, payload)
    buyer = buyer_identity(data.id_pembeli)
    state.log(
        "REFUND_STATUS_UPDATE",
        **{
            "from": state.registry.identity_for(connection_id),
            "to": buyer,
            "status": data.status,
            "order_number": data.order_number,
        },
    )
    return relay_to(
        state,
        buyer,
        "refund_status_changed",
        {
            "order_number": data.order_number,
            "status": data.status,
            "message": data.message,
            "timestamp": utc_timestamp(),
        },
        delivered_action="BUYER_NOTIFIED_STATUS_CHANGE",
        offline_action="BUYER_OFFLINE_STATUS_UPDATE",
    )


def handle_check_refund_status(
    state: NamespaceState, connection_id: str, payload: Any
) -> List[Emit]:
    return status_check_response(
        state, connection_id, payload, "REFUND_STATUS_CHECKED", "refund_status_check_response"
    )


def handle_refund_announcement(
    state: NamespaceState, connection_id: str, payload: Any
) -> List[Emit]:
    return announcement(
        state, connection_id, payload, "REFUND_ANNOUNCEMENT_BROADCAST", "refund_announcement"
    )


REFUND_HANDLERS: Dict[str, Handler] = {
    "register_user": handle_register_user,
    "request_refund_from_buyer": handle_refund_request,
    "refund_status_update": handle_refund_status_update,
    "check_refund_status": handle_check_refund_status,
    "broadcast_refund_announcement": handle_refund_announcement,
}


class RefundDispatcher(EventDispatcher):
    handlers = REFUND_HANDLERS

    def __init__(self) -> None:
        super().__init__(NamespaceState(REFUND_NAMESPACE))
