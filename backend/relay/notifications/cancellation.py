"""Cancellation namespace: order cancellation requests and responses."""
from typing import Any, Dict, List, Optional

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

CANCELLATION_NAMESPACE = "cancellation"


class CancellationResponse(BuyerTargeted):
    # approved, rejected or processing
    response: Optional[str] = None


def handle_cancellation_request(
    state: NamespaceState, connection_id: str, payload: Any
) -> List[Emit]:
    data = parse_payload(SellerTargeted, payload)
    state.log(
        "CANCELLATION_REQUEST_RECEIVED",
        **{"from": state.registry.identity_for(connection_id), "data": payload},
    )
    return relay_to(
        state,
        seller_identity(data.id_toko),
        "new_cancellation_notification",
        payload,
        delivered_action="NOTIFIED_SELLER",
        offline_action="SELLER_OFFLINE",
    )


def handle_respond_to_cancellation(
    state: NamespaceState, connection_id: str, payload: Any
) -> List[Emit]:
    data = parse_payload(CancellationResponse, payload)
    buyer = buyer_identity(data.id_pembeli)
    state.log(
        "CANCELLATION_RESPONSE_SENT",
        **{
            "from": state.registry.identity_for(connection_id),
            "to": buyer,
            "order_number": data.order_number,
            "response": data.response,
        },
    )
    return relay_to(
        state,
        buyer,
        "cancellation_response",
        {
            "order_number": data.order_number,
            "response": data.response,
            "message": data.message,
            "timestamp": utc_timestamp(),
        },
        delivered_action="BUYER_NOTIFIED_RESPONSE",
        offline_action="BUYER_OFFLINE_RESPONSE",
    )


def handle_cancellation_status_update(
    state: NamespaceState, connection_id: str, payload: Any
) -> List[Emit]:
    data = parse_payload(BuyerTargeted, payload)
    buyer = buyer_identity(data.id_pembeli)
    state.log(
        "CANCELLATION_STATUS_UPDATE",
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
        "cancellation_status_changed",
        {
            "order_number": data.order_number,
            "status": data.status,
            "message": data.message,
            "timestamp": utc_timestamp(),
        },
        delivered_action=None,
        offline_action=None,
    )


def handle_check_cancellation_status(
    state: NamespaceState, connection_id: str, payload: Any
) -> List[Emit]:
    return status_check_response(
        state,
        connection_id,
        payload,
        "CANCELLATION_STATUS_CHECKED",
        "cancellation_status_check_response",
    )


def handle_cancellation_announcement(
    state: NamespaceState, connection_id: str, payload: Any
) -> List[Emit]:
    return announcement(
        state,
        connection_id,
        payload,
        "CANCELLATION_ANNOUNCEMENT_BROADCAST",
        "cancellation_announcement",
    )


def handle_cancel_cancellation_request(
    state: NamespaceState, connection_id: str, payload: Any
) -> List[Emit]:
    """Buyer withdrew a pending cancellation request."""
    data = parse_payload(SellerTargeted, payload)
    requester = state.registry.identity_for(connection_id)
    seller = seller_identity(data.id_toko)
    state.log(
        "CANCELLATION_REQUEST_CANCELLED",
        **{"from": requester, "order_number": data.order_number, "target_toko": seller},
    )
    return relay_to(
        state,
        seller,
        "cancellation_request_cancelled",
        {
            "order_number": data.order_number,
            "cancelled_by": requester,
            "timestamp": utc_timestamp(),
        },
        delivered_action=None,
        offline_action=None,
    )


CANCELLATION_HANDLERS: Dict[str, Handler] = {
    "register_user": handle_register_user,
    "request_cancellation_from_buyer": handle_cancellation_request,
    "respond_to_cancellation": handle_respond_to_cancellation,
    "cancellation_status_update": handle_cancellation_status_update,
    "check_cancellation_status": handle_check_cancellation_status,
    "broadcast_cancellation_announcement": handle_cancellation_announcement,
    "cancel_cancellation_request": handle_cancel_cancellation_request,
}


class CancellationDispatcher(EventDispatcher):
    handlers = CANCELLATION_HANDLERS

    def __init__(self) -> None:
        super().__init__(NamespaceState(CANCELLATION_NAMESPACE))
