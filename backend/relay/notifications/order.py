"""Order namespace: new-order and payment notifications for sellers."""
from typing import Any, Dict, List, Optional

from pydantic import Field

from relay.presence.registry import seller_identity
from relay.realtime.dispatcher import EventDispatcher, Handler, NamespaceState, parse_payload
from relay.realtime.effects import Emit

from .base import NotificationPayload, RawId, handle_register_user, relay_to, utc_timestamp

ORDER_NAMESPACE = "order"


class OrderData(NotificationPayload):
    order_number: Optional[RawId] = None


class NewOrderPlaced(NotificationPayload):
    id_toko: RawId
    order_data: OrderData = Field(default_factory=OrderData)


class OrderStatusUpdate(NotificationPayload):
    """Order status pushed by the backend webhook."""
    id_toko: RawId
    order_number: Optional[RawId] = None


def handle_new_order_placed(
    state: NamespaceState, connection_id: str, payload: Any
) -> List[Emit]:
    data = parse_payload(NewOrderPlaced, payload)
    state.log("NEW_ORDER_PLACED", **{"from": "checkout_page", "data": payload})
    order_number = data.order_data.order_number
    return relay_to(
        state,
        seller_identity(data.id_toko),
        "new_order_notification",
        {
            "message": f"Pesanan baru #{order_number} telah masuk!",
            "order": data.order_data.model_dump(),
            "timestamp": utc_timestamp(),
        },
        delivered_action="NOTIFIED_SELLER",
        offline_action="SELLER_OFFLINE",
        orderNumber=order_number,
    )


def order_status_update(state: NamespaceState, order: OrderStatusUpdate) -> List[Emit]:
    """Effects announcing a successful payment to the seller."""
    return relay_to(
        state,
        seller_identity(order.id_toko),
        "order_status_updated",
        {
            "message": f"Pembayaran untuk pesanan #{order.order_number} berhasil.",
            "order": order.model_dump(),
        },
        delivered_action="NOTIFIED_SELLER_PAYMENT_SUCCESS",
        offline_action="SELLER_OFFLINE_PAYMENT_SUCCESS",
        orderNumber=order.order_number,
    )


ORDER_HANDLERS: Dict[str, Handler] = {
    "register_user": handle_register_user,
    "new_order_placed": handle_new_order_placed,
}


class OrderDispatcher(EventDispatcher):
    handlers = ORDER_HANDLERS

    def __init__(self) -> None:
        super().__init__(NamespaceState(ORDER_NAMESPACE))

    def order_status_update(self, order: OrderStatusUpdate) -> List[Emit]:
        return order_status_update(self.state, order)
