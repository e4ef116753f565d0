"""Order webhook endpoint.

Endpoints:
    POST /api/order-status: Push an order status update to the seller

The REST backend calls this after a payment succeeds. The relay only
forwards the notification to the seller's live connection on the ``order``
namespace; it stores nothing.
"""
import logging

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from relay.notifications.order import OrderStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["orders"])


@router.post("/order-status")
async def order_status_webhook(request: Request, payload: dict = Body(...)) -> JSONResponse:
    """Relay an order status change to the owning seller.

    Args:
        payload: Order data; must contain ``id_toko``. ``order_number`` and
            any other fields are forwarded untouched.

    Returns:
        200 with ``{success, delivered}``; 400 when ``id_toko`` is missing.

    Example:
        POST /api/order-status {"id_toko": 1, "order_number": "INV-001"}
    """
    if payload.get("id_toko") in (None, ""):
        logger.warning("[orders] Webhook without id_toko: %r", payload)
        return JSONResponse({"success": False, "error": "id_toko is required"}, status_code=400)

    try:
        order = OrderStatusUpdate.model_validate(payload)
    except ValidationError as exc:
        logger.warning("[orders] Invalid webhook payload %r: %s", payload, exc.errors())
        return JSONResponse({"success": False, "error": "Invalid order payload"}, status_code=400)

    hub = request.app.state.relay.get("order")
    if hub is None:
        logger.warning("[orders] Order namespace disabled; dropping update %s", order.order_number)
        return JSONResponse({"success": True, "delivered": False})

    effects = hub.dispatcher.order_status_update(order)
    await hub.deliver(effects)
    return JSONResponse({"success": True, "delivered": bool(effects)})
