"""Refund, cancellation and order notification namespaces."""

from .cancellation import CancellationDispatcher
from .order import OrderDispatcher, OrderStatusUpdate
from .refund import RefundDispatcher

__all__ = [
    "CancellationDispatcher",
    "OrderDispatcher",
    "OrderStatusUpdate",
    "RefundDispatcher",
]
