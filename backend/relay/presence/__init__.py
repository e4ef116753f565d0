"""Presence core: registry, viewing state, delivery status and rooms."""

from .delivery import CheckMarkStatus, MessageStatus, ReadLedger, resolve
from .registry import (
    PresenceEntry,
    PresenceRegistry,
    PresenceSnapshot,
    buyer_identity,
    seller_identity,
)
from .rooms import RoomRouter
from .viewing import ViewingStatus, ViewingTracker

__all__ = [
    "CheckMarkStatus",
    "MessageStatus",
    "PresenceEntry",
    "PresenceRegistry",
    "PresenceSnapshot",
    "ReadLedger",
    "RoomRouter",
    "ViewingStatus",
    "ViewingTracker",
    "buyer_identity",
    "resolve",
    "seller_identity",
]
