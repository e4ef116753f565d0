"""Outbound effects produced by event dispatchers.

Dispatchers never touch sockets. They return ``Emit`` values describing what
to send and to whom; the namespace hub performs the actual delivery.
"""
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, Optional


@dataclass(frozen=True)
class Emit:
    """One outbound event.

    Attributes:
        event: Outbound event name (e.g. ``online_users_update``).
        payload: JSON-serializable payload.
        recipients: Connection ids to deliver to. None means every
            connection in the namespace.
    """
    event: str
    payload: Any
    recipients: Optional[FrozenSet[str]] = None

    @classmethod
    def to_all(cls, event: str, payload: Any) -> "Emit":
        return cls(event, payload, None)

    @classmethod
    def to_connection(cls, connection_id: str, event: str, payload: Any) -> "Emit":
        return cls(event, payload, frozenset((connection_id,)))

    @classmethod
    def to_connections(
        cls, connection_ids: Iterable[str], event: str, payload: Any
    ) -> "Emit":
        return cls(event, payload, frozenset(connection_ids))

    @property
    def is_broadcast(self) -> bool:
        return self.recipients is None

    def frame(self) -> dict:
        """Wire frame sent to clients."""
        return {"type": self.event, "data": self.payload}
