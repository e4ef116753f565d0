"""Base event dispatcher shared by every namespace.

A dispatcher owns the namespace state and a table of handler functions keyed
by inbound event name. Each handler takes ``(state, connection_id, payload)``,
mutates the state synchronously and returns the outbound effects. Because
handlers never await, every event is applied atomically on the event loop.

Failure semantics:
    - Unknown events are logged and ignored.
    - Payloads failing validation are logged with the offending payload and
      dropped (pydantic ``ValidationError``).
    - Any other handler error is logged with a traceback and dropped. A bad
      event never terminates the connection loop or touches other users.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from relay.presence.registry import PresenceRegistry

from .effects import Emit

logger = logging.getLogger(__name__)

Handler = Callable[[Any, str, Any], List[Emit]]
ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_payload(model: Type[ModelT], payload: Any) -> ModelT:
    """Validate an inbound payload; raises ``ValidationError`` when malformed."""
    if payload is None:
        payload = {}
    return model.model_validate(payload)


def log_activity(namespace: str, action: str, **details: Any) -> None:
    """Activity log line in the ``NAMESPACE: ACTION {details}`` form."""
    logger.info("%s: %s %s", namespace.upper(), action, details)


class NamespaceState:
    """State shared by all namespaces: a name and its own presence registry."""

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace
        self.registry = PresenceRegistry()

    def log(self, action: str, **details: Any) -> None:
        log_activity(self.namespace, action, **details)

    def log_user(self, user_id: Optional[str], action: str, **details: Any) -> None:
        log_activity(self.namespace, f"USER_ACTIVITY: {user_id} - {action}", **details)


class EventDispatcher:
    """Routes inbound events of one namespace to its handler table."""

    handlers: Dict[str, Handler] = {}

    def __init__(self, state: NamespaceState) -> None:
        self.state = state

    @property
    def namespace(self) -> str:
        return self.state.namespace

    @property
    def registry(self) -> PresenceRegistry:
        return self.state.registry

    def dispatch(self, connection_id: str, event: str, payload: Any = None) -> List[Emit]:
        """Apply one inbound event and return the effects to deliver."""
        handler = self.handlers.get(event)
        if handler is None:
            logger.warning(
                "[%s] Ignoring unknown event %r from %s", self.namespace, event, connection_id
            )
            return []
        try:
            return list(handler(self.state, connection_id, payload) or [])
        except ValidationError as exc:
            logger.warning(
                "[%s] Dropped malformed %s from %s: payload=%r errors=%s",
                self.namespace, event, connection_id, payload, exc.errors(),
            )
            return []
        except Exception:
            logger.exception(
                "[%s] Handler for %s failed (connection=%s, payload=%r)",
                self.namespace, event, connection_id, payload,
            )
            return []

    def connect(self, connection_id: str) -> List[Emit]:
        """Effects for a freshly accepted connection (none by default)."""
        self.state.log("USER_CONNECTED", socketId=connection_id)
        return []

    def disconnect(self, connection_id: str) -> List[Emit]:
        """Transport-level teardown. Unknown connections are a logged no-op."""
        try:
            return list(self._teardown(connection_id))
        except Exception:
            logger.exception(
                "[%s] Teardown failed for connection %s", self.namespace, connection_id
            )
            return []

    def _teardown(self, connection_id: str) -> List[Emit]:
        user_id = self.registry.identity_for(connection_id)
        entry = self.registry.remove_by_connection(connection_id)
        if entry is None:
            self.state.log("UNKNOWN_USER_DISCONNECTED", socketId=connection_id, staleUser=user_id)
            return []
        self.state.log("USER_DISCONNECTED", userId=entry.userId, socketId=connection_id)
        return []

    def online_count(self) -> int:
        return self.registry.online_count()
