"""Chat namespace: presence, viewing state, message relay and check marks."""

from .dispatcher import CHAT_HANDLERS, ChatDispatcher, ChatState

__all__ = ["CHAT_HANDLERS", "ChatDispatcher", "ChatState"]
