"""Realtime transport: effects, dispatcher base, namespace hubs, WebSocket router."""
