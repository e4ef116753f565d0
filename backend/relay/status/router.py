"""Operational status endpoint.

Endpoints:
    GET /status: Per-namespace connection and online-user counts
"""
from fastapi import APIRouter, Request

router = APIRouter(tags=["status"])


@router.get("/status")
async def server_status(request: Request) -> dict:
    """Snapshot of every namespace, same content as the ``server_status`` event.

    Returns:
        dict: ``{namespace: {"connected": int, "online_users": int}}``.
    """
    return request.app.state.relay.server_status()
