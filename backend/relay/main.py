"""Marketplace Realtime Relay.

This is the main entry point for the relay service. The relay bridges
server-side marketplace events (orders, refunds, cancellations) and
buyer/seller chat messages to connected browsers over WebSockets.

Modules:
    - realtime: WebSocket namespaces (/ws/chat, /ws/refund, /ws/cancellation, /ws/order)
    - chat: presence, viewing state and message check marks
    - notifications: refund, cancellation and order relays
    - orders: HTTP webhook for order status pushes
    - status: operational status snapshot
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relay.config import AppConfig, get_config
from relay.orders.router import router as orders_router
from relay.realtime.hub import RelayHubs
from relay.realtime.router import router as realtime_router
from relay.status.router import router as status_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn logs every WebSocket frame at debug level.
for _noisy in ("websockets", "websockets.protocol", "uvicorn.access"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def _apply_log_level(config: AppConfig) -> None:
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if isinstance(configured_level, int):
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())
    else:
        logger.warning("Unknown logging.level %r; keeping INFO", config.logging.level)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build a relay application with its own, independent namespace state."""
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        _apply_log_level(config)
        logger.info(
            "Relay ready on http://%s:%s with namespaces %s",
            config.server.host,
            config.server.port,
            ", ".join(app.state.relay.namespaces),
        )
        yield
        await app.state.relay.shutdown()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Marketplace Realtime Relay",
        description="Presence and notification relay for marketplace chat and orders",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.relay = RelayHubs(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(realtime_router)
    app.include_router(orders_router)
    app.include_router(status_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
