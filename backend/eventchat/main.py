"""Eventchat Backend Application.

This is the main entry point for the eventchat realtime service: the
presence-and-messaging core behind event chat rooms.

Modules:
    - chat: WebSocket sessions, rooms, broadcast and history read
    - notifications: Internal hooks used by the REST API
    - auth: JWT identity verification
    - store: DuckDB-backed users, membership and message history
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eventchat.chat.hub import get_hub
from eventchat.chat.router import router as chat_router
from eventchat.config import get_config
from eventchat.notifications.router import router as notifications_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in (
    "uvicorn.access",
    "websockets",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    hub = get_hub()
    logger.info(
        "Chat hub ready (history_limit=%d, dependency_timeout=%.1fs)",
        hub.settings.history_limit,
        hub.settings.dependency_timeout_seconds,
    )

    yield  # Application runs here

    # Shutdown
    logger.info(
        "Application shutdown complete (%d live connection(s) dropped)", len(hub.registry)
    )


# Create FastAPI application with metadata
app = FastAPI(
    title="Eventchat API",
    description="Realtime presence and messaging for event chat rooms",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register all routers
app.include_router(chat_router)
app.include_router(notifications_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    server = get_config().server
    uvicorn.run("eventchat.main:app", host=server.host, port=server.port)
