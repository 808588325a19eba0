"""
Chat Gateway main application.

Real-time presence and message relay for authenticated chat sessions.
One WebSocket endpoint (/ws/chat) plus a health check.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from shared.config.settings import settings
from shared.config.logging import setup_logging, gateway_logger as logger
from shared.infrastructure.db import init_db
from chat_gateway.connection_manager import ConnectionManager
from chat_gateway.components.core.constants import WSConstants, parse_allowed_origins
from chat_gateway.components.endpoints.handlers import ChatEndpoint


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: logging, configuration checks, schema creation, manager.
    Shutdown: stop heartbeats, drain attachment writes, close sockets.
    """
    setup_logging()
    logger.info(
        "Starting Chat Gateway",
        port=settings.gateway_port,
        env=settings.environment,
    )

    for problem in settings.validate_production_secrets():
        logger.error("Configuration problem", problem=problem)

    init_db()
    app.state.manager = ConnectionManager()

    yield

    logger.info("Shutting down Chat Gateway")
    await app.state.manager.shutdown()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Chat Gateway",
    description="Presence and message relay over WebSocket",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration, with HTTPS variants of the origin list
allowed_origins = parse_allowed_origins(settings)
cors_origins = allowed_origins + [
    origin.replace("http://", "https://")
    for origin in allowed_origins
    if origin.startswith("http://")
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/ws/health")
def health_check(request: Request):
    """Basic health check endpoint."""
    try:
        stats = request.app.state.manager.get_stats()
    except Exception as e:
        logger.warning("Failed to get stats in health check", error=str(e))
        stats = {"error": "stats_unavailable"}
    return {
        "status": "healthy",
        "service": "chat-gateway",
        "version": app.version,
        "environment": settings.environment,
        **stats,
    }


# =============================================================================
# WebSocket Endpoint
# =============================================================================


@app.websocket(WSConstants.ENDPOINT_PATH)
async def chat_websocket(websocket: WebSocket):
    """
    Chat connection.

    The session token is read from the `token` cookie of the handshake
    request. Without a valid token the connection is anonymous: it sees
    presence but cannot send messages.
    """
    endpoint = ChatEndpoint(websocket, websocket.app.state.manager)
    await endpoint.run()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chat_gateway.main:app",
        host="0.0.0.0",
        port=settings.gateway_port,
        ws_max_size=settings.ws_max_message_size,
        reload=settings.debug,
    )
