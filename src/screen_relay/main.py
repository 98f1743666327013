"""
ScreenRelay Hub Application
===========================

FastAPI entry point for the relay hub.

Endpoints:
    GET  /        - Service information
    GET  /health  - Liveness probe
    GET  /status  - Connection count, current presenter, per-role counts
    WS   /ws      - Presenter / viewer message relay

The registry and routing state live on `app.state.hub`, created once per
application by create_app().
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from screen_relay import __version__
from screen_relay.config import Settings, settings as default_settings
from screen_relay.hub.outbox import Outbox
from screen_relay.hub.registry import SessionManager, new_connection_id
from screen_relay.hub.relay import RelayHub


logger = logging.getLogger(__name__)


# =============================================================================
# WebSocket Connection Adapter
# =============================================================================

class WebSocketConnection:
    """
    Hub-side handle for one accepted WebSocket.

    Routing enqueues into the outbox; `drain()` runs as the connection's
    writer task and performs the actual sends.
    """

    def __init__(self, websocket: WebSocket, outbox_size: int = 32) -> None:
        self.id = new_connection_id()
        self.websocket = websocket
        self.outbox = Outbox(maxsize=outbox_size, name=self.id[:8])

    def send_nowait(self, message: str) -> None:
        self.outbox.put_nowait(message)

    async def drain(self) -> None:
        try:
            while True:
                message = await self.outbox.get()
                await self.websocket.send_text(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Writer for {self.id} stopped: {e}")


def _peer_address(websocket: WebSocket) -> Optional[str]:
    if websocket.client is None:
        return None
    return f"{websocket.client.host}:{websocket.client.port}"


# =============================================================================
# Application Factory
# =============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the hub application.

    Args:
        settings: Configuration; defaults to the module-level settings

    Returns:
        FastAPI app with a fresh RelayHub on `app.state.hub`
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.started_at = time.time()
        logger.info(
            f"Starting {settings.app.name} {settings.app.version} "
            f"on {settings.server.host}:{settings.server.port} "
            f"(presenter policy: {settings.hub.presenter_policy.value})"
        )
        yield
        logger.info(f"Shutting down, final hub status: {app.state.hub.status()}")

    app = FastAPI(
        title="ScreenRelay",
        description="Local-network screen sharing relay hub",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.hub = RelayHub(SessionManager(), policy=settings.hub.presenter_policy)
    app.state.started_at = time.time()

    # =========================================================================
    # HTTP Endpoints
    # =========================================================================

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": "ScreenRelay",
            "name": settings.app.name,
            "version": __version__,
            "protocol": settings.app.version,
            "status": "running",
            "websocket": "/ws",
        })

    @app.get("/health")
    async def health() -> JSONResponse:
        """Liveness probe. Always 200 while the process is up."""
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(time.time() - app.state.started_at, 1),
        })

    @app.get("/status")
    async def status() -> JSONResponse:
        """Registry snapshot and routing counters."""
        return JSONResponse({
            "uptime_seconds": round(time.time() - app.state.started_at, 1),
            **app.state.hub.status(),
        })

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/ws")
    async def relay(websocket: WebSocket) -> None:
        """Relay endpoint shared by presenters and viewers."""
        hub: RelayHub = websocket.app.state.hub
        max_size = settings.server.max_message_size

        await websocket.accept()
        connection = WebSocketConnection(websocket, outbox_size=settings.server.outbox_size)
        hub.connect(connection, address=_peer_address(websocket))
        writer = asyncio.create_task(connection.drain(), name=f"writer-{connection.id[:8]}")

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

                text = message.get("text")
                if text is not None:
                    size = len(text.encode("utf-8"))
                elif message.get("bytes") is not None:
                    size = len(message["bytes"])
                    text = message["bytes"].decode("utf-8", errors="replace")
                else:
                    continue

                if size > max_size:
                    logger.warning(
                        f"Message of {size} bytes from {connection.id} "
                        f"exceeds {max_size}, dropped"
                    )
                    continue

                hub.handle_message(connection.id, text)
        except WebSocketDisconnect:
            pass
        finally:
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)
            hub.disconnect(connection.id)

    return app


# =============================================================================
# FastAPI Application
# =============================================================================

app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "screen_relay.main:app",
        host=default_settings.server.host,
        port=default_settings.server.port,
        ws_max_size=default_settings.server.max_message_size,
        ws_ping_interval=default_settings.server.ws_ping_interval_sec,
        ws_ping_timeout=default_settings.server.ws_ping_timeout_sec,
        reload=False,
    )
