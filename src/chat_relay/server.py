"""FastAPI server hosting the relay.

Run:
    uv run chat-relay serve
    # or
    uv run uvicorn chat_relay.server:create_app --factory --port 8000

Endpoints:
    GET /health  - liveness check
    WS  /ws      - chat connection; each text or binary frame is routed by its "action"
"""

from __future__ import annotations

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .config import RelayConfig
from .gateway import WebSocketGateway
from .protocol import CONNECT, DISCONNECT, TransportEvent, select_route
from .router import Router
from .session import RelaySession
from .upstream import Upstream, build_upstream


def create_app(
    config: RelayConfig | None = None,
    upstream: Upstream | None = None,
) -> FastAPI:
    """Build the app. upstream overrides the one selected by config."""
    config = config or RelayConfig.load()
    upstream = upstream or build_upstream(config)

    gateway = WebSocketGateway()
    router = Router(RelaySession(upstream=upstream, push=gateway.push))

    app = FastAPI(title="Chat Relay")
    app.state.config = config
    app.state.gateway = gateway
    app.state.router = router
    app.state.upstream = upstream

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "connections": len(gateway), "upstream": upstream.name}

    @app.websocket("/ws")
    async def chat_endpoint(websocket: WebSocket) -> None:
        """One chat connection."""
        connection = await gateway.accept(websocket)
        await router.dispatch(TransportEvent(route=CONNECT, connection_id=connection.id))
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                # Binary frames are relayed like text; the session decodes them.
                body = message.get("text") or message.get("bytes") or ""
                await router.dispatch(
                    TransportEvent(
                        route=select_route(body), connection_id=connection.id, body=body
                    )
                )
        except WebSocketDisconnect:
            pass
        finally:
            await gateway.close(connection.id)
            await router.dispatch(TransportEvent(route=DISCONNECT, connection_id=connection.id))

    return app
