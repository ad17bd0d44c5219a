"""
OCFT node: FastAPI application entry point.

Hosts the transfer engine behind a small REST API. A chat bridge feeds
incoming chat text to ``POST /api/messages`` and relays the
``outgoing-message`` events it receives on ``/ws`` to the named peer.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from api.routes import init_routes, router
from api.websocket import ConnectionManager
from config import API_HOST, API_PORT, TRUST_FILE, NodeConfig, load_config
from peers.trust import TrustStore
from transfer.engine import TransferEngine

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def bootstrap() -> tuple[NodeConfig, TrustStore]:
    """Configure logging, then load the node config and its trust store."""
    setup_logging(os.getenv("OCFT_LOG_LEVEL", "INFO"))
    config = load_config()
    logging.getLogger().setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    return config, TrustStore(config.trusted_peers, store_path=TRUST_FILE)


def create_app(config: NodeConfig, trust_store: TrustStore | None = None) -> FastAPI:
    """Wire the engine, the WebSocket bridge and the routes together."""
    ws_manager = ConnectionManager()
    engine = TransferEngine(config, ws_manager.send_text, trust_store=trust_store)
    engine.on_event(ws_manager.handle_event)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"OCFT node {config.node_id} ready, downloads: {config.download_dir}")
        yield
        logger.info("Shutting down OCFT node...")

    app = FastAPI(title="OCFT", version="1.0.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.ws_manager = ws_manager

    init_routes(engine, ws_manager)
    app.include_router(router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await ws_manager.connect(websocket)
        try:
            while True:
                # Keep the connection alive; we don't expect client messages
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("Bridge disconnected")
        finally:
            await ws_manager.disconnect(websocket)

    return app


if __name__ == "__main__":
    import uvicorn

    node_config, trust = bootstrap()

    uvicorn.run(
        create_app(node_config, trust),
        host=API_HOST,
        port=API_PORT,
        log_level=node_config.log_level.lower(),
    )
