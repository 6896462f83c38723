from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from routers.presence import presence_router
from backend import PresenceRegistry
from broadcaster import Broadcaster
from hub import ChatHub
from constants import CORS_ORIGINS, LOG_LEVEL, LOG_FILE
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The registry lives exactly as long as the application
    app.state.hub = ChatHub(PresenceRegistry(), Broadcaster())
    logger.info("Chat hub started")
    try:
        yield
    finally:
        await app.state.hub.shutdown()
        logger.info("Chat hub stopped")


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(presence_router)

logger.info("FastAPI application initialized")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for the chat hub.

    Inbound frames: `{"event": "join", "data": name}` and
    `{"event": "message", "data": {"text": ...}}`. Closing the socket is the
    leave event.
    """
    hub: ChatHub = websocket.app.state.hub
    await websocket.accept()
    connection = await hub.connect(websocket)

    reason = "connection closed"
    client_gone = False
    try:
        message_count = 0
        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect as e:
                reason = f"client disconnect (code {e.code})"
                client_gone = True
                break
            message_count += 1
            logger.debug(f"Received frame #{message_count} from connection {connection.connection_id}")
            await hub.handle_frame(connection, data)
    except Exception as e:
        reason = f"transport error: {e}"
        logger.error(f"WebSocket error for connection {connection.connection_id}: {e}", exc_info=True)
    finally:
        await hub.handle_disconnect(connection, reason)
        if not client_gone:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")
