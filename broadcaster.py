import asyncio
import enum
import json
import uuid
from typing import Any, Callable, Dict, List, Optional

from constants import OUTBOUND_QUEUE_SIZE, SEND_TIMEOUT_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionState(str, enum.Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    CLOSED = "closed"


def encode_frame(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": data}, ensure_ascii=False)


class Connection:
    """One client channel.

    Outbound frames go through a bounded queue drained by a writer task, so
    enqueueing never waits on the socket. Each send is a single attempt
    bounded by `send_timeout`; the first failed send, timeout or queue
    overflow marks the connection failed and calls `on_failure`.

    `websocket` only needs an awaitable `send_text(str)` (and optionally
    `close()`); FastAPI's WebSocket satisfies that, as do the fakes used in
    tests.
    """

    def __init__(
        self,
        websocket,
        connection_id: Optional[str] = None,
        send_timeout: float = SEND_TIMEOUT_SECONDS,
        queue_size: int = OUTBOUND_QUEUE_SIZE,
    ):
        self.websocket = websocket
        self.connection_id = connection_id or str(uuid.uuid4())
        self.display_name: Optional[str] = None
        self.state = ConnectionState.UNJOINED
        self.send_timeout = send_timeout
        self.failed = False
        self.on_failure: Optional[Callable[["Connection", str], None]] = None
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer_task: Optional[asyncio.Task] = None

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    def start(self):
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(self._writer())

    def enqueue(self, frame: str) -> bool:
        """Queue a frame for delivery without waiting. False if it was not accepted."""
        if self.failed:
            return False
        try:
            self._queue.put_nowait(frame)
            return True
        except asyncio.QueueFull:
            self._fail("outbound queue full")
            return False

    def send(self, event: str, data: Any) -> bool:
        return self.enqueue(encode_frame(event, data))

    async def _writer(self):
        while True:
            frame = await self._queue.get()
            try:
                await asyncio.wait_for(self.websocket.send_text(frame), timeout=self.send_timeout)
            except asyncio.TimeoutError:
                self._fail(f"send timed out after {self.send_timeout}s")
                return
            except Exception as e:
                self._fail(f"send error: {e}")
                return
            finally:
                self._queue.task_done()

    def _discard_pending(self):
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    def _fail(self, reason: str):
        if self.failed:
            return
        self.failed = True
        self._discard_pending()
        logger.warning(f"Delivery to connection {self.connection_id} failed: {reason}")
        if self.on_failure is not None:
            self.on_failure(self, reason)

    async def drain(self):
        """Wait until every queued frame has been sent or discarded."""
        await self._queue.join()

    def stop(self):
        """Stop the writer. Frames still queued are dropped."""
        if self._writer_task is not None and not self._writer_task.done():
            self._writer_task.cancel()
        self._discard_pending()

    async def close(self, code: int = 1000, reason: Optional[str] = None):
        self.stop()
        close = getattr(self.websocket, "close", None)
        if close is None:
            return
        try:
            await asyncio.wait_for(close(code=code, reason=reason), timeout=self.send_timeout)
        except Exception as e:
            logger.debug(f"Error closing connection {self.connection_id}: {e}")

    def __repr__(self):
        return f"Connection({self.connection_id!r}, {self.display_name!r}, {self.state.value})"


class Broadcaster:
    """Fan-out to every open connection, independent of who has joined."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}

    def add(self, connection: Connection):
        self._connections[connection.connection_id] = connection
        connection.start()
        logger.debug(f"Added connection {connection.connection_id} (open connections: {len(self._connections)})")

    def remove(self, connection_id: str) -> Optional[Connection]:
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            connection.stop()
            logger.debug(f"Removed connection {connection_id} (open connections: {len(self._connections)})")
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def __len__(self):
        return len(self._connections)

    def __contains__(self, connection_id: str):
        return connection_id in self._connections

    def broadcast(self, event: str, data: Any) -> List[str]:
        """Queue a frame for every open connection.

        Never waits on a socket. Frames reach each client in the order they
        were broadcast. Returns the ids that could not accept the frame.
        """
        recipients = list(self._connections.values())
        if not recipients:
            logger.debug(f"No open connections, skipping broadcast of '{event}'")
            return []

        frame = encode_frame(event, data)
        failed = [c.connection_id for c in recipients if not c.enqueue(frame)]

        logger.debug(f"Queued '{event}' for {len(recipients) - len(failed)}/{len(recipients)} connections")
        return failed

    def send_to(self, connection: Connection, event: str, data: Any) -> bool:
        return connection.send(event, data)

    async def flush(self):
        """Wait until every open connection has sent or discarded its queued frames."""
        await asyncio.gather(*(c.drain() for c in list(self._connections.values())))

    def clear(self):
        for connection in self._connections.values():
            connection.stop()
        self._connections.clear()
