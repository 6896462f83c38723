import asyncio
import enum
import json
import random
import string
import time
from typing import Any, Callable, Optional, Set

from pydantic import ValidationError

from backend import PresenceRegistry
from broadcaster import Broadcaster, Connection, ConnectionState
from constants import ANONYMOUS_NAME, PUSH_INITIAL_USERS, SEND_TIMEOUT_SECONDS
from events import (
    EVENT_CHAT_MESSAGE, EVENT_JOIN, EVENT_MESSAGE, EVENT_SYSTEM_MESSAGE, EVENT_USERS,
    JOINED_TEMPLATE, LEFT_TEMPLATE,
)
from logging_config import get_logger
from schemas.chat import ChatMessage, InboundFrame, SystemNotification
from validators import is_blank, normalize_display_name, normalize_message_text

logger = get_logger(__name__)


class InboundEvent(str, enum.Enum):
    JOIN = "join"
    SEND_MESSAGE = "sendMessage"
    DISCONNECT = "disconnect"


class InvalidTransition(Exception):
    def __init__(self, state: ConnectionState, event: InboundEvent):
        super().__init__(f"No transition from {state.value} on {event.value}")
        self.state = state
        self.event = event


_TRANSITIONS = {
    (ConnectionState.UNJOINED, InboundEvent.JOIN): ConnectionState.JOINED,
    (ConnectionState.JOINED, InboundEvent.JOIN): ConnectionState.JOINED,
    (ConnectionState.UNJOINED, InboundEvent.SEND_MESSAGE): ConnectionState.UNJOINED,
    (ConnectionState.JOINED, InboundEvent.SEND_MESSAGE): ConnectionState.JOINED,
    (ConnectionState.UNJOINED, InboundEvent.DISCONNECT): ConnectionState.CLOSED,
    (ConnectionState.JOINED, InboundEvent.DISCONNECT): ConnectionState.CLOSED,
}


def transition(state: ConnectionState, event: InboundEvent) -> ConnectionState:
    """Next state for a connection, or InvalidTransition once it is closed."""
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(state, event) from None


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_message_id(timestamp: int, suffix_length: int = 6) -> str:
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=suffix_length))
    return f"{timestamp}_{suffix}"


class ChatHub:
    """Routes inbound client events to the registry and fans out the results.

    Each connection's events are handled one at a time by its own receive
    loop. Outbound frames are only queued here, never awaited, so a slow
    client cannot hold up anyone else. Join and leave take a hub-wide lock
    around the registry mutation and the queueing of their frames, so every
    client sees presence updates in the order the registry applied them.
    A connection whose delivery fails is evicted: it goes through the leave
    transition and its socket is closed.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        broadcaster: Broadcaster,
        push_initial_users: bool = PUSH_INITIAL_USERS,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.registry = registry
        self.broadcaster = broadcaster
        self.push_initial_users = push_initial_users
        self._clock = clock or now_ms
        self._presence_lock = asyncio.Lock()
        self._evictions: Set[asyncio.Task] = set()

    def _advance(self, connection: Connection, event: InboundEvent) -> bool:
        try:
            connection.state = transition(connection.state, event)
            return True
        except InvalidTransition as e:
            logger.debug(f"Ignoring event for connection {connection.connection_id}: {e}")
            return False

    def _notification(self, text: str) -> dict:
        return SystemNotification(text=text, time=self._clock()).model_dump()

    def _on_delivery_failure(self, connection: Connection, reason: str):
        if connection.is_closed:
            return
        task = asyncio.create_task(self._evict(connection, reason))
        self._evictions.add(task)
        task.add_done_callback(self._evictions.discard)

    async def _evict(self, connection: Connection, reason: str):
        logger.info(f"Evicting connection {connection.connection_id}: {reason}")
        await self.handle_disconnect(connection, reason)
        await connection.close(code=1011, reason="delivery failed")

    async def wait_for_evictions(self):
        while self._evictions:
            await asyncio.gather(*list(self._evictions), return_exceptions=True)

    async def connect(
        self, websocket, connection_id: Optional[str] = None, send_timeout: float = SEND_TIMEOUT_SECONDS
    ) -> Connection:
        """Track a newly accepted transport connection."""
        connection = Connection(websocket, connection_id=connection_id, send_timeout=send_timeout)
        connection.on_failure = self._on_delivery_failure
        self.broadcaster.add(connection)
        logger.info(f"Connected: {connection.connection_id}")

        if self.push_initial_users:
            self.broadcaster.send_to(connection, EVENT_USERS, await self.registry.snapshot())
        return connection

    async def handle_join(self, connection: Connection, raw_name: Any):
        name = normalize_display_name(raw_name)
        async with self._presence_lock:
            if not self._advance(connection, InboundEvent.JOIN):
                return
            connection.display_name = name
            participants = await self.registry.register(connection.connection_id, name)
            self.broadcaster.broadcast(EVENT_USERS, participants)
            self.broadcaster.broadcast(
                EVENT_SYSTEM_MESSAGE, self._notification(JOINED_TEMPLATE.format(name=name))
            )
        logger.info(f"[{connection.connection_id}] JOIN as {name}")

    async def handle_message(self, connection: Connection, payload: Any) -> Optional[ChatMessage]:
        """Broadcast a chat message. Returns it, or None when it was dropped."""
        if not self._advance(connection, InboundEvent.SEND_MESSAGE):
            return None

        raw_text = payload.get("text") if isinstance(payload, dict) else None
        text = normalize_message_text(raw_text)
        if is_blank(text):
            logger.debug(f"Dropping empty message from connection {connection.connection_id}")
            return None

        user = self.registry.lookup(connection.connection_id) or ANONYMOUS_NAME
        timestamp = self._clock()
        message = ChatMessage(id=generate_message_id(timestamp), user=user, text=text, time=timestamp)

        self.broadcaster.broadcast(EVENT_CHAT_MESSAGE, message.model_dump())
        logger.info(f"MSG from {user}: {text}")
        return message

    async def handle_disconnect(self, connection: Connection, reason: Any = None):
        """Leave transition. Runs at most once per connection."""
        if not self._advance(connection, InboundEvent.DISCONNECT):
            return

        self.broadcaster.remove(connection.connection_id)
        async with self._presence_lock:
            result = await self.registry.unregister(connection.connection_id)
            if result is None:
                logger.info(f"[{connection.connection_id}] disconnected (no user): {reason}")
                return

            name, participants = result
            self.broadcaster.broadcast(EVENT_USERS, participants)
            self.broadcaster.broadcast(
                EVENT_SYSTEM_MESSAGE, self._notification(LEFT_TEMPLATE.format(name=name))
            )
        logger.info(f"[{connection.connection_id}] {name} disconnected: {reason}")

    async def dispatch(self, connection: Connection, event: str, data: Any = None):
        if event == EVENT_JOIN:
            await self.handle_join(connection, data)
        elif event == EVENT_MESSAGE:
            await self.handle_message(connection, data)
        else:
            logger.debug(f"Ignoring unknown event '{event}' from connection {connection.connection_id}")

    async def handle_frame(self, connection: Connection, raw: str):
        """Decode one text frame and dispatch it. Malformed frames are skipped."""
        try:
            frame = InboundFrame.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring malformed frame from connection {connection.connection_id}: {e}")
            return
        await self.dispatch(connection, frame.event, frame.data)

    async def shutdown(self):
        await self.wait_for_evictions()
        self.broadcaster.clear()
        await self.registry.clear()
