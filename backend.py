import asyncio
from typing import Dict, List, Optional, Tuple

from logging_config import get_logger

logger = get_logger(__name__)


class PresenceRegistry:
    """In-memory map of joined connection ids to display names.

    Every mutation and the participant list read that follows it happen
    under one lock, so a returned list always matches a state the registry
    was actually in.
    """

    def __init__(self):
        self._users: Dict[str, str] = {}
        self._lock = asyncio.Lock()
        logger.info("Initializing PresenceRegistry")

    async def register(self, connection_id: str, display_name: str) -> List[str]:
        """Insert or overwrite the display name for a connection. Returns the participant list."""
        async with self._lock:
            previous = self._users.get(connection_id)
            self._users[connection_id] = display_name
            participants = list(self._users.values())

        if previous is None:
            logger.debug(f"Registered connection {connection_id} as {display_name} ({len(participants)} online)")
        else:
            logger.debug(f"Connection {connection_id} re-registered: {previous} -> {display_name}")
        return participants

    async def unregister(self, connection_id: str) -> Optional[Tuple[str, List[str]]]:
        """Remove a connection.

        Returns the removed display name and the remaining participants, or
        None when the connection never joined.
        """
        async with self._lock:
            display_name = self._users.pop(connection_id, None)
            if display_name is None:
                logger.debug(f"Connection {connection_id} was not registered, nothing to remove")
                return None
            participants = list(self._users.values())

        logger.debug(f"Unregistered connection {connection_id} ({display_name}), {len(participants)} online")
        return display_name, participants

    def lookup(self, connection_id: str) -> Optional[str]:
        return self._users.get(connection_id)

    async def snapshot(self) -> List[str]:
        async with self._lock:
            return list(self._users.values())

    def count(self) -> int:
        return len(self._users)

    async def clear(self):
        async with self._lock:
            removed = len(self._users)
            self._users.clear()
        logger.info(f"Cleared presence registry ({removed} entries)")
