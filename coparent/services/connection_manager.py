"""WebSocket Connection Manager.

Tracks open portal WebSockets per profile so family events can be pushed
in real time. Sending is best-effort and drops stale sockets.
"""

import asyncio
import logging
import uuid

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Singleton registry of portal connections keyed by profile id."""

    def __init__(self) -> None:
        self._connections: dict[uuid.UUID, set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, profile_id: uuid.UUID, websocket: WebSocket) -> None:
        """Register a portal connection (one profile may have several tabs)."""
        async with self._lock:
            if profile_id not in self._connections:
                self._connections[profile_id] = set()
            self._connections[profile_id].add(websocket)
        logger.info("Portal connected for profile %s", profile_id)

    async def disconnect(self, profile_id: uuid.UUID, websocket: WebSocket) -> None:
        """Remove a portal connection."""
        async with self._lock:
            if profile_id in self._connections:
                self._connections[profile_id].discard(websocket)
                if not self._connections[profile_id]:
                    del self._connections[profile_id]
        logger.info("Portal disconnected for profile %s", profile_id)

    async def send_to_profile(self, profile_id: uuid.UUID, message: dict) -> int:
        """Send a message to every open connection of a profile.

        Returns the count of connections successfully notified.
        Cleans up stale connections on failure.
        """
        sockets = self._connections.get(profile_id, set()).copy()
        dead: set[WebSocket] = set()
        count = 0
        for ws in sockets:
            try:
                await ws.send_json(message)
                count += 1
            except Exception:
                logger.warning("Failed to send to portal of profile %s", profile_id)
                dead.add(ws)
        for ws in dead:
            await self.disconnect(profile_id, ws)
        return count

    async def get_connected_count(self, profile_id: uuid.UUID) -> int:
        return len(self._connections.get(profile_id, set()))


# Singleton instance
connection_manager = ConnectionManager()
