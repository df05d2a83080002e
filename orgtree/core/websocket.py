"""
WebSocket connection manager for real-time transfer events.

Manages active WebSocket connections per user, allowing server-sent messages
to reach connected clients instantly. Services run in worker threads, so they
hand messages over with ``publish_threadsafe`` which schedules the send on the
event loop that owns the sockets.
"""

import asyncio
import json
import logging
from typing import Dict, Set
from uuid import UUID

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections per user and organization."""

    def __init__(self):
        # user_id -> set of active WebSocket connections
        self._connections: Dict[UUID, Set[WebSocket]] = {}
        # user_id -> org ids the user has subscribed to
        self._user_orgs: Dict[UUID, Set[UUID]] = {}
        self._lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None) -> None:
        """Remember the loop that owns the sockets (set on app startup)."""
        self._loop = loop

    async def connect(self, websocket: WebSocket, user_id: UUID, org_ids: set[UUID]):
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.setdefault(user_id, set()).add(websocket)
            self._user_orgs.setdefault(user_id, set()).update(org_ids)

    async def disconnect(self, websocket: WebSocket, user_id: UUID):
        """Remove a WebSocket connection."""
        async with self._lock:
            if user_id in self._connections:
                self._connections[user_id].discard(websocket)
                if not self._connections[user_id]:
                    del self._connections[user_id]
                    self._user_orgs.pop(user_id, None)

    async def send_to_user(self, user_id: UUID, message: dict):
        """Send a message to all connections for a specific user."""
        async with self._lock:
            connections = self._connections.get(user_id, set()).copy()

        if not connections:
            return

        data = json.dumps(message, default=str)
        closed = []

        for ws in connections:
            try:
                await ws.send_text(data)
            except Exception:
                # Connection closed or errored
                closed.append(ws)

        if closed:
            async with self._lock:
                if user_id in self._connections:
                    for ws in closed:
                        self._connections[user_id].discard(ws)
                    if not self._connections[user_id]:
                        del self._connections[user_id]
                        self._user_orgs.pop(user_id, None)

    async def send_to_org(self, org_id: UUID, message: dict, exclude: UUID | None = None):
        """Send a message to all connected users subscribed to an organization."""
        async with self._lock:
            user_ids = [
                uid for uid, orgs in self._user_orgs.items() if org_id in orgs and uid != exclude
            ]

        for user_id in user_ids:
            await self.send_to_user(user_id, message)

    def publish_threadsafe(self, coro) -> bool:
        """
        Schedule ``coro`` on the bound loop from any thread.

        Returns False (and closes the coroutine) when no running loop is bound,
        e.g. in the CLI where nobody can be connected.
        """
        loop = self._loop
        if loop is None or loop.is_closed() or not loop.is_running():
            coro.close()
            return False
        asyncio.run_coroutine_threadsafe(coro, loop)
        return True

    def get_connected_count(self, user_id: UUID) -> int:
        """Get the number of active connections for a user."""
        return len(self._connections.get(user_id, set()))


# Singleton instance
manager = ConnectionManager()
