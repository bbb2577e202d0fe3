"""
SnapCap Backend: Connection Hub
=================================

What:  The process-wide registry of live WebSocket connections and the rooms
       they belong to.
Why:   Fan-out is room based. A user's personal room is their id, followers
       sit in `user_<id>` rooms, and chats use `conversation_<id>`. Delivery
       is at most once per connected session; offline users rely on the
       persisted Notification rows.
How:   Plain dicts mutated only from the event loop, so no locks. The hub is
       created with the app and `clear()`ed by the lifespan on shutdown.
       A send failure drops that connection instead of failing the emitter.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, Optional, Set

from starlette.websockets import WebSocket

from snapcap.realtime.events import encode

logger = logging.getLogger(__name__)


def user_room(user_id: uuid.UUID) -> str:
    return str(user_id)


def follow_room(user_id: uuid.UUID) -> str:
    return f"user_{user_id}"


def conversation_room(conversation_id: uuid.UUID) -> str:
    return f"conversation_{conversation_id}"


class Connection:
    """One authenticated socket."""

    def __init__(self, websocket: WebSocket, user_id: uuid.UUID, username: str):
        self.id = uuid.uuid4().hex[:12]
        self.websocket = websocket
        self.user_id = user_id
        self.username = username
        self.rooms: Set[str] = set()

    async def send(self, frame: Dict[str, Any]) -> None:
        await self.websocket.send_json(frame)

    def __repr__(self) -> str:
        return f"<Connection(id={self.id}, user={self.username}, rooms={len(self.rooms)})>"


class ConnectionHub:
    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Set[str]] = {}

    # ── Membership ────────────────────────────────────────────────────────

    def register(self, connection: Connection) -> None:
        self._connections[connection.id] = connection
        self.join(connection, user_room(connection.user_id))

    def unregister(self, connection: Connection) -> None:
        for room in list(connection.rooms):
            self.leave(connection, room)
        self._connections.pop(connection.id, None)

    def join(self, connection: Connection, room: str) -> None:
        self._rooms.setdefault(room, set()).add(connection.id)
        connection.rooms.add(room)

    def leave(self, connection: Connection, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection.id)
            if not members:
                del self._rooms[room]
        connection.rooms.discard(room)

    def members(self, room: str) -> Set[str]:
        return set(self._rooms.get(room, ()))

    def is_online(self, user_id: uuid.UUID) -> bool:
        return bool(self._rooms.get(user_room(user_id)))

    def __len__(self) -> int:
        return len(self._connections)

    # ── Delivery ──────────────────────────────────────────────────────────

    async def _deliver(self, connection_ids: Iterable[str], frame: Dict[str, Any]) -> int:
        delivered = 0
        for connection_id in list(connection_ids):
            connection = self._connections.get(connection_id)
            if connection is None:
                continue
            try:
                await connection.send(frame)
                delivered += 1
            except Exception as e:
                logger.warning("Dropping connection %s after send failure: %s", connection_id, e)
                self.unregister(connection)
        return delivered

    async def emit_to_room(
        self,
        room: str,
        event: str,
        payload: Any = None,
        exclude: Optional[Connection] = None,
    ) -> int:
        """Send one event to every member of `room`. Returns the delivery count."""
        targets = self.members(room)
        if exclude is not None:
            targets.discard(exclude.id)
        if not targets:
            return 0
        return await self._deliver(targets, encode(event, payload))

    async def emit_to_user(self, user_id: uuid.UUID, event: str, payload: Any = None) -> int:
        return await self.emit_to_room(user_room(user_id), event, payload)

    async def broadcast(self, event: str, payload: Any = None, exclude: Optional[Connection] = None) -> int:
        """Send to every connection except `exclude`."""
        targets = [cid for cid in self._connections if exclude is None or cid != exclude.id]
        return await self._deliver(targets, encode(event, payload))

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def clear(self) -> None:
        self._connections.clear()
        self._rooms.clear()

    async def close_all(self, code: int = 1001) -> None:
        for connection in list(self._connections.values()):
            try:
                await connection.websocket.close(code=code)
            except Exception as e:
                logger.debug("Close failed for %s: %s", connection.id, e)
        self.clear()


# ── Singleton Instance ────────────────────────────────────────────────────
hub = ConnectionHub()
