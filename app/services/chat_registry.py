# services/chat_registry.py
import logging
from typing import Any, Dict, Optional, Protocol

from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class ChatConnection(Protocol):
    """The parts of ``starlette.websockets.WebSocket`` the registry relies on."""

    client_state: WebSocketState
    application_state: WebSocketState

    async def send_json(self, data: Any, mode: str = "text") -> None: ...


def is_open(connection: ChatConnection) -> bool:
    return (
        connection.client_state == WebSocketState.CONNECTED
        and connection.application_state == WebSocketState.CONNECTED
    )


class ChatRoomRegistry:
    """
    Process-local map of group id -> live connections.

    One instance is created per server process (see ``app.main.lifespan``).
    A connection is subscribed to at most one room at a time. Rooms are
    created on first join and dropped when their last connection leaves.
    Mutations happen only from connection event handlers on the event loop.

    Starlette websockets are unhashable (they are Mappings), so connections
    are tracked by identity. Rooms keep join order.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[int, ChatConnection]] = {}
        self._room_of: Dict[int, str] = {}

    def join(self, connection: ChatConnection, group_id: str) -> None:
        key = id(connection)
        current = self._room_of.get(key)
        if current == group_id:
            return
        if current is not None:
            self.leave(connection)

        self._rooms.setdefault(group_id, {})[key] = connection
        self._room_of[key] = group_id
        logger.debug("Connection joined room %s (%d live)", group_id, len(self._rooms[group_id]))

    def leave(self, connection: ChatConnection) -> Optional[str]:
        """
        Unsubscribes ``connection``; returns the room it left, if any.

        Safe to call for connections that never joined or already left.
        """
        key = id(connection)
        group_id = self._room_of.pop(key, None)
        if group_id is None:
            return None

        room = self._rooms.get(group_id)
        if room is not None:
            room.pop(key, None)
            if not room:
                del self._rooms[group_id]
                logger.debug("Room %s is empty, removed", group_id)
        return group_id

    async def broadcast(self, group_id: str, payload: Any) -> int:
        """
        Best-effort fan-out of ``payload`` to every open connection in the room.

        Closed connections are skipped and send errors are dropped; nothing is
        retried or reported to the sender. Returns the number of deliveries.
        """
        # Snapshot: joins/leaves while a send is awaited must not affect this pass
        recipients = list(self._rooms.get(group_id, {}).values())
        delivered = 0

        for connection in recipients:
            if not is_open(connection):
                continue
            try:
                await connection.send_json(payload)
            except Exception as e:
                logger.debug("Dropped message for a connection in room %s: %s", group_id, e)
                continue
            delivered += 1

        return delivered

    def room_of(self, connection: ChatConnection) -> Optional[str]:
        return self._room_of.get(id(connection))

    def subscriber_count(self, group_id: str) -> int:
        return len(self._rooms.get(group_id, {}))

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def close(self) -> None:
        self._rooms.clear()
        self._room_of.clear()
