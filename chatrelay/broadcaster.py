"""Realtime event dispatch and per-room fan-out.

Every connection moves Unjoined -> Joined -> Disconnected. Handlers run on
the event loop one event at a time per connection; the only suspension
points are the message store calls and socket writes.
"""
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol
import logging

from pydantic import ValidationError

from .errors import ChatRelayError
from .models import ChatMessage, JoinRoomPayload, NewMessagePayload, page_number
from .registry import RoomRegistry
from .stores import MessageStore

logger = logging.getLogger(__name__)

PAGE_SIZE = 3

# Server -> client event names
JOIN_ROOM_SUCCESS = 'joinRoomSuccess'
HISTORY = 'history'
MESSAGE = 'message'
ERROR_EVENT = 'errorEvent'


class Connection(Protocol):
    id: str

    async def send(self, event: str, data: Any = None) -> None: ...


class ConnectionState(str, Enum):
    UNJOINED = 'unjoined'
    JOINED = 'joined'
    DISCONNECTED = 'disconnected'


class InvalidPayload(ChatRelayError):
    status_code = 400
    error = "Invalid payload"


class UnknownEvent(ChatRelayError):
    status_code = 400
    error = "Unknown event"


class Broadcaster:
    def __init__(self, messages: MessageStore, registry: Optional[RoomRegistry] = None):
        self.messages = messages
        self.registry = registry if registry is not None else RoomRegistry()
        self.connections: Dict[str, Connection] = {}
        self._handlers: Dict[str, Callable[[Connection, Any], Awaitable[None]]] = {
            'joinRoom': self.handle_join,
            'loadMessages': self.handle_load_history,
            'newMessage': self.handle_send,
        }

    def connect(self, conn: Connection):
        self.connections[conn.id] = conn

    def state_of(self, conn_id: str) -> ConnectionState:
        if conn_id not in self.connections:
            return ConnectionState.DISCONNECTED
        if self.registry.membership(conn_id) is None:
            return ConnectionState.UNJOINED
        return ConnectionState.JOINED

    async def dispatch(self, conn: Connection, event: str, data: Any = None):
        """Run one inbound event; any failure becomes an errorEvent to `conn`."""
        try:
            handler = self._handlers.get(event)
            if handler is None:
                raise UnknownEvent(event)
            await handler(conn, data)
        except ChatRelayError as e:
            logger.warning("%s from %s failed: %s", event, conn.id, e)
            await self._report(conn, event, e.to_dict())
        except Exception as e:
            logger.exception("Unhandled error in %s from %s", event, conn.id)
            await self._report(conn, event, {'error': 'Internal error', 'details': str(e)})

    async def _report(self, conn: Connection, event: str, body: dict):
        try:
            await conn.send(ERROR_EVENT, {'event': event, **body})
        except Exception:
            logger.warning("Could not deliver %s to %s", ERROR_EVENT, conn.id)

    async def handle_join(self, conn: Connection, data: Any):
        payload = _parse(JoinRoomPayload, data)
        self.registry.join(conn.id, payload.room, payload.username)
        logger.info("%s joined room %r as %r", conn.id, payload.room, payload.username)
        await conn.send(JOIN_ROOM_SUCCESS)

    async def handle_load_history(self, conn: Connection, data: Any):
        room = self.registry.current_room(conn.id)
        if not room:
            return
        try:
            page = page_number.validate_python(data)
        except ValidationError as e:
            raise InvalidPayload(_first_error(e)) from e
        history = await self.messages.page(room, skip=page * PAGE_SIZE, limit=PAGE_SIZE)
        await conn.send(HISTORY, [m.to_event() for m in history])

    async def handle_send(self, conn: Connection, data: Any):
        membership = self.registry.membership(conn.id)
        if membership is None or not membership.room:
            return
        payload = _parse(NewMessagePayload, data)
        message = ChatMessage.compose(
            payload.message,
            room=membership.room,
            username=membership.username,
            file_url=payload.file_url,
        )
        stored = await self.messages.insert(message)
        await self.broadcast(stored.room, MESSAGE, stored.to_event())

    async def broadcast(self, room: str, event: str, data: Any = None):
        for conn_id in self.registry.members(room):
            conn = self.connections.get(conn_id)
            if conn is None:
                continue
            try:
                await conn.send(event, data)
            except Exception as e:
                logger.warning("Dropping %s for %s: %s", event, conn_id, e)

    def handle_disconnect(self, conn: Connection):
        self.connections.pop(conn.id, None)
        membership = self.registry.leave(conn.id)
        logger.info("User disconnected from room: %s", membership.room if membership else None)


def _parse(model, data):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidPayload(_first_error(e)) from e


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = '.'.join(str(p) for p in err.get('loc', ())) or 'payload'
    return f"{loc}: {err.get('msg')}"
