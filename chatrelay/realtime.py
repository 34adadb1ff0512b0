from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from typing import Any
import json
import logging
import uuid

from .broadcaster import ERROR_EVENT, Broadcaster
from .models import Envelope

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketConnection:
    """One client socket; frames are {"event": ..., "data": ...} JSON text."""

    def __init__(self, websocket: WebSocket):
        self.id = uuid.uuid4().hex
        self.websocket = websocket

    async def send(self, event: str, data: Any = None):
        frame = {'event': event}
        if data is not None:
            frame['data'] = data
        await self.websocket.send_text(json.dumps(frame, default=str))


def parse_frame(text: str) -> Envelope:
    return Envelope.model_validate(json.loads(text))


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    broadcaster: Broadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    conn = WebSocketConnection(websocket)
    broadcaster.connect(conn)
    logger.info("Connection %s accepted", conn.id)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            text = message.get("text")
            try:
                if text is None:
                    raise ValueError("binary frame")
                frame = parse_frame(text)
            except (ValueError, ValidationError):
                # json.JSONDecodeError is a ValueError
                await conn.send(ERROR_EVENT, {'event': None, 'error': 'Invalid frame'})
                continue
            await broadcaster.dispatch(conn, frame.event, frame.data)
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.handle_disconnect(conn)
