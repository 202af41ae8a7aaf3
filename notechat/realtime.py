"""Realtime push channel over WebSocket.

Clients connect to ``/ws`` and exchange JSON frames shaped as
``{"event": <name>, "data": <payload>}``.

* Client → server ``join`` ``{"token": ..., "email": ...?}`` subscribes the
  socket to the channel of the verified identity. ``email`` is optional and
  must match that identity when given.
* Server → client ``joined`` ``{"email": ...}`` acknowledges the join.
* Server → client ``message:new`` carries a message record.
* Server → client ``message:read`` carries ``{"messageIds", "receiverEmail"}``.
* Server → client ``error`` ``{"error": ...}`` reports a rejected frame.

Delivery is at most once: there is no acknowledgment, retry or buffering, and
a client that is not connected simply misses the event. The store stays
authoritative and is read again on the next list call.
"""

import json
import logging
from collections import defaultdict
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from . import crud
from .core import get_settings
from .errors import NoteChatError, UnauthorizedError
from .store import Store, get_store
from .tokens import TokenService, get_token_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

NEW_MESSAGE = "message:new"
MESSAGES_READ = "message:read"


class ConnectionManager:
    """Live sockets grouped into one channel per user email."""

    def __init__(self, max_connections: int = 1000):
        self.max_connections = max_connections
        self.channels: dict[str, set[WebSocket]] = defaultdict(set)
        self.connections: set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> bool:
        """Accept ``websocket`` unless the connection cap is reached."""
        if len(self.connections) >= self.max_connections:
            logger.warning("Refusing WebSocket: %d connections open", len(self.connections))
            await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
            return False
        await websocket.accept()
        self.connections.add(websocket)
        return True

    def join(self, channel: str, websocket: WebSocket) -> None:
        self.channels[channel].add(websocket)
        logger.debug("Socket joined channel %s", channel)

    def disconnect(self, websocket: WebSocket) -> None:
        self.connections.discard(websocket)
        for channel in [name for name, sockets in self.channels.items() if websocket in sockets]:
            self.channels[channel].discard(websocket)
            if not self.channels[channel]:
                del self.channels[channel]
            logger.debug("Socket left channel %s", channel)

    def subscribers(self, channel: str) -> int:
        return len(self.channels.get(channel, ()))

    async def emit(self, channel: str, event: str, data: Any) -> int:
        """
        Send ``event`` to every socket of ``channel``.

        Sockets that fail to receive are dropped and the failure is logged.

        Returns:
            int: Number of sockets the event was handed to.
        """
        frame = {"event": event, "data": jsonable_encoder(data)}
        delivered = 0
        for websocket in list(self.channels.get(channel, ())):
            try:
                await websocket.send_json(frame)
            except Exception as exc:
                logger.warning("Dropping socket on %s after %s failed: %s", channel, event, exc)
                self.disconnect(websocket)
            else:
                delivered += 1
        return delivered

    async def publish_new_message(
        self, message: dict, sender_email: str, receiver_email: str
    ) -> None:
        """Push a new message to the receiver and to the sender's other tabs."""
        await self.emit(receiver_email, NEW_MESSAGE, message)
        if sender_email != receiver_email:
            await self.emit(sender_email, NEW_MESSAGE, message)

    async def publish_read(
        self, sender_email: str, message_ids: list[str], reader_email: str
    ) -> None:
        """Tell the original sender which of their messages were read."""
        await self.emit(
            sender_email,
            MESSAGES_READ,
            {"messageIds": message_ids, "receiverEmail": reader_email},
        )


manager = ConnectionManager(max_connections=get_settings().MAX_REALTIME_CONNECTIONS)


def get_connection_manager() -> ConnectionManager:
    return manager


async def _send_error(websocket: WebSocket, detail: str) -> None:
    await websocket.send_json({"event": "error", "data": {"error": detail}})


async def authenticate_join(
    data: Any, tokens: TokenService, store: Store
) -> str:
    """
    Resolve the channel a ``join`` frame may subscribe to.

    Raises:
        NoteChatError: If the token is missing or invalid, the user is gone,
            or the claimed email differs from the verified one.
    """
    if not isinstance(data, dict) or not data.get("token"):
        raise UnauthorizedError("No token provided")
    user_id = await tokens.verify(data["token"])
    user = crud.get_user_by_id(store, user_id)
    if user is None:
        raise UnauthorizedError("Invalid token")
    claimed = data.get("email")
    if claimed and claimed != user["email"]:
        raise UnauthorizedError("Email does not match token")
    return user["email"]


@router.websocket("/ws")
async def realtime_channel(
    websocket: WebSocket,
    connections: ConnectionManager = Depends(get_connection_manager),
    tokens: TokenService = Depends(get_token_service),
    store: Store = Depends(get_store),
):
    """Serve one client connection until it disconnects."""
    if not await connections.connect(websocket):
        return
    try:
        while True:
            try:
                frame = json.loads(await websocket.receive_text())
            except ValueError:
                await _send_error(websocket, "Frames must be JSON")
                continue
            event = frame.get("event") if isinstance(frame, dict) else None
            if event != "join":
                await _send_error(websocket, f"Unknown event: {event}")
                continue
            try:
                email = await authenticate_join(frame.get("data"), tokens, store)
            except NoteChatError as exc:
                await _send_error(websocket, exc.detail)
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                return
            finally:
                # the socket outlives the lookup; hand the pooled connection back
                store.session.close()
            connections.join(email, websocket)
            await websocket.send_json({"event": "joined", "data": {"email": email}})
    except WebSocketDisconnect:
        pass
    finally:
        connections.disconnect(websocket)
