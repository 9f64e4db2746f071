"""
Realtime hub and WebSocket endpoint.

Clients exchange JSON frames shaped ``{"event": <name>, "data": {...}}``.
The hub keeps room membership for live connections and fans server events
out to rooms, to a user's private room, or to everyone. Delivery is best
effort: events for rooms without members are dropped and nothing is
redelivered.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from conecta.errors import AuthenticationError, format_validation_errors
from conecta.schemas import ChatMessageCreate

logger = logging.getLogger(__name__)

router = APIRouter()

USER_ROOM_PREFIX = "user:"


def user_room(user_id: str) -> str:
    return f"{USER_ROOM_PREFIX}{user_id}"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(eq=False)
class Connection:
    websocket: Any
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    user_id: Optional[str] = None
    rooms: set[str] = field(default_factory=set)

    async def send(self, event: str, data: Any) -> bool:
        try:
            await self.websocket.send_json({"event": event, "data": jsonable_encoder(data)})
        except (RuntimeError, WebSocketDisconnect):
            logger.debug("Dropped %s for closed connection %s", event, self.id)
            return False
        return True


class RealtimeHub:
    """
    Connection registry and event fan-out.

    All membership changes and sends happen on the event loop that serves the
    WebSocket endpoint. Code running elsewhere (sync route handlers in the
    threadpool) must go through ``publish``.
    """

    def __init__(self):
        self.connections: dict[str, Connection] = {}
        self.rooms: dict[str, set[str]] = {}
        self.user_connections: dict[str, set[str]] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop

    # ----- membership (event loop only) -----

    def register(self, websocket: Any) -> Connection:
        if self.loop is None:
            self.bind(asyncio.get_running_loop())
        conn = Connection(websocket=websocket)
        self.connections[conn.id] = conn
        logger.info("Realtime connection opened: %s", conn.id)
        return conn

    def unregister(self, conn: Connection) -> Optional[str]:
        """
        Forget a connection. Returns the user id when that user has no
        connections left (i.e. just went offline).
        """
        self.connections.pop(conn.id, None)
        for room in list(conn.rooms):
            self.leave(conn, room)
        logger.info("Realtime connection closed: %s", conn.id)
        if not conn.user_id:
            return None
        sockets = self.user_connections.get(conn.user_id, set())
        sockets.discard(conn.id)
        if sockets:
            return None
        self.user_connections.pop(conn.user_id, None)
        return conn.user_id

    def authenticate(self, conn: Connection, user_id: str) -> None:
        if conn.user_id and conn.user_id != user_id:
            self.leave(conn, user_room(conn.user_id))
            self.user_connections.get(conn.user_id, set()).discard(conn.id)
        conn.user_id = user_id
        self.user_connections.setdefault(user_id, set()).add(conn.id)
        self.join(conn, user_room(user_id))

    def join(self, conn: Connection, room: str) -> None:
        self.rooms.setdefault(room, set()).add(conn.id)
        conn.rooms.add(room)

    def leave(self, conn: Connection, room: str) -> None:
        members = self.rooms.get(room)
        if members is not None:
            members.discard(conn.id)
            if not members:
                del self.rooms[room]
        conn.rooms.discard(room)

    def room_members(self, room: str) -> set[str]:
        return set(self.rooms.get(room, ()))

    def online_user_ids(self) -> list[str]:
        return sorted(self.user_connections)

    # ----- emission (event loop only) -----

    async def emit_to_room(self, room: str, event: str, data: Any) -> int:
        members = self.rooms.get(room)
        if not members:
            logger.debug("No members in %s; dropped %s", room, event)
            return 0
        targets = [self.connections[cid] for cid in list(members) if cid in self.connections]
        return await self._send_many(targets, event, data)

    async def emit_to_all(self, event: str, data: Any) -> int:
        return await self._send_many(list(self.connections.values()), event, data)

    async def _send_many(self, connections: list[Connection], event: str, data: Any) -> int:
        if not connections:
            return 0
        results = await asyncio.gather(*(conn.send(event, data) for conn in connections))
        return sum(1 for delivered in results if delivered)

    # ----- emission (any thread) -----

    def publish(
        self,
        event: str,
        data: dict,
        *,
        room: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        """
        Schedule an event for a room, a user's private room, or everyone.
        Safe to call from worker threads; silently dropped when no loop is
        serving realtime connections.
        """
        payload = {**data}
        payload.setdefault("timestamp", _timestamp())
        if user_id is not None:
            room = user_room(user_id)
        coro = self.emit_to_room(room, event, payload) if room else self.emit_to_all(event, payload)

        loop = self.loop
        if loop is None or loop.is_closed():
            coro.close()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            loop.create_task(coro)
        else:
            asyncio.run_coroutine_threadsafe(coro, loop)


# ---------- WebSocket endpoint ----------


async def _authenticate(state: Any, hub: RealtimeHub, conn: Connection, data: dict) -> None:
    user_id = data.get("userId")
    token = data.get("token")
    if not isinstance(user_id, str):
        user_id = None
    if token is not None and not isinstance(token, str):
        await conn.send("auth_error", {"message": "Not authorized, token failed"})
        return
    if token:
        try:
            user_id = state.token_service.decode_access_token(token)
        except AuthenticationError as exc:
            await conn.send("auth_error", {"message": exc.message})
            return
    if not user_id:
        await conn.send("auth_error", {"message": "userId or token required"})
        return
    user = await run_in_threadpool(state.db.set_user_online, user_id, True)
    if user is None:
        await conn.send("auth_error", {"message": "User not found"})
        return
    hub.authenticate(conn, user.id)
    logger.info("Realtime connection %s authenticated as %s", conn.id, user.id)
    await conn.send("authenticated", {"userId": user.id, "user": user.as_dict()})
    await hub.emit_to_all(
        "user_status_update",
        {
            "userId": user.id,
            "isOnline": True,
            "lastSeen": user.as_dict()["lastSeen"],
            "timestamp": _timestamp(),
        },
    )


def _room_id(data: dict) -> Optional[str]:
    room = data.get("roomId")
    if isinstance(room, str) and room.strip():
        return room.strip()
    return None


async def _join_room(state: Any, hub: RealtimeHub, conn: Connection, data: dict) -> None:
    room = _room_id(data)
    if room is None:
        await conn.send("error", {"message": "roomId is required"})
        return
    if room.startswith(USER_ROOM_PREFIX) and room != user_room(conn.user_id or ""):
        await conn.send("error", {"message": "Cannot join another user's room"})
        return
    hub.join(conn, room)
    await conn.send("room_joined", {"roomId": room})


async def _leave_room(state: Any, hub: RealtimeHub, conn: Connection, data: dict) -> None:
    room = _room_id(data)
    if room is None:
        await conn.send("error", {"message": "roomId is required"})
        return
    hub.leave(conn, room)
    await conn.send("room_left", {"roomId": room})


async def _send_message(state: Any, hub: RealtimeHub, conn: Connection, data: dict) -> None:
    if not conn.user_id:
        await conn.send("error", {"message": "Not authenticated"})
        return
    room = _room_id(data)
    if room is None or not data.get("content"):
        await conn.send("error", {"message": "roomId and content are required"})
        return
    try:
        body = ChatMessageCreate.model_validate(
            {key: data[key] for key in ("content", "type", "replyTo") if key in data}
        )
    except PydanticValidationError as exc:
        await conn.send("error", {"message": format_validation_errors(exc)})
        return
    forum = await run_in_threadpool(state.db.get_forum, room)
    if forum is None or not forum.is_active:
        await conn.send("error", {"message": "Chat room not found"})
        return
    message = await run_in_threadpool(
        lambda: state.db.create_message(
            room_id=room,
            sender_id=conn.user_id,
            content=body.content,
            type=body.type.value,
            reply_to=body.reply_to,
        )
    )
    state.cache.invalidate("chat")
    payload = {"type": "create", "roomId": room, "message": message.as_dict(), "timestamp": _timestamp()}
    delivered = await hub.emit_to_room(room, "new_message", payload)
    if room not in conn.rooms:
        await conn.send("new_message", payload)
    logger.debug("Message %s delivered to %d connections", message.id, delivered)


async def _heartbeat(state: Any, hub: RealtimeHub, conn: Connection, data: dict) -> None:
    await conn.send("heartbeat_ack", {"timestamp": _timestamp()})


async def _online_users(state: Any, hub: RealtimeHub, conn: Connection, data: dict) -> None:
    await conn.send("online_users", {"users": hub.online_user_ids()})


CLIENT_EVENTS = {
    "authenticate": _authenticate,
    "join_room": _join_room,
    "leave_room": _leave_room,
    "send_message": _send_message,
    "heartbeat": _heartbeat,
    "get_online_users": _online_users,
}


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    state = websocket.app.state
    hub: RealtimeHub = state.hub
    await websocket.accept()
    conn = hub.register(websocket)
    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                await conn.send("error", {"message": "Frames must be JSON objects"})
                continue
            if not isinstance(frame, dict):
                await conn.send("error", {"message": "Frames must be JSON objects"})
                continue
            event = frame.get("event")
            handler = CLIENT_EVENTS.get(event) if isinstance(event, str) else None
            if handler is None:
                await conn.send("error", {"message": f"Unknown event: {event}"})
                continue
            data = frame.get("data")
            try:
                await handler(state, hub, conn, data if isinstance(data, dict) else {})
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception("Realtime handler %s failed on %s", event, conn.id)
                await conn.send("error", {"message": f"Could not handle {event}"})
    except WebSocketDisconnect:
        pass
    finally:
        offline_user = hub.unregister(conn)
        if offline_user:
            user = await run_in_threadpool(state.db.set_user_online, offline_user, False)
            await hub.emit_to_all(
                "user_status_update",
                {
                    "userId": offline_user,
                    "isOnline": False,
                    "lastSeen": user.as_dict()["lastSeen"] if user else None,
                    "timestamp": _timestamp(),
                },
            )
