"""
Chat rooms backed by active forums.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from conecta.cache import QueryCache
from conecta.db import DbClient, ForumRecord, UserRecord
from conecta.dependencies import get_current_user, get_db_client, get_hub, get_query_cache
from conecta.errors import NotFoundError
from conecta.realtime import RealtimeHub
from conecta.schemas import ChatMessageCreate

logger = logging.getLogger(__name__)

router = APIRouter()


def _room(db: DbClient, room_id: str) -> ForumRecord:
    forum = db.get_forum(room_id)
    if forum is None or not forum.is_active:
        raise NotFoundError("Chat room not found")
    return forum


@router.get("/rooms")
def list_rooms(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    rooms = []
    for forum in db.list_forums(order_by_activity=True):
        last = db.last_room_message(forum.id)
        rooms.append(
            {
                "id": forum.id,
                "name": forum.title,
                "description": forum.description,
                "tags": forum.tags,
                "lastActivity": forum.as_dict()["lastActivity"],
                "lastMessage": last.as_dict() if last else None,
                "unreadCount": db.count_unread_messages(forum.id, user.id),
            }
        )
    return rooms


@router.get("/rooms/{room_id}/messages")
def room_messages(
    room_id: str,
    limit: int = Query(default=50, ge=1, le=100),
    before: Optional[datetime] = Query(default=None),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    """Latest messages, oldest first. Returned messages are marked read for the caller."""
    _room(db, room_id)
    messages = db.list_room_messages(room_id, limit=limit, before=before)
    unread = [message.id for message in messages if not message.is_read_by(user.id)]
    if unread:
        db.mark_messages_read(unread, user.id)
    return [message.as_dict() for message in messages]


@router.post("/rooms/{room_id}/messages", status_code=201)
def send_message(
    room_id: str,
    payload: ChatMessageCreate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    hub: RealtimeHub = Depends(get_hub),
):
    _room(db, room_id)
    message = db.create_message(
        room_id=room_id,
        sender_id=user.id,
        content=payload.content,
        type=payload.type.value,
        reply_to=payload.reply_to,
    )
    cache.invalidate("chat")
    data = message.as_dict()
    hub.publish("new_message", {"type": "create", "roomId": room_id, "message": data}, room=room_id)
    return data


@router.get("/search")
def search_messages(
    q: Optional[str] = Query(default=None),
    room_id: Optional[str] = Query(default=None, alias="roomId"),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    if not q or not q.strip():
        return []
    return [message.as_dict() for message in db.search_messages(q.strip(), room_id=room_id)]
