"""
Polling fallback for clients that cannot hold a realtime connection.

Each endpoint returns ``{"updates": [{"event": ..., "data": ...}]}`` using
the same event names as the WebSocket hub.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query

from conecta.db import DbClient, UserRecord, to_utc, utcnow
from conecta.dependencies import get_current_user, get_db_client

router = APIRouter()

DEFAULT_LOOKBACK = timedelta(seconds=60)


def _since(value: Optional[datetime]) -> datetime:
    return to_utc(value) if value else utcnow() - DEFAULT_LOOKBACK


@router.get("/chat/updates")
def chat_updates(
    since: Optional[datetime] = Query(default=None),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    room_ids = [forum.id for forum in db.list_forums()]
    messages = db.list_messages_since(_since(since), room_ids=room_ids, limit=50)
    return {
        "updates": [
            {
                "event": "new_message",
                "data": {
                    "roomId": message.room_id,
                    "message": message.as_dict(),
                    "timestamp": message.as_dict()["createdAt"],
                },
            }
            for message in messages
        ]
    }


@router.get("/forums/updates")
def forum_updates(
    since: Optional[datetime] = Query(default=None),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    forums = db.list_forums(updated_since=_since(since))
    return {
        "updates": [
            {"event": "forum_update", "data": {"type": "update", "forum": forum.as_dict()}}
            for forum in forums
        ]
    }


@router.get("/users/notifications")
def user_notifications(
    since: Optional[datetime] = Query(default=None),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    updates = []
    for seen in db.list_users_seen_since(_since(since)):
        data = seen.as_dict()
        updates.append(
            {
                "event": "user_status_update",
                "data": {
                    "userId": seen.id,
                    "name": seen.name,
                    "isOnline": seen.is_online,
                    "lastSeen": data["lastSeen"],
                },
            }
        )
    return {"updates": updates}
