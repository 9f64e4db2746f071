"""
Moderation endpoints. Removals are soft deletes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from conecta.cache import QueryCache
from conecta.db import DbClient, UserRecord
from conecta.dependencies import get_db_client, get_hub, get_query_cache, require_admin
from conecta.errors import NotFoundError
from conecta.realtime import RealtimeHub
from conecta.schemas import MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.delete("/forums/{forum_id}", response_model=MessageResponse)
def deactivate_forum(
    forum_id: str,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    hub: RealtimeHub = Depends(get_hub),
):
    forum = db.get_forum(forum_id)
    if forum is None or not forum.is_active:
        raise NotFoundError("Forum not found")
    db.set_forum_active(forum_id, False)
    logger.info("Admin %s deactivated forum %s", admin.id, forum_id)
    cache.invalidate("forums")
    cache.invalidate("chat")
    hub.publish("forum_update", {"type": "delete", "forum": {"id": forum_id}})
    return MessageResponse(message="Forum removed", id=forum_id)


@router.delete("/events/{event_id}", response_model=MessageResponse)
def cancel_event(
    event_id: str,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    hub: RealtimeHub = Depends(get_hub),
):
    event = db.get_event(event_id)
    if event is None or event.is_cancelled:
        raise NotFoundError("Event not found")
    updated = db.update_event(event_id, is_cancelled=True)
    logger.info("Admin %s cancelled event %s", admin.id, event_id)
    hub.publish("event_update", {"type": "update", "event": updated.as_dict()})
    return MessageResponse(message="Event removed", id=event_id)
