"""
Onboarding checklist for the authenticated user.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from conecta.cache import QueryCache
from conecta.constants import CHECKLIST_ITEMS, checklist_keys_for
from conecta.db import ChecklistItemRecord, DbClient, UserRecord
from conecta.dependencies import get_current_user, get_db_client, get_hub, get_query_cache
from conecta.errors import NotFoundError, ValidationError
from conecta.realtime import RealtimeHub
from conecta.schemas import ChecklistUpdate

logger = logging.getLogger(__name__)

router = APIRouter()

_DEFINITIONS = {
    item["key"]: item for items in CHECKLIST_ITEMS.values() for item in items
}


def describe(item: ChecklistItemRecord) -> dict:
    data = item.as_dict()
    definition = _DEFINITIONS.get(item.item_key, {})
    data["title"] = definition.get("title", item.item_key)
    data["description"] = definition.get("description", "")
    return data


@router.get("")
def get_checklist(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    items = db.list_checklist_items(user.id)
    if not items:
        items = db.ensure_checklist_items(user.id, checklist_keys_for(user.professional_path))
        logger.info("Seeded %d checklist items for user %s", len(items), user.id)
    return [describe(item) for item in items]


@router.put("/{item_key}")
@router.patch("/{item_key}")
def update_checklist_item(
    item_key: str,
    payload: ChecklistUpdate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    hub: RealtimeHub = Depends(get_hub),
):
    if payload.is_completed is None:
        raise ValidationError("isCompleted is required")
    if db.get_checklist_item(user.id, item_key) is None:
        raise NotFoundError("Checklist item not found")
    item = db.set_checklist_item(user.id, item_key, payload.is_completed)
    cache.invalidate(f"dashboard:{user.id}")
    data = describe(item)
    hub.publish("checklist_update", {"type": "update", "item": data}, user_id=user.id)
    return data
