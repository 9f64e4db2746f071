"""
Guides and the professional services directory.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from conecta.cache import QueryCache
from conecta.constants import GuidePath, ServiceCategory
from conecta.db import DbClient, UserRecord
from conecta.dependencies import get_db_client, get_query_cache, require_admin
from conecta.errors import NotFoundError
from conecta.schemas import DirectoryEntryCreate, GuideCreate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/guides")
def list_guides(
    path: Optional[GuidePath] = Query(default=None),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
):
    key = f"content:guides:{path.value if path else 'all'}"
    cached = cache.get_cached_query(key)
    if cached is not None:
        return cached
    data = [guide.as_dict(include_content=False) for guide in db.list_guides(path.value if path else None)]
    cache.cache_query(key, data)
    return data


@router.get("/guides/{slug}")
def get_guide(slug: str, db: DbClient = Depends(get_db_client)):
    guide = db.get_guide_by_slug(slug)
    if guide is None:
        raise NotFoundError("Guide not found")
    return guide.as_dict()


@router.post("/guides", status_code=201)
def create_guide(
    payload: GuideCreate,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
):
    guide = db.create_guide(
        title=payload.title,
        slug=payload.slug,
        content=payload.content,
        path=payload.path.value,
    )
    logger.info("Admin %s published guide %s", admin.id, guide.slug)
    cache.invalidate("content:guides")
    return guide.as_dict()


@router.get("/directory")
def list_directory(
    category: Optional[ServiceCategory] = Query(default=None),
    is_recommended: Optional[bool] = Query(default=None, alias="isRecommended"),
    name: Optional[str] = Query(default=None),
    db: DbClient = Depends(get_db_client),
):
    entries = db.list_directory_entries(
        category=category.value if category else None,
        is_recommended=is_recommended,
        name=name,
    )
    return [entry.as_dict() for entry in entries]


@router.post("/directory", status_code=201)
def create_directory_entry(
    payload: DirectoryEntryCreate,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    entry = db.create_directory_entry(
        name=payload.name,
        category=payload.category.value,
        description=payload.description,
        contact_info=payload.contact_info.model_dump(exclude_none=True),
        is_recommended=payload.is_recommended,
    )
    logger.info("Admin %s added directory entry %s", admin.id, entry.id)
    return entry.as_dict()
