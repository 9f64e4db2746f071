"""
Forums, threads and posts.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from conecta.cache import QueryCache, RequestBatcher
from conecta.db import DbClient, ForumRecord, UserRecord
from conecta.dependencies import (
    get_batcher,
    get_current_user,
    get_db_client,
    get_hub,
    get_query_cache,
)
from conecta.errors import AuthorizationError, NotFoundError, ValidationError
from conecta.realtime import RealtimeHub
from conecta.schemas import ForumCreate, MessageResponse, PostCreate, ThreadCreate

logger = logging.getLogger(__name__)

router = APIRouter()

FORUMS_CACHE_KEY = "forums:active"


def _active_forum(db: DbClient, forum_id: str) -> ForumRecord:
    forum = db.get_forum(forum_id)
    if forum is None or not forum.is_active:
        raise NotFoundError("Forum not found")
    return forum


def _forum_changed(cache: QueryCache, hub: RealtimeHub, kind: str, forum: dict) -> None:
    cache.invalidate("forums")
    cache.invalidate("chat")
    hub.publish("forum_update", {"type": kind, "forum": forum})


@router.get("")
async def list_forums(
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    batcher: RequestBatcher = Depends(get_batcher),
):
    """Active forums, newest first. Served from cache; concurrent misses share one query."""
    cached = cache.get_cached_query(FORUMS_CACHE_KEY)
    if cached is not None:
        return cached

    async def load() -> list[dict]:
        forums = await run_in_threadpool(db.list_forums)
        data = [forum.as_dict() for forum in forums]
        cache.cache_query(FORUMS_CACHE_KEY, data)
        return data

    return await batcher.batch(FORUMS_CACHE_KEY, load)


@router.post("", status_code=201)
def create_forum(
    payload: ForumCreate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    hub: RealtimeHub = Depends(get_hub),
):
    forum = db.create_forum(
        title=payload.title,
        description=payload.description,
        tags=payload.tags,
        user_id=user.id,
    )
    logger.info("User %s created forum %s", user.id, forum.id)
    data = forum.as_dict()
    _forum_changed(cache, hub, "create", data)
    return data


@router.get("/threads/{thread_id}")
def get_thread(thread_id: str, db: DbClient = Depends(get_db_client)):
    thread = db.get_thread(thread_id)
    if thread is None:
        raise NotFoundError("Thread not found")
    data = thread.as_dict()
    data["posts"] = [post.as_dict() for post in db.list_posts(thread_id)]
    return data


@router.post("/threads/{thread_id}/posts", status_code=201)
def create_post(
    thread_id: str,
    payload: PostCreate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    hub: RealtimeHub = Depends(get_hub),
):
    thread = db.get_thread(thread_id)
    if thread is None:
        raise NotFoundError("Thread not found")
    if thread.is_locked:
        raise ValidationError("Thread is locked")
    post = db.create_post(thread_id=thread_id, author_id=user.id, content=payload.content)
    cache.invalidate("forums")
    hub.publish(
        "forum_update",
        {"type": "update", "forumId": thread.forum_id, "threadId": thread_id, "post": post.as_dict()},
    )
    return post.as_dict()


@router.delete("/threads/{thread_id}", response_model=MessageResponse)
def delete_thread(
    thread_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    hub: RealtimeHub = Depends(get_hub),
):
    thread = db.get_thread(thread_id)
    if thread is None:
        raise NotFoundError("Thread not found")
    if thread.author_id != user.id:
        raise AuthorizationError("Only the thread author can delete this thread")
    db.delete_thread(thread_id)
    logger.info("User %s deleted thread %s", user.id, thread_id)
    cache.invalidate("forums")
    hub.publish("forum_update", {"type": "update", "forumId": thread.forum_id, "deletedThreadId": thread_id})
    return MessageResponse(message="Thread deleted successfully", id=thread_id)


@router.get("/{forum_id}")
def get_forum(forum_id: str, db: DbClient = Depends(get_db_client)):
    forum = _active_forum(db, forum_id)
    db.increment_forum_views(forum_id)
    data = forum.as_dict()
    data["viewCount"] = forum.view_count + 1
    data["threads"] = [thread.as_dict() for thread in db.list_threads(forum_id)]
    return data


@router.delete("/{forum_id}", response_model=MessageResponse)
def delete_forum(
    forum_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    hub: RealtimeHub = Depends(get_hub),
):
    forum = _active_forum(db, forum_id)
    if forum.user_id != user.id:
        raise AuthorizationError("Only the forum creator can delete this forum")
    db.delete_forum(forum_id)
    logger.info("User %s deleted forum %s", user.id, forum_id)
    _forum_changed(cache, hub, "delete", {"id": forum_id})
    return MessageResponse(message="Forum deleted successfully", id=forum_id)


@router.get("/{forum_id}/threads")
def list_threads(
    forum_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    db: DbClient = Depends(get_db_client),
):
    _active_forum(db, forum_id)
    return [thread.as_dict() for thread in db.list_threads(forum_id, limit=limit, skip=skip)]


@router.post("/{forum_id}/threads", status_code=201)
def create_thread(
    forum_id: str,
    payload: ThreadCreate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    hub: RealtimeHub = Depends(get_hub),
):
    _active_forum(db, forum_id)
    thread = db.create_thread(
        forum_id=forum_id,
        author_id=user.id,
        title=payload.title,
        content=payload.content,
    )
    logger.info("User %s created thread %s in forum %s", user.id, thread.id, forum_id)
    cache.invalidate("forums")
    hub.publish("forum_update", {"type": "update", "forumId": forum_id, "thread": thread.as_dict()})
    return thread.as_dict()
