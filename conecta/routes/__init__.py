"""
HTTP routes for the Conecta API.
"""

from __future__ import annotations

from fastapi import APIRouter

from conecta.routes import (
    admin,
    budget,
    chat,
    checklist,
    config,
    content,
    dashboard,
    events,
    forums,
    health,
    polling,
    users,
)

router = APIRouter()
router.include_router(health.router, tags=["health"])
# Polling paths such as /forums/updates must be matched before /forums/{forum_id}.
router.include_router(polling.router, tags=["polling"])
router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(budget.router, prefix="/budget", tags=["budget"])
router.include_router(checklist.router, prefix="/checklist", tags=["checklist"])
router.include_router(forums.router, prefix="/forums", tags=["forums"])
router.include_router(content.router, prefix="/content", tags=["content"])
router.include_router(events.router, prefix="/events", tags=["events"])
router.include_router(chat.router, prefix="/chat", tags=["chat"])
router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
router.include_router(config.router, prefix="/config", tags=["config"])
router.include_router(admin.router, prefix="/admin", tags=["admin"])
