"""
Aggregated home-screen data for the authenticated user.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from conecta.cache import QueryCache
from conecta.db import DbClient, UserRecord, utcnow
from conecta.dependencies import get_current_user, get_db_client, get_query_cache

router = APIRouter()

# Event changes do not invalidate per-user dashboards, so keep this short.
DASHBOARD_TTL_SECONDS = 60


def build_overview(db: DbClient, user: UserRecord) -> dict:
    now = utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    totals = db.budget_totals(user.id, since=month_start, until=now)
    income = totals.get("INCOME", {}).get("total", 0.0)
    expenses = totals.get("EXPENSE", {}).get("total", 0.0)
    recent, _ = db.list_budget_entries(user.id, limit=5, sort_by="createdAt")

    items = db.list_checklist_items(user.id)
    completed = sum(1 for item in items if item.is_completed)
    progress = round(completed / len(items) * 100) if items else 0

    events, _ = db.list_events(involving_user_id=user.id, upcoming=True, limit=5)
    upcoming = [
        {
            "id": event.id,
            "title": event.title,
            "date": event.as_dict()["date"],
            "time": event.time,
            "location": event.location,
            "isOrganizer": event.organizer_id == user.id,
            "organizerName": (event.organizer or {}).get("name"),
            "attendeeCount": len(event.attendee_ids),
        }
        for event in events
    ]
    return {
        "budget": {
            "monthlyIncome": income,
            "monthlyExpenses": expenses,
            "balance": income - expenses,
            "recentEntries": [entry.as_dict() for entry in recent],
        },
        "checklist": {
            "completedItems": completed,
            "totalItems": len(items),
            "progressPercentage": progress,
        },
        "upcomingEvents": upcoming,
        "stats": {
            "totalEventsAttending": len(upcoming),
            "eventsOrganizing": sum(1 for event in upcoming if event["isOrganizer"]),
            "checklistCompletion": progress,
        },
    }


@router.get("/overview")
def overview(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
):
    key = f"dashboard:{user.id}"
    cached = cache.get_cached_query(key)
    if cached is not None:
        return cached
    data = build_overview(db, user)
    cache.cache_query(key, data, ttl=DASHBOARD_TTL_SECONDS)
    return data
