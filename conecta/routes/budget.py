"""
Budget entries owned by the authenticated user.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from conecta.cache import QueryCache
from conecta.db import BUDGET_SORT_COLUMNS, BudgetEntryRecord, DbClient, UserRecord, utcnow
from conecta.dependencies import get_current_user, get_db_client, get_hub, get_query_cache
from conecta.errors import NotFoundError, ValidationError
from conecta.realtime import RealtimeHub
from conecta.schemas import BudgetEntryCreate, BudgetEntryUpdate, MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter()

PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}


def summarize(totals: dict[str, dict]) -> dict:
    income = totals.get("INCOME", {})
    expenses = totals.get("EXPENSE", {})
    income_total = income.get("total", 0.0)
    expense_total = expenses.get("total", 0.0)
    return {
        "income": income_total,
        "expenses": expense_total,
        "balance": income_total - expense_total,
        "incomeCount": income.get("count", 0),
        "expenseCount": expenses.get("count", 0),
    }


def _owned_entry(db: DbClient, entry_id: str, user: UserRecord) -> BudgetEntryRecord:
    entry = db.get_budget_entry(entry_id)
    # Entries of other users are reported as missing.
    if entry is None or entry.user_id != user.id:
        raise NotFoundError("Budget entry not found")
    return entry


def _invalidate(cache: QueryCache, user: UserRecord) -> None:
    cache.invalidate(f"dashboard:{user.id}")


@router.get("")
def list_entries(
    type: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    limit: int = Query(default=50, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
    sort_by: str = Query(default="entryDate", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query(default="desc", alias="sortOrder"),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    if sort_by not in BUDGET_SORT_COLUMNS:
        raise ValidationError(f"sortBy must be one of {', '.join(BUDGET_SORT_COLUMNS)}")
    entries, total = db.list_budget_entries(
        user.id,
        type=type.upper() if type else None,
        category=category,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        skip=skip,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return {
        "entries": [entry.as_dict() for entry in entries],
        "pagination": {
            "total": total,
            "page": skip // limit + 1,
            "pages": math.ceil(total / limit),
            "hasNext": skip + limit < total,
            "hasPrev": skip > 0,
        },
        "summary": summarize(db.budget_totals(user.id)),
    }


@router.get("/summary")
def budget_summary(
    period: Literal["week", "month", "year", "all"] = Query(default="month"),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    now = utcnow()
    since = now - timedelta(days=PERIOD_DAYS[period]) if period in PERIOD_DAYS else None
    totals = db.budget_totals(user.id, since=since, until=now if since else None)
    summary = summarize(totals)
    income = summary["income"]
    summary.update(
        {
            "period": period,
            "startDate": since.isoformat() if since else None,
            "endDate": now.isoformat(),
            "incomeCategories": totals.get("INCOME", {}).get("categories", []),
            "expenseCategories": totals.get("EXPENSE", {}).get("categories", []),
            "savingsRate": round(summary["balance"] / income * 100, 2) if income else 0.0,
        }
    )
    return summary


@router.post("", status_code=201)
def create_entry(
    payload: BudgetEntryCreate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    hub: RealtimeHub = Depends(get_hub),
):
    entry = db.create_budget_entry(
        user_id=user.id,
        type=payload.type.value,
        category=payload.category,
        amount=payload.amount,
        description=payload.description,
        entry_date=payload.entry_date or utcnow(),
    )
    logger.info("User %s created budget entry %s", user.id, entry.id)
    _invalidate(cache, user)
    hub.publish("budget_update", {"type": "create", "entry": entry.as_dict()}, user_id=user.id)
    return entry.as_dict()


@router.put("/{entry_id}")
def update_entry(
    entry_id: str,
    payload: BudgetEntryUpdate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    hub: RealtimeHub = Depends(get_hub),
):
    _owned_entry(db, entry_id, user)
    changes = payload.model_dump(exclude_none=True)
    if "type" in changes:
        changes["type"] = payload.type.value
    entry = db.update_budget_entry(entry_id, **changes)
    if entry is None:
        raise NotFoundError("Budget entry not found")
    _invalidate(cache, user)
    hub.publish("budget_update", {"type": "update", "entry": entry.as_dict()}, user_id=user.id)
    return entry.as_dict()


@router.delete("/{entry_id}", response_model=MessageResponse)
def delete_entry(
    entry_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: QueryCache = Depends(get_query_cache),
    hub: RealtimeHub = Depends(get_hub),
):
    _owned_entry(db, entry_id, user)
    if not db.delete_budget_entry(entry_id):
        raise NotFoundError("Budget entry not found")
    logger.info("User %s deleted budget entry %s", user.id, entry_id)
    _invalidate(cache, user)
    hub.publish("budget_update", {"type": "delete", "entryId": entry_id}, user_id=user.id)
    return MessageResponse(message="Budget entry removed", id=entry_id)
