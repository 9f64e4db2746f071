"""
Static configuration exposed to the mobile client.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from conecta.constants import BUDGET_CATEGORIES, CHECKLIST_ITEMS, EntryType, ProfessionalPath
from conecta.db import UserRecord
from conecta.dependencies import get_current_user
from conecta.errors import NotFoundError, ValidationError

router = APIRouter()


def _user_path(user: UserRecord) -> str:
    if not user.professional_path:
        raise ValidationError("User professional path not set")
    return user.professional_path


@router.get("/constants")
def constants():
    return {"professionalPaths": [path.value for path in ProfessionalPath]}


@router.get("/categories")
def budget_categories(user: UserRecord = Depends(get_current_user)):
    categories = BUDGET_CATEGORIES.get(_user_path(user))
    if categories is None:
        raise NotFoundError("Categories not found for professional path")
    return {
        "income": categories[EntryType.INCOME.value],
        "expense": categories[EntryType.EXPENSE.value],
    }


@router.get("/checklist-items")
def checklist_items(user: UserRecord = Depends(get_current_user)):
    items = CHECKLIST_ITEMS.get(_user_path(user))
    if items is None:
        raise NotFoundError("Checklist items not found for professional path")
    return items
