"""
Enumerations and static configuration shared by routes and the data layer.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class ProfessionalPath(str, Enum):
    FREELANCER = "FREELANCER"
    ENTREPRENEUR = "ENTREPRENEUR"


class OnboardingStep(str, Enum):
    SELECT_PATH = "SELECT_PATH"
    SELECT_CHECKLIST_ITEMS = "SELECT_CHECKLIST_ITEMS"
    COMPLETED = "COMPLETED"


class EntryType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class GuidePath(str, Enum):
    FREELANCER = "FREELANCER"
    ENTREPRENEUR = "ENTREPRENEUR"
    GENERAL = "GENERAL"


class ServiceCategory(str, Enum):
    GESTOR = "GESTOR"
    LAWYER = "LAWYER"
    REAL_ESTATE = "REAL_ESTATE"
    TRANSLATOR = "TRANSLATOR"


class EventCategory(str, Enum):
    NETWORKING = "networking"
    WORKSHOP = "workshop"
    SOCIAL = "social"
    MEETUP = "meetup"
    CONFERENCE = "conference"
    OTHER = "other"


class TargetAudience(str, Enum):
    ALL = "all"
    FREELANCERS = "freelancers"
    ENTREPRENEURS = "entrepreneurs"
    BOTH = "both"


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"


CHECKLIST_ITEMS: dict[str, list[dict[str, str]]] = {
    ProfessionalPath.FREELANCER.value: [
        {
            "key": "OBTAIN_NIE",
            "title": "Obtain your NIE",
            "description": "Get your foreigner identification number",
        },
        {
            "key": "REGISTER_AUTONOMO",
            "title": "Register as Autónomo",
            "description": "Complete your self-employment registration",
        },
        {
            "key": "UNDERSTAND_TAXES",
            "title": "Understand Tax Obligations",
            "description": "Learn about IVA and IRPF requirements",
        },
        {
            "key": "OPEN_BANK_ACCOUNT",
            "title": "Open Spanish Bank Account",
            "description": "Set up your business banking",
        },
    ],
    ProfessionalPath.ENTREPRENEUR.value: [
        {
            "key": "OBTAIN_NIE",
            "title": "Obtain your NIE",
            "description": "Get your foreigner identification number",
        },
        {
            "key": "FORM_SL_COMPANY",
            "title": "Form an S.L. Company",
            "description": "Establish your limited liability company",
        },
        {
            "key": "GET_COMPANY_NIF",
            "title": "Get Company NIF",
            "description": "Obtain your company tax ID",
        },
        {
            "key": "RESEARCH_FUNDING",
            "title": "Research Funding Options",
            "description": "Explore grants and investment opportunities",
        },
    ],
}

BUDGET_CATEGORIES: dict[str, dict[str, list[str]]] = {
    ProfessionalPath.FREELANCER.value: {
        EntryType.INCOME.value: [
            "Project-Based Income",
            "Recurring Clients",
            "Passive Income",
            "Other Income",
        ],
        EntryType.EXPENSE.value: [
            "Cuota de Autónomo",
            "Office/Coworking",
            "Software & Tools",
            "Professional Services",
            "Marketing",
            "Travel & Transport",
            "Other Expenses",
        ],
    },
    ProfessionalPath.ENTREPRENEUR.value: {
        EntryType.INCOME.value: [
            "Product Sales",
            "Service Revenue",
            "Investor Funding",
            "Grants",
            "Other Income",
        ],
        EntryType.EXPENSE.value: [
            "Salaries & Payroll",
            "Office Rent",
            "Legal & Accounting",
            "Marketing & Sales",
            "R&D",
            "Operations",
            "Other Expenses",
        ],
    },
}


def checklist_keys_for(path: str | None) -> list[str]:
    """Default checklist keys for a professional path (entrepreneur when unset)."""
    items = CHECKLIST_ITEMS.get(path or "", CHECKLIST_ITEMS[ProfessionalPath.ENTREPRENEUR.value])
    return [item["key"] for item in items]
