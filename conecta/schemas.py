"""
Pydantic schemas for the Conecta API.

Bodies use the camelCase field names of the mobile client; models accept
snake_case too so scripts and tests can build them directly.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from conecta.constants import (
    EntryType,
    EventCategory,
    GuidePath,
    MessageType,
    ProfessionalPath,
    ServiceCategory,
    TargetAudience,
)

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

# bcrypt only hashes the first 72 bytes and newer releases reject longer input.
MAX_PASSWORD_BYTES = 72


def _check_password_bytes(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes")
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ---------- Users ----------


class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    professional_path: Optional[ProfessionalPath] = None

    @field_validator("password")
    @classmethod
    def _password_fits_bcrypt(cls, value):
        return _check_password_bytes(value)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UpdateProfileRequest(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=6, max_length=72)
    bio: Optional[str] = Field(default=None, max_length=500)
    location: Optional[str] = Field(default=None, max_length=100)

    @field_validator("password")
    @classmethod
    def _password_fits_bcrypt(cls, value):
        return _check_password_bytes(value)


class OnboardingRequest(CamelModel):
    professional_path: ProfessionalPath
    pinned_modules: Optional[list[str]] = None


# ---------- Budget ----------


class BudgetEntryCreate(CamelModel):
    type: EntryType
    category: str = Field(..., min_length=1, max_length=100)
    amount: float = Field(..., gt=0)
    description: str = Field(default="", max_length=500)
    entry_date: Optional[datetime] = None


class BudgetEntryUpdate(CamelModel):
    type: Optional[EntryType] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    amount: Optional[float] = Field(default=None, gt=0)
    description: Optional[str] = Field(default=None, max_length=500)
    entry_date: Optional[datetime] = None


# ---------- Checklist ----------


class ChecklistUpdate(CamelModel):
    is_completed: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("isCompleted", "completed", "is_completed"),
    )


# ---------- Forums ----------


class ForumCreate(CamelModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=500)
    tags: list[str] = Field(default_factory=list)


class ThreadCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)


class PostCreate(CamelModel):
    content: str = Field(..., min_length=1)


# ---------- Content ----------


class GuideCreate(CamelModel):
    title: str = Field(..., min_length=1)
    slug: str = Field(..., pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    content: str = Field(..., min_length=1)
    path: GuidePath


class ContactInfo(CamelModel):
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    website: Optional[str] = None


class DirectoryEntryCreate(CamelModel):
    name: str = Field(..., min_length=1)
    category: ServiceCategory
    description: str = Field(..., min_length=1)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    is_recommended: bool = False


# ---------- Events ----------


class EventLocation(CamelModel):
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    city: str = "Alicante"


class EventCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    date: datetime
    time: str = Field(..., pattern=TIME_PATTERN)
    location: EventLocation
    max_attendees: Optional[int] = Field(default=None, ge=1)
    tags: list[str] = Field(default_factory=list)
    category: EventCategory = EventCategory.MEETUP
    target_audience: TargetAudience = TargetAudience.ALL
    is_public: bool = True
    cover_image: Optional[str] = None


class EventUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    date: Optional[datetime] = None
    time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    location: Optional[EventLocation] = None
    max_attendees: Optional[int] = Field(default=None, ge=1)
    tags: Optional[list[str]] = None
    category: Optional[EventCategory] = None
    target_audience: Optional[TargetAudience] = None
    is_public: Optional[bool] = None
    cover_image: Optional[str] = None


# ---------- Chat ----------


class ChatMessageCreate(CamelModel):
    content: str = Field(..., min_length=1, max_length=1000)
    type: MessageType = MessageType.TEXT
    reply_to: Optional[str] = None


# ---------- Responses ----------


class MessageResponse(BaseModel):
    message: str
    id: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    service: str
    environment: str
    database: str
    timestamp: str
