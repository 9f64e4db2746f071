"""
Database abstraction over SQLAlchemy, plus an in-memory SQLite variant for
development and tests.

Route handlers only see the record dataclasses defined here; ORM rows never
leave a session.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    cast,
    create_engine,
    delete,
    func,
    inspect,
    or_,
    select,
    text,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from conecta.constants import OnboardingStep, Role
from conecta.errors import ConflictError


def _new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = to_utc(value)
    return value.isoformat() if value else None


# ---------- Records ----------


@dataclass
class UserRecord:
    id: str
    name: str
    email: str
    password_hash: str
    role: str = Role.USER.value
    professional_path: Optional[str] = None
    onboarding_completed: bool = False
    onboarding_step: str = OnboardingStep.SELECT_PATH.value
    pinned_modules: list[str] = field(default_factory=list)
    is_online: bool = False
    last_seen: Optional[datetime] = None
    last_login: Optional[datetime] = None
    bio: Optional[str] = None
    location: str = "Alicante, Spain"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    def as_dict(self) -> dict:
        """Public representation; never includes the password hash."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "professionalPath": self.professional_path,
            "hasCompletedOnboarding": self.onboarding_completed,
            "onboardingStep": self.onboarding_step,
            "pinnedModules": list(self.pinned_modules or []),
            "isOnline": self.is_online,
            "lastSeen": _iso(self.last_seen),
            "bio": self.bio,
            "location": self.location,
            "createdAt": _iso(self.created_at),
        }

    def summary(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass
class BudgetEntryRecord:
    id: str
    user_id: str
    type: str
    category: str
    amount: float
    description: str
    entry_date: datetime
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user_id,
            "type": self.type,
            "category": self.category,
            "amount": self.amount,
            "description": self.description,
            "entryDate": _iso(self.entry_date),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class ChecklistItemRecord:
    id: str
    user_id: str
    item_key: str
    is_completed: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user_id,
            "itemKey": self.item_key,
            "isCompleted": self.is_completed,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class ForumRecord:
    id: str
    title: str
    description: str
    user_id: str
    tags: list[str] = field(default_factory=list)
    is_active: bool = True
    last_activity: Optional[datetime] = None
    view_count: int = 0
    thread_ids: list[str] = field(default_factory=list)
    owner: Optional[dict] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "user": self.owner or {"id": self.user_id},
            "tags": list(self.tags or []),
            "isActive": self.is_active,
            "lastActivity": _iso(self.last_activity),
            "viewCount": self.view_count,
            "threads": list(self.thread_ids),
            "threadCount": len(self.thread_ids),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class ThreadRecord:
    id: str
    title: str
    author_id: str
    forum_id: str
    view_count: int = 0
    reply_count: int = 0
    post_count: int = 0
    last_reply_at: Optional[datetime] = None
    last_reply_by: Optional[str] = None
    is_pinned: bool = False
    is_locked: bool = False
    tags: list[str] = field(default_factory=list)
    author: Optional[dict] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author or {"id": self.author_id},
            "forum": self.forum_id,
            "viewCount": self.view_count,
            "replyCount": self.reply_count,
            "postCount": self.post_count,
            "lastReplyAt": _iso(self.last_reply_at),
            "lastReplyBy": self.last_reply_by,
            "isPinned": self.is_pinned,
            "isLocked": self.is_locked,
            "tags": list(self.tags or []),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class PostRecord:
    id: str
    content: str
    author_id: str
    thread_id: str
    author: Optional[dict] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "author": self.author or {"id": self.author_id},
            "thread": self.thread_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class GuideRecord:
    id: str
    title: str
    slug: str
    content: str
    path: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def as_dict(self, *, include_content: bool = True) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "path": self.path,
        }
        if include_content:
            data["content"] = self.content
            data["createdAt"] = _iso(self.created_at)
            data["updatedAt"] = _iso(self.updated_at)
        return data


@dataclass
class DirectoryEntryRecord:
    id: str
    name: str
    category: str
    description: str
    contact_info: dict = field(default_factory=dict)
    is_recommended: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "contactInfo": dict(self.contact_info or {}),
            "isRecommended": self.is_recommended,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class EventRecord:
    id: str
    title: str
    description: str
    date: datetime
    time: str
    location: dict
    organizer_id: str
    attendee_ids: list[str] = field(default_factory=list)
    max_attendees: Optional[int] = None
    tags: list[str] = field(default_factory=list)
    category: str = "meetup"
    target_audience: str = "all"
    is_public: bool = True
    is_cancelled: bool = False
    cover_image: Optional[str] = None
    organizer: Optional[dict] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_full(self) -> bool:
        return bool(self.max_attendees) and len(self.attendee_ids) >= self.max_attendees

    @property
    def is_past(self) -> bool:
        return to_utc(self.date) < utcnow()

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "date": _iso(self.date),
            "time": self.time,
            "location": dict(self.location or {}),
            "organizer": self.organizer or {"id": self.organizer_id},
            "attendees": list(self.attendee_ids),
            "attendeeCount": len(self.attendee_ids),
            "maxAttendees": self.max_attendees,
            "tags": list(self.tags or []),
            "category": self.category,
            "targetAudience": self.target_audience,
            "isPublic": self.is_public,
            "isCancelled": self.is_cancelled,
            "isFull": self.is_full,
            "isPast": self.is_past,
            "coverImage": self.cover_image,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class ChatMessageRecord:
    id: str
    room_id: str
    sender_id: str
    content: str
    type: str = "text"
    reply_to: Optional[str] = None
    edited: bool = False
    deleted: bool = False
    read_by: list[dict] = field(default_factory=list)
    sender: Optional[dict] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_read_by(self, user_id: str) -> bool:
        return any(read["userId"] == user_id for read in self.read_by)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "roomId": self.room_id,
            "sender": self.sender or {"id": self.sender_id},
            "content": self.content,
            "type": self.type,
            "replyTo": self.reply_to,
            "edited": self.edited,
            "readBy": [dict(read) for read in self.read_by],
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# ---------- Interface ----------


class DbClient(Protocol):
    """Interface for database access."""

    def ping(self) -> bool:
        ...

    def table_names(self) -> list[str]:
        ...

    # Users
    def create_user(self, **fields: Any) -> UserRecord:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    def update_user(self, user_id: str, **fields: Any) -> Optional[UserRecord]:
        ...

    def set_user_online(self, user_id: str, online: bool) -> Optional[UserRecord]:
        ...

    def list_users_seen_since(self, since: datetime) -> list[UserRecord]:
        ...

    # Budget
    def create_budget_entry(self, **fields: Any) -> BudgetEntryRecord:
        ...

    def get_budget_entry(self, entry_id: str) -> Optional[BudgetEntryRecord]:
        ...

    def list_budget_entries(self, user_id: str, **filters: Any) -> tuple[list[BudgetEntryRecord], int]:
        ...

    def update_budget_entry(self, entry_id: str, **fields: Any) -> Optional[BudgetEntryRecord]:
        ...

    def delete_budget_entry(self, entry_id: str) -> bool:
        ...

    def budget_totals(
        self,
        user_id: str,
        *,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> dict[str, dict]:
        ...

    # Checklist
    def list_checklist_items(self, user_id: str) -> list[ChecklistItemRecord]:
        ...

    def ensure_checklist_items(self, user_id: str, item_keys: Iterable[str]) -> list[ChecklistItemRecord]:
        ...

    def get_checklist_item(self, user_id: str, item_key: str) -> Optional[ChecklistItemRecord]:
        ...

    def set_checklist_item(self, user_id: str, item_key: str, is_completed: bool) -> ChecklistItemRecord:
        ...

    # Forums
    def create_forum(self, **fields: Any) -> ForumRecord:
        ...

    def get_forum(self, forum_id: str) -> Optional[ForumRecord]:
        ...

    def list_forums(
        self,
        *,
        include_inactive: bool = False,
        updated_since: Optional[datetime] = None,
        order_by_activity: bool = False,
    ) -> list[ForumRecord]:
        ...

    def set_forum_active(self, forum_id: str, active: bool) -> Optional[ForumRecord]:
        ...

    def delete_forum(self, forum_id: str) -> bool:
        ...

    def increment_forum_views(self, forum_id: str) -> None:
        ...

    def create_thread(self, *, forum_id: str, author_id: str, title: str, content: str) -> ThreadRecord:
        ...

    def get_thread(self, thread_id: str) -> Optional[ThreadRecord]:
        ...

    def list_threads(self, forum_id: str, *, limit: Optional[int] = None, skip: int = 0) -> list[ThreadRecord]:
        ...

    def delete_thread(self, thread_id: str) -> bool:
        ...

    def create_post(self, *, thread_id: str, author_id: str, content: str) -> PostRecord:
        ...

    def list_posts(self, thread_id: str) -> list[PostRecord]:
        ...

    # Content
    def create_guide(self, **fields: Any) -> GuideRecord:
        ...

    def list_guides(self, path: Optional[str] = None) -> list[GuideRecord]:
        ...

    def get_guide_by_slug(self, slug: str) -> Optional[GuideRecord]:
        ...

    def create_directory_entry(self, **fields: Any) -> DirectoryEntryRecord:
        ...

    def list_directory_entries(
        self,
        *,
        category: Optional[str] = None,
        is_recommended: Optional[bool] = None,
        name: Optional[str] = None,
    ) -> list[DirectoryEntryRecord]:
        ...

    # Events
    def create_event(self, **fields: Any) -> EventRecord:
        ...

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        ...

    def list_events(self, **filters: Any) -> tuple[list[EventRecord], int]:
        ...

    def update_event(self, event_id: str, **fields: Any) -> Optional[EventRecord]:
        ...

    def delete_event(self, event_id: str) -> bool:
        ...

    def add_event_attendee(self, event_id: str, user_id: str) -> Optional[EventRecord]:
        """Raises ConflictError when the event has no seats left."""
        ...

    def remove_event_attendee(self, event_id: str, user_id: str) -> Optional[EventRecord]:
        ...

    # Chat
    def create_message(
        self,
        *,
        room_id: str,
        sender_id: str,
        content: str,
        type: str = "text",
        reply_to: Optional[str] = None,
    ) -> ChatMessageRecord:
        ...

    def list_room_messages(
        self, room_id: str, *, limit: int = 50, before: Optional[datetime] = None
    ) -> list[ChatMessageRecord]:
        ...

    def mark_messages_read(self, message_ids: Iterable[str], user_id: str) -> int:
        ...

    def count_unread_messages(self, room_id: str, user_id: str) -> int:
        ...

    def last_room_message(self, room_id: str) -> Optional[ChatMessageRecord]:
        ...

    def search_messages(self, query: str, *, room_id: Optional[str] = None, limit: int = 50) -> list[ChatMessageRecord]:
        ...

    def list_messages_since(
        self, since: datetime, *, room_ids: Optional[list[str]] = None, limit: int = 50
    ) -> list[ChatMessageRecord]:
        ...


# ---------- ORM rows ----------

Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default=Role.USER.value)
    professional_path = Column(String, nullable=True, index=True)
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    onboarding_step = Column(String, nullable=False, default=OnboardingStep.SELECT_PATH.value)
    pinned_modules = Column(JSON, nullable=False, default=list)
    is_online = Column(Boolean, nullable=False, default=False, index=True)
    last_seen = Column(DateTime(timezone=True), nullable=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    bio = Column(String(500), nullable=True)
    location = Column(String, nullable=False, default="Alicante, Spain")
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class BudgetEntryRow(Base):
    __tablename__ = "budget_entries"
    __table_args__ = (
        Index("ix_budget_user_date", "user_id", "entry_date"),
        Index("ix_budget_user_type_date", "user_id", "type", "entry_date"),
        Index("ix_budget_user_category_date", "user_id", "category", "entry_date"),
    )

    id = Column(String(32), primary_key=True)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    category = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    description = Column(Text, nullable=False, default="")
    entry_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ChecklistItemRow(Base):
    __tablename__ = "checklist_items"
    __table_args__ = (UniqueConstraint("user_id", "item_key", name="uq_checklist_user_item"),)

    id = Column(String(32), primary_key=True)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    item_key = Column(String, nullable=False, index=True)
    is_completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ForumRow(Base):
    __tablename__ = "forums"
    __table_args__ = (
        Index("ix_forums_active_created", "is_active", "created_at"),
        Index("ix_forums_active_activity", "is_active", "last_activity"),
    )

    id = Column(String(32), primary_key=True)
    title = Column(String(100), nullable=False)
    # Lower-cased title; enforces case-insensitive uniqueness.
    title_key = Column(String(100), nullable=False, unique=True)
    description = Column(String(500), nullable=False)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    tags = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    last_activity = Column(DateTime(timezone=True), nullable=False)
    view_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ThreadRow(Base):
    __tablename__ = "threads"
    __table_args__ = (
        Index("ix_threads_forum_pinned_updated", "forum_id", "is_pinned", "updated_at"),
        Index("ix_threads_author_created", "author_id", "created_at"),
    )

    id = Column(String(32), primary_key=True)
    title = Column(String(200), nullable=False)
    author_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    forum_id = Column(String(32), ForeignKey("forums.id"), nullable=False, index=True)
    view_count = Column(Integer, nullable=False, default=0)
    reply_count = Column(Integer, nullable=False, default=0)
    last_reply_at = Column(DateTime(timezone=True), nullable=True)
    last_reply_by = Column(String(32), nullable=True)
    is_pinned = Column(Boolean, nullable=False, default=False)
    is_locked = Column(Boolean, nullable=False, default=False)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class PostRow(Base):
    __tablename__ = "posts"

    id = Column(String(32), primary_key=True)
    content = Column(Text, nullable=False)
    author_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    thread_id = Column(String(32), ForeignKey("threads.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class GuideRow(Base):
    __tablename__ = "guides"

    id = Column(String(32), primary_key=True)
    title = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    content = Column(Text, nullable=False)
    path = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class DirectoryEntryRow(Base):
    __tablename__ = "service_directory_entries"

    id = Column(String(32), primary_key=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    contact_info = Column(JSON, nullable=False, default=dict)
    is_recommended = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class EventRow(Base):
    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_date_category_audience", "date", "category", "target_audience"),
    )

    id = Column(String(32), primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)
    time = Column(String(5), nullable=False)
    location = Column(JSON, nullable=False, default=dict)
    organizer_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    max_attendees = Column(Integer, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    category = Column(String, nullable=False, default="meetup")
    target_audience = Column(String, nullable=False, default="all")
    is_public = Column(Boolean, nullable=False, default=True)
    is_cancelled = Column(Boolean, nullable=False, default=False)
    cover_image = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class EventAttendeeRow(Base):
    __tablename__ = "event_attendees"

    event_id = Column(String(32), ForeignKey("events.id"), primary_key=True)
    user_id = Column(String(32), ForeignKey("users.id"), primary_key=True, index=True)
    joined_at = Column(DateTime(timezone=True), nullable=False)


class ChatMessageRow(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_room_created", "room_id", "created_at"),
        Index("ix_chat_sender_created", "sender_id", "created_at"),
    )

    id = Column(String(32), primary_key=True)
    room_id = Column(String(32), ForeignKey("forums.id"), nullable=False)
    sender_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    content = Column(String(1000), nullable=False)
    type = Column(String, nullable=False, default="text")
    reply_to = Column(String(32), nullable=True)
    edited = Column(Boolean, nullable=False, default=False)
    deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ChatReadRow(Base):
    __tablename__ = "chat_message_reads"

    message_id = Column(String(32), ForeignKey("chat_messages.id"), primary_key=True)
    user_id = Column(String(32), ForeignKey("users.id"), primary_key=True)
    read_at = Column(DateTime(timezone=True), nullable=False)


BUDGET_SORT_COLUMNS = {
    "entryDate": BudgetEntryRow.entry_date,
    "amount": BudgetEntryRow.amount,
    "category": BudgetEntryRow.category,
    "createdAt": BudgetEntryRow.created_at,
}

_USER_FIELDS = {
    "name",
    "email",
    "password_hash",
    "role",
    "professional_path",
    "onboarding_completed",
    "onboarding_step",
    "pinned_modules",
    "last_login",
    "bio",
    "location",
}
_BUDGET_FIELDS = {"type", "category", "amount", "description", "entry_date"}
_EVENT_FIELDS = {
    "title",
    "description",
    "date",
    "time",
    "location",
    "max_attendees",
    "tags",
    "category",
    "target_audience",
    "is_public",
    "is_cancelled",
    "cover_image",
}


# ---------- Client ----------


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g.,
    Postgres in production or SQLite for tests).
    """

    def __init__(self, database_url: str, **engine_kwargs: Any):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        if not database_url.startswith("sqlite"):
            engine_kwargs.setdefault("pool_pre_ping", True)
            engine_kwargs.setdefault("pool_recycle", 1800)
        self.engine = create_engine(database_url, future=True, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self.create_schema()

    def create_schema(self) -> None:
        """Create any missing tables and indexes."""
        Base.metadata.create_all(self.engine)

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def table_names(self) -> list[str]:
        return sorted(inspect(self.engine).get_table_names())

    # ----- helpers -----

    def _user_summaries(self, session: Session, user_ids: Iterable[str]) -> dict[str, dict]:
        ids = {uid for uid in user_ids if uid}
        if not ids:
            return {}
        rows = session.execute(select(UserRow).where(UserRow.id.in_(ids))).scalars()
        return {row.id: {"id": row.id, "name": row.name, "email": row.email} for row in rows}

    def _to_user_record(self, row: UserRow) -> UserRecord:
        return UserRecord(
            id=row.id,
            name=row.name,
            email=row.email,
            password_hash=row.password_hash,
            role=row.role,
            professional_path=row.professional_path,
            onboarding_completed=row.onboarding_completed,
            onboarding_step=row.onboarding_step,
            pinned_modules=list(row.pinned_modules or []),
            is_online=row.is_online,
            last_seen=to_utc(row.last_seen),
            last_login=to_utc(row.last_login),
            bio=row.bio,
            location=row.location,
            created_at=to_utc(row.created_at),
            updated_at=to_utc(row.updated_at),
        )

    def _to_budget_record(self, row: BudgetEntryRow) -> BudgetEntryRecord:
        return BudgetEntryRecord(
            id=row.id,
            user_id=row.user_id,
            type=row.type,
            category=row.category,
            amount=row.amount,
            description=row.description or "",
            entry_date=to_utc(row.entry_date),
            created_at=to_utc(row.created_at),
            updated_at=to_utc(row.updated_at),
        )

    def _to_checklist_record(self, row: ChecklistItemRow) -> ChecklistItemRecord:
        return ChecklistItemRecord(
            id=row.id,
            user_id=row.user_id,
            item_key=row.item_key,
            is_completed=row.is_completed,
            created_at=to_utc(row.created_at),
            updated_at=to_utc(row.updated_at),
        )

    def _to_forum_record(self, session: Session, row: ForumRow) -> ForumRecord:
        thread_ids = session.execute(
            select(ThreadRow.id)
            .where(ThreadRow.forum_id == row.id)
            .order_by(ThreadRow.created_at.asc())
        ).scalars().all()
        owner = self._user_summaries(session, [row.user_id]).get(row.user_id)
        return ForumRecord(
            id=row.id,
            title=row.title,
            description=row.description,
            user_id=row.user_id,
            tags=list(row.tags or []),
            is_active=row.is_active,
            last_activity=to_utc(row.last_activity),
            view_count=row.view_count,
            thread_ids=list(thread_ids),
            owner=owner,
            created_at=to_utc(row.created_at),
            updated_at=to_utc(row.updated_at),
        )

    def _to_thread_records(self, session: Session, rows: list[ThreadRow]) -> list[ThreadRecord]:
        if not rows:
            return []
        ids = [row.id for row in rows]
        counts = dict(
            session.execute(
                select(PostRow.thread_id, func.count(PostRow.id))
                .where(PostRow.thread_id.in_(ids))
                .group_by(PostRow.thread_id)
            ).all()
        )
        authors = self._user_summaries(session, [row.author_id for row in rows])
        return [
            ThreadRecord(
                id=row.id,
                title=row.title,
                author_id=row.author_id,
                forum_id=row.forum_id,
                view_count=row.view_count,
                reply_count=row.reply_count,
                post_count=counts.get(row.id, 0),
                last_reply_at=to_utc(row.last_reply_at),
                last_reply_by=row.last_reply_by,
                is_pinned=row.is_pinned,
                is_locked=row.is_locked,
                tags=list(row.tags or []),
                author=authors.get(row.author_id),
                created_at=to_utc(row.created_at),
                updated_at=to_utc(row.updated_at),
            )
            for row in rows
        ]

    def _to_post_records(self, session: Session, rows: list[PostRow]) -> list[PostRecord]:
        authors = self._user_summaries(session, [row.author_id for row in rows])
        return [
            PostRecord(
                id=row.id,
                content=row.content,
                author_id=row.author_id,
                thread_id=row.thread_id,
                author=authors.get(row.author_id),
                created_at=to_utc(row.created_at),
                updated_at=to_utc(row.updated_at),
            )
            for row in rows
        ]

    def _to_guide_record(self, row: GuideRow) -> GuideRecord:
        return GuideRecord(
            id=row.id,
            title=row.title,
            slug=row.slug,
            content=row.content,
            path=row.path,
            created_at=to_utc(row.created_at),
            updated_at=to_utc(row.updated_at),
        )

    def _to_directory_record(self, row: DirectoryEntryRow) -> DirectoryEntryRecord:
        return DirectoryEntryRecord(
            id=row.id,
            name=row.name,
            category=row.category,
            description=row.description,
            contact_info=dict(row.contact_info or {}),
            is_recommended=row.is_recommended,
            created_at=to_utc(row.created_at),
            updated_at=to_utc(row.updated_at),
        )

    def _to_event_records(self, session: Session, rows: list[EventRow]) -> list[EventRecord]:
        if not rows:
            return []
        ids = [row.id for row in rows]
        attendees: dict[str, list[str]] = {event_id: [] for event_id in ids}
        for event_id, user_id in session.execute(
            select(EventAttendeeRow.event_id, EventAttendeeRow.user_id)
            .where(EventAttendeeRow.event_id.in_(ids))
            .order_by(EventAttendeeRow.joined_at.asc())
        ).all():
            attendees[event_id].append(user_id)
        organizers = self._user_summaries(session, [row.organizer_id for row in rows])
        return [
            EventRecord(
                id=row.id,
                title=row.title,
                description=row.description,
                date=to_utc(row.date),
                time=row.time,
                location=dict(row.location or {}),
                organizer_id=row.organizer_id,
                attendee_ids=attendees[row.id],
                max_attendees=row.max_attendees,
                tags=list(row.tags or []),
                category=row.category,
                target_audience=row.target_audience,
                is_public=row.is_public,
                is_cancelled=row.is_cancelled,
                cover_image=row.cover_image,
                organizer=organizers.get(row.organizer_id),
                created_at=to_utc(row.created_at),
                updated_at=to_utc(row.updated_at),
            )
            for row in rows
        ]

    def _to_message_records(self, session: Session, rows: list[ChatMessageRow]) -> list[ChatMessageRecord]:
        if not rows:
            return []
        ids = [row.id for row in rows]
        reads: dict[str, list[dict]] = {message_id: [] for message_id in ids}
        for message_id, user_id, read_at in session.execute(
            select(ChatReadRow.message_id, ChatReadRow.user_id, ChatReadRow.read_at)
            .where(ChatReadRow.message_id.in_(ids))
            .order_by(ChatReadRow.read_at.asc())
        ).all():
            reads[message_id].append({"userId": user_id, "readAt": _iso(read_at)})
        senders = self._user_summaries(session, [row.sender_id for row in rows])
        return [
            ChatMessageRecord(
                id=row.id,
                room_id=row.room_id,
                sender_id=row.sender_id,
                content=row.content,
                type=row.type,
                reply_to=row.reply_to,
                edited=row.edited,
                deleted=row.deleted,
                read_by=reads[row.id],
                sender=senders.get(row.sender_id),
                created_at=to_utc(row.created_at),
                updated_at=to_utc(row.updated_at),
            )
            for row in rows
        ]

    # ----- users -----

    def create_user(self, **fields: Any) -> UserRecord:
        now = utcnow()
        values = {key: value for key, value in fields.items() if key in _USER_FIELDS}
        values["email"] = values["email"].strip().lower()
        values.setdefault("pinned_modules", [])
        with self.Session() as session:
            row = UserRow(id=_new_id(), created_at=now, updated_at=now, last_seen=now, **values)
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("User with that email already exists") from exc
            return self._to_user_record(row)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email.strip().lower())
            ).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def update_user(self, user_id: str, **fields: Any) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            for key, value in fields.items():
                if key not in _USER_FIELDS:
                    continue
                if key == "email":
                    value = value.strip().lower()
                setattr(row, key, value)
            row.updated_at = utcnow()
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("User with that email already exists") from exc
            return self._to_user_record(row)

    def set_user_online(self, user_id: str, online: bool) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            row.is_online = online
            row.last_seen = utcnow()
            session.commit()
            return self._to_user_record(row)

    def list_users_seen_since(self, since: datetime) -> list[UserRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(UserRow).where(UserRow.last_seen > to_utc(since))
            ).scalars().all()
            return [self._to_user_record(row) for row in rows]

    # ----- budget -----

    def create_budget_entry(self, **fields: Any) -> BudgetEntryRecord:
        now = utcnow()
        with self.Session() as session:
            row = BudgetEntryRow(
                id=_new_id(),
                user_id=fields["user_id"],
                type=fields["type"],
                category=fields["category"],
                amount=float(fields["amount"]),
                description=fields.get("description") or "",
                entry_date=to_utc(fields.get("entry_date")) or now,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            return self._to_budget_record(row)

    def get_budget_entry(self, entry_id: str) -> Optional[BudgetEntryRecord]:
        with self.Session() as session:
            row = session.get(BudgetEntryRow, entry_id)
            return self._to_budget_record(row) if row else None

    def list_budget_entries(
        self,
        user_id: str,
        *,
        type: Optional[str] = None,
        category: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 50,
        skip: int = 0,
        sort_by: str = "entryDate",
        sort_order: str = "desc",
    ) -> tuple[list[BudgetEntryRecord], int]:
        conditions = [BudgetEntryRow.user_id == user_id]
        if type:
            conditions.append(BudgetEntryRow.type == type)
        if category:
            conditions.append(BudgetEntryRow.category.ilike(f"%{category}%"))
        if start_date:
            conditions.append(BudgetEntryRow.entry_date >= to_utc(start_date))
        if end_date:
            conditions.append(BudgetEntryRow.entry_date <= to_utc(end_date))
        column = BUDGET_SORT_COLUMNS.get(sort_by, BudgetEntryRow.entry_date)
        ordering = column.asc() if sort_order == "asc" else column.desc()
        with self.Session() as session:
            total = session.execute(
                select(func.count(BudgetEntryRow.id)).where(*conditions)
            ).scalar_one()
            rows = session.execute(
                select(BudgetEntryRow)
                .where(*conditions)
                .order_by(ordering, BudgetEntryRow.created_at.desc())
                .offset(skip)
                .limit(limit)
            ).scalars().all()
            return [self._to_budget_record(row) for row in rows], total

    def update_budget_entry(self, entry_id: str, **fields: Any) -> Optional[BudgetEntryRecord]:
        with self.Session() as session:
            row = session.get(BudgetEntryRow, entry_id)
            if not row:
                return None
            for key, value in fields.items():
                if key not in _BUDGET_FIELDS or value is None:
                    continue
                if key == "entry_date":
                    value = to_utc(value)
                elif key == "amount":
                    value = float(value)
                setattr(row, key, value)
            row.updated_at = utcnow()
            session.commit()
            return self._to_budget_record(row)

    def delete_budget_entry(self, entry_id: str) -> bool:
        with self.Session() as session:
            result = session.execute(delete(BudgetEntryRow).where(BudgetEntryRow.id == entry_id))
            session.commit()
            return bool(result.rowcount)

    def budget_totals(
        self,
        user_id: str,
        *,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> dict[str, dict]:
        """Per-type total, count and categories for a user's entries."""
        conditions = [BudgetEntryRow.user_id == user_id]
        if since:
            conditions.append(BudgetEntryRow.entry_date >= to_utc(since))
        if until:
            conditions.append(BudgetEntryRow.entry_date <= to_utc(until))
        totals: dict[str, dict] = {}
        with self.Session() as session:
            for entry_type, total, count in session.execute(
                select(BudgetEntryRow.type, func.sum(BudgetEntryRow.amount), func.count(BudgetEntryRow.id))
                .where(*conditions)
                .group_by(BudgetEntryRow.type)
            ).all():
                totals[entry_type] = {"total": float(total or 0), "count": count, "categories": []}
            for entry_type, category in session.execute(
                select(BudgetEntryRow.type, BudgetEntryRow.category)
                .where(*conditions)
                .distinct()
                .order_by(BudgetEntryRow.category)
            ).all():
                totals[entry_type]["categories"].append(category)
        return totals

    # ----- checklist -----

    def list_checklist_items(self, user_id: str) -> list[ChecklistItemRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(ChecklistItemRow)
                .where(ChecklistItemRow.user_id == user_id)
                .order_by(ChecklistItemRow.created_at.asc(), ChecklistItemRow.item_key.asc())
            ).scalars().all()
            return [self._to_checklist_record(row) for row in rows]

    def ensure_checklist_items(self, user_id: str, item_keys: Iterable[str]) -> list[ChecklistItemRecord]:
        """Insert any missing (user, key) pairs; existing items are left as they are."""
        now = utcnow()
        with self.Session() as session:
            existing = set(
                session.execute(
                    select(ChecklistItemRow.item_key).where(ChecklistItemRow.user_id == user_id)
                ).scalars()
            )
            for key in item_keys:
                if key in existing:
                    continue
                existing.add(key)
                session.add(
                    ChecklistItemRow(
                        id=_new_id(),
                        user_id=user_id,
                        item_key=key,
                        is_completed=False,
                        created_at=now,
                        updated_at=now,
                    )
                )
            try:
                session.commit()
            except IntegrityError:
                # A concurrent request seeded the same keys first.
                session.rollback()
        return self.list_checklist_items(user_id)

    def get_checklist_item(self, user_id: str, item_key: str) -> Optional[ChecklistItemRecord]:
        with self.Session() as session:
            row = session.execute(
                select(ChecklistItemRow).where(
                    ChecklistItemRow.user_id == user_id,
                    ChecklistItemRow.item_key == item_key,
                )
            ).scalar_one_or_none()
            return self._to_checklist_record(row) if row else None

    def set_checklist_item(self, user_id: str, item_key: str, is_completed: bool) -> ChecklistItemRecord:
        now = utcnow()
        with self.Session() as session:
            row = session.execute(
                select(ChecklistItemRow).where(
                    ChecklistItemRow.user_id == user_id,
                    ChecklistItemRow.item_key == item_key,
                )
            ).scalar_one_or_none()
            if row is None:
                row = ChecklistItemRow(
                    id=_new_id(),
                    user_id=user_id,
                    item_key=item_key,
                    created_at=now,
                )
                session.add(row)
            row.is_completed = is_completed
            row.updated_at = now
            session.commit()
            return self._to_checklist_record(row)

    # ----- forums -----

    def create_forum(self, **fields: Any) -> ForumRecord:
        now = utcnow()
        title = fields["title"].strip()
        with self.Session() as session:
            row = ForumRow(
                id=_new_id(),
                title=title,
                title_key=title.lower(),
                description=fields["description"].strip(),
                user_id=fields["user_id"],
                tags=[tag.strip().lower() for tag in fields.get("tags") or [] if tag.strip()],
                is_active=True,
                last_activity=now,
                view_count=0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("A forum with this title already exists") from exc
            return self._to_forum_record(session, row)

    def get_forum(self, forum_id: str) -> Optional[ForumRecord]:
        with self.Session() as session:
            row = session.get(ForumRow, forum_id)
            return self._to_forum_record(session, row) if row else None

    def list_forums(
        self,
        *,
        include_inactive: bool = False,
        updated_since: Optional[datetime] = None,
        order_by_activity: bool = False,
    ) -> list[ForumRecord]:
        stmt = select(ForumRow)
        if not include_inactive:
            stmt = stmt.where(ForumRow.is_active.is_(True))
        if updated_since:
            stmt = stmt.where(ForumRow.updated_at > to_utc(updated_since))
        if order_by_activity:
            stmt = stmt.order_by(ForumRow.last_activity.desc())
        else:
            stmt = stmt.order_by(ForumRow.created_at.desc())
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [self._to_forum_record(session, row) for row in rows]

    def set_forum_active(self, forum_id: str, active: bool) -> Optional[ForumRecord]:
        with self.Session() as session:
            row = session.get(ForumRow, forum_id)
            if not row:
                return None
            row.is_active = active
            row.updated_at = utcnow()
            session.commit()
            return self._to_forum_record(session, row)

    def delete_forum(self, forum_id: str) -> bool:
        """Delete a forum with its threads, posts and chat history."""
        with self.Session() as session:
            if not session.get(ForumRow, forum_id):
                return False
            thread_ids = select(ThreadRow.id).where(ThreadRow.forum_id == forum_id)
            message_ids = select(ChatMessageRow.id).where(ChatMessageRow.room_id == forum_id)
            session.execute(delete(PostRow).where(PostRow.thread_id.in_(thread_ids)))
            session.execute(delete(ThreadRow).where(ThreadRow.forum_id == forum_id))
            session.execute(delete(ChatReadRow).where(ChatReadRow.message_id.in_(message_ids)))
            session.execute(delete(ChatMessageRow).where(ChatMessageRow.room_id == forum_id))
            session.execute(delete(ForumRow).where(ForumRow.id == forum_id))
            session.commit()
            return True

    def increment_forum_views(self, forum_id: str) -> None:
        with self.Session() as session:
            row = session.get(ForumRow, forum_id)
            if row:
                row.view_count += 1
                session.commit()

    def _touch_forum(self, session: Session, forum_id: str, now: datetime) -> None:
        forum = session.get(ForumRow, forum_id)
        if forum:
            forum.last_activity = now
            forum.updated_at = now

    def create_thread(self, *, forum_id: str, author_id: str, title: str, content: str) -> ThreadRecord:
        """Create a thread together with its opening post."""
        now = utcnow()
        with self.Session() as session:
            row = ThreadRow(
                id=_new_id(),
                title=title.strip(),
                author_id=author_id,
                forum_id=forum_id,
                view_count=0,
                reply_count=0,
                last_reply_at=now,
                last_reply_by=author_id,
                is_pinned=False,
                is_locked=False,
                tags=[],
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            session.add(
                PostRow(
                    id=_new_id(),
                    content=content.strip(),
                    author_id=author_id,
                    thread_id=row.id,
                    created_at=now,
                    updated_at=now,
                )
            )
            self._touch_forum(session, forum_id, now)
            session.commit()
            return self._to_thread_records(session, [row])[0]

    def get_thread(self, thread_id: str) -> Optional[ThreadRecord]:
        with self.Session() as session:
            row = session.get(ThreadRow, thread_id)
            if not row:
                return None
            return self._to_thread_records(session, [row])[0]

    def list_threads(self, forum_id: str, *, limit: Optional[int] = None, skip: int = 0) -> list[ThreadRecord]:
        stmt = (
            select(ThreadRow)
            .where(ThreadRow.forum_id == forum_id)
            .order_by(ThreadRow.is_pinned.desc(), ThreadRow.created_at.desc())
            .offset(skip)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return self._to_thread_records(session, list(rows))

    def delete_thread(self, thread_id: str) -> bool:
        with self.Session() as session:
            row = session.get(ThreadRow, thread_id)
            if not row:
                return False
            session.execute(delete(PostRow).where(PostRow.thread_id == thread_id))
            self._touch_forum(session, row.forum_id, utcnow())
            session.delete(row)
            session.commit()
            return True

    def create_post(self, *, thread_id: str, author_id: str, content: str) -> PostRecord:
        now = utcnow()
        with self.Session() as session:
            thread = session.get(ThreadRow, thread_id)
            row = PostRow(
                id=_new_id(),
                content=content.strip(),
                author_id=author_id,
                thread_id=thread_id,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            if thread:
                thread.reply_count += 1
                thread.last_reply_at = now
                thread.last_reply_by = author_id
                thread.updated_at = now
                self._touch_forum(session, thread.forum_id, now)
            session.commit()
            return self._to_post_records(session, [row])[0]

    def list_posts(self, thread_id: str) -> list[PostRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(PostRow)
                .where(PostRow.thread_id == thread_id)
                .order_by(PostRow.created_at.asc())
            ).scalars().all()
            return self._to_post_records(session, list(rows))

    # ----- content -----

    def create_guide(self, **fields: Any) -> GuideRecord:
        now = utcnow()
        with self.Session() as session:
            row = GuideRow(
                id=_new_id(),
                title=fields["title"].strip(),
                slug=fields["slug"].strip(),
                content=fields["content"],
                path=fields["path"],
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("A guide with this slug already exists") from exc
            return self._to_guide_record(row)

    def list_guides(self, path: Optional[str] = None) -> list[GuideRecord]:
        stmt = select(GuideRow).order_by(GuideRow.title.asc())
        if path:
            stmt = stmt.where(GuideRow.path == path)
        with self.Session() as session:
            return [self._to_guide_record(row) for row in session.execute(stmt).scalars()]

    def get_guide_by_slug(self, slug: str) -> Optional[GuideRecord]:
        with self.Session() as session:
            row = session.execute(select(GuideRow).where(GuideRow.slug == slug)).scalar_one_or_none()
            return self._to_guide_record(row) if row else None

    def create_directory_entry(self, **fields: Any) -> DirectoryEntryRecord:
        now = utcnow()
        with self.Session() as session:
            row = DirectoryEntryRow(
                id=_new_id(),
                name=fields["name"].strip(),
                category=fields["category"],
                description=fields["description"],
                contact_info={k: v for k, v in (fields.get("contact_info") or {}).items() if v},
                is_recommended=bool(fields.get("is_recommended", False)),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            return self._to_directory_record(row)

    def list_directory_entries(
        self,
        *,
        category: Optional[str] = None,
        is_recommended: Optional[bool] = None,
        name: Optional[str] = None,
    ) -> list[DirectoryEntryRecord]:
        stmt = select(DirectoryEntryRow).order_by(
            DirectoryEntryRow.is_recommended.desc(), DirectoryEntryRow.name.asc()
        )
        if category:
            stmt = stmt.where(DirectoryEntryRow.category == category)
        if is_recommended is not None:
            stmt = stmt.where(DirectoryEntryRow.is_recommended.is_(is_recommended))
        if name:
            stmt = stmt.where(DirectoryEntryRow.name.ilike(f"%{name}%"))
        with self.Session() as session:
            return [self._to_directory_record(row) for row in session.execute(stmt).scalars()]

    # ----- events -----

    def create_event(self, **fields: Any) -> EventRecord:
        """Create an event; the organizer is registered as first attendee."""
        now = utcnow()
        values = {key: value for key, value in fields.items() if key in _EVENT_FIELDS}
        values["date"] = to_utc(values["date"])
        with self.Session() as session:
            row = EventRow(
                id=_new_id(),
                organizer_id=fields["organizer_id"],
                created_at=now,
                updated_at=now,
                **values,
            )
            session.add(row)
            session.flush()
            session.add(EventAttendeeRow(event_id=row.id, user_id=row.organizer_id, joined_at=now))
            session.commit()
            return self._to_event_records(session, [row])[0]

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        with self.Session() as session:
            row = session.get(EventRow, event_id)
            return self._to_event_records(session, [row])[0] if row else None

    def list_events(
        self,
        *,
        category: Optional[str] = None,
        target_audience: Optional[str] = None,
        upcoming: bool = False,
        organizer_id: Optional[str] = None,
        attendee_id: Optional[str] = None,
        involving_user_id: Optional[str] = None,
        search: Optional[str] = None,
        include_cancelled: bool = False,
        limit: int = 20,
        skip: int = 0,
    ) -> tuple[list[EventRecord], int]:
        conditions = []
        if not include_cancelled:
            conditions.append(EventRow.is_cancelled.is_(False))
        if category and category != "all":
            conditions.append(EventRow.category == category)
        if target_audience and target_audience != "all":
            conditions.append(EventRow.target_audience.in_([target_audience, "all", "both"]))
        if upcoming:
            conditions.append(EventRow.date >= utcnow())
        if organizer_id:
            conditions.append(EventRow.organizer_id == organizer_id)
        attending = select(EventAttendeeRow.event_id)
        if attendee_id:
            conditions.append(EventRow.id.in_(attending.where(EventAttendeeRow.user_id == attendee_id)))
        if involving_user_id:
            conditions.append(
                or_(
                    EventRow.organizer_id == involving_user_id,
                    EventRow.id.in_(attending.where(EventAttendeeRow.user_id == involving_user_id)),
                )
            )
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    EventRow.title.ilike(pattern),
                    EventRow.description.ilike(pattern),
                    cast(EventRow.tags, String).ilike(f'%"{search.lower()}"%'),
                )
            )
        with self.Session() as session:
            total = session.execute(select(func.count(EventRow.id)).where(*conditions)).scalar_one()
            rows = session.execute(
                select(EventRow)
                .where(*conditions)
                .order_by(EventRow.date.asc())
                .offset(skip)
                .limit(limit)
            ).scalars().all()
            return self._to_event_records(session, list(rows)), total

    def update_event(self, event_id: str, **fields: Any) -> Optional[EventRecord]:
        with self.Session() as session:
            row = session.get(EventRow, event_id)
            if not row:
                return None
            for key, value in fields.items():
                if key not in _EVENT_FIELDS:
                    continue
                if key == "date":
                    value = to_utc(value)
                setattr(row, key, value)
            row.updated_at = utcnow()
            session.commit()
            return self._to_event_records(session, [row])[0]

    def delete_event(self, event_id: str) -> bool:
        with self.Session() as session:
            if not session.get(EventRow, event_id):
                return False
            session.execute(delete(EventAttendeeRow).where(EventAttendeeRow.event_id == event_id))
            session.execute(delete(EventRow).where(EventRow.id == event_id))
            session.commit()
            return True

    def add_event_attendee(self, event_id: str, user_id: str) -> Optional[EventRecord]:
        with self.Session() as session:
            # Row lock serializes concurrent joins on databases that support it.
            row = session.execute(
                select(EventRow).where(EventRow.id == event_id).with_for_update()
            ).scalar_one_or_none()
            if not row:
                return None
            if not session.get(EventAttendeeRow, (event_id, user_id)):
                attending = session.execute(
                    select(func.count())
                    .select_from(EventAttendeeRow)
                    .where(EventAttendeeRow.event_id == event_id)
                ).scalar_one()
                if row.max_attendees and attending >= row.max_attendees:
                    raise ConflictError("Event is full")
                session.add(EventAttendeeRow(event_id=event_id, user_id=user_id, joined_at=utcnow()))
                row.updated_at = utcnow()
                session.commit()
            return self._to_event_records(session, [row])[0]

    def remove_event_attendee(self, event_id: str, user_id: str) -> Optional[EventRecord]:
        with self.Session() as session:
            row = session.get(EventRow, event_id)
            if not row:
                return None
            session.execute(
                delete(EventAttendeeRow).where(
                    EventAttendeeRow.event_id == event_id,
                    EventAttendeeRow.user_id == user_id,
                )
            )
            row.updated_at = utcnow()
            session.commit()
            return self._to_event_records(session, [row])[0]

    # ----- chat -----

    def create_message(
        self,
        *,
        room_id: str,
        sender_id: str,
        content: str,
        type: str = "text",
        reply_to: Optional[str] = None,
    ) -> ChatMessageRecord:
        now = utcnow()
        with self.Session() as session:
            row = ChatMessageRow(
                id=_new_id(),
                room_id=room_id,
                sender_id=sender_id,
                content=content.strip(),
                type=type,
                reply_to=reply_to,
                edited=False,
                deleted=False,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            session.add(ChatReadRow(message_id=row.id, user_id=sender_id, read_at=now))
            forum = session.get(ForumRow, room_id)
            if forum:
                forum.last_activity = now
            session.commit()
            return self._to_message_records(session, [row])[0]

    def list_room_messages(
        self, room_id: str, *, limit: int = 50, before: Optional[datetime] = None
    ) -> list[ChatMessageRecord]:
        """Newest ``limit`` messages of a room, returned oldest first."""
        conditions = [ChatMessageRow.room_id == room_id, ChatMessageRow.deleted.is_(False)]
        if before:
            conditions.append(ChatMessageRow.created_at < to_utc(before))
        with self.Session() as session:
            rows = session.execute(
                select(ChatMessageRow)
                .where(*conditions)
                .order_by(ChatMessageRow.created_at.desc())
                .limit(limit)
            ).scalars().all()
            return self._to_message_records(session, list(reversed(rows)))

    def mark_messages_read(self, message_ids: Iterable[str], user_id: str) -> int:
        ids = list(message_ids)
        if not ids:
            return 0
        now = utcnow()
        with self.Session() as session:
            already = set(
                session.execute(
                    select(ChatReadRow.message_id).where(
                        ChatReadRow.message_id.in_(ids), ChatReadRow.user_id == user_id
                    )
                ).scalars()
            )
            missing = [message_id for message_id in ids if message_id not in already]
            for message_id in missing:
                session.add(ChatReadRow(message_id=message_id, user_id=user_id, read_at=now))
            session.commit()
            return len(missing)

    def count_unread_messages(self, room_id: str, user_id: str) -> int:
        read_ids = select(ChatReadRow.message_id).where(ChatReadRow.user_id == user_id)
        with self.Session() as session:
            return session.execute(
                select(func.count(ChatMessageRow.id)).where(
                    ChatMessageRow.room_id == room_id,
                    ChatMessageRow.deleted.is_(False),
                    ChatMessageRow.sender_id != user_id,
                    ChatMessageRow.id.not_in(read_ids),
                )
            ).scalar_one()

    def last_room_message(self, room_id: str) -> Optional[ChatMessageRecord]:
        with self.Session() as session:
            row = session.execute(
                select(ChatMessageRow)
                .where(ChatMessageRow.room_id == room_id, ChatMessageRow.deleted.is_(False))
                .order_by(ChatMessageRow.created_at.desc())
                .limit(1)
            ).scalar_one_or_none()
            return self._to_message_records(session, [row])[0] if row else None

    def search_messages(self, query: str, *, room_id: Optional[str] = None, limit: int = 50) -> list[ChatMessageRecord]:
        conditions = [ChatMessageRow.content.ilike(f"%{query}%"), ChatMessageRow.deleted.is_(False)]
        if room_id:
            conditions.append(ChatMessageRow.room_id == room_id)
        with self.Session() as session:
            rows = session.execute(
                select(ChatMessageRow)
                .where(*conditions)
                .order_by(ChatMessageRow.created_at.desc())
                .limit(limit)
            ).scalars().all()
            return self._to_message_records(session, list(rows))

    def list_messages_since(
        self, since: datetime, *, room_ids: Optional[list[str]] = None, limit: int = 50
    ) -> list[ChatMessageRecord]:
        conditions = [ChatMessageRow.created_at > to_utc(since), ChatMessageRow.deleted.is_(False)]
        if room_ids is not None:
            conditions.append(ChatMessageRow.room_id.in_(room_ids))
        with self.Session() as session:
            rows = session.execute(
                select(ChatMessageRow)
                .where(*conditions)
                .order_by(ChatMessageRow.created_at.desc())
                .limit(limit)
            ).scalars().all()
            return self._to_message_records(session, list(rows))


class InMemoryDbClient(SqlDbClient):
    """SQLite in-memory database for development and tests."""

    def __init__(self):
        super().__init__(
            "sqlite+pysqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)
