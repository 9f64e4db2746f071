"""
Community events: listing, organizer management and attendance.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from conecta.db import DbClient, EventRecord, UserRecord, to_utc, utcnow
from conecta.dependencies import get_current_user, get_db_client, get_hub, get_optional_user
from conecta.errors import AuthorizationError, NotFoundError, ValidationError
from conecta.realtime import RealtimeHub
from conecta.schemas import EventCreate, EventUpdate, MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_event(db: DbClient, event_id: str) -> EventRecord:
    event = db.get_event(event_id)
    if event is None:
        raise NotFoundError("Event not found")
    return event


def _organized_event(db: DbClient, event_id: str, user: UserRecord, action: str) -> EventRecord:
    event = _get_event(db, event_id)
    if event.organizer_id != user.id:
        raise AuthorizationError(f"Only the organizer can {action} this event")
    return event


@router.get("")
def list_events(
    category: Optional[str] = Query(default=None),
    target_audience: Optional[str] = Query(default=None, alias="targetAudience"),
    upcoming: bool = Query(default=False),
    my_events: bool = Query(default=False, alias="myEvents"),
    attending: bool = Query(default=False),
    search: Optional[str] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    user: Optional[UserRecord] = Depends(get_optional_user),
    db: DbClient = Depends(get_db_client),
):
    events, total = db.list_events(
        category=category,
        target_audience=target_audience,
        upcoming=upcoming,
        organizer_id=user.id if my_events and user else None,
        attendee_id=user.id if attending and user else None,
        search=search,
        limit=limit,
        skip=skip,
    )
    return {
        "events": [event.as_dict() for event in events],
        "pagination": {
            "total": total,
            "limit": limit,
            "skip": skip,
            "hasMore": skip + len(events) < total,
        },
    }


@router.get("/{event_id}")
def get_event(event_id: str, db: DbClient = Depends(get_db_client)):
    return _get_event(db, event_id).as_dict()


@router.post("", status_code=201)
def create_event(
    payload: EventCreate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    hub: RealtimeHub = Depends(get_hub),
):
    if to_utc(payload.date) < utcnow():
        raise ValidationError("Event date must be in the future")
    event = db.create_event(
        organizer_id=user.id,
        title=payload.title,
        description=payload.description,
        date=payload.date,
        time=payload.time,
        location=payload.location.model_dump(exclude_none=True),
        max_attendees=payload.max_attendees,
        tags=[tag.lower() for tag in payload.tags],
        category=payload.category.value,
        target_audience=payload.target_audience.value,
        is_public=payload.is_public,
        cover_image=payload.cover_image,
    )
    logger.info("User %s created event %s", user.id, event.id)
    hub.publish("event_update", {"type": "create", "event": event.as_dict()})
    return event.as_dict()


@router.put("/{event_id}")
def update_event(
    event_id: str,
    payload: EventUpdate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    hub: RealtimeHub = Depends(get_hub),
):
    event = _organized_event(db, event_id, user, "update")
    if event.is_past:
        raise ValidationError("Cannot update past events")
    if payload.date is not None and to_utc(payload.date) < utcnow():
        raise ValidationError("Event date must be in the future")
    changes = payload.model_dump(exclude_none=True)
    for key in ("category", "target_audience"):
        if key in changes:
            changes[key] = getattr(payload, key).value
    if "tags" in changes:
        changes["tags"] = [tag.lower() for tag in changes["tags"]]
    if payload.max_attendees is not None and payload.max_attendees < len(event.attendee_ids):
        raise ValidationError("maxAttendees cannot be lower than the current attendee count")
    updated = db.update_event(event_id, **changes)
    hub.publish("event_update", {"type": "update", "event": updated.as_dict()})
    return updated.as_dict()


@router.delete("/{event_id}", response_model=MessageResponse)
def delete_event(
    event_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    hub: RealtimeHub = Depends(get_hub),
):
    event = _organized_event(db, event_id, user, "delete")
    if any(attendee != user.id for attendee in event.attendee_ids):
        raise ValidationError(
            "Cannot delete event with registered attendees. Cancel the event instead."
        )
    db.delete_event(event_id)
    logger.info("User %s deleted event %s", user.id, event_id)
    hub.publish("event_update", {"type": "delete", "eventId": event_id})
    return MessageResponse(message="Event deleted successfully", id=event_id)


@router.post("/{event_id}/join")
def join_event(
    event_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    hub: RealtimeHub = Depends(get_hub),
):
    event = _get_event(db, event_id)
    if event.is_cancelled:
        raise ValidationError("Cannot join a cancelled event")
    if event.is_past:
        raise ValidationError("Cannot join past events")
    if user.id in event.attendee_ids:
        raise ValidationError("Already attending this event")
    if event.is_full:
        raise ValidationError("Event is full")
    updated = db.add_event_attendee(event_id, user.id)
    hub.publish("event_update", {"type": "update", "event": updated.as_dict()})
    return updated.as_dict()


@router.post("/{event_id}/leave")
def leave_event(
    event_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    hub: RealtimeHub = Depends(get_hub),
):
    event = _get_event(db, event_id)
    if event.organizer_id == user.id:
        raise ValidationError("Organizer cannot leave their own event")
    if user.id not in event.attendee_ids:
        raise ValidationError("Not attending this event")
    updated = db.remove_event_attendee(event_id, user.id)
    hub.publish("event_update", {"type": "update", "event": updated.as_dict()})
    return updated.as_dict()


@router.post("/{event_id}/cancel")
def cancel_event(
    event_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    hub: RealtimeHub = Depends(get_hub),
):
    _organized_event(db, event_id, user, "cancel")
    event = db.update_event(event_id, is_cancelled=True)
    logger.info("User %s cancelled event %s", user.id, event_id)
    hub.publish("event_update", {"type": "update", "event": event.as_dict()})
    return {"message": "Event cancelled successfully", "event": event.as_dict()}
