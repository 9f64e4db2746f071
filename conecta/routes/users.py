"""
Account routes: registration, login, profile and onboarding.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from conecta.config import Settings
from conecta.constants import OnboardingStep, checklist_keys_for
from conecta.db import DbClient, UserRecord, utcnow
from conecta.dependencies import (
    get_current_user,
    get_db_client,
    get_hub,
    get_settings_dep,
    get_token_service,
)
from conecta.errors import AuthenticationError, ConflictError
from conecta.realtime import RealtimeHub
from conecta.schemas import (
    LoginRequest,
    MessageResponse,
    OnboardingRequest,
    RegisterRequest,
    UpdateProfileRequest,
)
from conecta.security import TokenService, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()


def _auth_payload(user: UserRecord, tokens: TokenService) -> dict:
    return {"user": user.as_dict(), "token": tokens.create_access_token(user.id)}


def seed_checklist(db: DbClient, hub: RealtimeHub, user: UserRecord) -> None:
    items = db.ensure_checklist_items(user.id, checklist_keys_for(user.professional_path))
    hub.publish(
        "checklist_update",
        {"type": "create", "items": [item.as_dict() for item in items]},
        user_id=user.id,
    )


@router.post("/register", status_code=201)
def register(
    payload: RegisterRequest,
    db: DbClient = Depends(get_db_client),
    hub: RealtimeHub = Depends(get_hub),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings_dep),
):
    if db.get_user_by_email(payload.email):
        raise ConflictError("User with that email already exists")
    path = payload.professional_path.value if payload.professional_path else None
    user = db.create_user(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password, rounds=settings.bcrypt_rounds),
        professional_path=path,
        onboarding_completed=bool(path),
        onboarding_step=(OnboardingStep.COMPLETED if path else OnboardingStep.SELECT_PATH).value,
    )
    logger.info("Registered user %s", user.id)
    if path:
        seed_checklist(db, hub, user)
    return _auth_payload(user, tokens)


@router.post("/login")
def login(
    payload: LoginRequest,
    db: DbClient = Depends(get_db_client),
    tokens: TokenService = Depends(get_token_service),
):
    user = db.get_user_by_email(payload.email)
    if not user or not verify_password(payload.password, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    user = db.update_user(user.id, last_login=utcnow())
    return _auth_payload(user, tokens)


@router.get("/profile")
@router.get("/me")
def profile(user: UserRecord = Depends(get_current_user)):
    return user.as_dict()


@router.put("/profile")
def update_profile(
    payload: UpdateProfileRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings_dep),
):
    changes = payload.model_dump(exclude_none=True, exclude={"password"})
    if "email" in changes and changes["email"].lower() != user.email:
        existing = db.get_user_by_email(changes["email"])
        if existing and existing.id != user.id:
            raise ConflictError("User with that email already exists")
    if payload.password:
        changes["password_hash"] = hash_password(payload.password, rounds=settings.bcrypt_rounds)
    return db.update_user(user.id, **changes).as_dict()


@router.put("/onboarding")
def update_onboarding(
    payload: OnboardingRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    hub: RealtimeHub = Depends(get_hub),
):
    previous_path = user.professional_path
    updated = db.update_user(
        user.id,
        professional_path=payload.professional_path.value,
        pinned_modules=payload.pinned_modules or [],
        onboarding_completed=True,
        onboarding_step=OnboardingStep.COMPLETED.value,
    )
    if previous_path != updated.professional_path:
        seed_checklist(db, hub, updated)
    return updated.as_dict()


@router.post("/logout", response_model=MessageResponse, response_model_exclude_none=True)
def logout(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    hub: RealtimeHub = Depends(get_hub),
):
    updated = db.set_user_online(user.id, False)
    hub.publish(
        "user_status_update",
        {"userId": user.id, "isOnline": False, "lastSeen": updated.as_dict()["lastSeen"]},
    )
    return MessageResponse(message="Logged out")
