"""
realestate_api/routes_auth.py

Registration, login and profile endpoints.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from realestate_api.assets import upload_avatar
from realestate_api.auth_context import (
    AuthContext,
    create_access_token,
    get_settings,
    hash_password,
    require_auth_context,
    verify_password,
)
from realestate_api.config import Settings
from realestate_api.dependencies import get_asset_store, get_user_store
from realestate_api.errors import NotFoundError, UnauthorizedError, ValidationError
from realestate_api.models import User, UserRole, new_id
from realestate_api.schemas import LoginRequest, ProfileUpdateRequest, RegisterRequest
from realestate_api.store import UserStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(
    req: RegisterRequest,
    users: UserStore = Depends(get_user_store),
    assets=Depends(get_asset_store),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    if users.get_by_email(req.email) is not None:
        logger.info("[REGISTER] Email already registered")
        raise ValidationError("User already exists")

    # Self-registration can never grant admin
    role = UserRole.agent if (req.role or "").strip().lower() == "agent" else UserRole.buyer

    user = User(
        id=new_id(),
        name=req.name,
        email=req.email,
        password_hash=hash_password(req.password),
        phone=req.phone,
        role=role,
        avatar=upload_avatar(assets, req.avatar),
    )
    users.create(user)
    logger.info("[REGISTER] User created: user_id=%s, role=%s", user.id, role.value)

    return {**user.public_dict(), "token": create_access_token(user.id, settings)}


@router.post("/login")
def login(
    req: LoginRequest,
    users: UserStore = Depends(get_user_store),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    user = users.get_by_email(req.email)
    if user is None or not verify_password(req.password, user.password_hash):
        logger.info("[LOGIN] Invalid credentials")
        raise UnauthorizedError("Invalid credentials")

    logger.info("[LOGIN] Login succeeded: user_id=%s", user.id)
    return {**user.public_dict(), "token": create_access_token(user.id, settings)}


@router.get("/profile")
def get_profile(
    ctx: AuthContext = Depends(require_auth_context),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    user = users.get(ctx.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user.public_dict()


@router.put("/profile")
def update_profile(
    req: ProfileUpdateRequest,
    ctx: AuthContext = Depends(require_auth_context),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    user = users.get(ctx.user_id)
    if user is None:
        raise NotFoundError("User not found")

    if req.email and req.email != user.email and users.get_by_email(req.email) is not None:
        raise ValidationError("Email already in use")

    updated = users.update_profile(
        user.id,
        name=(req.name or "").strip() or user.name,
        email=req.email or user.email,
        phone=req.phone or user.phone,
    )
    return updated.public_dict()  # type: ignore[union-attr]
