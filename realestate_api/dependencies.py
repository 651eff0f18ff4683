"""
realestate_api/dependencies.py

Reusable FastAPI dependencies for role enforcement and store access.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Callable

from fastapi import Depends, Request

from realestate_api.auth_context import AuthContext, get_db, get_settings, require_auth_context
from realestate_api.authz import role_at_least
from realestate_api.config import Settings
from realestate_api.errors import ForbiddenError
from realestate_api.query_builder import ListingQueryBuilder
from realestate_api.store import ListingStore, UserStore

logger = logging.getLogger(__name__)


def require_role(required_role: str) -> Callable:
    """
    FastAPI dependency factory for role authorization.

    Roles are hierarchical (buyer < agent < admin), so require_role("agent")
    also admits admins.

    Usage in routes:
        @router.post("", dependencies=[Depends(require_role("agent"))])
        def create_listing(ctx: AuthContext = Depends(require_auth_context)):
            ...

    Raises:
        UnauthorizedError(401): No or invalid bearer token (from require_auth_context)
        ForbiddenError(403): Role below required_role
    """
    def _check_role(ctx: AuthContext = Depends(require_auth_context)) -> AuthContext:
        if not role_at_least(ctx.role, required_role):
            logger.info(
                "[AUTHZ] Role denied: required=%s, role=%s, user_id=%s",
                required_role,
                ctx.role.value,
                ctx.user_id,
            )
            raise ForbiddenError(f"User role {ctx.role.value} is not authorized to access this route")
        return ctx

    return _check_role


def get_listing_store(conn: sqlite3.Connection = Depends(get_db)) -> ListingStore:
    return ListingStore(conn)


def get_user_store(conn: sqlite3.Connection = Depends(get_db)) -> UserStore:
    return UserStore(conn)


def get_asset_store(request: Request):
    return request.app.state.asset_store


def get_query_builder(settings: Settings = Depends(get_settings)) -> ListingQueryBuilder:
    return ListingQueryBuilder.from_settings(settings)
