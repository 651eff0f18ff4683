"""
realestate_api/routes_admin.py

Admin moderation endpoints. Every route requires the admin role.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from realestate_api.auth_context import AuthContext, require_auth_context
from realestate_api.dependencies import get_asset_store, get_listing_store, get_user_store, require_role
from realestate_api.errors import NotFoundError
from realestate_api.models import parse_id
from realestate_api.routes_properties import delete_listing, load_listing
from realestate_api.store import ListingStore, UserStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_role("admin"))],
)


@router.get("/users")
def admin_list_users(users: UserStore = Depends(get_user_store)) -> Dict[str, Any]:
    items = [u.public_dict() for u in users.list_all()]
    return {"success": True, "count": len(items), "users": items}


@router.delete("/users/{user_id}")
def admin_delete_user(
    user_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    """Delete a user. Their listings stay in place (agent becomes null on output)."""
    user_id = parse_id(user_id, message="Invalid user ID")
    if not users.delete(user_id):
        raise NotFoundError("User not found")
    logger.info("[ADMIN] User deleted: user_id=%s by admin_id=%s", user_id, ctx.user_id)
    return {"success": True, "message": "User deleted"}


@router.get("/properties")
def admin_list_properties(store: ListingStore = Depends(get_listing_store)) -> Dict[str, Any]:
    items = [listing.to_wire() for listing in store.list_all()]
    return {"success": True, "count": len(items), "properties": items}


@router.delete("/properties/{listing_id}")
def admin_delete_property(
    listing_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    store: ListingStore = Depends(get_listing_store),
    assets=Depends(get_asset_store),
) -> Dict[str, Any]:
    listing = load_listing(store, listing_id)
    delete_listing(store, assets, listing)
    logger.info("[ADMIN] Listing deleted: listing_id=%s by admin_id=%s", listing.id, ctx.user_id)
    return {"success": True, "message": "Property deleted"}
