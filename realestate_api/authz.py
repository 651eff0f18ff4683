"""
realestate_api/authz.py

Role-based authorization for the listings backend.

Single source of truth for who may do what. Pure Python logic - no FastAPI
imports, no database access.

Roles: buyer < agent < admin
"""

from __future__ import annotations

import logging

from realestate_api.errors import ForbiddenError
from realestate_api.models import Listing, UserRole

logger = logging.getLogger(__name__)


# ============================================================================
# Role Hierarchy
# ============================================================================

ROLE_HIERARCHY = {
    "admin": 3,
    "agent": 2,
    "buyer": 1,
}


def _role_name(role) -> str:
    return str(getattr(role, "value", role)).lower()


def role_at_least(user_role: str, required_role: str) -> bool:
    """
    Check if user_role meets the required role level.

    Example:
        role_at_least("admin", "agent") -> True
        role_at_least("buyer", "agent") -> False
    """
    user_level = ROLE_HIERARCHY.get(_role_name(user_role), 0)
    required_level = ROLE_HIERARCHY.get(_role_name(required_role), 0)
    return user_level >= required_level


# ============================================================================
# Listing ownership
# ============================================================================

def can_modify_listing(user_id: str, role: UserRole, listing: Listing) -> bool:
    """Owner-or-admin rule for listing mutations."""
    if role == UserRole.admin:
        return True
    return listing.agent_id is not None and listing.agent_id == user_id


def ensure_can_modify_listing(user_id: str, role: UserRole, listing: Listing) -> None:
    """
    Raise ForbiddenError unless the requester owns the listing or is an admin.
    The caller has already checked the id format and that the listing exists.
    """
    if not can_modify_listing(user_id, role, listing):
        logger.warning(
            "[AUTHZ] Listing mutation denied: listing_id=%s, user_id=%s, role=%s",
            listing.id,
            user_id,
            role.value,
        )
        raise ForbiddenError("Not authorized")
