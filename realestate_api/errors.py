"""
realestate_api/errors.py

Error taxonomy for the listings backend.

Every error carries the HTTP status it maps to. Handlers raise these and the
exception handlers registered in main.py render them as
{"success": false, "message": ...}.
"""

from __future__ import annotations

from typing import Dict, Optional


class MarketplaceError(Exception):
    """Base exception for the listings backend."""

    status_code = 500
    default_message = "Server Error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MarketplaceError):
    """Missing or malformed request field."""

    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class InvalidFilterError(MarketplaceError):
    """Unparseable filter value (strict filter mode only)."""

    status_code = 400
    default_message = "Invalid filter value"


class InvalidIdentifierError(MarketplaceError):
    """Identifier is not a valid reference format."""

    status_code = 400
    default_message = "Invalid property ID"


class UnauthorizedError(MarketplaceError):
    """Missing or invalid credential."""

    status_code = 401
    default_message = "Not authorized"


class ForbiddenError(MarketplaceError):
    """Authenticated but not allowed."""

    status_code = 403
    default_message = "Not authorized"


class NotFoundError(MarketplaceError):
    status_code = 404
    default_message = "Not found"


class UpstreamServiceError(MarketplaceError):
    """Asset store or database failure. Details are logged, never returned."""

    status_code = 500
    default_message = "Server Error"
