"""
realestate_api/schemas.py

Pydantic request schemas for auth, profile and listing endpoints.
Validation failures are reported per field (see validation_messages).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from realestate_api.errors import ValidationError
from realestate_api.models import PropertyType


# ========================================================================
# AUTH SCHEMAS
# ========================================================================

class RegisterRequest(BaseModel):
    """Self-registration. Only 'agent' is honoured as a role; anything else becomes 'buyer'."""
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=6, max_length=128)
    phone: Optional[str] = Field(None, max_length=40)
    role: Optional[str] = None
    avatar: Optional[str] = Field(None, description="Base64 data URI or image URL")

    @field_validator("name", mode="before")
    @classmethod
    def trim_name(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email address")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=254)
    phone: Optional[str] = Field(None, max_length=40)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v and "@" not in v:
            raise ValueError("Invalid email address")
        return v


class StatusUpdateRequest(BaseModel):
    status: Optional[str] = None


# ========================================================================
# LISTING SCHEMAS
# ========================================================================

FIELD_MESSAGES: Dict[str, str] = {
    "title": "Title is required",
    "description": "Description is required",
    "price": "Price must be a number",
    "location": "Location is required",
    "type": "Invalid property type",
    "bedrooms": "Bedrooms must be a non-negative integer",
    "bathrooms": "Bathrooms must be a non-negative integer",
    "squareFootage": "Square footage must be a non-negative integer",
    "lat": "Latitude must be between -90 and 90",
    "lng": "Longitude must be between -180 and 180",
    "status": "Invalid status value",
}


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


class ListingForm(BaseModel):
    """Listing fields as submitted in the create/update multipart form."""
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: float = Field(..., ge=0, allow_inf_nan=False)
    location: str = Field(..., min_length=1)
    type: PropertyType
    amenities: List[str] = Field(default_factory=list)
    bedrooms: int = Field(0, ge=0)
    bathrooms: int = Field(0, ge=0)
    square_footage: int = Field(0, ge=0, alias="squareFootage")
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator("title", "description", "location", mode="before")
    @classmethod
    def trim_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("price", "lat", "lng", mode="before")
    @classmethod
    def blank_number(cls, v):
        return _blank_to_none(v)

    @field_validator("bedrooms", "bathrooms", "square_footage", mode="before")
    @classmethod
    def blank_count(cls, v):
        v = _blank_to_none(v)
        return 0 if v is None else v

    @field_validator("amenities", mode="before")
    @classmethod
    def split_amenities(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        tags: List[str] = []
        for tag in v:
            tag = str(tag).strip()
            if tag and tag not in tags:
                tags.append(tag)
        return tags

    @property
    def coordinates(self) -> Optional[List[float]]:
        """[lng, lat] when both were given, else None."""
        if self.lat is None or self.lng is None:
            return None
        return [self.lng, self.lat]

    @classmethod
    def from_form(cls, data: Dict[str, Any]) -> "ListingForm":
        try:
            return cls.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError("Validation failed", errors=validation_messages(exc.errors()))


def validation_messages(errors: List[Dict[str, Any]]) -> Dict[str, str]:
    """Collapse pydantic/FastAPI error dicts into {field: message}."""
    messages: Dict[str, str] = {}
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        name = loc[0] if loc else "request"
        if name in messages:
            continue
        messages[name] = FIELD_MESSAGES.get(name) or err.get("msg", "Invalid value")
    return messages
