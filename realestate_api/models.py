from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from enum import Enum
import uuid

from realestate_api.errors import InvalidIdentifierError


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# Enums
class UserRole(str, Enum):
    buyer = "buyer"
    agent = "agent"
    admin = "admin"


class PropertyType(str, Enum):
    house = "house"
    apartment = "apartment"
    condo = "condo"
    land = "land"


class ListingStatus(str, Enum):
    active = "active"
    sold = "sold"
    pending = "pending"
    rented = "rented"


# Models
class Image(BaseModel):
    url: str
    public_id: str


class AgentRef(BaseModel):
    """Weak back-reference to the owning agent (lookup only)."""
    id: str
    name: str
    email: str


class GeoPoint(BaseModel):
    type: str = "Point"
    coordinates: List[float] = Field(default_factory=lambda: [0.0, 0.0])  # [lng, lat]


class User(BaseModel):
    id: str
    name: str
    email: str
    password_hash: str
    phone: Optional[str] = None
    role: UserRole = UserRole.buyer
    avatar: Optional[Image] = None
    created_at: str = Field(default_factory=utcnow_iso)

    def public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role.value,
            "avatar": self.avatar.model_dump() if self.avatar else None,
            "createdAt": self.created_at,
        }


class Listing(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: str
    price: float
    location: str
    type: PropertyType
    amenities: List[str] = Field(default_factory=list)
    images: List[Image] = Field(default_factory=list)
    agent_id: Optional[str] = Field(None, exclude=True)
    agent: Optional[AgentRef] = None
    created_at: str = Field(default_factory=utcnow_iso, alias="createdAt")
    bedrooms: int = 0
    bathrooms: int = 0
    square_footage: int = Field(0, alias="squareFootage")
    status: ListingStatus = ListingStatus.active
    views: int = 0
    location_coordinates: GeoPoint = Field(default_factory=GeoPoint, alias="locationCoordinates")

    @property
    def lng(self) -> float:
        return self.location_coordinates.coordinates[0]

    @property
    def lat(self) -> float:
        return self.location_coordinates.coordinates[1]

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def new_id() -> str:
    return str(uuid.uuid4())


def parse_id(raw: str, message: str = "Invalid property ID") -> str:
    """Return the canonical form of an identifier or raise InvalidIdentifierError."""
    try:
        return str(uuid.UUID(str(raw).strip()))
    except (ValueError, AttributeError, TypeError):
        raise InvalidIdentifierError(message)
