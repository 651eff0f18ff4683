"""
realestate_api/routes_properties.py

Listing endpoints: search, agent-scoped search, analytics, locations, CRUD.

Security guarantees:
- Public: search, locations, single fetch
- Agent (or admin) role required for create, own listings and analytics
- Update, status change and delete are owner-or-admin
- agent_id always comes from the auth context, never from the client
- Malformed ids -> 400, missing -> 404, not owner -> 403 (checked in that order)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from realestate_api.assets import LISTING_FOLDER, safe_image_ext
from realestate_api.auth_context import AuthContext, get_settings
from realestate_api.authz import ensure_can_modify_listing
from realestate_api.config import Settings
from realestate_api.dependencies import (
    get_asset_store,
    get_listing_store,
    get_query_builder,
    require_role,
)
from realestate_api.errors import NotFoundError, ValidationError
from realestate_api.models import (
    GeoPoint,
    Image,
    Listing,
    ListingStatus,
    PropertyType,
    new_id,
    parse_id,
)
from realestate_api.query_builder import ListingQueryBuilder
from realestate_api.schemas import FIELD_MESSAGES, ListingForm, StatusUpdateRequest
from realestate_api.store import ListingStore

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/api/properties",
    tags=["properties"],
)


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def check_enum_param(enum_cls, raw: Optional[str], field_name: str) -> None:
    """Reject a non-blank query value outside the enum. Blank means not filtered."""
    value = (raw or "").strip()
    if not value:
        return
    try:
        enum_cls(value)
    except ValueError:
        message = FIELD_MESSAGES[field_name]
        raise ValidationError(message, errors={field_name: message})


def _real_files(files: Optional[List[UploadFile]]) -> List[UploadFile]:
    # Browsers submit an empty part when no file was chosen
    return [f for f in (files or []) if f is not None and f.filename]


def upload_images(assets, files: List[UploadFile], max_images: int) -> List[Image]:
    """Validate every file first, then upload them in order."""
    if len(files) > max_images:
        raise ValidationError(
            f"A maximum of {max_images} images is allowed",
            errors={"images": f"At most {max_images} images"},
        )
    for f in files:
        safe_image_ext(f.filename or "", f.content_type or "")

    images = []
    for f in files:
        raw = f.file.read()
        images.append(assets.upload(raw, f.filename or "", LISTING_FOLDER, content_type=f.content_type or ""))
    return images


def destroy_images(assets, images: List[Image]) -> None:
    for img in images:
        assets.destroy(img.public_id)


def load_listing(store: ListingStore, raw_id: str) -> Listing:
    listing_id = parse_id(raw_id)
    listing = store.get(listing_id)
    if listing is None:
        raise NotFoundError("Property not found")
    return listing


def delete_listing(store: ListingStore, assets, listing: Listing) -> None:
    """Remove remote images, then the listing row. Not transactional."""
    destroy_images(assets, listing.images)
    store.delete(listing.id)
    logger.info("[PROPERTIES] Deleted listing_id=%s images=%s", listing.id, len(listing.images))


def _form_payload(
    title: Optional[str],
    description: Optional[str],
    price: Optional[str],
    location: Optional[str],
    property_type: Optional[str],
    amenities: Optional[str],
    bedrooms: Optional[str],
    bathrooms: Optional[str],
    square_footage: Optional[str],
    lat: Optional[str],
    lng: Optional[str],
) -> Dict[str, Any]:
    payload = {
        "title": title,
        "description": description,
        "price": price,
        "location": location,
        "type": property_type,
        "amenities": amenities,
        "bedrooms": bedrooms,
        "bathrooms": bathrooms,
        "squareFootage": square_footage,
        "lat": lat,
        "lng": lng,
    }
    return {k: v for k, v in payload.items() if v is not None}


# ---------------------------------------------------------
# Search
# ---------------------------------------------------------
@router.get("")
def list_properties(
    request: Request,
    property_type: Optional[str] = Query(None, alias="type"),
    store: ListingStore = Depends(get_listing_store),
    builder: ListingQueryBuilder = Depends(get_query_builder),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    Public listing search.

    Filters: location, priceMin, priceMax, type, amenities, bedrooms, bathrooms,
    squareFootageMin, squareFootageMax, search, lat + lng + radius.
    Paging: page, limit, sort, order.

    Filters are read from the raw query string by the builder; a blank value
    counts as absent.
    """
    check_enum_param(PropertyType, property_type, "type")
    query, page = builder.build(request.query_params, active_only=settings.public_active_only)
    result = store.search(query, page)
    logger.debug("[PROPERTIES] search conditions=%s total=%s", len(query.conditions), result.total)
    return result.to_wire()


@router.get("/user")
def list_own_properties(
    request: Request,
    property_type: Optional[str] = Query(None, alias="type"),
    status: Optional[str] = Query(None),
    ctx: AuthContext = Depends(require_role("agent")),
    store: ListingStore = Depends(get_listing_store),
    builder: ListingQueryBuilder = Depends(get_query_builder),
) -> Dict[str, Any]:
    """Same filters as the public search plus `status`, scoped to the requester's listings."""
    check_enum_param(PropertyType, property_type, "type")
    check_enum_param(ListingStatus, status, "status")
    query, page = builder.build(request.query_params, agent_id=ctx.user_id, allow_status=True)
    return store.search(query, page).to_wire()


@router.get("/analytics")
def property_analytics(
    ctx: AuthContext = Depends(require_role("agent")),
    store: ListingStore = Depends(get_listing_store),
) -> Dict[str, Any]:
    return {"success": True, "analytics": store.analytics(ctx.user_id).to_wire()}


@router.get("/locations")
def list_locations(
    search: Optional[str] = Query(None, max_length=200),
    store: ListingStore = Depends(get_listing_store),
) -> Dict[str, Any]:
    term = search.strip() if search else None
    return {"success": True, "locations": store.distinct_locations(term or None)}


# ---------------------------------------------------------
# Single listing
# ---------------------------------------------------------
@router.get("/{listing_id}")
def get_property(
    listing_id: str,
    store: ListingStore = Depends(get_listing_store),
) -> Dict[str, Any]:
    """Fetch one listing and count the view (atomic +1 before responding)."""
    listing_id = parse_id(listing_id)
    if not store.increment_views(listing_id):
        raise NotFoundError("Property not found")
    listing = store.get(listing_id)
    if listing is None:
        # Deleted between the increment and the read
        raise NotFoundError("Property not found")
    return {"success": True, "property": listing.to_wire()}


@router.post("", status_code=201)
def create_property(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    property_type: Optional[str] = Form(None, alias="type"),
    amenities: Optional[str] = Form(None),
    bedrooms: Optional[str] = Form(None),
    bathrooms: Optional[str] = Form(None),
    square_footage: Optional[str] = Form(None, alias="squareFootage"),
    lat: Optional[str] = Form(None),
    lng: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    ctx: AuthContext = Depends(require_role("agent")),
    store: ListingStore = Depends(get_listing_store),
    assets=Depends(get_asset_store),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    form = ListingForm.from_form(
        _form_payload(
            title, description, price, location, property_type, amenities,
            bedrooms, bathrooms, square_footage, lat, lng,
        )
    )
    uploaded = upload_images(assets, _real_files(images), settings.max_images)

    listing = Listing(
        id=new_id(),
        title=form.title,
        description=form.description,
        price=form.price,
        location=form.location,
        type=form.type,
        amenities=form.amenities,
        images=uploaded,
        agent_id=ctx.user_id,
        bedrooms=form.bedrooms,
        bathrooms=form.bathrooms,
        square_footage=form.square_footage,
        location_coordinates=GeoPoint(coordinates=form.coordinates or [0.0, 0.0]),
    )
    created = store.insert(listing)
    logger.info("[PROPERTIES] Created listing_id=%s agent_id=%s images=%s", created.id, ctx.user_id, len(uploaded))
    return {"success": True, "property": created.to_wire()}


@router.put("/{listing_id}")
def update_property(
    listing_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    property_type: Optional[str] = Form(None, alias="type"),
    amenities: Optional[str] = Form(None),
    bedrooms: Optional[str] = Form(None),
    bathrooms: Optional[str] = Form(None),
    square_footage: Optional[str] = Form(None, alias="squareFootage"),
    lat: Optional[str] = Form(None),
    lng: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    ctx: AuthContext = Depends(require_role("agent")),
    store: ListingStore = Depends(get_listing_store),
    assets=Depends(get_asset_store),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    Replace a listing's fields. New images, when uploaded, replace the old
    ones (old ones are destroyed in the asset store). Coordinates change only
    when both lat and lng are sent.
    """
    listing = load_listing(store, listing_id)
    ensure_can_modify_listing(ctx.user_id, ctx.role, listing)

    form = ListingForm.from_form(
        _form_payload(
            title, description, price, location, property_type, amenities,
            bedrooms, bathrooms, square_footage, lat, lng,
        )
    )

    new_files = _real_files(images)
    new_images = listing.images
    if new_files:
        new_images = upload_images(assets, new_files, settings.max_images)
        destroy_images(assets, listing.images)

    updated = listing.model_copy(
        update={
            "title": form.title,
            "description": form.description,
            "price": form.price,
            "location": form.location,
            "type": form.type,
            "amenities": form.amenities,
            "images": new_images,
            "bedrooms": form.bedrooms,
            "bathrooms": form.bathrooms,
            "square_footage": form.square_footage,
            "location_coordinates": (
                GeoPoint(coordinates=form.coordinates) if form.coordinates else listing.location_coordinates
            ),
        }
    )
    saved = store.replace(updated)
    logger.info("[PROPERTIES] Updated listing_id=%s by user_id=%s", saved.id, ctx.user_id)
    return {"success": True, "property": saved.to_wire()}


@router.patch("/{listing_id}/status")
def update_property_status(
    listing_id: str,
    body: StatusUpdateRequest,
    ctx: AuthContext = Depends(require_role("agent")),
    store: ListingStore = Depends(get_listing_store),
) -> Dict[str, Any]:
    listing_id = parse_id(listing_id)
    try:
        status = ListingStatus(body.status)
    except ValueError:
        raise ValidationError("Invalid status value", errors={"status": "Invalid status value"})

    listing = load_listing(store, listing_id)
    ensure_can_modify_listing(ctx.user_id, ctx.role, listing)

    updated = store.update_status(listing.id, status)
    if updated is None:
        raise NotFoundError("Property not found")
    logger.info("[PROPERTIES] Status listing_id=%s -> %s", listing.id, status.value)
    return {"success": True, "property": updated.to_wire()}


@router.delete("/{listing_id}")
def delete_property(
    listing_id: str,
    ctx: AuthContext = Depends(require_role("agent")),
    store: ListingStore = Depends(get_listing_store),
    assets=Depends(get_asset_store),
) -> Dict[str, Any]:
    listing = load_listing(store, listing_id)
    ensure_can_modify_listing(ctx.user_id, ctx.role, listing)
    delete_listing(store, assets, listing)
    return {"success": True, "message": "Property deleted"}
