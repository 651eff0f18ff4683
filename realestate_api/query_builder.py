"""
realestate_api/query_builder.py

Listing search/filter query builder.

Turns the raw query-string parameters of the listing endpoints into a
storage-agnostic QueryDescriptor (a conjunction of simple conditions) plus a
PageSpec (pagination and sort). Both the public listing endpoint and the
agent-scoped endpoint go through the same code path:

    raw params --parse--> FilterCriteria --criteria_to_query--> QueryDescriptor
                                         --criteria_to_page---> PageSpec

Field names in conditions are logical listing fields (price, squareFootage,
amenities, ...); the store decides how they map to columns.

Parsing is permissive by default: an unparseable number is treated as if the
parameter was absent. With strict=True the same input raises
InvalidFilterError instead.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple, Union

from realestate_api.errors import InvalidFilterError


DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
# SQLite binds OFFSET as a signed 64-bit integer
MAX_OFFSET = 2 ** 63 - 1
DEFAULT_SORT = "createdAt"
DEFAULT_ORDER = "desc"

SORTABLE_FIELDS = frozenset(
    {
        "createdAt",
        "price",
        "bedrooms",
        "bathrooms",
        "squareFootage",
        "views",
        "title",
        "location",
        "status",
        "type",
    }
)

_TERM_RE = re.compile(r"\w+", re.UNICODE)


# ============================================================================
# Conditions
# ============================================================================

@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class Range:
    """Inclusive range; either bound may be None."""
    field: str
    gte: Optional[float] = None
    lte: Optional[float] = None


@dataclass(frozen=True)
class ContainsText:
    """Case-insensitive literal substring match."""
    field: str
    value: str


@dataclass(frozen=True)
class ContainsAll:
    """Set field must be a superset of values."""
    field: str
    values: Tuple[str, ...]


@dataclass(frozen=True)
class TextSearch:
    """Full-text match over title + description: any term matches."""
    terms: Tuple[str, ...]


@dataclass(frozen=True)
class WithinRadius:
    """Great-circle distance from (lat, lng) is at most radius_km."""
    lng: float
    lat: float
    radius_km: float


Condition = Union[Equals, Range, ContainsText, ContainsAll, TextSearch, WithinRadius]


@dataclass(frozen=True)
class QueryDescriptor:
    """Conjunction (AND) of conditions. An empty descriptor matches everything."""

    conditions: Tuple[Condition, ...] = ()

    def find(self, kind: type, field_name: Optional[str] = None) -> Optional[Condition]:
        for cond in self.conditions:
            if isinstance(cond, kind) and (field_name is None or getattr(cond, "field", None) == field_name):
                return cond
        return None

    @property
    def text_search(self) -> Optional[TextSearch]:
        return self.find(TextSearch)  # type: ignore[return-value]


@dataclass(frozen=True)
class PageSpec:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    sort: str = DEFAULT_SORT
    descending: bool = True
    by_relevance: bool = False

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


# ============================================================================
# FilterCriteria
# ============================================================================

@dataclass(frozen=True)
class FilterCriteria:
    """Parsed, immutable listing filters. Every filter is optional."""

    location: Optional[str] = None
    property_type: Optional[str] = None
    status: Optional[str] = None
    amenities: Tuple[str, ...] = ()
    bedrooms: Optional[float] = None
    bathrooms: Optional[float] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    square_footage_min: Optional[float] = None
    square_footage_max: Optional[float] = None
    search: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    radius: Optional[float] = None

    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    sort: str = DEFAULT_SORT
    order: str = DEFAULT_ORDER
    sort_explicit: bool = field(default=False, compare=False)

    @property
    def has_geo(self) -> bool:
        return self.lat is not None and self.lng is not None and self.radius is not None

    @property
    def search_terms(self) -> Tuple[str, ...]:
        if not self.search:
            return ()
        terms = []
        for term in _TERM_RE.findall(self.search.lower()):
            if term not in terms:
                terms.append(term)
        return tuple(terms)


def _clean(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def _parse_number(name: str, raw: Any, strict: bool) -> Optional[float]:
    value = _clean(raw)
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        number = math.nan
    if math.isnan(number) or math.isinf(number):
        if strict:
            raise InvalidFilterError(f"Invalid value for {name}: {value!r}")
        return None
    return number


def _parse_positive_int(
    name: str, raw: Any, default: int, strict: bool, maximum: Optional[int] = None
) -> int:
    try:
        # Exact for digit strings; floats lose precision near the cap
        number = int(_clean(raw) or "")
    except ValueError:
        number = _parse_number(name, raw, strict)
    if number is None:
        return default
    if number < 1 or number != int(number):
        if strict:
            raise InvalidFilterError(f"{name} must be a positive integer")
        return default
    if maximum is not None and number > maximum:
        if strict:
            raise InvalidFilterError(f"{name} must be at most {maximum}")
        return default
    return int(number)


def _split_amenities(raw: Any) -> Tuple[str, ...]:
    value = _clean(raw)
    if value is None:
        return ()
    tags = []
    for tag in value.split(","):
        tag = tag.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tuple(tags)


def parse_criteria(
    params: Mapping[str, Any],
    *,
    allow_status: bool = False,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
    strict: bool = False,
) -> FilterCriteria:
    """
    Build FilterCriteria from raw query parameters.

    Args:
        params: Query-string mapping (camelCase keys as sent by clients)
        allow_status: Honour the `status` parameter (agent-scoped listing only)
        default_limit: Page size when `limit` is absent or invalid
        max_limit: Upper cap on `limit`
        strict: Raise InvalidFilterError on unparseable values instead of
            dropping them

    `type` and `status` are passed through untouched; enum membership is
    checked by request validation before the builder runs.
    """
    sort = _clean(params.get("sort"))
    if sort is not None and sort not in SORTABLE_FIELDS:
        if strict:
            raise InvalidFilterError(f"Cannot sort by {sort!r}")
        sort = None

    order = (_clean(params.get("order")) or DEFAULT_ORDER).lower()
    limit = min(_parse_positive_int("limit", params.get("limit"), default_limit, strict), max_limit)

    return FilterCriteria(
        location=_clean(params.get("location")),
        property_type=_clean(params.get("type")),
        status=_clean(params.get("status")) if allow_status else None,
        amenities=_split_amenities(params.get("amenities")),
        bedrooms=_parse_number("bedrooms", params.get("bedrooms"), strict),
        bathrooms=_parse_number("bathrooms", params.get("bathrooms"), strict),
        price_min=_parse_number("priceMin", params.get("priceMin"), strict),
        price_max=_parse_number("priceMax", params.get("priceMax"), strict),
        square_footage_min=_parse_number("squareFootageMin", params.get("squareFootageMin"), strict),
        square_footage_max=_parse_number("squareFootageMax", params.get("squareFootageMax"), strict),
        search=_clean(params.get("search")),
        lat=_parse_number("lat", params.get("lat"), strict),
        lng=_parse_number("lng", params.get("lng"), strict),
        radius=_parse_number("radius", params.get("radius"), strict),
        page=_parse_positive_int(
            "page", params.get("page"), DEFAULT_PAGE, strict, maximum=MAX_OFFSET // limit + 1
        ),
        limit=limit,
        sort=sort or DEFAULT_SORT,
        order="desc" if order == "desc" else "asc",
        sort_explicit=sort is not None,
    )


# ============================================================================
# Criteria -> descriptor
# ============================================================================

def _range(field_name: str, gte: Optional[float], lte: Optional[float]) -> Optional[Range]:
    if gte is None and lte is None:
        return None
    return Range(field_name, gte=gte, lte=lte)


def criteria_to_query(
    criteria: FilterCriteria,
    *,
    agent_id: Optional[str] = None,
    active_only: bool = False,
) -> QueryDescriptor:
    """Translate criteria into an AND of conditions. Pure function."""
    conditions = []

    if agent_id is not None:
        conditions.append(Equals("agent", agent_id))

    terms = criteria.search_terms
    if terms:
        conditions.append(TextSearch(terms))

    # Partial coordinates are ignored rather than rejected
    if criteria.has_geo:
        conditions.append(WithinRadius(lng=criteria.lng, lat=criteria.lat, radius_km=criteria.radius))  # type: ignore[arg-type]

    if criteria.location:
        conditions.append(ContainsText("location", criteria.location))
    if criteria.property_type:
        conditions.append(Equals("type", criteria.property_type))
    if criteria.amenities:
        conditions.append(ContainsAll("amenities", criteria.amenities))
    if criteria.bedrooms is not None:
        conditions.append(Equals("bedrooms", criteria.bedrooms))
    if criteria.bathrooms is not None:
        conditions.append(Equals("bathrooms", criteria.bathrooms))

    if criteria.status:
        conditions.append(Equals("status", criteria.status))
    elif active_only:
        conditions.append(Equals("status", "active"))

    for cond in (
        _range("price", criteria.price_min, criteria.price_max),
        _range("squareFootage", criteria.square_footage_min, criteria.square_footage_max),
    ):
        if cond is not None:
            conditions.append(cond)

    return QueryDescriptor(tuple(conditions))


def criteria_to_page(criteria: FilterCriteria) -> PageSpec:
    # Relevance ordering only applies when the client did not pick a sort key
    by_relevance = bool(criteria.search_terms) and not criteria.sort_explicit
    return PageSpec(
        page=criteria.page,
        limit=criteria.limit,
        sort=criteria.sort,
        descending=criteria.order == "desc",
        by_relevance=by_relevance,
    )


class ListingQueryBuilder:
    """Shared builder for the public and agent-scoped listing endpoints."""

    def __init__(
        self,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
        strict: bool = False,
    ):
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.strict = strict

    @classmethod
    def from_settings(cls, settings) -> "ListingQueryBuilder":
        return cls(
            default_limit=settings.default_page_size,
            max_limit=settings.max_page_size,
            strict=settings.strict_filters,
        )

    def parse(self, raw_params: Mapping[str, Any], allow_status: bool = False) -> FilterCriteria:
        return parse_criteria(
            raw_params,
            allow_status=allow_status,
            default_limit=self.default_limit,
            max_limit=self.max_limit,
            strict=self.strict,
        )

    def build(
        self,
        raw_params: Mapping[str, Any],
        *,
        agent_id: Optional[str] = None,
        allow_status: bool = False,
        active_only: bool = False,
    ) -> Tuple[QueryDescriptor, PageSpec]:
        criteria = self.parse(raw_params, allow_status=allow_status)
        return (
            criteria_to_query(criteria, agent_id=agent_id, active_only=active_only),
            criteria_to_page(criteria),
        )
