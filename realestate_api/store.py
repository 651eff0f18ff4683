"""
realestate_api/store.py

SQLite-backed store for listings and users.

ListingStore executes QueryDescriptor/PageSpec pairs produced by the query
builder. Each condition compiles to one parameterized SQL fragment; the
fragments are ANDed. Column names never come from client input: sort keys and
condition fields are looked up in fixed maps.
"""

from __future__ import annotations

import json
import math
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from realestate_api.errors import ValidationError
from realestate_api.models import (
    AgentRef,
    GeoPoint,
    Image,
    Listing,
    ListingStatus,
    PropertyType,
    User,
    UserRole,
)
from realestate_api.query_builder import (
    Condition,
    ContainsAll,
    ContainsText,
    Equals,
    PageSpec,
    QueryDescriptor,
    Range,
    TextSearch,
    WithinRadius,
)


FIELD_COLUMNS: Dict[str, str] = {
    "agent": "l.agent_id",
    "createdAt": "l.created_at",
    "price": "l.price",
    "bedrooms": "l.bedrooms",
    "bathrooms": "l.bathrooms",
    "squareFootage": "l.square_footage",
    "views": "l.views",
    "title": "l.title",
    "location": "l.location",
    "status": "l.status",
    "type": "l.type",
}

_LISTING_SELECT = """
    SELECT l.*, u.name AS agent_name, u.email AS agent_email
    FROM listings l
    LEFT JOIN users u ON u.id = l.agent_id
"""


def _column(field_name: str) -> str:
    try:
        return FIELD_COLUMNS[field_name]
    except KeyError:
        raise ValueError(f"Unknown listing field: {field_name!r}")


def compile_condition(cond: Condition) -> Tuple[str, List[Any]]:
    """Compile one condition to (sql_fragment, params)."""
    if isinstance(cond, Equals):
        return f"{_column(cond.field)} = ?", [cond.value]

    if isinstance(cond, Range):
        column = _column(cond.field)
        parts, params = [], []
        if cond.gte is not None:
            parts.append(f"{column} >= ?")
            params.append(cond.gte)
        if cond.lte is not None:
            parts.append(f"{column} <= ?")
            params.append(cond.lte)
        return " AND ".join(parts) or "1=1", params

    if isinstance(cond, ContainsText):
        return f"instr(lower({_column(cond.field)}), lower(?)) > 0", [cond.value]

    if isinstance(cond, ContainsAll):
        if cond.field != "amenities":
            raise ValueError(f"ContainsAll is not supported on {cond.field!r}")
        placeholders = ", ".join("?" for _ in cond.values)
        sql = (
            "(SELECT COUNT(DISTINCT a.amenity) FROM listing_amenities a "
            f"WHERE a.listing_id = l.id AND a.amenity IN ({placeholders})) = ?"
        )
        return sql, [*cond.values, len(cond.values)]

    if isinstance(cond, TextSearch):
        return "text_score(?, l.title, l.description) > 0", [json.dumps(list(cond.terms))]

    if isinstance(cond, WithinRadius):
        return "haversine_km(?, ?, l.lat, l.lng) <= ?", [cond.lat, cond.lng, cond.radius_km]

    raise TypeError(f"Unsupported condition: {cond!r}")


def compile_query(query: QueryDescriptor) -> Tuple[str, List[Any]]:
    """Compile a descriptor to a WHERE clause (without the keyword) and params."""
    if not query.conditions:
        return "1=1", []
    fragments, params = [], []
    for cond in query.conditions:
        sql, cond_params = compile_condition(cond)
        fragments.append(f"({sql})")
        params.extend(cond_params)
    return " AND ".join(fragments), params


def compile_order(query: QueryDescriptor, page: PageSpec) -> Tuple[str, List[Any]]:
    direction = "DESC" if page.descending else "ASC"
    text = query.text_search
    if page.by_relevance and text is not None:
        return (
            "text_score(?, l.title, l.description) DESC, l.created_at DESC, l.seq DESC",
            [json.dumps(list(text.terms))],
        )
    column = FIELD_COLUMNS.get(page.sort, FIELD_COLUMNS["createdAt"])
    # Insertion order breaks ties, in the same direction as the sort
    return f"{column} {direction}, l.seq {direction}", []


@dataclass
class SearchResult:
    listings: List[Listing]
    total: int
    page: int
    limit: int

    @property
    def count(self) -> int:
        return len(self.listings)

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_wire(self) -> Dict[str, Any]:
        return {
            "success": True,
            "count": self.count,
            "total": self.total,
            "page": self.page,
            "pages": self.pages,
            "properties": [listing.to_wire() for listing in self.listings],
        }


@dataclass
class Analytics:
    total_listings: int = 0
    avg_price: float = 0.0
    total_views: int = 0
    type_distribution: List[Dict[str, Any]] = field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "totalListings": self.total_listings,
            "avgPrice": self.avg_price,
            "totalViews": self.total_views,
            "typeDistribution": self.type_distribution,
        }


class ListingStore:
    """Listing persistence over one SQLite connection."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ------------------------------------------------------------------
    # Row hydration
    # ------------------------------------------------------------------
    def _amenities_for(self, ids: Sequence[str]) -> Dict[str, List[str]]:
        result: Dict[str, List[str]] = {i: [] for i in ids}
        if not ids:
            return result
        placeholders = ", ".join("?" for _ in ids)
        rows = self.conn.execute(
            f"SELECT listing_id, amenity FROM listing_amenities WHERE listing_id IN ({placeholders}) "
            "ORDER BY rowid",
            list(ids),
        ).fetchall()
        for row in rows:
            result[row["listing_id"]].append(row["amenity"])
        return result

    def _images_for(self, ids: Sequence[str]) -> Dict[str, List[Image]]:
        result: Dict[str, List[Image]] = {i: [] for i in ids}
        if not ids:
            return result
        placeholders = ", ".join("?" for _ in ids)
        rows = self.conn.execute(
            f"SELECT listing_id, url, public_id FROM listing_images WHERE listing_id IN ({placeholders}) "
            "ORDER BY listing_id, position",
            list(ids),
        ).fetchall()
        for row in rows:
            result[row["listing_id"]].append(Image(url=row["url"], public_id=row["public_id"]))
        return result

    def _hydrate(self, rows: Iterable[sqlite3.Row]) -> List[Listing]:
        rows = list(rows)
        ids = [row["id"] for row in rows]
        amenities = self._amenities_for(ids)
        images = self._images_for(ids)
        listings = []
        for row in rows:
            agent = None
            if row["agent_name"] is not None:
                agent = AgentRef(id=row["agent_id"], name=row["agent_name"], email=row["agent_email"])
            listings.append(
                Listing(
                    id=row["id"],
                    title=row["title"],
                    description=row["description"],
                    price=row["price"],
                    location=row["location"],
                    type=PropertyType(row["type"]),
                    amenities=amenities[row["id"]],
                    images=images[row["id"]],
                    agent_id=row["agent_id"],
                    agent=agent,
                    created_at=row["created_at"],
                    bedrooms=row["bedrooms"],
                    bathrooms=row["bathrooms"],
                    square_footage=row["square_footage"],
                    status=ListingStatus(row["status"]),
                    views=row["views"],
                    location_coordinates=GeoPoint(coordinates=[row["lng"], row["lat"]]),
                )
            )
        return listings

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def search(self, query: QueryDescriptor, page: PageSpec) -> SearchResult:
        where_sql, params = compile_query(query)
        total = self.conn.execute(
            f"SELECT COUNT(*) FROM listings l WHERE {where_sql}", params
        ).fetchone()[0]

        order_sql, order_params = compile_order(query, page)
        rows = self.conn.execute(
            f"{_LISTING_SELECT} WHERE {where_sql} ORDER BY {order_sql} LIMIT ? OFFSET ?",
            [*params, *order_params, page.limit, page.skip],
        ).fetchall()

        return SearchResult(
            listings=self._hydrate(rows),
            total=total,
            page=page.page,
            limit=page.limit,
        )

    def get(self, listing_id: str) -> Optional[Listing]:
        rows = self.conn.execute(f"{_LISTING_SELECT} WHERE l.id = ?", (listing_id,)).fetchall()
        listings = self._hydrate(rows)
        return listings[0] if listings else None

    def list_all(self) -> List[Listing]:
        rows = self.conn.execute(f"{_LISTING_SELECT} ORDER BY l.created_at DESC, l.seq DESC").fetchall()
        return self._hydrate(rows)

    def distinct_locations(self, search: Optional[str] = None) -> List[str]:
        if search:
            rows = self.conn.execute(
                "SELECT DISTINCT location FROM listings WHERE instr(lower(location), lower(?)) > 0 "
                "ORDER BY location",
                (search,),
            ).fetchall()
        else:
            rows = self.conn.execute("SELECT DISTINCT location FROM listings ORDER BY location").fetchall()
        return [row["location"] for row in rows]

    def analytics(self, agent_id: str) -> Analytics:
        row = self.conn.execute(
            """
            SELECT COUNT(*) AS total, COALESCE(AVG(price), 0) AS avg_price,
                   COALESCE(SUM(views), 0) AS total_views
            FROM listings WHERE agent_id = ?
            """,
            (agent_id,),
        ).fetchone()
        counts = {
            r["type"]: r["n"]
            for r in self.conn.execute(
                "SELECT type, COUNT(*) AS n FROM listings WHERE agent_id = ? GROUP BY type",
                (agent_id,),
            ).fetchall()
        }
        return Analytics(
            total_listings=row["total"],
            avg_price=float(row["avg_price"]),
            total_views=row["total_views"],
            type_distribution=[{"name": t.value, "count": counts.get(t.value, 0)} for t in PropertyType],
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def _write_amenities(self, listing_id: str, amenities: Sequence[str]) -> None:
        self.conn.execute("DELETE FROM listing_amenities WHERE listing_id = ?", (listing_id,))
        self.conn.executemany(
            "INSERT OR IGNORE INTO listing_amenities (listing_id, amenity) VALUES (?, ?)",
            [(listing_id, a) for a in amenities],
        )

    def _write_images(self, listing_id: str, images: Sequence[Image]) -> None:
        self.conn.execute("DELETE FROM listing_images WHERE listing_id = ?", (listing_id,))
        self.conn.executemany(
            "INSERT INTO listing_images (listing_id, position, url, public_id) VALUES (?, ?, ?, ?)",
            [(listing_id, i, img.url, img.public_id) for i, img in enumerate(images)],
        )

    def insert(self, listing: Listing) -> Listing:
        self.conn.execute(
            """
            INSERT INTO listings (
                id, title, description, price, location, type, agent_id, created_at,
                bedrooms, bathrooms, square_footage, status, views, lng, lat
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                listing.id,
                listing.title,
                listing.description,
                listing.price,
                listing.location,
                listing.type.value,
                listing.agent_id,
                listing.created_at,
                listing.bedrooms,
                listing.bathrooms,
                listing.square_footage,
                listing.status.value,
                listing.views,
                listing.lng,
                listing.lat,
            ),
        )
        self._write_amenities(listing.id, listing.amenities)
        self._write_images(listing.id, listing.images)
        self.conn.commit()
        return self.get(listing.id)  # type: ignore[return-value]

    def replace(self, listing: Listing) -> Listing:
        """Persist every mutable field of an existing listing (views excluded)."""
        self.conn.execute(
            """
            UPDATE listings SET
                title = ?, description = ?, price = ?, location = ?, type = ?,
                bedrooms = ?, bathrooms = ?, square_footage = ?, status = ?, lng = ?, lat = ?
            WHERE id = ?
            """,
            (
                listing.title,
                listing.description,
                listing.price,
                listing.location,
                listing.type.value,
                listing.bedrooms,
                listing.bathrooms,
                listing.square_footage,
                listing.status.value,
                listing.lng,
                listing.lat,
                listing.id,
            ),
        )
        self._write_amenities(listing.id, listing.amenities)
        self._write_images(listing.id, listing.images)
        self.conn.commit()
        return self.get(listing.id)  # type: ignore[return-value]

    def update_status(self, listing_id: str, status: ListingStatus) -> Optional[Listing]:
        self.conn.execute("UPDATE listings SET status = ? WHERE id = ?", (status.value, listing_id))
        self.conn.commit()
        return self.get(listing_id)

    def increment_views(self, listing_id: str) -> bool:
        """Atomic +1 on the view counter. Returns False when the listing is absent."""
        cur = self.conn.execute("UPDATE listings SET views = views + 1 WHERE id = ?", (listing_id,))
        self.conn.commit()
        return cur.rowcount == 1

    def delete(self, listing_id: str) -> bool:
        cur = self.conn.execute("DELETE FROM listings WHERE id = ?", (listing_id,))
        self.conn.commit()
        return cur.rowcount == 1


class UserStore:
    """User persistence over one SQLite connection."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @staticmethod
    def _row_to_user(row: Optional[sqlite3.Row]) -> Optional[User]:
        if row is None:
            return None
        avatar = None
        if row["avatar_url"]:
            avatar = Image(url=row["avatar_url"], public_id=row["avatar_public_id"] or "")
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            password_hash=row["password_hash"],
            phone=row["phone"],
            role=UserRole(row["role"]),
            avatar=avatar,
            created_at=row["created_at"],
        )

    def create(self, user: User) -> User:
        try:
            self.conn.execute(
                """
                INSERT INTO users (id, name, email, password_hash, phone, role, avatar_url, avatar_public_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user.id,
                    user.name,
                    user.email,
                    user.password_hash,
                    user.phone,
                    user.role.value,
                    user.avatar.url if user.avatar else None,
                    user.avatar.public_id if user.avatar else None,
                    user.created_at,
                ),
            )
        except sqlite3.IntegrityError:
            self.conn.rollback()
            raise ValidationError("User already exists")
        self.conn.commit()
        return user

    def get(self, user_id: str) -> Optional[User]:
        row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row)

    def get_by_email(self, email: str) -> Optional[User]:
        row = self.conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return self._row_to_user(row)

    def list_all(self) -> List[User]:
        rows = self.conn.execute("SELECT * FROM users ORDER BY created_at DESC").fetchall()
        return [self._row_to_user(row) for row in rows]  # type: ignore[misc]

    def update_profile(self, user_id: str, name: str, email: str, phone: Optional[str]) -> Optional[User]:
        try:
            self.conn.execute(
                "UPDATE users SET name = ?, email = ?, phone = ? WHERE id = ?",
                (name, email, phone, user_id),
            )
        except sqlite3.IntegrityError:
            self.conn.rollback()
            raise ValidationError("Email already in use")
        self.conn.commit()
        return self.get(user_id)

    def delete(self, user_id: str) -> bool:
        cur = self.conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        self.conn.commit()
        return cur.rowcount == 1
