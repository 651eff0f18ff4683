# realestate_api/db.py
# SQLite connection factory and schema for the listings backend.
#
# Two Python functions are registered on every connection so the store can
# express geospatial and full-text predicates in SQL:
#   haversine_km(lat1, lng1, lat2, lng2) -> great-circle distance in km
#   text_score(terms_json, title, description) -> number of term occurrences

import json
import math
import sqlite3
from pathlib import Path as FsPath
from typing import Optional

EARTH_RADIUS_KM = 6371.0088


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> Optional[float]:
    if None in (lat1, lng1, lat2, lng2):
        return None
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Clamp rounding error so asin stays in its domain
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def text_score(terms_json: str, title: Optional[str], description: Optional[str]) -> int:
    terms = json.loads(terms_json) if terms_json else []
    haystacks = ((title or "").lower(), (description or "").lower())
    score = 0
    for term in terms:
        for text in haystacks:
            score += text.count(term)
    return score


def connect(database_path: str) -> sqlite3.Connection:
    """
    Open a SQLite connection with Row factory and the custom SQL functions.
    Connections are used from FastAPI's threadpool, hence check_same_thread=False.
    """
    conn = sqlite3.connect(database_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.create_function("haversine_km", 4, haversine_km, deterministic=True)
    conn.create_function("text_score", 3, text_score, deterministic=True)
    return conn


def init_db(database_path: str) -> None:
    parent = FsPath(database_path).resolve().parent
    parent.mkdir(parents=True, exist_ok=True)

    conn = connect(database_path)
    cur = conn.cursor()

    # Users table
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            phone TEXT,
            role TEXT NOT NULL DEFAULT 'buyer',
            avatar_url TEXT,
            avatar_public_id TEXT,
            created_at TEXT NOT NULL
        )
        """
    )

    # Listings table. agent_id is a weak reference: no FK so that deleting a
    # user leaves its listings in place.
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS listings (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            title TEXT NOT NULL,
            description TEXT NOT NULL,
            price REAL NOT NULL CHECK (price >= 0),
            location TEXT NOT NULL,
            type TEXT NOT NULL,
            agent_id TEXT NOT NULL,
            created_at TEXT NOT NULL,
            bedrooms INTEGER NOT NULL DEFAULT 0 CHECK (bedrooms >= 0),
            bathrooms INTEGER NOT NULL DEFAULT 0 CHECK (bathrooms >= 0),
            square_footage INTEGER NOT NULL DEFAULT 0 CHECK (square_footage >= 0),
            status TEXT NOT NULL DEFAULT 'active',
            views INTEGER NOT NULL DEFAULT 0 CHECK (views >= 0),
            lng REAL NOT NULL DEFAULT 0,
            lat REAL NOT NULL DEFAULT 0
        )
        """
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS listing_amenities (
            listing_id TEXT NOT NULL REFERENCES listings(id) ON DELETE CASCADE,
            amenity TEXT NOT NULL,
            PRIMARY KEY (listing_id, amenity)
        )
        """
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS listing_images (
            listing_id TEXT NOT NULL REFERENCES listings(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            url TEXT NOT NULL,
            public_id TEXT NOT NULL,
            PRIMARY KEY (listing_id, position)
        )
        """
    )

    cur.execute("CREATE INDEX IF NOT EXISTS idx_listings_agent_id ON listings(agent_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_listings_created_at ON listings(created_at)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_listings_price ON listings(price)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_listing_amenities_amenity ON listing_amenities(amenity)")

    conn.commit()
    conn.close()
