"""
realestate_api/conftest.py

Shared fixtures: an isolated app per test (temp SQLite file + temp upload dir),
plus helpers to register users and create listings through the API.

Run: pytest realestate_api -v
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient

from realestate_api.assets import LocalAssetStore
from realestate_api.auth_context import create_access_token, hash_password
from realestate_api.config import Settings
from realestate_api.db import connect, init_db
from realestate_api.main import create_app
from realestate_api.models import User, UserRole, new_id
from realestate_api.store import UserStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_path=str(tmp_path / "test.db"),
        upload_dir=str(tmp_path / "uploads"),
        log_format="text",
        log_level="WARNING",
    )


@pytest.fixture
def conn(settings):
    """Raw connection to an initialised test database."""
    init_db(settings.database_path)
    connection = connect(settings.database_path)
    yield connection
    connection.close()


@pytest.fixture
def asset_store(settings) -> LocalAssetStore:
    return LocalAssetStore(settings.upload_dir, settings.upload_base_url)


@pytest.fixture
def client(settings, asset_store):
    app = create_app(settings, asset_store=asset_store)
    # Context manager runs the lifespan (schema creation)
    with TestClient(app) as test_client:
        yield test_client


def register(client: TestClient, email: str, role: Optional[str] = None, **extra) -> Dict[str, Any]:
    payload = {"name": email.split("@")[0].title(), "email": email, "password": "secret123", **extra}
    if role:
        payload["role"] = role
    resp = client.post("/api/auth/register", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def auth_header(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def listing_form(**overrides) -> Dict[str, str]:
    form = {
        "title": "Sunny family house",
        "description": "Three bedrooms close to the park",
        "price": "250000",
        "location": "Austin, TX",
        "type": "house",
        "amenities": "pool,garage",
        "bedrooms": "3",
        "bathrooms": "2",
        "squareFootage": "1800",
    }
    form.update({k: str(v) for k, v in overrides.items()})
    return form


def create_listing(client: TestClient, token: str, files=None, **overrides) -> Dict[str, Any]:
    resp = client.post(
        "/api/properties",
        data=listing_form(**overrides),
        files=files,
        headers=auth_header(token),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["property"]


@pytest.fixture
def agent(client) -> Dict[str, Any]:
    return register(client, "agent@test.com", role="agent")


@pytest.fixture
def other_agent(client) -> Dict[str, Any]:
    return register(client, "other.agent@test.com", role="agent")


@pytest.fixture
def buyer(client) -> Dict[str, Any]:
    return register(client, "buyer@test.com")


@pytest.fixture
def admin(client, settings) -> Dict[str, Any]:
    """Admins cannot self-register, so seed one directly."""
    user = User(
        id=new_id(),
        name="Admin",
        email="admin@test.com",
        password_hash=hash_password("secret123"),
        role=UserRole.admin,
    )
    connection = connect(settings.database_path)
    try:
        UserStore(connection).create(user)
    finally:
        connection.close()
    return {**user.public_dict(), "token": create_access_token(user.id, settings)}
