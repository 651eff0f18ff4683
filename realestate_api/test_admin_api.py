"""
realestate_api/test_admin_api.py

Admin moderation endpoints: role gating, user and listing management.

Run: pytest realestate_api/test_admin_api.py -v
"""

from __future__ import annotations

import uuid

import pytest

from conftest import auth_header, create_listing


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/api/admin/users"),
        ("get", "/api/admin/properties"),
        ("delete", f"/api/admin/users/{uuid.uuid4()}"),
        ("delete", f"/api/admin/properties/{uuid.uuid4()}"),
    ],
)
def test_agent_is_forbidden(client, agent, method, path):
    resp = getattr(client, method)(path, headers=auth_header(agent["token"]))
    assert resp.status_code == 403


def test_requires_token(client):
    assert client.get("/api/admin/users").status_code == 401


def test_list_users(client, admin, agent, buyer):
    resp = client.get("/api/admin/users", headers=auth_header(admin["token"]))
    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 3
    assert {u["email"] for u in data["users"]} == {"admin@test.com", "agent@test.com", "buyer@test.com"}
    assert all("password_hash" not in u for u in data["users"])


def test_delete_user_keeps_their_listings(client, admin, agent):
    created = create_listing(client, agent["token"])
    resp = client.delete(f"/api/admin/users/{agent['id']}", headers=auth_header(admin["token"]))
    assert resp.status_code == 200

    prop = client.get(f"/api/properties/{created['id']}").json()["property"]
    assert prop["agent"] is None


def test_delete_user_errors(client, admin):
    headers = auth_header(admin["token"])
    resp = client.delete("/api/admin/users/nope", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid user ID"

    resp = client.delete(f"/api/admin/users/{uuid.uuid4()}", headers=headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "User not found"


def test_list_and_delete_properties(client, admin, agent, other_agent):
    first = create_listing(client, agent["token"], title="first")
    create_listing(client, other_agent["token"], title="second")
    headers = auth_header(admin["token"])

    data = client.get("/api/admin/properties", headers=headers).json()
    assert data["count"] == 2

    resp = client.delete(f"/api/admin/properties/{first['id']}", headers=headers)
    assert resp.status_code == 200
    assert client.get("/api/admin/properties", headers=headers).json()["count"] == 1
    assert client.delete(f"/api/admin/properties/{first['id']}", headers=headers).status_code == 404


def test_admin_delete_verifies_token_once(client, admin, agent, monkeypatch):
    import realestate_api.auth_context as auth_context

    calls = []
    original = auth_context.verify_token

    def counting_verify(token, settings):
        calls.append(token)
        return original(token, settings)

    monkeypatch.setattr(auth_context, "verify_token", counting_verify)
    created = create_listing(client, agent["token"])
    calls.clear()

    resp = client.delete(f"/api/admin/properties/{created['id']}", headers=auth_header(admin["token"]))
    assert resp.status_code == 200
    assert len(calls) == 1
