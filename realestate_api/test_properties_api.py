"""
realestate_api/test_properties_api.py

End-to-end tests for /api/properties through the FastAPI app.

Tests cover:
- Public search and single fetch (view counting)
- Role enforcement (agent/admin for writes, owner-or-admin for mutations)
- Identifier handling (malformed -> 400, missing -> 404)
- Validation of listing forms and image uploads

Run: pytest realestate_api/test_properties_api.py -v
"""

from __future__ import annotations

import uuid
from pathlib import Path as FsPath

from conftest import PNG_BYTES, auth_header, create_listing, listing_form


# ========================================================================
# PUBLIC SEARCH
# ========================================================================

class TestSearch:

    def test_search_is_public(self, client):
        resp = client.get("/api/properties")
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["total"] == 0
        assert data["properties"] == []
        assert data["pages"] == 0

    def test_price_and_amenities_filter(self, client, agent):
        create_listing(client, agent["token"], title="A", price=150000, amenities="pool,gym")
        create_listing(client, agent["token"], title="B", price=250000, amenities="pool")
        create_listing(client, agent["token"], title="C", price=350000, amenities="pool,gym")

        resp = client.get("/api/properties", params={"priceMax": "300000", "amenities": "pool,gym"})
        assert resp.status_code == 200
        titles = [p["title"] for p in resp.json()["properties"]]
        assert titles == ["A"]

    def test_range_with_single_amenity(self, client, agent):
        create_listing(client, agent["token"], price=250000, type="house", amenities="pool,garage")

        params = {"priceMin": "200000", "priceMax": "300000", "amenities": "pool"}
        assert client.get("/api/properties", params=params).json()["total"] == 1
        assert client.get("/api/properties", params={"amenities": "pool,gym"}).json()["total"] == 0

    def test_invalid_type_is_rejected(self, client):
        resp = client.get("/api/properties", params={"type": "castle"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert "type" in body["errors"]

    def test_blank_type_counts_as_absent(self, client, agent):
        create_listing(client, agent["token"])
        resp = client.get("/api/properties?type=")
        assert resp.status_code == 200
        assert resp.json()["total"] == 1

    def test_page_past_offset_range_falls_back_to_first(self, client, agent):
        create_listing(client, agent["token"])
        resp = client.get("/api/properties?page=99999999999999999999")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        assert data["page"] == 1
        assert len(data["properties"]) == 1

    def test_unparseable_number_is_ignored(self, client, agent):
        create_listing(client, agent["token"])
        resp = client.get("/api/properties", params={"priceMin": "cheap"})
        assert resp.status_code == 200
        assert resp.json()["total"] == 1

    def test_pagination_fields(self, client, agent):
        for i in range(3):
            create_listing(client, agent["token"], title=f"L{i}")
        data = client.get("/api/properties", params={"limit": "2", "page": "2"}).json()
        assert data["count"] == 1
        assert data["total"] == 3
        assert data["pages"] == 2
        assert data["page"] == 2

    def test_wire_format(self, client, agent):
        create_listing(client, agent["token"], lat="30.25", lng="-97.75")
        prop = client.get("/api/properties").json()["properties"][0]
        assert prop["squareFootage"] == 1800
        assert prop["amenities"] == ["pool", "garage"]
        assert prop["status"] == "active"
        assert prop["views"] == 0
        assert prop["locationCoordinates"] == {"type": "Point", "coordinates": [-97.75, 30.25]}
        assert prop["agent"]["email"] == "agent@test.com"
        assert "agent_id" not in prop
        assert "createdAt" in prop

    def test_locations(self, client, agent):
        create_listing(client, agent["token"], location="Austin, TX")
        create_listing(client, agent["token"], location="Boston, MA")
        data = client.get("/api/properties/locations", params={"search": "aus"}).json()
        assert data["locations"] == ["Austin, TX"]


# ========================================================================
# SINGLE LISTING
# ========================================================================

class TestGetProperty:

    def test_each_fetch_counts_a_view(self, client, agent):
        created = create_listing(client, agent["token"])
        client.get(f"/api/properties/{created['id']}")
        resp = client.get(f"/api/properties/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["property"]["views"] == 2

    def test_malformed_id_is_400(self, client):
        resp = client.get("/api/properties/not-an-id")
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "message": "Invalid property ID"}

    def test_unknown_id_is_404(self, client):
        resp = client.get(f"/api/properties/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json()["message"] == "Property not found"


# ========================================================================
# CREATE
# ========================================================================

class TestCreate:

    def test_requires_auth(self, client):
        resp = client.post("/api/properties", data=listing_form())
        assert resp.status_code == 401
        assert resp.json()["message"] == "Not authorized, no token"

    def test_buyer_cannot_create(self, client, buyer):
        resp = client.post("/api/properties", data=listing_form(), headers=auth_header(buyer["token"]))
        assert resp.status_code == 403

    def test_agent_is_taken_from_token(self, client, agent):
        created = create_listing(client, agent["token"], agent="someone-else")
        assert created["agent"]["id"] == agent["id"]

    def test_missing_fields_report_per_field_messages(self, client, agent):
        resp = client.post(
            "/api/properties",
            data={"title": "", "price": "abc", "type": "castle"},
            headers=auth_header(agent["token"]),
        )
        assert resp.status_code == 400
        errors = resp.json()["errors"]
        assert errors["title"] == "Title is required"
        assert errors["price"] == "Price must be a number"
        assert errors["type"] == "Invalid property type"
        assert errors["location"] == "Location is required"

    def test_images_are_stored(self, client, agent, settings):
        files = [("images", ("front.png", PNG_BYTES, "image/png"))]
        created = create_listing(client, agent["token"], files=files)
        assert len(created["images"]) == 1
        image = created["images"][0]
        assert image["url"].startswith("/uploads/")
        assert (FsPath(settings.upload_dir) / image["public_id"]).exists()

    def test_rejects_non_image_upload(self, client, agent):
        files = [("images", ("notes.txt", b"hello", "text/plain"))]
        resp = client.post(
            "/api/properties",
            data=listing_form(),
            files=files,
            headers=auth_header(agent["token"]),
        )
        assert resp.status_code == 400
        assert client.get("/api/properties").json()["total"] == 0

    def test_rejects_too_many_images(self, client, agent, settings):
        files = [("images", (f"{i}.png", PNG_BYTES, "image/png")) for i in range(settings.max_images + 1)]
        resp = client.post(
            "/api/properties",
            data=listing_form(),
            files=files,
            headers=auth_header(agent["token"]),
        )
        assert resp.status_code == 400
        assert "images" in resp.json()["errors"]


# ========================================================================
# UPDATE / STATUS / DELETE
# ========================================================================

class TestMutations:

    def test_owner_can_update(self, client, agent):
        created = create_listing(client, agent["token"])
        resp = client.put(
            f"/api/properties/{created['id']}",
            data=listing_form(title="Renovated", price="300000"),
            headers=auth_header(agent["token"]),
        )
        assert resp.status_code == 200
        prop = resp.json()["property"]
        assert prop["title"] == "Renovated"
        assert prop["price"] == 300000

    def test_update_replaces_images(self, client, agent, settings):
        files = [("images", ("old.png", PNG_BYTES, "image/png"))]
        created = create_listing(client, agent["token"], files=files)
        old_path = FsPath(settings.upload_dir) / created["images"][0]["public_id"]

        resp = client.put(
            f"/api/properties/{created['id']}",
            data=listing_form(),
            files=[("images", ("new.png", PNG_BYTES, "image/png"))],
            headers=auth_header(agent["token"]),
        )
        assert resp.status_code == 200
        images = resp.json()["property"]["images"]
        assert len(images) == 1
        assert images[0]["public_id"] != created["images"][0]["public_id"]
        assert not old_path.exists()

    def test_non_owner_cannot_delete(self, client, agent, other_agent):
        created = create_listing(client, agent["token"])
        resp = client.delete(f"/api/properties/{created['id']}", headers=auth_header(other_agent["token"]))
        assert resp.status_code == 403
        assert client.get(f"/api/properties/{created['id']}").status_code == 200

    def test_admin_can_delete_any_listing(self, client, agent, admin):
        created = create_listing(client, agent["token"])
        resp = client.delete(f"/api/properties/{created['id']}", headers=auth_header(admin["token"]))
        assert resp.status_code == 200
        assert client.get(f"/api/properties/{created['id']}").status_code == 404

    def test_delete_checks_id_before_existence(self, client, agent):
        headers = auth_header(agent["token"])
        assert client.delete("/api/properties/bad-id", headers=headers).status_code == 400
        assert client.delete(f"/api/properties/{uuid.uuid4()}", headers=headers).status_code == 404

    def test_status_update(self, client, agent):
        created = create_listing(client, agent["token"])
        resp = client.patch(
            f"/api/properties/{created['id']}/status",
            json={"status": "sold"},
            headers=auth_header(agent["token"]),
        )
        assert resp.status_code == 200
        assert resp.json()["property"]["status"] == "sold"

    def test_status_update_rejects_unknown_value(self, client, agent):
        created = create_listing(client, agent["token"])
        resp = client.patch(
            f"/api/properties/{created['id']}/status",
            json={"status": "demolished"},
            headers=auth_header(agent["token"]),
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid status value"

    def test_status_update_by_non_owner(self, client, agent, other_agent):
        created = create_listing(client, agent["token"])
        resp = client.patch(
            f"/api/properties/{created['id']}/status",
            json={"status": "sold"},
            headers=auth_header(other_agent["token"]),
        )
        assert resp.status_code == 403


# ========================================================================
# AGENT-SCOPED ENDPOINTS
# ========================================================================

class TestAgentScope:

    def test_user_listings_only_include_own(self, client, agent, other_agent):
        create_listing(client, agent["token"], title="mine")
        create_listing(client, other_agent["token"], title="theirs")

        resp = client.get("/api/properties/user", headers=auth_header(agent["token"]))
        assert resp.status_code == 200
        assert [p["title"] for p in resp.json()["properties"]] == ["mine"]

    def test_user_listings_filter_by_status(self, client, agent):
        sold = create_listing(client, agent["token"], title="sold")
        create_listing(client, agent["token"], title="active")
        client.patch(
            f"/api/properties/{sold['id']}/status",
            json={"status": "sold"},
            headers=auth_header(agent["token"]),
        )

        resp = client.get(
            "/api/properties/user",
            params={"status": "sold"},
            headers=auth_header(agent["token"]),
        )
        assert [p["title"] for p in resp.json()["properties"]] == ["sold"]

    def test_user_listings_require_agent_role(self, client, buyer):
        resp = client.get("/api/properties/user", headers=auth_header(buyer["token"]))
        assert resp.status_code == 403

    def test_analytics(self, client, agent, other_agent):
        first = create_listing(client, agent["token"], price=100000, type="house")
        create_listing(client, agent["token"], price=300000, type="condo")
        create_listing(client, other_agent["token"], price=900000)
        client.get(f"/api/properties/{first['id']}")

        resp = client.get("/api/properties/analytics", headers=auth_header(agent["token"]))
        assert resp.status_code == 200
        analytics = resp.json()["analytics"]
        assert analytics["totalListings"] == 2
        assert analytics["avgPrice"] == 200000
        assert analytics["totalViews"] == 1

    def test_user_listings_ignore_blank_filters(self, client, agent):
        create_listing(client, agent["token"], title="mine")
        resp = client.get("/api/properties/user?status=&type=", headers=auth_header(agent["token"]))
        assert resp.status_code == 200
        assert [p["title"] for p in resp.json()["properties"]] == ["mine"]

    def test_user_listings_reject_unknown_status(self, client, agent):
        resp = client.get("/api/properties/user", params={"status": "demolished"}, headers=auth_header(agent["token"]))
        assert resp.status_code == 400
        assert "status" in resp.json()["errors"]
