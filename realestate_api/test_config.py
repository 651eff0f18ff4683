"""
realestate_api/test_config.py

Settings loading and startup wiring.

Run: pytest realestate_api/test_config.py -v
"""

from __future__ import annotations

import pytest

from realestate_api.assets import CloudinaryAssetStore, LocalAssetStore, build_asset_store
from realestate_api.config import DEV_SECRET_KEY, load_settings
from realestate_api.logging_config import CORRELATION_ID_HEADER


def test_defaults_in_dev():
    settings = load_settings({})
    assert settings.is_dev
    assert settings.secret_key == DEV_SECRET_KEY
    assert settings.cors_origins == ["*"]
    assert settings.default_page_size == 10
    assert settings.max_page_size == 100
    assert settings.strict_filters is False
    assert settings.cloudinary_enabled is False


def test_secret_required_outside_dev():
    with pytest.raises(ValueError):
        load_settings({"ENV": "prod"})


def test_prod_settings():
    settings = load_settings(
        {
            "ENV": "prod",
            "JWT_SECRET": "s3cret",
            "CORS_ORIGINS": "https://a.example, https://b.example",
            "STRICT_FILTERS": "true",
            "MAX_PAGE_SIZE": "50",
        }
    )
    assert settings.is_prod
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
    assert settings.strict_filters is True
    assert settings.max_page_size == 50


def test_bad_integer_is_reported():
    with pytest.raises(ValueError, match="MAX_IMAGES"):
        load_settings({"MAX_IMAGES": "lots"})


def test_asset_store_selection(tmp_path):
    local = build_asset_store(load_settings({"UPLOAD_DIR": str(tmp_path / "up")}))
    assert isinstance(local, LocalAssetStore)

    remote = build_asset_store(
        load_settings(
            {
                "CLOUDINARY_CLOUD_NAME": "demo",
                "CLOUDINARY_API_KEY": "key",
                "CLOUDINARY_API_SECRET": "secret",
            }
        )
    )
    assert isinstance(remote, CloudinaryAssetStore)


def test_health_and_correlation_header(client):
    resp = client.get("/health", headers={CORRELATION_ID_HEADER: "req_test123"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers[CORRELATION_ID_HEADER] == "req_test123"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.json()["success"] is False
