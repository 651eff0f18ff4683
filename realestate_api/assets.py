"""
realestate_api/assets.py

Image storage for listing photos and user avatars.

If Cloudinary credentials are configured, images are stored remotely and the
DB keeps the secure URL plus the Cloudinary public_id. Otherwise files are
written under UPLOAD_DIR and served by the app under UPLOAD_BASE_URL.

Both stores expose the same two calls:
    upload(raw, filename, folder) -> Image(url, public_id)
    destroy(public_id)
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import os
import secrets
from pathlib import Path as FsPath
from typing import Optional, Tuple

import cloudinary
import cloudinary.uploader

from realestate_api.config import Settings
from realestate_api.errors import UpstreamServiceError, ValidationError
from realestate_api.models import Image

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
}
ALLOWED_IMAGE_EXTS = {".jpg", ".jpeg", ".png"}

LISTING_FOLDER = "realestate/properties"
AVATAR_FOLDER = "avatars"


def safe_image_ext(filename: str, content_type: str) -> str:
    """Return the stored extension for an upload, or raise ValidationError."""
    content_type = (content_type or "").lower().strip()
    ext = os.path.splitext(filename or "")[1].lower()
    if content_type in ALLOWED_IMAGE_TYPES:
        return ALLOWED_IMAGE_TYPES[content_type]
    if ext in ALLOWED_IMAGE_EXTS:
        return ".jpg" if ext == ".jpeg" else ext
    raise ValidationError(
        "Only jpg, jpeg and png images are allowed",
        errors={"images": f"Unsupported image type: {filename or content_type!r}"},
    )


def decode_data_uri(value: str) -> Tuple[bytes, str]:
    """Decode a base64 data URI into (raw bytes, content type)."""
    header, sep, payload = value.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise ValidationError("Invalid image data", errors={"avatar": "Expected a base64 data URI"})
    content_type = header[len("data:"):].split(";", 1)[0]
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid image data", errors={"avatar": "Malformed base64 payload"})
    return raw, content_type


class LocalAssetStore:
    """Stores uploads on local disk. Used when Cloudinary is not configured."""

    def __init__(self, upload_dir: str, base_url: str = "/uploads"):
        self.root = FsPath(upload_dir)
        self.base_url = base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, public_id: str) -> FsPath:
        path = (self.root / public_id).resolve()
        if self.root.resolve() not in path.parents:
            raise ValidationError("Invalid asset identifier")
        return path

    def upload(self, raw: bytes, filename: str, folder: str, content_type: str = "") -> Image:
        if not raw:
            raise ValidationError("Empty upload", errors={"images": "Empty upload"})
        ext = safe_image_ext(filename, content_type)
        public_id = f"{folder}/{secrets.token_hex(8)}{ext}"
        path = self._path_for(public_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(raw)
        except OSError:
            logger.exception("Local upload failed filename=%r", filename)
            raise UpstreamServiceError("Failed to save upload")
        return Image(url=f"{self.base_url}/{public_id}", public_id=public_id)

    def destroy(self, public_id: str) -> None:
        if not public_id:
            return
        try:
            self._path_for(public_id).unlink(missing_ok=True)
        except OSError:
            logger.exception("Local asset delete failed public_id=%s", public_id)
            raise UpstreamServiceError("Failed to delete image")


class CloudinaryAssetStore:
    """Stores uploads in Cloudinary."""

    TRANSFORMATION = [{"width": 800, "quality": "auto", "fetch_format": "auto"}]

    def __init__(self, cloud_name: str, api_key: str, api_secret: str):
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )

    def upload(self, raw: bytes, filename: str, folder: str, content_type: str = "") -> Image:
        if not raw:
            raise ValidationError("Empty upload", errors={"images": "Empty upload"})
        safe_image_ext(filename, content_type)
        options = {"folder": folder, "resource_type": "image"}
        if folder == LISTING_FOLDER:
            options["transformation"] = self.TRANSFORMATION
        else:
            options["transformation"] = [{"width": 150, "crop": "scale"}]
        try:
            result = cloudinary.uploader.upload(io.BytesIO(raw), **options)
        except Exception:
            logger.exception(
                "Cloudinary upload failed filename=%r content_type=%r size_bytes=%s",
                filename,
                content_type,
                len(raw),
            )
            raise UpstreamServiceError("Failed to upload image")
        return Image(url=result["secure_url"], public_id=result["public_id"])

    def destroy(self, public_id: str) -> None:
        if not public_id:
            return
        try:
            cloudinary.uploader.destroy(public_id, resource_type="image")
        except Exception:
            logger.exception("Cloudinary destroy failed public_id=%s", public_id)
            raise UpstreamServiceError("Failed to delete image")


def build_asset_store(settings: Settings):
    if settings.cloudinary_enabled:
        logger.info("Asset store: Cloudinary (%s)", settings.cloudinary_cloud_name)
        return CloudinaryAssetStore(
            settings.cloudinary_cloud_name,  # type: ignore[arg-type]
            settings.cloudinary_api_key,  # type: ignore[arg-type]
            settings.cloudinary_api_secret,  # type: ignore[arg-type]
        )
    logger.info("Asset store: local disk (%s)", settings.upload_dir)
    return LocalAssetStore(settings.upload_dir, settings.upload_base_url)


def upload_avatar(store, value: Optional[str]) -> Optional[Image]:
    """Upload a registration avatar given as a data URI; plain URLs are kept as-is."""
    if not value:
        return None
    if value.startswith(("http://", "https://")):
        return Image(url=value, public_id="")
    raw, content_type = decode_data_uri(value)
    return store.upload(raw, "avatar", AVATAR_FOLDER, content_type=content_type)
