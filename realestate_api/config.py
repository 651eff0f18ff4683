# realestate_api/config.py
# Environment-aware configuration for the listings backend.
#
# Settings are read once by load_settings() and handed to create_app();
# no other module looks at os.environ.

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Literal, Mapping, Optional

from dotenv import load_dotenv

DEV_SECRET_KEY = "dev-secret-change-me"


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration injected into the application at startup."""

    env: Literal["dev", "staging", "prod"] = "dev"

    # Database
    database_path: str = "realestate.db"

    # JWT
    secret_key: str = DEV_SECRET_KEY
    algorithm: str = "HS256"
    token_days: int = 30

    # CORS
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Asset store (Cloudinary when all three are set, local disk otherwise)
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    upload_dir: str = "uploads"
    upload_base_url: str = "/uploads"

    # Listing queries
    default_page_size: int = 10
    max_page_size: int = 100
    max_images: int = 5
    strict_filters: bool = False
    public_active_only: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"

    @property
    def is_prod(self) -> bool:
        return self.env == "prod"

    @property
    def cloudinary_enabled(self) -> bool:
        return bool(
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        )


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    A .env file in the working directory is loaded first (without overriding
    variables already set). Pass an explicit mapping to bypass the process
    environment entirely.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    app_env = env.get("ENV", "dev").strip().lower() or "dev"
    if app_env not in ("dev", "staging", "prod"):
        raise ValueError(f"ENV must be dev, staging or prod, got {app_env!r}")

    secret_key = env.get("JWT_SECRET", "").strip()
    if not secret_key:
        if app_env != "dev":
            raise ValueError("JWT_SECRET must be set outside dev")
        secret_key = DEV_SECRET_KEY

    origins_raw = env.get("CORS_ORIGINS", "").strip()
    if origins_raw:
        cors_origins = [o.strip() for o in origins_raw.split(",") if o.strip()]
    elif app_env == "dev":
        cors_origins = ["*"]
    else:
        cors_origins = []

    return Settings(
        env=app_env,  # type: ignore[arg-type]
        database_path=env.get("DATABASE_PATH", "realestate.db"),
        secret_key=secret_key,
        algorithm=env.get("JWT_ALGORITHM", "HS256"),
        token_days=_env_int(env, "TOKEN_DAYS", 30),
        cors_origins=cors_origins,
        cloudinary_cloud_name=env.get("CLOUDINARY_CLOUD_NAME") or None,
        cloudinary_api_key=env.get("CLOUDINARY_API_KEY") or None,
        cloudinary_api_secret=env.get("CLOUDINARY_API_SECRET") or None,
        upload_dir=env.get("UPLOAD_DIR", "uploads"),
        upload_base_url=env.get("UPLOAD_BASE_URL", "/uploads").rstrip("/"),
        default_page_size=_env_int(env, "DEFAULT_PAGE_SIZE", 10),
        max_page_size=_env_int(env, "MAX_PAGE_SIZE", 100),
        max_images=_env_int(env, "MAX_IMAGES", 5),
        strict_filters=_env_bool(env, "STRICT_FILTERS", False),
        public_active_only=_env_bool(env, "PUBLIC_ACTIVE_ONLY", False),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
        log_format=env.get("LOG_FORMAT", "json").lower(),
    )
