"""
realestate_api/auth_context.py

Shared authentication primitives for FastAPI dependency injection.

Contains:
- get_settings / get_db: request-scoped access to injected settings and a DB connection
- hash_password / verify_password: PBKDF2 password hashing
- create_access_token / verify_token: JWT issuance and verification
- AuthContext: identity resolved from the bearer token
- require_auth_context: FastAPI dependency for auth enforcement
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict

from realestate_api.config import Settings
from realestate_api.db import connect
from realestate_api.errors import UnauthorizedError
from realestate_api.models import UserRole
from realestate_api.store import UserStore

logger = logging.getLogger(__name__)

# auto_error=False so a missing header surfaces as our 401, not FastAPI's default
security = HTTPBearer(auto_error=False)

PASSWORD_ALGORITHM = "pbkdf2_sha256"
PASSWORD_ITERATIONS = 390000
SALT_BYTES = 16


# ---------------------------------------------------------
# Settings / DB Helpers
# ---------------------------------------------------------
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(settings: Settings = Depends(get_settings)) -> Iterator[sqlite3.Connection]:
    """Yield a connection for the duration of one request."""
    conn = connect(settings.database_path)
    try:
        yield conn
    finally:
        conn.close()


# ---------------------------------------------------------
# Passwords
# ---------------------------------------------------------
def hash_password(password: str, iterations: int = PASSWORD_ITERATIONS) -> str:
    salt = os.urandom(SALT_BYTES)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations, dklen=32)
    return "$".join(
        [
            PASSWORD_ALGORITHM,
            str(iterations),
            base64.b64encode(salt).decode("utf-8"),
            base64.b64encode(digest).decode("utf-8"),
        ]
    )


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iter_str, salt_b64, hash_b64 = encoded.split("$")
        if algorithm != PASSWORD_ALGORITHM:
            return False
        iterations = int(iter_str)
        salt = base64.b64decode(salt_b64.encode("utf-8"))
        stored = base64.b64decode(hash_b64.encode("utf-8"))
    except ValueError:
        return False
    new_digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations, dklen=len(stored))
    return hmac.compare_digest(new_digest, stored)


# ---------------------------------------------------------
# JWT Tokens
# ---------------------------------------------------------
def create_access_token(user_id: str, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(days=settings.token_days),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def verify_token(token: str, settings: Settings) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        UnauthorizedError: If token is expired or invalid
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")


# ---------------------------------------------------------
# AuthContext
# ---------------------------------------------------------
class AuthContext(BaseModel):
    """
    Identity derived from server-side JWT verification plus the users table.
    This is the ONLY source of truth for the requester's id and role.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: UserRole
    name: str
    email: str


def require_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
    conn: sqlite3.Connection = Depends(get_db),
) -> AuthContext:
    """
    Resolve the bearer token to an AuthContext.

    Raises:
        UnauthorizedError: Missing header, bad token, or user no longer exists
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Not authorized, no token")

    payload = verify_token(credentials.credentials, settings)
    user_id = payload.get("sub")
    if not user_id:
        logger.info("[AUTH] Missing user id in token payload")
        raise UnauthorizedError("Invalid token payload")

    user = UserStore(conn).get(str(user_id))
    if user is None:
        logger.info("[AUTH] User not found: user_id=%s", user_id)
        raise UnauthorizedError("User not found")

    ctx = AuthContext(user_id=user.id, role=user.role, name=user.name, email=user.email)
    logger.debug("[AUTH] Authenticated: user_id=%s, role=%s", ctx.user_id, ctx.role.value)
    return ctx
