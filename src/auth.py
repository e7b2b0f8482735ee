# src/auth.py
"""
Password hashing, JWT issuing and the route guards.

Tokens carry the profile id in ``sub`` and the role in ``role``; the guard
re-reads the profile on every request so a role change or deletion takes
effect immediately.
"""
import logging
from datetime import datetime, timedelta
from functools import wraps
from typing import Any, Dict, Optional

from flask import current_app, g, jsonify, request
from jose import JWTError, jwt
from passlib.context import CryptContext

from src.db import get_db_session
from src.db.models import Profile

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def _secret() -> str:
    return current_app.config["JWT_SECRET_KEY"]


def create_access_token(
    profile: Profile, expires_delta: Optional[timedelta] = None
) -> str:
    """Issue a signed access token for ``profile``."""
    if expires_delta is None:
        expires_delta = timedelta(
            seconds=current_app.config.get("JWT_ACCESS_TOKEN_EXPIRES", 3600)
        )
    to_encode = {
        "sub": profile.user_id,
        "role": profile.role,
        "email": profile.email,
        "exp": datetime.utcnow() + expires_delta,
    }
    return jwt.encode(to_encode, _secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except JWTError as e:
        logger.debug(f"JWT rejected: {str(e)}")
        return None


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def _load_current_user():
    token = _bearer_token()
    if not token:
        return None, (jsonify({"error": "Unauthorized"}), 401)

    payload = decode_access_token(token)
    if not payload or not payload.get("sub"):
        return None, (jsonify({"error": "Unauthorized"}), 401)

    session = get_db_session()
    profile = session.get(Profile, payload["sub"])
    if profile is None:
        return None, (jsonify({"error": "Unauthorized"}), 401)
    return profile, None


def require_role(*roles: str):
    """Route decorator: requires a valid bearer token whose profile has one
    of ``roles``. Sets ``g.current_user`` to the Profile."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            profile, error = _load_current_user()
            if error is not None:
                return error
            if roles and profile.role not in roles:
                return jsonify({"error": "Forbidden"}), 403
            g.current_user = profile
            return fn(*args, **kwargs)

        return wrapper

    return decorator


require_auth = require_role()
require_admin = require_role("admin")
require_therapist = require_role("therapist")
