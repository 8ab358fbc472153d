# kb_discovery/auth.py

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import bcrypt
import jwt
from fastapi import Request

from kb_discovery import settings
from kb_discovery.errors import AuthError, Forbidden

logger = logging.getLogger("kb_discovery")

BCRYPT_ROUNDS = 10


def _pw_bytes(password: str) -> bytes:
    # avoids bcrypt 72-byte limit by hashing to fixed length
    return hashlib.sha256(password.encode("utf-8")).hexdigest().encode("utf-8")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_pw_bytes(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    stored = str(password_hash).encode("utf-8")
    try:
        if bcrypt.checkpw(_pw_bytes(password), stored):
            return True
        # hashes written before the sha256 prehash was introduced
        raw = password.encode("utf-8")
        return len(raw) <= 72 and bcrypt.checkpw(raw, stored)
    except ValueError as e:
        logger.warning(f"[AUTH] Unusable password hash: {e}")
        return False


def issue_token(user_id: str, username: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "userId": user_id,
        "username": username,
        "role": role,
        "iat": now,
        "exp": now + timedelta(days=settings.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


def require_user(request: Request) -> Dict[str, Any]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise AuthError("Access token required")
    token = auth_header.replace("Bearer ", "", 1).strip()
    if not token:
        raise AuthError("Access token required")
    try:
        claims = decode_token(token)
    except jwt.PyJWTError as exc:
        raise AuthError("Invalid or expired token") from exc
    request.state.user = claims
    return claims


def require_admin(request: Request) -> Dict[str, Any]:
    claims = require_user(request)
    if claims.get("role") != "admin":
        raise Forbidden("Admin access required")
    return claims
