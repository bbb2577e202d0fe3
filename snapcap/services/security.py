"""
SnapCap Backend: Password Hashing and JSON Web Tokens
=======================================================

What:  Hashing/verification of passwords and issuing/decoding of access and
       refresh tokens.
Why:   Kept free of database access so the realtime gateway and the HTTP
       dependencies share exactly one decoding path (and one set of error
       messages).
How:   werkzeug.security for salted password hashes, PyJWT for HS256 tokens.
       Access and refresh tokens use different secrets and carry a `type`
       claim so one can never be replayed as the other.

Token claims:
    sub   user id (string UUID)
    type  "access" | "refresh"
    iat   issued at
    exp   expiry (7 days for access, 30 days for refresh by default)
    jti   random id (makes two tokens issued in the same second differ)
"""

import hashlib
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional, Tuple

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from snapcap.config import settings
from snapcap.database import utcnow
from snapcap.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


# ── Passwords ─────────────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


# ── Tokens ────────────────────────────────────────────────────────────────

def _secret_for(token_type: str) -> str:
    return settings.jwt_refresh_secret if token_type == REFRESH else settings.jwt_secret


def create_token(
    user_id: uuid.UUID,
    token_type: str = ACCESS,
    expires_delta: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> Tuple[str, datetime]:
    """
    Sign a token for `user_id`.

    Returns:
        (encoded token, expiry timestamp)
    """
    issued = now or utcnow()
    if expires_delta is None:
        if token_type == REFRESH:
            expires_delta = timedelta(days=settings.refresh_token_expire_days)
        else:
            expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    expires_at = issued + expires_delta
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": int(issued.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": uuid.uuid4().hex,
    }
    token = jwt.encode(payload, _secret_for(token_type), algorithm=settings.jwt_algorithm)
    return token, expires_at


def create_token_pair(user_id: uuid.UUID) -> Tuple[str, str, datetime]:
    """Returns (access token, refresh token, refresh expiry)."""
    access, _ = create_token(user_id, ACCESS)
    refresh, refresh_expires = create_token(user_id, REFRESH)
    return access, refresh, refresh_expires


def decode_token(token: Optional[str], token_type: str = ACCESS) -> uuid.UUID:
    """
    Validate a token and return the user id it was issued for.

    Raises:
        AuthenticationError with one of three distinct messages:
            missing token → "Access token required"
            expired       → "Token expired"
            anything else → "Invalid token"
    """
    if not token:
        raise AuthenticationError(AuthenticationError.MISSING)

    try:
        payload = jwt.decode(
            token,
            _secret_for(token_type),
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "type"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError(AuthenticationError.EXPIRED)
    except jwt.InvalidTokenError as e:
        logger.debug("Rejected %s token: %s", token_type, str(e))
        raise AuthenticationError(AuthenticationError.INVALID)

    if payload.get("type") != token_type:
        raise AuthenticationError(AuthenticationError.INVALID)

    try:
        return uuid.UUID(str(payload["sub"]))
    except ValueError:
        raise AuthenticationError(AuthenticationError.INVALID)


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an `Authorization: Bearer <token>` header value."""
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()


def fingerprint(token: str) -> str:
    """SHA-256 digest under which refresh tokens are stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
