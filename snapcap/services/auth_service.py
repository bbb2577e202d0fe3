"""
SnapCap Backend: Authentication Service
=========================================

What:  Registration, login, logout and refresh-token rotation.
How:   Passwords via werkzeug hashes, tokens via PyJWT (snapcap.services.security).
       Refresh tokens are persisted as SHA-256 digests; each refresh deletes
       the presented token and stores the newly issued one.

Login Flow:
    1. Look up by lowercased email
    2. Verify password hash (same message for unknown email and bad password)
    3. Mark online, stamp last_seen
    4. Issue access + refresh, persist the refresh digest
"""

import logging
import uuid
from typing import Optional, Tuple

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import as_utc, utcnow
from snapcap.exceptions import AuthenticationError, ConflictError, ValidationError
from snapcap.models.user import RefreshToken, User
from snapcap.schemas.user import RegisterRequest
from snapcap.services.security import (
    REFRESH,
    create_token_pair,
    decode_token,
    fingerprint,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
REFRESH_REQUIRED = "Refresh token required"
INVALID_REFRESH = "Invalid refresh token"


class AuthService:
    """Account creation and session tokens."""

    async def _issue_tokens(self, db: AsyncSession, user: User) -> Tuple[str, str]:
        access, refresh, refresh_expires = create_token_pair(user.id)
        db.add(RefreshToken(user_id=user.id, token_hash=fingerprint(refresh), expires_at=refresh_expires))
        await db.flush()
        return access, refresh

    async def register(self, db: AsyncSession, data: RegisterRequest) -> Tuple[User, str, str]:
        """
        Create an account and sign the user in.

        Raises:
            ConflictError("email" | "username") if either is taken
        """
        result = await db.execute(
            select(User).where(or_(User.email == data.email, User.username == data.username))
        )
        existing = result.scalars().first()
        if existing is not None:
            raise ConflictError("email" if existing.email == data.email else "username")

        user = User(
            username=data.username,
            email=data.email,
            password_hash=hash_password(data.password),
            display_name=data.display_name,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError as e:
            # Lost a race against a concurrent registration
            await db.rollback()
            field = "email" if "email" in str(e.orig).lower() else "username"
            raise ConflictError(field, context={"db_error": str(e.orig)})

        access, refresh = await self._issue_tokens(db, user)
        logger.info("User registered: %s (%s)", user.username, user.id)
        return user, access, refresh

    async def login(self, db: AsyncSession, email: str, password: str) -> Tuple[User, str, str]:
        result = await db.execute(select(User).where(User.email == email.strip().lower()))
        user = result.scalar_one_or_none()
        if user is None or not verify_password(user.password_hash, password):
            raise AuthenticationError(INVALID_CREDENTIALS)

        user.is_online = True
        user.last_seen = utcnow()
        access, refresh = await self._issue_tokens(db, user)
        logger.info("User logged in: %s", user.username)
        return user, access, refresh

    async def logout(self, db: AsyncSession, user: User, refresh_token: Optional[str] = None) -> None:
        if refresh_token:
            await db.execute(
                delete(RefreshToken).where(
                    RefreshToken.user_id == user.id,
                    RefreshToken.token_hash == fingerprint(refresh_token),
                )
            )
        user.is_online = False
        user.last_seen = utcnow()
        await db.flush()
        logger.info("User logged out: %s", user.username)

    async def refresh(self, db: AsyncSession, refresh_token: Optional[str]) -> Tuple[str, str]:
        """
        Exchange a refresh token for a new pair. The presented token is
        single-use: its stored digest is replaced by the new one.

        Raises:
            ValidationError  when no token was sent
            AuthenticationError("Invalid refresh token") for anything else
        """
        if not refresh_token:
            raise ValidationError(message=REFRESH_REQUIRED, field="refreshToken")

        try:
            user_id = decode_token(refresh_token, token_type=REFRESH)
        except AuthenticationError as e:
            if e.message == AuthenticationError.EXPIRED:
                raise
            raise AuthenticationError(INVALID_REFRESH)

        result = await db.execute(
            select(RefreshToken).where(
                RefreshToken.user_id == user_id,
                RefreshToken.token_hash == fingerprint(refresh_token),
            )
        )
        stored = result.scalar_one_or_none()
        user = await db.get(User, user_id)
        if stored is None or user is None:
            raise AuthenticationError(INVALID_REFRESH)

        if as_utc(stored.expires_at) <= utcnow():
            raise AuthenticationError(AuthenticationError.EXPIRED)

        await db.delete(stored)
        access, refresh = await self._issue_tokens(db, user)
        return access, refresh

    async def resolve_user(self, db: AsyncSession, user_id: uuid.UUID) -> User:
        """Load the user a verified access token was issued for."""
        user = await db.get(User, user_id)
        if user is None:
            raise AuthenticationError(AuthenticationError.USER_NOT_FOUND)
        return user


# ── Singleton Instance ────────────────────────────────────────────────────
auth_service = AuthService()
