"""
SnapCap Backend: Auth Routes
==============================

What:  /api/auth: register, login, logout, token refresh, me, verify.
Why:   Access tokens are short-lived bearer tokens; refresh tokens are
       stored (as digests) so logout and rotation can revoke them.

Rate limiting:
    register and login share the "auth" action window keyed by client IP,
    on top of the global per-IP middleware.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.config import settings
from snapcap.database import get_db_session
from snapcap.dependencies import get_current_user
from snapcap.middleware.rate_limit import action_limit
from snapcap.models.user import User
from snapcap.schemas.common import Envelope, MessageEnvelope, ok
from snapcap.schemas.user import (
    AuthPayload,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
    UserPrivate,
)
from snapcap.services.auth_service import auth_service
from snapcap.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

auth_limit = action_limit(
    "auth",
    settings.auth_rate_limit_requests,
    settings.auth_rate_limit_window,
    message="Too many authentication attempts, please try again later.",
)


async def _private(db: AsyncSession, user: User) -> UserPrivate:
    followers, following = await user_service.follow_counts(db, user.id)
    return UserPrivate.from_user(user, followers, following)


@router.post(
    "/register",
    status_code=201,
    response_model=Envelope[AuthPayload],
    dependencies=[Depends(auth_limit)],
    summary="Create an account",
)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db_session)):
    user, access, refresh = await auth_service.register(db, body)
    payload = AuthPayload(user=await _private(db, user), access_token=access, refresh_token=refresh)
    return ok(payload, "User registered successfully")


@router.post(
    "/login",
    response_model=Envelope[AuthPayload],
    dependencies=[Depends(auth_limit)],
    summary="Exchange credentials for a token pair",
)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db_session)):
    user, access, refresh = await auth_service.login(db, body.email, body.password)
    payload = AuthPayload(user=await _private(db, user), access_token=access, refresh_token=refresh)
    return ok(payload, "Login successful")


@router.post("/logout", response_model=MessageEnvelope, summary="Revoke a refresh token and go offline")
async def logout(
    body: LogoutRequest = LogoutRequest(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await auth_service.logout(db, user, body.refresh_token)
    return MessageEnvelope(message="Logout successful")


@router.post("/refresh-token", response_model=Envelope[TokenPair], summary="Rotate a refresh token")
async def refresh_token(body: RefreshRequest = RefreshRequest(), db: AsyncSession = Depends(get_db_session)):
    access, refresh = await auth_service.refresh(db, body.refresh_token)
    return ok(TokenPair(access_token=access, refresh_token=refresh), "Token refreshed successfully")


@router.get("/me", response_model=Envelope[UserPrivate], summary="The caller's own profile")
async def me(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return ok(await _private(db, user))


@router.get("/verify", response_model=Envelope[UserPrivate], summary="Check an access token")
async def verify(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return ok(await _private(db, user), "Token is valid")
