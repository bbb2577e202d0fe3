"""
SnapCap Backend: Account and Profile Schemas
==============================================

What:  Request bodies for auth/profile endpoints and the user shapes the API
       returns (summary, public profile, own profile, friend card).
Why:   Response models are built field by field, so the password hash has
       no path into a response body.

Validation rules:
    username:     3-30 chars, letters/digits/underscore
    email:        syntactically valid address, stored lowercased
    password:     at least 6 chars with a lowercase, an uppercase and a digit
    display name: 1-50 chars
    bio <= 150, location <= 100, website must be an http(s) URL
"""

import re
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from snapcap.models.user import User, parse_coordinates
from snapcap.schemas.common import APIModel, Pagination

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
URL_RE = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)
PHONE_RE = re.compile(r"^\+?[0-9 ()\-]{6,20}$")


def _check_username(value: str) -> str:
    value = value.strip()
    if not 3 <= len(value) <= 30:
        raise ValueError("Username must be between 3 and 30 characters")
    if not USERNAME_RE.match(value):
        raise ValueError("Username can only contain letters, numbers, and underscores")
    return value


def _check_email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_RE.match(value):
        raise ValueError("Please provide a valid email")
    return value


def _check_password(value: str) -> str:
    if len(value) < 6:
        raise ValueError("Password must be at least 6 characters long")
    if not (
        re.search(r"[a-z]", value)
        and re.search(r"[A-Z]", value)
        and re.search(r"\d", value)
    ):
        raise ValueError(
            "Password must contain at least one lowercase letter, one uppercase letter, and one number"
        )
    return value


def _check_display_name(value: str) -> str:
    value = value.strip()
    if not 1 <= len(value) <= 50:
        raise ValueError("Display name must be between 1 and 50 characters")
    return value


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class RegisterRequest(APIModel):
    username: str
    email: str
    password: str
    display_name: str

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        return _check_username(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v: str) -> str:
        return _check_display_name(v)


class LoginRequest(APIModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


class RefreshRequest(APIModel):
    refresh_token: Optional[str] = None


class LogoutRequest(APIModel):
    refresh_token: Optional[str] = None


class ProfileUpdate(APIModel):
    """PUT /api/users/{id}: every field optional, only provided ones change."""

    display_name: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    is_private: Optional[bool] = None

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_display_name(v)

    @field_validator("bio")
    @classmethod
    def validate_bio(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > 150:
            raise ValueError("Bio cannot exceed 150 characters")
        return v

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > 100:
            raise ValueError("Location cannot exceed 100 characters")
        return v

    @field_validator("website")
    @classmethod
    def validate_website(cls, v: Optional[str]) -> Optional[str]:
        if v and not URL_RE.match(v):
            raise ValueError("Please provide a valid URL")
        return v

    @field_validator("avatar")
    @classmethod
    def validate_avatar(cls, v: Optional[str]) -> Optional[str]:
        if v and not (URL_RE.match(v) or v.startswith("/")):
            raise ValueError("Avatar must be a URL")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        if v and not PHONE_RE.match(v):
            raise ValueError("Please provide a valid phone number")
        return v


class LocationUpdate(APIModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UserSummary(APIModel):
    """Author/participant card embedded in posts, comments, messages."""

    id: uuid.UUID
    username: str
    display_name: str
    avatar: str
    is_online: bool = False


class UserPublic(APIModel):
    """Public profile; follower counts are numbers, never id lists."""

    id: uuid.UUID
    username: str
    display_name: str
    avatar: str
    bio: str
    location: str
    website: str
    is_online: bool
    last_seen: datetime
    join_date: datetime
    streak: int
    followers: int = 0
    following: int = 0
    is_private: bool
    is_following: Optional[bool] = None

    @classmethod
    def from_user(
        cls,
        user: User,
        followers: int = 0,
        following: int = 0,
        is_following: Optional[bool] = None,
    ) -> "UserPublic":
        return cls(
            id=user.id,
            username=user.username,
            display_name=user.display_name,
            avatar=user.avatar,
            bio=user.bio,
            location=user.location,
            website=user.website,
            is_online=user.is_online,
            last_seen=user.last_seen,
            join_date=user.created_at,
            streak=user.streak,
            followers=followers,
            following=following,
            is_private=user.is_private,
            is_following=is_following,
        )


class UserSettings(APIModel):
    notifications: bool
    privacy: str
    theme: str


class UserPrivate(UserPublic):
    """The caller's own profile (adds contact data and settings)."""

    email: str
    phone: str
    settings: UserSettings

    @classmethod
    def from_user(cls, user: User, followers: int = 0, following: int = 0, **_) -> "UserPrivate":
        public = UserPublic.from_user(user, followers, following)
        return cls(
            **public.model_dump(),
            email=user.email,
            phone=user.phone,
            settings=UserSettings(
                notifications=user.notifications_enabled,
                privacy=user.privacy,
                theme=user.theme,
            ),
        )


class AuthPayload(APIModel):
    user: UserPrivate
    access_token: str
    refresh_token: str


class TokenPair(APIModel):
    access_token: str
    refresh_token: str


class Coordinates(APIModel):
    lat: float
    lng: float


class LocationPayload(APIModel):
    user_id: uuid.UUID
    location: Optional[Coordinates] = None
    raw: str = ""
    last_seen: datetime
    is_online: bool


class FriendSummary(APIModel):
    """Friend card for the friends list and the map."""

    id: uuid.UUID
    name: str
    display_name: str
    username: str
    avatar: str
    bio: str
    location: Optional[Coordinates] = None
    is_online: bool
    last_seen: datetime
    streak: int
    followers_count: int
    following_count: int
    is_private: bool

    @classmethod
    def from_user(cls, user: User, followers: int, following: int) -> "FriendSummary":
        coords = parse_coordinates(user.location)
        return cls(
            id=user.id,
            name=user.display_name,
            display_name=user.display_name,
            username=user.username,
            avatar=user.avatar,
            bio=user.bio,
            location=Coordinates(**coords) if coords else None,
            is_online=user.is_online,
            last_seen=user.last_seen,
            streak=user.streak,
            followers_count=followers,
            following_count=following,
            is_private=user.is_private,
        )


class UserSearchResult(UserSummary):
    bio: str = ""
    last_seen: datetime
    is_following: bool = False
    followers_count: int = 0
    following_count: int = 0


class UserList(APIModel):
    users: List[UserSummary]
    pagination: Optional[Pagination] = None


class FriendList(APIModel):
    friends: List[FriendSummary]
    total: int


class FollowState(APIModel):
    is_following: bool
    followers_count: int


class BlockState(APIModel):
    is_blocked: bool
