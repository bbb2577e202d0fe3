"""
SnapCap Backend: Post, Comment, Duet and Caption Schemas
==========================================================

What:  Request validation and response shapes for feed content.
Why:   Post creation arrives as multipart form data (media + fields), so the
       create models are built by the route from form values and validated
       here, which keeps the rules in one place for JSON and form callers.

Validation rules:
    caption 1-500, hashtags: each 1-50 chars of [A-Za-z0-9_],
    location name <= 100, lat in [-90, 90], lng in [-180, 180],
    comment 1-500, duet response 1-1000.
"""

import json
import re
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from snapcap.models.post import Comment, Duet, Post
from snapcap.schemas.common import APIModel, Pagination
from snapcap.schemas.user import Coordinates, UserSummary

HASHTAG_RE = re.compile(r"^[a-zA-Z0-9_]{1,50}$")


def _check_caption(value: str) -> str:
    value = value.strip()
    if not 1 <= len(value) <= 500:
        raise ValueError("Caption must be between 1 and 500 characters")
    return value


def _check_comment(value: str) -> str:
    value = value.strip()
    if not 1 <= len(value) <= 500:
        raise ValueError("Comment must be between 1 and 500 characters")
    return value


def parse_hashtags(raw) -> List[str]:
    """
    Normalize hashtags from a JSON array, a JSON string or a comma list.

    Leading '#' is dropped; blanks are ignored; order and duplicates are
    preserved only for the first occurrence.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("["):
            try:
                raw = json.loads(text)
            except json.JSONDecodeError:
                raise ValueError("Hashtags must be an array")
        else:
            raw = text.split(",")
    if not isinstance(raw, list):
        raise ValueError("Hashtags must be an array")
    tags: List[str] = []
    for item in raw:
        if not isinstance(item, str):
            raise ValueError("Each hashtag must be a string")
        tag = item.strip().lstrip("#")
        if not tag:
            continue
        if not HASHTAG_RE.match(tag):
            raise ValueError(
                "Each hashtag must be 1-50 characters and contain only letters, numbers, and underscores"
            )
        if tag not in tags:
            tags.append(tag)
    return tags


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class PostLocationIn(APIModel):
    name: Optional[str] = Field(default=None, max_length=100)
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)

    @model_validator(mode="after")
    def both_coordinates(self) -> "PostLocationIn":
        if (self.lat is None) != (self.lng is None):
            raise ValueError("Latitude and longitude must be provided together")
        return self


class PostCreate(APIModel):
    caption: str
    hashtags: List[str] = Field(default_factory=list)
    location: Optional[PostLocationIn] = None
    is_public: bool = True

    @field_validator("caption")
    @classmethod
    def validate_caption(cls, v: str) -> str:
        return _check_caption(v)

    @field_validator("hashtags", mode="before")
    @classmethod
    def validate_hashtags(cls, v):
        return parse_hashtags(v)


class PostUpdate(APIModel):
    caption: Optional[str] = None
    hashtags: Optional[List[str]] = None
    location: Optional[PostLocationIn] = None
    is_public: Optional[bool] = None

    @field_validator("caption")
    @classmethod
    def validate_caption(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _check_caption(v)

    @field_validator("hashtags", mode="before")
    @classmethod
    def validate_hashtags(cls, v):
        return None if v is None else parse_hashtags(v)


class LikeRequest(APIModel):
    liked: bool


class CommentCreate(APIModel):
    content: str
    parent_comment_id: Optional[uuid.UUID] = None

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        return _check_comment(v)


class CommentUpdate(APIModel):
    content: str

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        return _check_comment(v)


class DuetResponseIn(APIModel):
    response: str

    @field_validator("response")
    @classmethod
    def validate_response(cls, v: str) -> str:
        v = v.strip()
        if not 1 <= len(v) <= 1000:
            raise ValueError("Response must be between 1 and 1000 characters")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class PostLocation(APIModel):
    name: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class PostOut(APIModel):
    id: uuid.UUID
    author: UserSummary
    image: str
    media_type: str
    caption: str
    hashtags: List[str]
    location: Optional[PostLocation] = None
    likes_count: int
    comments_count: int
    shares_count: int
    duets_count: int
    views: int
    streak: int
    is_public: bool
    is_liked: bool = False
    is_saved: bool = False
    created_at: datetime

    @classmethod
    def from_post(cls, post: Post, is_liked: bool = False, is_saved: bool = False) -> "PostOut":
        location = None
        if post.location_name or post.latitude is not None:
            coords = None
            if post.latitude is not None and post.longitude is not None:
                coords = Coordinates(lat=post.latitude, lng=post.longitude)
            location = PostLocation(name=post.location_name, coordinates=coords)
        return cls(
            id=post.id,
            author=UserSummary.model_validate(post.author),
            image=post.image,
            media_type=post.media_type,
            caption=post.caption,
            hashtags=list(post.hashtags or []),
            location=location,
            likes_count=post.likes_count,
            comments_count=post.comments_count,
            shares_count=post.shares_count,
            duets_count=post.duets_count,
            views=post.views,
            streak=post.streak,
            is_public=post.is_public,
            is_liked=is_liked,
            is_saved=is_saved,
            created_at=post.created_at,
        )


class PostRef(APIModel):
    """Compact reference used inside duets and notifications."""

    id: uuid.UUID
    image: str
    caption: str
    author_id: uuid.UUID


class PostList(APIModel):
    posts: List[PostOut]
    pagination: Pagination


class LikeState(APIModel):
    is_liked: bool
    likes_count: int


class SaveState(APIModel):
    is_saved: bool


class ShareState(APIModel):
    shares_count: int


class PinState(APIModel):
    is_pinned: bool


class CommentOut(APIModel):
    id: uuid.UUID
    post_id: uuid.UUID
    author: UserSummary
    content: str
    parent_comment_id: Optional[uuid.UUID] = None
    is_pinned: bool
    likes_count: int
    replies_count: int
    is_liked: bool = False
    created_at: datetime

    @classmethod
    def from_comment(cls, comment: Comment, is_liked: bool = False) -> "CommentOut":
        return cls(
            id=comment.id,
            post_id=comment.post_id,
            author=UserSummary.model_validate(comment.author),
            content=comment.content,
            parent_comment_id=comment.parent_id,
            is_pinned=comment.is_pinned,
            likes_count=comment.likes_count,
            replies_count=comment.replies_count,
            is_liked=is_liked,
            created_at=comment.created_at,
        )


class CommentList(APIModel):
    comments: List[CommentOut]
    pagination: Pagination


class DuetOut(APIModel):
    id: uuid.UUID
    author: UserSummary
    response: str
    original_post: Optional[PostRef] = None
    response_post: Optional[PostRef] = None
    likes_count: int
    is_liked: bool = False
    created_at: datetime

    @classmethod
    def from_duet(cls, duet: Duet, is_liked: bool = False) -> "DuetOut":
        def ref(post: Optional[Post]) -> Optional[PostRef]:
            if post is None:
                return None
            return PostRef(id=post.id, image=post.image, caption=post.caption, author_id=post.author_id)

        return cls(
            id=duet.id,
            author=UserSummary.model_validate(duet.author),
            response=duet.response,
            original_post=ref(duet.original_post),
            response_post=ref(duet.response_post),
            likes_count=duet.likes_count,
            is_liked=is_liked,
            created_at=duet.created_at,
        )


class DuetList(APIModel):
    duets: List[DuetOut]
    pagination: Pagination


class CaptionResult(APIModel):
    """Result of caption generation; `generated` is False on the fallback path."""

    caption: str
    hashtags: List[str] = Field(min_length=4, max_length=4)
    generated: bool


class HashtagCount(APIModel):
    hashtag: str
    count: int
