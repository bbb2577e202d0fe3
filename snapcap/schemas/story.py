"""
SnapCap Backend: Story Schemas
================================

Story items accept optional music and a text overlay:
    music:        title <= 100, artist <= 100, duration 0-300 seconds
    text overlay: text <= 100, color #RRGGBB, position x/y 0-100,
                  size small | medium | large
"""

import re
import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from snapcap.models.story import Story, StoryItem
from snapcap.schemas.common import APIModel
from snapcap.schemas.user import UserSummary

HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


class OverlayPosition(APIModel):
    x: float = Field(default=50, ge=0, le=100)
    y: float = Field(default=50, ge=0, le=100)


class TextOverlay(APIModel):
    text: str = Field(default="", max_length=100)
    color: str = "#ffffff"
    position: OverlayPosition = Field(default_factory=OverlayPosition)
    size: Literal["small", "medium", "large"] = "medium"

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if not HEX_COLOR_RE.match(v):
            raise ValueError("Text color must be a valid hex color")
        return v


class Music(APIModel):
    title: str = Field(default="", max_length=100)
    artist: str = Field(default="", max_length=100)
    preview: Optional[str] = None
    duration: Optional[float] = Field(default=None, ge=0, le=300)


class StoryItemIn(APIModel):
    caption: str = Field(default="", max_length=200)
    music: Optional[Music] = None
    text_overlay: Optional[TextOverlay] = None


class StoryItemOut(APIModel):
    id: uuid.UUID
    image: str
    caption: str
    music: Optional[Music] = None
    text_overlay: Optional[TextOverlay] = None
    timestamp: datetime

    @classmethod
    def from_item(cls, item: StoryItem) -> "StoryItemOut":
        return cls(
            id=item.id,
            image=item.media_url,
            caption=item.caption,
            music=Music.model_validate(item.music) if item.music else None,
            text_overlay=TextOverlay.model_validate(item.text_overlay) if item.text_overlay else None,
            timestamp=item.created_at,
        )


class StoryOut(APIModel):
    id: uuid.UUID
    author: UserSummary
    content: List[StoryItemOut]
    views_count: int
    is_viewed: bool = False
    is_active: bool
    expires_at: datetime
    created_at: datetime

    @classmethod
    def from_story(cls, story: Story, is_viewed: bool = False) -> "StoryOut":
        return cls(
            id=story.id,
            author=UserSummary.model_validate(story.author),
            content=[StoryItemOut.from_item(i) for i in story.items],
            views_count=story.views_count,
            is_viewed=is_viewed,
            is_active=story.is_active,
            expires_at=story.expires_at,
            created_at=story.created_at,
        )


class StoryList(APIModel):
    stories: List[StoryOut]


class StoryViewState(APIModel):
    is_viewed: bool
    views_count: int
