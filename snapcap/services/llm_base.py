"""
SnapCap Backend: Abstract Caption Model Interface
===================================================

What:  The contract a generative-model backend fulfils for caption writing.
Why:   CaptionService owns the fallback policy; the model only has to produce
       text or raise. Swapping Gemini for another provider (or a stub in
       tests) touches nothing else.
Who:   Implemented by GeminiCaptionModel; consumed by CaptionService.

Contract:
    - Every method may raise anything; the caller converts all failures into
      the offline result. Implementations should not catch-and-hide.
    - Returned text is raw model output; cleaning happens in CaptionService.
"""

from abc import ABC, abstractmethod
from typing import Dict


class CaptionModel(ABC):
    """Abstract generative backend for captions and hashtags."""

    @property
    @abstractmethod
    def configured(self) -> bool:
        """False when credentials are missing; the caller skips the model."""
        ...

    @abstractmethod
    async def caption_for_image(
        self, image: bytes, mime_type: str, context: Dict[str, str]
    ) -> str:
        """
        Write one caption for an image.

        Args:
            image:     Raw image bytes
            mime_type: e.g. "image/jpeg"
            context:   {"location", "mood", "timeOfDay"}, values may be empty
        """
        ...

    @abstractmethod
    async def hashtags_for_caption(self, caption: str, context: Dict[str, str]) -> str:
        """Return raw text containing (ideally) four '#tags'."""
        ...

    @abstractmethod
    async def caption_for_story(self, image_count: int, context: Dict[str, str]) -> str:
        """Write one caption for a story of `image_count` frames."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability probe (no generation quota spent)."""
        ...
