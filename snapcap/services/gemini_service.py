"""
SnapCap Backend: Google Gemini Caption Model
==============================================

What:  CaptionModel implementation backed by Google Gemini, plus the circuit
       breaker that keeps a failing Gemini from slowing every upload.
Why:   Caption generation is a convenience feature. When Gemini is slow or
       down, users should get an instant offline caption, not a 30 s wait
       followed by the same offline caption.
How:   google-generativeai `GenerativeModel.generate_content_async` with the
       image as an inline part. The breaker is consulted and updated by
       CaptionService around every call.
Who:   Instantiated once as `gemini_model`; used only through CaptionService.
"""

import asyncio
import logging
import time
from typing import Dict, Optional

import google.generativeai as genai

from snapcap.config import settings
from snapcap.exceptions import CircuitBreakerOpenError
from snapcap.services.llm_base import CaptionModel

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Implements the circuit breaker pattern to prevent cascade failures.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN
        OPEN (rejecting calls)
            → can_execute() raises CircuitBreakerOpenError
            → After recovery_timeout seconds: transition to HALF_OPEN
        HALF_OPEN (testing recovery)
            → On success: transition to CLOSED
            → On failure: transition back to OPEN

    Process-local: each worker keeps its own breaker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns:
            True if a call may proceed.

        Raises:
            CircuitBreakerOpenError while OPEN and the recovery timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info("Circuit breaker transitioning to HALF_OPEN after %.1fs", elapsed)
                self.state = self.HALF_OPEN
                return True
            raise CircuitBreakerOpenError(recovery_time=int(self.recovery_timeout - elapsed))

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN

    def reset(self) -> None:
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None


# ══════════════════════════════════════════════════════════════════════════
# Gemini Caption Model
# ══════════════════════════════════════════════════════════════════════════

class GeminiCaptionModel(CaptionModel):
    """Gemini-backed caption writer. Raises on any API failure."""

    CAPTION_PROMPT = """Generate ONE perfect Gen Z style Instagram caption for this image.

Context:
- Location: {location}
- Mood: {mood}
- Time: {time_of_day}

Requirements:
- Generate ONLY ONE caption (not multiple options)
- Use Gen Z slang and trendy language
- Keep it under 100 characters
- Include relevant emojis
- Be authentic and not overly promotional

Examples of the style:
- "no thoughts just vibes ✨"
- "main character energy fr 💅"
- "pov: you're living your best life 📸"

Generate ONE caption that matches this style:"""

    HASHTAG_PROMPT = """Based on this Instagram caption: "{caption}"

Generate EXACTLY 4 relevant hashtags that are:
- Popular on Instagram
- Gen Z friendly
- Related to the content
- A mix of trending and niche tags

Return only the 4 hashtags separated by spaces, no explanations, no extra text."""

    STORY_PROMPT = """Generate a Gen Z style Instagram story caption for a series of {count} images.

Context:
- Location: {location}
- Mood: {mood}
- Time: {time_of_day}

Requirements:
- Keep it under 80 characters
- Include relevant emojis
- Reference that it's multiple images
- Be authentic and relatable

Generate a story caption:"""

    def __init__(self):
        self._configured = settings.gemini_configured
        self.model = None
        if self._configured:
            try:
                genai.configure(api_key=settings.gemini_api_key)
                self.model = genai.GenerativeModel(settings.gemini_model)
                logger.info("GeminiCaptionModel initialized with model=%s", settings.gemini_model)
            except Exception as e:
                self.model = None
                logger.error("Gemini client setup failed, using offline captions: %s", e)
        else:
            logger.warning("Gemini API key not configured. Using offline captions.")

    @property
    def configured(self) -> bool:
        return self._configured and self.model is not None

    @staticmethod
    def _context_values(context: Dict[str, str]) -> Dict[str, str]:
        return {
            "location": context.get("location") or "Unknown location",
            "mood": context.get("mood") or "General",
            "time_of_day": context.get("timeOfDay") or "Unknown time",
        }

    async def _generate(self, contents) -> str:
        start_time = time.time()
        response = await self.model.generate_content_async(
            contents,
            request_options={"timeout": 30},
        )
        text = response.text.strip() if response.text else ""
        logger.info(
            "Gemini call completed in %.0fms, %d chars",
            (time.time() - start_time) * 1000,
            len(text),
        )
        return text

    async def caption_for_image(self, image: bytes, mime_type: str, context: Dict[str, str]) -> str:
        prompt = self.CAPTION_PROMPT.format(**self._context_values(context))
        return await self._generate([prompt, {"mime_type": mime_type, "data": image}])

    async def hashtags_for_caption(self, caption: str, context: Dict[str, str]) -> str:
        return await self._generate(self.HASHTAG_PROMPT.format(caption=caption))

    async def caption_for_story(self, image_count: int, context: Dict[str, str]) -> str:
        prompt = self.STORY_PROMPT.format(count=image_count, **self._context_values(context))
        return await self._generate(prompt)

    async def health_check(self) -> bool:
        if not self.configured:
            return False
        try:
            models = await asyncio.to_thread(lambda: list(genai.list_models()))
            target = f"models/{settings.gemini_model}"
            if target not in [m.name for m in models]:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
gemini_model = GeminiCaptionModel()
