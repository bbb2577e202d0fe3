"""
SnapCap Backend: Caption Generation with Offline Fallback
===========================================================

What:  Produces `{caption, hashtags[4], generated}` for a post image and a
       caption for a multi-frame story.
Why:   The model is optional. Missing credentials, an open circuit, a
       timeout or a malformed answer all end in the same place: a canned
       caption picked from a pool or matched on the context keywords.
       Callers never see an error from this service.
How:   1. Ask the CaptionModel for a caption (through the circuit breaker)
       2. Strip quotes; ask for hashtags; keep well-formed '#tags'
       3. Pad or truncate the tags to exactly four from the offline generator
       Any exception in 1 or 2 → offline result with generated=False.

Context keys (all optional, case-insensitive keyword match):
    location   coffee | beach | city | nature | home
    mood       happy | chill | energetic | sad | confident
    timeOfDay  morning | afternoon | evening | night
"""

import logging
import random
import re
from typing import Dict, List, Optional

from snapcap.config import settings
from snapcap.exceptions import CircuitBreakerOpenError
from snapcap.schemas.post import CaptionResult
from snapcap.services.gemini_service import CircuitBreaker, gemini_model
from snapcap.services.llm_base import CaptionModel

logger = logging.getLogger(__name__)

HASHTAG_COUNT = 4
TAG_RE = re.compile(r"^[a-zA-Z0-9_]{1,50}$")
QUOTES_RE = re.compile(r"[\"'“”‘’]")
MAX_CAPTION_LENGTH = 500


# ══════════════════════════════════════════════════════════════════════════
# Offline Generator
# ══════════════════════════════════════════════════════════════════════════

class FallbackCaptionGenerator:
    """
    Canned captions and hashtags.

    `rng` is injectable so tests can pin the random choices.
    """

    CAPTIONS = [
        "no thoughts just vibes ✨",
        "main character energy fr 💅",
        "this hits different at 3am 🕐",
        "pov: you're living your best life 📸",
        "the serotonin this gives me >> 🧠",
        "slaying so hard rn 💅✨",
        "this is my villain era 🖤",
        "bestie this is iconic 📸",
        "the way this makes me feel >> 😭",
        "living for this moment fr 💯",
        "this is giving main character 🎬",
        "the vibes are immaculate ✨",
        "this is so me coded 🧬",
        "the way I'm obsessed >> 😍",
        "this is my roman empire 🏛️",
    ]

    LOCATION_CAPTIONS = {
        "coffee": "coffee shop main character ☕",
        "beach": "beach day bestie 🏖️",
        "city": "city girl era 🏙️",
        "nature": "nature is healing 🌿",
        "home": "homebody vibes 🏠",
    }

    TIME_CAPTIONS = {
        "morning": "morning person era ☀️",
        "afternoon": "afternoon delight ✨",
        "evening": "golden hour hits different 🌅",
        "night": "night owl activities 🦉",
    }

    STORY_CAPTIONS = [
        "story time bestie 📖✨",
        "the way this day went >> 📸",
        "pov: you're in my story 📱",
        "this day was everything 💯",
        "living my best life fr 📸",
        "the main character energy >> ✨",
        "this is my story era 📖",
        "bestie this is iconic 📸",
        "the way I'm slaying >> 💅",
        "story mode activated 📱",
    ]

    BASE_HASHTAGS = [
        "vibes", "aesthetic", "mood", "slay", "maincharacter",
        "genz", "relatable", "iconic", "obsessed", "bestie",
    ]

    LOCATION_HASHTAGS = {
        "coffee": ["coffee", "cafe", "coffeeshop"],
        "beach": ["beach", "ocean", "summer"],
        "city": ["city", "urban", "downtown"],
        "nature": ["nature", "outdoors", "hiking"],
        "home": ["home", "cozy", "comfort"],
    }

    MOOD_HASHTAGS = {
        "happy": ["happy", "joy", "positive"],
        "chill": ["chill", "relaxed", "peaceful"],
        "energetic": ["energy", "hype", "excited"],
        "sad": ["moody", "melancholy", "feels"],
        "confident": ["confident", "bold", "fierce"],
    }

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    @staticmethod
    def _match(value: Optional[str], table: Dict[str, object]) -> Optional[object]:
        """Keyword lookup: exact key first, then the first key contained in value."""
        if not value:
            return None
        needle = value.strip().lower()
        if needle in table:
            return table[needle]
        for key, entry in table.items():
            if key in needle:
                return entry
        return None

    def caption(self, context: Dict[str, str]) -> str:
        by_location = self._match(context.get("location"), self.LOCATION_CAPTIONS)
        if by_location:
            return by_location
        by_time = self._match(context.get("timeOfDay"), self.TIME_CAPTIONS)
        if by_time:
            return by_time
        return self.rng.choice(self.CAPTIONS)

    def story_caption(self, context: Dict[str, str]) -> str:
        return self.rng.choice(self.STORY_CAPTIONS)

    def hashtags(self, context: Dict[str, str], exclude: Optional[List[str]] = None) -> List[str]:
        """Exactly four distinct tags drawn from base + location + mood pools."""
        pool = list(self.BASE_HASHTAGS)
        pool += self._match(context.get("location"), self.LOCATION_HASHTAGS) or []
        pool += self._match(context.get("mood"), self.MOOD_HASHTAGS) or []
        taken = {t.lower() for t in (exclude or [])}
        candidates = [t for t in dict.fromkeys(pool) if t.lower() not in taken]
        self.rng.shuffle(candidates)
        return candidates[:HASHTAG_COUNT]


# ══════════════════════════════════════════════════════════════════════════
# Caption Service
# ══════════════════════════════════════════════════════════════════════════

def normalize_context(
    location: Optional[str] = None,
    mood: Optional[str] = None,
    time_of_day: Optional[str] = None,
) -> Dict[str, str]:
    return {
        "location": (location or "").strip(),
        "mood": (mood or "").strip(),
        "timeOfDay": (time_of_day or "").strip(),
    }


def clean_caption(text: str) -> str:
    """Strip quotes and surrounding whitespace; keep the first non-empty line."""
    lines = [line.strip() for line in QUOTES_RE.sub("", text).splitlines() if line.strip()]
    return lines[0][:MAX_CAPTION_LENGTH] if lines else ""


def extract_hashtags(text: str) -> List[str]:
    """Tokens starting with '#', without the '#', well-formed only, de-duplicated."""
    tags: List[str] = []
    for token in text.split():
        if not token.startswith("#"):
            continue
        tag = token.lstrip("#").rstrip(".,;:!?")
        if TAG_RE.match(tag) and tag.lower() not in {t.lower() for t in tags}:
            tags.append(tag)
    return tags


class CaptionService:
    """Best-effort caption writer wrapping a CaptionModel."""

    def __init__(
        self,
        model: Optional[CaptionModel] = None,
        fallback: Optional[FallbackCaptionGenerator] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.model = model or gemini_model
        self.fallback = fallback or FallbackCaptionGenerator()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    def _model_available(self) -> bool:
        if not self.model.configured:
            return False
        try:
            return self.circuit_breaker.can_execute()
        except CircuitBreakerOpenError as e:
            logger.info("Caption model skipped: circuit open (%ss)", e.recovery_time)
            return False

    def offline_result(self, context: Dict[str, str]) -> CaptionResult:
        return CaptionResult(
            caption=self.fallback.caption(context),
            hashtags=self.fallback.hashtags(context),
            generated=False,
        )

    def _complete_hashtags(self, tags: List[str], context: Dict[str, str]) -> List[str]:
        tags = tags[:HASHTAG_COUNT]
        if len(tags) < HASHTAG_COUNT:
            tags += self.fallback.hashtags(context, exclude=tags)[: HASHTAG_COUNT - len(tags)]
        return tags

    async def generate_caption(
        self,
        image: bytes,
        mime_type: str = "image/jpeg",
        context: Optional[Dict[str, str]] = None,
    ) -> CaptionResult:
        """
        Caption and four hashtags for an image. Never raises.
        """
        context = context or normalize_context()
        if not self._model_available():
            return self.offline_result(context)

        try:
            caption = clean_caption(await self.model.caption_for_image(image, mime_type, context))
            if not caption:
                raise ValueError("empty caption from model")
            raw_tags = await self.model.hashtags_for_caption(caption, context)
            self.circuit_breaker.record_success()
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.warning("Caption model failed, using offline caption: %s", str(e))
            return self.offline_result(context)

        return CaptionResult(
            caption=caption,
            hashtags=self._complete_hashtags(extract_hashtags(raw_tags), context),
            generated=True,
        )

    async def generate_story_caption(
        self,
        image_count: int,
        context: Optional[Dict[str, str]] = None,
    ) -> CaptionResult:
        """Caption for a story of `image_count` frames. Never raises."""
        context = context or normalize_context()
        if image_count > 0 and self._model_available():
            try:
                caption = clean_caption(await self.model.caption_for_story(image_count, context))
                if caption:
                    self.circuit_breaker.record_success()
                    return CaptionResult(
                        caption=caption[:80],
                        hashtags=self.fallback.hashtags(context),
                        generated=True,
                    )
                raise ValueError("empty story caption from model")
            except Exception as e:
                self.circuit_breaker.record_failure()
                logger.warning("Story caption model failed, using offline caption: %s", str(e))

        return CaptionResult(
            caption=self.fallback.story_caption(context),
            hashtags=self.fallback.hashtags(context),
            generated=False,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
caption_service = CaptionService()
