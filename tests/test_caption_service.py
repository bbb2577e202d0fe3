"""
SnapCap Backend: Caption Service Tests
========================================

What we test:
    ✅ Always exactly four hashtags, generated or not
    ✅ Unconfigured model, model errors and an open circuit all fall back
    ✅ Keyword context picks the canned caption
    ✅ Model output is cleaned (quotes, extra lines, malformed tags)
"""

import random
from typing import Dict

import pytest

from snapcap.services.caption_service import (
    CaptionService,
    FallbackCaptionGenerator,
    clean_caption,
    extract_hashtags,
    normalize_context,
)
from snapcap.services.gemini_service import CircuitBreaker
from snapcap.services.llm_base import CaptionModel

IMAGE = b"\xff\xd8\xff\xd9"


class StubModel(CaptionModel):
    """Scripted CaptionModel; `fail` makes every call raise."""

    def __init__(self, caption="\"vibes only ✨\"\nsecond line", hashtags="#sun #fun", configured=True, fail=False):
        self._caption = caption
        self._hashtags = hashtags
        self._configured = configured
        self.fail = fail
        self.calls = 0

    @property
    def configured(self) -> bool:
        return self._configured

    async def caption_for_image(self, image: bytes, mime_type: str, context: Dict[str, str]) -> str:
        self.calls += 1
        if self.fail:
            raise TimeoutError("model timed out")
        return self._caption

    async def hashtags_for_caption(self, caption: str, context: Dict[str, str]) -> str:
        return self._hashtags

    async def caption_for_story(self, image_count: int, context: Dict[str, str]) -> str:
        self.calls += 1
        if self.fail:
            raise TimeoutError("model timed out")
        return self._caption

    async def health_check(self) -> bool:
        return self._configured


def _service(model: CaptionModel, threshold: int = 5) -> CaptionService:
    return CaptionService(
        model=model,
        fallback=FallbackCaptionGenerator(rng=random.Random(7)),
        circuit_breaker=CircuitBreaker(failure_threshold=threshold, recovery_timeout=60),
    )


async def test_generated_caption_is_cleaned_and_padded():
    service = _service(StubModel())
    result = await service.generate_caption(IMAGE)

    assert result.generated is True
    assert result.caption == "vibes only ✨"
    assert result.hashtags[:2] == ["sun", "fun"]
    assert len(result.hashtags) == 4
    assert len({t.lower() for t in result.hashtags}) == 4


async def test_extra_model_hashtags_truncated():
    service = _service(StubModel(hashtags="#a #b #c #d #e #f"))
    result = await service.generate_caption(IMAGE)
    assert result.hashtags == ["a", "b", "c", "d"]


async def test_unconfigured_model_uses_fallback():
    model = StubModel(configured=False)
    result = await _service(model).generate_caption(IMAGE, context=normalize_context(location="beach"))

    assert model.calls == 0
    assert result.generated is False
    assert result.caption == "beach day bestie 🏖️"
    assert len(result.hashtags) == 4


async def test_model_error_falls_back_and_trips_breaker():
    model = StubModel(fail=True)
    service = _service(model, threshold=2)

    for _ in range(2):
        result = await service.generate_caption(IMAGE)
        assert result.generated is False
        assert len(result.hashtags) == 4
    assert service.circuit_breaker.state == "open"

    # Open circuit: the model is not called at all
    await service.generate_caption(IMAGE)
    assert model.calls == 2


async def test_empty_caption_counts_as_failure():
    service = _service(StubModel(caption="\"\""))
    result = await service.generate_caption(IMAGE)
    assert result.generated is False
    assert service.circuit_breaker.failure_count == 1


async def test_story_caption_fallback_without_images():
    model = StubModel()
    result = await _service(model).generate_story_caption(0)
    assert model.calls == 0
    assert result.generated is False
    assert result.caption in FallbackCaptionGenerator.STORY_CAPTIONS


async def test_story_caption_generated():
    result = await _service(StubModel(caption="three pics one vibe")).generate_story_caption(3)
    assert result.generated is True
    assert result.caption == "three pics one vibe"


class TestFallbackGenerator:
    def test_time_of_day_caption(self):
        generator = FallbackCaptionGenerator(rng=random.Random(1))
        assert generator.caption({"timeOfDay": "late night"}) == "night owl activities 🦉"

    def test_location_beats_time(self):
        generator = FallbackCaptionGenerator(rng=random.Random(1))
        assert generator.caption({"location": "home", "timeOfDay": "morning"}) == "homebody vibes 🏠"

    @pytest.mark.parametrize("seed", range(5))
    def test_hashtags_exclude_taken(self, seed):
        generator = FallbackCaptionGenerator(rng=random.Random(seed))
        tags = generator.hashtags({"mood": "happy"}, exclude=["vibes", "Mood"])
        assert len(tags) == 4
        assert "vibes" not in tags and "mood" not in tags


class TestCleaning:
    def test_clean_caption_strips_quotes_and_lines(self):
        assert clean_caption('"first line"\n\nsecond') == "first line"
        assert clean_caption("   ") == ""

    def test_extract_hashtags(self):
        text = "#sunset #Sunset, #golden_hour! not-a-tag #bad-tag ##double"
        assert extract_hashtags(text) == ["sunset", "golden_hour", "double"]
