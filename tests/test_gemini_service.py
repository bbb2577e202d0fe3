"""
SnapCap Backend: Gemini Caption Model Unit Tests (Mocked)
===========================================================

What:  Tests for the CircuitBreaker and GeminiCaptionModel with the Google
       Generative AI SDK mocked out.
Why:   Tests should not make real API calls (costs money, requires network).

What we test:
    ✅ Circuit breaker state machine (closed → open → half_open → closed)
    ✅ Prompts carry the context and the image as an inline part
    ✅ Unconfigured model reports itself as such, also when SDK setup fails
    ❌ Real API calls
"""

import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from snapcap.exceptions import CircuitBreakerOpenError
from snapcap.services.gemini_service import CircuitBreaker, GeminiCaptionModel


class TestCircuitBreaker:
    """Tests for the CircuitBreaker resilience pattern."""

    def test_initial_state_is_closed(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == "closed"
        assert cb.failure_count == 0

    def test_stays_closed_under_threshold(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        for _ in range(4):
            cb.record_failure()
        assert cb.state == "closed"
        assert cb.can_execute() is True

    def test_opens_at_threshold_and_rejects(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(3):
            cb.record_failure()
        assert cb.state == "open"

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            cb.can_execute()
        assert 0 < exc_info.value.recovery_time <= 60

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        cb.record_failure()
        cb.record_failure()
        cb.record_success()
        assert cb.failure_count == 0
        assert cb.state == "closed"

    def test_half_open_after_recovery_timeout(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)
        assert cb.can_execute() is True
        assert cb.state == "half_open"

    def test_failure_in_half_open_reopens(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=0)
        for _ in range(3):
            cb.record_failure()
        cb.can_execute()
        cb.record_failure()
        assert cb.state == "open"

    def test_success_in_half_open_closes(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        cb.can_execute()
        cb.record_success()
        assert cb.state == "closed"


def _configured_model(text: str) -> GeminiCaptionModel:
    """A GeminiCaptionModel whose SDK model answers `text`."""
    response = MagicMock()
    response.text = text
    sdk_model = MagicMock()
    sdk_model.generate_content_async = AsyncMock(return_value=response)

    model = GeminiCaptionModel()
    model._configured = True
    model.model = sdk_model
    return model


class TestGeminiCaptionModelMocked:
    def test_unconfigured_without_key(self):
        assert GeminiCaptionModel().configured is False

    def test_sdk_setup_failure_falls_back(self, monkeypatch):
        from snapcap.config import settings

        monkeypatch.setattr(settings, "gemini_api_key", "real-looking-key")
        with patch("snapcap.services.gemini_service.genai") as mock_genai:
            mock_genai.configure.side_effect = ValueError("malformed key")
            model = GeminiCaptionModel()

        assert model.model is None
        assert model.configured is False

    async def test_caption_sends_context_and_image(self):
        model = _configured_model("  beach day bestie 🏖️  ")
        image = b"\xff\xd8\xff\xd9"

        text = await model.caption_for_image(image, "image/png", {"location": "Malibu", "mood": "", "timeOfDay": ""})

        assert text == "beach day bestie 🏖️"
        contents = model.model.generate_content_async.call_args.args[0]
        prompt, part = contents
        assert "Location: Malibu" in prompt
        assert "Mood: General" in prompt
        assert part == {"mime_type": "image/png", "data": image}

    async def test_story_prompt_mentions_frame_count(self):
        model = _configured_model("3 pics, 1 vibe ✨")
        await model.caption_for_story(3, {})
        prompt = model.model.generate_content_async.call_args.args[0]
        assert "series of 3 images" in prompt

    async def test_sdk_errors_propagate(self):
        model = _configured_model("")
        model.model.generate_content_async.side_effect = RuntimeError("quota exceeded")
        with pytest.raises(RuntimeError):
            await model.hashtags_for_caption("hello", {})

    async def test_health_check_returns_bool(self):
        with patch("snapcap.services.gemini_service.genai") as mock_genai:
            mock_genai.list_models.return_value = [MagicMock()]
            model = _configured_model("ok")
            assert await model.health_check() is True

            mock_genai.list_models.side_effect = RuntimeError("offline")
            assert await model.health_check() is False
