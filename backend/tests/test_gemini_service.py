"""
HEARDROP Backend — Gemini Artwork Service Unit Tests (Mocked)
===============================================================

What:  Tests for GeminiArtworkService with a mocked Google Generative AI SDK.
Why:   Tests should not make real API calls (costs money, requires network).
How:   Patches the genai module so the model's generate_content_async is an
       AsyncMock returning canned candidates.

What we test:
    ✅ Inline image data is extracted from the first candidate part that has it
    ✅ A response without an image is an UpstreamServiceError
    ✅ Non-transient SDK errors are wrapped and counted by the circuit breaker
    ✅ Open circuit rejects calls before the SDK is touched
    ✅ Missing API key refuses early
    ❌ Real API calls
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from heardrop.exceptions import CircuitBreakerOpenError, UpstreamServiceError
from heardrop.services.artwork_base import GeneratedImage
from heardrop.services.gemini_service import GeminiArtworkService, banner_prompt, logo_prompt


def _response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


def _image_part(data=b"\x89PNG-bytes", mime_type="image/png"):
    return SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type))


class TestGeminiArtworkService:

    def setup_method(self):
        with patch("heardrop.services.gemini_service.genai") as mock_genai:
            mock_genai.GenerativeModel.return_value = MagicMock()
            self.service = GeminiArtworkService(api_key="test-key", model_name="image-model")
        self.service.model.generate_content_async = AsyncMock()

    @pytest.mark.asyncio
    async def test_extracts_inline_image(self):
        text_part = SimpleNamespace(inline_data=None, text="Here is your logo")
        self.service.model.generate_content_async.return_value = _response(
            text_part, _image_part(b"jpeg-bytes", "image/jpeg")
        )

        image = await self.service.generate_image("a logo")

        assert image == GeneratedImage(data=b"jpeg-bytes", mime_type="image/jpeg")
        assert image.extension == ".jpg"
        assert self.service.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_no_image_in_response(self):
        self.service.model.generate_content_async.return_value = _response(
            SimpleNamespace(inline_data=None)
        )

        with pytest.raises(UpstreamServiceError, match="no image"):
            await self.service.generate_image("a logo")
        assert self.service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_sdk_error_is_wrapped(self):
        self.service.model.generate_content_async.side_effect = ValueError("safety block")

        with pytest.raises(UpstreamServiceError) as exc_info:
            await self.service.generate_image("a logo")

        assert exc_info.value.service == "gemini"
        assert exc_info.value.context["error_type"] == "ValueError"
        # Not transient, so exactly one attempt
        assert self.service.model.generate_content_async.await_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_rejects_without_calling_model(self):
        self.service.circuit_breaker.failure_threshold = 1
        self.service.circuit_breaker.record_failure()

        with pytest.raises(CircuitBreakerOpenError):
            await self.service.generate_image("a logo")
        self.service.model.generate_content_async.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_configured(self):
        self.service.api_key = ""
        assert self.service.is_configured is False
        with pytest.raises(UpstreamServiceError, match="not configured"):
            await self.service.generate_image("a logo")

    @pytest.mark.asyncio
    async def test_health_check_not_configured(self):
        self.service.api_key = ""
        assert await self.service.health_check() is False


class TestPrompts:

    def test_logo_prompt_defaults(self):
        prompt = logo_prompt("Palace", None, None)
        assert '"Palace"' in prompt
        assert "streetwear brand from international" in prompt

    def test_banner_prompt_uses_category_and_country(self):
        prompt = banner_prompt("Palace", "skate", "UK")
        assert 'skate brand "Palace" from UK' in prompt
