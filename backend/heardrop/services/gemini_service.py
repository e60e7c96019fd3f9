"""
HEARDROP Backend — Google Gemini Artwork Service
==================================================

What:  Brand logo and banner generation with Gemini's image model.
Why:   Many imported brands arrive without artwork; an admin can generate
       a placeholder logo and banner in one click.
How:   Sends a text prompt to the image model and pulls the first
       inline image out of the response parts, with tenacity retries and
       a circuit breaker around the call.
Who:   BrandService.generate_artwork(); the health route reads the breaker.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter, only for errors
       that can heal (rate limits, 5xx, timeouts, dropped connections)
    2. Circuit breaker shared by every request so a Gemini outage fails fast
    3. A response without image data counts as a failure and is not retried
"""

import logging
import time
import uuid
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from heardrop.config import settings
from heardrop.exceptions import UpstreamServiceError
from heardrop.services.artwork_base import ArtworkGenerator, GeneratedImage
from heardrop.services.resilience import CircuitBreaker

logger = logging.getLogger(__name__)

TRANSIENT_GEMINI_ERRORS = (
    ConnectionError,
    TimeoutError,
    google_exceptions.ResourceExhausted,
    google_exceptions.ServiceUnavailable,
    google_exceptions.InternalServerError,
    google_exceptions.DeadlineExceeded,
)

LOGO_PROMPT = (
    'Create a minimalist, modern logo for the streetwear/fashion brand "{name}". '
    "The logo should be clean, iconic, and suitable for a {category} brand from {country}. "
    "Use a simple design with bold typography or abstract symbol. Professional, "
    "high-quality, transparent or white background."
)

BANNER_PROMPT = (
    'Create a stylish, modern banner image for the {category} brand "{name}" from {country}. '
    "The banner should feature abstract geometric patterns, urban aesthetic, modern "
    "typography elements, or fashion-related visual elements. Use a color palette that "
    "reflects {category} culture. Aspect ratio 16:4, high quality, professional design."
)


def logo_prompt(name: str, category: Optional[str], country: Optional[str]) -> str:
    return LOGO_PROMPT.format(
        name=name, category=category or "streetwear", country=country or "international"
    )


def banner_prompt(name: str, category: Optional[str], country: Optional[str]) -> str:
    return BANNER_PROMPT.format(
        name=name, category=category or "streetwear", country=country or "international"
    )


class GeminiArtworkService(ArtworkGenerator):

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self.api_key = settings.gemini_api_key if api_key is None else api_key
        self.model_name = model_name or settings.gemini_image_model
        if self.api_key:
            genai.configure(api_key=self.api_key)
        self.model = genai.GenerativeModel(self.model_name)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
            name="Gemini",
        )

        logger.info(
            "GeminiArtworkService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            self.model_name,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate_image(self, prompt: str) -> GeneratedImage:
        """
        Flow:
            1. Refuse early when no API key is configured
            2. Check circuit breaker → may raise CircuitBreakerOpenError
            3. Call Gemini with retry logic
            4. Record success/failure in the breaker
        """
        if not self.is_configured:
            raise UpstreamServiceError(
                message="Artwork generation is not configured on this server",
                service="gemini",
            )

        request_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        try:
            image = await self._generate_with_retry(prompt, request_id)
        except UpstreamServiceError:
            self.circuit_breaker.record_failure()
            raise
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Gemini image generation failed: %s", request_id, str(e))
            raise UpstreamServiceError(
                message="Artwork generation failed. Please try again later.",
                service="gemini",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        return image

    @retry(
        retry=retry_if_exception_type(TRANSIENT_GEMINI_ERRORS),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _generate_with_retry(self, prompt: str, request_id: str) -> GeneratedImage:
        start_time = time.time()
        response = await self.model.generate_content_async(
            prompt,
            request_options={"timeout": 120},
        )
        duration_ms = (time.time() - start_time) * 1000

        for candidate in response.candidates or []:
            for part in getattr(candidate.content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                if inline is not None and inline.data:
                    logger.info(
                        "[%s] Gemini image generated in %.0fms (%d bytes, %s)",
                        request_id,
                        duration_ms,
                        len(inline.data),
                        inline.mime_type,
                    )
                    return GeneratedImage(data=inline.data, mime_type=inline.mime_type or "image/png")

        logger.warning("[%s] Gemini returned no image after %.0fms", request_id, duration_ms)
        raise UpstreamServiceError(
            message="The artwork model returned no image",
            service="gemini",
            context={"request_id": request_id},
        )

    async def health_check(self) -> bool:
        """Lists models: verifies key and connectivity without spending quota."""
        if not self.is_configured:
            return False
        try:
            names = [m.name for m in genai.list_models()]
        except google_exceptions.GoogleAPIError as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False
        if f"models/{self.model_name}" not in names:
            logger.warning("Configured model %s not found in available models", self.model_name)
        return True


gemini_service = GeminiArtworkService()
