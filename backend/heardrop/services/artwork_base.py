"""
HEARDROP Backend — Abstract Artwork Generator Interface
=========================================================

What:  Contract for services that render brand artwork from a text prompt.
Why:   BrandService only needs "prompt in, image bytes out"; the provider
       (Gemini today) can be swapped or mocked without touching it.
Who:   Implemented by GeminiArtworkService; called by BrandService.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class GeneratedImage:
    data: bytes
    mime_type: str = "image/png"

    @property
    def extension(self) -> str:
        return {"image/jpeg": ".jpg", "image/webp": ".webp"}.get(self.mime_type, ".png")


class ArtworkGenerator(ABC):
    """
    Contract:
        - generate_image() returns one image for the prompt, never None
        - Implementations handle their own retries and circuit breaking
        - Provider errors surface as UpstreamServiceError or
          CircuitBreakerOpenError
    """

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    async def generate_image(self, prompt: str) -> GeneratedImage:
        """
        Render an image for `prompt`.

        Raises:
            UpstreamServiceError: provider failed after all retries, or
                returned no image
            CircuitBreakerOpenError: too many recent provider failures
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability probe that does not consume generation quota."""
        ...
