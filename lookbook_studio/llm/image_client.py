"""
Gemini Image Client
Wraps one image generation call: images + prompt -> image.

Uses the google-genai SDK because the image model needs an image config
(aspect ratio, output size) on every request.
"""
import asyncio
import logging
from typing import Any, List, Optional

from lookbook_studio.config import get_settings, get_image_config, ImageModelConfig
from lookbook_studio.core.images import ImageRef, DEFAULT_MIME_TYPE

logger = logging.getLogger(__name__)

# Returned by the API when the selected key has no access to the model
KEY_ERROR_MARKER = "Requested entity was not found"


class GenerationError(Exception):
    """Error during an image generation request."""
    def __init__(self, message: str, status_code: int = 502):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ApiKeyError(GenerationError):
    """The API key is missing or was rejected; a new key must be selected."""
    def __init__(self, message: str = "API key required"):
        super().__init__(message, status_code=401)


def is_key_error(error: Exception) -> bool:
    return KEY_ERROR_MARKER in str(error)


def extract_image(response: Any) -> Optional[ImageRef]:
    """Return the first inline image of the first candidate, if any."""
    candidates = getattr(response, "candidates", None)
    if not candidates:
        return None

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) if content is not None else None
    if not parts:
        return None

    for part in parts:
        inline = getattr(part, "inline_data", None)
        if inline is not None and inline.data:
            return ImageRef(data=inline.data, mime_type=inline.mime_type or DEFAULT_MIME_TYPE)
    return None


class GeminiImageClient:
    """
    Image generation client for one API key.

    Usage:
        client = GeminiImageClient(api_key=session.api_key)
        images = await client.generate(prompt, [source], num_variants=2)
    """

    def __init__(self, api_key: Optional[str] = None, config: Optional[ImageModelConfig] = None):
        self.api_key = api_key or get_settings().gemini_api_key
        self.config = config or get_image_config()
        self._client = None

    @property
    def model(self) -> str:
        return self.config.model

    def _get_client(self):
        """Gemini client (lazy init)."""
        if self._client is None:
            if not self.api_key:
                raise ApiKeyError("No API key selected")
            from google import genai
            self._client = genai.Client(api_key=self.api_key)
            logger.info(f"Gemini image client ready: model={self.config.model}")
        return self._client

    def _build_contents(self, prompt: str, images: List[ImageRef]) -> list:
        """Images first, in order, then the text prompt."""
        from google.genai import types

        parts = [
            types.Part.from_bytes(data=image.data, mime_type=image.mime_type)
            for image in images
        ]
        parts.append(types.Part.from_text(text=prompt))
        return [types.Content(role="user", parts=parts)]

    def _build_config(self):
        from google.genai import types

        return types.GenerateContentConfig(
            image_config=types.ImageConfig(
                aspect_ratio=self.config.aspect_ratio,
                image_size=self.config.image_size,
            )
        )

    async def _call(self, prompt: str, images: List[ImageRef]) -> Optional[ImageRef]:
        client = self._get_client()
        response = await client.aio.models.generate_content(
            model=self.config.model,
            contents=self._build_contents(prompt, images),
            config=self._build_config(),
        )
        image = extract_image(response)
        if image is None:
            logger.warning(f"Model {self.config.model} returned no image")
        return image

    async def _variant(self, prompt: str, images: List[ImageRef]) -> Optional[ImageRef]:
        """One variant; failures other than key errors are logged and dropped."""
        try:
            return await self._call(prompt, images)
        except ApiKeyError:
            raise
        except Exception as e:
            logger.error(f"Error generating variant: {e}")
            if is_key_error(e):
                raise ApiKeyError(str(e)) from e
            return None

    async def generate(
        self,
        prompt: str,
        images: Optional[List[ImageRef]] = None,
        num_variants: int = 1
    ) -> List[ImageRef]:
        """
        Run the same request num_variants times in parallel.

        Returns:
            Successful images only (may be empty)

        Raises:
            ApiKeyError: If any variant was rejected for its API key
        """
        images = images or []
        results = await asyncio.gather(
            *(self._variant(prompt, images) for _ in range(max(1, num_variants)))
        )
        generated = [image for image in results if image is not None]
        logger.info(f"Generated {len(generated)}/{max(1, num_variants)} variant(s)")
        return generated

    async def generate_one(
        self,
        prompt: str,
        images: Optional[List[ImageRef]] = None
    ) -> Optional[ImageRef]:
        """
        Single strict request.

        Raises:
            ApiKeyError: If the API key was rejected
            GenerationError: For any other failure
        """
        try:
            return await self._call(prompt, images or [])
        except GenerationError:
            raise
        except Exception as e:
            if is_key_error(e):
                raise ApiKeyError(str(e)) from e
            logger.error(f"Generation failed: {e}", exc_info=True)
            raise GenerationError(str(e)) from e


def get_image_client(api_key: Optional[str] = None) -> GeminiImageClient:
    """Client for a session's selected key (or the configured default)."""
    return GeminiImageClient(api_key=api_key)
