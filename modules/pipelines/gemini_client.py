"""Gemini image generation client."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Optional, Protocol

import httpx
from google import genai
from google.genai import errors, types

from config.settings import AppConfig
from modules.services.models import GenerationSettings
from modules.utils.image_utils import DEFAULT_MIME_TYPE, ImageData

logger = logging.getLogger(__name__)

NO_IMAGE_MESSAGE = "No image data found in response. The model might have refused the request."

_BLOCKED_FINISH_REASONS = {
    "SAFETY",
    "IMAGE_SAFETY",
    "PROHIBITED_CONTENT",
    "BLOCKLIST",
    "SPII",
    "RECITATION",
}


class GenerationErrorKind(str, Enum):
    """Coarse failure categories; all of them carry a displayable message."""

    API = "api"
    QUOTA_EXCEEDED = "quota_exceeded"
    INVALID_REQUEST = "invalid_request"
    CONTENT_FILTERED = "content_filtered"
    NO_IMAGE = "no_image"
    NETWORK = "network"
    UNKNOWN = "unknown"


class GenerationError(RuntimeError):
    """Any failure of the remote generation call."""

    def __init__(self, message: str, kind: GenerationErrorKind = GenerationErrorKind.UNKNOWN) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind


class GenerationClient(Protocol):
    """Anything that turns a prompt, optional reference and settings into an image."""

    async def generate(
        self,
        prompt: str,
        reference_image: Optional[ImageData],
        settings: GenerationSettings,
    ) -> ImageData:
        ...


class GeminiImageClient:
    """Facade around the async Gemini ``generate_content`` call."""

    def __init__(self, config: AppConfig, client: Optional[Any] = None) -> None:
        self.config = config
        self._client = client

    def _ensure_client(self) -> Any:
        """Lazy-create the SDK client."""
        if self._client is not None:
            return self._client
        if not self.config.gemini_api_key:
            raise GenerationError(
                "Gemini API key is not configured; set GEMINI_API_KEY.",
                GenerationErrorKind.INVALID_REQUEST,
            )
        client_kwargs: dict[str, Any] = {"api_key": self.config.gemini_api_key}
        base_url = self.config.metadata.get("gemini_base_url")
        if base_url:
            client_kwargs["http_options"] = types.HttpOptions(base_url=base_url)
        self._client = genai.Client(**client_kwargs)
        return self._client

    @staticmethod
    def build_contents(prompt: str, reference_image: Optional[ImageData]) -> list[types.Content]:
        """Reference image first (editing mode), then the text prompt."""
        parts: list[types.Part] = []
        if reference_image is not None:
            parts.append(
                types.Part.from_bytes(data=reference_image.data, mime_type=reference_image.mime_type)
            )
        parts.append(types.Part(text=prompt))
        return [types.Content(role="user", parts=parts)]

    @staticmethod
    def build_config(settings: GenerationSettings) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=settings.temperature,
            image_config=types.ImageConfig(aspect_ratio=settings.aspect_ratio.value),
        )

    async def generate(
        self,
        prompt: str,
        reference_image: Optional[ImageData],
        settings: GenerationSettings,
    ) -> ImageData:
        """Request one image from the model."""
        client = self._ensure_client()
        logger.info(
            "Requesting image from %s (reference=%s, aspect_ratio=%s, temperature=%s)",
            self.config.gemini_model,
            reference_image is not None,
            settings.aspect_ratio.value,
            settings.temperature,
        )
        try:
            response = await client.aio.models.generate_content(
                model=self.config.gemini_model,
                contents=self.build_contents(prompt, reference_image),
                config=self.build_config(settings),
            )
        except errors.APIError as exc:
            logger.error("Gemini API error: %s", exc)
            raise GenerationError(_describe_api_error(exc), _classify_api_error(exc)) from exc
        except (httpx.TransportError, OSError, asyncio.TimeoutError) as exc:
            logger.error("Network failure while contacting Gemini: %s", exc)
            raise GenerationError(
                f"Network error while contacting the image service: {exc or type(exc).__name__}",
                GenerationErrorKind.NETWORK,
            ) from exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected Gemini client failure")
            raise GenerationError(str(exc) or "Failed to generate image") from exc

        return extract_image(response)


def _classify_api_error(exc: errors.APIError) -> GenerationErrorKind:
    code = getattr(exc, "code", None)
    if code == 429:
        return GenerationErrorKind.QUOTA_EXCEEDED
    if isinstance(code, int) and 400 <= code < 500:
        return GenerationErrorKind.INVALID_REQUEST
    return GenerationErrorKind.API


def _describe_api_error(exc: errors.APIError) -> str:
    message = getattr(exc, "message", None) or str(exc)
    code = getattr(exc, "code", None)
    if code:
        return f"{message} (HTTP {code})"
    return message


def _reason_name(reason: Any) -> str:
    if reason is None:
        return ""
    return str(getattr(reason, "name", None) or getattr(reason, "value", None) or reason).upper()


def extract_image(response: Any) -> ImageData:
    """Return the first inline image of the first candidate."""
    candidates = list(getattr(response, "candidates", None) or [])
    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = _reason_name(getattr(feedback, "block_reason", None))
        if block_reason:
            raise GenerationError(
                f"Request was blocked by the content filter ({block_reason}).",
                GenerationErrorKind.CONTENT_FILTERED,
            )
        raise GenerationError(NO_IMAGE_MESSAGE, GenerationErrorKind.NO_IMAGE)

    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        if inline is not None and inline.data:
            return ImageData(data=bytes(inline.data), mime_type=inline.mime_type or DEFAULT_MIME_TYPE)

    finish_reason = _reason_name(getattr(candidate, "finish_reason", None))
    if finish_reason in _BLOCKED_FINISH_REASONS:
        raise GenerationError(
            f"Generation was stopped by the content filter ({finish_reason}).",
            GenerationErrorKind.CONTENT_FILTERED,
        )
    raise GenerationError(NO_IMAGE_MESSAGE, GenerationErrorKind.NO_IMAGE)
