"""Shared fixtures and stubs for the test suite."""

from __future__ import annotations

import asyncio
import io
from typing import Optional

import pytest
from PIL import Image

from modules.pipelines.gemini_client import GenerationError
from modules.services.models import GenerationSettings
from modules.utils.image_utils import ImageData


def make_png(color: tuple[int, int, int] = (255, 200, 0), size: tuple[int, int] = (8, 8)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class DummyClient:
    """Stub generation client capturing every call.

    Set ``gate`` to an ``asyncio.Event`` to hold the call in flight until the
    test releases it.
    """

    def __init__(
        self,
        result: Optional[ImageData] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.result = result or ImageData(data=make_png(), mime_type="image/png")
        self.error = error
        self.gate: Optional[asyncio.Event] = None
        self.calls: list[tuple[str, Optional[ImageData], GenerationSettings]] = []

    async def generate(
        self,
        prompt: str,
        reference_image: Optional[ImageData],
        settings: GenerationSettings,
    ) -> ImageData:
        self.calls.append((prompt, reference_image, settings))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def png_image() -> ImageData:
    return ImageData(data=make_png(), mime_type="image/png")


@pytest.fixture
def reference_image() -> ImageData:
    return ImageData(data=make_png((20, 40, 200)), mime_type="image/png")


@pytest.fixture
def failing_client() -> DummyClient:
    return DummyClient(error=GenerationError("content filtered"))
