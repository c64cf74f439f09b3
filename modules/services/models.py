"""Domain types shared by the session, the generation client and the UI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from modules.utils.image_utils import ImageData

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0


class ValidationError(ValueError):
    """Input rejected locally before any remote call."""


class SettingsValidationError(ValidationError):
    """Generation settings outside the supported range."""


class AspectRatio(str, Enum):
    """Aspect ratios accepted by the image model."""

    SQUARE = "1:1"
    PORTRAIT = "3:4"
    LANDSCAPE = "4:3"
    WIDE = "16:9"
    TALL = "9:16"

    @classmethod
    def choices(cls) -> list[str]:
        return [ratio.value for ratio in cls]


@dataclass(frozen=True, slots=True)
class GenerationSettings:
    """Request hints passed through to the model unchanged."""

    aspect_ratio: AspectRatio = AspectRatio.SQUARE
    temperature: float = 1.0

    def __post_init__(self) -> None:
        try:
            ratio = AspectRatio(self.aspect_ratio)
        except ValueError as exc:
            raise SettingsValidationError(
                f"Unsupported aspect ratio {self.aspect_ratio!r}; expected one of {AspectRatio.choices()}"
            ) from exc
        object.__setattr__(self, "aspect_ratio", ratio)

        try:
            temperature = float(self.temperature)
        except (TypeError, ValueError) as exc:
            raise SettingsValidationError(f"Temperature must be a number, got {self.temperature!r}") from exc
        if not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE:
            raise SettingsValidationError(
                f"Temperature must be between {MIN_TEMPERATURE} and {MAX_TEMPERATURE}, got {temperature}"
            )
        object.__setattr__(self, "temperature", temperature)

    @classmethod
    def from_inputs(cls, aspect_ratio: Union[str, AspectRatio], temperature: float) -> "GenerationSettings":
        return cls(aspect_ratio=aspect_ratio or AspectRatio.SQUARE, temperature=temperature)


@dataclass(frozen=True, slots=True)
class GeneratedImage:
    """One immutable history entry produced by a successful generation."""

    id: str
    image: ImageData
    source_prompt: str
    original_image: Optional[ImageData]
    created_at: float
    settings: GenerationSettings

    @property
    def has_original(self) -> bool:
        return self.original_image is not None
