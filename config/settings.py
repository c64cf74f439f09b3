"""Configuration helpers for the BananaGen project."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from modules.services.models import AspectRatio, GenerationSettings

DEFAULT_MODEL = "gemini-2.5-flash-image"


@dataclass(slots=True)
class AppConfig:
    """Centralized application configuration."""

    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_MODEL
    export_dir: Path = Path("exports")
    log_dir: Path = Path("logs")
    log_level: str = "INFO"
    log_to_file: bool = True
    default_aspect_ratio: AspectRatio = AspectRatio.SQUARE
    default_temperature: float = 1.0
    server_name: Optional[str] = None
    server_port: Optional[int] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def default_settings(self) -> GenerationSettings:
        """Return the settings a fresh session starts with."""
        return GenerationSettings(
            aspect_ratio=self.default_aspect_ratio,
            temperature=self.default_temperature,
        )


def _load_env_file(path: Path) -> None:
    """Populate environment variables from a KEY=VALUE .env file.

    Accepts an optional ``export`` prefix and single or double quotes around
    the value; an unquoted value ends at " #".
    """
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped.startswith("export "):
            stripped = stripped[len("export "):].lstrip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        elif " #" in value:
            value = value.split(" #", 1)[0].rstrip()
        os.environ[key.strip()] = value


def _parse_aspect_ratio(raw: Optional[str]) -> AspectRatio:
    if not raw:
        return AspectRatio.SQUARE
    try:
        return AspectRatio(raw.strip())
    except ValueError:
        return AspectRatio.SQUARE


def _parse_temperature(raw: Optional[str]) -> float:
    if not raw:
        return 1.0
    try:
        return GenerationSettings(temperature=float(raw)).temperature
    except (TypeError, ValueError):
        return 1.0


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_log_level(raw: Optional[str]) -> str:
    level = (raw or "").strip().upper()
    return level if level in _LOG_LEVELS else "INFO"


def _parse_flag(raw: Optional[str], default: bool) -> bool:
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _parse_port(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Return an AppConfig instance with environment-aware settings."""
    env_path = Path(config_path) if config_path else Path(".env")
    _load_env_file(env_path)

    api_key = (
        os.getenv("GEMINI_API_KEY")
        or os.getenv("GOOGLE_API_KEY")
        or os.getenv("API_KEY")
    )

    metadata: dict[str, Any] = {}
    api_base_url = os.getenv("GEMINI_BASE_URL")
    if api_base_url:
        metadata["gemini_base_url"] = api_base_url

    return AppConfig(
        gemini_api_key=api_key,
        gemini_model=os.getenv("GEMINI_IMAGE_MODEL") or DEFAULT_MODEL,
        export_dir=Path(os.getenv("EXPORT_DIR", "exports")).expanduser(),
        log_dir=Path(os.getenv("LOG_DIR", "logs")).expanduser(),
        log_level=_parse_log_level(os.getenv("LOG_LEVEL")),
        log_to_file=_parse_flag(os.getenv("LOG_TO_FILE"), True),
        default_aspect_ratio=_parse_aspect_ratio(os.getenv("DEFAULT_ASPECT_RATIO")),
        default_temperature=_parse_temperature(os.getenv("DEFAULT_TEMPERATURE")),
        server_name=os.getenv("SERVER_NAME") or None,
        server_port=_parse_port(os.getenv("SERVER_PORT")),
        metadata=metadata,
    )
