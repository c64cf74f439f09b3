"""One-off script for debugging a real generation round trip."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from config.settings import load_config
from modules.pipelines.gemini_client import GeminiImageClient
from modules.services.models import GenerationSettings
from modules.services.session import SessionController
from modules.services.storage_service import StorageService
from modules.utils.image_utils import load_image_file
from modules.utils.logging import setup_logging


async def run(prompt: str, reference: Path | None, aspect_ratio: str, temperature: float) -> None:
    config = load_config()
    setup_logging(config)

    controller = SessionController(GeminiImageClient(config), initial_settings=config.default_settings())
    controller.set_prompt(prompt)
    controller.set_settings(GenerationSettings.from_inputs(aspect_ratio, temperature))
    if reference is not None:
        controller.set_uploaded_image(load_image_file(reference))

    entry = await controller.start_generation()
    session = controller.session
    print("Status:", session.status.value)
    if entry is None:
        print("Error:", session.error)
        return

    out_path = StorageService(Path(".")).export_image(entry)
    print("Image saved:", out_path.resolve())


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("prompt", nargs="?", default="A futuristic banana city at sunset")
    parser.add_argument("--reference", type=Path, default=None)
    parser.add_argument("--aspect-ratio", default="1:1")
    parser.add_argument("--temperature", type=float, default=1.0)
    args = parser.parse_args()
    asyncio.run(run(args.prompt, args.reference, args.aspect_ratio, args.temperature))


if __name__ == "__main__":
    main()
