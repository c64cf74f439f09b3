"""File storage helpers."""

from __future__ import annotations

import logging
from pathlib import Path

from modules.services.models import GeneratedImage
from modules.utils.image_utils import extension_for

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "bananagen"


class StorageService:
    """Export generated images to disk."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    def path_for(self, entry: GeneratedImage) -> Path:
        return self.output_dir / f"{EXPORT_PREFIX}-{entry.id}{extension_for(entry.image.mime_type)}"

    def export_image(self, entry: GeneratedImage) -> Path:
        """Write the entry's encoded bytes unchanged and return the file path."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.path_for(entry)
        target.write_bytes(entry.image.data)
        logger.info("Exported %s to %s", entry.id, target)
        return target
