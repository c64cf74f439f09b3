"""Generation history strip."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from modules.services.models import GeneratedImage
from modules.services.session import SessionController
from modules.utils.image_utils import ImageData


@dataclass(frozen=True, slots=True)
class HistoryTile:
    """One selectable thumbnail in the history strip."""

    entry_id: str
    image: ImageData
    prompt: str
    selected: bool


def build_history_strip(
    history: Sequence[GeneratedImage], current_selection: Optional[str]
) -> List[HistoryTile]:
    """Project the history most-recent-first, flagging the selected entry."""
    return [
        HistoryTile(
            entry_id=entry.id,
            image=entry.image,
            prompt=entry.source_prompt,
            selected=entry.id == current_selection,
        )
        for entry in reversed(history)
    ]


class HistorySelector:
    """Read-only view over a controller's history."""

    def __init__(self, controller: SessionController) -> None:
        self.controller = controller

    def tiles(self) -> List[HistoryTile]:
        session = self.controller.session
        return build_history_strip(session.history, session.current_selection)

    def selected_index(self) -> Optional[int]:
        for index, tile in enumerate(self.tiles()):
            if tile.selected:
                return index
        return None

    def select(self, entry_id: str) -> None:
        self.controller.select_history_entry(entry_id)

    def select_index(self, index: int) -> str:
        """Select the tile at ``index`` in strip order and return its id."""
        tiles = self.tiles()
        if not 0 <= index < len(tiles):
            raise IndexError(f"History index {index} out of range")
        entry_id = tiles[index].entry_id
        self.select(entry_id)
        return entry_id

    def summary(self) -> str:
        count = len(self.controller.session.history)
        return f"{count} item" if count == 1 else f"{count} items"
