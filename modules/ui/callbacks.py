"""Callback implementations for the Gradio interface."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import gradio as gr

from config.settings import AppConfig
from modules.pipelines.gemini_client import GeminiImageClient, GenerationClient
from modules.services.history_service import HistorySelector
from modules.services.models import GenerationSettings, ValidationError
from modules.services.session import SessionController, SessionStatus
from modules.services.storage_service import StorageService
from modules.ui.comparison import DEFAULT_SPLIT, ComparisonView, pointer_event_from_payload
from modules.utils.image_utils import generate_thumbnail, load_image_file, to_pil

logger = logging.getLogger(__name__)

VIEW_RESULT = "Result"
VIEW_COMPARE = "Compare"


@dataclass
class StudioState:
    """Per-browser state: the session controller plus the mounted comparison."""

    controller: SessionController
    comparison: Optional[ComparisonView] = None


def _status_message(state: StudioState) -> str:
    session = state.controller.session
    if session.status is SessionStatus.GENERATING:
        return "Creating masterpiece..."
    if session.status is SessionStatus.FAILED:
        return f"**Generation Failed:** {session.error}"
    if session.status is SessionStatus.SUCCEEDED and session.current_entry is not None:
        return f"Showing: {session.current_entry.source_prompt}"
    return "Start by entering a prompt. Try \"A futuristic banana city at sunset\"."


def build_callbacks(
    config: AppConfig,
    client: Optional[GenerationClient] = None,
    storage: Optional[StorageService] = None,
    controller_factory: Optional[Callable[[], SessionController]] = None,
) -> dict[str, Any]:
    """Return a dictionary of Gradio callback functions."""

    storage_service = storage or StorageService(config.export_dir)

    def _new_controller() -> SessionController:
        if controller_factory is not None:
            return controller_factory()
        return SessionController(
            client or GeminiImageClient(config),
            initial_settings=config.default_settings(),
        )

    def _ensure_state(state: Optional[StudioState]) -> StudioState:
        if state is None:
            return StudioState(controller=_new_controller())
        return state

    def _sync_comparison(state: StudioState) -> None:
        if state.controller.session.comparison_visible:
            if state.comparison is None:
                state.comparison = ComparisonView()
        elif state.comparison is not None:
            state.comparison.close()
            state.comparison = None

    def _comparison_html(state: StudioState) -> str:
        entry = state.controller.current_entry
        if state.comparison is None or entry is None or entry.original_image is None:
            return ""
        return state.comparison.render_html(entry.original_image, entry.image)

    def _render(state: StudioState, message: Optional[str] = None) -> tuple[Any, ...]:
        _sync_comparison(state)
        session = state.controller.session
        entry = session.current_entry
        selector = HistorySelector(state.controller)
        tiles = selector.tiles()

        result_image = None
        if entry is not None and not session.is_generating and session.status is not SessionStatus.FAILED:
            result_image = to_pil(entry.image)

        gallery = gr.update(
            value=[(generate_thumbnail(tile.image), tile.prompt) for tile in tiles],
            selected_index=selector.selected_index(),
            label=f"History ({selector.summary()})",
        )
        view_mode = gr.update(
            value=VIEW_COMPARE if session.comparison_visible else VIEW_RESULT,
            visible=entry is not None and entry.has_original,
        )
        split = state.comparison.split_position if state.comparison is not None else DEFAULT_SPLIT
        return (
            state,
            result_image,
            _comparison_html(state),
            message or _status_message(state),
            gallery,
            view_mode,
            split,
        )

    async def on_generate(
        state: Optional[StudioState],
        prompt: str,
        reference_path: Optional[str],
        aspect_ratio: str,
        temperature: float,
    ) -> tuple[Any, ...]:
        state = _ensure_state(state)
        controller = state.controller
        try:
            controller.set_settings(GenerationSettings.from_inputs(aspect_ratio, temperature))
        except ValidationError as exc:
            return _render(state, f"**Invalid settings:** {exc}")

        controller.set_prompt(prompt or "")
        if reference_path:
            try:
                controller.set_uploaded_image(load_image_file(reference_path))
            except OSError as exc:
                logger.warning("Could not read reference image %s: %s", reference_path, exc)
                return _render(state, f"**Could not read reference image:** {exc}")
        else:
            controller.set_uploaded_image(None)

        try:
            await controller.start_generation()
        except ValidationError as exc:
            return _render(state, str(exc))
        return _render(state)

    def on_cancel(state: Optional[StudioState]) -> tuple[Any, ...]:
        state = _ensure_state(state)
        state.controller.cancel_generation()
        return _render(state)

    def on_select_history(state: Optional[StudioState], evt: gr.SelectData) -> tuple[Any, ...]:
        state = _ensure_state(state)
        index = evt.index[0] if isinstance(evt.index, (list, tuple)) else evt.index
        HistorySelector(state.controller).select_index(int(index))
        return _render(state)

    def on_toggle_view(state: Optional[StudioState], mode: str) -> tuple[Any, ...]:
        state = _ensure_state(state)
        state.controller.toggle_comparison(mode == VIEW_COMPARE)
        return _render(state)

    def on_split_change(state: Optional[StudioState], value: float) -> str:
        state = _ensure_state(state)
        if state.comparison is None:
            return ""
        state.comparison.jump_to(value)
        return _comparison_html(state)

    def on_pointer_event(state: Optional[StudioState], payload: str) -> tuple[str, float]:
        state = _ensure_state(state)
        if state.comparison is None:
            return "", DEFAULT_SPLIT
        try:
            event, rect = pointer_event_from_payload(payload)
        except ValueError as exc:
            logger.debug("Ignoring pointer event: %s", exc)
        else:
            state.comparison.handle_pointer(event, rect)
        return _comparison_html(state), state.comparison.split_position

    def on_export(state: Optional[StudioState]) -> Optional[str]:
        state = _ensure_state(state)
        entry = state.controller.current_entry
        if entry is None:
            return None
        return str(storage_service.export_image(entry))

    return {
        "new_state": lambda: StudioState(controller=_new_controller()),
        "on_generate": on_generate,
        "on_cancel": on_cancel,
        "on_select_history": on_select_history,
        "on_toggle_view": on_toggle_view,
        "on_split_change": on_split_change,
        "on_pointer_event": on_pointer_event,
        "on_export": on_export,
    }
