"""Gradio layout composition."""

from __future__ import annotations

from typing import Any, Optional

import gradio as gr

from config.settings import AppConfig
from modules.pipelines.gemini_client import GenerationClient
from modules.services.models import AspectRatio, MAX_TEMPERATURE, MIN_TEMPERATURE
from modules.ui.callbacks import VIEW_COMPARE, VIEW_RESULT, build_callbacks
from modules.ui.comparison import (
    DEFAULT_SPLIT,
    POINTER_BRIDGE_CSS,
    POINTER_BRIDGE_JS,
    POINTER_INPUT_ID,
)


def build_app(config: AppConfig, client: Optional[GenerationClient] = None) -> Any:
    """Compose and return the Gradio application."""
    callbacks_map = build_callbacks(config, client=client)
    defaults = config.default_settings()

    with gr.Blocks(title="BananaGen", js=POINTER_BRIDGE_JS, css=POINTER_BRIDGE_CSS) as demo:
        gr.Markdown("## BananaGen")
        state = gr.State(value=callbacks_map["new_state"])

        with gr.Row():
            with gr.Column(scale=1):
                prompt = gr.Textbox(
                    label="Prompt",
                    lines=4,
                    placeholder="Describe the image you want to generate...",
                )
                reference = gr.Image(label="Reference Image (Optional)", type="filepath")
                aspect_ratio = gr.Radio(
                    label="Aspect Ratio",
                    choices=AspectRatio.choices(),
                    value=defaults.aspect_ratio.value,
                )
                temperature = gr.Slider(
                    label="Creativity (Temperature)",
                    minimum=MIN_TEMPERATURE,
                    maximum=MAX_TEMPERATURE,
                    step=0.1,
                    value=defaults.temperature,
                )
                with gr.Row():
                    generate_btn = gr.Button("Generate", variant="primary")
                    cancel_btn = gr.Button("Cancel")

            with gr.Column(scale=2):
                status = gr.Markdown("Start by entering a prompt.")
                result_image = gr.Image(label="Result", type="pil", interactive=False)
                view_mode = gr.Radio(
                    choices=[VIEW_RESULT, VIEW_COMPARE],
                    value=VIEW_RESULT,
                    show_label=False,
                    visible=False,
                )
                comparison = gr.HTML()
                pointer_input = gr.Textbox(elem_id=POINTER_INPUT_ID, show_label=False, container=False)
                split = gr.Slider(label="Split", minimum=0, maximum=100, step=0.5, value=DEFAULT_SPLIT)
                with gr.Row():
                    export_btn = gr.Button("Download")
                    export_file = gr.File(label="Export", interactive=False)

        history = gr.Gallery(label="History", columns=8, height=160, allow_preview=False)

        render_outputs = [state, result_image, comparison, status, history, view_mode, split]

        generate_event = generate_btn.click(
            fn=callbacks_map["on_generate"],
            inputs=[state, prompt, reference, aspect_ratio, temperature],
            outputs=render_outputs,
        )
        cancel_btn.click(
            fn=callbacks_map["on_cancel"],
            inputs=[state],
            outputs=render_outputs,
            cancels=[generate_event],
        )
        history.select(
            fn=callbacks_map["on_select_history"],
            inputs=[state],
            outputs=render_outputs,
        )
        view_mode.input(
            fn=callbacks_map["on_toggle_view"],
            inputs=[state, view_mode],
            outputs=render_outputs,
        )
        split.input(
            fn=callbacks_map["on_split_change"],
            inputs=[state, split],
            outputs=[comparison],
        )
        pointer_input.input(
            fn=callbacks_map["on_pointer_event"],
            inputs=[state, pointer_input],
            outputs=[comparison, split],
            show_progress="hidden",
        )
        export_btn.click(
            fn=callbacks_map["on_export"],
            inputs=[state],
            outputs=[export_file],
        )

    return demo
