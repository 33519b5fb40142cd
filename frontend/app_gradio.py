"""
Gradio-based UI for the Face Unlock enrollment system.

This is the main entry point for the frontend application.
Run with: python -m frontend.app_gradio

The backend is chosen by api.mode in config.yaml:
    local - in-process OpenCV backend (default)
    live  - FastAPI service at api.base_url
    mock  - simulated camera and scores
"""

import logging
from typing import Any, Optional, Tuple

import gradio as gr

from core.config import get_config, setup_logging
from core.errors import FaceUnlockError
from frontend.api_client import ConnectionMode, create_backend
from frontend.components.enrollment_form import (
    EnrollmentForm,
    format_saved_message,
    slider_range,
)
from frontend.components.session_panel import (
    SessionPanel,
    format_error,
    format_notifications,
)
from frontend.session_controller import SessionController

setup_logging()
logger = logging.getLogger(__name__)


# ============================================================
# Global State
# ============================================================

config = get_config()


def resolve_mode() -> ConnectionMode:
    name = str(config.get("api", {}).get("mode", "local")).lower()
    try:
        return ConnectionMode(name)
    except ValueError:
        logger.warning(f"Unknown api.mode '{name}', using local")
        return ConnectionMode.LOCAL


connection_mode = resolve_mode()
backend = create_backend(connection_mode, config)
controller = SessionController.from_config(backend, config)
panel = SessionPanel()
threshold_range = slider_range(controller.scorer)

logger.info(f"Frontend using {connection_mode.value} backend")


# ============================================================
# Rendering
# ============================================================

def render() -> Tuple[Any, ...]:
    """Current session state as updates for every panel output."""
    snapshot = controller.snapshot()
    enabled = panel.button_states(snapshot)
    return (
        panel.display_image(snapshot),
        panel.format_status(snapshot),
        gr.update(interactive=enabled["select_file"]),
        gr.update(interactive=enabled["start_camera"]),
        gr.update(interactive=enabled["confirm"]),
        gr.update(interactive=enabled["cancel"]),
        gr.update(interactive=enabled["verify"], value=panel.verify_button_label(snapshot)),
        gr.update(interactive=enabled["save"]),
    )


def show_error(error: FaceUnlockError) -> None:
    logger.info(f"Command failed: {error.code} {error.message}")
    gr.Warning(format_error(error))


# ============================================================
# Capture / Verify Panel Handlers
# ============================================================

async def on_select_file(path: Optional[str]):
    if path:
        try:
            await controller.select_from_file(path)
        except FaceUnlockError as e:
            show_error(e)
    return render()


async def on_start_camera():
    try:
        await controller.start_camera()
    except FaceUnlockError as e:
        show_error(e)
    return render()


async def on_confirm():
    try:
        frame = await controller.confirm_capture()
        if frame is None:
            gr.Warning("No face was captured")
    except FaceUnlockError as e:
        show_error(e)
    return render()


async def on_cancel():
    try:
        await controller.cancel_capture()
    except FaceUnlockError as e:
        show_error(e)
    return render()


async def on_toggle_verify():
    try:
        await controller.toggle_verification()
    except FaceUnlockError as e:
        show_error(e)
    return render()


def on_threshold_change(value: Any):
    try:
        controller.set_threshold(value)
    except FaceUnlockError as e:
        show_error(e)
    return render()


def on_tick():
    """Timer poll: redraw and surface frame loop errors."""
    for message in format_notifications(controller.drain_notifications()):
        gr.Warning(message)
    return render()


# ============================================================
# Configuration Panel Handlers
# ============================================================

async def on_save(alias: str, threshold: Any, username: str, password: str):
    form = EnrollmentForm(alias=alias, threshold=threshold, username=username, password=password)
    try:
        handle = await controller.save(*form.save_arguments())
        gr.Info(format_saved_message(handle.file_name, form))
        alias = ""
    except FaceUnlockError as e:
        show_error(e)
    return (alias,) + render()


async def on_load():
    username = await controller.load_username()
    for message in format_notifications(controller.drain_notifications()):
        gr.Warning(message)
    return (username,) + render()


# ============================================================
# Build Gradio Interface
# ============================================================

def get_connection_status() -> str:
    """Get current connection status message."""
    if connection_mode is ConnectionMode.LIVE:
        return f"**Backend**: service at `{backend.base_url}`"
    if connection_mode is ConnectionMode.MOCK:
        return "**Backend**: demo mode (simulated camera)"
    return "**Backend**: local camera"


def create_demo():
    """Create the Gradio interface."""

    with gr.Blocks(title="Face Unlock Enrollment") as demo:

        gr.Markdown("""
        # Face Unlock Enrollment

        Capture or select a reference face, check it against the live camera, then save it.
        """)

        gr.Markdown(get_connection_status())

        with gr.Row():
            # ==================== CAPTURE / VERIFY PANEL ====================
            with gr.Column(scale=2):
                image_view = gr.Image(label="Camera", type="numpy", interactive=False)
                status = gr.Markdown(panel.format_status(controller.snapshot()))

                with gr.Row():
                    file_input = gr.File(label="Select image", file_types=["image"], type="filepath")
                    start_btn = gr.Button("Start camera", variant="primary")
                with gr.Row():
                    confirm_btn = gr.Button("Confirm", interactive=False)
                    cancel_btn = gr.Button("Cancel", interactive=False)
                    verify_btn = gr.Button("Verify", interactive=False)

            # ==================== CONFIGURATION PANEL ====================
            with gr.Column(scale=1):
                gr.Markdown("### Enrollment settings")
                alias_input = gr.Textbox(label="Alias", placeholder="Optional", max_lines=1)
                threshold_slider = gr.Slider(
                    minimum=threshold_range.minimum,
                    maximum=threshold_range.maximum,
                    value=threshold_range.value,
                    step=threshold_range.step,
                    label="Match threshold (%)",
                )
                username_input = gr.Textbox(label="Username", max_lines=1)
                password_input = gr.Textbox(label="Password", type="password", max_lines=1)
                save_btn = gr.Button("Save", variant="primary", interactive=False)

        panel_outputs = [
            image_view, status, file_input, start_btn,
            confirm_btn, cancel_btn, verify_btn, save_btn,
        ]

        # Event handlers
        file_input.upload(fn=on_select_file, inputs=[file_input], outputs=panel_outputs)
        start_btn.click(fn=on_start_camera, inputs=[], outputs=panel_outputs)
        confirm_btn.click(fn=on_confirm, inputs=[], outputs=panel_outputs)
        cancel_btn.click(fn=on_cancel, inputs=[], outputs=panel_outputs)
        verify_btn.click(fn=on_toggle_verify, inputs=[], outputs=panel_outputs)
        threshold_slider.release(fn=on_threshold_change, inputs=[threshold_slider], outputs=panel_outputs)

        save_btn.click(
            fn=on_save,
            inputs=[alias_input, threshold_slider, username_input, password_input],
            outputs=[alias_input] + panel_outputs,
        )

        tick_sec = max(controller.tick_interval, 0.05)
        timer = gr.Timer(tick_sec)
        timer.tick(fn=on_tick, inputs=[], outputs=panel_outputs, show_progress="hidden")

        demo.load(fn=on_load, inputs=[], outputs=[username_input] + panel_outputs)

        gr.Markdown("""
        ---
        **Tip**: Set `api.mode: live` and start the backend with `uvicorn api.app:app` to use a remote camera.
        """)

    return demo


# ============================================================
# Entry Point
# ============================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        server_name="0.0.0.0",
        server_port=7860,
        show_error=True,
    )
