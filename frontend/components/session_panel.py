"""
Capture/verify panel component for the Face Unlock enrollment UI.

Turns SessionSnapshot values into what the Gradio widgets show: the image
to display, the confidence line, and which buttons are usable.
"""

from typing import Dict, List, Optional

import cv2
import numpy as np

from core.errors import FaceUnlockError
from core.face_engine import decode_data_url
from core.models import MatchClass, Notification, SessionMode
from frontend.session_controller import SessionSnapshot


MODE_LABELS = {
    SessionMode.IDLE: "Idle",
    SessionMode.ENROLL_CAPTURE: "Capturing",
    SessionMode.VERIFY: "Verifying",
}


class SessionPanel:
    """
    Formats session state for display.

    Responsibilities:
    - Decode the displayed data URL for gr.Image
    - Render confidence and classification
    - Decide button labels and availability
    """

    def __init__(self, empty_message: str = "Select an image or start the camera."):
        self.empty_message = empty_message
        self._last_display: Optional[str] = None
        self._last_image: Optional[np.ndarray] = None

    def display_image(self, snapshot: SessionSnapshot) -> Optional[np.ndarray]:
        """RGB array for the current display image, or None."""
        if snapshot.display_image is None:
            self._last_display, self._last_image = None, None
            return None

        # Polling redraws the same frame between ticks
        if snapshot.display_image != self._last_display:
            bgr = decode_data_url(snapshot.display_image)
            self._last_image = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
            self._last_display = snapshot.display_image
        return self._last_image

    def format_status(self, snapshot: SessionSnapshot) -> str:
        """Markdown status line for the panel."""
        mode = MODE_LABELS[snapshot.mode]

        if snapshot.mode is SessionMode.VERIFY:
            return f"**{mode}** | {self.format_confidence(snapshot.confidence, snapshot.classification)}"

        if snapshot.mode is SessionMode.ENROLL_CAPTURE:
            if snapshot.has_captured_frame:
                return f"**{mode}** | Face found. Confirm to keep this frame."
            return f"**{mode}** | Looking for a face..."

        if snapshot.has_captured_frame:
            return f"**{mode}** | Reference ready. Verify it or save it."
        return f"**{mode}** | {self.empty_message}"

    def format_confidence(
        self,
        confidence: Optional[int],
        classification: Optional[MatchClass],
    ) -> str:
        """Confidence text, colored by classification."""
        if confidence is None or classification is None:
            return "Waiting for a face..."

        color = self.get_score_color(classification)
        label = "Match" if classification is MatchClass.MATCH else "No match"
        return f'<span style="color:{color}">Confidence: {confidence}% ({label})</span>'

    def get_score_color(self, classification: MatchClass) -> str:
        if classification is MatchClass.MATCH:
            return "#22c55e"  # Green
        return "#ef4444"  # Red

    def button_states(self, snapshot: SessionSnapshot) -> Dict[str, bool]:
        """Which commands make sense in the current state."""
        idle = snapshot.mode is SessionMode.IDLE
        capturing = snapshot.mode is SessionMode.ENROLL_CAPTURE
        return {
            "select_file": not snapshot.running,
            "start_camera": not snapshot.running,
            "confirm": capturing,
            "cancel": capturing or (idle and snapshot.has_captured_frame),
            "verify": snapshot.mode is SessionMode.VERIFY or (idle and snapshot.has_captured_frame),
            "save": snapshot.can_save,
        }

    def verify_button_label(self, snapshot: SessionSnapshot) -> str:
        if snapshot.mode is SessionMode.VERIFY:
            return "Stop verification"
        return "Verify"


def format_error(error: FaceUnlockError) -> str:
    """One-line message for a failed command."""
    return f"{error.message} ({error.code})"


def format_notifications(notifications: List[Notification]) -> List[str]:
    """Collapse repeated loop errors into one line with a count."""
    counts: Dict[str, int] = {}
    order: List[str] = []
    for n in notifications:
        key = f"{n.level}: {n.message}"
        if key not in counts:
            order.append(key)
            counts[key] = 0
        counts[key] += 1

    return [key if counts[key] == 1 else f"{key} (x{counts[key]})" for key in order]
