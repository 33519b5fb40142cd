"""
Frontend UI components for the Face Unlock enrollment UI.
"""

from .session_panel import SessionPanel, format_error, format_notifications
from .enrollment_form import EnrollmentForm, SliderRange, slider_range, format_saved_message

__all__ = [
    "SessionPanel", "format_error", "format_notifications",
    "EnrollmentForm", "SliderRange", "slider_range", "format_saved_message",
]
