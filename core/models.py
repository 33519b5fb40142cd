"""
Session Data Model

Plain dataclasses and enums shared by the backend, the HTTP service and
the session controller. Images are opaque JPEG data URLs
("data:image/jpeg;base64,...") everywhere above the face engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SessionMode(Enum):
    """What the session is currently doing with the camera."""
    IDLE = "idle"
    ENROLL_CAPTURE = "enroll_capture"
    VERIFY = "verify"


class MatchClass(Enum):
    """Classification of a verification sample against the threshold."""
    MATCH = "match"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class CapturedFrame:
    """
    One successful detection result.

    Attributes:
        display_image: Downscaled frame with the face box and landmarks drawn,
                       for rendering only.
        raw_image: Downscaled, unannotated frame. This is the canonical
                   artifact submitted for verification and registration.
    """

    display_image: str
    raw_image: str


@dataclass(frozen=True)
class VerificationSample:
    """
    One live comparison against the reference image.

    Attributes:
        score: Raw cosine similarity reported by the recognizer.
        stream_image: The live frame that was compared, if the backend sent it.
    """

    score: float
    stream_image: Optional[str] = None


@dataclass(frozen=True)
class AccountIdentity:
    """Credentials entered in the configuration panel."""
    username: str
    password: str = field(default="", repr=False)


@dataclass(frozen=True)
class EnrollmentRecord:
    """Everything the storage collaborator needs to persist one enrollment."""
    alias: str
    reference_image: str
    threshold: int
    username: str


@dataclass(frozen=True)
class RecordHandle:
    """Identifies a persisted registration."""
    file_name: str


@dataclass(frozen=True)
class Notification:
    """A user-visible message produced by a command or the frame loop."""
    level: str
    message: str
    code: Optional[str] = None
