"""
Error Taxonomy Module

Every failure that can reach the user is one of the exceptions below.
Each class carries a stable wire ``code`` (used by the HTTP service and
client to rebuild the same exception on the other side) and the HTTP
status the service answers with.

    FaceUnlockError
    ├── DeviceError            camera unavailable
    ├── ResourceBusyError      camera already held
    ├── DetectionError         backend failure other than "no face"
    │   └── NoFaceDetectedError  transient, expected while searching
    ├── PreconditionError      session not in the right state
    ├── ValidationError        user input incomplete or out of range
    └── StorageError           registration could not be persisted

Usage:
    from core.errors import NoFaceDetectedError, error_from_code

    try:
        frame = await backend.check_face_from_camera()
    except NoFaceDetectedError:
        pass
"""

from typing import Dict, Optional, Type


class FaceUnlockError(Exception):
    """Base class for all session and backend errors."""

    code: str = "FACE_UNLOCK_ERROR"
    http_status: int = 500

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> Dict[str, str]:
        """Serialize to the error body returned by the HTTP service."""
        return {"code": self.code, "error": self.message}


class DeviceError(FaceUnlockError):
    """Camera hardware is unavailable or returned no frame."""

    code = "DEVICE_ERROR"
    http_status = 503


class ResourceBusyError(FaceUnlockError):
    """The camera is already held by an active session."""

    code = "RESOURCE_BUSY"
    http_status = 409


class DetectionError(FaceUnlockError):
    """Detection/recognition failed (unreadable image, model error, backend down)."""

    code = "DETECTION_ERROR"
    http_status = 422


class NoFaceDetectedError(DetectionError):
    """No face in the current frame. Transient during live capture."""

    code = "NO_FACE_DETECTED"
    http_status = 422


class PreconditionError(FaceUnlockError):
    """The session is not in a state that allows the requested command."""

    code = "PRECONDITION_FAILED"
    http_status = 409


class ValidationError(FaceUnlockError):
    """User input is missing or out of range."""

    code = "VALIDATION_ERROR"
    http_status = 400


class StorageError(FaceUnlockError):
    """The registration could not be written."""

    code = "STORAGE_ERROR"
    http_status = 500


_ERRORS_BY_CODE: Dict[str, Type[FaceUnlockError]] = {
    cls.code: cls
    for cls in (
        FaceUnlockError,
        DeviceError,
        ResourceBusyError,
        DetectionError,
        NoFaceDetectedError,
        PreconditionError,
        ValidationError,
        StorageError,
    )
}


def error_from_code(code: Optional[str], message: Optional[str] = None) -> FaceUnlockError:
    """
    Rebuild an exception from its wire code.

    Args:
        code: Error code from an error body (e.g. "NO_FACE_DETECTED").
        message: Human-readable message to attach.

    Returns:
        An instance of the matching class, or a plain FaceUnlockError
        for unknown codes.
    """
    cls = _ERRORS_BY_CODE.get(code or "", FaceUnlockError)
    return cls(message)
