"""
Core Module for the Face Unlock Enrollment System

This package contains the face backend: detection and recognition models,
camera access, registration storage, and the verification scoring rules
shared by the session UI and the API service.

Main components:
    - config: Configuration loading and management
    - errors: Typed failures with stable wire codes
    - models: Value types passed between the UI and the backend
    - verification: Confidence scoring and threshold rules
    - face_engine: YuNet detection and SFace recognition (OpenCV)
    - camera: Exclusive camera device
    - registration_store: Enrollment storage
    - backend: Backend contract and in-process implementation

Usage:
    from core.config import get_config
    from core.backend import LocalFaceBackend
    from core.verification import VerificationScorer
"""

from core.config import (
    get_config,
    get_section,
    get_camera_config,
    get_detection_config,
    get_verification_config,
    get_session_config,
    get_storage_config,
    get_api_config,
    get_server_config,
    setup_logging,
)

from core.errors import (
    FaceUnlockError,
    DeviceError,
    ResourceBusyError,
    DetectionError,
    NoFaceDetectedError,
    PreconditionError,
    ValidationError,
    StorageError,
    error_from_code,
)

from core.models import (
    SessionMode,
    MatchClass,
    CapturedFrame,
    VerificationSample,
    AccountIdentity,
    EnrollmentRecord,
    RecordHandle,
    Notification,
)

from core.verification import (
    VerificationResult,
    VerificationScorer,
    compute_confidence,
    classify,
    validate_threshold,
)

__all__ = [
    # Configuration
    "get_config",
    "get_section",
    "get_camera_config",
    "get_detection_config",
    "get_verification_config",
    "get_session_config",
    "get_storage_config",
    "get_api_config",
    "get_server_config",
    "setup_logging",
    # Errors
    "FaceUnlockError",
    "DeviceError",
    "ResourceBusyError",
    "DetectionError",
    "NoFaceDetectedError",
    "PreconditionError",
    "ValidationError",
    "StorageError",
    "error_from_code",
    # Models
    "SessionMode",
    "MatchClass",
    "CapturedFrame",
    "VerificationSample",
    "AccountIdentity",
    "EnrollmentRecord",
    "RecordHandle",
    "Notification",
    # Verification
    "VerificationResult",
    "VerificationScorer",
    "compute_confidence",
    "classify",
    "validate_threshold",
]
