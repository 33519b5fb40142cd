"""
Face Backend Interface

This module defines the contract between the session controller and the
face detection/camera/storage backend, and provides the in-process
implementation built on FaceEngine, CameraDevice and RegistrationStore.

Other implementations live in frontend/api_client.py:
    - APIClient: the same contract over HTTP
    - MockFaceBackend: simulated responses for UI work without a camera

Usage:
    from core.backend import LocalFaceBackend

    backend = LocalFaceBackend()
    await backend.open_camera()
    frame = await backend.check_face_from_camera()
    await backend.stop_camera()
"""

import asyncio
import getpass
import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import numpy as np

from core.camera import CameraDevice, CaptureConfig
from core.errors import (
    DetectionError,
    FaceUnlockError,
    NoFaceDetectedError,
    ValidationError,
)
from core.face_engine import FaceEngine, decode_data_url, load_image
from core.models import CapturedFrame, EnrollmentRecord, RecordHandle, VerificationSample
from core.registration_store import FaceRegistration, RegistrationStore

logger = logging.getLogger(__name__)


class FaceBackend(ABC):
    """
    Abstract face detection, camera and storage backend.

    All methods are coroutines. Failures are reported with the exceptions
    from core.errors; a missing face in a live frame is always
    NoFaceDetectedError so callers can tell it apart by type.
    """

    @abstractmethod
    async def check_face_from_image(self, path: str) -> CapturedFrame:
        """
        Detect a face in a still image file.

        Raises:
            DetectionError: No face found, or the file is unreadable.
        """

    @abstractmethod
    async def open_camera(self) -> None:
        """
        Acquire the camera exclusively.

        Raises:
            ResourceBusyError: The camera is already held.
            DeviceError: The hardware is unavailable.
        """

    @abstractmethod
    async def stop_camera(self) -> None:
        """Release the camera. Best-effort, safe when not held."""

    @abstractmethod
    async def check_face_from_camera(self) -> CapturedFrame:
        """
        Grab one camera frame and detect a face in it.

        Raises:
            NoFaceDetectedError: No face in this frame (transient).
            DetectionError / DeviceError: Anything else.
        """

    @abstractmethod
    async def verify_face(self, reference_image: str) -> VerificationSample:
        """
        Compare one live camera frame against the reference image.

        Raises:
            NoFaceDetectedError: No face in the live frame (transient).
            DetectionError: The reference has no face, or detection failed.
        """

    @abstractmethod
    async def save_face_registration(self, record: EnrollmentRecord) -> RecordHandle:
        """
        Persist an enrollment.

        Raises:
            ValidationError: The record is incomplete or its image has no face.
            StorageError: The record could not be written.
        """

    @abstractmethod
    async def get_current_username(self) -> str:
        """Return the name of the logged-in OS account."""

    async def close(self) -> None:
        """Release any resources held by the backend."""


class LocalFaceBackend(FaceBackend):
    """
    In-process backend.

    OpenCV calls block, so each operation runs in a worker thread via
    asyncio.to_thread. A lock keeps the engine and camera single-user even
    when the HTTP service handles overlapping requests.

    Args:
        config: Full configuration dictionary (defaults to config.yaml).
        engine: Pre-built FaceEngine; built lazily from config otherwise.
        camera: Pre-built CameraDevice.
        store: Pre-built RegistrationStore.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        engine: Optional[FaceEngine] = None,
        camera: Optional[CameraDevice] = None,
        store: Optional[RegistrationStore] = None,
    ):
        if config is None:
            from core.config import get_config
            config = get_config()
        self.config = config

        self._engine = engine
        self._camera = camera or CameraDevice(CaptureConfig.from_dict(config.get("camera")))
        self._store = store
        self._lock = threading.Lock()

        # Reference feature cache: verify_face is called every tick with the same image
        self._reference_key: Optional[str] = None
        self._reference_feature: Optional[np.ndarray] = None

    # ==================== Lazy resources ====================

    @property
    def engine(self) -> FaceEngine:
        if self._engine is None:
            from core.config import resolve_path

            models_dir = resolve_path(self.config.get("storage", {}).get("models_dir", "storage/models"))
            self._engine = FaceEngine(self.config.get("detection", {}), models_dir)
        return self._engine

    @property
    def store(self) -> RegistrationStore:
        if self._store is None:
            from core.registration_store import get_registration_store
            self._store = get_registration_store()
        return self._store

    @property
    def models_loaded(self) -> bool:
        return self._engine is not None

    @property
    def camera_open(self) -> bool:
        return self._camera.is_open

    # ==================== Contract ====================

    async def check_face_from_image(self, path: str) -> CapturedFrame:
        return await asyncio.to_thread(self._check_face_from_image, path)

    async def open_camera(self) -> None:
        await asyncio.to_thread(self._open_camera)

    async def stop_camera(self) -> None:
        await asyncio.to_thread(self._stop_camera)

    async def check_face_from_camera(self) -> CapturedFrame:
        return await asyncio.to_thread(self._check_face_from_camera)

    async def verify_face(self, reference_image: str) -> VerificationSample:
        return await asyncio.to_thread(self._verify_face, reference_image)

    async def save_face_registration(self, record: EnrollmentRecord) -> RecordHandle:
        return await asyncio.to_thread(self._save_face_registration, record)

    async def get_current_username(self) -> str:
        try:
            return getpass.getuser()
        except (KeyError, OSError) as e:
            raise FaceUnlockError(f"Failed to look up the current username: {e}") from e

    async def close(self) -> None:
        await self.stop_camera()

    # ==================== Blocking implementations ====================

    def _check_face_from_image(self, path: str) -> CapturedFrame:
        frame = load_image(path)
        with self._lock:
            try:
                return self.engine.detect_and_format(frame)
            except NoFaceDetectedError as e:
                # A still image with no face is a hard failure, not a transient one
                raise DetectionError(f"No face detected in {path}") from e

    def _open_camera(self) -> None:
        with self._lock:
            self._camera.open()

    def _stop_camera(self) -> None:
        with self._lock:
            self._camera.close()

    def _check_face_from_camera(self) -> CapturedFrame:
        with self._lock:
            frame = self._camera.read_frame()
            return self.engine.detect_and_format(frame)

    def _verify_face(self, reference_image: str) -> VerificationSample:
        with self._lock:
            reference_feature = self._get_reference_feature(reference_image)
            frame = self._camera.read_frame()
            live_feature = self.engine.extract_feature(frame)
            score = self.engine.match(reference_feature, live_feature)
            return VerificationSample(score=score, stream_image=self.engine.encode(frame))

    def _get_reference_feature(self, reference_image: str) -> np.ndarray:
        key = hashlib.sha1(reference_image.encode("utf-8")).hexdigest()
        if key != self._reference_key:
            try:
                feature = self.engine.extract_feature(decode_data_url(reference_image))
            except NoFaceDetectedError as e:
                raise DetectionError("Reference image contains no face") from e
            self._reference_key, self._reference_feature = key, feature
        return self._reference_feature

    def _save_face_registration(self, record: EnrollmentRecord) -> RecordHandle:
        if not record.reference_image:
            raise ValidationError("A reference image is required")
        if not record.username.strip():
            raise ValidationError("A username is required")

        with self._lock:
            try:
                feature = self.engine.extract_feature(decode_data_url(record.reference_image))
            except NoFaceDetectedError as e:
                raise ValidationError("Reference image contains no face") from e

        file_name = self.store.save_registration(
            FaceRegistration(
                alias=record.alias,
                username=record.username,
                threshold=record.threshold,
                feature=feature,
            )
        )
        return RecordHandle(file_name=file_name)


# Singleton instance for the service and the in-process UI
_backend_instance: Optional[LocalFaceBackend] = None


def get_local_backend() -> LocalFaceBackend:
    """Get or create the shared LocalFaceBackend built from config.yaml."""
    global _backend_instance

    if _backend_instance is None:
        _backend_instance = LocalFaceBackend()

    return _backend_instance
