"""
API client for the Face Unlock backend service.

Implements the FaceBackend contract over HTTP so the session controller can
drive a backend running in another process. Error bodies carry a stable
code ({"code": "NO_FACE_DETECTED", "error": "..."}), which is turned back
into the same exception class here; the frame loop relies on that to tell
the transient no-face case apart by type.

Includes a mock backend for UI development without a camera or models.
"""

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Dict, Optional, Type

import cv2
import httpx
import numpy as np

from core.backend import FaceBackend, LocalFaceBackend
from core.errors import (
    DetectionError,
    DeviceError,
    FaceUnlockError,
    NoFaceDetectedError,
    ResourceBusyError,
    StorageError,
    error_from_code,
)
from core.face_engine import encode_data_url, load_image
from core.models import CapturedFrame, EnrollmentRecord, RecordHandle, VerificationSample

logger = logging.getLogger(__name__)


class ConnectionMode(Enum):
    """Backend connection mode."""
    LOCAL = "local"        # In-process OpenCV backend
    LIVE = "live"          # Remote backend over HTTP
    MOCK = "mock"          # Simulated responses (no camera or models needed)


class APIClient(FaceBackend):
    """
    FaceBackend implementation talking to the FastAPI service.

    Args:
        base_url: Service root, e.g. "http://localhost:8000".
        timeout_sec: Per-request timeout.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout_sec: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_sec,
            transport=transport,
        )

    async def check_backend_available(self) -> bool:
        """Check if the backend server is reachable."""
        try:
            response = await self._client.get("/health", timeout=2.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def _request(
        self,
        method: str,
        path: str,
        default_error: Type[FaceUnlockError],
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Send a request and decode the JSON body.

        Raises:
            The error class named by the response's error code, or
            ``default_error`` when the service is unreachable or the body
            carries no code.
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise default_error(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise default_error(f"Backend unreachable at {self.base_url}: {e}") from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            message = body.get("error") or body.get("detail") or response.text
            if body.get("code"):
                raise error_from_code(body["code"], str(message))
            raise default_error(f"{method} {path} failed ({response.status_code}): {message}")

        return response.json()

    async def check_face_from_image(self, path: str) -> CapturedFrame:
        data = await self._request("POST", "/faces/check-image", DetectionError, json={"path": path})
        return CapturedFrame(display_image=data["display_image"], raw_image=data["raw_image"])

    async def open_camera(self) -> None:
        await self._request("POST", "/camera/open", DeviceError)

    async def stop_camera(self) -> None:
        await self._request("POST", "/camera/stop", DeviceError)

    async def check_face_from_camera(self) -> CapturedFrame:
        data = await self._request("POST", "/faces/check-camera", DetectionError)
        return CapturedFrame(display_image=data["display_image"], raw_image=data["raw_image"])

    async def verify_face(self, reference_image: str) -> VerificationSample:
        data = await self._request(
            "POST", "/faces/verify", DetectionError, json={"reference_image": reference_image}
        )
        return VerificationSample(score=float(data["score"]), stream_image=data.get("display_image"))

    async def save_face_registration(self, record: EnrollmentRecord) -> RecordHandle:
        data = await self._request(
            "POST",
            "/registrations",
            StorageError,
            json={
                "alias": record.alias,
                "reference_image": record.reference_image,
                "threshold": record.threshold,
                "username": record.username,
            },
        )
        return RecordHandle(file_name=data["file_name"])

    async def get_current_username(self) -> str:
        data = await self._request("GET", "/system/username", FaceUnlockError)
        return data["username"]

    async def close(self) -> None:
        await self._client.aclose()


class MockFaceBackend(FaceBackend):
    """
    Simulates backend responses for development without the real camera.

    Live frames are synthetic; roughly one frame in ``no_face_rate`` has no
    face, and verification scores hover around ``mean_score``.
    """

    def __init__(
        self,
        no_face_rate: float = 0.2,
        mean_score: float = 0.6,
        latency_sec: float = 0.02,
        seed: Optional[int] = None,
    ):
        self.no_face_rate = no_face_rate
        self.mean_score = mean_score
        self.latency_sec = latency_sec
        self._rng = np.random.default_rng(seed)
        self._camera_open = False
        self._frame_count = 0
        self.saved: Dict[str, EnrollmentRecord] = {}

    def _synthetic_frame(self) -> np.ndarray:
        self._frame_count += 1
        frame = self._rng.integers(40, 80, (480, 640, 3), dtype=np.uint8)
        # Drift the "face" a little so the stream looks alive
        cx = 320 + int(20 * np.sin(self._frame_count * 0.1))
        cv2.ellipse(frame, (cx, 240), (90, 120), 0, 0, 360, (150, 180, 220), -1)
        return frame

    async def check_face_from_image(self, path: str) -> CapturedFrame:
        frame = load_image(path)
        image = encode_data_url(frame)
        return CapturedFrame(display_image=image, raw_image=image)

    async def open_camera(self) -> None:
        if self._camera_open:
            raise ResourceBusyError("Mock camera is already open")
        self._camera_open = True

    async def stop_camera(self) -> None:
        self._camera_open = False

    async def check_face_from_camera(self) -> CapturedFrame:
        if not self._camera_open:
            raise DeviceError("Mock camera is not open")
        await asyncio.sleep(self.latency_sec)
        if self._rng.random() < self.no_face_rate:
            raise NoFaceDetectedError("No face detected")
        frame = self._synthetic_frame()
        display = frame.copy()
        cv2.rectangle(display, (220, 110), (420, 370), (255, 242, 0), 2)
        return CapturedFrame(display_image=encode_data_url(display), raw_image=encode_data_url(frame))

    async def verify_face(self, reference_image: str) -> VerificationSample:
        if not self._camera_open:
            raise DeviceError("Mock camera is not open")
        await asyncio.sleep(self.latency_sec)
        if self._rng.random() < self.no_face_rate:
            raise NoFaceDetectedError("No face detected")
        score = float(np.clip(self._rng.normal(self.mean_score, 0.1), -0.2, 1.0))
        return VerificationSample(score=score, stream_image=encode_data_url(self._synthetic_frame()))

    async def save_face_registration(self, record: EnrollmentRecord) -> RecordHandle:
        file_name = f"{uuid.uuid4()}.npz"
        self.saved[file_name] = record
        return RecordHandle(file_name=file_name)

    async def get_current_username(self) -> str:
        return "demo"


def create_backend(
    mode: ConnectionMode,
    config: Optional[Dict[str, Any]] = None,
) -> FaceBackend:
    """
    Build the backend for a connection mode.

    Args:
        mode: LOCAL, LIVE or MOCK.
        config: Full configuration dictionary (defaults to config.yaml).
    """
    if config is None:
        from core.config import get_config
        config = get_config()

    if mode is ConnectionMode.LOCAL:
        return LocalFaceBackend(config)
    if mode is ConnectionMode.LIVE:
        api_config = config.get("api", {})
        return APIClient(
            base_url=api_config.get("base_url", "http://localhost:8000"),
            timeout_sec=float(api_config.get("timeout_sec", 10.0)),
        )
    return MockFaceBackend()
