"""
Camera device wrapper.

Holds the single cv2.VideoCapture handle used by the local backend.
Opening a camera that is already held raises ResourceBusyError instead of
silently opening a second handle; closing is idempotent.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import cv2
import numpy as np

from core.errors import DeviceError, ResourceBusyError

logger = logging.getLogger(__name__)


@dataclass
class CaptureConfig:
    """Configuration for camera capture."""
    width: int = 1280
    height: int = 720
    fps: int = 30
    device_id: int = 0

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> "CaptureConfig":
        config = config or {}
        return cls(
            width=int(config.get("width", cls.width)),
            height=int(config.get("height", cls.height)),
            fps=int(config.get("fps", cls.fps)),
            device_id=int(config.get("device_id", cls.device_id)),
        )


class CameraDevice:
    """
    Exclusive owner of one camera device.

    This component handles:
    - Opening the device and priming it with a first read
    - Reading single BGR frames
    - Releasing the device
    """

    def __init__(self, config: Optional[CaptureConfig] = None):
        self.config = config or CaptureConfig()
        self._cap: Optional[cv2.VideoCapture] = None

    def open(self) -> None:
        """
        Open the camera device.

        Raises:
            ResourceBusyError: If this device is already open.
            DeviceError: If the hardware cannot be opened.
        """
        if self._cap is not None:
            raise ResourceBusyError(f"Camera {self.config.device_id} is already open")

        try:
            cap = cv2.VideoCapture(self.config.device_id)
        except cv2.error as e:
            raise DeviceError(f"Failed to open camera {self.config.device_id}: {e}") from e

        if not cap.isOpened():
            cap.release()
            raise DeviceError(
                f"Failed to open camera {self.config.device_id}, the device may be in use"
            )

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        cap.set(cv2.CAP_PROP_FPS, self.config.fps)

        # First read wakes the sensor up; some drivers return nothing until then
        ok, _ = cap.read()
        if not ok:
            cap.release()
            raise DeviceError(f"Camera {self.config.device_id} opened but returned no frame")

        self._cap = cap
        logger.info(
            f"Opened camera {self.config.device_id} at {self.config.width}x{self.config.height}"
        )

    def close(self) -> None:
        """Release the camera device. Safe to call when already closed."""
        cap, self._cap = self._cap, None
        if cap is not None:
            cap.release()
            logger.info(f"Camera {self.config.device_id} closed")

    def read_frame(self) -> np.ndarray:
        """
        Read a single frame.

        Returns:
            BGR numpy array.

        Raises:
            DeviceError: If the camera is not open or returned an empty frame.
        """
        if self._cap is None:
            raise DeviceError("Camera is not open")

        ok, frame = self._cap.read()
        if not ok or frame is None or frame.size == 0:
            raise DeviceError("Camera returned an empty frame")

        return frame

    @property
    def is_open(self) -> bool:
        """Check if the camera is currently held."""
        return self._cap is not None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

