"""
Face Engine Module

This module wraps OpenCV's YuNet face detector and SFace face recognizer.
It detects a face in a frame, prepares the display/raw image pair shown by
the session UI, extracts identity features and compares two faces.

Both models are ONNX files from the OpenCV model zoo. They are looked up in
the configured models directory and downloaded on first use.

Usage:
    from core.face_engine import FaceEngine

    engine = FaceEngine(config, models_dir)
    captured = engine.detect_and_format(frame)
    score = engine.match(engine.extract_feature(reference), engine.extract_feature(live))
"""

import base64
import logging
import urllib.request
from pathlib import Path
from typing import Any, Dict, Optional

import cv2
import numpy as np

from core.errors import DetectionError, NoFaceDetectedError
from core.models import CapturedFrame

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/jpeg;base64,"

# Drawing colors (BGR)
BOX_COLOR = (255, 242, 0)
LANDMARK_COLOR = (0, 255, 0)

# YuNet rows: x, y, w, h, then five (x, y) landmarks, then the score
LANDMARK_SLICE = slice(4, 14)


def get_model_path(filename: str, url: Optional[str], models_dir: Path) -> str:
    """
    Get the path to a model file, downloading it if it doesn't exist locally.

    Args:
        filename: Model file name inside ``models_dir``.
        url: Download URL used when the file is missing.
        models_dir: Directory holding the models.

    Returns:
        Path to the model file.

    Raises:
        DetectionError: If the file is missing and cannot be downloaded.
    """
    models_dir.mkdir(parents=True, exist_ok=True)
    model_path = models_dir / filename

    if not model_path.exists():
        if not url:
            raise DetectionError(f"Model file not found: {model_path}")
        logger.info(f"Downloading {filename} from {url}")
        try:
            urllib.request.urlretrieve(url, str(model_path))
        except OSError as e:
            raise DetectionError(f"Failed to download model {filename}: {e}") from e
        logger.info(f"Saved model to {model_path}")

    return str(model_path)


def resize_frame(frame: np.ndarray, max_dim: int) -> np.ndarray:
    """
    Downscale a frame so its longest side is at most ``max_dim``.

    Frames that already fit are returned unchanged (never upscaled).
    """
    h, w = frame.shape[:2]
    scale = min(1.0, max_dim / float(max(w, h)))
    if scale >= 1.0:
        return frame
    new_size = (int(w * scale), int(h * scale))
    return cv2.resize(frame, new_size, interpolation=cv2.INTER_AREA)


def encode_data_url(frame: np.ndarray, quality: int = 90) -> str:
    """
    Encode a BGR frame as a JPEG data URL.

    Raises:
        DetectionError: If encoding fails.
    """
    success, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not success:
        raise DetectionError("Failed to encode frame")
    return DATA_URL_PREFIX + base64.b64encode(buffer).decode("utf-8")


def decode_data_url(image: str) -> np.ndarray:
    """
    Decode a JPEG data URL (or bare base64 string) to a BGR frame.

    Raises:
        DetectionError: If the string is not a decodable image.
    """
    if image.startswith("data:"):
        _, _, image = image.partition(",")
    try:
        img_bytes = base64.b64decode(image, validate=True)
    except ValueError as e:
        raise DetectionError(f"Failed to decode base64 image: {e}") from e

    frame = cv2.imdecode(np.frombuffer(img_bytes, np.uint8), cv2.IMREAD_COLOR)
    if frame is None:
        raise DetectionError("Failed to decode image data")
    return frame


def load_image(path: str) -> np.ndarray:
    """
    Read an image file as a BGR frame.

    Uses np.fromfile + cv2.imdecode so paths with non-ASCII characters work.

    Raises:
        DetectionError: If the file cannot be read or decoded.
    """
    try:
        data = np.fromfile(path, dtype=np.uint8)
    except OSError as e:
        raise DetectionError(f"Failed to read image {path}: {e}") from e

    frame = cv2.imdecode(data, cv2.IMREAD_COLOR) if data.size else None
    if frame is None:
        raise DetectionError(f"Failed to decode image {path}")
    return frame


def draw_detection(frame: np.ndarray, face: np.ndarray) -> np.ndarray:
    """Draw the face box and the five landmarks on a copy of ``frame``."""
    annotated = frame.copy()
    x, y, w, h = (int(v) for v in face[:4])
    cv2.rectangle(annotated, (x, y), (x + w, y + h), BOX_COLOR, 2, cv2.LINE_8)

    landmarks = face[LANDMARK_SLICE].reshape(-1, 2)
    for px, py in landmarks:
        cv2.circle(annotated, (int(px), int(py)), 4, LANDMARK_COLOR, -1, cv2.LINE_AA)

    return annotated


class FaceEngine:
    """
    Face detection and recognition using OpenCV YuNet + SFace.

    Attributes:
        config: Detection configuration dictionary.
        detector: cv2.FaceDetectorYN instance.
        recognizer: cv2.FaceRecognizerSF instance.
    """

    def __init__(self, config: Dict[str, Any], models_dir: Path):
        """
        Initialize the FaceEngine.

        Args:
            config: The "detection" configuration section:
                - detector_model / detector_url
                - recognizer_model / recognizer_url
                - score_threshold, nms_threshold, top_k
                - max_display_dim, jpeg_quality
            models_dir: Directory where the ONNX models live.

        Raises:
            DetectionError: If a model cannot be found or loaded.
        """
        self.config = config
        self.max_display_dim = int(config.get("max_display_dim", 1270))
        self.jpeg_quality = int(config.get("jpeg_quality", 90))

        detector_path = get_model_path(
            config.get("detector_model", "face_detection_yunet_2023mar.onnx"),
            config.get("detector_url"),
            models_dir,
        )
        recognizer_path = get_model_path(
            config.get("recognizer_model", "face_recognition_sface_2021dec.onnx"),
            config.get("recognizer_url"),
            models_dir,
        )

        try:
            # Initial input size is replaced per frame in detect()
            self.detector = cv2.FaceDetectorYN.create(
                detector_path,
                "",
                (320, 320),
                float(config.get("score_threshold", 0.9)),
                float(config.get("nms_threshold", 0.3)),
                int(config.get("top_k", 5000)),
            )
            self.recognizer = cv2.FaceRecognizerSF.create(recognizer_path, "")
        except cv2.error as e:
            raise DetectionError(f"Failed to load face models: {e}") from e

        logger.info("FaceEngine initialized")

    def detect(self, frame: np.ndarray) -> np.ndarray:
        """
        Detect the most confident face in a frame.

        Args:
            frame: BGR numpy array.

        Returns:
            The first YuNet detection row (15 floats).

        Raises:
            NoFaceDetectedError: If no face is present.
            DetectionError: If OpenCV fails.
        """
        h, w = frame.shape[:2]
        try:
            self.detector.setInputSize((w, h))
            _, faces = self.detector.detect(frame)
        except cv2.error as e:
            raise DetectionError(f"Face detection failed: {e}") from e

        if faces is None or len(faces) == 0:
            raise NoFaceDetectedError("No face detected")
        return faces[0]

    def detect_and_format(self, frame: np.ndarray) -> CapturedFrame:
        """
        Detect a face and build the display/raw image pair.

        The frame is downscaled first; the raw image is that downscaled copy,
        the display image additionally carries the face box and landmarks.

        Raises:
            NoFaceDetectedError: If no face is present.
        """
        raw = resize_frame(frame, self.max_display_dim)
        face = self.detect(raw)
        display = draw_detection(raw, face)
        return CapturedFrame(
            display_image=encode_data_url(display, self.jpeg_quality),
            raw_image=encode_data_url(raw, self.jpeg_quality),
        )

    def extract_feature(self, frame: np.ndarray) -> np.ndarray:
        """
        Align the detected face and extract its SFace feature vector.

        Returns:
            (1, 128) float32 feature.

        Raises:
            NoFaceDetectedError: If no face is present.
            DetectionError: If alignment or feature extraction fails.
        """
        face = self.detect(frame)
        try:
            aligned = self.recognizer.alignCrop(frame, face)
            feature = self.recognizer.feature(aligned)
        except cv2.error as e:
            raise DetectionError(f"Feature extraction failed: {e}") from e
        return feature.copy()

    def match(self, feature_a: np.ndarray, feature_b: np.ndarray) -> float:
        """Cosine similarity between two SFace features."""
        try:
            return float(
                self.recognizer.match(feature_a, feature_b, cv2.FaceRecognizerSF_FR_COSINE)
            )
        except cv2.error as e:
            raise DetectionError(f"Feature matching failed: {e}") from e

    def encode(self, frame: np.ndarray) -> str:
        """Encode a frame for display, downscaled like captured frames."""
        return encode_data_url(resize_frame(frame, self.max_display_dim), self.jpeg_quality)
