"""
Tests for the FaceEngine module.

This test suite verifies:
- Frame downscaling
- JPEG data URL encoding/decoding
- Image file loading
- Detection formatting and error mapping (with stubbed OpenCV models)

Run with: pytest tests/test_face_engine.py -v

Note: The YuNet/SFace models are not loaded; the detector and recognizer
are replaced with mocks.
"""

import os
import sys
import pytest
import numpy as np
import cv2
from unittest.mock import MagicMock

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import DetectionError, NoFaceDetectedError
from core.face_engine import (
    DATA_URL_PREFIX,
    FaceEngine,
    decode_data_url,
    draw_detection,
    encode_data_url,
    get_model_path,
    load_image,
    resize_frame,
)


# x, y, w, h, five landmarks, score
FACE_ROW = np.array(
    [100, 80, 120, 150, 130, 130, 190, 130, 160, 160, 135, 200, 185, 200, 0.98],
    dtype=np.float32,
)


def make_frame(width=640, height=480):
    frame = np.full((height, width, 3), 60, dtype=np.uint8)
    cv2.ellipse(frame, (width // 2, height // 2), (80, 100), 0, 0, 360, (150, 180, 220), -1)
    return frame


def make_engine(faces=FACE_ROW.reshape(1, -1), max_display_dim=1270):
    """FaceEngine with stubbed OpenCV models."""
    engine = FaceEngine.__new__(FaceEngine)
    engine.config = {}
    engine.max_display_dim = max_display_dim
    engine.jpeg_quality = 90
    engine.detector = MagicMock()
    engine.detector.detect.return_value = (1, faces)
    engine.recognizer = MagicMock()
    engine.recognizer.alignCrop.return_value = np.zeros((112, 112, 3), dtype=np.uint8)
    engine.recognizer.feature.return_value = np.ones((1, 128), dtype=np.float32)
    engine.recognizer.match.return_value = 0.42
    return engine


class TestResizeFrame:
    """Tests for resize_frame."""

    def test_downscales_longest_side(self):
        resized = resize_frame(make_frame(2540, 1000), 1270)
        assert resized.shape[:2] == (500, 1270)

    def test_portrait(self):
        resized = resize_frame(make_frame(1000, 2540), 1270)
        assert resized.shape[:2] == (1270, 500)

    def test_never_upscales(self):
        frame = make_frame(640, 480)
        assert resize_frame(frame, 1270) is frame


class TestDataUrls:
    """Tests for JPEG data URL helpers."""

    def test_encode_prefix(self):
        assert encode_data_url(make_frame()).startswith(DATA_URL_PREFIX)

    def test_decode_shape(self):
        decoded = decode_data_url(encode_data_url(make_frame(320, 240)))
        assert decoded.shape == (240, 320, 3)

    def test_decode_bare_base64(self):
        url = encode_data_url(make_frame(64, 48))
        decoded = decode_data_url(url[len(DATA_URL_PREFIX):])
        assert decoded.shape == (48, 64, 3)

    @pytest.mark.parametrize("bad", ["data:image/jpeg;base64,!!!", "data:image/jpeg;base64,aGVsbG8="])
    def test_decode_invalid(self, bad):
        with pytest.raises(DetectionError):
            decode_data_url(bad)


class TestLoadImage:
    """Tests for load_image."""

    def test_load_jpeg(self, tmp_path):
        path = tmp_path / "face.jpg"
        cv2.imwrite(str(path), make_frame(200, 100))

        assert load_image(str(path)).shape == (100, 200, 3)

    def test_missing_file(self, tmp_path):
        with pytest.raises(DetectionError):
            load_image(str(tmp_path / "missing.jpg"))

    def test_not_an_image(self, tmp_path):
        path = tmp_path / "notes.jpg"
        path.write_text("not an image")
        with pytest.raises(DetectionError):
            load_image(str(path))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.jpg"
        path.write_bytes(b"")
        with pytest.raises(DetectionError):
            load_image(str(path))


class TestModelPath:
    """Tests for get_model_path."""

    def test_existing_model(self, tmp_path):
        (tmp_path / "model.onnx").write_bytes(b"onnx")
        assert get_model_path("model.onnx", None, tmp_path) == str(tmp_path / "model.onnx")

    def test_missing_without_url(self, tmp_path):
        with pytest.raises(DetectionError):
            get_model_path("model.onnx", None, tmp_path)


class TestFaceEngine:
    """Tests for FaceEngine with stubbed models."""

    def test_detect_and_format(self):
        engine = make_engine()
        captured = engine.detect_and_format(make_frame())

        assert captured.display_image.startswith(DATA_URL_PREFIX)
        assert captured.raw_image.startswith(DATA_URL_PREFIX)
        # The display copy is annotated, the raw copy is not
        assert captured.display_image != captured.raw_image
        engine.detector.setInputSize.assert_called_with((640, 480))

    def test_detect_uses_downscaled_frame(self):
        engine = make_engine(max_display_dim=320)
        captured = engine.detect_and_format(make_frame(640, 480))

        engine.detector.setInputSize.assert_called_with((320, 240))
        assert decode_data_url(captured.raw_image).shape == (240, 320, 3)

    @pytest.mark.parametrize("faces", [None, np.empty((0, 15), dtype=np.float32)])
    def test_no_face(self, faces):
        engine = make_engine(faces=faces)
        with pytest.raises(NoFaceDetectedError):
            engine.detect_and_format(make_frame())

    def test_opencv_failure_is_detection_error(self):
        engine = make_engine()
        engine.detector.detect.side_effect = cv2.error("boom")

        with pytest.raises(DetectionError) as exc_info:
            engine.detect(make_frame())
        assert not isinstance(exc_info.value, NoFaceDetectedError)

    def test_extract_feature_and_match(self):
        engine = make_engine()
        feature = engine.extract_feature(make_frame())

        assert feature.shape == (1, 128)
        assert engine.match(feature, feature) == pytest.approx(0.42)
        engine.recognizer.match.assert_called_once()

    def test_draw_detection_does_not_modify_input(self):
        frame = make_frame()
        original = frame.copy()
        annotated = draw_detection(frame, FACE_ROW)

        assert np.array_equal(frame, original)
        assert not np.array_equal(annotated, original)


MODELS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "storage", "models")
MODEL_FILES = ("face_detection_yunet_2023mar.onnx", "face_recognition_sface_2021dec.onnx")


@pytest.mark.skipif(
    not all(os.path.exists(os.path.join(MODELS_DIR, f)) for f in MODEL_FILES),
    reason="OpenCV face models not downloaded",
)
class TestFaceEngineModels:
    """Tests against the real YuNet/SFace models."""

    def test_blank_frame_has_no_face(self):
        from pathlib import Path

        engine = FaceEngine({}, Path(MODELS_DIR))
        with pytest.raises(NoFaceDetectedError):
            engine.detect_and_format(np.zeros((480, 640, 3), dtype=np.uint8))
