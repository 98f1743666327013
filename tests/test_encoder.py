"""
JPEG Encoder Tests
==================

Quality mapping, scaling and failure handling of the OpenCV encoder.
"""

import cv2
import numpy as np
import pytest

from screen_relay.capture.encoder import JpegEncoder, jpeg_quality
from screen_relay.errors import EncodeFailure
from screen_relay.models.frame import Resolution


def screen(width=1920, height=1080) -> np.ndarray:
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, : width // 2] = (40, 120, 200)
    image[height // 3 :, :] += 30
    return image


class TestJpegQuality:
    """Tests for the [0, 1] to [0, 100] mapping."""

    @pytest.mark.parametrize("quality, expected", [(0.58, 58), (0.57, 57), (0.29, 29), (0.7, 70)])
    def test_rounds_to_nearest(self, quality, expected):
        assert jpeg_quality(quality) == expected

    def test_clamped(self):
        assert jpeg_quality(-0.2) == 0
        assert jpeg_quality(1.4) == 100


class TestJpegEncoder:
    """Tests for JpegEncoder.encode."""

    def test_scales_to_requested_resolution(self):
        data = JpegEncoder().encode(screen(), 0.7, Resolution(1280, 720))

        decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert data[:2] == b"\xff\xd8"
        assert decoded.shape[:2] == (720, 1280)

    def test_native_size_kept(self):
        data = JpegEncoder().encode(screen(640, 480), 0.7, Resolution(640, 480))

        decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert decoded.shape[:2] == (480, 640)

    def test_quality_passed_to_opencv(self):
        """0.58 encodes at JPEG quality 58, not 57."""
        image = screen(640, 480)

        data = JpegEncoder().encode(image, 0.58, Resolution(640, 480))

        _, expected = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, 58])
        assert data == expected.tobytes()

    def test_lower_quality_is_smaller(self):
        image = screen()
        encoder = JpegEncoder()

        low = encoder.encode(image, 0.3, Resolution(1280, 720))
        high = encoder.encode(image, 0.9, Resolution(1280, 720))

        assert len(low) < len(high)

    def test_empty_image_rejected(self):
        with pytest.raises(EncodeFailure):
            JpegEncoder().encode(np.zeros((0, 0, 3), dtype=np.uint8), 0.7, Resolution(1280, 720))
