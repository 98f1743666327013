"""
JPEG Encoder
============

Encodes captured BGR images into JPEG bytes with OpenCV.

Encoding runs on the event loop thread. The `Encoder` protocol is the
seam for moving it to a worker later; callers only depend on
`encode(image, quality, resolution) -> bytes`.
"""

import logging
from typing import Protocol

import cv2
import numpy as np

from screen_relay.errors import EncodeFailure
from screen_relay.models.frame import Resolution


logger = logging.getLogger(__name__)


class Encoder(Protocol):
    def encode(self, image: np.ndarray, quality: float, resolution: Resolution) -> bytes:
        """Encode `image` scaled to `resolution` at `quality` in [0, 1]."""
        ...


def jpeg_quality(quality: float) -> int:
    """Map quality in [0, 1] to the nearest OpenCV JPEG quality in [0, 100]."""
    return max(0, min(100, int(round(quality * 100))))


class JpegEncoder:
    """OpenCV JPEG encoder. Quality maps to IMWRITE_JPEG_QUALITY via jpeg_quality()."""

    def encode(self, image: np.ndarray, quality: float, resolution: Resolution) -> bytes:
        if image is None or image.size == 0:
            raise EncodeFailure("Empty image")

        try:
            height, width = image.shape[:2]
            if (width, height) != (resolution.width, resolution.height):
                image = cv2.resize(
                    image,
                    (resolution.width, resolution.height),
                    interpolation=cv2.INTER_AREA,
                )

            ok, buf = cv2.imencode(
                ".jpg",
                image,
                [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality(quality)],
            )
        except cv2.error as e:
            raise EncodeFailure(f"JPEG encoding failed: {e}") from e

        if not ok or buf is None or buf.size == 0:
            raise EncodeFailure("JPEG encoding produced no data")

        return buf.tobytes()
