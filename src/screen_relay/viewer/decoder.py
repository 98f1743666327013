"""
Image Decoder
=============

Decodes frame payloads (JPEG bytes) into OpenCV matrices for renderers.

Design Rules:
    - Validates shape and dtype
    - Fails fast on corrupt frames with ImageDecodeError
"""

import logging
from pathlib import Path
from typing import Union

import cv2
import numpy as np

from screen_relay.errors import ImageDecodeError
from screen_relay.models.frame import Frame


logger = logging.getLogger(__name__)


def decode_frame(frame: Frame) -> np.ndarray:
    """
    Decode a frame payload to a BGR numpy array.

    Args:
        frame: Frame with JPEG payload

    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        ImageDecodeError: If decoding fails or image is invalid
    """
    if not frame.payload:
        raise ImageDecodeError(f"Frame {frame.frame_id} has an empty payload")

    nparr = np.frombuffer(frame.payload, np.uint8)
    try:
        bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"Failed to decode frame {frame.frame_id}: {e}") from e

    if bgr is None:
        raise ImageDecodeError(
            f"Failed to decode frame {frame.frame_id}: cv2.imdecode returned None"
        )

    if len(bgr.shape) != 3 or bgr.shape[2] != 3:
        raise ImageDecodeError(f"Invalid image shape for frame {frame.frame_id}: {bgr.shape}")

    if bgr.dtype != np.uint8:
        raise ImageDecodeError(f"Invalid dtype for frame {frame.frame_id}: {bgr.dtype}")

    return bgr


class SnapshotRenderer:
    """
    Renderer that keeps the newest frame on disk as an image file.

    Used by the command-line viewer, which has no display surface.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.frames_written: int = 0

    def render(self, frame: Frame) -> None:
        image = decode_frame(frame)
        if not cv2.imwrite(str(self.path), image):
            raise ImageDecodeError(f"Could not write frame {frame.frame_id} to {self.path}")
        self.frames_written += 1

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info(f"Cleared snapshot {self.path}")
