"""
Capture Source
==============

Screen acquisition behind a small protocol so the capture loop can run
against a real display (mss) or a scripted fake.

Design Rules:
    - open() either succeeds or raises CaptureUnavailable
    - grab() returns a BGR uint8 array (H, W, 3)
    - close() is idempotent and always releases the device
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import mss
import mss.exception
from mss.base import MSSBase
import numpy as np

from screen_relay.errors import CaptureUnavailable
from screen_relay.models.frame import Resolution


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureConstraints:
    """
    What to capture.

    Attributes:
        resolution: Preset bounding the encoded size ('480p', '720p', '1080p')
        monitor: mss monitor index, 1 is the primary display, 0 all displays
        cursor: Whether to draw the cursor into captured images
    """

    resolution: str = "720p"
    monitor: int = 1
    cursor: bool = True


# Used for the single retry after a failed acquisition
REDUCED_CONSTRAINTS = CaptureConstraints(resolution="480p", monitor=1, cursor=False)


class CaptureSource(Protocol):
    """A screen (or fake) that can be opened, read and released."""

    def open(self, constraints: CaptureConstraints) -> Resolution:
        """Acquire the device and return its native size."""
        ...

    def grab(self) -> np.ndarray: ...

    def close(self) -> None: ...


class MssCaptureSource:
    """
    Capture source backed by the `mss` screenshot library.

    Example:
        source = MssCaptureSource()
        native = source.open(CaptureConstraints(monitor=1))
        image = source.grab()
        source.close()
    """

    def __init__(self) -> None:
        self._sct: Optional[MSSBase] = None
        self._monitor: Optional[dict] = None

    @property
    def is_open(self) -> bool:
        return self._sct is not None

    def open(self, constraints: CaptureConstraints) -> Resolution:
        if self._sct is not None:
            self.close()

        try:
            sct = mss.mss(with_cursor=constraints.cursor)
        except mss.exception.ScreenShotError as e:
            raise CaptureUnavailable(f"Screen capture unavailable: {e}") from e

        if constraints.monitor >= len(sct.monitors):
            sct.close()
            raise CaptureUnavailable(
                f"Monitor {constraints.monitor} not found "
                f"({len(sct.monitors) - 1} available)"
            )

        self._sct = sct
        self._monitor = sct.monitors[constraints.monitor]
        native = Resolution(self._monitor["width"], self._monitor["height"])
        logger.info(f"Screen capture opened: monitor {constraints.monitor} ({native})")
        return native

    def grab(self) -> np.ndarray:
        if self._sct is None or self._monitor is None:
            raise CaptureUnavailable("Capture source is not open")
        try:
            shot = self._sct.grab(self._monitor)
        except mss.exception.ScreenShotError as e:
            raise CaptureUnavailable(f"Screen grab failed: {e}") from e
        # mss returns BGRA
        return np.asarray(shot)[:, :, :3]

    def close(self) -> None:
        if self._sct is None:
            return
        try:
            self._sct.close()
        finally:
            self._sct = None
            self._monitor = None
            logger.info("Screen capture released")
