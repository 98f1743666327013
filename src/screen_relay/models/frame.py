"""
Frame Data Model
=================

Internal frame representation shared by the capture pipeline and the
viewer-side consumer.

Design Rules:
    - Frames are immutable once produced
    - `payload` holds raw JPEG bytes; base64 only exists on the wire
    - `size` is derived from the payload, never stored separately
"""

from dataclasses import dataclass
from typing import Optional


RESOLUTION_PRESETS = {
    "480p": (854, 480),
    "720p": (1280, 720),
    "1080p": (1920, 1080),
}


@dataclass(frozen=True, slots=True)
class Resolution:
    """Width x height of an encoded image, in pixels."""

    width: int
    height: int

    @classmethod
    def from_preset(cls, name: str) -> "Resolution":
        """Resolve a preset name ('480p', '720p', '1080p'); unknown names mean 720p."""
        width, height = RESOLUTION_PRESETS.get(name, RESOLUTION_PRESETS["720p"])
        return cls(width, height)

    def fit_within(self, bounds: "Resolution") -> "Resolution":
        """Scale down to fit inside `bounds`, keeping aspect ratio. Never upscales."""
        if self.width <= bounds.width and self.height <= bounds.height:
            return self
        if self.width * bounds.height >= self.height * bounds.width:
            return Resolution(bounds.width, max(1, round(self.height * bounds.width / self.width)))
        return Resolution(max(1, round(self.width * bounds.height / self.height)), bounds.height)

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True, slots=True)
class Frame:
    """
    A single captured-and-encoded image unit.

    Attributes:
        frame_id: Monotonically increasing counter within one capture session
        timestamp: Capture wall-clock time, milliseconds since epoch
        payload: Encoded JPEG bytes
        resolution: Dimensions of the encoded image
        quality: Encoding quality in force, None for viewer self-share frames
    """

    frame_id: int
    timestamp: int
    payload: bytes
    resolution: Resolution
    quality: Optional[float] = None

    @property
    def size(self) -> int:
        """Byte length of the encoded payload."""
        return len(self.payload)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(frame_id={self.frame_id}, "
            f"timestamp={self.timestamp}, "
            f"size={self.size}, quality={self.quality}, "
            f"resolution={self.resolution})"
        )
