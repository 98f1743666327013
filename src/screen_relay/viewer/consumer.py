"""
Frame Consumer
==============

Viewer-side handling of incoming presenter frames.

For every frame the consumer:
    - Accounts for gaps in frame ids as dropped frames
    - Measures latency against the sender's capture timestamp
    - Updates the rolling frame rate
    - Classifies connection quality and reports tier changes
    - Hands the frame to the renderer

Quality Tiers:
    POOR  latency > 500 ms  or  fps < 5
    FAIR  latency > 200 ms  or  fps < 10
    GOOD  otherwise

Design Rules:
    - Out-of-order and duplicate frames are rendered but never counted
      as drops, and never move the id baseline backwards
    - Latency uses wall clocks on both ends; clock skew shows up as latency
    - No smoothing on the tier; every change is reported
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from screen_relay.config import ViewerConfig
from screen_relay.errors import ImageDecodeError
from screen_relay.models.frame import Frame
from screen_relay.viewer.rate import FrameRateEstimator


logger = logging.getLogger(__name__)


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class ConnectionQuality(str, Enum):
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass
class QualityThresholds:
    """Latency / frame rate boundaries between quality tiers."""

    latency_fair_ms: float = 200.0
    latency_poor_ms: float = 500.0
    fps_fair: float = 10.0
    fps_poor: float = 5.0

    @classmethod
    def from_config(cls, config: ViewerConfig) -> "QualityThresholds":
        return cls(
            latency_fair_ms=config.latency_fair_ms,
            latency_poor_ms=config.latency_poor_ms,
            fps_fair=config.fps_fair,
            fps_poor=config.fps_poor,
        )


def classify_quality(
    latency_ms: float,
    fps: float,
    thresholds: Optional[QualityThresholds] = None,
) -> ConnectionQuality:
    t = thresholds or QualityThresholds()
    if latency_ms > t.latency_poor_ms or fps < t.fps_poor:
        return ConnectionQuality.POOR
    if latency_ms > t.latency_fair_ms or fps < t.fps_fair:
        return ConnectionQuality.FAIR
    return ConnectionQuality.GOOD


class FrameRenderer(Protocol):
    """Display surface for decoded frames, provided by the UI layer."""

    def render(self, frame: Frame) -> None: ...

    def clear(self) -> None: ...


class FrameConsumerMetrics:
    """Metrics for FrameConsumer observability."""

    __slots__ = (
        "frames_received",
        "dropped_frames",
        "out_of_order",
        "render_errors",
        "last_frame_id",
        "latency_ms",
        "fps",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.dropped_frames: int = 0
        self.out_of_order: int = 0
        self.render_errors: int = 0
        self.last_frame_id: Optional[int] = None
        self.latency_ms: Optional[float] = None
        self.fps: Optional[float] = None

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_received": self.frames_received,
            "dropped_frames": self.dropped_frames,
            "out_of_order": self.out_of_order,
            "render_errors": self.render_errors,
            "last_frame_id": self.last_frame_id,
            "latency_ms": self.latency_ms,
            "fps": round(self.fps, 1) if self.fps is not None else None,
        }


class FrameConsumer:
    """
    Drop accounting, latency / frame rate tracking and quality tiers.

    Attributes:
        metrics: Counters and latest measurements
        quality: Current tier, None until a frame rate is known

    Example:
        consumer = FrameConsumer(
            renderer=my_renderer,
            on_quality_change=lambda q: print(f"connection {q.value}"),
        )
        consumer.ingest(msg.to_frame())
    """

    def __init__(
        self,
        renderer: Optional[FrameRenderer] = None,
        config: Optional[ViewerConfig] = None,
        on_quality_change: Optional[Callable[[ConnectionQuality], None]] = None,
        clock: Callable[[], int] = wall_clock_ms,
    ) -> None:
        self.config = config or ViewerConfig()
        self.renderer = renderer
        self.on_quality_change = on_quality_change
        self.thresholds = QualityThresholds.from_config(self.config)
        self._clock = clock

        self._rate = FrameRateEstimator(window=self.config.fps_window)
        self._last_received_ms: Optional[float] = None
        self.quality: Optional[ConnectionQuality] = None
        self.metrics = FrameConsumerMetrics()

    @property
    def dropped_frames(self) -> int:
        return self.metrics.dropped_frames

    @property
    def last_frame_id(self) -> Optional[int]:
        return self.metrics.last_frame_id

    def ingest(self, frame: Frame, received_at_ms: Optional[float] = None) -> Optional[ConnectionQuality]:
        """
        Process one received frame.

        Args:
            frame: Decoded presenter frame
            received_at_ms: Local receive time; defaults to now

        Returns:
            Current quality tier, or None while the frame rate is unknown
        """
        if received_at_ms is None:
            received_at_ms = self._clock()

        self.metrics.frames_received += 1
        self._account(frame.frame_id)

        latency = received_at_ms - frame.timestamp
        fps = self._rate.update(received_at_ms)
        self._last_received_ms = received_at_ms
        self.metrics.latency_ms = latency
        self.metrics.fps = fps

        if fps is not None:
            self._set_quality(classify_quality(latency, fps, self.thresholds))

        if self.renderer is not None:
            try:
                self.renderer.render(frame)
            except ImageDecodeError as e:
                self.metrics.render_errors += 1
                logger.warning(f"Could not render frame {frame.frame_id}: {e}")

        return self.quality

    def _account(self, frame_id: int) -> None:
        last = self.metrics.last_frame_id
        if last is None:
            self.metrics.last_frame_id = frame_id
            return

        if frame_id <= last:
            self.metrics.out_of_order += 1
            logger.debug(f"Out-of-order frame {frame_id} (last {last})")
            return

        gap = frame_id - last - 1
        if gap > 0:
            self.metrics.dropped_frames += gap
            logger.debug(f"Frame gap: {gap} dropped before {frame_id}")
        self.metrics.last_frame_id = frame_id

    def _set_quality(self, quality: ConnectionQuality) -> None:
        if quality == self.quality:
            return
        previous = self.quality
        self.quality = quality
        logger.info(
            f"Connection quality: {previous.value if previous else 'unknown'} -> {quality.value}"
        )
        if self.on_quality_change is not None:
            self.on_quality_change(quality)

    def is_stalled(self, now_ms: Optional[float] = None) -> bool:
        """True when frames were flowing but none arrived within the stall timeout."""
        if self._last_received_ms is None:
            return False
        if now_ms is None:
            now_ms = self._clock()
        return now_ms - self._last_received_ms > self.config.stall_timeout_sec * 1000.0

    def reset(self) -> None:
        """Forget the frame id baseline and rate history (new presenter session)."""
        self.metrics.last_frame_id = None
        self._rate.reset()
        self._last_received_ms = None
        logger.info("FrameConsumer reset")

    def get_metrics(self) -> dict:
        return {
            **self.metrics.to_dict(),
            "quality": self.quality.value if self.quality else None,
        }
