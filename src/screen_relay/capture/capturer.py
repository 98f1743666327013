"""
Screen Capturer
===============

Presenter-side capture loop: tick -> pace -> grab -> encode -> adjust
quality -> send.

Flow per accepted tick:
    1. Grab the screen from the CaptureSource
    2. Encode to JPEG at the current quality and fixed session resolution
    3. Feed the encoded size to the AdaptiveQualityController
    4. Drop the frame if it is above the ceiling
    5. Otherwise stamp it with the next frame id and hand it to `send`

Design Rules:
    - Frame ids start at 0 per capture session
    - Only transmitted frames consume an id
    - Resolution is fixed for a session; changing it requires restart()
    - The capture source is released on stop and on any capture error
    - start() and stop() are idempotent
"""

import logging
import time
from typing import Callable, Optional

from screen_relay.capture.encoder import Encoder, JpegEncoder
from screen_relay.capture.pacing import FramePacer
from screen_relay.capture.quality import AdaptiveQualityController, AdaptiveQualityState
from screen_relay.capture.scheduler import AsyncioTickScheduler, TickScheduler
from screen_relay.capture.source import (
    REDUCED_CONSTRAINTS,
    CaptureConstraints,
    CaptureSource,
    MssCaptureSource,
)
from screen_relay.config import CaptureConfig
from screen_relay.errors import CaptureUnavailable, EncodeFailure, OversizeFrame, SendFailure
from screen_relay.models.frame import Frame, Resolution


logger = logging.getLogger(__name__)


FrameSink = Callable[[Frame], None]
ErrorCallback = Callable[[Exception], None]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class CaptureMetrics:
    """Counters for the current capture session."""

    __slots__ = (
        "frames_sent",
        "bytes_sent",
        "oversize_drops",
        "encode_failures",
        "send_failures",
        "last_frame_size",
        "last_encode_ms",
        "fps",
        "quality",
    )

    def __init__(self) -> None:
        self.frames_sent: int = 0
        self.bytes_sent: int = 0
        self.oversize_drops: int = 0
        self.encode_failures: int = 0
        self.send_failures: int = 0
        self.last_frame_size: int = 0
        self.last_encode_ms: float = 0.0
        self.fps: float = 0.0
        self.quality: float = 0.0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_sent": self.frames_sent,
            "bytes_sent": self.bytes_sent,
            "oversize_drops": self.oversize_drops,
            "encode_failures": self.encode_failures,
            "send_failures": self.send_failures,
            "last_frame_size": self.last_frame_size,
            "last_encode_ms": round(self.last_encode_ms, 2),
            "fps": round(self.fps, 1),
            "quality": self.quality,
        }


class ScreenCapturer:
    """
    Tick-driven screen capture with adaptive JPEG quality.

    Attributes:
        active: Whether a capture session is running
        resolution: Encoded frame size for the current session
        metrics: Counters for the current session

    Example:
        capturer = ScreenCapturer(
            send=lambda frame: client.send_nowait(PresenterFrame.from_frame(frame)),
            config=settings.capture,
            on_error=lambda e: print(f"capture stopped: {e}"),
        )
        capturer.start()
        ...
        capturer.stop()
    """

    def __init__(
        self,
        send: FrameSink,
        config: Optional[CaptureConfig] = None,
        source: Optional[CaptureSource] = None,
        encoder: Optional[Encoder] = None,
        scheduler: Optional[TickScheduler] = None,
        on_error: Optional[ErrorCallback] = None,
        clock: Callable[[], int] = wall_clock_ms,
    ) -> None:
        self.config = config or CaptureConfig()
        self._send = send
        self._source = source if source is not None else MssCaptureSource()
        self._encoder = encoder if encoder is not None else JpegEncoder()
        self._scheduler = scheduler if scheduler is not None else AsyncioTickScheduler()
        self._on_error = on_error
        self._clock = clock

        self._quality = AdaptiveQualityController(
            AdaptiveQualityState(
                quality=self.config.initial_quality,
                ceiling=self.config.max_frame_size,
                min_quality=self.config.min_quality,
                max_quality=self.config.max_quality,
                hysteresis=self.config.hysteresis,
            ),
            auto_adjust=self.config.auto_adjust,
        )
        self._pacer = FramePacer(self.config.target_fps)

        self._active: bool = False
        self._resolution: Optional[Resolution] = None
        self._next_frame_id: int = 0
        self.metrics = CaptureMetrics()
        self.metrics.quality = self._quality.quality

        # Performance summary window
        self._window_start_ms: Optional[float] = None
        self._window_frames: int = 0

        self._scheduler.on_tick(self._on_tick)

    @property
    def active(self) -> bool:
        return self._active

    @property
    def resolution(self) -> Optional[Resolution]:
        return self._resolution

    @property
    def quality(self) -> float:
        return self._quality.quality

    @property
    def next_frame_id(self) -> int:
        return self._next_frame_id

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """
        Acquire the screen and begin capturing.

        A failed acquisition is retried once with reduced constraints
        (480p, primary monitor, no cursor).

        Raises:
            CaptureUnavailable: If the reduced retry fails as well
        """
        if self._active:
            return

        constraints = CaptureConstraints(
            resolution=self.config.resolution,
            monitor=self.config.monitor,
        )
        try:
            native = self._source.open(constraints)
        except CaptureUnavailable as e:
            logger.warning(f"Capture acquisition failed ({e}), retrying with reduced constraints")
            constraints = REDUCED_CONSTRAINTS
            try:
                native = self._source.open(constraints)
            except CaptureUnavailable:
                self._source.close()
                raise

        self._resolution = native.fit_within(Resolution.from_preset(constraints.resolution))
        self._next_frame_id = 0
        self.metrics = CaptureMetrics()
        self.metrics.quality = self._quality.quality
        self._window_start_ms = None
        self._window_frames = 0
        self._pacer.reset()
        self._active = True
        self._scheduler.start(self.config.tick_interval_ms)

        logger.info(
            f"Capture started: {self._resolution} @ {self._pacer.target_fps} fps, "
            f"quality {self._quality.quality:.2f}"
        )

    def stop(self) -> None:
        """Stop capturing and release the screen. Safe to call repeatedly."""
        if not self._active:
            return
        self._active = False
        self._scheduler.stop()
        self._source.close()
        logger.info(f"Capture stopped: {self.metrics.to_dict()}")

    def restart(self, resolution: Optional[str] = None) -> None:
        """Stop, optionally switch resolution preset, and start again."""
        if resolution is not None:
            self.config = self.config.model_copy(update={"resolution": resolution})
        self.stop()
        self.start()

    # =========================================================================
    # Runtime settings
    # =========================================================================

    def set_quality(self, quality: float) -> float:
        applied = self._quality.set_quality(quality)
        self.metrics.quality = applied
        logger.info(f"Quality set to {applied:.2f}")
        return applied

    def set_fps(self, fps: int) -> None:
        self._pacer.set_fps(fps)
        logger.info(f"Target fps set to {fps}")

    def set_auto_adjust(self, enabled: bool) -> None:
        self._quality.auto_adjust = enabled
        logger.info(f"Auto quality adjustment {'enabled' if enabled else 'disabled'}")

    # =========================================================================
    # Capture loop
    # =========================================================================

    def _on_tick(self, now_ms: float) -> None:
        if not self._active:
            return
        if not self._pacer.should_capture(now_ms):
            return
        self._capture_frame()
        self._maybe_log_summary(now_ms)

    def _capture_frame(self) -> None:
        try:
            image = self._source.grab()
        except CaptureUnavailable as e:
            self._fail(e)
            return

        quality = self._quality.quality
        started = time.perf_counter()
        try:
            payload = self._encoder.encode(image, quality, self._resolution)
        except EncodeFailure as e:
            self.metrics.encode_failures += 1
            logger.warning(f"Frame dropped, encode failed: {e}")
            return
        self.metrics.last_encode_ms = (time.perf_counter() - started) * 1000.0

        decision = self._quality.evaluate(len(payload))
        self.metrics.quality = decision.quality
        if decision.drop:
            self.metrics.oversize_drops += 1
            logger.warning(f"Frame dropped: {OversizeFrame(len(payload), self._quality.state.ceiling)}")
            return

        frame = Frame(
            frame_id=self._next_frame_id,
            timestamp=self._clock(),
            payload=payload,
            resolution=self._resolution,
            quality=quality,
        )
        try:
            self._send(frame)
        except SendFailure as e:
            self.metrics.send_failures += 1
            logger.debug(f"Frame {frame.frame_id} not sent: {e}")
            return

        self._next_frame_id += 1
        self._window_frames += 1
        self.metrics.frames_sent += 1
        self.metrics.bytes_sent += frame.size
        self.metrics.last_frame_size = frame.size

    def _fail(self, error: Exception) -> None:
        logger.error(f"Capture error, releasing screen: {error}")
        self.stop()
        if self._on_error is not None:
            self._on_error(error)

    def _maybe_log_summary(self, now_ms: float) -> None:
        if self._window_start_ms is None:
            self._window_start_ms = now_ms
            return

        window_ms = now_ms - self._window_start_ms
        if window_ms < self.config.perf_log_interval_sec * 1000.0:
            return

        self.metrics.fps = self._window_frames * 1000.0 / window_ms
        logger.info(f"Capture performance: {self.metrics.to_dict()}")
        self._window_start_ms = now_ms
        self._window_frames = 0
