"""
Frame Consumer Tests
====================

Drop accounting, frame rate estimation and quality tiers.
"""

import numpy as np
import cv2
import pytest

from screen_relay.config import ViewerConfig
from screen_relay.errors import ImageDecodeError
from screen_relay.models.frame import Frame, Resolution
from screen_relay.viewer.consumer import ConnectionQuality, FrameConsumer, classify_quality
from screen_relay.viewer.decoder import decode_frame
from screen_relay.viewer.rate import FrameRateEstimator


def frame(frame_id: int, timestamp: int = 0, payload: bytes = b"\xab") -> Frame:
    return Frame(
        frame_id=frame_id,
        timestamp=timestamp,
        payload=payload,
        resolution=Resolution(1280, 720),
        quality=0.7,
    )


class RecordingRenderer:
    def __init__(self) -> None:
        self.rendered = []
        self.cleared = 0

    def render(self, f: Frame) -> None:
        self.rendered.append(f.frame_id)

    def clear(self) -> None:
        self.cleared += 1


class TestDropAccounting:
    """Tests for frame id gap detection."""

    def test_gaps_are_counted(self):
        """Ids [1, 2, 5, 6] mean two frames were lost."""
        consumer = FrameConsumer()
        for i, fid in enumerate([1, 2, 5, 6]):
            consumer.ingest(frame(fid), received_at_ms=i * 100)

        assert consumer.dropped_frames == 2
        assert consumer.last_frame_id == 6

    def test_first_frame_sets_baseline(self):
        """Joining mid-stream does not count earlier frames as dropped."""
        consumer = FrameConsumer()
        consumer.ingest(frame(500), received_at_ms=0)

        assert consumer.dropped_frames == 0
        assert consumer.last_frame_id == 500

    def test_out_of_order_rendered_but_not_counted(self):
        renderer = RecordingRenderer()
        consumer = FrameConsumer(renderer=renderer)
        for i, fid in enumerate([1, 3, 2, 4]):
            consumer.ingest(frame(fid), received_at_ms=i * 100)

        assert consumer.dropped_frames == 1
        assert consumer.metrics.out_of_order == 1
        assert consumer.last_frame_id == 4
        assert renderer.rendered == [1, 3, 2, 4]

    def test_duplicate_does_not_move_baseline_back(self):
        consumer = FrameConsumer()
        for i, fid in enumerate([5, 6, 6, 3, 7]):
            consumer.ingest(frame(fid), received_at_ms=i * 100)

        assert consumer.dropped_frames == 0
        assert consumer.last_frame_id == 7

    def test_reset_starts_new_baseline(self):
        """After a presenter restart ids begin at 0 again without drops."""
        consumer = FrameConsumer()
        consumer.ingest(frame(40), received_at_ms=0)
        consumer.reset()
        consumer.ingest(frame(0), received_at_ms=100)
        consumer.ingest(frame(1), received_at_ms=200)

        assert consumer.dropped_frames == 0
        assert consumer.metrics.out_of_order == 0


class TestFrameRate:
    """Tests for the rolling frame rate."""

    def test_unknown_until_two_arrivals(self):
        estimator = FrameRateEstimator()
        assert estimator.update(0) is None
        assert estimator.update(100) == pytest.approx(10.0)

    def test_window_keeps_last_intervals(self):
        """Only the last N intervals count."""
        estimator = FrameRateEstimator(window=3)
        for t in (0, 1000, 2000, 2100, 2200, 2300):
            estimator.update(t)

        assert estimator.sample_count == 3
        assert estimator.fps == pytest.approx(10.0)


class TestQualityTiers:
    """Tests for connection quality classification."""

    @pytest.mark.parametrize(
        "latency, fps, expected",
        [
            (50, 15, ConnectionQuality.GOOD),
            (200, 10, ConnectionQuality.GOOD),
            (201, 15, ConnectionQuality.FAIR),
            (50, 9.9, ConnectionQuality.FAIR),
            (501, 15, ConnectionQuality.POOR),
            (50, 4.9, ConnectionQuality.POOR),
            (300, 4, ConnectionQuality.POOR),
        ],
    )
    def test_classify(self, latency, fps, expected):
        assert classify_quality(latency, fps) == expected

    def test_tier_changes_reported_once_each(self):
        changes = []
        consumer = FrameConsumer(on_quality_change=changes.append)

        # 10 fps, 50 ms latency -> GOOD
        for i in range(5):
            consumer.ingest(frame(i, timestamp=i * 100), received_at_ms=i * 100 + 50)
        # latency jumps to 300 ms -> FAIR
        for i in range(5, 8):
            consumer.ingest(frame(i, timestamp=i * 100 - 250), received_at_ms=i * 100 + 50)

        assert changes == [ConnectionQuality.GOOD, ConnectionQuality.FAIR]
        assert consumer.quality == ConnectionQuality.FAIR

    def test_no_tier_until_rate_known(self):
        consumer = FrameConsumer()
        assert consumer.ingest(frame(0), received_at_ms=10) is None

    def test_thresholds_from_config(self):
        consumer = FrameConsumer(config=ViewerConfig(latency_fair_ms=20, latency_poor_ms=40))
        consumer.ingest(frame(0, timestamp=0), received_at_ms=30)
        quality = consumer.ingest(frame(1, timestamp=100), received_at_ms=130)

        assert quality == ConnectionQuality.FAIR


class TestStallDetection:
    """Tests for the no-frames watchdog."""

    def test_stalled_after_timeout(self):
        consumer = FrameConsumer(config=ViewerConfig(stall_timeout_sec=5))
        consumer.ingest(frame(0), received_at_ms=1_000)

        assert not consumer.is_stalled(now_ms=5_999)
        assert consumer.is_stalled(now_ms=6_001)

    def test_not_stalled_before_first_frame(self):
        assert not FrameConsumer().is_stalled(now_ms=1e12)


class TestDecoder:
    """Tests for payload decoding."""

    def test_decodes_jpeg(self):
        image = np.full((48, 64, 3), 127, dtype=np.uint8)
        ok, buf = cv2.imencode(".jpg", image)
        assert ok

        decoded = decode_frame(frame(0, payload=buf.tobytes()))

        assert decoded.shape == (48, 64, 3)
        assert decoded.dtype == np.uint8

    def test_corrupt_payload_raises(self):
        with pytest.raises(ImageDecodeError):
            decode_frame(frame(0, payload=b"not a jpeg"))

    def test_render_errors_do_not_stop_consumption(self):
        class FailingRenderer(RecordingRenderer):
            def render(self, f):
                raise ImageDecodeError("bad")

        consumer = FrameConsumer(renderer=FailingRenderer())
        consumer.ingest(frame(0), received_at_ms=0)
        consumer.ingest(frame(1), received_at_ms=100)

        assert consumer.metrics.render_errors == 2
        assert consumer.last_frame_id == 1
