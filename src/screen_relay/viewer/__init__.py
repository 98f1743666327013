"""
Viewer Module
=============

Viewer-side frame consumption, drop accounting and connection quality.
"""

from screen_relay.viewer.rate import FrameRateEstimator
from screen_relay.viewer.consumer import (
    ConnectionQuality,
    FrameConsumer,
    FrameConsumerMetrics,
    FrameRenderer,
    QualityThresholds,
    classify_quality,
)
from screen_relay.viewer.decoder import SnapshotRenderer, decode_frame

__all__ = [
    "FrameRateEstimator",
    "ConnectionQuality",
    "FrameConsumer",
    "FrameConsumerMetrics",
    "FrameRenderer",
    "QualityThresholds",
    "classify_quality",
    "SnapshotRenderer",
    "decode_frame",
]
