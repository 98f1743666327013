"""
Capture Module
==============

Presenter-side screen capture with adaptive JPEG quality.

Components:
    - AsyncioTickScheduler: event-loop timer driving the capture loop
    - FramePacer: drift-free target frame rate gate
    - AdaptiveQualityController: size-driven quality policy with hysteresis
    - MssCaptureSource: screen acquisition via mss
    - JpegEncoder: OpenCV JPEG encoding
    - ScreenCapturer: the tick -> capture -> encode -> send loop
"""

from screen_relay.capture.scheduler import AsyncioTickScheduler, TickScheduler
from screen_relay.capture.pacing import FramePacer
from screen_relay.capture.quality import (
    AdaptiveQualityController,
    AdaptiveQualityState,
    QualityDecision,
)
from screen_relay.capture.source import (
    REDUCED_CONSTRAINTS,
    CaptureConstraints,
    CaptureSource,
    MssCaptureSource,
)
from screen_relay.capture.encoder import Encoder, JpegEncoder
from screen_relay.capture.capturer import CaptureMetrics, ScreenCapturer

__all__ = [
    "AsyncioTickScheduler",
    "TickScheduler",
    "FramePacer",
    "AdaptiveQualityController",
    "AdaptiveQualityState",
    "QualityDecision",
    "REDUCED_CONSTRAINTS",
    "CaptureConstraints",
    "CaptureSource",
    "MssCaptureSource",
    "Encoder",
    "JpegEncoder",
    "CaptureMetrics",
    "ScreenCapturer",
]
