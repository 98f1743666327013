"""
Test Configuration
==================

Pytest fixtures and fakes for ScreenRelay.

The fakes stand in for the parts that touch hardware or the network:
    ManualTickScheduler  - ticks driven by the test
    FakeCaptureSource    - scripted screen acquisition
    FakeEncoder          - scripted encoded sizes
    RecordingConnection  - hub-side connection that records what it is sent
    FakeWebSocket        - client-side transport for HubClient
    FakeConnector        - scripted websockets.connect replacement
"""

import asyncio
import json
from typing import Callable, List, Optional, Sequence, Union

import numpy as np
import pytest

from screen_relay.capture.source import CaptureConstraints
from screen_relay.config import CaptureConfig, Settings
from screen_relay.errors import CaptureUnavailable, EncodeFailure
from screen_relay.models.frame import Resolution


class ManualTickScheduler:
    """TickScheduler whose ticks are delivered by calling tick()."""

    def __init__(self) -> None:
        self.callback: Optional[Callable[[float], None]] = None
        self.running: bool = False
        self.start_count: int = 0
        self.stop_count: int = 0
        self.hint_ms: Optional[float] = None

    def on_tick(self, callback: Callable[[float], None]) -> None:
        self.callback = callback

    def start(self, tick_interval_hint_ms: float) -> None:
        self.running = True
        self.start_count += 1
        self.hint_ms = tick_interval_hint_ms

    def stop(self) -> None:
        self.running = False
        self.stop_count += 1

    def tick(self, now_ms: float) -> None:
        if self.running and self.callback is not None:
            self.callback(now_ms)

    def run(self, start_ms: float, end_ms: float, step_ms: float) -> None:
        now = start_ms
        while now < end_ms:
            self.tick(now)
            now += step_ms


class FakeCaptureSource:
    """CaptureSource that fails the first `fail_opens` acquisitions."""

    def __init__(self, native: Resolution = Resolution(1920, 1080), fail_opens: int = 0) -> None:
        self.native = native
        self.fail_opens = fail_opens
        self.opened_with: List[CaptureConstraints] = []
        self.is_open: bool = False
        self.close_count: int = 0
        self.grab_count: int = 0
        self.grab_error: Optional[Exception] = None

    def open(self, constraints: CaptureConstraints) -> Resolution:
        self.opened_with.append(constraints)
        if self.fail_opens > 0:
            self.fail_opens -= 1
            raise CaptureUnavailable("device busy")
        self.is_open = True
        return self.native

    def grab(self) -> np.ndarray:
        if self.grab_error is not None:
            raise self.grab_error
        self.grab_count += 1
        return np.zeros((self.native.height, self.native.width, 3), dtype=np.uint8)

    def close(self) -> None:
        self.is_open = False
        self.close_count += 1


class FakeEncoder:
    """
    Encoder producing payloads of scripted sizes.

    `sizes` is consumed in order; the last size repeats once exhausted.
    A size of None raises EncodeFailure for that frame.
    """

    def __init__(self, sizes: Union[int, Sequence[Optional[int]]] = 6000) -> None:
        self.sizes = [sizes] if isinstance(sizes, int) else list(sizes)
        self.qualities: List[float] = []
        self.resolutions: List[Resolution] = []
        self._index = 0

    def encode(self, image: np.ndarray, quality: float, resolution: Resolution) -> bytes:
        size = self.sizes[min(self._index, len(self.sizes) - 1)]
        self._index += 1
        self.qualities.append(quality)
        self.resolutions.append(resolution)
        if size is None:
            raise EncodeFailure("scripted failure")
        return b"\xab" * size


class RecordingConnection:
    """Hub-side Connection that keeps every message it is sent."""

    def __init__(self, connection_id: str) -> None:
        self.id = connection_id
        self.sent: List[str] = []

    def send_nowait(self, message: str) -> None:
        self.sent.append(message)

    def messages(self) -> List[dict]:
        return [json.loads(m) for m in self.sent]

    def types(self) -> List[str]:
        return [m["type"] for m in self.messages()]

    def clear(self) -> None:
        self.sent.clear()


class FakeWebSocket:
    """Client transport: yields queued messages, ends iteration on close."""

    def __init__(self, incoming: Sequence[str] = (), close_immediately: bool = False) -> None:
        self.sent: List[str] = []
        self.closed: bool = False
        self._queue: asyncio.Queue = asyncio.Queue()
        for message in incoming:
            self._queue.put_nowait(message)
        if close_immediately:
            self._queue.put_nowait(None)

    def feed(self, message: str) -> None:
        self._queue.put_nowait(message)

    async def send(self, text: str) -> None:
        self.sent.append(text)

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)


class FakeConnector:
    """Replacement for websockets.connect returning scripted outcomes."""

    def __init__(self, outcomes: Sequence[Union[FakeWebSocket, Exception]]) -> None:
        self.outcomes = list(outcomes)
        self.urls: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.urls)

    async def __call__(self, url: str, **kwargs) -> FakeWebSocket:
        self.urls.append(url)
        if not self.outcomes:
            raise OSError("connection refused")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def wait_until(predicate: Callable[[], bool], iterations: int = 500) -> None:
    """Yield to the event loop until `predicate()` holds."""
    for _ in range(iterations):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def scheduler():
    return ManualTickScheduler()


@pytest.fixture
def capture_source():
    return FakeCaptureSource()


@pytest.fixture
def capture_config():
    """Small ceiling so scripted payloads stay tiny: 6000 bytes sits inside the keep band."""
    return CaptureConfig(max_frame_size=10_000, target_fps=10, initial_quality=0.7)


@pytest.fixture
def test_settings():
    return Settings()
