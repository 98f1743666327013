"""
End-to-End Tests
================

A presenter's capture pipeline relayed through the hub application to a
viewer-side FrameConsumer.
"""

import json

from fastapi.testclient import TestClient

from screen_relay.capture.capturer import ScreenCapturer
from screen_relay.config import Settings
from screen_relay.main import create_app
from screen_relay.models.messages import VIEWER_OUTBOUND, Identify, PresenterFrame, parse_message
from screen_relay.models.session import Role
from screen_relay.viewer.consumer import FrameConsumer

from conftest import FakeCaptureSource, FakeEncoder, ManualTickScheduler


def receive_until(ws, message_type: str) -> dict:
    while True:
        message = json.loads(ws.receive_text())
        if message["type"] == message_type:
            return message


class TestHttpEndpoints:
    """Tests for the hub's HTTP surface."""

    def test_health(self):
        with TestClient(create_app(Settings())) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self):
        with TestClient(create_app(Settings())) as client:
            data = client.get("/").json()

        assert data["service"] == "ScreenRelay"
        assert data["websocket"] == "/ws"

    def test_status_reports_registry(self):
        with TestClient(create_app(Settings())) as client:
            with client.websocket_connect("/ws") as ws:
                ws.send_text(Identify(role=Role.PRESENTER, display_name="Prof").to_json())
                receive_until(ws, "connection-count")

                data = client.get("/status").json()

        assert data["connections"] == 1
        assert data["presenters"] == 1
        assert data["presenter"]["name"] == "Prof"
        assert "uptime_seconds" in data


class TestRelayEndToEnd:
    """Presenter -> hub -> viewer over real WebSockets."""

    def test_ten_frames_arrive_in_order(self, capture_config):
        """One second at 10 fps: viewer sees ids 0..9 at quality 0.7, nothing dropped."""
        with TestClient(create_app(Settings())) as client:
            with client.websocket_connect("/ws") as presenter_ws:
                presenter_ws.send_text(Identify(role=Role.PRESENTER, display_name="Prof").to_json())
                receive_until(presenter_ws, "connection-count")

                with client.websocket_connect("/ws") as viewer_ws:
                    status = receive_until(viewer_ws, "presenter-status")
                    viewer_ws.send_text(Identify(role=Role.VIEWER, display_name="Alice").to_json())
                    receive_until(viewer_ws, "connection-count")

                    scheduler = ManualTickScheduler()
                    capturer = ScreenCapturer(
                        send=lambda f: presenter_ws.send_text(PresenterFrame.from_frame(f).to_json()),
                        config=capture_config,
                        source=FakeCaptureSource(),
                        encoder=FakeEncoder(6000),
                        scheduler=scheduler,
                    )
                    capturer.start()
                    scheduler.run(0, 1000, 16)
                    capturer.stop()

                    consumer = FrameConsumer()
                    frames = []
                    for i in range(10):
                        message = receive_until(viewer_ws, "frame")
                        frame = parse_message(VIEWER_OUTBOUND, json.dumps(message)).to_frame()
                        consumer.ingest(frame, received_at_ms=i * 100)
                        frames.append(frame)

        assert status["isOnline"] is True
        assert status["presenter"]["name"] == "Prof"
        assert [f.frame_id for f in frames] == list(range(10))
        assert all(f.quality == 0.7 for f in frames)
        assert all(f.size == 6000 for f in frames)
        assert consumer.dropped_frames == 0
        assert consumer.last_frame_id == 9


class TestMessageSizeLimit:
    """Tests for the hub's inbound message size limit."""

    def test_limit_counts_utf8_bytes(self):
        """630 characters but 1230 bytes: over a 1024 byte limit."""
        oversized = '{"type":"hand-raised","name":"' + "é" * 600 + '"}'
        fits = '{"type":"hand-raised","name":"' + "é" * 100 + '"}'
        settings = Settings.model_validate({"server": {"max_message_size": 1024}})

        with TestClient(create_app(settings)) as client:
            with client.websocket_connect("/ws") as presenter_ws:
                presenter_ws.send_text(Identify(role=Role.PRESENTER, display_name="Prof").to_json())
                receive_until(presenter_ws, "connection-count")

                with client.websocket_connect("/ws") as viewer_ws:
                    viewer_ws.send_text(Identify(role=Role.VIEWER, display_name="Alice").to_json())
                    receive_until(viewer_ws, "connection-count")

                    viewer_ws.send_text(oversized)
                    viewer_ws.send_text(fits)
                    raised = receive_until(presenter_ws, "hand-raised")

        assert len(oversized) < 1024 < len(oversized.encode("utf-8"))
        assert raised["name"] == "é" * 100
