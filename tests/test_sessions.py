"""
Role Session Tests
==================

PresenterSession and ViewerSession reacting to hub messages and
connection state.
"""

import pytest

from screen_relay.capture.capturer import ScreenCapturer
from screen_relay.client.connection import HubClient
from screen_relay.client.presenter import PresenterSession
from screen_relay.client.viewer import UNSTABLE_NOTICE, ViewerSession
from screen_relay.config import Settings
from screen_relay.errors import SendFailure
from screen_relay.models.frame import Frame, Resolution
from screen_relay.models.messages import (
    ConnectionCount,
    HandLowered,
    HandRaised,
    PresenterFrame,
    PresenterOffline,
    PresenterOnline,
    Reaction,
    ViewerFrame,
)
from screen_relay.models.session import Role, utcnow

from conftest import FakeEncoder, ManualTickScheduler


URL = "ws://hub.local:3000/ws"


def encoded_frame(frame_id: int, quality=0.7) -> Frame:
    return Frame(
        frame_id=frame_id,
        timestamp=1_700_000_000_000 + frame_id * 100,
        payload=b"\xab\xab\xab",
        resolution=Resolution(1280, 720),
        quality=quality,
    )


class ClearingRenderer:
    def __init__(self) -> None:
        self.rendered = []
        self.cleared = 0

    def render(self, frame: Frame) -> None:
        self.rendered.append(frame.frame_id)

    def clear(self) -> None:
        self.cleared += 1


@pytest.fixture
def presenter(capture_config, capture_source):
    sent = []
    capturer = ScreenCapturer(
        send=sent.append,
        config=capture_config,
        source=capture_source,
        encoder=FakeEncoder(6000),
        scheduler=ManualTickScheduler(),
    )
    session = PresenterSession(
        settings=Settings(),
        client=HubClient(URL, Role.PRESENTER),
        capturer=capturer,
    )
    return session


class TestPresenterSession:
    """Tests for presenter-side glue."""

    def test_sharing_waits_for_connection(self, presenter):
        presenter.start_sharing()
        assert presenter.sharing
        assert not presenter.capturer.active

        presenter.client.machine.on_connected()
        assert presenter.capturer.active

    def test_capture_paused_while_disconnected(self, presenter, capture_source):
        """Disconnect releases the screen; reconnect re-acquires it."""
        presenter.start_sharing()
        presenter.client.machine.on_connected()

        presenter.client.machine.on_disconnect("transport close")
        assert not presenter.capturer.active
        assert not capture_source.is_open

        presenter.client.machine.on_connected()
        assert presenter.capturer.active
        assert len(capture_source.opened_with) == 2

    def test_no_capture_when_not_sharing(self, presenter):
        presenter.client.machine.on_connected()
        assert not presenter.capturer.active

    def test_audience_feedback_tracked(self, presenter):
        feedback = []
        presenter.on_feedback = lambda kind, detail: feedback.append((kind, detail))

        presenter.client.on_message(HandRaised(name="Alice").to_json())
        presenter.client.on_message(HandRaised(name="Bob").to_json())
        presenter.client.on_message(HandLowered(name="Alice").to_json())
        presenter.client.on_message(Reaction(emoji="👏").to_json())
        presenter.client.on_message(ConnectionCount(count=4).to_json())

        assert presenter.raised_hand_list() == ["Bob"]
        assert [emoji for emoji, _ in presenter.reactions] == ["👏"]
        assert presenter.viewer_count == 3
        assert feedback[-1] == ("reaction", "👏")

    def test_viewer_frames_passed_on(self, presenter):
        frames = []
        presenter.on_viewer_frame = frames.append

        presenter.client.on_message(ViewerFrame.from_frame(encoded_frame(3, quality=None)).to_json())

        assert [f.frame_id for f in frames] == [3]
        assert frames[0].payload == b"\xab\xab\xab"

    def test_invalid_messages_ignored(self, presenter):
        presenter.client.on_message("garbage")
        presenter.client.on_message('{"type":"frame","image":"q6urqw=="}')
        assert presenter.connection_count == 0


class TestViewerSession:
    """Tests for viewer-side glue."""

    @pytest.fixture
    def viewer(self):
        notices = []
        renderer = ClearingRenderer()
        session = ViewerSession(
            settings=Settings(),
            client=HubClient(URL, Role.VIEWER),
            renderer=renderer,
            on_notice=notices.append,
        )
        return session, renderer, notices

    def test_frames_rendered_and_counted(self, viewer):
        session, renderer, _ = viewer
        for fid in (0, 1, 3):
            session.client.on_message(PresenterFrame.from_frame(encoded_frame(fid)).to_json())

        assert renderer.rendered == [0, 1, 3]
        assert session.consumer.dropped_frames == 1

    def test_presenter_online_resets_baseline(self, viewer):
        session, _, _ = viewer
        session.client.on_message(PresenterFrame.from_frame(encoded_frame(40)).to_json())
        session.client.on_message(
            PresenterOnline(id="p", name="Prof", timestamp=utcnow()).to_json()
        )
        session.client.on_message(PresenterFrame.from_frame(encoded_frame(0)).to_json())

        assert session.presenter.name == "Prof"
        assert session.consumer.dropped_frames == 0
        assert session.consumer.last_frame_id == 0

    def test_presenter_offline_clears_display(self, viewer):
        session, renderer, notices = viewer
        session.client.on_message(
            PresenterOnline(id="p", name="Prof", timestamp=utcnow()).to_json()
        )
        session.client.on_message(
            PresenterOffline(id="p", name="Prof", timestamp=utcnow()).to_json()
        )

        assert not session.presenter_online
        assert renderer.cleared == 1
        assert notices[-1] == "Prof stopped presenting"

    def test_presenter_status_and_count(self, viewer):
        session, _, _ = viewer
        session.client.on_message(
            '{"type":"presenter-status","isOnline":true,"presenter":{"id":"p","name":"Prof"}}'
        )
        session.client.on_message(ConnectionCount(count=2).to_json())

        assert session.presenter.id == "p"
        assert session.connection_count == 2

    def test_corrupt_frame_skipped(self, viewer):
        session, renderer, _ = viewer
        bad = PresenterFrame.from_frame(encoded_frame(0)).model_copy(update={"image": "%%%"})
        session.client.on_message(bad.to_json())

        assert renderer.rendered == []

    def test_stall_reported_as_unstable(self, viewer):
        session, _, notices = viewer
        assert not session.check_stall(now_ms=10_000)

        session.consumer.ingest(encoded_frame(0), received_at_ms=1_000)

        assert not session.check_stall(now_ms=5_000)
        assert session.check_stall(now_ms=7_000)
        assert notices[-1] == UNSTABLE_NOTICE

    def test_actions_require_connection(self, viewer):
        session, _, _ = viewer
        with pytest.raises(SendFailure):
            session.raise_hand()
        assert not session.hand_raised

    def test_reconnecting_notice(self, viewer):
        session, _, notices = viewer
        session.client.machine.on_connected()
        session.client.machine.on_disconnect("transport close")

        assert notices[-2:] == ["connected", "reconnecting (attempt 1)"]

    def test_new_presenter_in_status_resets_baseline(self, viewer):
        """A reconnecting viewer only learns of a new presenter via presenter-status."""
        session, _, _ = viewer
        session.client.on_message(
            '{"type":"presenter-status","isOnline":true,"presenter":{"id":"p1","name":"Prof"}}'
        )
        for fid in range(51):
            session.consumer.ingest(encoded_frame(fid))

        session.client.on_message(
            '{"type":"presenter-status","isOnline":true,"presenter":{"id":"p2","name":"Guest"}}'
        )
        for fid in (0, 1, 2, 3, 10, 11):
            session.consumer.ingest(encoded_frame(fid))

        assert session.presenter.id == "p2"
        assert session.consumer.dropped_frames == 6
        assert session.consumer.metrics.out_of_order == 0
        assert session.consumer.last_frame_id == 11

    def test_same_presenter_in_status_keeps_baseline(self, viewer):
        session, _, _ = viewer
        status = '{"type":"presenter-status","isOnline":true,"presenter":{"id":"p1","name":"Prof"}}'
        session.client.on_message(status)
        for fid in range(5):
            session.consumer.ingest(encoded_frame(fid))

        session.client.on_message(status)
        session.consumer.ingest(encoded_frame(5))

        assert session.consumer.last_frame_id == 5
        assert session.consumer.dropped_frames == 0

    def test_offline_status_clears_display(self, viewer):
        session, renderer, _ = viewer
        session.client.on_message(
            '{"type":"presenter-status","isOnline":true,"presenter":{"id":"p1","name":"Prof"}}'
        )
        session.consumer.ingest(encoded_frame(7))

        session.client.on_message('{"type":"presenter-status","isOnline":false,"presenter":null}')

        assert not session.presenter_online
        assert renderer.cleared == 1
        assert session.consumer.last_frame_id is None
