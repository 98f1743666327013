"""
Presenter Session
=================

Glues the capture loop to the hub connection on the presenter side.

Responsibilities:
    - Capture runs only while the hub connection is up; the screen is
      released on disconnect and re-acquired on reconnect if sharing
    - Encoded frames go out as `frame` messages
    - Viewer screens, raised hands and reactions are tracked and passed on
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, List, Optional, Set, Tuple

from pydantic import ValidationError

from screen_relay.capture.capturer import ScreenCapturer
from screen_relay.client.connection import HubClient
from screen_relay.client.reconnect import ConnectionStatus, ReconnectState
from screen_relay.config import Settings, settings as default_settings
from screen_relay.errors import CaptureUnavailable, ImageDecodeError
from screen_relay.models.frame import Frame
from screen_relay.models.messages import (
    PRESENTER_OUTBOUND,
    ConnectionCount,
    HandLowered,
    HandRaised,
    PresenterOffline,
    PresenterOnline,
    PresenterFrame,
    PresenterStatus,
    Reaction,
    ViewerFrame,
    parse_message,
)
from screen_relay.models.session import Role


logger = logging.getLogger(__name__)


MAX_RECENT_REACTIONS = 50


class PresenterSession:
    """
    Presenter endpoint: share the screen, receive audience feedback.

    Attributes:
        client: Hub connection
        capturer: Screen capture loop
        sharing: Whether the user wants the screen shared
        connection_count: Latest total connection count from the hub
        raised_hands: Names of viewers with a raised hand
        reactions: Recent (name-less) reactions with receive time

    Example:
        session = PresenterSession(settings)
        session.start_sharing()
        await session.run()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[HubClient] = None,
        capturer: Optional[ScreenCapturer] = None,
        on_viewer_frame: Optional[Callable[[Frame], None]] = None,
        on_feedback: Optional[Callable[[str, Optional[str]], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.on_viewer_frame = on_viewer_frame
        self.on_feedback = on_feedback
        self.on_error = on_error

        if client is None:
            client = HubClient(
                url=self.settings.client.url,
                role=Role.PRESENTER,
                display_name=self.settings.client.display_name,
                config=self.settings.client,
                reconnect=self.settings.reconnect,
                outbox_size=self.settings.server.outbox_size,
                max_message_size=self.settings.server.max_message_size,
            )
        self.client = client
        self.client.on_message = self._on_message
        self.client.on_status = self._on_status
        self.client.on_error = self._report_error

        self.capturer = capturer or ScreenCapturer(
            send=self._send_frame,
            config=self.settings.capture,
            on_error=self._on_capture_error,
        )

        self.sharing: bool = False
        self.connection_count: int = 0
        self.raised_hands: Set[str] = set()
        self.reactions: Deque[Tuple[str, datetime]] = deque(maxlen=MAX_RECENT_REACTIONS)

    # =========================================================================
    # Sharing control
    # =========================================================================

    def start_sharing(self) -> None:
        """
        Share the screen now if connected, otherwise as soon as connected.

        Raises:
            CaptureUnavailable: If the screen cannot be acquired
        """
        self.sharing = True
        if self.client.connected:
            try:
                self.capturer.start()
            except CaptureUnavailable:
                self.sharing = False
                raise

    def stop_sharing(self) -> None:
        self.sharing = False
        self.capturer.stop()

    async def run(self) -> None:
        await self.client.run()

    async def stop(self) -> None:
        self.stop_sharing()
        await self.client.stop()

    @property
    def viewer_count(self) -> int:
        return max(self.connection_count - 1, 0)

    # =========================================================================
    # Callbacks
    # =========================================================================

    def _send_frame(self, frame: Frame) -> None:
        self.client.send_nowait(PresenterFrame.from_frame(frame))

    def _on_status(self, state: ReconnectState) -> None:
        if state.status == ConnectionStatus.CONNECTED:
            if self.sharing and not self.capturer.active:
                logger.info("Hub connection up, resuming screen share")
                try:
                    self.capturer.start()
                except CaptureUnavailable as e:
                    self._on_capture_error(e)
        elif self.capturer.active:
            logger.info(f"Hub connection {state.status.value}, pausing screen share")
            self.capturer.stop()

    def _on_capture_error(self, error: Exception) -> None:
        self.sharing = False
        self._report_error(error)

    def _report_error(self, error: Exception) -> None:
        logger.error(f"Presenter error: {error}")
        if self.on_error is not None:
            self.on_error(error)

    def _on_message(self, raw: str) -> None:
        try:
            message = parse_message(PRESENTER_OUTBOUND, raw)
        except ValidationError as e:
            logger.warning(f"Invalid message from hub: {e.error_count()} validation error(s)")
            return

        if isinstance(message, ViewerFrame):
            self._on_viewer_frame(message)
        elif isinstance(message, HandRaised):
            self.raised_hands.add(message.name or "Anonymous")
            self._feedback("hand-raised", message.name)
        elif isinstance(message, HandLowered):
            self.raised_hands.discard(message.name or "Anonymous")
            self._feedback("hand-lowered", message.name)
        elif isinstance(message, Reaction):
            self.reactions.append((message.emoji, datetime.now(timezone.utc)))
            self._feedback("reaction", message.emoji)
        elif isinstance(message, ConnectionCount):
            self.connection_count = message.count
        elif isinstance(message, (PresenterOnline, PresenterOffline)):
            logger.info(f"{message.type}: {message.name} ({message.id})")
        elif isinstance(message, PresenterStatus):
            logger.debug(f"Presenter status: online={message.is_online}")

    def _on_viewer_frame(self, message: ViewerFrame) -> None:
        if self.on_viewer_frame is None:
            return
        try:
            frame = message.to_frame()
        except ImageDecodeError as e:
            logger.warning(f"Viewer frame {message.frame_id} rejected: {e}")
            return
        self.on_viewer_frame(frame)

    def _feedback(self, kind: str, detail: Optional[str]) -> None:
        logger.info(f"Audience {kind}: {detail or 'Anonymous'}")
        if self.on_feedback is not None:
            self.on_feedback(kind, detail)

    def raised_hand_list(self) -> List[str]:
        return sorted(self.raised_hands)
