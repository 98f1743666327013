"""
Viewer Session
==============

Glues the frame consumer to the hub connection on the viewer side.

Responsibilities:
    - Presenter frames go through FrameConsumer to the renderer
    - presenter-online, or presenter-status naming a different presenter,
      resets the frame id baseline
    - presenter-offline (or an offline presenter-status) clears the display
    - A periodic check reports "connection unstable" when frames stall
    - Optional self-share of the viewer's own screen to the presenter
    - Hand raise / lower and reactions
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from screen_relay.capture.capturer import ScreenCapturer
from screen_relay.client.connection import HubClient
from screen_relay.client.reconnect import ConnectionStatus, ReconnectState
from screen_relay.config import Settings, settings as default_settings
from screen_relay.errors import ImageDecodeError
from screen_relay.models.frame import Frame
from screen_relay.models.messages import (
    VIEWER_OUTBOUND,
    ConnectionCount,
    HandLowered,
    HandRaised,
    PresenterFrame,
    PresenterInfo,
    PresenterOffline,
    PresenterOnline,
    PresenterStatus,
    Reaction,
    ViewerFrame,
    parse_message,
)
from screen_relay.models.session import Role
from screen_relay.viewer.consumer import ConnectionQuality, FrameConsumer, FrameRenderer


logger = logging.getLogger(__name__)


UNSTABLE_NOTICE = "connection unstable"


class ViewerSession:
    """
    Viewer endpoint: watch the presenter, optionally share back.

    Attributes:
        client: Hub connection
        consumer: Drop / latency / quality tracking for presenter frames
        presenter: Current presenter, None while offline
        connection_count: Latest total connection count from the hub

    Example:
        session = ViewerSession(settings, renderer=SnapshotRenderer("latest.jpg"))
        await session.run()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[HubClient] = None,
        renderer: Optional[FrameRenderer] = None,
        capturer: Optional[ScreenCapturer] = None,
        on_quality_change: Optional[Callable[[ConnectionQuality], None]] = None,
        on_notice: Optional[Callable[[str], None]] = None,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ) -> None:
        self.settings = settings or default_settings
        self.renderer = renderer
        self.on_notice = on_notice
        self._sleep = sleep

        if client is None:
            client = HubClient(
                url=self.settings.client.url,
                role=Role.VIEWER,
                display_name=self.settings.client.display_name,
                config=self.settings.client,
                reconnect=self.settings.reconnect,
                outbox_size=self.settings.server.outbox_size,
                max_message_size=self.settings.server.max_message_size,
            )
        self.client = client
        self.client.on_message = self._on_message
        self.client.on_status = self._on_status
        self.client.on_error = lambda e: self._notify(f"disconnected: {e}")

        self.consumer = FrameConsumer(
            renderer=renderer,
            config=self.settings.viewer,
            on_quality_change=on_quality_change,
        )

        self._capturer = capturer
        self._monitor_task: Optional[asyncio.Task] = None

        self.presenter: Optional[PresenterInfo] = None
        self.connection_count: int = 0
        self.hand_raised: bool = False

    @property
    def presenter_online(self) -> bool:
        return self.presenter is not None

    @property
    def sharing(self) -> bool:
        return self._capturer is not None and self._capturer.active

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def run(self) -> None:
        self._monitor_task = asyncio.create_task(self._monitor())
        try:
            await self.client.run()
        finally:
            self._monitor_task.cancel()
            await asyncio.gather(self._monitor_task, return_exceptions=True)
            self._monitor_task = None

    async def stop(self) -> None:
        self.stop_sharing()
        await self.client.stop()

    # =========================================================================
    # Audience actions
    # =========================================================================

    def raise_hand(self) -> None:
        self.client.send_nowait(HandRaised(name=self.client.display_name))
        self.hand_raised = True

    def lower_hand(self) -> None:
        self.client.send_nowait(HandLowered(name=self.client.display_name))
        self.hand_raised = False

    def react(self, emoji: str) -> None:
        self.client.send_nowait(Reaction(emoji=emoji))

    def start_sharing(self) -> None:
        """
        Share this viewer's screen with the presenter.

        Raises:
            CaptureUnavailable: If the screen cannot be acquired
        """
        if self._capturer is None:
            self._capturer = ScreenCapturer(
                send=self._send_own_frame,
                config=self.settings.capture,
                on_error=lambda e: self._notify(f"screen share stopped: {e}"),
            )
        self._capturer.start()

    def stop_sharing(self) -> None:
        if self._capturer is not None:
            self._capturer.stop()

    # =========================================================================
    # Callbacks
    # =========================================================================

    def _send_own_frame(self, frame: Frame) -> None:
        self.client.send_nowait(ViewerFrame.from_frame(frame))

    def _on_status(self, state: ReconnectState) -> None:
        if state.status == ConnectionStatus.CONNECTED:
            self._notify("connected")
            return

        if self.sharing:
            self._capturer.stop()
        if state.status == ConnectionStatus.RECONNECTING:
            self._notify(f"reconnecting (attempt {state.attempt})")
        elif state.status in (ConnectionStatus.GIVEN_UP, ConnectionStatus.WAITING_FOR_NETWORK):
            self._notify(state.status.value.replace("_", " "))

    def _on_message(self, raw: str) -> None:
        try:
            message = parse_message(VIEWER_OUTBOUND, raw)
        except ValidationError as e:
            logger.warning(f"Invalid message from hub: {e.error_count()} validation error(s)")
            return

        if isinstance(message, PresenterFrame):
            try:
                frame = message.to_frame()
            except ImageDecodeError as e:
                logger.warning(f"Presenter frame {message.frame_id} rejected: {e}")
                return
            self.consumer.ingest(frame)
        elif isinstance(message, PresenterOnline):
            self.presenter = PresenterInfo(id=message.id, name=message.name)
            self.consumer.reset()
            self._notify(f"{message.name} is presenting")
        elif isinstance(message, PresenterOffline):
            self.presenter = None
            if self.renderer is not None:
                self.renderer.clear()
            self._notify(f"{message.name} stopped presenting")
        elif isinstance(message, PresenterStatus):
            self._on_presenter_status(message)
        elif isinstance(message, ConnectionCount):
            self.connection_count = message.count

    def _on_presenter_status(self, message: PresenterStatus) -> None:
        """
        Sync with the hub's view of the presenter.

        This is the only presenter notice a viewer gets after (re)connecting,
        so a different presenter id here means a new id sequence.
        """
        presenter = message.presenter if message.is_online else None
        previous_id = self.presenter.id if self.presenter is not None else None
        current_id = presenter.id if presenter is not None else None
        self.presenter = presenter

        if current_id != previous_id:
            self.consumer.reset()
        if presenter is None and self.renderer is not None:
            self.renderer.clear()

    async def _monitor(self) -> None:
        interval = self.settings.viewer.monitor_interval_sec
        while True:
            await self._sleep(interval)
            self.check_stall()

    def check_stall(self, now_ms: Optional[float] = None) -> bool:
        if self.consumer.is_stalled(now_ms):
            logger.warning(f"No frames for {self.settings.viewer.stall_timeout_sec}s")
            self._notify(UNSTABLE_NOTICE)
            return True
        return False

    def _notify(self, text: str) -> None:
        logger.info(f"Viewer status: {text}")
        if self.on_notice is not None:
            self.on_notice(text)
