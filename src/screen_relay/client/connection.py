"""
Hub Client
==========

WebSocket client for the relay hub, driven by ReconnectStateMachine.

This module provides the HubClient class which:
    - Connects to the hub's /ws endpoint
    - Identifies its role after every successful connect
    - Sends a liveness ping every `ping_interval_sec`
    - Drains outbound messages through an Outbox writer task
    - Reconnects with bounded exponential backoff, then gives up
    - Hands every inbound text message to `on_message`

Design Rules:
    - Does NOT parse inbound messages; role sessions do that
    - send_nowait() never blocks; it fails fast when disconnected
    - Backoff waits are cancellable (stop, retry, network events)
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
    WebSocketException,
)

from screen_relay.client.reconnect import (
    LOCAL_STOP_REASON,
    ConnectionStatus,
    ReconnectState,
    ReconnectStateMachine,
)
from screen_relay.config import ClientConfig, ReconnectConfig
from screen_relay.errors import SendFailure, TransportDisconnected
from screen_relay.hub.outbox import Outbox
from screen_relay.models.messages import Identify, Ping, WireModel
from screen_relay.models.session import Role


logger = logging.getLogger(__name__)


Connector = Callable[..., Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[Any]]


class HubClientMetrics:
    """Metrics for HubClient observability."""

    __slots__ = (
        "messages_received",
        "messages_sent",
        "connects",
        "failed_attempts",
        "handler_errors",
    )

    def __init__(self) -> None:
        self.messages_received: int = 0
        self.messages_sent: int = 0
        self.connects: int = 0
        self.failed_attempts: int = 0
        self.handler_errors: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "messages_received": self.messages_received,
            "messages_sent": self.messages_sent,
            "connects": self.connects,
            "failed_attempts": self.failed_attempts,
            "handler_errors": self.handler_errors,
        }


class HubClient:
    """
    Reconnecting WebSocket client for one presenter or viewer.

    Attributes:
        url: Hub WebSocket URL
        role: Role announced in every identify
        machine: Reconnection state machine
        on_message: Called with every inbound text message
        on_status: Called with every reconnection state change
        on_error: Called with TransportDisconnected once retries are exhausted

    Example:
        client = HubClient(
            url="ws://192.168.1.10:3000/ws",
            role=Role.VIEWER,
            display_name="Alice",
            on_message=handle,
        )
        task = asyncio.create_task(client.run())
        ...
        await client.stop()
    """

    def __init__(
        self,
        url: str,
        role: Role,
        display_name: Optional[str] = None,
        device: Optional[str] = None,
        resolution: Optional[str] = None,
        config: Optional[ClientConfig] = None,
        reconnect: Optional[ReconnectConfig] = None,
        on_message: Optional[Callable[[str], None]] = None,
        on_status: Optional[Callable[[ReconnectState], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        outbox_size: int = 32,
        max_message_size: Optional[int] = None,
        connect: Connector = websockets.connect,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.url = url
        self.role = role
        self.display_name = display_name
        self.device = device
        self.resolution = resolution
        self.config = config or ClientConfig()
        self.on_message = on_message
        self.on_status = on_status
        self.on_error = on_error
        self.max_message_size = max_message_size

        self.machine = ReconnectStateMachine.from_config(
            reconnect or ReconnectConfig(),
            on_change=self._on_state_change,
        )
        self.metrics = HubClientMetrics()

        self._connect = connect
        self._sleep = sleep
        self._outbox = Outbox(maxsize=outbox_size, name=f"client:{role.value}")
        self._ws: Optional[Any] = None
        self._running: bool = False
        self._wake: asyncio.Event = asyncio.Event()
        self._backoff_task: Optional[asyncio.Task] = None
        self._close_task: Optional[asyncio.Task] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return self._ws is not None and self.machine.status == ConnectionStatus.CONNECTED

    @property
    def state(self) -> ReconnectState:
        return self.machine.state

    # =========================================================================
    # Public API
    # =========================================================================

    def start(self) -> asyncio.Task:
        """Run the client in a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self) -> None:
        """
        Connect and keep reconnecting until stop().

        Runs indefinitely; while GIVEN_UP or WAITING_FOR_NETWORK it idles
        until retry() or network_online() is called.
        """
        self._running = True
        self._wake.clear()
        self.machine.reset()

        logger.info(f"HubClient starting as {self.role.value}, connecting to {self.url}")

        while self._running:
            status = self.machine.status

            if status == ConnectionStatus.STOPPED:
                break

            if status in (ConnectionStatus.GIVEN_UP, ConnectionStatus.WAITING_FOR_NETWORK):
                await self._wake.wait()
                self._wake.clear()
                continue

            delay_sec = self.machine.current_delay_ms / 1000.0
            if delay_sec > 0 and await self._backoff(delay_sec):
                # Woken early; re-evaluate the new state
                continue
            if not self._running:
                break

            try:
                ws = await self._open()
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                self.metrics.failed_attempts += 1
                logger.warning(f"Connection attempt to {self.url} failed: {e}")
                self.machine.on_attempt_failed(str(e))
                continue

            reason = await self._session(ws)
            self.machine.on_disconnect(reason)

        logger.info("HubClient stopped")

    async def stop(self) -> None:
        """Close the transport and cancel any pending reconnection wait."""
        logger.info("HubClient stopping...")
        self._running = False
        self.machine.stop()
        self._wake.set()

        if self._backoff_task is not None:
            self._backoff_task.cancel()

        if self._ws is not None:
            await self._ws.close()

        if self._close_task is not None:
            await asyncio.gather(self._close_task, return_exceptions=True)
            self._close_task = None

        if self._task is not None and self._task is not asyncio.current_task():
            if not self._task.done():
                self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    def send_nowait(self, message: Union[WireModel, str]) -> None:
        """
        Queue a message for the hub.

        Raises:
            SendFailure: If the transport is not connected
        """
        if not self.connected:
            raise SendFailure(f"Not connected ({self.machine.status.value})")
        text = message if isinstance(message, str) else message.to_json()
        self._outbox.put_nowait(text)

    def retry(self) -> bool:
        """User-initiated retry after GIVEN_UP."""
        if self.machine.retry():
            self._wake.set()
            return True
        return False

    def network_offline(self) -> bool:
        """Drop the live transport and wait for network_online()."""
        if not self.machine.network_offline():
            return False
        self._wake.set()
        if self._ws is not None:
            self._close_task = asyncio.get_running_loop().create_task(self._ws.close())
        return True

    def network_online(self) -> bool:
        """Reconnect now, skipping any pending backoff."""
        if self.machine.network_online():
            self._wake.set()
            return True
        return False

    # =========================================================================
    # Internal
    # =========================================================================

    async def _open(self) -> Any:
        kwargs = {}
        if self.max_message_size is not None:
            kwargs["max_size"] = self.max_message_size
        return await self._connect(self.url, **kwargs)

    async def _session(self, ws: Any) -> str:
        """Run one connected session. Returns the disconnect reason."""
        if not self._running:
            await ws.close()
            return LOCAL_STOP_REASON

        self._ws = ws
        self.metrics.connects += 1
        self._outbox.clear()
        # Identify goes out before anything observers queue on connect
        identify = Identify(
            role=self.role,
            display_name=self.display_name or "Anonymous",
            device=self.device,
            resolution=self.resolution,
        )
        self._outbox.put_nowait(identify.to_json())
        logger.info(f"Connected to hub: {self.url}")
        self.machine.on_connected()

        writer = asyncio.create_task(self._writer(ws))
        pinger = asyncio.create_task(self._pinger())
        reason = "transport close"

        try:
            async for message in ws:
                self.metrics.messages_received += 1
                self._dispatch(message)
        except ConnectionClosedOK:
            logger.info("Connection closed normally")
        except ConnectionClosedError as e:
            logger.warning(f"Connection closed with error: {e}")
            reason = "transport error"
        finally:
            self._ws = None
            writer.cancel()
            pinger.cancel()
            await asyncio.gather(writer, pinger, return_exceptions=True)
            await ws.close()

        if not self._running:
            reason = LOCAL_STOP_REASON
        logger.info(f"Disconnected from hub: {reason}")
        return reason

    def _dispatch(self, message: Union[str, bytes]) -> None:
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        if self.on_message is None:
            return
        try:
            self.on_message(message)
        except Exception as e:
            self.metrics.handler_errors += 1
            logger.error(f"Message handler failed: {e}", exc_info=True)

    async def _writer(self, ws: Any) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await ws.send(text)
            except ConnectionClosed:
                return
            self.metrics.messages_sent += 1

    async def _pinger(self) -> None:
        while True:
            await asyncio.sleep(self.config.ping_interval_sec)
            if self.connected:
                self.send_nowait(Ping())

    async def _backoff(self, delay_sec: float) -> bool:
        """
        Wait out a backoff delay.

        Returns:
            True if woken early by stop / retry / network events.
        """
        self._wake.clear()
        self._backoff_task = asyncio.create_task(self._sleep(delay_sec))
        wake_task = asyncio.create_task(self._wake.wait())
        try:
            done, _ = await asyncio.wait(
                {self._backoff_task, wake_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            self._backoff_task.cancel()
            wake_task.cancel()
            self._backoff_task = None
        return wake_task in done

    def _on_state_change(self, state: ReconnectState) -> None:
        if state.status == ConnectionStatus.GIVEN_UP and self.on_error is not None:
            self.on_error(TransportDisconnected(state.reason or "unknown"))
        if self.on_status is not None:
            self.on_status(state)
