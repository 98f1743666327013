"""
Reconnection State Machine
==========================

Bounded exponential-backoff reconnection, independent of any transport.

States:
    IDLE                 never connected
    CONNECTED            transport up
    RECONNECTING(n)      waiting for / performing attempt n
    WAITING_FOR_NETWORK  network reported offline; no attempts are made
    GIVEN_UP             max attempts exhausted; only retry() leaves it
    STOPPED              locally stopped

Transitions:
    CONNECTED        --disconnect-->       RECONNECTING(1)
    IDLE             --attempt failed-->   RECONNECTING(1)
    RECONNECTING(n)  --attempt failed-->   RECONNECTING(n+1)   if n < max
    RECONNECTING(n)  --attempt failed-->   GIVEN_UP            if n == max
    RECONNECTING(n)  --connected-->        CONNECTED           attempt = 0
    GIVEN_UP         --retry-->            RECONNECTING(1)
    CONNECTED / RECONNECTING --offline-->  WAITING_FOR_NETWORK (attempt kept)
    WAITING / RECONNECTING   --online-->   RECONNECTING, next attempt immediate
    any              --stop-->             STOPPED

Backoff:
    delay(n) = min(base * 2**n, max)   ->  2000, 4000, 8000, 16000, 30000 ms
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from screen_relay.config import ReconnectConfig


logger = logging.getLogger(__name__)


# Disconnect reason used when the client itself closed the transport
LOCAL_STOP_REASON = "client stop"


class ConnectionStatus(str, Enum):
    IDLE = "idle"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    WAITING_FOR_NETWORK = "waiting_for_network"
    GIVEN_UP = "given_up"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ReconnectState:
    """Snapshot of the machine, handed to status observers."""

    status: ConnectionStatus
    attempt: int = 0
    delay_ms: int = 0
    reason: Optional[str] = None

    def __repr__(self) -> str:
        if self.status == ConnectionStatus.RECONNECTING:
            return f"ReconnectState(RECONNECTING({self.attempt}), delay={self.delay_ms}ms)"
        return f"ReconnectState({self.status.name})"


class ReconnectStateMachine:
    """
    Pure state machine for the client's reconnection behaviour.

    The driver (HubClient) reports transport events; the machine decides
    the next status and how long to wait before the next attempt.

    Example:
        machine = ReconnectStateMachine(max_attempts=5)
        machine.on_connected()
        machine.on_disconnect("transport close")
        machine.state        # RECONNECTING(1), delay 2000 ms
    """

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 30000,
        on_change: Optional[Callable[[ReconnectState], None]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.on_change = on_change

        self._status = ConnectionStatus.IDLE
        self._attempt: int = 0
        self._immediate: bool = False
        self._reason: Optional[str] = None

    @classmethod
    def from_config(
        cls,
        config: ReconnectConfig,
        on_change: Optional[Callable[[ReconnectState], None]] = None,
    ) -> "ReconnectStateMachine":
        return cls(
            max_attempts=config.max_attempts,
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            on_change=on_change,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def state(self) -> ReconnectState:
        return ReconnectState(
            status=self._status,
            attempt=self._attempt,
            delay_ms=self.current_delay_ms,
            reason=self._reason,
        )

    def delay_ms(self, attempt: int) -> int:
        return min(self.base_delay_ms * (2 ** attempt), self.max_delay_ms)

    @property
    def current_delay_ms(self) -> int:
        """Wait before the pending attempt; 0 unless RECONNECTING."""
        if self._status != ConnectionStatus.RECONNECTING or self._immediate:
            return 0
        return self.delay_ms(self._attempt)

    # =========================================================================
    # Transport events
    # =========================================================================

    def on_connected(self) -> None:
        if self._status == ConnectionStatus.STOPPED:
            return
        self._attempt = 0
        self._immediate = False
        self._reason = None
        self._transition(ConnectionStatus.CONNECTED)

    def on_disconnect(self, reason: str) -> None:
        if reason == LOCAL_STOP_REASON:
            self.stop()
            return

        if self._status in (ConnectionStatus.CONNECTED, ConnectionStatus.IDLE):
            self._reason = reason
            self._begin_reconnecting(1)
        else:
            logger.debug(f"Disconnect ({reason}) ignored in state {self._status.value}")

    def on_attempt_failed(self, reason: Optional[str] = None) -> None:
        self._reason = reason or self._reason
        self._immediate = False

        if self._status == ConnectionStatus.IDLE:
            self._begin_reconnecting(1)
        elif self._status == ConnectionStatus.RECONNECTING:
            if self._attempt < self.max_attempts:
                self._begin_reconnecting(self._attempt + 1)
            else:
                logger.error(
                    f"Giving up after {self._attempt} reconnection attempts "
                    f"(last error: {self._reason})"
                )
                self._transition(ConnectionStatus.GIVEN_UP)

    # =========================================================================
    # User / environment events
    # =========================================================================

    def retry(self) -> bool:
        """Leave GIVEN_UP and start over at attempt 1."""
        if self._status != ConnectionStatus.GIVEN_UP:
            return False
        self._begin_reconnecting(1)
        return True

    def network_offline(self) -> bool:
        if self._status not in (ConnectionStatus.CONNECTED, ConnectionStatus.RECONNECTING):
            return False
        self._immediate = False
        self._transition(ConnectionStatus.WAITING_FOR_NETWORK)
        return True

    def network_online(self) -> bool:
        """Request the pending attempt immediately, without backoff."""
        if self._status not in (
            ConnectionStatus.WAITING_FOR_NETWORK,
            ConnectionStatus.RECONNECTING,
        ):
            return False
        self._attempt = max(self._attempt, 1)
        self._immediate = True
        self._transition(ConnectionStatus.RECONNECTING)
        return True

    def stop(self) -> None:
        if self._status == ConnectionStatus.STOPPED:
            return
        self._immediate = False
        self._transition(ConnectionStatus.STOPPED)

    def reset(self) -> None:
        """Back to IDLE, e.g. before a fresh run after stop()."""
        self._attempt = 0
        self._immediate = False
        self._reason = None
        self._transition(ConnectionStatus.IDLE)

    # =========================================================================
    # Internal
    # =========================================================================

    def _begin_reconnecting(self, attempt: int) -> None:
        self._attempt = attempt
        self._transition(ConnectionStatus.RECONNECTING)
        logger.info(
            f"Reconnecting in {self.current_delay_ms / 1000.0:.1f}s "
            f"(attempt {attempt}/{self.max_attempts})"
        )

    def _transition(self, status: ConnectionStatus) -> None:
        self._status = status
        if self.on_change is not None:
            self.on_change(self.state)
