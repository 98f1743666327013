"""
Relay Hub
=========

Role-aware message routing between one presenter and many viewers.

Routing Rules:
    presenter frame                 -> every VIEWER
                                       (no viewers: everyone but the sender)
    viewer frame / hand-raised /
    hand-lowered / reaction         -> every PRESENTER
    identify                        -> connection-count to all,
                                       then presenter-online to all (presenters)
    disconnect                      -> connection-count to all,
                                       then presenter-offline + presenter-status
                                       to all (current presenter only)
    ping                            -> pong to the sender
    connect                         -> presenter-status to the new connection

Design Rules:
    - Relayed messages are forwarded as the exact text received
    - Fan-out only enqueues into each connection's outbox; never awaits
    - No acknowledgement, no retry
    - Connections that have not identified may only identify or ping
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol, Union

from pydantic import ValidationError

from screen_relay.config import PresenterPolicy
from screen_relay.hub.registry import SessionManager
from screen_relay.models.messages import (
    ConnectionCount,
    HandLowered,
    HandRaised,
    Identify,
    Ping,
    Pong,
    PresenterFrame,
    PresenterInfo,
    PresenterOffline,
    PresenterOnline,
    PresenterStatus,
    Reaction,
    ViewerFrame,
    inbound_adapter,
    parse_message,
)
from screen_relay.models.session import ConnectionRecord, Role


logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Hub-side handle for one transport connection."""

    id: str

    def send_nowait(self, message: str) -> None:
        """Enqueue text for delivery. Must not block."""
        ...


class HubMetrics:
    """Routing counters."""

    __slots__ = (
        "messages_received",
        "frames_relayed",
        "deliveries",
        "invalid_messages",
        "ignored_messages",
        "rejected_presenters",
    )

    def __init__(self) -> None:
        self.messages_received: int = 0
        self.frames_relayed: int = 0
        self.deliveries: int = 0
        self.invalid_messages: int = 0
        self.ignored_messages: int = 0
        self.rejected_presenters: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "messages_received": self.messages_received,
            "frames_relayed": self.frames_relayed,
            "deliveries": self.deliveries,
            "invalid_messages": self.invalid_messages,
            "ignored_messages": self.ignored_messages,
            "rejected_presenters": self.rejected_presenters,
        }


def _peek_type(raw: Union[str, bytes]) -> Optional[str]:
    try:
        data = json.loads(raw)
    except (ValueError, TypeError):
        return None
    return data.get("type") if isinstance(data, dict) else None


class RelayHub:
    """
    Routes messages between registered connections.

    Attributes:
        sessions: The connection registry
        policy: Duplicate presenter handling
        metrics: Routing counters

    Example:
        hub = RelayHub(SessionManager())
        hub.connect(conn)
        hub.handle_message(conn.id, raw_text)
        hub.disconnect(conn.id)
    """

    def __init__(
        self,
        sessions: Optional[SessionManager] = None,
        policy: PresenterPolicy = PresenterPolicy.ALLOW,
    ) -> None:
        self.sessions = sessions if sessions is not None else SessionManager()
        self.policy = policy
        self.metrics = HubMetrics()
        self._connections: Dict[str, Connection] = {}

    # =========================================================================
    # Membership
    # =========================================================================

    def connect(self, connection: Connection, address: Optional[str] = None) -> ConnectionRecord:
        """Register a transport connection and tell it who is presenting."""
        record = self.sessions.connect(connection.id, address=address)
        self._connections[connection.id] = connection
        self._send(connection, self._presenter_status().to_json())
        return record

    def disconnect(self, connection_id: str) -> Optional[ConnectionRecord]:
        """Remove a connection and notify the remaining ones."""
        self._connections.pop(connection_id, None)
        was_current = self._is_current_presenter(connection_id)
        record = self.sessions.disconnect(connection_id)
        if record is None:
            return None

        self._broadcast_count()
        if was_current:
            self._broadcast(self._presenter_offline(record).to_json())
            self._broadcast(self._presenter_status().to_json())
        return record

    # =========================================================================
    # Routing
    # =========================================================================

    def handle_message(self, connection_id: str, raw: Union[str, bytes]) -> None:
        """Parse one inbound message and route it."""
        record = self.sessions.get(connection_id)
        if record is None:
            logger.warning(f"Message from unregistered connection {connection_id}, ignored")
            return

        self.metrics.messages_received += 1
        self.sessions.touch(connection_id)

        try:
            message = parse_message(inbound_adapter(record.role), raw)
        except ValidationError as e:
            if record.role == Role.UNKNOWN:
                self.metrics.ignored_messages += 1
                logger.debug(
                    f"Ignored '{_peek_type(raw)}' from unidentified connection {connection_id}"
                )
            else:
                self.metrics.invalid_messages += 1
                logger.warning(
                    f"Invalid message from {record.role.value} {connection_id}: "
                    f"{e.error_count()} validation error(s)"
                )
            return

        if isinstance(message, Identify):
            self._on_identify(record, message)
        elif isinstance(message, Ping):
            self._send_to(connection_id, Pong().to_json())
        elif isinstance(message, PresenterFrame):
            self._relay_presenter_frame(connection_id, raw)
        elif isinstance(message, (ViewerFrame, HandRaised, HandLowered, Reaction)):
            self._relay_to_presenters(connection_id, raw)

    def _on_identify(self, record: ConnectionRecord, message: Identify) -> None:
        was_current = self._is_current_presenter(record.id)

        if message.role == Role.PRESENTER and self.policy == PresenterPolicy.REJECT:
            current = self.sessions.current_presenter()
            if current is not None and current.id != record.id:
                self.metrics.rejected_presenters += 1
                logger.warning(
                    f"Rejected presenter identification from {record.id}: "
                    f"{current.display_name} ({current.id}) is already presenting"
                )
                self._send_to(record.id, self._presenter_status().to_json())
                return

        record = self.sessions.identify(
            record.id,
            message.role,
            display_name=message.display_name,
            device=message.device,
            screen_resolution=message.resolution,
        )
        self._broadcast_count()

        if was_current and message.role != Role.PRESENTER:
            self._broadcast(self._presenter_offline(record).to_json())
            self._broadcast(self._presenter_status().to_json())

        if message.role == Role.PRESENTER:
            online = PresenterOnline(
                id=record.id,
                name=record.display_name,
                timestamp=datetime.now(timezone.utc),
            )
            self._broadcast(online.to_json())

    def _relay_presenter_frame(self, sender_id: str, raw: Union[str, bytes]) -> None:
        viewers = [r.id for r in self.sessions.by_role(Role.VIEWER)]
        if viewers:
            recipients = viewers
        else:
            recipients = [cid for cid in self._connections if cid != sender_id]
        self.metrics.frames_relayed += 1
        self._deliver(recipients, raw)

    def _relay_to_presenters(self, sender_id: str, raw: Union[str, bytes]) -> None:
        presenters = [
            r.id for r in self.sessions.by_role(Role.PRESENTER) if r.id != sender_id
        ]
        self._deliver(presenters, raw)

    # =========================================================================
    # Delivery
    # =========================================================================

    def _is_current_presenter(self, connection_id: str) -> bool:
        current = self.sessions.current_presenter()
        return current is not None and current.id == connection_id

    def _presenter_status(self) -> PresenterStatus:
        presenter = self.sessions.current_presenter()
        if presenter is None:
            return PresenterStatus(is_online=False)
        return PresenterStatus(
            is_online=True,
            presenter=PresenterInfo(id=presenter.id, name=presenter.display_name),
        )

    def _presenter_offline(self, record: ConnectionRecord) -> PresenterOffline:
        return PresenterOffline(
            id=record.id,
            name=record.display_name,
            timestamp=datetime.now(timezone.utc),
        )

    def _broadcast_count(self) -> None:
        self._broadcast(ConnectionCount(count=self.sessions.count()).to_json())

    def _broadcast(self, text: str) -> None:
        self._deliver(list(self._connections), text)

    def _send_to(self, connection_id: str, text: str) -> None:
        self._deliver([connection_id], text)

    def _deliver(self, connection_ids: Iterable[str], raw: Union[str, bytes]) -> None:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        for connection_id in connection_ids:
            connection = self._connections.get(connection_id)
            if connection is not None:
                self._send(connection, text)

    def _send(self, connection: Connection, text: str) -> None:
        connection.send_nowait(text)
        self.metrics.deliveries += 1

    def connection_ids(self) -> List[str]:
        return list(self._connections)

    def status(self) -> dict:
        return {**self.sessions.snapshot(), "metrics": self.metrics.to_dict()}
