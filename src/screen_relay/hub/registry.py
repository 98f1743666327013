"""
Session Manager
===============

Registry of live hub connections and their roles.

One SessionManager is created per application and passed by reference
to whatever needs it. It knows nothing about transports or routing; it
only tracks who is connected and as what.
"""

import logging
import uuid
from typing import Dict, List, Optional

from screen_relay.models.session import DEFAULT_DISPLAY_NAME, ConnectionRecord, Role, utcnow


logger = logging.getLogger(__name__)


def new_connection_id() -> str:
    return uuid.uuid4().hex


class SessionManager:
    """
    Connection registry.

    Presenters are kept in identification order so that, when more than
    one is present, the most recently identified one is reported as the
    current presenter.

    Example:
        sessions = SessionManager()
        record = sessions.connect()
        sessions.identify(record.id, Role.VIEWER, "Alice")
        sessions.count()           # 1
        sessions.by_role(Role.VIEWER)
    """

    def __init__(self) -> None:
        self._records: Dict[str, ConnectionRecord] = {}
        self._presenter_order: List[str] = []

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._records

    def connect(
        self,
        connection_id: Optional[str] = None,
        address: Optional[str] = None,
    ) -> ConnectionRecord:
        """Register a new connection with role UNKNOWN."""
        connection_id = connection_id or new_connection_id()
        if connection_id in self._records:
            raise ValueError(f"Connection {connection_id} already registered")

        record = ConnectionRecord(id=connection_id, address=address)
        self._records[connection_id] = record
        logger.info(f"Connection {connection_id} registered from {address or 'unknown address'}")
        return record

    def identify(
        self,
        connection_id: str,
        role: Role,
        display_name: Optional[str] = None,
        device: Optional[str] = None,
        screen_resolution: Optional[str] = None,
    ) -> Optional[ConnectionRecord]:
        """
        Set the role and identification details of a connection.

        Returns:
            The updated record, or None if the connection is unknown.
        """
        record = self._records.get(connection_id)
        if record is None:
            return None

        record.role = role
        record.display_name = display_name or DEFAULT_DISPLAY_NAME
        record.device = device
        record.screen_resolution = screen_resolution
        record.identified_at = utcnow()
        record.touch()

        if connection_id in self._presenter_order:
            self._presenter_order.remove(connection_id)
        if role == Role.PRESENTER:
            self._presenter_order.append(connection_id)

        logger.info(f"Connection {connection_id} identified as {role.value} ({record.display_name})")
        return record

    def disconnect(self, connection_id: str) -> Optional[ConnectionRecord]:
        """Remove a connection. Returns its final record, or None."""
        record = self._records.pop(connection_id, None)
        if record is None:
            return None
        if connection_id in self._presenter_order:
            self._presenter_order.remove(connection_id)
        logger.info(f"Connection {connection_id} ({record.role.value}) removed")
        return record

    def touch(self, connection_id: str) -> None:
        record = self._records.get(connection_id)
        if record is not None:
            record.touch()

    def get(self, connection_id: str) -> Optional[ConnectionRecord]:
        return self._records.get(connection_id)

    def by_role(self, role: Role) -> List[ConnectionRecord]:
        return [r for r in self._records.values() if r.role == role]

    def count(self) -> int:
        return len(self._records)

    def current_presenter(self) -> Optional[ConnectionRecord]:
        if not self._presenter_order:
            return None
        return self._records.get(self._presenter_order[-1])

    def snapshot(self) -> dict:
        """Summary of the registry for status endpoints."""
        presenter = self.current_presenter()
        return {
            "connections": self.count(),
            "presenters": len(self.by_role(Role.PRESENTER)),
            "viewers": len(self.by_role(Role.VIEWER)),
            "unidentified": len(self.by_role(Role.UNKNOWN)),
            "presenter": (
                {"id": presenter.id, "name": presenter.display_name}
                if presenter is not None
                else None
            ),
        }
