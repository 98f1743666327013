"""
Session Models
==============

Per-connection state the relay hub keeps for every live connection.

Lifecycle:
    connect    -> ConnectionRecord(role=UNKNOWN)
    identify   -> role promoted to PRESENTER or VIEWER
    disconnect -> record deleted
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


DEFAULT_DISPLAY_NAME = "Anonymous"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """
    Connection roles.

    Attributes:
        PRESENTER: Produces the shared frame stream
        VIEWER: Consumes the presenter's stream, may share back to it
        UNKNOWN: Connected but not yet identified
    """

    PRESENTER = "presenter"
    VIEWER = "viewer"
    UNKNOWN = "unknown"


class ConnectionRecord(BaseModel):
    """
    State the hub holds for one live connection.

    Attributes:
        id: Opaque identifier, unique for the connection's lifetime
        role: Current role, UNKNOWN until identification
        display_name: Free-text label
        device: Client-reported device string
        screen_resolution: Client-reported screen size, e.g. "1920x1080"
        address: Peer address as reported by the transport
        connected_at: When the transport connected
        identified_at: When the latest identification arrived
        last_activity: Last inbound message of any kind
    """

    id: str
    role: Role = Field(default=Role.UNKNOWN)
    display_name: str = Field(default=DEFAULT_DISPLAY_NAME)
    device: Optional[str] = None
    screen_resolution: Optional[str] = None
    address: Optional[str] = None
    connected_at: datetime = Field(default_factory=utcnow)
    identified_at: Optional[datetime] = None
    last_activity: datetime = Field(default_factory=utcnow)

    def touch(self) -> None:
        """Record inbound activity."""
        self.last_activity = utcnow()
