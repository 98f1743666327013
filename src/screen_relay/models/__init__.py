"""
Data Models
===========

Frames, connection records and the wire message unions.
"""

from screen_relay.models.frame import Frame, Resolution, RESOLUTION_PRESETS
from screen_relay.models.session import ConnectionRecord, Role
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
    parse_message,
)

__all__ = [
    "Frame",
    "Resolution",
    "RESOLUTION_PRESETS",
    "ConnectionRecord",
    "Role",
    "ConnectionCount",
    "HandLowered",
    "HandRaised",
    "Identify",
    "Ping",
    "Pong",
    "PresenterFrame",
    "PresenterInfo",
    "PresenterOffline",
    "PresenterOnline",
    "PresenterStatus",
    "Reaction",
    "ViewerFrame",
    "parse_message",
]
