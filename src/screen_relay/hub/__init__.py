"""
Hub Module
==========

Relay hub: connection registry, role-aware routing and per-connection
outbound queues.
"""

from screen_relay.hub.outbox import Outbox
from screen_relay.hub.registry import SessionManager
from screen_relay.hub.relay import Connection, HubMetrics, RelayHub

__all__ = [
    "Outbox",
    "SessionManager",
    "Connection",
    "HubMetrics",
    "RelayHub",
]
