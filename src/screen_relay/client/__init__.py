"""
Client Module
=============

Presenter and viewer endpoints and the reconnecting hub connection they
share.
"""

from screen_relay.client.reconnect import (
    LOCAL_STOP_REASON,
    ConnectionStatus,
    ReconnectState,
    ReconnectStateMachine,
)
from screen_relay.client.connection import HubClient
from screen_relay.client.presenter import PresenterSession
from screen_relay.client.viewer import ViewerSession

__all__ = [
    "LOCAL_STOP_REASON",
    "ConnectionStatus",
    "ReconnectState",
    "ReconnectStateMachine",
    "HubClient",
    "PresenterSession",
    "ViewerSession",
]
