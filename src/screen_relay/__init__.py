"""
ScreenRelay
===========

Wireless screen sharing for a single room: one presenter, many viewers,
one relay hub on the local network.

Components:
    - capture: tick-driven screen capture with adaptive JPEG quality
    - hub: connection registry and role-aware fan-out
    - viewer: frame consumption, drop accounting, quality estimation
    - client: WebSocket client with bounded-retry reconnection

Example:
    from screen_relay.main import create_app

    app = create_app()
    # uvicorn screen_relay.main:app --host 0.0.0.0 --port 3000
"""

__version__ = "0.1.0"
__author__ = "ScreenRelay Project"

__all__ = [
    "__version__",
]
