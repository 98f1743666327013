"""
Error Taxonomy
==============

Exceptions raised inside the streaming core.

None of these are fatal to the process. Each one degrades the stream
(lower quality, dropped frame, paused delivery) rather than ending it:

    CaptureUnavailable     - device denied or busy, after one reduced retry
    EncodeFailure          - encoder produced nothing; frame counted as dropped
    OversizeFrame          - payload above the ceiling; never transmitted
    TransportDisconnected  - drives reconnection; surfaced only once given up
    SendFailure            - transport not connected; frame discarded
    ImageDecodeError       - viewer could not decode a payload for display
"""


class RelayError(Exception):
    """Base class for ScreenRelay errors."""
    pass


class CaptureUnavailable(RelayError):
    """Raised when the capture source cannot be acquired or read."""
    pass


class EncodeFailure(RelayError):
    """Raised when a captured image cannot be encoded."""
    pass


class OversizeFrame(RelayError):
    """Raised for an encoded frame larger than the configured ceiling."""

    def __init__(self, size: int, ceiling: int) -> None:
        super().__init__(f"Frame of {size} bytes exceeds ceiling of {ceiling} bytes")
        self.size = size
        self.ceiling = ceiling


class TransportDisconnected(RelayError):
    """Raised when the hub connection is lost and will not be retried."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Transport disconnected: {reason}")
        self.reason = reason


class SendFailure(RelayError):
    """Raised when a message is sent while the transport is not connected."""
    pass


class ImageDecodeError(RelayError):
    """Raised when a frame payload cannot be decoded to an image."""
    pass
