"""
Wire Messages
=============

JSON text messages exchanged over the hub WebSocket. Every message carries
a `type` discriminator; field names are camelCase on the wire and
snake_case in Python.

Each direction has its own closed union, so a presenter can never be
handed a message type it does not understand:

    PresenterToHub  identify | frame | ping
    ViewerToHub     identify | frame | hand-raised | hand-lowered | reaction | ping
    HubToPresenter  frame (viewer) | hand-raised | hand-lowered | reaction
                    | connection-count | presenter-online | presenter-offline
                    | presenter-status | pong
    HubToViewer     frame (presenter) | connection-count | presenter-online
                    | presenter-offline | presenter-status | pong

Example:
    msg = parse_message(PRESENTER_INBOUND, raw_text)
    if isinstance(msg, PresenterFrame):
        frame = msg.to_frame()
"""

import base64
import binascii
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from screen_relay.errors import ImageDecodeError
from screen_relay.models.frame import Frame, Resolution
from screen_relay.models.session import DEFAULT_DISPLAY_NAME, Role


_DATA_URL_PREFIX = "data:image/jpeg;base64,"


class WireModel(BaseModel):
    """Base for all wire messages: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class ResolutionPayload(WireModel):
    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)

    @classmethod
    def from_resolution(cls, resolution: Resolution) -> "ResolutionPayload":
        return cls(width=resolution.width, height=resolution.height)

    def to_resolution(self) -> Resolution:
        return Resolution(self.width, self.height)


def encode_image(payload: bytes) -> str:
    return base64.b64encode(payload).decode("ascii")


def decode_image(image: str) -> bytes:
    """
    Decode a base64 image field into raw bytes.

    A `data:image/jpeg;base64,` prefix is tolerated so browser clients
    that send data URLs interoperate.
    """
    if image.startswith(_DATA_URL_PREFIX):
        image = image[len(_DATA_URL_PREFIX):]
    try:
        return base64.b64decode(image, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Invalid base64 image: {e}") from e


# =============================================================================
# Client -> Hub
# =============================================================================

class Identify(WireModel):
    """Role declaration sent by a client after every connect."""

    type: Literal["identify"] = "identify"
    role: Role
    display_name: str = Field(default=DEFAULT_DISPLAY_NAME, max_length=200)
    device: Optional[str] = None
    resolution: Optional[str] = None

    @field_validator("role")
    @classmethod
    def role_must_be_declared(cls, v: Role) -> Role:
        if v == Role.UNKNOWN:
            raise ValueError("role must be 'presenter' or 'viewer'")
        return v


class PresenterFrame(WireModel):
    """A presenter screen frame, fanned out to viewers."""

    type: Literal["frame"] = "frame"
    image: str
    frame_id: int = Field(..., ge=0)
    timestamp: int = Field(..., ge=0)
    size: int = Field(..., ge=0)
    quality: float = Field(..., ge=0.0, le=1.0)
    resolution: ResolutionPayload

    @classmethod
    def from_frame(cls, frame: Frame) -> "PresenterFrame":
        return cls(
            image=encode_image(frame.payload),
            frame_id=frame.frame_id,
            timestamp=frame.timestamp,
            size=frame.size,
            quality=frame.quality if frame.quality is not None else 0.0,
            resolution=ResolutionPayload.from_resolution(frame.resolution),
        )

    def to_frame(self) -> Frame:
        return Frame(
            frame_id=self.frame_id,
            timestamp=self.timestamp,
            payload=decode_image(self.image),
            resolution=self.resolution.to_resolution(),
            quality=self.quality,
        )


class ViewerFrame(WireModel):
    """A viewer's own screen, shared back to the presenter."""

    type: Literal["frame"] = "frame"
    image: str
    frame_id: int = Field(..., ge=0)
    timestamp: int = Field(..., ge=0)
    resolution: ResolutionPayload

    @classmethod
    def from_frame(cls, frame: Frame) -> "ViewerFrame":
        return cls(
            image=encode_image(frame.payload),
            frame_id=frame.frame_id,
            timestamp=frame.timestamp,
            resolution=ResolutionPayload.from_resolution(frame.resolution),
        )

    def to_frame(self) -> Frame:
        return Frame(
            frame_id=self.frame_id,
            timestamp=self.timestamp,
            payload=decode_image(self.image),
            resolution=self.resolution.to_resolution(),
        )


class HandRaised(WireModel):
    type: Literal["hand-raised"] = "hand-raised"
    name: Optional[str] = None


class HandLowered(WireModel):
    type: Literal["hand-lowered"] = "hand-lowered"
    name: Optional[str] = None


class Reaction(WireModel):
    type: Literal["reaction"] = "reaction"
    emoji: str = Field(..., min_length=1, max_length=32)


class Ping(WireModel):
    type: Literal["ping"] = "ping"


# =============================================================================
# Hub -> Client
# =============================================================================

class Pong(WireModel):
    type: Literal["pong"] = "pong"


class ConnectionCount(WireModel):
    """Total number of live connections, any role."""

    type: Literal["connection-count"] = "connection-count"
    count: int = Field(..., ge=0)


class PresenterOnline(WireModel):
    type: Literal["presenter-online"] = "presenter-online"
    id: str
    name: str
    timestamp: datetime


class PresenterOffline(WireModel):
    type: Literal["presenter-offline"] = "presenter-offline"
    id: str
    name: str
    timestamp: datetime


class PresenterInfo(WireModel):
    id: str
    name: str


class PresenterStatus(WireModel):
    type: Literal["presenter-status"] = "presenter-status"
    is_online: bool
    presenter: Optional[PresenterInfo] = None


# =============================================================================
# Per-direction unions
# =============================================================================

PresenterToHub = Annotated[
    Union[Identify, PresenterFrame, Ping],
    Field(discriminator="type"),
]

ViewerToHub = Annotated[
    Union[Identify, ViewerFrame, HandRaised, HandLowered, Reaction, Ping],
    Field(discriminator="type"),
]

# Before identification only these are accepted
UnidentifiedToHub = Annotated[
    Union[Identify, Ping],
    Field(discriminator="type"),
]

HubToPresenter = Annotated[
    Union[
        ViewerFrame,
        HandRaised,
        HandLowered,
        Reaction,
        ConnectionCount,
        PresenterOnline,
        PresenterOffline,
        PresenterStatus,
        Pong,
    ],
    Field(discriminator="type"),
]

HubToViewer = Annotated[
    Union[
        PresenterFrame,
        ConnectionCount,
        PresenterOnline,
        PresenterOffline,
        PresenterStatus,
        Pong,
    ],
    Field(discriminator="type"),
]

PRESENTER_INBOUND: TypeAdapter = TypeAdapter(PresenterToHub)
VIEWER_INBOUND: TypeAdapter = TypeAdapter(ViewerToHub)
UNIDENTIFIED_INBOUND: TypeAdapter = TypeAdapter(UnidentifiedToHub)
PRESENTER_OUTBOUND: TypeAdapter = TypeAdapter(HubToPresenter)
VIEWER_OUTBOUND: TypeAdapter = TypeAdapter(HubToViewer)

_INBOUND_BY_ROLE = {
    Role.PRESENTER: PRESENTER_INBOUND,
    Role.VIEWER: VIEWER_INBOUND,
    Role.UNKNOWN: UNIDENTIFIED_INBOUND,
}


def parse_message(adapter: TypeAdapter, raw: Union[str, bytes]):
    """
    Validate raw JSON text against one direction's union.

    Raises:
        pydantic.ValidationError: Malformed JSON, unknown type or bad fields
    """
    return adapter.validate_json(raw)


def inbound_adapter(role: Role) -> TypeAdapter:
    """Union a hub accepts from a connection holding `role`."""
    return _INBOUND_BY_ROLE[role]
