"""
Realtime Protocol - JSON frames exchanged with connected clients.

Every frame is a JSON object:

    {"event": "auction:bid", "data": {"auctionId": "...", "amount": 1200}}

Client -> server: auction:join {auctionDealRoomId}, auction:bid {auctionId,
amount}, auction:leave {auctionDealRoomId}
Server -> client: auction:joined, auction:left, plus every broadcast kind
(auction:started, auction:bid:update, auction:closed, auction:cancelled,
auction:error).
"""

import json
from enum import Enum
from typing import Any, Dict, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ClientEvent(str, Enum):
    """Frames a client may send."""
    JOIN = "auction:join"
    BID = "auction:bid"
    LEAVE = "auction:leave"


# Server acknowledgements (broadcast kinds live in core.events)
AUCTION_JOINED = "auction:joined"
AUCTION_LEFT = "auction:left"

MAX_FRAME_SIZE = 64 * 1024  # 64 KB


class ProtocolError(ValueError):
    """Malformed frame from a client."""


class Frame(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


class RoomRef(BaseModel):
    """Payload of auction:join and auction:leave."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    deal_room_id: str = Field(alias="auctionDealRoomId", min_length=1)


class BidPayload(BaseModel):
    """Payload of auction:bid. The amount is validated by the engine."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    auction_id: str = Field(alias="auctionId", min_length=1)
    amount: Any = None


def encode_frame(event: str, data: Dict[str, Any]) -> str:
    """Serialize a server frame."""
    return json.dumps({"event": event, "data": data}, default=str)


def decode_frame(raw: Union[str, bytes]) -> Frame:
    """
    Parse a client frame.

    Raises:
        ProtocolError: oversized, not JSON, or not a frame object
    """
    if len(raw) > MAX_FRAME_SIZE:
        raise ProtocolError(f"Frame too large: {len(raw)} bytes")
    try:
        return Frame.model_validate_json(raw)
    except ValidationError as e:
        raise ProtocolError("Malformed frame") from e


def parse_payload(frame: Frame, model: type) -> BaseModel:
    """Validate a frame's data against `model`."""
    try:
        return model.model_validate(frame.data)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise ProtocolError(f"Invalid {frame.event} payload: {fields or 'data'}") from e
