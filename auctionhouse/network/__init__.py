"""
Realtime Module - frame protocol and session gateway for connected clients.
"""

from auctionhouse.network.protocol import (
    ClientEvent,
    Frame,
    ProtocolError,
    decode_frame,
    encode_frame,
)

__all__ = [
    "ClientEvent",
    "Frame",
    "ProtocolError",
    "decode_frame",
    "encode_frame",
]
