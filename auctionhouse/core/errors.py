"""
Error taxonomy for the auction engine.

Domain code raises these; transports catch AuctionError at the boundary
and turn it into a caller-facing `{"error": message}` payload.
"""

from typing import Iterable, Optional, Tuple


class AuctionError(Exception):
    """Base class for caller-facing auction failures."""

    kind = "AuctionError"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"error": self.message}


class NotSeller(AuctionError):
    kind = "NotSeller"
    status_code = 403

    def __init__(self, message: str = "Only the seller can perform this action"):
        super().__init__(message)


class NotInvited(AuctionError):
    kind = "NotInvited"
    status_code = 403

    def __init__(self, message: str = "You are not invited to this auction"):
        super().__init__(message)


class AuctionNotActive(AuctionError):
    kind = "AuctionNotActive"
    status_code = 409

    def __init__(self, message: str = "Auction is not active"):
        super().__init__(message)


class BidTooLow(AuctionError):
    """Bid under the required minimum; the minimum is part of the message."""

    kind = "BidTooLow"
    status_code = 400

    def __init__(self, minimum: int):
        super().__init__(f"Bid must be at least {minimum}")
        self.minimum = minimum


class InvalidAmount(AuctionError):
    kind = "InvalidAmount"
    status_code = 400

    def __init__(self, message: str = "Bid amount must be greater than 0"):
        super().__init__(message)


class AuctionNotFound(AuctionError):
    kind = "AuctionNotFound"
    status_code = 404

    def __init__(self, auction_id: Optional[str] = None):
        super().__init__("Auction not found")
        self.auction_id = auction_id


class DealRoomNotFound(AuctionError):
    kind = "DealRoomNotFound"
    status_code = 404

    def __init__(self, deal_room_id: Optional[str] = None):
        super().__init__("Deal room not found")
        self.deal_room_id = deal_room_id


class MissingFields(AuctionError):
    kind = "MissingFields"
    status_code = 400

    def __init__(self, fields: Iterable[str] = ()):
        self.fields: Tuple[str, ...] = tuple(fields)
        names = ", ".join(self.fields) or "startPrice, minIncrement, durationMinutes, inviteeIds"
        super().__init__(f"Missing required fields: {names}")


class InvalidState(AuctionError):
    kind = "InvalidState"
    status_code = 409

    def __init__(self, message: str = "Invalid auction state transition"):
        super().__init__(message)
