"""
Auction domain model.

An Auction is attached to one deal room and moves through
pending -> active -> {closed | cancelled}. Bids are immutable records
owned by the auction; the ledger keeps their sequence.
"""

import math
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


def new_id() -> str:
    """Generate an opaque identifier."""
    return str(uuid.uuid4())


# =============================================================================
# Enums
# =============================================================================


class AuctionState(str, Enum):
    """Lifecycle state of an auction."""
    PENDING = "pending"        # Created, waiting for start_at
    ACTIVE = "active"          # Accepting bids
    CLOSED = "closed"          # Ended, winner (if any) determined
    CANCELLED = "cancelled"    # Ended by the seller, no winner

    @property
    def is_terminal(self) -> bool:
        return self in (AuctionState.CLOSED, AuctionState.CANCELLED)

    @property
    def is_live(self) -> bool:
        return not self.is_terminal


class EndReason(str, Enum):
    TIME_EXPIRED = "time_expired"
    FORCE_CLOSED = "force_closed"
    CANCELLED = "cancelled"


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True)
class Bid:
    """An admitted bid. Never mutated after creation."""
    auction_id: str
    bidder_id: str
    amount: int
    created_at: float = field(default_factory=time.time)
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "auctionId": self.auction_id,
            "bidderId": self.bidder_id,
            "amount": self.amount,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bid":
        return cls(
            id=data["id"],
            auction_id=data["auctionId"],
            bidder_id=data["bidderId"],
            amount=int(data["amount"]),
            created_at=float(data["createdAt"]),
        )


@dataclass
class Auction:
    """
    A timed, invitation-only auction over a deal room.

    Provenance fields (deal room, listing, seller) and the price rules are
    fixed at creation. `state`, `highest_bid` and the winner fields change
    only through the state machine and the bid admission controller.
    """
    deal_room_id: str
    listing_id: str
    seller_id: str
    start_price: int
    min_increment: int
    start_at: float
    end_at: float
    invitee_ids: FrozenSet[str] = frozenset()
    state: AuctionState = AuctionState.ACTIVE
    id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)

    # Bidding
    highest_bid: Optional[Bid] = None
    bid_count: int = 0

    # Result
    ended_at: Optional[float] = None
    ended_reason: Optional[EndReason] = None
    winner_id: Optional[str] = None
    winning_bid_id: Optional[str] = None
    winning_amount: Optional[int] = None
    order_id: Optional[str] = None

    def __post_init__(self):
        # Sellers never bid on their own auction
        self.invitee_ids = frozenset(self.invitee_ids) - {self.seller_id}
        if not isinstance(self.state, AuctionState):
            self.state = AuctionState(self.state)
        if self.ended_reason is not None and not isinstance(self.ended_reason, EndReason):
            self.ended_reason = EndReason(self.ended_reason)

    # =========================================================================
    # Derived values
    # =========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def has_winner(self) -> bool:
        return self.state == AuctionState.CLOSED and self.winner_id is not None

    def minimum_next_bid(self) -> int:
        """Smallest amount the next bid must reach."""
        if self.highest_bid is None:
            return self.start_price
        return self.highest_bid.amount + self.min_increment

    def remaining_seconds(self, now: float) -> int:
        return max(0, math.floor(self.end_at - now))

    def is_invited(self, user_id: str) -> bool:
        return user_id in self.invitee_ids

    def is_participant(self, user_id: str) -> bool:
        return user_id == self.seller_id or self.is_invited(user_id)

    def copy(self) -> "Auction":
        """Shallow copy; every nested value is immutable."""
        return replace(self)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        """Camel-cased view used on the wire and in storage."""
        return {
            "id": self.id,
            "dealRoomId": self.deal_room_id,
            "listingId": self.listing_id,
            "sellerId": self.seller_id,
            "startPrice": self.start_price,
            "minIncrement": self.min_increment,
            "state": self.state.value,
            "startAt": self.start_at,
            "endAt": self.end_at,
            "createdAt": self.created_at,
            "inviteeIds": sorted(self.invitee_ids),
            "highestBid": self.highest_bid.to_dict() if self.highest_bid else None,
            "bidCount": self.bid_count,
            "endedAt": self.ended_at,
            "endedReason": self.ended_reason.value if self.ended_reason else None,
            "winnerId": self.winner_id,
            "winningBidId": self.winning_bid_id,
            "winningAmount": self.winning_amount,
            "orderId": self.order_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Auction":
        highest = data.get("highestBid")
        return cls(
            id=data["id"],
            deal_room_id=data["dealRoomId"],
            listing_id=data["listingId"],
            seller_id=data["sellerId"],
            start_price=int(data["startPrice"]),
            min_increment=int(data["minIncrement"]),
            state=AuctionState(data["state"]),
            start_at=float(data["startAt"]),
            end_at=float(data["endAt"]),
            created_at=float(data.get("createdAt", data["startAt"])),
            invitee_ids=frozenset(data.get("inviteeIds", ())),
            highest_bid=Bid.from_dict(highest) if highest else None,
            bid_count=int(data.get("bidCount", 0)),
            ended_at=data.get("endedAt"),
            ended_reason=data.get("endedReason"),
            winner_id=data.get("winnerId"),
            winning_bid_id=data.get("winningBidId"),
            winning_amount=data.get("winningAmount"),
            order_id=data.get("orderId"),
        )
