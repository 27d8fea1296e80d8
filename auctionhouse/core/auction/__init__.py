"""
Auction Module.

- Auction and bid model
- Lifecycle state machine
- Start parameters
- Bid ledger and admission
"""

from auctionhouse.core.auction.model import (
    Auction,
    AuctionState,
    Bid,
    EndReason,
    new_id,
)

from auctionhouse.core.auction.state_machine import (
    AuctionStateMachine,
    Transition,
    TRANSITIONS,
)

from auctionhouse.core.auction.params import (
    StartAuctionParams,
    parse_start_params,
)

__all__ = [
    # Model
    "Auction",
    "AuctionState",
    "Bid",
    "EndReason",
    "new_id",
    # State machine
    "AuctionStateMachine",
    "Transition",
    "TRANSITIONS",
    # Params
    "StartAuctionParams",
    "parse_start_params",
]
