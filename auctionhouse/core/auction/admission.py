"""
Bid Admission Controller - validates and admits bids under concurrency.

Validation order (first violation wins):
1. Auction exists             -> AuctionNotFound
2. Auction is active          -> AuctionNotActive
3. Amount is a positive int   -> InvalidAmount
4. Caller invited, not seller -> NotInvited
5. Amount reaches the minimum -> BidTooLow (minimum in the message)

Steps 2-5, the ledger append and the highest-bid update run while holding
the auction's lock, so two racing bids are always checked against a fully
up-to-date highest bid.
"""

from dataclasses import dataclass
from typing import Any

from auctionhouse.core.auction.ledger import BidLedger
from auctionhouse.core.auction.model import Auction, Bid
from auctionhouse.core.auction.state_machine import AuctionStateMachine
from auctionhouse.core.errors import BidTooLow, InvalidAmount, NotInvited
from auctionhouse.core.storage.record_store import AuctionRecordStore
from auctionhouse.utils.clock import Clock, system_clock
from auctionhouse.utils.logger import get_logger
from auctionhouse.utils.validation import validate_amount

logger = get_logger("admission")


@dataclass(frozen=True)
class BidAdmission:
    """An admitted bid and the auction snapshot right after it."""
    bid: Bid
    auction: Auction


class BidAdmissionController:

    def __init__(
        self,
        store: AuctionRecordStore,
        ledger: BidLedger,
        state_machine: AuctionStateMachine = None,
        clock: Clock = system_clock,
    ):
        self.store = store
        self.ledger = ledger
        self.state_machine = state_machine if state_machine is not None else AuctionStateMachine()
        self.clock = clock

    def check(self, auction: Auction, caller_id: str, amount: Any) -> None:
        """Run validation steps 2-5 against an auction snapshot."""
        self.state_machine.require_active(auction)

        # Numbers only; a positive float with a fraction is still malformed
        if isinstance(amount, float) and amount.is_integer():
            amount = int(amount)
        valid, _ = validate_amount(amount)
        if not valid:
            raise InvalidAmount()

        if caller_id == auction.seller_id or not auction.is_invited(caller_id):
            raise NotInvited()

        minimum = auction.minimum_next_bid()
        if amount < minimum:
            raise BidTooLow(minimum)

    def place_bid(self, auction_id: str, caller_id: str, amount: Any) -> BidAdmission:
        """
        Validate and admit a bid.

        Returns:
            BidAdmission with the new bid and updated auction
        """
        # Raises AuctionNotFound before any lock is taken
        self.store.get(auction_id)

        with self.store.locked(auction_id):
            auction = self.store.get(auction_id)
            # The ledger is authoritative; the cached highest bid can lag it
            # if a previous store write failed after the append.
            auction.highest_bid = self.ledger.highest_for(auction_id)
            self.check(auction, caller_id, amount)

            bid = Bid(
                auction_id=auction_id,
                bidder_id=caller_id,
                amount=int(amount),
                created_at=self.clock(),
            )
            self.ledger.append(auction_id, bid)

            def apply(a: Auction) -> None:
                a.highest_bid = self.ledger.highest_for(auction_id)
                a.bid_count = self.ledger.count_for(auction_id)

            updated = self.store.update(auction_id, apply)

        logger.debug(f"Bid admitted: auction={auction_id[:8]}, bidder={caller_id}, amount={bid.amount}")
        return BidAdmission(bid=bid, auction=updated)
