"""
Auction State Machine - legal lifecycle transitions.

    pending --> active --> closed
                   \\--> cancelled

closed and cancelled are terminal. Closing an already-closed auction is a
no-op so duplicate scheduler firings and retried requests are harmless;
every other move out of a terminal state is rejected.

The machine mutates the Auction it is given. Callers run it inside
`AuctionRecordStore.update`, which provides atomicity.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet

from auctionhouse.core.auction.model import Auction, AuctionState, EndReason
from auctionhouse.core.errors import AuctionNotActive, InvalidState
from auctionhouse.utils.logger import get_logger

logger = get_logger("state")


TRANSITIONS: Dict[AuctionState, FrozenSet[AuctionState]] = {
    AuctionState.PENDING: frozenset({AuctionState.ACTIVE}),
    AuctionState.ACTIVE: frozenset({AuctionState.CLOSED, AuctionState.CANCELLED}),
    AuctionState.CLOSED: frozenset(),
    AuctionState.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class Transition:
    """Outcome of a transition request."""
    previous: AuctionState
    current: AuctionState

    @property
    def changed(self) -> bool:
        return self.previous != self.current


class AuctionStateMachine:
    """Validates and applies auction lifecycle transitions."""

    @staticmethod
    def can_transition(source: AuctionState, target: AuctionState) -> bool:
        return target in TRANSITIONS[source]

    def _move(self, auction: Auction, target: AuctionState) -> Transition:
        previous = auction.state
        if not self.can_transition(previous, target):
            raise InvalidState(
                f"Cannot move auction from {previous.value} to {target.value}"
            )
        auction.state = target
        logger.debug(f"Auction {auction.id[:8]}: {previous.value} -> {target.value}")
        return Transition(previous, target)

    # =========================================================================
    # Guards
    # =========================================================================

    @staticmethod
    def require_active(auction: Auction) -> None:
        if auction.state != AuctionState.ACTIVE:
            raise AuctionNotActive()

    # =========================================================================
    # Transitions
    # =========================================================================

    def activate(self, auction: Auction, now: float) -> Transition:
        """pending -> active. Activating an active auction is a no-op."""
        if auction.state == AuctionState.ACTIVE:
            return Transition(auction.state, auction.state)
        if auction.state == AuctionState.PENDING and now < auction.start_at:
            raise InvalidState("Auction has not reached its start time")
        return self._move(auction, AuctionState.ACTIVE)

    def close(self, auction: Auction, now: float, force: bool = False) -> Transition:
        """
        active -> closed, recording the winner from the highest bid.

        Args:
            auction: Auction to close (mutated)
            now: Current time
            force: Administrative close before end_at

        Raises:
            InvalidState: auction is pending or cancelled, or not yet expired
        """
        if auction.state == AuctionState.CLOSED:
            return Transition(auction.state, auction.state)

        if not force and auction.state == AuctionState.ACTIVE and now < auction.end_at:
            raise InvalidState("Auction has not reached its end time")

        transition = self._move(auction, AuctionState.CLOSED)

        auction.ended_at = now
        auction.ended_reason = EndReason.FORCE_CLOSED if force else EndReason.TIME_EXPIRED
        if auction.highest_bid is not None:
            auction.winner_id = auction.highest_bid.bidder_id
            auction.winning_bid_id = auction.highest_bid.id
            auction.winning_amount = auction.highest_bid.amount

        return transition

    def cancel(self, auction: Auction, now: float) -> Transition:
        """
        active -> cancelled. Standing bids are kept but no winner is declared.

        Raises:
            InvalidState: auction is not active
        """
        if auction.state != AuctionState.ACTIVE:
            raise InvalidState("Auction cannot be cancelled")

        transition = self._move(auction, AuctionState.CANCELLED)
        auction.ended_at = now
        auction.ended_reason = EndReason.CANCELLED
        return transition
