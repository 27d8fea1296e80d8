"""
Auction Service - the operation surface transports call into.

Orchestrates the engine:

    start_auction -> record store -> scheduler -> deal events -> broadcaster
    place_bid     -> admission controller (store + ledger) -> deal events -> broadcaster
    close_due     -> state machine (via store) -> deal events -> broadcaster -> workflow

Every operation validates before it mutates and publishes only after the
mutation has committed. Domain failures surface as AuctionError subclasses.
"""

from typing import Any, Dict, List, Mapping, Optional, Union

from auctionhouse.core.auction.admission import BidAdmissionController
from auctionhouse.core.auction.ledger import BidLedger
from auctionhouse.core.auction.model import Auction, AuctionState, new_id
from auctionhouse.core.auction.params import StartAuctionParams, parse_start_params
from auctionhouse.core.auction.state_machine import AuctionStateMachine, Transition
from auctionhouse.core.config import EngineConfig
from auctionhouse.core import deal_events as audit
from auctionhouse.core.deal_events import DealEventLog
from auctionhouse.core.deal_rooms import DealRoomDirectory
from auctionhouse.core.errors import (
    AuctionError,
    AuctionNotFound,
    InvalidAmount,
    InvalidState,
    MissingFields,
    NotInvited,
    NotSeller,
)
from auctionhouse.core import events
from auctionhouse.core.events import EventBroadcaster, WorkflowSink
from auctionhouse.core.scheduler import AuctionScheduler, JobKind
from auctionhouse.core.storage.record_store import AuctionRecordStore
from auctionhouse.core.storage.storage_manager import StorageManager
from auctionhouse.utils.clock import Clock, system_clock
from auctionhouse.utils.logger import get_logger

logger = get_logger("service")


class AuctionService:
    """
    Facade over the auction engine.

    Attributes:
        store: Auction record store (serialization point)
        ledger: Bid ledger
        scheduler: Timer for activation and close
        broadcaster: Real-time fan-out and downstream workflow
        deal_events: Audit trail
    """

    def __init__(
        self,
        deal_rooms: DealRoomDirectory,
        store: Optional[AuctionRecordStore] = None,
        ledger: Optional[BidLedger] = None,
        broadcaster: Optional[EventBroadcaster] = None,
        scheduler: Optional[AuctionScheduler] = None,
        deal_events: Optional[DealEventLog] = None,
        config: Optional[EngineConfig] = None,
        clock: Clock = system_clock,
    ):
        self.config = config if config is not None else EngineConfig()
        self.clock = clock
        self.deal_rooms = deal_rooms
        self.store = store if store is not None else AuctionRecordStore()
        self.ledger = ledger if ledger is not None else BidLedger()
        self.broadcaster = broadcaster if broadcaster is not None else EventBroadcaster()
        self.deal_events = deal_events if deal_events is not None else DealEventLog()
        if scheduler is None:
            scheduler = AuctionScheduler(
                clock=clock,
                retry_delay=self.config.scheduler_retry_delay,
                max_retries=self.config.scheduler_max_retries,
            )
        self.scheduler = scheduler
        self.state_machine = AuctionStateMachine()
        self.admission = BidAdmissionController(self.store, self.ledger, self.state_machine, clock)

        self.scheduler.set_handler(JobKind.CLOSE, self.close_due)
        self.scheduler.set_handler(JobKind.ACTIVATE, self.activate_due)

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        deal_rooms: DealRoomDirectory,
        workflow_sink: Optional[WorkflowSink] = None,
        clock: Clock = system_clock,
    ) -> "AuctionService":
        """Build a service, persisted under `config.data_dir` when `config.persist` is set."""
        config.ensure_dirs()
        storage = StorageManager(config.data_dir, config.db_name) if config.persist else None
        return cls(
            deal_rooms=deal_rooms,
            store=AuctionRecordStore(storage),
            ledger=BidLedger(storage),
            broadcaster=EventBroadcaster(workflow_sink),
            deal_events=DealEventLog(storage),
            config=config,
            clock=clock,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> Dict[str, int]:
        """Recover persisted auctions and start the scheduler thread."""
        summary = self.resume()
        self.scheduler.start()
        return summary

    def shutdown(self) -> None:
        self.scheduler.stop()

    def _audit(
        self,
        deal_room_id: str,
        actor_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
        created_at: float,
    ) -> None:
        """Record a deal event for a change that has already committed."""
        try:
            self.deal_events.record(deal_room_id, actor_id, event_type, payload, created_at=created_at)
        except Exception as e:
            logger.error(f"Failed to record {event_type} for deal room {deal_room_id[:8]}: {e}")

    # =========================================================================
    # Start
    # =========================================================================

    def start_auction(
        self,
        deal_room_id: str,
        caller_id: str,
        params: Union[StartAuctionParams, Mapping[str, Any], None],
    ) -> Dict[str, Any]:
        """
        Open an auction on a deal room. Seller only.

        Raises:
            DealRoomNotFound, NotSeller, MissingFields, InvalidAmount,
            InvalidState (the room already has a live auction)
        """
        room = self.deal_rooms.get(deal_room_id)
        if caller_id != room.seller_id:
            raise NotSeller("You must be the seller to start an auction")

        p = parse_start_params(params, self.config.max_duration_minutes, self.config.max_invitees)

        now = self.clock()
        deferred = p.start_at is not None and p.start_at > now
        start_at = p.start_at if deferred else now

        # Pending auctions cannot be cancelled; bound how long one holds the room
        max_delay = self.config.max_start_delay_minutes
        if start_at - now > max_delay * 60:
            raise InvalidAmount(f"startAt must be within {max_delay} minutes from now")

        auction = Auction(
            deal_room_id=room.id,
            listing_id=room.listing_id,
            seller_id=room.seller_id,
            start_price=p.start_price,
            min_increment=p.min_increment,
            start_at=start_at,
            end_at=start_at + p.duration_minutes * 60,
            invitee_ids=frozenset(p.invitee_ids),
            state=AuctionState.PENDING if deferred else AuctionState.ACTIVE,
            created_at=now,
        )
        if not auction.invitee_ids:
            # Only the seller was invited
            raise MissingFields(["inviteeIds"])

        self.store.create(auction)

        if deferred:
            self.scheduler.schedule_activation(auction.id, auction.start_at)
        self.scheduler.schedule_close(auction.id, auction.end_at)

        self._audit(room.id, caller_id, audit.AUCTION_STARTED, {
            "auctionId": auction.id,
            "startPrice": auction.start_price,
            "minIncrement": auction.min_increment,
            "durationMinutes": p.duration_minutes,
            "inviteeIds": sorted(auction.invitee_ids),
        }, created_at=now)

        if not deferred:
            self._broadcast_started(auction)

        logger.info(
            f"Auction {auction.id[:8]} {auction.state.value} on deal room {room.id[:8]}: "
            f"start={auction.start_price}, step={auction.min_increment}, "
            f"{len(auction.invitee_ids)} invitees"
        )
        return {
            "auctionId": auction.id,
            "auctionRoomId": auction.deal_room_id,
            "dealRoomId": auction.deal_room_id,
            "state": auction.state.value,
            "startAt": auction.start_at,
            "endAt": auction.end_at,
        }

    def _broadcast_started(self, auction: Auction) -> None:
        self.broadcaster.publish_to_deal_room(auction.deal_room_id, events.AUCTION_STARTED, {
            "auctionId": auction.id,
            "dealRoomId": auction.deal_room_id,
            "startPrice": auction.start_price,
            "minIncrement": auction.min_increment,
            "endAt": auction.end_at,
        })

    # =========================================================================
    # Bidding
    # =========================================================================

    def place_bid(self, auction_id: str, caller_id: str, amount: Any) -> Dict[str, Any]:
        """
        Place a bid. Invitees only.

        Raises:
            AuctionNotFound, AuctionNotActive, InvalidAmount, NotInvited, BidTooLow
        """
        admission = self.admission.place_bid(auction_id, caller_id, amount)
        bid, auction = admission.bid, admission.auction

        self._audit(auction.deal_room_id, caller_id, audit.AUCTION_BID, {
            "auctionId": auction_id,
            "bidId": bid.id,
            "amount": bid.amount,
        }, created_at=bid.created_at)

        self.broadcaster.publish_to_deal_room(auction.deal_room_id, events.AUCTION_BID_UPDATE, {
            "auctionId": auction_id,
            "bid": bid.to_dict(),
            "highestBid": auction.highest_bid.amount,
            "bidderId": bid.bidder_id,
            "bidCount": auction.bid_count,
        })

        return {"bid": bid.to_dict(), "highestBid": auction.highest_bid.amount}

    # =========================================================================
    # Queries
    # =========================================================================

    def _authorized(self, auction_id: str, caller_id: str) -> Auction:
        auction = self.store.get(auction_id)
        if not auction.is_participant(caller_id):
            raise NotInvited()
        return auction

    def view(self, auction: Auction) -> Dict[str, Any]:
        """Full caller-facing view of an auction."""
        data = auction.to_dict()
        data["remainingSeconds"] = auction.remaining_seconds(self.clock())
        data["currentHighestBid"] = (
            auction.highest_bid.amount if auction.highest_bid else auction.start_price
        )
        data["hasWinner"] = auction.has_winner

        participants = [{"userId": auction.seller_id, "role": "seller"}]
        participants += [{"userId": uid, "role": "buyer"} for uid in sorted(auction.invitee_ids)]

        return {
            "auction": data,
            "highestBid": auction.highest_bid.to_dict() if auction.highest_bid else None,
            "bids": [b.to_dict() for b in self.ledger.list_for(auction.id)],
            "participants": participants,
        }

    def get_auction(self, auction_id: str, caller_id: str) -> Dict[str, Any]:
        """
        Auction view for the seller or an invitee.

        Raises:
            AuctionNotFound, NotInvited
        """
        return self.view(self._authorized(auction_id, caller_id))

    def get_auction_by_deal_room(self, deal_room_id: str, caller_id: str) -> Dict[str, Any]:
        """Most recent auction of a deal room."""
        auction = self.store.find_latest_by_deal_room(deal_room_id)
        if auction is None:
            raise AuctionNotFound()
        return self.get_auction(auction.id, caller_id)

    def list_bids(self, auction_id: str, caller_id: str) -> List[Dict[str, Any]]:
        self._authorized(auction_id, caller_id)
        return [b.to_dict() for b in self.ledger.list_for(auction_id)]

    # =========================================================================
    # Cancel
    # =========================================================================

    def cancel_auction(self, auction_id: str, caller_id: str) -> Dict[str, Any]:
        """
        Cancel an active auction. Seller only; no winner is declared.

        Raises:
            AuctionNotFound, NotSeller, InvalidState
        """
        auction = self.store.get(auction_id)
        if caller_id != auction.seller_id:
            raise NotSeller("Only the seller can cancel this auction")

        now = self.clock()
        auction = self.store.update(auction_id, lambda a: self.state_machine.cancel(a, now))
        self.scheduler.cancel(auction_id)

        self._audit(auction.deal_room_id, caller_id, audit.AUCTION_CANCELLED, {
            "auctionId": auction_id,
        }, created_at=now)
        self.broadcaster.publish_to_deal_room(auction.deal_room_id, events.AUCTION_CANCELLED, {
            "auctionId": auction_id,
            "dealRoomId": auction.deal_room_id,
        })

        logger.info(f"Auction {auction_id[:8]} cancelled by seller ({auction.bid_count} standing bids)")
        return {
            "message": "Auction cancelled successfully",
            "auctionId": auction_id,
            "state": auction.state.value,
        }

    # =========================================================================
    # Close
    # =========================================================================

    def _close(self, auction_id: str, force: bool) -> Auction:
        now = self.clock()
        outcome: Dict[str, Transition] = {}

        def apply(a: Auction) -> None:
            a.highest_bid = self.ledger.highest_for(a.id)
            a.bid_count = self.ledger.count_for(a.id)
            transition = self.state_machine.close(a, now, force=force)
            if transition.changed and a.winner_id is not None:
                a.order_id = new_id()
            outcome["transition"] = transition

        auction = self.store.update(auction_id, apply)
        if not outcome["transition"].changed:
            logger.debug(f"Auction {auction_id[:8]} already closed")
            return auction

        self.scheduler.cancel(auction_id)
        self._after_close(auction, now)
        return auction

    def _after_close(self, auction: Auction, now: float) -> None:
        if auction.winner_id is None:
            self._audit(auction.deal_room_id, auction.seller_id, audit.AUCTION_CLOSED, {
                "auctionId": auction.id,
                "reason": "no_bids",
            }, created_at=now)
        else:
            self._audit(auction.deal_room_id, auction.seller_id, audit.AUCTION_CLOSED, {
                "auctionId": auction.id,
                "reason": auction.ended_reason.value,
            }, created_at=now)
            self._audit(auction.deal_room_id, auction.winner_id, audit.AUCTION_WINNER, {
                "auctionId": auction.id,
                "amount": auction.winning_amount,
                "winningBidId": auction.winning_bid_id,
                "orderId": auction.order_id,
            }, created_at=now)

        self.broadcaster.publish_to_deal_room(auction.deal_room_id, events.AUCTION_CLOSED, {
            "auctionId": auction.id,
            "dealRoomId": auction.deal_room_id,
            "winnerId": auction.winner_id,
            "finalAmount": auction.winning_amount,
            "hasWinner": auction.has_winner,
        })

        if auction.has_winner:
            self.broadcaster.emit_downstream(events.ORDER_CREATED, {
                "orderId": auction.order_id,
                "dealRoomId": auction.deal_room_id,
                "buyerId": auction.winner_id,
                "sellerId": auction.seller_id,
                "amount": auction.winning_amount,
                "auctionId": auction.id,
            })
            logger.info(
                f"Auction {auction.id[:8]} closed: winner={auction.winner_id}, "
                f"amount={auction.winning_amount}"
            )
        else:
            logger.info(f"Auction {auction.id[:8]} closed without bids")

    def force_close(self, auction_id: str) -> Dict[str, Any]:
        """
        Administrative close, ignoring end_at. Closing twice is a no-op.

        Raises:
            AuctionNotFound, InvalidState (pending or cancelled)
        """
        auction = self._close(auction_id, force=True)
        return self.view(auction)

    def close_due(self, auction_id: str) -> None:
        """
        Scheduler callback for end_at.

        Duplicate and late firings are absorbed; an early firing is
        rescheduled for end_at.
        """
        try:
            auction = self.store.get(auction_id)
        except AuctionNotFound:
            logger.warning(f"Close fired for unknown auction {auction_id[:8]}")
            return

        if auction.state == AuctionState.PENDING:
            self.activate_due(auction_id)
            auction = self.store.get(auction_id)
            if auction.state == AuctionState.PENDING:
                # activation was rescheduled; close stays tied to end_at
                self.scheduler.schedule_close(auction_id, auction.end_at)
                return

        if auction.is_terminal:
            logger.debug(f"Close for auction {auction_id[:8]} absorbed: already {auction.state.value}")
            return

        if self.clock() < auction.end_at:
            self.scheduler.schedule_close(auction_id, auction.end_at)
            return

        try:
            self._close(auction_id, force=False)
        except InvalidState as e:
            # Lost a race with cancel (or the clock moved backwards)
            current = self.store.get(auction_id)
            if current.state == AuctionState.ACTIVE:
                self.scheduler.schedule_close(auction_id, current.end_at)
            else:
                logger.debug(f"Close for auction {auction_id[:8]} absorbed: {e}")

    def activate_due(self, auction_id: str) -> None:
        """Scheduler callback for start_at of a deferred auction."""
        now = self.clock()
        outcome: Dict[str, Transition] = {}

        def apply(a: Auction) -> None:
            outcome["transition"] = self.state_machine.activate(a, now)

        try:
            auction = self.store.update(auction_id, apply)
        except AuctionNotFound:
            logger.warning(f"Activation fired for unknown auction {auction_id[:8]}")
            return
        except InvalidState as e:
            current = self.store.get(auction_id)
            if current.state == AuctionState.PENDING:
                self.scheduler.schedule_activation(auction_id, current.start_at)
            else:
                logger.debug(f"Activation for auction {auction_id[:8]} absorbed: {e}")
            return

        if outcome["transition"].changed:
            logger.info(f"Auction {auction_id[:8]} activated")
            self._broadcast_started(auction)

    # =========================================================================
    # Recovery
    # =========================================================================

    def _reconcile(self, auction: Auction) -> Auction:
        """Bring the cached highest bid in line with the ledger."""
        highest = self.ledger.highest_for(auction.id)
        count = self.ledger.count_for(auction.id)
        if auction.highest_bid == highest and auction.bid_count == count:
            return auction

        def apply(a: Auction) -> None:
            a.highest_bid = highest
            a.bid_count = count

        logger.warning(f"Auction {auction.id[:8]} highest bid rebuilt from ledger")
        return self.store.update(auction.id, apply)

    def resume(self) -> Dict[str, int]:
        """
        Re-arm timers after a restart.

        Expired active auctions are closed now, the rest rescheduled;
        pending auctions past start_at are activated.
        """
        now = self.clock()
        summary = {"closed": 0, "rescheduled": 0, "activated": 0, "pending": 0}

        for auction in self.store.list_live():
            auction = self._reconcile(auction)

            if auction.state == AuctionState.PENDING:
                if auction.start_at > now:
                    self.scheduler.schedule_activation(auction.id, auction.start_at)
                    self.scheduler.schedule_close(auction.id, auction.end_at)
                    summary["pending"] += 1
                    continue
                self.activate_due(auction.id)
                summary["activated"] += 1

            if auction.end_at <= now:
                self.close_due(auction.id)
                summary["closed"] += 1
            else:
                self.scheduler.schedule_close(auction.id, auction.end_at)
                summary["rescheduled"] += 1

        if any(summary.values()):
            logger.info(f"Recovery: {summary}")
        return summary

    # =========================================================================
    # Errors
    # =========================================================================

    def report_error(self, caller_id: str, error: AuctionError) -> None:
        """Send `auction:error` to the offending caller only."""
        self.broadcaster.send_to_user(caller_id, events.AUCTION_ERROR, error.to_payload())

    def stats(self) -> Dict[str, Any]:
        live = self.store.list_live()
        return {
            "auctions": len(self.store),
            "live": len(live),
            "scheduled_jobs": len(self.scheduler.pending_jobs()),
            **self.ledger.stats(),
            "deal_events": len(self.deal_events),
        }
