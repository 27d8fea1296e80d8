"""
Concurrency tests: racing bids and close on the same auction.
"""

import threading

import pytest

from auctionhouse.core import events
from auctionhouse.core.auction.model import AuctionState
from auctionhouse.core.deal_rooms import DealRoom, InMemoryDealRoomDirectory
from auctionhouse.core.errors import AuctionError, AuctionNotActive, BidTooLow
from auctionhouse.core.events import EventBroadcaster, InMemoryWorkflowQueue
from auctionhouse.core.service import AuctionService
from auctionhouse.utils.clock import ManualClock

PARAMS = {
    "startPrice": 1000,
    "minIncrement": 100,
    "durationMinutes": 30,
    "inviteeIds": [f"bidder-{i}" for i in range(8)],
}


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def workflow():
    return InMemoryWorkflowQueue()


@pytest.fixture
def service(clock, workflow):
    rooms = InMemoryDealRoomDirectory()
    rooms.register(DealRoom(id="room-1", listing_id="listing-1", seller_id="seller"))
    return AuctionService(deal_rooms=rooms, broadcaster=EventBroadcaster(workflow), clock=clock)


@pytest.fixture
def auction_id(service):
    return service.start_auction("room-1", "seller", PARAMS)["auctionId"]


def race(*targets):
    """Run callables at the same moment; return their results or exceptions."""
    barrier = threading.Barrier(len(targets))
    results = [None] * len(targets)

    def run(i, fn):
        barrier.wait()
        try:
            results[i] = fn()
        except AuctionError as e:
            results[i] = e

    threads = [threading.Thread(target=run, args=(i, fn)) for i, fn in enumerate(targets)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)
    return results


class TestBidRace:

    def test_two_valid_bids_both_admitted(self, service, auction_id):
        """Bids that clear the minimum in either order are both recorded."""
        service.place_bid(auction_id, "bidder-0", 1000)

        results = race(
            lambda: service.place_bid(auction_id, "bidder-1", 2000),
            lambda: service.place_bid(auction_id, "bidder-2", 3000),
        )

        assert not any(isinstance(r, Exception) for r in results)
        assert service.ledger.count_for(auction_id) == 3
        assert service.store.get(auction_id).highest_bid.amount == 3000

    def test_equal_bids_one_admitted(self, service, auction_id):
        """Two bids at the same minimum: exactly one wins the slot."""
        results = race(
            lambda: service.place_bid(auction_id, "bidder-1", 1000),
            lambda: service.place_bid(auction_id, "bidder-2", 1000),
        )

        rejected = [r for r in results if isinstance(r, BidTooLow)]
        assert len(rejected) == 1
        assert rejected[0].minimum == 1100
        assert service.ledger.count_for(auction_id) == 1

    def test_many_bidders_highest_is_consistent(self, service, auction_id):
        bidders = [f"bidder-{i}" for i in range(8)]
        amounts = [1000 + 150 * i for i in range(8)]

        def bid_loop(bidder, start):
            def run():
                admitted = 0
                for step in range(20):
                    try:
                        service.place_bid(auction_id, bidder, start + 1200 * step)
                        admitted += 1
                    except BidTooLow:
                        pass
                return admitted
            return run

        results = race(*[bid_loop(b, a) for b, a in zip(bidders, amounts)])
        bids = service.ledger.list_for(auction_id)
        auction = service.store.get(auction_id)

        assert sum(results) == len(bids) == auction.bid_count
        assert auction.highest_bid == max(bids, key=lambda b: b.amount)
        # Every admitted bid cleared the increment over its predecessor
        for prev, cur in zip(bids, bids[1:]):
            assert cur.amount >= prev.amount + 100


class TestCloseRace:

    def test_bid_racing_close(self, service, auction_id, clock, workflow):
        """A bid is either in the result or rejected as not active."""
        service.place_bid(auction_id, "bidder-0", 1000)
        clock.advance(1800)

        results = race(
            lambda: service.close_due(auction_id),
            lambda: service.place_bid(auction_id, "bidder-1", 5000),
        )

        auction = service.store.get(auction_id)
        assert auction.state == AuctionState.CLOSED
        bid_result = results[1]
        if isinstance(bid_result, AuctionNotActive):
            assert auction.winner_id == "bidder-0"
        else:
            # Bid admitted before close: it must be the winner
            assert auction.winner_id == "bidder-1"
        assert len(workflow.events(events.ORDER_CREATED)) == 1

    def test_concurrent_closes_emit_once(self, service, auction_id, clock, workflow):
        service.place_bid(auction_id, "bidder-0", 1000)
        clock.advance(1800)

        race(*[lambda: service.close_due(auction_id) for _ in range(6)])

        assert len(workflow.events(events.ORDER_CREATED)) == 1
        closed = service.broadcaster.events_for(events.deal_channel("room-1"), events.AUCTION_CLOSED)
        assert len(closed) == 1
