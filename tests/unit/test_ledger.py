"""
Unit tests for the bid ledger.

Tests cover:
1. Append-only ordering
2. Highest bid tracking and tie priority
3. Rejection of foreign and duplicate bids
4. Persistence through the storage manager
"""

import pytest

from auctionhouse.core.auction.ledger import BidLedger
from auctionhouse.core.auction.model import Bid
from auctionhouse.core.storage import StorageManager


@pytest.fixture
def ledger():
    """In-memory ledger."""
    return BidLedger()


def make_bid(amount, bidder="alice", auction_id="a1", created_at=1.0):
    return Bid(auction_id=auction_id, bidder_id=bidder, amount=amount, created_at=created_at)


class TestBidLedger:
    """Tests for ledger operations."""

    def test_empty_ledger(self, ledger):
        assert ledger.highest_for("a1") is None
        assert ledger.list_for("a1") == []
        assert ledger.count_for("a1") == 0

    def test_insertion_order(self, ledger):
        bids = [make_bid(100, created_at=1), make_bid(200, "bob", created_at=2), make_bid(300, created_at=3)]
        for bid in bids:
            ledger.append("a1", bid)
        assert ledger.list_for("a1") == bids
        assert ledger.count_for("a1") == 3

    def test_highest_is_largest_amount(self, ledger):
        ledger.append("a1", make_bid(100))
        top = ledger.append("a1", make_bid(500, "bob"))
        ledger.append("a1", make_bid(300, "carol"))
        assert ledger.highest_for("a1") == top

    def test_earlier_bid_wins_tie(self, ledger):
        """Equal amounts keep the earlier bid as highest."""
        first = ledger.append("a1", make_bid(500, "alice", created_at=1))
        ledger.append("a1", make_bid(500, "bob", created_at=2))
        assert ledger.highest_for("a1") == first

    def test_auctions_are_separate(self, ledger):
        ledger.append("a1", make_bid(100))
        ledger.append("a2", make_bid(900, auction_id="a2"))
        assert ledger.highest_for("a1").amount == 100
        assert ledger.highest_for("a2").amount == 900
        assert ledger.stats() == {"auctions": 2, "bids": 2}

    def test_list_is_a_copy(self, ledger):
        ledger.append("a1", make_bid(100))
        ledger.list_for("a1").clear()
        assert ledger.count_for("a1") == 1

    def test_foreign_bid_rejected(self, ledger):
        with pytest.raises(ValueError):
            ledger.append("a2", make_bid(100, auction_id="a1"))
        assert ledger.count_for("a2") == 0

    def test_duplicate_bid_rejected(self, ledger):
        bid = ledger.append("a1", make_bid(100))
        with pytest.raises(ValueError):
            ledger.append("a1", bid)
        assert ledger.count_for("a1") == 1


class TestLedgerPersistence:
    """Tests for reloading the ledger from SQLite."""

    def test_reload_restores_bids_and_highest(self, tmp_path):
        storage = StorageManager(tmp_path)
        ledger = BidLedger(storage)
        ledger.append("a1", make_bid(100, created_at=1))
        top = ledger.append("a1", make_bid(700, "bob", created_at=2))
        ledger.append("a1", make_bid(700, "carol", created_at=3))

        reloaded = BidLedger(StorageManager(tmp_path))
        assert [b.amount for b in reloaded.list_for("a1")] == [100, 700, 700]
        assert reloaded.highest_for("a1") == top
