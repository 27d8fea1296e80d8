"""
Bid Ledger - append-only record of bids per auction.

Ordering is insertion order, which under per-auction serialization is
also created_at order. The highest bid is the largest amount; on equal
amounts the earlier bid keeps priority.
"""

import threading
from typing import Dict, List, Optional, Set

from auctionhouse.core.auction.model import Bid
from auctionhouse.core.storage.storage_manager import StorageManager
from auctionhouse.utils.logger import get_logger

logger = get_logger("ledger")


class BidLedger:
    """
    Append-only bid ledger.

    Attributes:
        bids: auction_id -> bids in insertion order
        highest: auction_id -> current highest bid
    """

    def __init__(self, storage_manager: Optional[StorageManager] = None):
        """
        Initialize the ledger.

        Args:
            storage_manager: Persistence manager. None = in-memory only.
        """
        self.bids: Dict[str, List[Bid]] = {}
        self.highest: Dict[str, Bid] = {}
        self._bid_ids: Set[str] = set()
        self._lock = threading.Lock()

        self.storage_manager = storage_manager

        if storage_manager:
            self._load_from_storage()

    def _load_from_storage(self) -> None:
        rows = self.storage_manager.load_bids()
        for row in rows:
            self._insert(Bid.from_dict(row))
        logger.info(f"Loaded {len(rows)} bids from storage")

    def _insert(self, bid: Bid) -> None:
        self.bids.setdefault(bid.auction_id, []).append(bid)
        self._bid_ids.add(bid.id)

        current = self.highest.get(bid.auction_id)
        if current is None or bid.amount > current.amount:
            self.highest[bid.auction_id] = bid

    # =========================================================================
    # Ledger Operations
    # =========================================================================

    def append(self, auction_id: str, bid: Bid) -> Bid:
        """
        Append a bid. Never overwrites.

        Raises:
            ValueError: bid belongs to another auction or was already appended
        """
        if bid.auction_id != auction_id:
            raise ValueError(f"Bid {bid.id} belongs to auction {bid.auction_id}, not {auction_id}")

        with self._lock:
            if bid.id in self._bid_ids:
                raise ValueError(f"Bid {bid.id} already in ledger")
            if self.storage_manager:
                self.storage_manager.save_bid(bid)
            self._insert(bid)

        logger.debug(f"Bid appended: auction={auction_id[:8]}, bidder={bid.bidder_id}, amount={bid.amount}")
        return bid

    def highest_for(self, auction_id: str) -> Optional[Bid]:
        with self._lock:
            return self.highest.get(auction_id)

    def list_for(self, auction_id: str) -> List[Bid]:
        """Bids for an auction, oldest first. Returns a new list each call."""
        with self._lock:
            return list(self.bids.get(auction_id, ()))

    def count_for(self, auction_id: str) -> int:
        with self._lock:
            return len(self.bids.get(auction_id, ()))

    def stats(self) -> dict:
        with self._lock:
            return {
                "auctions": len(self.bids),
                "bids": len(self._bid_ids),
            }
