from pathlib import Path
from typing import Any, Dict, List, Optional

from auctionhouse.core.storage.sqlite_adapter import SQLiteAdapter
from auctionhouse.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Manages persistent storage for the engine.

    Coordinates data persistence using SQLite adapter.
    Handles:
    - Auction records
    - Bid ledger
    - Deal event audit trail
    """

    def __init__(self, data_dir: Path, db_name: str = "auctions.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    # =========================================================================
    # Auctions
    # =========================================================================

    def save_auction(self, auction):
        """Persist the current version of an auction."""
        self.adapter.save_auction(
            auction.id, auction.deal_room_id, auction.state.value,
            auction.to_dict(), auction.created_at,
        )

    def load_auction(self, auction_id: str) -> Optional[Dict[str, Any]]:
        return self.adapter.get_auction(auction_id)

    def load_auctions(self) -> List[Dict[str, Any]]:
        """Load all auction documents ordered by creation time."""
        return self.adapter.get_all_auctions()

    # =========================================================================
    # Bids
    # =========================================================================

    def save_bid(self, bid):
        self.adapter.save_bid(bid.id, bid.auction_id, bid.bidder_id, bid.amount, bid.created_at)

    def load_bids(self, auction_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.adapter.get_bids(auction_id)

    # =========================================================================
    # Deal Events
    # =========================================================================

    def record_deal_event(self, event):
        self.adapter.save_deal_event(
            event.id, event.deal_room_id, event.actor_id,
            event.event_type, event.payload, event.created_at,
        )

    def load_deal_events(self, deal_room_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.adapter.get_deal_events(deal_room_id)
