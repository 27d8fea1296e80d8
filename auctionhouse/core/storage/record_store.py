"""
Auction Record Store - the serialization point for auction state.

Conceptual Background:
---------------------
Every auction lives in its own slot: the current Auction value plus a
re-entrant lock. All mutation goes through `update`, which runs the mutation
on a copy while holding the slot lock and swaps the copy in only if the
mutation returns normally. Readers get snapshots, so they never observe a
half-applied change.

The registry lock guards slot creation and the deal-room index only; two
different auctions never contend on the same lock.
"""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from auctionhouse.core.auction.model import Auction
from auctionhouse.core.errors import AuctionNotFound, InvalidState
from auctionhouse.core.storage.storage_manager import StorageManager
from auctionhouse.utils.logger import get_logger

logger = get_logger("storage.records")

Mutation = Callable[[Auction], None]


class AuctionRepository(ABC):
    """Interface the engine needs from auction storage."""

    @abstractmethod
    def create(self, auction: Auction) -> str:
        """Insert a new auction and return its id."""

    @abstractmethod
    def get(self, auction_id: str) -> Auction:
        """Return a snapshot of the auction or raise AuctionNotFound."""

    @abstractmethod
    def update(self, auction_id: str, mutation: Mutation) -> Auction:
        """Atomically apply `mutation` and return the new snapshot."""

    @abstractmethod
    def find_active_by_deal_room(self, deal_room_id: str) -> Optional[Auction]:
        """Return the pending/active auction of a deal room, if any."""

    @abstractmethod
    def locked(self, auction_id: str):
        """Context manager holding the auction's serialization lock."""


@dataclass
class _Slot:
    auction: Auction
    lock: threading.RLock = field(default_factory=threading.RLock)


class AuctionRecordStore(AuctionRepository):
    """
    Arena of per-auction slots, optionally backed by SQLite.

    Attributes:
        storage_manager: Persistence manager. None = in-memory only.
    """

    def __init__(self, storage_manager: Optional[StorageManager] = None):
        self._slots: Dict[str, _Slot] = {}
        self._by_room: Dict[str, List[str]] = {}  # deal_room_id -> auction ids, oldest first
        self._registry_lock = threading.Lock()

        self.storage_manager = storage_manager

        if storage_manager:
            self._load_from_storage()

    def _load_from_storage(self) -> None:
        for data in self.storage_manager.load_auctions():
            auction = Auction.from_dict(data)
            self._slots[auction.id] = _Slot(auction)
            self._by_room.setdefault(auction.deal_room_id, []).append(auction.id)
        logger.info(f"Loaded {len(self._slots)} auctions from storage")

    def _persist(self, auction: Auction) -> None:
        if self.storage_manager:
            self.storage_manager.save_auction(auction)

    def _slot(self, auction_id: str) -> _Slot:
        with self._registry_lock:
            slot = self._slots.get(auction_id)
        if slot is None:
            raise AuctionNotFound(auction_id)
        return slot

    # =========================================================================
    # Repository Operations
    # =========================================================================

    def create(self, auction: Auction) -> str:
        """
        Insert a new auction.

        Raises:
            InvalidState: the deal room already has a pending/active auction
        """
        with self._registry_lock:
            if auction.id in self._slots:
                raise InvalidState(f"Auction {auction.id} already exists")

            # A live auction can only become terminal, so a stale read here
            # can only reject, never admit a second live auction.
            for other_id in self._by_room.get(auction.deal_room_id, ()):
                if self._slots[other_id].auction.state.is_live:
                    raise InvalidState("Deal room already has a live auction")

            self._persist(auction)
            self._slots[auction.id] = _Slot(auction.copy())
            self._by_room.setdefault(auction.deal_room_id, []).append(auction.id)

        logger.debug(f"Auction {auction.id[:8]} stored for deal room {auction.deal_room_id[:8]}")
        return auction.id

    def get(self, auction_id: str) -> Auction:
        return self._slot(auction_id).auction.copy()

    def update(self, auction_id: str, mutation: Mutation) -> Auction:
        """
        Apply `mutation` to a working copy under the slot lock.

        If the mutation raises, the stored auction is left untouched and the
        exception propagates.
        """
        slot = self._slot(auction_id)
        with slot.lock:
            working = slot.auction.copy()
            mutation(working)
            self._persist(working)
            slot.auction = working
            return working.copy()

    @contextmanager
    def locked(self, auction_id: str) -> Iterator[None]:
        """Hold the auction's lock across several reads and updates."""
        slot = self._slot(auction_id)
        with slot.lock:
            yield

    def find_active_by_deal_room(self, deal_room_id: str) -> Optional[Auction]:
        for auction in reversed(self.list_for_deal_room(deal_room_id)):
            if auction.state.is_live:
                return auction
        return None

    def find_latest_by_deal_room(self, deal_room_id: str) -> Optional[Auction]:
        auctions = self.list_for_deal_room(deal_room_id)
        return auctions[-1] if auctions else None

    def list_for_deal_room(self, deal_room_id: str) -> List[Auction]:
        with self._registry_lock:
            slots = [self._slots[aid] for aid in self._by_room.get(deal_room_id, ())]
        return [slot.auction.copy() for slot in slots]

    def list_live(self) -> List[Auction]:
        """All pending/active auctions (used for recovery)."""
        with self._registry_lock:
            slots = list(self._slots.values())
        return [slot.auction.copy() for slot in slots if slot.auction.state.is_live]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._slots)
