"""
Deal rooms as seen by the auction engine.

Deal rooms, listings and users are owned by the marketplace; the engine
only needs to know who the seller of a room is and which listing it
negotiates.
"""

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from auctionhouse.core.errors import DealRoomNotFound
from auctionhouse.utils.logger import get_logger

logger = get_logger("deal_rooms")


@dataclass(frozen=True)
class DealRoom:
    id: str
    listing_id: str
    seller_id: str
    room_type: str = "direct"


class DealRoomDirectory(ABC):

    @abstractmethod
    def find(self, deal_room_id: str) -> Optional[DealRoom]:
        """Return the deal room or None."""

    def get(self, deal_room_id: str) -> DealRoom:
        room = self.find(deal_room_id)
        if room is None:
            raise DealRoomNotFound(deal_room_id)
        return room


class InMemoryDealRoomDirectory(DealRoomDirectory):

    def __init__(self):
        self._rooms: Dict[str, DealRoom] = {}
        self._lock = threading.Lock()

    def register(self, room: DealRoom) -> DealRoom:
        with self._lock:
            self._rooms[room.id] = room
        return room

    def find(self, deal_room_id: str) -> Optional[DealRoom]:
        with self._lock:
            return self._rooms.get(deal_room_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)


def load_deal_rooms(path: Path) -> InMemoryDealRoomDirectory:
    """
    Load deal rooms from a JSON file.

    The file holds a list of objects with `id`, `listingId`, `sellerId` and
    an optional `roomType`.
    """
    directory = InMemoryDealRoomDirectory()
    for entry in json.loads(Path(path).read_text()):
        directory.register(DealRoom(
            id=entry["id"],
            listing_id=entry["listingId"],
            seller_id=entry["sellerId"],
            room_type=entry.get("roomType", "direct"),
        ))
    logger.info(f"Loaded {len(directory)} deal rooms from {path}")
    return directory
