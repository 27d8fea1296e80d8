"""
Deal Event Log - audit trail of everything that happened in a deal room.

Entries are appended after the corresponding state change commits and are
never modified.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from auctionhouse.core.auction.model import new_id
from auctionhouse.core.storage.storage_manager import StorageManager
from auctionhouse.utils.logger import get_logger

logger = get_logger("deal_events")

AUCTION_STARTED = "auction.started"
AUCTION_BID = "auction.bid"
AUCTION_CANCELLED = "auction.cancelled"
AUCTION_CLOSED = "auction.closed"
AUCTION_WINNER = "auction.winner"


@dataclass(frozen=True)
class DealEvent:
    deal_room_id: str
    actor_id: Optional[str]
    event_type: str
    payload: Dict[str, Any]
    created_at: float = field(default_factory=time.time)
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "dealRoomId": self.deal_room_id,
            "actorId": self.actor_id,
            "eventType": self.event_type,
            "payload": self.payload,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DealEvent":
        return cls(
            id=data["id"],
            deal_room_id=data["dealRoomId"],
            actor_id=data.get("actorId"),
            event_type=data["eventType"],
            payload=data.get("payload") or {},
            created_at=float(data["createdAt"]),
        )


class DealEventLog:
    """Append-only audit trail, optionally persisted."""

    def __init__(self, storage_manager: Optional[StorageManager] = None):
        self._events: List[DealEvent] = []
        self._lock = threading.Lock()
        self.storage_manager = storage_manager

        if storage_manager:
            self._events = [DealEvent.from_dict(row) for row in storage_manager.load_deal_events()]

    def record(
        self,
        deal_room_id: str,
        actor_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
        created_at: Optional[float] = None,
    ) -> DealEvent:
        event = DealEvent(
            deal_room_id=deal_room_id,
            actor_id=actor_id,
            event_type=event_type,
            payload=payload,
            created_at=time.time() if created_at is None else created_at,
        )
        with self._lock:
            if self.storage_manager:
                self.storage_manager.record_deal_event(event)
            self._events.append(event)
        logger.debug(f"{event_type} recorded for deal room {deal_room_id[:8]}")
        return event

    def for_deal_room(self, deal_room_id: str) -> List[DealEvent]:
        with self._lock:
            return [e for e in self._events if e.deal_room_id == deal_room_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
