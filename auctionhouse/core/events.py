"""
Event Broadcaster - fan-out of auction state changes.

Channels:
- `deal:{deal_room_id}`: everyone watching an auction's deal room
- `user:{user_id}`: one user (used for `auction:error`)

Delivery is fire-and-forget: a failing subscriber is logged and skipped,
and a failing downstream workflow enqueue never reaches the bidder-facing
transaction. Events are published after the mutation commits.
"""

import itertools
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from auctionhouse.utils.logger import get_logger

logger = get_logger("events")


# =============================================================================
# Event Kinds
# =============================================================================

AUCTION_STARTED = "auction:started"
AUCTION_BID_UPDATE = "auction:bid:update"
AUCTION_CLOSED = "auction:closed"
AUCTION_CANCELLED = "auction:cancelled"
AUCTION_ERROR = "auction:error"

ORDER_CREATED = "order.created"


def deal_channel(deal_room_id: str) -> str:
    return f"deal:{deal_room_id}"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True)
class Event:
    kind: str
    channel: str
    payload: Dict[str, Any]
    published_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Subscription:
    id: int
    channel: str
    callback: Callable[[Event], None] = field(compare=False, repr=False)


# =============================================================================
# Downstream Workflow
# =============================================================================


class WorkflowSink(ABC):
    """Queue feeding the fulfilment workflow (orders)."""

    @abstractmethod
    def enqueue(self, name: str, data: Dict[str, Any]) -> None:
        """Hand an event to the workflow system. May raise."""


class InMemoryWorkflowQueue(WorkflowSink):
    """Workflow sink that keeps events in memory until drained."""

    def __init__(self):
        self._events: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def enqueue(self, name: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._events.append({"name": name, "data": dict(data)})

    def events(self, name: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [e for e in self._events if name is None or e["name"] == name]

    def drain(self) -> List[Dict[str, Any]]:
        with self._lock:
            events, self._events = self._events, []
        return events


# =============================================================================
# Broadcaster
# =============================================================================


class EventBroadcaster:
    """
    In-process publish/subscribe hub.

    Attributes:
        workflow_sink: Destination for downstream workflow events (optional)
        recent: Last published events, newest last
    """

    def __init__(self, workflow_sink: Optional[WorkflowSink] = None, history: int = 256):
        self.workflow_sink = workflow_sink
        self.recent: Deque[Event] = deque(maxlen=history)
        self._subscribers: Dict[str, Dict[int, Subscription]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, channel: str, callback: Callable[[Event], None]) -> Subscription:
        sub = Subscription(id=next(self._ids), channel=channel, callback=callback)
        with self._lock:
            self._subscribers.setdefault(channel, {})[sub.id] = sub
        logger.debug(f"Subscribed #{sub.id} to {channel}")
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            subs = self._subscribers.get(subscription.channel)
            if not subs or subscription.id not in subs:
                return False
            del subs[subscription.id]
            if not subs:
                del self._subscribers[subscription.channel]
        return True

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, ()))

    # =========================================================================
    # Publishing
    # =========================================================================

    def publish(self, channel: str, kind: str, payload: Dict[str, Any]) -> int:
        """
        Deliver an event to every subscriber of `channel`.

        Returns:
            Number of subscribers that received it without raising
        """
        event = Event(kind=kind, channel=channel, payload=payload)
        with self._lock:
            subs = list(self._subscribers.get(channel, {}).values())
            self.recent.append(event)

        delivered = 0
        for sub in subs:
            try:
                sub.callback(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"Subscriber #{sub.id} on {channel} failed for {kind}: {e}")

        logger.debug(f"Published {kind} to {channel} ({delivered}/{len(subs)} delivered)")
        return delivered

    def publish_to_deal_room(self, deal_room_id: str, kind: str, payload: Dict[str, Any]) -> int:
        return self.publish(deal_channel(deal_room_id), kind, payload)

    def send_to_user(self, user_id: str, kind: str, payload: Dict[str, Any]) -> int:
        return self.publish(user_channel(user_id), kind, payload)

    def emit_downstream(self, name: str, data: Dict[str, Any]) -> bool:
        """
        Hand an event to the workflow system.

        Returns:
            True if enqueued; False if no sink is configured or the sink failed
        """
        if self.workflow_sink is None:
            logger.warning(f"No workflow sink configured, dropping {name}")
            return False
        try:
            self.workflow_sink.enqueue(name, data)
        except Exception as e:
            logger.error(f"Failed to enqueue {name}: {e}")
            return False
        logger.info(f"Enqueued {name}")
        return True

    def events_for(self, channel: str, kind: Optional[str] = None) -> List[Event]:
        """Recently published events on a channel, oldest first."""
        with self._lock:
            return [
                e for e in self.recent
                if e.channel == channel and (kind is None or e.kind == kind)
            ]
