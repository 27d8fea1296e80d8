"""
Realtime Gateway - binds client sessions to the engine.

A session is one connected user plus a `send` callable that writes a frame
to that user's connection. Joining a deal room subscribes the session to the
room's broadcast channel; every session also listens on its own user
channel, which is where `auction:error` is delivered.

Handlers never let a domain failure escape: it is reported to the offending
caller and the connection stays open.
"""

import itertools
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from auctionhouse.core import events
from auctionhouse.core.errors import AuctionError
from auctionhouse.core.events import Event, Subscription
from auctionhouse.core.service import AuctionService
from auctionhouse.network.protocol import (
    AUCTION_JOINED,
    AUCTION_LEFT,
    BidPayload,
    ClientEvent,
    Frame,
    ProtocolError,
    RoomRef,
    decode_frame,
    parse_payload,
)
from auctionhouse.utils.logger import get_logger

logger = get_logger("gateway")

Send = Callable[[str, Dict[str, Any]], None]


@dataclass
class Session:
    """A connected user."""
    id: int
    user_id: str
    send: Send = field(repr=False)
    user_subscription: Optional[Subscription] = None
    # deal_room_id -> subscription
    rooms: Dict[str, Subscription] = field(default_factory=dict)

    def deliver(self, event: Event) -> None:
        self.send(event.kind, event.payload)


class RealtimeGateway:
    """Dispatches client frames to the AuctionService."""

    def __init__(self, service: AuctionService):
        self.service = service
        self.sessions: Dict[int, Session] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # =========================================================================
    # Connection Lifecycle
    # =========================================================================

    def connect(self, user_id: str, send: Send) -> Session:
        session = Session(id=next(self._ids), user_id=user_id, send=send)
        session.user_subscription = self.service.broadcaster.subscribe(
            events.user_channel(user_id), session.deliver
        )
        with self._lock:
            self.sessions[session.id] = session
        logger.info(f"Session #{session.id} connected for user {user_id}")
        return session

    def disconnect(self, session: Session) -> None:
        """Drop a session's subscriptions. Safe to call more than once."""
        with self._lock:
            if self.sessions.pop(session.id, None) is None:
                return
        broadcaster = self.service.broadcaster
        for sub in session.rooms.values():
            broadcaster.unsubscribe(sub)
        if session.user_subscription is not None:
            broadcaster.unsubscribe(session.user_subscription)
        session.rooms.clear()
        logger.info(f"Session #{session.id} disconnected")

    # =========================================================================
    # Dispatch
    # =========================================================================

    def handle_raw(self, session: Session, raw: str) -> None:
        """Decode and dispatch one frame."""
        try:
            frame = decode_frame(raw)
        except ProtocolError as e:
            logger.debug(f"Session #{session.id}: {e}")
            session.send(events.AUCTION_ERROR, {"error": str(e)})
            return
        self.handle(session, frame)

    def handle(self, session: Session, frame: Frame) -> None:
        handlers = {
            ClientEvent.JOIN.value: self._on_join,
            ClientEvent.BID.value: self._on_bid,
            ClientEvent.LEAVE.value: self._on_leave,
        }
        handler = handlers.get(frame.event)
        if handler is None:
            session.send(events.AUCTION_ERROR, {"error": f"Unknown event: {frame.event}"})
            return

        try:
            handler(session, frame)
        except ProtocolError as e:
            session.send(events.AUCTION_ERROR, {"error": str(e)})
        except AuctionError as e:
            logger.debug(f"Session #{session.id} {frame.event} rejected: {e.kind}")
            self.service.report_error(session.user_id, e)

    def _on_join(self, session: Session, frame: Frame) -> None:
        ref = parse_payload(frame, RoomRef)
        # Raises NotInvited for non-participants
        view = self.service.get_auction_by_deal_room(ref.deal_room_id, session.user_id)

        if ref.deal_room_id not in session.rooms:
            session.rooms[ref.deal_room_id] = self.service.broadcaster.subscribe(
                events.deal_channel(ref.deal_room_id), session.deliver
            )
        session.send(AUCTION_JOINED, {"auctionDealRoomId": ref.deal_room_id, **view})

    def _on_bid(self, session: Session, frame: Frame) -> None:
        payload = parse_payload(frame, BidPayload)
        # The admitted bid reaches every joined session via auction:bid:update
        self.service.place_bid(payload.auction_id, session.user_id, payload.amount)

    def _on_leave(self, session: Session, frame: Frame) -> None:
        ref = parse_payload(frame, RoomRef)
        sub = session.rooms.pop(ref.deal_room_id, None)
        if sub is not None:
            self.service.broadcaster.unsubscribe(sub)
        session.send(AUCTION_LEFT, {"auctionDealRoomId": ref.deal_room_id})
