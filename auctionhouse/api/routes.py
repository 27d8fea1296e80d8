"""
API endpoints for auctions.

POST   /deals/{id}/start-auction   : start an auction on a deal room (seller)
POST   /auctions/{id}/bid          : place a bid (invitees)
GET    /auctions/deal-room/{id}    : latest auction of a deal room (participants)
GET    /auctions/{id}              : auction detail with bids (participants)
POST   /auctions/{id}/cancel       : cancel an active auction (seller)
WS     /ws                         : realtime frames (see network.protocol)

Routes are plain `def`: the engine blocks on per-auction locks, so FastAPI
runs them in its threadpool.
"""

import asyncio
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, WebSocket, WebSocketDisconnect
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from auctionhouse.core.service import AuctionService
from auctionhouse.network.gateway import RealtimeGateway
from auctionhouse.network.protocol import encode_frame
from auctionhouse.utils.logger import get_logger

from .dependencies import current_user_get, service_get

logger = get_logger("api")

router = APIRouter()


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class PlaceBidRequest(BaseModel):
    # Left untyped so malformed amounts reach the engine and fail as InvalidAmount
    amount: Any = None


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------

@router.post("/deals/{deal_room_id}/start-auction")
def route_auction_start(
    deal_room_id: str,
    body: Optional[Dict[str, Any]] = Body(default=None),
    user_id: str = Depends(current_user_get),
    service: AuctionService = Depends(service_get),
):
    return service.start_auction(deal_room_id, user_id, body or {})


# ---------------------------------------------------------------------------
# Auctions
# ---------------------------------------------------------------------------

@router.post("/auctions/{auction_id}/bid")
def route_place_bid(
    auction_id: str,
    body: Optional[PlaceBidRequest] = None,
    user_id: str = Depends(current_user_get),
    service: AuctionService = Depends(service_get),
):
    amount = body.amount if body is not None else None
    return service.place_bid(auction_id, user_id, amount)


# Declared before /auctions/{auction_id} so "deal-room" is not taken as an id
@router.get("/auctions/deal-room/{deal_room_id}")
def route_auction_by_deal_room(
    deal_room_id: str,
    user_id: str = Depends(current_user_get),
    service: AuctionService = Depends(service_get),
):
    return service.get_auction_by_deal_room(deal_room_id, user_id)


@router.get("/auctions/{auction_id}")
def route_auction_detail(
    auction_id: str,
    user_id: str = Depends(current_user_get),
    service: AuctionService = Depends(service_get),
):
    return service.get_auction(auction_id, user_id)


@router.post("/auctions/{auction_id}/cancel")
def route_auction_cancel(
    auction_id: str,
    user_id: str = Depends(current_user_get),
    service: AuctionService = Depends(service_get),
):
    return service.cancel_auction(auction_id, user_id)


# ---------------------------------------------------------------------------
# Realtime
# ---------------------------------------------------------------------------

@router.websocket("/ws")
async def route_realtime(websocket: WebSocket):
    user_id = websocket.headers.get("x-user-id") or websocket.query_params.get("userId")
    if not user_id:
        await websocket.close(code=4401)
        return

    await websocket.accept()
    gateway: RealtimeGateway = websocket.app.state.gateway
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue = asyncio.Queue()

    # Broadcasts arrive on worker threads (routes, scheduler)
    def send(event: str, data: Dict[str, Any]) -> None:
        loop.call_soon_threadsafe(outbox.put_nowait, encode_frame(event, data))

    async def pump() -> None:
        try:
            while True:
                frame = await outbox.get()
                await websocket.send_text(frame)
        finally:
            # Stop queueing frames nobody will send
            gateway.disconnect(session)

    session = gateway.connect(user_id, send)
    writer = asyncio.create_task(pump())
    try:
        while True:
            raw = await websocket.receive_text()
            await run_in_threadpool(gateway.handle_raw, session, raw)
    except WebSocketDisconnect:
        logger.debug(f"Websocket closed for user {user_id}")
    finally:
        gateway.disconnect(session)
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"Websocket writer for user {user_id} failed: {e}")
