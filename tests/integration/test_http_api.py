"""
Integration tests for the HTTP and websocket API.
"""

import pytest
from fastapi.testclient import TestClient

from auctionhouse.api.app import create_app
from auctionhouse.core import events
from auctionhouse.core.deal_rooms import DealRoom, InMemoryDealRoomDirectory
from auctionhouse.core.events import EventBroadcaster, InMemoryWorkflowQueue
from auctionhouse.core.service import AuctionService
from auctionhouse.utils.clock import ManualClock

PARAMS = {
    "startPrice": 10000,
    "minIncrement": 500,
    "durationMinutes": 30,
    "inviteeIds": ["alice", "bob", "carol"],
}


def as_user(user_id):
    return {"X-User-Id": user_id}


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
def client(service):
    # Not entered as a context manager: the scheduler is driven by hand
    return TestClient(create_app(service, run_scheduler=False))


@pytest.fixture
def auction_id(client):
    response = client.post("/deals/room-1/start-auction", json=PARAMS, headers=as_user("seller"))
    assert response.status_code == 200
    return response.json()["auctionId"]


class TestStartAuctionRoute:

    def test_start(self, client, clock):
        response = client.post("/deals/room-1/start-auction", json=PARAMS, headers=as_user("seller"))
        body = response.json()
        assert response.status_code == 200
        assert body["state"] == "active"
        assert body["auctionRoomId"] == "room-1"
        assert body["endAt"] == clock() + 1800

    def test_missing_caller(self, client):
        response = client.post("/deals/room-1/start-auction", json=PARAMS)
        assert response.status_code == 401
        assert "error" in response.json()

    def test_not_seller(self, client):
        response = client.post("/deals/room-1/start-auction", json=PARAMS, headers=as_user("alice"))
        assert response.status_code == 403

    def test_unknown_room(self, client):
        response = client.post("/deals/nope/start-auction", json=PARAMS, headers=as_user("seller"))
        assert response.status_code == 404
        assert response.json() == {"error": "Deal room not found"}

    def test_missing_fields(self, client):
        response = client.post("/deals/room-1/start-auction", json={}, headers=as_user("seller"))
        assert response.status_code == 400
        assert response.json()["error"].startswith("Missing required fields")

    def test_far_future_start_rejected(self, client):
        body = {**PARAMS, "startAt": 1e300}
        response = client.post("/deals/room-1/start-auction", json=body, headers=as_user("seller"))
        assert response.status_code == 400
        assert response.json()["error"].startswith("startAt must be within")

        response = client.post("/deals/room-1/start-auction", json=PARAMS, headers=as_user("seller"))
        assert response.status_code == 200

    def test_second_live_auction(self, client, auction_id):
        response = client.post("/deals/room-1/start-auction", json=PARAMS, headers=as_user("seller"))
        assert response.status_code == 409


class TestBidRoute:

    def test_bid(self, client, auction_id):
        response = client.post(f"/auctions/{auction_id}/bid", json={"amount": 12500}, headers=as_user("alice"))
        assert response.status_code == 200
        assert response.json()["highestBid"] == 12500
        assert response.json()["bid"]["bidderId"] == "alice"

    def test_bid_too_low(self, client, auction_id):
        client.post(f"/auctions/{auction_id}/bid", json={"amount": 12500}, headers=as_user("alice"))
        response = client.post(f"/auctions/{auction_id}/bid", json={"amount": 12600}, headers=as_user("bob"))
        assert response.status_code == 400
        assert response.json() == {"error": "Bid must be at least 13000"}

    @pytest.mark.parametrize("body", [{"amount": 0}, {"amount": "lots"}, {}])
    def test_invalid_amount(self, client, auction_id, body):
        response = client.post(f"/auctions/{auction_id}/bid", json=body, headers=as_user("alice"))
        assert response.status_code == 400
        assert response.json() == {"error": "Bid amount must be greater than 0"}

    def test_not_invited(self, client, auction_id):
        response = client.post(f"/auctions/{auction_id}/bid", json={"amount": 20000}, headers=as_user("mallory"))
        assert response.status_code == 403

    def test_unknown_auction(self, client):
        response = client.post("/auctions/nope/bid", json={"amount": 20000}, headers=as_user("alice"))
        assert response.status_code == 404
        assert response.json() == {"error": "Auction not found"}

    def test_closed_auction(self, client, service, auction_id, clock):
        clock.advance(1800)
        service.scheduler.run_due()
        response = client.post(f"/auctions/{auction_id}/bid", json={"amount": 20000}, headers=as_user("alice"))
        assert response.status_code == 409
        assert response.json() == {"error": "Auction is not active"}


class TestQueryRoutes:

    def test_get_auction(self, client, auction_id):
        client.post(f"/auctions/{auction_id}/bid", json={"amount": 12500}, headers=as_user("alice"))
        response = client.get(f"/auctions/{auction_id}", headers=as_user("bob"))
        body = response.json()

        assert response.status_code == 200
        assert body["auction"]["remainingSeconds"] == 1800
        assert body["highestBid"]["amount"] == 12500
        assert len(body["bids"]) == 1

    def test_get_auction_outsider(self, client, auction_id):
        response = client.get(f"/auctions/{auction_id}", headers=as_user("mallory"))
        assert response.status_code == 403

    def test_get_by_deal_room(self, client, auction_id):
        response = client.get("/auctions/deal-room/room-1", headers=as_user("seller"))
        assert response.status_code == 200
        assert response.json()["auction"]["id"] == auction_id

    def test_get_by_deal_room_without_auction(self, client):
        response = client.get("/auctions/deal-room/room-1", headers=as_user("seller"))
        assert response.status_code == 404


class TestCancelRoute:

    def test_cancel(self, client, auction_id, workflow):
        client.post(f"/auctions/{auction_id}/bid", json={"amount": 12500}, headers=as_user("alice"))
        response = client.post(f"/auctions/{auction_id}/cancel", headers=as_user("seller"))

        assert response.status_code == 200
        assert response.json()["message"] == "Auction cancelled successfully"
        assert workflow.events(events.ORDER_CREATED) == []

    def test_cancel_not_seller(self, client, auction_id):
        response = client.post(f"/auctions/{auction_id}/cancel", headers=as_user("alice"))
        assert response.status_code == 403

    def test_cancel_twice(self, client, auction_id):
        client.post(f"/auctions/{auction_id}/cancel", headers=as_user("seller"))
        response = client.post(f"/auctions/{auction_id}/cancel", headers=as_user("seller"))
        assert response.status_code == 409


class TestFullAuction:
    """Start, bid, close and order over HTTP."""

    def test_winner_gets_order(self, client, service, auction_id, clock, workflow):
        client.post(f"/auctions/{auction_id}/bid", json={"amount": 12500}, headers=as_user("alice"))
        client.post(f"/auctions/{auction_id}/bid", json={"amount": 14000}, headers=as_user("carol"))

        clock.advance(1800)
        service.scheduler.run_due()

        body = client.get(f"/auctions/{auction_id}", headers=as_user("carol")).json()
        assert body["auction"]["state"] == "closed"
        assert body["auction"]["winnerId"] == "carol"
        assert body["auction"]["remainingSeconds"] == 0

        orders = workflow.events(events.ORDER_CREATED)
        assert [o["data"]["buyerId"] for o in orders] == ["carol"]
        assert orders[0]["data"]["amount"] == 14000


class TestWebsocket:

    def test_join_and_bid(self, client, auction_id):
        with client.websocket_connect("/ws", headers=as_user("alice")) as ws:
            ws.send_json({"event": "auction:join", "data": {"auctionDealRoomId": "room-1"}})
            joined = ws.receive_json()
            assert joined["event"] == "auction:joined"
            assert joined["data"]["auction"]["id"] == auction_id

            ws.send_json({"event": "auction:bid", "data": {"auctionId": auction_id, "amount": 12500}})
            update = ws.receive_json()
            assert update["event"] == "auction:bid:update"
            assert update["data"]["highestBid"] == 12500

            ws.send_json({"event": "auction:bid", "data": {"auctionId": auction_id, "amount": 12600}})
            error = ws.receive_json()
            assert error == {"event": "auction:error", "data": {"error": "Bid must be at least 13000"}}

    def test_malformed_frame(self, client):
        with client.websocket_connect("/ws?userId=alice") as ws:
            ws.send_text("garbage")
            assert ws.receive_json()["event"] == "auction:error"
